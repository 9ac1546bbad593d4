"""Feed-side helpers that do not depend on learned rules.

The engine never fetches; callers hand over feed documents they already
downloaded. The simple parser here is the per-item fallback used when an
AI-authored field map cannot produce a title for an entry.
"""
from __future__ import annotations

from .rss import is_boilerplate, iter_simple_records, parse_entry, parse_feed

__all__ = ["is_boilerplate", "iter_simple_records", "parse_entry", "parse_feed"]
