from __future__ import annotations

import logging
import re
from datetime import date
from typing import Any, Iterator, List, Optional, Union

import feedparser

from ..normalize import clean_text, match_doi
from ..rules import ExtractedRecord

logger = logging.getLogger(__name__)

MIN_ABSTRACT_CHARS = 50

BOILERPLATE_PATTERNS = [
	re.compile(r"^The International Journal of", re.IGNORECASE),
	re.compile(r"^This journal publishes", re.IGNORECASE),
	re.compile(r"^Subscribe to", re.IGNORECASE),
	re.compile(r"^Access the full", re.IGNORECASE),
	re.compile(r"^Click here", re.IGNORECASE),
	re.compile(r"^Read the full", re.IGNORECASE),
	re.compile(r"publishes original research", re.IGNORECASE),
]


def is_boilerplate(text: str) -> bool:
	return any(p.search(text) for p in BOILERPLATE_PATTERNS)


def _entry_date(entry: Any) -> Optional[str]:
	for key in ("published_parsed", "updated_parsed", "created_parsed"):
		parsed = entry.get(key)
		if parsed:
			try:
				return date(parsed.tm_year, parsed.tm_mon, parsed.tm_mday).isoformat()
			except (ValueError, AttributeError):
				continue
	return None


def _entry_abstract(entry: Any) -> Optional[str]:
	# description usually carries the abstract; content is often journal boilerplate or full HTML
	raw = entry.get("summary") or entry.get("description")
	if not raw:
		for c in entry.get("content", []) or []:
			value = c.get("value") if isinstance(c, dict) else None
			if value:
				raw = value
				break
	if not raw:
		return None
	text = clean_text(raw)
	if is_boilerplate(text) or len(text) <= MIN_ABSTRACT_CHARS:
		return None
	return text


def parse_entry(entry: Any) -> Optional[ExtractedRecord]:
	"""Simple per-item parser used when a field map yields no title.

	Fields: title (required), authors from entry authors, DOI from the link,
	abstract from description/summary, published date.
	"""
	title = clean_text(entry.get("title") or "")
	if not title:
		return None
	authors: List[str] = []
	for a in entry.get("authors", []) or []:
		name = a.get("name") if isinstance(a, dict) else a
		if name and name.strip():
			authors.append(name.strip())
	if not authors and entry.get("author"):
		authors.append(entry.get("author").strip())
	link = entry.get("link") or None
	return ExtractedRecord.from_fields({
		"title": title,
		"authors": authors,
		"doi": match_doi(link) if link else None,
		"abstract": _entry_abstract(entry),
		"url": link,
		"published_date": _entry_date(entry),
	})


def parse_feed(xml: Union[str, bytes]) -> List[Any]:
	"""Return feedparser entries for a feed document (already fetched)."""
	feed = feedparser.parse(xml)
	if feed.get("bozo") and not feed.entries:
		logger.warning(f"Feed could not be parsed: {feed.get('bozo_exception')}")
	return list(feed.entries)


def iter_simple_records(xml: Union[str, bytes], max_records: Optional[int] = None) -> Iterator[Optional[ExtractedRecord]]:
	"""Yield one record (or None without a title) per entry, in feed order."""
	count = 0
	for entry in parse_feed(xml):
		yield parse_entry(entry)
		count += 1
		if max_records and count >= max_records:
			break
