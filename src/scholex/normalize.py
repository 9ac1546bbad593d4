"""Field value cleaners shared by every extractor.

- DOI: resolver prefix and trailing punctuation removal (idempotent)
- Authors: separator-driven splitting and per-name cleanup
- Dates: explicit format, ordered pattern family, then generic parsing
- Text: tag stripping and whitespace collapsing
- URLs: resolution against a page base URL
"""

from __future__ import annotations

import html
import logging
import re
import warnings
from datetime import date, datetime
from typing import Any, List, Optional
from urllib.parse import urlparse

from bs4 import BeautifulSoup, MarkupResemblesLocatorWarning
from dateutil import parser as date_parser

from .catalog import DEFAULT_CATALOG, FormatCatalog
from .patterns import safe_compile

logger = logging.getLogger(__name__)

_DOI_PREFIX_RE = re.compile(
    r"^(?:\s*(?:(?:https?://)?(?:dx\.)?doi\.org/|doi\s*[:：]))+\s*",
    re.IGNORECASE,
)
_DOI_TRAILING_RE = re.compile(r"[\s.,;:)\]'\"]+$")
_DOI_SHAPE_RE = re.compile(r"10\.\d{4,}/\S+")
_DEFAULT_DOI_RE = re.compile(r"10\.\d{4,}/[^\s\"'<>]+")
_WHITESPACE_RE = re.compile(r"\s+")
_TAG_HINT_RE = re.compile(r"<[a-zA-Z/!][^>]*>")
_PAREN_ASIDE_RE = re.compile(r"\s*\([^)]*\)\s*")
_LEADING_ORDINAL_RE = re.compile(r"^\d+\.\s*")

# PHP-style date tokens as emitted by the AI collaborator ("Y-m-d", "Y年m月d日").
_DATE_TOKENS = {
    "Y": "%Y",
    "y": "%y",
    "m": "%m",
    "n": "%m",
    "d": "%d",
    "j": "%d",
    "M": "%b",
    "F": "%B",
    "D": "%a",
    "l": "%A",
    "H": "%H",
    "i": "%M",
    "s": "%S",
}


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def decode_entities(text: str) -> str:
    return html.unescape(text)


def strip_tags(text: str) -> str:
    """Return the visible text of an HTML fragment."""
    if not text or not _TAG_HINT_RE.search(text):
        return text
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", MarkupResemblesLocatorWarning)
        soup = BeautifulSoup(text, "html.parser")
    return soup.get_text(" ")


def clean_text(text: str) -> str:
    return collapse_whitespace(strip_tags(text))


def normalize_doi(text: str) -> str:
    """Strip resolver prefixes and trailing punctuation from a DOI string.

    ``normalize_doi(normalize_doi(x)) == normalize_doi(x)`` for every input.
    """
    value = (text or "").strip()
    value = _DOI_PREFIX_RE.sub("", value)
    return _DOI_TRAILING_RE.sub("", value).strip()


def clean_doi(text: str) -> Optional[str]:
    """Normalise ``text`` and return it only if it has the shape of a DOI."""
    value = normalize_doi(text)
    if _DOI_SHAPE_RE.fullmatch(value):
        return value
    m = _DOI_SHAPE_RE.search(value)
    if m:
        return normalize_doi(m.group(0)) or None
    return None


def find_doi(text: str, catalog: FormatCatalog = DEFAULT_CATALOG) -> Optional[str]:
    """Run the catalog DOI chain (bracket, CJK bracket, colon, URL, raw)."""
    if not text:
        return None
    for name, pattern in catalog.doi_patterns:
        m = pattern.search(text)
        if m:
            doi = normalize_doi(m.group(1))
            if doi:
                logger.debug(f"DOI found by {name} pattern: {doi}")
                return doi
    return None


def match_doi(raw: str, pattern: Optional[str] = None) -> Optional[str]:
    """Pull a DOI out of ``raw`` with ``pattern`` (default: raw DOI shape)."""
    if not raw or not raw.strip():
        return None
    matcher = safe_compile(pattern) if pattern else _DEFAULT_DOI_RE
    if matcher is None:
        return None
    m = matcher.search(raw)
    if not m:
        return None
    value = m.group(1) if matcher.groups and m.group(1) else m.group(0)
    return normalize_doi(value) or None


def doi_from_url(url: str) -> Optional[str]:
    m = re.search(r"(?:dx\.)?doi\.org/(10\.\d{4,}/[^\s\"'<>]+)", url or "", re.IGNORECASE)
    if not m:
        return None
    return normalize_doi(m.group(1)) or None


def _clean_author(name: str) -> str:
    name = name.strip()
    name = _PAREN_ASIDE_RE.sub("", name)
    name = _LEADING_ORDINAL_RE.sub("", name)
    return name.strip()


def split_authors(
    text: str,
    separator: Optional[str] = None,
    catalog: FormatCatalog = DEFAULT_CATALOG,
) -> List[str]:
    """Split an author string into cleaned names.

    With an explicit ``separator`` regex it is used as-is; otherwise the
    catalog separators are tried in order and the first one producing more
    than one token wins.
    """
    if not text or not text.strip():
        return []
    parts: Optional[List[str]] = None
    if separator:
        try:
            parts = re.split(separator, text)
        except re.error as e:
            logger.warning(f"Ignoring malformed author separator {separator!r}: {e}")
    if parts is None:
        for sep in catalog.author_separators:
            split = sep.split(text)
            if len(split) > 1:
                parts = split
                break
    if parts is None:
        parts = [text]
    authors = []
    for part in parts:
        name = _clean_author(part)
        if name:
            authors.append(name)
    return authors


def _format_to_strptime(date_format: str) -> str:
    if "%" in date_format:
        return date_format
    out = []
    escaped = False
    for ch in date_format:
        if escaped:
            out.append(ch)
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(_DATE_TOKENS.get(ch, ch))
    return "".join(out)


def _safe_date(year: int, month: int, day: int) -> Optional[str]:
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def _month_number(name: str) -> Optional[int]:
    try:
        return datetime.strptime(name[:3].title(), "%b").month
    except ValueError:
        return None


def parse_date(
    text: str,
    date_format: Optional[str] = None,
    floor_year: Optional[int] = None,
    catalog: FormatCatalog = DEFAULT_CATALOG,
) -> Optional[str]:
    """Parse heterogeneous date text into ``YYYY-MM-DD``.

    Args:
        text: Raw date text, possibly surrounded by other words.
        date_format: Explicit format tried first (strftime or ``Y-m-d`` style).
        floor_year: Results of the generic parser before this year are rejected.
        catalog: Source of the ordered date pattern family.

    Returns:
        ISO date string, or None when nothing plausible was found.
    """
    if not text or not text.strip():
        return None
    text = collapse_whitespace(text)

    if date_format:
        try:
            return datetime.strptime(text, _format_to_strptime(date_format)).date().isoformat()
        except ValueError:
            logger.debug(f"Date {text!r} does not match explicit format {date_format!r}")

    for name, pattern in catalog.date_patterns:
        m = pattern.search(text)
        if not m:
            continue
        if name == "en_short":
            month = _month_number(m.group(2))
            result = _safe_date(int(m.group(3)), month, int(m.group(1))) if month else None
        elif name == "en_long":
            month = _month_number(m.group(1))
            result = _safe_date(int(m.group(3)), month, int(m.group(2))) if month else None
        else:
            result = _safe_date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        if result:
            return result

    try:
        parsed = date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if floor_year is not None and parsed.year < floor_year:
        logger.debug(f"Rejecting implausible date {parsed.date()} parsed from {text!r}")
        return None
    return parsed.date().isoformat()


def clean_field(
    field_name: str,
    raw: str,
    separator: Optional[str] = None,
    date_format: Optional[str] = None,
    catalog: FormatCatalog = DEFAULT_CATALOG,
) -> Any:
    """Route a captured value through the cleaner for ``field_name``.

    Returns None (or an empty list for authors) when nothing usable is left.
    """
    value = clean_text(raw or "")
    if not value:
        return None
    if field_name == "doi":
        return clean_doi(value)
    if field_name == "authors":
        return split_authors(value, separator, catalog)
    if field_name == "published_date":
        return parse_date(value, date_format, catalog=catalog)
    return value


def resolve_url(url: str, base_url: str) -> str:
    """Resolve ``url`` against ``base_url``.

    Absolute URLs pass through, ``//host/path`` inherits the base scheme,
    ``/path`` inherits scheme and host, anything else is joined to the
    directory of the base path.
    """
    url = (url or "").strip()
    if not url:
        return ""
    if re.match(r"^https?://", url, re.IGNORECASE):
        return url
    base = urlparse(base_url or "")
    scheme = base.scheme or "https"
    host = base.netloc
    if url.startswith("//"):
        return f"{scheme}:{url}"
    if url.startswith("/"):
        return f"{scheme}://{host}{url}"
    base_path = base.path or "/"
    directory = base_path if base_path.endswith("/") else base_path.rsplit("/", 1)[0] + "/"
    return f"{scheme}://{host}{directory}{url}"
