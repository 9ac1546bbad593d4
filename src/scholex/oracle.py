"""Validation of JSON proposed by the generative-AI collaborator.

Responses are untrusted input: they pass the same required-field checks as
any caller-supplied config, and anything malformed is a configuration error
so the caller falls back exactly as it would with no config at all.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import ConfigurationError, OracleResponseError
from .normalize import resolve_url
from .rules import FeedConfig, Rule, RuleType, SelectorConfig

logger = logging.getLogger(__name__)

_FENCE_OPEN_RE = re.compile(r"^\s*```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE_RE = re.compile(r"\s*```\s*$")

_FIELD_KEYS = ("namespace", "attribute", "child_element", "pattern", "separator", "date_format")


def strip_code_fences(text: str) -> str:
    text = _FENCE_OPEN_RE.sub("", text or "")
    return _FENCE_CLOSE_RE.sub("", text).strip()


def load_json_object(text: str) -> Dict[str, Any]:
    """Decode a response body into a JSON object.

    Raises:
        OracleResponseError: if the body is not a JSON object.
    """
    body = strip_code_fences(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning(f"Failed to parse AI response as JSON: {e}")
        raise OracleResponseError(f"Response is not valid JSON: {e}")
    if not isinstance(data, dict):
        raise OracleResponseError("Response must be a JSON object")
    return data


@dataclass(frozen=True)
class PageAnalysis:
    is_article_list_page: bool
    page_type: str = "unknown"
    reason: str = ""
    article_list_url: Optional[str] = None
    selectors: Optional[SelectorConfig] = None


def parse_page_analysis(text: str, page_url: str) -> PageAnalysis:
    """Parse a page-structure analysis.

    A page that is not an article list carries no selectors, only an
    optional (resolved) link to the real list page. An article list page
    must carry selectors with ``paper_container`` and ``title``.

    Raises:
        OracleResponseError: for malformed JSON or missing selectors.
    """
    data = load_json_object(text)
    page_type = str(data.get("page_type") or "unknown")
    reason = str(data.get("page_type_reason") or "")
    if not data.get("is_article_list_page"):
        link = data.get("article_list_url")
        return PageAnalysis(
            is_article_list_page=False,
            page_type=page_type,
            reason=reason,
            article_list_url=resolve_url(link, page_url) if isinstance(link, str) and link.strip() else None,
        )
    selectors = data.get("selectors")
    if not isinstance(selectors, Mapping) or not selectors.get("paper_container"):
        raise OracleResponseError("Could not determine page structure: selectors missing")
    base_url = data.get("base_url") if isinstance(data.get("base_url"), str) else None
    try:
        config = SelectorConfig.from_dict(selectors, base_url=base_url or page_url)
    except ConfigurationError as e:
        raise OracleResponseError(str(e))
    return PageAnalysis(is_article_list_page=True, page_type=page_type, reason=reason, selectors=config)


def _field_rule(field_name: str, field_map: Any) -> Optional[Rule]:
    if field_map is None:
        return None
    if isinstance(field_map, str):
        field_map = {"element": field_map}
    if not isinstance(field_map, Mapping):
        raise OracleResponseError(f"Field {field_name!r} must be an object")
    element = field_map.get("element")
    if not isinstance(element, str) or not element.strip():
        return None
    kwargs = {}
    for key in _FIELD_KEYS:
        value = field_map.get(key)
        if isinstance(value, str) and value.strip():
            kwargs[key] = value.strip()
    return Rule(type=RuleType.XML_FIELD, label=element.strip(), **kwargs)


def parse_feed_field_map(text: str) -> Tuple[FeedConfig, Dict[str, Rule]]:
    """Parse an XML field map into a feed config plus one rule per field.

    Raises:
        OracleResponseError: for malformed JSON, or when ``fields`` or
            ``fields.title`` is missing.
    """
    data = load_json_object(text)
    fields = data.get("fields")
    if not isinstance(fields, Mapping):
        raise OracleResponseError("Invalid feed field map: missing fields")
    if not fields.get("title"):
        raise OracleResponseError("Invalid feed field map: missing title field")
    rules: Dict[str, Rule] = {}
    for field_name, field_map in fields.items():
        rule = _field_rule(str(field_name), field_map)
        if rule is not None:
            rules[str(field_name)] = rule
    if "title" not in rules:
        raise OracleResponseError("Invalid feed field map: title has no element")
    try:
        feed_config = FeedConfig.from_dict(data)
    except ConfigurationError as e:
        raise OracleResponseError(str(e))
    return feed_config, rules
