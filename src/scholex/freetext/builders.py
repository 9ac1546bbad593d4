"""Matcher templates for label-embedded metadata.

Label text always enters a pattern as ``Literal`` so a feed that writes
``[Title (.*)]`` gets a matcher for that exact label, never a wildcard.
"""

from __future__ import annotations

from typing import Dict, Iterable, Optional, Tuple

from ..catalog import BRACKET_LABEL, CJK_BRACKET, COLON_LABEL, DEFAULT_CATALOG, HTML_TAG, FormatCatalog
from ..patterns import Fragment, Literal, alternation, build_pattern
from ..rules import Rule, RuleType

LABEL_RULE_FLAGS = "siu"
HTML_RULE_FLAGS = "is"

# (before label, after label, end of value window)
_LABEL_TEMPLATES: Dict[str, Tuple[str, str, str]] = {
    BRACKET_LABEL: (r"\[\s*", r"\s*\]\s*", r"(?=\s*\[|\Z)"),
    CJK_BRACKET: (r"【\s*", r"\s*】\s*", r"(?=\s*【|\Z)"),
    COLON_LABEL: (r"", r"\s*[:：]\s*", r"(?=\w+\s*[:：]|\Z)"),
}

# Label-less sweeps used when only the format is known.
GENERIC_LABEL_PATTERNS: Dict[str, str] = {
    BRACKET_LABEL: r"\[\s*([^\[\]]+?)\s*\]\s*([^\[]+?)(?=\s*\[|\Z)",
    CJK_BRACKET: r"【\s*([^【】]+?)\s*】\s*([^【]+?)(?=\s*【|\Z)",
    COLON_LABEL: r"(\w+)\s*[:：]\s*(.+?)(?=\w+\s*[:：]|\Z)",
}

_DOI_RULE_FOR_FORMAT = {
    BRACKET_LABEL: "bracket",
    CJK_BRACKET: "cjk_bracket",
    COLON_LABEL: "colon",
    HTML_TAG: "url",
}

LABEL_RULE_TYPES = frozenset({RuleType.BRACKET_LABEL, RuleType.CJK_BRACKET, RuleType.COLON_LABEL})


def label_window_pattern(format_id: str, label: str) -> str:
    """Capture from ``label`` to the next label of the same format or end of text."""
    before, after, end = _LABEL_TEMPLATES[format_id]
    return build_pattern(Fragment(before), Literal(label), Fragment(after), Fragment(r"(.+?)"), Fragment(end))


def class_presence_pattern(hints: Iterable[str]) -> str:
    return build_pattern(
        Fragment(r"class\s*=\s*[\"'][^\"']*"),
        alternation(*hints),
        Fragment(r"[^\"']*[\"']"),
    )


def class_content_pattern(hints: Iterable[str]) -> str:
    return build_pattern(
        Fragment(r"<[^>]+class\s*=\s*[\"'][^\"']*"),
        alternation(*hints),
        Fragment(r"[^\"']*[\"'][^>]*>(.+?)</"),
    )


def label_rule(format_id: str, label: str, separator: Optional[str] = None) -> Rule:
    return Rule(
        type=RuleType(format_id),
        label=label,
        pattern=label_window_pattern(format_id, label),
        flags=LABEL_RULE_FLAGS,
        separator=separator,
    )


def html_rule(hints: Iterable[str]) -> Rule:
    return Rule(type=RuleType.HTML_TAG, pattern=class_content_pattern(hints), flags=HTML_RULE_FLAGS)


def doi_value_rule(name: str, catalog: FormatCatalog = DEFAULT_CATALOG) -> Rule:
    return Rule(type=RuleType.VALUE_PATTERN, pattern=catalog.doi_pattern(name).pattern, flags="i")


def doi_rule_for_format(format_id: str, catalog: FormatCatalog = DEFAULT_CATALOG) -> Rule:
    return doi_value_rule(_DOI_RULE_FOR_FORMAT.get(format_id, "raw"), catalog)
