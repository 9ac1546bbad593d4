"""Apply a field -> rule map to a single free-text item."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Mapping, Optional, Pattern

from ..catalog import DEFAULT_CATALOG, HTML_TAG, FormatCatalog
from ..normalize import clean_field, decode_entities, find_doi
from ..patterns import flags_from_letters, safe_compile
from ..rules import ExtractedRecord, Rule
from .builders import (
    GENERIC_LABEL_PATTERNS,
    LABEL_RULE_FLAGS,
    LABEL_RULE_TYPES,
    class_content_pattern,
    label_window_pattern,
)

logger = logging.getLogger(__name__)


class RuleApplier:
    """Extracts an ``ExtractedRecord`` from text using a rule map.

    A rule that is malformed or does not match leaves its field empty; the
    remaining rules still run. When no rule produced a DOI, the catalog DOI
    chain is run over the whole text.
    """

    def __init__(self, catalog: FormatCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def apply(self, text: str, rules: Mapping[str, Rule]) -> ExtractedRecord:
        text = decode_entities(text or "")
        values: Dict[str, Any] = {}
        for field_name, rule in rules.items():
            value = self.extract_field(text, field_name, rule)
            if value:
                values[field_name] = value
        if not values.get("doi"):
            doi = find_doi(text, self.catalog)
            if doi:
                values["doi"] = doi
        return ExtractedRecord.from_fields(values)

    def extract_field(self, text: str, field_name: str, rule: Rule) -> Any:
        """Run ``rule`` then its fallbacks; return the first cleaned value."""
        current: Optional[Rule] = rule
        while current is not None:
            value = self._match(text, field_name, current)
            if value:
                return value
            current = current.fallback
        return None

    def matcher_for(self, rule: Rule) -> Optional[Pattern[str]]:
        # Label rules are rebuilt from their label so stored regex text is never trusted.
        if rule.type in LABEL_RULE_TYPES and rule.label:
            return safe_compile(label_window_pattern(rule.type.value, rule.label), flags_from_letters(LABEL_RULE_FLAGS))
        return rule.matcher()

    def _match(self, text: str, field_name: str, rule: Rule) -> Any:
        matcher = self.matcher_for(rule)
        if matcher is None:
            return None
        m = matcher.search(text)
        if not m:
            return None
        raw = m.group(1) if matcher.groups and m.group(1) is not None else m.group(0)
        return self.clean_value(field_name, raw, rule)

    def clean_value(self, field_name: str, raw: str, rule: Optional[Rule] = None) -> Any:
        return clean_field(
            field_name,
            raw,
            separator=rule.separator if rule else None,
            date_format=rule.date_format if rule else None,
            catalog=self.catalog,
        )

    def extract_with_format(
        self,
        text: str,
        format_id: str,
        known_labels: Optional[Mapping[str, str]] = None,
    ) -> ExtractedRecord:
        """Label-generic extraction when only the embedding format is known.

        Args:
            text: One item's free text.
            format_id: Catalog format id, usually from quick detection.
            known_labels: Optional label -> field overrides consulted before
                the catalog dictionary.

        Returns:
            The record; the first occurrence of a field wins.
        """
        text = decode_entities(text or "")
        known_labels = known_labels or {}
        values: Dict[str, Any] = {}
        if format_id == HTML_TAG:
            for field_name, hints in self.catalog.html_class_hints:
                matcher = safe_compile(class_content_pattern(hints), re.IGNORECASE | re.DOTALL)
                m = matcher.search(text) if matcher else None
                if m:
                    value = self.clean_value(field_name, m.group(1))
                    if value:
                        values[field_name] = value
        elif format_id in GENERIC_LABEL_PATTERNS:
            sweep = safe_compile(GENERIC_LABEL_PATTERNS[format_id], re.DOTALL)
            for m in sweep.finditer(text):
                label = m.group(1).strip()
                field_name = known_labels.get(label) or self.catalog.match_label_to_field(label)
                if not field_name or field_name in values:
                    continue
                value = self.clean_value(field_name, m.group(2))
                if value:
                    values[field_name] = value
        else:
            logger.debug(f"No generic extraction for format {format_id!r}")
        if not values.get("doi"):
            doi = find_doi(text, self.catalog)
            if doi:
                values["doi"] = doi
        return ExtractedRecord.from_fields(values)
