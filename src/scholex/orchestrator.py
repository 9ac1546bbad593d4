"""Per-source decision layer over the extraction engines.

For each source the orchestrator decides whether to use a persisted rule set,
learn a new one or fall back to single-item quick detection. Rule sets are
immutable values; the orchestrator swaps them in and out of the store and is
the only component that writes there. Extraction itself never raises for a
missing or stale rule set: the worst case is an empty record filled from the
caller's raw fields.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .catalog import DEFAULT_CATALOG, FormatCatalog
from .config import EngineSettings
from .discovery.rss import parse_entry, parse_feed
from .errors import RuleSetFormatError
from .extractors.html_list import HtmlListExtractor, HtmlListResult
from .extractors.xml_rules import XmlRuleExtractor, iter_feed_items, parse_xml
from .freetext.applier import RuleApplier
from .freetext.learner import PatternLearner, ValidationReport
from .rules import (
    HTML_LIST_FORMAT,
    XML_FEED_FORMAT,
    ExtractedRecord,
    ExtractionRuleSet,
    FeedConfig,
    PatternSource,
    Rule,
    SelectorConfig,
)
from .store.rule_store import RuleStore

logger = logging.getLogger(__name__)

MAX_DIAGNOSTICS = 256


class SourceState(str, Enum):
    NO_RULES = "no_rules"
    LEARNED_LOW_CONFIDENCE = "learned_low_confidence"
    PERSISTED = "persisted"


@dataclass(frozen=True)
class LearningOutcome:
    source_id: str
    state: SourceState
    rule_set: ExtractionRuleSet
    persisted: bool
    reused: bool = False
    validation: Optional[ValidationReport] = None
    message: str = ""

    def as_dict(self) -> Dict[str, Any]:
        data = {
            "source_id": self.source_id,
            "state": self.state.value,
            "persisted": self.persisted,
            "reused": self.reused,
            "detected_format": self.rule_set.format_id,
            "confidence": self.rule_set.confidence,
            "fields": sorted(self.rule_set.rules),
            "message": self.message,
        }
        if self.validation is not None:
            data["validation"] = self.validation.as_dict()
        return data


class ExtractionOrchestrator:
    def __init__(
        self,
        store: RuleStore,
        settings: Optional[EngineSettings] = None,
        catalog: FormatCatalog = DEFAULT_CATALOG,
        max_diagnostics: int = MAX_DIAGNOSTICS,
    ):
        self.store = store
        self.max_diagnostics = max(1, max_diagnostics)
        self.settings = settings or EngineSettings()
        self.catalog = catalog
        self.applier = RuleApplier(catalog)
        self.learner = PatternLearner(catalog, self.applier, max_labels=self.settings.max_labels)
        self.html_extractor = HtmlListExtractor(self.settings, catalog)
        self.xml_extractor = XmlRuleExtractor(catalog)
        # Low-confidence results are reported, never stored; oldest evicted first.
        self._diagnostics: "OrderedDict[str, ExtractionRuleSet]" = OrderedDict()

    # ---- rule-set lifecycle -------------------------------------------------

    def load_rules(self, source_id: str) -> Optional[ExtractionRuleSet]:
        """Stored rule set for ``source_id``; malformed documents count as absent."""
        try:
            return self.store.load(source_id)
        except RuleSetFormatError as e:
            logger.warning(f"Ignoring malformed rule set for {source_id}: {e}")
            return None

    def is_usable(self, rule_set: Optional[ExtractionRuleSet]) -> bool:
        if rule_set is None or not rule_set.enabled:
            return False
        if rule_set.confidence < self.settings.apply_threshold:
            return False
        return bool(rule_set.format_id or rule_set.rules)

    def state(self, source_id: str) -> SourceState:
        rule_set = self.load_rules(source_id)
        if rule_set is not None and rule_set.confidence >= self.settings.save_threshold:
            return SourceState.PERSISTED
        if source_id in self._diagnostics:
            return SourceState.LEARNED_LOW_CONFIDENCE
        return SourceState.NO_RULES

    def diagnostics(self, source_id: str) -> Optional[ExtractionRuleSet]:
        return self._diagnostics.get(source_id)

    def _remember(self, source_id: str, rule_set: ExtractionRuleSet) -> None:
        self._diagnostics.pop(source_id, None)
        self._diagnostics[source_id] = rule_set
        while len(self._diagnostics) > self.max_diagnostics:
            self._diagnostics.popitem(last=False)

    def _commit(
        self,
        source_id: str,
        rule_set: ExtractionRuleSet,
        validation: Optional[ValidationReport],
        what: str,
        detail: str = "",
    ) -> LearningOutcome:
        if rule_set.confidence >= self.settings.save_threshold:
            self.store.save(source_id, rule_set)
            self._diagnostics.pop(source_id, None)
            logger.info(f"Saved {what} for {source_id} ({rule_set.format_id}, confidence={rule_set.confidence})")
            return LearningOutcome(
                source_id=source_id,
                state=SourceState.PERSISTED,
                rule_set=rule_set,
                persisted=True,
                validation=validation,
                message=f"{what} saved",
            )
        if rule_set.format_id is not None:
            self._remember(source_id, rule_set)
        logger.info(
            f"Not saving {what} for {source_id}: confidence {rule_set.confidence} "
            f"below {self.settings.save_threshold}"
        )
        return LearningOutcome(
            source_id=source_id,
            state=self.state(source_id),
            rule_set=rule_set,
            persisted=False,
            validation=validation,
            message=detail or ("low_confidence" if rule_set.format_id else "no_format_detected"),
        )

    def learn(self, source_id: str, samples: Sequence[str], force: bool = False) -> LearningOutcome:
        """Learn free-text rules for a source from sample summaries.

        An existing rule set at or above the save threshold is reused unless
        ``force`` is set. A new rule set is stored only when its confidence
        reaches the save threshold; otherwise stored state is left untouched.
        """
        if not force:
            existing = self.load_rules(source_id)
            if existing is not None and existing.confidence >= self.settings.save_threshold:
                logger.debug(f"Reusing stored rule set for {source_id}")
                return LearningOutcome(
                    source_id=source_id,
                    state=SourceState.PERSISTED,
                    rule_set=existing,
                    persisted=True,
                    reused=True,
                    message="existing",
                )
        result = self.learner.learn(samples)
        return self._commit(source_id, result.rule_set, result.validation, "rule set")

    def register_selector_config(
        self,
        source_id: str,
        config: SelectorConfig,
        sample_html: Union[str, bytes],
    ) -> LearningOutcome:
        """Validate an AI-authored selector config against a sample page.

        Confidence is the share of matched containers that yield a title.

        Raises:
            SelectorSyntaxError: if a selector is outside the supported grammar.
        """
        result = self.html_extractor.extract(sample_html, config)
        confidence = len(result.records) / result.containers_found if result.containers_found else 0.0
        rule_set = ExtractionRuleSet(
            format_id=HTML_LIST_FORMAT,
            confidence=round(confidence, 3),
            source=PatternSource.AI_GENERATED,
            selector_config=config,
        )
        return self._commit(source_id, rule_set, None, "selector config", detail=result.message)

    def register_feed_config(
        self,
        source_id: str,
        feed_config: FeedConfig,
        rules: Mapping[str, Rule],
        sample_xml: Union[str, bytes],
    ) -> LearningOutcome:
        """Validate an AI-authored feed field map against a sample feed.

        Confidence is the share of feed items that yield a title.
        """
        root = parse_xml(sample_xml)
        items = list(iter_feed_items(root, feed_config))
        titled = sum(1 for item in items if self.xml_extractor.extract(item, rules, feed_config) is not None)
        confidence = titled / len(items) if items else 0.0
        rule_set = ExtractionRuleSet(
            format_id=XML_FEED_FORMAT,
            confidence=round(confidence, 3),
            rules=rules,
            source=PatternSource.AI_GENERATED,
            feed_config=feed_config,
        )
        detail = f"{titled} of {len(items)} feed items yielded a title"
        return self._commit(source_id, rule_set, None, "feed field map", detail=detail)

    def set_enabled(self, source_id: str, enabled: bool) -> bool:
        rule_set = self.load_rules(source_id)
        if rule_set is None:
            return False
        self.store.save(source_id, rule_set.with_enabled(enabled))
        logger.info(f"{'Enabled' if enabled else 'Disabled'} rule set for {source_id}")
        return True

    def clear_rules(self, source_id: str) -> bool:
        self._diagnostics.pop(source_id, None)
        removed = self.store.delete(source_id)
        if removed:
            logger.info(f"Cleared rule set for {source_id}")
        return removed

    # ---- extraction ---------------------------------------------------------

    def extract_text(self, source_id: str, text: Optional[str], raw: Optional[Mapping[str, Any]] = None) -> ExtractedRecord:
        """Best-effort extraction from one item's summary/description.

        Stored rules first (when usable), then quick detection, then an empty
        record. ``raw`` fields already known to the caller fill any gaps.
        """
        if not text or not text.strip():
            return ExtractedRecord().merged_with(raw)
        record = ExtractedRecord()
        rule_set = self.load_rules(source_id)
        if self.is_usable(rule_set) and rule_set.format_id not in (HTML_LIST_FORMAT, XML_FEED_FORMAT):
            if rule_set.rules:
                record = self.applier.apply(text, rule_set.rules)
            else:
                record = self.applier.extract_with_format(text, rule_set.format_id)
            if not record.is_empty():
                logger.debug(f"Extracted {sorted(record.as_dict())} for {source_id} with stored rules")
        if record.is_empty():
            format_id = self.learner.quick_detect(text)
            if format_id:
                record = self.applier.extract_with_format(text, format_id)
                if not record.is_empty():
                    logger.debug(f"Extracted {sorted(record.as_dict())} for {source_id} with quick detection ({format_id})")
        return record.merged_with(raw)

    def batch_extract(
        self,
        source_id: str,
        texts: Sequence[Optional[str]],
        raws: Optional[Sequence[Optional[Mapping[str, Any]]]] = None,
    ) -> List[ExtractedRecord]:
        raws = list(raws) if raws is not None else []
        return [
            self.extract_text(source_id, text, raws[i] if i < len(raws) else None)
            for i, text in enumerate(texts)
        ]

    def extract_html(self, source_id: str, html: Union[str, bytes], base_url: Optional[str] = None) -> Optional[HtmlListResult]:
        """Apply the stored selector config; None when the source has none usable."""
        rule_set = self.load_rules(source_id)
        if not self.is_usable(rule_set) or rule_set.selector_config is None:
            logger.info(f"No usable selector config for {source_id}")
            return None
        config = rule_set.selector_config
        if base_url:
            config = SelectorConfig.from_dict(config.to_dict(), base_url=base_url)
        return self.html_extractor.extract(html, config)

    def extract_feed(self, source_id: str, xml: Union[str, bytes]) -> List[ExtractedRecord]:
        """Extract every feed item, falling back to the simple parser per item."""
        fallback_entries = parse_feed(xml)
        rule_set = self.load_rules(source_id)
        if not self.is_usable(rule_set) or rule_set.feed_config is None:
            records = [parse_entry(entry) for entry in fallback_entries]
            return [r for r in records if r is not None]

        items = list(iter_feed_items(parse_xml(xml), rule_set.feed_config))
        if not items:
            logger.warning(f"Feed field map for {source_id} matched no items; using the simple parser")
            records = [parse_entry(entry) for entry in fallback_entries]
            return [r for r in records if r is not None]
        records: List[ExtractedRecord] = []
        fallbacks = 0
        for index, item in enumerate(items):
            record = self.xml_extractor.extract(item, rule_set.rules, rule_set.feed_config)
            if record is None and index < len(fallback_entries):
                record = parse_entry(fallback_entries[index])
                fallbacks += 1
            if record is not None:
                records.append(record)
        if fallbacks:
            logger.info(f"{fallbacks} feed items for {source_id} used the simple parser")
        return records
