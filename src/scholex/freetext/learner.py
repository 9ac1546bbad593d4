"""Learn how a source embeds metadata in free text.

Given a handful of summaries/descriptions from one source, the learner
picks the dominant embedding format, synthesises one rule per recognised
field, validates the rules against the same samples and scores the result.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..catalog import BRACKET_LABEL, CJK_BRACKET, COLON_LABEL, DEFAULT_CATALOG, HTML_TAG, FormatCatalog
from ..config import MAX_FREQUENT_LABELS
from ..normalize import decode_entities
from ..patterns import safe_compile
from ..rules import ExtractionRuleSet, PatternSource, Rule, clamp_confidence
from .applier import RuleApplier
from .builders import class_presence_pattern, doi_rule_for_format, doi_value_rule, html_rule, label_rule

logger = logging.getLogger(__name__)

IMPORTANT_FIELDS = ("doi", "title", "authors")


@dataclass(frozen=True)
class FormatHypothesis:
    format_id: Optional[str]
    confidence: float
    label_frequencies: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))


@dataclass(frozen=True)
class ValidationReport:
    total_samples: int
    successful_extractions: int
    field_hit_rates: Mapping[str, float]

    @property
    def extraction_rate(self) -> float:
        if not self.total_samples:
            return 0.0
        return self.successful_extractions / self.total_samples

    def as_dict(self) -> Dict[str, Any]:
        return {
            "total_samples": self.total_samples,
            "successful_extractions": self.successful_extractions,
            "field_success_rates": dict(self.field_hit_rates),
        }


@dataclass(frozen=True)
class DetectionResult:
    hypothesis: FormatHypothesis
    rule_set: ExtractionRuleSet
    validation: Optional[ValidationReport] = None

    @property
    def format_id(self) -> Optional[str]:
        return self.rule_set.format_id

    @property
    def confidence(self) -> float:
        return self.rule_set.confidence

    @property
    def patterns(self) -> Mapping[str, Rule]:
        return self.rule_set.rules

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "detected_format": self.format_id,
            "confidence": self.confidence,
            "patterns": {name: rule.to_dict() for name, rule in self.patterns.items()},
            "labels": dict(self.rule_set.labels),
        }
        if self.validation is not None:
            data["validation"] = self.validation.as_dict()
        return data


def empty_result() -> DetectionResult:
    return DetectionResult(
        hypothesis=FormatHypothesis(format_id=None, confidence=0.0),
        rule_set=ExtractionRuleSet.empty(),
    )


def prepare_samples(samples: Sequence[str]) -> List[str]:
    """Drop blank samples and decode HTML entities in the rest."""
    return [decode_entities(s) for s in samples if s and s.strip()]


def rank_labels(counts: Mapping[str, int]) -> List[Tuple[str, int]]:
    # sorted() is stable: equal counts keep first-seen order.
    return sorted(counts.items(), key=lambda kv: -kv[1])


class PatternLearner:
    def __init__(
        self,
        catalog: FormatCatalog = DEFAULT_CATALOG,
        applier: Optional[RuleApplier] = None,
        max_labels: int = MAX_FREQUENT_LABELS,
    ):
        self.catalog = catalog
        self.applier = applier or RuleApplier(catalog)
        self.max_labels = max_labels

    def learn(self, samples: Sequence[str]) -> DetectionResult:
        samples = prepare_samples(samples)
        if not samples:
            return empty_result()

        format_id, format_confidence = self.detect_format(samples)
        if format_id is None:
            logger.info(f"No embedding format detected in {len(samples)} samples")
            return empty_result()

        label_counts = self.collect_labels(format_id, samples)
        ranked = rank_labels(label_counts)
        hypothesis = FormatHypothesis(
            format_id=format_id,
            confidence=format_confidence,
            label_frequencies=MappingProxyType(dict(ranked[: self.max_labels])),
        )
        rules = self.synthesize_rules(format_id, ranked, samples)
        validation = self.validate(rules, samples)
        confidence = final_confidence(format_confidence, validation)
        logger.info(
            f"Learned {format_id} rules for fields {sorted(rules)} "
            f"(format={format_confidence:.3f}, extraction={validation.extraction_rate:.3f}, final={confidence})"
        )
        rule_set = ExtractionRuleSet(
            format_id=format_id,
            confidence=confidence,
            rules=rules,
            labels=hypothesis.label_frequencies,
            source=PatternSource.AUTO_DETECTED,
        )
        return DetectionResult(hypothesis=hypothesis, rule_set=rule_set, validation=validation)

    def detect_format(self, samples: Sequence[str]) -> Tuple[Optional[str], float]:
        """Return the format with the most matches summed over all samples."""
        totals: Counter = Counter()
        for sample in samples:
            for format_id, pattern in self.catalog.detection_patterns:
                totals[format_id] += len(pattern.findall(sample))
        best_id: Optional[str] = None
        best_total = 0
        for format_id, _ in self.catalog.detection_patterns:
            if totals[format_id] > best_total:
                best_id, best_total = format_id, totals[format_id]
        if best_id is None:
            return None, 0.0
        logger.debug(f"Format match totals: {dict(totals)}")
        return best_id, min(1.0, best_total / (2 * len(samples)))

    def collect_labels(self, format_id: str, samples: Sequence[str]) -> Dict[str, int]:
        pattern = self.catalog.label_patterns.get(format_id)
        counts: Dict[str, int] = {}
        if pattern is None:
            return counts
        for sample in samples:
            for label in pattern.findall(sample):
                label = label.strip()
                if label:
                    counts[label] = counts.get(label, 0) + 1
        return counts

    def synthesize_rules(
        self,
        format_id: str,
        ranked_labels: Sequence[Tuple[str, int]],
        samples: Sequence[str],
    ) -> Dict[str, Rule]:
        rules: Dict[str, Rule] = {}
        if format_id in (BRACKET_LABEL, CJK_BRACKET, COLON_LABEL):
            separator = self.catalog.author_separator_hints.get(format_id)
            for label, _count in ranked_labels:
                field_name = self.catalog.match_label_to_field(label)
                if not field_name or field_name in rules:
                    continue
                rules[field_name] = label_rule(
                    format_id, label, separator=separator if field_name == "authors" else None
                )
        elif format_id == HTML_TAG:
            joined = "\n".join(samples)
            for field_name, hints in self.catalog.html_class_hints:
                presence = safe_compile(class_presence_pattern(hints), re.IGNORECASE)
                if presence is not None and presence.search(joined):
                    rules[field_name] = html_rule(hints)

        if "doi" in rules:
            rules["doi"] = replace(rules["doi"], fallback=doi_value_rule("raw", self.catalog))
        else:
            rules["doi"] = doi_rule_for_format(format_id, self.catalog)
        return rules

    def validate(self, rules: Mapping[str, Rule], samples: Sequence[str]) -> ValidationReport:
        successes = 0
        hits: Dict[str, int] = {}
        for sample in samples:
            record = self.applier.apply(sample, rules)
            extracted = record.as_dict()
            if not extracted:
                continue
            successes += 1
            for field_name in extracted:
                hits[field_name] = hits.get(field_name, 0) + 1
        total = len(samples)
        return ValidationReport(
            total_samples=total,
            successful_extractions=successes,
            field_hit_rates=MappingProxyType({k: v / total for k, v in hits.items()}),
        )

    def quick_detect(self, text: str) -> Optional[str]:
        """First format whose detection pattern matches ``text`` (no rules)."""
        text = decode_entities(text or "")
        if not text.strip():
            return None
        for format_id, pattern in self.catalog.detection_patterns:
            if pattern.search(text):
                return format_id
        return None


def final_confidence(format_confidence: float, validation: ValidationReport) -> float:
    if not validation.total_samples:
        return 0.0
    rates = validation.field_hit_rates
    observed = [rates[f] for f in IMPORTANT_FIELDS if f in rates]
    important = sum(observed) / len(observed) if observed else 0.0
    score = 0.3 * format_confidence + 0.3 * validation.extraction_rate + 0.4 * important
    return clamp_confidence(round(min(1.0, score), 3))
