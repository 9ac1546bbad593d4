"""Data model: rules, rule sets, extracted records and source configs.

Rule sets are immutable values. Re-learning produces a new instance and the
orchestrator swaps it into the store; nothing mutates a rule set in place.
The dict shape produced by ``rule_set_to_dict`` is what ``RuleStore``
implementations persist.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Pattern, Tuple

from dateutil.parser import isoparse

from .errors import ConfigurationError, RuleSetFormatError
from .patterns import flags_from_letters, safe_compile


class RuleType(str, Enum):
    BRACKET_LABEL = "bracket_label"
    CJK_BRACKET = "cjk_bracket"
    COLON_LABEL = "colon_label"
    HTML_TAG = "html_tag"
    VALUE_PATTERN = "value_pattern"
    XML_FIELD = "xml_field"


class PatternSource(str, Enum):
    AUTO_DETECTED = "auto_detected"
    AI_GENERATED = "ai_generated"


HTML_LIST_FORMAT = "html_list"
XML_FEED_FORMAT = "xml_feed"


@dataclass(frozen=True)
class Rule:
    """A single-field extraction rule.

    ``label`` holds the label text for label rules and the pipe-delimited
    element candidates for XML rules. ``pattern`` is regex source produced by
    the safe pattern builder (or supplied by a trusted config).
    """

    type: RuleType
    label: Optional[str] = None
    pattern: Optional[str] = None
    flags: str = ""
    separator: Optional[str] = None
    date_format: Optional[str] = None
    namespace: Optional[str] = None
    attribute: Optional[str] = None
    child_element: Optional[str] = None
    fallback: Optional["Rule"] = None

    def matcher(self) -> Optional[Pattern[str]]:
        if not self.pattern:
            return None
        return safe_compile(self.pattern, flags_from_letters(self.flags))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type.value}
        for f in fields(self):
            if f.name in ("type", "fallback"):
                continue
            value = getattr(self, f.name)
            if value not in (None, ""):
                data["regex" if f.name == "pattern" else f.name] = value
        if self.fallback is not None:
            data["fallback"] = self.fallback.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Rule":
        if not isinstance(data, Mapping):
            raise RuleSetFormatError(f"Rule descriptor must be a mapping, got {type(data).__name__}")
        try:
            rule_type = RuleType(data.get("type"))
        except ValueError:
            raise RuleSetFormatError(f"Unknown rule type: {data.get('type')!r}")
        fallback = data.get("fallback")
        kwargs: Dict[str, Any] = {}
        for key in ("label", "flags", "separator", "date_format", "namespace", "attribute", "child_element"):
            value = data.get(key)
            if value is not None and not isinstance(value, str):
                raise RuleSetFormatError(f"Rule field {key!r} must be a string")
            if value is not None:
                kwargs[key] = value
        pattern = data.get("regex", data.get("pattern"))
        if pattern is not None and not isinstance(pattern, str):
            raise RuleSetFormatError("Rule regex must be a string")
        return cls(
            type=rule_type,
            pattern=pattern,
            fallback=cls.from_dict(fallback) if fallback is not None else None,
            **kwargs,
        )


@dataclass(frozen=True)
class ExtractedRecord:
    """Best-effort paper metadata. Absent fields are None (authors: empty)."""

    title: Optional[str] = None
    authors: Tuple[str, ...] = ()
    doi: Optional[str] = None
    abstract: Optional[str] = None
    published_date: Optional[str] = None
    url: Optional[str] = None
    volume: Optional[str] = None
    issue: Optional[str] = None
    pages: Optional[str] = None
    keywords: Optional[str] = None

    @classmethod
    def from_fields(cls, values: Mapping[str, Any]) -> "ExtractedRecord":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in values.items() if k in known and v not in (None, "", [], ())}
        if "authors" in kwargs:
            kwargs["authors"] = tuple(kwargs["authors"])
        return cls(**kwargs)

    def as_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value in (None, "", ()):
                continue
            out[f.name] = list(value) if f.name == "authors" else value
        return out

    def is_empty(self) -> bool:
        return not self.as_dict()

    def merged_with(self, raw: Optional[Mapping[str, Any]]) -> "ExtractedRecord":
        """Fill missing fields from caller-supplied raw fields."""
        if not raw:
            return self
        fallback = ExtractedRecord.from_fields(raw)
        updates = {}
        for f in fields(self):
            if getattr(self, f.name) in (None, "", ()) and getattr(fallback, f.name) not in (None, "", ()):
                updates[f.name] = getattr(fallback, f.name)
        return replace(self, **updates) if updates else self


@dataclass(frozen=True)
class SelectorConfig:
    """CSS-like selectors describing one paper-list page layout."""

    paper_container: str
    title: str
    base_url: str = ""
    title_attr: str = "textContent"
    url: Optional[str] = None
    url_attr: str = "href"
    authors: Optional[str] = None
    authors_attr: str = "textContent"
    abstract: Optional[str] = None
    date: Optional[str] = None
    date_format: Optional[str] = None
    doi: Optional[str] = None
    doi_attr: str = "textContent"
    doi_pattern: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], base_url: Optional[str] = None) -> "SelectorConfig":
        """Build and validate a selector config.

        Raises:
            ConfigurationError: for a missing required selector, a non-string
                field, or a selector outside the supported grammar
                (``SelectorSyntaxError``).
        """
        if not isinstance(data, Mapping):
            raise ConfigurationError("Selector config must be a JSON object")
        for required in ("paper_container", "title"):
            value = data.get(required)
            if not isinstance(value, str) or not value.strip():
                raise ConfigurationError(f"Selector config is missing '{required}'")
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            value = data.get(f.name)
            if value is None or value == "":
                continue
            if not isinstance(value, str):
                raise ConfigurationError(f"Selector config field '{f.name}' must be a string")
            kwargs[f.name] = value.strip()
        if base_url:
            kwargs["base_url"] = base_url
        config = cls(**kwargs)
        config.validate()
        return config

    def validate(self) -> None:
        # html_list imports this module
        from .extractors.html_list import compile_config

        compile_config(self)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass(frozen=True)
class SummaryParsing:
    enabled: bool = False
    source_element: str = "description|summary"
    patterns: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "SummaryParsing":
        if not data:
            return cls()
        if not isinstance(data, Mapping):
            raise ConfigurationError("summary_parsing must be an object")
        patterns = data.get("patterns") or {}
        if not isinstance(patterns, Mapping):
            raise ConfigurationError("summary_parsing.patterns must be an object")
        clean = {k: v for k, v in patterns.items() if isinstance(v, str) and v.strip()}
        return cls(
            enabled=bool(data.get("enabled", False)),
            source_element=str(data.get("source_element") or "description|summary"),
            patterns=MappingProxyType(clean),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "enabled": self.enabled,
            "source_element": self.source_element,
            "patterns": dict(self.patterns),
        }


@dataclass(frozen=True)
class FeedConfig:
    """Item layout and namespaces of one XML feed."""

    feed_type: str = "rss2.0"
    item_element: str = "item"
    namespaces: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    summary_parsing: SummaryParsing = field(default_factory=SummaryParsing)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FeedConfig":
        namespaces = data.get("namespaces") or {}
        if not isinstance(namespaces, Mapping):
            raise ConfigurationError("namespaces must be an object")
        return cls(
            feed_type=str(data.get("feed_type") or "rss2.0"),
            item_element=str(data.get("item_element") or "item"),
            namespaces=MappingProxyType({str(k): str(v) for k, v in namespaces.items() if v}),
            summary_parsing=SummaryParsing.from_dict(data.get("summary_parsing")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "feed_type": self.feed_type,
            "item_element": self.item_element,
            "namespaces": dict(self.namespaces),
            "summary_parsing": self.summary_parsing.to_dict(),
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ExtractionRuleSet:
    format_id: Optional[str]
    confidence: float
    rules: Mapping[str, Rule] = field(default_factory=lambda: MappingProxyType({}))
    labels: Mapping[str, int] = field(default_factory=lambda: MappingProxyType({}))
    source: PatternSource = PatternSource.AUTO_DETECTED
    created_at: datetime = field(default_factory=_utcnow)
    enabled: bool = True
    selector_config: Optional[SelectorConfig] = None
    feed_config: Optional[FeedConfig] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", clamp_confidence(self.confidence))
        if not isinstance(self.rules, MappingProxyType):
            object.__setattr__(self, "rules", MappingProxyType(dict(self.rules)))
        if not isinstance(self.labels, MappingProxyType):
            object.__setattr__(self, "labels", MappingProxyType(dict(self.labels)))

    @classmethod
    def empty(cls) -> "ExtractionRuleSet":
        return cls(format_id=None, confidence=0.0)

    def with_enabled(self, enabled: bool) -> "ExtractionRuleSet":
        return replace(self, enabled=enabled)


def clamp_confidence(value: Any) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    return max(0.0, min(1.0, value))


def rule_set_to_dict(rule_set: ExtractionRuleSet) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "enabled": rule_set.enabled,
        "detected_format": rule_set.format_id,
        "confidence": rule_set.confidence,
        "detected_at": rule_set.created_at.isoformat(),
        "patterns": {name: rule.to_dict() for name, rule in rule_set.rules.items()},
        "labels": dict(rule_set.labels),
        "pattern_source": rule_set.source.value,
    }
    if rule_set.selector_config is not None:
        data["selectors"] = rule_set.selector_config.to_dict()
    if rule_set.feed_config is not None:
        data["feed"] = rule_set.feed_config.to_dict()
    return data


def rule_set_from_dict(data: Any) -> ExtractionRuleSet:
    """Rebuild a rule set from its persisted shape.

    Raises:
        RuleSetFormatError: if ``data`` does not have the persisted shape.
    """
    if not isinstance(data, Mapping):
        raise RuleSetFormatError("Persisted rule set must be a JSON object")
    patterns = data.get("patterns") or {}
    labels = data.get("labels") or {}
    if not isinstance(patterns, Mapping) or not isinstance(labels, Mapping):
        raise RuleSetFormatError("'patterns' and 'labels' must be objects")
    detected_format = data.get("detected_format")
    if detected_format is not None and not isinstance(detected_format, str):
        raise RuleSetFormatError("'detected_format' must be a string or null")
    try:
        source = PatternSource(data.get("pattern_source", PatternSource.AUTO_DETECTED.value))
    except ValueError:
        raise RuleSetFormatError(f"Unknown pattern_source: {data.get('pattern_source')!r}")
    created_at = _utcnow()
    if data.get("detected_at"):
        try:
            created_at = isoparse(str(data["detected_at"]))
        except (ValueError, OverflowError):
            raise RuleSetFormatError(f"Invalid detected_at: {data['detected_at']!r}")
    confidence = data.get("confidence", 0.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise RuleSetFormatError("'confidence' must be a number")
    try:
        selector_config = SelectorConfig.from_dict(data["selectors"]) if data.get("selectors") else None
        feed_config = FeedConfig.from_dict(data["feed"]) if data.get("feed") else None
    except ConfigurationError as e:
        raise RuleSetFormatError(str(e))
    try:
        label_counts = {str(k): int(v) for k, v in labels.items()}
    except (TypeError, ValueError):
        raise RuleSetFormatError("Label counts must be integers")
    return ExtractionRuleSet(
        format_id=detected_format,
        confidence=confidence,
        rules={str(name): Rule.from_dict(rule) for name, rule in patterns.items()},
        labels=label_counts,
        source=source,
        created_at=created_at,
        enabled=bool(data.get("enabled", True)),
        selector_config=selector_config,
        feed_config=feed_config,
    )
