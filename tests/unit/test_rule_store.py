"""Unit tests for rule-set serialisation and the rule stores."""

import json
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from scholex.catalog import BRACKET_LABEL
from scholex.errors import RuleSetFormatError
from scholex.freetext.builders import doi_value_rule, label_rule
from scholex.rules import (
    HTML_LIST_FORMAT,
    XML_FEED_FORMAT,
    ExtractionRuleSet,
    FeedConfig,
    PatternSource,
    Rule,
    RuleType,
    SelectorConfig,
    rule_set_from_dict,
    rule_set_to_dict,
)
from scholex.store import InMemoryRuleStore, SqlRuleStore, create_sqlite_engine
from scholex.store.models import RuleSetRecord


def _learned_rule_set():
    return ExtractionRuleSet(
        format_id=BRACKET_LABEL,
        confidence=0.82,
        rules={
            "title": label_rule(BRACKET_LABEL, "Title"),
            "doi": replace(label_rule(BRACKET_LABEL, "DOI"), fallback=doi_value_rule("raw")),
        },
        labels={"Title": 3, "DOI": 2},
        created_at=datetime(2025, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
    )


@pytest.fixture
def sql_store(tmp_path):
    engine, SessionLocal = create_sqlite_engine(tmp_path / "rules.sqlite")
    return SqlRuleStore(engine, SessionLocal)


class TestSerialisation:
    def test_persisted_shape(self):
        data = rule_set_to_dict(_learned_rule_set())
        assert set(data) == {
            "enabled", "detected_format", "confidence", "detected_at", "patterns", "labels", "pattern_source",
        }
        assert data["detected_format"] == BRACKET_LABEL
        assert data["pattern_source"] == "auto_detected"
        assert data["patterns"]["title"]["type"] == "bracket_label"
        assert "regex" in data["patterns"]["title"]
        assert data["patterns"]["doi"]["fallback"]["type"] == "value_pattern"

    def test_restore(self):
        original = _learned_rule_set()
        restored = rule_set_from_dict(json.loads(json.dumps(rule_set_to_dict(original))))
        assert restored == original

    def test_ai_authored_configs_kept(self):
        rule_set = ExtractionRuleSet(
            format_id=HTML_LIST_FORMAT,
            confidence=0.9,
            source=PatternSource.AI_GENERATED,
            selector_config=SelectorConfig(paper_container="li", title="a", base_url="https://x.example/"),
        )
        data = rule_set_to_dict(rule_set)
        assert data["selectors"]["paper_container"] == "li"
        restored = rule_set_from_dict(data)
        assert restored.selector_config == rule_set.selector_config
        assert restored.source is PatternSource.AI_GENERATED

        feed_set = ExtractionRuleSet(
            format_id=XML_FEED_FORMAT,
            confidence=0.7,
            rules={"title": Rule(type=RuleType.XML_FIELD, label="title")},
            feed_config=FeedConfig(item_element="entry"),
        )
        assert rule_set_from_dict(rule_set_to_dict(feed_set)).feed_config.item_element == "entry"

    def test_utc_designator_in_detected_at(self):
        restored = rule_set_from_dict({"confidence": 0.8, "detected_at": "2024-05-01T08:30:00Z"})
        assert restored.created_at == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"patterns": ["title"]},
            {"patterns": {"title": {"type": "mystery"}}},
            {"patterns": {"title": "not a rule"}},
            {"confidence": "high"},
            {"pattern_source": "guessed"},
            {"detected_at": "yesterday"},
            {"labels": {"Title": "many"}},
            {"selectors": {"title": "a"}},
            {"selectors": {"paper_container": "li:first-child", "title": "a"}},
        ],
    )
    def test_malformed_documents_raise(self, data):
        with pytest.raises(RuleSetFormatError):
            rule_set_from_dict(data)

    def test_confidence_clamped(self):
        assert ExtractionRuleSet(format_id=None, confidence=3).confidence == 1.0
        assert ExtractionRuleSet(format_id=None, confidence=-1).confidence == 0.0
        assert ExtractionRuleSet(format_id=None, confidence=float("nan")).confidence == 0.0


class TestInMemoryRuleStore:
    def test_round_trip_and_delete(self):
        store = InMemoryRuleStore()
        assert store.load("src") is None
        store.save("src", _learned_rule_set())
        assert store.load("src") == _learned_rule_set()
        assert store.source_ids() == ["src"]
        assert store.delete("src")
        assert not store.delete("src")

    def test_corrupt_document_raises(self):
        store = InMemoryRuleStore()
        store.put_raw("src", "{not json")
        with pytest.raises(RuleSetFormatError):
            store.load("src")


class TestSqlRuleStore:
    def test_save_load_update(self, sql_store):
        rule_set = _learned_rule_set()
        sql_store.save("journal-a", rule_set)
        assert sql_store.load("journal-a") == rule_set
        sql_store.save("journal-a", rule_set.with_enabled(False))
        assert sql_store.load("journal-a").enabled is False
        assert sql_store.source_ids() == ["journal-a"]

    def test_summary_columns(self, sql_store):
        sql_store.save("journal-a", _learned_rule_set())
        with sql_store.SessionLocal() as session:
            row = session.get(RuleSetRecord, "journal-a")
            assert row.detected_format == BRACKET_LABEL
            assert row.confidence == 0.82
            assert row.pattern_source == "auto_detected"
            assert json.loads(row.payload)["labels"] == {"Title": 3, "DOI": 2}

    def test_delete(self, sql_store):
        sql_store.save("journal-a", _learned_rule_set())
        assert sql_store.delete("journal-a")
        assert sql_store.load("journal-a") is None
        assert not sql_store.delete("journal-a")

    def test_corrupt_payload_raises(self, sql_store):
        sql_store.put_raw("journal-b", "{not json")
        with pytest.raises(RuleSetFormatError):
            sql_store.load("journal-b")

    def test_persists_across_store_instances(self, tmp_path):
        path = tmp_path / "shared.sqlite"
        SqlRuleStore(*create_sqlite_engine(path)).save("journal-a", _learned_rule_set())
        assert SqlRuleStore(*create_sqlite_engine(path)).load("journal-a").confidence == 0.82

    def test_in_memory_database(self):
        store = SqlRuleStore(*create_sqlite_engine(":memory:"))
        store.save("journal-a", _learned_rule_set())
        assert store.load("journal-a") == _learned_rule_set()
