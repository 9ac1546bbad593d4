"""Unit tests for applying rule maps to free text."""

from dataclasses import replace

import pytest

from scholex.catalog import BRACKET_LABEL, CJK_BRACKET, COLON_LABEL, HTML_TAG
from scholex.freetext import RuleApplier
from scholex.freetext.builders import doi_value_rule, html_rule, label_rule
from scholex.rules import Rule, RuleType


@pytest.fixture
def applier():
    return RuleApplier()


@pytest.fixture
def bracket_rules():
    return {
        "title": label_rule(BRACKET_LABEL, "Title"),
        "authors": label_rule(BRACKET_LABEL, "Authors", separator="[,，]"),
        "doi": replace(label_rule(BRACKET_LABEL, "DOI"), fallback=doi_value_rule("raw")),
    }


class TestLabelRules:
    def test_bracket_record(self, applier, bracket_rules):
        record = applier.apply("[Title] Deep Learning for X [Authors] A, B [DOI] 10.1000/182", bracket_rules)
        assert record.as_dict() == {"title": "Deep Learning for X", "authors": ["A", "B"], "doi": "10.1000/182"}

    def test_cjk_record(self, applier):
        rules = {
            "title": label_rule(CJK_BRACKET, "タイトル"),
            "authors": label_rule(CJK_BRACKET, "著者", separator="[,，・]"),
        }
        record = applier.apply("【タイトル】研究A【著者】田中，佐藤", rules)
        assert record.as_dict() == {"title": "研究A", "authors": ["田中", "佐藤"]}

    def test_colon_prose_mis_termination_is_limited_to_field(self, applier):
        rules = {
            "title": label_rule(COLON_LABEL, "Title"),
            "abstract": label_rule(COLON_LABEL, "Abstract"),
        }
        record = applier.apply("Title: Ratio 3:1 mixtures Abstract: We study mixtures.", rules)
        assert record.title == "Ratio"
        assert record.abstract == "We study mixtures."

    def test_entities_decoded(self, applier, bracket_rules):
        assert applier.apply("[Title] Fish &amp; Chips", bracket_rules).title == "Fish & Chips"

    def test_stored_regex_of_label_rule_is_ignored(self, applier):
        tampered = Rule(type=RuleType.BRACKET_LABEL, label="Title", pattern=".*", flags="s")
        record = applier.apply("[Title] Only This [Authors] Not This", {"title": tampered})
        assert record.title == "Only This"


class TestFailureIsolation:
    def test_malformed_rule_leaves_field_empty(self, applier, bracket_rules):
        rules = dict(bracket_rules, volume=Rule(type=RuleType.VALUE_PATTERN, pattern="(broken"))
        record = applier.apply("[Title] Still Works [DOI] 10.1000/1", rules)
        assert record.title == "Still Works"
        assert record.volume is None

    def test_doi_fallback_rule(self, applier, bracket_rules):
        record = applier.apply("[Title] X [DOI] pending [Link] https://doi.org/10.1000/5", bracket_rules)
        assert record.doi == "10.1000/5"

    def test_doi_chain_when_no_doi_rule(self, applier):
        rules = {"title": label_rule(BRACKET_LABEL, "Title")}
        record = applier.apply("[Title] X\nsee doi: 10.1000/7.", rules)
        assert record.doi == "10.1000/7"

    def test_empty_text(self, applier, bracket_rules):
        assert applier.apply("", bracket_rules).is_empty()


class TestHtmlRules:
    def test_class_content_with_nested_markup(self, applier):
        rules = {"title": html_rule(("title", "article-title"))}
        record = applier.apply('<p class="article-title">Hello <b>World</b></p>', rules)
        assert record.title == "Hello World"


class TestFormatExtraction:
    def test_first_occurrence_wins(self, applier):
        record = applier.extract_with_format("[Title] A [Title] B [Authors] X, Y", BRACKET_LABEL)
        assert record.title == "A"
        assert record.authors == ("X", "Y")

    def test_known_labels_override(self, applier):
        record = applier.extract_with_format("[Heading] Custom", BRACKET_LABEL, known_labels={"Heading": "title"})
        assert record.title == "Custom"

    def test_html_class_hints(self, applier):
        text = '<span class="title">T</span><span class="doi">10.1000/9</span>'
        record = applier.extract_with_format(text, HTML_TAG)
        assert record.title == "T"
        assert record.doi == "10.1000/9"

    def test_unknown_format_only_runs_doi_chain(self, applier):
        record = applier.extract_with_format("Title X https://doi.org/10.1000/3", "nonsense")
        assert record.as_dict() == {"doi": "10.1000/3"}


class TestRepeatability:
    @pytest.mark.parametrize(
        "text",
        [
            "[Title] Deep Learning for X [Authors] A, B [DOI] 10.1000/182",
            "[Title] X [DOI] pending [Link] https://doi.org/10.1000/5",
            "[Title] Fish &amp; Chips\nsee doi: 10.1000/7.",
            "no labels at all",
            "",
        ],
    )
    def test_same_record_on_every_application(self, applier, bracket_rules, text):
        first = applier.apply(text, bracket_rules)
        assert applier.apply(text, bracket_rules) == first
        assert RuleApplier().apply(text, bracket_rules) == first

    def test_format_extraction_repeatable(self, applier):
        text = "【タイトル】研究A【著者】田中，佐藤【DOI】10.5555/jp.1"
        assert applier.extract_with_format(text, CJK_BRACKET) == applier.extract_with_format(text, CJK_BRACKET)
