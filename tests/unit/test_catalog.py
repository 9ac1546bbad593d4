"""Unit tests for the format catalog and the safe pattern builder."""

import re
from dataclasses import FrozenInstanceError

import pytest

from scholex.catalog import (
    BRACKET_LABEL,
    CJK_BRACKET,
    COLON_LABEL,
    DEFAULT_CATALOG,
    FORMAT_IDS,
    HTML_TAG,
)
from scholex.patterns import Fragment, Literal, alternation, build_pattern, flags_from_letters, safe_compile


class TestLabelMatching:
    """Label text to record field mapping."""

    @pytest.mark.parametrize(
        "label,field",
        [
            ("Title", "title"),
            ("TITLE", "title"),
            ("authors", "authors"),
            ("著者", "authors"),
            ("タイトル", "title"),
            ("doi", "doi"),
            ("Publication Date", "published_date"),
            ("摘要", "abstract"),
            ("キーワード", "keywords"),
        ],
    )
    def test_exact_matches_ignore_case(self, label, field):
        assert DEFAULT_CATALOG.match_label_to_field(label) == field

    def test_substring_match_used_after_exact(self):
        assert DEFAULT_CATALOG.match_label_to_field("Corresponding Authors") == "authors"

    def test_variants_from_later_fields(self):
        assert DEFAULT_CATALOG.match_label_to_field("DATE") == "published_date"
        assert DEFAULT_CATALOG.match_label_to_field("vol") == "volume"
        assert DEFAULT_CATALOG.match_label_to_field("summary") == "abstract"

    def test_unknown_and_blank_labels(self):
        assert DEFAULT_CATALOG.match_label_to_field("Heading") is None
        assert DEFAULT_CATALOG.match_label_to_field("   ") is None


class TestCatalogShape:
    def test_detection_order(self):
        assert tuple(name for name, _ in DEFAULT_CATALOG.detection_patterns) == FORMAT_IDS
        assert FORMAT_IDS == (BRACKET_LABEL, CJK_BRACKET, COLON_LABEL, HTML_TAG)

    def test_doi_chain_order(self):
        names = [name for name, _ in DEFAULT_CATALOG.doi_patterns]
        assert names == ["bracket", "cjk_bracket", "colon", "url", "raw"]

    def test_doi_pattern_lookup(self):
        assert DEFAULT_CATALOG.doi_pattern("raw").search("see 10.1000/182 here")
        with pytest.raises(KeyError):
            DEFAULT_CATALOG.doi_pattern("missing")

    def test_catalog_is_immutable(self):
        with pytest.raises(FrozenInstanceError):
            DEFAULT_CATALOG.field_priority = ()
        with pytest.raises(TypeError):
            DEFAULT_CATALOG.label_patterns["new"] = re.compile("x")


class TestSafePatternBuilder:
    def test_literal_is_escaped(self):
        source = build_pattern(Fragment(r"\[\s*"), Literal("Title (.*)"), Fragment(r"\s*\]"))
        pattern = re.compile(source)
        assert pattern.search("[Title (.*)]")
        assert not pattern.search("[Title anything]")

    def test_alternation_escapes_words(self):
        pattern = re.compile(build_pattern(alternation("a.b", "c+d")))
        assert pattern.fullmatch("a.b")
        assert not pattern.fullmatch("axb")

    def test_rejects_plain_strings(self):
        with pytest.raises(TypeError):
            build_pattern("raw")

    def test_flags_from_letters(self):
        assert flags_from_letters("is") == re.IGNORECASE | re.DOTALL
        assert flags_from_letters("u") == 0
        assert flags_from_letters("") == 0

    def test_safe_compile_returns_none_for_bad_regex(self):
        assert safe_compile("(unclosed") is None
        assert safe_compile(r"\d+").match("42")
