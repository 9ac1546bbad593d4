"""Static knowledge base for free-text metadata extraction.

Everything here is immutable: the catalog is built once (``DEFAULT_CATALOG``)
and passed by reference to the learner, the applier and the extractors.
Tuple order is meaningful throughout (detection order, DOI fallback chain,
author separator order, label dictionary order).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional, Pattern, Tuple


BRACKET_LABEL = "bracket_label"
CJK_BRACKET = "cjk_bracket"
COLON_LABEL = "colon_label"
HTML_TAG = "html_tag"

FORMAT_IDS = (BRACKET_LABEL, CJK_BRACKET, COLON_LABEL, HTML_TAG)

RECORD_FIELDS = (
    "title",
    "authors",
    "doi",
    "abstract",
    "published_date",
    "url",
    "volume",
    "issue",
    "pages",
    "keywords",
)

# Word characters in Python's re are Unicode-aware, so \w already covers
# Han, Hiragana and Katakana.
_COLON_LABEL_CHARS = r"\w"

DOI_CORE = r"10\.\d{4,}/"
DOI_RESOLVER = r"(?:https?://)?(?:dx\.)?doi\.org/"

_MONTHS = (
    r"Jan(?:uary)?|Feb(?:ruary)?|Mar(?:ch)?|Apr(?:il)?|May|Jun(?:e)?|Jul(?:y)?"
    r"|Aug(?:ust)?|Sep(?:t(?:ember)?)?|Oct(?:ober)?|Nov(?:ember)?|Dec(?:ember)?"
)


@dataclass(frozen=True)
class FormatCatalog:
    """Detection patterns, label dictionary and value pattern families."""

    detection_patterns: Tuple[Tuple[str, Pattern[str]], ...]
    label_patterns: Mapping[str, Pattern[str]]
    label_variants: Tuple[Tuple[str, Tuple[str, ...]], ...]
    doi_patterns: Tuple[Tuple[str, Pattern[str]], ...]
    date_patterns: Tuple[Tuple[str, Pattern[str]], ...]
    author_separators: Tuple[Pattern[str], ...]
    author_separator_hints: Mapping[str, str]
    html_class_hints: Tuple[Tuple[str, Tuple[str, ...]], ...]
    field_priority: Tuple[str, ...]

    def detection_pattern(self, format_id: str) -> Optional[Pattern[str]]:
        for name, pattern in self.detection_patterns:
            if name == format_id:
                return pattern
        return None

    def doi_pattern(self, name: str) -> Pattern[str]:
        for key, pattern in self.doi_patterns:
            if key == name:
                return pattern
        raise KeyError(name)

    def match_label_to_field(self, label: str) -> Optional[str]:
        """Map a label such as ``"Authors"`` or ``"著者"`` to a record field.

        Case-insensitive exact matches are tried over the whole dictionary
        first, then case-insensitive substring matches. The first field in
        dictionary order wins.
        """
        needle = label.strip().casefold()
        if not needle:
            return None
        for field_name, variants in self.label_variants:
            if any(needle == v.casefold() for v in variants):
                return field_name
        for field_name, variants in self.label_variants:
            if any(v.casefold() in needle for v in variants):
                return field_name
        return None


def build_default_catalog() -> FormatCatalog:
    detection = (
        (BRACKET_LABEL, re.compile(r"\[\s*[^\[\]]+\s*\]")),
        (CJK_BRACKET, re.compile(r"【[^【】]+】")),
        (COLON_LABEL, re.compile(rf"(?:^|\s){_COLON_LABEL_CHARS}+\s*[:：]\s*")),
        (HTML_TAG, re.compile(r"<[a-z][a-z0-9]*[^>]*>.*?</[a-z][a-z0-9]*>", re.IGNORECASE | re.DOTALL)),
    )
    label_patterns = {
        BRACKET_LABEL: re.compile(r"\[\s*([^\[\]]+?)\s*\]"),
        CJK_BRACKET: re.compile(r"【\s*([^【】]+?)\s*】"),
        COLON_LABEL: re.compile(rf"({_COLON_LABEL_CHARS}+)\s*[:：]"),
    }
    label_variants = (
        ("title", (
            "Title", "タイトル", "題目", "題名", "标题", "Titre", "Titel",
            "論文タイトル", "論文題目", "Paper Title", "Article Title",
        )),
        ("authors", (
            "Author", "Authors", "著者", "作者", "執筆者", "著者名",
            "Auteur", "Autor", "Autoren", "By",
        )),
        ("doi", ("DOI", "Digital Object Identifier")),
        ("published_date", (
            "Date", "Published", "Publication Date", "Pub Date",
            "公開日", "発行日", "出版日", "掲載日",
            "Published Date", "Release Date",
        )),
        ("abstract", (
            "Abstract", "概要", "アブストラクト", "要旨", "摘要",
            "Summary", "Synopsis", "Description",
        )),
        ("volume", ("Volume", "Vol", "巻", "巻号")),
        ("issue", ("Issue", "No", "Number", "号")),
        ("pages", ("Pages", "Page", "pp", "ページ", "頁")),
        ("keywords", ("Keywords", "Keyword", "キーワード", "関連キーワード", "Tags")),
    )
    doi_value = rf"({DOI_CORE}"
    doi_patterns = (
        ("bracket", re.compile(rf"\[\s*DOI\s*\]\s*(?:{DOI_RESOLVER})?{doi_value}[^\s\])]+)", re.IGNORECASE)),
        ("cjk_bracket", re.compile(rf"【\s*DOI\s*】\s*(?:{DOI_RESOLVER})?{doi_value}[^\s】]+)", re.IGNORECASE)),
        ("colon", re.compile(rf"DOI\s*[:：]\s*(?:{DOI_RESOLVER})?{doi_value}[^\s<>\"']+)", re.IGNORECASE)),
        ("url", re.compile(rf"{DOI_RESOLVER}{doi_value}[^\s<>\"']+)", re.IGNORECASE)),
        ("raw", re.compile(rf"\b{doi_value}[^\s<>\"']+)")),
    )
    date_patterns = (
        ("iso", re.compile(r"(\d{4})-(\d{1,2})-(\d{1,2})")),
        ("slash", re.compile(r"(\d{4})/(\d{1,2})/(\d{1,2})")),
        ("jp", re.compile(r"(\d{4})\s*年\s*(\d{1,2})\s*月\s*(\d{1,2})\s*日")),
        ("en_short", re.compile(rf"\b(\d{{1,2}})\s+({_MONTHS})\.?\s+(\d{{4}})\b", re.IGNORECASE)),
        ("en_long", re.compile(rf"\b({_MONTHS})\.?\s+(\d{{1,2}}),?\s+(\d{{4}})\b", re.IGNORECASE)),
    )
    author_separators = (
        re.compile(r"\s*[,，]\s*"),
        re.compile(r"\s*[;；]\s*"),
        re.compile(r"\s*・\s*"),
        re.compile(r"\s+and\s+", re.IGNORECASE),
        re.compile(r"\s*&\s*"),
    )
    separator_hints = {
        BRACKET_LABEL: r"[,，]",
        CJK_BRACKET: r"[,，・]",
        COLON_LABEL: r"[,，;；]",
    }
    html_class_hints = (
        ("title", ("title", "article-title")),
        ("authors", ("author", "authors", "creator")),
        ("abstract", ("abstract", "summary")),
        ("doi", ("doi",)),
    )
    field_priority = (
        "doi",
        "title",
        "authors",
        "published_date",
        "abstract",
        "volume",
        "issue",
        "pages",
        "keywords",
    )
    return FormatCatalog(
        detection_patterns=detection,
        label_patterns=MappingProxyType(label_patterns),
        label_variants=label_variants,
        doi_patterns=doi_patterns,
        date_patterns=date_patterns,
        author_separators=author_separators,
        author_separator_hints=MappingProxyType(separator_hints),
        html_class_hints=html_class_hints,
        field_priority=field_priority,
    )


DEFAULT_CATALOG = build_default_catalog()
