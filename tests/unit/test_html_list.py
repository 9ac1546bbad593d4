"""Unit tests for selector-driven extraction from paper list pages."""

import pytest

from scholex.config import EngineSettings
from scholex.errors import SelectorSyntaxError
from scholex.extractors.html_list import (
    STATUS_NO_CONTAINERS,
    STATUS_NO_TITLES,
    STATUS_OK,
    TRUNCATED_MARKER,
    HtmlListExtractor,
    clean_html_for_analysis,
    parse_html,
)
from scholex.rules import SelectorConfig


BASE_URL = "https://example.org/list/index.html"


def _config(**overrides):
    data = {
        "paper_container": "li.paper",
        "title": "a.title",
        "url": "a.title",
        "authors": ".authors",
        "date": ".date",
        "doi": "a.doi",
        "doi_attr": "href",
    }
    data.update(overrides)
    return SelectorConfig.from_dict(data, base_url=BASE_URL)


@pytest.fixture
def extractor(settings):
    return HtmlListExtractor(settings)


class TestListExtraction:
    def test_records_from_containers(self, extractor, list_page_html):
        result = extractor.extract(list_page_html, _config())
        assert result.ok
        assert result.status == STATUS_OK
        assert result.containers_found == 3
        assert result.skipped == 1
        first, second = result.records
        assert first.as_dict() == {
            "title": "First Paper",
            "authors": ["Alice", "Bob", "Carol"],
            "doi": "10.1234/first",
            "published_date": "2023-05-01",
            "url": "https://example.org/articles/1",
        }
        assert second.title == "Second Paper"
        assert second.published_date == "2021-03-12"

    def test_doi_from_url_when_no_doi_element(self, extractor, list_page_html):
        second = extractor.extract(list_page_html, _config()).records[1]
        assert second.url == "https://doi.org/10.5555/second"
        assert second.doi == "10.5555/second"

    def test_accepts_parsed_document(self, extractor, list_page_html):
        result = extractor.extract(parse_html(list_page_html), _config())
        assert len(result.records) == 2

    def test_configured_author_delimiters(self, list_page_html):
        extractor = HtmlListExtractor(EngineSettings(html_author_delimiters=r"\s*;\s*", db_url=None))
        first = extractor.extract(list_page_html, _config()).records[0]
        assert first.authors == ("Alice, Bob", "Carol")

    def test_doi_pattern_and_text_value(self, extractor):
        html = '<div class="row"><h3>Paper</h3><span class="doi-text">DOI 10.7777/abc</span></div>'
        config = SelectorConfig.from_dict(
            {"paper_container": ".row", "title": "h3", "doi": ".doi-text", "doi_pattern": r"DOI\s+(\S+)"}
        )
        assert extractor.extract(html, config).records[0].doi == "10.7777/abc"

    def test_implausible_generic_dates_dropped(self, extractor):
        html = '<div class="row"><h3>Old</h3><span class="when">1985</span></div>'
        config = SelectorConfig.from_dict({"paper_container": ".row", "title": "h3", "date": ".when"})
        record = extractor.extract(html, config).records[0]
        assert record.published_date is None


class TestFailureStatuses:
    def test_no_containers(self, extractor, list_page_html):
        result = extractor.extract(list_page_html, _config(paper_container="div.nothing"))
        assert result.status == STATUS_NO_CONTAINERS
        assert not result.ok
        assert result.records == ()
        assert result.message == "No paper containers found with selector: div.nothing"

    def test_no_titles(self, extractor, list_page_html):
        result = extractor.extract(list_page_html, _config(title=".missing"))
        assert result.status == STATUS_NO_TITLES
        assert result.containers_found == 3
        assert result.skipped == 3
        assert "Check title selector: .missing" in result.message

    def test_empty_document(self, extractor):
        assert extractor.extract("", _config()).status == STATUS_NO_CONTAINERS

    def test_bad_selector_rejected_when_config_is_built(self):
        with pytest.raises(SelectorSyntaxError):
            _config(title="a:first-child")
        with pytest.raises(SelectorSyntaxError):
            _config(paper_container="div:nth-child(2)")

    def test_bad_selector_raises_at_extraction(self, extractor, list_page_html):
        config = SelectorConfig(paper_container="li.paper", title="a:first-child")
        with pytest.raises(SelectorSyntaxError):
            extractor.extract(list_page_html, config)


NOISY_PAGE = """
<html><head><style>.x { color: red }</style><script>track()</script></head>
<body onload="init()">
  <header><h1>Journal of Examples</h1></header>
  <nav><a href="/">Home</a></nav>
  <!-- ad slot -->
  <ul class="papers" data-tracking="abc123">
    <li class="paper" style="margin: 0" onclick="open()">
      <a class="title" href="/articles/1">First    Paper</a>
      <svg><path d="M0 0"/></svg>
    </li>
  </ul>
  <noscript>Enable JavaScript</noscript>
  <iframe src="https://ads.example/"></iframe>
  <footer>Copyright</footer>
</body></html>
"""


class TestAnalysisInput:
    def test_noise_removed(self):
        cleaned = clean_html_for_analysis(NOISY_PAGE)
        for gone in ("<script", "<style", "<svg", "<noscript", "<iframe", "<header", "<footer", "<nav",
                     "ad slot", "Journal of Examples", "Copyright", "onload", "onclick", "style=", "data-tracking"):
            assert gone not in cleaned
        assert '<li class="paper">' in cleaned
        assert '<a class="title" href="/articles/1">First Paper</a>' in cleaned

    def test_whitespace_collapsed(self):
        cleaned = clean_html_for_analysis(NOISY_PAGE)
        assert "\n" not in cleaned
        assert "  " not in cleaned

    def test_truncated_with_marker(self):
        page = "<html><body>" + "<p>paper</p>" * 100 + "</body></html>"
        cleaned = clean_html_for_analysis(page, max_chars=50)
        assert cleaned.endswith(TRUNCATED_MARKER)
        assert len(cleaned) == 50 + len(TRUNCATED_MARKER)

    def test_short_page_not_truncated(self, list_page_html):
        assert not clean_html_for_analysis(list_page_html).endswith(TRUNCATED_MARKER)

    def test_empty_document(self):
        assert clean_html_for_analysis("") == ""
