"""Shared fixtures for the scholex test suite."""

import pytest

from scholex.config import EngineSettings
from scholex.orchestrator import ExtractionOrchestrator
from scholex.store import InMemoryRuleStore


BRACKET_SAMPLES = [
    "[Title] Deep Learning for X [Authors] Alice, Bob [DOI] 10.1000/182",
    "[Title] Graph Methods in Y [Authors] Carol [DOI] 10.1000/183",
    "[Title] Sparse Models [Authors] Dave, Erin [DOI] 10.1000/184",
]

CJK_SAMPLES = [
    "【タイトル】研究A【著者】田中，佐藤【DOI】10.5555/jp.1",
    "【タイトル】研究B【著者】鈴木・高橋【DOI】10.5555/jp.2",
]

LIST_PAGE_HTML = """
<html><body>
<ul class="papers">
  <li class="paper">
    <a class="title" href="/articles/1">First Paper</a>
    <span class="authors">Alice, Bob; Carol</span>
    <span class="date">2023-05-01</span>
    <a class="doi" href="https://doi.org/10.1234/first">DOI</a>
  </li>
  <li class="paper">
    <a class="title" href="https://doi.org/10.5555/second">Second Paper</a>
    <span class="date">12 March 2021</span>
  </li>
  <li class="paper">
    <span class="authors">Nobody</span>
  </li>
</ul>
</body></html>
"""

RSS_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example Journal</title>
    <item>
      <title>Corrosion of Reinforced Concrete</title>
      <link>https://doi.org/10.1016/j.example.2024.001</link>
      <dc:creator>Alice Smith</dc:creator>
      <dc:creator>Bob Jones</dc:creator>
      <dc:identifier>doi:10.1016/j.example.2024.001</dc:identifier>
      <dc:date>2024-01-15</dc:date>
      <description>Volume: 12 Issue: 3 Pages: 10-20</description>
    </item>
    <item>
      <headline>Not a title element</headline>
      <title>Chloride Ingress Models</title>
      <link>https://journal.example/articles/2</link>
      <dc:creator>Carol White</dc:creator>
      <description>Volume: 12 Issue: 4</description>
    </item>
  </channel>
</rss>
"""

ATOM_FEED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom Journal</title>
  <entry>
    <title>Atom Paper One</title>
    <link href="https://journal.example/atom/1"/>
    <author><name>Alice Smith</name></author>
    <author><name>Bob Jones</name></author>
    <updated>2024-02-01T00:00:00Z</updated>
  </entry>
</feed>
"""


@pytest.fixture
def bracket_samples():
    return list(BRACKET_SAMPLES)


@pytest.fixture
def cjk_samples():
    return list(CJK_SAMPLES)


@pytest.fixture
def list_page_html():
    return LIST_PAGE_HTML


@pytest.fixture
def rss_feed_xml():
    return RSS_FEED_XML


@pytest.fixture
def atom_feed_xml():
    return ATOM_FEED_XML


@pytest.fixture
def settings():
    return EngineSettings(db_url=None)


@pytest.fixture
def memory_store():
    return InMemoryRuleStore()


@pytest.fixture
def orchestrator(memory_store, settings):
    return ExtractionOrchestrator(memory_store, settings)


@pytest.fixture(autouse=True)
def _no_db_url(monkeypatch):
    monkeypatch.delenv("SCHOLEX_DB_URL", raising=False)
