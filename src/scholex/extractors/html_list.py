"""Extract paper records from repeated list containers on an HTML page."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Union

from lxml import etree, html as lxml_html

from ..catalog import DEFAULT_CATALOG, FormatCatalog
from ..config import EngineSettings
from ..normalize import collapse_whitespace, doi_from_url, match_doi, parse_date, resolve_url, split_authors
from ..rules import ExtractedRecord, SelectorConfig
from .selector import CompiledPath, compile_selector

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_NO_CONTAINERS = "no_containers"
STATUS_NO_TITLES = "no_titles"

TEXT_CONTENT = "textContent"

_FIELD_SELECTORS = ("title", "url", "authors", "abstract", "date", "doi")

ANALYSIS_MAX_CHARS = 40000
TRUNCATED_MARKER = "... [truncated]"
_ANALYSIS_DROP_TAGS = ("script", "style", "svg", "noscript", "iframe", "header", "footer", "nav")


@dataclass(frozen=True)
class HtmlListResult:
    records: Tuple[ExtractedRecord, ...]
    containers_found: int
    skipped: int
    status: str
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK


def parse_html(markup: Union[str, bytes]) -> Optional[Any]:
    """Parse page markup into an lxml tree, or None for an empty document."""
    if not markup or not markup.strip():
        return None
    try:
        return lxml_html.document_fromstring(markup)
    except (etree.ParserError, ValueError) as e:
        logger.warning(f"Could not parse HTML document: {e}")
        return None


def node_value(node: Any, attr: str = TEXT_CONTENT) -> str:
    if attr == TEXT_CONTENT:
        return collapse_whitespace("".join(node.itertext()))
    return (node.get(attr) or "").strip()


def _is_noise_attribute(name: str) -> bool:
    name = name.lower()
    return name == "style" or name.startswith("on") or name.startswith("data-")


def clean_html_for_analysis(markup: Union[str, bytes], max_chars: int = ANALYSIS_MAX_CHARS) -> str:
    """Reduce a page to the markup worth showing a page-structure analysis.

    Drops scripts, styles, embedded media, comments and page chrome
    (header, footer, nav), strips inline styles, event handlers and
    ``data-*`` attributes, collapses whitespace and truncates to
    ``max_chars`` characters.
    """
    root = parse_html(markup)
    if root is None:
        return ""
    for node in list(root.iter(etree.Comment, etree.ProcessingInstruction)):
        node.drop_tree()
    for node in list(root.iter(*_ANALYSIS_DROP_TAGS)):
        node.drop_tree()
    for element in root.iter(etree.Element):
        for name in [n for n in element.attrib if _is_noise_attribute(n)]:
            del element.attrib[name]
    text = collapse_whitespace(lxml_html.tostring(root, encoding="unicode"))
    if len(text) > max_chars:
        logger.debug(f"Truncating cleaned page from {len(text)} to {max_chars} characters")
        text = text[:max_chars] + TRUNCATED_MARKER
    return text


def compile_config(config: SelectorConfig) -> Dict[str, CompiledPath]:
    """Compile the container selector and every configured field selector.

    Raises:
        SelectorSyntaxError: if any selector is outside the supported grammar.
    """
    compiled = {"paper_container": compile_selector(config.paper_container)}
    for name in _FIELD_SELECTORS:
        selector = getattr(config, name)
        if selector:
            compiled[name] = compile_selector(selector, relative=True)
    return compiled


class HtmlListExtractor:
    def __init__(self, settings: Optional[EngineSettings] = None, catalog: FormatCatalog = DEFAULT_CATALOG):
        self.settings = settings or EngineSettings()
        self.catalog = catalog

    def extract(self, document: Union[str, bytes, Any], config: SelectorConfig) -> HtmlListResult:
        compiled = compile_config(config)
        root = parse_html(document) if isinstance(document, (str, bytes)) else document
        containers = compiled["paper_container"](root) if root is not None else []
        if not containers:
            message = f"No paper containers found with selector: {config.paper_container}"
            logger.warning(message)
            return HtmlListResult(records=(), containers_found=0, skipped=0, status=STATUS_NO_CONTAINERS, message=message)

        records = []
        skipped = 0
        for container in containers:
            record = self.extract_container(container, compiled, config)
            if record is None:
                skipped += 1
            else:
                records.append(record)
        logger.debug(f"Parsed {len(containers)} containers: {len(records)} papers, {skipped} skipped")

        if not records:
            message = (
                f"Found {len(containers)} containers but could not extract titles from any "
                f"({skipped} skipped). Check title selector: {config.title}"
            )
            logger.warning(message)
            return HtmlListResult(
                records=(), containers_found=len(containers), skipped=skipped, status=STATUS_NO_TITLES, message=message
            )
        return HtmlListResult(
            records=tuple(records),
            containers_found=len(containers),
            skipped=skipped,
            status=STATUS_OK,
            message=f"Extracted {len(records)} papers ({skipped} skipped)",
        )

    def extract_container(
        self, container: Any, compiled: Dict[str, CompiledPath], config: SelectorConfig
    ) -> Optional[ExtractedRecord]:
        """Extract one record, or None when the container has no title."""

        def first_value(name: str, attr: str = TEXT_CONTENT) -> str:
            path = compiled.get(name)
            node = path.first(container) if path is not None else None
            return node_value(node, attr) if node is not None else ""

        title = first_value("title", config.title_attr)
        if not title:
            return None

        values: Dict[str, Any] = {"title": title}
        url = first_value("url", config.url_attr)
        if url:
            values["url"] = resolve_url(url, config.base_url)
        authors = first_value("authors", config.authors_attr)
        if authors:
            values["authors"] = split_authors(authors, self.settings.html_author_delimiters, self.catalog)
        abstract = first_value("abstract")
        if abstract:
            values["abstract"] = abstract
        date_text = first_value("date")
        if date_text:
            values["published_date"] = parse_date(
                date_text,
                config.date_format,
                floor_year=self.settings.min_generic_date_year,
                catalog=self.catalog,
            )
        doi_raw = first_value("doi", config.doi_attr)
        if doi_raw:
            values["doi"] = match_doi(doi_raw, config.doi_pattern)
        if not values.get("doi") and values.get("url"):
            values["doi"] = doi_from_url(values["url"])
        return ExtractedRecord.from_fields(values)
