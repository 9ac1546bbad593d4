"""Namespace-aware field maps applied to RSS / Atom / RDF feed entries.

A field map comes from an untrusted collaborator and names, per field, one
or more pipe-delimited element candidates (``"dc:creator|author"``). The
structured pass fills what it can; an optional summary pass runs regexes
over a free-text element and only fills fields that are still empty.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, Iterator, List, Mapping, Optional, Tuple, Union

from lxml import etree

from ..catalog import DEFAULT_CATALOG, FormatCatalog
from ..normalize import clean_field, clean_text, match_doi, split_authors
from ..patterns import safe_compile
from ..rules import ExtractedRecord, FeedConfig, Rule

logger = logging.getLogger(__name__)

WELL_KNOWN_NAMESPACES: Mapping[str, str] = {
    "atom": "http://www.w3.org/2005/Atom",
    "content": "http://purl.org/rss/1.0/modules/content/",
    "dc": "http://purl.org/dc/elements/1.1/",
    "dcterms": "http://purl.org/dc/terms/",
    "media": "http://search.yahoo.com/mrss/",
    "prism": "http://prismstandard.org/namespaces/basic/2.0/",
    "rdf": "http://www.w3.org/1999/02/22-rdf-syntax-ns#",
    "rss": "http://purl.org/rss/1.0/",
}

RSS1_NAMESPACE = WELL_KNOWN_NAMESPACES["rss"]
SAMPLE_FALLBACK_CHARS = 10000


def local_name(node: Any) -> Optional[str]:
    if not isinstance(node.tag, str):
        return None
    return etree.QName(node).localname


def namespace_of(node: Any) -> Optional[str]:
    if not isinstance(node.tag, str):
        return None
    return etree.QName(node).namespace


def parse_xml(xml: Union[str, bytes]) -> Optional[Any]:
    """Parse feed XML without resolving entities or touching the network."""
    if isinstance(xml, str):
        xml = xml.encode("utf-8")
    if not xml or not xml.strip():
        return None
    parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=True, remove_blank_text=True)
    try:
        return etree.fromstring(xml, parser=parser)
    except etree.XMLSyntaxError as e:
        logger.warning(f"Could not parse feed XML: {e}")
        return None


def detect_feed_type(root: Any) -> Optional[str]:
    for node in root.iter():
        name = local_name(node)
        if name == "item":
            return "rdf" if namespace_of(node) == RSS1_NAMESPACE else "rss2.0"
        if name == "entry":
            return "atom"
    return None


def iter_feed_items(root: Any, feed_config: Optional[FeedConfig] = None) -> Iterator[Any]:
    """Yield item elements in document order, matched by local name.

    Uses the configured ``item_element`` and falls back to ``item`` and
    ``entry`` when the configured name matches nothing.
    """
    if root is None:
        return
    names = [feed_config.item_element] if feed_config else []
    names += [n for n in ("item", "entry") if n not in names]
    for name in names:
        found = [node for node in root.iter() if local_name(node) == name]
        if found:
            yield from found
            return


def sample_feed_items(xml: Union[str, bytes], count: int = 3) -> str:
    """Serialise the first ``count`` items for an analysis prompt."""
    root = parse_xml(xml)
    feed_type = detect_feed_type(root) if root is not None else None
    if feed_type is None:
        text = xml.decode("utf-8", errors="replace") if isinstance(xml, bytes) else xml
        return text[:SAMPLE_FALLBACK_CHARS]
    items = list(iter_feed_items(root, FeedConfig(item_element="entry" if feed_type == "atom" else "item")))
    shown = items[:count]
    parts = [f"<!-- Feed type: {feed_type}, Sample items: {len(shown)} of {len(items)} -->\n"]
    for i, item in enumerate(shown, 1):
        parts.append(f"<!-- Item {i} -->\n{etree.tostring(item, encoding='unicode')}\n")
    return "\n".join(parts)


def split_candidates(label: Optional[str]) -> List[str]:
    return [c.strip() for c in (label or "").split("|") if c.strip()]


def _node_text(node: Any, attribute: Optional[str] = None) -> str:
    if attribute:
        value = node.get(attribute)
        if value:
            return value.strip()
    return "".join(node.itertext())


class XmlRuleExtractor:
    def __init__(self, catalog: FormatCatalog = DEFAULT_CATALOG):
        self.catalog = catalog

    def extract(self, entry: Any, rules: Mapping[str, Rule], feed_config: FeedConfig) -> Optional[ExtractedRecord]:
        """Apply ``rules`` to one entry element.

        Returns:
            The record, or None when no title could be extracted.
        """
        values: Dict[str, Any] = {}
        for field_name, rule in rules.items():
            value = self.extract_field(entry, field_name, rule, feed_config)
            if value:
                values[field_name] = value
        if feed_config.summary_parsing.enabled:
            for field_name, value in self.parse_summary(entry, feed_config).items():
                if not values.get(field_name):
                    values[field_name] = value
        if not values.get("title"):
            logger.debug("Feed entry has no extractable title")
            return None
        return ExtractedRecord.from_fields(values)

    def extract_field(self, entry: Any, field_name: str, rule: Rule, feed_config: FeedConfig) -> Any:
        for candidate in split_candidates(rule.label):
            nodes = self.find_children(entry, candidate, rule.namespace, feed_config.namespaces)
            if rule.child_element and nodes:
                nodes = [
                    child
                    for node in nodes
                    for child in self.find_children(node, rule.child_element, None, feed_config.namespaces)
                ]
            if not nodes:
                continue
            value = self.value_from_nodes(field_name, nodes, rule)
            if value:
                return value
        return None

    def value_from_nodes(self, field_name: str, nodes: List[Any], rule: Rule) -> Any:
        if field_name == "authors":
            authors = [clean_text(_node_text(node, rule.attribute)) for node in nodes]
            authors = [a for a in authors if a]
            if len(authors) == 1 and rule.separator:
                authors = split_authors(authors[0], rule.separator, self.catalog)
            return authors
        for node in nodes:
            raw = _node_text(node, rule.attribute)
            if field_name == "doi":
                value = match_doi(clean_text(raw), rule.pattern)
            else:
                value = clean_field(field_name, raw, rule.separator, rule.date_format, self.catalog)
            if value:
                return value
        return None

    def resolve_namespace(self, prefix: str, namespaces: Mapping[str, str], entry: Any) -> Optional[str]:
        if prefix in namespaces:
            return namespaces[prefix]
        if prefix in WELL_KNOWN_NAMESPACES:
            return WELL_KNOWN_NAMESPACES[prefix]
        return (entry.nsmap or {}).get(prefix)

    def find_children(
        self,
        entry: Any,
        candidate: str,
        namespace: Optional[str],
        namespaces: Mapping[str, str],
    ) -> List[Any]:
        """Direct children of ``entry`` matching one element candidate."""
        if ":" in candidate:
            prefix, name = candidate.split(":", 1)
            uri = self.resolve_namespace(prefix, namespaces, entry)
            if uri is None:
                logger.debug(f"Unknown namespace prefix {prefix!r} in candidate {candidate!r}")
                return []
            return [child for child in entry if local_name(child) == name and namespace_of(child) == uri]
        allowed = {None, namespace_of(entry)}
        if namespace:
            allowed.add(namespace)
        return [child for child in entry if local_name(child) == candidate and namespace_of(child) in allowed]

    def parse_summary(self, entry: Any, feed_config: FeedConfig) -> Dict[str, Any]:
        """Run the configured free-text regexes over the summary element."""
        parsing = feed_config.summary_parsing
        text = ""
        for candidate in split_candidates(parsing.source_element):
            nodes = self.find_children(entry, candidate, None, feed_config.namespaces)
            if nodes:
                text = "".join(nodes[0].itertext())
                if text.strip():
                    break
        if not text.strip():
            return {}
        found: Dict[str, Any] = {}
        for field_name, pattern in parsing.patterns.items():
            matcher = safe_compile(pattern, re.IGNORECASE)
            m = matcher.search(text) if matcher else None
            if not m:
                continue
            raw = m.group(1) if matcher.groups and m.group(1) is not None else m.group(0)
            value = clean_field(field_name, raw, catalog=self.catalog)
            if value:
                found[field_name] = value
        return found


def extract_items(
    root: Any,
    rules: Mapping[str, Rule],
    feed_config: FeedConfig,
    catalog: FormatCatalog = DEFAULT_CATALOG,
) -> List[Tuple[Any, Optional[ExtractedRecord]]]:
    """Pair every item element with its extracted record (or None)."""
    extractor = XmlRuleExtractor(catalog)
    return [(item, extractor.extract(item, rules, feed_config)) for item in iter_feed_items(root, feed_config)]
