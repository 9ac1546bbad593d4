from .html_list import HtmlListExtractor, HtmlListResult, clean_html_for_analysis
from .selector import CompiledPath, compile_selector, parse_selector
from .xml_rules import XmlRuleExtractor, iter_feed_items, sample_feed_items

__all__ = [
    "CompiledPath",
    "HtmlListExtractor",
    "HtmlListResult",
    "XmlRuleExtractor",
    "clean_html_for_analysis",
    "compile_selector",
    "iter_feed_items",
    "parse_selector",
    "sample_feed_items",
]
