"""Adaptive extraction of academic-paper metadata.

Learns how a source embeds title/authors/DOI/abstract/date in free text,
HTML list pages or XML feed entries, stores that knowledge as rule sets and
applies it to new items.
"""

__version__ = "0.1.0"
