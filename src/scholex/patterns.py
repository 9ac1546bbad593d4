"""Safe construction of generated regular expressions.

Labels found in feed text are attacker-influenced, so generated matchers never
splice them in as pattern source. A pattern is assembled from parts that are
either ``Literal`` (always escaped) or ``Fragment`` (trusted regex source
written in this codebase).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional, Pattern, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Literal:
    text: str


@dataclass(frozen=True)
class Fragment:
    source: str


PatternPart = Union[Literal, Fragment]


def build_pattern(*parts: PatternPart) -> str:
    out = []
    for part in parts:
        if isinstance(part, Literal):
            out.append(re.escape(part.text))
        elif isinstance(part, Fragment):
            out.append(part.source)
        else:
            raise TypeError(f"Unsupported pattern part: {part!r}")
    return "".join(out)


def alternation(*words: str) -> Fragment:
    """Non-capturing group matching any of the literal ``words``."""
    return Fragment("(?:" + "|".join(re.escape(w) for w in words) + ")")


FLAG_LETTERS = {
    "i": re.IGNORECASE,
    "s": re.DOTALL,
    "m": re.MULTILINE,
    "x": re.VERBOSE,
    "u": 0,  # str patterns are always Unicode
}


def flags_from_letters(letters: str) -> int:
    flags = 0
    for letter in letters or "":
        flags |= FLAG_LETTERS.get(letter.lower(), 0)
    return flags


@lru_cache(maxsize=512)
def safe_compile(source: str, flags: int = 0) -> Optional[Pattern[str]]:
    """Compile ``source`` or return None when it is not a valid regex."""
    try:
        return re.compile(source, flags)
    except (re.error, OverflowError) as e:
        logger.warning(f"Discarding malformed pattern {source[:80]!r}: {e}")
        return None
