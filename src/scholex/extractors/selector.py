"""Restricted CSS selector grammar compiled to lxml XPath objects.

Supported: ``element``, ``.class`` (repeatable), ``#id``, ``[attr]`` and
``[attr=value]``, joined by whitespace (descendant) or ``>`` (child).
Every name and value is passed to XPath as a variable, so selector text
never becomes expression text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from lxml import etree

from ..errors import SelectorSyntaxError


@dataclass(frozen=True)
class Element:
    name: str


@dataclass(frozen=True)
class ClassFilter:
    name: str


@dataclass(frozen=True)
class IdFilter:
    value: str


@dataclass(frozen=True)
class AttrFilter:
    name: str
    value: Optional[str] = None


Filter = Union[ClassFilter, IdFilter, AttrFilter]


@dataclass(frozen=True)
class SimpleSelector:
    element: Optional[Element] = None
    filters: Tuple[Filter, ...] = ()


class Combinator(str, Enum):
    CHILD = "child"
    DESCENDANT = "descendant"


@dataclass(frozen=True)
class Selector:
    steps: Tuple[SimpleSelector, ...]
    combinators: Tuple[Combinator, ...] = ()


_ELEMENT_RE = re.compile(r"\*|[A-Za-z][A-Za-z0-9-]*")
_CLASS_RE = re.compile(r"\.(-?[A-Za-z_][\w-]*)")
_ID_RE = re.compile(r"#([\w-]+)")
_ATTR_RE = re.compile(
    r"""\[\s*([A-Za-z_][\w:.-]*)\s*(?:=\s*(?:"([^"]*)"|'([^']*)'|([^\]\s"']+))\s*)?\]"""
)


def _split_compounds(text: str) -> Tuple[List[str], List[Combinator]]:
    compounds: List[str] = []
    combinators: List[Combinator] = []
    buf: List[str] = []
    pending: Optional[Combinator] = None
    in_attr = False
    quote: Optional[str] = None
    for ch in text:
        if in_attr:
            buf.append(ch)
            if quote:
                if ch == quote:
                    quote = None
            elif ch in "\"'":
                quote = ch
            elif ch == "]":
                in_attr = False
            continue
        if ch.isspace() or ch == ">":
            if buf:
                compounds.append("".join(buf))
                buf = []
                pending = Combinator.DESCENDANT
            if ch == ">":
                if not compounds or pending is Combinator.CHILD:
                    raise SelectorSyntaxError(text, "misplaced '>' combinator")
                pending = Combinator.CHILD
            continue
        if not buf and compounds:
            combinators.append(pending or Combinator.DESCENDANT)
            pending = None
        if ch == "[":
            in_attr = True
        buf.append(ch)
    if in_attr:
        raise SelectorSyntaxError(text, "unterminated attribute selector")
    if buf:
        compounds.append("".join(buf))
    elif pending is Combinator.CHILD:
        raise SelectorSyntaxError(text, "dangling '>' combinator")
    return compounds, combinators


def _parse_simple(text: str, selector: str) -> SimpleSelector:
    pos = 0
    element = None
    m = _ELEMENT_RE.match(text)
    if m:
        element = Element(m.group(0).lower())
        pos = m.end()
    filters: List[Filter] = []
    while pos < len(text):
        ch = text[pos]
        if ch == ".":
            m = _CLASS_RE.match(text, pos)
            if not m:
                raise SelectorSyntaxError(selector, f"invalid class at {text[pos:]!r}")
            filters.append(ClassFilter(m.group(1)))
        elif ch == "#":
            m = _ID_RE.match(text, pos)
            if not m:
                raise SelectorSyntaxError(selector, f"invalid id at {text[pos:]!r}")
            filters.append(IdFilter(m.group(1)))
        elif ch == "[":
            m = _ATTR_RE.match(text, pos)
            if not m:
                raise SelectorSyntaxError(selector, f"invalid attribute selector at {text[pos:]!r}")
            value = next((g for g in m.group(2, 3, 4) if g is not None), None)
            filters.append(AttrFilter(m.group(1), value))
        else:
            raise SelectorSyntaxError(selector, f"unsupported syntax at {text[pos:]!r}")
        pos = m.end()
    return SimpleSelector(element=element, filters=tuple(filters))


def parse_selector(text: str) -> Selector:
    """Parse ``text`` into a ``Selector``.

    Raises:
        SelectorSyntaxError: for empty input or syntax outside the grammar.
    """
    if not isinstance(text, str) or not text.strip():
        raise SelectorSyntaxError(text or "", "empty selector")
    compounds, combinators = _split_compounds(text.strip())
    steps = tuple(_parse_simple(c, text) for c in compounds)
    return Selector(steps=steps, combinators=tuple(combinators))


@dataclass(frozen=True)
class CompiledPath:
    """An XPath query plus the variable bindings it is evaluated with."""

    selector: Selector
    expression: str
    variables: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_xpath", etree.XPath(self.expression))

    def __call__(self, node: Any) -> List[Any]:
        return self._xpath(node, **self.variables)

    def first(self, node: Any) -> Optional[Any]:
        found = self(node)
        return found[0] if found else None


class _Compiler:
    def __init__(self) -> None:
        self.variables: Dict[str, str] = {}

    def bind(self, prefix: str, value: str) -> str:
        name = f"{prefix}{len(self.variables)}"
        self.variables[name] = value
        return f"${name}"

    def step(self, simple: SimpleSelector) -> str:
        predicates = []
        if simple.element is not None and simple.element.name != "*":
            predicates.append(f"local-name()={self.bind('e', simple.element.name)}")
        for f in simple.filters:
            if isinstance(f, ClassFilter):
                predicates.append(
                    f"contains(concat(' ', normalize-space(@class), ' '), concat(' ', {self.bind('c', f.name)}, ' '))"
                )
            elif isinstance(f, IdFilter):
                predicates.append(f"@id={self.bind('i', f.value)}")
            elif f.value is None:
                predicates.append(f"@*[local-name()={self.bind('a', f.name)}]")
            else:
                name_var = self.bind("a", f.name)
                predicates.append(f"@*[local-name()={name_var}][.={self.bind('v', f.value)}]")
        if not predicates:
            return "*"
        return "*[" + " and ".join(predicates) + "]"


def compile_selector(text: Union[str, Selector], relative: bool = False) -> CompiledPath:
    """Compile a selector to a ``CompiledPath``.

    Args:
        text: Selector text or an already parsed ``Selector``.
        relative: Search below the context node (``.//``) instead of the
            whole document (``//``).
    """
    selector = text if isinstance(text, Selector) else parse_selector(text)
    compiler = _Compiler()
    parts = [".//" if relative else "//", compiler.step(selector.steps[0])]
    for combinator, simple in zip(selector.combinators, selector.steps[1:]):
        parts.append("/" if combinator is Combinator.CHILD else "//")
        parts.append(compiler.step(simple))
    return CompiledPath(selector=selector, expression="".join(parts), variables=dict(compiler.variables))
