"""
HTML module for script engine: pm.parseHTML(markup) -> queryable document.

Builds a small element tree with the standard library parser; scripts query it
with a DOM-like subset (querySelector/querySelectorAll, textContent,
getAttribute, getElementById, getElementsByTagName). No live browser document.

Selector support: type (`h1`), universal (`*`), `#id`, `.class`, `[attr]`,
`[attr=value]`, compound forms of these, selector lists (`a, b`), and the
descendant (` `) and child (`>`) combinators.
"""

import re
from html.parser import HTMLParser
from typing import Any, Iterator

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "param", "source", "track", "wbr",
})

_COMPOUND_RE = re.compile(
    r"^(?P<tag>\*|[a-zA-Z][\w-]*)?(?P<rest>(?:#[\w-]+|\.[\w-]+|\[[^\]]+\])*)$"
)
_PART_RE = re.compile(r"#(?P<id>[\w-]+)|\.(?P<cls>[\w-]+)|\[(?P<attr>[^\]]+)\]")
_ATTR_RE = re.compile(r"^\s*(?P<name>[\w-]+)\s*(?:=\s*(?P<value>\"[^\"]*\"|'[^']*'|[^\s]+))?\s*$")


class HtmlElement:
    """One element node; text lives in `_children` as plain strings."""

    def __init__(self, tag: str, attrs: dict[str, str] | None = None, parent: "HtmlElement | None" = None) -> None:
        self.tagName = tag.upper()
        self.attributes = attrs or {}
        self.parentElement = parent
        self._children: list[Any] = []

    @property
    def localName(self) -> str:
        return self.tagName.lower()

    @property
    def id(self) -> str:
        return self.attributes.get("id", "")

    @property
    def className(self) -> str:
        return self.attributes.get("class", "")

    @property
    def classList(self) -> list[str]:
        return self.className.split()

    @property
    def children(self) -> list["HtmlElement"]:
        return [c for c in self._children if isinstance(c, HtmlElement)]

    @property
    def textContent(self) -> str:
        parts: list[str] = []
        for child in self._children:
            parts.append(child.textContent if isinstance(child, HtmlElement) else child)
        return "".join(parts)

    innerText = textContent

    def getAttribute(self, name: str) -> str | None:
        return self.attributes.get(name.lower())

    def hasAttribute(self, name: str) -> bool:
        return name.lower() in self.attributes

    def _descendants(self) -> Iterator["HtmlElement"]:
        for child in self.children:
            yield child
            yield from child._descendants()

    def querySelectorAll(self, selector: str) -> list["HtmlElement"]:
        groups = _parse_selector(selector)
        return [
            el for el in self._descendants()
            if any(_matches(el, steps) for steps in groups)
        ]

    def querySelector(self, selector: str) -> "HtmlElement | None":
        found = self.querySelectorAll(selector)
        return found[0] if found else None

    def getElementsByTagName(self, tag: str) -> list["HtmlElement"]:
        tag = tag.upper()
        return [el for el in self._descendants() if tag == "*" or el.tagName == tag]

    def getElementsByClassName(self, name: str) -> list["HtmlElement"]:
        return [el for el in self._descendants() if name in el.classList]

    def __repr__(self) -> str:
        return f"<{self.localName}>"


class HtmlDocument(HtmlElement):
    def __init__(self) -> None:
        super().__init__("#document")

    def getElementById(self, element_id: str) -> HtmlElement | None:
        for el in self._descendants():
            if el.id == element_id:
                return el
        return None

    @property
    def title(self) -> str:
        el = self.querySelector("title")
        return el.textContent.strip() if el else ""

    @property
    def head(self) -> HtmlElement | None:
        return self.querySelector("head")

    @property
    def body(self) -> HtmlElement | None:
        return self.querySelector("body")

    def __repr__(self) -> str:
        return "<#document>"


class _TreeBuilder(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.document = HtmlDocument()
        self._stack: list[HtmlElement] = [self.document]

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        parent = self._stack[-1]
        el = HtmlElement(tag, {k: (v if v is not None else "") for k, v in attrs}, parent)
        parent._children.append(el)
        if tag not in VOID_ELEMENTS:
            self._stack.append(el)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        parent = self._stack[-1]
        parent._children.append(
            HtmlElement(tag, {k: (v if v is not None else "") for k, v in attrs}, parent)
        )

    def handle_endtag(self, tag: str) -> None:
        tag = tag.upper()
        # close up to the nearest open element with this tag; ignore stray end tags
        for i in range(len(self._stack) - 1, 0, -1):
            if self._stack[i].tagName == tag:
                del self._stack[i:]
                return

    def handle_data(self, data: str) -> None:
        self._stack[-1]._children.append(data)


def parse_html(markup: str | bytes) -> HtmlDocument:
    if isinstance(markup, (bytes, bytearray)):
        markup = bytes(markup).decode("utf-8", errors="replace")
    builder = _TreeBuilder()
    builder.feed(markup)
    builder.close()
    return builder.document


# ---------------------------------------------------------------------------
# Selectors
# ---------------------------------------------------------------------------


def _parse_compound(text: str) -> dict[str, Any]:
    m = _COMPOUND_RE.match(text)
    if not m or not text:
        raise ValueError(f"Unsupported selector: {text!r}")
    compound: dict[str, Any] = {"tag": (m.group("tag") or "*").upper(), "id": None, "classes": [], "attrs": []}
    for part in _PART_RE.finditer(m.group("rest")):
        if part.group("id"):
            compound["id"] = part.group("id")
        elif part.group("cls"):
            compound["classes"].append(part.group("cls"))
        else:
            am = _ATTR_RE.match(part.group("attr"))
            if not am:
                raise ValueError(f"Unsupported attribute selector: [{part.group('attr')}]")
            value = am.group("value")
            if value is not None and value[:1] in "\"'":
                value = value[1:-1]
            compound["attrs"].append((am.group("name").lower(), value))
    return compound


def _parse_selector(selector: str) -> list[list[tuple[str, dict[str, Any]]]]:
    """'div > p.x, a' -> [[(' ', div), ('>', p.x)], [(' ', a)]]"""
    groups = []
    for group in selector.split(","):
        tokens = group.replace(">", " > ").split()
        if not tokens:
            raise ValueError(f"Unsupported selector: {selector!r}")
        steps: list[tuple[str, dict[str, Any]]] = []
        combinator = " "
        for token in tokens:
            if token == ">":
                if not steps:
                    raise ValueError(f"Unsupported selector: {selector!r}")
                combinator = ">"
                continue
            steps.append((combinator, _parse_compound(token)))
            combinator = " "
        groups.append(steps)
    return groups


def _matches_compound(el: HtmlElement, compound: dict[str, Any]) -> bool:
    if compound["tag"] != "*" and el.tagName != compound["tag"]:
        return False
    if compound["id"] is not None and el.id != compound["id"]:
        return False
    classes = el.classList
    if any(c not in classes for c in compound["classes"]):
        return False
    for name, value in compound["attrs"]:
        if name not in el.attributes:
            return False
        if value is not None and el.attributes[name] != value:
            return False
    return True


def _matches(el: HtmlElement, steps: list[tuple[str, dict[str, Any]]]) -> bool:
    combinator, compound = steps[-1]
    if not _matches_compound(el, compound):
        return False
    if len(steps) == 1:
        return True
    rest = steps[:-1]
    parent = el.parentElement
    if combinator == ">":
        return isinstance(parent, HtmlElement) and not isinstance(parent, HtmlDocument) and _matches(parent, rest)
    while parent is not None and not isinstance(parent, HtmlDocument):
        if _matches(parent, rest):
            return True
        parent = parent.parentElement
    return False
