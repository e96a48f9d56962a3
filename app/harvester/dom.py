"""Read-only view of the rendered list page.

Every component reads the page through the small ``Document``/``Element``
protocol defined here, so the same strategies run against a live Playwright
page or a saved HTML snapshot. Selectors are plain CSS understood by both
browsers and soupsieve.
"""
from __future__ import annotations

import re
from typing import Callable, Hashable, List, Optional, Protocol

from bs4 import BeautifulSoup, Tag

from .utils import collapse_whitespace


class Element(Protocol):
    @property
    def key(self) -> Hashable: ...

    def text(self) -> str: ...

    def attribute(self, name: str) -> Optional[str]: ...

    def query(self, selector: str) -> Optional["Element"]: ...

    def query_all(self, selector: str) -> List["Element"]: ...

    def closest(self, selector: str) -> Optional["Element"]: ...

    def parent(self) -> Optional["Element"]: ...

    def is_visible(self) -> bool: ...

    def is_enabled(self) -> bool: ...

    def click(self) -> None: ...


class Document(Protocol):
    def query(self, selector: str) -> Optional[Element]: ...

    def query_all(self, selector: str) -> List[Element]: ...


_STYLE_DECL = re.compile(r"([a-zA-Z-]+)\s*:\s*([^;]+)")


def _inline_style(tag: Tag) -> dict[str, str]:
    style = tag.get("style") or ""
    if isinstance(style, list):
        style = ";".join(style)
    return {
        name.strip().lower(): value.strip().lower()
        for name, value in _STYLE_DECL.findall(style)
    }


def _hidden_by_markup(tag: Tag) -> bool:
    if tag.has_attr("hidden"):
        return True
    style = _inline_style(tag)
    if style.get("display") == "none":
        return True
    if style.get("visibility") in {"hidden", "collapse"}:
        return True
    opacity = style.get("opacity")
    if opacity is not None:
        try:
            return float(opacity) == 0.0
        except ValueError:
            return False
    return False


def _disabled_by_markup(tag: Tag) -> bool:
    if tag.has_attr("disabled"):
        return True
    if (tag.get("aria-disabled") or "").strip().lower() == "true":
        return True
    classes = tag.get("class") or []
    return "is-disabled" in classes or "disabled" in classes


class SoupElement:
    """``Element`` backed by a BeautifulSoup tag."""

    def __init__(self, tag: Tag, document: "SoupDocument") -> None:
        self._tag = tag
        self._document = document

    @property
    def key(self) -> Hashable:
        return id(self._tag)

    @property
    def tag(self) -> Tag:
        return self._tag

    def text(self) -> str:
        return collapse_whitespace(self._tag.get_text(" "))

    def attribute(self, name: str) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return None
        if isinstance(value, list):
            return " ".join(value)
        return str(value)

    def query(self, selector: str) -> Optional["SoupElement"]:
        found = self._tag.select_one(selector)
        return self._document.wrap(found) if found is not None else None

    def query_all(self, selector: str) -> List["SoupElement"]:
        return [self._document.wrap(tag) for tag in self._tag.select(selector)]

    def closest(self, selector: str) -> Optional["SoupElement"]:
        found = self._tag.css.closest(selector)
        return self._document.wrap(found) if found is not None else None

    def parent(self) -> Optional["SoupElement"]:
        parent = self._tag.parent
        if parent is None or not isinstance(parent, Tag) or parent.name == "[document]":
            return None
        return self._document.wrap(parent)

    def is_visible(self) -> bool:
        node: Optional[Tag] = self._tag
        while node is not None and isinstance(node, Tag) and node.name != "[document]":
            if _hidden_by_markup(node):
                return False
            node = node.parent
        return True

    def is_enabled(self) -> bool:
        return not _disabled_by_markup(self._tag)

    def click(self) -> None:
        self._document.dispatch_click(self)

    def __repr__(self) -> str:
        return f"SoupElement(<{self._tag.name}> {self.text()[:40]!r})"


class SoupDocument:
    """``Document`` over a static HTML snapshot parsed with html5lib.

    Clicks are forwarded to ``on_click`` when one is provided; without a
    handler clicking is a no-op, matching a frozen snapshot.
    """

    def __init__(
        self,
        html: str,
        *,
        on_click: Optional[Callable[[SoupElement], None]] = None,
        parser: str = "html5lib",
    ) -> None:
        self._parser = parser
        self._on_click = on_click
        self._soup = BeautifulSoup(html, parser)

    @property
    def soup(self) -> BeautifulSoup:
        return self._soup

    def load(self, html: str) -> None:
        """Replace the rendered content; previously returned elements go stale."""

        self._soup = BeautifulSoup(html, self._parser)

    def wrap(self, tag: Tag) -> SoupElement:
        return SoupElement(tag, self)

    def query(self, selector: str) -> Optional[SoupElement]:
        found = self._soup.select_one(selector)
        return self.wrap(found) if found is not None else None

    def query_all(self, selector: str) -> List[SoupElement]:
        return [self.wrap(tag) for tag in self._soup.select(selector)]

    def dispatch_click(self, element: SoupElement) -> None:
        if self._on_click is not None:
            self._on_click(element)


__all__ = ["Element", "Document", "SoupElement", "SoupDocument"]
