"""lxml-backed host document for static HTML."""

from __future__ import annotations

import lxml.html
from cssselect import SelectorError
from lxml import etree
from lxml.cssselect import CSSSelector

from refsnap.core.types import ComputedStyle
from refsnap.dom.base import HostDocument, Node

# Tags the browser's UA stylesheet never renders.
_UA_HIDDEN_TAGS = frozenset({
    "head", "title", "meta", "link", "script", "style", "template",
})

_EMPTY_DOCUMENT = "<html><head></head><body></body></html>"


class HtmlDocument(HostDocument):
    """
    Wraps an lxml.html tree. Elements are lxml element proxies; the document
    keeps the <html> element alive so proxy identity stays stable.

    There is no layout here, so styles come from inline ``style`` attributes,
    the ``hidden`` attribute and tags that are never rendered.
    """

    def __init__(
        self,
        html_root: etree._Element,
        *,
        url: str = "",
        title: str | None = None,
        viewport: tuple[int, int] | None = None,
    ) -> None:
        self._html = html_root
        self._url = url
        self._title = title
        self._viewport = viewport

    @classmethod
    def from_html(
        cls,
        markup: str,
        *,
        url: str = "",
        viewport: tuple[int, int] | None = None,
    ) -> HtmlDocument:
        if not markup.strip():
            markup = _EMPTY_DOCUMENT
        return cls(lxml.html.document_fromstring(markup), url=url, viewport=viewport)

    # ------------------------------------------------------------------
    # Document-level properties
    # ------------------------------------------------------------------

    @property
    def html(self) -> etree._Element:
        return self._html

    @property
    def root(self) -> Node | None:
        return self._html.find("body")

    @property
    def title(self) -> str:
        if self._title is not None:
            return self._title
        return (self._html.findtext(".//title") or "").strip()

    @property
    def url(self) -> str:
        return self._url

    @property
    def viewport(self) -> tuple[int, int] | None:
        return self._viewport

    # ------------------------------------------------------------------
    # Node access
    # ------------------------------------------------------------------

    def children(self, node: Node) -> list[Node]:
        return [child for child in node if isinstance(child.tag, str)]

    def parent(self, node: Node) -> Node | None:
        return node.getparent()

    def tag(self, node: Node) -> str:
        return node.tag.lower()

    def attribute(self, node: Node, name: str) -> str | None:
        return node.get(name)

    def attributes(self, node: Node) -> dict[str, str]:
        return dict(node.attrib)

    def text_content(self, node: Node) -> str:
        return etree.tostring(node, method="text", encoding="unicode", with_tail=False)

    def is_attached(self, node: Node) -> bool:
        # Removed subtrees get their own root in lxml.
        return node.getroottree().getroot() is self._html

    def style(self, node: Node) -> ComputedStyle | None:
        style = ComputedStyle.from_inline(node.get("style"))
        if not style.display:
            if node.get("hidden") is not None or self.tag(node) in _UA_HIDDEN_TAGS:
                style.display = "none"
        return style

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_all(self, selector: str, scope: Node | None = None) -> list[Node]:
        try:
            matcher = CSSSelector(selector, translator="html")
        except SelectorError as exc:
            raise ValueError(f"Invalid CSS selector {selector!r}: {exc}") from exc
        base = scope if scope is not None else self._html
        # querySelectorAll semantics: the scope itself never matches
        return [node for node in matcher(base) if node is not scope]

    def xpath(self, expression: str, scope: Node | None = None) -> list[Node]:
        base = scope if scope is not None else self._html
        try:
            results = base.xpath(expression)
        except etree.XPathError as exc:
            raise ValueError(f"Invalid XPath {expression!r}: {exc}") from exc
        if not isinstance(results, list):
            return []
        return [r for r in results if etree.iselement(r) and isinstance(r.tag, str)]

    def element_by_id(self, element_id: str) -> Node | None:
        matches = self._html.xpath("//*[@id=$value]", value=element_id)
        return matches[0] if matches else None
