"""Live page capture via Playwright.

One ``page.evaluate`` call serialises the rendered DOM (tags, attributes,
text, computed style, geometry) and the result is rebuilt as an lxml tree
that the synchronous engine can walk.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import lxml.html
from lxml import etree
from playwright.async_api import Page

from refsnap.core.types import BoundingBox, ComputedStyle
from refsnap.dom.base import Node
from refsnap.dom.html import HtmlDocument

logger = logging.getLogger(__name__)

_MAX_CAPTURE_DEPTH = 256

_NAME_RE = re.compile(r"^[A-Za-z_][\w.\-]*$")
_XML_UNSAFE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f]")

_CAPTURE_JS = """(maxDepth) => {
    function serialize(el, depth) {
        const node = {
            tag: el.tagName.toLowerCase(),
            attrs: {},
            text: '',
            tail: '',
            children: [],
        };
        for (const attr of el.attributes) {
            node.attrs[attr.name] = attr.value;
        }

        // Live form state wins over the markup it was parsed from
        if (el.tagName === 'INPUT' || el.tagName === 'TEXTAREA' || el.tagName === 'SELECT') {
            if (el.type === 'checkbox' || el.type === 'radio') {
                if (el.checked) node.attrs.checked = '';
                else delete node.attrs.checked;
            } else if (typeof el.value === 'string' && el.value) {
                node.attrs.value = el.value;
            }
        }

        const style = window.getComputedStyle(el);
        node.style = {
            display: style.display,
            visibility: style.visibility,
            opacity: style.opacity,
        };
        const rect = el.getBoundingClientRect();
        node.bbox = { x: rect.x, y: rect.y, width: rect.width, height: rect.height };

        let last = null;
        for (const child of el.childNodes) {
            if (child.nodeType === Node.TEXT_NODE) {
                if (last) last.tail += child.textContent;
                else node.text += child.textContent;
            } else if (child.nodeType === Node.ELEMENT_NODE && depth < maxDepth) {
                last = serialize(child, depth + 1);
                node.children.push(last);
            }
        }
        return node;
    }

    return {
        title: document.title || '',
        url: location.href,
        viewport: { width: window.innerWidth, height: window.innerHeight },
        root: document.documentElement ? serialize(document.documentElement, 0) : null,
    };
}"""


class CapturedDocument(HtmlDocument):
    """An HtmlDocument that reports the styles and geometry of the live page."""

    def __init__(
        self,
        html_root: etree._Element,
        *,
        url: str = "",
        title: str | None = None,
        viewport: tuple[int, int] | None = None,
        styles: dict[Node, ComputedStyle] | None = None,
        boxes: dict[Node, BoundingBox] | None = None,
    ) -> None:
        super().__init__(html_root, url=url, title=title, viewport=viewport)
        self._styles = styles or {}
        self._boxes = boxes or {}

    def style(self, node: Node) -> ComputedStyle | None:
        captured = self._styles.get(node)
        if captured is not None:
            return captured
        return super().style(node)

    @property
    def styled_count(self) -> int:
        """Elements that carry a captured computed style."""
        return len(self._styles)

    def bounding_box(self, node: Node) -> BoundingBox | None:
        return self._boxes.get(node)


def _clean(text: str | None) -> str:
    return _XML_UNSAFE_RE.sub("", text or "")


def build_document(raw: dict[str, Any] | None) -> CapturedDocument:
    """Rebuild the serialised page as a CapturedDocument."""
    raw = raw or {}
    viewport_raw = raw.get("viewport") or {}
    viewport = None
    if viewport_raw:
        viewport = (int(viewport_raw.get("width", 0)), int(viewport_raw.get("height", 0)))

    styles: dict[Node, ComputedStyle] = {}
    boxes: dict[Node, BoundingBox] = {}

    def convert(node_raw: dict[str, Any], parent: etree._Element | None) -> etree._Element:
        tag = node_raw.get("tag") or "div"
        if not _NAME_RE.match(tag):
            tag = "div"
        attrs = {
            name: _clean(value)
            for name, value in (node_raw.get("attrs") or {}).items()
            if _NAME_RE.match(name)
        }
        if parent is None:
            el = lxml.html.Element(tag, attrs)
        else:
            el = etree.SubElement(parent, tag, attrs)
        el.text = _clean(node_raw.get("text")) or None
        el.tail = _clean(node_raw.get("tail")) or None

        style_raw = node_raw.get("style")
        if style_raw:
            styles[el] = ComputedStyle(
                display=str(style_raw.get("display", "")),
                visibility=str(style_raw.get("visibility", "")),
                opacity=str(style_raw.get("opacity", "")),
            )
        box = BoundingBox.from_raw(node_raw.get("bbox"))
        if box is not None:
            boxes[el] = box

        for child_raw in node_raw.get("children", []):
            convert(child_raw, el)
        return el

    root_raw = raw.get("root")
    if root_raw:
        html_root = convert(root_raw, None)
    else:
        html_root = lxml.html.document_fromstring("<html><head></head><body></body></html>")

    return CapturedDocument(
        html_root,
        url=raw.get("url", ""),
        title=raw.get("title", ""),
        viewport=viewport,
        styles=styles,
        boxes=boxes,
    )


async def capture_page(page: Page) -> CapturedDocument:
    """Serialise the current state of ``page`` into a CapturedDocument."""
    raw = await page.evaluate(_CAPTURE_JS, _MAX_CAPTURE_DEPTH)
    document = build_document(raw)
    logger.debug("Captured %s (%d styled elements)", document.url, document.styled_count)
    return document
