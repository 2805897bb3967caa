"""Visibility classifier."""

from __future__ import annotations

from typing import Callable

from refsnap.core.types import ComputedStyle
from refsnap.dom.base import HostDocument, Node

StyleLookup = Callable[[Node], "ComputedStyle | None"]
VisibilityCheck = Callable[[Node], bool]


def is_visible(node: Node, style_lookup: StyleLookup) -> bool:
    """
    False when the node's effective style is display:none, visibility:hidden
    or fully transparent. No style information means visible.
    """
    style = style_lookup(node)
    if style is None:
        return True
    if style.display == "none":
        return False
    if style.visibility in ("hidden", "collapse"):
        return False
    return not _transparent(style.opacity)


def _transparent(opacity: str) -> bool:
    """True for a zero opacity in either number or percentage form."""
    if not opacity:
        return False
    try:
        return float(opacity.rstrip("%")) <= 0
    except ValueError:
        return False


def visibility_check(document: HostDocument, *, include_hidden: bool = False) -> VisibilityCheck:
    """Build the per-traversal ``is_visible(node)`` predicate for a document."""
    if include_hidden:
        return lambda node: True
    return lambda node: is_visible(node, document.style)
