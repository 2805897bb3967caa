"""Structural CSS selector generation for RefInfo records."""

from __future__ import annotations

import re

from refsnap.dom.base import HostDocument, Node

# Path selectors stop after this many steps
_MAX_PATH_STEPS = 4
_MAX_CLASS_LENGTH = 30

_CSS_SPECIAL_RE = re.compile(r"([^\w-])")
# Hashed class names (css-modules, styled-components) are too fragile to keep
_GENERATED_CLASS_RE = re.compile(r"^(_.*|(?=.*\d)[a-z0-9]{6,})$", re.IGNORECASE)


def css_escape(value: str) -> str:
    return _CSS_SPECIAL_RE.sub(r"\\\1", value)


def generate_selector(document: HostDocument, node: Node) -> str:
    """
    Prefer ``#id``, then ``[data-testid]``, else a short tag/class/nth-of-type
    path of at most four steps ending at the body.
    """
    element_id = document.attribute(node, "id")
    if element_id:
        return f"#{css_escape(element_id)}"

    test_id = document.attribute(node, "data-testid")
    if test_id:
        escaped = test_id.replace("\\", "\\\\").replace('"', '\\"')
        return f'[data-testid="{escaped}"]'

    parts: list[str] = []
    current: Node | None = node
    while current is not None and document.tag(current) not in ("body", "html"):
        parts.insert(0, _path_step(document, current))
        if len(parts) >= _MAX_PATH_STEPS:
            break
        current = document.parent(current)
    return " > ".join(parts)


def _path_step(document: HostDocument, node: Node) -> str:
    tag = document.tag(node)
    step = tag

    classes = [
        c for c in (document.attribute(node, "class") or "").split()
        if len(c) < _MAX_CLASS_LENGTH and not _GENERATED_CLASS_RE.match(c)
    ][:2]
    if classes:
        step += "." + ".".join(css_escape(c) for c in classes)

    parent = document.parent(node)
    if parent is not None:
        same_tag = [s for s in document.children(parent) if document.tag(s) == tag]
        if len(same_tag) > 1:
            index = next(i for i, s in enumerate(same_tag) if s is node) + 1
            step += f":nth-of-type({index})"
    return step
