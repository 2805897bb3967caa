"""Role and accessible-name resolution.

Not a full accessible-name computation: a fixed, ordered set of rules that
covers the elements an automation client actually addresses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from refsnap.dom.base import HostDocument, Node

# Implicit ARIA roles by tag
TAG_ROLES: dict[str, str] = {
    "a": "link",
    "article": "article",
    "aside": "complementary",
    "button": "button",
    "dialog": "dialog",
    "footer": "contentinfo",
    "form": "form",
    "h1": "heading",
    "h2": "heading",
    "h3": "heading",
    "h4": "heading",
    "h5": "heading",
    "h6": "heading",
    "header": "banner",
    "img": "img",
    "input": "textbox",
    "li": "listitem",
    "main": "main",
    "nav": "navigation",
    "ol": "list",
    "option": "option",
    "progress": "progressbar",
    "section": "region",
    "select": "combobox",
    "summary": "button",
    "table": "table",
    "textarea": "textbox",
    "ul": "list",
}

# <input type=...> refinement; unknown types fall back to textbox
INPUT_TYPE_ROLES: dict[str, str | None] = {
    "button": "button",
    "checkbox": "checkbox",
    "email": "textbox",
    "hidden": None,
    "image": "button",
    "number": "spinbutton",
    "password": "textbox",
    "radio": "radio",
    "range": "slider",
    "reset": "button",
    "search": "searchbox",
    "submit": "button",
    "tel": "textbox",
    "text": "textbox",
    "url": "textbox",
}

INTERACTIVE_ROLES = frozenset({
    "button",
    "link",
    "textbox",
    "checkbox",
    "radio",
    "combobox",
    "listbox",
    "menuitem",
    "option",
    "slider",
    "searchbox",
    "switch",
})

LANDMARK_ROLES = frozenset({
    "banner",
    "complementary",
    "contentinfo",
    "form",
    "main",
    "navigation",
    "region",
    "search",
})

_HEADING_TAGS = frozenset({"h1", "h2", "h3", "h4", "h5", "h6"})
_LABELABLE_TAGS = frozenset({"input", "textarea", "select"})
_VALUE_NAMED_INPUTS = frozenset({"submit", "button", "reset"})
_TEXT_NAMED_ROLES = frozenset({"button", "link"})

NAME_DISPLAY_LIMIT = 50

_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RoleInfo:
    role: str
    level: int | None = None  # headings only

    @property
    def interactive(self) -> bool:
        return self.role in INTERACTIVE_ROLES


def normalize_text(text: str | None) -> str:
    return _WHITESPACE_RE.sub(" ", text or "").strip()


def truncate(text: str, limit: int = NAME_DISPLAY_LIMIT) -> str:
    """Collapse whitespace and cut to ``limit`` characters with an ellipsis."""
    cleaned = normalize_text(text)
    if len(cleaned) <= limit:
        return cleaned
    return cleaned[: limit - 3] + "..."


def input_type(document: HostDocument, node: Node) -> str:
    return (document.attribute(node, "type") or "text").strip().lower()


def resolve_role(document: HostDocument, node: Node) -> RoleInfo | None:
    """Explicit role attribute, else the tag table, else None."""
    tag = document.tag(node)

    explicit = (document.attribute(node, "role") or "").split()
    if explicit:
        role = explicit[0].lower()
    elif tag == "input":
        role = INPUT_TYPE_ROLES.get(input_type(document, node), "textbox")
    else:
        role = TAG_ROLES.get(tag)

    if not role:
        return None

    level = None
    if role == "heading":
        level = _heading_level(document, node, tag)
    return RoleInfo(role=role, level=level)


def _heading_level(document: HostDocument, node: Node, tag: str) -> int | None:
    if tag in _HEADING_TAGS:
        return int(tag[1])
    aria_level = document.attribute(node, "aria-level")
    if aria_level and aria_level.strip().isdigit():
        return int(aria_level.strip())
    return None


def resolve_name(document: HostDocument, node: Node, role: str | None = None) -> str:
    """Accessible name; first non-empty source wins."""
    tag = document.tag(node)

    aria_label = normalize_text(document.attribute(node, "aria-label"))
    if aria_label:
        return aria_label

    labelled_by = document.attribute(node, "aria-labelledby")
    if labelled_by:
        parts = []
        for ref_id in labelled_by.split():
            label_node = document.element_by_id(ref_id)
            if label_node is not None:
                parts.append(normalize_text(document.text_content(label_node)))
        joined = " ".join(p for p in parts if p)
        if joined:
            return joined

    if tag == "img":
        alt = normalize_text(document.attribute(node, "alt"))
        if alt:
            return alt

    if tag in ("button", "a") or (role in _TEXT_NAMED_ROLES and tag != "input"):
        text = normalize_text(document.text_content(node))
        if text:
            return text

    if tag == "input":
        kind = input_type(document, node)
        if kind in _VALUE_NAMED_INPUTS:
            return normalize_text(document.attribute(node, "value")) or kind

    if tag in _LABELABLE_TAGS:
        label = _associated_label(document, node)
        if label:
            return label
        placeholder = normalize_text(document.attribute(node, "placeholder"))
        if placeholder:
            return placeholder

    if tag in _HEADING_TAGS or role == "heading":
        text = normalize_text(document.text_content(node))
        if text:
            return text

    return normalize_text(document.attribute(node, "title"))


def _associated_label(document: HostDocument, node: Node) -> str:
    element_id = document.attribute(node, "id")
    if element_id:
        for label in document.query_all("label"):
            if document.attribute(label, "for") == element_id:
                return normalize_text(document.text_content(label))

    for ancestor in document.ancestors(node):
        if document.tag(ancestor) == "label":
            return _label_text_without_controls(document, ancestor)
    return ""


def _label_text_without_controls(document: HostDocument, label: Node) -> str:
    total = document.text_content(label)
    for descendant in document.iter_descendants(label):
        if descendant is not label and document.tag(descendant) in _LABELABLE_TAGS:
            control_text = document.text_content(descendant)
            if control_text:
                total = total.replace(control_text, "", 1)
    return normalize_text(total)
