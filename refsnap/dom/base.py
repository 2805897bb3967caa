"""Abstract host document: the capabilities the snapshot engine consumes."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any

from refsnap.core.types import BoundingBox, ComputedStyle

# Node handles are opaque to the engine; only the host knows what they are.
Node = Any


class HostDocument(ABC):
    """
    Everything the engine needs from a document tree.

    Handles passed to and returned from these methods are whatever the host
    uses for elements. The engine never creates or destroys them.
    """

    @property
    @abstractmethod
    def root(self) -> Node | None:
        """Default snapshot root (the body element), or None if there is none."""

    @property
    def title(self) -> str:
        return ""

    @property
    def url(self) -> str:
        return ""

    @property
    def viewport(self) -> tuple[int, int] | None:
        """(width, height) when the host renders, None for static documents."""
        return None

    @abstractmethod
    def children(self, node: Node) -> list[Node]:
        """Element children only, in document order."""

    @abstractmethod
    def parent(self, node: Node) -> Node | None: ...

    @abstractmethod
    def tag(self, node: Node) -> str:
        """Lower-case tag name."""

    @abstractmethod
    def attribute(self, node: Node, name: str) -> str | None: ...

    def has_attribute(self, node: Node, name: str) -> bool:
        return self.attribute(node, name) is not None

    @abstractmethod
    def attributes(self, node: Node) -> dict[str, str]: ...

    @abstractmethod
    def text_content(self, node: Node) -> str:
        """Concatenated descendant text, unnormalised."""

    @abstractmethod
    def is_attached(self, node: Node) -> bool:
        """Liveness check: is the node still part of this document?"""

    @abstractmethod
    def style(self, node: Node) -> ComputedStyle | None:
        """Effective rendering state, or None when unknown."""

    def bounding_box(self, node: Node) -> BoundingBox | None:
        return None

    @abstractmethod
    def query_all(self, selector: str, scope: Node | None = None) -> list[Node]:
        """CSS query; raises ``ValueError`` on invalid selector syntax."""

    def query(self, selector: str, scope: Node | None = None) -> Node | None:
        matches = self.query_all(selector, scope)
        return matches[0] if matches else None

    @abstractmethod
    def xpath(self, expression: str, scope: Node | None = None) -> list[Node]:
        """XPath query; raises ``ValueError`` on invalid expressions."""

    def element_by_id(self, element_id: str) -> Node | None:
        for node in self.iter_descendants(self.root):
            if self.attribute(node, "id") == element_id:
                return node
        return None

    def iter_descendants(self, node: Node | None) -> Iterable[Node]:
        """Pre-order walk of ``node`` and everything below it."""
        if node is None:
            return
        stack = [node]
        while stack:
            current = stack.pop()
            yield current
            stack.extend(reversed(self.children(current)))

    def ancestors(self, node: Node) -> Iterable[Node]:
        current = self.parent(node)
        while current is not None:
            yield current
            current = self.parent(current)
