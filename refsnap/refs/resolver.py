"""Selector resolver: turns a ref, XPath or CSS string into a live element."""

from __future__ import annotations

import logging

from refsnap.dom.base import HostDocument, Node
from refsnap.refs.registry import BaseRefRegistry, is_ref

logger = logging.getLogger(__name__)


def _is_xpath(selector: str) -> bool:
    return selector.startswith("/") or selector.startswith("(")


class SelectorResolver:
    """
    ``@ref:<n>`` goes to the registry, a leading ``/`` or ``(`` is XPath and
    anything else is CSS. Every miss is ``None``, never an exception; callers
    build their own "ref expired, take a new snapshot" style errors.
    """

    def __init__(self, document: HostDocument, registry: BaseRefRegistry) -> None:
        self._document = document
        self._registry = registry

    @property
    def document(self) -> HostDocument:
        return self._document

    def resolve(self, selector: str, root: Node | None = None) -> Node | None:
        selector = selector.strip()
        if not selector:
            return None

        if is_ref(selector):
            element = self._registry.get(selector)
            if element is None:
                logger.debug("Ref %s is not live", selector)
            elif root is not None and not self._within(element, root):
                return None
            return element

        matches = self._query(selector, root, first_only=True)
        return matches[0] if matches else None

    def resolve_all(self, selector: str, root: Node | None = None) -> list[Node]:
        selector = selector.strip()
        if not selector:
            return []
        if is_ref(selector):
            element = self.resolve(selector, root)
            return [element] if element is not None else []
        return self._query(selector, root, first_only=False)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query(self, selector: str, root: Node | None, *, first_only: bool) -> list[Node]:
        if _is_xpath(selector):
            return self._xpath(selector, root, first_only=first_only)
        try:
            matches = self._document.query_all(selector, root)
        except ValueError as exc:
            logger.debug("Unresolvable selector %r: %s", selector, exc)
            return []
        if not matches:
            logger.debug("No element matches %r", selector)
        return matches

    def _xpath(self, expression: str, root: Node | None, *, first_only: bool) -> list[Node]:
        # Union branches are tried left to right; the first with a hit wins
        # for resolve(), all hits are collected for resolve_all().
        branches = [expression]
        if "|" in expression:
            branches = [b.strip() for b in expression.split("|") if b.strip()]

        found: list[Node] = []
        valid_branches = 0
        for branch in branches:
            try:
                matches = self._document.xpath(branch, root)
            except ValueError as exc:
                logger.debug("Invalid XPath %r: %s", branch, exc)
                continue
            valid_branches += 1
            for node in matches:
                if not any(node is seen for seen in found):
                    found.append(node)
            if first_only and found:
                break

        if valid_branches == 0 and len(branches) > 1:
            # The '|' was inside a literal or predicate, not a union
            try:
                found = self._document.xpath(expression, root)
            except ValueError:
                return []
        return found

    def _within(self, element: Node, root: Node) -> bool:
        if element is root:
            return True
        return any(ancestor is root for ancestor in self._document.ancestors(element))
