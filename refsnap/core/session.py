"""RefSnap: session-scoped facade over the snapshot engine."""

from __future__ import annotations

import logging
from typing import Any

from playwright.async_api import Page

from refsnap.core.types import RefInfo, SnapshotMode, SnapshotResult
from refsnap.dom.base import HostDocument, Node
from refsnap.dom.capture import capture_page
from refsnap.refs.registry import BaseRefRegistry, RefRegistry, WeakRefRegistry
from refsnap.refs.resolver import SelectorResolver
from refsnap.snapshot.builder import SnapshotBuilder
from refsnap.snapshot.formatter import SnapshotFormatter
from refsnap.snapshot.options import SnapshotOptions
from refsnap.snapshot.token_budget import TokenBudget
from refsnap.wait import DEFAULT_INTERVAL, DEFAULT_TIMEOUT, ElementState, wait_for_element

logger = logging.getLogger(__name__)


class RefSnap:
    """
    One automation session driving one document.

    Usage:
        snap = await RefSnap.from_page(page)
        result = snap.snapshot()
        # result.tree -> send to the agent
        element = snap.resolve("@ref:3")

    Each ``snapshot()`` starts a new ref generation by default, so refs from
    an earlier page state can never alias a new element.
    """

    def __init__(
        self,
        document: HostDocument,
        *,
        weak_refs: bool = False,
        max_refs: int | None = None,
        registry: BaseRefRegistry | None = None,
    ) -> None:
        self._document = document
        if registry is None:
            registry_cls = WeakRefRegistry if weak_refs else RefRegistry
            registry = registry_cls(self._is_attached, max_entries=max_refs)
        self._registry = registry
        self._formatter = SnapshotFormatter()
        self._budget = TokenBudget()
        self._last: SnapshotResult | None = None
        self._wire()

    @classmethod
    async def from_page(cls, page: Page, **kwargs: Any) -> RefSnap:
        return cls(await capture_page(page), **kwargs)

    def _wire(self) -> None:
        self._builder = SnapshotBuilder(
            self._document,
            self._registry,
            formatter=self._formatter,
            token_budget=self._budget,
        )
        self._resolver = SelectorResolver(self._document, self._registry)

    def _is_attached(self, node: Node) -> bool:
        return self._document.is_attached(node)

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def document(self) -> HostDocument:
        return self._document

    @property
    def registry(self) -> BaseRefRegistry:
        return self._registry

    @property
    def resolver(self) -> SelectorResolver:
        return self._resolver

    @property
    def last_snapshot(self) -> SnapshotResult | None:
        return self._last

    # ------------------------------------------------------------------
    # Snapshots and lookups
    # ------------------------------------------------------------------

    def snapshot(
        self,
        *,
        mode: SnapshotMode | str = SnapshotMode.INTERACTIVE,
        root: Node | None = None,
        fresh: bool = True,
        **options: Any,
    ) -> SnapshotResult:
        """
        Build a snapshot. ``fresh`` clears the registry first; pass False to
        keep the current generation (existing refs stay valid and reused).
        Remaining keyword arguments are SnapshotOptions fields.
        """
        snapshot_options = SnapshotOptions.for_mode(mode, **options)
        if fresh:
            self._registry.clear()
        result = self._builder.build(snapshot_options, root=root)
        self._last = result
        return result

    def resolve(self, selector: str, root: Node | None = None) -> Node | None:
        return self._resolver.resolve(selector, root)

    def resolve_all(self, selector: str, root: Node | None = None) -> list[Node]:
        return self._resolver.resolve_all(selector, root)

    def ref_info(self, ref: str) -> RefInfo | None:
        """Metadata recorded for ``ref`` by the most recent snapshot."""
        if self._last is None:
            return None
        return self._last.refs.get(ref)

    # ------------------------------------------------------------------
    # Document lifecycle
    # ------------------------------------------------------------------

    def attach(self, document: HostDocument, *, rehydrate: bool = False) -> None:
        """
        Switch to a new document and start a new ref generation.

        With ``rehydrate``, every ref of the last snapshot whose selector
        still matches in the new document is re-pointed at that match, so
        an agent can keep using refs across a page re-capture.
        """
        previous = self._last
        self._document = document
        self._registry.clear()
        self._wire()

        if not rehydrate or previous is None:
            self._last = None
            return

        restored = 0
        for ref, info in previous.refs.items():
            element = self._resolver.resolve(info.selector)
            if element is not None:
                self._registry.set(ref, element)
                restored += 1
        logger.debug("Rehydrated %d of %d refs", restored, len(previous.refs))

    async def refresh(self, page: Page, *, rehydrate: bool = True) -> HostDocument:
        """Re-capture ``page`` and attach the result."""
        document = await capture_page(page)
        self.attach(document, rehydrate=rehydrate)
        return document

    async def wait_for(
        self,
        selector: str,
        *,
        state: ElementState | str = ElementState.VISIBLE,
        timeout: float = DEFAULT_TIMEOUT,
        interval: float = DEFAULT_INTERVAL,
        page: Page | None = None,
    ) -> Node | None:
        """
        Poll until ``selector`` reaches ``state``. With ``page``, the page is
        re-captured before every attempt; otherwise the current document is
        polled as-is (useful when something else mutates it in place).
        """
        refresh = None
        if page is not None:
            async def refresh() -> None:
                await self.refresh(page)

        return await wait_for_element(
            lambda: self._resolver,
            selector,
            state=state,
            timeout=timeout,
            interval=interval,
            refresh=refresh,
        )

    def reset(self) -> None:
        """Forget the last snapshot and start a new ref generation."""
        self._registry.clear()
        self._last = None
