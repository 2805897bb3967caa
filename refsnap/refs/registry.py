"""Ref registries: issue ``@ref:<n>`` handles and resolve them back to elements."""

from __future__ import annotations

import logging
import re
import weakref
from abc import ABC, abstractmethod
from typing import Any, Callable

from refsnap.dom.base import Node

logger = logging.getLogger(__name__)

REF_PREFIX = "@ref:"
_REF_RE = re.compile(r"^@ref:(\d+)$")

AttachedCheck = Callable[[Node], bool]


def is_ref(selector: str) -> bool:
    """True when ``selector`` uses ref syntax (valid or not)."""
    return selector.startswith(REF_PREFIX)


def ref_index(ref: str) -> int | None:
    match = _REF_RE.match(ref)
    return int(match.group(1)) if match else None


class BaseRefRegistry(ABC):
    """
    Maps ``@ref:<n>`` strings to elements for one generation.

    A generation ends at ``clear()``: every entry is dropped and the counter
    restarts at zero, so refs from an earlier generation never resolve even
    if their element is still attached. Lookups never raise; a stale entry
    is removed the first time it is read.

    Not safe for concurrent mutation. Use one registry per session.
    """

    def __init__(self, is_attached: AttachedCheck, *, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be positive")
        self._is_attached = is_attached
        self._max_entries = max_entries
        self._entries: dict[str, Any] = {}
        self._counter = 0
        self._generation = 0

    @abstractmethod
    def _wrap(self, element: Node) -> Any: ...

    @abstractmethod
    def _unwrap(self, entry: Any) -> Node | None:
        """The element behind an entry, or None once it has been reclaimed."""

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, ref: str) -> Node | None:
        entry = self._entries.get(ref)
        if entry is None:
            return None
        element = self._unwrap(entry)
        if element is None or not self._is_attached(element):
            del self._entries[ref]
            logger.debug("Dropped stale ref %s", ref)
            return None
        return element

    def set(self, ref: str, element: Node) -> None:
        self._entries[ref] = self._wrap(element)
        index = ref_index(ref)
        if index is not None and index >= self._counter:
            self._counter = index + 1
        self._evict()

    def generate_ref(self, element: Node) -> str:
        for ref, entry in self._entries.items():
            if self._unwrap(entry) is element:
                return ref

        ref = f"{REF_PREFIX}{self._counter}"
        self._counter += 1
        self._entries[ref] = self._wrap(element)
        self._evict()
        return ref

    def discard(self, ref: str) -> None:
        """Forget one ref; the counter is unchanged so the handle is not reissued."""
        self._entries.pop(ref, None)

    def clear(self) -> None:
        self._entries.clear()
        self._counter = 0
        self._generation += 1

    def refs(self) -> list[str]:
        """Refs currently held, oldest first (liveness not checked)."""
        return list(self._entries)

    @property
    def generation(self) -> int:
        return self._generation

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, ref: object) -> bool:
        return isinstance(ref, str) and self.get(ref) is not None

    def _evict(self) -> None:
        if self._max_entries is None:
            return
        while len(self._entries) > self._max_entries:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug("Evicted %s (registry holds at most %d refs)", oldest, self._max_entries)


class RefRegistry(BaseRefRegistry):
    """Holds elements strongly; liveness is the attachment check alone."""

    def _wrap(self, element: Node) -> Node:
        return element

    def _unwrap(self, entry: Node) -> Node:
        return entry


class WeakRefRegistry(BaseRefRegistry):
    """
    Holds weak references so the registry never keeps a detached element
    alive. Element handles must support ``weakref.ref``.
    """

    def _wrap(self, element: Node) -> weakref.ref:
        try:
            return weakref.ref(element)
        except TypeError as exc:
            raise TypeError(
                f"{type(element).__name__} handles cannot be weakly referenced; "
                "use RefRegistry instead"
            ) from exc

    def _unwrap(self, entry: weakref.ref) -> Node | None:
        return entry()
