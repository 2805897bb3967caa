"""Bounded polling for element state: the one place refsnap suspends."""

from __future__ import annotations

import asyncio
import logging
import time
from enum import Enum
from typing import Awaitable, Callable

from refsnap.core.errors import ErrorCode, SnapshotConfigError, WaitTimeoutError
from refsnap.dom.base import Node
from refsnap.refs.resolver import SelectorResolver
from refsnap.snapshot.visibility import is_visible

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_INTERVAL = 0.1

RefreshHook = Callable[[], Awaitable[None]]


class ElementState(str, Enum):
    ATTACHED = "attached"
    DETACHED = "detached"
    VISIBLE = "visible"
    HIDDEN = "hidden"
    ENABLED = "enabled"


def _observe(resolver: SelectorResolver, element: Node) -> dict[str, bool]:
    document = resolver.document
    # Hidden if the element or any ancestor is hidden, as in snapshots
    visible = is_visible(element, document.style) and all(
        is_visible(ancestor, document.style) for ancestor in document.ancestors(element)
    )
    return {
        "attached": True,
        "visible": visible,
        "enabled": not (
            document.has_attribute(element, "disabled")
            or document.attribute(element, "aria-disabled") == "true"
        ),
    }


def _condition_met(state: ElementState, element: Node | None, observed: dict[str, bool] | None) -> bool:
    if state is ElementState.ATTACHED:
        return element is not None
    if state is ElementState.DETACHED:
        return element is None
    if state is ElementState.VISIBLE:
        return observed is not None and observed["visible"]
    if state is ElementState.HIDDEN:
        return observed is None or not observed["visible"]
    return observed is not None and observed["enabled"]


async def wait_for_element(
    resolver: SelectorResolver | Callable[[], SelectorResolver],
    selector: str,
    *,
    state: ElementState | str = ElementState.VISIBLE,
    timeout: float = DEFAULT_TIMEOUT,
    interval: float = DEFAULT_INTERVAL,
    refresh: RefreshHook | None = None,
) -> Node | None:
    """
    Poll ``selector`` until the element reaches ``state``.

    ``resolver`` may be a zero-argument callable so each attempt sees the
    current resolver after ``refresh`` (e.g. a page re-capture) swapped the
    document. Returns the element (None for detached/hidden when it is gone).
    Raises WaitTimeoutError with the last observed element state.
    """
    try:
        state = ElementState(state)
    except ValueError as exc:
        raise SnapshotConfigError(
            f"Unknown element state {state!r}",
            ErrorCode.INVALID_OPTIONS,
            {"state": str(state)},
        ) from exc
    deadline = time.monotonic() + timeout
    last_state: dict[str, bool] | None = None

    while True:
        if refresh is not None:
            await refresh()
        current = resolver() if callable(resolver) else resolver
        element = current.resolve(selector)
        observed = _observe(current, element) if element is not None else None
        if observed is not None:
            last_state = observed

        if _condition_met(state, element, observed):
            return element

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        await asyncio.sleep(min(interval, remaining))

    logger.debug("Timed out waiting for %s to be %s", selector, state.value)
    raise WaitTimeoutError(selector, state.value, timeout, last_state)
