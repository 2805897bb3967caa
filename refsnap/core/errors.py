"""Exceptions raised by refsnap.

Only configuration-level problems are exceptional. Stale refs, unmatched
selectors and empty pages are reported as ``None`` or ``EMPTY_MARKER``.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_OPTIONS = "INVALID_OPTIONS"
    INVALID_ROOT = "INVALID_ROOT"
    TRAVERSAL_ERROR = "TRAVERSAL_ERROR"
    TIMEOUT = "TIMEOUT"


class RefSnapError(Exception):
    """Base class for every refsnap exception."""


class SnapshotConfigError(RefSnapError):
    def __init__(
        self,
        message: str,
        code: ErrorCode,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code.value,
            "message": str(self),
            "details": self.details,
        }


class WaitTimeoutError(SnapshotConfigError):
    """An element did not reach the requested state before the timeout."""

    def __init__(
        self,
        selector: str,
        state: str,
        timeout: float,
        last_state: dict[str, bool] | None = None,
    ) -> None:
        message = f"Timed out after {timeout:g}s waiting for {selector!r} to be {state}"
        if last_state is not None:
            flags = ", ".join(f"{k}={v}" for k, v in last_state.items())
            message += f" (last seen: {flags})"
        else:
            message += " (element never found)"
        super().__init__(
            message,
            ErrorCode.TIMEOUT,
            {"selector": selector, "state": state, "timeout": timeout, "lastState": last_state},
        )
        self.selector = selector
        self.state = state
        self.last_state = last_state
