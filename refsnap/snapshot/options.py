"""Snapshot options and their per-mode defaults."""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from typing import Any

from refsnap.core.errors import ErrorCode, SnapshotConfigError
from refsnap.core.types import SnapshotMode

DEFAULT_MAX_DEPTH: dict[SnapshotMode, int] = {
    SnapshotMode.INTERACTIVE: 10,
    SnapshotMode.ALL: 50,
    SnapshotMode.OUTLINE: 50,
}
DEFAULT_MAX_CHILDREN = 100
DEFAULT_MAX_LINES = 500


@dataclass(frozen=True)
class SnapshotOptions:
    mode: SnapshotMode = SnapshotMode.INTERACTIVE
    max_depth: int | None = None  # None -> DEFAULT_MAX_DEPTH[mode]
    include_hidden: bool = False
    max_children: int = DEFAULT_MAX_CHILDREN
    max_lines: int = DEFAULT_MAX_LINES
    max_tokens: int | None = None
    include_header: bool = True

    @classmethod
    def for_mode(cls, mode: SnapshotMode | str = SnapshotMode.INTERACTIVE, **overrides: Any) -> SnapshotOptions:
        return cls(mode=_coerce_mode(mode)).with_overrides(**overrides)

    def with_overrides(self, **overrides: Any) -> SnapshotOptions:
        known = {f.name for f in fields(self)}
        unknown = set(overrides) - known
        if unknown:
            raise SnapshotConfigError(
                f"Unknown snapshot option(s): {', '.join(sorted(unknown))}",
                ErrorCode.INVALID_OPTIONS,
                {"unknown": sorted(unknown)},
            )
        # None means "keep the current value", except where None is meaningful
        updates = {
            k: v for k, v in overrides.items()
            if v is not None or k in ("max_depth", "max_tokens")
        }
        if "mode" in updates:
            updates["mode"] = _coerce_mode(updates["mode"])
        return replace(self, **updates).validated()

    @property
    def effective_max_depth(self) -> int:
        if self.max_depth is not None:
            return self.max_depth
        return DEFAULT_MAX_DEPTH[self.mode]

    def validated(self) -> SnapshotOptions:
        problems = []
        if self.max_depth is not None and self.max_depth < 0:
            problems.append("max_depth must be >= 0")
        if self.max_children < 1:
            problems.append("max_children must be >= 1")
        if self.max_lines < 1:
            problems.append("max_lines must be >= 1")
        if self.max_tokens is not None and self.max_tokens < 1:
            problems.append("max_tokens must be >= 1")
        if problems:
            raise SnapshotConfigError(
                "Invalid snapshot options: " + "; ".join(problems),
                ErrorCode.INVALID_OPTIONS,
                {"problems": problems},
            )
        return self


def _coerce_mode(mode: SnapshotMode | str) -> SnapshotMode:
    try:
        return SnapshotMode(mode)
    except ValueError as exc:
        valid = ", ".join(m.value for m in SnapshotMode)
        raise SnapshotConfigError(
            f"Unknown snapshot mode {mode!r} (expected one of: {valid})",
            ErrorCode.INVALID_OPTIONS,
            {"mode": str(mode)},
        ) from exc
