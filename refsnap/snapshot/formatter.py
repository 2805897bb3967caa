"""SnapshotFormatter: renders snapshot lines and header text."""

from __future__ import annotations

from collections.abc import Sequence

from refsnap.core.types import EMPTY_MARKER, SnapshotMode
from refsnap.dom.base import HostDocument
from refsnap.snapshot.roles import truncate

_INDENT = "  "
TEXT_DISPLAY_LIMIT = 80


class SnapshotFormatter:
    """
    Produces the compact line format:

        @ref:0 button "Submit" (disabled)
          heading "Billing" [level=2]
            text "Cards are charged on the first of the month"

    and, in outline mode:

        @ref:0 main "Docs" [120 words, 4 links]
          list [3 items]
    """

    def __init__(self, name_limit: int = 50, text_limit: int = TEXT_DISPLAY_LIMIT) -> None:
        self._name_limit = name_limit
        self._text_limit = text_limit

    def node_line(
        self,
        indent: int,
        role: str,
        name: str = "",
        *,
        ref: str | None = None,
        level: int | None = None,
        states: Sequence[str] = (),
        details: Sequence[str] = (),
    ) -> str:
        line = _INDENT * indent
        if ref:
            line += f"{ref} "
        line += role
        if name:
            line += f' "{truncate(name, self._name_limit)}"'
        if level is not None:
            line += f" [level={level}]"
        if states:
            line += f" ({', '.join(states)})"
        if details:
            line += f" [{', '.join(details)}]"
        return line

    def text_line(self, indent: int, text: str) -> str:
        return f'{_INDENT * indent}text "{truncate(text, self._text_limit)}"'

    def children_marker(self, indent: int, total: int, shown: int) -> str:
        return (
            f"{_INDENT * indent}... {total} children: {shown} shown, "
            "rest hidden by depth/visibility"
        )

    def lines_marker(self, max_lines: int) -> str:
        return f"... output truncated at {max_lines} lines"

    # ------------------------------------------------------------------
    # Headers
    # ------------------------------------------------------------------

    def page_header(self, document: HostDocument) -> str:
        viewport = document.viewport
        size = f"{viewport[0]}x{viewport[1]}" if viewport else "unknown"
        return f"PAGE: {document.title or '(untitled)'} | {document.url or '(no url)'} | viewport={size}"

    def snapshot_header(
        self, elements: int, depth: int, max_depth: int, mode: SnapshotMode
    ) -> str:
        return f"SNAPSHOT: elements={elements} depth={depth}/{max_depth} mode={mode.value}"

    def outline_header(self, landmarks: int, sections: int, headings: int, words: int) -> str:
        return f"OUTLINE: landmarks={landmarks} sections={sections} headings={headings} words={words}"

    def assemble(self, headers: Sequence[str], lines: Sequence[str]) -> str:
        """Join headers and body; a body with no lines is the empty marker alone."""
        if not lines:
            return EMPTY_MARKER
        if headers:
            return "\n".join([*headers, "", *lines])
        return "\n".join(lines)
