"""Shared types and dataclasses for refsnap."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Literal tree text returned when nothing qualified for output.
EMPTY_MARKER = "Empty page"


class SnapshotMode(str, Enum):
    INTERACTIVE = "interactive"  # refs only
    ALL = "all"  # interactive + structural/text context
    OUTLINE = "outline"  # landmarks, sections, headings, lists and code blocks


class SnapshotQuality(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Importance(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    UTILITY = "utility"


@dataclass
class BoundingBox:
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def from_raw(cls, raw: dict[str, Any] | None) -> BoundingBox | None:
        if not raw:
            return None
        return cls(
            x=round(raw.get("x", 0)),
            y=round(raw.get("y", 0)),
            width=round(raw.get("width", 0)),
            height=round(raw.get("height", 0)),
        )

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


@dataclass
class ComputedStyle:
    """The subset of rendering state the visibility classifier looks at."""

    display: str = ""
    visibility: str = ""
    opacity: str = ""

    @classmethod
    def from_inline(cls, style_attr: str | None) -> ComputedStyle:
        """Parse an inline ``style="..."`` attribute (last declaration wins)."""
        style = cls()
        if not style_attr:
            return style
        for declaration in style_attr.split(";"):
            prop, sep, value = declaration.partition(":")
            if not sep:
                continue
            prop = prop.strip().lower()
            value = value.replace("!important", "").strip().lower()
            if prop == "display":
                style.display = value
            elif prop == "visibility":
                style.visibility = value
            elif prop == "opacity":
                style.opacity = value
        return style


@dataclass
class RefInfo:
    """Metadata recorded for every issued ref."""

    selector: str
    role: str
    name: str | None = None  # untruncated accessible name
    bounding_box: BoundingBox | None = None
    in_viewport: bool | None = None
    importance: Importance | None = None
    context: str | None = None  # nearest enclosing landmark, e.g. 'form "Login"'

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"selector": self.selector, "role": self.role}
        if self.name:
            data["name"] = self.name
        if self.bounding_box is not None:
            data["bbox"] = self.bounding_box.to_dict()
        if self.in_viewport is not None:
            data["inViewport"] = self.in_viewport
        if self.importance is not None:
            data["importance"] = self.importance.value
        if self.context:
            data["context"] = self.context
        return data


@dataclass
class SnapshotMetadata:
    total_interactive_elements: int = 0  # interactive elements seen, emitted or not
    captured_elements: int = 0  # refs issued by this snapshot
    total_elements: int = 0  # element nodes visited
    quality: SnapshotQuality = SnapshotQuality.HIGH
    depth_limited: bool = False  # any budget cut output short
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalInteractiveElements": self.total_interactive_elements,
            "capturedElements": self.captured_elements,
            "totalElements": self.total_elements,
            "quality": self.quality.value,
            "depthLimited": self.depth_limited,
            "warnings": list(self.warnings),
        }


@dataclass
class SnapshotResult:
    """What the builder returns: tree text, ref metadata, quality metadata."""

    tree: str
    refs: dict[str, RefInfo] = field(default_factory=dict)
    metadata: SnapshotMetadata = field(default_factory=SnapshotMetadata)

    @property
    def is_empty(self) -> bool:
        return self.tree == EMPTY_MARKER

    def to_dict(self) -> dict[str, Any]:
        return {
            "tree": self.tree,
            "refs": {ref: info.to_dict() for ref, info in self.refs.items()},
            "metadata": self.metadata.to_dict(),
        }
