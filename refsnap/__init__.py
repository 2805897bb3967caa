from refsnap.core.errors import ErrorCode, RefSnapError, SnapshotConfigError, WaitTimeoutError
from refsnap.core.session import RefSnap
from refsnap.core.types import (
    EMPTY_MARKER,
    BoundingBox,
    ComputedStyle,
    Importance,
    RefInfo,
    SnapshotMetadata,
    SnapshotMode,
    SnapshotQuality,
    SnapshotResult,
)
from refsnap.dom.base import HostDocument
from refsnap.dom.capture import CapturedDocument, capture_page
from refsnap.dom.html import HtmlDocument
from refsnap.refs.registry import REF_PREFIX, RefRegistry, WeakRefRegistry, is_ref
from refsnap.refs.resolver import SelectorResolver
from refsnap.snapshot.builder import SnapshotBuilder
from refsnap.snapshot.options import SnapshotOptions
from refsnap.wait import ElementState, wait_for_element

__all__ = [
    "RefSnap",
    "SnapshotBuilder",
    "SnapshotOptions",
    "SelectorResolver",
    "wait_for_element",
    "ElementState",
    # Types
    "EMPTY_MARKER",
    "BoundingBox",
    "ComputedStyle",
    "Importance",
    "RefInfo",
    "SnapshotMetadata",
    "SnapshotMode",
    "SnapshotQuality",
    "SnapshotResult",
    # Documents
    "HostDocument",
    "HtmlDocument",
    "CapturedDocument",
    "capture_page",
    # Refs
    "REF_PREFIX",
    "RefRegistry",
    "WeakRefRegistry",
    "is_ref",
    # Errors
    "ErrorCode",
    "RefSnapError",
    "SnapshotConfigError",
    "WaitTimeoutError",
]
