"""SnapshotBuilder: walks the host document and produces a SnapshotResult."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any

from refsnap.core.errors import ErrorCode, RefSnapError, SnapshotConfigError
from refsnap.core.types import (
    Importance,
    RefInfo,
    SnapshotMetadata,
    SnapshotMode,
    SnapshotQuality,
    SnapshotResult,
)
from refsnap.dom.base import HostDocument, Node
from refsnap.refs.registry import BaseRefRegistry
from refsnap.snapshot.formatter import SnapshotFormatter
from refsnap.snapshot.options import SnapshotOptions
from refsnap.snapshot.roles import (
    LANDMARK_ROLES,
    RoleInfo,
    normalize_text,
    resolve_name,
    resolve_role,
)
from refsnap.snapshot.selectors import generate_selector
from refsnap.snapshot.token_budget import TokenBudget
from refsnap.snapshot.visibility import VisibilityCheck, visibility_check

logger = logging.getLogger(__name__)

# Non-interactive roles shown in "all" mode
_CONTEXT_ROLES = LANDMARK_ROLES | {"heading", "img", "article", "dialog", "list", "table"}

_CHECKABLE_ROLES = frozenset({"checkbox", "radio", "switch"})

# Roles whose name is their own text; descendants must not repeat it
_TEXT_NAMED_ROLES = frozenset({"button", "link", "heading", "option", "menuitem"})

_UTILITY_LANDMARKS = frozenset({"navigation", "banner", "contentinfo", "complementary"})
_PRIMARY_LANDMARKS = frozenset({"main", "form", "search", "dialog"})

# Outline mode: an id-carrying div becomes a region past this many words
_REGION_MIN_WORDS = 50
_CODE_LANGUAGE_RE = re.compile(r"(?:language-|lang-)(\w+)", re.IGNORECASE)

# Children of a text block may only be inline formatting
_INLINE_TAGS = frozenset({
    "abbr", "b", "bdi", "bdo", "br", "cite", "code", "data", "dfn", "em", "i",
    "kbd", "mark", "q", "s", "samp", "small", "span", "strong", "sub", "sup",
    "time", "u", "var", "wbr",
})


@dataclass
class _Frame:
    """One pending unit of traversal work."""

    node: Node
    depth: int
    indent: int
    landmark: tuple[str, str] | None = None  # nearest (role, name) landmark ancestor
    in_named: bool = False  # inside a node whose name already shows its text


@dataclass
class _Marker:
    indent: int
    total: int
    shown: int


@dataclass
class _Walk:
    """Mutable state for one build() call."""

    options: SnapshotOptions
    visible: VisibilityCheck
    lines: list[str] = field(default_factory=list)
    refs: dict[str, RefInfo] = field(default_factory=dict)
    skipped: list[Node] = field(default_factory=list)  # subtrees never visited
    elements: int = 0
    interactive_seen: int = 0  # ref-eligible nodes visited; sections in outline mode
    deepest: int = 0
    depth_cut: bool = False
    capped_parents: int = 0
    lines_exhausted: bool = False
    issued_before: set[str] = field(default_factory=set)  # refs held before this build
    # outline mode counters
    landmarks: int = 0
    headings: int = 0
    words: int = 0


class SnapshotBuilder:
    """
    Depth-first, pre-order traversal of one root.

    Interactive nodes (sections, in outline mode) get a ref from the registry
    the builder was given; the builder never clears it. The caller decides
    when a new generation starts.
    Budgets (depth, children per node, total lines, tokens) are reported in
    the result's metadata and never raise.
    """

    def __init__(
        self,
        document: HostDocument,
        registry: BaseRefRegistry,
        *,
        formatter: SnapshotFormatter | None = None,
        token_budget: TokenBudget | None = None,
    ) -> None:
        self._document = document
        self._registry = registry
        self._formatter = formatter or SnapshotFormatter()
        self._budget = token_budget or TokenBudget()

    @property
    def document(self) -> HostDocument:
        return self._document

    def build(
        self,
        options: SnapshotOptions | None = None,
        *,
        root: Node | None = None,
        **overrides: Any,
    ) -> SnapshotResult:
        options = (options or SnapshotOptions()).with_overrides(**overrides)
        root = self._validate_root(root)

        walk = _Walk(
            options=options,
            visible=visibility_check(self._document, include_hidden=options.include_hidden),
            issued_before=set(self._registry.refs()),
        )
        try:
            if options.mode is SnapshotMode.OUTLINE:
                walk.words = len(normalize_text(self._document.text_content(root)).split())
            self._traverse(root, walk)
            total_interactive = walk.interactive_seen + self._count_skipped_interactive(walk)
        except RefSnapError:
            raise
        except Exception as exc:
            raise SnapshotConfigError(
                f"Snapshot traversal failed: {exc}",
                ErrorCode.TRAVERSAL_ERROR,
                {"exception": type(exc).__name__},
            ) from exc

        return self._finish(walk, total_interactive)

    # ------------------------------------------------------------------
    # Traversal
    # ------------------------------------------------------------------

    def _validate_root(self, root: Node | None) -> Node:
        effective = root if root is not None else self._document.root
        if effective is None:
            raise SnapshotConfigError(
                "No root element available (document has no body)",
                ErrorCode.INVALID_ROOT,
            )
        if not self._document.is_attached(effective):
            raise SnapshotConfigError(
                "Snapshot root is not attached to the document",
                ErrorCode.INVALID_ROOT,
            )
        return effective

    def _traverse(self, root: Node, walk: _Walk) -> None:
        stack: list[_Frame | _Marker] = [_Frame(node=root, depth=0, indent=0)]

        while stack:
            item = stack.pop()

            if isinstance(item, _Marker):
                line = self._formatter.children_marker(item.indent, item.total, item.shown)
                if not self._emit(walk, line):
                    break
                continue

            if walk.lines_exhausted:
                walk.skipped.append(item.node)
                continue

            child_indent, child_frame = self._visit(item, walk)
            if child_frame is None:
                continue

            children = self._document.children(item.node)
            if not children:
                continue
            if item.depth + 1 > walk.options.effective_max_depth:
                walk.depth_cut = True
                walk.skipped.extend(children)
                continue

            shown = children[: walk.options.max_children]
            if len(children) > len(shown):
                walk.capped_parents += 1
                walk.skipped.extend(children[len(shown):])
                stack.append(_Marker(indent=child_indent, total=len(children), shown=len(shown)))
            for child in reversed(shown):
                stack.append(_Frame(
                    node=child,
                    depth=item.depth + 1,
                    indent=child_indent,
                    landmark=child_frame.landmark,
                    in_named=child_frame.in_named,
                ))

        # Anything still queued was cut by the line budget
        for item in stack:
            if isinstance(item, _Frame):
                walk.skipped.append(item.node)

    def _visit(self, frame: _Frame, walk: _Walk) -> tuple[int, _Frame | None]:
        """
        Emit the line for one node. Returns the indent for its children and a
        template frame carrying inherited state, or (0, None) to skip the
        subtree.
        """
        node = frame.node
        if not walk.visible(node):
            return 0, None

        walk.elements += 1
        walk.deepest = max(walk.deepest, frame.depth)

        role_info = resolve_role(self._document, node)
        child = _Frame(node=node, depth=frame.depth, indent=frame.indent,
                       landmark=frame.landmark, in_named=frame.in_named)
        indent = frame.indent

        if walk.options.mode is SnapshotMode.OUTLINE:
            if self._emit_outline(walk, frame, role_info):
                indent += 1
        elif role_info is not None and role_info.interactive:
            walk.interactive_seen += 1
            name = resolve_name(self._document, node, role_info.role)
            if not self._emit_interactive(walk, frame, role_info, name):
                walk.skipped.extend(self._document.children(node))
                return 0, None
            indent += 1
            child.in_named = child.in_named or role_info.role in _TEXT_NAMED_ROLES
        elif walk.options.mode is SnapshotMode.ALL:
            emitted, consumed = self._emit_context(walk, frame, role_info)
            if emitted:
                indent += 1
            if consumed:
                return indent, None
            if role_info is not None and role_info.role in _TEXT_NAMED_ROLES:
                child.in_named = True

        if role_info is not None and role_info.role in LANDMARK_ROLES:
            child.landmark = (role_info.role, resolve_name(self._document, node, role_info.role))
        return indent, child

    def _emit_interactive(self, walk: _Walk, frame: _Frame, role_info: RoleInfo, name: str) -> bool:
        if walk.lines_exhausted or len(walk.lines) >= walk.options.max_lines:
            walk.lines_exhausted = True
            return False

        node = frame.node
        ref = self._registry.generate_ref(node)
        walk.refs[ref] = self._ref_info(node, role_info.role, name, frame.landmark)
        line = self._formatter.node_line(
            frame.indent,
            role_info.role,
            name,
            ref=ref,
            states=self._states(node, role_info.role),
        )
        return self._emit(walk, line)

    def _emit_context(self, walk: _Walk, frame: _Frame, role_info: RoleInfo | None) -> tuple[bool, bool]:
        """
        Structural and text lines for "all" mode. Returns (emitted, consumed);
        a consumed node's subtree has been fully represented by its line.
        """
        node = frame.node
        if role_info is not None and role_info.role in _CONTEXT_ROLES:
            name = resolve_name(self._document, node, role_info.role)
            line = self._formatter.node_line(frame.indent, role_info.role, name, level=role_info.level)
            return self._emit(walk, line), False

        if frame.in_named or not self._is_text_block(node):
            return False, False
        text = normalize_text(self._document.text_content(node))
        if not text:
            return False, True
        return self._emit(walk, self._formatter.text_line(frame.indent, text)), True

    def _emit_outline(self, walk: _Walk, frame: _Frame, role_info: RoleInfo | None) -> bool:
        """
        Outline lines: sections (landmarks, articles, named regions) with a
        ref and word/link counts, then headings, lists and code blocks
        without one. Returns whether a line was emitted.
        """
        doc = self._document
        node = frame.node
        section = self._outline_section(node, role_info)
        if section is not None:
            walk.interactive_seen += 1
            if section in LANDMARK_ROLES:
                walk.landmarks += 1
            if walk.lines_exhausted or len(walk.lines) >= walk.options.max_lines:
                walk.lines_exhausted = True
                return False
            name = self._section_name(node, section)
            ref = self._registry.generate_ref(node)
            walk.refs[ref] = self._ref_info(node, section, name, frame.landmark)
            line = self._formatter.node_line(
                frame.indent, section, name, ref=ref, details=self._content_stats(node)
            )
            return self._emit(walk, line)

        tag = doc.tag(node)
        if role_info is not None and role_info.role == "heading":
            walk.headings += 1
            name = resolve_name(doc, node, "heading")
            line = self._formatter.node_line(frame.indent, "heading", name, level=role_info.level)
        elif tag in ("ul", "ol"):
            items = sum(1 for child in doc.children(node) if doc.tag(child) == "li")
            if not items:
                return False
            line = self._formatter.node_line(frame.indent, "list", details=[f"{items} items"])
        elif tag == "pre":
            details = []
            language = self._code_language(node)
            if language:
                details.append(language)
            line_count = len(doc.text_content(node).split("\n"))
            details.append(f"{line_count} lines")
            line = self._formatter.node_line(frame.indent, "code", details=details)
        else:
            return False
        return self._emit(walk, line)

    def _outline_section(self, node: Node, role_info: RoleInfo | None) -> str | None:
        """The role an outline section is shown with, or None if the node is not one."""
        doc = self._document
        tag = doc.tag(node)
        role = role_info.role if role_info is not None else None
        if role == "region" and tag == "section":
            # An unnamed <section> is just a grouping element
            named = doc.has_attribute(node, "id") or doc.has_attribute(node, "aria-label")
            return role if named else None
        if role in LANDMARK_ROLES or role == "article":
            return role
        if tag == "div" and doc.has_attribute(node, "id"):
            words = len(normalize_text(doc.text_content(node)).split())
            if words > _REGION_MIN_WORDS:
                return "region"
        return None

    def _section_name(self, node: Node, role: str) -> str:
        name = resolve_name(self._document, node, role)
        if name:
            return name
        for descendant in self._document.iter_descendants(node):
            info = resolve_role(self._document, descendant)
            if info is not None and info.role == "heading":
                return normalize_text(self._document.text_content(descendant))
        return ""

    def _content_stats(self, node: Node) -> list[str]:
        doc = self._document
        words = len(normalize_text(doc.text_content(node)).split())
        links = sum(
            1 for d in doc.iter_descendants(node)
            if doc.tag(d) == "a" and doc.has_attribute(d, "href")
        )
        stats = [f"{words} words"]
        if links:
            stats.append(f"{links} links")
        return stats

    def _code_language(self, node: Node) -> str | None:
        """Language hint from a ``language-*``/``lang-*`` class on the block or its <code>."""
        doc = self._document
        candidates = [node] + [c for c in doc.children(node) if doc.tag(c) == "code"]
        for candidate in candidates:
            match = _CODE_LANGUAGE_RE.search(doc.attribute(candidate, "class") or "")
            if match:
                return match.group(1).lower()
        return None

    def _is_text_block(self, node: Node) -> bool:
        """Only inline formatting below, so the whole subtree reads as one text line."""
        for descendant in self._document.iter_descendants(node):
            if descendant is node:
                continue
            if self._document.tag(descendant) not in _INLINE_TAGS:
                return False
            if self._document.has_attribute(descendant, "role"):
                return False
        return True

    def _emit(self, walk: _Walk, line: str) -> bool:
        if len(walk.lines) >= walk.options.max_lines:
            walk.lines_exhausted = True
            return False
        walk.lines.append(line)
        return True

    # ------------------------------------------------------------------
    # Per-node details
    # ------------------------------------------------------------------

    def _states(self, node: Node, role: str) -> list[str]:
        doc = self._document
        states = []
        if doc.has_attribute(node, "disabled") or doc.attribute(node, "aria-disabled") == "true":
            states.append("disabled")
        if role in _CHECKABLE_ROLES and (
            doc.has_attribute(node, "checked") or doc.attribute(node, "aria-checked") == "true"
        ):
            states.append("checked")
        return states

    def _ref_info(
        self, node: Node, role: str, name: str, landmark: tuple[str, str] | None
    ) -> RefInfo:
        box = self._document.bounding_box(node)
        in_viewport = None
        viewport = self._document.viewport
        if box is not None and viewport is not None:
            width, height = viewport
            in_viewport = (
                box.width > 0
                and box.height > 0
                and box.x < width
                and box.y < height
                and box.x + box.width > 0
                and box.y + box.height > 0
            )

        context = None
        importance = Importance.SECONDARY
        if landmark is not None:
            landmark_role, landmark_name = landmark
            context = f'{landmark_role} "{landmark_name}"' if landmark_name else landmark_role
            if landmark_role in _UTILITY_LANDMARKS:
                importance = Importance.UTILITY
            elif landmark_role in _PRIMARY_LANDMARKS:
                importance = Importance.PRIMARY

        return RefInfo(
            selector=generate_selector(self._document, node),
            role=role,
            name=name or None,
            bounding_box=box,
            in_viewport=in_viewport,
            importance=importance,
            context=context,
        )

    def _count_skipped_interactive(self, walk: _Walk) -> int:
        """Ref-eligible elements inside subtrees that budgets kept us out of."""
        outline = walk.options.mode is SnapshotMode.OUTLINE
        count = 0
        stack = list(walk.skipped)
        while stack:
            node = stack.pop()
            if not walk.visible(node):
                continue
            role_info = resolve_role(self._document, node)
            if outline:
                if self._outline_section(node, role_info) is not None:
                    count += 1
            elif role_info is not None and role_info.interactive:
                count += 1
            stack.extend(self._document.children(node))
        return count

    # ------------------------------------------------------------------
    # Result assembly
    # ------------------------------------------------------------------

    def _finish(self, walk: _Walk, total_interactive: int) -> SnapshotResult:
        options = walk.options
        max_depth = options.effective_max_depth
        warnings: list[str] = []
        depth_limited = False

        if walk.lines_exhausted:
            walk.lines.append(self._formatter.lines_marker(options.max_lines))
            warnings.append(
                f"Output truncated at {options.max_lines} lines; "
                "narrow the root or raise max_lines"
            )
            depth_limited = True
        if walk.depth_cut:
            warnings.append(f"Depth limit {max_depth} reached; deeper elements were not traversed")
            depth_limited = True
        if walk.capped_parents:
            warnings.append(
                f"{walk.capped_parents} element(s) had more than {options.max_children} "
                "children; the rest were omitted"
            )
            depth_limited = True

        viewport = self._document.viewport
        viewport_empty = viewport is not None and viewport[0] * viewport[1] == 0
        if viewport_empty:
            warnings.append("Viewport not initialized (0x0) - page may be loading or redirecting")

        if not walk.refs and total_interactive == 0 and walk.elements < 10:
            warnings.append("Page appears to be empty or transitional - wait for content to load")

        headers: list[str] = []
        if options.include_header:
            headers = [
                self._formatter.page_header(self._document),
                self._formatter.snapshot_header(walk.elements, walk.deepest, max_depth, options.mode),
            ]
            if options.mode is SnapshotMode.OUTLINE:
                headers.append(self._formatter.outline_header(
                    walk.landmarks, walk.interactive_seen, walk.headings, walk.words
                ))
        tree = self._formatter.assemble(headers, walk.lines)

        refs = walk.refs
        if (
            options.max_tokens is not None
            and walk.lines
            and not self._budget.fits(tree, options.max_tokens)
        ):
            tree, _ = self._budget.truncate(tree, options.max_tokens)
            refs = self._refs_in_tree(tree, walk)
            warnings.append(f"Output truncated to fit {options.max_tokens} tokens")
            depth_limited = True

        # Quality describes what the caller actually received
        captured = len(refs)
        if viewport_empty or captured == 0:
            quality = SnapshotQuality.LOW
        elif captured < total_interactive * 0.5:
            quality = SnapshotQuality.MEDIUM
        else:
            quality = SnapshotQuality.HIGH

        if depth_limited:
            logger.info("Snapshot truncated: %s", "; ".join(warnings))

        metadata = SnapshotMetadata(
            total_interactive_elements=total_interactive,
            captured_elements=captured,
            total_elements=walk.elements,
            quality=quality,
            depth_limited=depth_limited,
            warnings=warnings,
        )
        return SnapshotResult(tree=tree, refs=refs, metadata=metadata)

    def _refs_in_tree(self, tree: str, walk: _Walk) -> dict[str, RefInfo]:
        """
        Keep the refs whose lines survived truncation. Refs first issued by
        this build that were cut are forgotten by the registry as well.
        """
        shown = {line.lstrip().split(" ", 1)[0] for line in tree.split("\n")}
        kept = {}
        for ref, info in walk.refs.items():
            if ref in shown:
                kept[ref] = info
            elif ref not in walk.issued_before:
                self._registry.discard(ref)
        return kept
