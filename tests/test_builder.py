"""Tests for SnapshotBuilder: traversal, refs, budgets and metadata."""

import pytest
from lxml import etree

from refsnap.core.errors import ErrorCode, SnapshotConfigError
from refsnap.core.types import EMPTY_MARKER, Importance, SnapshotMode, SnapshotQuality
from refsnap.dom.html import HtmlDocument
from refsnap.refs.registry import RefRegistry
from refsnap.refs.resolver import SelectorResolver
from refsnap.snapshot.builder import SnapshotBuilder
from refsnap.snapshot.options import SnapshotOptions
from refsnap.snapshot.token_budget import TRUNCATION_NOTICE, TokenBudget


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def make_doc(body, **kwargs):
    return HtmlDocument.from_html(f"<html><head></head><body>{body}</body></html>", **kwargs)


def make_builder(doc):
    registry = RefRegistry(doc.is_attached)
    return SnapshotBuilder(doc, registry), registry


def body_lines(result):
    """Tree lines below the header block."""
    return result.tree.split("\n\n", 1)[1].split("\n")


def snapshot(body, **options):
    doc = make_doc(body)
    builder, _ = make_builder(doc)
    return builder.build(**options)


class CharTokenBudget(TokenBudget):
    """Four characters per token, so budgets work without the BPE download."""

    def count(self, text):
        return -(-len(text) // 4)

    def truncate(self, text, max_tokens):
        if self.fits(text, max_tokens):
            return text, False
        cut = text[: max_tokens * 4]
        return cut[: cut.rfind("\n")] + "\n" + TRUNCATION_NOTICE, True


def shown_refs(result):
    return [line.split(" ", 1)[0] for line in body_lines(result) if line.startswith("@ref:")]


# ---------------------------------------------------------------------------
# Interactive mode
# ---------------------------------------------------------------------------

class TestInteractiveMode:
    def test_single_button(self):
        doc = make_doc("<button>Submit</button>")
        builder, registry = make_builder(doc)
        result = builder.build()

        assert body_lines(result) == ['@ref:0 button "Submit"']
        info = result.refs["@ref:0"]
        assert info.role == "button"
        assert info.name == "Submit"
        assert registry.get("@ref:0") is doc.query("button")

    def test_headers(self):
        doc = make_doc("<button>Go</button>", url="https://shop.test/cart", viewport=(1280, 720))
        builder, _ = make_builder(doc)
        lines = builder.build().tree.split("\n")
        assert lines[0] == "PAGE: (untitled) | https://shop.test/cart | viewport=1280x720"
        assert lines[1] == "SNAPSHOT: elements=2 depth=1/10 mode=interactive"
        assert lines[2] == ""

    def test_header_can_be_disabled(self):
        result = snapshot("<button>Go</button>", include_header=False)
        assert result.tree == '@ref:0 button "Go"'

    def test_non_interactive_content_omitted(self):
        result = snapshot("<h1>Title</h1><p>Some text</p><a href='/'>Home</a>")
        assert body_lines(result) == ['@ref:0 link "Home"']

    def test_nested_interactive_indented(self):
        result = snapshot('<div role="button">Menu<a href="/x">Inner</a></div>', include_header=False)
        assert result.tree.split("\n") == [
            '@ref:0 button "MenuInner"',
            '  @ref:1 link "Inner"',
        ]

    def test_document_order(self):
        result = snapshot(
            '<form><input type="text" placeholder="Email"><input type="password" '
            'placeholder="Password"><button type="submit">Log in</button></form>',
            include_header=False,
        )
        assert result.tree.split("\n") == [
            '@ref:0 textbox "Email"',
            '@ref:1 textbox "Password"',
            '@ref:2 button "Log in"',
        ]

    def test_hidden_input_skipped(self):
        result = snapshot('<input type="hidden" name="csrf"><input type="text">', include_header=False)
        assert result.tree == "@ref:0 textbox"

    def test_states(self):
        result = snapshot(
            '<input type="checkbox" checked aria-label="Agree">'
            '<button disabled>Pay</button>'
            '<div role="switch" aria-checked="true" aria-disabled="true">Dark mode</div>'
            '<input type="text" checked aria-label="Odd">',
            include_header=False,
        )
        assert result.tree.split("\n") == [
            '@ref:0 checkbox "Agree" (checked)',
            '@ref:1 button "Pay" (disabled)',
            '@ref:2 switch (disabled, checked)',
            '@ref:3 textbox "Odd"',
        ]

    def test_long_name_truncated_in_line_not_in_refs(self):
        name = "Add this extremely long product title to your shopping cart now"
        result = snapshot(f"<button>{name}</button>", include_header=False)
        assert result.tree == f'@ref:0 button "{name[:47]}..."'
        assert result.refs["@ref:0"].name == name

    def test_empty_page_marker(self):
        result = snapshot("<p>Just some text</p>")
        assert result.tree == EMPTY_MARKER
        assert result.is_empty
        assert result.refs == {}
        assert result.metadata.quality is SnapshotQuality.LOW
        assert any("empty" in w for w in result.metadata.warnings)

    def test_empty_body(self):
        result = snapshot("")
        assert result.tree == EMPTY_MARKER
        assert result.metadata.total_elements == 1

    def test_ref_selector_recorded(self):
        result = snapshot('<button id="buy">Buy</button><button data-testid="later">Later</button>')
        assert result.refs["@ref:0"].selector == "#buy"
        assert result.refs["@ref:1"].selector == '[data-testid="later"]'


# ---------------------------------------------------------------------------
# Visibility
# ---------------------------------------------------------------------------

class TestVisibility:
    MARKUP = (
        '<button style="display: none">Hidden</button>'
        '<div style="visibility:hidden"><a href="/">Ghost</a></div>'
        '<button>Shown</button>'
    )

    def test_hidden_subtrees_excluded(self):
        result = snapshot(self.MARKUP, include_header=False)
        assert result.tree == '@ref:0 button "Shown"'
        assert result.metadata.total_interactive_elements == 1

    def test_include_hidden(self):
        result = snapshot(self.MARKUP, include_header=False, include_hidden=True)
        assert result.tree.split("\n") == [
            '@ref:0 button "Hidden"',
            '@ref:1 link "Ghost"',
            '@ref:2 button "Shown"',
        ]

    def test_style_change_between_snapshots(self):
        doc = make_doc("<button>One</button><button>Two</button>")
        builder, registry = make_builder(doc)
        assert len(builder.build().refs) == 2

        doc.query_all("button")[1].set("style", "display:none")
        registry.clear()
        result = builder.build(include_header=False)
        assert result.tree == '@ref:0 button "One"'


# ---------------------------------------------------------------------------
# Ref stability
# ---------------------------------------------------------------------------

class TestRefStability:
    def test_back_to_back_snapshots_identical(self):
        doc = make_doc("<a href='/'>Home</a><button>Go</button><input type='text'>")
        builder, _ = make_builder(doc)
        first = builder.build()
        second = builder.build()
        assert first.tree == second.tree
        assert list(first.refs) == list(second.refs)

    def test_cleared_registry_gives_same_refs_for_same_page(self):
        doc = make_doc("<a href='/'>Home</a><button>Go</button>")
        builder, registry = make_builder(doc)
        first = builder.build()
        registry.clear()
        second = builder.build()
        assert first.tree == second.tree

    def test_builder_never_clears_registry(self):
        doc = make_doc("<button>Go</button>")
        builder, registry = make_builder(doc)
        extra = doc.query("button")
        registry.set("@ref:7", extra)
        result = builder.build(include_header=False)
        assert result.tree == '@ref:7 button "Go"'
        assert registry.generation == 0

    def test_new_element_gets_next_ref(self):
        doc = make_doc("<button>One</button>")
        builder, _ = make_builder(doc)
        builder.build()
        doc.root.append(doc.root.makeelement("button", {}))
        doc.query_all("button")[1].text = "Two"
        result = builder.build(include_header=False)
        assert result.tree.split("\n") == ['@ref:0 button "One"', '@ref:1 button "Two"']


# ---------------------------------------------------------------------------
# All mode
# ---------------------------------------------------------------------------

class TestAllMode:
    MARKUP = (
        '<nav aria-label="Primary"><a href="/">Home</a></nav>'
        "<main>"
        "<h2>Billing</h2>"
        "<p>Cards are <b>charged</b> monthly.</p>"
        '<img src="card.png" alt="Card">'
        '<form aria-label="Pay">'
        '<label><input type="checkbox" checked> Remember me</label>'
        "<button>Pay <span>now</span></button>"
        "</form>"
        "</main>"
    )

    def test_structure_and_text(self):
        result = snapshot(self.MARKUP, mode="all", include_header=False)
        assert result.tree.split("\n") == [
            'navigation "Primary"',
            '  @ref:0 link "Home"',
            "main",
            '  heading "Billing" [level=2]',
            '  text "Cards are charged monthly."',
            '  img "Card"',
            '  form "Pay"',
            '    @ref:1 checkbox "Remember me" (checked)',
            '    @ref:2 button "Pay now"',
        ]

    def test_refs_only_for_interactive(self):
        result = snapshot(self.MARKUP, mode="all")
        assert sorted(info.role for info in result.refs.values()) == ["button", "checkbox", "link"]

    def test_header_reports_mode(self):
        result = snapshot(self.MARKUP, mode=SnapshotMode.ALL)
        assert "mode=all" in result.tree.split("\n")[1]
        assert "/50" in result.tree.split("\n")[1]

    def test_list_items_show_text(self):
        result = snapshot("<ul><li>First</li><li>Second <em>item</em></li></ul>", mode="all",
                          include_header=False)
        assert result.tree.split("\n") == ["list", '  text "First"', '  text "Second item"']

    def test_text_only_page_is_not_empty(self):
        result = snapshot("<p>Just some text</p>", mode="all", include_header=False)
        assert result.tree == 'text "Just some text"'
        assert result.refs == {}

    def test_long_text_truncated(self):
        result = snapshot(f"<p>{'word ' * 40}</p>", mode="all", include_header=False)
        assert result.tree.startswith('text "word word')
        assert result.tree.endswith('..."')


# ---------------------------------------------------------------------------
# Outline mode
# ---------------------------------------------------------------------------

class TestOutlineMode:
    MARKUP = (
        '<header><a href="/">Home</a></header> '
        "<main> "
        "<h1>Guide</h1> "
        '<article aria-label="Intro"> <h2>Getting started</h2> <p>Install the package first.</p> '
        "<ul><li>One</li> <li>Two</li></ul> </article> "
        "<section><h3>Loose</h3></section> "
        '<pre class="language-python">import os\nprint(1)</pre> '
        "</main>"
    )

    def test_sections_headings_lists_and_code(self):
        result = snapshot(self.MARKUP, mode="outline", include_header=False)
        assert result.tree.split("\n") == [
            "@ref:0 banner [1 words, 1 links]",
            '@ref:1 main "Guide" [13 words]',
            '  heading "Guide" [level=1]',
            '  @ref:2 article "Intro" [8 words]',
            '    heading "Getting started" [level=2]',
            "    list [2 items]",
            '  heading "Loose" [level=3]',
            "  code [python, 2 lines]",
        ]

    def test_refs_name_sections_not_controls(self):
        result = snapshot(self.MARKUP, mode="outline")
        assert [info.role for info in result.refs.values()] == ["banner", "main", "article"]
        assert result.refs["@ref:2"].name == "Intro"
        assert result.metadata.total_interactive_elements == 3
        assert result.metadata.captured_elements == 3
        assert result.metadata.quality is SnapshotQuality.HIGH

    def test_outline_header(self):
        lines = snapshot(self.MARKUP, mode=SnapshotMode.OUTLINE).tree.split("\n")
        assert "mode=outline" in lines[1]
        assert "/50" in lines[1]
        assert lines[2] == "OUTLINE: landmarks=2 sections=3 headings=3 words=14"
        assert lines[3] == ""

    def test_named_section_and_long_div_are_regions(self):
        body = (
            '<section id="faq"><p>Questions</p></section>'
            f'<div id="story">{"word " * 60}</div>'
            f'<div id="short">{"word " * 10}</div>'
            f'<div>{"word " * 60}</div>'
        )
        result = snapshot(body, mode="outline", include_header=False)
        assert result.tree.split("\n") == [
            "@ref:0 region [1 words]",
            "@ref:1 region [60 words]",
        ]

    def test_hidden_sections_skipped(self):
        body = '<nav style="display:none"><a href="/">x</a></nav><main><h1>Shown</h1></main>'
        result = snapshot(body, mode="outline", include_header=False)
        assert result.tree.split("\n") == ['@ref:0 main "Shown" [1 words]', '  heading "Shown" [level=1]']

    def test_no_sections_is_low_quality(self):
        result = snapshot("<p>Plain text only</p>", mode="outline")
        assert result.tree == EMPTY_MARKER
        assert result.metadata.quality is SnapshotQuality.LOW


# ---------------------------------------------------------------------------
# Importance and context
# ---------------------------------------------------------------------------

class TestRefContext:
    def test_importance_from_landmarks(self):
        result = snapshot(
            '<nav><a href="/">Home</a></nav>'
            '<form aria-label="Login"><button>Sign in</button></form>'
            "<button>Loose</button>"
        )
        nav_link, form_button, loose = (result.refs[f"@ref:{i}"] for i in range(3))
        assert nav_link.importance is Importance.UTILITY
        assert nav_link.context == "navigation"
        assert form_button.importance is Importance.PRIMARY
        assert form_button.context == 'form "Login"'
        assert loose.importance is Importance.SECONDARY
        assert loose.context is None

    def test_no_geometry_for_static_documents(self):
        result = snapshot("<button>Go</button>")
        info = result.refs["@ref:0"]
        assert info.bounding_box is None
        assert info.in_viewport is None
        assert info.to_dict() == {
            "selector": "button",
            "role": "button",
            "name": "Go",
            "importance": "secondary",
        }


# ---------------------------------------------------------------------------
# Budgets
# ---------------------------------------------------------------------------

class TestBudgets:
    def test_children_cap(self):
        buttons = "".join(f"<button>B{i}</button>" for i in range(150))
        result = snapshot(buttons)
        lines = body_lines(result)
        assert len(result.refs) == 100
        assert lines[-1] == "... 150 children: 100 shown, rest hidden by depth/visibility"
        assert result.metadata.depth_limited
        assert result.metadata.total_interactive_elements == 150
        assert result.metadata.captured_elements == 100
        assert result.metadata.quality is SnapshotQuality.HIGH

    def test_children_marker_indented_under_parent(self):
        items = "".join(f"<a href='#{i}'>L{i}</a>" for i in range(5))
        result = snapshot(f'<div role="button">Menu{items}</div>', max_children=2,
                          include_header=False)
        assert result.tree.split("\n")[-1] == (
            "  ... 5 children: 2 shown, rest hidden by depth/visibility"
        )

    def test_max_lines(self):
        buttons = "".join(f"<button>B{i}</button>" for i in range(20))
        result = snapshot(buttons, max_lines=5)
        lines = body_lines(result)
        assert len(lines) == 6
        assert lines[-1] == "... output truncated at 5 lines"
        assert len(result.refs) == 5
        assert result.metadata.depth_limited
        assert result.metadata.total_interactive_elements == 20
        assert result.metadata.quality is SnapshotQuality.MEDIUM

    def test_depth_limit(self):
        nested = "<div>" * 12 + "<button>Deep</button>" + "</div>" * 12
        result = snapshot(f"<button>Shallow</button>{nested}", include_header=False)
        assert result.tree == '@ref:0 button "Shallow"'
        assert result.metadata.depth_limited
        assert result.metadata.total_interactive_elements == 2
        assert any("Depth limit 10" in w for w in result.metadata.warnings)

    def test_depth_limit_override(self):
        nested = "<div>" * 12 + "<button>Deep</button>" + "</div>" * 12
        result = snapshot(nested, max_depth=20, include_header=False)
        assert result.tree == '@ref:0 button "Deep"'
        assert not result.metadata.depth_limited

    def test_deep_tree_does_not_recurse(self):
        doc = make_doc("")
        parent = doc.root
        for _ in range(1500):
            parent = etree.SubElement(parent, "span")
        etree.SubElement(parent, "button").text = "Bottom"
        builder, _ = make_builder(doc)
        result = builder.build(max_depth=5000, include_header=False)
        assert result.tree.endswith('button "Bottom"')

    def test_max_tokens(self):
        links = "".join(f"<a href='/p/{i}'>Product number {i}</a>" for i in range(300))
        result = snapshot(links, max_tokens=200)
        assert result.tree.endswith("[... truncated to fit token budget ...]")
        assert result.metadata.depth_limited
        assert any("200 tokens" in w for w in result.metadata.warnings)
        assert sorted(result.refs) == sorted(shown_refs(result))
        assert result.metadata.captured_elements == len(result.refs)

    def test_token_truncation_drops_cut_refs(self):
        doc = make_doc("".join(f"<button>Button {i}</button>" for i in range(200)))
        registry = RefRegistry(doc.is_attached)
        builder = SnapshotBuilder(doc, registry, token_budget=CharTokenBudget())
        result = builder.build(max_tokens=50)

        shown = shown_refs(result)
        assert 0 < len(shown) < 200
        assert result.tree.endswith(TRUNCATION_NOTICE)
        assert sorted(result.refs) == sorted(shown)
        assert result.metadata.captured_elements == len(shown)
        assert result.metadata.total_interactive_elements == 200  # 100 shown, 100 capped
        assert result.metadata.quality is SnapshotQuality.MEDIUM
        assert registry.refs() == shown
        assert registry.get("@ref:99") is None

    def test_token_truncation_keeps_refs_from_earlier_builds(self):
        doc = make_doc("".join(f"<button>Button {i}</button>" for i in range(200)))
        registry = RefRegistry(doc.is_attached)
        builder = SnapshotBuilder(doc, registry, token_budget=CharTokenBudget())
        builder.build()
        result = builder.build(max_tokens=50)
        assert "@ref:99" not in result.refs
        assert registry.get("@ref:99") is not None

    def test_tokens_within_budget_untouched(self):
        doc = make_doc("<button>A</button>")
        builder = SnapshotBuilder(doc, RefRegistry(doc.is_attached), token_budget=CharTokenBudget())
        result = builder.build(max_tokens=1000)
        assert not result.tree.endswith(TRUNCATION_NOTICE)
        assert list(result.refs) == ["@ref:0"]
        assert not result.metadata.depth_limited

    def test_untruncated_metadata(self):
        result = snapshot("<button>A</button><button>B</button>")
        assert not result.metadata.depth_limited
        assert result.metadata.warnings == []
        assert result.metadata.quality is SnapshotQuality.HIGH


# ---------------------------------------------------------------------------
# Roots and errors
# ---------------------------------------------------------------------------

class BrokenDocument(HtmlDocument):
    def children(self, node):
        raise RuntimeError("boom")


class TestRootsAndErrors:
    def test_scoped_root(self):
        doc = make_doc('<nav><a href="/">Home</a></nav><form><button>Send</button></form>')
        builder, _ = make_builder(doc)
        result = builder.build(root=doc.query("form"), include_header=False)
        assert result.tree == '@ref:0 button "Send"'

    def test_interactive_root_is_included(self):
        doc = make_doc("<button>Solo</button>")
        builder, _ = make_builder(doc)
        result = builder.build(root=doc.query("button"), include_header=False)
        assert result.tree == '@ref:0 button "Solo"'

    def test_detached_root(self):
        doc = make_doc("<div><button>x</button></div>")
        div = doc.query("div")
        doc.root.remove(div)
        builder, _ = make_builder(doc)
        with pytest.raises(SnapshotConfigError) as exc_info:
            builder.build(root=div)
        assert exc_info.value.code is ErrorCode.INVALID_ROOT

    def test_missing_body(self):
        doc = make_doc("<button>x</button>")
        doc.html.remove(doc.root)
        builder, _ = make_builder(doc)
        with pytest.raises(SnapshotConfigError) as exc_info:
            builder.build()
        assert exc_info.value.code is ErrorCode.INVALID_ROOT

    def test_invalid_options(self):
        builder, _ = make_builder(make_doc("<button>x</button>"))
        with pytest.raises(SnapshotConfigError) as exc_info:
            builder.build(max_lines=0)
        assert exc_info.value.code is ErrorCode.INVALID_OPTIONS

    def test_options_object_and_overrides(self):
        builder, _ = make_builder(make_doc("<button>x</button>"))
        result = builder.build(SnapshotOptions.for_mode("all"), include_header=False)
        assert result.tree == '@ref:0 button "x"'

    def test_traversal_error_wrapped(self):
        doc = BrokenDocument(make_doc("<button>x</button>").html)
        builder, _ = make_builder(doc)
        with pytest.raises(SnapshotConfigError) as exc_info:
            builder.build()
        assert exc_info.value.code is ErrorCode.TRAVERSAL_ERROR
        assert isinstance(exc_info.value.__cause__, RuntimeError)


# ---------------------------------------------------------------------------
# Round trip with the resolver
# ---------------------------------------------------------------------------

class TestRoundTrip:
    def test_every_ref_resolves_to_its_element(self):
        doc = make_doc(
            '<a href="/">Home</a><div class="row"><button>One</button><button>Two</button></div>'
            '<input type="search" placeholder="Find">'
        )
        builder, registry = make_builder(doc)
        resolver = SelectorResolver(doc, registry)
        result = builder.build()
        for ref, info in result.refs.items():
            element = resolver.resolve(ref)
            assert element is not None
            assert resolver.resolve(info.selector) is element

    def test_removed_element_ref_goes_stale(self):
        doc = make_doc("<button>Gone</button><button>Stays</button>")
        builder, registry = make_builder(doc)
        builder.build()
        gone = doc.query("button")
        doc.root.remove(gone)
        assert registry.get("@ref:0") is None
        assert registry.get("@ref:1") is doc.query("button")
