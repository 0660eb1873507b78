"""L1 Unit Tests: SnapshotEngine pruning, outline rendering and HTML slicing."""

import pytest

from tests.fakes import FakePage
from webcurl.core.errors import ValidationError
from webcurl.tools.browser.snapshot import (
    REF_ATTRIBUTE,
    AccessibilityNode,
    SnapshotEngine,
    prune_tree,
    render_outline,
    slice_html,
)


def _node(role="generic", name="", ref=None, children=(), visible=True, in_viewport=True, **extra):
    data = {"role": role, "name": name, "ref": ref, "visible": visible, "inViewport": in_viewport,
            "children": list(children)}
    data.update(extra)
    return data


SUBMIT_PAGE = _node(children=[
    _node(children=[
        _node("button", "Submit", ref="e1", children=[_node("generic", "Submit")]),
    ]),
])


class TestPruneTree:
    def test_single_button_yields_single_node(self):
        root = AccessibilityNode.from_dict(SUBMIT_PAGE)
        nodes = prune_tree(root)
        assert len(nodes) == 1
        button = nodes[0]
        assert (button.role, button.name, button.ref) == ("button", "Submit", "e1")
        assert button.children == []

    def test_offscreen_container_keeps_visible_descendant(self):
        tree = _node("main", "Main", in_viewport=False, children=[
            _node("link", "Deep link", ref="e7", href="https://x/", in_viewport=True),
        ])
        nodes = prune_tree(AccessibilityNode.from_dict(tree), viewport_only=True)
        assert nodes[0].role == "main"
        assert nodes[0].children[0].ref == "e7"

    def test_fully_offscreen_branch_is_pruned(self):
        tree = _node(children=[
            _node("list", "", in_viewport=False, children=[_node("listitem", "far away", in_viewport=False)]),
            _node("heading", "Title", level=1),
        ])
        nodes = prune_tree(AccessibilityNode.from_dict(tree), viewport_only=True)
        assert [n.role for n in nodes] == ["heading"]

    def test_offscreen_nodes_kept_in_tree_mode(self):
        tree = _node("list", "", in_viewport=False, children=[_node("listitem", "far away", in_viewport=False)])
        nodes = prune_tree(AccessibilityNode.from_dict(tree), viewport_only=False)
        assert nodes[0].children[0].name == "far away"

    def test_zero_size_branch_dropped(self):
        tree = _node(children=[_node("button", "Ghost", ref="e2", visible=False)])
        assert prune_tree(AccessibilityNode.from_dict(tree)) == []

    def test_named_generic_is_kept(self):
        tree = _node(children=[_node("generic", "Some text")])
        nodes = prune_tree(AccessibilityNode.from_dict(tree))
        assert nodes[0].name == "Some text"


class TestRenderOutline:
    def test_line_format(self):
        tree = _node("navigation", "Menu", children=[
            _node("link", "Home", ref="e3", href="https://example.com/"),
            _node("heading", 'Say "hi"', level=2),
            _node("generic", "Card", ref="e4", cursor="pointer"),
        ])
        text = render_outline(prune_tree(AccessibilityNode.from_dict(tree)))
        assert text.splitlines() == [
            'navigation: "Menu"',
            '  link: "Home" [ref:e3] [href=https://example.com/]',
            '  heading: "Say \\"hi\\"" [level=2]',
            '  generic: "Card" [ref:e4] [cursor=pointer]',
        ]

    def test_empty_forest(self):
        assert render_outline([]) == ""


class TestSliceHtml:
    def test_first_hundred_of_thousand(self):
        result = slice_html("x" * 1000, 0, 100)
        assert len(result["content"]) == 100
        assert result["remainingCharacters"] == 900
        assert result["totalLength"] == 1000

    def test_end_clamped_to_length(self):
        result = slice_html("x" * 1000, 900, 2000)
        assert len(result["content"]) <= 100
        assert result["endIndex"] == 1000
        assert result["remainingCharacters"] == 0

    def test_default_end_is_start_plus_20000(self):
        result = slice_html("y" * 50000, 100)
        assert result["endIndex"] == 20100
        assert result["remainingCharacters"] == 50000 - 20100

    def test_start_beyond_length(self):
        result = slice_html("abc", 10, 20)
        assert result["content"] == ""
        assert result["remainingCharacters"] == 0

    @pytest.mark.parametrize("start,end", [(-1, 10), (10, 5), ("0", None)])
    def test_invalid_bounds(self, start, end):
        with pytest.raises(ValidationError):
            slice_html("abc", start, end)


class TestSnapshotEngine:
    @pytest.mark.asyncio
    async def test_tree_passes_ref_attribute_to_page(self):
        page = FakePage()
        page.evaluate_result = SUBMIT_PAGE
        text = await SnapshotEngine().tree(page)
        assert text == 'button: "Submit" [ref:e1]'
        _, arg = page.evaluate_calls[0]
        assert arg == {"refAttr": REF_ATTRIBUTE, "maxNameLength": 60}

    @pytest.mark.asyncio
    async def test_empty_page(self):
        page = FakePage()
        page.evaluate_result = None
        assert await SnapshotEngine().tree(page) == "(empty page)"

    @pytest.mark.asyncio
    async def test_nothing_visible_in_viewport(self):
        page = FakePage()
        page.evaluate_result = _node(children=[_node("button", "Below", ref="e1", in_viewport=False)])
        assert await SnapshotEngine().tree(page, viewport_only=True) == "(no visible elements)"

    @pytest.mark.asyncio
    async def test_html_mode(self):
        page = FakePage()
        page.html = "<p>" + "z" * 200 + "</p>"
        result = await SnapshotEngine().html(page, 0, 10)
        assert result["content"] == "<p>zzzzzzz"
        assert result["totalLength"] == 207
