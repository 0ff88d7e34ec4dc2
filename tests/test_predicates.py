"""
Tests for the snapshot model and the element predicates.
"""

import pytest

from conftest import make_tree

from harvester.dom import BoundingBox, ContentTree, parse_inline_style
from harvester.errors import SelectorInvalid
from harvester.host import StaticPage
from harvester.predicates import (
    extract_text,
    is_enabled,
    is_interactive,
    is_significant_image,
    is_visible,
)


# ====================================================================
# 1. Snapshot model
# ====================================================================

class TestContentTree:

    def test_page_identity(self):
        tree = ContentTree.from_html(
            "<html><head><title> My  Page </title><base href='/static/'></head><body></body></html>",
            "https://example.com/a/b",
        )
        assert tree.page.title == "My Page"
        assert tree.page.base == "https://example.com/static/"
        assert tree.page.site_key == "example.com_a"

    def test_invalid_selector_raises(self):
        tree = make_tree("<div></div>")
        with pytest.raises(SelectorInvalid):
            tree.select("div[")

    def test_empty_selector_raises(self):
        with pytest.raises(SelectorInvalid):
            make_tree("<div></div>").select("  ")

    def test_nodes_are_stable_across_queries(self):
        tree = make_tree('<div class="a" id="x"></div>')
        assert tree.select_one(".a") is tree.select_one("#x")

    def test_annotations_hidden_from_attributes(self):
        tree = make_tree('<img data-hv-id="7" data-id="42" src="/a.jpg">')
        node = tree.select_one("img")
        assert node.handle == "7"
        assert node.data_attributes() == {"data-id": "42"}
        assert tree.find_by_handle("7") is node

    def test_captured_geometry_and_style(self):
        tree = make_tree(
            '<div data-hv-rect="10,20,300,200" '
            'data-hv-style=\'{"display": "block", "background-image": "url(a.png)"}\'></div>'
        )
        node = tree.select_one("div")
        assert node.rect == BoundingBox(10, 20, 300, 200)
        assert node.background_image == "url(a.png)"

    def test_geometry_from_attributes_and_inline_style(self):
        tree = make_tree('<img width="120" height="80"><div style="width: 40px; height: 30px"></div><p></p>')
        assert tree.select_one("img").rect == BoundingBox(0, 0, 120, 80)
        assert tree.select_one("div").rect == BoundingBox(0, 0, 40, 30)
        assert tree.select_one("p").rect is None

    def test_background_shorthand(self):
        node = make_tree('<div style="background: #000 url(\'bg.jpg\') no-repeat"></div>').select_one("div")
        assert "bg.jpg" in node.background_image

    def test_inline_style_keeps_data_uri_intact(self):
        style = parse_inline_style("background-image: url('data:image/png;base64,AA;BB'); color: red !important")
        assert style["background-image"] == "url('data:image/png;base64,AA;BB')"
        assert style["color"] == "red"


# ====================================================================
# 2. Visibility
# ====================================================================

class TestVisibility:

    def test_plain_element_visible(self):
        assert is_visible(make_tree("<button>Go</button>").select_one("button"))

    @pytest.mark.parametrize("markup", [
        '<div style="display:none">x</div>',
        '<div style="visibility: hidden">x</div>',
        '<div style="opacity: 0">x</div>',
        '<div hidden>x</div>',
        '<div width="0" height="10" style="width:0px;height:10px">x</div>',
        '<div data-hv-rect="0,0,0,0">x</div>',
    ])
    def test_hidden_by_own_state(self, markup):
        assert not is_visible(make_tree(markup).select_one("div"))

    def test_hidden_ancestor_hides_subtree(self):
        tree = make_tree('<section style="display: none"><p><span>deep</span></p></section>')
        assert not is_visible(tree.select_one("span"))

    def test_hidden_input(self):
        assert not is_visible(make_tree('<input type="hidden" name="t">').select_one("input"))

    def test_head_elements_never_visible(self):
        tree = make_tree("<p>body</p>")
        assert not is_visible(tree.select_one("title"))
        assert not is_visible(tree.select_one("head"))

    def test_none_is_not_visible(self):
        assert not is_visible(None)


# ====================================================================
# 3. Enabled / interactive
# ====================================================================

class TestEnabled:

    def test_disabled_attribute(self):
        assert not is_enabled(make_tree("<button disabled>Go</button>").select_one("button"))

    def test_pointer_events_none(self):
        node = make_tree('<a style="pointer-events: none">Next</a>').select_one("a")
        assert not is_enabled(node)
        assert not is_interactive(node)

    def test_aria_disabled(self):
        assert not is_enabled(make_tree('<a aria-disabled="true">Next</a>').select_one("a"))

    def test_aria_disabled_false_is_enabled(self):
        assert is_enabled(make_tree('<a aria-disabled="false">Next</a>').select_one("a"))

    def test_interactive_requires_visibility(self):
        node = make_tree('<button style="display:none">Go</button>').select_one("button")
        assert is_enabled(node)
        assert not is_interactive(node)


# ====================================================================
# 4. Text and image size
# ====================================================================

class TestText:

    def test_whitespace_collapsed(self):
        node = make_tree("<p>  Hello \n\n  world </p>").select_one("p")
        assert extract_text(node) == "Hello world"

    def test_title_then_alt_fallback(self):
        tree = make_tree('<a title="Open"></a><img alt="Sunset">')
        assert extract_text(tree.select_one("a")) == "Open"
        assert extract_text(tree.select_one("img")) == "Sunset"

    def test_fallbacks_can_be_disabled(self):
        node = make_tree('<img alt="Sunset">').select_one("img")
        assert extract_text(node, fallback_to_alt=False) == ""

    def test_truncation(self):
        node = make_tree("<p>Hello world</p>").select_one("p")
        assert extract_text(node, max_length=5) == "Hello..."

    def test_missing_node(self):
        assert extract_text(None) == ""


class TestSignificantImage:

    def test_threshold_inclusive(self):
        tree = make_tree('<img id="a" width="50" height="50"><img id="b" width="49" height="200">')
        assert is_significant_image(tree.select_one("#a"))
        assert not is_significant_image(tree.select_one("#b"))

    def test_unknown_geometry_not_significant(self):
        assert not is_significant_image(make_tree('<img src="/a.jpg">').select_one("img"))


class TestStaticPage:

    @pytest.mark.asyncio
    async def test_saved_pages_replayed_in_order(self, tmp_path):
        first = tmp_path / "page1.html"
        second = tmp_path / "page2.html"
        first.write_text("<html><body><p>one</p></body></html>", encoding="utf-8")
        second.write_text("<html><body><p>two</p></body></html>", encoding="utf-8")

        source = StaticPage.from_files([str(first), str(second)], "https://example.com/saved")
        assert (await source.snapshot()).select_one("p").text == "one"
        assert await source.scroll()
        assert (await source.snapshot()).select_one("p").text == "two"
        assert not await source.scroll()
        assert source.activations == ["scroll"]

    def test_box_area(self):
        assert BoundingBox(0, 0, 3, 4).area == 12
        assert BoundingBox(0, 0, -3, 4).area == 0
