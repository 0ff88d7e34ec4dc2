"""
Tests for the pagination / infinite-scroll traverser.
"""

import pytest

from conftest import make_tree, page

from harvester.cancel import CancelToken
from harvester.errors import ActuationFailed
from harvester.gatherer import AssetGatherer, GatherConfig
from harvester.host import StaticPage
from harvester.paginator import (
    PaginationConfig,
    PaginationTraverser,
    TerminationReason,
    TraversalMode,
    find_next_control,
    traverse_pagination,
)

BASE = "https://example.com/trips"
NEXT = '<a class="next" href="?page=2">Next</a>'


def doc(*names: str, next_link: bool = True) -> str:
    imgs = "".join(f'<img src="/img/{n}.jpg">' for n in names)
    return page(f'<div class="results">{imgs}</div>' + (NEXT if next_link else ""))


def fast_config(**overrides) -> PaginationConfig:
    values = dict(settle_timeout=0.2, settle_interval=0.01, stable_polls=2)
    values.update(overrides)
    return PaginationConfig(**values)


def names(records):
    return [r.canonical_url.rsplit("/", 1)[-1] for r in records]


class FailingActuator:
    """Actuator whose clicks never succeed."""

    def __init__(self, raise_error: bool = False):
        self.raise_error = raise_error

    async def activate(self, node):
        if self.raise_error:
            raise ActuationFailed("detached")
        return False

    async def scroll(self):
        return False


class CancellingPage(StaticPage):
    """Cancels the token as soon as the first control is clicked."""

    def __init__(self, documents, url, token, **kwargs):
        super().__init__(documents, url, **kwargs)
        self.token = token

    async def activate(self, node):
        advanced = await super().activate(node)
        self.token.cancel("user stop")
        return advanced


class NavigatingPage(StaticPage):
    """Snapshots fail for a while after a click, as during a page navigation."""

    def __init__(self, documents, url, failures, **kwargs):
        super().__init__(documents, url, **kwargs)
        self.failures = failures
        self.pending = 0

    async def activate(self, node):
        advanced = await super().activate(node)
        self.pending = self.failures
        return advanced

    async def snapshot(self):
        if self.pending:
            self.pending -= 1
            raise RuntimeError("Execution context was destroyed, most likely because of a navigation")
        return await super().snapshot()


# ====================================================================
# 1. Control discovery
# ====================================================================

class TestFindNextControl:

    def test_semantic_rel_next_first(self):
        tree = make_tree('<a class="next" href="#">Next</a><a rel="next" href="#">2</a>')
        selector, node = find_next_control(tree)
        assert selector == 'a[rel="next"]'
        assert node.get("rel") == "next"

    def test_aria_label_case_insensitive(self):
        tree = make_tree('<button aria-label="Next Page">›</button>')
        selector, _ = find_next_control(tree)
        assert selector == 'button[aria-label*="next" i]'

    def test_text_scan(self):
        selector, node = find_next_control(make_tree("<button>Load more</button>"))
        assert selector == "text:load more"
        assert node.tag == "button"

    def test_text_scan_can_be_disabled(self):
        assert find_next_control(make_tree("<button>Load more</button>"), scan_text=False) is None

    def test_hidden_or_disabled_controls_ignored(self):
        tree = make_tree(
            '<a class="next" style="display:none">Next</a>'
            '<button class="load-more" disabled>More</button>'
        )
        assert find_next_control(tree) is None


# ====================================================================
# 2. Traversal
# ====================================================================

class TestTraversal:

    @pytest.mark.asyncio
    async def test_stops_when_a_round_adds_nothing(self):
        """Three pages, the third repeating the second: four unique records."""
        source = StaticPage(
            [doc("a1", "a2"), doc("a3", "a4", "a1"), doc("a3", "a4")],
            BASE,
            urls=[f"{BASE}?page={i}" for i in (1, 2, 3)],
        )
        result = await traverse_pagination(source, source, AssetGatherer(), fast_config())
        assert names(result.records) == ["a1.jpg", "a2.jpg", "a3.jpg", "a4.jpg"]
        assert result.termination_reason == TerminationReason.NO_NEW_RECORDS
        assert result.state.round_index == 3
        assert result.state.last_control_selector == "a.next"
        assert source.activations == ["click:a", "click:a"]
        assert result.stats.duplicates == 3

    @pytest.mark.asyncio
    async def test_no_next_control_in_click_mode(self):
        source = StaticPage([doc("a1", next_link=False)], BASE)
        result = await traverse_pagination(
            source, source, AssetGatherer(), fast_config(mode=TraversalMode.CLICK),
        )
        assert names(result.records) == ["a1.jpg"]
        assert result.termination_reason == TerminationReason.NO_NEXT_CONTROL
        assert source.activations == []

    @pytest.mark.asyncio
    async def test_scroll_fallback_in_auto_mode(self):
        source = StaticPage([doc("a1", next_link=False), doc("a1", "a2", next_link=False)], BASE)
        result = await traverse_pagination(source, source, AssetGatherer(), fast_config())
        assert names(result.records) == ["a1.jpg", "a2.jpg"]
        assert source.activations == ["scroll"]
        assert result.state.last_control_selector == "scroll"
        assert result.termination_reason == TerminationReason.NO_NEXT_CONTROL

    @pytest.mark.asyncio
    async def test_scroll_mode_ignores_controls(self):
        source = StaticPage([doc("a1"), doc("a1", "a2")], BASE)
        result = await traverse_pagination(
            source, source, AssetGatherer(), fast_config(mode=TraversalMode.SCROLL),
        )
        assert source.activations == ["scroll"]
        assert len(result.records) == 2

    @pytest.mark.asyncio
    async def test_round_limit(self):
        documents = [doc(f"p{i}") for i in range(5)]
        source = StaticPage(documents, BASE, urls=[f"{BASE}?page={i}" for i in range(5)])
        result = await traverse_pagination(source, source, AssetGatherer(), fast_config(max_rounds=2))
        assert names(result.records) == ["p0.jpg", "p1.jpg"]
        assert result.termination_reason == TerminationReason.MAX_ROUNDS
        assert result.state.round_index == 2

    @pytest.mark.asyncio
    async def test_mode_none_is_single_round(self):
        source = StaticPage([doc("a1"), doc("a2")], BASE)
        result = await traverse_pagination(
            source, source, AssetGatherer(), fast_config(mode=TraversalMode.NONE),
        )
        assert names(result.records) == ["a1.jpg"]
        assert source.activations == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raise_error", [False, True])
    async def test_actuation_failure_keeps_records(self, raise_error):
        source = StaticPage([doc("a1", "a2")], BASE)
        traverser = PaginationTraverser(source, FailingActuator(raise_error), AssetGatherer())
        result = await traverser.traverse(fast_config())
        assert names(result.records) == ["a1.jpg", "a2.jpg"]
        assert result.termination_reason == TerminationReason.ACTUATION_FAILED

    @pytest.mark.asyncio
    async def test_cancellation_returns_partial_records(self):
        token = CancelToken()
        source = CancellingPage([doc("a1"), doc("a2")], BASE, token, urls=[BASE, f"{BASE}?page=2"])
        result = await traverse_pagination(source, source, AssetGatherer(), fast_config(), cancel=token)
        assert names(result.records) == ["a1.jpg"]
        assert result.termination_reason == TerminationReason.CANCELLED

    @pytest.mark.asyncio
    async def test_container_count_tracked(self):
        source = StaticPage([doc("a1")], BASE)
        config = fast_config(
            mode=TraversalMode.NONE,
            gather=GatherConfig(container_selector=".results"),
        )
        result = await traverse_pagination(source, source, AssetGatherer(), config)
        assert result.state.seen_container_count == 1

    @pytest.mark.asyncio
    async def test_snapshot_failure_after_click_is_retried(self):
        source = NavigatingPage(
            [doc("a1"), doc("a2", next_link=False)], BASE, failures=1,
            urls=[BASE, f"{BASE}?page=2"],
        )
        result = await traverse_pagination(
            source, source, AssetGatherer(), fast_config(mode=TraversalMode.CLICK),
        )
        assert names(result.records) == ["a1.jpg", "a2.jpg"]
        assert result.termination_reason == TerminationReason.NO_NEXT_CONTROL

    @pytest.mark.asyncio
    async def test_page_lost_after_click_keeps_records(self):
        source = NavigatingPage(
            [doc("a1"), doc("a2")], BASE, failures=10_000,
            urls=[BASE, f"{BASE}?page=2"],
        )
        result = await traverse_pagination(
            source, source, AssetGatherer(),
            fast_config(mode=TraversalMode.CLICK, settle_timeout=0.05),
        )
        assert names(result.records) == ["a1.jpg"]
        assert result.termination_reason == TerminationReason.SNAPSHOT_FAILED
        assert result.state.round_index == 1
