"""
Pagination / Infinite-Scroll Traverser
======================================
Repeats asset gathering across pages or scroll rounds.

Each round:
    1. Gather assets from the current snapshot; records already harvested
       in earlier rounds count as duplicates.
    2. Stop if the round produced nothing new, or the round limit is hit.
    3. Locate a "next" / "load more" control and activate it (or, in
       ``auto`` and ``scroll`` modes, scroll to trigger lazy loading).
    4. Wait for the content to change and then settle before the next
       round starts.

Rounds are strictly sequential.  Cancellation, actuation failures and a page
that cannot be captured after advancing end the traversal with the records
accumulated so far.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .cancel import CancelToken
from .dom import ContentTree, Node
from .errors import ActuationFailed, HarvestCancelled, SelectorInvalid
from .gatherer import AssetGatherer, AssetRecord, GatherConfig, GatherStats
from .host import Actuator, TreeSource
from .predicates import is_interactive

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Control catalogue
# ---------------------------------------------------------------------------
NEXT_CONTROL_SELECTORS: List[str] = [
    # ── Semantic ──────────────────────────────────────────────────
    'a[rel="next"]',
    'button[rel="next"]',
    'a[aria-label*="next" i]',
    'button[aria-label*="next" i]',
    '[role="button"][aria-label*="next" i]',

    # ── Pagination widgets ────────────────────────────────────────
    '.pagination .next a',
    '.pagination a.next',
    '.pagination .next',
    '.pager .next a',
    '.page-numbers.next',
    'a.next',
    'button.next',
    '.next-page',
    '[class*="pagination-next"]',
    '[class*="pagination__next"]',

    # ── Load more / show more ─────────────────────────────────────
    'button.load-more',
    '.load-more',
    '[class*="load-more"]',
    '[data-action="load-more"]',
    '.show-more',
    '[class*="show-more"]',
]

# Visible labels of "next" style controls
_NEXT_TEXT_PATTERNS = frozenset([
    'next', 'next page', 'next »', 'next ›', 'load more', 'show more',
    'more results', 'see more', 'view more', 'older', 'older posts',
    '›', '»', '→',
])

_TEXT_SCAN_SELECTOR = 'a, button, [role="button"]'


class TerminationReason(str, Enum):
    NO_NEXT_CONTROL = 'no-next-control'
    NO_NEW_RECORDS = 'no-new-records'
    MAX_ROUNDS = 'max-rounds'
    ACTUATION_FAILED = 'actuation-failed'
    SNAPSHOT_FAILED = 'snapshot-failed'
    CANCELLED = 'cancelled'


class TraversalMode(str, Enum):
    AUTO = 'auto'        # next control, else scroll
    CLICK = 'click'      # next control only
    SCROLL = 'scroll'    # scroll only
    NONE = 'none'        # single round


# ---------------------------------------------------------------------------
# Config / state
# ---------------------------------------------------------------------------

@dataclass
class PaginationConfig:
    max_rounds: int = 10
    mode: TraversalMode = TraversalMode.AUTO
    next_selectors: Sequence[str] = field(default_factory=lambda: list(NEXT_CONTROL_SELECTORS))
    scan_control_text: bool = True
    settle_timeout: float = 5.0      # seconds to wait for new content
    settle_interval: float = 0.25    # seconds between settle polls
    stable_polls: int = 2            # identical snapshots that count as settled
    gather: GatherConfig = field(default_factory=GatherConfig)


@dataclass
class PaginationState:
    """Progress of one traversal; owned by the traversal loop."""
    round_index: int = 0
    last_control_selector: Optional[str] = None
    seen_container_count: int = 0
    termination_reason: Optional[TerminationReason] = None


@dataclass
class TraversalResult:
    records: List[AssetRecord]
    state: PaginationState
    stats: GatherStats

    @property
    def termination_reason(self) -> Optional[TerminationReason]:
        return self.state.termination_reason


# ---------------------------------------------------------------------------
# Control discovery
# ---------------------------------------------------------------------------

def find_next_control(
    tree: ContentTree,
    selectors: Sequence[str] = NEXT_CONTROL_SELECTORS,
    scan_text: bool = True,
) -> Optional[Tuple[str, Node]]:
    """
    Locate an interactive "next" / "load more" control.

    Selectors are tried in order; if none matches, visible link and button
    labels are scanned.

    Returns:
        ``(selector_or_label, node)`` or ``None``.
    """
    for selector in selectors:
        try:
            nodes = tree.select(selector)
        except SelectorInvalid as exc:
            logger.debug(f"[PAGINATE] {exc.message}")
            continue
        for node in nodes:
            if is_interactive(node):
                return selector, node

    if scan_text:
        for node in tree.select(_TEXT_SCAN_SELECTOR):
            label = node.text.lower() or (node.get('aria-label') or '').strip().lower()
            if label in _NEXT_TEXT_PATTERNS and is_interactive(node):
                return f'text:{label}', node
    return None


# ---------------------------------------------------------------------------
# Traverser
# ---------------------------------------------------------------------------

class PaginationTraverser:
    """
    Drives gathering across pagination / scroll rounds.

    Args:
        source:   Snapshot provider.
        actuator: Clicks controls and scrolls the page.
        gatherer: Runs each round's extraction.
    """

    def __init__(self, source: TreeSource, actuator: Actuator, gatherer: AssetGatherer):
        self.source = source
        self.actuator = actuator
        self.gatherer = gatherer

    async def traverse(
        self,
        config: Optional[PaginationConfig] = None,
        *,
        cancel: Optional[CancelToken] = None,
    ) -> TraversalResult:
        config = config or PaginationConfig()
        cancel = cancel or CancelToken()
        mode = TraversalMode(config.mode)

        state = PaginationState()
        records: List[AssetRecord] = []
        seen: set = set()
        stats = GatherStats()

        try:
            tree = await self.source.snapshot()
            while True:
                cancel.raise_if_cancelled()
                state.round_index += 1

                outcome = await self.gatherer.collect(tree, config.gather, seen=seen, cancel=cancel)
                stats.merge(outcome.stats)
                records.extend(outcome.records)
                state.seen_container_count = self._container_count(tree, config, outcome.stats)

                logger.info(
                    f"[PAGINATE] Round {state.round_index}: "
                    f"{len(outcome.records)} new, {len(records)} total"
                )

                if not outcome.records:
                    state.termination_reason = TerminationReason.NO_NEW_RECORDS
                    break
                if state.round_index >= config.max_rounds:
                    state.termination_reason = TerminationReason.MAX_ROUNDS
                    break

                advanced, reason = await self._advance(tree, mode, config, state)
                if not advanced:
                    state.termination_reason = reason
                    break
                try:
                    tree = await self._settle(tree, config, cancel)
                except HarvestCancelled:
                    raise
                except Exception as exc:
                    logger.warning(f"[PAGINATE] Page could not be captured after advancing: {exc}")
                    state.termination_reason = TerminationReason.SNAPSHOT_FAILED
                    break

        except HarvestCancelled:
            logger.warning(f"[PAGINATE] Cancelled in round {state.round_index}")
            state.termination_reason = TerminationReason.CANCELLED

        logger.info(
            f"[PAGINATE] Done after {state.round_index} rounds: "
            f"{len(records)} records ({state.termination_reason.value})"
        )
        return TraversalResult(records=records, state=state, stats=stats)

    # ── Helpers ──────────────────────────────────────────────────

    @staticmethod
    def _container_count(tree: ContentTree, config: PaginationConfig, stats: GatherStats) -> int:
        container = config.gather.container_selector
        if container:
            try:
                return tree.count(container)
            except SelectorInvalid:
                return 0
        return stats.nodes_seen

    async def _advance(
        self,
        tree: ContentTree,
        mode: TraversalMode,
        config: PaginationConfig,
        state: PaginationState,
    ) -> Tuple[bool, Optional[TerminationReason]]:
        if mode == TraversalMode.NONE:
            return False, TerminationReason.NO_NEXT_CONTROL

        if mode in (TraversalMode.AUTO, TraversalMode.CLICK):
            control = find_next_control(tree, config.next_selectors, config.scan_control_text)
            if control is not None:
                selector, node = control
                state.last_control_selector = selector
                try:
                    clicked = await self.actuator.activate(node)
                except ActuationFailed as exc:
                    logger.warning(f"[PAGINATE] {exc.message}")
                    clicked = False
                except Exception as exc:
                    logger.warning(f"[PAGINATE] Activating {selector} failed: {exc}")
                    clicked = False
                if not clicked:
                    return False, TerminationReason.ACTUATION_FAILED
                logger.debug(f"[PAGINATE] Activated next control: {selector}")
                return True, None
            if mode == TraversalMode.CLICK:
                return False, TerminationReason.NO_NEXT_CONTROL

        # Infinite-scroll fallback
        try:
            grew = await self.actuator.scroll()
        except Exception as exc:
            logger.warning(f"[PAGINATE] Scrolling failed: {exc}")
            return False, TerminationReason.ACTUATION_FAILED
        if not grew:
            return False, TerminationReason.NO_NEXT_CONTROL
        state.last_control_selector = 'scroll'
        return True, None

    async def _settle(
        self,
        before: ContentTree,
        config: PaginationConfig,
        cancel: CancelToken,
    ) -> ContentTree:
        """
        Wait until the snapshot differs from ``before`` and then stays the
        same for ``stable_polls`` consecutive polls, within ``settle_timeout``.
        """
        deadline = time.monotonic() + config.settle_timeout
        before_key = (before.page.url, before.fingerprint)
        required = max(1, config.stable_polls)

        tree = await self._capture(deadline, config, cancel)
        changed = (tree.page.url, tree.fingerprint) != before_key
        last = tree.fingerprint
        stable = 1 if changed else 0

        while stable < required:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                logger.debug("[PAGINATE] Settle wait timed out")
                break
            await cancel.sleep(min(config.settle_interval, remaining))
            tree = await self._capture(deadline, config, cancel)
            key = (tree.page.url, tree.fingerprint)
            if not changed:
                changed = key != before_key
                stable = 1 if changed else 0
                last = tree.fingerprint
                continue
            if tree.fingerprint == last:
                stable += 1
            else:
                last = tree.fingerprint
                stable = 1
        return tree

    async def _capture(self, deadline: float, config: PaginationConfig, cancel: CancelToken) -> ContentTree:
        """Snapshot the page, retrying captures that fail mid-navigation until ``deadline``."""
        while True:
            try:
                return await self.source.snapshot()
            except HarvestCancelled:
                raise
            except Exception as exc:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise
                logger.debug(f"[PAGINATE] Snapshot failed while settling, retrying: {exc}")
                await cancel.sleep(min(config.settle_interval, remaining))


async def traverse_pagination(
    source: TreeSource,
    actuator: Actuator,
    gatherer: AssetGatherer,
    config: Optional[PaginationConfig] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> TraversalResult:
    """Convenience wrapper around ``PaginationTraverser.traverse``."""
    return await PaginationTraverser(source, actuator, gatherer).traverse(config, cancel=cancel)
