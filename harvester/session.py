"""
Harvest Session
===============
One page-load worth of harvesting state and the public operations on it.

The session owns the only mutable state of the core (``DetectionCache``,
``SelectorCache``, the cancel token) and hands it to the components it
drives:

    detect_page_relevance()  → GalleryDetector
    resolve_selector()       → wait / retry engine
    gather_assets()          → AssetGatherer
    score_candidates()       → scorer
    traverse_pagination()    → PaginationTraverser
    run_batch()              → batch processor
    harvest()                → all of the above, gated by detection

This module does NOT own the browser; it only talks to the host
capabilities it is given.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .batch import BatchConfig, Worker, run_batch
from .cache import DetectionCache, SelectorCache
from .cancel import CancelToken
from .detector import GalleryDetector
from .dom import ContentTree
from .errors import HarvestCancelled
from .gatherer import AssetGatherer, AssetRecord, GatherConfig, GatherStats
from .host import Actuator, ResourceProber, TreeSource
from .paginator import (
    PaginationConfig,
    PaginationTraverser,
    TerminationReason,
    TraversalMode,
    TraversalResult,
)
from .run_config import HarvestRunConfig
from .scorer import CandidateScore, ScoringCriteria, score_candidates, selector_for
from .utils import site_key, timed
from .waiter import SelectorQuery, WaitOptions, WaitResult, resolve_many, resolve_selector

logger = logging.getLogger(__name__)


@dataclass
class HarvestReport:
    """Outcome of ``HarvestSession.harvest``."""
    url: str
    is_gallery: bool
    skipped: bool = False
    container_selector: Optional[str] = None
    container_source: Optional[str] = None     # explicit | cache | inferred
    records: List[AssetRecord] = field(default_factory=list)
    rounds: int = 0
    termination_reason: Optional[str] = None
    stats: GatherStats = field(default_factory=GatherStats)
    elapsed: float = 0.0

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'is_gallery': self.is_gallery,
            'skipped': self.skipped,
            'container_selector': self.container_selector,
            'container_source': self.container_source,
            'rounds': self.rounds,
            'termination_reason': self.termination_reason,
            'elapsed': round(self.elapsed, 3),
            'stats': dict(self.stats.__dict__),
            'records': [r.to_dict() for r in self.records],
        }


class HarvestSession:
    """
    Harvesting context for one page load.

    Args:
        source:          Snapshot provider for the page.
        actuator:        Clicks / scrolls (pagination); optional.
        prober:          Natural-dimension lookups; optional.
        config:          Run configuration (defaults when omitted).
        selector_cache:  Shared across sessions to reuse inferred selectors
                         per site; a private cache is created when omitted.
        cancel:          Cancellation token for every wait of the session.
    """

    def __init__(
        self,
        source: TreeSource,
        *,
        actuator: Optional[Actuator] = None,
        prober: Optional[ResourceProber] = None,
        config: Optional[HarvestRunConfig] = None,
        selector_cache: Optional[SelectorCache] = None,
        detection_cache: Optional[DetectionCache] = None,
        cancel: Optional[CancelToken] = None,
    ):
        self.source = source
        self.actuator = actuator
        self.config = config or HarvestRunConfig()
        self.cancel_token = cancel or CancelToken()
        self.selector_cache = selector_cache if selector_cache is not None else SelectorCache(
            capacity=self.config.selector_cache_capacity,
            ttl=self.config.selector_cache_ttl,
        )
        self.detection_cache = detection_cache if detection_cache is not None else DetectionCache()
        self.detector = GalleryDetector(self.detection_cache)
        self.gatherer = AssetGatherer(prober if self.config.probe_dimensions else None)

        self.last_traversal: Optional[TraversalResult] = None
        self.last_gather_stats: Optional[GatherStats] = None
        self._page_url: Optional[str] = None

    # ------------------------------------------------------------------
    # Page lifecycle
    # ------------------------------------------------------------------

    async def snapshot(self) -> ContentTree:
        """Fresh snapshot; a changed URL counts as a new page load."""
        tree = await self.source.snapshot()
        if self._page_url is not None and tree.page.url != self._page_url:
            self.navigated()
        self._page_url = tree.page.url
        return tree

    def navigated(self) -> None:
        """Forget per-load state after navigation."""
        logger.debug("[DETECT] Page changed, detection verdict cleared")
        self.detection_cache.clear()

    def cancel(self, reason: str = "cancelled") -> None:
        self.cancel_token.cancel(reason)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def detect_page_relevance(self) -> bool:
        tree = await self.snapshot()
        with timed("gallery-detection"):
            return self.detector.is_gallery_page(tree)

    async def resolve_selector(
        self,
        query: SelectorQuery,
        options: Optional[WaitOptions] = None,
    ) -> WaitResult:
        return await resolve_selector(
            self.source, query, options or self.config.to_wait_options(),
            cancel=self.cancel_token,
        )

    async def resolve_many(
        self,
        queries: Dict[str, SelectorQuery],
        options: Optional[WaitOptions] = None,
        *,
        simultaneous: bool = True,
    ) -> Dict[str, WaitResult]:
        return await resolve_many(
            self.source, queries, options or self.config.to_wait_options(),
            simultaneous=simultaneous, cancel=self.cancel_token,
        )

    async def gather_assets(self, config: Optional[GatherConfig] = None) -> List[AssetRecord]:
        tree = await self.snapshot()
        outcome = await self.gatherer.collect(
            tree, config or self.config.to_gather_config(), cancel=self.cancel_token,
        )
        self.last_gather_stats = outcome.stats
        return outcome.records

    async def score_candidates(self, criteria: Optional[ScoringCriteria] = None) -> List[CandidateScore]:
        tree = await self.snapshot()
        return score_candidates(tree, criteria or self.config.to_scoring_criteria())

    async def traverse_pagination(self, config: Optional[PaginationConfig] = None) -> List[AssetRecord]:
        """Records accumulated across rounds; details in ``last_traversal``."""
        if self.actuator is None:
            raise ValueError("Pagination needs an actuator")
        traverser = PaginationTraverser(self.source, self.actuator, self.gatherer)
        result = await traverser.traverse(
            config or self.config.to_pagination_config(), cancel=self.cancel_token,
        )
        self.last_traversal = result
        return result.records

    async def run_batch(
        self,
        items: Sequence[Any],
        worker: Worker,
        config: Optional[BatchConfig] = None,
    ) -> List[Any]:
        return await run_batch(
            items, worker, config or self.config.to_batch_config(), cancel=self.cancel_token,
        )

    # ------------------------------------------------------------------
    # Container selection
    # ------------------------------------------------------------------

    def infer_container_selector(self, tree: ContentTree) -> Optional[str]:
        """Selector of the best-scoring candidate that holds an image."""
        for candidate in score_candidates(tree, self.config.to_scoring_criteria()):
            if 'has_image' in candidate.feature_flags:
                return selector_for(candidate.node)
        return None

    def pick_container(self, tree: ContentTree):
        """
        Container selector for gathering: explicit → cached → inferred.

        Returns:
            ``(selector, source)``; ``(None, None)`` means the whole page.
        """
        if self.config.container_selector:
            return self.config.container_selector, 'explicit'

        key = site_key(tree.page.url)
        cached = self.selector_cache.get(key)
        if cached:
            return cached[0], 'cache'

        inferred = self.infer_container_selector(tree)
        if inferred:
            self.selector_cache.put(key, [inferred])
            logger.info(f"Inferred container selector for {key}: {inferred}")
            return inferred, 'inferred'
        return None, None

    # ------------------------------------------------------------------
    # Full pipeline
    # ------------------------------------------------------------------

    async def harvest(self) -> HarvestReport:
        """
        Detect → pick container → wait for assets → gather or traverse.

        Cancellation returns whatever was accumulated.
        """
        start = time.monotonic()
        cfg = self.config
        tree = await self.snapshot()
        report = HarvestReport(url=tree.page.url, is_gallery=False)

        report.is_gallery = self.detector.is_gallery_page(tree)
        if not report.is_gallery and not cfg.force:
            logger.info(f"Skipping {tree.page.url}: not a gallery page")
            report.skipped = True
            report.elapsed = time.monotonic() - start
            return report

        container, container_source = self.pick_container(tree)
        report.container_selector = container
        report.container_source = container_source

        gather_config = cfg.to_gather_config(container_selector=container)
        mode = TraversalMode(cfg.pagination_mode)
        try:
            await self._wait_for_assets(gather_config)
            if self.actuator is not None and mode != TraversalMode.NONE:
                pagination = cfg.to_pagination_config(gather=gather_config)
                await self.traverse_pagination(pagination)
                result = self.last_traversal
                report.records = result.records
                report.rounds = result.state.round_index
                report.termination_reason = result.state.termination_reason.value
                report.stats = result.stats
            else:
                report.records = await self.gather_assets(gather_config)
                report.rounds = 1
                report.stats = self.last_gather_stats or GatherStats()
                report.termination_reason = TerminationReason.NO_NEXT_CONTROL.value
        except HarvestCancelled:
            logger.warning(f"Harvest of {report.url} cancelled")
            report.termination_reason = TerminationReason.CANCELLED.value

        report.elapsed = time.monotonic() - start
        logger.info(
            f"Harvested {len(report.records)} assets from {report.url} "
            f"in {report.elapsed:.1f}s"
        )
        return report

    async def _wait_for_assets(self, gather_config: GatherConfig) -> WaitResult:
        selectors = list(gather_config.selectors)
        if gather_config.container_selector:
            selectors = [f"{gather_config.container_selector} {s}" for s in selectors]
        query = SelectorQuery.of(selectors, require_enabled=False, expect_multiple=True)
        options = self.config.to_wait_options(throw_on_timeout=False)
        result = await resolve_selector(self.source, query, options, cancel=self.cancel_token)
        if not result.found:
            logger.warning("[WAIT] No asset elements appeared; gathering anyway")
        return result
