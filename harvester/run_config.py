"""
Unified Run Configuration
=========================
Single source of truth for ALL harvester defaults and runtime limits.

Every component (CLI, session, wait engine, gatherer, traverser, batch
processor) reads from this object.  CLI flags populate it; component config
objects are built *from* it via the ``to_*`` converters.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .batch import BatchConfig
from .gatherer import DEFAULT_ASSET_SELECTORS, GatherConfig
from .paginator import PaginationConfig, TraversalMode
from .scorer import ScoringCriteria
from .urls import DEFAULT_FORMATS, CanonicalizeOptions
from .waiter import WaitOptions

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    # Wait / retry engine
    "wait_timeout": 10.0,            # seconds per attempt
    "wait_interval": 0.1,            # seconds between polls
    "retries": 3,
    "throw_on_timeout": True,
    # Gathering
    "min_width": 0,
    "min_height": 0,
    "formats": list(DEFAULT_FORMATS),
    "include_metadata": True,
    "deduplicate": True,
    "include_backgrounds": True,
    "probe_dimensions": True,
    # Canonicalization
    "allow_data_urls": True,
    "force_https": False,
    "strip_query": False,
    "sort_query": False,
    "strip_fragment": False,
    "strip_trailing_slash": False,
    # Candidate scoring
    "min_score": 0.7,
    "include_invisible": False,
    "content_analysis": True,
    # Pagination
    "max_rounds": 10,
    "pagination_mode": "auto",       # auto | click | scroll | none
    "settle_timeout": 5.0,
    "settle_interval": 0.25,
    # Batch processing
    "batch_size": 5,
    "batch_delay": 0.1,              # seconds between chunks
    "continue_on_error": True,
    # Selector cache
    "selector_cache_capacity": 100,
    "selector_cache_ttl": 300.0,     # seconds
    # Session / browser
    "force": False,
    "headless": True,
    "navigation_timeout": 30.0,      # seconds
    "probe": "http",                 # http | page | none
}


@dataclass
class HarvestRunConfig:
    """
    Unified configuration consumed by every harvester subsystem.

    Populate via:
      - ``HarvestRunConfig()``                → all defaults
      - ``HarvestRunConfig(max_rounds=3)``    → override one value
      - ``HarvestRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Wait / retry ----
    wait_timeout: float = _DEFAULTS["wait_timeout"]
    wait_interval: float = _DEFAULTS["wait_interval"]
    retries: int = _DEFAULTS["retries"]
    throw_on_timeout: bool = _DEFAULTS["throw_on_timeout"]

    # ---- Gathering ----
    asset_selectors: Optional[List[str]] = None     # None = built-in catalogue
    container_selector: Optional[str] = None
    min_width: int = _DEFAULTS["min_width"]
    min_height: int = _DEFAULTS["min_height"]
    formats: List[str] = field(default_factory=lambda: list(_DEFAULTS["formats"]))
    include_metadata: bool = _DEFAULTS["include_metadata"]
    deduplicate: bool = _DEFAULTS["deduplicate"]
    include_backgrounds: bool = _DEFAULTS["include_backgrounds"]
    probe_dimensions: bool = _DEFAULTS["probe_dimensions"]

    # ---- Canonicalization ----
    allow_data_urls: bool = _DEFAULTS["allow_data_urls"]
    force_https: bool = _DEFAULTS["force_https"]
    strip_query: bool = _DEFAULTS["strip_query"]
    sort_query: bool = _DEFAULTS["sort_query"]
    strip_fragment: bool = _DEFAULTS["strip_fragment"]
    strip_trailing_slash: bool = _DEFAULTS["strip_trailing_slash"]

    # ---- Candidate scoring ----
    min_score: float = _DEFAULTS["min_score"]
    include_invisible: bool = _DEFAULTS["include_invisible"]
    content_analysis: bool = _DEFAULTS["content_analysis"]

    # ---- Pagination ----
    max_rounds: int = _DEFAULTS["max_rounds"]
    pagination_mode: str = _DEFAULTS["pagination_mode"]
    settle_timeout: float = _DEFAULTS["settle_timeout"]
    settle_interval: float = _DEFAULTS["settle_interval"]

    # ---- Batch processing ----
    batch_size: int = _DEFAULTS["batch_size"]
    batch_delay: float = _DEFAULTS["batch_delay"]
    continue_on_error: bool = _DEFAULTS["continue_on_error"]

    # ---- Selector cache ----
    selector_cache_capacity: int = _DEFAULTS["selector_cache_capacity"]
    selector_cache_ttl: float = _DEFAULTS["selector_cache_ttl"]

    # ---- Session / browser ----
    force: bool = _DEFAULTS["force"]
    headless: bool = _DEFAULTS["headless"]
    navigation_timeout: float = _DEFAULTS["navigation_timeout"]
    probe: str = _DEFAULTS["probe"]

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_cli_args(cls, args) -> "HarvestRunConfig":
        """Build config from an argparse Namespace (``__main__.py``)."""
        probe = getattr(args, "probe", _DEFAULTS["probe"]) or _DEFAULTS["probe"]
        return cls(
            wait_timeout=getattr(args, "timeout", _DEFAULTS["wait_timeout"]),
            retries=getattr(args, "retries", _DEFAULTS["retries"]),
            container_selector=getattr(args, "container", None),
            min_width=getattr(args, "min_width", _DEFAULTS["min_width"]),
            min_height=getattr(args, "min_height", _DEFAULTS["min_height"]),
            formats=list(getattr(args, "formats", None) or _DEFAULTS["formats"]),
            max_rounds=getattr(args, "max_rounds", _DEFAULTS["max_rounds"]),
            pagination_mode=getattr(args, "mode", _DEFAULTS["pagination_mode"]),
            force=getattr(args, "force", False),
            headless=not getattr(args, "headed", False),
            probe=probe,
            probe_dimensions=probe != "none",
        )

    # -----------------------------------------------------------------------
    # Converters to component config objects
    # -----------------------------------------------------------------------
    def to_wait_options(self, throw_on_timeout: Optional[bool] = None) -> WaitOptions:
        return WaitOptions(
            timeout=self.wait_timeout,
            interval=self.wait_interval,
            retries=self.retries,
            throw_on_timeout=self.throw_on_timeout if throw_on_timeout is None else throw_on_timeout,
        )

    def to_canonicalize_options(self) -> CanonicalizeOptions:
        return CanonicalizeOptions(
            allow_data_urls=self.allow_data_urls,
            force_https=self.force_https,
            strip_query=self.strip_query,
            sort_query=self.sort_query,
            strip_fragment=self.strip_fragment,
            strip_trailing_slash=self.strip_trailing_slash,
        )

    def to_batch_config(self) -> BatchConfig:
        return BatchConfig(
            batch_size=self.batch_size,
            delay_between_batches=self.batch_delay,
            continue_on_error=self.continue_on_error,
        )

    def to_gather_config(self, container_selector: Optional[str] = None) -> GatherConfig:
        """``container_selector`` overrides the configured one when given."""
        return GatherConfig(
            selectors=list(self.asset_selectors or DEFAULT_ASSET_SELECTORS),
            container_selector=container_selector or self.container_selector,
            min_width=self.min_width,
            min_height=self.min_height,
            formats=list(self.formats) if self.formats else None,
            include_metadata=self.include_metadata,
            deduplicate=self.deduplicate,
            include_backgrounds=self.include_backgrounds,
            probe_dimensions=self.probe_dimensions,
            url_options=self.to_canonicalize_options(),
            probe_batch=self.to_batch_config(),
        )

    def to_scoring_criteria(self) -> ScoringCriteria:
        return ScoringCriteria(
            min_score=self.min_score,
            include_invisible=self.include_invisible,
            content_analysis=self.content_analysis,
        )

    def to_pagination_config(self, gather: Optional[GatherConfig] = None) -> PaginationConfig:
        return PaginationConfig(
            max_rounds=self.max_rounds,
            mode=TraversalMode(self.pagination_mode),
            settle_timeout=self.settle_timeout,
            settle_interval=self.settle_interval,
            gather=gather or self.to_gather_config(),
        )

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self, url: str) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("HARVEST RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  URL:              {url}")
        logger.info(f"  Pagination:       {self.pagination_mode} (max {self.max_rounds} rounds)")
        logger.info(f"  Wait:             {self.wait_timeout}s x {self.retries} attempts")
        logger.info(f"  Min Size:         {self.min_width}x{self.min_height}px")
        logger.info(f"  Formats:          {', '.join(self.formats)}")
        logger.info(f"  Probe:            {self.probe}")
        logger.info(f"  Batch:            {self.batch_size} items, {self.batch_delay}s apart")
        if self.container_selector:
            logger.info(f"  Container:        {self.container_selector}")
        if self.force:
            logger.info(f"  Force Harvest:    Yes (skip gallery detection)")
        logger.info(f"  Headless:         {self.headless}")
        logger.info("=" * 60)
