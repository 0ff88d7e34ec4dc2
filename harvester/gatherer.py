"""
Asset Gatherer
==============
Extracts image assets from a content-tree snapshot.

Pipeline per pass:
    1. Enumerate nodes matching each asset selector (optionally scoped to a
       container selector).
    2. Extract one URL per node, in priority order:
           direct attribute → lazy-load attribute → srcset →
           computed background-image → free-form data attribute
    3. Canonicalize; invalid or non-asset URLs are counted and dropped.
    4. Sweep every node for a non-``none`` background-image (all ``url()``
       references), merged into the same candidate list.
    5. Probe natural dimensions in paced batches (failure → 0×0).
    6. Validation gate (minimum width/height, allowed formats), then
       deduplicate on the canonical URL: the first node that passes wins.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .batch import BatchConfig, is_batch_error, run_batch
from .cancel import CancelToken
from .dom import ContentTree, Node
from .errors import ExtractionSkipped, SelectorInvalid
from .host import ResourceProber
from .urls import (
    DEFAULT_FORMATS,
    CanonicalizeOptions,
    asset_format,
    best_srcset_url,
    canonicalize,
    extract_css_urls,
    is_likely_asset,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Source catalogues
# ---------------------------------------------------------------------------

DEFAULT_ASSET_SELECTORS: Tuple[str, ...] = (
    'img[src]',
    'img[data-src]',
    'img[data-lazy-src]',
    '[style*="background-image"]',
    'picture img',
    'figure img',
    '.image img',
    '[data-background]',
    'img[srcset]',
    'picture source[srcset]',
)

DIRECT_ATTRIBUTES = ('src',)
LAZY_ATTRIBUTES = ('data-src', 'data-lazy-src', 'data-original', 'data-lazy', 'data-url')
SRCSET_ATTRIBUTES = ('srcset', 'data-srcset')
DATA_FALLBACK_ATTRIBUTES = ('data-background', 'data-image', 'data-bg')
THUMBNAIL_ATTRIBUTES = ('data-thumbnail', 'data-thumb')


class SourceKind(str, Enum):
    """Where on the node an asset URL was found."""
    DIRECT = 'direct-attribute'
    LAZY = 'lazy-attribute'
    CSS_BACKGROUND = 'css-background'
    SRCSET = 'srcset'


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Dimensions:
    width: int = 0
    height: int = 0

    @property
    def is_zero(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def meets(self, min_width: int, min_height: int) -> bool:
        return self.width >= min_width and self.height >= min_height


@dataclass(frozen=True)
class AssetRecord:
    """One harvested asset.  Immutable once the gathering pass returns it."""
    canonical_url: str
    source_kind: SourceKind
    displayed_dimensions: Dimensions
    natural_dimensions: Optional[Dimensions] = None
    thumbnail_url: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict, compare=False)
    discovered_at: float = field(default_factory=time.monotonic, compare=False)

    @property
    def format(self) -> str:
        return asset_format(self.canonical_url)

    @property
    def effective_dimensions(self) -> Dimensions:
        """Natural size when known, else the displayed size."""
        if self.natural_dimensions is not None and not self.natural_dimensions.is_zero:
            return self.natural_dimensions
        return self.displayed_dimensions

    def to_dict(self) -> dict:
        natural = self.natural_dimensions
        return {
            'canonical_url': self.canonical_url,
            'thumbnail_url': self.thumbnail_url,
            'source_kind': self.source_kind.value,
            'natural_dimensions': (
                {'width': natural.width, 'height': natural.height} if natural else None
            ),
            'displayed_dimensions': {
                'width': self.displayed_dimensions.width,
                'height': self.displayed_dimensions.height,
            },
            'metadata': dict(self.metadata),
            'discovered_at': self.discovered_at,
        }


@dataclass
class GatherConfig:
    """Options of one gathering pass."""
    selectors: Sequence[str] = DEFAULT_ASSET_SELECTORS
    container_selector: Optional[str] = None
    min_width: int = 0
    min_height: int = 0
    formats: Optional[Sequence[str]] = DEFAULT_FORMATS
    include_metadata: bool = True
    deduplicate: bool = True
    include_backgrounds: bool = True
    probe_dimensions: bool = True
    url_options: CanonicalizeOptions = field(default_factory=CanonicalizeOptions)
    probe_batch: BatchConfig = field(default_factory=BatchConfig)


@dataclass
class GatherStats:
    """Aggregate counters of one pass.  Per-node failures only show up here."""
    nodes_seen: int = 0
    extracted: int = 0
    skipped: int = 0          # no URL / invalid URL / not an asset
    rejected: int = 0         # failed the validation gate
    duplicates: int = 0
    probe_failures: int = 0
    invalid_selectors: int = 0

    def merge(self, other: "GatherStats") -> None:
        for name in self.__dataclass_fields__:
            setattr(self, name, getattr(self, name) + getattr(other, name))


@dataclass
class GatherOutcome:
    records: List[AssetRecord]
    stats: GatherStats


@dataclass
class _Candidate:
    url: str
    kind: SourceKind
    node: Node
    thumbnail_url: Optional[str]


# ---------------------------------------------------------------------------
# Per-node extraction
# ---------------------------------------------------------------------------

def _first_attribute(node: Node, names: Sequence[str]) -> Optional[str]:
    for name in names:
        value = (node.get(name) or '').strip()
        if value:
            return value
    return None


def extract_asset_url(node: Node) -> Tuple[str, SourceKind]:
    """
    Raw (uncanonicalized) asset URL of ``node`` and where it came from.

    An inline ``data:`` placeholder in ``src`` gives way to a lazy-load
    attribute when one is present.

    Raises:
        ExtractionSkipped: if the node carries no URL at all.
    """
    direct = _first_attribute(node, DIRECT_ATTRIBUTES)
    lazy = _first_attribute(node, LAZY_ATTRIBUTES)

    if direct and not (lazy and direct[:5].lower() == 'data:'):
        return direct, SourceKind.DIRECT
    if lazy:
        return lazy, SourceKind.LAZY

    srcset = _first_attribute(node, SRCSET_ATTRIBUTES)
    if srcset:
        best = best_srcset_url(srcset)
        if best:
            return best, SourceKind.SRCSET

    background = node.background_image
    if background and background.lower() != 'none':
        urls = extract_css_urls(background)
        if urls:
            return urls[0], SourceKind.CSS_BACKGROUND

    fallback = _first_attribute(node, DATA_FALLBACK_ATTRIBUTES)
    if fallback:
        return fallback, SourceKind.LAZY

    if direct:
        return direct, SourceKind.DIRECT
    raise ExtractionSkipped(f"No asset URL on <{node.tag}>")


def extract_metadata(node: Node, canonical_url: str) -> Dict[str, str]:
    """Alt text, title, class, id, format and every ``data-*`` attribute."""
    metadata: Dict[str, str] = {}
    for key, value in (
        ('alt', node.get('alt', '')),
        ('title', node.get('title', '')),
        ('class', node.class_name),
        ('id', node.id),
    ):
        if value:
            metadata[key] = value
    metadata['format'] = asset_format(canonical_url)
    metadata.update(node.data_attributes())
    return metadata


def _displayed(node: Node) -> Dimensions:
    rect = node.rect
    if rect is None:
        return Dimensions()
    return Dimensions(int(round(rect.width)), int(round(rect.height)))


# ---------------------------------------------------------------------------
# Gatherer
# ---------------------------------------------------------------------------

class AssetGatherer:
    """
    Gathers ``AssetRecord`` values from snapshots.

    Args:
        prober: Resolves natural dimensions; ``None`` disables probing.
    """

    def __init__(self, prober: Optional[ResourceProber] = None):
        self.prober = prober
        self.last_stats = GatherStats()

    async def gather(
        self,
        tree: ContentTree,
        config: Optional[GatherConfig] = None,
        *,
        seen: Optional[Set[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> List[AssetRecord]:
        """Run one pass and return the retained records (see ``collect``)."""
        outcome = await self.collect(tree, config, seen=seen, cancel=cancel)
        return outcome.records

    async def collect(
        self,
        tree: ContentTree,
        config: Optional[GatherConfig] = None,
        *,
        seen: Optional[Set[str]] = None,
        cancel: Optional[CancelToken] = None,
    ) -> GatherOutcome:
        """
        Run one gathering pass over ``tree``.

        Args:
            tree:   Snapshot to sweep.
            config: Selectors, thresholds and switches.
            seen:   Canonical URLs already harvested (e.g. by earlier
                    pagination rounds).  Treated as duplicates, and updated
                    with the URLs retained by this pass.
            cancel: Cancels the dimension probes.

        Returns:
            ``GatherOutcome`` with the records in source order plus counters.
        """
        config = config or GatherConfig()
        stats = GatherStats()
        base_url = tree.page.base

        roots = self._roots(tree, config, stats)
        candidates = self._collect_candidates(roots, config, base_url, seen, stats)

        natural = await self._probe(candidates, config, stats, cancel)

        formats = {f.lower() for f in config.formats} if config.formats else None
        records: List[AssetRecord] = []
        claimed: Set[str] = set()
        for candidate in candidates:
            # A URL is claimed by the first node that passes the gate
            if config.deduplicate and candidate.url in claimed:
                stats.duplicates += 1
                continue
            stats.extracted += 1
            record = AssetRecord(
                canonical_url=candidate.url,
                source_kind=candidate.kind,
                displayed_dimensions=_displayed(candidate.node),
                natural_dimensions=natural.get(candidate.url),
                thumbnail_url=candidate.thumbnail_url,
                metadata=(
                    extract_metadata(candidate.node, candidate.url)
                    if config.include_metadata else {}
                ),
            )
            if not self._passes_gate(record, config, formats):
                stats.rejected += 1
                continue
            claimed.add(record.canonical_url)
            records.append(record)

        if seen is not None and config.deduplicate:
            seen.update(claimed)

        self.last_stats = stats
        logger.info(
            f"[GATHER] {len(records)} assets "
            f"({stats.nodes_seen} nodes, {stats.skipped} skipped, "
            f"{stats.duplicates} duplicates, {stats.rejected} rejected)"
        )
        return GatherOutcome(records=records, stats=stats)

    # ── Candidate collection ─────────────────────────────────────

    def _roots(self, tree: ContentTree, config: GatherConfig, stats: GatherStats):
        if not config.container_selector:
            return [tree]
        try:
            containers = tree.select(config.container_selector)
        except SelectorInvalid as exc:
            logger.warning(f"[GATHER] {exc.message}")
            stats.invalid_selectors += 1
            return []
        if not containers:
            logger.debug(f"[GATHER] Container not found: {config.container_selector}")
        return containers

    def _collect_candidates(
        self,
        roots,
        config: GatherConfig,
        base_url: str,
        seen: Optional[Set[str]],
        stats: GatherStats,
    ) -> List[_Candidate]:
        candidates: List[_Candidate] = []
        harvested: Set[str] = set(seen) if (seen and config.deduplicate) else set()
        visited: Set[Node] = set()

        def _accept(raw_url: str, kind: SourceKind, node: Node) -> None:
            url = canonicalize(raw_url, base_url, config.url_options)
            if url is None or not is_likely_asset(url, config.formats):
                stats.skipped += 1
                logger.debug(f"[GATHER] Skipped {raw_url[:80]!r}")
                return
            if url in harvested:
                stats.duplicates += 1
                return
            candidates.append(_Candidate(url, kind, node, self._thumbnail(node, url, base_url, config)))

        for selector in config.selectors:
            for root in roots:
                try:
                    nodes = root.select(selector)
                except SelectorInvalid as exc:
                    logger.warning(f"[GATHER] {exc.message}")
                    stats.invalid_selectors += 1
                    break
                for node in nodes:
                    if node in visited:
                        continue
                    visited.add(node)
                    stats.nodes_seen += 1
                    try:
                        raw_url, kind = extract_asset_url(node)
                    except ExtractionSkipped:
                        stats.skipped += 1
                        continue
                    _accept(raw_url, kind, node)

        if config.include_backgrounds:
            for root in roots:
                for node in self._sweep_nodes(root):
                    background = node.background_image
                    if not background or background.lower() == 'none':
                        continue
                    for raw_url in extract_css_urls(background):
                        _accept(raw_url, SourceKind.CSS_BACKGROUND, node)

        return candidates

    @staticmethod
    def _sweep_nodes(root) -> List[Node]:
        if isinstance(root, ContentTree):
            return root.nodes()
        return [root] + root.descendants()

    @staticmethod
    def _thumbnail(node: Node, url: str, base_url: str, config: GatherConfig) -> Optional[str]:
        raw = _first_attribute(node, THUMBNAIL_ATTRIBUTES)
        if not raw:
            # A src other than the harvested URL is its preview
            src = _first_attribute(node, DIRECT_ATTRIBUTES)
            if src and src[:5].lower() != 'data:':
                raw = src
        if not raw:
            return None
        thumb = canonicalize(raw, base_url, config.url_options)
        return thumb if thumb and thumb != url else None

    # ── Probing / validation ─────────────────────────────────────

    async def _probe(
        self,
        candidates: List[_Candidate],
        config: GatherConfig,
        stats: GatherStats,
        cancel: Optional[CancelToken],
    ) -> Dict[str, Dimensions]:
        if not (config.probe_dimensions and self.prober and candidates):
            return {}

        urls = list(dict.fromkeys(c.url for c in candidates))
        prober = self.prober

        async def _worker(url: str, _index: int) -> Dimensions:
            width, height = await prober.probe(url)
            return Dimensions(int(width), int(height))

        probe_batch = BatchConfig(
            batch_size=config.probe_batch.batch_size,
            delay_between_batches=config.probe_batch.delay_between_batches,
            continue_on_error=True,
        )
        results = await run_batch(urls, _worker, probe_batch, cancel=cancel)

        natural: Dict[str, Dimensions] = {}
        for url, result in zip(urls, results):
            if is_batch_error(result):
                stats.probe_failures += 1
                logger.debug(f"[GATHER] Probe failed for {url}: {result.error}")
                natural[url] = Dimensions()
            else:
                natural[url] = result
        return natural

    @staticmethod
    def _passes_gate(record: AssetRecord, config: GatherConfig, formats: Optional[Set[str]]) -> bool:
        if config.min_width or config.min_height:
            if not record.effective_dimensions.meets(config.min_width, config.min_height):
                return False
        if formats:
            fmt = record.format
            # Extension-less asset paths cannot be judged by format
            if fmt != 'unknown' and fmt not in formats:
                return False
        return True
