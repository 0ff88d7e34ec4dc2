"""
Gallery Harvester Package
Detects gallery-style pages and extracts their image assets, following
pagination and infinite scroll.

CLI Usage:
    python -m harvester <url> [options]

    Options:
        --force         Harvest even if the page is not detected as a gallery
        --max-rounds    Maximum pagination rounds (default: 10)
        --mode          auto | click | scroll | none (default: auto)
        --timeout       Seconds to wait for assets per attempt (default: 10)
        --retries       Wait attempts (default: 3)
        --min-width     Minimum image width in px
        --min-height    Minimum image height in px
        --formats       Allowed formats
        --container     CSS selector of the gallery container
        --headed        Show the browser window
        --probe         http | page | none

The live browser binding lives in ``harvester.browser`` and the HTTP prober
in ``harvester.probe``; neither is imported here.
"""

from .batch import BatchConfig, BatchItemError, run_batch
from .cache import DetectionCache, SelectorCache, SelectorCacheEntry
from .cancel import CancelToken
from .detector import DEFAULT_SIGNALS, GalleryDetector, Signal, any_of
from .dom import BoundingBox, ContentTree, Node, PageIdentity
from .errors import (
    ActuationFailed,
    BatchItemFailed,
    ExtractionSkipped,
    HarvestCancelled,
    HarvestError,
    ResolutionTimeout,
    ResourceProbeFailed,
    SelectorInvalid,
)
from .gatherer import AssetGatherer, AssetRecord, Dimensions, GatherConfig, GatherStats, SourceKind
from .host import Actuator, MappingProber, ResourceProber, StaticPage, TreeSource
from .paginator import (
    PaginationConfig,
    PaginationState,
    PaginationTraverser,
    TerminationReason,
    TraversalMode,
    TraversalResult,
    traverse_pagination,
)
from .predicates import extract_text, is_enabled, is_interactive, is_visible
from .run_config import HarvestRunConfig
from .scorer import CandidateScore, ScoringCriteria, score_candidates, selector_for
from .session import HarvestReport, HarvestSession
from .urls import CanonicalizeOptions, asset_format, canonicalize, is_likely_asset
from .waiter import SelectorConstraints, SelectorQuery, WaitOptions, WaitResult, resolve_many, resolve_selector

__all__ = [
    # Session
    'HarvestSession',
    'HarvestReport',
    'HarvestRunConfig',
    # URL canonicalizer
    'canonicalize',
    'CanonicalizeOptions',
    'is_likely_asset',
    'asset_format',
    # Snapshot model
    'ContentTree',
    'Node',
    'PageIdentity',
    'BoundingBox',
    'is_visible',
    'is_enabled',
    'is_interactive',
    'extract_text',
    # Host capabilities
    'TreeSource',
    'Actuator',
    'ResourceProber',
    'StaticPage',
    'MappingProber',
    # Wait / retry
    'SelectorQuery',
    'SelectorConstraints',
    'WaitOptions',
    'WaitResult',
    'resolve_selector',
    'resolve_many',
    # Gathering
    'AssetGatherer',
    'AssetRecord',
    'Dimensions',
    'GatherConfig',
    'GatherStats',
    'SourceKind',
    # Detection / scoring
    'GalleryDetector',
    'Signal',
    'DEFAULT_SIGNALS',
    'any_of',
    'CandidateScore',
    'ScoringCriteria',
    'score_candidates',
    'selector_for',
    # Pagination
    'PaginationConfig',
    'PaginationState',
    'PaginationTraverser',
    'TerminationReason',
    'TraversalMode',
    'TraversalResult',
    'traverse_pagination',
    # Batch
    'BatchConfig',
    'BatchItemError',
    'run_batch',
    # Caches / cancellation
    'DetectionCache',
    'SelectorCache',
    'SelectorCacheEntry',
    'CancelToken',
    # Errors
    'HarvestError',
    'SelectorInvalid',
    'ResolutionTimeout',
    'ExtractionSkipped',
    'ResourceProbeFailed',
    'ActuationFailed',
    'BatchItemFailed',
    'HarvestCancelled',
]

__version__ = '1.0.0'
