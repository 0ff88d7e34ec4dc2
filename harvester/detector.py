"""
Gallery / Content Detector
==========================
Decides whether a page is worth harvesting at all.

The verdict is the ``any_of`` composition of independent signals, each a
pure predicate over a ``ContentTree`` snapshot.  A signal that raises is
logged and counted as ``False``; it never aborts detection.  The verdict is
memoized in the session's ``DetectionCache`` for the current page load.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from .cache import DetectionCache
from .dom import ContentTree, Node
from .predicates import is_significant_image, is_visible

logger = logging.getLogger(__name__)

SignalFn = Callable[[ContentTree], bool]


@dataclass(frozen=True)
class Signal:
    """A named boolean predicate over a snapshot."""
    name: str
    predicate: SignalFn

    def evaluate(self, tree: ContentTree) -> bool:
        """Run the predicate; any exception counts as ``False``."""
        try:
            return bool(self.predicate(tree))
        except Exception as exc:
            logger.debug(f"[DETECT] Signal {self.name} failed: {exc}")
            return False


def any_of(signals: Sequence[Signal], tree: ContentTree) -> bool:
    """True as soon as one signal holds (evaluated in order)."""
    return any(signal.evaluate(tree) for signal in signals)


# ---------------------------------------------------------------------------
# Signal catalogue
# ---------------------------------------------------------------------------

SIGNIFICANT_IMAGE_COUNT = 8
LAZY_ATTRIBUTE_COUNT = 5
FIGURE_CONTAINER_COUNT = 6
MODERN_LAYOUT_COUNT = 3
MODERN_FORMAT_COUNT = 3

TITLE_KEYWORDS = re.compile(
    r'gallery|portfolio|photos?|images?|album|collection|catalog|artwork|media|'
    r'browse|search|stock|pic|visual|exhibit|showcase|board|stream|feed',
    re.I,
)
PATH_KEYWORDS = re.compile(
    r'gallery|portfolio|photos?|images?|album|collection|catalog|browse|search|'
    r'media|pic|visual|exhibit|showcase|board|stream|feed',
    re.I,
)

GALLERY_CLASS_SELECTORS = [
    '[class*="gallery"]', '[class*="portfolio"]', '[class*="photo"]',
    '[class*="image-grid"]', '[class*="grid"]', '[class*="masonry"]',
    '[class*="thumbnail"]', '[class*="tile"]', '[class*="card-grid"]',
    '[class*="media-grid"]', '[class*="asset-grid"]',
]
GALLERY_DATA_SELECTORS = [
    '[data-gallery]', '[data-portfolio]', '[data-photos]', '[data-grid]',
    '[data-masonry]', '[data-lightbox]', '[data-fancybox]', '[data-photoswipe]',
]
LISTING_SELECTORS = [
    '.product-grid', '.product-list', '.products', '[class*="product-item"]',
    '.listing-grid', '.search-results', '.browse-grid', '.category-grid',
]
FEED_SELECTORS = [
    '[role="grid"] img', '.photo-grid', '.image-grid', '.content-grid',
    '.feed img', '.timeline img', '.posts img', '.cards img',
]
LAZY_SELECTORS = [
    '[data-src]', '[data-lazy]', '[loading="lazy"]', '[data-srcset]',
    'img[src*="placeholder"]', 'img[src*="loading"]',
]
PROFESSIONAL_TERMS = re.compile(
    r'\b(?:stock|premium|royalty|license|download|resolution|watermark|'
    r'preview|comp|editorial|commercial)',
    re.I,
)
PAGINATION_SELECTORS = [
    '.pagination', '.page-numbers', '[class*="pager"]', '.load-more',
    '[aria-label*="next"]', '[aria-label*="page"]', '.infinite-scroll',
]
FIGURE_SELECTORS = [
    'figure', '.figure', '.image-container', '.photo-container',
    '.thumbnail-container', '.media-container',
]
MODERN_LAYOUT_SELECTORS = [
    '[style*="display: grid"]', '[style*="display: flex"]',
    '.grid', '.flex', '.d-flex', '.d-grid',
    '[class*="col-"]', '[class*="row"]', '[class*="grid-"]',
    '.masonry', '.isotope', '.packery',
]
MODERN_FORMAT_SELECTORS = [
    'img[src*=".webp"]', 'img[src*=".avif"]', 'source[type*="webp"]',
    'source[type*="avif"]', '[data-srcset]', 'img[sizes]',
]
MEDIA_PLATFORMS = (
    'instagram', 'pinterest', 'flickr', 'behance', 'dribbble',
    'unsplash', 'pexels', 'shutterstock', 'getty', 'alamy',
    'artstation', 'deviantart', 'tumblr', 'reddit',
)


def _is_significant_visual(node: Node) -> bool:
    if node.tag == 'img':
        return is_visible(node) and is_significant_image(node)
    if node.tag == 'source':
        return True
    background = node.background_image
    return bool(background) and background != 'none' and 'data:image' not in background


def significant_images(tree: ContentTree) -> bool:
    nodes = tree.select('img, picture source, [style*="background-image"]')
    return sum(1 for n in nodes if _is_significant_visual(n)) >= SIGNIFICANT_IMAGE_COUNT


def title_keywords(tree: ContentTree) -> bool:
    return bool(TITLE_KEYWORDS.search(tree.page.title or ''))


def path_keywords(tree: ContentTree) -> bool:
    return bool(PATH_KEYWORDS.search(tree.page.path or ''))


def gallery_classes(tree: ContentTree) -> bool:
    return tree.select_one(', '.join(GALLERY_CLASS_SELECTORS)) is not None


def gallery_data_attributes(tree: ContentTree) -> bool:
    return tree.select_one(', '.join(GALLERY_DATA_SELECTORS)) is not None


def listing_containers(tree: ContentTree) -> bool:
    return tree.select_one(', '.join(LISTING_SELECTORS)) is not None


def feed_containers(tree: ContentTree) -> bool:
    return tree.select_one(', '.join(FEED_SELECTORS)) is not None


def lazy_loading(tree: ContentTree) -> bool:
    return tree.count(', '.join(LAZY_SELECTORS)) >= LAZY_ATTRIBUTE_COUNT


def professional_vocabulary(tree: ContentTree) -> bool:
    text = f"{tree.page.title} {tree.body_text}"
    return bool(PROFESSIONAL_TERMS.search(text))


def pagination_controls(tree: ContentTree) -> bool:
    return tree.select_one(', '.join(PAGINATION_SELECTORS)) is not None


def figure_containers(tree: ContentTree) -> bool:
    return tree.count(', '.join(FIGURE_SELECTORS)) >= FIGURE_CONTAINER_COUNT


def modern_layout(tree: ContentTree) -> bool:
    return tree.count(', '.join(MODERN_LAYOUT_SELECTORS)) >= MODERN_LAYOUT_COUNT


def modern_image_formats(tree: ContentTree) -> bool:
    return tree.count(', '.join(MODERN_FORMAT_SELECTORS)) >= MODERN_FORMAT_COUNT


def media_platform(tree: ContentTree) -> bool:
    haystack = f"{tree.page.url} {tree.page.title}".lower()
    return any(name in haystack for name in MEDIA_PLATFORMS)


DEFAULT_SIGNALS: List[Signal] = [
    Signal('significant-images', significant_images),
    Signal('title-keywords', title_keywords),
    Signal('path-keywords', path_keywords),
    Signal('gallery-classes', gallery_classes),
    Signal('gallery-data-attributes', gallery_data_attributes),
    Signal('listing-containers', listing_containers),
    Signal('feed-containers', feed_containers),
    Signal('lazy-loading', lazy_loading),
    Signal('professional-vocabulary', professional_vocabulary),
    Signal('pagination-controls', pagination_controls),
    Signal('figure-containers', figure_containers),
    Signal('modern-layout', modern_layout),
    Signal('modern-image-formats', modern_image_formats),
    Signal('media-platform', media_platform),
]


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------

class GalleryDetector:
    """
    Memoized gallery verdict for the current page load.

    Args:
        cache:   Session-owned verdict store.
        signals: Ordered signal list (``DEFAULT_SIGNALS`` when omitted).
    """

    def __init__(
        self,
        cache: Optional[DetectionCache] = None,
        signals: Optional[Sequence[Signal]] = None,
    ):
        self.cache = cache if cache is not None else DetectionCache()
        self.signals = list(signals) if signals is not None else list(DEFAULT_SIGNALS)

    def is_gallery_page(self, tree: ContentTree) -> bool:
        page_key = tree.page.site_key
        cached = self.cache.get(page_key)
        if cached is not None:
            return cached

        verdict = any_of(self.signals, tree)
        self.cache.record(page_key, verdict)
        logger.info(
            f"[DETECT] {'Gallery page detected' if verdict else 'Not a gallery page'} "
            f"({tree.page.url})"
        )
        return verdict

    def explain(self, tree: ContentTree) -> Dict[str, bool]:
        """Every signal's individual verdict (not cached)."""
        return {signal.name: signal.evaluate(tree) for signal in self.signals}
