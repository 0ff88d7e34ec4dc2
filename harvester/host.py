"""
Host Capabilities
=================
Contracts the harvesting core consumes from its host environment, plus
static implementations that replay saved HTML.

- ``TreeSource``      produce a fresh ``ContentTree`` snapshot
- ``Actuator``        click a node (scroll into view, then activate) or
                      scroll the page to trigger lazy loading
- ``ResourceProber``  resolve the natural pixel size of a resource

The core never owns the page: it only asks these objects for snapshots,
activations and probes.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .dom import ContentTree, Node
from .errors import ResourceProbeFailed

logger = logging.getLogger(__name__)


class TreeSource(ABC):
    """Produces snapshots of the current page."""

    @abstractmethod
    async def snapshot(self) -> ContentTree:
        """Capture the page as it is right now."""
        ...


class Actuator(ABC):
    """Performs user-like actions on the current page."""

    @abstractmethod
    async def activate(self, node: Node) -> bool:
        """Scroll ``node`` into view and click it.  Returns success."""
        ...

    @abstractmethod
    async def scroll(self) -> bool:
        """Scroll to load more content.  Returns True if the page grew."""
        ...


class ResourceProber(ABC):
    """Resolves natural dimensions of resources out-of-band."""

    @abstractmethod
    async def probe(self, url: str) -> Tuple[int, int]:
        """
        Return ``(width, height)`` of the resource at ``url``.

        Raises:
            ResourceProbeFailed: if the resource cannot be loaded or decoded.
        """
        ...


# ---------------------------------------------------------------------------
# Static implementations
# ---------------------------------------------------------------------------

class StaticPage(TreeSource, Actuator):
    """
    Replays a fixed sequence of HTML documents as one "page".

    Activating any node, or scrolling, advances to the next document, the
    way clicking "next" or scrolling an infinite feed swaps in new content.
    Each document is parsed once, so repeated snapshots return the same
    tree (and the same ``Node`` objects).

    Args:
        documents: HTML of each successive state of the page.
        url:       URL of the page (or of the first state).
        urls:      Optional URL per document (pagination that navigates).
        settle_delay: Pause applied after each activation/scroll.
    """

    def __init__(
        self,
        documents: Sequence[str],
        url: str,
        *,
        urls: Optional[Sequence[str]] = None,
        settle_delay: float = 0.0,
    ):
        if not documents:
            raise ValueError("StaticPage needs at least one document")
        self.documents = list(documents)
        self.urls = list(urls) if urls else [url] * len(self.documents)
        if len(self.urls) != len(self.documents):
            raise ValueError("urls must match documents one-to-one")
        self.settle_delay = settle_delay
        self.index = 0
        self.activations: List[str] = []
        self.snapshots_taken = 0
        self._trees: Dict[int, ContentTree] = {}

    @classmethod
    def from_files(cls, paths: Sequence[str], url: str) -> "StaticPage":
        """Build a page from saved HTML files."""
        documents = []
        for path in paths:
            with open(path, "r", encoding="utf-8", errors="replace") as fh:
                documents.append(fh.read())
        return cls(documents, url)

    @property
    def current_url(self) -> str:
        return self.urls[self.index]

    @property
    def has_next(self) -> bool:
        return self.index + 1 < len(self.documents)

    async def snapshot(self) -> ContentTree:
        self.snapshots_taken += 1
        tree = self._trees.get(self.index)
        if tree is None:
            tree = ContentTree.from_html(self.documents[self.index], self.urls[self.index])
            self._trees[self.index] = tree
        return tree

    async def _advance(self, label: str) -> bool:
        if not self.has_next:
            return False
        self.index += 1
        self.activations.append(label)
        if self.settle_delay:
            await asyncio.sleep(self.settle_delay)
        return True

    async def activate(self, node: Node) -> bool:
        return await self._advance(f"click:{node.tag}")

    async def scroll(self) -> bool:
        return await self._advance("scroll")


class MappingProber(ResourceProber):
    """Answers probes from a known ``url → (width, height)`` table."""

    def __init__(self, sizes: Mapping[str, Tuple[int, int]]):
        self.sizes = dict(sizes)
        self.calls: List[str] = []

    async def probe(self, url: str) -> Tuple[int, int]:
        self.calls.append(url)
        try:
            width, height = self.sizes[url]
        except KeyError:
            raise ResourceProbeFailed(url, "unknown resource") from None
        return int(width), int(height)
