"""
Content Tree Snapshots
======================
Immutable snapshots of a page that every sweep (detection, scoring,
gathering, pagination) runs over.

A snapshot is parsed with BeautifulSoup and queried through soupsieve CSS
selectors.  Live captures (see ``browser.PlaywrightPage``) stamp each element
with three annotation attributes before the HTML is serialized:

- ``data-hv-id``     stable handle used to find the live element again
- ``data-hv-rect``   ``x,y,width,height`` from ``getBoundingClientRect``
- ``data-hv-style``  JSON of the computed style properties we care about

Static HTML carries no annotations; geometry then comes from ``width`` /
``height`` attributes or inline ``px`` styles, and is *unknown* (``None``)
when neither is present.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional
from urllib.parse import urljoin, urlsplit

from bs4 import BeautifulSoup, Tag
from soupsieve import SelectorSyntaxError

from .errors import SelectorInvalid
from .utils import clean_text, site_key

logger = logging.getLogger(__name__)

# Choose the best available HTML parser: prefer lxml for speed,
# fall back to the stdlib html.parser.
try:
    import lxml  # noqa: F401
    _BS_PARSER = "lxml"
except ImportError:
    _BS_PARSER = "html.parser"
    logger.info("lxml not installed, using html.parser (slower but functional)")

ANNOTATION_PREFIX = "data-hv-"
HANDLE_ATTR = "data-hv-id"
RECT_ATTR = "data-hv-rect"
STYLE_ATTR = "data-hv-style"

_PX_RE = re.compile(r'^\s*(\d+(?:\.\d+)?)\s*(?:px)?\s*$', re.I)


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BoundingBox:
    """Rendered geometry of a node, in CSS pixels."""
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return max(self.width, 0.0) * max(self.height, 0.0)


@dataclass(frozen=True)
class PageIdentity:
    """Where a snapshot came from: URL, title and base URL."""
    url: str
    title: str = ""
    base_url: Optional[str] = None

    @property
    def base(self) -> str:
        return self.base_url or self.url

    @property
    def scheme(self) -> str:
        return urlsplit(self.url).scheme.lower()

    @property
    def hostname(self) -> str:
        return (urlsplit(self.url).hostname or "").lower()

    @property
    def path(self) -> str:
        return urlsplit(self.url).path or "/"

    @property
    def site_key(self) -> str:
        return site_key(self.url)


# ---------------------------------------------------------------------------
# Style parsing
# ---------------------------------------------------------------------------

def parse_inline_style(style: Optional[str]) -> Dict[str, str]:
    """
    Parse a ``style`` attribute into ``{property: value}``.

    Semicolons inside ``url(...)`` or quotes (``data:`` URIs) do not split
    declarations.
    """
    declarations: Dict[str, str] = {}
    if not style:
        return declarations

    chunks = []
    current = []
    depth = 0
    quote_char = None
    for ch in style:
        if quote_char:
            if ch == quote_char:
                quote_char = None
        elif ch in ('"', "'"):
            quote_char = ch
        elif ch == '(':
            depth += 1
        elif ch == ')':
            depth = max(0, depth - 1)
        elif ch == ';' and depth == 0:
            chunks.append(''.join(current))
            current = []
            continue
        current.append(ch)
    chunks.append(''.join(current))

    for chunk in chunks:
        if ':' not in chunk:
            continue
        name, value = chunk.split(':', 1)
        name = name.strip().lower()
        value = re.sub(r'\s*!important\s*$', '', value.strip(), flags=re.I)
        if name:
            declarations[name] = value
    return declarations


def _parse_px(value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = _PX_RE.match(str(value))
    return float(match.group(1)) if match else None


# ---------------------------------------------------------------------------
# Node
# ---------------------------------------------------------------------------

class Node:
    """
    Read-only view of one element of a ``ContentTree``.

    Equality is identity of the underlying element within its snapshot.
    """

    __slots__ = ("_tag", "_tree", "_style", "_rect", "_rect_done")

    def __init__(self, tag: Tag, tree: "ContentTree"):
        self._tag = tag
        self._tree = tree
        self._style: Optional[Dict[str, str]] = None
        self._rect: Optional[BoundingBox] = None
        self._rect_done = False

    def __eq__(self, other) -> bool:
        return isinstance(other, Node) and other._tag is self._tag

    def __hash__(self) -> int:
        return id(self._tag)

    def __repr__(self) -> str:
        ident = f"#{self.id}" if self.id else ""
        cls = "." + ".".join(self.class_name.split()) if self.class_name else ""
        return f"<Node {self.tag}{ident}{cls}>"

    # ── Identity ──────────────────────────────────────────────────

    @property
    def tree(self) -> "ContentTree":
        return self._tree

    @property
    def tag(self) -> str:
        return (self._tag.name or "").lower()

    @property
    def handle(self) -> Optional[str]:
        """Live-element handle stamped at capture time, if any."""
        value = self._tag.get(HANDLE_ATTR)
        return str(value) if value is not None else None

    # ── Attributes ────────────────────────────────────────────────

    @property
    def attributes(self) -> Dict[str, str]:
        """All attributes except capture annotations; list values joined."""
        attrs = {}
        for name, value in self._tag.attrs.items():
            if name.startswith(ANNOTATION_PREFIX):
                continue
            if isinstance(value, (list, tuple)):
                value = " ".join(value)
            attrs[name] = "" if value is None else str(value)
        return attrs

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        value = self._tag.get(name)
        if value is None:
            return default
        if isinstance(value, (list, tuple)):
            return " ".join(value)
        return str(value)

    def has_attr(self, name: str) -> bool:
        return self._tag.has_attr(name)

    @property
    def id(self) -> str:
        return self.get("id", "") or ""

    @property
    def class_name(self) -> str:
        return self.get("class", "") or ""

    @property
    def classes(self) -> List[str]:
        return self.class_name.split()

    def data_attributes(self) -> Dict[str, str]:
        """Custom ``data-*`` attributes (annotations excluded)."""
        return {k: v for k, v in self.attributes.items() if k.startswith("data-")}

    # ── Content ───────────────────────────────────────────────────

    @property
    def text(self) -> str:
        """Whitespace-collapsed text content of the node and descendants."""
        return clean_text(self._tag.get_text(" "))

    # ── Style / geometry ──────────────────────────────────────────

    @property
    def style(self) -> Dict[str, str]:
        """Inline style merged with captured computed style."""
        if self._style is None:
            style = parse_inline_style(self.get("style"))
            captured = self._tag.get(STYLE_ATTR)
            if captured:
                try:
                    computed = json.loads(captured)
                    style.update({str(k).lower(): str(v) for k, v in computed.items()})
                except (ValueError, AttributeError):
                    logger.debug(f"Unreadable captured style on {self!r}")
            self._style = style
        return self._style

    def computed(self, prop: str, default: str = "") -> str:
        return self.style.get(prop.lower(), default)

    @property
    def background_image(self) -> str:
        """``background-image`` value, falling back to the ``background`` shorthand."""
        value = self.computed("background-image")
        if value and value.lower() != "none":
            return value
        shorthand = self.computed("background")
        if "url(" in shorthand.lower():
            return shorthand
        return value or "none"

    @property
    def rect(self) -> Optional[BoundingBox]:
        """Bounding box, or ``None`` when the snapshot carries no geometry."""
        if not self._rect_done:
            self._rect = self._resolve_rect()
            self._rect_done = True
        return self._rect

    def _resolve_rect(self) -> Optional[BoundingBox]:
        captured = self._tag.get(RECT_ATTR)
        if captured:
            try:
                x, y, w, h = (float(p) for p in str(captured).split(","))
                return BoundingBox(x, y, w, h)
            except ValueError:
                logger.debug(f"Unreadable captured rect on {self!r}")
        style = self.style
        width = _parse_px(style.get("width")) if "width" in style else _parse_px(self.get("width"))
        height = _parse_px(style.get("height")) if "height" in style else _parse_px(self.get("height"))
        if width is None or height is None:
            return None
        return BoundingBox(0.0, 0.0, width, height)

    # ── Tree navigation ───────────────────────────────────────────

    @property
    def attached(self) -> bool:
        """True while the element is still connected to its document."""
        node = self._tag
        while node is not None:
            if node is self._tree.soup:
                return True
            node = node.parent
        return False

    @property
    def parent(self) -> Optional["Node"]:
        parent = self._tag.parent
        if isinstance(parent, Tag) and parent is not self._tree.soup:
            return self._tree.wrap(parent)
        return None

    def ancestors(self) -> Iterator["Node"]:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def select(self, selector: str) -> List["Node"]:
        """Descendants matching ``selector``, in document order."""
        return self._tree._select(self._tag, selector)

    def select_one(self, selector: str) -> Optional["Node"]:
        matches = self.select(selector)
        return matches[0] if matches else None

    def contains(self, selector: str) -> bool:
        return self.select_one(selector) is not None

    def descendants(self) -> List["Node"]:
        return [self._tree.wrap(t) for t in self._tag.find_all(True)]


# ---------------------------------------------------------------------------
# Tree
# ---------------------------------------------------------------------------

class ContentTree:
    """An immutable, queryable snapshot of one page."""

    def __init__(self, soup: BeautifulSoup, page: PageIdentity):
        self.soup = soup
        self.page = page
        self._nodes: Dict[int, Node] = {}

    @classmethod
    def from_html(
        cls,
        html: str,
        url: str,
        *,
        title: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> "ContentTree":
        """
        Parse ``html`` captured from ``url``.

        ``title`` defaults to the document ``<title>``; ``base_url`` defaults
        to a ``<base href>`` resolved against ``url``.
        """
        soup = BeautifulSoup(html or "", _BS_PARSER)
        if title is None:
            title_tag = soup.find("title")
            title = clean_text(title_tag.get_text()) if title_tag else ""
        if base_url is None:
            base_tag = soup.find("base", href=True)
            if base_tag:
                try:
                    base_url = urljoin(url, str(base_tag["href"]))
                except ValueError:
                    base_url = None
        return cls(soup, PageIdentity(url=url, title=title, base_url=base_url))

    def wrap(self, tag: Tag) -> Node:
        node = self._nodes.get(id(tag))
        if node is None:
            node = Node(tag, self)
            self._nodes[id(tag)] = node
        return node

    def _select(self, root, selector: str) -> List[Node]:
        if not isinstance(selector, str) or not selector.strip():
            raise SelectorInvalid(str(selector), "empty selector")
        try:
            tags = root.select(selector)
        except (SelectorSyntaxError, ValueError, NotImplementedError) as exc:
            raise SelectorInvalid(selector, str(exc)) from exc
        return [self.wrap(t) for t in tags]

    def select(self, selector: str) -> List[Node]:
        """
        All elements matching ``selector``, in document order.

        Raises:
            SelectorInvalid: if the selector cannot be parsed.
        """
        return self._select(self.soup, selector)

    def select_one(self, selector: str) -> Optional[Node]:
        matches = self.select(selector)
        return matches[0] if matches else None

    def count(self, selector: str) -> int:
        return len(self.select(selector))

    def nodes(self) -> List[Node]:
        """Every element of the document, in document order."""
        return [self.wrap(t) for t in self.soup.find_all(True)]

    def find_by_handle(self, handle: str) -> Optional[Node]:
        tag = self.soup.find(attrs={HANDLE_ATTR: handle})
        return self.wrap(tag) if tag is not None else None

    @property
    def body_text(self) -> str:
        body = self.soup.body or self.soup
        return clean_text(body.get_text(" "))

    @property
    def fingerprint(self) -> tuple:
        """Cheap content fingerprint used to detect DOM changes between polls."""
        return (
            len(self.soup.find_all(True)),
            len(self.body_text),
            len(self.soup.find_all("img")),
        )
