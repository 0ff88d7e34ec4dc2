"""
Element Predicates
==================
Per-node boolean checks shared by the wait engine, the detector, the
scorer and the pagination traverser.

- ``is_visible``      non-zero rendered area, not hidden by style, attached
- ``is_enabled``      not disabled, no pointer-event suppression, no
                      ``aria-disabled`` marker
- ``is_interactive``  visible and enabled
"""

from __future__ import annotations

import logging
from typing import Optional

from .dom import Node
from .utils import clean_text

logger = logging.getLogger(__name__)

SIGNIFICANT_IMAGE_MIN_SIDE = 50

# Elements a browser never lays out
NON_RENDERED_TAGS = frozenset({
    "head", "meta", "link", "script", "style", "title", "noscript", "template", "base",
})


def _opacity_zero(value: str) -> bool:
    try:
        return float(value) == 0.0
    except (TypeError, ValueError):
        return False


def _hidden_by_own_style(node: Node) -> bool:
    style = node.style
    if style.get("display", "").strip().lower() == "none":
        return True
    if style.get("visibility", "").strip().lower() in ("hidden", "collapse"):
        return True
    if _opacity_zero(style.get("opacity", "")):
        return True
    return False


def is_visible(node: Optional[Node]) -> bool:
    """
    True if ``node`` would be seen by a user.

    Nodes without measurable geometry (plain static HTML) are judged on
    style and attributes alone.
    """
    if node is None or not node.attached:
        return False
    if node.tag in NON_RENDERED_TAGS:
        return False

    rect = node.rect
    if rect is not None and (rect.width <= 0 or rect.height <= 0):
        return False

    if _hidden_by_own_style(node):
        return False
    if node.has_attr("hidden"):
        return False
    if node.tag == "input" and (node.get("type") or "").lower() == "hidden":
        return False

    # Hidden ancestors take their whole subtree with them
    for ancestor in node.ancestors():
        if ancestor.has_attr("hidden"):
            return False
        if ancestor.computed("display").strip().lower() == "none":
            return False
        if ancestor.computed("visibility").strip().lower() in ("hidden", "collapse"):
            return False
    return True


def is_enabled(node: Optional[Node]) -> bool:
    """True if ``node`` accepts user interaction."""
    if node is None:
        return False
    if node.has_attr("disabled"):
        return False
    if node.computed("pointer-events").strip().lower() == "none":
        return False
    aria = node.get("aria-disabled")
    if aria is not None and aria.strip().lower() != "false":
        return False
    return True


def is_interactive(node: Optional[Node]) -> bool:
    return is_visible(node) and is_enabled(node)


def is_significant_image(node: Node, min_side: float = SIGNIFICANT_IMAGE_MIN_SIDE) -> bool:
    """An image large enough not to be an icon or avatar."""
    rect = node.rect
    if rect is None:
        return False
    return rect.width >= min_side and rect.height >= min_side


def extract_text(
    node: Optional[Node],
    *,
    max_length: Optional[int] = None,
    fallback_to_title: bool = True,
    fallback_to_alt: bool = True,
) -> str:
    """
    Text content of ``node`` with whitespace collapsed.

    Falls back to the ``title`` then ``alt`` attribute when the node has no
    text, and truncates to ``max_length`` characters (plus ``...``).
    """
    if node is None:
        return ""
    text = node.text
    if not text and fallback_to_title:
        text = clean_text(node.get("title", "") or "")
    if not text and fallback_to_alt:
        text = clean_text(node.get("alt", "") or "")
    if max_length and len(text) > max_length:
        text = text[:max_length] + "..."
    return text
