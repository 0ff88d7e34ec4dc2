"""
Smart Candidate Scorer
======================
Ranks nodes that may enclose repeated content items (cards, tiles,
thumbnails) when no container selector is given.

A flat linear model: each feature adds a fixed weight.  The weights and
the default threshold are fixed; ties keep document order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import FrozenSet, List, Optional

from .dom import BoundingBox, ContentTree, Node
from .predicates import is_visible

logger = logging.getLogger(__name__)

WEIGHTS = {
    'has_image': 0.3,
    'has_video': 0.2,
    'has_link': 0.2,
    'has_text': 0.1,
    'has_class': 0.1,
    'has_id': 0.1,
    'has_data_attrs': 0.1,
    'content_terms': 0.2,
}

CONTENT_TERMS = ('gallery', 'photo', 'image', 'picture', 'media', 'thumb')


@dataclass(frozen=True)
class ScoringCriteria:
    min_score: float = 0.7
    include_invisible: bool = False
    content_analysis: bool = True


@dataclass(frozen=True)
class CandidateScore:
    """
    One ranked node.

    ``score`` is capped at 1.0; ``raw_score`` keeps the uncapped sum used
    for ranking.
    """
    node: Node
    score: float
    feature_flags: FrozenSet[str]
    bounding_box: Optional[BoundingBox]
    raw_score: float = 0.0

    @property
    def selector(self) -> str:
        return selector_for(self.node)


def node_features(node: Node, content_analysis: bool = True) -> FrozenSet[str]:
    """Names of the weighted features ``node`` exhibits."""
    flags = set()
    if node.contains('img, picture, svg'):
        flags.add('has_image')
    if node.contains('video'):
        flags.add('has_video')
    if node.tag == 'a' or node.contains('a'):
        flags.add('has_link')
    text = node.text
    if text:
        flags.add('has_text')
    if node.class_name.strip():
        flags.add('has_class')
    if node.id:
        flags.add('has_id')
    if node.data_attributes():
        flags.add('has_data_attrs')

    if content_analysis:
        text_lower = text.lower()
        class_lower = node.class_name.lower()
        if any(term in text_lower or term in class_lower for term in CONTENT_TERMS):
            flags.add('content_terms')
    return frozenset(flags)


def score_node(flags: FrozenSet[str]) -> float:
    # Rounded so that e.g. 0.3 + 0.1 * 4 compares equal to 0.7
    return round(sum(WEIGHTS[f] for f in flags), 10)


def score_candidates(
    tree: ContentTree,
    criteria: Optional[ScoringCriteria] = None,
) -> List[CandidateScore]:
    """
    Score every (visible) node of ``tree``.

    Returns:
        Candidates with ``score >= min_score``, best first.  Equal scores
        keep document order.
    """
    criteria = criteria or ScoringCriteria()
    candidates: List[CandidateScore] = []

    for node in tree.nodes():
        if not criteria.include_invisible and not is_visible(node):
            continue
        flags = node_features(node, criteria.content_analysis)
        raw = score_node(flags)
        if raw >= criteria.min_score:
            candidates.append(CandidateScore(
                node=node,
                score=min(raw, 1.0),
                feature_flags=flags,
                bounding_box=node.rect,
                raw_score=raw,
            ))

    candidates.sort(key=lambda c: c.raw_score, reverse=True)
    logger.info(
        f"Smart detection found {len(candidates)} candidates "
        f"with score >= {criteria.min_score}"
    )
    return candidates


def selector_for(node: Node) -> str:
    """
    A CSS selector describing ``node`` by tag and classes.

    ``div.card.tile`` when the node has classes, ``section#results`` when it
    only has an id, else the bare tag.
    """
    classes = [c for c in node.classes if _is_plain_identifier(c)]
    if classes:
        return node.tag + ''.join(f'.{c}' for c in classes)
    if node.id and _is_plain_identifier(node.id):
        return f'{node.tag}#{node.id}'
    return node.tag


def _is_plain_identifier(value: str) -> bool:
    if not value or value[0].isdigit() or value.startswith('--'):
        return False
    return all(ch.isalnum() or ch in '-_' for ch in value)
