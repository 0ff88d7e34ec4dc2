"""
Robust Wait / Retry Engine
==========================
Polls the page for one of several candidate selectors until a qualifying
match appears.

Per invocation: ``Searching → {Found, TimedOut}``.  An outer loop runs up to
``retries`` independent search attempts; each attempt polls every
``interval`` seconds until ``timeout`` elapses.  Between attempts the engine
backs off linearly (``interval * attempt_number``).

Within one poll, selectors are tried in the given order and the first one
with at least one qualifying match wins.  A malformed selector only counts
as "no match" for that selector.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .cancel import CancelToken
from .dom import ContentTree, Node
from .errors import ResolutionTimeout, SelectorInvalid
from .host import TreeSource
from .predicates import is_enabled, is_visible

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SelectorConstraints:
    """Per-node filters a match must pass to qualify."""
    require_visible: bool = True
    require_enabled: bool = True
    expect_multiple: bool = False


@dataclass(frozen=True)
class SelectorQuery:
    """Intent: find any of ``candidate_selectors`` under ``constraints``."""
    candidate_selectors: Tuple[str, ...]
    constraints: SelectorConstraints = field(default_factory=SelectorConstraints)

    @classmethod
    def of(
        cls,
        selectors: Union[str, Iterable[str]],
        *,
        require_visible: bool = True,
        require_enabled: bool = True,
        expect_multiple: bool = False,
    ) -> "SelectorQuery":
        """Build a query from one selector or a list of them."""
        if isinstance(selectors, str):
            selectors = (selectors,)
        return cls(
            candidate_selectors=tuple(selectors),
            constraints=SelectorConstraints(
                require_visible=require_visible,
                require_enabled=require_enabled,
                expect_multiple=expect_multiple,
            ),
        )


@dataclass(frozen=True)
class WaitOptions:
    """Timing budget of one resolution."""
    timeout: float = 10.0          # seconds per attempt
    interval: float = 0.1          # seconds between polls
    retries: int = 3               # independent attempts
    throw_on_timeout: bool = True


@dataclass(frozen=True)
class WaitResult:
    """
    Terminal outcome of a resolution.

    Either ``matched_selector`` and ``elements`` are populated, or the result
    is an explicit not-found (``found`` is False, ``elements`` empty).
    """
    matched_selector: Optional[str]
    elements: Tuple[Node, ...]
    attempts: int
    elapsed: float

    @classmethod
    def not_found(cls, attempts: int, elapsed: float) -> "WaitResult":
        return cls(matched_selector=None, elements=(), attempts=attempts, elapsed=elapsed)

    @property
    def found(self) -> bool:
        return self.matched_selector is not None and bool(self.elements)

    @property
    def first(self) -> Optional[Node]:
        return self.elements[0] if self.elements else None


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------

def qualifying_matches(
    tree: ContentTree,
    selector: str,
    constraints: SelectorConstraints,
) -> List[Node]:
    """
    Nodes matching ``selector`` that pass the visibility / enabled filters.

    Raises:
        SelectorInvalid: if the selector cannot be parsed.
    """
    nodes = tree.select(selector)
    if constraints.require_visible:
        nodes = [n for n in nodes if is_visible(n)]
    if constraints.require_enabled:
        nodes = [n for n in nodes if is_enabled(n)]
    return nodes


def match_first_selector(
    tree: ContentTree,
    query: SelectorQuery,
    invalid: Optional[Set[str]] = None,
) -> Optional[Tuple[str, List[Node]]]:
    """
    One poll: the first selector (in order) with a qualifying match.

    Selectors found to be malformed are added to ``invalid`` and skipped.
    """
    for selector in query.candidate_selectors:
        if invalid is not None and selector in invalid:
            continue
        try:
            nodes = qualifying_matches(tree, selector, query.constraints)
        except SelectorInvalid as exc:
            logger.warning(f"[WAIT] {exc.message}")
            if invalid is not None:
                invalid.add(selector)
            continue
        if nodes:
            return selector, nodes
    return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

async def _search_attempt(
    source: TreeSource,
    query: SelectorQuery,
    options: WaitOptions,
    cancel: CancelToken,
    invalid: Set[str],
) -> Optional[Tuple[str, List[Node]]]:
    """Poll until a match appears or ``options.timeout`` elapses."""
    deadline = time.monotonic() + options.timeout
    while True:
        tree = await source.snapshot()
        match = match_first_selector(tree, query, invalid)
        if match:
            return match
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return None
        await cancel.sleep(min(options.interval, remaining))


async def resolve_selector(
    source: TreeSource,
    query: SelectorQuery,
    options: Optional[WaitOptions] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> WaitResult:
    """
    Wait for any of the query's selectors to match.

    Args:
        source:  Snapshot provider for the page.
        query:   Candidate selectors + constraints.
        options: Timeout / interval / retries / throw policy.
        cancel:  Optional cancellation token.

    Returns:
        ``WaitResult`` with all qualifying matches of the winning selector when
        ``expect_multiple`` is set, otherwise only the first.

    Raises:
        ResolutionTimeout: if nothing qualified and ``throw_on_timeout``.
        HarvestCancelled:  if ``cancel`` fires while waiting.
    """
    options = options or WaitOptions()
    cancel = cancel or CancelToken()
    retries = max(1, options.retries)
    invalid: Set[str] = set()
    start = time.monotonic()

    for attempt in range(1, retries + 1):
        match = await _search_attempt(source, query, options, cancel, invalid)
        if match:
            selector, nodes = match
            if not query.constraints.expect_multiple:
                nodes = nodes[:1]
            elapsed = time.monotonic() - start
            logger.debug(f"[WAIT] Selector found on attempt {attempt}: {selector}")
            return WaitResult(
                matched_selector=selector,
                elements=tuple(nodes),
                attempts=attempt,
                elapsed=elapsed,
            )

        if attempt < retries:
            logger.debug(f"[WAIT] Attempt {attempt} timed out, backing off")
            await cancel.sleep(options.interval * attempt)

    elapsed = time.monotonic() - start
    if options.throw_on_timeout:
        raise ResolutionTimeout(query.candidate_selectors, attempt, elapsed)
    logger.info(
        f"[WAIT] No match after {attempt} attempts ({elapsed:.2f}s): "
        f"{', '.join(query.candidate_selectors)}"
    )
    return WaitResult.not_found(attempt, elapsed)


async def resolve_many(
    source: TreeSource,
    queries: Dict[str, SelectorQuery],
    options: Optional[WaitOptions] = None,
    *,
    simultaneous: bool = True,
    cancel: Optional[CancelToken] = None,
) -> Dict[str, WaitResult]:
    """
    Resolve several named queries.  Never raises on timeout: a query that
    finds nothing maps to a not-found ``WaitResult``.
    """
    base = options or WaitOptions()
    lenient = WaitOptions(
        timeout=base.timeout,
        interval=base.interval,
        retries=base.retries,
        throw_on_timeout=False,
    )

    if simultaneous:
        keys = list(queries)
        results = await asyncio.gather(*(
            resolve_selector(source, queries[key], lenient, cancel=cancel)
            for key in keys
        ))
        return dict(zip(keys, results))

    resolved: Dict[str, WaitResult] = {}
    for key, query in queries.items():
        resolved[key] = await resolve_selector(source, query, lenient, cancel=cancel)
    return resolved
