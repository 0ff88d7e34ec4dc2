"""
Batch Processor
===============
Applies a worker to a large list of items in bounded, paced chunks.

All items of one chunk run concurrently (at most ``batch_size`` at a time),
then the processor pauses ``delay_between_batches`` seconds before the next
chunk.  Result positions always map back to input positions.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

from .cancel import CancelToken
from .errors import BatchItemFailed, HarvestCancelled
from .utils import maybe_await

logger = logging.getLogger(__name__)

Worker = Callable[[Any, int], Union[Any, Awaitable[Any]]]


@dataclass(frozen=True)
class BatchConfig:
    batch_size: int = 5
    delay_between_batches: float = 0.1   # seconds
    continue_on_error: bool = True


@dataclass(frozen=True)
class BatchItemError:
    """Placeholder result for an item whose worker raised."""
    index: int
    item: Any
    error: str
    exception: Optional[BaseException] = field(default=None, repr=False, compare=False)


def is_batch_error(result: Any) -> bool:
    return isinstance(result, BatchItemError)


async def run_batch(
    items: Sequence[Any],
    worker: Worker,
    config: Optional[BatchConfig] = None,
    *,
    cancel: Optional[CancelToken] = None,
) -> List[Any]:
    """
    Run ``worker(item, index)`` over ``items`` in chunks.

    ``worker`` may be a plain function or a coroutine function.

    Returns:
        One result per item, in input order.  With ``continue_on_error`` a
        failing item yields a ``BatchItemError`` in its slot.

    Raises:
        BatchItemFailed:  first failure, when ``continue_on_error`` is off
                          (remaining chunks are not started;
                          unfinished items of the failing chunk are cancelled).
        HarvestCancelled: if ``cancel`` fires; ``context["completed"]`` holds
                          the results of the chunks that finished.
    """
    config = config or BatchConfig()
    cancel = cancel or CancelToken()
    batch_size = max(1, config.batch_size)
    items = list(items)
    results: List[Any] = []

    async def _run_one(item: Any, index: int) -> Any:
        try:
            return await maybe_await(worker(item, index))
        except HarvestCancelled:
            raise
        except Exception as exc:
            if config.continue_on_error:
                logger.debug(f"[BATCH] Item {index} failed: {exc}")
                return BatchItemError(index=index, item=item, error=str(exc), exception=exc)
            raise BatchItemFailed(index, exc) from exc

    for start in range(0, len(items), batch_size):
        if cancel.cancelled:
            raise HarvestCancelled(
                f"Batch cancelled after {len(results)}/{len(items)} items",
                context={"completed": results},
            )

        chunk = items[start:start + batch_size]
        tasks = [
            asyncio.create_task(_run_one(item, start + offset))
            for offset, item in enumerate(chunk)
        ]
        try:
            chunk_results = await asyncio.gather(*tasks)
        except BaseException:
            # Siblings of a failed item must not outlive the batch
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        results.extend(chunk_results)

        if start + batch_size < len(items) and config.delay_between_batches > 0:
            try:
                await cancel.sleep(config.delay_between_batches)
            except HarvestCancelled:
                raise HarvestCancelled(
                    f"Batch cancelled after {len(results)}/{len(items)} items",
                    context={"completed": results},
                ) from None

    failed = sum(1 for r in results if is_batch_error(r))
    if failed:
        logger.info(f"[BATCH] {len(results)} items processed, {failed} failed")
    return results
