"""
Cooperative cancellation and cancellable waits.

Every suspension point in the harvester (poll intervals, retry backoff,
inter-batch pacing, settle waits) sleeps through ``CancelToken.sleep`` so a
single ``cancel()`` call stops all of them promptly.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from .errors import HarvestCancelled


class CancelToken:
    """Cancellation signal shared by one harvesting session."""

    def __init__(self):
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False
        self.reason = ""

    def _get_event(self) -> asyncio.Event:
        # Created lazily so the token can be built outside a running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "cancelled") -> None:
        """Request cancellation of every wait using this token."""
        self._cancelled = True
        self.reason = reason
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise HarvestCancelled(f"Operation cancelled: {self.reason}")

    async def sleep(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first.

        Raises:
            HarvestCancelled: if the token fires before or during the wait.
        """
        self.raise_if_cancelled()
        if seconds <= 0:
            await asyncio.sleep(0)
            self.raise_if_cancelled()
            return
        try:
            await asyncio.wait_for(self._get_event().wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return
        self.raise_if_cancelled()
