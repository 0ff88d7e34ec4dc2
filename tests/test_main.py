"""
Tests for the command-line entry point's Ctrl-C handling.
"""

import asyncio
import signal

import pytest

from conftest import page

from harvester.__main__ import interrupt_handler
from harvester.host import StaticPage
from harvester.run_config import HarvestRunConfig
from harvester.session import HarvestSession

TRIPS = "https://example.com/trips"


def listing(*numbers: int) -> str:
    cards = "".join(
        f'<div class="card"><img src="/img/{n}.jpg" width="200" height="150"><p>Lake {n}</p></div>'
        for n in numbers
    )
    return page(f'<div class="grid">{cards}</div><a class="next" href="?page=2">Next</a>',
                title="Summer Trips")


def quick_config() -> HarvestRunConfig:
    return HarvestRunConfig(
        wait_timeout=0.05, wait_interval=0.01, retries=1,
        settle_timeout=0.2, settle_interval=0.01, batch_delay=0.0,
        force=True, container_selector="div.grid",
    )


class InterruptedPage(StaticPage):
    """Delivers Ctrl-C to the handler when the first "next" is clicked."""

    handler = None

    async def activate(self, node):
        advanced = await super().activate(node)
        self.handler(signal.SIGINT, None)
        return advanced


@pytest.fixture
def restore_sigint():
    original = signal.getsignal(signal.SIGINT)
    yield original
    signal.signal(signal.SIGINT, original)


# ====================================================================
# 1. Interrupt handler
# ====================================================================

class TestInterruptHandler:

    @pytest.mark.asyncio
    async def test_first_interrupt_cancels_session(self, restore_sigint):
        session = HarvestSession(StaticPage([listing(1)], TRIPS), config=quick_config())
        handler = interrupt_handler(session, asyncio.get_running_loop(), signal.default_int_handler)
        signal.signal(signal.SIGINT, handler)

        handler(signal.SIGINT, None)
        await asyncio.sleep(0)

        assert session.cancel_token.cancelled
        assert signal.getsignal(signal.SIGINT) is signal.default_int_handler

    @pytest.mark.asyncio
    async def test_interrupted_harvest_keeps_partial_records(self, restore_sigint):
        source = InterruptedPage(
            [listing(1, 2), listing(3, 4)], TRIPS,
            urls=[f"{TRIPS}?page=1", f"{TRIPS}?page=2"],
        )
        session = HarvestSession(source, actuator=source, config=quick_config())
        source.handler = interrupt_handler(session, asyncio.get_running_loop(), restore_sigint)

        report = await session.harvest()

        assert report.termination_reason == "cancelled"
        assert [r.canonical_url for r in report.records] == [
            "https://example.com/img/1.jpg",
            "https://example.com/img/2.jpg",
        ]
