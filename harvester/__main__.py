#!/usr/bin/env python3
"""
Command-line entry point for the harvester
==========================================
Opens a page in Chromium, decides whether it is a gallery, and harvests its
image assets (following pagination / infinite scroll).

All configuration flows through ``HarvestRunConfig``.

Run with: python -m harvester <url> [options]
"""

import argparse
import asyncio
import logging
import signal
import sys
import time
from pathlib import Path

from dotenv import load_dotenv

from .run_config import HarvestRunConfig, _DEFAULTS

# Load .env (proxy settings, Playwright paths) before anything else
env_path = Path(__file__).resolve().parent.parent / '.env'
if env_path.exists():
    load_dotenv(env_path)
else:
    load_dotenv()  # tries CWD

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(levelname)s | %(message)s',
    datefmt='%H:%M:%S'
)
logger = logging.getLogger(__name__)


def print_summary(report, elapsed: float):
    """Print harvest summary."""
    stats = report.stats
    print("\n" + "=" * 65)
    print("HARVEST COMPLETE")
    print("=" * 65)
    print(f"  Page:                {report.url}")
    print(f"  Gallery page:        {'yes' if report.is_gallery else 'no'}")
    if report.skipped:
        print("  Skipped:             not a gallery page (use --force)")
    if report.container_selector:
        print(f"  Container:           {report.container_selector} ({report.container_source})")
    print(f"  Assets:              {len(report.records)}")
    print(f"  Rounds:              {report.rounds}")
    if stats.duplicates:
        print(f"  Duplicates dropped:  {stats.duplicates}")
    if stats.skipped:
        print(f"  Nodes skipped:       {stats.skipped}")
    if stats.rejected:
        print(f"  Rejected (size/fmt): {stats.rejected}")
    if stats.probe_failures:
        print(f"  Probe failures:      {stats.probe_failures}")
    print(f"  Total time:          {elapsed:.1f}s")
    print(f"  Stop reason:         {report.termination_reason or 'completed'}")
    print("=" * 65)


def interrupt_handler(session, loop, previous):
    """
    SIGINT handler for a running harvest.

    The first Ctrl-C cancels ``session`` so the harvest stops and returns the
    assets found so far; the handler then restores ``previous`` so a second
    Ctrl-C aborts outright.
    """
    def _handler(signum, frame):
        logger.warning("Interrupted: finishing with the assets found so far (Ctrl-C again to abort)")
        signal.signal(signal.SIGINT, previous)
        loop.call_soon_threadsafe(session.cancel, "interrupted by user")
    return _handler


async def _harvest(url: str, cfg: HarvestRunConfig):
    # Imported here so --help works without a browser install
    from .browser import PageImageProber, open_page
    from .probe import HttpImageProber
    from .session import HarvestSession

    async with open_page(url, headless=cfg.headless,
                         navigation_timeout=cfg.navigation_timeout) as live:
        prober = None
        if cfg.probe == 'http':
            prober = HttpImageProber(referer=url)
        elif cfg.probe == 'page':
            prober = PageImageProber(live.page)

        session = HarvestSession(live, actuator=live, prober=prober, config=cfg)
        previous = signal.getsignal(signal.SIGINT)
        signal.signal(signal.SIGINT, interrupt_handler(session, asyncio.get_running_loop(), previous))
        try:
            return await session.harvest()
        finally:
            signal.signal(signal.SIGINT, previous)
            if isinstance(prober, HttpImageProber):
                prober.close()


def run_cli_with_args(argv=None):
    """Parse argv, build HarvestRunConfig, run."""
    parser = argparse.ArgumentParser(
        description='Gallery Harvester - extract image assets from gallery pages',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m harvester https://example.com/gallery
  python -m harvester https://example.com/shop --force --max-rounds 3
  python -m harvester https://example.com/feed --mode scroll --min-width 300
        """
    )

    parser.add_argument('url', help='Page to harvest')
    parser.add_argument('--force', action='store_true',
                        help='Harvest even if the page does not look like a gallery')
    parser.add_argument('--max-rounds', type=int, default=_DEFAULTS['max_rounds'],
                        help=f"Maximum pagination rounds (default: {_DEFAULTS['max_rounds']})")
    parser.add_argument('--mode', choices=['auto', 'click', 'scroll', 'none'],
                        default=_DEFAULTS['pagination_mode'],
                        help='Pagination mode (default: auto)')
    parser.add_argument('--timeout', type=float, default=_DEFAULTS['wait_timeout'],
                        help=f"Seconds to wait for assets per attempt (default: {_DEFAULTS['wait_timeout']})")
    parser.add_argument('--retries', type=int, default=_DEFAULTS['retries'],
                        help=f"Wait attempts (default: {_DEFAULTS['retries']})")
    parser.add_argument('--min-width', type=int, default=0, help='Minimum image width in px')
    parser.add_argument('--min-height', type=int, default=0, help='Minimum image height in px')
    parser.add_argument('--formats', nargs='+', default=None,
                        help='Allowed formats (default: jpg jpeg png gif webp svg)')
    parser.add_argument('--container', type=str, default=None,
                        help='CSS selector of the gallery container (default: inferred)')
    parser.add_argument('--headed', action='store_true', help='Show the browser window')
    parser.add_argument('--probe', choices=['http', 'page', 'none'], default=_DEFAULTS['probe'],
                        help='How natural image sizes are measured (default: http)')

    args = parser.parse_args(argv)

    url = args.url
    if not url.startswith(('http://', 'https://')):
        url = 'https://' + url

    cfg = HarvestRunConfig.from_cli_args(args)
    cfg.log_summary(url)

    start = time.time()
    try:
        report = asyncio.run(_harvest(url, cfg))
    except KeyboardInterrupt:
        print("\nHarvest interrupted by user.")
        sys.exit(130)

    print_summary(report, time.time() - start)
    for record in report.records:
        print(record.canonical_url)


if __name__ == '__main__':
    run_cli_with_args()
