"""
Utility Functions
Site keys, text cleanup, timing helpers.
"""

import inspect
import logging
import re
import time
from contextlib import contextmanager
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


def site_key(url: str) -> str:
    """
    Identity of a site section, used to key per-page caches.

    ``https://www.example.com/gallery/42`` → ``www.example.com_gallery``;
    the root path maps to ``<host>_root``.
    """
    try:
        parsed = urlparse(url or "")
    except ValueError:
        return "_root"
    hostname = (parsed.hostname or "").lower()
    segments = [s for s in (parsed.path or "").split("/") if s]
    return f"{hostname}_{segments[0] if segments else 'root'}"


def clean_text(text: str) -> str:
    """Clean and normalize text content."""
    if not text:
        return ""

    # Replace multiple whitespace with single space
    text = re.sub(r'\s+', ' ', text)

    return text.strip()


async def maybe_await(value: Any) -> Any:
    """Await ``value`` if it is awaitable, else return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


@contextmanager
def timed(operation: str):
    """
    Log how long ``operation`` took.

    Successful runs are logged at DEBUG, failures at WARNING; the exception
    is re-raised untouched.
    """
    start = time.perf_counter()
    try:
        yield
    except Exception as exc:
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.warning(f"{operation} failed after {elapsed_ms:.2f}ms: {exc}")
        raise
    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(f"{operation} completed in {elapsed_ms:.2f}ms")
