"""
Shared fixtures and HTML builders for the harvester tests.

Everything runs offline: pages are inline HTML served through
``StaticPage`` / ``ContentTree.from_html``.
"""

import pytest

from harvester.dom import ContentTree
from harvester.waiter import WaitOptions

PAGE_URL = "https://example.com/trips/summer"


def make_tree(body: str, url: str = PAGE_URL, title: str = "Welcome") -> ContentTree:
    """Parse a body fragment into a snapshot."""
    return ContentTree.from_html(page(body, title=title), url)


def page(body: str, title: str = "Welcome") -> str:
    return f"<html><head><title>{title}</title></head><body>{body}</body></html>"


def images(count: int, size: int = 60, prefix: str = "/assets/a") -> str:
    return "".join(
        f'<img src="{prefix}{i}.jpg" width="{size}" height="{size}" alt="a{i}">'
        for i in range(count)
    )


@pytest.fixture
def fast_wait():
    """Wait options small enough to keep timeout tests quick."""
    return WaitOptions(timeout=0.05, interval=0.01, retries=3, throw_on_timeout=False)
