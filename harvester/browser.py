"""
Playwright Host Binding
=======================
Live-page implementations of the host capabilities.

- ``PlaywrightPage``   snapshots (annotated DOM → ``ContentTree``), clicks
                       and scroll-driven loading
- ``PageImageProber``  natural dimensions via an in-page ``Image`` load
- ``open_page``        launch Chromium, navigate, yield a ``PlaywrightPage``

Snapshots stamp every element with a handle id (``data-hv-id``), its
bounding box and the computed style properties the predicates read, then
parse ``page.content()``.  Handle ids survive in the live DOM so a node of
a snapshot can be clicked later.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional, Tuple

from playwright.async_api import Page, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeout

from .dom import HANDLE_ATTR, RECT_ATTR, STYLE_ATTR, ContentTree, Node
from .errors import ActuationFailed, ResourceProbeFailed
from .host import Actuator, ResourceProber, TreeSource

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
)

# Computed properties copied into the snapshot
_CAPTURED_STYLE = [
    'display', 'visibility', 'opacity', 'pointer-events', 'background-image',
]

_ANNOTATE_JS = """([handleAttr, rectAttr, styleAttr, props]) => {
    window.__hvSeq = window.__hvSeq || 0;
    const all = document.querySelectorAll('*');
    for (const el of all) {
        if (!el.hasAttribute(handleAttr)) {
            window.__hvSeq += 1;
            el.setAttribute(handleAttr, String(window.__hvSeq));
        }
        const r = el.getBoundingClientRect();
        el.setAttribute(rectAttr, [
            r.left + window.scrollX, r.top + window.scrollY, r.width, r.height,
        ].map(v => Math.round(v * 100) / 100).join(','));
        const cs = window.getComputedStyle(el);
        const style = {};
        for (const p of props) { style[p] = cs.getPropertyValue(p); }
        el.setAttribute(styleAttr, JSON.stringify(style));
    }
    return {count: all.length, baseURI: document.baseURI};
}"""

_CLEANUP_JS = """([rectAttr, styleAttr]) => {
    for (const el of document.querySelectorAll('[' + rectAttr + ']')) {
        el.removeAttribute(rectAttr);
        el.removeAttribute(styleAttr);
    }
}"""

_SCROLL_JS = """(amount) => {
    window.scrollBy(0, amount);
    return document.body ? document.body.scrollHeight : 0;
}"""

_IMAGE_SIZE_JS = """(url) => new Promise((resolve, reject) => {
    const img = new Image();
    img.onload = () => resolve([img.naturalWidth, img.naturalHeight]);
    img.onerror = () => reject(new Error('Failed to load image'));
    img.src = url;
})"""


class PlaywrightPage(TreeSource, Actuator):
    """
    A live Playwright page exposed as a tree source and actuator.

    Args:
        page:            Playwright ``Page``.
        click_timeout_ms: Timeout of one native click.
        click_attempts:  Attempts per activation (linear 0.2s backoff).
        scroll_amount:   Pixels per scroll step.
        scroll_pause:    Seconds to wait after scrolling.
    """

    def __init__(
        self,
        page: Page,
        *,
        click_timeout_ms: int = 1500,
        click_attempts: int = 3,
        scroll_amount: int = 800,
        scroll_pause: float = 0.6,
    ):
        self.page = page
        self.click_timeout_ms = click_timeout_ms
        self.click_attempts = click_attempts
        self.scroll_amount = scroll_amount
        self.scroll_pause = scroll_pause

    async def snapshot(self) -> ContentTree:
        info = await self.page.evaluate(
            _ANNOTATE_JS, [HANDLE_ATTR, RECT_ATTR, STYLE_ATTR, _CAPTURED_STYLE]
        )
        try:
            html = await self.page.content()
            title = await self.page.title()
        finally:
            try:
                await self.page.evaluate(_CLEANUP_JS, [RECT_ATTR, STYLE_ATTR])
            except PlaywrightError as exc:
                logger.debug(f"Annotation cleanup failed: {exc}")
        return ContentTree.from_html(
            html, self.page.url, title=title, base_url=info.get('baseURI'),
        )

    async def activate(self, node: Node) -> bool:
        """
        Scroll the live counterpart of ``node`` into view and click it.

        Native click first, then a JS ``el.click()`` fallback; up to
        ``click_attempts`` tries with a linear backoff.
        """
        handle = node.handle
        if not handle:
            raise ActuationFailed("Node has no live handle", {"tag": node.tag})

        locator = self.page.locator(f'[{HANDLE_ATTR}="{handle}"]').first
        for attempt in range(1, self.click_attempts + 1):
            try:
                await locator.scroll_into_view_if_needed(timeout=self.click_timeout_ms)
                await locator.click(timeout=self.click_timeout_ms)
                logger.debug(f"[CLICK] <{node.tag}> clicked on attempt {attempt}")
                return True
            except (PlaywrightTimeout, PlaywrightError) as exc:
                logger.debug(f"[CLICK] Native click failed (attempt {attempt}): {exc}")
            try:
                await locator.evaluate("el => el.click()")
                logger.debug(f"[CLICK] <{node.tag}> clicked via JS on attempt {attempt}")
                return True
            except (PlaywrightTimeout, PlaywrightError) as exc:
                logger.debug(f"[CLICK] JS click failed (attempt {attempt}): {exc}")
            if attempt < self.click_attempts:
                await asyncio.sleep(0.2 * attempt)

        logger.warning(f"[CLICK] Failed to click <{node.tag}> after {self.click_attempts} attempts")
        return False

    async def scroll(self) -> bool:
        """Scroll one step; True when the document grew."""
        try:
            before = await self.page.evaluate("document.body ? document.body.scrollHeight : 0")
            await self.page.evaluate(_SCROLL_JS, self.scroll_amount)
            await asyncio.sleep(self.scroll_pause)
            after = await self.page.evaluate("document.body ? document.body.scrollHeight : 0")
        except PlaywrightError as exc:
            raise ActuationFailed(f"Scrolling failed: {exc}") from exc
        return after > before


class PageImageProber(ResourceProber):
    """Resolves natural dimensions by loading the image inside the page."""

    def __init__(self, page: Page):
        self.page = page

    async def probe(self, url: str) -> Tuple[int, int]:
        try:
            width, height = await self.page.evaluate(_IMAGE_SIZE_JS, url)
        except PlaywrightError as exc:
            raise ResourceProbeFailed(url, str(exc)) from exc
        return int(width), int(height)


@asynccontextmanager
async def open_page(
    url: str,
    *,
    headless: bool = True,
    navigation_timeout: float = 30.0,
    user_agent: Optional[str] = None,
) -> AsyncIterator[PlaywrightPage]:
    """
    Launch Chromium, open ``url`` and yield it as a ``PlaywrightPage``.

    The browser is closed when the context exits.
    """
    playwright = await async_playwright().start()
    browser = None
    try:
        browser = await playwright.chromium.launch(
            headless=headless,
            args=['--disable-gpu', '--no-sandbox', '--disable-dev-shm-usage'],
        )
        context = await browser.new_context(
            user_agent=user_agent or DEFAULT_USER_AGENT,
            viewport={'width': 1366, 'height': 900},
        )
        page = await context.new_page()
        logger.info(f"Loading {url}")
        await page.goto(url, wait_until='domcontentloaded', timeout=navigation_timeout * 1000)
        try:
            await page.wait_for_load_state('networkidle', timeout=5000)
        except PlaywrightTimeout:
            logger.debug("Network never went idle, continuing")
        yield PlaywrightPage(page)
    finally:
        if browser is not None:
            await browser.close()
        await playwright.stop()
