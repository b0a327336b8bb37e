"""Headless rendering for camp catalogs that build their session lists client-side.

Uses Patchright, the Playwright fork the registration platforms tolerate.
"""

import asyncio
import logging
from contextlib import asynccontextmanager

from campscout.config import get_settings

logger = logging.getLogger(__name__)

LAUNCH_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

# Catalogs paginate by infinite scroll; stop once the page height stops growing
MAX_SCROLL_ROUNDS = 8
SETTLE_TIMEOUT_MS = 15000


class CatalogRenderer:
    """One Chromium instance, a fresh context per rendered page."""

    def __init__(self, navigation_timeout_ms: int = 30000):
        self.navigation_timeout_ms = navigation_timeout_ms
        self._playwright = None
        self._browser = None

    async def start(self) -> None:
        from patchright.async_api import async_playwright

        self._playwright = await async_playwright().start()
        self._browser = await self._playwright.chromium.launch(headless=True, args=LAUNCH_ARGS)
        logger.debug("Chromium started for catalog rendering")

    async def stop(self) -> None:
        if self._browser:
            await self._browser.close()
        if self._playwright:
            await self._playwright.stop()

    async def _scroll_to_end(self, page) -> None:
        last_height = 0
        for _ in range(MAX_SCROLL_ROUNDS):
            height = await page.evaluate("document.body.scrollHeight")
            if height == last_height:
                return
            last_height = height
            await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
            await asyncio.sleep(0.75)

    async def render(self, url: str, wait_for_selector: str | None = None) -> str:
        """HTML of the page after client-side rendering and lazy loading settle."""
        if not self._browser:
            raise RuntimeError("Renderer not started")

        context = await self._browser.new_context(
            locale="en-US",
            user_agent=get_settings().user_agent,
            viewport={"width": 1440, "height": 1000},
        )
        try:
            page = await context.new_page()
            page.set_default_timeout(self.navigation_timeout_ms)
            await page.goto(url, wait_until="domcontentloaded")
            if wait_for_selector:
                await page.wait_for_selector(wait_for_selector)
            try:
                await page.wait_for_load_state("networkidle", timeout=SETTLE_TIMEOUT_MS)
            except Exception as e:
                # Pages with long polling never go idle
                logger.debug(f"networkidle not reached for {url}: {e}")
            await self._scroll_to_end(page)
            return await page.content()
        finally:
            await context.close()


@asynccontextmanager
async def get_browser(navigation_timeout_ms: int = 30000):
    """Started renderer for the duration of the block."""
    renderer = CatalogRenderer(navigation_timeout_ms)
    try:
        await renderer.start()
        yield renderer
    finally:
        await renderer.stop()
