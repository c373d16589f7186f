"""
Portal Browser - headless Chromium for JavaScript-rendered portals

The meeting portal and the ordinance library render client-side, so plain HTTP
returns an empty shell. PortalBrowser owns one Playwright browser per run and
hands out short-lived pages. Playwright failures are wrapped as
PortalRenderError so callers see one retryable error type.
"""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from playwright.async_api import (
    async_playwright,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    Error as PlaywrightError,
)

from config import get_logger
from exceptions import PortalRenderError
from vendors.session_manager_async import USER_AGENT

logger = get_logger(__name__).bind(component="vendor")


@dataclass
class RenderedPage:
    url: str
    text: str  # document.body.innerText
    html: str
    title: str = ""


class PortalBrowser:
    """Async context manager around a single headless Chromium instance

    Usage:
        async with PortalBrowser(vendor="civicclerk") as browser:
            rendered = await browser.render(url)
            async with browser.page() as page:
                ...
    """

    def __init__(
        self,
        vendor: str = "civicclerk",
        headless: bool = True,
        user_agent: str = USER_AGENT,
        timeout_ms: int = 30_000,
    ):
        self.vendor = vendor
        self.headless = headless
        self.user_agent = user_agent
        self.timeout_ms = timeout_ms
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None

    async def start(self) -> "PortalBrowser":
        if self._context is not None:
            return self
        try:
            self._playwright = await async_playwright().start()
            self._browser = await self._playwright.chromium.launch(headless=self.headless)
            self._context = await self._browser.new_context(user_agent=self.user_agent)
        except PlaywrightError as e:
            await self.close()
            raise PortalRenderError(
                "Failed to launch headless browser", vendor=self.vendor, original_error=e
            ) from e
        logger.debug("browser started", vendor=self.vendor, headless=self.headless)
        return self

    async def close(self) -> None:
        if self._context is not None:
            await self._context.close()
            self._context = None
        if self._browser is not None:
            await self._browser.close()
            self._browser = None
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None

    async def __aenter__(self) -> "PortalBrowser":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Fresh page in the shared context, closed on exit"""
        if self._context is None:
            await self.start()
        page = await self._context.new_page()
        page.set_default_timeout(self.timeout_ms)
        try:
            yield page
        finally:
            await page.close()

    async def goto(self, page: Page, url: str, settle_ms: int = 0, wait_until: str = "networkidle") -> None:
        """Navigate and let client-side rendering settle. Raises PortalRenderError."""
        try:
            await page.goto(url, wait_until=wait_until, timeout=self.timeout_ms)
            if settle_ms:
                await page.wait_for_timeout(settle_ms)
        except PlaywrightError as e:
            logger.warning("page render failed", vendor=self.vendor, url=url, error=str(e))
            raise PortalRenderError(
                f"Failed to render {url}", vendor=self.vendor, source_id=url, original_error=e
            ) from e

    async def render(self, url: str, settle_ms: int = 2000, wait_until: str = "networkidle") -> RenderedPage:
        """Render a page and return its visible text and HTML"""
        async with self.page() as page:
            await self.goto(page, url, settle_ms=settle_ms, wait_until=wait_until)
            try:
                text = await page.evaluate("() => document.body.innerText")
                html = await page.content()
                title = await page.title()
            except PlaywrightError as e:
                raise PortalRenderError(
                    f"Failed to read {url}", vendor=self.vendor, source_id=url, original_error=e
                ) from e
        return RenderedPage(url=url, text=text or "", html=html or "", title=title or "")
