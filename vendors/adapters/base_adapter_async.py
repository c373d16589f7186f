"""Async Base Adapter - Shared HTTP, browser rendering, politeness for source adapters."""

import asyncio
import time
from typing import Optional

import aiohttp

from config import get_logger
from exceptions import ConfigurationError, VendorHTTPError
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.browser import PortalBrowser, RenderedPage
from vendors.rate_limiter import PoliteRateLimiter
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="vendor")


class AsyncBaseAdapter:
    """Async base adapter for one remote source.

    Contract: config errors raise in __init__; fetch errors raise
    TransientFetchError subclasses and the caller decides whether to skip.
    Browser, session manager and rate limiter are injected so one run shares
    them across adapters.
    """

    def __init__(
        self,
        vendor: str,
        base_url: str,
        session_manager: Optional[AsyncSessionManager] = None,
        browser: Optional[PortalBrowser] = None,
        rate_limiter: Optional[PoliteRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        if not base_url:
            raise ConfigurationError(f"base_url required for {vendor}", config_key=vendor)

        self.vendor = vendor
        self.base_url = base_url.rstrip("/")
        self.session_manager = session_manager or AsyncSessionManager()
        self.browser = browser
        self.rate_limiter = rate_limiter
        self.metrics = metrics or NullMetrics()

        logger.debug("initialized async adapter", vendor=vendor, base_url=self.base_url)

    def _get_browser(self) -> PortalBrowser:
        if self.browser is None:
            self.browser = PortalBrowser(vendor=self.vendor)
        return self.browser

    async def _polite(self, url: str) -> None:
        if self.rate_limiter:
            await self.rate_limiter.wait(url)

    async def _request(self, method: str, url: str, **kwargs) -> aiohttp.ClientResponse:
        """Make async HTTP request with error handling. Raises VendorHTTPError on failure."""
        session = await self.session_manager.get_session(self.vendor)

        if "timeout" not in kwargs:
            kwargs["timeout"] = aiohttp.ClientTimeout(total=self.session_manager.timeout_total)

        await self._polite(url)
        start_time = time.time()

        try:
            logger.debug("vendor request", vendor=self.vendor, method=method, url=url[:100])
            response = await session.request(method, url, **kwargs)
            duration = time.time() - start_time

            logger.debug(
                "vendor response",
                vendor=self.vendor,
                status_code=response.status,
                content_type=response.headers.get("content-type", "unknown"),
                duration_seconds=round(duration, 2),
            )

            if response.status >= 400:
                response.release()
                self.metrics.vendor_requests.labels(vendor=self.vendor, status=f"http_{response.status}").inc()
                err = VendorHTTPError(
                    f"HTTP {response.status} error",
                    vendor=self.vendor,
                    status_code=response.status,
                    url=url,
                )
                self.metrics.record_error(component="vendor", error=err)
                logger.warning(
                    "vendor http error",
                    vendor=self.vendor,
                    status_code=response.status,
                    url=url[:100],
                    duration_seconds=round(duration, 2),
                )
                raise err

            self.metrics.vendor_requests.labels(vendor=self.vendor, status="success").inc()
            self.metrics.vendor_request_duration.labels(vendor=self.vendor).observe(duration)
            return response

        except asyncio.TimeoutError as e:
            duration = time.time() - start_time
            self.metrics.vendor_requests.labels(vendor=self.vendor, status="timeout").inc()
            self.metrics.record_error(component="vendor", error=e)
            logger.error("vendor request timeout", vendor=self.vendor, url=url[:100], duration_seconds=round(duration, 2))
            raise VendorHTTPError(f"Request timeout after {duration:.1f}s", vendor=self.vendor, url=url) from e

        except aiohttp.ClientError as e:
            duration = time.time() - start_time
            self.metrics.vendor_requests.labels(vendor=self.vendor, status="error").inc()
            self.metrics.record_error(component="vendor", error=e)
            logger.error(
                "vendor request failed",
                vendor=self.vendor,
                url=url[:100],
                error=str(e),
                error_type=type(e).__name__,
                duration_seconds=round(duration, 2),
            )
            raise VendorHTTPError(f"Request failed: {e}", vendor=self.vendor, url=url) from e

    async def _get(self, url: str, **kwargs) -> aiohttp.ClientResponse:
        """GET request. Raises VendorHTTPError on failure."""
        return await self._request("GET", url, **kwargs)

    async def _get_text(self, url: str, **kwargs) -> str:
        """GET request, decoded body. Raises VendorHTTPError on failure."""
        response = await self._get(url, **kwargs)
        try:
            return await response.text()
        except (aiohttp.ClientError, UnicodeDecodeError) as e:
            raise VendorHTTPError(f"Failed to read body: {e}", vendor=self.vendor, url=url) from e
        finally:
            response.release()

    async def _render(self, url: str, settle_ms: int = 2000) -> RenderedPage:
        """Render a JavaScript page. Raises PortalRenderError on failure."""
        await self._polite(url)
        start_time = time.time()
        rendered = await self._get_browser().render(url, settle_ms=settle_ms)
        self.metrics.vendor_requests.labels(vendor=self.vendor, status="rendered").inc()
        self.metrics.vendor_request_duration.labels(vendor=self.vendor).observe(time.time() - start_time)
        return rendered

    async def close(self) -> None:
        if self.browser is not None:
            await self.browser.close()
