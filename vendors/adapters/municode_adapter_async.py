"""
Async Municode Adapter - ordinance library integration for Municode

The library (library.municode.com/{state}/{city}) is a React SPA backed by
authenticated APIs, so pages are rendered with the headless browser.

URL patterns:
- Ordinance listing: {library}/ordinances/code_of_ordinances
  (one toggle per year; expanding it reveals "Ordinance No. N" links)
- Supplement history: {library}/codes/code_of_ordinances?nodeId=SUHITA
- PDF download: mcclibraryfunctions.azurewebsites.us/api/ordinanceDownload/{product}/{node}/pdf
"""

from typing import List, Optional, Sequence

from playwright.async_api import Error as PlaywrightError

from config import get_logger
from exceptions import ConfigurationError, PortalRenderError
from pipeline.protocols import MetricsCollector
from vendors.adapters.base_adapter_async import AsyncBaseAdapter
from vendors.adapters.parsers.municode_parser import (
    LibraryOrdinance,
    SupplementEntry,
    find_listing_years,
    parse_ordinance_links,
    parse_supplement_history,
)
from vendors.browser import PortalBrowser
from vendors.rate_limiter import PoliteRateLimiter

logger = get_logger(__name__).bind(component="vendor")

LISTING_PATH = "/ordinances/code_of_ordinances"
SUPPLEMENT_HISTORY_PATH = "/codes/code_of_ordinances?nodeId=SUHITA"
LISTING_SETTLE_MS = 3000
YEAR_EXPAND_MS = 1000


def _ordinance_sort_key(ordinance: LibraryOrdinance):
    digits = "".join(ch for ch in ordinance.number if ch.isdigit())
    return (int(ordinance.year), int(digits) if digits else 0)


class MunicodeAdapter(AsyncBaseAdapter):
    """Async adapter for one city's Municode ordinance library"""

    def __init__(
        self,
        library_url: str,
        product_id: str,
        browser: Optional[PortalBrowser] = None,
        rate_limiter: Optional[PoliteRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(
            "municode",
            library_url,
            browser=browser,
            rate_limiter=rate_limiter,
            metrics=metrics,
        )
        if not product_id:
            raise ConfigurationError(
                "Municode product id required", config_key="CIVICLEDGER_MUNICODE_PRODUCT_ID"
            )
        self.product_id = product_id

    @property
    def listing_url(self) -> str:
        return f"{self.base_url}{LISTING_PATH}"

    @property
    def supplement_history_url(self) -> str:
        return f"{self.base_url}{SUPPLEMENT_HISTORY_PATH}"

    async def list_ordinances(self, years: Optional[Sequence[str]] = None) -> List[LibraryOrdinance]:
        """Adopted ordinances listed in the library, newest year and number first

        Args:
            years: Years to expand. Defaults to every year toggle from 2020 on.

        A year whose toggle is missing or fails to expand is logged and
        skipped; the other years are still returned.
        """
        browser = self._get_browser()
        await self._polite(self.listing_url)
        ordinances: List[LibraryOrdinance] = []
        seen_nodes = set()

        async with browser.page() as page:
            await browser.goto(page, self.listing_url, settle_ms=LISTING_SETTLE_MS)
            try:
                html = await page.content()
            except PlaywrightError as e:
                raise PortalRenderError(
                    "Failed to read ordinance listing",
                    vendor=self.vendor,
                    source_id=self.listing_url,
                    original_error=e,
                ) from e

            target_years = list(years) if years else find_listing_years(html)
            logger.info("ordinance listing years", vendor=self.vendor, years=target_years)

            for year in target_years:
                try:
                    toggle = await page.query_selector(f'text="{year}"')
                    if toggle is None:
                        logger.warning("year toggle not found", vendor=self.vendor, year=year)
                        continue
                    await toggle.click()
                    await page.wait_for_timeout(YEAR_EXPAND_MS)
                    html = await page.content()
                except PlaywrightError as e:
                    logger.warning("failed to expand year", vendor=self.vendor, year=year, error=str(e))
                    continue

                found = parse_ordinance_links(html, self.listing_url, year, self.product_id)
                new = [o for o in found if o.node_id not in seen_nodes]
                seen_nodes.update(o.node_id for o in new)
                ordinances.extend(new)
                logger.debug("ordinances for year", vendor=self.vendor, year=year, count=len(new))

        ordinances.sort(key=_ordinance_sort_key, reverse=True)
        logger.info("listed library ordinances", vendor=self.vendor, count=len(ordinances))
        return ordinances

    async def fetch_supplement_history(self) -> List[SupplementEntry]:
        """Include/Omit rows from the supplement history page"""
        rendered = await self._render(self.supplement_history_url, settle_ms=LISTING_SETTLE_MS)
        entries = parse_supplement_history(rendered.html)
        logger.info("fetched supplement history", vendor=self.vendor, entries=len(entries))
        return entries
