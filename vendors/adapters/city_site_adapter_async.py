"""
Async City Site Adapter - document listings on the city's own website

Plain server-rendered pages, fetched over aiohttp. Each listing page links its
documents as PDFs; parsing lives in vendors.adapters.parsers.city_site_parser.
"""

from typing import Dict, List, Optional

from config import get_logger
from pipeline.protocols import MetricsCollector
from vendors.adapters.base_adapter_async import AsyncBaseAdapter
from vendors.adapters.parsers.city_site_parser import (
    CIVIC_DOC_TYPES,
    CivicDocument,
    FinancialDocument,
    parse_civic_documents,
    parse_financial_reports,
    sort_civic_documents,
)
from vendors.rate_limiter import PoliteRateLimiter
from vendors.session_manager_async import AsyncSessionManager

logger = get_logger(__name__).bind(component="vendor")

FINANCIAL_REPORTS_PATH = "/departments/finance/financial_reports.php"

CIVIC_DOC_PATHS: Dict[str, str] = {
    "splost": "/departments/finance/splost_reports.php",
    "notice": "/government/public_notices/index.php",
    "strategic": "/departments/finance/fy2025_strategic_plan.php",
    "water-quality": "/departments/water__wastewater/water_quality_reports.php",
}


class CitySiteAdapter(AsyncBaseAdapter):
    """Async adapter for the city website's document pages"""

    def __init__(
        self,
        site_url: str,
        page_paths: Optional[Dict[str, str]] = None,
        session_manager: Optional[AsyncSessionManager] = None,
        rate_limiter: Optional[PoliteRateLimiter] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        super().__init__(
            "city_site",
            site_url,
            session_manager=session_manager,
            rate_limiter=rate_limiter,
            metrics=metrics,
        )
        self.page_paths = {**CIVIC_DOC_PATHS, "financial": FINANCIAL_REPORTS_PATH}
        if page_paths:
            self.page_paths.update(page_paths)

    def page_url(self, kind: str) -> str:
        return f"{self.base_url}{self.page_paths[kind]}"

    async def list_financial_reports(self) -> List[FinancialDocument]:
        """Budget, audit, PAFR and digest PDFs, newest fiscal year first"""
        html = await self._get_text(self.page_url("financial"))
        reports = parse_financial_reports(html, self.base_url)
        logger.info("listed financial reports", vendor=self.vendor, count=len(reports))
        return reports

    async def list_civic_documents(self, doc_type: Optional[str] = None) -> List[CivicDocument]:
        """Civic documents of one type, or of every type when doc_type is None

        Raises:
            ValueError: unknown doc_type
            VendorHTTPError: a listing page could not be fetched
        """
        if doc_type is not None and doc_type not in CIVIC_DOC_TYPES:
            raise ValueError(f"Unknown civic document type: {doc_type}")

        documents: List[CivicDocument] = []
        for kind in [doc_type] if doc_type else list(CIVIC_DOC_TYPES):
            html = await self._get_text(self.page_url(kind))
            found = parse_civic_documents(html, self.base_url, kind)
            logger.debug("civic documents for type", vendor=self.vendor, doc_type=kind, count=len(found))
            documents.extend(found)

        return sort_civic_documents(documents)
