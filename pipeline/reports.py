"""
Report Pipeline - Monthly listings and summarized city documents

Monthly permit and business listings:
    candidate URLs -> DocumentResolver -> PDF text -> report_parser -> reports table

Financial reports and civic documents:
    city-site listing -> DocumentResolver -> PDF text -> Summarizer -> summaries table

The pipeline decides when to summarize (after a document resolves) and what
metadata to attach (url, title, resolved date). The summary text itself is
the summarizer's business.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import unquote

from config import get_logger
from database.db import LedgerDatabase
from database.models import SummaryRecord
from database.transaction import transaction
from exceptions import DatabaseError, ExtractionError, LLMError, TransientFetchError
from parsing.pdf import PdfExtractor
from pipeline.document_dates import resolve_document_date
from pipeline.protocols import MetricsCollector, NullMetrics, NullSummarizer, Summarizer
from vendors.adapters.city_site_adapter_async import CitySiteAdapter
from vendors.adapters.parsers.report_parser import parse_business_text, parse_permit_text
from vendors.document_resolver import DocumentResolver
from vendors.report_urls import business_report_candidates, permit_report_candidates

logger = get_logger(__name__).bind(component="pipeline")

MONTHLY_KINDS = ("permit", "business")
SUMMARY_TYPE = "pdf-analysis"


@dataclass
class ReportResult:
    kind: str
    documents_found: int = 0
    processed: int = 0
    skipped: int = 0
    not_found: int = 0
    records_stored: int = 0
    failures: int = 0
    errors: List[str] = field(default_factory=list)


def parse_month(month: str) -> Tuple[int, int]:
    """YYYY-MM -> (year, month)"""
    year_text, _, month_text = month.partition("-")
    year, month_number = int(year_text), int(month_text)
    if not 1 <= month_number <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    return year, month_number


class ReportPipeline:
    """Fetch, parse and summarize city documents"""

    def __init__(
        self,
        db: LedgerDatabase,
        resolver: DocumentResolver,
        site_url: str,
        city_site: Optional[CitySiteAdapter] = None,
        summarizer: Optional[Summarizer] = None,
        pdf_extractor: Optional[PdfExtractor] = None,
        metrics: Optional[MetricsCollector] = None,
        force: bool = False,
    ):
        self.db = db
        self.resolver = resolver
        self.site_url = site_url.rstrip("/")
        self.city_site = city_site
        self.summarizer = summarizer or NullSummarizer()
        self.pdf_extractor = pdf_extractor or PdfExtractor()
        self.metrics = metrics or NullMetrics()
        self.force = force

    async def _pdf_text(self, payload: bytes) -> str:
        extracted = await asyncio.to_thread(self.pdf_extractor.extract_from_bytes, payload)
        return extracted["text"]

    # ========== Monthly listings ==========

    async def fetch_monthly(self, kind: str, month: str) -> ReportResult:
        """Resolve, parse and store one monthly listing

        A listing that is not published (every candidate missed) is reported
        as not_found, not as a failure.
        """
        if kind not in MONTHLY_KINDS:
            raise ValueError(f"Unknown monthly report kind: {kind}")

        result = ReportResult(kind=kind)
        year, month_number = parse_month(month)
        builder = permit_report_candidates if kind == "permit" else business_report_candidates
        candidates = builder(self.site_url, year, month_number)

        resolved = await self.resolver.resolve(candidates, expect_pdf=True, cache_key=f"{kind}:{month}")
        if not resolved:
            result.not_found += 1
            logger.info("monthly report not published", kind=kind, month=month, candidates=len(candidates))
            return result

        result.documents_found += 1
        try:
            text = await self._pdf_text(resolved.payload)
        except ExtractionError as e:
            self._fail(result, e, resolved.url)
            return result

        with self.metrics.processing_duration.labels(stage=f"parse_{kind}").time():
            if kind == "permit":
                records = parse_permit_text(text, month, resolved.url)
            else:
                records = parse_business_text(text, month, resolved.url)

        try:
            with transaction(self.db.conn):
                if kind == "permit":
                    result.records_stored = self.db.reports.replace_permits(month, records)
                else:
                    result.records_stored = self.db.reports.replace_businesses(month, records)
        except DatabaseError as e:
            self._fail(result, e, resolved.url)
            return result

        result.processed += 1
        logger.info(
            "stored monthly report",
            kind=kind,
            month=month,
            url=resolved.url,
            attempts=resolved.attempts,
            records=result.records_stored,
        )

        await self._summarize(result, kind, month, text, {"url": resolved.url, "month": month})
        return result

    # ========== Summarized documents ==========

    async def summarize_financial_reports(self) -> ReportResult:
        """Budget, audit, PAFR and digest reports from the finance page"""
        result = ReportResult(kind="financial")
        try:
            reports = await self._listing().list_financial_reports()
        except TransientFetchError as e:
            self._fail(result, e, self.site_url)
            return result

        result.documents_found = len(reports)
        for report in reports:
            doc_id = f"{report.fiscal_year}-{report.type}"
            await self._process_document(
                result, report.type, doc_id, report.url, report.title, {"fiscal_year": report.fiscal_year}
            )
        return self._finish(result)

    async def summarize_civic_documents(self, doc_type: Optional[str] = None) -> ReportResult:
        """SPLOST reports, public notices, strategic plans and water quality reports"""
        result = ReportResult(kind=doc_type or "civic")
        try:
            documents = await self._listing().list_civic_documents(doc_type)
        except TransientFetchError as e:
            self._fail(result, e, self.site_url)
            return result

        result.documents_found = len(documents)
        for document in documents:
            await self._process_document(
                result, document.type, document.id, document.url, document.title, {"listing_date": document.date}
            )
        return self._finish(result)

    def _listing(self) -> CitySiteAdapter:
        if self.city_site is None:
            self.city_site = CitySiteAdapter(self.site_url, metrics=self.metrics)
        return self.city_site

    async def _process_document(
        self,
        result: ReportResult,
        kind: str,
        doc_id: str,
        url: str,
        title: str,
        extra: dict,
    ) -> None:
        if not self.force and self.db.summaries.get_summary(kind, doc_id, SUMMARY_TYPE):
            result.skipped += 1
            logger.debug("summary exists, skipping", kind=kind, doc_id=doc_id)
            return

        resolved = await self.resolver.resolve([url], expect_pdf=True, cache_key=f"{kind}:{doc_id}")
        if not resolved:
            result.not_found += 1
            logger.info("document not available", kind=kind, doc_id=doc_id, url=url[:100])
            return

        try:
            text = await self._pdf_text(resolved.payload)
        except ExtractionError as e:
            self._fail(result, e, url)
            return

        metadata = {"url": resolved.url, "title": title, **{k: v for k, v in extra.items() if v}}
        if await self._summarize(result, kind, doc_id, text, metadata):
            result.processed += 1

    async def _summarize(self, result: ReportResult, kind: str, doc_id: str, text: str, metadata: dict) -> bool:
        """Summarize, date and store one document. Returns False on failure."""
        try:
            content = await asyncio.to_thread(self.summarizer.summarize, kind, doc_id, text)
        except LLMError as e:
            self._fail(result, e, metadata.get("url", doc_id))
            return False

        filename = unquote(metadata.get("url", "").rsplit("/", 1)[-1]) or doc_id
        document_date = resolve_document_date(filename, content)
        metadata = {
            **metadata,
            "date": document_date.iso,
            "date_source": document_date.source,
        }
        if document_date.precedence_conflict:
            metadata["date_conflict"] = True

        try:
            with transaction(self.db.conn):
                self.db.summaries.store_summary(
                    SummaryRecord(
                        entity_type=kind,
                        entity_id=doc_id,
                        summary_type=SUMMARY_TYPE,
                        content=content,
                        metadata=metadata,
                    )
                )
        except DatabaseError as e:
            self._fail(result, e, metadata.get("url", doc_id))
            return False

        logger.info("stored document summary", kind=kind, doc_id=doc_id, date=document_date.iso)
        return True

    def _fail(self, result: ReportResult, error: Exception, source: str) -> None:
        result.failures += 1
        result.errors.append(f"{source}: {error}")
        self.metrics.record_error(component="pipeline", error=error)
        logger.warning("report processing failed", kind=result.kind, source=source[:100], error=str(error))

    def _finish(self, result: ReportResult) -> ReportResult:
        logger.info(
            "report batch complete",
            kind=result.kind,
            documents_found=result.documents_found,
            processed=result.processed,
            skipped=result.skipped,
            not_found=result.not_found,
            failures=result.failures,
        )
        return result
