"""Pipeline Fetcher - Meeting scrape batches

Events are fetched concurrently (bounded by a semaphore) and written one at a
time, as they complete, by the coroutine that owns the batch. SQLite sees a
single writer; each meeting and its items land in one transaction.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable, List, Optional, Tuple

from config import get_logger
from database.db import LedgerDatabase
from database.models import AgendaItem, Meeting
from exceptions import DatabaseError, ParsingError, TransientFetchError, ValidationError
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.adapters.civicclerk_adapter_async import CivicClerkAdapter
from vendors.event_discovery import DiscoveryResult, EventIdDiscoverer

logger = get_logger(__name__).bind(component="pipeline")

# Failures recorded per event; anything else is a bug and propagates
EVENT_ERRORS = (TransientFetchError, ParsingError, ValidationError, DatabaseError)


class ScrapeStatus(Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class EventResult:
    event_id: int
    status: ScrapeStatus
    meeting_id: Optional[str] = None
    items_stored: int = 0
    error_message: Optional[str] = None


@dataclass
class BatchResult:
    requested: int = 0
    succeeded: int = 0
    failed: int = 0
    items_stored: int = 0
    duration_seconds: float = 0.0
    results: List[EventResult] = field(default_factory=list)

    @property
    def failed_event_ids(self) -> List[int]:
        return sorted(r.event_id for r in self.results if r.status == ScrapeStatus.FAILED)

    @property
    def meeting_ids(self) -> List[str]:
        return [r.meeting_id for r in self.results if r.meeting_id]


FetchOutcome = Tuple[int, Optional[Tuple[Meeting, List[AgendaItem]]], Optional[Exception]]


class Fetcher:
    """Scrapes CivicClerk events into the ledger"""

    def __init__(
        self,
        db: LedgerDatabase,
        adapter: CivicClerkAdapter,
        concurrency: int = 3,
        metrics: Optional[MetricsCollector] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.adapter = adapter
        self.concurrency = concurrency
        self.metrics = metrics or NullMetrics()
        self.today = today

    async def _fetch_one(self, semaphore: asyncio.Semaphore, event_id: int) -> FetchOutcome:
        async with semaphore:
            try:
                return event_id, await self.adapter.fetch_details(event_id), None
            except EVENT_ERRORS as e:
                return event_id, None, e

    def _store(self, event_id: int, meeting: Meeting, items: List[AgendaItem]) -> EventResult:
        stored = self.db.store_meeting_with_items(meeting, items, self.today)
        return EventResult(
            event_id=event_id,
            status=ScrapeStatus.COMPLETED,
            meeting_id=meeting.id,
            items_stored=stored,
        )

    def _record_failure(self, batch: BatchResult, event_id: int, error: Exception) -> None:
        batch.failed += 1
        batch.results.append(EventResult(event_id=event_id, status=ScrapeStatus.FAILED, error_message=str(error)))
        self.metrics.meetings_scraped.labels(status="failed").inc()
        self.metrics.record_error(component="vendor", error=error)
        logger.warning(
            "event scrape failed",
            event_id=event_id,
            error=str(error),
            error_type=type(error).__name__,
        )

    async def scrape_events(self, event_ids: Iterable[int]) -> BatchResult:
        """Fetch and store a batch of events

        One event's failure is recorded in the result and never stops the
        batch. Duplicate ids are fetched once.
        """
        start_time = time.time()
        unique_ids = sorted(set(event_ids))
        batch = BatchResult(requested=len(unique_ids))
        if not unique_ids:
            return batch

        logger.info("scraping events", event_count=len(unique_ids), concurrency=self.concurrency)
        semaphore = asyncio.Semaphore(self.concurrency)
        tasks = [asyncio.create_task(self._fetch_one(semaphore, event_id)) for event_id in unique_ids]

        try:
            for next_done in asyncio.as_completed(tasks):
                event_id, fetched, error = await next_done
                if error is not None:
                    self._record_failure(batch, event_id, error)
                    continue

                meeting, items = fetched
                try:
                    result = self._store(event_id, meeting, items)
                except DatabaseError as e:
                    self._record_failure(batch, event_id, e)
                    continue

                batch.succeeded += 1
                batch.items_stored += result.items_stored
                batch.results.append(result)
                self.metrics.meetings_scraped.labels(status="success").inc()
        finally:
            # Pending fetches never outlive the batch
            pending = [task for task in tasks if not task.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)

        batch.duration_seconds = time.time() - start_time
        self.metrics.processing_duration.labels(stage="scrape_events").observe(batch.duration_seconds)
        logger.info(
            "event batch complete",
            requested=batch.requested,
            succeeded=batch.succeeded,
            failed=batch.failed,
            items_stored=batch.items_stored,
            duration_seconds=round(batch.duration_seconds, 1),
        )
        if batch.failed:
            logger.warning("events failed during scrape", failed_event_ids=batch.failed_event_ids)
        return batch

    async def scrape_event(self, event_id: int) -> EventResult:
        batch = await self.scrape_events([event_id])
        return batch.results[0]

    async def scrape_calendar(self) -> BatchResult:
        """Every event linked from the portal calendar"""
        event_ids = await self.adapter.list_events()
        return await self.scrape_events(event_ids)

    async def discover_and_scrape(
        self,
        start: int,
        stop: int,
        max_probes: int = 200,
        max_consecutive_misses: int = 30,
    ) -> Tuple[DiscoveryResult, BatchResult]:
        """Probe [start, stop) for events the calendar no longer lists, then scrape them"""
        discoverer = EventIdDiscoverer(
            self.adapter.probe_event,
            max_probes=max_probes,
            max_consecutive_misses=max_consecutive_misses,
        )
        discovery = await discoverer.discover(start, stop)
        batch = await self.scrape_events(discovery.valid)
        return discovery, batch
