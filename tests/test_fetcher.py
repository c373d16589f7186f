"""
Tests for the meeting scrape batch

Partial failure isolation, duplicate ids, discovery feeding the scraper, and
re-scrape idempotence against the ledger database.
"""

import asyncio
from datetime import date

import pytest

from conftest import FakeEventAdapter, make_items, make_meeting
from exceptions import ParsingError, PortalRenderError
from pipeline.fetcher import Fetcher, ScrapeStatus


def details(event_id, meeting_date, titles):
    meeting = make_meeting(event_id, meeting_date)
    return meeting, make_items(meeting.id, titles)


@pytest.fixture
def adapter():
    return FakeEventAdapter(
        details={
            101: details(101, date(2025, 1, 6), ["First Reading of Ordinance 724 variance", "Call to Order"]),
            102: PortalRenderError("navigation timeout", vendor="civicclerk", source_id="102"),
            103: details(103, date(2025, 2, 3), ["Consider Resolution 25-03 to approve paving"]),
            104: ParsingError("No meeting date on event page", parser_type="civicclerk", source="104"),
        },
        probe_results={101: "valid", 103: "valid"},
    )


class TestScrapeEvents:
    async def test_failures_do_not_stop_batch(self, db, adapter, today):
        batch = await Fetcher(db, adapter, today=today).scrape_events([101, 102, 103, 104])

        assert batch.requested == 4
        assert batch.succeeded == 2
        assert batch.failed == 2
        assert batch.items_stored == 3
        assert batch.failed_event_ids == [102, 104]
        assert sorted(batch.meeting_ids) == ["civicclerk-101", "civicclerk-103"]
        assert db.meetings.count() == 2
        assert db.items.count() == 3

    async def test_failure_carries_message(self, db, adapter, today):
        result = await Fetcher(db, adapter, today=today).scrape_event(102)

        assert result.status == ScrapeStatus.FAILED
        assert "navigation timeout" in result.error_message
        assert result.meeting_id is None

    async def test_duplicate_ids_fetched_once(self, db, adapter, today):
        batch = await Fetcher(db, adapter, today=today).scrape_events([101, 101, 103])

        assert batch.requested == 2
        assert sorted(adapter.fetched) == [101, 103]

    async def test_empty_batch(self, db, adapter, today):
        batch = await Fetcher(db, adapter, today=today).scrape_events([])

        assert batch.requested == 0
        assert adapter.fetched == []

    async def test_rescrape_is_idempotent(self, db, adapter, today):
        fetcher = Fetcher(db, adapter, concurrency=1, today=today)

        await fetcher.scrape_events([101, 103])
        await fetcher.scrape_events([101, 103])

        assert db.meetings.count() == 2
        assert db.items.count() == 3
        assert [i.order_num for i in db.get_agenda_items("civicclerk-101")] == [1, 2]

    async def test_calendar(self, db, today):
        adapter = FakeEventAdapter(details={201: details(201, date(2025, 5, 5), ["Consider Resolution 25-09"])})

        batch = await Fetcher(db, adapter, today=today).scrape_calendar()

        assert batch.succeeded == 1
        assert db.get_meeting("civicclerk-201").status == "past"


class TestDiscoverAndScrape:
    async def test_valid_ids_are_scraped(self, db, adapter, today):
        discovery, batch = await Fetcher(db, adapter, today=today).discover_and_scrape(100, 105)

        assert discovery.valid == [101, 103]
        assert discovery.invalid == [100, 102, 104]
        assert batch.succeeded == 2
        assert sorted(adapter.fetched) == [101, 103]

    async def test_probe_budget_respected(self, db, adapter, today):
        discovery, batch = await Fetcher(db, adapter, today=today).discover_and_scrape(100, 105, max_probes=2)

        assert discovery.probes == 2
        assert discovery.valid == [101]
        assert batch.succeeded == 1


class StallingAdapter:
    """Event 1 fails with an unexpected error while event 2 never finishes"""

    def __init__(self):
        self.cancelled = []

    async def fetch_details(self, event_id):
        if event_id == 1:
            raise RuntimeError("adapter bug")
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            self.cancelled.append(event_id)
            raise


class TestUnexpectedErrors:
    async def test_pending_fetches_cancelled(self, db, today):
        adapter = StallingAdapter()

        with pytest.raises(RuntimeError, match="adapter bug"):
            await Fetcher(db, adapter, concurrency=2, today=today).scrape_events([1, 2])

        assert adapter.cancelled == [2]
