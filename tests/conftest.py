"""Shared fixtures: temp-file ledger database, meeting builders, fake fetchers"""

from datetime import date
from typing import Dict, List, Optional, Sequence, Union

import pytest

from database.db import LedgerDatabase
from database.models import AgendaItem, Meeting, make_item_id, make_meeting_id
from pipeline.classification import classify_item
from vendors.document_resolver import FetchResponse

TODAY = date(2025, 6, 1)

PDF_BYTES = b"%PDF-1.7\n% fake pdf body\n"


@pytest.fixture
def today() -> date:
    return TODAY


@pytest.fixture
def db(tmp_path):
    """Fresh ledger database in a temp file"""
    database = LedgerDatabase(str(tmp_path / "ledger.db"))
    yield database
    database.close()


def make_meeting(event_id: int, meeting_date: date, title: str = "City Council Meeting", **kwargs) -> Meeting:
    return Meeting(
        id=make_meeting_id(event_id),
        date=meeting_date,
        title=title,
        event_id=event_id,
        **kwargs,
    )


def make_items(meeting_id: str, titles: Sequence[Union[str, tuple]]) -> List[AgendaItem]:
    """Agenda items classified the way the scraper classifies them

    Each entry is a title, or (title, outcome).
    """
    items = []
    for order_num, entry in enumerate(titles, start=1):
        title, outcome = (entry, None) if isinstance(entry, str) else entry
        item_type, reference = classify_item(title)
        items.append(
            AgendaItem(
                id=make_item_id(meeting_id, order_num),
                meeting_id=meeting_id,
                order_num=order_num,
                title=title,
                type=item_type,
                reference_number=reference,
                outcome=outcome,
            )
        )
    return items


@pytest.fixture
def store_meeting(db, today):
    """store_meeting(event_id, date, titles, **meeting_fields) -> Meeting"""

    def _store(event_id: int, meeting_date: date, titles: Sequence[Union[str, tuple]], **kwargs) -> Meeting:
        meeting = make_meeting(event_id, meeting_date, **kwargs)
        db.store_meeting_with_items(meeting, make_items(meeting.id, titles), today)
        return meeting

    return _store


class FakeFetch:
    """Scripted fetch for DocumentResolver: url -> FetchResponse or exception

    Unknown urls answer 404. Every call is recorded in order.
    """

    def __init__(self, responses: Optional[Dict[str, Union[FetchResponse, Exception]]] = None):
        self.responses = responses or {}
        self.calls: List[str] = []

    async def __call__(self, url: str) -> FetchResponse:
        self.calls.append(url)
        response = self.responses.get(url, FetchResponse(status=404, body=b"Not Found"))
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def fake_fetch():
    return FakeFetch()


class FakeEventAdapter:
    """Stands in for CivicClerkAdapter in fetcher and discovery tests

    details maps event_id -> (Meeting, items) or an exception to raise.
    """

    def __init__(self, details=None, probe_results=None, calendar=None):
        self.details = details or {}
        self.probe_results = probe_results or {}
        self.calendar = calendar or sorted(self.details)
        self.fetched: List[int] = []

    async def fetch_details(self, event_id: int):
        self.fetched.append(event_id)
        result = self.details[event_id]
        if isinstance(result, Exception):
            raise result
        return result

    async def probe_event(self, event_id: int) -> str:
        result = self.probe_results.get(event_id, "invalid")
        if isinstance(result, Exception):
            raise result
        return result

    async def list_events(self) -> List[int]:
        return list(self.calendar)
