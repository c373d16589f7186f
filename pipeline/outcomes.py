"""
Outcome Recorder - Writes portal vote results onto agenda items

Vote modals on the overview page are matched to the meeting's agenda items,
by reference number when the vote text cites one, otherwise by the start of
the item title. The recorded outcome feeds the ordinance linker and the
resolution extractor on their next run.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from config import get_logger
from database.db import LedgerDatabase
from database.models import AgendaItem, Meeting
from database.transaction import transaction
from exceptions import TransientFetchError
from pipeline.classification import classify_item
from pipeline.policies import item_outcome_from_vote
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.adapters.civicclerk_adapter_async import CivicClerkAdapter
from vendors.adapters.parsers.civicclerk_parser import VoteOutcome

logger = get_logger(__name__).bind(component="pipeline")

TITLE_MATCH_CHARS = 60


@dataclass
class OutcomeResult:
    meetings: int = 0
    outcomes_recorded: int = 0
    minutes_found: int = 0
    failures: int = 0


def match_vote(items: List[AgendaItem], vote: VoteOutcome) -> Optional[AgendaItem]:
    """Agenda item a vote belongs to, or None"""
    _, reference = classify_item(vote.item_text)
    if reference:
        for item in items:
            if item.reference_number == reference:
                return item

    vote_text = vote.item_text.lower()
    for item in items:
        prefix = item.title[:TITLE_MATCH_CHARS].lower()
        if prefix and prefix in vote_text:
            return item
    return None


def match_outcomes(items: List[AgendaItem], votes: List[VoteOutcome]) -> List[Tuple[AgendaItem, str]]:
    """(item, outcome) pairs for every vote that maps to an item and a usable outcome"""
    matched = []
    for vote in votes:
        item = match_vote(items, vote)
        outcome = item_outcome_from_vote(vote.motion, vote.result)
        if item is None or outcome is None:
            logger.debug("unmatched vote", motion=vote.motion[:60], result=vote.result)
            continue
        matched.append((item, outcome))
    return matched


class OutcomeRecorder:
    """Fetches vote outcomes and minutes for past meetings"""

    def __init__(
        self,
        db: LedgerDatabase,
        adapter: CivicClerkAdapter,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.db = db
        self.adapter = adapter
        self.metrics = metrics or NullMetrics()

    def apply(self, meeting_id: str, votes: List[VoteOutcome]) -> int:
        """Write matched outcomes for one meeting. Returns the number of items changed."""
        items = self.db.items.get_agenda_items(meeting_id)
        changed = 0
        with transaction(self.db.conn):
            for item, outcome in match_outcomes(items, votes):
                if self.db.items.set_outcome(item.id, outcome):
                    changed += 1
        logger.info("recorded vote outcomes", meeting_id=meeting_id, votes=len(votes), changed=changed)
        return changed

    async def record_meeting(self, meeting: Meeting, result: OutcomeResult) -> None:
        if meeting.event_id is None:
            return

        votes = await self.adapter.fetch_vote_outcomes(meeting.event_id)
        result.outcomes_recorded += self.apply(meeting.id, votes)

        if not meeting.minutes_url:
            minutes_url = await self.adapter.fetch_minutes_url(meeting.event_id)
            if minutes_url:
                with transaction(self.db.conn):
                    self.db.meetings.update_minutes_url(meeting.id, minutes_url)
                result.minutes_found += 1

    async def record_pending(self, limit: Optional[int] = None) -> OutcomeResult:
        """Outcomes for past meetings whose ordinance/resolution items have none yet"""
        result = OutcomeResult()
        for meeting in self.db.meetings.get_meetings_needing_outcomes(limit):
            result.meetings += 1
            try:
                await self.record_meeting(meeting, result)
            except TransientFetchError as e:
                result.failures += 1
                self.metrics.record_error(component="vendor", error=e)
                logger.warning("failed to fetch outcomes", meeting_id=meeting.id, error=str(e))

        logger.info(
            "outcome recording complete",
            meetings=result.meetings,
            outcomes_recorded=result.outcomes_recorded,
            minutes_found=result.minutes_found,
            failures=result.failures,
        )
        return result
