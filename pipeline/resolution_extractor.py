"""
Resolution Extractor - Materializes resolutions from agenda mentions

A resolution has no record of its own on the portal; it exists only as agenda
items that cite its number. Mentions are grouped by number and the latest one
decides status (pipeline.policies.latest_mention_wins).
"""

from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional

from config import get_logger
from database.db import LedgerDatabase
from database.models import Resolution
from database.repositories.items import ItemMention
from database.repositories.resolutions import make_resolution_id
from database.transaction import savepoint, transaction
from exceptions import DatabaseError, ValidationError
from pipeline.classification import classify_item
from pipeline.policies import clean_resolution_title, latest_mention_wins
from pipeline.protocols import MetricsCollector, NullMetrics

logger = get_logger(__name__).bind(component="pipeline")


def resolution_number(mention: ItemMention) -> Optional[str]:
    """Reference number, falling back to the number cited in the title"""
    if mention.item.reference_number:
        return mention.item.reference_number
    item_type, reference = classify_item(mention.item.title)
    return reference if item_type == "resolution" else None


def _mention_order(mention: ItemMention):
    return (mention.meeting_date, mention.meeting_id, mention.item.order_num)


class ResolutionExtractor:
    """Upserts one resolution per number from its agenda mentions"""

    def __init__(
        self,
        db: LedgerDatabase,
        metrics: Optional[MetricsCollector] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.metrics = metrics or NullMetrics()
        self.today = today

    def extract(self, meeting_id: Optional[str] = None) -> int:
        """Create or update resolutions

        Args:
            meeting_id: Only resolutions mentioned in this meeting. Each one is
                still recomputed from all of its mentions, in every meeting.

        Returns:
            Number of resolutions created or changed
        """
        grouped = self._group_by_number(self.db.items.get_mentions("resolution"))

        if meeting_id:
            in_scope = {
                number
                for number in map(resolution_number, self.db.items.get_mentions("resolution", meeting_id))
                if number
            }
            grouped = {number: mentions for number, mentions in grouped.items() if number in in_scope}

        changed = 0
        failures = 0
        with transaction(self.db.conn):
            for number, mentions in sorted(grouped.items()):
                try:
                    with savepoint(self.db.conn):
                        resolution = self._build_resolution(number, mentions)
                        if self.db.resolutions.upsert_resolution(resolution):
                            changed += 1
                            self.metrics.resolutions_extracted.labels(status=resolution.status).inc()
                except (DatabaseError, ValidationError) as e:
                    failures += 1
                    self.metrics.record_error(component="pipeline", error=e)
                    logger.warning("failed to store resolution", number=number, error=str(e))

        logger.info(
            "resolution extraction complete",
            meeting_id=meeting_id,
            numbers=len(grouped),
            changed=changed,
            failures=failures,
        )
        return changed

    def _group_by_number(self, mentions: List[ItemMention]) -> Dict[str, List[ItemMention]]:
        grouped: Dict[str, List[ItemMention]] = defaultdict(list)
        for mention in mentions:
            number = resolution_number(mention)
            if number:
                grouped[number].append(mention)
        for number_mentions in grouped.values():
            number_mentions.sort(key=_mention_order)
        return grouped

    def _build_resolution(self, number: str, mentions: List[ItemMention]) -> Resolution:
        earliest, latest = mentions[0], mentions[-1]
        status = latest_mention_wins(
            [(m.meeting_date, m.meeting_id, m.item.outcome, m.item.title) for m in mentions],
            self.today,
        )
        return Resolution(
            id=make_resolution_id(number),
            number=number,
            title=clean_resolution_title(latest.item.title),
            status=status.status,
            introduced_date=earliest.meeting_date,
            adopted_date=status.adopted_date,
            meeting_id=latest.meeting_id,
            packet_url=latest.packet_url,
            outcome_verified=status.status in ("adopted", "tabled", "rejected"),
        )
