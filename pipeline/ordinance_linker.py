"""
Ordinance Linker - Connects ordinance agenda items to ordinances

For every ordinance agenda item:
1. Extract the ordinance number (reference first, then title)
2. Find the ordinance by number, trying {year}-{num:03d} for recent years
3. Create a provisional ordinance when none exists
4. Record one link per detected action (append-only)

Then every linked ordinance's status is recomputed from its full link set
(pipeline.policies.ordinance_lifecycle) and written back only when it changed.

Library sync (authoritative rows) and the supplement history also land here,
since they are the other two writers of ordinance status.
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from config import get_logger
from database.db import LedgerDatabase
from database.models import Ordinance
from database.repositories.items import ItemMention
from database.repositories.ordinances import make_ordinance_id
from database.transaction import savepoint, transaction
from exceptions import DatabaseError, ValidationError
from pipeline.policies import (
    detect_ordinance_actions,
    extract_ordinance_number,
    extract_provisional_title,
    ordinance_lifecycle,
    ordinance_number_candidates,
)
from pipeline.protocols import MetricsCollector, NullMetrics
from vendors.adapters.parsers.municode_parser import LibraryOrdinance, SupplementEntry

logger = get_logger(__name__).bind(component="pipeline")


@dataclass
class LinkResult:
    items_seen: int = 0
    links_created: int = 0
    ordinances_created: int = 0
    status_changes: int = 0
    adopted_dates_updated: int = 0
    failures: int = 0


@dataclass
class LibrarySyncResult:
    seen: int = 0
    created: int = 0
    updated: int = 0
    failures: int = 0


class OrdinanceLinker:
    """Links ordinance agenda items and keeps ordinance lifecycles derived from links"""

    def __init__(
        self,
        db: LedgerDatabase,
        metrics: Optional[MetricsCollector] = None,
        today: Optional[date] = None,
    ):
        self.db = db
        self.metrics = metrics or NullMetrics()
        self.today = today

    def _today(self) -> date:
        return self.today or date.today()

    def link_all(self) -> LinkResult:
        """Link every known ordinance agenda item, then recompute lifecycles

        Safe to re-run: links are insert-or-ignore and status is a pure
        function of the link set.
        """
        result = LinkResult()
        mentions = self.db.items.get_mentions("ordinance")

        with self.metrics.processing_duration.labels(stage="link_ordinances").time():
            with transaction(self.db.conn):
                for mention in mentions:
                    result.items_seen += 1
                    try:
                        with savepoint(self.db.conn):
                            self._link_mention(mention, result)
                    except (DatabaseError, ValidationError) as e:
                        result.failures += 1
                        self.metrics.record_error(component="pipeline", error=e)
                        logger.warning("failed to link ordinance item", item_id=mention.item.id, error=str(e))

                self._recompute_lifecycles(result)

        logger.info(
            "ordinance linking complete",
            items_seen=result.items_seen,
            links_created=result.links_created,
            ordinances_created=result.ordinances_created,
            status_changes=result.status_changes,
            adopted_dates_updated=result.adopted_dates_updated,
            failures=result.failures,
        )
        return result

    def _link_mention(self, mention: ItemMention, result: LinkResult) -> None:
        item = mention.item
        number = extract_ordinance_number(item.reference_number) or extract_ordinance_number(item.title)
        if not number:
            result.failures += 1
            logger.debug("no ordinance number in item", item_id=item.id, title=item.title[:80])
            return

        ordinance = self._find_ordinance(number)
        if ordinance is None:
            ordinance = Ordinance(
                id=make_ordinance_id(number),
                number=number,
                title=extract_provisional_title(item.title, number),
                status="introduced",
                introduced_date=mention.meeting_date,
            )
            if self.db.ordinances.create_provisional(ordinance):
                result.ordinances_created += 1
                logger.info("created provisional ordinance", number=number, meeting_id=mention.meeting_id)

        for action in detect_ordinance_actions(item.title, item.outcome):
            if self.db.ordinances.add_link(ordinance.id, mention.meeting_id, action):
                result.links_created += 1
                self.metrics.links_created.labels(action=action).inc()

    def _find_ordinance(self, number: str) -> Optional[Ordinance]:
        for candidate in ordinance_number_candidates(number, self._today()):
            ordinance = self.db.ordinances.get_by_number(candidate)
            if ordinance:
                if candidate != number:
                    logger.debug("matched ordinance by year fallback", number=number, matched=candidate)
                return ordinance
        return None

    def _recompute_lifecycles(self, result: LinkResult) -> None:
        """Status pass, then the adopted_date pass, over every linked ordinance

        NOTE: Does not commit - caller must manage transaction.
        """
        today = self._today()
        adopted = []

        for ordinance_id in self.db.ordinances.get_linked_ordinance_ids():
            ordinance = self.db.ordinances.get_ordinance(ordinance_id)
            if ordinance is None:
                continue

            lifecycle = ordinance_lifecycle(ordinance, self.db.ordinances.get_links(ordinance_id), today)
            if lifecycle.status != ordinance.status:
                adopted_date = lifecycle.adopted_date if lifecycle.status == "adopted" else None
                self.db.ordinances.update_lifecycle(ordinance_id, lifecycle.status, adopted_date)
                result.status_changes += 1
                logger.info(
                    "ordinance status changed",
                    number=ordinance.number,
                    old_status=ordinance.status,
                    new_status=lifecycle.status,
                )
            elif lifecycle.status == "adopted" and lifecycle.adopted_date:
                adopted.append((ordinance_id, lifecycle.adopted_date))

        for ordinance_id, adopted_date in adopted:
            if self.db.ordinances.update_adopted_date(ordinance_id, adopted_date):
                result.adopted_dates_updated += 1

    def sync_library(self, library_ordinances: List[LibraryOrdinance]) -> LibrarySyncResult:
        """Write ordinance library entries as authoritative rows

        An entry updates the provisional row with the same number; it never
        creates a second row.
        """
        result = LibrarySyncResult()
        with transaction(self.db.conn):
            for entry in library_ordinances:
                result.seen += 1
                try:
                    with savepoint(self.db.conn):
                        created = self.db.ordinances.upsert_authoritative(
                            Ordinance(
                                id=make_ordinance_id(entry.number),
                                number=entry.number,
                                title=entry.title,
                                status="adopted",
                                source_url=entry.source_url,
                                pdf_url=entry.pdf_url,
                                node_id=entry.node_id,
                                verified=True,
                            )
                        )
                except (DatabaseError, ValidationError) as e:
                    result.failures += 1
                    self.metrics.record_error(component="pipeline", error=e)
                    logger.warning("failed to store library ordinance", number=entry.number, error=str(e))
                    continue

                if created:
                    result.created += 1
                else:
                    result.updated += 1

        logger.info(
            "library sync complete",
            seen=result.seen,
            created=result.created,
            updated=result.updated,
            failures=result.failures,
        )
        return result

    def apply_supplement_history(self, entries: List[SupplementEntry]) -> LibrarySyncResult:
        """Record codified/omit dispositions

        Existing ordinances become verified and adopted (tabled and denied are
        kept) with adopted_date = COALESCE(adopted_date, entry date). Numbers
        not seen before are created as authoritative rows.
        """
        result = LibrarySyncResult()
        with transaction(self.db.conn):
            for entry in entries:
                result.seen += 1
                try:
                    with savepoint(self.db.conn):
                        if self.db.ordinances.apply_disposition(entry.number, entry.disposition, entry.entry_date):
                            result.updated += 1
                            continue

                        self.db.ordinances.upsert_authoritative(
                            Ordinance(
                                id=make_ordinance_id(entry.number),
                                number=entry.number,
                                title=f"Ordinance {entry.number}",
                                status="adopted",
                                adopted_date=entry.entry_date,
                                disposition=entry.disposition,
                                verified=True,
                            )
                        )
                        result.created += 1
                except (DatabaseError, ValidationError) as e:
                    result.failures += 1
                    self.metrics.record_error(component="pipeline", error=e)
                    logger.warning("failed to apply supplement entry", number=entry.number, error=str(e))

        logger.info(
            "supplement history applied",
            seen=result.seen,
            created=result.created,
            updated=result.updated,
            failures=result.failures,
        )
        return result
