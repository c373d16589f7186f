"""
Ledger Database for civicledger - Repository Pattern

Single SQLite file holding meetings, agenda items, ordinances, resolutions,
monthly reports and summaries. The facade owns the connection and delegates to
focused repositories:
- MeetingRepository: Meeting storage and retrieval
- ItemRepository: Agenda item operations
- OrdinanceRepository: Ordinances and meeting links
- ResolutionRepository: Resolutions
- ReportRepository: Permits and businesses
- SummaryRepository: Summarizer output
"""

import sqlite3
from typing import Optional, List, Dict, Any
from datetime import date
from pathlib import Path
from importlib.resources import files

from config import get_logger
from database.models import Meeting, AgendaItem
from database.transaction import transaction
from exceptions import DatabaseConnectionError
from database.repositories.meetings import MeetingRepository
from database.repositories.items import ItemRepository
from database.repositories.ordinances import OrdinanceRepository
from database.repositories.resolutions import ResolutionRepository
from database.repositories.reports import ReportRepository
from database.repositories.summaries import SummaryRepository

logger = get_logger(__name__).bind(component="database")


class LedgerDatabase:
    """
    Single database interface for all civicledger data.

    Threading Model:
    - Each instance creates its own SQLite connection
    - The pipeline writes from one coroutine only; do not share across threads
    """

    conn: sqlite3.Connection

    def __init__(self, db_path: str):
        """Initialize database connection, schema and repositories"""
        self.db_path = db_path
        self._connect()
        self._init_schema()

        # Initialize repositories with shared connection
        self.meetings = MeetingRepository(self.conn)
        self.items = ItemRepository(self.conn)
        self.ordinances = OrdinanceRepository(self.conn)
        self.resolutions = ResolutionRepository(self.conn)
        self.reports = ReportRepository(self.conn)
        self.summaries = SummaryRepository(self.conn)

        logger.info("initialized ledger database", db_path=db_path)

    def _connect(self):
        """Create database connection with optimizations"""
        if self.db_path != ":memory:":
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise DatabaseConnectionError(
                f"Failed to open database: {e}", context={"db_path": self.db_path}
            )
        self.conn.row_factory = sqlite3.Row

        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA foreign_keys=ON")

    def _init_schema(self):
        """Initialize schema from schema.sql (idempotent)

        Uses importlib.resources to load schema.sql, which works correctly
        in both development (source tree) and production (installed package).
        """
        if self.conn is None:
            raise DatabaseConnectionError("Database connection not established")

        schema = files("database").joinpath("schema.sql").read_text()

        self.conn.executescript(schema)
        self.conn.commit()

    # ========== Meeting Operations ==========

    def store_meeting_with_items(
        self, meeting: Meeting, items: List[AgendaItem], today: Optional[date] = None
    ) -> int:
        """Upsert a meeting and replace its agenda items in one transaction

        Returns:
            Number of agenda items stored
        """
        with transaction(self.conn):
            self.meetings.store_meeting(meeting, today)
            stored = self.items.replace_agenda_items(meeting.id, items)

        logger.info("stored meeting", meeting_id=meeting.id, date=meeting.date.isoformat(), items=stored)
        return stored

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        return self.meetings.get_meeting(meeting_id)

    def get_agenda_items(self, meeting_id: str) -> List[AgendaItem]:
        return self.items.get_agenda_items(meeting_id)

    # ========== Stats ==========

    def get_stats(self) -> Dict[str, Any]:
        """Row counts and status breakdowns for the status command"""
        return {
            "meetings": self.meetings.count(),
            "agenda_items": self.items.count(),
            "items_by_type": self.items.count_by_type(),
            "ordinances": self.ordinances.count(),
            "ordinances_by_status": self.ordinances.count_by_status(),
            "ordinance_links": self.ordinances.count_links(),
            "resolutions": self.resolutions.count(),
            "resolutions_by_status": self.resolutions.count_by_status(),
            "permits": self.reports.count_permits(),
            "businesses": self.reports.count_businesses(),
            "summaries": self.summaries.count(),
        }

    def close(self):
        """Close database connection"""
        if self.conn:
            self.conn.close()
            logger.info("database connection closed")
