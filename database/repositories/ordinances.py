"""
Ordinance Repository - Ordinance and link operations

Ordinance number is the business key. Two write paths exist:
- provisional: created from an agenda reference, never clobbers an existing row
- authoritative: from the ordinance library, updates the row with the same number

Links (ordinance_meetings) are append-only.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
"""

from typing import List, Optional, Dict
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Ordinance, OrdinanceMeetingLink

logger = get_logger(__name__).bind(component="database")


def make_ordinance_id(number: str) -> str:
    return f"ordinance-{number}"


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


class OrdinanceRepository(BaseRepository):
    """Repository for ordinances and their meeting links"""

    def get_by_number(self, number: str) -> Optional[Ordinance]:
        row = self._fetch_one("SELECT * FROM ordinances WHERE number = ?", (number,))
        return Ordinance.from_db_row(row) if row else None

    def get_ordinance(self, ordinance_id: str) -> Optional[Ordinance]:
        row = self._fetch_one("SELECT * FROM ordinances WHERE id = ?", (ordinance_id,))
        return Ordinance.from_db_row(row) if row else None

    def get_ordinances(self, status: Optional[str] = None) -> List[Ordinance]:
        if status:
            rows = self._fetch_all(
                "SELECT * FROM ordinances WHERE status = ? ORDER BY number", (status,)
            )
        else:
            rows = self._fetch_all("SELECT * FROM ordinances ORDER BY number")
        return [Ordinance.from_db_row(row) for row in rows]

    def create_provisional(self, ordinance: Ordinance) -> bool:
        """Insert a provisional ordinance from an agenda reference

        ON CONFLICT(number) DO NOTHING: an existing row always wins.

        Returns:
            True if a new row was created

        NOTE: Does not commit - caller must manage transaction.
        """
        cursor = self._execute(
            """
            INSERT INTO ordinances (id, number, title, status, introduced_date, verified)
            VALUES (?, ?, ?, ?, ?, 0)
            ON CONFLICT(number) DO NOTHING
            """,
            (
                ordinance.id,
                ordinance.number,
                ordinance.title,
                ordinance.status,
                _iso(ordinance.introduced_date),
            ),
        )
        return cursor.rowcount > 0

    def upsert_authoritative(self, ordinance: Ordinance) -> bool:
        """Insert or update an ordinance from the ordinance library

        Updates title, urls and node id; marks verified and adopted.
        Keeps an existing adopted_date, introduced_date and status history from links.

        Returns:
            True if the row did not exist before

        NOTE: Does not commit - caller must manage transaction.
        """
        existed = self._fetch_one("SELECT 1 FROM ordinances WHERE number = ?", (ordinance.number,))
        self._execute(
            """
            INSERT INTO ordinances (id, number, title, status, introduced_date, adopted_date,
                                    source_url, pdf_url, node_id, disposition, verified)
            VALUES (?, ?, ?, 'adopted', ?, ?, ?, ?, ?, ?, 1)
            ON CONFLICT(number) DO UPDATE SET
                title = excluded.title,
                status = CASE
                    WHEN ordinances.status IN ('tabled', 'denied') THEN ordinances.status
                    ELSE 'adopted'
                END,
                adopted_date = COALESCE(ordinances.adopted_date, excluded.adopted_date),
                source_url = COALESCE(excluded.source_url, ordinances.source_url),
                pdf_url = COALESCE(excluded.pdf_url, ordinances.pdf_url),
                node_id = COALESCE(excluded.node_id, ordinances.node_id),
                disposition = COALESCE(excluded.disposition, ordinances.disposition),
                verified = 1,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                ordinance.id,
                ordinance.number,
                ordinance.title,
                _iso(ordinance.introduced_date),
                _iso(ordinance.adopted_date),
                ordinance.source_url,
                ordinance.pdf_url,
                ordinance.node_id,
                ordinance.disposition,
            ),
        )
        return existed is None

    def apply_disposition(self, number: str, disposition: str, entry_date: Optional[date]) -> bool:
        """Mark an existing ordinance as codified/omitted per the supplement history

        Returns:
            True if a row with this number existed and was updated

        NOTE: Does not commit - caller must manage transaction.
        """
        cursor = self._execute(
            """
            UPDATE ordinances SET
                disposition = ?,
                verified = 1,
                status = CASE
                    WHEN status IN ('tabled', 'denied') THEN status
                    ELSE 'adopted'
                END,
                adopted_date = COALESCE(adopted_date, ?),
                updated_at = CURRENT_TIMESTAMP
            WHERE number = ?
            """,
            (disposition, _iso(entry_date), number),
        )
        return cursor.rowcount > 0

    def update_lifecycle(self, ordinance_id: str, status: str, adopted_date: Optional[date]) -> None:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute(
            """
            UPDATE ordinances SET status = ?, adopted_date = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ?
            """,
            (status, _iso(adopted_date), ordinance_id),
        )

    def update_adopted_date(self, ordinance_id: str, adopted_date: date) -> bool:
        """Set adopted_date when it differs. Returns True if changed.

        NOTE: Does not commit - caller must manage transaction.
        """
        cursor = self._execute(
            """
            UPDATE ordinances SET adopted_date = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND (adopted_date IS NULL OR adopted_date != ?)
            """,
            (adopted_date.isoformat(), ordinance_id, adopted_date.isoformat()),
        )
        return cursor.rowcount > 0

    def update_summary(self, ordinance_id: str, summary: str) -> None:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute(
            "UPDATE ordinances SET summary = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (summary, ordinance_id),
        )

    # ========== Links ==========

    def add_link(self, ordinance_id: str, meeting_id: str, action: str) -> bool:
        """Record an observed action. Returns True if the link is new.

        NOTE: Does not commit - caller must manage transaction.
        """
        cursor = self._execute(
            """
            INSERT INTO ordinance_meetings (ordinance_id, meeting_id, action)
            VALUES (?, ?, ?)
            ON CONFLICT(ordinance_id, meeting_id, action) DO NOTHING
            """,
            (ordinance_id, meeting_id, action),
        )
        return cursor.rowcount > 0

    def get_links(self, ordinance_id: str) -> List[OrdinanceMeetingLink]:
        """All links for an ordinance, joined with meeting dates, oldest first

        Links from the same meeting keep the order they were recorded in.
        """
        rows = self._fetch_all(
            """
            SELECT om.ordinance_id, om.meeting_id, om.action, m.date AS meeting_date
            FROM ordinance_meetings om
            JOIN meetings m ON m.id = om.meeting_id
            WHERE om.ordinance_id = ?
            ORDER BY m.date, m.id, om.rowid
            """,
            (ordinance_id,),
        )
        return [OrdinanceMeetingLink.from_db_row(row) for row in rows]

    def get_linked_ordinance_ids(self) -> List[str]:
        rows = self._fetch_all("SELECT DISTINCT ordinance_id FROM ordinance_meetings ORDER BY ordinance_id")
        return [row["ordinance_id"] for row in rows]

    def count(self) -> int:
        return self._count("ordinances")

    def count_links(self) -> int:
        return self._count("ordinance_meetings")

    def count_by_status(self) -> Dict[str, int]:
        rows = self._fetch_all("SELECT status, COUNT(*) AS n FROM ordinances GROUP BY status")
        return {row["status"]: row["n"] for row in rows}
