"""
Resolution Repository - Resolution operations

Resolutions are keyed by number. Re-extraction overwrites the derived fields
(status, dates, latest meeting) and keeps any stored summary.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
"""

from typing import List, Optional, Dict

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Resolution

logger = get_logger(__name__).bind(component="database")


def make_resolution_id(number: str) -> str:
    return f"resolution-{number}"


class ResolutionRepository(BaseRepository):
    """Repository for resolution operations"""

    def get_by_number(self, number: str) -> Optional[Resolution]:
        row = self._fetch_one("SELECT * FROM resolutions WHERE number = ?", (number,))
        return Resolution.from_db_row(row) if row else None

    def get_resolutions(self, status: Optional[str] = None) -> List[Resolution]:
        if status:
            rows = self._fetch_all(
                "SELECT * FROM resolutions WHERE status = ? ORDER BY number", (status,)
            )
        else:
            rows = self._fetch_all("SELECT * FROM resolutions ORDER BY number")
        return [Resolution.from_db_row(row) for row in rows]

    def upsert_resolution(self, resolution: Resolution) -> bool:
        """Insert or update a resolution by number

        Returns:
            True if the stored row was created or changed

        NOTE: Does not commit - caller must manage transaction.
        """
        existing = self.get_by_number(resolution.number)
        if existing and _same_derived_fields(existing, resolution):
            return False

        self._execute(
            """
            INSERT INTO resolutions (id, number, title, status, introduced_date, adopted_date,
                                     meeting_id, packet_url, outcome_verified)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(number) DO UPDATE SET
                title = excluded.title,
                status = excluded.status,
                introduced_date = excluded.introduced_date,
                adopted_date = excluded.adopted_date,
                meeting_id = excluded.meeting_id,
                packet_url = COALESCE(excluded.packet_url, resolutions.packet_url),
                outcome_verified = excluded.outcome_verified,
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                resolution.id,
                resolution.number,
                resolution.title,
                resolution.status,
                resolution.introduced_date.isoformat() if resolution.introduced_date else None,
                resolution.adopted_date.isoformat() if resolution.adopted_date else None,
                resolution.meeting_id,
                resolution.packet_url,
                int(resolution.outcome_verified),
            ),
        )
        return True

    def update_summary(self, resolution_id: str, summary: str) -> None:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute(
            "UPDATE resolutions SET summary = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (summary, resolution_id),
        )

    def count(self) -> int:
        return self._count("resolutions")

    def count_by_status(self) -> Dict[str, int]:
        rows = self._fetch_all("SELECT status, COUNT(*) AS n FROM resolutions GROUP BY status")
        return {row["status"]: row["n"] for row in rows}


def _same_derived_fields(a: Resolution, b: Resolution) -> bool:
    return (
        a.title == b.title
        and a.status == b.status
        and a.introduced_date == b.introduced_date
        and a.adopted_date == b.adopted_date
        and a.meeting_id == b.meeting_id
        and (b.packet_url is None or a.packet_url == b.packet_url)
        and a.outcome_verified == b.outcome_verified
    )
