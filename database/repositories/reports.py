"""
Report Repository - Monthly permit and business listings

A month's rows are replaced as a unit; the parsed listing is the whole truth
for that month.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
"""

from typing import List

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Permit, Business

logger = get_logger(__name__).bind(component="database")


class ReportRepository(BaseRepository):
    """Repository for permits and business registrations"""

    def replace_permits(self, month: str, permits: List[Permit]) -> int:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute("DELETE FROM permits WHERE month = ?", (month,))
        for permit in permits:
            self._execute(
                """
                INSERT INTO permits (id, month, type, address, description, value, source_url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    permit.id,
                    month,
                    permit.type,
                    permit.address,
                    permit.description,
                    permit.value,
                    permit.source_url,
                ),
            )
        return len(permits)

    def replace_businesses(self, month: str, businesses: List[Business]) -> int:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute("DELETE FROM businesses WHERE month = ?", (month,))
        for business in businesses:
            self._execute(
                """
                INSERT INTO businesses (id, month, name, address, source_url)
                VALUES (?, ?, ?, ?, ?)
                """,
                (business.id, month, business.name, business.address, business.source_url),
            )
        return len(businesses)

    def get_permits(self, month: str) -> List[Permit]:
        rows = self._fetch_all("SELECT * FROM permits WHERE month = ? ORDER BY id", (month,))
        return [
            Permit(
                id=row["id"],
                month=row["month"],
                type=row["type"],
                address=row["address"],
                description=row["description"] or "",
                value=row["value"],
                source_url=row["source_url"],
            )
            for row in rows
        ]

    def get_businesses(self, month: str) -> List[Business]:
        rows = self._fetch_all("SELECT * FROM businesses WHERE month = ? ORDER BY id", (month,))
        return [
            Business(
                id=row["id"],
                month=row["month"],
                name=row["name"],
                address=row["address"],
                source_url=row["source_url"],
            )
            for row in rows
        ]

    def count_permits(self) -> int:
        return self._count("permits")

    def count_businesses(self) -> int:
        return self._count("businesses")
