"""
Agenda Item Repository - Item operations

Agenda items are owned by their meeting. A re-scrape replaces a meeting's
items wholesale; outcomes and summaries recorded earlier for the same title
are carried over so re-scraping never erases vote results.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
Use `with transaction(conn):` context manager to group operations.
"""

from typing import List, Optional, Dict, Tuple
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import AgendaItem, parse_iso_date

logger = get_logger(__name__).bind(component="database")


class ItemMention:
    """Agenda item joined with the meeting it appeared in

    Read model for the linker and extractor; never written back.
    """

    __slots__ = ("item", "meeting_date", "meeting_status", "packet_url")

    def __init__(self, item: AgendaItem, meeting_date: date, meeting_status: str, packet_url: Optional[str]):
        self.item = item
        self.meeting_date = meeting_date
        self.meeting_status = meeting_status
        self.packet_url = packet_url

    @property
    def meeting_id(self) -> str:
        return self.item.meeting_id

    def __repr__(self):
        return f"ItemMention({self.item.id!r}, {self.meeting_date.isoformat()})"


_MENTION_QUERY = """
    SELECT i.*, m.date AS meeting_date, m.status AS meeting_status, m.packet_url AS meeting_packet_url
    FROM agenda_items i
    JOIN meetings m ON m.id = i.meeting_id
"""


def _to_mention(row) -> ItemMention:
    return ItemMention(
        item=AgendaItem.from_db_row(row),
        meeting_date=parse_iso_date(row["meeting_date"]),
        meeting_status=row["meeting_status"],
        packet_url=row["meeting_packet_url"],
    )


class ItemRepository(BaseRepository):
    """Repository for agenda item operations"""

    def replace_agenda_items(self, meeting_id: str, items: List[AgendaItem]) -> int:
        """
        Replace all agenda items for a meeting.

        Delete-then-insert. Outcome and summary from the previous scrape are
        carried over to the new item with the same title.

        NOTE: Does not commit - caller must manage transaction.

        Returns:
            Number of items stored
        """
        previous: Dict[str, Tuple[Optional[str], Optional[str]]] = {
            row["title"]: (row["outcome"], row["summary"])
            for row in self._fetch_all(
                "SELECT title, outcome, summary FROM agenda_items WHERE meeting_id = ?",
                (meeting_id,),
            )
        }

        self._execute("DELETE FROM agenda_items WHERE meeting_id = ?", (meeting_id,))

        carried = 0
        for item in items:
            outcome, summary = item.outcome, item.summary
            if item.title in previous:
                prev_outcome, prev_summary = previous[item.title]
                if outcome is None and prev_outcome is not None:
                    outcome = prev_outcome
                    carried += 1
                summary = summary or prev_summary

            self._execute(
                """
                INSERT INTO agenda_items (id, meeting_id, order_num, title, type,
                                          reference_number, outcome, summary)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    item.id,
                    meeting_id,
                    item.order_num,
                    item.title,
                    item.type,
                    item.reference_number,
                    outcome,
                    summary,
                ),
            )

        if carried:
            logger.debug("carried over item outcomes", meeting_id=meeting_id, count=carried)

        return len(items)

    def get_agenda_items(self, meeting_id: str) -> List[AgendaItem]:
        """Get all agenda items for a meeting in agenda order"""
        rows = self._fetch_all(
            "SELECT * FROM agenda_items WHERE meeting_id = ? ORDER BY order_num",
            (meeting_id,),
        )
        return [AgendaItem.from_db_row(row) for row in rows]

    def get_mentions(self, item_type: str, meeting_id: Optional[str] = None) -> List[ItemMention]:
        """Items of one type joined with their meeting, oldest meeting first"""
        query = _MENTION_QUERY + " WHERE i.type = ?"
        params: tuple = (item_type,)
        if meeting_id:
            query += " AND i.meeting_id = ?"
            params = (item_type, meeting_id)
        query += " ORDER BY m.date, m.id, i.order_num"
        return [_to_mention(row) for row in self._fetch_all(query, params)]

    def set_outcome(self, item_id: str, outcome: str) -> bool:
        """Record a vote outcome on an item. Returns True if the value changed.

        NOTE: Does not commit - caller must manage transaction.
        """
        cursor = self._execute(
            """
            UPDATE agenda_items SET outcome = ?
            WHERE id = ? AND (outcome IS NULL OR outcome != ?)
            """,
            (outcome, item_id, outcome),
        )
        return cursor.rowcount > 0

    def update_summary(self, item_id: str, summary: str) -> None:
        """NOTE: Does not commit - caller must manage transaction."""
        self._execute("UPDATE agenda_items SET summary = ? WHERE id = ?", (summary, item_id))

    def count(self) -> int:
        return self._count("agenda_items")

    def count_by_type(self) -> Dict[str, int]:
        rows = self._fetch_all("SELECT type, COUNT(*) AS n FROM agenda_items GROUP BY type")
        return {row["type"]: row["n"] for row in rows}
