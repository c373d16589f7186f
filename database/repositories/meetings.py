"""
Meeting Repository - Meeting operations

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
Use `with transaction(conn):` context manager to group operations.
"""

from typing import Optional, List
from datetime import date

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import Meeting, meeting_status_for

logger = get_logger(__name__).bind(component="database")


class MeetingRepository(BaseRepository):
    """Repository for meeting operations"""

    def get_meeting(self, meeting_id: str) -> Optional[Meeting]:
        """Get a single meeting by ID"""
        row = self._fetch_one("SELECT * FROM meetings WHERE id = ?", (meeting_id,))
        return Meeting.from_db_row(row) if row else None

    def get_meetings(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        status: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Meeting]:
        """Get meetings with optional filtering, newest first"""
        conditions = []
        params: list = []

        if start_date:
            conditions.append("date >= ?")
            params.append(start_date.isoformat())

        if end_date:
            conditions.append("date <= ?")
            params.append(end_date.isoformat())

        if status:
            conditions.append("status = ?")
            params.append(status)

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""
        limit_clause = f"LIMIT {int(limit)}" if limit else ""

        rows = self._fetch_all(
            f"""
            SELECT * FROM meetings
            {where_clause}
            ORDER BY date DESC, id DESC
            {limit_clause}
            """,
            tuple(params),
        )
        return [Meeting.from_db_row(row) for row in rows]

    def get_meetings_needing_outcomes(self, limit: Optional[int] = None) -> List[Meeting]:
        """Past meetings with ordinance/resolution items that have no recorded outcome"""
        limit_clause = f"LIMIT {int(limit)}" if limit else ""
        rows = self._fetch_all(
            f"""
            SELECT DISTINCT m.* FROM meetings m
            JOIN agenda_items i ON i.meeting_id = m.id
            WHERE m.status = 'past'
              AND m.event_id IS NOT NULL
              AND i.type IN ('ordinance', 'resolution')
              AND i.outcome IS NULL
            ORDER BY m.date DESC
            {limit_clause}
            """
        )
        return [Meeting.from_db_row(row) for row in rows]

    def store_meeting(self, meeting: Meeting, today: Optional[date] = None) -> Meeting:
        """Store or update a meeting

        Status is recomputed from the meeting date on every write.
        Existing summaries and minutes are preserved when the new values are NULL.

        NOTE: Does not commit - caller must manage transaction.
        """
        meeting.status = meeting_status_for(meeting.date, today)

        self._execute(
            """
            INSERT INTO meetings (id, event_id, date, title, type, location, status,
                                  agenda_url, packet_url, minutes_url, media_url,
                                  summary, agenda_summary, minutes_summary)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                event_id = excluded.event_id,
                date = excluded.date,
                title = excluded.title,
                type = excluded.type,
                location = excluded.location,
                status = excluded.status,
                agenda_url = COALESCE(excluded.agenda_url, meetings.agenda_url),
                packet_url = COALESCE(excluded.packet_url, meetings.packet_url),
                minutes_url = COALESCE(excluded.minutes_url, meetings.minutes_url),
                media_url = COALESCE(excluded.media_url, meetings.media_url),
                -- PRESERVE existing summaries if new values are NULL
                summary = COALESCE(excluded.summary, meetings.summary),
                agenda_summary = COALESCE(excluded.agenda_summary, meetings.agenda_summary),
                minutes_summary = COALESCE(excluded.minutes_summary, meetings.minutes_summary),
                updated_at = CURRENT_TIMESTAMP
            """,
            (
                meeting.id,
                meeting.event_id,
                meeting.date.isoformat(),
                meeting.title,
                meeting.type,
                meeting.location,
                meeting.status,
                meeting.agenda_url,
                meeting.packet_url,
                meeting.minutes_url,
                meeting.media_url,
                meeting.summary,
                meeting.agenda_summary,
                meeting.minutes_summary,
            ),
        )

        logger.debug("stored meeting", meeting_id=meeting.id, status=meeting.status)
        return meeting

    def update_minutes_url(self, meeting_id: str, minutes_url: str) -> None:
        """Record the minutes PDF for a meeting

        NOTE: Does not commit - caller must manage transaction.
        """
        self._execute(
            "UPDATE meetings SET minutes_url = ?, updated_at = CURRENT_TIMESTAMP WHERE id = ?",
            (minutes_url, meeting_id),
        )

    def refresh_statuses(self, today: Optional[date] = None) -> int:
        """Flip upcoming meetings whose date has passed. Returns rows changed.

        NOTE: Does not commit - caller must manage transaction.
        """
        today = today or date.today()
        cursor = self._execute(
            """
            UPDATE meetings SET status = 'past', updated_at = CURRENT_TIMESTAMP
            WHERE status = 'upcoming' AND date <= ?
            """,
            (today.isoformat(),),
        )
        return cursor.rowcount

    def count(self) -> int:
        return self._count("meetings")
