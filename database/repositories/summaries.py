"""
Summary Repository - Summarizer output storage

One row per (entity_type, entity_id, summary_type); re-summarizing overwrites.

REPOSITORY PATTERN: All methods are atomic operations.
Transaction management is the CALLER'S responsibility.
"""

import json
from typing import Optional, List

from config import get_logger
from database.repositories.base import BaseRepository
from database.models import SummaryRecord

logger = get_logger(__name__).bind(component="database")


class SummaryRepository(BaseRepository):
    """Repository for stored summaries"""

    def store_summary(self, record: SummaryRecord) -> None:
        """NOTE: Does not commit - caller must manage transaction."""
        metadata_json = json.dumps(record.metadata) if record.metadata else None
        self._execute(
            """
            INSERT INTO summaries (entity_type, entity_id, summary_type, content, metadata)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(entity_type, entity_id, summary_type) DO UPDATE SET
                content = excluded.content,
                metadata = excluded.metadata,
                created_at = CURRENT_TIMESTAMP
            """,
            (record.entity_type, record.entity_id, record.summary_type, record.content, metadata_json),
        )

    def get_summary(
        self, entity_type: str, entity_id: str, summary_type: str = "pdf-analysis"
    ) -> Optional[SummaryRecord]:
        row = self._fetch_one(
            """
            SELECT * FROM summaries
            WHERE entity_type = ? AND entity_id = ? AND summary_type = ?
            """,
            (entity_type, entity_id, summary_type),
        )
        return SummaryRecord.from_db_row(row) if row else None

    def get_summaries(self, entity_type: str) -> List[SummaryRecord]:
        rows = self._fetch_all(
            "SELECT * FROM summaries WHERE entity_type = ? ORDER BY entity_id", (entity_type,)
        )
        return [SummaryRecord.from_db_row(row) for row in rows]

    def count(self) -> int:
        return self._count("summaries")
