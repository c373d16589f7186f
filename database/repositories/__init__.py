"""
Database Repositories

Focused repository classes for clean separation of concerns:
- MeetingRepository: Meeting storage and retrieval
- ItemRepository: Agenda item replacement, outcomes, mention queries
- OrdinanceRepository: Ordinances and append-only meeting links
- ResolutionRepository: Resolutions keyed by number
- ReportRepository: Monthly permits and business registrations
- SummaryRepository: Summarizer output
"""

from database.repositories.base import BaseRepository
from database.repositories.meetings import MeetingRepository
from database.repositories.items import ItemRepository, ItemMention
from database.repositories.ordinances import OrdinanceRepository, make_ordinance_id
from database.repositories.resolutions import ResolutionRepository, make_resolution_id
from database.repositories.reports import ReportRepository
from database.repositories.summaries import SummaryRepository

__all__ = [
    "BaseRepository",
    "MeetingRepository",
    "ItemRepository",
    "ItemMention",
    "OrdinanceRepository",
    "ResolutionRepository",
    "ReportRepository",
    "SummaryRepository",
    "make_ordinance_id",
    "make_resolution_id",
]
