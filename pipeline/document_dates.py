"""Document date resolution for summarized city documents

Precedence, first hit wins:
1. A full date in the filename (12-31-22, 12-31-2022, 12.31.2022)
2. The summarizer's "**Document Date:**" line
3. A bare year in the filename (2024, fy2025) as {year}-01-01
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from dateutil import parser as date_parser

from config import get_logger

logger = get_logger(__name__).bind(component="pipeline")

DASHED_DATE_PATTERN = re.compile(r"(\d{1,2})-(\d{1,2})-(\d{2,4})")
DOTTED_DATE_PATTERN = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
YEAR_PATTERN = re.compile(r"(?:^|[^\d])(\d{4})(?:[^\d]|$)|fy(\d{4})", re.IGNORECASE)
AI_DATE_LINE = re.compile(r"\*\*Document Date:\*\*\s*(.+?)(?:\n|$)")
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
BARE_YEAR = re.compile(r"^(?:FY)?\s*\d{4}$", re.IGNORECASE)


@dataclass(frozen=True)
class DocumentDate:
    value: Optional[date]
    source: Optional[str]  # filename, ai, filename_year
    precedence_conflict: bool = False

    @property
    def iso(self) -> Optional[str]:
        return self.value.isoformat() if self.value else None


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def date_from_filename(filename: str) -> Optional[date]:
    for pattern in (DASHED_DATE_PATTERN, DOTTED_DATE_PATTERN):
        match = pattern.search(filename or "")
        if match:
            month, day, year = match.groups()
            full_year = int(year) + 2000 if len(year) == 2 else int(year)
            parsed = _safe_date(full_year, int(month), int(day))
            if parsed:
                return parsed
    return None


def date_from_ai_response(response: Optional[str]) -> Optional[date]:
    """Parse the **Document Date:** line; years and "Not specified" are rejected"""
    match = AI_DATE_LINE.search(response or "")
    if not match:
        return None

    value = match.group(1).strip().strip("[]").strip()
    if not value or value.lower() == "not specified" or BARE_YEAR.match(value):
        return None

    if ISO_DATE.match(value):
        return _safe_date(*(int(part) for part in value.split("-")))

    try:
        return date_parser.parse(value, fuzzy=False).date()
    except (ValueError, OverflowError):
        logger.debug("unparseable document date", value=value[:40])
        return None


def year_from_filename(filename: str) -> Optional[date]:
    match = YEAR_PATTERN.search(filename or "")
    if not match:
        return None
    return _safe_date(int(match.group(1) or match.group(2)), 1, 1)


def resolve_document_date(filename: str, ai_response: Optional[str] = None) -> DocumentDate:
    """Pick a document's date by precedence and flag filename/AI disagreement"""
    from_filename = date_from_filename(filename)
    from_ai = date_from_ai_response(ai_response)
    conflict = bool(from_filename and from_ai and from_filename != from_ai)

    if conflict:
        logger.warning(
            "document date precedence conflict",
            filename=filename,
            filename_date=from_filename.isoformat(),
            ai_date=from_ai.isoformat(),
        )

    if from_filename:
        return DocumentDate(from_filename, "filename", conflict)
    if from_ai:
        return DocumentDate(from_ai, "ai")

    from_year = year_from_filename(filename)
    if from_year:
        return DocumentDate(from_year, "filename_year")
    return DocumentDate(None, None)
