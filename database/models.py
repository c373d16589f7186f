"""
Database Models for civicledger

Pydantic dataclasses with runtime validation for core entities.
"""

import json
import sqlite3
from typing import Optional, Dict, Any
from datetime import date, datetime
from dataclasses import asdict

from pydantic.dataclasses import dataclass

from config import get_logger
from exceptions import ValidationError

logger = get_logger(__name__).bind(component="database")


MEETING_TYPES = {"city_council", "planning", "work_session", "other"}
MEETING_STATUSES = {"upcoming", "past"}

AGENDA_ITEM_TYPES = {"ordinance", "resolution", "public_hearing", "other"}

# Ordered lifecycle states (see pipeline.policies for transitions)
ORDINANCE_STATUSES = (
    "introduced",
    "first_reading",
    "second_reading",
    "adopted",
    "tabled",
    "denied",
)
LINK_ACTIONS = set(ORDINANCE_STATUSES) | {"amended", "discussed"}
ORDINANCE_DISPOSITIONS = {"codified", "omit"}

RESOLUTION_STATUSES = {"proposed", "adopted", "tabled", "rejected", "pending_minutes"}


def parse_iso_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    return date.fromisoformat(value[:10])


def _parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _require_member(value: str, allowed, field: str) -> None:
    if value not in allowed:
        raise ValidationError(
            f"Invalid {field}: {value}. Must be one of: {sorted(allowed)}",
            field=field,
            value=value,
        )


def meeting_status_for(meeting_date: date, today: Optional[date] = None) -> str:
    """Derive upcoming/past from the meeting date at write time

    A meeting dated today is already past once the day starts.
    """
    today = today or date.today()
    return "upcoming" if meeting_date > today else "past"


def make_item_id(meeting_id: str, order_num: int) -> str:
    """Agenda item ids are meeting-scoped: {meeting_id}-item-{order_num}"""
    return f"{meeting_id}-item-{order_num}"


def make_meeting_id(event_id: int) -> str:
    return f"civicclerk-{event_id}"


@dataclass
class Meeting:
    """Meeting entity

    id is derived from the portal event id (civicclerk-{event_id}) so it is stable
    across re-scrapes. status is recomputed on every write, never trusted from storage.
    """

    id: str
    date: date
    title: str
    type: str = "city_council"
    location: Optional[str] = None
    status: str = "upcoming"
    event_id: Optional[int] = None
    agenda_url: Optional[str] = None
    packet_url: Optional[str] = None
    minutes_url: Optional[str] = None
    media_url: Optional[str] = None
    summary: Optional[str] = None
    agenda_summary: Optional[str] = None
    minutes_summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate meeting data after initialization"""
        _require_member(self.type, MEETING_TYPES, "type")
        _require_member(self.status, MEETING_STATUSES, "status")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        data["date"] = self.date.isoformat()
        if self.created_at:
            data["created_at"] = self.created_at.isoformat()
        if self.updated_at:
            data["updated_at"] = self.updated_at.isoformat()
        return data

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Meeting":
        """Create Meeting from database row"""
        row_dict = dict(row)
        return cls(
            id=row_dict["id"],
            date=parse_iso_date(row_dict["date"]),
            title=row_dict["title"],
            type=row_dict.get("type") or "other",
            location=row_dict.get("location"),
            status=row_dict.get("status") or "upcoming",
            event_id=row_dict.get("event_id"),
            agenda_url=row_dict.get("agenda_url"),
            packet_url=row_dict.get("packet_url"),
            minutes_url=row_dict.get("minutes_url"),
            media_url=row_dict.get("media_url"),
            summary=row_dict.get("summary"),
            agenda_summary=row_dict.get("agenda_summary"),
            minutes_summary=row_dict.get("minutes_summary"),
            created_at=_parse_timestamp(row_dict.get("created_at")),
            updated_at=_parse_timestamp(row_dict.get("updated_at")),
        )


@dataclass
class AgendaItem:
    """Agenda item - owned by its meeting, keyed by (meeting_id, order_num)

    order_num is the official agenda sequence as presented by the portal.
    type is a heuristic hint (see pipeline.classification), not ground truth.
    """

    id: str
    meeting_id: str
    order_num: int
    title: str
    type: str = "other"
    reference_number: Optional[str] = None
    outcome: Optional[str] = None  # passed, failed, tabled, denied (from vote records)
    summary: Optional[str] = None

    def __post_init__(self):
        """Validate agenda item data after initialization"""
        _require_member(self.type, AGENDA_ITEM_TYPES, "type")
        if self.order_num < 1:
            raise ValidationError(
                "Agenda item order_num must be at least 1",
                field="order_num",
                value=self.order_num,
            )

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return asdict(self)

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "AgendaItem":
        """Create AgendaItem from database row"""
        row_dict = dict(row)
        return cls(
            id=row_dict["id"],
            meeting_id=row_dict["meeting_id"],
            order_num=row_dict["order_num"],
            title=row_dict["title"],
            type=row_dict.get("type") or "other",
            reference_number=row_dict.get("reference_number"),
            outcome=row_dict.get("outcome"),
            summary=row_dict.get("summary"),
        )


@dataclass
class Ordinance:
    """Ordinance entity - number is the merge key

    Provisional rows are created from agenda references (verified=False).
    Authoritative rows come from the ordinance library (verified=True) and
    update, never duplicate, a provisional row with the same number.
    """

    id: str
    number: str
    title: str
    status: str = "introduced"
    introduced_date: Optional[date] = None
    adopted_date: Optional[date] = None
    source_url: Optional[str] = None  # Ordinance library page
    pdf_url: Optional[str] = None
    node_id: Optional[str] = None
    disposition: Optional[str] = None  # codified, omit (supplement history)
    verified: bool = False
    summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate ordinance data after initialization"""
        if not self.number:
            raise ValidationError("Ordinance must have a number", field="number", value=self.number)
        _require_member(self.status, set(ORDINANCE_STATUSES), "status")
        if self.disposition is not None:
            _require_member(self.disposition, ORDINANCE_DISPOSITIONS, "disposition")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        for key in ("introduced_date", "adopted_date", "created_at", "updated_at"):
            value = getattr(self, key)
            if value:
                data[key] = value.isoformat()
        return data

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Ordinance":
        """Create Ordinance from database row"""
        row_dict = dict(row)
        return cls(
            id=row_dict["id"],
            number=row_dict["number"],
            title=row_dict["title"],
            status=row_dict.get("status") or "introduced",
            introduced_date=parse_iso_date(row_dict.get("introduced_date")),
            adopted_date=parse_iso_date(row_dict.get("adopted_date")),
            source_url=row_dict.get("source_url"),
            pdf_url=row_dict.get("pdf_url"),
            node_id=row_dict.get("node_id"),
            disposition=row_dict.get("disposition"),
            verified=bool(row_dict.get("verified")),
            summary=row_dict.get("summary"),
            created_at=_parse_timestamp(row_dict.get("created_at")),
            updated_at=_parse_timestamp(row_dict.get("updated_at")),
        )


@dataclass
class OrdinanceMeetingLink:
    """One observed action for an ordinance at a meeting

    (ordinance_id, meeting_id, action) is unique; re-linking is a no-op.
    meeting_date is populated on reads (joined from meetings) for lifecycle ordering.
    """

    ordinance_id: str
    meeting_id: str
    action: str
    meeting_date: Optional[date] = None

    def __post_init__(self):
        _require_member(self.action, LINK_ACTIONS, "action")

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "OrdinanceMeetingLink":
        row_dict = dict(row)
        return cls(
            ordinance_id=row_dict["ordinance_id"],
            meeting_id=row_dict["meeting_id"],
            action=row_dict["action"],
            meeting_date=parse_iso_date(row_dict.get("meeting_date")),
        )


@dataclass
class Resolution:
    """Resolution entity - number is the business key

    meeting_id is the most recent meeting where the resolution was discussed;
    introduced_date is the earliest.
    """

    id: str
    number: str
    title: str
    status: str = "proposed"
    introduced_date: Optional[date] = None
    adopted_date: Optional[date] = None
    meeting_id: Optional[str] = None
    packet_url: Optional[str] = None
    outcome_verified: bool = False
    summary: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate resolution data after initialization"""
        if not self.number:
            raise ValidationError("Resolution must have a number", field="number", value=self.number)
        _require_member(self.status, RESOLUTION_STATUSES, "status")

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        data = asdict(self)
        for key in ("introduced_date", "adopted_date", "created_at", "updated_at"):
            value = getattr(self, key)
            if value:
                data[key] = value.isoformat()
        return data

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "Resolution":
        """Create Resolution from database row"""
        row_dict = dict(row)
        return cls(
            id=row_dict["id"],
            number=row_dict["number"],
            title=row_dict["title"],
            status=row_dict.get("status") or "proposed",
            introduced_date=parse_iso_date(row_dict.get("introduced_date")),
            adopted_date=parse_iso_date(row_dict.get("adopted_date")),
            meeting_id=row_dict.get("meeting_id"),
            packet_url=row_dict.get("packet_url"),
            outcome_verified=bool(row_dict.get("outcome_verified")),
            summary=row_dict.get("summary"),
            created_at=_parse_timestamp(row_dict.get("created_at")),
            updated_at=_parse_timestamp(row_dict.get("updated_at")),
        )


@dataclass
class Permit:
    """Building permit parsed from a monthly permit listing"""

    id: str  # permit-{YYYY-MM}-{index}
    month: str  # YYYY-MM
    address: str
    source_url: str
    type: str = "other"
    description: str = ""
    value: Optional[float] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class Business:
    """New business registration parsed from a monthly business listing"""

    id: str  # business-{YYYY-MM}-{index}
    month: str
    name: str
    source_url: str
    address: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class SummaryRecord:
    """Output of the summarization collaborator for any entity"""

    entity_type: str  # meeting, ordinance, resolution, permit, business, budget, splost, ...
    entity_id: str
    summary_type: str  # pdf-analysis, headline, ...
    content: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: sqlite3.Row) -> "SummaryRecord":
        row_dict = dict(row)
        metadata = row_dict.get("metadata")
        if metadata:
            try:
                metadata = json.loads(metadata)
            except json.JSONDecodeError:
                logger.warning("failed to deserialize summary metadata", entity_id=row_dict["entity_id"])
                metadata = None
        return cls(
            entity_type=row_dict["entity_type"],
            entity_id=row_dict["entity_id"],
            summary_type=row_dict["summary_type"],
            content=row_dict["content"],
            metadata=metadata,
            created_at=_parse_timestamp(row_dict.get("created_at")),
        )
