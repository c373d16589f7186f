"""
CivicClerk Portal Parser - rendered event pages to meetings and agenda items

The portal is a React SPA; the adapter renders it with a headless browser and
hands the visible text here. Everything in this module is pure so it can be
tested against captured page text.
"""

import re
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

from config import get_logger
from database.models import Meeting, AgendaItem, make_item_id, make_meeting_id
from exceptions import ParsingError
from pipeline.classification import classify_item

logger = get_logger(__name__).bind(component="vendor")


NO_FILES_MARKER = "No published Meeting Files"
NO_ATTACHMENT = "No Attachment File"
MIN_TITLE_LENGTH = 10

MONTH_NUMBERS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11, "december": 12,
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "sept": 9, "oct": 10, "nov": 11, "dec": 12,
}

DATE_PATTERN = re.compile(r"([A-Z][a-z]+)\s+(\d{1,2}),?\s+(\d{4})")

# Agenda line patterns, tried in order
LETTER_PATTERN = re.compile(r"^([a-z])\.\s+(.+)", re.IGNORECASE)
NUMBER_PATTERN = re.compile(r"^(\d+)[.)]\s+(.+)")
BULLET_PATTERN = re.compile(r"^[•●■\-*]\s+(.+)")
ROMAN_PATTERN = re.compile(r"^(I{1,3}|IV|V|VI{0,3}|IX|X)\.\s+(.+)", re.IGNORECASE)
KEYWORD_PATTERN = re.compile(
    r"^(Consider|Resolution|Ordinance|Public\s+Hearing|Approve|Discussion|Report|Motion|Presentation)\b",
    re.IGNORECASE,
)

INVALID_PAGE_MARKERS = ("page not found", "event not found", "does not exist")

# Vote modal fields
MOTION_PATTERN = re.compile(r"Motion:\s*(\w+)", re.IGNORECASE)
RESULT_PATTERN = re.compile(r"(Passed|Failed|Tabled)", re.IGNORECASE)
INITIATED_PATTERN = re.compile(r"Initiated by\s+([^,]+)", re.IGNORECASE)
SECONDED_PATTERN = re.compile(r"seconded by\s+([^.\n\d]+)", re.IGNORECASE)
YES_PATTERN = re.compile(r"Yes\s*(\d+)", re.IGNORECASE)
NO_PATTERN = re.compile(r"No\s+(\d+)", re.IGNORECASE)
ABSTAIN_PATTERN = re.compile(r"Abstain\s*(\d+)", re.IGNORECASE)
MODAL_HEADER = "Motions/Votes Detail"


@dataclass
class ParsedEvent:
    meeting: Meeting
    items: List[AgendaItem] = field(default_factory=list)
    has_files: bool = True


@dataclass
class VoteOutcome:
    """One motion recorded on the meeting overview page"""

    item_text: str
    motion: str
    result: str  # passed, failed, tabled
    initiated_by: Optional[str] = None
    seconded_by: Optional[str] = None
    yes_count: int = 0
    no_count: int = 0
    abstain_count: int = 0


def parse_meeting_date(text: str) -> Optional[date]:
    """First "Month D, YYYY" in the text, or None"""
    for match in DATE_PATTERN.finditer(text):
        month = MONTH_NUMBERS.get(match.group(1).lower())
        if not month:
            continue
        try:
            return date(int(match.group(3)), month, int(match.group(2)))
        except ValueError:
            continue
    return None


def meeting_type_from_title(page_title: str) -> tuple:
    """(type, display title) from the rendered page title"""
    title_lower = (page_title or "").lower()
    if "planning" in title_lower:
        return "planning", "Planning Commission Meeting"
    if "work session" in title_lower:
        return "work_session", "Work Session"
    return "city_council", "City Council Meeting"


def _match_agenda_line(line: str) -> Optional[str]:
    for pattern in (LETTER_PATTERN, NUMBER_PATTERN):
        match = pattern.match(line)
        if match:
            return match.group(2).strip()

    match = BULLET_PATTERN.match(line)
    if match:
        return match.group(1).strip()

    match = ROMAN_PATTERN.match(line)
    if match:
        return match.group(2).strip()

    if 20 < len(line) < 500 and KEYWORD_PATTERN.match(line):
        return line

    return None


def extract_agenda_lines(text: str) -> List[str]:
    """Agenda item titles from rendered page (or PDF) text, in presentation order

    Duplicates (case-insensitive), "No Attachment File" and titles shorter than
    10 characters are dropped.
    """
    titles: List[str] = []
    seen = set()

    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue

        title = _match_agenda_line(line)
        if not title:
            continue

        key = title.lower()
        if key in seen or title == NO_ATTACHMENT or len(title) < MIN_TITLE_LENGTH:
            continue

        seen.add(key)
        titles.append(title)

    return titles


def build_agenda_items(meeting_id: str, titles: List[str]) -> List[AgendaItem]:
    """Classify titles and number them 1..n in the order given"""
    items = []
    for order_num, title in enumerate(titles, start=1):
        item_type, reference = classify_item(title)
        items.append(
            AgendaItem(
                id=make_item_id(meeting_id, order_num),
                meeting_id=meeting_id,
                order_num=order_num,
                title=title,
                type=item_type,
                reference_number=reference,
            )
        )
    return items


def parse_event_page(
    event_id: int,
    body_text: str,
    page_title: str,
    portal_url: str,
    location: Optional[str] = None,
) -> ParsedEvent:
    """Parse a rendered /event/{id}/files page

    Raises:
        ParsingError: if no meeting date can be found on the page
    """
    meeting_date = parse_meeting_date(body_text) or parse_meeting_date(page_title or "")
    if meeting_date is None:
        raise ParsingError(
            "No meeting date on event page",
            parser_type="civicclerk",
            source=f"civicclerk-event-{event_id}",
        )

    meeting_type, title = meeting_type_from_title(page_title)
    event_url = f"{portal_url.rstrip('/')}/event/{event_id}/files"
    meeting_id = make_meeting_id(event_id)

    meeting = Meeting(
        id=meeting_id,
        event_id=event_id,
        date=meeting_date,
        title=title,
        type=meeting_type,
        location=location or None,
        agenda_url=event_url,
        packet_url=event_url,
        media_url=f"{portal_url.rstrip('/')}/event/{event_id}/media",
    )

    if NO_FILES_MARKER in body_text:
        logger.debug("event has no published files", event_id=event_id)
        return ParsedEvent(meeting=meeting, items=[], has_files=False)

    items = build_agenda_items(meeting_id, extract_agenda_lines(body_text))
    return ParsedEvent(meeting=meeting, items=items, has_files=True)


def classify_event_page(body_text: str) -> str:
    """"valid" if the page renders a real meeting, "invalid" otherwise"""
    lowered = body_text.lower()
    if any(marker in lowered for marker in INVALID_PAGE_MARKERS):
        return "invalid"
    if parse_meeting_date(body_text) is None:
        return "invalid"
    return "valid"


def parse_pdfjs_file_param(src: str) -> Optional[str]:
    """URL-decoded `file=` parameter of a pdf.js viewer iframe src"""
    match = re.search(r"file=([^&]+)", src or "")
    return unquote(match.group(1)) if match else None


def find_pdfjs_document_url(html: str) -> Optional[str]:
    """Document URL loaded in the page's pdf.js viewer, if any"""
    soup = BeautifulSoup(html, "html.parser")
    iframe = soup.select_one('iframe[src*="pdfjs"]')
    if iframe is None:
        return None
    return parse_pdfjs_file_param(iframe.get("src", ""))


def parse_vote_modal(item_text: str, modal_text: str) -> Optional[VoteOutcome]:
    """Parse the Motions/Votes Detail modal. None when no result is shown."""
    start = modal_text.find(MODAL_HEADER)
    if start >= 0:
        modal_text = modal_text[start:start + 800 + len(MODAL_HEADER)]

    result = RESULT_PATTERN.search(modal_text)
    if not result:
        return None

    def _group(pattern) -> Optional[str]:
        match = pattern.search(modal_text)
        return match.group(1).strip() if match else None

    def _count(pattern) -> int:
        value = _group(pattern)
        return int(value) if value else 0

    return VoteOutcome(
        item_text=item_text.strip()[:200],
        motion=_group(MOTION_PATTERN) or "Unknown",
        result=result.group(1).lower(),
        initiated_by=_group(INITIATED_PATTERN),
        seconded_by=_group(SECONDED_PATTERN),
        yes_count=_count(YES_PATTERN),
        no_count=_count(NO_PATTERN),
        abstain_count=_count(ABSTAIN_PATTERN),
    )
