"""
Reconciliation policies - pure functions shared by the linker and extractor

Ordinance lifecycle:
    introduced -> first_reading -> second_reading -> {adopted | tabled | denied}

Status is never stored incrementally. It is folded from the full set of
ordinance/meeting links every time, so links discovered out of order during a
backfill cannot corrupt it.

Named policies:
- second_reading_is_adoption: a passed second reading with no explicit
  terminal action is an adoption (the city does not record a separate vote)
- latest_mention_wins: a resolution's status is decided by its most recent
  agenda mention
"""

import re
from dataclasses import dataclass, replace
from datetime import date
from typing import Iterable, List, Optional, Sequence, Tuple

from database.models import Ordinance, OrdinanceMeetingLink

# Title rules, tried in order; first match decides the reading action
ACTION_RULES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("first_reading", re.compile(r"first\s+reading", re.IGNORECASE)),
    ("second_reading", re.compile(r"second\s+reading", re.IGNORECASE)),
    ("adopted", re.compile(r"\badopt", re.IGNORECASE)),
    ("introduced", re.compile(r"introduc", re.IGNORECASE)),
    ("amended", re.compile(r"\bamend", re.IGNORECASE)),
    ("tabled", re.compile(r"\btabled?\b", re.IGNORECASE)),
    ("denied", re.compile(r"\bden(?:y|ied)\b", re.IGNORECASE)),
)

READING_ACTIONS = ("first_reading", "second_reading")
TERMINAL_ACTIONS = ("adopted", "tabled", "denied")

# Explicit results written into an item title, e.g. "Second Reading of Ordinance
# 724 - Tabled" or "Resolution 25-010 adopted". Past tense only, so "to adopt"
# or "fee table" never count.
TERMINAL_TITLE_RULES: Tuple[Tuple[str, "re.Pattern[str]"], ...] = (
    ("tabled", re.compile(r"\btabled\b", re.IGNORECASE)),
    ("denied", re.compile(r"\b(?:denied|rejected)\b", re.IGNORECASE)),
    ("adopted", re.compile(r"\badopted\b", re.IGNORECASE)),
)

# Same-day tie break: earlier stages sort first, terminal actions last
ACTION_RANK = {
    "introduced": 0,
    "discussed": 1,
    "amended": 1,
    "first_reading": 2,
    "second_reading": 3,
    "adopted": 4,
    "tabled": 4,
    "denied": 4,
}

STAGE_ORDER = ("introduced", "first_reading", "second_reading")

ADOPTED_OUTCOMES = ("adopted", "passed", "approved")
DENIED_OUTCOMES = ("denied", "failed", "rejected")
TABLED_OUTCOMES = ("tabled",)

ORDINANCE_NUMBER_PATTERNS = (
    re.compile(r"ordinance\s*#?\s*(\d{4}[-–]\d+)", re.IGNORECASE),
    re.compile(r"ordinance\s*#?\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d{4}[-–]\d+)"),
)
YEAR_FALLBACK_SPAN = 5

_ORD_NUM = r"\d+(?:[-–]\d+)?"
PROVISIONAL_TITLE_PATTERNS = (
    re.compile(rf"Ordinance\s+{_ORD_NUM}\s+to\s+(?:Consider\s+)?(.+)", re.IGNORECASE),
    re.compile(rf"(?:Consider|Approve)\s+Ordinance\s+{_ORD_NUM}[:\s-]+(.+)", re.IGNORECASE),
    re.compile(rf"Ordinance\s+{_ORD_NUM}\s*[-:]\s*(.+)", re.IGNORECASE),
    re.compile(rf"Ordinance\s+{_ORD_NUM}\s+(.+)", re.IGNORECASE),
)

RESOLUTION_TITLE_PREFIX = re.compile(r"^Consider\s+Resolution\s+[\d-]+\s*", re.IGNORECASE)
LEADING_TO = re.compile(r"^to\s+", re.IGNORECASE)


def _capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:] if text else text


def _outcome_in(outcome: Optional[str], words: Sequence[str]) -> bool:
    lowered = (outcome or "").lower()
    return any(word in lowered for word in words)


def terminal_action_in_title(title: Optional[str]) -> Optional[str]:
    """tabled, denied or adopted when the title states the result, else None"""
    for name, pattern in TERMINAL_TITLE_RULES:
        if pattern.search(title or ""):
            return name
    return None


# ========== Ordinances ==========


def extract_ordinance_number(text: Optional[str]) -> Optional[str]:
    """Ordinance number from a reference or title; en-dashes become hyphens"""
    if not text:
        return None
    for pattern in ORDINANCE_NUMBER_PATTERNS:
        match = pattern.search(text)
        if match:
            return match.group(1).replace("–", "-")
    return None


def ordinance_number_candidates(number: str, today: Optional[date] = None) -> List[str]:
    """Numbers to look up, in order: as given, then {year}-{num:03d} for recent years

    Agendas often cite "Ordinance 12" for what the library files as "2024-012".
    """
    candidates = [number]
    if "-" in number or not number.isdigit():
        return candidates
    current_year = (today or date.today()).year
    for year in range(current_year, current_year - YEAR_FALLBACK_SPAN - 1, -1):
        candidates.append(f"{year}-{number.zfill(3)}")
    return candidates


def extract_provisional_title(agenda_title: str, number: str) -> str:
    """Substantive description from an agenda title, e.g.

    "Public Hearing and Second Reading of Ordinance 724 to Consider a Variance
    Request at 4627 Atlanta Highway" -> "A Variance Request at 4627 Atlanta Highway"
    """
    for pattern in PROVISIONAL_TITLE_PATTERNS:
        match = pattern.search(agenda_title or "")
        if match:
            title = re.sub(r"[.;,]$", "", match.group(1).strip())
            if title:
                return _capitalize_first(title)
    return f"Ordinance {number}"


def detect_ordinance_actions(title: str, outcome: Optional[str] = None) -> List[str]:
    """Link actions for one ordinance agenda item

    The title decides the reading action ("discussed" when no rule matches).
    A recorded outcome may add a terminal action; "passed" only counts as an
    adoption on items that are not readings, since a passed first reading is
    just a reading. Without a terminal outcome, "tabled" or "denied" stated in
    the title ("Second Reading of Ordinance 724 - Tabled") is used instead;
    "adopted" in a reading title is left to the second-reading policy.
    """
    action = "discussed"
    for name, pattern in ACTION_RULES:
        if pattern.search(title or ""):
            action = name
            break

    actions = [action]
    terminal = None
    if _outcome_in(outcome, TABLED_OUTCOMES):
        terminal = "tabled"
    elif _outcome_in(outcome, DENIED_OUTCOMES):
        terminal = "denied"
    elif _outcome_in(outcome, ADOPTED_OUTCOMES) and action not in READING_ACTIONS:
        terminal = "adopted"
    else:
        stated = terminal_action_in_title(title)
        if stated in ("tabled", "denied"):
            terminal = stated

    if terminal and terminal not in actions:
        actions.append(terminal)
    return actions


@dataclass(frozen=True)
class Lifecycle:
    status: str
    adopted_date: Optional[date] = None
    terminal: bool = False
    last_second_reading: Optional[date] = None


def _link_sort_key(link: OrdinanceMeetingLink):
    return (link.meeting_date or date.min, ACTION_RANK.get(link.action, 1), link.meeting_id)


def derive_lifecycle(links: Iterable[OrdinanceMeetingLink]) -> Lifecycle:
    """Fold links ordered by (meeting date, action rank) into a lifecycle

    Readings only advance. The first terminal action ends the fold.
    """
    status = "introduced"
    adopted_date = None
    last_second_reading = None

    for link in sorted(links, key=_link_sort_key):
        if link.action in TERMINAL_ACTIONS:
            if link.action == "adopted":
                adopted_date = link.meeting_date
            return Lifecycle(
                status=link.action,
                adopted_date=adopted_date,
                terminal=True,
                last_second_reading=last_second_reading,
            )

        if link.action in STAGE_ORDER and STAGE_ORDER.index(link.action) > STAGE_ORDER.index(status):
            status = link.action

        if link.action == "second_reading":
            last_second_reading = link.meeting_date

    return Lifecycle(status=status, last_second_reading=last_second_reading)


def second_reading_is_adoption(lifecycle: Lifecycle, today: Optional[date] = None) -> Lifecycle:
    """A fold ending at a held second reading with no terminal action is an adoption

    A second reading on an upcoming meeting's agenda has not happened yet and
    stays second_reading.
    """
    if lifecycle.terminal or lifecycle.status != "second_reading":
        return lifecycle
    held_on = lifecycle.last_second_reading
    if held_on is None or held_on > (today or date.today()):
        return lifecycle
    return replace(lifecycle, status="adopted", adopted_date=held_on)


def reconcile_with_library(lifecycle: Lifecycle, ordinance: Ordinance) -> Lifecycle:
    """A verified library ordinance is adopted unless its links end tabled or denied"""
    if not ordinance.verified or lifecycle.status in ("tabled", "denied"):
        return lifecycle
    return replace(
        lifecycle,
        status="adopted",
        adopted_date=lifecycle.adopted_date or ordinance.adopted_date,
    )


def ordinance_lifecycle(
    ordinance: Ordinance,
    links: Iterable[OrdinanceMeetingLink],
    today: Optional[date] = None,
) -> Lifecycle:
    """Full derivation used by the linker: fold, adoption policy, library reconciliation"""
    return reconcile_with_library(second_reading_is_adoption(derive_lifecycle(links), today), ordinance)


# ========== Resolutions ==========


@dataclass(frozen=True)
class ResolutionStatus:
    status: str
    adopted_date: Optional[date] = None


TITLE_RESOLUTION_STATUS = {"adopted": "adopted", "tabled": "tabled", "denied": "rejected"}


def resolution_status_from_outcome(outcome: Optional[str]) -> Optional[str]:
    """Status for a recorded outcome, None when there is no usable outcome"""
    if _outcome_in(outcome, ADOPTED_OUTCOMES):
        return "adopted"
    if _outcome_in(outcome, TABLED_OUTCOMES):
        return "tabled"
    if _outcome_in(outcome, DENIED_OUTCOMES):
        return "rejected"
    return None


def latest_mention_wins(
    mentions: Sequence[Tuple[date, str, Optional[str], Optional[str]]],
    today: Optional[date] = None,
) -> ResolutionStatus:
    """Status of a resolution from its mentions

    Args:
        mentions: (meeting_date, meeting_id, outcome, title) per agenda mention
        today: Reference date for upcoming vs. past meetings

    The latest mention by (meeting date, meeting id) decides: its recorded
    outcome first, then a result stated in its title ("Resolution 25-010
    adopted"). A past meeting with neither is waiting on minutes.
    """
    if not mentions:
        raise ValueError("latest_mention_wins needs at least one mention")

    today = today or date.today()
    meeting_date, _, outcome, title = max(mentions, key=lambda m: (m[0], m[1]))

    status = resolution_status_from_outcome(outcome) or TITLE_RESOLUTION_STATUS.get(terminal_action_in_title(title))
    if status is None:
        status = "pending_minutes" if meeting_date <= today and not outcome else "proposed"

    return ResolutionStatus(
        status=status,
        adopted_date=meeting_date if status == "adopted" else None,
    )


def clean_resolution_title(title: str) -> str:
    """"Consider Resolution 24-07 to approve X" -> "Approve X\""""
    cleaned = LEADING_TO.sub("", RESOLUTION_TITLE_PREFIX.sub("", title or "")).strip()
    return _capitalize_first(cleaned) or (title or "").strip()


# ========== Vote outcomes ==========


def item_outcome_from_vote(motion: Optional[str], result: str) -> Optional[str]:
    """agenda_items.outcome for a recorded motion

    A passed motion to table tables the item; a passed motion to deny denies it.
    """
    motion_lower = (motion or "").lower()
    result_lower = (result or "").lower()

    if result_lower == "passed":
        if motion_lower.startswith("table"):
            return "tabled"
        if motion_lower.startswith("den"):
            return "denied"
        return "passed"
    if result_lower == "failed":
        return "failed"
    if result_lower == "tabled":
        return "tabled"
    return None
