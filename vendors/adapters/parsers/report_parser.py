"""
Monthly Report Parser - permit and business listings from extracted PDF text

Listings are loosely tabular PDFs. Text extraction flattens them into lines,
so parsing is line-oriented and heuristic:
- Permits: an address line starts a new permit; following lines contribute
  type and value until the next address.
- Businesses: a capitalized non-numeric line is a business name; an
  immediately following "123 Something" line is its address.
"""

import re
from typing import List, Optional

from database.models import Permit, Business

ADDRESS_PATTERN = re.compile(
    r"(\d+\s+[A-Za-z\s]+(?:Street|St|Road|Rd|Drive|Dr|Avenue|Ave|Lane|Ln|Way|Circle|Cir|Court|Ct))\b",
    re.IGNORECASE,
)
PERMIT_TYPE_PATTERN = re.compile(
    r"(Residential|Commercial|New Construction|Renovation|Addition|Electrical|Plumbing|HVAC|Mechanical)",
    re.IGNORECASE,
)
VALUE_PATTERN = re.compile(r"\$?([\d,]+(?:\.\d{2})?)")
MIN_PERMIT_VALUE = 100

BUSINESS_SKIP_MARKERS = ("business name", "new business", "city of")
BUSINESS_ADDRESS_PATTERN = re.compile(r"(\d+\s+[A-Za-z\s]+)")
LEADING_NUMBER_PATTERN = re.compile(r"^\d+\s+")


def _parse_value(text: str) -> Optional[float]:
    match = VALUE_PATTERN.search(text)
    if not match:
        return None
    try:
        value = float(match.group(1).replace(",", ""))
    except ValueError:
        return None
    return value if value > MIN_PERMIT_VALUE else None


def parse_permit_text(text: str, month: str, source_url: str) -> List[Permit]:
    """Permits from a monthly permit listing

    Args:
        text: Extracted PDF text
        month: YYYY-MM
        source_url: Resolved listing URL
    """
    permits: List[Permit] = []
    current: Optional[dict] = None

    def _flush():
        if current and current.get("address"):
            permits.append(
                Permit(
                    id=f"permit-{month}-{len(permits)}",
                    month=month,
                    type=current.get("type") or "other",
                    address=current["address"],
                    description=current.get("description", ""),
                    value=current.get("value"),
                    source_url=source_url,
                )
            )

    for raw in text.split("\n"):
        line = raw.strip()
        if not line:
            continue

        remainder = line
        address = ADDRESS_PATTERN.search(line)
        if address:
            _flush()
            current = {"address": address.group(1).strip()}
            # The house number is not a value
            remainder = line[address.end():]

        if current is None:
            continue

        permit_type = PERMIT_TYPE_PATTERN.search(line)
        if permit_type and not current.get("type"):
            current["type"] = permit_type.group(1).lower()

        if not current.get("value"):
            value = _parse_value(remainder)
            if value is not None:
                current["value"] = value

    _flush()
    return permits


def parse_business_text(text: str, month: str, source_url: str) -> List[Business]:
    """New business registrations from a monthly business listing"""
    businesses: List[Business] = []
    lines = [line.strip() for line in text.split("\n") if line.strip()]

    i = 0
    while i < len(lines):
        line = lines[i]
        lowered = line.lower()

        if len(line) < 3 or any(marker in lowered for marker in BUSINESS_SKIP_MARKERS):
            i += 1
            continue

        is_name = (
            line[0].isupper()
            and not LEADING_NUMBER_PATTERN.match(line)
            and 3 < len(line) < 100
        )
        if not is_name:
            i += 1
            continue

        address = None
        if i + 1 < len(lines):
            match = BUSINESS_ADDRESS_PATTERN.search(lines[i + 1])
            if match:
                address = match.group(1).strip()
                i += 1

        businesses.append(
            Business(
                id=f"business-{month}-{len(businesses)}",
                month=month,
                name=line,
                address=address,
                source_url=source_url,
            )
        )
        i += 1

    return businesses
