"""
Agenda item classification - ordered rule table

Rules are evaluated top to bottom; the first whose pattern matches the title
wins. Matching is permissive on purpose: a false "ordinance" is cheap to
ignore downstream, a missed one loses a reading.
"""

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Tuple


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    pattern: Pattern[str]
    item_type: str
    reference_pattern: Optional[Pattern[str]] = None


CLASSIFICATION_RULES: Tuple[ClassificationRule, ...] = (
    ClassificationRule(
        name="ordinance",
        pattern=re.compile(r"ordinance", re.IGNORECASE),
        item_type="ordinance",
        reference_pattern=re.compile(r"Ordinance(?:\s+No\.?)?\s+(\d+(?:-\d+)?)", re.IGNORECASE),
    ),
    ClassificationRule(
        name="resolution",
        pattern=re.compile(r"resolution", re.IGNORECASE),
        item_type="resolution",
        reference_pattern=re.compile(r"Resolution\s+(?:No\.?\s*)?(\d[\d-]*)", re.IGNORECASE),
    ),
    ClassificationRule(
        name="public_hearing",
        pattern=re.compile(r"public\s+hearing", re.IGNORECASE),
        item_type="public_hearing",
    ),
)


def classify_item(title: str) -> Tuple[str, Optional[str]]:
    """Return (item_type, reference_number) for an agenda item title"""
    for rule in CLASSIFICATION_RULES:
        if not rule.pattern.search(title):
            continue
        reference = None
        if rule.reference_pattern:
            match = rule.reference_pattern.search(title)
            if match:
                reference = match.group(1).rstrip("-")
        return rule.item_type, reference
    return "other", None
