"""
Candidate URL builders for monthly city reports

The city site has published monthly permit and business listings under several
naming conventions over the years. Each builder returns every plausible URL,
primary spelling first, with duplicates removed and order preserved.
"""

from typing import List

MONTH_NAMES = {
    "01": "Jan",
    "02": "Feb",
    "03": "Mar",
    "04": "Apr",
    "05": "May",
    "06": "June",
    "07": "July",
    "08": "Aug",
    "09": "Sept",
    "10": "Oct",
    "11": "Nov",
    "12": "Dec",
}

ALT_MONTH_NAMES = {
    "01": ["Jan", "January"],
    "02": ["Feb", "February"],
    "03": ["Mar", "March"],
    "04": ["Apr", "April"],
    "05": ["May"],
    "06": ["June", "Jun"],
    "07": ["July", "Jul"],
    "08": ["Aug", "August"],
    "09": ["Sept", "Sep", "September"],
    "10": ["Oct", "October"],
    "11": ["Nov", "November"],
    "12": ["Dec", "December"],
}

PERMIT_STATISTICS_PATH = "Documents/Departments/Community%20Development/Monthly%20Permit%20Statistics"


def _key(month: int) -> str:
    if not 1 <= month <= 12:
        raise ValueError(f"month must be 1-12, got {month}")
    return f"{month:02d}"


def _names(month: int) -> List[str]:
    """Primary name followed by alternates (primary never repeated)"""
    key = _key(month)
    primary = MONTH_NAMES[key]
    return [primary] + [name for name in ALT_MONTH_NAMES[key] if name != primary]


def _unique(urls: List[str]) -> List[str]:
    seen = set()
    return [u for u in urls if not (u in seen or seen.add(u))]


def permit_report_candidates(site_url: str, year: int, month: int) -> List[str]:
    """All known permit listing URLs for a month, in fallback order"""
    site = site_url.rstrip("/")
    names = _names(month)
    folder = f"{site}/{PERMIT_STATISTICS_PATH}/{year}"

    urls = []
    urls += [f"{site}/{name}{year}permitlisting.pdf" for name in names]
    urls += [f"{site}/{name}{year}permit.pdf" for name in names]
    urls += [f"{folder}/{name.lower()}{year}permitlisting.pdf" for name in names]
    urls += [f"{folder}/{names[0].lower()}{year}permit_listing.pdf"]
    urls += [f"{folder}/{name.lower()}{year}permit.pdf" for name in names]
    return _unique(urls)


def business_report_candidates(site_url: str, year: int, month: int) -> List[str]:
    """All known new-business listing URLs for a month, in fallback order"""
    site = site_url.rstrip("/")
    return _unique([f"{site}/{name}{year}businesslisting.pdf" for name in _names(month)])
