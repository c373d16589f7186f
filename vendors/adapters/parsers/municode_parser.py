"""
Municode Library Parser - ordinance listing and supplement history

The library renders client-side; the adapter captures the HTML with a headless
browser and these functions parse it with BeautifulSoup.

Listing links look like:
    <a href="...?nodeId=1234567">Ordinance No. 712</a>

Supplement history is one table per supplement, preceded by a "Supplement N"
header. Rows carry the ordinance number, a date and Include/Omit.
"""

import re
from dataclasses import dataclass
from datetime import date
from typing import List, Optional

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from config import get_logger

logger = get_logger(__name__).bind(component="vendor")

ORDINANCE_LINK_PATTERN = re.compile(r"Ordinance No\.\s*(\d+(?:-\d+)*(?:-?[A-Za-z]+)?)", re.IGNORECASE)
NODE_ID_PATTERN = re.compile(r"nodeId=(\d+)")
YEAR_LABEL_PATTERN = re.compile(r">(20\d{2})<")
SUPPLEMENT_HEADER_PATTERN = re.compile(r"Supplement\s+(\d+)", re.IGNORECASE)
SUPPLEMENT_NUMBER_PATTERN = re.compile(r"(?:Ord\.?\s*(?:No\.?)?\s*)?(\d+(?:-\d+)*(?:-?[A-Za-z]+)?)", re.IGNORECASE)
SUPPLEMENT_DATE_PATTERN = re.compile(
    r"(\d{1,2}[-/]\d{1,2}[-/]\d{2,4})|([a-z]{3,}\s+\d{1,2},?\s+\d{4})", re.IGNORECASE
)

PDF_URL_TEMPLATE = "https://mcclibraryfunctions.azurewebsites.us/api/ordinanceDownload/{product_id}/{node_id}/pdf"


@dataclass
class LibraryOrdinance:
    number: str
    year: str
    title: str
    source_url: str
    node_id: str
    pdf_url: str


@dataclass
class SupplementEntry:
    number: str
    disposition: str  # codified, omit
    entry_date: Optional[date] = None
    supplement: Optional[str] = None


def municode_pdf_url(product_id: str, node_id: str) -> str:
    return PDF_URL_TEMPLATE.format(product_id=product_id, node_id=node_id)


def find_listing_years(html: str, min_year: int = 2020) -> List[str]:
    """Year toggles rendered on the listing page, newest first"""
    years = {match for match in YEAR_LABEL_PATTERN.findall(html) if int(match) >= min_year}
    return sorted(years, reverse=True)


def parse_ordinance_links(html: str, listing_url: str, year: str, product_id: str) -> List[LibraryOrdinance]:
    """Ordinance links visible after expanding one year"""
    soup = BeautifulSoup(html, "html.parser")
    ordinances = []
    seen_nodes = set()

    for link in soup.find_all("a", href=True):
        text = link.get_text(" ", strip=True)
        href = link["href"]
        if "Ordinance No." not in text or "nodeId" not in href:
            continue

        number_match = ORDINANCE_LINK_PATTERN.search(text)
        node_match = NODE_ID_PATTERN.search(href)
        if not number_match or not node_match:
            continue

        node_id = node_match.group(1)
        if node_id in seen_nodes:
            continue
        seen_nodes.add(node_id)

        number = number_match.group(1)
        ordinances.append(
            LibraryOrdinance(
                number=number,
                year=year,
                title=f"Ordinance No. {number}",
                source_url=href if href.startswith("http") else f"{listing_url}?nodeId={node_id}",
                node_id=node_id,
                pdf_url=municode_pdf_url(product_id, node_id),
            )
        )

    return ordinances


def _parse_entry_date(text: str) -> Optional[date]:
    match = SUPPLEMENT_DATE_PATTERN.search(text)
    if not match:
        return None
    try:
        return date_parser.parse(match.group(0)).date()
    except (ValueError, OverflowError):
        logger.debug("unparseable supplement date", value=match.group(0))
        return None


def parse_supplement_history(html: str) -> List[SupplementEntry]:
    """All Include/Omit rows from the supplement history tables

    Rows without a disposition keyword (headers, notes) are skipped.
    """
    soup = BeautifulSoup(html, "html.parser")
    tables = soup.find_all("table")
    if not tables:
        logger.warning("no tables on supplement history page")
        return []

    entries = []
    for table in tables:
        supplement = None
        previous = table.find_previous_sibling()
        if previous is not None:
            header = SUPPLEMENT_HEADER_PATTERN.search(previous.get_text(" ", strip=True))
            if header:
                supplement = header.group(1)

        for row in table.find_all("tr"):
            cells = [cell.get_text(" ", strip=True) for cell in row.find_all(["td", "th"])]
            if len(cells) < 2:
                continue

            number_match = SUPPLEMENT_NUMBER_PATTERN.search(cells[0])
            if not number_match:
                continue

            rest = " ".join(cells[1:3]).lower()
            if "include" in rest:
                disposition = "codified"
            elif "omit" in rest:
                disposition = "omit"
            else:
                continue

            entries.append(
                SupplementEntry(
                    number=number_match.group(1),
                    disposition=disposition,
                    entry_date=_parse_entry_date(rest),
                    supplement=supplement,
                )
            )

    if not entries:
        logger.warning("no supplement history entries extracted")
    return entries
