"""
City Website Parser - financial reports and civic document listings

Pages are plain server-rendered HTML; every document of interest is a PDF
link. Classification works off the URL/filename because link text on the city
site is inconsistent ("Download", "Click here", ...).
"""

import re
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import unquote

from bs4 import BeautifulSoup

FINANCIAL_KEYWORDS = ("finance", "budget", "audit", "financial", "pafr", "cafr", "digest")
FISCAL_YEAR_PATTERN = re.compile(r"(?:FY\s*)?(20\d{2})", re.IGNORECASE)

CIVIC_DOC_TYPES = ("splost", "notice", "strategic", "water-quality")
CIVIC_EXCLUSIONS = ("garage_sale", "election_results", "social_media", "employee_benefits", "court_calendar")
DOTTED_DATE_PATTERN = re.compile(r"(\d{1,2})\.(\d{1,2})\.(\d{4})")
FILENAME_YEAR_PATTERN = re.compile(r"(?:FY)?(\d{4})", re.IGNORECASE)

FINANCIAL_TITLES = {
    "pafr": "{fy} Popular Annual Financial Report",
    "digest": "{fy} Five Year Digest History",
    "budget": "{fy} Annual Operating & Capital Budget",
    "audit": "{fy} Annual Comprehensive Financial Report",
}


@dataclass
class FinancialDocument:
    fiscal_year: str  # FY2024
    type: str  # budget, audit, pafr, digest
    title: str
    url: str


@dataclass
class CivicDocument:
    id: str
    type: str
    title: str
    url: str
    date: Optional[str] = None  # YYYY-MM-DD or YYYY


def pdf_links(html: str, site_url: str) -> List[str]:
    """Absolute, query-stripped PDF hrefs in document order"""
    soup = BeautifulSoup(html, "html.parser")
    site = site_url.rstrip("/")
    urls = []
    for link in soup.find_all("a", href=True):
        href = link["href"].strip()
        if ".pdf" not in href.lower():
            continue
        if not href.startswith("http"):
            href = f"{site}{href if href.startswith('/') else '/' + href}"
        urls.append(href)
    return urls


def _filename(url: str) -> str:
    return url.split("?")[0].rstrip("/").split("/")[-1]


def classify_financial_url(url: str) -> Optional[str]:
    """Report type from the filename, None when it is not a recognised report"""
    name = _filename(url).lower()
    if "pafr" in name or "popular" in name:
        return "pafr"
    if "digest" in name or "five_year" in name or "five year" in name or "five%20year" in name:
        return "digest"
    if "budget" in name:
        return "budget"
    if (
        "comprehensive" in name
        or "cafr" in name
        or "audit" in name
        or "comp-fin" in name
        or ("annual" in name and "financial" in name)
    ):
        return "audit"
    return None


def parse_financial_reports(html: str, site_url: str) -> List[FinancialDocument]:
    """Financial reports, one per (fiscal year, type), newest fiscal year first"""
    reports: List[FinancialDocument] = []
    seen = set()

    for url in pdf_links(html, site_url):
        lower = url.lower()
        if not any(keyword in lower for keyword in FINANCIAL_KEYWORDS):
            continue

        clean_url = url.split("?")[0]
        year_match = FISCAL_YEAR_PATTERN.search(_filename(clean_url))
        if not year_match:
            continue
        fiscal_year = f"FY{year_match.group(1)}"

        doc_type = classify_financial_url(clean_url)
        if doc_type is None or (fiscal_year, doc_type) in seen:
            continue
        seen.add((fiscal_year, doc_type))

        reports.append(
            FinancialDocument(
                fiscal_year=fiscal_year,
                type=doc_type,
                title=FINANCIAL_TITLES[doc_type].format(fy=fiscal_year),
                url=clean_url,
            )
        )

    reports.sort(key=lambda r: int(r.fiscal_year[2:]), reverse=True)
    return reports


def _accepts_civic_url(doc_type: str, lower_url: str) -> bool:
    if any(excluded in lower_url for excluded in CIVIC_EXCLUSIONS):
        return False
    if doc_type == "splost":
        return "splost" in lower_url
    if doc_type == "notice":
        return "notice" in lower_url or "press" in lower_url
    if doc_type == "strategic":
        return "strategic" in lower_url
    if doc_type == "water-quality":
        if any(word in lower_url for word in ("lorem", "landscape", "guide")):
            return False
        return any(word in lower_url for word in ("ccr", "water_quality", "water-quality", "quality_report"))
    return False


def civic_document_date(filename: str) -> Optional[str]:
    """M.D.YYYY in the filename as an ISO date, else a bare year, else None"""
    dotted = DOTTED_DATE_PATTERN.search(filename)
    if dotted:
        month, day, year = dotted.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"
    year = FILENAME_YEAR_PATTERN.search(filename)
    return year.group(1) if year else None


def parse_civic_documents(html: str, site_url: str, doc_type: str) -> List[CivicDocument]:
    """Civic documents of one type listed on its city-site page"""
    documents: List[CivicDocument] = []
    seen = set()

    for url in pdf_links(html, site_url):
        if not _accepts_civic_url(doc_type, url.lower()):
            continue

        clean_url = url.split("?")[0]
        if clean_url in seen:
            continue
        seen.add(clean_url)

        filename = _filename(clean_url)
        stem = re.sub(r"\.pdf$", "", filename, flags=re.IGNORECASE)
        title = re.sub(r"\s+", " ", re.sub(r"[-_]", " ", unquote(stem))).strip()

        documents.append(
            CivicDocument(
                id=re.sub(r"[^a-zA-Z0-9]", "-", stem),
                type=doc_type,
                title=title,
                url=clean_url,
                date=civic_document_date(filename),
            )
        )

    return documents


def sort_civic_documents(documents: List[CivicDocument]) -> List[CivicDocument]:
    """Newest first; undated documents last"""
    dated = sorted((d for d in documents if d.date), key=lambda d: d.date, reverse=True)
    return dated + [d for d in documents if not d.date]
