"""
Tests for source parsers

Pure functions over captured page text and HTML: CivicClerk event pages and
vote modals, Municode listings and supplement history, city-site document
listings, and monthly permit/business report text.
"""

from datetime import date

import pytest

from exceptions import ParsingError
from vendors.adapters.parsers.city_site_parser import (
    civic_document_date,
    classify_financial_url,
    parse_civic_documents,
    parse_financial_reports,
    sort_civic_documents,
)
from vendors.adapters.parsers.civicclerk_parser import (
    classify_event_page,
    extract_agenda_lines,
    find_pdfjs_document_url,
    parse_event_page,
    parse_vote_modal,
)
from vendors.adapters.parsers.municode_parser import (
    find_listing_years,
    parse_ordinance_links,
    parse_supplement_history,
)
from vendors.adapters.parsers.report_parser import parse_business_text, parse_permit_text

PORTAL = "https://examplecityga.portal.civicclerk.com"
SITE = "https://www.examplecityga.gov"

EVENT_PAGE = """City Council Meeting
Monday, March 3, 2025 6:00 PM
Meeting Files
a. Call to Order and Invocation
b. Approval of the Minutes of February 17, 2025
1. Second Reading of Ordinance 724 to Consider a Variance at 4627 Atlanta Highway
2) Consider Resolution 25-03 to approve the paving contract
2) consider resolution 25-03 to approve the paving contract
• Public Hearing on the FY2026 budget
IV. Report from the City Manager
No Attachment File
c. Short
Discussion of the downtown parking study and next steps
"""


class TestEventPage:
    """Rendered /event/{id}/files text to Meeting and AgendaItems"""

    def test_meeting_metadata(self):
        parsed = parse_event_page(1234, EVENT_PAGE, "City Council - CivicClerk", PORTAL, location="City Hall")
        meeting = parsed.meeting
        assert meeting.id == "civicclerk-1234"
        assert meeting.event_id == 1234
        assert meeting.date == date(2025, 3, 3)
        assert meeting.type == "city_council"
        assert meeting.location == "City Hall"
        assert meeting.agenda_url == f"{PORTAL}/event/1234/files"
        assert parsed.has_files

    def test_items_in_order_with_types(self):
        items = parse_event_page(1234, EVENT_PAGE, "City Council", PORTAL).items
        titles = [item.title for item in items]
        assert titles == [
            "Call to Order and Invocation",
            "Approval of the Minutes of February 17, 2025",
            "Second Reading of Ordinance 724 to Consider a Variance at 4627 Atlanta Highway",
            "Consider Resolution 25-03 to approve the paving contract",
            "Public Hearing on the FY2026 budget",
            "Report from the City Manager",
            "Discussion of the downtown parking study and next steps",
        ]
        assert [item.order_num for item in items] == list(range(1, 8))
        assert items[2].type == "ordinance"
        assert items[2].reference_number == "724"
        assert items[3].type == "resolution"
        assert items[3].reference_number == "25-03"
        assert items[4].type == "public_hearing"
        assert items[0].id == "civicclerk-1234-item-1"

    def test_planning_type_from_title(self):
        parsed = parse_event_page(1, "April 7, 2025", "Planning Commission", PORTAL)
        assert parsed.meeting.type == "planning"

    def test_work_session_type_from_title(self):
        parsed = parse_event_page(1, "April 7, 2025", "Council Work Session", PORTAL)
        assert parsed.meeting.type == "work_session"

    def test_no_files_is_metadata_only(self):
        text = "City Council\nApril 7, 2025\nNo published Meeting Files\n1. Consider Ordinance 730 signs"
        parsed = parse_event_page(99, text, "City Council", PORTAL)
        assert not parsed.has_files
        assert parsed.items == []

    def test_missing_date_raises_parsing_error(self):
        with pytest.raises(ParsingError) as exc:
            parse_event_page(77, "Loading...", "", PORTAL)
        assert exc.value.context["source"] == "civicclerk-event-77"

    def test_short_keyword_lines_ignored(self):
        """Keyword lines without a prefix need more than 20 characters"""
        assert extract_agenda_lines("Motion to adjourn") == []


class TestEventClassification:
    def test_valid(self):
        assert classify_event_page(EVENT_PAGE) == "valid"

    def test_error_marker(self):
        assert classify_event_page("Event not found. March 3, 2025") == "invalid"

    def test_no_date(self):
        assert classify_event_page("Welcome to the portal") == "invalid"


class TestPdfjsUrl:
    def test_file_param_decoded(self):
        html = (
            '<iframe src="/pdfjs/web/viewer.html?file=https%3A%2F%2Fcdn.example.com%2Fagenda.pdf&zoom=1"></iframe>'
        )
        assert find_pdfjs_document_url(html) == "https://cdn.example.com/agenda.pdf"

    def test_no_viewer(self):
        assert find_pdfjs_document_url("<div>No files</div>") is None


class TestVoteModal:
    """Motions/Votes Detail modal text"""

    MODAL = (
        "Agenda\nMotions/Votes Detail\nMotion: Approve\nPassed\n"
        "Initiated by Jane Smith, seconded by John Doe.\nYes 4 No 1 Abstain 0\n"
    )

    def test_parsed_fields(self):
        outcome = parse_vote_modal("Consider Resolution 25-03", self.MODAL)
        assert outcome.motion == "Approve"
        assert outcome.result == "passed"
        assert outcome.initiated_by == "Jane Smith"
        assert outcome.seconded_by == "John Doe"
        assert (outcome.yes_count, outcome.no_count, outcome.abstain_count) == (4, 1, 0)

    def test_no_result_is_none(self):
        assert parse_vote_modal("Item", "Motions/Votes Detail\nMotion: Approve\n") is None


class TestMunicode:
    LISTING = """
    <div><span>2025</span><span>2024</span><span>2019</span></div>
    <a href="https://library.municode.com/ga/examplecity/ordinances/code_of_ordinances?nodeId=1300001">Ordinance No. 724</a>
    <a href="/ga/examplecity/ordinances/code_of_ordinances?nodeId=1300002">Ordinance No. 2024-012</a>
    <a href="https://library.municode.com/x?nodeId=1300001">Ordinance No. 724</a>
    <a href="https://library.municode.com/x">Ordinance No. 725</a>
    <a href="https://library.municode.com/x?nodeId=1300003">Code of Ordinances</a>
    """

    def test_listing_years(self):
        assert find_listing_years(self.LISTING) == ["2025", "2024"]

    def test_ordinance_links(self):
        listing_url = "https://library.municode.com/ga/examplecity/ordinances/code_of_ordinances"
        ordinances = parse_ordinance_links(self.LISTING, listing_url, "2025", "12345")
        assert [o.number for o in ordinances] == ["724", "2024-012"]
        assert ordinances[0].node_id == "1300001"
        assert ordinances[0].pdf_url == (
            "https://mcclibraryfunctions.azurewebsites.us/api/ordinanceDownload/12345/1300001/pdf"
        )
        assert ordinances[1].source_url == f"{listing_url}?nodeId=1300002"

    def test_supplement_history(self):
        html = """
        <h3>Supplement 12</h3>
        <table>
          <tr><th>Ord. No.</th><th>Date</th><th>Include/Omit</th></tr>
          <tr><td>724</td><td>3-3-2025</td><td>Include</td></tr>
          <tr><td>Ord. No. 719</td><td>January 6, 2025</td><td>Omit</td></tr>
          <tr><td>720</td><td>1-6-2025</td><td>Pending</td></tr>
        </table>
        """
        entries = parse_supplement_history(html)
        assert [(e.number, e.disposition) for e in entries] == [("724", "codified"), ("719", "omit")]
        assert entries[0].entry_date == date(2025, 3, 3)
        assert entries[1].entry_date == date(2025, 1, 6)
        assert entries[0].supplement == "12"

    def test_supplement_history_without_tables(self):
        assert parse_supplement_history("<p>Nothing here</p>") == []


class TestCitySite:
    def test_financial_report_types(self):
        assert classify_financial_url(f"{SITE}/FY2024_PAFR.pdf") == "pafr"
        assert classify_financial_url(f"{SITE}/FY2024_Five_Year_Digest.pdf") == "digest"
        assert classify_financial_url(f"{SITE}/FY2025_Budget.pdf") == "budget"
        assert classify_financial_url(f"{SITE}/FY2023_Annual_Comprehensive_Financial_Report.pdf") == "audit"
        assert classify_financial_url(f"{SITE}/Newsletter.pdf") is None

    def test_financial_reports_newest_first_and_deduped(self):
        html = """
        <a href="/DocumentCenter/View/1234/FY2023_Budget.pdf">Budget</a>
        <a href="/DocumentCenter/View/1250/FY2025_Budget.pdf?v=2">Budget</a>
        <a href="/DocumentCenter/View/1251/FY2025_Budget_Amended.pdf">Budget</a>
        <a href="/DocumentCenter/View/1300/FY2024_Comprehensive_Financial_Report.pdf">Audit</a>
        <a href="/calendar">Calendar</a>
        """
        reports = parse_financial_reports(html, SITE)
        assert [(r.fiscal_year, r.type) for r in reports] == [
            ("FY2025", "budget"),
            ("FY2024", "audit"),
            ("FY2023", "budget"),
        ]
        assert reports[0].url == f"{SITE}/DocumentCenter/View/1250/FY2025_Budget.pdf"
        assert reports[0].title == "FY2025 Annual Operating & Capital Budget"

    def test_civic_documents_filtered_by_type(self):
        html = """
        <a href="/files/SPLOST_Report_12.31.2024.pdf">Q4</a>
        <a href="/files/SPLOST_Report_2023.pdf">2023</a>
        <a href="/files/garage_sale_splost.pdf">Garage</a>
        <a href="/files/Public_Notice.pdf">Notice</a>
        """
        docs = parse_civic_documents(html, SITE, "splost")
        assert [d.title for d in docs] == ["SPLOST Report 12.31.2024", "SPLOST Report 2023"]
        assert docs[0].date == "2024-12-31"
        assert docs[1].date == "2023"
        assert docs[0].id == "SPLOST-Report-12-31-2024"

    def test_civic_document_date(self):
        assert civic_document_date("Notice_3.15.2025.pdf") == "2025-03-15"
        assert civic_document_date("2024-CCR.pdf") == "2024"
        assert civic_document_date("notice.pdf") is None

    def test_sort_undated_last(self):
        html = '<a href="/a_splost.pdf">a</a><a href="/splost_2022.pdf">b</a><a href="/splost_2024.pdf">c</a>'
        ordered = sort_civic_documents(parse_civic_documents(html, SITE, "splost"))
        assert [d.date for d in ordered] == ["2024", "2022", None]


class TestPermitReport:
    TEXT = """City of Example Monthly Permit Listing
Permit Address Type Value
123 Main Street Residential $150,000
New single family home
45 Oak Drive
Electrical
$2,500.00
Page 1
7 Pine Ct Renovation 80
"""

    def test_permits_parsed(self):
        permits = parse_permit_text(self.TEXT, "2025-03", f"{SITE}/Mar2025permitlisting.pdf")
        assert [p.address for p in permits] == ["123 Main Street", "45 Oak Drive", "7 Pine Ct"]
        assert permits[0].type == "residential"
        assert permits[0].value == 150000.0
        assert permits[1].type == "electrical"
        assert permits[1].value == 2500.0
        assert permits[0].id == "permit-2025-03-0"
        assert permits[0].source_url.endswith("Mar2025permitlisting.pdf")

    def test_house_number_is_not_value(self):
        """Small trailing amounts are ignored and the house number never counts"""
        permits = parse_permit_text("4627 Atlanta Highway Way Addition", "2025-03", SITE)
        assert permits[0].value is None

    def test_value_below_minimum_dropped(self):
        permits = parse_permit_text(self.TEXT, "2025-03", SITE)
        assert permits[2].value is None


class TestBusinessReport:
    def test_names_and_addresses(self):
        text = """New Business Listing
City of Example
Business Name Address
Peach State Bakery
210 Broad Street
Main Street Barbers
12
Southern Roots Landscaping LLC
"""
        businesses = parse_business_text(text, "2025-03", SITE)
        assert [b.name for b in businesses] == [
            "Peach State Bakery",
            "Main Street Barbers",
            "Southern Roots Landscaping LLC",
        ]
        assert businesses[0].address == "210 Broad Street"
        assert businesses[1].address is None
        assert businesses[2].id == "business-2025-03-2"
