"""Document date precedence: filename date, then summarizer date line, then filename year"""

from datetime import date

import pytest

from pipeline.document_dates import (
    date_from_ai_response,
    date_from_filename,
    resolve_document_date,
    year_from_filename,
)


class TestFilenameDate:
    @pytest.mark.parametrize(
        "filename,expected",
        [
            ("SPLOST_Report_12-31-22.pdf", date(2022, 12, 31)),
            ("SPLOST_Report_12-31-2022.pdf", date(2022, 12, 31)),
            ("Public_Notice_3.15.2025.pdf", date(2025, 3, 15)),
            ("Report_13-45-2024.pdf", None),
            ("FY2025_Budget.pdf", None),
        ],
    )
    def test_full_dates(self, filename, expected):
        assert date_from_filename(filename) == expected

    def test_year_only(self):
        assert year_from_filename("FY2025_Budget.pdf") == date(2025, 1, 1)
        assert year_from_filename("2023_CCR.pdf") == date(2023, 1, 1)
        assert year_from_filename("notice.pdf") is None


class TestAiDate:
    @pytest.mark.parametrize(
        "response,expected",
        [
            ("**Document Date:** March 15, 2025\n**Summary:** ...", date(2025, 3, 15)),
            ("**Document Date:** [2025-03-15]", date(2025, 3, 15)),
            ("**Document Date:** Not specified", None),
            ("**Document Date:** 2024", None),
            ("**Document Date:** FY2025", None),
            ("**Document Date:** sometime last spring", None),
            ("No date line at all", None),
            (None, None),
        ],
    )
    def test_parsing(self, response, expected):
        assert date_from_ai_response(response) == expected


class TestResolve:
    def test_filename_wins_and_flags_conflict(self):
        resolved = resolve_document_date("Notice_3.15.2025.pdf", "**Document Date:** April 1, 2025")
        assert resolved.value == date(2025, 3, 15)
        assert resolved.source == "filename"
        assert resolved.precedence_conflict

    def test_agreement_is_not_conflict(self):
        resolved = resolve_document_date("Notice_3.15.2025.pdf", "**Document Date:** 2025-03-15")
        assert not resolved.precedence_conflict

    def test_ai_before_filename_year(self):
        resolved = resolve_document_date("FY2025_Budget.pdf", "**Document Date:** July 1, 2024")
        assert resolved.iso == "2024-07-01"
        assert resolved.source == "ai"

    def test_filename_year_last(self):
        resolved = resolve_document_date("FY2025_Budget.pdf", "**Document Date:** Not specified")
        assert resolved.iso == "2025-01-01"
        assert resolved.source == "filename_year"

    def test_nothing_found(self):
        resolved = resolve_document_date("notice.pdf")
        assert resolved.value is None
        assert resolved.iso is None
        assert resolved.source is None
