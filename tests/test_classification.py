"""Agenda item classification rule table"""

import pytest

from pipeline.classification import CLASSIFICATION_RULES, classify_item


class TestClassifyItem:
    @pytest.mark.parametrize(
        "title,expected",
        [
            ("Second Reading of Ordinance 724 amending zoning", ("ordinance", "724")),
            ("Ordinance No. 2024-12 regarding signage", ("ordinance", "2024-12")),
            ("Consider Resolution 25-03 to approve paving", ("resolution", "25-03")),
            ("Resolution No. 118 honoring volunteers", ("resolution", "118")),
            ("Public Hearing on the FY2026 budget", ("public_hearing", None)),
            ("Report from the City Manager", ("other", None)),
        ],
    )
    def test_types_and_references(self, title, expected):
        assert classify_item(title) == expected

    def test_ordinance_rule_checked_first(self):
        """A resolution that mentions an ordinance is classified as an ordinance"""
        assert classify_item("Resolution adopting Ordinance 730 fee schedule") == ("ordinance", "730")

    def test_keyword_without_number(self):
        assert classify_item("Discussion of the noise ordinance") == ("ordinance", None)

    def test_trailing_dash_trimmed(self):
        assert classify_item("Resolution 25- regarding parks") == ("resolution", "25")

    def test_rule_order(self):
        assert [rule.name for rule in CLASSIFICATION_RULES] == ["ordinance", "resolution", "public_hearing"]
