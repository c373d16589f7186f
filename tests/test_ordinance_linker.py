"""
Tests for the ordinance linker

Linking agenda items to ordinances, lifecycle recomputation, library sync
and supplement history, all against a real temp-file SQLite database.
"""

from datetime import date

from pipeline.ordinance_linker import OrdinanceLinker
from vendors.adapters.parsers.municode_parser import LibraryOrdinance, SupplementEntry

FIRST_724 = "First Reading of Ordinance 724 to Consider a Variance at 4627 Atlanta Highway"
SECOND_724 = "Second Reading of Ordinance 724 to Consider a Variance at 4627 Atlanta Highway"


def library_entry(number, node_id="1300001"):
    return LibraryOrdinance(
        number=number,
        year=number[:4],
        title=f"Ordinance No. {number}",
        source_url=f"https://library.municode.com/ga/examplecity/ordinances/code_of_ordinances?nodeId={node_id}",
        node_id=node_id,
        pdf_url=f"https://mcclibraryfunctions.azurewebsites.us/api/ordinanceDownload/12345/{node_id}/pdf",
    )


class TestLinking:
    """Agenda items become provisional ordinances plus links"""

    def test_provisional_ordinance_created(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])

        result = OrdinanceLinker(db, today=today).link_all()

        assert result.items_seen == 1
        assert result.ordinances_created == 1
        assert result.links_created == 1
        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.id == "ordinance-724"
        assert ordinance.title == "A Variance at 4627 Atlanta Highway"
        assert ordinance.introduced_date == date(2025, 1, 6)
        assert ordinance.status == "first_reading"
        assert not ordinance.verified

    def test_held_second_reading_adopts(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        store_meeting(102, date(2025, 1, 20), [SECOND_724])

        OrdinanceLinker(db, today=today).link_all()

        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 1, 20)
        assert [link.action for link in db.ordinances.get_links("ordinance-724")] == [
            "first_reading",
            "second_reading",
        ]

    def test_upcoming_second_reading_not_adopted(self, db, store_meeting, today):
        store_meeting(101, date(2025, 5, 5), [FIRST_724])
        store_meeting(102, date(2025, 7, 7), [SECOND_724])

        OrdinanceLinker(db, today=today).link_all()

        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.status == "second_reading"
        assert ordinance.adopted_date is None

    def test_second_reading_tabled_in_title_is_not_adopted(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        store_meeting(102, date(2025, 1, 20), ["Second Reading of Ordinance 724 to Consider a Variance - Tabled"])

        OrdinanceLinker(db, today=today).link_all()

        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.status == "tabled"
        assert ordinance.adopted_date is None
        assert [link.action for link in db.ordinances.get_links("ordinance-724")] == [
            "first_reading",
            "second_reading",
            "tabled",
        ]

    def test_reading_denied_in_title(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), ["First Reading of Ordinance 724 to Consider a Variance - Denied"])

        OrdinanceLinker(db, today=today).link_all()

        assert db.ordinances.get_by_number("724").status == "denied"

    def test_item_without_number_is_failure(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), ["Discussion of the noise ordinance", FIRST_724])

        result = OrdinanceLinker(db, today=today).link_all()

        assert result.items_seen == 2
        assert result.failures == 1
        assert db.ordinances.count() == 1

    def test_year_fallback_matches_library_number(self, db, store_meeting, today):
        linker = OrdinanceLinker(db, today=today)
        linker.sync_library([library_entry("2025-012")])
        store_meeting(101, date(2025, 2, 3), ["First Reading of Ordinance 12 regarding sidewalks"])

        result = linker.link_all()

        assert result.ordinances_created == 0
        assert db.ordinances.count() == 1
        links = db.ordinances.get_links("ordinance-2025-012")
        assert [link.action for link in links] == ["first_reading"]
        # Verified library rows stay adopted
        assert db.ordinances.get_by_number("2025-012").status == "adopted"


class TestLifecycle:
    """Status is recomputed from the full link set on every run"""

    def test_rerun_is_noop(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        store_meeting(102, date(2025, 1, 20), [SECOND_724])
        linker = OrdinanceLinker(db, today=today)
        linker.link_all()

        second = linker.link_all()

        assert second.links_created == 0
        assert second.ordinances_created == 0
        assert second.status_changes == 0
        assert second.adopted_dates_updated == 0
        assert db.ordinances.count_links() == 2

    def test_out_of_order_backfill(self, db, store_meeting, today):
        """Discovering the first reading after the second does not move status back"""
        linker = OrdinanceLinker(db, today=today)
        store_meeting(102, date(2025, 1, 20), [SECOND_724])
        linker.link_all()

        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        linker.link_all()

        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 1, 20)

    def test_tabled_is_terminal(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [("Second Reading of Ordinance 730 sign rules", "tabled")])
        store_meeting(102, date(2025, 2, 3), ["Second Reading of Ordinance 730 sign rules"])

        OrdinanceLinker(db, today=today).link_all()

        ordinance = db.ordinances.get_by_number("730")
        assert ordinance.status == "tabled"
        assert ordinance.adopted_date is None

    def test_passed_outcome_adopts_non_reading(self, db, store_meeting, today):
        store_meeting(101, date(2025, 3, 3), [("Consider Ordinance 731: fee schedule", "passed")])

        OrdinanceLinker(db, today=today).link_all()

        ordinance = db.ordinances.get_by_number("731")
        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 3, 3)
        assert ordinance.title == "Fee schedule"

    def test_library_adoption_without_date_gets_link_date(self, db, store_meeting, today):
        linker = OrdinanceLinker(db, today=today)
        linker.sync_library([library_entry("724")])
        store_meeting(102, date(2025, 1, 20), [SECOND_724])

        result = linker.link_all()

        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 1, 20)
        assert result.adopted_dates_updated == 1
        assert result.status_changes == 0


class TestLibrarySync:
    def test_library_updates_provisional_row(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        linker = OrdinanceLinker(db, today=today)
        linker.link_all()

        result = linker.sync_library([library_entry("724"), library_entry("725", "1300002")])

        assert (result.seen, result.created, result.updated) == (2, 1, 1)
        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.verified
        assert ordinance.status == "adopted"
        assert ordinance.node_id == "1300001"
        assert ordinance.title == "Ordinance No. 724"
        assert db.ordinances.count() == 2

    def test_library_does_not_override_tabled(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [("Second Reading of Ordinance 730 sign rules", "tabled")])
        linker = OrdinanceLinker(db, today=today)
        linker.link_all()

        linker.sync_library([library_entry("730")])

        assert db.ordinances.get_by_number("730").status == "tabled"


class TestSupplementHistory:
    def test_existing_ordinance_codified(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        linker = OrdinanceLinker(db, today=today)
        linker.link_all()

        result = linker.apply_supplement_history(
            [SupplementEntry(number="724", disposition="codified", entry_date=date(2025, 2, 1), supplement="12")]
        )

        assert (result.updated, result.created) == (1, 0)
        ordinance = db.ordinances.get_by_number("724")
        assert ordinance.disposition == "codified"
        assert ordinance.verified
        assert ordinance.status == "adopted"
        assert ordinance.adopted_date == date(2025, 2, 1)

    def test_unknown_number_created(self, db, today):
        result = OrdinanceLinker(db, today=today).apply_supplement_history(
            [SupplementEntry(number="800", disposition="omit", entry_date=date(2024, 11, 4))]
        )

        assert result.created == 1
        ordinance = db.ordinances.get_by_number("800")
        assert ordinance.title == "Ordinance 800"
        assert ordinance.disposition == "omit"
        assert ordinance.adopted_date == date(2024, 11, 4)

    def test_existing_adopted_date_kept(self, db, store_meeting, today):
        store_meeting(101, date(2025, 1, 6), [FIRST_724])
        store_meeting(102, date(2025, 1, 20), [SECOND_724])
        linker = OrdinanceLinker(db, today=today)
        linker.link_all()

        linker.apply_supplement_history(
            [SupplementEntry(number="724", disposition="codified", entry_date=date(2025, 3, 1))]
        )

        assert db.ordinances.get_by_number("724").adopted_date == date(2025, 1, 20)
