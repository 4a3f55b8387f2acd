import pytest
from django.core.exceptions import PermissionDenied

from core.models import AuditLog
from hierarchy.models import EmployeeMaster, FtthOrderPending
from hierarchy.services import (
    delete_all_ftth_pending,
    employees_with_ftth_pending,
    ftth_pending_for_pers_no,
    ftth_pending_list,
    ftth_pending_summary,
    import_ftth_pending,
    normalize_ftth_pers_no,
    upsert_ftth_pending,
)

ROWS = [
    {"PERS_NO": "00123", "BA": "Mysuru", "Total FTTH Orders Pending": "7"},
    {"PERS_NO": "123", "BA": "Mandya", "Total FTTH Orders Pending": "3"},
    {"PERS_NO": "456", "BA": "Mysuru", "Total FTTH Orders Pending": "12"},
    {"PERS_NO": "", "BA": "Hassan", "Total FTTH Orders Pending": "1"},
    {"PERS_NO": "789", "BA": "Hassan", "Total FTTH Orders Pending": "lots"},
]


@pytest.mark.parametrize(
    "raw, expected",
    [("00123", "123"), (" 123 ", "123"), ("000", "000"), ("", "")],
)
def test_normalize_pers_no_strips_leading_zeros(raw, expected):
    assert normalize_ftth_pers_no(raw) == expected


@pytest.mark.django_db
class TestImport:
    def test_rows_are_loaded_skipped_or_reported(self, dgm_user, session_for):
        result = import_ftth_pending(session_for(dgm_user), ROWS)

        assert result["imported"] == 3
        assert result["updated"] == 0
        assert result["skipped"] == 1
        assert result["errors"] == ["Row 6 (789): Invalid total_ftth_orders_pending: lots"]
        assert result["total"] == 5
        assert FtthOrderPending.objects.get(pers_no="123", ba="Mysuru").total_ftth_orders_pending == 7
        assert AuditLog.objects.filter(action="IMPORT_FTTH_PENDING").exists()

    def test_reimport_updates_counts(self, dgm_user, session_for):
        import_ftth_pending(session_for(dgm_user), ROWS[:1])
        result = import_ftth_pending(
            session_for(dgm_user), [{"pers_no": "123", "ba": "Mysuru", "pending": "2"}],
        )

        assert result["updated"] == 1
        assert FtthOrderPending.objects.get().total_ftth_orders_pending == 2

    def test_clear_existing_wipes_old_rows(self, dgm_user, session_for):
        import_ftth_pending(session_for(dgm_user), ROWS)
        import_ftth_pending(session_for(dgm_user), ROWS[2:3], clear_existing=True)

        assert list(FtthOrderPending.objects.values_list("pers_no", flat=True)) == ["456"]

    @pytest.mark.parametrize("fixture", ["staff_user", "jto_user"])
    def test_non_management_roles_are_refused(self, request, fixture, session_for):
        employee = request.getfixturevalue(fixture)
        with pytest.raises(PermissionDenied):
            import_ftth_pending(session_for(employee), ROWS)
        assert not FtthOrderPending.objects.exists()


@pytest.mark.django_db
class TestReports:
    @pytest.fixture(autouse=True)
    def loaded(self, agm_user, session_for):
        import_ftth_pending(session_for(agm_user), ROWS)
        EmployeeMaster.objects.create(pers_no="456", name="Latha Je", designation="JE", circle="KARNATAKA")

    def test_lookup_normalizes_the_purse_id(self):
        records = ftth_pending_for_pers_no("000123")
        assert [(r.ba, r.total_ftth_orders_pending) for r in records] == [("Mandya", 3), ("Mysuru", 7)]

    def test_list_is_paginated(self):
        records, pagination = ftth_pending_list(page=2, limit=2)

        assert len(records) == 1
        assert pagination == {
            "page": 2,
            "limit": 2,
            "total": 3,
            "total_pages": 2,
            "has_next_page": False,
            "has_prev_page": True,
        }

    def test_summary(self):
        assert ftth_pending_summary() == {
            "total_records": 3,
            "total_pending_orders": 22,
            "unique_employees": 2,
            "unique_bas": 2,
        }

    def test_employees_ranked_by_pending_with_master_details(self):
        employees, pagination = employees_with_ftth_pending()

        assert pagination["total"] == 2
        first, second = employees
        assert (first["pers_no"], first["name"], first["total_pending"], first["ba_count"]) == ("456", "Latha Je", 12, 1)
        assert (second["pers_no"], second["name"], second["designation"]) == ("123", "Unknown", "N/A")
        assert second["total_pending"] == 10
        assert second["ba_count"] == 2


@pytest.mark.django_db
class TestEdits:
    def test_upsert_creates_then_updates(self, gm_user, session_for):
        record, created = upsert_ftth_pending(session_for(gm_user), "0042", " Udupi ", 5)
        assert created is True
        assert (record.pers_no, record.ba) == ("42", "Udupi")

        record, created = upsert_ftth_pending(session_for(gm_user), "42", "Udupi", 1)
        assert created is False
        assert FtthOrderPending.objects.get().total_ftth_orders_pending == 1

    def test_upsert_validation(self, gm_user, session_for):
        with pytest.raises(ValueError, match="BA is required"):
            upsert_ftth_pending(session_for(gm_user), "42", "  ", 1)
        with pytest.raises(ValueError, match="non-negative"):
            upsert_ftth_pending(session_for(gm_user), "42", "Udupi", -1)

    def test_delete_all_requires_confirmation(self, gm_user, session_for):
        upsert_ftth_pending(session_for(gm_user), "42", "Udupi", 5)

        with pytest.raises(ValueError, match="to confirm"):
            delete_all_ftth_pending(session_for(gm_user), "yes please")
        assert FtthOrderPending.objects.count() == 1

        assert delete_all_ftth_pending(session_for(gm_user), "DELETE ALL FTTH PENDING DATA") == 1
        assert not FtthOrderPending.objects.exists()

    def test_staff_cannot_delete(self, staff_user, session_for):
        with pytest.raises(PermissionDenied):
            delete_all_ftth_pending(session_for(staff_user), "DELETE ALL FTTH PENDING DATA")
