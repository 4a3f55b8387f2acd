from decimal import Decimal

import pytest

from hierarchy.models import EmployeeMaster, KamEbGold, OltAssignment
from hierarchy.services import (
    clear_unlinked_employee_master,
    delete_employee_master,
    direct_report_employees,
    employee_master_stats,
    get_manager,
    get_reporting_chain,
    get_subordinate_tree,
    import_employee_master,
    import_kam_eb_gold,
    import_olt_assignments,
    kam_report,
    kam_summary,
    link_profile,
    my_hierarchy,
    olt_for_pers_no,
    olt_report,
    olt_summary,
    parse_olt_csv,
    subordinate_employee_ids,
)


def _master(pers_no, name, reporting="", **extra):
    return EmployeeMaster.objects.create(pers_no=pers_no, name=name, reporting_pers_no=reporting, **extra)


@pytest.fixture
def org(db):
    """GM 100 <- DGM 200 <- JTO 300."""
    return {
        "100": _master("100", "Top Manager", circle="Karnataka Telecom Circle", designation="GM"),
        "200": _master("200", "Middle Manager", "100", zone="Mysuru", designation="DGM"),
        "300": _master("300", "Field Jto", "200", designation="JTO"),
    }


@pytest.mark.django_db
class TestResolution:
    def test_manager_and_chain(self, org):
        assert get_manager("300").pers_no == "200"
        assert [m.pers_no for m in get_reporting_chain("300")] == ["200", "100"]
        assert get_manager("100") is None

    def test_self_reporting_has_no_manager(self, db):
        _master("1", "Loop", "1")
        assert get_manager("1") is None
        assert get_reporting_chain("1") == []

    def test_cycles_terminate(self, db):
        _master("A", "Alpha", "B")
        _master("B", "Beta", "A")

        assert [m.pers_no for m in get_reporting_chain("A")] == ["B"]
        tree = get_subordinate_tree("A", depth=10)
        assert [node["master"].pers_no for node in tree] == ["B"]
        assert tree[0]["children"] == []

    def test_depth_is_capped(self, db, settings):
        settings.HIERARCHY_MAX_DEPTH = 3
        _master("L0", "Level 0")
        for level in range(1, 8):
            _master(f"L{level}", f"Level {level}", f"L{level - 1}")

        assert len(get_reporting_chain("L7")) == 3
        tree = get_subordinate_tree("L0", depth=50)
        depth = 0
        while tree:
            depth += 1
            tree = tree[0]["children"]
        assert depth == 3

    def test_subordinate_ids_survive_reporting_cycles(self, agm_user, staff_user):
        staff_user.reporting_officer = agm_user
        staff_user.save()
        agm_user.reporting_officer = staff_user
        agm_user.save()

        assert set(subordinate_employee_ids(agm_user)) == {agm_user.pk, staff_user.pk}
        assert subordinate_employee_ids(agm_user, include_self=False) == [staff_user.pk]


@pytest.mark.django_db
class TestLinkProfile:
    def test_link_sets_purse_id_and_reporting_officer(self, org, gm_user, staff_user):
        link_profile(gm_user, "100")
        master = link_profile(staff_user, " 200 ")

        staff_user.refresh_from_db()
        assert master.is_linked is True
        assert master.linked_employee == staff_user
        assert staff_user.pers_no == "200"
        assert staff_user.reporting_officer == gm_user
        assert staff_user.zone == "Mysuru"
        assert staff_user.designation == "DGM"

    def test_linking_reparents_existing_subordinates(self, org, jto_user, staff_user):
        link_profile(jto_user, "300")
        link_profile(staff_user, "200")

        jto_user.refresh_from_db()
        assert jto_user.reporting_officer == staff_user
        assert list(direct_report_employees("200")) == [jto_user]

    def test_circle_is_normalized(self, org, gm_user):
        link_profile(gm_user, "100")
        gm_user.refresh_from_db()
        assert gm_user.circle == "KARNATAKA"

    def test_unknown_purse_id(self, org, staff_user):
        with pytest.raises(ValueError, match="not found"):
            link_profile(staff_user, "999")

    def test_purse_id_already_taken(self, org, gm_user, staff_user):
        link_profile(gm_user, "100")
        with pytest.raises(ValueError, match="already linked"):
            link_profile(staff_user, "100")

    def test_relinking_releases_previous_record(self, org, staff_user):
        link_profile(staff_user, "200")
        link_profile(staff_user, "300")
        assert EmployeeMaster.objects.get(pers_no="200").is_linked is False
        assert EmployeeMaster.objects.get(pers_no="300").linked_employee == staff_user

    def test_my_hierarchy(self, org, staff_user):
        assert my_hierarchy(staff_user)["is_linked"] is False
        assert my_hierarchy(staff_user)["chain"] == []
        link_profile(staff_user, "200")
        staff_user.refresh_from_db()

        result = my_hierarchy(staff_user)
        assert result["is_linked"] is True
        assert result["manager"].pers_no == "100"
        assert [m.pers_no for m in result["chain"]] == ["100"]
        assert [s.pers_no for s in result["subordinates"]] == ["300"]


@pytest.mark.django_db
class TestEmployeeMasterAdmin:
    def test_import_upserts_and_reports_bad_rows(self, admin_user):
        rows = [
            {"Pers No": "501", "Employee Name": "Asha", "Circle": "Kerala", "RO Pers No": "500", "Sort": "2"},
            {"Pers No": "", "Employee Name": "Nobody", "Circle": "", "RO Pers No": "", "Sort": ""},
            {"Pers No": "502", "Employee Name": "Binu", "Circle": "Kerala", "RO Pers No": "501", "Sort": "x"},
        ]
        result = import_employee_master(rows, admin_user)

        assert result == {
            "imported": 1,
            "updated": 0,
            "errors": ["Row 3: pers_no and name are required.", "Row 4 (502): Invalid sort_order: x"],
            "total": 3,
        }
        master = EmployeeMaster.objects.get(pers_no="501")
        assert master.reporting_pers_no == "500"
        assert master.sort_order == 2

        again = import_employee_master([{"PERS_NO": "501", "Name": "Asha K"}], admin_user)
        assert again["updated"] == 1
        assert EmployeeMaster.objects.get(pers_no="501").name == "Asha K"

    def test_delete_and_clear(self, org, admin_user, staff_user):
        link_profile(staff_user, "300")
        with pytest.raises(ValueError, match="Unlink first"):
            delete_employee_master("300", admin_user)

        delete_employee_master("100", admin_user)
        assert employee_master_stats() == {"total": 2, "linked": 1, "unlinked": 1}
        assert clear_unlinked_employee_master(admin_user) == 1
        assert list(EmployeeMaster.objects.values_list("pers_no", flat=True)) == ["300"]


@pytest.mark.django_db
class TestOlt:
    def test_header_is_optional(self):
        assert parse_olt_csv("1001,10.0.0.1\n") == [(1, "1001", "10.0.0.1")]
        assert parse_olt_csv('PER_NO,OLT_IP\n"1001","10.0.0.1"') == [(2, "1001", "10.0.0.1")]

    def test_every_line_lands_in_one_bucket(self, admin_user):
        text = "PER_NO,OLT_IP\n1001,10.0.0.1\n1001,10.0.0.1\n1002,\n1003,10.0.0.3\n"

        result = import_olt_assignments(text, admin_user)

        assert result["imported"] == 2
        assert result["skipped"] == 1
        assert len(result["errors"]) == 1
        assert result["imported"] + result["skipped"] + len(result["errors"]) == result["total"] == 4

        again = import_olt_assignments(text, admin_user)
        assert again["imported"] == 0
        assert again["skipped"] == 3
        assert OltAssignment.objects.count() == 2

    def test_report_groups_by_purse_id(self, admin_user):
        _master("1001", "Ravi")
        import_olt_assignments("1001,10.0.0.2\n1001,10.0.0.1\n1002,10.0.0.9", admin_user)

        report = olt_report()
        assert report["total"] == 2
        assert report["results"][0] == {
            "pers_no": "1001",
            "name": "Ravi",
            "olt_ips": ["10.0.0.1", "10.0.0.2"],
            "olt_count": 2,
        }
        assert olt_report(search="02")["total"] == 1
        assert olt_summary() == {"total_records": 3, "unique_personnel": 2, "unique_olt_ips": 3}
        assert olt_for_pers_no("1002") == ["10.0.0.9"]


@pytest.mark.django_db
class TestKam:
    def test_import_report_and_summary(self, admin_user):
        rows = [
            {"PERS_NO": "7001", "Name": "Kavya", "EB Exclusive": "Yes", "Total Leads": "12",
             "Total Lead Value (Crore)": "1,250.5", "Total Sales Visit": "30"},
            {"PERS_NO": "7002", "Name": "Manoj", "EB Exclusive": "no", "Total Leads": "4",
             "Total Lead Value (Crore)": "3.25", "Total Sales Visit": "5"},
            {"PERS_NO": "7003", "Name": "Broken", "EB Exclusive": "", "Total Leads": "many",
             "Total Lead Value (Crore)": "", "Total Sales Visit": ""},
        ]
        result = import_kam_eb_gold(rows, admin_user)

        assert result["imported"] == 2
        assert result["errors"] == ["Row 4 (7003): Invalid total_leads: many"]
        assert KamEbGold.objects.get(pers_no="7001").total_lead_value_crore == Decimal("1250.5")

        report = kam_report(sort_by="total_leads", sort_order="asc")
        assert [r.pers_no for r in report["results"]] == ["7002", "7001"]
        assert kam_report(eb_exclusive="Yes")["total"] == 1

        summary = kam_summary()
        assert summary["total_personnel"] == 2
        assert summary["eb_exclusive_count"] == 1
        assert summary["total_leads"] == 16

    def test_invalid_sort_field(self):
        with pytest.raises(ValueError, match="sort_by must be one of"):
            kam_report(sort_by="name")
