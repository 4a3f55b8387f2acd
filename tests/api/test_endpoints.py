from datetime import timedelta

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone

from events import services as event_services
from hierarchy.models import EmployeeMaster, FtthOrderPending, KamEbGold
from issues.models import Issue
from resources.models import Resource
from sales.models import SalesReport


def as_employee(client, employee):
    client.credentials(HTTP_X_EMPLOYEE_ID=str(employee.pk))
    return client


@pytest.fixture
def staffed_event(dgm_user, staff_user, sim_stock, session_for):
    now = timezone.now()
    event = event_services.create_event(
        session_for(dgm_user),
        allocated_sim=10,
        name="Ugadi Expo",
        location="Freedom Park, Bengaluru",
        circle="KARNATAKA",
        zone="Bengaluru",
        start_date=now - timedelta(hours=2),
        end_date=now + timedelta(days=1),
        category="FAIR",
    )
    event_services.assign_team_member(session_for(dgm_user), event.pk, staff_user, 5, 0)
    return event


def _event_payload(**overrides):
    now = timezone.now()
    payload = {
        "name": "Rajyotsava Stall",
        "location": "Hubballi Market",
        "circle": "KARNATAKA",
        "zone": "Hubballi",
        "start_date": now.isoformat(),
        "end_date": (now + timedelta(days=3)).isoformat(),
        "category": "FAIR",
    }
    payload.update(overrides)
    return payload


@pytest.mark.django_db
class TestEventEndpoints:
    def test_staff_cannot_create_events(self, api_client, staff_user):
        response = as_employee(api_client, staff_user).post("/api/v1/events/", _event_payload(), format="json")
        assert response.status_code == 403
        assert response.json()["code"] == "FORBIDDEN"

    def test_manager_creates_event_and_reserves_stock(self, api_client, dgm_user, sim_stock):
        response = as_employee(api_client, dgm_user).post(
            "/api/v1/events/", _event_payload(allocated_sim=40), format="json",
        )
        assert response.status_code == 201
        assert response.json()["allocated_sim"] == 40
        sim_stock.refresh_from_db()
        assert sim_stock.allocated == 40
        assert sim_stock.remaining == 100

    def test_insufficient_stock_is_a_bad_request(self, api_client, dgm_user, sim_stock):
        response = as_employee(api_client, dgm_user).post(
            "/api/v1/events/", _event_payload(allocated_sim=500), format="json",
        )
        assert response.status_code == 400
        body = response.json()
        assert body["code"] == "BAD_REQUEST"
        assert body["detail"].startswith("Insufficient SIM resources.")

    def test_deleting_twice_conflicts(self, api_client, dgm_user, staffed_event):
        client = as_employee(api_client, dgm_user)
        first = client.delete(f"/api/v1/events/{staffed_event.pk}/")
        assert first.status_code == 200
        assert first.json()["status"] == "cancelled"

        second = client.delete(f"/api/v1/events/{staffed_event.pk}/")
        assert second.status_code == 409
        assert second.json()["code"] == "CONFLICT"

    def test_staff_submits_sales_within_target(self, api_client, staff_user, staffed_event):
        client = as_employee(api_client, staff_user)
        response = client.post(
            f"/api/v1/events/{staffed_event.pk}/submit-sales/",
            {"sims_sold": 3, "customer_type": "B2C"},
            format="json",
        )
        assert response.status_code == 201
        assert response.json()["assignment"]["sim_sold"] == 3

        over = client.post(
            f"/api/v1/events/{staffed_event.pk}/submit-sales/",
            {"sims_sold": 3, "customer_type": "B2C"},
            format="json",
        )
        assert over.status_code == 400
        assert over.json()["detail"] == "Cannot submit 3 SIMs. Only 2 remaining in your target."

    def test_events_are_hidden_from_unassigned_staff(self, api_client, other_staff_user, staffed_event):
        response = as_employee(api_client, other_staff_user).get("/api/v1/events/")
        assert response.status_code == 200
        assert response.json()["count"] == 0


@pytest.mark.django_db
class TestResourceEndpoints:
    def test_update_stock_requires_stock_permission(self, api_client, agm_user, sim_stock):
        response = as_employee(api_client, agm_user).post(
            "/api/v1/resources/update-stock/",
            {"circle": "KARNATAKA", "type": "SIM", "total": 200},
            format="json",
        )
        assert response.status_code == 403

    def test_dgm_updates_stock(self, api_client, dgm_user, sim_stock):
        response = as_employee(api_client, dgm_user).post(
            "/api/v1/resources/update-stock/",
            {"circle": "KARNATAKA", "type": "SIM", "total": 200},
            format="json",
        )
        assert response.status_code == 200
        assert response.json()["remaining"] == 200
        assert Resource.objects.get(pk=sim_stock.pk).total == 200


@pytest.mark.django_db
class TestSalesReportEndpoints:
    def test_second_approval_conflicts(self, api_client, agm_user, staff_user, event):
        report = SalesReport.objects.create(
            event=event, sales_staff=staff_user, sims_sold=4, customer_type="B2C",
        )
        client = as_employee(api_client, agm_user)
        first = client.post(f"/api/v1/sales-reports/{report.pk}/approve/", {}, format="json")
        assert first.status_code == 200
        assert first.json()["status"] == "approved"

        second = client.post(f"/api/v1/sales-reports/{report.pk}/approve/", {}, format="json")
        assert second.status_code == 409


@pytest.mark.django_db
class TestIssueEndpoints:
    def test_raise_and_escalate(self, api_client, staff_user, agm_user, staffed_event):
        client = as_employee(api_client, staff_user)
        created = client.post(
            "/api/v1/issues/",
            {"event_id": str(staffed_event.pk), "type": "MATERIAL_SHORTAGE", "description": "Out of SIM kits"},
            format="json",
        )
        assert created.status_code == 201
        issue_id = created.json()["id"]

        escalated = client.post(
            f"/api/v1/issues/{issue_id}/escalate/",
            {"escalated_to_id": str(agm_user.pk)},
            format="json",
        )
        assert escalated.status_code == 200
        assert Issue.objects.get(pk=issue_id).status == Issue.Status.IN_PROGRESS

        unread = as_employee(api_client, agm_user).get("/api/v1/notifications/unread-count/")
        assert unread.json()["count"] >= 1


@pytest.mark.django_db
class TestAdminEndpoints:
    def test_olt_import_is_admin_only(self, api_client, gm_user):
        response = as_employee(api_client, gm_user).post(
            "/api/v1/admin/olt/import/", {"csv_text": "PER_NO,OLT_IP\n90001,10.0.0.1\n"}, format="json",
        )
        assert response.status_code == 403

    def test_olt_import_and_export(self, api_client, admin_user):
        client = as_employee(api_client, admin_user)
        response = client.post(
            "/api/v1/admin/olt/import/",
            {"csv_text": "PER_NO,OLT_IP\n90001,10.0.0.1\n90001,10.0.0.2\n90001,10.0.0.1\n"},
            format="json",
        )
        assert response.status_code == 201
        assert response.json()["imported"] == 2
        assert response.json()["skipped"] == 1

        export = client.get("/api/v1/admin/olt/export/")
        assert export.status_code == 200
        assert export["Content-Type"].startswith("text/csv")
        assert b"90001" in export.content

    def test_employee_master_upload_and_lookup(self, api_client, admin_user):
        client = as_employee(api_client, admin_user)
        upload = SimpleUploadedFile(
            "master.csv",
            b"pers_no,name,designation,circle\n501,Kavya Rao,JTO,Karnataka\n",
            content_type="text/csv",
        )
        response = client.post("/api/v1/admin/employee-master/import/", {"file": upload}, format="multipart")
        assert response.status_code == 201
        assert response.json()["imported"] == 1
        assert EmployeeMaster.objects.filter(pers_no="501").exists()

        found = client.get("/api/v1/admin/employee-master/501/")
        assert found.status_code == 200
        assert found.json()["name"] == "Kavya Rao"

        missing = client.get("/api/v1/admin/employee-master/999/")
        assert missing.status_code == 404
        assert missing.json()["code"] == "NOT_FOUND"

    def test_kam_lookup_by_pers_no(self, api_client, admin_user):
        KamEbGold.objects.create(pers_no="7001", name="Meera Kam", total_leads=4)
        client = as_employee(api_client, admin_user)
        assert client.get("/api/v1/admin/kam/7001/").json()["name"] == "Meera Kam"
        assert client.get("/api/v1/admin/kam/7999/").status_code == 404

    def test_ftth_pending_is_refused_to_staff(self, api_client, staff_user):
        response = as_employee(api_client, staff_user).get("/api/v1/admin/ftth-pending/summary/")
        assert response.status_code == 403

    def test_ftth_pending_import_lookup_and_reset(self, api_client, agm_user):
        client = as_employee(api_client, agm_user)
        upload = SimpleUploadedFile(
            "pending.csv",
            b"PERS_NO,BA,Total FTTH Orders Pending\n00123,Mysuru,7\n123,Mandya,3\n",
            content_type="text/csv",
        )
        response = client.post("/api/v1/admin/ftth-pending/import/", {"file": upload}, format="multipart")
        assert response.status_code == 201
        assert response.json()["imported"] == 2

        found = client.get("/api/v1/admin/ftth-pending/0123/")
        assert [row["ba"] for row in found.json()] == ["Mandya", "Mysuru"]
        assert client.get("/api/v1/admin/ftth-pending/summary/").json()["total_pending_orders"] == 10

        upsert = client.post(
            "/api/v1/admin/ftth-pending/upsert/",
            {"pers_no": "123", "ba": "Mysuru", "total_ftth_orders_pending": 1},
            format="json",
        )
        assert upsert.status_code == 200
        assert upsert.json()["operation"] == "updated"

        refused = client.post("/api/v1/admin/ftth-pending/delete-all/", {"confirm_text": "yes"}, format="json")
        assert refused.status_code == 400
        wiped = client.post(
            "/api/v1/admin/ftth-pending/delete-all/",
            {"confirm_text": "DELETE ALL FTTH PENDING DATA"},
            format="json",
        )
        assert wiped.json() == {"deleted": 2}
        assert not FtthOrderPending.objects.exists()


@pytest.mark.django_db
def test_my_hierarchy_lists_the_reporting_chain(api_client, staff_user):
    EmployeeMaster.objects.create(pers_no="100", name="Top Manager", designation="GM")
    EmployeeMaster.objects.create(pers_no="200", name="Middle Manager", reporting_pers_no="100")
    EmployeeMaster.objects.create(pers_no="300", name="Field Jto", reporting_pers_no="200")
    client = as_employee(api_client, staff_user)
    assert client.post("/api/v1/hierarchy/link-profile/", {"pers_no": "300"}, format="json").status_code == 200

    body = client.get("/api/v1/hierarchy/me/").json()

    assert body["manager"]["pers_no"] == "200"
    assert [row["pers_no"] for row in body["chain"]] == ["200", "100"]
