from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied

from core.exceptions import ConflictError
from events.models import Event, EventAssignment
from notifications.models import Notification
from sales.models import FinanceCollectionEntry, SalesReport
from sales.services import (
    approve_report,
    bulk_approve,
    by_type,
    create_report,
    event_summary,
    finance_summary,
    reject_report,
    submit_finance_collection,
    update_report,
    visible_employee_ids,
    visible_reports,
)


@pytest.fixture
def report(staff_user, session_for, event):
    return create_report(
        session_for(staff_user),
        event,
        sims_sold=4,
        sims_activated=3,
        ftth_leads=2,
        ftth_installed=1,
        customer_type=SalesReport.CustomerType.B2C,
    )


@pytest.mark.django_db
class TestReportLifecycle:
    def test_create_is_pending_and_notifies_event_owner(self, report, dgm_user):
        assert report.status == SalesReport.Status.PENDING
        assert Notification.objects.filter(recipient=dgm_user, type=Notification.Type.TASK_SUBMITTED).exists()

    def test_invalid_customer_type(self, staff_user, session_for, event):
        with pytest.raises(ValueError, match="Invalid customer type"):
            create_report(session_for(staff_user), event, customer_type="Alien")

    def test_approve(self, report, agm_user, staff_user, session_for):
        report = approve_report(session_for(agm_user), report.pk, "Good work")

        assert report.status == SalesReport.Status.APPROVED
        assert report.reviewed_by == agm_user
        assert report.reviewed_at is not None
        assert report.review_remarks == "Good work"
        assert Notification.objects.filter(recipient=staff_user, type=Notification.Type.TASK_APPROVED).exists()

    def test_reviewing_terminal_report_conflicts(self, report, agm_user, session_for):
        approve_report(session_for(agm_user), report.pk)
        with pytest.raises(ConflictError, match="already approved"):
            reject_report(session_for(agm_user), report.pk, "Too late")
        with pytest.raises(ConflictError):
            approve_report(session_for(agm_user), report.pk)

    def test_reject_requires_remarks(self, report, agm_user, session_for):
        with pytest.raises(ValueError, match="Remarks are required"):
            reject_report(session_for(agm_user), report.pk, "  ")
        report.refresh_from_db()
        assert report.status == SalesReport.Status.PENDING

    def test_reject(self, report, agm_user, staff_user, session_for):
        report = reject_report(session_for(agm_user), report.pk, "Photos missing")
        assert report.status == SalesReport.Status.REJECTED
        assert Notification.objects.filter(recipient=staff_user, type=Notification.Type.TASK_REJECTED).exists()

    def test_staff_cannot_review(self, report, other_staff_user, session_for):
        with pytest.raises(PermissionDenied):
            approve_report(session_for(other_staff_user), report.pk)

    def test_author_edits_pending_report(self, report, staff_user, session_for):
        report = update_report(session_for(staff_user), report.pk, sims_sold=6)
        assert report.sims_sold == 6

    def test_other_staff_cannot_edit(self, report, other_staff_user, session_for):
        with pytest.raises(PermissionDenied):
            update_report(session_for(other_staff_user), report.pk, sims_sold=6)

    def test_terminal_report_cannot_be_edited(self, report, agm_user, staff_user, session_for):
        approve_report(session_for(agm_user), report.pk)
        with pytest.raises(ConflictError):
            update_report(session_for(staff_user), report.pk, sims_sold=6)


@pytest.mark.django_db
class TestBulkApprove:
    def test_only_pending_reports_change(self, staff_user, agm_user, session_for, event):
        session = session_for(staff_user)
        reports = [
            create_report(session, event, sims_sold=n, customer_type="B2C")
            for n in (1, 2, 3)
        ]
        reject_report(session_for(agm_user), reports[0].pk, "Duplicate")

        count = bulk_approve(session_for(agm_user), [r.pk for r in reports])

        assert count == 2
        statuses = dict(SalesReport.objects.values_list("pk", "status"))
        assert statuses[reports[0].pk] == SalesReport.Status.REJECTED
        assert statuses[reports[1].pk] == SalesReport.Status.APPROVED
        assert SalesReport.objects.get(pk=reports[2].pk).review_remarks == "Bulk approved"


@pytest.mark.django_db
class TestVisibility:
    def test_staff_only_see_their_own(self, report, other_staff_user, session_for):
        assert list(visible_reports(session_for(other_staff_user))) == []

    def test_approvers_see_their_circle(self, report, agm_user, session_for, event_factory, other_staff_user):
        kerala_event = event_factory(name="Onam", circle="KERALA")
        create_report(session_for(other_staff_user), kerala_event, customer_type="B2C")

        assert list(visible_reports(session_for(agm_user))) == [report]

    def test_gm_sees_every_circle(self, report, gm_user, session_for, event_factory, other_staff_user):
        kerala_event = event_factory(name="Onam", circle="KERALA")
        create_report(session_for(other_staff_user), kerala_event, customer_type="B2C")
        assert visible_reports(session_for(gm_user)).count() == 2

    def test_visible_employee_ids(self, admin_user, agm_user, staff_user, session_for):
        staff_user.reporting_officer = agm_user
        staff_user.save()

        assert visible_employee_ids(session_for(admin_user)) is None
        assert set(visible_employee_ids(session_for(agm_user))) == {agm_user.pk, staff_user.pk}
        assert visible_employee_ids(session_for(staff_user)) == [staff_user.pk]

    def test_event_summary(self, report, event):
        summary = event_summary(event)
        assert summary["total_sims_sold"] == 4
        assert summary["report_count"] == 1


@pytest.mark.django_db
class TestFinanceCollections:
    @pytest.fixture
    def team_event(self, event, staff_user):
        EventAssignment.objects.create(event=event, employee=staff_user)
        return event

    def test_collection_increments_event_counter(self, team_event, staff_user, session_for):
        entry = submit_finance_collection(
            session_for(staff_user), team_event.pk, "FIN_LC", "1500.50", payment_mode="UPI",
        )

        team_event.refresh_from_db()
        assert entry.payment_mode == FinanceCollectionEntry.PaymentMode.UPI
        assert team_event.fin_lc_collected == Decimal("1500.50")

    def test_non_positive_amount_rejected(self, team_event, staff_user, session_for):
        with pytest.raises(ValueError, match="positive"):
            submit_finance_collection(session_for(staff_user), team_event.pk, "FIN_LC", 0)

    def test_unknown_type_rejected(self, team_event, staff_user, session_for):
        with pytest.raises(ValueError, match="Invalid finance type"):
            submit_finance_collection(session_for(staff_user), team_event.pk, "FIN_MOON", 10)

    def test_closed_event_conflicts(self, team_event, staff_user, session_for):
        Event.objects.filter(pk=team_event.pk).update(status=Event.Status.CANCELLED)
        with pytest.raises(ConflictError):
            submit_finance_collection(session_for(staff_user), team_event.pk, "FIN_LC", 10)

    def test_outsider_refused(self, team_event, other_staff_user, session_for):
        with pytest.raises(ValueError, match="not assigned"):
            submit_finance_collection(session_for(other_staff_user), team_event.pk, "FIN_LC", 10)

    def test_summary_totals(self, team_event, staff_user, admin_user, session_for):
        Event.objects.filter(pk=team_event.pk).update(target_fin_tower=Decimal("1000.00"))
        session = session_for(staff_user)
        submit_finance_collection(session, team_event.pk, "FIN_TOWER", 250)
        submit_finance_collection(session, team_event.pk, "FIN_TOWER", 150)

        summary = finance_summary(session_for(admin_user))

        assert summary["total_collected"] == Decimal("400")
        assert summary["entries"] == 2
        assert summary["by_type"]["FIN_TOWER"]["target"] == Decimal("1000.00")


@pytest.mark.django_db
def test_by_type_lists_assignments_with_sales(event, staff_user, other_staff_user, session_for, admin_user):
    EventAssignment.objects.create(event=event, employee=staff_user, sim_target=5, sim_sold=2)
    EventAssignment.objects.create(event=event, employee=other_staff_user, ftth_target=5, ftth_sold=1)

    assert [a.employee for a in by_type(session_for(admin_user), "sim")] == [staff_user]
    assert list(by_type(session_for(other_staff_user), "sim")) == []
    with pytest.raises(ValueError):
        by_type(session_for(admin_user), "fiber")
