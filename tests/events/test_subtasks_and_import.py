from datetime import timedelta

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from events.models import Event, EventAssignment, EventSubtask
from events.services import create_subtask, delete_subtask, import_events, update_subtask
from hierarchy.models import EmployeeMaster
from notifications.models import Notification


@pytest.mark.django_db
class TestSubtasks:
    def test_create_by_pers_no_auto_assigns_to_team(self, jto_user, staff_user, session_for, event):
        subtask = create_subtask(
            session_for(jto_user),
            event.pk,
            "  Set up the stall  ",
            staff_pers_no="90001",
            priority=EventSubtask.Priority.HIGH,
        )

        assert subtask.title == "Set up the stall"
        assert subtask.assigned_to == staff_user
        assert EventAssignment.objects.filter(event=event, employee=staff_user).exists()
        assert Notification.objects.filter(
            recipient=staff_user, type=Notification.Type.SUBTASK_ASSIGNED,
        ).exists()

    def test_blank_title_rejected(self, jto_user, session_for, event):
        with pytest.raises(ValueError, match="title is required"):
            create_subtask(session_for(jto_user), event.pk, "   ")

    def test_assignee_completes_and_creator_is_notified(self, jto_user, staff_user, session_for, event):
        subtask = create_subtask(session_for(jto_user), event.pk, "Collect forms", assigned_to=staff_user)

        subtask = update_subtask(session_for(staff_user), subtask.pk, status=EventSubtask.Status.COMPLETED)

        assert subtask.completed_at is not None
        assert subtask.completed_by == staff_user
        assert Notification.objects.filter(
            recipient=jto_user, type=Notification.Type.SUBTASK_COMPLETED,
        ).exists()

    def test_other_staff_cannot_update(self, jto_user, staff_user, other_staff_user, session_for, event):
        subtask = create_subtask(session_for(jto_user), event.pk, "Collect forms", assigned_to=staff_user)
        with pytest.raises(PermissionDenied):
            update_subtask(session_for(other_staff_user), subtask.pk, status=EventSubtask.Status.IN_PROGRESS)

    def test_assignee_cannot_edit_manager_fields(self, jto_user, staff_user, other_staff_user, session_for, event):
        subtask = create_subtask(
            session_for(jto_user), event.pk, "Collect forms", assigned_to=staff_user, sim_allocated=10,
        )
        with pytest.raises(PermissionDenied, match="assigned_to, sim_allocated, title"):
            update_subtask(
                session_for(staff_user),
                subtask.pk,
                title="Renamed",
                assigned_to=other_staff_user,
                sim_allocated=999,
            )

        subtask.refresh_from_db()
        assert subtask.assigned_to == staff_user
        assert subtask.title == "Collect forms"
        assert subtask.sim_allocated == 10

    def test_assignee_reports_progress(self, jto_user, staff_user, session_for, event):
        subtask = create_subtask(
            session_for(jto_user), event.pk, "Collect forms", assigned_to=staff_user, sim_allocated=10,
        )
        subtask = update_subtask(
            session_for(staff_user), subtask.pk, status=EventSubtask.Status.IN_PROGRESS, sim_sold=4,
        )
        assert subtask.status == EventSubtask.Status.IN_PROGRESS
        assert subtask.sim_sold == 4

    def test_completion_stamp_is_kept_on_repeat_and_cleared_on_reopen(
        self, jto_user, staff_user, session_for, event,
    ):
        subtask = create_subtask(session_for(jto_user), event.pk, "Collect forms", assigned_to=staff_user)
        subtask = update_subtask(session_for(staff_user), subtask.pk, status=EventSubtask.Status.COMPLETED)
        first_stamp = subtask.completed_at

        subtask = update_subtask(session_for(jto_user), subtask.pk, status=EventSubtask.Status.COMPLETED)
        assert subtask.completed_at == first_stamp
        assert subtask.completed_by == staff_user

        subtask = update_subtask(session_for(jto_user), subtask.pk, status=EventSubtask.Status.IN_PROGRESS)
        subtask.refresh_from_db()
        assert subtask.completed_at is None
        assert subtask.completed_by is None

    def test_invalid_status_rejected(self, jto_user, session_for, event):
        subtask = create_subtask(session_for(jto_user), event.pk, "Collect forms")
        with pytest.raises(ValueError, match="Invalid status"):
            update_subtask(session_for(jto_user), subtask.pk, status="done")

    def test_delete(self, jto_user, session_for, event):
        subtask = create_subtask(session_for(jto_user), event.pk, "Collect forms")
        delete_subtask(session_for(jto_user), subtask.pk)
        assert not EventSubtask.objects.exists()


def _row(**overrides):
    row = {
        "Event Name": "Hampi Utsav",
        "Location": "Hampi",
        "Circle": "Karnataka",
        "Category": "Festival",
        "Start Date": "2026-11-01",
        "End Date": "2026-11-03",
        "Zone": "Ballari",
    }
    row.update(overrides)
    return row


@pytest.mark.django_db
class TestImportEvents:
    def test_valid_rows_become_drafts_and_bad_rows_are_reported(self, admin_user):
        result = import_events(
            [
                _row(),
                _row(**{"Event Name": "Concert", "Category": "Concert"}),
                _row(**{"Event Name": "Backwards", "End Date": "2026-10-01"}),
                _row(**{"Event Name": "", "Location": ""}),
            ],
            admin_user,
        )

        assert result["imported"] == 1
        assert result["updated"] == 0
        assert result["total"] == 4
        assert len(result["errors"]) == 3
        assert result["errors"][0].startswith('Row 3: Invalid category "Concert"')
        assert result["errors"][1] == "Row 4: End date cannot be before start date"
        event = Event.objects.get(name="Hampi Utsav")
        assert event.status == Event.Status.DRAFT
        assert event.circle == "KARNATAKA"
        assert event.created_by == admin_user

    def test_reimport_updates_existing_event(self, admin_user):
        import_events([_row()], admin_user)
        result = import_events([_row(**{"End Date": "05/11/2026"})], admin_user)

        assert result["imported"] == 0
        assert result["updated"] == 1
        event = Event.objects.get(name="Hampi Utsav")
        assert timezone.localtime(event.end_date).date().isoformat() == "2026-11-05"

    def test_circle_detected_from_location(self, admin_user):
        rows = [{
            "Event Name": "Onam Fair",
            "Location": "Kochi, Kerala",
            "Category": "Fair (Trade)",
            "Start Date": "2026-09-01",
            "End Date": "2026-09-02",
        }]
        result = import_events(rows, admin_user)
        assert result["imported"] == 1
        event = Event.objects.get(name="Onam Fair")
        assert event.circle == "KERALA"
        assert event.category == Event.Category.FAIR
        assert event.zone == "Default"

    def test_circle_detected_from_master_zones(self, admin_user):
        EmployeeMaster.objects.create(pers_no="1", name="Zone Head", circle="Odisha Telecom Circle", zone="Cuttack")
        rows = [{
            "Event Name": "Bali Jatra",
            "Location": "Cuttack riverside",
            "Category": "Cultural",
            "Start Date": "2026-11-10",
            "End Date": "2026-11-17",
        }]
        result = import_events(rows, admin_user)
        assert result["errors"] == []
        assert Event.objects.get(name="Bali Jatra").circle == "ODISHA"

    def test_undetectable_circle_is_an_error(self, admin_user):
        rows = [{
            "Event Name": "Mystery",
            "Location": "Nowhere",
            "Category": "Fair",
            "Start Date": "2026-11-10",
            "End Date": "2026-11-11",
        }]
        result = import_events(rows, admin_user)
        assert result["imported"] == 0
        assert "Could not detect circle" in result["errors"][0]


@pytest.mark.django_db
def test_subtask_due_dates_order(jto_user, session_for, event):
    now = timezone.now()
    later = create_subtask(session_for(jto_user), event.pk, "Later", due_date=now + timedelta(days=2))
    sooner = create_subtask(session_for(jto_user), event.pk, "Sooner", due_date=now + timedelta(days=1))
    assert list(EventSubtask.objects.filter(event=event)) == [sooner, later]
