from datetime import timedelta

import pytest
from django.core.exceptions import PermissionDenied
from django.utils import timezone

from core.exceptions import ConflictError
from core.models import AuditLog
from events.models import Event, EventAssignment, EventSalesEntry
from events.services import (
    assign_team,
    assign_team_member,
    auto_complete_expired_events,
    create_event,
    delete_event,
    get_event_resource_status,
    remove_team_member,
    submit_event_sales,
    update_event,
    update_event_status,
    update_member_targets,
    visible_events,
)
from notifications.models import Notification
from resources.models import Resource


def _event_fields(**overrides):
    now = timezone.now()
    fields = {
        "name": "Hubballi Expo",
        "location": "Hubballi",
        "circle": "KARNATAKA",
        "zone": "Hubballi",
        "start_date": now,
        "end_date": now + timedelta(days=3),
        "category": Event.Category.EXHIBITION,
    }
    fields.update(overrides)
    return fields


@pytest.mark.django_db
class TestCreateEvent:
    def test_reserves_stock_and_assigns_manager(self, dgm_user, staff_user, session_for, sim_stock, ftth_stock):
        event = create_event(
            session_for(dgm_user),
            assigned_to_pers_no="90001",
            allocated_sim=10,
            allocated_ftth=4,
            **_event_fields(),
        )

        sim_stock.refresh_from_db()
        ftth_stock.refresh_from_db()
        assert sim_stock.allocated == 10
        assert ftth_stock.allocated == 4
        assert event.assigned_to == staff_user
        assert EventAssignment.objects.filter(event=event, employee=staff_user).exists()
        assert Notification.objects.filter(recipient=staff_user, type=Notification.Type.EVENT_ASSIGNED).exists()
        assert AuditLog.objects.filter(action="CREATE_EVENT", entity_id=str(event.pk)).exists()

    def test_sales_staff_cannot_create(self, staff_user, session_for):
        with pytest.raises(PermissionDenied):
            create_event(session_for(staff_user), **_event_fields())

    def test_non_gm_limited_to_own_circle(self, agm_user, session_for):
        with pytest.raises(ValueError, match="own circle"):
            create_event(session_for(agm_user), **_event_fields(circle="KERALA"))

    def test_gm_may_create_in_any_circle(self, gm_user, session_for):
        event = create_event(session_for(gm_user), **_event_fields(circle="KERALA"))
        assert event.circle == "KERALA"

    def test_inverted_dates_rejected(self, dgm_user, session_for):
        now = timezone.now()
        with pytest.raises(ValueError, match="End date"):
            create_event(session_for(dgm_user), **_event_fields(start_date=now, end_date=now - timedelta(days=1)))

    def test_unknown_pers_no_rejected(self, dgm_user, session_for):
        with pytest.raises(ValueError, match="No registered employee found for Purse ID 12345"):
            create_event(session_for(dgm_user), assigned_to_pers_no="12345", **_event_fields())

    def test_insufficient_stock_rolls_back(self, dgm_user, session_for, sim_stock):
        with pytest.raises(ValueError, match="Insufficient SIM"):
            create_event(session_for(dgm_user), allocated_sim=500, **_event_fields())
        assert not Event.objects.exists()


@pytest.mark.django_db
class TestUpdateEvent:
    def test_growing_allocation_reserves_delta(self, dgm_user, session_for, sim_stock):
        session = session_for(dgm_user)
        event = create_event(session, allocated_sim=10, **_event_fields())

        update_event(session, event.pk, allocated_sim=15)

        sim_stock.refresh_from_db()
        assert sim_stock.allocated == 15

    def test_shrinking_below_distributed_refused(self, dgm_user, staff_user, session_for, sim_stock):
        session = session_for(dgm_user)
        event = create_event(session, allocated_sim=10, **_event_fields())
        assign_team_member(session, event.pk, staff_user, 8, 0)

        with pytest.raises(ValueError, match=r"below distributed amount \(8\)"):
            update_event(session, event.pk, allocated_sim=5)

    def test_circle_change_refused_while_holding_stock(self, gm_user, session_for, sim_stock):
        session = session_for(gm_user)
        event = create_event(session, allocated_sim=1, **_event_fields())
        with pytest.raises(ValueError, match="Cannot change the circle"):
            update_event(session, event.pk, circle="KERALA")


@pytest.mark.django_db
class TestDeleteEvent:
    def test_releases_unsold_stock(self, dgm_user, staff_user, session_for, sim_stock):
        session = session_for(dgm_user)
        event = create_event(session, allocated_sim=10, **_event_fields())
        assign_team_member(session, event.pk, staff_user, 5, 0)
        submit_event_sales(session_for(staff_user), event.pk, sims_sold=2, customer_type="B2C")

        event = delete_event(session, event.pk)

        sim_stock.refresh_from_db()
        assert event.status == Event.Status.CANCELLED
        assert event.allocated_sim == 2
        assert sim_stock.allocated == 2
        assert sim_stock.used == 2

    def test_second_delete_conflicts(self, dgm_user, session_for, event):
        session = session_for(dgm_user)
        delete_event(session, event.pk)
        with pytest.raises(ConflictError):
            delete_event(session, event.pk)


@pytest.mark.django_db
class TestTeam:
    def test_target_overflow_message(self, dgm_user, staff_user, other_staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 6, 0)

        with pytest.raises(ValueError) as excinfo:
            assign_team_member(session, event.pk, other_staff_user, 5, 0)
        assert str(excinfo.value) == "Cannot assign 5 SIMs. Only 4 SIMs available for distribution."

    def test_reassigning_own_target_excludes_previous_value(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 6, 0)
        assignment = assign_team_member(session, event.pk, staff_user, 10, 0)
        assert assignment.sim_target == 10

    def test_update_targets_requires_existing_member(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        with pytest.raises(ValueError, match="not assigned"):
            update_member_targets(session_for(dgm_user), event.pk, staff_user, 1, 0)

    def test_target_cannot_drop_below_sold(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 5, 0)
        submit_event_sales(session_for(staff_user), event.pk, sims_sold=4, customer_type="B2C")
        with pytest.raises(ValueError, match=r"already sold \(4\)"):
            update_member_targets(session, event.pk, staff_user, 3, 0)

    def test_assign_team_is_idempotent(self, jto_user, staff_user, session_for, event):
        session = session_for(jto_user)
        assert len(assign_team(session, event.pk, [staff_user.pk])) == 1
        assert assign_team(session, event.pk, [staff_user.pk]) == []
        assert EventAssignment.objects.filter(event=event).count() == 1

    def test_sales_staff_cannot_manage_team(self, staff_user, session_for, event):
        with pytest.raises(PermissionDenied):
            assign_team(session_for(staff_user), event.pk, [staff_user.pk])

    def test_remove_member_with_sales_refused(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 5, 0)
        submit_event_sales(session_for(staff_user), event.pk, sims_sold=1, customer_type="B2C")
        with pytest.raises(ValueError, match="recorded sales"):
            remove_team_member(session, event.pk, staff_user)

    def test_remove_member_without_sales(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=10)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 5, 0)
        remove_team_member(session, event.pk, staff_user)
        assert not EventAssignment.objects.filter(event=event).exists()


@pytest.mark.django_db
class TestSubmitSales:
    @pytest.fixture
    def assigned_event(self, dgm_user, staff_user, session_for, event_factory, sim_stock):
        event = event_factory(allocated_sim=10, allocated_ftth=2)
        assign_team_member(session_for(dgm_user), event.pk, staff_user, 5, 2)
        return event

    def test_updates_counters_and_ledger(self, assigned_event, staff_user, dgm_user, session_for, sim_stock):
        entry, assignment = submit_event_sales(
            session_for(staff_user), assigned_event.pk, sims_sold=3, sims_activated=2, customer_type="B2C",
        )

        sim_stock.refresh_from_db()
        assert assignment.sim_sold == 3
        assert entry.sims_activated == 2
        assert sim_stock.used == 3
        assert sim_stock.remaining == 97
        notification = Notification.objects.get(recipient=dgm_user, type=Notification.Type.TASK_SUBMITTED)
        assert notification.dedupe_key == f"sales_entry:{entry.pk}"

    def test_resubmission_counts_again(self, assigned_event, staff_user, session_for):
        session = session_for(staff_user)
        submit_event_sales(session, assigned_event.pk, sims_sold=2, customer_type="B2C")
        _, assignment = submit_event_sales(session, assigned_event.pk, sims_sold=2, customer_type="B2C")
        assert assignment.sim_sold == 4
        assert EventSalesEntry.objects.filter(event=assigned_event).count() == 2

    def test_cannot_exceed_remaining_target(self, assigned_event, staff_user, session_for):
        session = session_for(staff_user)
        submit_event_sales(session, assigned_event.pk, sims_sold=3, customer_type="B2C")
        with pytest.raises(ValueError) as excinfo:
            submit_event_sales(session, assigned_event.pk, sims_sold=3, customer_type="B2C")
        assert str(excinfo.value) == "Cannot submit 3 SIMs. Only 2 remaining in your target."

    def test_closed_event_conflicts(self, assigned_event, staff_user, session_for):
        Event.objects.filter(pk=assigned_event.pk).update(status=Event.Status.COMPLETED)
        with pytest.raises(ConflictError):
            submit_event_sales(session_for(staff_user), assigned_event.pk, sims_sold=1, customer_type="B2C")

    def test_unassigned_employee_refused(self, assigned_event, other_staff_user, session_for):
        with pytest.raises(ValueError, match="not assigned"):
            submit_event_sales(session_for(other_staff_user), assigned_event.pk, sims_sold=1, customer_type="B2C")

    def test_negative_quantity_refused(self, assigned_event, staff_user, session_for):
        with pytest.raises(ValueError, match="cannot be negative"):
            submit_event_sales(session_for(staff_user), assigned_event.pk, sims_sold=-1, customer_type="B2C")

    def test_resource_status_reflects_sales(self, assigned_event, staff_user, session_for):
        submit_event_sales(session_for(staff_user), assigned_event.pk, sims_sold=1, ftth_sold=1, customer_type="B2B")
        status = get_event_resource_status(assigned_event)
        assert status["distributed"] == {"sim": 5, "ftth": 2}
        assert status["sold"] == {"sim": 1, "ftth": 1}
        assert status["remaining"]["sim_to_distribute"] == 5
        assert status["remaining"]["sim_unsold"] == 4


@pytest.mark.django_db
class TestStatusAndVisibility:
    def test_status_change_notifies_team(self, dgm_user, staff_user, session_for, event_factory):
        event = event_factory(allocated_sim=5)
        session = session_for(dgm_user)
        assign_team_member(session, event.pk, staff_user, 1, 0)

        update_event_status(session, event.pk, Event.Status.PAUSED)

        assert Notification.objects.filter(
            recipient=staff_user, type=Notification.Type.EVENT_STATUS_CHANGED,
        ).count() == 1

    def test_invalid_status_rejected(self, dgm_user, session_for, event):
        with pytest.raises(ValueError, match="Invalid status"):
            update_event_status(session_for(dgm_user), event.pk, "archived")

    def test_auto_complete_only_touches_expired_active_events(self, event_factory):
        now = timezone.now()
        expired = event_factory(start_date=now - timedelta(days=5), end_date=now - timedelta(days=3))
        running = event_factory(name="Running")

        assert auto_complete_expired_events() == 1

        expired.refresh_from_db()
        running.refresh_from_db()
        assert expired.status == Event.Status.COMPLETED
        assert running.status == Event.Status.ACTIVE

    def test_visible_events(self, gm_user, agm_user, staff_user, session_for, event_factory, dgm_user):
        own_circle = event_factory()
        other_circle = event_factory(name="Onam", circle="KERALA")
        EventAssignment.objects.create(event=own_circle, employee=staff_user)

        assert visible_events(session_for(gm_user)).count() == 2
        assert list(visible_events(session_for(agm_user))) == [own_circle]
        assert list(visible_events(session_for(staff_user))) == [own_circle]
        assert other_circle not in visible_events(session_for(staff_user))
