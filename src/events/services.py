"""
Business logic / service functions for the events app.

Covers the event lifecycle, team target distribution, field sales
submission and subtasks. Every multi-row write runs inside a single
transaction and increments counters with ``F()`` on locked rows.
"""
import logging
from datetime import datetime, time

from django.contrib.auth import get_user_model
from django.core.exceptions import PermissionDenied
from django.db import IntegrityError, transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone
from django.utils.dateparse import parse_date, parse_datetime

from core.circles import is_valid_circle, match_circle_name
from core.exceptions import ConflictError
from core.imports import build_header_map, row_value
from core.models import AuditLog
from core.services import create_audit_log
from events.models import Event, EventAssignment, EventSalesEntry, EventSubtask
from hierarchy import services as hierarchy_services
from hierarchy.models import EmployeeMaster
from notifications.models import Notification
from notifications.services import notify
from resources import services as resource_services
from resources.models import Resource

logger = logging.getLogger("circleops")

Employee = get_user_model()

_TARGET_FIELDS = (
    "target_fin_lc",
    "target_fin_ll_ftth",
    "target_fin_tower",
    "target_fin_gsm_postpaid",
    "target_fin_rent_building",
)
_EDITABLE_FIELDS = (
    "name",
    "location",
    "zone",
    "start_date",
    "end_date",
    "category",
    "task_category",
    "key_insight",
    "target_sim",
    "target_ftth",
) + _TARGET_FIELDS


def _audit(performed_by, action, event, details=None):
    create_audit_log(
        performed_by=performed_by,
        action=action,
        entity_type=AuditLog.EntityType.EVENT,
        entity_id=event.pk,
        details=details,
    )


def _distributed(event, exclude_employee=None):
    """Sum of targets and sold counters over *event*'s assignments."""
    qs = EventAssignment.objects.filter(event=event)
    if exclude_employee is not None:
        qs = qs.exclude(employee=exclude_employee)
    totals = qs.aggregate(
        sim_target=Sum("sim_target"),
        ftth_target=Sum("ftth_target"),
        sim_sold=Sum("sim_sold"),
        ftth_sold=Sum("ftth_sold"),
    )
    return {key: value or 0 for key, value in totals.items()}


def _lock_event(event_id):
    try:
        return Event.objects.select_for_update().get(pk=event_id)
    except Event.DoesNotExist:
        raise ValueError("Event not found.")


def resolve_employee_by_pers_no(pers_no):
    """Linked account behind *pers_no*, via the master record first."""
    master = hierarchy_services.get_master(pers_no)
    if master is not None and master.linked_employee_id:
        return master.linked_employee
    employee = Employee.objects.filter(pers_no=pers_no).first()
    if employee is None:
        raise ValueError(f"No registered employee found for Purse ID {pers_no}.")
    return employee


def visible_events(session):
    """Events the caller may list.

    GM and ADMIN see every circle. Report viewers see their circle plus
    the events they run. Everyone else sees only the events they are
    assigned to or created.
    """
    qs = Event.objects.select_related("assigned_to", "created_by")
    if session.sees_all_circles:
        return qs
    own = Q(assignments__employee=session.employee) | Q(created_by=session.employee) | Q(assigned_to=session.employee)
    if session.can("CAN_VIEW_REPORTS"):
        return qs.filter(Q(circle=session.circle) | own).distinct()
    return qs.filter(own).distinct()


# ---------------------------------------------------------------------------
# Event lifecycle
# ---------------------------------------------------------------------------

@transaction.atomic
def create_event(session, assigned_to_pers_no="", allocated_sim=0, allocated_ftth=0, **fields):
    """
    Create an event, reserve its stock and auto-assign its manager.

    Parameters
    ----------
    session : accounts.session.SessionContext
        The caller; must hold ``CAN_CREATE_EVENT``.
    assigned_to_pers_no : str, optional
        Purse ID of the staff member who will run the event.
    allocated_sim, allocated_ftth : int
        Quantities reserved from the circle ledger.
    **fields
        Event model fields (name, location, circle, zone, dates...).

    Returns
    -------
    Event

    Raises
    ------
    PermissionDenied
        If the caller's role cannot create events.
    ValueError
        If the dates are inverted, the Purse ID is unknown or the
        circle has not enough stock.
    """
    session.require("CAN_CREATE_EVENT", "Only managers can create events.")

    circle = fields.get("circle") or session.circle
    if not is_valid_circle(circle):
        raise ValueError(f"Invalid circle: {circle}")
    if not session.sees_all_circles and circle != session.circle:
        raise ValueError("You can only create events in your own circle.")
    fields["circle"] = circle

    start_date, end_date = fields.get("start_date"), fields.get("end_date")
    if start_date and end_date and end_date < start_date:
        raise ValueError("End date cannot be before start date.")

    manager = None
    if assigned_to_pers_no:
        manager = resolve_employee_by_pers_no(assigned_to_pers_no.strip())

    event = Event.objects.create(
        created_by=session.employee,
        assigned_to=manager,
        allocated_sim=allocated_sim or 0,
        allocated_ftth=allocated_ftth or 0,
        **fields,
    )
    resource_services.allocate_to_event(event, Resource.Type.SIM, event.allocated_sim, session.employee)
    resource_services.allocate_to_event(event, Resource.Type.FTTH, event.allocated_ftth, session.employee)

    if manager is not None:
        EventAssignment.objects.get_or_create(
            event=event,
            employee=manager,
            defaults={"assigned_by": session.employee},
        )
        notify(
            manager,
            Notification.Type.EVENT_ASSIGNED,
            "New event assigned",
            f"You have been assigned to manage {event.name} at {event.location}.",
            entity_type="event",
            entity_id=event.pk,
        )

    _audit(session.employee, "CREATE_EVENT", event, {
        "name": event.name,
        "circle": event.circle,
        "allocated_sim": event.allocated_sim,
        "allocated_ftth": event.allocated_ftth,
        "assigned_to": str(manager.pk) if manager else None,
    })
    logger.info("Event created: %s in %s by %s", event.pk, event.circle, session.employee_id)
    return event


@transaction.atomic
def update_event(session, event_id, **changes):
    """Edit an event; allocation changes move stock on the circle ledger.

    An allocation cannot drop below what is already distributed as team
    targets.
    """
    session.require("CAN_CREATE_EVENT", "Only managers can edit events.")
    event = _lock_event(event_id)

    if "circle" in changes and changes["circle"] != event.circle:
        if event.allocated_sim or event.allocated_ftth:
            raise ValueError("Cannot change the circle of an event holding allocated resources.")
        if not is_valid_circle(changes["circle"]):
            raise ValueError(f"Invalid circle: {changes['circle']}")
        event.circle = changes["circle"]

    distributed = _distributed(event)
    for resource_type, field, label in (
        (Resource.Type.SIM, "allocated_sim", "SIM"),
        (Resource.Type.FTTH, "allocated_ftth", "FTTH"),
    ):
        if field not in changes or changes[field] is None:
            continue
        new_value = int(changes[field])
        already = distributed[f"{label.lower()}_target"]
        if new_value < already:
            raise ValueError(
                f"Cannot reduce {label} allocation below distributed amount ({already}). "
                f"Reduce team targets first."
            )
        delta = new_value - getattr(event, field)
        if delta > 0:
            resource_services.allocate_to_event(event, resource_type, delta, session.employee)
        elif delta < 0:
            resource_services.release_from_event(event, resource_type, -delta, session.employee)
        setattr(event, field, new_value)

    if "assigned_to_pers_no" in changes:
        pers_no = (changes["assigned_to_pers_no"] or "").strip()
        event.assigned_to = resolve_employee_by_pers_no(pers_no) if pers_no else None
        if event.assigned_to is not None:
            EventAssignment.objects.get_or_create(
                event=event,
                employee=event.assigned_to,
                defaults={"assigned_by": session.employee},
            )

    for field in _EDITABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(event, field, changes[field])
    if event.end_date < event.start_date:
        raise ValueError("End date cannot be before start date.")

    event.save()
    _audit(session.employee, "UPDATE_EVENT", event, {
        key: str(value) for key, value in changes.items()
    })
    logger.info("Event updated: %s by %s", event.pk, session.employee_id)
    return event


@transaction.atomic
def update_event_status(session, event_id, status):
    if status not in Event.Status.values:
        raise ValueError(f"Invalid status: {status}")
    event = _lock_event(event_id)
    if not session.can("CAN_CREATE_EVENT") and event.assigned_to_id != session.employee_id:
        session.require("CAN_CREATE_EVENT", "Only the event manager can change its status.")

    previous = event.status
    if previous == status:
        return event
    event.status = status
    event.save(update_fields=["status", "updated_at"])

    recipients = Employee.objects.filter(event_assignments__event=event).exclude(pk=session.employee_id)
    for recipient in recipients:
        notify(
            recipient,
            Notification.Type.EVENT_STATUS_CHANGED,
            "Event status changed",
            f"{event.name} is now {event.get_status_display()}.",
            entity_type="event",
            entity_id=event.pk,
            dedupe_key=f"event:{event.pk}:status:{status}",
        )
    _audit(session.employee, "UPDATE_EVENT_STATUS", event, {"from": previous, "status": status})
    logger.info("Event %s status %s -> %s by %s", event.pk, previous, status, session.employee_id)
    return event


@transaction.atomic
def delete_event(session, event_id):
    """Cancel the event and hand its unsold stock back to the circle."""
    session.require("CAN_CREATE_EVENT", "Only managers can delete events.")
    event = _lock_event(event_id)
    if event.status == Event.Status.CANCELLED:
        raise ConflictError("Event is already cancelled.")

    sold = _distributed(event)
    unsold_sim = max(event.allocated_sim - sold["sim_sold"], 0)
    unsold_ftth = max(event.allocated_ftth - sold["ftth_sold"], 0)
    resource_services.release_from_event(event, Resource.Type.SIM, unsold_sim, session.employee)
    resource_services.release_from_event(event, Resource.Type.FTTH, unsold_ftth, session.employee)

    event.status = Event.Status.CANCELLED
    event.allocated_sim -= unsold_sim
    event.allocated_ftth -= unsold_ftth
    event.save(update_fields=["status", "allocated_sim", "allocated_ftth", "updated_at"])
    _audit(session.employee, "DELETE_EVENT", event, {
        "released_sim": unsold_sim,
        "released_ftth": unsold_ftth,
    })
    logger.info("Event cancelled: %s (released %d SIM, %d FTTH)", event.pk, unsold_sim, unsold_ftth)
    return event


def auto_complete_expired_events():
    """Mark active events whose end date is before today as completed."""
    start_of_today = timezone.make_aware(datetime.combine(timezone.localdate(), time.min))
    updated = Event.objects.filter(
        status=Event.Status.ACTIVE,
        end_date__lt=start_of_today,
    ).update(status=Event.Status.COMPLETED, updated_at=timezone.now())
    if updated:
        logger.info("Auto-completed %d expired events", updated)
    return updated


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------

def _notify_assigned(employee, event):
    notify(
        employee,
        Notification.Type.EVENT_ASSIGNED,
        "Added to event team",
        f"You have been added to {event.name} at {event.location}.",
        entity_type="event",
        entity_id=event.pk,
    )


@transaction.atomic
def assign_team(session, event_id, employee_ids):
    """Add employees to the event with zero targets. Re-adding is a no-op."""
    session.require("CAN_MANAGE_TEAM", "You are not allowed to manage event teams.")
    event = _lock_event(event_id)
    if event.is_closed:
        raise ConflictError(f"Cannot change the team of a {event.status} event.")

    added = []
    for employee in Employee.objects.filter(pk__in=employee_ids, is_active=True):
        assignment, created = EventAssignment.objects.get_or_create(
            event=event,
            employee=employee,
            defaults={"assigned_by": session.employee},
        )
        if created:
            added.append(assignment)
            _notify_assigned(employee, event)
    if added:
        _audit(session.employee, "ASSIGN_TEAM", event, {
            "employee_ids": [str(a.employee_id) for a in added],
        })
    logger.info("Event %s team: %d added by %s", event.pk, len(added), session.employee_id)
    return added


@transaction.atomic
def assign_team_member(session, event_id, employee, sim_target, ftth_target, require_existing=False):
    """
    Set *employee*'s targets on the event, creating the assignment if needed.

    The targets of all other members plus the new ones may not exceed
    the event's allocation, and a target may not drop below what the
    member already sold.
    """
    session.require("CAN_MANAGE_TEAM", "You are not allowed to manage event teams.")
    sim_target, ftth_target = int(sim_target or 0), int(ftth_target or 0)
    if sim_target < 0 or ftth_target < 0:
        raise ValueError("Targets cannot be negative.")
    event = _lock_event(event_id)
    if event.is_closed:
        raise ConflictError(f"Cannot change the team of a {event.status} event.")

    others = _distributed(event, exclude_employee=employee)
    if others["sim_target"] + sim_target > event.allocated_sim:
        available = event.allocated_sim - others["sim_target"]
        raise ValueError(f"Cannot assign {sim_target} SIMs. Only {available} SIMs available for distribution.")
    if others["ftth_target"] + ftth_target > event.allocated_ftth:
        available = event.allocated_ftth - others["ftth_target"]
        raise ValueError(f"Cannot assign {ftth_target} FTTH. Only {available} FTTH available for distribution.")

    assignment = (
        EventAssignment.objects.select_for_update()
        .filter(event=event, employee=employee)
        .first()
    )
    if assignment is None and require_existing:
        raise ValueError("Employee is not assigned to this event.")

    if assignment is None:
        assignment = EventAssignment.objects.create(
            event=event,
            employee=employee,
            sim_target=sim_target,
            ftth_target=ftth_target,
            assigned_by=session.employee,
        )
        _notify_assigned(employee, event)
    else:
        if sim_target < assignment.sim_sold:
            raise ValueError(f"SIM target cannot be below already sold ({assignment.sim_sold}).")
        if ftth_target < assignment.ftth_sold:
            raise ValueError(f"FTTH target cannot be below already sold ({assignment.ftth_sold}).")
        assignment.sim_target = sim_target
        assignment.ftth_target = ftth_target
        assignment.save(update_fields=["sim_target", "ftth_target", "updated_at"])

    _audit(session.employee, "ASSIGN_TEAM_MEMBER", event, {
        "employee_id": str(employee.pk),
        "sim_target": sim_target,
        "ftth_target": ftth_target,
    })
    logger.info(
        "Targets for %s on event %s: SIM %d, FTTH %d",
        employee.pk, event.pk, sim_target, ftth_target,
    )
    return assignment


def update_member_targets(session, event_id, employee, sim_target, ftth_target):
    return assign_team_member(session, event_id, employee, sim_target, ftth_target, require_existing=True)


@transaction.atomic
def remove_team_member(session, event_id, employee):
    session.require("CAN_MANAGE_TEAM", "You are not allowed to manage event teams.")
    event = _lock_event(event_id)
    assignment = (
        EventAssignment.objects.select_for_update()
        .filter(event=event, employee=employee)
        .first()
    )
    if assignment is None:
        raise ValueError("Employee is not assigned to this event.")
    if assignment.sim_sold > 0 or assignment.ftth_sold > 0:
        raise ValueError(
            f"Cannot remove team member with recorded sales. SIM sold: {assignment.sim_sold}, "
            f"FTTH sold: {assignment.ftth_sold}. Please reassign sales first."
        )
    assignment.delete()
    _audit(session.employee, "REMOVE_TEAM_MEMBER", event, {"employee_id": str(employee.pk)})
    logger.info("Removed %s from event %s", employee.pk, event.pk)


def available_team_members(event, manager_pers_no=None):
    """Active employees of the event circle, flagged when already on the team.

    With *manager_pers_no* the list is restricted to that manager's
    direct reports.
    """
    qs = Employee.objects.filter(circle=event.circle, is_active=True)
    if manager_pers_no:
        direct_ids = hierarchy_services.direct_report_employees(manager_pers_no).values_list("id", flat=True)
        qs = qs.filter(pk__in=list(direct_ids))
    assigned_ids = set(
        EventAssignment.objects.filter(event=event).values_list("employee_id", flat=True)
    )
    return [
        {"employee": employee, "is_assigned": employee.pk in assigned_ids}
        for employee in qs.order_by("name")
    ]


# ---------------------------------------------------------------------------
# Field sales
# ---------------------------------------------------------------------------

@transaction.atomic
def submit_event_sales(
    session,
    event_id,
    sims_sold=0,
    sims_activated=0,
    ftth_sold=0,
    ftth_activated=0,
    customer_type=EventSalesEntry.CustomerType.B2C,
    photos=None,
    gps_latitude="",
    gps_longitude="",
    remarks="",
):
    """
    Record a field sales entry against the caller's assignment.

    The entry, the assignment counters and the circle ledger usage are
    written in one transaction. Every call appends a new entry; a
    resubmission counts again.

    Returns
    -------
    tuple
        ``(entry, assignment)`` with refreshed counters.

    Raises
    ------
    ConflictError
        If the event is completed or cancelled.
    ValueError
        If the caller is not on the team or the quantities exceed what is
        left of their targets.
    """
    session.require("CAN_SUBMIT_SALES", "You are not allowed to submit sales.")
    counts = {
        "sims_sold": sims_sold,
        "sims_activated": sims_activated,
        "ftth_sold": ftth_sold,
        "ftth_activated": ftth_activated,
    }
    for label, value in counts.items():
        if int(value or 0) < 0:
            raise ValueError(f"{label} cannot be negative.")
    if customer_type not in EventSalesEntry.CustomerType.values:
        raise ValueError(f"Invalid customer type: {customer_type}")

    event = _lock_event(event_id)
    if event.is_closed:
        raise ConflictError(f"Cannot submit sales for a {event.status} event.")

    assignment = (
        EventAssignment.objects.select_for_update()
        .filter(event=event, employee=session.employee)
        .first()
    )
    if assignment is None:
        raise ValueError("You are not assigned to this event.")

    sims_sold, ftth_sold = int(sims_sold or 0), int(ftth_sold or 0)
    if assignment.sim_sold + sims_sold > assignment.sim_target:
        remaining = assignment.sim_target - assignment.sim_sold
        raise ValueError(f"Cannot submit {sims_sold} SIMs. Only {remaining} remaining in your target.")
    if assignment.ftth_sold + ftth_sold > assignment.ftth_target:
        remaining = assignment.ftth_target - assignment.ftth_sold
        raise ValueError(f"Cannot submit {ftth_sold} FTTH. Only {remaining} remaining in your target.")

    entry = EventSalesEntry.objects.create(
        event=event,
        employee=session.employee,
        sims_sold=sims_sold,
        sims_activated=int(sims_activated or 0),
        ftth_sold=ftth_sold,
        ftth_activated=int(ftth_activated or 0),
        customer_type=customer_type,
        photos=photos or [],
        gps_latitude=gps_latitude or "",
        gps_longitude=gps_longitude or "",
        remarks=remarks or "",
    )
    EventAssignment.objects.filter(pk=assignment.pk).update(
        sim_sold=F("sim_sold") + sims_sold,
        ftth_sold=F("ftth_sold") + ftth_sold,
        updated_at=timezone.now(),
    )
    resource_services.record_usage(event.circle, Resource.Type.SIM, sims_sold)
    resource_services.record_usage(event.circle, Resource.Type.FTTH, ftth_sold)

    create_audit_log(
        performed_by=session.employee,
        action="SUBMIT_EVENT_SALES",
        entity_type=AuditLog.EntityType.SALES,
        entity_id=entry.pk,
        details={"event_id": str(event.pk), **counts, "customer_type": customer_type},
    )

    manager = event.assigned_to or event.created_by
    if manager is not None and manager.pk != session.employee_id:
        notify(
            manager,
            Notification.Type.TASK_SUBMITTED,
            "Sales submitted",
            f"{session.employee.name} recorded {sims_sold} SIM and {ftth_sold} FTTH at {event.name}.",
            entity_type="event",
            entity_id=event.pk,
            dedupe_key=f"sales_entry:{entry.pk}",
        )

    assignment.refresh_from_db()
    logger.info(
        "Sales entry %s on event %s by %s: %d SIM, %d FTTH",
        entry.pk, event.pk, session.employee_id, sims_sold, ftth_sold,
    )
    return entry, assignment


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

def get_event_with_details(event):
    """The event with its team, sales entries, subtasks and a summary."""
    assignments = list(
        EventAssignment.objects.filter(event=event).select_related("employee").order_by("created_at")
    )
    entries = list(
        EventSalesEntry.objects.filter(event=event).select_related("employee").order_by("-created_at")
    )
    subtasks = list(
        EventSubtask.objects.filter(event=event).select_related("assigned_to").order_by("-created_at")
    )

    entries_by_employee = {}
    for entry in entries:
        entries_by_employee.setdefault(entry.employee_id, []).append(entry)

    team = [
        {"assignment": assignment, "sales_entries": entries_by_employee.get(assignment.employee_id, [])}
        for assignment in assignments
    ]
    statuses = [subtask.status for subtask in subtasks]
    return {
        "event": event,
        "team": team,
        "sales_entries": entries,
        "subtasks": subtasks,
        "summary": {
            "total_sims_sold": sum(entry.sims_sold for entry in entries),
            "total_ftth_sold": sum(entry.ftth_sold for entry in entries),
            "total_entries": len(entries),
            "team_count": len(assignments),
            "subtask_stats": {
                "total": len(subtasks),
                "completed": statuses.count(EventSubtask.Status.COMPLETED),
                "pending": statuses.count(EventSubtask.Status.PENDING),
                "in_progress": statuses.count(EventSubtask.Status.IN_PROGRESS),
            },
        },
    }


def get_event_resource_status(event):
    totals = _distributed(event)
    return {
        "allocated": {"sim": event.allocated_sim, "ftth": event.allocated_ftth},
        "distributed": {"sim": totals["sim_target"], "ftth": totals["ftth_target"]},
        "sold": {"sim": totals["sim_sold"], "ftth": totals["ftth_sold"]},
        "remaining": {
            "sim_to_distribute": event.allocated_sim - totals["sim_target"],
            "ftth_to_distribute": event.allocated_ftth - totals["ftth_target"],
            "sim_unsold": totals["sim_target"] - totals["sim_sold"],
            "ftth_unsold": totals["ftth_target"] - totals["ftth_sold"],
        },
    }


def get_my_assigned_events(employee):
    return (
        EventAssignment.objects
        .filter(employee=employee)
        .select_related("event")
        .order_by("-event__start_date")
    )


def hierarchical_report(employee):
    """Events run by *employee* and everyone reporting to them."""
    team_ids = hierarchy_services.subordinate_employee_ids(employee)
    events = (
        Event.objects
        .filter(Q(created_by_id__in=team_ids) | Q(assigned_to_id__in=team_ids))
        .annotate(
            sim_sold=Sum("assignments__sim_sold"),
            ftth_sold=Sum("assignments__ftth_sold"),
            team_count=Count("assignments", distinct=True),
        )
        .select_related("assigned_to")
        .order_by("-start_date")
        .distinct()
    )
    rows = []
    summary = {
        "total_events": 0,
        "active_events": 0,
        "completed_events": 0,
        "total_sim_sold": 0,
        "total_ftth_sold": 0,
        "team_size": len(team_ids),
    }
    for event in events:
        rows.append({
            "id": str(event.pk),
            "name": event.name,
            "circle": event.circle,
            "status": event.status,
            "start_date": event.start_date,
            "end_date": event.end_date,
            "assigned_to": event.assigned_to.name if event.assigned_to else None,
            "target_sim": event.target_sim,
            "target_ftth": event.target_ftth,
            "sim_sold": event.sim_sold or 0,
            "ftth_sold": event.ftth_sold or 0,
            "team_count": event.team_count,
        })
        summary["total_events"] += 1
        summary["total_sim_sold"] += event.sim_sold or 0
        summary["total_ftth_sold"] += event.ftth_sold or 0
        if event.status == Event.Status.ACTIVE:
            summary["active_events"] += 1
        elif event.status == Event.Status.COMPLETED:
            summary["completed_events"] += 1
    return {"events": rows, "summary": summary}


def event_stats():
    counts = dict(Event.objects.order_by().values_list("status").annotate(n=Count("id")))
    return {
        "total": sum(counts.values()),
        "active": counts.get(Event.Status.ACTIVE, 0),
        "draft": counts.get(Event.Status.DRAFT, 0),
    }


# ---------------------------------------------------------------------------
# Subtasks
# ---------------------------------------------------------------------------

@transaction.atomic
def create_subtask(session, event_id, title, assigned_to=None, staff_pers_no="", **fields):
    session.require("CAN_MANAGE_TEAM", "You are not allowed to create subtasks.")
    event = _lock_event(event_id)
    if not (title or "").strip():
        raise ValueError("Subtask title is required.")
    if assigned_to is None and staff_pers_no:
        assigned_to = resolve_employee_by_pers_no(staff_pers_no.strip())

    if assigned_to is not None:
        _, created = EventAssignment.objects.get_or_create(
            event=event,
            employee=assigned_to,
            defaults={"assigned_by": session.employee},
        )
        if created:
            _audit(session.employee, "AUTO_ASSIGN_TEAM_MEMBER", event, {
                "employee_id": str(assigned_to.pk),
                "reason": "subtask_assignment",
            })

    subtask = EventSubtask.objects.create(
        event=event,
        title=title.strip(),
        assigned_to=assigned_to,
        created_by=session.employee,
        **fields,
    )
    if assigned_to is not None:
        notify(
            assigned_to,
            Notification.Type.SUBTASK_ASSIGNED,
            "New subtask",
            f"{subtask.title} ({event.name})",
            entity_type="subtask",
            entity_id=subtask.pk,
        )
    _audit(session.employee, "CREATE_SUBTASK", event, {
        "subtask_id": str(subtask.pk),
        "title": subtask.title,
        "assigned_to": str(assigned_to.pk) if assigned_to else None,
    })
    logger.info("Subtask %s created on event %s", subtask.pk, event.pk)
    return subtask


# Fields the assignee may change on a subtask they do not manage.
ASSIGNEE_SUBTASK_FIELDS = frozenset({"status", "sim_sold", "ftth_sold"})


@transaction.atomic
def update_subtask(session, subtask_id, **changes):
    """
    Edit a subtask.

    Managers may change anything. The assignee may only report progress
    (status and sold counts). Completion is stamped when the subtask
    becomes ``completed`` and cleared when it leaves that status.
    """
    try:
        subtask = EventSubtask.objects.select_for_update().select_related("event").get(pk=subtask_id)
    except EventSubtask.DoesNotExist:
        raise ValueError("Subtask not found.")
    if not session.can("CAN_MANAGE_TEAM"):
        if subtask.assigned_to_id != session.employee_id:
            session.require("CAN_MANAGE_TEAM", "You are not allowed to update this subtask.")
        restricted = sorted(set(changes) - ASSIGNEE_SUBTASK_FIELDS)
        if restricted:
            raise PermissionDenied(f"Only a manager can change: {', '.join(restricted)}.")

    status = changes.get("status")
    if status is not None and status not in EventSubtask.Status.values:
        raise ValueError(f"Invalid status: {status}")

    was_complete = subtask.status == EventSubtask.Status.COMPLETED
    update_fields = ["updated_at"]
    for field, value in changes.items():
        setattr(subtask, field, value)
        update_fields.append(field)

    is_complete = subtask.status == EventSubtask.Status.COMPLETED
    became_complete = is_complete and not was_complete
    if became_complete:
        subtask.completed_at = timezone.now()
        subtask.completed_by = session.employee
        update_fields += ["completed_at", "completed_by"]
    elif was_complete and not is_complete:
        subtask.completed_at = None
        subtask.completed_by = None
        update_fields += ["completed_at", "completed_by"]
    subtask.save(update_fields=list(dict.fromkeys(update_fields)))

    if became_complete and subtask.created_by_id != session.employee_id:
        notify(
            subtask.created_by,
            Notification.Type.SUBTASK_COMPLETED,
            "Subtask completed",
            f"{subtask.title} was completed by {session.employee.name}.",
            entity_type="subtask",
            entity_id=subtask.pk,
        )
    _audit(session.employee, "UPDATE_SUBTASK", subtask.event, {
        "subtask_id": str(subtask.pk),
        "changes": {key: str(value) for key, value in changes.items()},
    })
    return subtask


@transaction.atomic
def delete_subtask(session, subtask_id):
    session.require("CAN_MANAGE_TEAM", "You are not allowed to delete subtasks.")
    subtask = EventSubtask.objects.select_related("event").filter(pk=subtask_id).first()
    if subtask is None:
        raise ValueError("Subtask not found.")
    event, title = subtask.event, subtask.title
    subtask.delete()
    _audit(session.employee, "DELETE_SUBTASK", event, {"subtask_id": str(subtask_id), "title": title})


# ---------------------------------------------------------------------------
# Bulk import
# ---------------------------------------------------------------------------

def _parse_when(raw):
    raw = str(raw or "").strip()
    if not raw:
        return None
    value = parse_datetime(raw)
    if value is None:
        day = parse_date(raw)
        if day is None:
            for fmt in ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y"):
                try:
                    day = datetime.strptime(raw, fmt).date()
                    break
                except ValueError:
                    continue
        if day is None:
            return None
        value = datetime.combine(day, time.min)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def _match_category(raw):
    raw = (raw or "").strip()
    base = raw.split("(")[0].strip()
    for candidate in (base, raw):
        for value in Event.Category.values:
            if value.lower() == candidate.lower():
                return value
    return None


def _zone_circles():
    """Zone label -> circle, learnt from the HR master data."""
    mapping = {}
    rows = (
        EmployeeMaster.objects
        .exclude(zone="").exclude(circle="")
        .values_list("zone", "circle")
        .distinct()
    )
    for zone, circle in rows:
        zone_key = zone.strip().upper()
        matched = match_circle_name(circle)
        if matched and len(zone_key) > 2:
            mapping[zone_key] = matched
    return mapping


def _detect_circle(location, zone_circles):
    location_key = " ".join(location.upper().replace(",", " ").split())
    for zone, circle in zone_circles.items():
        if zone in location_key or location_key in zone:
            return circle
    for part in location.split(","):
        matched = match_circle_name(part) if len(part.strip()) > 2 else None
        if matched:
            return matched
    return None


@transaction.atomic
def import_events(rows, uploaded_by):
    """Upsert draft events from spreadsheet rows keyed by (name, location, circle).

    Returns ``{"imported", "updated", "errors", "total"}``.
    """
    rows = list(rows)
    header_map = build_header_map(rows[0].keys()) if rows else {}
    zone_circles = _zone_circles()
    imported = 0
    updated = 0
    errors = []

    for index, row in enumerate(rows, start=2):
        name = row_value(row, header_map, "name", "event_name", "event")[:255]
        location = row_value(row, header_map, "location", "venue", "place")
        label = f"Row {index}"
        if not name or not location:
            errors.append(f"{label}: name and location are required.")
            continue

        raw_circle = row_value(row, header_map, "circle", "state")
        circle = match_circle_name(raw_circle) if raw_circle else None
        circle = circle or _detect_circle(location, zone_circles)
        if not circle:
            errors.append(
                f'{label}: Could not detect circle from location "{location}". '
                f"Please add a Circle column with the state name."
            )
            continue

        raw_category = row_value(row, header_map, "category", "type")
        category = _match_category(raw_category)
        if not category:
            errors.append(
                f'{label}: Invalid category "{raw_category}". Valid: {", ".join(Event.Category.values)}'
            )
            continue

        start_date = _parse_when(row_value(row, header_map, "start_date", "start", "from"))
        end_date = _parse_when(row_value(row, header_map, "end_date", "end", "to"))
        if start_date is None:
            errors.append(f"{label}: Invalid start date format")
            continue
        if end_date is None:
            errors.append(f"{label}: Invalid end date format")
            continue
        if end_date < start_date:
            errors.append(f"{label}: End date cannot be before start date")
            continue

        zone = row_value(row, header_map, "zone", "ssa")
        key_insight = row_value(row, header_map, "key_insight", "insight", "remarks")
        try:
            with transaction.atomic():
                event = Event.objects.filter(name=name, location=location, circle=circle).first()
                if event is not None:
                    event.start_date = start_date
                    event.end_date = end_date
                    event.category = category
                    event.key_insight = key_insight
                    event.zone = zone or event.zone or "Default"
                    event.save(update_fields=["start_date", "end_date", "category", "key_insight", "zone", "updated_at"])
                    updated += 1
                else:
                    Event.objects.create(
                        name=name,
                        location=location,
                        circle=circle,
                        zone=zone or "Default",
                        start_date=start_date,
                        end_date=end_date,
                        category=category,
                        key_insight=key_insight,
                        status=Event.Status.DRAFT,
                        created_by=uploaded_by,
                    )
                    imported += 1
        except IntegrityError as exc:
            errors.append(f"{label}: {exc}")

    create_audit_log(
        performed_by=uploaded_by,
        action="IMPORT_EVENTS",
        entity_type=AuditLog.EntityType.EVENT,
        entity_id=uploaded_by.pk,
        details={"imported": imported, "updated": updated, "errors": len(errors), "total": len(rows)},
    )
    logger.info(
        "Event import by %s: %d imported, %d updated, %d errors",
        uploaded_by.pk, imported, updated, len(errors),
    )
    return {"imported": imported, "updated": updated, "errors": errors, "total": len(rows)}
