"""Business logic / service functions for the circle resource ledger."""
import logging

from django.db import transaction
from django.db.models import F, Sum

from core.models import AuditLog
from core.services import create_audit_log
from resources.models import Resource, ResourceAllocation

logger = logging.getLogger("circleops")


def _label(resource_type):
    return "SIM" if resource_type == Resource.Type.SIM else "FTTH"


def visible_resources(session):
    """Resources the caller may see: every circle for GM/ADMIN, else their own."""
    qs = Resource.objects.all()
    if not session.sees_all_circles:
        qs = qs.filter(circle=session.circle)
    return qs


@transaction.atomic
def update_stock(session, circle, resource_type, new_total):
    """
    Set the total stock of *resource_type* in *circle*.

    Authorisation is checked before anything is read or written, so a
    refused call leaves the ledger untouched.

    Parameters
    ----------
    session : accounts.session.SessionContext
        The caller.
    circle : str
        A :class:`~core.circles.Circle` value.
    resource_type : str
        ``Resource.Type.SIM`` or ``Resource.Type.FTTH``.
    new_total : int
        The new absolute total. Must be >= 0.

    Returns
    -------
    Resource
        The updated (or created) ledger row.

    Raises
    ------
    PermissionDenied
        If the caller's role cannot update stock.
    ValueError
        If *new_total* is negative.
    """
    session.require("CAN_UPDATE_STOCK", "Only GM, CGM or DGM can update resource stock.")
    if new_total is None or int(new_total) < 0:
        raise ValueError("Total stock cannot be negative.")
    new_total = int(new_total)

    resource, created = Resource.objects.select_for_update().get_or_create(
        circle=circle,
        type=resource_type,
        defaults={"total": new_total, "remaining": new_total, "updated_by": session.employee},
    )
    previous_total = 0 if created else resource.total
    if not created:
        resource.total = new_total
        resource.recompute_remaining()
        resource.updated_by = session.employee
        resource.save(update_fields=["total", "remaining", "updated_by", "updated_at"])

    create_audit_log(
        performed_by=session.employee,
        action="UPDATE_RESOURCE_STOCK",
        entity_type=AuditLog.EntityType.RESOURCE,
        entity_id=resource.pk,
        details={
            "circle": circle,
            "type": resource_type,
            "previous_total": previous_total,
            "total": new_total,
        },
    )
    logger.info(
        "Resource stock set: %s %s %d -> %d by %s",
        circle, resource_type, previous_total, new_total, session.employee_id,
    )
    return resource


@transaction.atomic
def allocate_to_event(event, resource_type, quantity, allocated_by):
    """
    Reserve *quantity* units of the event circle's stock for *event*.

    Raises
    ------
    ValueError
        If the circle has no stock row or not enough unallocated stock.
    """
    if quantity <= 0:
        return None
    label = _label(resource_type)
    resource = (
        Resource.objects.select_for_update()
        .filter(circle=event.circle, type=resource_type)
        .first()
    )
    if resource is None:
        raise ValueError(
            f"No {label} inventory exists for circle {event.circle}. "
            f"Please ask an authorised manager to add {label} stock first."
        )
    available = resource.available_to_allocate
    if available < quantity:
        raise ValueError(
            f"Insufficient {label} resources. Available: {available}, Requested: {quantity}"
        )

    Resource.objects.filter(pk=resource.pk).update(allocated=F("allocated") + quantity)
    allocation = ResourceAllocation.objects.create(
        resource=resource,
        event=event,
        quantity=quantity,
        allocated_by=allocated_by,
    )
    create_audit_log(
        performed_by=allocated_by,
        action="ALLOCATE_RESOURCE",
        entity_type=AuditLog.EntityType.RESOURCE,
        entity_id=resource.pk,
        details={"event_id": str(event.pk), "quantity": quantity, "type": resource_type},
    )
    logger.info("Allocated %d %s of %s to event %s", quantity, label, event.circle, event.pk)
    return allocation


@transaction.atomic
def release_from_event(event, resource_type, quantity, released_by):
    """Give back *quantity* reserved units; ``allocated`` never drops below 0."""
    if quantity <= 0:
        return
    resource = (
        Resource.objects.select_for_update()
        .filter(circle=event.circle, type=resource_type)
        .first()
    )
    if resource is None:
        return
    released = min(quantity, resource.allocated)
    Resource.objects.filter(pk=resource.pk).update(allocated=F("allocated") - released)
    ResourceAllocation.objects.create(
        resource=resource,
        event=event,
        quantity=-released,
        allocated_by=released_by,
    )
    logger.info("Released %d %s of %s from event %s", released, resource_type, event.circle, event.pk)


@transaction.atomic
def record_usage(circle, resource_type, quantity):
    """Add *quantity* to ``used`` and recompute ``remaining``.

    A circle without a stock row is left alone; usage is then only
    visible on the event and assignment counters.
    """
    if quantity <= 0:
        return None
    resource = Resource.objects.select_for_update().filter(circle=circle, type=resource_type).first()
    if resource is None:
        logger.warning("Usage of %d %s recorded for circle %s without stock", quantity, resource_type, circle)
        return None
    Resource.objects.filter(pk=resource.pk).update(used=F("used") + quantity)
    resource.refresh_from_db(fields=["total", "used"])
    resource.recompute_remaining()
    resource.save(update_fields=["remaining", "updated_at"])
    return resource


def get_summary(queryset=None):
    """Roll-up of the ledger grouped by resource type."""
    qs = queryset if queryset is not None else Resource.objects.all()
    summary = {
        resource_type: {"total": 0, "allocated": 0, "used": 0, "remaining": 0}
        for resource_type in Resource.Type.values
    }
    rows = qs.values("type").annotate(
        total_sum=Sum("total"),
        allocated_sum=Sum("allocated"),
        used_sum=Sum("used"),
        remaining_sum=Sum("remaining"),
    )
    for row in rows:
        summary[row["type"]] = {
            "total": row["total_sum"] or 0,
            "allocated": row["allocated_sum"] or 0,
            "used": row["used_sum"] or 0,
            "remaining": row["remaining_sum"] or 0,
        }
    return summary


def circle_dashboard(circle):
    """Inventory, per-event reservations and totals for one circle."""
    from events.models import Event

    inventory = {
        r.type: {"total": r.total, "allocated": r.allocated, "used": r.used, "remaining": r.remaining}
        for r in Resource.objects.filter(circle=circle)
    }
    events = (
        Event.objects
        .filter(circle=circle)
        .exclude(status=Event.Status.CANCELLED)
        .annotate(
            sim_sold=Sum("assignments__sim_sold"),
            ftth_sold=Sum("assignments__ftth_sold"),
        )
        .order_by("-start_date")
    )
    event_rows = []
    totals = {"allocated_sim": 0, "allocated_ftth": 0, "sim_sold": 0, "ftth_sold": 0}
    for event in events:
        row = {
            "id": str(event.pk),
            "name": event.name,
            "status": event.status,
            "allocated_sim": event.allocated_sim,
            "allocated_ftth": event.allocated_ftth,
            "sim_sold": event.sim_sold or 0,
            "ftth_sold": event.ftth_sold or 0,
        }
        event_rows.append(row)
        for key in totals:
            totals[key] += row[key]
    return {"circle": circle, "inventory": inventory, "events": event_rows, "totals": totals}
