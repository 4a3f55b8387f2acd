"""Business-logic / service functions for the sales app."""
from __future__ import annotations

import logging
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone

from core.exceptions import ConflictError
from core.models import AuditLog
from core.services import create_audit_log
from events.models import Event, EventAssignment
from hierarchy.services import subordinate_employee_ids
from notifications.models import Notification
from notifications.services import notify
from sales.models import FinanceCollectionEntry, SalesReport

logger = logging.getLogger("circleops")


def _audit(performed_by, action, report, details=None):
    create_audit_log(
        performed_by=performed_by,
        action=action,
        entity_type=AuditLog.EntityType.SALES,
        entity_id=report.pk,
        details=details,
    )


def visible_employee_ids(session):
    """None for ADMIN (no restriction), else the caller plus their subordinates."""
    if session.role == "ADMIN":
        return None
    return subordinate_employee_ids(session.employee)


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------

def visible_reports(session):
    """Reviewers see every report; other staff only their own."""
    qs = SalesReport.objects.select_related("event", "sales_staff", "reviewed_by")
    if session.can("CAN_APPROVE_SALES"):
        if not session.sees_all_circles:
            qs = qs.filter(event__circle=session.circle)
        return qs
    return qs.filter(sales_staff=session.employee)


@transaction.atomic
def create_report(session, event, **fields) -> SalesReport:
    """Create a PENDING report for the caller.

    Parameters
    ----------
    session : accounts.session.SessionContext
    event : events.models.Event
    **fields
        sims_sold, sims_activated, ftth_leads, ftth_installed,
        customer_type, photos, gps_latitude, gps_longitude, remarks.

    Returns
    -------
    SalesReport
    """
    session.require("CAN_SUBMIT_SALES", "You are not allowed to submit sales reports.")
    for name in ("sims_sold", "sims_activated", "ftth_leads", "ftth_installed"):
        if int(fields.get(name) or 0) < 0:
            raise ValueError(f"{name} cannot be negative.")
    if fields.get("customer_type") not in SalesReport.CustomerType.values:
        raise ValueError(f"Invalid customer type: {fields.get('customer_type')}")

    report = SalesReport.objects.create(
        event=event,
        sales_staff=session.employee,
        status=SalesReport.Status.PENDING,
        **fields,
    )
    _audit(session.employee, "CREATE_SALES_REPORT", report, {
        "event_id": str(event.pk),
        "sims_sold": report.sims_sold,
        "ftth_installed": report.ftth_installed,
    })

    reviewer = event.assigned_to or event.created_by
    if reviewer is not None and reviewer.pk != session.employee_id:
        notify(
            reviewer,
            Notification.Type.TASK_SUBMITTED,
            "Sales report submitted",
            f"{session.employee.name} submitted a sales report for {event.name}.",
            entity_type="sales_report",
            entity_id=report.pk,
        )
    logger.info("Sales report %s created by %s for event %s", report.pk, session.employee_id, event.pk)
    return report


@transaction.atomic
def update_report(session, report_id, **changes) -> SalesReport:
    """Edit a PENDING report. Only its author may edit it."""
    report = SalesReport.objects.select_for_update().get(pk=report_id)
    if report.sales_staff_id != session.employee_id:
        session.require("CAN_APPROVE_SALES", "You can only edit your own sales reports.")
    if report.is_terminal:
        raise ConflictError(f"Sales report is already {report.status}.")

    update_fields = ["updated_at"]
    for field, value in changes.items():
        setattr(report, field, value)
        update_fields.append(field)
    report.save(update_fields=update_fields)
    _audit(session.employee, "UPDATE_SALES_REPORT", report, {
        key: str(value) for key, value in changes.items()
    })
    return report


def _review(session, report_id, status, remarks, action):
    session.require("CAN_APPROVE_SALES", "Only CGM, DGM, AGM, GM or ADMIN can review sales reports.")
    try:
        report = SalesReport.objects.select_for_update().select_related("event").get(pk=report_id)
    except SalesReport.DoesNotExist:
        raise ValueError("Sales report not found.")
    if report.is_terminal:
        raise ConflictError(f"Sales report is already {report.status}.")

    report.status = status
    report.reviewed_by = session.employee
    report.reviewed_at = timezone.now()
    report.review_remarks = remarks or ""
    report.save(update_fields=["status", "reviewed_by", "reviewed_at", "review_remarks", "updated_at"])
    _audit(session.employee, action, report, {"review_remarks": report.review_remarks})

    approved = status == SalesReport.Status.APPROVED
    notify(
        report.sales_staff,
        Notification.Type.TASK_APPROVED if approved else Notification.Type.TASK_REJECTED,
        "Sales report approved" if approved else "Sales report rejected",
        f"Your report for {report.event.name} was {status}."
        + (f" Remarks: {report.review_remarks}" if report.review_remarks else ""),
        entity_type="sales_report",
        entity_id=report.pk,
    )
    logger.info("Sales report %s %s by %s", report.pk, status, session.employee_id)
    return report


@transaction.atomic
def approve_report(session, report_id, remarks="") -> SalesReport:
    """Move a PENDING report to APPROVED.

    Raises
    ------
    PermissionDenied
        If the caller cannot approve sales.
    ConflictError
        If the report was already approved or rejected.
    """
    return _review(session, report_id, SalesReport.Status.APPROVED, remarks, "APPROVE_SALES_REPORT")


@transaction.atomic
def reject_report(session, report_id, remarks) -> SalesReport:
    """Move a PENDING report to REJECTED. *remarks* are mandatory."""
    if not (remarks or "").strip():
        raise ValueError("Remarks are required to reject a sales report.")
    return _review(session, report_id, SalesReport.Status.REJECTED, remarks.strip(), "REJECT_SALES_REPORT")


@transaction.atomic
def bulk_approve(session, report_ids, remarks="") -> int:
    """Approve the PENDING reports among *report_ids*; others are left alone."""
    session.require("CAN_APPROVE_SALES", "Only CGM, DGM, AGM, GM or ADMIN can review sales reports.")
    remarks = remarks or "Bulk approved"
    pending = list(
        SalesReport.objects.select_for_update()
        .filter(pk__in=report_ids, status=SalesReport.Status.PENDING)
        .values_list("pk", flat=True)
    )
    count = SalesReport.objects.filter(pk__in=pending).update(
        status=SalesReport.Status.APPROVED,
        reviewed_by=session.employee,
        reviewed_at=timezone.now(),
        review_remarks=remarks,
        updated_at=timezone.now(),
    )
    for report in SalesReport.objects.filter(pk__in=pending).select_related("sales_staff"):
        _audit(session.employee, "APPROVE_SALES_REPORT", report, {
            "review_remarks": remarks,
            "bulk_approval": True,
        })
        notify(
            report.sales_staff,
            Notification.Type.TASK_APPROVED,
            "Sales report approved",
            "Your sales report was approved.",
            entity_type="sales_report",
            entity_id=report.pk,
        )
    logger.info("Bulk approved %d sales report(s) by %s", count, session.employee_id)
    return count


def pending_for_review(session):
    return visible_reports(session).filter(status=SalesReport.Status.PENDING)


def _report_totals(qs):
    totals = qs.aggregate(
        total_sims_sold=Sum("sims_sold"),
        total_sims_activated=Sum("sims_activated"),
        total_ftth_leads=Sum("ftth_leads"),
        total_ftth_installed=Sum("ftth_installed"),
        report_count=Count("id"),
    )
    return {key: value or 0 for key, value in totals.items()}


def event_summary(event):
    return _report_totals(SalesReport.objects.filter(event=event))


def staff_summary(employee):
    return _report_totals(SalesReport.objects.filter(sales_staff=employee))


def dashboard_stats(queryset=None):
    qs = queryset if queryset is not None else SalesReport.objects.all()
    totals = _report_totals(qs)
    totals["pending"] = qs.filter(status=SalesReport.Status.PENDING).count()
    return totals


def by_type(session, sale_type, limit=100):
    """Assignments that sold *sale_type* (``sim`` or ``ftth``), scoped to the caller."""
    if sale_type not in ("sim", "ftth"):
        raise ValueError("type must be 'sim' or 'ftth'.")
    qs = EventAssignment.objects.select_related("event", "employee")
    qs = qs.filter(sim_sold__gt=0) if sale_type == "sim" else qs.filter(ftth_sold__gt=0)
    visible_ids = visible_employee_ids(session)
    if visible_ids is not None:
        qs = qs.filter(
            Q(employee_id__in=visible_ids)
            | Q(event__created_by_id__in=visible_ids)
            | Q(event__assigned_to_id__in=visible_ids)
        )
    return qs.order_by("-created_at")[:limit]


# ---------------------------------------------------------------------------
# Finance collections
# ---------------------------------------------------------------------------

@transaction.atomic
def submit_finance_collection(session, event_id, finance_type, amount_collected, **fields):
    """
    Record a collection and add it to the event's matching counter.

    Returns
    -------
    FinanceCollectionEntry
        The created entry.

    Raises
    ------
    ValueError
        On an unknown type or a non-positive amount, or when the caller is
        not on the event team.
    ConflictError
        If the event is completed or cancelled.
    """
    session.require("CAN_SUBMIT_SALES", "You are not allowed to record collections.")
    if finance_type not in FinanceCollectionEntry.FinanceType.values:
        raise ValueError(f"Invalid finance type: {finance_type}")
    try:
        amount = Decimal(str(amount_collected))
    except (InvalidOperation, TypeError):
        raise ValueError("Amount collected must be a number.")
    if amount <= 0:
        raise ValueError("Amount collected must be positive.")
    payment_mode = fields.get("payment_mode") or FinanceCollectionEntry.PaymentMode.CASH
    if payment_mode not in FinanceCollectionEntry.PaymentMode.values:
        raise ValueError(f"Invalid payment mode: {payment_mode}")
    fields["payment_mode"] = payment_mode

    try:
        event = Event.objects.select_for_update().get(pk=event_id)
    except Event.DoesNotExist:
        raise ValueError("Event not found.")
    if event.is_closed:
        raise ConflictError(f"Cannot record collections for a {event.status} event.")
    on_team = EventAssignment.objects.filter(event=event, employee=session.employee).exists()
    if not on_team and event.assigned_to_id != session.employee_id:
        raise ValueError("You are not assigned to this event.")

    entry = FinanceCollectionEntry.objects.create(
        event=event,
        employee=session.employee,
        finance_type=finance_type,
        amount_collected=amount,
        **fields,
    )
    _, counter = FinanceCollectionEntry.EVENT_FIELDS[finance_type]
    Event.objects.filter(pk=event.pk).update(**{counter: F(counter) + amount, "updated_at": timezone.now()})

    create_audit_log(
        performed_by=session.employee,
        action="SUBMIT_FINANCE_COLLECTION",
        entity_type=AuditLog.EntityType.SALES,
        entity_id=entry.pk,
        details={"event_id": str(event.pk), "finance_type": finance_type, "amount": str(amount)},
    )
    logger.info(
        "Finance collection %s: %s %s on event %s by %s",
        entry.pk, finance_type, amount, event.pk, session.employee_id,
    )
    return entry


def finance_collections(session, finance_type=None, limit=100):
    qs = FinanceCollectionEntry.objects.select_related("event", "employee")
    visible_ids = visible_employee_ids(session)
    if visible_ids is not None:
        qs = qs.filter(employee_id__in=visible_ids)
    if finance_type:
        qs = qs.filter(finance_type=finance_type)
    return qs.order_by("-created_at")[:limit]


def finance_summary(session):
    """Collected amounts and targets per finance type for the caller's scope."""
    collections = FinanceCollectionEntry.objects.all()
    events = Event.objects.all()
    visible_ids = visible_employee_ids(session)
    if visible_ids is not None:
        collections = collections.filter(employee_id__in=visible_ids)
        events = events.filter(
            Q(created_by_id__in=visible_ids)
            | Q(assigned_to_id__in=visible_ids)
            | Q(assignments__employee_id__in=visible_ids)
        ).distinct()

    target_fields = {
        finance_type: target for finance_type, (target, _) in FinanceCollectionEntry.EVENT_FIELDS.items()
    }
    targets = Event.objects.filter(pk__in=events.values("pk")).aggregate(
        **{finance_type: Sum(field) for finance_type, field in target_fields.items()}
    )
    zero = Decimal("0.00")
    by_type = {
        finance_type: {"total_collected": zero, "entries": 0, "target": targets.get(finance_type) or zero}
        for finance_type in FinanceCollectionEntry.FinanceType.values
    }
    rows = (
        collections.order_by()
        .values("finance_type")
        .annotate(total=Sum("amount_collected"), entries=Count("id"))
    )
    total_collected = zero
    total_entries = 0
    for row in rows:
        by_type[row["finance_type"]]["total_collected"] = row["total"] or zero
        by_type[row["finance_type"]]["entries"] = row["entries"]
        total_collected += row["total"] or zero
        total_entries += row["entries"]

    return {
        "total_collected": total_collected,
        "total_target": sum((item["target"] for item in by_type.values()), zero),
        "entries": total_entries,
        "by_type": by_type,
    }
