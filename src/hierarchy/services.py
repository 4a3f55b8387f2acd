"""Business logic for the hierarchy app.

Resolves managers and subordinates from the HR master data, links app
accounts to their master record, and runs the admin bulk imports
(employee master, OLT assignments, KAM EB gold figures, FTTH pending
orders).
"""
import logging
from collections import deque

from django.conf import settings
from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from core.circles import normalize_circle_name
from core.imports import build_header_map, parse_decimal, parse_int, row_value
from core.models import AuditLog
from core.services import create_audit_log
from hierarchy.models import EmployeeMaster, FtthOrderPending, KamEbGold, OltAssignment

logger = logging.getLogger("circleops")

Employee = get_user_model()


def _max_depth():
    return int(getattr(settings, "HIERARCHY_MAX_DEPTH", 10))


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def get_master(pers_no):
    if not pers_no:
        return None
    return EmployeeMaster.objects.filter(pers_no=pers_no).select_related("linked_employee").first()


def get_manager(pers_no):
    """Return the master record of the direct manager of *pers_no*, or None."""
    master = get_master(pers_no)
    if master is None or not master.reporting_pers_no:
        return None
    if master.reporting_pers_no == master.pers_no:
        return None
    return get_master(master.reporting_pers_no)


def get_subordinates(pers_no):
    """Direct reports of *pers_no* as an EmployeeMaster queryset."""
    return (
        EmployeeMaster.objects
        .filter(reporting_pers_no=pers_no)
        .exclude(pers_no=pers_no)
        .select_related("linked_employee")
    )


def get_reporting_chain(pers_no, max_depth=None):
    """Walk up the manager edges from *pers_no*.

    Returns the ancestors nearest first. The walk stops at the top of the
    tree, at ``max_depth`` levels, or when a pers_no repeats.
    """
    limit = min(max_depth or _max_depth(), _max_depth())
    chain = []
    seen = {pers_no}
    current = get_master(pers_no)
    while current is not None and len(chain) < limit:
        parent_no = current.reporting_pers_no
        if not parent_no or parent_no in seen:
            break
        seen.add(parent_no)
        current = get_master(parent_no)
        if current is not None:
            chain.append(current)
    return chain


def get_subordinate_tree(pers_no, depth=2):
    """Breadth-limited subordinate tree for team pickers.

    Each node is ``{"master": EmployeeMaster, "children": [...]}``. Depth is
    capped by ``settings.HIERARCHY_MAX_DEPTH`` and a pers_no already placed
    in the tree is never expanded twice, so malformed reporting data with
    cycles still terminates.
    """
    depth = max(0, min(int(depth), _max_depth()))
    visited = {pers_no}

    def _expand(parent_no, level):
        if level >= depth:
            return []
        nodes = []
        for child in get_subordinates(parent_no).order_by("sort_order", "name"):
            if child.pers_no in visited:
                continue
            visited.add(child.pers_no)
            nodes.append({"master": child, "children": _expand(child.pers_no, level + 1)})
        return nodes

    return _expand(pers_no, 0)


def subordinate_employee_ids(employee, include_self=True, max_depth=None):
    """IDs of the linked accounts that report (transitively) to *employee*.

    Follows ``Employee.reporting_officer`` edges breadth-first with a
    visited set, bounded by ``HIERARCHY_MAX_DEPTH``.
    """
    limit = min(max_depth or _max_depth(), _max_depth())
    ids = [employee.pk] if include_self else []
    visited = {employee.pk}
    frontier = deque([(employee.pk, 0)])
    while frontier:
        current_id, level = frontier.popleft()
        if level >= limit:
            continue
        child_ids = Employee.objects.filter(
            reporting_officer_id=current_id,
            is_active=True,
        ).values_list("id", flat=True)
        for child_id in child_ids:
            if child_id in visited:
                continue
            visited.add(child_id)
            ids.append(child_id)
            frontier.append((child_id, level + 1))
    return ids


def direct_report_employees(manager_pers_no):
    """Linked accounts of the direct reports of *manager_pers_no*."""
    linked_ids = (
        get_subordinates(manager_pers_no)
        .filter(is_linked=True, linked_employee__isnull=False)
        .values_list("linked_employee_id", flat=True)
    )
    return Employee.objects.filter(Q(pk__in=list(linked_ids)) | Q(reporting_officer__pers_no=manager_pers_no))


# ---------------------------------------------------------------------------
# Profile linking
# ---------------------------------------------------------------------------

@transaction.atomic
def link_profile(employee, pers_no):
    """Link *employee*'s account to the master record with *pers_no*.

    Sets the account's Purse ID and reporting officer, and re-parents the
    linked accounts of the master record's direct reports.
    """
    pers_no = (pers_no or "").strip()
    master = EmployeeMaster.objects.select_for_update().filter(pers_no=pers_no).first()
    if master is None:
        raise ValueError("Purse ID not found in employee master data. Please contact admin.")
    if master.is_linked and master.linked_employee_id not in (None, employee.pk):
        raise ValueError("This Purse ID is already linked to another account.")
    if Employee.objects.filter(pers_no=pers_no).exclude(pk=employee.pk).exists():
        raise ValueError("This Purse ID is already linked to another account.")

    previous = EmployeeMaster.objects.filter(linked_employee=employee).exclude(pk=master.pk)
    previous.update(is_linked=False, linked_employee=None, linked_at=None)

    master.is_linked = True
    master.linked_employee = employee
    master.linked_at = timezone.now()
    master.save(update_fields=["is_linked", "linked_employee", "linked_at", "updated_at"])

    reporting_officer = None
    manager_master = get_manager(pers_no)
    if manager_master is not None and manager_master.linked_employee_id != employee.pk:
        reporting_officer = manager_master.linked_employee

    employee.pers_no = pers_no
    employee.reporting_officer = reporting_officer
    update_fields = ["pers_no", "reporting_officer"]
    if master.circle:
        employee.circle = normalize_circle_name(master.circle)
        update_fields.append("circle")
    if master.zone:
        employee.zone = master.zone
        update_fields.append("zone")
    if master.designation:
        employee.designation = master.designation
        update_fields.append("designation")
    employee.save(update_fields=update_fields)

    subordinate_ids = list(
        get_subordinates(pers_no)
        .filter(is_linked=True, linked_employee__isnull=False)
        .exclude(linked_employee=employee)
        .values_list("linked_employee_id", flat=True)
    )
    if subordinate_ids:
        Employee.objects.filter(pk__in=subordinate_ids).update(reporting_officer=employee)

    create_audit_log(
        performed_by=employee,
        action="LINK_EMPLOYEE_PROFILE",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=employee.pk,
        details={"pers_no": pers_no, "subordinates_updated": len(subordinate_ids)},
    )
    logger.info(
        "Employee %s linked to pers_no %s (%d subordinates re-parented)",
        employee.pk, pers_no, len(subordinate_ids),
    )
    return master


def my_hierarchy(employee):
    """Manager, reporting chain and direct reports of *employee* as master records.

    Returns ``{"manager", "chain", "subordinates", "is_linked", "master"}``;
    ``chain`` lists the ancestors nearest first. The master records carry
    ``linked_employee`` for navigation to a profile.
    """
    master = get_master(employee.pers_no)
    if master is None:
        return {"manager": None, "chain": [], "subordinates": [], "is_linked": False, "master": None}
    return {
        "manager": get_manager(master.pers_no),
        "chain": get_reporting_chain(master.pers_no),
        "subordinates": list(get_subordinates(master.pers_no).order_by("sort_order", "name")),
        "is_linked": True,
        "master": master,
    }


# ---------------------------------------------------------------------------
# Employee master administration
# ---------------------------------------------------------------------------

_MASTER_FIELD_ALIASES = {
    "name": ("name", "employee_name", "emp_name"),
    "circle": ("circle", "circle_name"),
    "zone": ("zone", "ssa", "zone_name"),
    "designation": ("designation", "desg"),
    "emp_group": ("emp_group", "group", "employee_group"),
    "reporting_pers_no": ("reporting_pers_no", "reporting_purse_id", "reporting_per_no", "ro_pers_no"),
    "reporting_officer_name": ("reporting_officer_name", "ro_name"),
    "reporting_officer_designation": ("reporting_officer_designation", "ro_designation"),
    "division": ("division",),
    "building_name": ("building_name", "building"),
    "office_name": ("office_name", "office"),
    "shift_group": ("shift_group", "shift"),
    "distance_limit": ("distance_limit",),
    "employee_id": ("employee_id", "emp_id", "hrms_id"),
}
_PERS_NO_ALIASES = ("pers_no", "purse_id", "per_no", "persno", "personnel_no")


@transaction.atomic
def import_employee_master(rows, uploaded_by):
    """Upsert master records from parsed CSV/XLSX rows, keyed by pers_no.

    Returns ``{"imported", "updated", "errors", "total"}``; a bad row is
    reported and skipped without aborting the batch.
    """
    rows = list(rows)
    header_map = build_header_map(rows[0].keys()) if rows else {}
    imported = 0
    updated = 0
    errors = []

    for index, row in enumerate(rows, start=2):
        pers_no = row_value(row, header_map, *_PERS_NO_ALIASES)
        name = row_value(row, header_map, *_MASTER_FIELD_ALIASES["name"])
        if not pers_no or not name:
            errors.append(f"Row {index}: pers_no and name are required.")
            continue
        values = {
            field: row_value(row, header_map, *aliases)
            for field, aliases in _MASTER_FIELD_ALIASES.items()
        }
        try:
            sort_raw = row_value(row, header_map, "sort_order", "sort")
            values["sort_order"] = parse_int(sort_raw, field_label="sort_order") if sort_raw else None
            with transaction.atomic():
                _, created = EmployeeMaster.objects.update_or_create(
                    pers_no=pers_no,
                    defaults=values,
                )
        except (ValueError, IntegrityError) as exc:
            errors.append(f"Row {index} ({pers_no}): {exc}")
            continue
        if created:
            imported += 1
        else:
            updated += 1

    create_audit_log(
        performed_by=uploaded_by,
        action="IMPORT_EMPLOYEE_MASTER",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=uploaded_by.pk,
        details={"imported": imported, "updated": updated, "errors": len(errors), "total": len(rows)},
    )
    logger.info(
        "Employee master import by %s: %d imported, %d updated, %d errors",
        uploaded_by.pk, imported, updated, len(errors),
    )
    return {"imported": imported, "updated": updated, "errors": errors, "total": len(rows)}


def search_employee_master(search="", linked=None, limit=50, offset=0):
    qs = EmployeeMaster.objects.select_related("linked_employee")
    if search:
        qs = qs.filter(
            Q(name__icontains=search)
            | Q(pers_no__icontains=search)
            | Q(designation__icontains=search)
        )
    if linked is not None:
        qs = qs.filter(is_linked=linked)
    total = qs.count()
    return {"total": total, "results": list(qs.order_by("sort_order", "name")[offset:offset + limit])}


@transaction.atomic
def delete_employee_master(pers_no, deleted_by):
    master = EmployeeMaster.objects.select_for_update().filter(pers_no=pers_no).first()
    if master is None:
        raise ValueError("Employee master record not found.")
    if master.is_linked:
        raise ValueError("Cannot delete linked employee. Unlink first.")
    master.delete()
    create_audit_log(
        performed_by=deleted_by,
        action="DELETE_EMPLOYEE_MASTER",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=deleted_by.pk,
        details={"pers_no": pers_no},
    )
    logger.info("Employee master %s deleted by %s", pers_no, deleted_by.pk)


@transaction.atomic
def clear_unlinked_employee_master(cleared_by):
    """Delete every master record that is not linked to an account."""
    deleted, _ = EmployeeMaster.objects.filter(is_linked=False).delete()
    create_audit_log(
        performed_by=cleared_by,
        action="CLEAR_EMPLOYEE_MASTER",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=cleared_by.pk,
        details={"deleted": deleted},
    )
    logger.info("Cleared %d unlinked employee master records (by %s)", deleted, cleared_by.pk)
    return deleted


def employee_master_stats():
    stats = EmployeeMaster.objects.aggregate(
        total=Count("id"),
        linked=Count("id", filter=Q(is_linked=True)),
    )
    return {
        "total": stats["total"],
        "linked": stats["linked"],
        "unlinked": stats["total"] - stats["linked"],
    }


# ---------------------------------------------------------------------------
# OLT assignments
# ---------------------------------------------------------------------------

_OLT_HEADER_MARKERS = ("per_no", "pers_no", "olt_ip")


def parse_olt_csv(text):
    """Parse two-column ``PER_NO,OLT_IP`` text.

    The header line is optional and detected by substring match. Returns a
    list of ``(line_number, pers_no, olt_ip)`` tuples, one per data line.
    """
    lines = [line for line in (text or "").strip().splitlines() if line.strip()]
    if not lines:
        return []
    start = 0
    first = lines[0].lower()
    if any(marker in first for marker in _OLT_HEADER_MARKERS):
        start = 1
    records = []
    for number, line in enumerate(lines[start:], start=start + 1):
        parts = [part.strip().replace('"', "") for part in line.split(",")]
        pers_no = parts[0] if parts else ""
        olt_ip = parts[1] if len(parts) > 1 else ""
        records.append((number, pers_no, olt_ip))
    return records


@transaction.atomic
def import_olt_assignments(text, uploaded_by):
    """Insert new (pers_no, olt_ip) pairs from CSV text.

    Pairs that repeat within the file or already exist are counted as
    ``skipped``; lines missing a field are reported in ``errors``. Every
    data line lands in exactly one bucket.
    """
    records = parse_olt_csv(text)
    existing = set(OltAssignment.objects.values_list("pers_no", "olt_ip"))
    imported = 0
    skipped = 0
    errors = []
    to_create = []

    for number, pers_no, olt_ip in records:
        if not pers_no or not olt_ip:
            errors.append(f"Line {number}: PER_NO and OLT_IP are required.")
            continue
        key = (pers_no, olt_ip)
        if key in existing:
            skipped += 1
            continue
        existing.add(key)
        to_create.append(OltAssignment(pers_no=pers_no, olt_ip=olt_ip))
        imported += 1

    OltAssignment.objects.bulk_create(to_create, batch_size=500)

    create_audit_log(
        performed_by=uploaded_by,
        action="IMPORT_OLT_ASSIGNMENTS",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=uploaded_by.pk,
        details={"imported": imported, "skipped": skipped, "errors": len(errors), "total": len(records)},
    )
    logger.info("OLT import by %s: %d imported, %d skipped", uploaded_by.pk, imported, skipped)
    return {"imported": imported, "skipped": skipped, "total": len(records), "errors": errors}


def olt_report(search="", limit=100, offset=0):
    """OLT assignments grouped by pers_no, with the employee name when known.

    ``search`` matches a partial pers_no. Pagination applies to groups.
    """
    qs = OltAssignment.objects.all()
    if search:
        qs = qs.filter(pers_no__icontains=search.strip())

    pers_nos = list(
        qs.values_list("pers_no", flat=True).distinct().order_by("pers_no")
    )
    total = len(pers_nos)
    page = pers_nos[offset:offset + limit]

    ips_by_pers_no = {}
    for pers_no, olt_ip in qs.filter(pers_no__in=page).order_by("olt_ip").values_list("pers_no", "olt_ip"):
        ips_by_pers_no.setdefault(pers_no, []).append(olt_ip)
    names = dict(EmployeeMaster.objects.filter(pers_no__in=page).values_list("pers_no", "name"))

    results = [
        {
            "pers_no": pers_no,
            "name": names.get(pers_no, ""),
            "olt_ips": ips_by_pers_no.get(pers_no, []),
            "olt_count": len(ips_by_pers_no.get(pers_no, [])),
        }
        for pers_no in page
    ]
    return {"total": total, "results": results}


def olt_summary():
    stats = OltAssignment.objects.aggregate(
        total_records=Count("id"),
        unique_personnel=Count("pers_no", distinct=True),
        unique_olt_ips=Count("olt_ip", distinct=True),
    )
    return stats


def olt_for_pers_no(pers_no):
    return list(
        OltAssignment.objects.filter(pers_no=pers_no).order_by("olt_ip").values_list("olt_ip", flat=True)
    )


# ---------------------------------------------------------------------------
# KAM EB gold
# ---------------------------------------------------------------------------

KAM_SORT_FIELDS = ("total_lead_value_crore", "total_leads", "lead_to_bill_crore", "total_sales_visit")


def _parse_exclusive(raw):
    return KamEbGold.Exclusive.YES if str(raw or "").strip().lower() in {"yes", "y", "1", "true"} else KamEbGold.Exclusive.NO


@transaction.atomic
def import_kam_eb_gold(rows, uploaded_by):
    """Upsert KAM EB gold figures by pers_no."""
    rows = list(rows)
    header_map = build_header_map(rows[0].keys()) if rows else {}
    imported = 0
    updated = 0
    errors = []

    for index, row in enumerate(rows, start=2):
        pers_no = row_value(row, header_map, *_PERS_NO_ALIASES)
        name = row_value(row, header_map, "name", "kam_name", "employee_name")
        if not pers_no or not name:
            errors.append(f"Row {index}: pers_no and name are required.")
            continue
        try:
            defaults = {
                "name": name,
                "eb_exclusive": _parse_exclusive(row_value(row, header_map, "eb_exclusive", "exclusive")),
                "total_leads": parse_int(
                    row_value(row, header_map, "total_leads", "leads"), field_label="total_leads",
                ),
                "total_lead_value_crore": parse_decimal(
                    row_value(row, header_map, "total_lead_value_crore", "total_lead_value"),
                    field_label="total_lead_value_crore",
                ),
                "lead_in_stage_iv_crore": parse_decimal(
                    row_value(row, header_map, "lead_in_stage_iv_crore", "lead_in_stage_iv"),
                    field_label="lead_in_stage_iv_crore",
                ),
                "lead_to_bill_crore": parse_decimal(
                    row_value(row, header_map, "lead_to_bill_crore", "lead_to_bill"),
                    field_label="lead_to_bill_crore",
                ),
                "total_sales_visit": parse_int(
                    row_value(row, header_map, "total_sales_visit", "sales_visits", "total_sales_visits"),
                    field_label="total_sales_visit",
                ),
            }
            with transaction.atomic():
                _, created = KamEbGold.objects.update_or_create(pers_no=pers_no, defaults=defaults)
        except (ValueError, IntegrityError) as exc:
            errors.append(f"Row {index} ({pers_no}): {exc}")
            continue
        if created:
            imported += 1
        else:
            updated += 1

    create_audit_log(
        performed_by=uploaded_by,
        action="IMPORT_KAM_EB_GOLD",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=uploaded_by.pk,
        details={"imported": imported, "updated": updated, "errors": len(errors), "total": len(rows)},
    )
    logger.info("KAM EB gold import by %s: %d imported, %d updated", uploaded_by.pk, imported, updated)
    return {"imported": imported, "updated": updated, "errors": errors, "total": len(rows)}


def kam_report(search="", eb_exclusive="all", sort_by="total_lead_value_crore", sort_order="desc", limit=100, offset=0):
    if sort_by not in KAM_SORT_FIELDS:
        raise ValueError(f"sort_by must be one of: {', '.join(KAM_SORT_FIELDS)}")
    qs = KamEbGold.objects.all()
    if search:
        qs = qs.filter(Q(name__icontains=search) | Q(pers_no__icontains=search))
    if eb_exclusive in (KamEbGold.Exclusive.YES, KamEbGold.Exclusive.NO):
        qs = qs.filter(eb_exclusive=eb_exclusive)
    prefix = "" if str(sort_order).lower() == "asc" else "-"
    qs = qs.order_by(f"{prefix}{sort_by}", "pers_no")
    total = qs.count()
    return {"total": total, "results": list(qs[offset:offset + limit])}


def kam_summary():
    stats = KamEbGold.objects.aggregate(
        total_personnel=Count("id"),
        eb_exclusive_count=Count("id", filter=Q(eb_exclusive=KamEbGold.Exclusive.YES)),
        total_leads=Sum("total_leads"),
        total_lead_value_crore=Sum("total_lead_value_crore"),
        lead_in_stage_iv_crore=Sum("lead_in_stage_iv_crore"),
        lead_to_bill_crore=Sum("lead_to_bill_crore"),
        total_sales_visit=Sum("total_sales_visit"),
    )
    return {key: (value or 0) for key, value in stats.items()}


def kam_by_pers_no(pers_no):
    return KamEbGold.objects.filter(pers_no=pers_no).first()


# ---------------------------------------------------------------------------
# FTTH pending orders
# ---------------------------------------------------------------------------

FTTH_PENDING_MAX_LIMIT = 500
FTTH_PENDING_DELETE_CONFIRMATION = "DELETE ALL FTTH PENDING DATA"
_FTTH_PENDING_ALIASES = ("total_ftth_orders_pending", "ftth_orders_pending", "pending_orders", "pending")


def normalize_ftth_pers_no(raw):
    """Strip whitespace and leading zeros ("00123" and "123" are the same employee)."""
    value = str(raw or "").strip()
    return value.lstrip("0") or value


def _page(qs, page, limit):
    page = max(int(page or 1), 1)
    limit = max(1, min(int(limit or 50), FTTH_PENDING_MAX_LIMIT))
    total = qs.count()
    offset = (page - 1) * limit
    pagination = {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": (total + limit - 1) // limit,
        "has_next_page": page * limit < total,
        "has_prev_page": page > 1,
    }
    return list(qs[offset:offset + limit]), pagination


@transaction.atomic
def import_ftth_pending(session, rows, clear_existing=False):
    """
    Load pending FTTH order counts from parsed CSV/XLSX rows.

    Parameters
    ----------
    session : accounts.session.SessionContext
    rows : iterable of dict
        Columns ``pers_no``, ``ba`` and ``total_ftth_orders_pending``.
    clear_existing : bool
        Wipe the table before loading.

    Returns
    -------
    dict
        ``{"imported", "updated", "skipped", "errors", "total"}``. Rows
        without a pers_no or BA are skipped; rows with a bad count are
        reported in ``errors``.
    """
    session.require("CAN_MANAGE_FTTH_PENDING", "Only management roles can import FTTH pending data.")
    rows = list(rows)
    header_map = build_header_map(rows[0].keys()) if rows else {}
    if clear_existing:
        FtthOrderPending.objects.all().delete()

    imported = 0
    updated = 0
    skipped = 0
    errors = []
    for index, row in enumerate(rows, start=2):
        pers_no = normalize_ftth_pers_no(row_value(row, header_map, *_PERS_NO_ALIASES))
        ba = row_value(row, header_map, "ba", "business_area")
        if not pers_no or not ba:
            skipped += 1
            continue
        try:
            pending = parse_int(
                row_value(row, header_map, *_FTTH_PENDING_ALIASES), field_label="total_ftth_orders_pending",
            )
            if pending < 0:
                raise ValueError("total_ftth_orders_pending cannot be negative.")
        except ValueError as exc:
            errors.append(f"Row {index} ({pers_no}): {exc}")
            continue
        _, created = FtthOrderPending.objects.update_or_create(
            pers_no=pers_no, ba=ba, defaults={"total_ftth_orders_pending": pending},
        )
        if created:
            imported += 1
        else:
            updated += 1

    create_audit_log(
        performed_by=session.employee,
        action="IMPORT_FTTH_PENDING",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=session.employee_id,
        details={
            "imported": imported,
            "updated": updated,
            "skipped": skipped,
            "errors": len(errors),
            "clear_existing": bool(clear_existing),
        },
    )
    logger.info(
        "FTTH pending import by %s: %d imported, %d updated, %d skipped",
        session.employee_id, imported, updated, skipped,
    )
    return {"imported": imported, "updated": updated, "skipped": skipped, "errors": errors, "total": len(rows)}


def ftth_pending_for_pers_no(pers_no):
    return list(FtthOrderPending.objects.filter(pers_no=normalize_ftth_pers_no(pers_no)).order_by("ba"))


def ftth_pending_list(page=1, limit=50):
    return _page(FtthOrderPending.objects.order_by("pers_no", "ba"), page, limit)


def ftth_pending_summary():
    stats = FtthOrderPending.objects.aggregate(
        total_records=Count("id"),
        total_pending_orders=Sum("total_ftth_orders_pending"),
        unique_employees=Count("pers_no", distinct=True),
        unique_bas=Count("ba", distinct=True),
    )
    return {key: (value or 0) for key, value in stats.items()}


def employees_with_ftth_pending(page=1, limit=200):
    """Per-employee pending totals, largest first, joined to the HR master."""
    grouped = (
        FtthOrderPending.objects.values("pers_no")
        .annotate(total_pending=Sum("total_ftth_orders_pending"), ba_count=Count("ba", distinct=True))
        .order_by("-total_pending", "pers_no")
    )
    rows, pagination = _page(grouped, page, limit)
    masters = EmployeeMaster.objects.in_bulk([row["pers_no"] for row in rows], field_name="pers_no")
    employees = []
    for row in rows:
        master = masters.get(row["pers_no"])
        employees.append({
            "pers_no": row["pers_no"],
            "name": master.name if master else "Unknown",
            "designation": (master.designation if master else "") or "N/A",
            "circle": (master.circle if master else "") or "N/A",
            "zone": (master.zone if master else "") or "N/A",
            "division": (master.division if master else "") or "N/A",
            "total_pending": row["total_pending"] or 0,
            "ba_count": row["ba_count"],
            "employee_master_id": master.pk if master else None,
        })
    return employees, pagination


@transaction.atomic
def upsert_ftth_pending(session, pers_no, ba, total_ftth_orders_pending):
    """Create or update one (pers_no, BA) count. Returns ``(record, created)``."""
    session.require("CAN_MANAGE_FTTH_PENDING", "Only management roles can update FTTH pending data.")
    pers_no = normalize_ftth_pers_no(pers_no)
    ba = str(ba or "").strip()
    if not pers_no:
        raise ValueError("Pers No is required.")
    if not ba:
        raise ValueError("BA is required.")
    pending = int(total_ftth_orders_pending)
    if pending < 0:
        raise ValueError("Pending count must be non-negative.")

    record, created = FtthOrderPending.objects.update_or_create(
        pers_no=pers_no, ba=ba, defaults={"total_ftth_orders_pending": pending},
    )
    create_audit_log(
        performed_by=session.employee,
        action="UPSERT_FTTH_PENDING",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=record.pk,
        details={"pers_no": pers_no, "ba": ba, "total": pending, "created": created},
    )
    return record, created


@transaction.atomic
def delete_all_ftth_pending(session, confirm_text):
    session.require("CAN_MANAGE_FTTH_PENDING", "Only management roles can delete FTTH pending data.")
    if confirm_text != FTTH_PENDING_DELETE_CONFIRMATION:
        raise ValueError(f'Type "{FTTH_PENDING_DELETE_CONFIRMATION}" to confirm.')
    deleted, _ = FtthOrderPending.objects.all().delete()
    create_audit_log(
        performed_by=session.employee,
        action="DELETE_ALL_FTTH_PENDING",
        entity_type=AuditLog.EntityType.EMPLOYEE,
        entity_id=session.employee_id,
        details={"deleted": deleted},
    )
    logger.warning("All FTTH pending data deleted by %s (%d rows)", session.employee_id, deleted)
    return deleted
