"""Business logic for field issues and their escalation."""
import logging

from django.db import transaction
from django.utils import timezone

from core.models import AuditLog
from core.services import create_audit_log
from issues.models import Issue
from notifications.models import Notification
from notifications.services import notify

logger = logging.getLogger("circleops")


def _timeline_entry(action, employee):
    return {
        "action": action,
        "performed_by": str(employee.pk),
        "timestamp": timezone.now().isoformat(),
    }


def _audit(performed_by, action, issue, details=None):
    create_audit_log(
        performed_by=performed_by,
        action=action,
        entity_type=AuditLog.EntityType.ISSUE,
        entity_id=issue.pk,
        details=details,
    )


def _lock_issue(issue_id):
    try:
        return Issue.objects.select_for_update().select_related("event").get(pk=issue_id)
    except Issue.DoesNotExist:
        raise ValueError("Issue not found.")


def visible_issues(session):
    """Issues on the caller's board.

    ADMIN sees every issue. Issue managers see the issues escalated to
    them; everyone else sees the issues they raised.
    """
    qs = Issue.objects.select_related("event", "raised_by", "escalated_to", "resolved_by")
    if session.role == "ADMIN":
        return qs
    if session.can("CAN_MANAGE_ISSUES"):
        return qs.filter(escalated_to=session.employee)
    return qs.filter(raised_by=session.employee)


def open_count(session):
    return visible_issues(session).filter(status=Issue.Status.OPEN).count()


@transaction.atomic
def create_issue(session, event, issue_type, description, escalated_to=None):
    """
    Raise an issue on *event*.

    ``escalated_to`` defaults to the event creator, who is notified.
    """
    session.require("CAN_RAISE_ISSUE", "You are not allowed to raise issues.")
    if issue_type not in Issue.Type.values:
        raise ValueError(f"Invalid issue type: {issue_type}")
    if not (description or "").strip():
        raise ValueError("Description is required.")

    issue = Issue.objects.create(
        event=event,
        raised_by=session.employee,
        type=issue_type,
        description=description.strip(),
        status=Issue.Status.OPEN,
        escalated_to=escalated_to or event.created_by,
        timeline=[_timeline_entry("Issue Created", session.employee)],
    )
    _audit(session.employee, "CREATE_ISSUE", issue, {"event_id": str(event.pk), "type": issue_type})

    if issue.escalated_to_id and issue.escalated_to_id != session.employee_id:
        notify(
            issue.escalated_to,
            Notification.Type.ISSUE_RAISED,
            "New issue raised",
            f"{session.employee.name} reported {issue.get_type_display().lower()} at {event.name}.",
            entity_type="issue",
            entity_id=issue.pk,
        )
    logger.info("Issue %s raised by %s on event %s", issue.pk, session.employee_id, event.pk)
    return issue


@transaction.atomic
def update_status(session, issue_id, status, remarks=""):
    """Move the issue forward in OPEN -> IN_PROGRESS -> RESOLVED -> CLOSED.

    Steps may be skipped. Staying put or moving back raises ValueError.
    """
    if status not in Issue.Status.values:
        raise ValueError(f"Invalid status: {status}")
    issue = _lock_issue(issue_id)
    if issue.escalated_to_id != session.employee_id:
        session.require("CAN_MANAGE_ISSUES", "You are not allowed to update this issue.")
    if Issue.STATUS_ORDER[status] <= Issue.STATUS_ORDER[issue.status]:
        raise ValueError(f"Cannot move issue from {issue.status} to {status}.")

    previous = issue.status
    action = f"Status changed to {status}"
    if remarks:
        action = f"{action}: {remarks}"
    issue.status = status
    issue.timeline = list(issue.timeline) + [_timeline_entry(action, session.employee)]
    update_fields = ["status", "timeline", "updated_at"]
    if status in (Issue.Status.RESOLVED, Issue.Status.CLOSED) and issue.resolved_at is None:
        issue.resolved_by = session.employee
        issue.resolved_at = timezone.now()
        update_fields += ["resolved_by", "resolved_at"]
    issue.save(update_fields=update_fields)
    _audit(session.employee, "UPDATE_ISSUE_STATUS", issue, {"from": previous, "status": status})

    if issue.raised_by_id != session.employee_id:
        resolved = status == Issue.Status.RESOLVED
        notify(
            issue.raised_by,
            Notification.Type.ISSUE_RESOLVED if resolved else Notification.Type.ISSUE_STATUS_CHANGED,
            "Issue resolved" if resolved else "Issue updated",
            f"Your issue at {issue.event.name} is now {issue.get_status_display()}.",
            entity_type="issue",
            entity_id=issue.pk,
            dedupe_key=f"issue:{issue.pk}:status:{status}",
        )
    logger.info("Issue %s %s -> %s by %s", issue.pk, previous, status, session.employee_id)
    return issue


@transaction.atomic
def escalate(session, issue_id, escalated_to):
    """Hand the issue to *escalated_to* and put it IN_PROGRESS."""
    issue = _lock_issue(issue_id)
    involved = session.employee_id in (issue.raised_by_id, issue.escalated_to_id)
    if not involved:
        session.require("CAN_MANAGE_ISSUES", "You are not allowed to escalate this issue.")
    if issue.status not in Issue.ESCALATABLE_STATUSES:
        raise ValueError(f"Cannot escalate an issue that is {issue.status}.")
    if escalated_to is None:
        raise ValueError("An escalation target is required.")

    issue.escalated_to = escalated_to
    issue.status = Issue.Status.IN_PROGRESS
    issue.timeline = list(issue.timeline) + [
        _timeline_entry(f"Escalated to {escalated_to.name}", session.employee),
    ]
    issue.save(update_fields=["escalated_to", "status", "timeline", "updated_at"])
    _audit(session.employee, "ESCALATE_ISSUE", issue, {"escalated_to": str(escalated_to.pk)})

    notify(
        escalated_to,
        Notification.Type.ISSUE_ESCALATED,
        "Issue escalated to you",
        f"{issue.get_type_display()} at {issue.event.name}: {issue.description[:120]}",
        entity_type="issue",
        entity_id=issue.pk,
        dedupe_key=f"issue:{issue.pk}:escalated:{escalated_to.pk}",
    )
    logger.info("Issue %s escalated to %s by %s", issue.pk, escalated_to.pk, session.employee_id)
    return issue
