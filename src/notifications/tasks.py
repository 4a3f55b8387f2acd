"""Celery tasks for the notifications app."""
import logging
from datetime import timedelta

from celery import shared_task
from django.db.models import F, Q
from django.utils import timezone

logger = logging.getLogger("circleops")

# Reminder keys carry the date, so a one-day window sends each reminder once a day.
REMINDER_DEDUPE_MINUTES = 24 * 60


@shared_task(name="notifications.tasks.cleanup_old_notifications")
def cleanup_old_notifications(days=90):
    """Delete read notifications older than *days*."""
    from notifications.services import cleanup_old_notifications as _cleanup

    deleted = _cleanup(days=days)
    if deleted:
        logger.info("Deleted %d old notification(s).", deleted)
    return f"{deleted} notification(s) deleted"


@shared_task(name="notifications.tasks.cleanup_inactive_push_tokens")
def cleanup_inactive_push_tokens(days=30):
    """Delete push tokens deactivated more than *days* ago."""
    from notifications.services import cleanup_inactive_push_tokens as _cleanup

    deleted = _cleanup(days=days)
    if deleted:
        logger.info("Deleted %d inactive push token(s).", deleted)
    return f"{deleted} push token(s) deleted"


@shared_task(name="notifications.tasks.check_subtask_deadlines")
def check_subtask_deadlines():
    """Remind assignees of open subtasks due within 24 hours or overdue.

    At most one reminder per subtask and kind is sent each day.
    """
    from events.models import EventSubtask
    from notifications.models import Notification
    from notifications.services import notify

    now = timezone.now()
    today = timezone.localdate().isoformat()
    open_subtasks = (
        EventSubtask.objects
        .filter(assigned_to__isnull=False, due_date__isnull=False)
        .exclude(status__in=[EventSubtask.Status.COMPLETED, EventSubtask.Status.CANCELLED])
        .select_related("assigned_to", "event")
    )

    sent = 0
    for subtask in open_subtasks.filter(due_date__lt=now):
        if notify(
            subtask.assigned_to,
            Notification.Type.SUBTASK_OVERDUE,
            "Subtask overdue",
            f"{subtask.title} ({subtask.event.name}) is past its due date.",
            entity_type="subtask",
            entity_id=subtask.pk,
            dedupe_key=f"subtask:{subtask.pk}:overdue:{today}",
            dedupe_window_minutes=REMINDER_DEDUPE_MINUTES,
        ):
            sent += 1

    for subtask in open_subtasks.filter(due_date__gte=now, due_date__lte=now + timedelta(hours=24)):
        if notify(
            subtask.assigned_to,
            Notification.Type.SUBTASK_DUE_SOON,
            "Subtask due soon",
            f"{subtask.title} ({subtask.event.name}) is due within 24 hours.",
            entity_type="subtask",
            entity_id=subtask.pk,
            dedupe_key=f"subtask:{subtask.pk}:due_soon:{today}",
            dedupe_window_minutes=REMINDER_DEDUPE_MINUTES,
        ):
            sent += 1

    if sent:
        logger.info("Sent %d subtask deadline reminder(s).", sent)
    return f"{sent} subtask reminder(s) sent"


@shared_task(name="notifications.tasks.check_event_deadlines")
def check_event_deadlines():
    """Warn team members behind target on active events ending today or tomorrow."""
    from events.models import Event, EventAssignment
    from notifications.models import Notification
    from notifications.services import notify

    today = timezone.localdate()
    horizon = today + timedelta(days=1)
    assignments = (
        EventAssignment.objects
        .filter(
            event__status=Event.Status.ACTIVE,
            event__end_date__date__gte=today,
            event__end_date__date__lte=horizon,
        )
        .filter(Q(sim_sold__lt=F("sim_target")) | Q(ftth_sold__lt=F("ftth_target")))
        .select_related("employee", "event")
    )

    sent = 0
    for assignment in assignments:
        event = assignment.event
        days_left = (timezone.localtime(event.end_date).date() - today).days
        if days_left <= 0:
            notification_type = Notification.Type.TASK_ENDING_TODAY
            title = "Event ends today"
        else:
            notification_type = Notification.Type.DEADLINE_WARNING
            title = "Event ends tomorrow"
        progress = assignment.sim_sold + assignment.ftth_sold
        target = assignment.sim_target + assignment.ftth_target
        if notify(
            assignment.employee,
            notification_type,
            title,
            f"{event.name}: {progress}/{target} of your target achieved.",
            entity_type="event",
            entity_id=event.pk,
            dedupe_key=f"event:{event.pk}:{notification_type}:{today.isoformat()}",
            dedupe_window_minutes=REMINDER_DEDUPE_MINUTES,
        ):
            sent += 1

    if sent:
        logger.info("Sent %d event deadline warning(s).", sent)
    return f"{sent} deadline warning(s) sent"
