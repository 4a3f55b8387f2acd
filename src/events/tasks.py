"""Celery tasks for the events app."""
import logging

from celery import shared_task

logger = logging.getLogger("circleops")


@shared_task(name="events.tasks.auto_complete_expired_events")
def auto_complete_expired_events():
    """Close active events whose end date has passed.

    Runs daily via Celery Beat.
    """
    from events.services import auto_complete_expired_events as _complete

    count = _complete()
    return f"{count} event(s) auto-completed"
