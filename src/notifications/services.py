"""Business logic for in-app notifications, push tokens and preferences."""
import logging
from datetime import timedelta

from django.conf import settings
from django.core.cache import cache
from django.db import transaction
from django.utils import timezone

from notifications.models import Notification, NotificationPreference, PushToken

logger = logging.getLogger("circleops")


def _unread_cache_key(employee_id):
    return f"notifications:unread:{employee_id}"


def _invalidate_unread_count(employee_id):
    cache.delete(_unread_cache_key(employee_id))


def is_type_enabled(employee_id, notification_type):
    """Return False only when the employee explicitly disabled the type."""
    pref = (
        NotificationPreference.objects
        .filter(employee_id=employee_id, notification_type=notification_type)
        .only("enabled")
        .first()
    )
    return pref is None or pref.enabled


def create_notification(
    recipient,
    notification_type,
    title,
    message,
    entity_type="",
    entity_id="",
    metadata=None,
    dedupe_key=None,
    dedupe_window_minutes=None,
):
    """Create and return a new Notification, or None when suppressed.

    Parameters
    ----------
    recipient : accounts.models.Employee
        The employee who will see the notification.
    notification_type : str
        One of ``Notification.Type`` values.
    title, message : str
        Human-readable content.
    entity_type, entity_id : str, optional
        The record the notification points at (``"event"``, ``"issue"``...).
    metadata : dict, optional
        Extra JSON-serialisable data.
    dedupe_key : str, optional
        Defaults to ``"<entity_type>:<entity_id>:<type>"`` when an entity
        is given. A notification with the same recipient, type and key
        created inside the dedupe window suppresses this one.
    dedupe_window_minutes : int, optional
        Overrides ``NOTIFICATION_DEDUPE_WINDOW_MINUTES`` for this call.

    Returns
    -------
    Notification or None
        None when the recipient disabled the type or a duplicate exists.
    """
    if recipient is None:
        return None
    if not is_type_enabled(recipient.pk, notification_type):
        logger.debug("Notification %s disabled by %s", notification_type, recipient.pk)
        return None

    entity_id = str(entity_id) if entity_id else ""
    if dedupe_key is None and entity_type and entity_id:
        dedupe_key = f"{entity_type}:{entity_id}:{notification_type}"

    if dedupe_key:
        window = dedupe_window_minutes or getattr(settings, "NOTIFICATION_DEDUPE_WINDOW_MINUTES", 5)
        since = timezone.now() - timedelta(minutes=window)
        duplicate = Notification.objects.filter(
            recipient=recipient,
            type=notification_type,
            dedupe_key=dedupe_key,
            created_at__gte=since,
        ).exists()
        if duplicate:
            logger.debug("Skipping duplicate notification %s for %s", notification_type, recipient.pk)
            return None

    notification = Notification.objects.create(
        recipient=recipient,
        type=notification_type,
        title=title,
        message=message,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata or {},
        dedupe_key=dedupe_key or "",
    )
    _invalidate_unread_count(recipient.pk)
    logger.info("Notification created: [%s] %s for %s", notification_type, title, recipient.pk)
    return notification


def notify(recipient, notification_type, title, message, **kwargs):
    """Best-effort :func:`create_notification` for use inside business flows.

    A failure is logged and never rolls back the caller's transaction.
    """
    try:
        with transaction.atomic():
            return create_notification(recipient, notification_type, title, message, **kwargs)
    except Exception:
        logger.warning(
            "Notification %s for %s could not be created",
            notification_type,
            getattr(recipient, "pk", None),
            exc_info=True,
        )
        return None


# ---------------------------------------------------------------------------
# Inbox
# ---------------------------------------------------------------------------

def list_notifications(employee, limit=50, unread_only=False):
    qs = Notification.objects.filter(recipient=employee)
    if unread_only:
        qs = qs.filter(is_read=False)
    return qs.order_by("-created_at")[:limit]


def unread_count(employee):
    """Unread notifications for *employee*, cached between writes."""
    key = _unread_cache_key(employee.pk)
    count = cache.get(key)
    if count is None:
        count = Notification.objects.filter(recipient=employee, is_read=False).count()
        cache.set(key, count, getattr(settings, "NOTIFICATION_UNREAD_CACHE_SECONDS", 60))
    return count


def mark_as_read(employee, notification_id):
    """Mark one of *employee*'s notifications as read.

    Raises
    ------
    Notification.DoesNotExist
        If the notification does not belong to *employee*.
    """
    notification = Notification.objects.get(pk=notification_id, recipient=employee)
    notification.mark_as_read()
    _invalidate_unread_count(employee.pk)
    return notification


def mark_all_as_read(employee):
    updated = Notification.objects.filter(recipient=employee, is_read=False).update(
        is_read=True,
        read_at=timezone.now(),
    )
    _invalidate_unread_count(employee.pk)
    return updated


def delete_notification(employee, notification_id):
    deleted, _ = Notification.objects.filter(pk=notification_id, recipient=employee).delete()
    if not deleted:
        raise Notification.DoesNotExist("Notification not found.")
    _invalidate_unread_count(employee.pk)


# ---------------------------------------------------------------------------
# Push tokens
# ---------------------------------------------------------------------------

@transaction.atomic
def register_push_token(employee, token, platform):
    """Register *token* for *employee*, re-activating it if already known."""
    token = (token or "").strip()
    if not token:
        raise ValueError("Push token is required.")
    if platform not in PushToken.Platform.values:
        raise ValueError(f"Unsupported platform: {platform}")
    push_token, created = PushToken.objects.select_for_update().get_or_create(
        token=token,
        defaults={"employee": employee, "platform": platform},
    )
    if not created:
        push_token.employee = employee
        push_token.platform = platform
        push_token.is_active = True
        push_token.failure_count = 0
        push_token.save(update_fields=["employee", "platform", "is_active", "failure_count", "updated_at"])
    logger.info("Push token registered for %s (%s, new=%s)", employee.pk, platform, created)
    return push_token


def unregister_push_token(employee, token):
    updated = PushToken.objects.filter(employee=employee, token=token).update(
        is_active=False,
        updated_at=timezone.now(),
    )
    return updated > 0


def active_push_tokens(employee):
    max_failures = getattr(settings, "PUSH_TOKEN_MAX_FAILURES", 3)
    return PushToken.objects.filter(employee=employee, is_active=True, failure_count__lt=max_failures)


# ---------------------------------------------------------------------------
# Preferences
# ---------------------------------------------------------------------------

def get_preferences(employee):
    """Stored preferences merged over the defaults, one entry per type."""
    stored = {
        pref.notification_type: pref
        for pref in NotificationPreference.objects.filter(employee=employee)
    }
    preferences = []
    for notification_type, label in Notification.Type.choices:
        pref = stored.get(notification_type)
        preferences.append({
            "notification_type": notification_type,
            "label": label,
            "enabled": pref.enabled if pref else True,
            "push_enabled": pref.push_enabled if pref else True,
        })
    return preferences


def update_preference(employee, notification_type, enabled=None, push_enabled=None):
    if notification_type not in Notification.Type.values:
        raise ValueError(f"Unknown notification type: {notification_type}")
    pref, _ = NotificationPreference.objects.get_or_create(
        employee=employee,
        notification_type=notification_type,
    )
    update_fields = ["updated_at"]
    if enabled is not None:
        pref.enabled = bool(enabled)
        update_fields.append("enabled")
    if push_enabled is not None:
        pref.push_enabled = bool(push_enabled)
        update_fields.append("push_enabled")
    pref.save(update_fields=update_fields)
    return pref


# ---------------------------------------------------------------------------
# Housekeeping
# ---------------------------------------------------------------------------

def cleanup_old_notifications(days=90):
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = Notification.objects.filter(is_read=True, created_at__lt=cutoff).delete()
    return deleted


def cleanup_inactive_push_tokens(days=30):
    cutoff = timezone.now() - timedelta(days=days)
    deleted, _ = PushToken.objects.filter(is_active=False, updated_at__lt=cutoff).delete()
    return deleted
