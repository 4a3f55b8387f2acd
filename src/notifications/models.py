"""Models for the notifications app."""
from django.conf import settings
from django.db import models
from django.utils import timezone

from core.models import TimeStampedModel


class Notification(TimeStampedModel):
    """An in-app notification addressed to one employee.

    Notifications are created by service functions and Celery tasks,
    never directly through the API. Push delivery is out of scope; the
    row is the source of truth for the notification bell.
    """

    class Type(models.TextChoices):
        EVENT_ASSIGNED = "EVENT_ASSIGNED", "Event assigned"
        EVENT_STATUS_CHANGED = "EVENT_STATUS_CHANGED", "Event status changed"
        ISSUE_RAISED = "ISSUE_RAISED", "Issue raised"
        ISSUE_ESCALATED = "ISSUE_ESCALATED", "Issue escalated"
        ISSUE_RESOLVED = "ISSUE_RESOLVED", "Issue resolved"
        ISSUE_STATUS_CHANGED = "ISSUE_STATUS_CHANGED", "Issue status changed"
        SUBTASK_ASSIGNED = "SUBTASK_ASSIGNED", "Subtask assigned"
        SUBTASK_DUE_SOON = "SUBTASK_DUE_SOON", "Subtask due soon"
        SUBTASK_OVERDUE = "SUBTASK_OVERDUE", "Subtask overdue"
        SUBTASK_COMPLETED = "SUBTASK_COMPLETED", "Subtask completed"
        TASK_SUBMITTED = "TASK_SUBMITTED", "Task submitted"
        TASK_APPROVED = "TASK_APPROVED", "Task approved"
        TASK_REJECTED = "TASK_REJECTED", "Task rejected"
        SLA_WARNING = "SLA_WARNING", "SLA warning"
        SLA_BREACHED = "SLA_BREACHED", "SLA breached"
        DEADLINE_WARNING = "DEADLINE_WARNING", "Deadline warning"
        TASK_ENDING_TODAY = "TASK_ENDING_TODAY", "Task ending today"

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        verbose_name="recipient",
    )
    type = models.CharField("type", max_length=30, choices=Type.choices)
    title = models.CharField("title", max_length=255)
    message = models.TextField("message")
    entity_type = models.CharField("entity type", max_length=50, blank=True, default="")
    entity_id = models.CharField("entity id", max_length=64, blank=True, default="")
    metadata = models.JSONField("metadata", default=dict, blank=True)
    dedupe_key = models.CharField("dedupe key", max_length=255, blank=True, default="", db_index=True)

    # Read tracking
    is_read = models.BooleanField("read", default=False)
    read_at = models.DateTimeField("read at", null=True, blank=True)

    class Meta:
        verbose_name = "notification"
        verbose_name_plural = "notifications"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["recipient", "is_read"], name="notif_recipient_read_idx"),
        ]

    def __str__(self):
        return f"[{self.type}] {self.title}"

    def mark_as_read(self):
        """Mark this notification as read."""
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=["is_read", "read_at", "updated_at"])


class PushToken(TimeStampedModel):
    """A device token registered by an employee for push delivery."""

    class Platform(models.TextChoices):
        IOS = "ios", "iOS"
        ANDROID = "android", "Android"
        WEB = "web", "Web"

    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="push_tokens",
        verbose_name="employee",
    )
    token = models.CharField("token", max_length=255, unique=True)
    platform = models.CharField("platform", max_length=20, choices=Platform.choices)
    is_active = models.BooleanField("active", default=True)
    last_used_at = models.DateTimeField("last used at", null=True, blank=True)
    failure_count = models.PositiveIntegerField("consecutive failures", default=0)

    class Meta:
        verbose_name = "push token"
        verbose_name_plural = "push tokens"
        ordering = ["-updated_at"]

    def __str__(self):
        return f"{self.employee} ({self.platform})"


class NotificationPreference(TimeStampedModel):
    """Per-employee opt-out switch for one notification type."""

    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notification_preferences",
        verbose_name="employee",
    )
    notification_type = models.CharField(
        "notification type",
        max_length=30,
        choices=Notification.Type.choices,
    )
    enabled = models.BooleanField("enabled", default=True)
    push_enabled = models.BooleanField("push enabled", default=True)

    class Meta:
        verbose_name = "notification preference"
        verbose_name_plural = "notification preferences"
        ordering = ["notification_type"]
        unique_together = [("employee", "notification_type")]

    def __str__(self):
        return f"{self.employee} / {self.notification_type}"
