"""Models for the issues app: field problems raised during events."""
from django.conf import settings
from django.db import models

from core.models import TimeStampedModel


class Issue(TimeStampedModel):
    """A problem reported from the field, escalated up the hierarchy.

    ``timeline`` is an append-only list of
    ``{"action", "performed_by", "timestamp"}`` entries.
    """

    class Type(models.TextChoices):
        MATERIAL_SHORTAGE = "MATERIAL_SHORTAGE", "Material shortage"
        SITE_ACCESS = "SITE_ACCESS", "Site access"
        EQUIPMENT = "EQUIPMENT", "Equipment"
        NETWORK_PROBLEM = "NETWORK_PROBLEM", "Network problem"
        OTHER = "OTHER", "Other"

    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        IN_PROGRESS = "IN_PROGRESS", "In progress"
        RESOLVED = "RESOLVED", "Resolved"
        CLOSED = "CLOSED", "Closed"

    # Forward-only ordering of the workflow.
    STATUS_ORDER = {
        Status.OPEN: 0,
        Status.IN_PROGRESS: 1,
        Status.RESOLVED: 2,
        Status.CLOSED: 3,
    }
    ESCALATABLE_STATUSES = (Status.OPEN, Status.IN_PROGRESS)

    event = models.ForeignKey(
        "events.Event",
        on_delete=models.CASCADE,
        related_name="issues",
        verbose_name="event",
    )
    raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="raised_issues",
        verbose_name="raised by",
    )
    type = models.CharField("type", max_length=30, choices=Type.choices)
    description = models.TextField("description")
    status = models.CharField(
        "status",
        max_length=20,
        choices=Status.choices,
        default=Status.OPEN,
        db_index=True,
    )
    escalated_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="escalated_issues",
        verbose_name="escalated to",
    )
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="resolved by",
    )
    resolved_at = models.DateTimeField("resolved at", null=True, blank=True)
    timeline = models.JSONField("timeline", default=list, blank=True)

    class Meta:
        verbose_name = "issue"
        verbose_name_plural = "issues"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.get_type_display()} ({self.status})"
