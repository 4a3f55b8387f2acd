"""Shared abstract models and the audit trail."""
import uuid

from django.conf import settings
from django.db import models


class TimeStampedModel(models.Model):
    """Abstract base with a UUID primary key and creation/update timestamps."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    created_at = models.DateTimeField("created at", auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField("updated at", auto_now=True)

    class Meta:
        abstract = True
        ordering = ["-created_at"]


class AuditLog(models.Model):
    """Immutable log of every significant action in the system."""

    class EntityType(models.TextChoices):
        EVENT = "EVENT", "Event"
        SALES = "SALES", "Sales"
        RESOURCE = "RESOURCE", "Resource"
        ISSUE = "ISSUE", "Issue"
        EMPLOYEE = "EMPLOYEE", "Employee"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    action = models.CharField(max_length=100)
    entity_type = models.CharField(
        max_length=20,
        choices=EntityType.choices,
        db_index=True,
    )
    entity_id = models.CharField(max_length=255)
    performed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    details = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-timestamp"]
        verbose_name = "audit log entry"
        verbose_name_plural = "audit log"
        indexes = [
            models.Index(fields=["entity_type", "timestamp"], name="audit_entity_ts_idx"),
            models.Index(fields=["action", "timestamp"], name="audit_action_ts_idx"),
        ]

    def __str__(self):
        return f"[{self.timestamp}] {self.action} on {self.entity_type} #{self.entity_id}"
