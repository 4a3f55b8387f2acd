"""Models for the resources app: per-circle SIM/FTTH stock ledger."""
from django.conf import settings
from django.db import models

from core.circles import Circle
from core.models import TimeStampedModel


class Resource(TimeStampedModel):
    """Stock counters for one resource type in one circle.

    ``remaining`` is always ``max(total - used, 0)``. ``allocated`` is a
    soft reservation made by events and is tracked separately.
    """

    class Type(models.TextChoices):
        SIM = "SIM", "SIM"
        FTTH = "FTTH", "FTTH"

    type = models.CharField("type", max_length=10, choices=Type.choices)
    circle = models.CharField("circle", max_length=30, choices=Circle.choices, db_index=True)
    total = models.PositiveIntegerField("total", default=0)
    allocated = models.PositiveIntegerField("allocated", default=0)
    used = models.PositiveIntegerField("used", default=0)
    remaining = models.PositiveIntegerField("remaining", default=0)
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="updated by",
    )

    class Meta:
        verbose_name = "resource"
        verbose_name_plural = "resources"
        ordering = ["circle", "type"]
        unique_together = [("circle", "type")]

    def __str__(self):
        return f"{self.get_circle_display()} {self.type}: {self.remaining}/{self.total}"

    @property
    def available_to_allocate(self):
        return max(self.total - self.allocated, 0)

    def recompute_remaining(self):
        self.remaining = max(self.total - self.used, 0)
        return self.remaining


class ResourceAllocation(TimeStampedModel):
    """History row for each quantity reserved for an event."""

    resource = models.ForeignKey(
        Resource,
        on_delete=models.CASCADE,
        related_name="allocations",
        verbose_name="resource",
    )
    event = models.ForeignKey(
        "events.Event",
        on_delete=models.CASCADE,
        related_name="resource_allocations",
        verbose_name="event",
    )
    quantity = models.IntegerField("quantity")
    allocated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="allocated by",
    )

    class Meta:
        verbose_name = "resource allocation"
        verbose_name_plural = "resource allocations"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.quantity} {self.resource.type} -> {self.event_id}"
