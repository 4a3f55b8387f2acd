"""Models for the events app: events, team assignments, sales entries, subtasks."""
import uuid
from decimal import Decimal

from django.conf import settings
from django.db import models

from core.circles import Circle
from core.models import TimeStampedModel


class Event(TimeStampedModel):
    """A field sales event (fair, festival, exhibition...) run in one circle."""

    class Status(models.TextChoices):
        DRAFT = "draft", "Draft"
        ACTIVE = "active", "Active"
        PAUSED = "paused", "Paused"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class Category(models.TextChoices):
        CULTURAL = "Cultural", "Cultural"
        RELIGIOUS = "Religious", "Religious"
        SPORTS = "Sports", "Sports"
        EXHIBITION = "Exhibition", "Exhibition"
        FAIR = "Fair", "Fair"
        FESTIVAL = "Festival", "Festival"
        AGRI_TOURISM = "Agri-Tourism", "Agri-Tourism"
        ECO_TOURISM = "Eco-Tourism", "Eco-Tourism"
        TRADE_RELIGIOUS = "Trade/Religious", "Trade/Religious"

    CLOSED_STATUSES = (Status.COMPLETED, Status.CANCELLED)

    name = models.CharField("name", max_length=255)
    location = models.TextField("location")
    circle = models.CharField("circle", max_length=30, choices=Circle.choices, db_index=True)
    zone = models.CharField("zone", max_length=100)
    start_date = models.DateTimeField("start date")
    end_date = models.DateTimeField("end date")
    category = models.CharField("category", max_length=30, choices=Category.choices)
    task_category = models.CharField("task category", max_length=20, default="S&M")
    key_insight = models.TextField("key insight", blank=True, default="")
    status = models.CharField(
        "status",
        max_length=20,
        choices=Status.choices,
        default=Status.ACTIVE,
        db_index=True,
    )

    # Sales targets and reserved stock
    target_sim = models.PositiveIntegerField("SIM target", default=0)
    target_ftth = models.PositiveIntegerField("FTTH target", default=0)
    allocated_sim = models.PositiveIntegerField("allocated SIM", default=0)
    allocated_ftth = models.PositiveIntegerField("allocated FTTH", default=0)

    # Finance targets and collections
    target_fin_lc = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    target_fin_ll_ftth = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    target_fin_tower = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    target_fin_gsm_postpaid = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    target_fin_rent_building = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    fin_lc_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    fin_ll_ftth_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    fin_tower_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    fin_gsm_postpaid_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))
    fin_rent_building_collected = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0.00"))

    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="managed_events",
        verbose_name="event manager",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="created_events",
        verbose_name="created by",
    )

    class Meta:
        verbose_name = "event"
        verbose_name_plural = "events"
        ordering = ["-start_date"]
        indexes = [
            models.Index(fields=["circle", "status"], name="event_circle_status_idx"),
        ]

    def __str__(self):
        return self.name

    @property
    def is_closed(self):
        return self.status in self.CLOSED_STATUSES


class EventAssignment(TimeStampedModel):
    """Per-employee targets and running sold counters within an event."""

    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="assignments",
        verbose_name="event",
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="event_assignments",
        verbose_name="employee",
    )
    sim_target = models.PositiveIntegerField("SIM target", default=0)
    ftth_target = models.PositiveIntegerField("FTTH target", default=0)
    sim_sold = models.PositiveIntegerField("SIM sold", default=0)
    ftth_sold = models.PositiveIntegerField("FTTH sold", default=0)
    assigned_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="assigned by",
    )

    class Meta:
        verbose_name = "event assignment"
        verbose_name_plural = "event assignments"
        ordering = ["created_at"]
        unique_together = [("event", "employee")]

    def __str__(self):
        return f"{self.employee} @ {self.event}"


class EventSalesEntry(models.Model):
    """One append-only sales submission by an assigned employee."""

    class CustomerType(models.TextChoices):
        B2C = "B2C", "B2C"
        B2B = "B2B", "B2B"
        GOVERNMENT = "Government", "Government"
        ENTERPRISE = "Enterprise", "Enterprise"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="sales_entries",
        verbose_name="event",
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="event_sales_entries",
        verbose_name="employee",
    )
    sims_sold = models.PositiveIntegerField("SIMs sold", default=0)
    sims_activated = models.PositiveIntegerField("SIMs activated", default=0)
    ftth_sold = models.PositiveIntegerField("FTTH sold", default=0)
    ftth_activated = models.PositiveIntegerField("FTTH activated", default=0)
    customer_type = models.CharField("customer type", max_length=20, choices=CustomerType.choices)
    photos = models.JSONField("photos", default=list, blank=True)
    gps_latitude = models.CharField(max_length=32, blank=True, default="")
    gps_longitude = models.CharField(max_length=32, blank=True, default="")
    remarks = models.TextField("remarks", blank=True, default="")
    created_at = models.DateTimeField("created at", auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = "event sales entry"
        verbose_name_plural = "event sales entries"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.employee} +{self.sims_sold} SIM / +{self.ftth_sold} FTTH"


class EventSubtask(TimeStampedModel):
    """A unit of work under an event with its own owner, priority and due date."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        IN_PROGRESS = "in_progress", "In progress"
        COMPLETED = "completed", "Completed"
        CANCELLED = "cancelled", "Cancelled"

    class Priority(models.TextChoices):
        LOW = "low", "Low"
        MEDIUM = "medium", "Medium"
        HIGH = "high", "High"
        URGENT = "urgent", "Urgent"

    event = models.ForeignKey(
        Event,
        on_delete=models.CASCADE,
        related_name="subtasks",
        verbose_name="event",
    )
    title = models.CharField("title", max_length=255)
    description = models.TextField("description", blank=True, default="")
    assigned_to = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="subtasks",
        verbose_name="assigned to",
    )
    status = models.CharField(
        "status",
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    priority = models.CharField(
        "priority",
        max_length=10,
        choices=Priority.choices,
        default=Priority.MEDIUM,
    )
    due_date = models.DateTimeField("due date", null=True, blank=True)
    sim_allocated = models.PositiveIntegerField(default=0)
    sim_sold = models.PositiveIntegerField(default=0)
    ftth_allocated = models.PositiveIntegerField(default=0)
    ftth_sold = models.PositiveIntegerField(default=0)
    completed_at = models.DateTimeField("completed at", null=True, blank=True)
    completed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        verbose_name="completed by",
    )
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="+",
        verbose_name="created by",
    )

    class Meta:
        verbose_name = "event subtask"
        verbose_name_plural = "event subtasks"
        ordering = ["due_date", "created_at"]

    def __str__(self):
        return self.title
