"""Models for the sales app: reviewed sales reports and finance collections."""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models

from core.models import TimeStampedModel


# ---------------------------------------------------------------------------
# SalesReport
# ---------------------------------------------------------------------------

class SalesReport(TimeStampedModel):
    """A staff sales report that a manager approves or rejects."""

    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        APPROVED = "approved", "Approved"
        REJECTED = "rejected", "Rejected"

    class CustomerType(models.TextChoices):
        B2C = "B2C", "B2C"
        B2B = "B2B", "B2B"
        GOVERNMENT = "Government", "Government"
        ENTERPRISE = "Enterprise", "Enterprise"

    TERMINAL_STATUSES = (Status.APPROVED, Status.REJECTED)

    event = models.ForeignKey(
        "events.Event",
        on_delete=models.CASCADE,
        related_name="sales_reports",
        verbose_name="event",
    )
    sales_staff = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="sales_reports",
        verbose_name="sales staff",
    )
    sims_sold = models.PositiveIntegerField("SIMs sold", default=0)
    sims_activated = models.PositiveIntegerField("SIMs activated", default=0)
    ftth_leads = models.PositiveIntegerField("FTTH leads", default=0)
    ftth_installed = models.PositiveIntegerField("FTTH installed", default=0)
    customer_type = models.CharField("customer type", max_length=20, choices=CustomerType.choices)
    photos = models.JSONField("photos", default=list, blank=True)
    gps_latitude = models.CharField(max_length=32, blank=True, default="")
    gps_longitude = models.CharField(max_length=32, blank=True, default="")
    remarks = models.TextField("remarks", blank=True, default="")

    # ------------------------------------------------------------------
    # Review
    # ------------------------------------------------------------------
    status = models.CharField(
        "status",
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    reviewed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="reviewed_sales_reports",
        verbose_name="reviewed by",
    )
    reviewed_at = models.DateTimeField("reviewed at", null=True, blank=True)
    review_remarks = models.TextField("review remarks", blank=True, default="")

    class Meta:
        verbose_name = "sales report"
        verbose_name_plural = "sales reports"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["event", "status"], name="salesreport_event_status_idx"),
        ]

    def __str__(self):
        return f"Report {str(self.pk)[:8]} ({self.status})"

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES


# ---------------------------------------------------------------------------
# FinanceCollectionEntry
# ---------------------------------------------------------------------------

class FinanceCollectionEntry(TimeStampedModel):
    """Money collected against one of an event's finance targets."""

    class FinanceType(models.TextChoices):
        FIN_LC = "FIN_LC", "Lease circuit"
        FIN_LL_FTTH = "FIN_LL_FTTH", "Landline / FTTH"
        FIN_TOWER = "FIN_TOWER", "Tower"
        FIN_GSM_POSTPAID = "FIN_GSM_POSTPAID", "GSM postpaid"
        FIN_RENT_BUILDING = "FIN_RENT_BUILDING", "Building rent"

    class PaymentMode(models.TextChoices):
        CASH = "CASH", "Cash"
        CHEQUE = "CHEQUE", "Cheque"
        ONLINE = "ONLINE", "Online"
        UPI = "UPI", "UPI"
        OTHER = "OTHER", "Other"

    # FinanceType -> (Event target field, Event collected counter)
    EVENT_FIELDS = {
        FinanceType.FIN_LC: ("target_fin_lc", "fin_lc_collected"),
        FinanceType.FIN_LL_FTTH: ("target_fin_ll_ftth", "fin_ll_ftth_collected"),
        FinanceType.FIN_TOWER: ("target_fin_tower", "fin_tower_collected"),
        FinanceType.FIN_GSM_POSTPAID: ("target_fin_gsm_postpaid", "fin_gsm_postpaid_collected"),
        FinanceType.FIN_RENT_BUILDING: ("target_fin_rent_building", "fin_rent_building_collected"),
    }

    event = models.ForeignKey(
        "events.Event",
        on_delete=models.CASCADE,
        related_name="finance_collections",
        verbose_name="event",
    )
    employee = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="finance_collections",
        verbose_name="collected by",
    )
    finance_type = models.CharField("finance type", max_length=20, choices=FinanceType.choices, db_index=True)
    amount_collected = models.DecimalField(
        "amount collected",
        max_digits=14,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    payment_mode = models.CharField(
        "payment mode",
        max_length=10,
        choices=PaymentMode.choices,
        default=PaymentMode.CASH,
    )
    transaction_reference = models.CharField("transaction reference", max_length=100, blank=True, default="")
    customer_name = models.CharField("customer name", max_length=255, blank=True, default="")
    customer_contact = models.CharField("customer contact", max_length=50, blank=True, default="")
    remarks = models.TextField("remarks", blank=True, default="")

    class Meta:
        verbose_name = "finance collection"
        verbose_name_plural = "finance collections"
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.finance_type} {self.amount_collected}"
