"""Models for the hierarchy app: HR master data, OLT and KAM reports."""
from django.conf import settings
from django.db import models

from core.models import TimeStampedModel


class EmployeeMaster(TimeStampedModel):
    """Official HR record for an employee, keyed by Purse ID.

    Rows are bulk-imported by an administrator. The reporting edges
    (``reporting_pers_no``) form the organisation tree. An app account
    claims a row through :func:`hierarchy.services.link_profile`.
    """

    pers_no = models.CharField("purse id", max_length=50, unique=True)
    name = models.CharField("name", max_length=255)
    designation = models.CharField("designation", max_length=100, blank=True, default="")
    circle = models.CharField("circle", max_length=100, blank=True, default="")
    zone = models.CharField("zone", max_length=100, blank=True, default="")
    emp_group = models.CharField("employee group", max_length=50, blank=True, default="")
    reporting_pers_no = models.CharField(
        "reporting purse id",
        max_length=50,
        blank=True,
        default="",
        db_index=True,
    )
    reporting_officer_name = models.CharField(max_length=255, blank=True, default="")
    reporting_officer_designation = models.CharField(max_length=100, blank=True, default="")
    division = models.CharField(max_length=100, blank=True, default="")
    building_name = models.CharField(max_length=255, blank=True, default="")
    office_name = models.CharField(max_length=255, blank=True, default="")
    shift_group = models.CharField(max_length=50, blank=True, default="")
    distance_limit = models.CharField(max_length=50, blank=True, default="")
    sort_order = models.IntegerField(null=True, blank=True)
    employee_id = models.CharField("HR employee id", max_length=50, blank=True, default="")

    # Account link
    is_linked = models.BooleanField("linked", default=False, db_index=True)
    linked_employee = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="master_record",
        verbose_name="linked account",
    )
    linked_at = models.DateTimeField("linked at", null=True, blank=True)

    class Meta:
        verbose_name = "employee master record"
        verbose_name_plural = "employee master records"
        ordering = ["sort_order", "name"]

    def __str__(self):
        return f"{self.name} ({self.pers_no})"


class OltAssignment(TimeStampedModel):
    """An Optical Line Terminal IP an employee is responsible for."""

    pers_no = models.CharField("purse id", max_length=50, db_index=True)
    olt_ip = models.CharField("OLT IP", max_length=64)

    class Meta:
        verbose_name = "OLT assignment"
        verbose_name_plural = "OLT assignments"
        ordering = ["pers_no", "olt_ip"]
        unique_together = [("pers_no", "olt_ip")]

    def __str__(self):
        return f"{self.pers_no} -> {self.olt_ip}"


class KamEbGold(TimeStampedModel):
    """Key-account manager lead figures for the Enterprise Business gold report."""

    class Exclusive(models.TextChoices):
        YES = "Yes", "Yes"
        NO = "No", "No"

    pers_no = models.CharField("purse id", max_length=50, unique=True)
    name = models.CharField("name", max_length=255)
    eb_exclusive = models.CharField(
        "EB exclusive",
        max_length=3,
        choices=Exclusive.choices,
        default=Exclusive.NO,
    )
    total_leads = models.IntegerField("total leads", default=0)
    total_lead_value_crore = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    lead_in_stage_iv_crore = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    lead_to_bill_crore = models.DecimalField(max_digits=14, decimal_places=4, default=0)
    total_sales_visit = models.IntegerField("total sales visits", default=0)

    class Meta:
        verbose_name = "KAM EB gold record"
        verbose_name_plural = "KAM EB gold records"
        ordering = ["-total_lead_value_crore"]

    def __str__(self):
        return f"{self.name} ({self.pers_no})"


class FtthOrderPending(TimeStampedModel):
    """Pending FTTH orders per employee and business area."""

    pers_no = models.CharField("purse id", max_length=50, db_index=True)
    ba = models.CharField("business area", max_length=100)
    total_ftth_orders_pending = models.PositiveIntegerField("pending FTTH orders", default=0)

    class Meta:
        verbose_name = "FTTH pending order count"
        verbose_name_plural = "FTTH pending order counts"
        ordering = ["pers_no", "ba"]
        unique_together = [("pers_no", "ba")]

    def __str__(self):
        return f"{self.pers_no} / {self.ba}: {self.total_ftth_orders_pending}"
