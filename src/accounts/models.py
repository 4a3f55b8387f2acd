import uuid

from django.contrib.auth.models import (
    AbstractBaseUser,
    BaseUserManager,
    PermissionsMixin,
)
from django.db import models
from django.utils import timezone

from core.circles import Circle


class EmployeeManager(BaseUserManager):
    """Custom manager for the Employee model that uses email as the unique identifier."""

    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError("An email address is required.")
        email = self.normalize_email(email)
        extra_fields.setdefault("is_active", True)
        employee = self.model(email=email, **extra_fields)
        employee.set_password(password)
        employee.save(using=self._db)
        return employee

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault("role", Employee.Role.ADMIN)
        extra_fields.setdefault("is_staff", True)
        extra_fields.setdefault("is_superuser", True)

        if extra_fields.get("is_staff") is not True:
            raise ValueError("Superuser must have is_staff=True.")
        if extra_fields.get("is_superuser") is not True:
            raise ValueError("Superuser must have is_superuser=True.")

        return self.create_user(email, password, **extra_fields)


class Employee(AbstractBaseUser, PermissionsMixin):
    """
    A registered app account for a member of the circle sales organisation.

    Uses email as the login identifier. The ``pers_no`` (Purse ID) links
    the account to its official :class:`hierarchy.models.EmployeeMaster`
    record once the employee has claimed it.
    """

    class Role(models.TextChoices):
        ADMIN = "ADMIN", "Administrator"
        GM = "GM", "General Manager"
        CGM = "CGM", "Chief General Manager"
        DGM = "DGM", "Deputy General Manager"
        AGM = "AGM", "Assistant General Manager"
        SD_JTO = "SD_JTO", "SD / JTO"
        SALES_STAFF = "SALES_STAFF", "Sales Staff"

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
    )
    name = models.CharField("name", max_length=255)
    email = models.EmailField(
        "email address",
        unique=True,
        error_messages={
            "unique": "An employee with this email address already exists.",
        },
    )
    phone = models.CharField("phone", max_length=30, blank=True, default="")
    role = models.CharField(
        "role",
        max_length=20,
        choices=Role.choices,
        default=Role.SALES_STAFF,
        db_index=True,
    )
    circle = models.CharField(
        "circle",
        max_length=30,
        choices=Circle.choices,
        default=Circle.KARNATAKA,
        db_index=True,
    )
    zone = models.CharField("zone", max_length=100, blank=True, default="")
    designation = models.CharField("designation", max_length=100, blank=True, default="")
    pers_no = models.CharField(
        "purse id",
        max_length=50,
        unique=True,
        null=True,
        blank=True,
    )
    reporting_officer = models.ForeignKey(
        "self",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="direct_reports",
        verbose_name="reporting officer",
    )
    is_active = models.BooleanField("active", default=True, db_index=True)
    is_staff = models.BooleanField("staff status", default=False)
    date_joined = models.DateTimeField("date joined", default=timezone.now)

    objects = EmployeeManager()

    USERNAME_FIELD = "email"
    REQUIRED_FIELDS = ["name"]

    class Meta:
        verbose_name = "employee"
        verbose_name_plural = "employees"
        ordering = ["name"]

    def __str__(self):
        return self.name or self.email

    def get_full_name(self):
        return self.name

    def get_short_name(self):
        return self.name.split(" ")[0] if self.name else self.email
