from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Employee


@admin.register(Employee)
class EmployeeAdmin(BaseUserAdmin):
    """Admin configuration for the Employee account model."""

    # ------------------------------------------------------------------
    # List view
    # ------------------------------------------------------------------
    list_display = (
        "email",
        "name",
        "role",
        "circle",
        "pers_no",
        "report_count",
        "is_active",
        "date_joined",
    )
    list_filter = ("role", "circle", "is_active", "is_staff")
    search_fields = ("email", "name", "phone", "pers_no")
    ordering = ("name",)
    actions = ("activate_employees", "deactivate_employees")

    # ------------------------------------------------------------------
    # Detail / edit view
    # ------------------------------------------------------------------
    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (
            _("Profile"),
            {"fields": ("name", "phone", "designation", "circle", "zone")},
        ),
        (
            _("Hierarchy"),
            {"fields": ("pers_no", "reporting_officer")},
        ),
        (
            _("Role and permissions"),
            {
                "fields": (
                    "role",
                    "is_active",
                    "is_staff",
                    "is_superuser",
                ),
            },
        ),
        (
            _("Important dates"),
            {"fields": ("last_login", "date_joined")},
        ),
    )

    # ------------------------------------------------------------------
    # Add employee view
    # ------------------------------------------------------------------
    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": (
                    "email",
                    "name",
                    "role",
                    "circle",
                    "password1",
                    "password2",
                ),
            },
        ),
    )

    readonly_fields = ("date_joined", "last_login")
    raw_id_fields = ("reporting_officer",)

    def get_queryset(self, request):
        queryset = super().get_queryset(request)
        return queryset.prefetch_related("direct_reports")

    @admin.display(description="Direct reports")
    def report_count(self, obj):
        return obj.direct_reports.count()

    @admin.action(description="Activate selected employees")
    def activate_employees(self, request, queryset):
        queryset.update(is_active=True)

    @admin.action(description="Deactivate selected employees")
    def deactivate_employees(self, request, queryset):
        queryset.update(is_active=False)
