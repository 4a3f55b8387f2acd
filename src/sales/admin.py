"""Admin configuration for the sales app."""
from django.contrib import admin

from sales.models import FinanceCollectionEntry, SalesReport


@admin.register(SalesReport)
class SalesReportAdmin(admin.ModelAdmin):
    list_display = (
        "event",
        "sales_staff",
        "sims_sold",
        "sims_activated",
        "ftth_leads",
        "ftth_installed",
        "status",
        "created_at",
    )
    list_filter = ("status", "customer_type", "created_at")
    search_fields = ("event__name", "sales_staff__name", "sales_staff__email")
    readonly_fields = ("id", "reviewed_by", "reviewed_at", "created_at", "updated_at")
    raw_id_fields = ("event", "sales_staff")
    list_select_related = ("event", "sales_staff")


@admin.register(FinanceCollectionEntry)
class FinanceCollectionEntryAdmin(admin.ModelAdmin):
    list_display = ("event", "employee", "finance_type", "amount_collected", "payment_mode", "created_at")
    list_filter = ("finance_type", "payment_mode")
    search_fields = ("event__name", "employee__name", "transaction_reference", "customer_name")
    raw_id_fields = ("event", "employee")
