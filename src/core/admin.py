"""Admin registration for the audit trail."""
from django.contrib import admin

from core.models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ("timestamp", "action", "entity_type", "entity_id", "performed_by")
    list_filter = ("entity_type", "action")
    search_fields = ("entity_id", "action")
    readonly_fields = ("timestamp",)
