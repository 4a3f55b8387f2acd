from django.contrib import admin

from .models import Issue


@admin.register(Issue)
class IssueAdmin(admin.ModelAdmin):
    list_display = ("event", "type", "status", "raised_by", "escalated_to", "created_at")
    list_filter = ("status", "type")
    search_fields = ("description", "event__name", "raised_by__name")
    raw_id_fields = ("event", "raised_by", "escalated_to", "resolved_by")
    readonly_fields = ("timeline", "resolved_at")
