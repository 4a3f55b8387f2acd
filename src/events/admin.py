"""Admin configuration for the events app."""
from django.contrib import admin

from .models import Event, EventAssignment, EventSalesEntry, EventSubtask


class EventAssignmentInline(admin.TabularInline):
    model = EventAssignment
    extra = 0
    raw_id_fields = ("employee", "assigned_by")
    readonly_fields = ("sim_sold", "ftth_sold")


class EventSubtaskInline(admin.TabularInline):
    model = EventSubtask
    extra = 0
    fields = ("title", "assigned_to", "status", "priority", "due_date")
    raw_id_fields = ("assigned_to",)


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("name", "circle", "zone", "category", "status", "start_date", "end_date", "assigned_to")
    list_filter = ("status", "circle", "category")
    search_fields = ("name", "location", "zone")
    raw_id_fields = ("assigned_to", "created_by")
    inlines = [EventAssignmentInline, EventSubtaskInline]
    date_hierarchy = "start_date"


@admin.register(EventSalesEntry)
class EventSalesEntryAdmin(admin.ModelAdmin):
    list_display = ("event", "employee", "sims_sold", "ftth_sold", "customer_type", "created_at")
    list_filter = ("customer_type",)
    raw_id_fields = ("event", "employee")
    list_select_related = ("event", "employee")
