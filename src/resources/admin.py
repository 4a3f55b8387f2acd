from django.contrib import admin

from .models import Resource, ResourceAllocation


@admin.register(Resource)
class ResourceAdmin(admin.ModelAdmin):
    list_display = ("circle", "type", "total", "allocated", "used", "remaining", "updated_at")
    list_filter = ("type", "circle")
    readonly_fields = ("remaining",)


@admin.register(ResourceAllocation)
class ResourceAllocationAdmin(admin.ModelAdmin):
    list_display = ("resource", "event", "quantity", "allocated_by", "created_at")
    list_filter = ("resource__type",)
    raw_id_fields = ("event", "allocated_by")
