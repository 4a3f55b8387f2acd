from django.contrib import admin

from .models import Notification, NotificationPreference, PushToken


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("recipient", "type", "title", "is_read", "created_at")
    list_filter = ("type", "is_read")
    search_fields = ("title", "message", "entity_id")
    raw_id_fields = ("recipient",)


@admin.register(PushToken)
class PushTokenAdmin(admin.ModelAdmin):
    list_display = ("employee", "platform", "is_active", "failure_count", "last_used_at")
    list_filter = ("platform", "is_active")
    raw_id_fields = ("employee",)


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = ("employee", "notification_type", "enabled", "push_enabled")
    list_filter = ("notification_type", "enabled")
    raw_id_fields = ("employee",)
