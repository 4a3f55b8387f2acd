from django.contrib import admin

from .models import EmployeeMaster, FtthOrderPending, KamEbGold, OltAssignment


@admin.register(EmployeeMaster)
class EmployeeMasterAdmin(admin.ModelAdmin):
    list_display = ("pers_no", "name", "designation", "circle", "zone", "reporting_pers_no", "is_linked")
    list_filter = ("is_linked", "circle")
    search_fields = ("pers_no", "name", "reporting_pers_no")
    raw_id_fields = ("linked_employee",)


@admin.register(OltAssignment)
class OltAssignmentAdmin(admin.ModelAdmin):
    list_display = ("pers_no", "olt_ip", "created_at")
    search_fields = ("pers_no", "olt_ip")


@admin.register(KamEbGold)
class KamEbGoldAdmin(admin.ModelAdmin):
    list_display = ("pers_no", "name", "eb_exclusive", "total_leads", "total_lead_value_crore")
    list_filter = ("eb_exclusive",)
    search_fields = ("pers_no", "name")


@admin.register(FtthOrderPending)
class FtthOrderPendingAdmin(admin.ModelAdmin):
    list_display = ("pers_no", "ba", "total_ftth_orders_pending", "updated_at")
    search_fields = ("pers_no", "ba")
