"""Serializers for the circle sales operations API v1."""
from decimal import Decimal

from django.contrib.auth import get_user_model
from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from accounts.policy import ALL_ACTIONS, role_can
from core.circles import Circle
from core.models import AuditLog
from events.models import Event, EventAssignment, EventSalesEntry, EventSubtask
from hierarchy.models import EmployeeMaster, FtthOrderPending, KamEbGold, OltAssignment
from issues.models import Issue
from notifications.models import Notification, PushToken
from resources.models import Resource, ResourceAllocation
from sales.models import FinanceCollectionEntry, SalesReport

Employee = get_user_model()


# ---------------------------------------------------------------------------
# Employees
# ---------------------------------------------------------------------------

class EmployeeSummarySerializer(serializers.ModelSerializer):
    """Compact employee representation used inside other payloads."""

    class Meta:
        model = Employee
        fields = ['id', 'name', 'designation', 'pers_no', 'role', 'circle']
        read_only_fields = fields


class EmployeeSerializer(serializers.ModelSerializer):
    """The authenticated employee's own profile (GET/PATCH).

    ``permissions`` lists the policy actions granted to the role, so a
    client can hide what the server would refuse anyway.
    """

    permissions = serializers.SerializerMethodField()
    reporting_officer = EmployeeSummarySerializer(read_only=True)

    class Meta:
        model = Employee
        fields = [
            'id', 'name', 'email', 'phone', 'role', 'circle', 'zone',
            'designation', 'pers_no', 'reporting_officer', 'is_active',
            'permissions',
        ]
        read_only_fields = [
            'id', 'email', 'role', 'circle', 'pers_no', 'reporting_officer',
            'is_active', 'permissions',
        ]

    def get_permissions(self, obj):
        return [action for action in ALL_ACTIONS if role_can(obj.role, action)]


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Extends JWT token response to include the employee profile."""

    def validate(self, attrs):
        data = super().validate(attrs)
        data['employee'] = EmployeeSerializer(self.user).data
        return data


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class ResourceSerializer(serializers.ModelSerializer):
    updated_by_name = serializers.CharField(source='updated_by.name', read_only=True, default=None)

    class Meta:
        model = Resource
        fields = [
            'id', 'type', 'circle', 'total', 'allocated', 'used', 'remaining',
            'updated_by', 'updated_by_name', 'updated_at',
        ]
        read_only_fields = fields


class ResourceAllocationSerializer(serializers.ModelSerializer):
    resource_type = serializers.CharField(source='resource.type', read_only=True)
    circle = serializers.CharField(source='resource.circle', read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)

    class Meta:
        model = ResourceAllocation
        fields = [
            'id', 'resource', 'resource_type', 'circle', 'event', 'event_name',
            'quantity', 'allocated_by', 'created_at',
        ]
        read_only_fields = fields


class UpdateStockSerializer(serializers.Serializer):
    circle = serializers.ChoiceField(choices=Circle.choices)
    type = serializers.ChoiceField(choices=Resource.Type.choices)
    total = serializers.IntegerField(min_value=0)


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class EventSerializer(serializers.ModelSerializer):
    assigned_to = EmployeeSummarySerializer(read_only=True)
    created_by_name = serializers.CharField(source='created_by.name', read_only=True, default=None)

    class Meta:
        model = Event
        fields = [
            'id', 'name', 'location', 'circle', 'zone', 'start_date', 'end_date',
            'category', 'task_category', 'key_insight', 'status',
            'target_sim', 'target_ftth', 'allocated_sim', 'allocated_ftth',
            'target_fin_lc', 'target_fin_ll_ftth', 'target_fin_tower',
            'target_fin_gsm_postpaid', 'target_fin_rent_building',
            'fin_lc_collected', 'fin_ll_ftth_collected', 'fin_tower_collected',
            'fin_gsm_postpaid_collected', 'fin_rent_building_collected',
            'assigned_to', 'created_by', 'created_by_name', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class EventWriteSerializer(serializers.Serializer):
    """Input for creating (all required) or editing (partial) an event."""

    name = serializers.CharField(max_length=255)
    location = serializers.CharField()
    circle = serializers.ChoiceField(choices=Circle.choices, required=False)
    zone = serializers.CharField(max_length=100)
    start_date = serializers.DateTimeField()
    end_date = serializers.DateTimeField()
    category = serializers.ChoiceField(choices=Event.Category.choices)
    task_category = serializers.CharField(max_length=20, required=False)
    key_insight = serializers.CharField(required=False, allow_blank=True)
    target_sim = serializers.IntegerField(min_value=0, required=False)
    target_ftth = serializers.IntegerField(min_value=0, required=False)
    allocated_sim = serializers.IntegerField(min_value=0, required=False)
    allocated_ftth = serializers.IntegerField(min_value=0, required=False)
    target_fin_lc = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'), required=False)
    target_fin_ll_ftth = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'), required=False)
    target_fin_tower = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0'), required=False)
    target_fin_gsm_postpaid = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal('0'), required=False,
    )
    target_fin_rent_building = serializers.DecimalField(
        max_digits=14, decimal_places=2, min_value=Decimal('0'), required=False,
    )
    assigned_to_pers_no = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        start, end = attrs.get('start_date'), attrs.get('end_date')
        if start and end and end < start:
            raise serializers.ValidationError({'end_date': 'End date cannot be before start date.'})
        return attrs


class EventStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Event.Status.choices)


class EventAssignmentSerializer(serializers.ModelSerializer):
    employee = EmployeeSummarySerializer(read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)

    class Meta:
        model = EventAssignment
        fields = [
            'id', 'event', 'event_name', 'employee', 'sim_target', 'ftth_target',
            'sim_sold', 'ftth_sold', 'assigned_by', 'created_at',
        ]
        read_only_fields = fields


class MyAssignmentSerializer(serializers.ModelSerializer):
    """An assignment with its event inlined, for the field staff view."""

    event = EventSerializer(read_only=True)

    class Meta:
        model = EventAssignment
        fields = ['id', 'event', 'sim_target', 'ftth_target', 'sim_sold', 'ftth_sold', 'created_at']
        read_only_fields = fields


class AssignTeamSerializer(serializers.Serializer):
    employee_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)


class MemberTargetSerializer(serializers.Serializer):
    employee_id = serializers.UUIDField()
    sim_target = serializers.IntegerField(min_value=0, default=0)
    ftth_target = serializers.IntegerField(min_value=0, default=0)


class EventSalesEntrySerializer(serializers.ModelSerializer):
    employee = EmployeeSummarySerializer(read_only=True)

    class Meta:
        model = EventSalesEntry
        fields = [
            'id', 'event', 'employee', 'sims_sold', 'sims_activated', 'ftth_sold',
            'ftth_activated', 'customer_type', 'photos', 'gps_latitude',
            'gps_longitude', 'remarks', 'created_at',
        ]
        read_only_fields = fields


class SubmitEventSalesSerializer(serializers.Serializer):
    sims_sold = serializers.IntegerField(min_value=0, default=0)
    sims_activated = serializers.IntegerField(min_value=0, default=0)
    ftth_sold = serializers.IntegerField(min_value=0, default=0)
    ftth_activated = serializers.IntegerField(min_value=0, default=0)
    customer_type = serializers.ChoiceField(choices=EventSalesEntry.CustomerType.choices)
    photos = serializers.ListField(child=serializers.CharField(), required=False, default=list)
    gps_latitude = serializers.CharField(required=False, allow_blank=True, default='')
    gps_longitude = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class EventSubtaskSerializer(serializers.ModelSerializer):
    assigned_to = EmployeeSummarySerializer(read_only=True)

    class Meta:
        model = EventSubtask
        fields = [
            'id', 'event', 'title', 'description', 'assigned_to', 'status', 'priority',
            'due_date', 'sim_allocated', 'sim_sold', 'ftth_allocated', 'ftth_sold',
            'completed_at', 'completed_by', 'created_by', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class SubtaskWriteSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    assigned_to_id = serializers.UUIDField(required=False, allow_null=True)
    staff_pers_no = serializers.CharField(required=False, allow_blank=True)
    status = serializers.ChoiceField(choices=EventSubtask.Status.choices, required=False)
    priority = serializers.ChoiceField(choices=EventSubtask.Priority.choices, required=False)
    due_date = serializers.DateTimeField(required=False, allow_null=True)
    sim_allocated = serializers.IntegerField(min_value=0, required=False)
    sim_sold = serializers.IntegerField(min_value=0, required=False)
    ftth_allocated = serializers.IntegerField(min_value=0, required=False)
    ftth_sold = serializers.IntegerField(min_value=0, required=False)


class EventDetailSerializer(serializers.Serializer):
    """Wraps :func:`events.services.get_event_with_details` output."""

    def to_representation(self, instance):
        return {
            'event': EventSerializer(instance['event']).data,
            'team': [
                {
                    **EventAssignmentSerializer(member['assignment']).data,
                    'sales_entries': EventSalesEntrySerializer(member['sales_entries'], many=True).data,
                }
                for member in instance['team']
            ],
            'sales_entries': EventSalesEntrySerializer(instance['sales_entries'], many=True).data,
            'subtasks': EventSubtaskSerializer(instance['subtasks'], many=True).data,
            'summary': instance['summary'],
        }


# ---------------------------------------------------------------------------
# Sales reports and finance collections
# ---------------------------------------------------------------------------

class SalesReportSerializer(serializers.ModelSerializer):
    sales_staff = EmployeeSummarySerializer(read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)
    reviewed_by_name = serializers.CharField(source='reviewed_by.name', read_only=True, default=None)

    class Meta:
        model = SalesReport
        fields = [
            'id', 'event', 'event_name', 'sales_staff', 'sims_sold', 'sims_activated',
            'ftth_leads', 'ftth_installed', 'customer_type', 'photos',
            'gps_latitude', 'gps_longitude', 'remarks', 'status',
            'reviewed_by', 'reviewed_by_name', 'reviewed_at', 'review_remarks',
            'created_at', 'updated_at',
        ]
        read_only_fields = [
            'id', 'event_name', 'sales_staff', 'status', 'reviewed_by',
            'reviewed_by_name', 'reviewed_at', 'review_remarks', 'created_at', 'updated_at',
        ]


class ReviewSerializer(serializers.Serializer):
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class BulkApproveSerializer(serializers.Serializer):
    report_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=False)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class SoldAssignmentSerializer(serializers.ModelSerializer):
    """An assignment that recorded sales, for the by-type listing."""

    employee = EmployeeSummarySerializer(read_only=True)
    event = serializers.SerializerMethodField()

    class Meta:
        model = EventAssignment
        fields = ['id', 'event', 'employee', 'sim_target', 'ftth_target', 'sim_sold', 'ftth_sold', 'created_at']
        read_only_fields = fields

    def get_event(self, obj):
        return {
            'id': str(obj.event_id),
            'name': obj.event.name,
            'location': obj.event.location,
            'circle': obj.event.circle,
            'start_date': obj.event.start_date,
            'end_date': obj.event.end_date,
        }


class FinanceCollectionSerializer(serializers.ModelSerializer):
    employee = EmployeeSummarySerializer(read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)

    class Meta:
        model = FinanceCollectionEntry
        fields = [
            'id', 'event', 'event_name', 'employee', 'finance_type', 'amount_collected',
            'payment_mode', 'transaction_reference', 'customer_name',
            'customer_contact', 'remarks', 'created_at',
        ]
        read_only_fields = fields


class SubmitFinanceCollectionSerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    finance_type = serializers.ChoiceField(choices=FinanceCollectionEntry.FinanceType.choices)
    amount_collected = serializers.DecimalField(max_digits=14, decimal_places=2, min_value=Decimal('0.01'))
    payment_mode = serializers.ChoiceField(
        choices=FinanceCollectionEntry.PaymentMode.choices,
        default=FinanceCollectionEntry.PaymentMode.CASH,
    )
    transaction_reference = serializers.CharField(required=False, allow_blank=True, default='')
    customer_name = serializers.CharField(required=False, allow_blank=True, default='')
    customer_contact = serializers.CharField(required=False, allow_blank=True, default='')
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------

class IssueSerializer(serializers.ModelSerializer):
    raised_by = EmployeeSummarySerializer(read_only=True)
    escalated_to = EmployeeSummarySerializer(read_only=True)
    event_name = serializers.CharField(source='event.name', read_only=True)

    class Meta:
        model = Issue
        fields = [
            'id', 'event', 'event_name', 'raised_by', 'type', 'description', 'status',
            'escalated_to', 'resolved_by', 'resolved_at', 'timeline', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class IssueCreateSerializer(serializers.Serializer):
    event_id = serializers.UUIDField()
    type = serializers.ChoiceField(choices=Issue.Type.choices)
    description = serializers.CharField()
    escalated_to_id = serializers.UUIDField(required=False, allow_null=True)


class IssueStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Issue.Status.choices)
    remarks = serializers.CharField(required=False, allow_blank=True, default='')


class IssueEscalateSerializer(serializers.Serializer):
    escalated_to_id = serializers.UUIDField()


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'title', 'message', 'entity_type', 'entity_id',
            'metadata', 'is_read', 'read_at', 'created_at',
        ]
        read_only_fields = fields


class PushTokenSerializer(serializers.ModelSerializer):
    class Meta:
        model = PushToken
        fields = ['id', 'token', 'platform', 'is_active', 'last_used_at', 'created_at']
        read_only_fields = ['id', 'is_active', 'last_used_at', 'created_at']
        extra_kwargs = {'token': {'validators': []}}


class NotificationPreferenceSerializer(serializers.Serializer):
    notification_type = serializers.ChoiceField(choices=Notification.Type.choices)
    enabled = serializers.BooleanField(required=False, allow_null=True, default=None)
    push_enabled = serializers.BooleanField(required=False, allow_null=True, default=None)


# ---------------------------------------------------------------------------
# Hierarchy and admin data
# ---------------------------------------------------------------------------

class EmployeeMasterSerializer(serializers.ModelSerializer):
    linked_employee = EmployeeSummarySerializer(read_only=True)

    class Meta:
        model = EmployeeMaster
        fields = [
            'id', 'pers_no', 'name', 'designation', 'circle', 'zone', 'emp_group',
            'reporting_pers_no', 'reporting_officer_name', 'reporting_officer_designation',
            'division', 'building_name', 'office_name', 'shift_group', 'distance_limit',
            'sort_order', 'employee_id', 'is_linked', 'linked_employee', 'linked_at',
        ]
        read_only_fields = fields


class LinkProfileSerializer(serializers.Serializer):
    pers_no = serializers.CharField(max_length=50)


class OltAssignmentSerializer(serializers.ModelSerializer):
    class Meta:
        model = OltAssignment
        fields = ['id', 'pers_no', 'olt_ip', 'created_at']
        read_only_fields = fields


class KamEbGoldSerializer(serializers.ModelSerializer):
    class Meta:
        model = KamEbGold
        fields = [
            'id', 'pers_no', 'name', 'eb_exclusive', 'total_leads',
            'total_lead_value_crore', 'lead_in_stage_iv_crore',
            'lead_to_bill_crore', 'total_sales_visit', 'updated_at',
        ]
        read_only_fields = fields


class FtthOrderPendingSerializer(serializers.ModelSerializer):
    class Meta:
        model = FtthOrderPending
        fields = ['id', 'pers_no', 'ba', 'total_ftth_orders_pending', 'created_at', 'updated_at']
        read_only_fields = fields


class FtthPendingUpsertSerializer(serializers.Serializer):
    pers_no = serializers.CharField(max_length=50)
    ba = serializers.CharField(max_length=100)
    total_ftth_orders_pending = serializers.IntegerField(min_value=0)


class FtthPendingImportSerializer(serializers.Serializer):
    file = serializers.FileField()
    clear_existing = serializers.BooleanField(required=False, default=False)


class FtthPendingDeleteSerializer(serializers.Serializer):
    confirm_text = serializers.CharField()


class FileUploadSerializer(serializers.Serializer):
    file = serializers.FileField()


# ---------------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------------

class AuditLogSerializer(serializers.ModelSerializer):
    """Read-only serializer for AuditLog model."""

    performed_by_name = serializers.SerializerMethodField()

    class Meta:
        model = AuditLog
        fields = [
            'id', 'action', 'entity_type', 'entity_id', 'performed_by',
            'performed_by_name', 'details', 'timestamp',
        ]
        read_only_fields = fields

    def get_performed_by_name(self, obj):
        if obj.performed_by:
            return obj.performed_by.name
        return None
