"""ViewSets and API views for the circle sales operations API v1."""
import logging

from django.contrib.auth import get_user_model
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.session import get_session
from api.exceptions import to_api_error
from api.v1.pagination import StandardResultsSetPagination
from api.v1.permissions import (
    CanCreateEvent,
    CanManageTeam,
    CanSubmitSales,
    CanUpdateStock,
    CanViewAudit,
    CanViewReports,
)
from api.v1.serializers import (
    AssignTeamSerializer,
    AuditLogSerializer,
    EmployeeMasterSerializer,
    EmployeeSerializer,
    EventAssignmentSerializer,
    EventDetailSerializer,
    EventSalesEntrySerializer,
    EventSerializer,
    EventStatusSerializer,
    EventSubtaskSerializer,
    EventWriteSerializer,
    EmployeeSummarySerializer,
    LinkProfileSerializer,
    MemberTargetSerializer,
    MyAssignmentSerializer,
    ResourceAllocationSerializer,
    ResourceSerializer,
    SubmitEventSalesSerializer,
    SubtaskWriteSerializer,
    UpdateStockSerializer,
)
from core.models import AuditLog
from events import services as event_services
from events.models import EventSubtask
from hierarchy import services as hierarchy_services
from resources import services as resource_services
from resources.models import ResourceAllocation

logger = logging.getLogger("circleops")

Employee = get_user_model()


def _active_employee(employee_id):
    """Return the active employee with *employee_id* or raise a 400."""
    employee = Employee.objects.filter(pk=employee_id, is_active=True).first()
    if employee is None:
        raise ValidationError({'detail': 'Employee not found.'})
    return employee


# ---------------------------------------------------------------------------
# Me / hierarchy
# ---------------------------------------------------------------------------

class MeView(APIView):
    """
    GET /api/v1/auth/me/ - return the authenticated employee's profile.
    PATCH /api/v1/auth/me/ - update name, phone, zone, designation.
    """

    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response(EmployeeSerializer(request.user).data)

    def patch(self, request):
        serializer = EmployeeSerializer(request.user, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response(serializer.data)


class MyHierarchyView(APIView):
    """GET /api/v1/hierarchy/me/ - manager, reporting chain, direct reports and OLT IPs."""

    permission_classes = [IsAuthenticated]

    def get(self, request):
        data = hierarchy_services.my_hierarchy(request.user)
        master = data['master']
        return Response({
            'is_linked': data['is_linked'],
            'master': EmployeeMasterSerializer(master).data if master else None,
            'manager': EmployeeMasterSerializer(data['manager']).data if data['manager'] else None,
            'chain': EmployeeMasterSerializer(data['chain'], many=True).data,
            'subordinates': EmployeeMasterSerializer(data['subordinates'], many=True).data,
            'olt_ips': hierarchy_services.olt_for_pers_no(master.pers_no) if master else [],
        })


class LinkProfileView(APIView):
    """POST /api/v1/hierarchy/link-profile/ - claim a Purse ID for the caller."""

    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = LinkProfileSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            master = hierarchy_services.link_profile(request.user, serializer.validated_data['pers_no'])
        except ValueError as exc:
            raise to_api_error(exc)
        request.user.refresh_from_db()
        return Response({
            'employee': EmployeeSerializer(request.user).data,
            'master': EmployeeMasterSerializer(master).data,
        })


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class ResourceViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Circle SIM / FTTH stock.

    GM and ADMIN see every circle; everyone else sees their own.
    """

    serializer_class = ResourceSerializer
    filterset_fields = ['circle', 'type']
    ordering_fields = ['circle', 'type', 'remaining']
    pagination_class = StandardResultsSetPagination

    def get_permissions(self):
        if self.action == 'update_stock':
            return [CanUpdateStock()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return resource_services.visible_resources(get_session(self.request)).select_related('updated_by')

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        return Response(resource_services.get_summary(self.get_queryset()))

    @action(detail=False, methods=['post'], url_path='update-stock')
    def update_stock(self, request):
        serializer = UpdateStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            resource = resource_services.update_stock(
                get_session(request), data['circle'], data['type'], data['total'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(ResourceSerializer(resource).data)

    @action(detail=False, methods=['get'], url_path='allocations')
    def allocations(self, request):
        qs = (
            ResourceAllocation.objects
            .filter(resource__in=self.get_queryset())
            .select_related('resource', 'event')
            .order_by('-created_at')
        )
        event_id = request.query_params.get('event')
        if event_id:
            qs = qs.filter(event_id=event_id)
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(ResourceAllocationSerializer(page, many=True).data)
        return Response(ResourceAllocationSerializer(qs, many=True).data)

    @action(detail=False, methods=['get'], url_path='circle-dashboard')
    def circle_dashboard(self, request):
        session = get_session(request)
        circle = request.query_params.get('circle') or session.circle
        if circle != session.circle and not session.sees_all_circles:
            circle = session.circle
        return Response(resource_services.circle_dashboard(circle))


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

class EventViewSet(viewsets.ModelViewSet):
    """
    Field events: lifecycle, team targets, field sales and subtasks.

    Writes go through :mod:`events.services`, which locks the event row
    and keeps the circle ledger in step.
    """

    serializer_class = EventSerializer
    filterset_fields = ['status', 'circle', 'category']
    search_fields = ['name', 'location', 'zone']
    ordering_fields = ['start_date', 'end_date', 'created_at', 'name']
    pagination_class = StandardResultsSetPagination

    def get_permissions(self):
        if self.action in ('create', 'update', 'partial_update', 'destroy'):
            return [CanCreateEvent()]
        if self.action in ('assign_team', 'assign_member', 'update_targets', 'remove_member', 'available_members'):
            return [CanManageTeam()]
        if self.action == 'submit_sales':
            return [CanSubmitSales()]
        if self.action == 'hierarchical_report':
            return [CanViewReports()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return event_services.visible_events(get_session(self.request))

    def create(self, request, *args, **kwargs):
        serializer = EventWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        try:
            event = event_services.create_event(
                get_session(request),
                assigned_to_pers_no=data.pop('assigned_to_pers_no', ''),
                allocated_sim=data.pop('allocated_sim', 0),
                allocated_ftth=data.pop('allocated_ftth', 0),
                **data,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSerializer(event).data, status=status.HTTP_201_CREATED)

    def update(self, request, *args, **kwargs):
        event = self.get_object()
        serializer = EventWriteSerializer(data=request.data, partial=kwargs.pop('partial', False))
        serializer.is_valid(raise_exception=True)
        try:
            event = event_services.update_event(get_session(request), event.pk, **serializer.validated_data)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSerializer(event).data)

    def destroy(self, request, *args, **kwargs):
        """Cancel the event and release its unsold stock."""
        event = self.get_object()
        try:
            event = event_services.delete_event(get_session(request), event.pk)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSerializer(event).data)

    @action(detail=False, methods=['get'], url_path='my-assigned')
    def my_assigned(self, request):
        qs = event_services.get_my_assigned_events(request.user)
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(MyAssignmentSerializer(page, many=True).data)
        return Response(MyAssignmentSerializer(qs, many=True).data)

    @action(detail=False, methods=['get'], url_path='stats')
    def stats(self, request):
        return Response(event_services.event_stats())

    @action(detail=False, methods=['get'], url_path='hierarchical-report')
    def hierarchical_report(self, request):
        return Response(event_services.hierarchical_report(request.user))

    @action(detail=True, methods=['get'], url_path='details')
    def details(self, request, pk=None):
        event = self.get_object()
        return Response(EventDetailSerializer(event_services.get_event_with_details(event)).data)

    @action(detail=True, methods=['get'], url_path='resource-status')
    def resource_status(self, request, pk=None):
        return Response(event_services.get_event_resource_status(self.get_object()))

    @action(detail=True, methods=['post'], url_path='status')
    def set_status(self, request, pk=None):
        event = self.get_object()
        serializer = EventStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            event = event_services.update_event_status(
                get_session(request), event.pk, serializer.validated_data['status'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSerializer(event).data)

    # -- team -------------------------------------------------------------

    @action(detail=True, methods=['post'], url_path='team')
    def assign_team(self, request, pk=None):
        event = self.get_object()
        serializer = AssignTeamSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            added = event_services.assign_team(
                get_session(request), event.pk, serializer.validated_data['employee_ids'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventAssignmentSerializer(added, many=True).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='assign-member')
    def assign_member(self, request, pk=None):
        return self._set_targets(request, require_existing=False)

    @action(detail=True, methods=['post'], url_path='update-targets')
    def update_targets(self, request, pk=None):
        return self._set_targets(request, require_existing=True)

    def _set_targets(self, request, require_existing):
        event = self.get_object()
        serializer = MemberTargetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        employee = _active_employee(data['employee_id'])
        try:
            assignment = event_services.assign_team_member(
                get_session(request),
                event.pk,
                employee,
                data['sim_target'],
                data['ftth_target'],
                require_existing=require_existing,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventAssignmentSerializer(assignment).data)

    @action(detail=True, methods=['post'], url_path='remove-member')
    def remove_member(self, request, pk=None):
        event = self.get_object()
        serializer = MemberTargetSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        employee = Employee.objects.filter(pk=serializer.validated_data['employee_id']).first()
        if employee is None:
            raise ValidationError({'detail': 'Employee not found.'})
        try:
            event_services.remove_team_member(get_session(request), event.pk, employee)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['get'], url_path='available-members')
    def available_members(self, request, pk=None):
        event = self.get_object()
        members = event_services.available_team_members(
            event, manager_pers_no=request.query_params.get('manager_pers_no'),
        )
        return Response([
            {**EmployeeSummarySerializer(row['employee']).data, 'is_assigned': row['is_assigned']}
            for row in members
        ])

    # -- field sales ------------------------------------------------------

    @action(detail=True, methods=['post'], url_path='submit-sales')
    def submit_sales(self, request, pk=None):
        event = self.get_object()
        serializer = SubmitEventSalesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            entry, assignment = event_services.submit_event_sales(
                get_session(request), event.pk, **serializer.validated_data,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(
            {
                'entry': EventSalesEntrySerializer(entry).data,
                'assignment': EventAssignmentSerializer(assignment).data,
            },
            status=status.HTTP_201_CREATED,
        )

    # -- subtasks ---------------------------------------------------------

    @action(detail=True, methods=['get', 'post'], url_path='subtasks')
    def subtasks(self, request, pk=None):
        event = self.get_object()
        if request.method == 'GET':
            qs = EventSubtask.objects.filter(event=event).select_related('assigned_to').order_by('-created_at')
            return Response(EventSubtaskSerializer(qs, many=True).data)

        serializer = SubtaskWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        assigned_to_id = data.pop('assigned_to_id', None)
        assigned_to = _active_employee(assigned_to_id) if assigned_to_id else None
        try:
            subtask = event_services.create_subtask(
                get_session(request),
                event.pk,
                data.pop('title'),
                assigned_to=assigned_to,
                staff_pers_no=data.pop('staff_pers_no', ''),
                **data,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSubtaskSerializer(subtask).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['patch', 'delete'], url_path=r'subtasks/(?P<subtask_id>[^/.]+)')
    def subtask(self, request, subtask_id=None):
        session = get_session(request)
        if request.method == 'DELETE':
            try:
                event_services.delete_subtask(session, subtask_id)
            except ValueError as exc:
                raise to_api_error(exc)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = SubtaskWriteSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = dict(serializer.validated_data)
        changes.pop('staff_pers_no', None)
        if 'assigned_to_id' in changes:
            assigned_to_id = changes.pop('assigned_to_id')
            changes['assigned_to'] = _active_employee(assigned_to_id) if assigned_to_id else None
        try:
            subtask = event_services.update_subtask(session, subtask_id, **changes)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(EventSubtaskSerializer(subtask).data)


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Read-only viewset for audit log entries.

    Only ADMIN and GM roles can access.
    """

    serializer_class = AuditLogSerializer
    queryset = AuditLog.objects.select_related('performed_by')
    permission_classes = [CanViewAudit]
    filterset_fields = ['action', 'entity_type', 'entity_id', 'performed_by']
    search_fields = ['action', 'entity_type', 'entity_id']
    ordering_fields = ['timestamp']
    pagination_class = StandardResultsSetPagination
