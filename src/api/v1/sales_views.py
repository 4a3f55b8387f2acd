"""API views for sales reports, sold-by-type listings and finance collections."""
import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.session import get_session
from api.exceptions import to_api_error
from api.v1.pagination import StandardResultsSetPagination
from api.v1.permissions import CanApproveSales, CanSubmitSales
from api.v1.serializers import (
    BulkApproveSerializer,
    FinanceCollectionSerializer,
    ReviewSerializer,
    SalesReportSerializer,
    SoldAssignmentSerializer,
    SubmitFinanceCollectionSerializer,
)
from events.models import Event
from sales import services as sales_services
from sales.models import FinanceCollectionEntry

logger = logging.getLogger("circleops")

_REPORT_EDITABLE_FIELDS = (
    'sims_sold', 'sims_activated', 'ftth_leads', 'ftth_installed',
    'customer_type', 'photos', 'gps_latitude', 'gps_longitude', 'remarks',
)


def _limit(request, default=100, maximum=500):
    try:
        value = int(request.query_params.get('limit', default))
    except (TypeError, ValueError):
        raise ValidationError({'detail': 'limit must be an integer.'})
    return max(1, min(value, maximum))


class SalesReportViewSet(viewsets.ModelViewSet):
    """
    Sales reports submitted by field staff and reviewed by managers.

    Reviewers see the reports of their circle (every circle for GM and
    ADMIN); other staff see only their own.
    """

    serializer_class = SalesReportSerializer
    filterset_fields = ['status', 'event', 'customer_type', 'sales_staff']
    search_fields = ['event__name', 'sales_staff__name', 'remarks']
    ordering_fields = ['created_at', 'sims_sold', 'ftth_installed']
    pagination_class = StandardResultsSetPagination
    http_method_names = ['get', 'post', 'patch', 'head', 'options']

    def get_permissions(self):
        if self.action in ('approve', 'reject', 'bulk_approve', 'pending'):
            return [CanApproveSales()]
        if self.action == 'create':
            return [CanSubmitSales()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return sales_services.visible_reports(get_session(self.request))

    def create(self, request, *args, **kwargs):
        serializer = SalesReportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        event = data.pop('event')
        try:
            report = sales_services.create_report(get_session(request), event, **data)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(SalesReportSerializer(report).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        report = self.get_object()
        serializer = SalesReportSerializer(report, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        changes = {
            field: value for field, value in serializer.validated_data.items()
            if field in _REPORT_EDITABLE_FIELDS
        }
        try:
            report = sales_services.update_report(get_session(request), report.pk, **changes)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(SalesReportSerializer(report).data)

    @action(detail=True, methods=['post'], url_path='approve')
    def approve(self, request, pk=None):
        report = self.get_object()
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            report = sales_services.approve_report(
                get_session(request), report.pk, serializer.validated_data['remarks'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(SalesReportSerializer(report).data)

    @action(detail=True, methods=['post'], url_path='reject')
    def reject(self, request, pk=None):
        report = self.get_object()
        serializer = ReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            report = sales_services.reject_report(
                get_session(request), report.pk, serializer.validated_data['remarks'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(SalesReportSerializer(report).data)

    @action(detail=False, methods=['post'], url_path='bulk-approve')
    def bulk_approve(self, request):
        serializer = BulkApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = get_session(request)
        visible_ids = set(
            self.get_queryset()
            .filter(pk__in=serializer.validated_data['report_ids'])
            .values_list('pk', flat=True)
        )
        try:
            count = sales_services.bulk_approve(
                session, list(visible_ids), serializer.validated_data['remarks'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response({'approved': count})

    @action(detail=False, methods=['get'], url_path='pending')
    def pending(self, request):
        qs = sales_services.pending_for_review(get_session(request))
        page = self.paginate_queryset(qs)
        if page is not None:
            return self.get_paginated_response(SalesReportSerializer(page, many=True).data)
        return Response(SalesReportSerializer(qs, many=True).data)

    @action(detail=False, methods=['get'], url_path='dashboard')
    def dashboard(self, request):
        return Response(sales_services.dashboard_stats(self.get_queryset()))

    @action(detail=False, methods=['get'], url_path='my-summary')
    def my_summary(self, request):
        return Response(sales_services.staff_summary(request.user))

    @action(detail=False, methods=['get'], url_path=r'event-summary/(?P<event_id>[^/.]+)')
    def event_summary(self, request, event_id=None):
        event = Event.objects.filter(pk=event_id).first()
        if event is None:
            raise ValidationError({'detail': 'Event not found.'})
        return Response(sales_services.event_summary(event))


class SalesViewSet(viewsets.ViewSet):
    """Sold-by-type listing and finance collections, scoped to the caller's team."""

    def get_permissions(self):
        if self.action == 'submit_finance':
            return [CanSubmitSales()]
        return [IsAuthenticated()]

    @action(detail=False, methods=['get'], url_path='by-type')
    def by_type(self, request):
        try:
            rows = sales_services.by_type(
                get_session(request), request.query_params.get('type', ''), limit=_limit(request),
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(SoldAssignmentSerializer(rows, many=True).data)

    @action(detail=False, methods=['get'], url_path='finance-collections')
    def finance_collections(self, request):
        finance_type = request.query_params.get('finance_type') or None
        if finance_type and finance_type not in FinanceCollectionEntry.FinanceType.values:
            raise ValidationError({'detail': f'Invalid finance type: {finance_type}'})
        rows = sales_services.finance_collections(
            get_session(request), finance_type=finance_type, limit=_limit(request),
        )
        return Response(FinanceCollectionSerializer(rows, many=True).data)

    @action(detail=False, methods=['get'], url_path='finance-summary')
    def finance_summary(self, request):
        return Response(sales_services.finance_summary(get_session(request)))

    @action(detail=False, methods=['post'], url_path='finance-collections/submit')
    def submit_finance(self, request):
        serializer = SubmitFinanceCollectionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        try:
            entry = sales_services.submit_finance_collection(
                get_session(request),
                data.pop('event_id'),
                data.pop('finance_type'),
                data.pop('amount_collected'),
                **data,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(FinanceCollectionSerializer(entry).data, status=status.HTTP_201_CREATED)
