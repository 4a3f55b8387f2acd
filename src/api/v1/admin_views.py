"""Admin API views: HR master data, OLT and KAM reports, FTTH pending orders, event imports.

Endpoints require ``CAN_MANAGE_HIERARCHY`` (ADMIN only), except the FTTH
pending-order endpoints, which management roles may use.
"""
import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from accounts.session import get_session
from api.exceptions import to_api_error
from api.v1.permissions import CanManageFtthPending, CanManageHierarchy
from api.v1.serializers import (
    EmployeeMasterSerializer,
    FileUploadSerializer,
    FtthOrderPendingSerializer,
    FtthPendingDeleteSerializer,
    FtthPendingImportSerializer,
    FtthPendingUpsertSerializer,
    KamEbGoldSerializer,
)
from core.export import rows_to_csv_response
from core.imports import decode_csv_bytes, read_tabular_upload, read_uploaded_bytes
from events import services as event_services
from hierarchy import services as hierarchy_services

logger = logging.getLogger("circleops")


def _int_param(request, name, default, maximum=None):
    raw = request.query_params.get(name)
    if raw in (None, ''):
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValidationError({'detail': f'{name} must be an integer.'})
    if value < 0:
        raise ValidationError({'detail': f'{name} cannot be negative.'})
    return min(value, maximum) if maximum else value


def _upload_rows(request):
    serializer = FileUploadSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    try:
        return read_tabular_upload(serializer.validated_data['file'])
    except ValueError as exc:
        raise to_api_error(exc)


class _AdminViewSet(viewsets.ViewSet):
    permission_classes = [CanManageHierarchy]
    parser_classes = [JSONParser, MultiPartParser, FormParser]


class EmployeeMasterAdminViewSet(_AdminViewSet):
    """HR employee master records, keyed by Purse ID."""

    lookup_field = 'pers_no'

    def list(self, request):
        linked = request.query_params.get('linked')
        result = hierarchy_services.search_employee_master(
            search=request.query_params.get('search', '').strip(),
            linked={'true': True, 'false': False}.get((linked or '').lower()),
            limit=_int_param(request, 'limit', 50, maximum=500),
            offset=_int_param(request, 'offset', 0),
        )
        return Response({
            'total': result['total'],
            'results': EmployeeMasterSerializer(result['results'], many=True).data,
        })

    def retrieve(self, request, pers_no=None):
        master = hierarchy_services.get_master(pers_no)
        if master is None:
            raise NotFound('Employee master record not found.')
        return Response(EmployeeMasterSerializer(master).data)

    def destroy(self, request, pers_no=None):
        try:
            hierarchy_services.delete_employee_master(pers_no, request.user)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=['post'], url_path='import')
    def import_rows(self, request):
        rows = _upload_rows(request)
        result = hierarchy_services.import_employee_master(rows, request.user)
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='stats')
    def stats(self, request):
        return Response(hierarchy_services.employee_master_stats())

    @action(detail=False, methods=['post'], url_path='clear-unlinked')
    def clear_unlinked(self, request):
        return Response({'deleted': hierarchy_services.clear_unlinked_employee_master(request.user)})


class OltAdminViewSet(_AdminViewSet):
    """OLT IP assignments per Purse ID (two-column ``PER_NO,OLT_IP`` CSV)."""

    @action(detail=False, methods=['post'], url_path='import')
    def import_rows(self, request):
        text = request.data.get('csv_text')
        if not text:
            upload = request.FILES.get('file')
            try:
                text = decode_csv_bytes(read_uploaded_bytes(upload))
            except ValueError as exc:
                raise to_api_error(exc)
        result = hierarchy_services.import_olt_assignments(text, request.user)
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='report')
    def report(self, request):
        return Response(hierarchy_services.olt_report(
            search=request.query_params.get('search', ''),
            limit=_int_param(request, 'limit', 100, maximum=1000),
            offset=_int_param(request, 'offset', 0),
        ))

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        return Response(hierarchy_services.olt_summary())

    @action(detail=False, methods=['get'], url_path='export')
    def export(self, request):
        result = hierarchy_services.olt_report(
            search=request.query_params.get('search', ''), limit=100000, offset=0,
        )
        return rows_to_csv_response(
            result['results'],
            [
                ('pers_no', 'PER_NO'),
                ('name', 'Name'),
                ('olt_count', 'OLT Count'),
                ('olt_ips', 'OLT IPs'),
            ],
            'olt_report',
        )


class KamAdminViewSet(_AdminViewSet):
    """KAM EB gold lead figures."""

    lookup_field = 'pers_no'

    def retrieve(self, request, pers_no=None):
        record = hierarchy_services.kam_by_pers_no(pers_no)
        if record is None:
            raise NotFound('KAM record not found.')
        return Response(KamEbGoldSerializer(record).data)

    @action(detail=False, methods=['post'], url_path='import')
    def import_rows(self, request):
        rows = _upload_rows(request)
        result = hierarchy_services.import_kam_eb_gold(rows, request.user)
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get'], url_path='report')
    def report(self, request):
        try:
            result = hierarchy_services.kam_report(
                search=request.query_params.get('search', '').strip(),
                eb_exclusive=request.query_params.get('eb_exclusive', 'all'),
                sort_by=request.query_params.get('sort_by', 'total_lead_value_crore'),
                sort_order=request.query_params.get('sort_order', 'desc'),
                limit=_int_param(request, 'limit', 100, maximum=1000),
                offset=_int_param(request, 'offset', 0),
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response({
            'total': result['total'],
            'results': KamEbGoldSerializer(result['results'], many=True).data,
        })

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        return Response(hierarchy_services.kam_summary())


class EventImportViewSet(_AdminViewSet):
    """Bulk event upload from CSV/XLSX; imported events start as drafts."""

    @action(detail=False, methods=['post'], url_path='import')
    def import_rows(self, request):
        rows = _upload_rows(request)
        result = event_services.import_events(rows, request.user)
        return Response(result, status=status.HTTP_201_CREATED)


class FtthPendingAdminViewSet(viewsets.ViewSet):
    """Pending FTTH orders per Purse ID and business area."""

    permission_classes = [CanManageFtthPending]
    parser_classes = [JSONParser, MultiPartParser, FormParser]
    lookup_field = 'pers_no'

    def list(self, request):
        records, pagination = hierarchy_services.ftth_pending_list(
            page=_int_param(request, 'page', 1) or 1,
            limit=_int_param(request, 'limit', 50, maximum=hierarchy_services.FTTH_PENDING_MAX_LIMIT) or 1,
        )
        return Response({
            'results': FtthOrderPendingSerializer(records, many=True).data,
            'pagination': pagination,
        })

    def retrieve(self, request, pers_no=None):
        records = hierarchy_services.ftth_pending_for_pers_no(pers_no)
        return Response(FtthOrderPendingSerializer(records, many=True).data)

    @action(detail=False, methods=['get'], url_path='summary')
    def summary(self, request):
        return Response(hierarchy_services.ftth_pending_summary())

    @action(detail=False, methods=['get'], url_path='employees')
    def employees(self, request):
        employees, pagination = hierarchy_services.employees_with_ftth_pending(
            page=_int_param(request, 'page', 1) or 1,
            limit=_int_param(request, 'limit', 200, maximum=hierarchy_services.FTTH_PENDING_MAX_LIMIT) or 1,
        )
        return Response({'employees': employees, 'pagination': pagination})

    @action(detail=False, methods=['post'], url_path='import')
    def import_rows(self, request):
        serializer = FtthPendingImportSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            rows = read_tabular_upload(serializer.validated_data['file'])
            result = hierarchy_services.import_ftth_pending(
                get_session(request), rows, clear_existing=serializer.validated_data['clear_existing'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(result, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='upsert')
    def upsert(self, request):
        serializer = FtthPendingUpsertSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            record, created = hierarchy_services.upsert_ftth_pending(
                get_session(request), **serializer.validated_data,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(
            {**FtthOrderPendingSerializer(record).data, 'operation': 'created' if created else 'updated'},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    @action(detail=False, methods=['post'], url_path='delete-all')
    def delete_all(self, request):
        serializer = FtthPendingDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            deleted = hierarchy_services.delete_all_ftth_pending(
                get_session(request), serializer.validated_data['confirm_text'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response({'deleted': deleted})
