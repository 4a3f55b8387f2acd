"""API views for field issues."""
from django.contrib.auth import get_user_model
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from accounts.session import get_session
from api.exceptions import to_api_error
from api.v1.pagination import StandardResultsSetPagination
from api.v1.permissions import CanRaiseIssue
from api.v1.serializers import (
    IssueCreateSerializer,
    IssueEscalateSerializer,
    IssueSerializer,
    IssueStatusSerializer,
)
from events.services import visible_events
from issues import services as issue_services

Employee = get_user_model()


class IssueViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    mixins.CreateModelMixin,
    viewsets.GenericViewSet,
):
    """
    Issues raised at events.

    ADMIN sees every issue; others see those they raised or that were
    escalated to them.
    """

    serializer_class = IssueSerializer
    filterset_fields = ['status', 'type', 'event']
    search_fields = ['description', 'event__name']
    ordering_fields = ['created_at', 'status']
    pagination_class = StandardResultsSetPagination

    def get_permissions(self):
        if self.action == 'create':
            return [CanRaiseIssue()]
        return [IsAuthenticated()]

    def get_queryset(self):
        return issue_services.visible_issues(get_session(self.request))

    def create(self, request, *args, **kwargs):
        serializer = IssueCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        session = get_session(request)

        event = visible_events(session).filter(pk=data['event_id']).first()
        if event is None:
            raise ValidationError({'detail': 'Event not found.'})
        escalated_to = None
        if data.get('escalated_to_id'):
            escalated_to = Employee.objects.filter(pk=data['escalated_to_id'], is_active=True).first()
            if escalated_to is None:
                raise ValidationError({'detail': 'Escalation target not found.'})
        try:
            issue = issue_services.create_issue(
                session, event, data['type'], data['description'], escalated_to=escalated_to,
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(IssueSerializer(issue).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        issue = self.get_object()
        serializer = IssueStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            issue = issue_services.update_status(
                get_session(request),
                issue.pk,
                serializer.validated_data['status'],
                serializer.validated_data['remarks'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(IssueSerializer(issue).data)

    @action(detail=True, methods=['post'], url_path='escalate')
    def escalate(self, request, pk=None):
        issue = self.get_object()
        serializer = IssueEscalateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        target = Employee.objects.filter(
            pk=serializer.validated_data['escalated_to_id'], is_active=True,
        ).first()
        if target is None:
            raise ValidationError({'detail': 'Escalation target not found.'})
        try:
            issue = issue_services.escalate(get_session(request), issue.pk, target)
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(IssueSerializer(issue).data)

    @action(detail=False, methods=['get'], url_path='open-count')
    def open_count(self, request):
        return Response({'count': issue_services.open_count(get_session(request))})
