"""API views for the in-app notification inbox, push tokens and preferences."""
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound, ValidationError
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from api.exceptions import to_api_error
from api.v1.pagination import StandardResultsSetPagination
from api.v1.serializers import (
    NotificationPreferenceSerializer,
    NotificationSerializer,
    PushTokenSerializer,
)
from notifications import services as notification_services
from notifications.models import Notification


class NotificationViewSet(mixins.ListModelMixin, mixins.DestroyModelMixin, viewsets.GenericViewSet):
    """The caller's own notifications. Nobody can read another inbox."""

    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['type', 'is_read']
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return Notification.objects.filter(recipient=self.request.user).order_by('-created_at')

    def destroy(self, request, *args, **kwargs):
        try:
            notification_services.delete_notification(request.user, kwargs['pk'])
        except Notification.DoesNotExist:
            raise NotFound('Notification not found.')
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=['post'], url_path='mark-read')
    def mark_read(self, request, pk=None):
        notification = self.get_object()
        notification = notification_services.mark_as_read(request.user, notification.pk)
        return Response(NotificationSerializer(notification).data)

    @action(detail=False, methods=['post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        return Response({'updated': notification_services.mark_all_as_read(request.user)})

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return Response({'count': notification_services.unread_count(request.user)})

    @action(detail=False, methods=['get', 'post', 'delete'], url_path='push-tokens')
    def push_tokens(self, request):
        if request.method == 'GET':
            tokens = notification_services.active_push_tokens(request.user)
            return Response(PushTokenSerializer(tokens, many=True).data)

        if request.method == 'DELETE':
            token = (request.data.get('token') or '').strip()
            if not token:
                raise ValidationError({'token': 'This field is required.'})
            return Response({'removed': notification_services.unregister_push_token(request.user, token)})

        serializer = PushTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            token = notification_services.register_push_token(
                request.user,
                serializer.validated_data['token'],
                serializer.validated_data['platform'],
            )
        except ValueError as exc:
            raise to_api_error(exc)
        return Response(PushTokenSerializer(token).data, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['get', 'patch'], url_path='preferences')
    def preferences(self, request):
        if request.method == 'PATCH':
            serializer = NotificationPreferenceSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            data = serializer.validated_data
            try:
                notification_services.update_preference(
                    request.user,
                    data['notification_type'],
                    enabled=data.get('enabled'),
                    push_enabled=data.get('push_enabled'),
                )
            except ValueError as exc:
                raise to_api_error(exc)
        return Response(notification_services.get_preferences(request.user))
