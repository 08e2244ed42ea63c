"""
Views for the notifications app. Every query is scoped to the caller.
"""
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated

from apps.core.permissions import principal_type_of
from apps.core.responses import success_response
from .models import Notification
from .serializers import NotificationSerializer
from .services import NotificationService


class NotificationViewSet(viewsets.GenericViewSet):
    """
    The caller's own notifications.
    """
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        return Notification.objects.for_recipient(user.pk, principal_type_of(user))

    def get_object(self):
        try:
            return self.get_queryset().get(pk=self.kwargs['pk'])
        except Notification.DoesNotExist:
            raise NotFound('Notification not found')

    def list(self, request):
        queryset = self.get_queryset().unexpired()
        if str(request.query_params.get('unread_only', '')).lower() == 'true':
            queryset = queryset.filter(is_read=False)
        if request.query_params.get('type'):
            queryset = queryset.filter(type=request.query_params['type'])

        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    @action(detail=False, methods=['get'], url_path='unread-count')
    def unread_count(self, request):
        return success_response(data={'count': self.get_queryset().unread().count()})

    @action(detail=True, methods=['patch', 'post'])
    def read(self, request, pk=None):
        notification = self.get_object()
        notification.mark_read()
        return success_response(data=self.get_serializer(notification).data, message='Notification marked as read')

    @action(detail=False, methods=['patch', 'post'], url_path='mark-all-read')
    def mark_all_read(self, request):
        updated = NotificationService.mark_all_read(request.user.pk, principal_type_of(request.user))
        return success_response(data={'updated': updated}, message='All notifications marked as read')

    def destroy(self, request, pk=None):
        self.get_object().delete()
        return success_response(message='Notification deleted')
