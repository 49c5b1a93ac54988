# apps/notifications/views.py

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import MarkReadSerializer, NotificationSerializer
from .services import notification_service


class NotificationListView(APIView):
    """Current user's notifications"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        unread_only = request.query_params.get('unread', '').lower() in ('1', 'true', 'yes')
        try:
            limit = max(1, min(int(request.query_params.get('limit', 50)), 100))
        except ValueError:
            limit = 50

        notifications = notification_service.list_for_user(request.user, unread_only=unread_only, limit=limit)
        return Response({
            'notifications': NotificationSerializer(notifications, many=True).data,
            'unread_count': notification_service.unread_count(request.user),
        })


class MarkReadView(APIView):
    """Mark some or all notifications as read"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        updated = notification_service.mark_read(request.user, serializer.validated_data.get('ids'))
        return Response({
            'updated': updated,
            'unread_count': notification_service.unread_count(request.user),
        }, status=status.HTTP_200_OK)
