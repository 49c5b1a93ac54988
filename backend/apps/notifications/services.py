# apps/notifications/services.py

"""
Notification dispatch and inbox operations
"""

from typing import Dict, Iterable, Optional

from django.db import IntegrityError, transaction

from apps.core.services import BaseService

from .models import Notification, NotificationType


class NotificationService(BaseService):
    """Create notifications and manage a user's inbox"""

    def notify(self, notification_type: str, title: str, message: str, user=None, order=None,
               metadata: Optional[Dict] = None, dedupe_key: Optional[str] = None) -> Notification:
        """
        Record a notification and queue its e-mail after commit.

        With a ``dedupe_key`` the call is idempotent: a second call with the
        same key returns the existing row and queues nothing.
        """
        if user is None and order is not None:
            user = order.user

        if dedupe_key:
            existing = Notification.objects.filter(dedupe_key=dedupe_key).first()
            if existing:
                self.log_info(f"Notification {dedupe_key} already recorded")
                return existing

        try:
            with transaction.atomic():
                notification = Notification.objects.create(
                    user=user,
                    order=order,
                    type=NotificationType(notification_type),
                    title=title,
                    message=message,
                    metadata=metadata or {},
                    dedupe_key=dedupe_key or None,
                )
        except IntegrityError:
            # Lost a race on the dedupe key
            return Notification.objects.get(dedupe_key=dedupe_key)

        self.log_info(
            f"Notification {notification.type} recorded",
            {'notification_id': notification.id, 'order_id': order.pk if order else None}
        )

        from .tasks import send_notification_email
        transaction.on_commit(lambda: send_notification_email.delay(notification.id))
        return notification

    def list_for_user(self, user, unread_only: bool = False, limit: int = 50):
        queryset = Notification.objects.filter(user=user)
        if unread_only:
            queryset = queryset.filter(is_read=False)
        return list(queryset[:limit])

    def unread_count(self, user) -> int:
        return Notification.objects.filter(user=user, is_read=False).count()

    def mark_read(self, user, ids: Optional[Iterable[int]] = None) -> int:
        """Mark the given notifications read, or all of them when no ids are given"""
        queryset = Notification.objects.filter(user=user, is_read=False)
        if ids is not None:
            queryset = queryset.filter(id__in=list(ids))
        updated = queryset.update(is_read=True)
        self.log_info(f"Marked {updated} notifications read", {'user_id': user.pk})
        return updated


notification_service = NotificationService()
