# apps/notifications/tasks.py

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail

from .models import Notification

logger = logging.getLogger(__name__)


@shared_task(bind=True, max_retries=3, default_retry_delay=60)
def send_notification_email(self, notification_id):
    """Send the e-mail copy of a notification"""
    try:
        notification = Notification.objects.select_related('order', 'user').get(id=notification_id)
    except Notification.DoesNotExist:
        logger.error(f"Notification {notification_id} not found for e-mail")
        return f"Notification {notification_id} not found"

    if notification.email_sent:
        return f"Notification {notification_id} already e-mailed"

    recipient = notification.recipient_email
    if not recipient:
        logger.info(f"Notification {notification_id} has no recipient address")
        return f"Notification {notification_id} has no recipient"

    try:
        send_mail(
            subject=notification.title,
            message=notification.message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient],
            fail_silently=False,
        )
    except Exception as exc:
        logger.error(f"Failed to e-mail notification {notification_id}: {exc}")
        raise self.retry(exc=exc)

    Notification.objects.filter(id=notification_id).update(email_sent=True)
    logger.info(f"E-mailed notification {notification_id} to {recipient}")
    return f"Notification {notification_id} e-mailed"
