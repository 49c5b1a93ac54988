# apps/notifications/models.py

from django.conf import settings
from django.db import models


class NotificationType(models.TextChoices):
    ORDER_PLACED = 'ORDER_PLACED', 'Order Placed'
    ORDER_CONFIRMED = 'ORDER_CONFIRMED', 'Order Confirmed'
    ORDER_SHIPPED = 'ORDER_SHIPPED', 'Order Shipped'
    ORDER_DELIVERED = 'ORDER_DELIVERED', 'Order Delivered'
    PAYMENT_RECEIVED = 'PAYMENT_RECEIVED', 'Payment Received'
    PAYMENT_FAILED = 'PAYMENT_FAILED', 'Payment Failed'
    GENERAL = 'GENERAL', 'General'


class Notification(models.Model):
    """User-facing notification about an order or payment"""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE,
        null=True, blank=True, related_name='marketplace_notifications'
    )
    order = models.ForeignKey(
        'ecommerce.Order', on_delete=models.CASCADE,
        null=True, blank=True, related_name='notifications'
    )
    type = models.CharField(max_length=30, choices=NotificationType.choices, default=NotificationType.GENERAL)
    title = models.CharField(max_length=200)
    message = models.TextField()
    metadata = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)
    email_sent = models.BooleanField(default=False)

    # Callers that may fire more than once pass a key; one row per key
    dedupe_key = models.CharField(max_length=255, unique=True, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'is_read']),
        ]

    def __str__(self):
        return f"{self.type}: {self.title}"

    @property
    def recipient_email(self):
        if self.order_id and self.order.shipping_email:
            return self.order.shipping_email
        if self.user_id and self.user.email:
            return self.user.email
        return ''
