# apps/ecommerce/models/orders.py

"""
Orders and the items captured at checkout
"""

import json
import random
import string
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from apps.core.models import TimestampedModel
from apps.shipping.zones import ServiceTier


class OrderStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    CONFIRMED = 'CONFIRMED', 'Confirmed'
    PROCESSING = 'PROCESSING', 'Processing'
    SHIPPED = 'SHIPPED', 'Shipped'
    DELIVERED = 'DELIVERED', 'Delivered'
    CANCELLED = 'CANCELLED', 'Cancelled'
    REFUNDED = 'REFUNDED', 'Refunded'


class PaymentStatus(models.TextChoices):
    PENDING = 'PENDING', 'Payment Pending'
    PROCESSING = 'PROCESSING', 'Processing'
    COMPLETED = 'COMPLETED', 'Completed'
    FAILED = 'FAILED', 'Failed'
    REFUNDED = 'REFUNDED', 'Refunded'


class PaymentMethod(models.TextChoices):
    MPESA = 'MPESA', 'M-Pesa'
    PESAPAL = 'PESAPAL', 'PesaPal'


# Payment statuses a callback may still move out of
OPEN_PAYMENT_STATUSES = (PaymentStatus.PENDING, PaymentStatus.PROCESSING)


def generate_order_number() -> str:
    suffix = ''.join(random.choices(string.ascii_uppercase + string.digits, k=6))
    return f"ORD-{timezone.now():%Y%m%d%H%M%S}-{suffix}"


class Order(TimestampedModel):
    """
    A buyer's order. Payment status only moves forward; fulfilment status is
    driven by the order's shipment.
    """

    order_number = models.CharField(max_length=40, unique=True, default=generate_order_number)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.SET_NULL,
        null=True, blank=True, related_name='marketplace_orders'
    )

    status = models.CharField(max_length=20, choices=OrderStatus.choices, default=OrderStatus.PENDING)
    payment_status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, blank=True)
    provider_transaction_id = models.CharField(max_length=100, blank=True)

    # Totals
    currency = models.CharField(max_length=3, default='USD')
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    shipping_cost = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))

    # Shipping contact and destination
    shipping_name = models.CharField(max_length=200, blank=True)
    shipping_email = models.EmailField(blank=True)
    shipping_phone = models.CharField(max_length=30, blank=True)
    shipping_address = models.CharField(max_length=500, blank=True)
    shipping_city = models.CharField(max_length=100, blank=True)
    shipping_country = models.CharField(max_length=2, blank=True)
    shipping_tier = models.CharField(max_length=10, choices=ServiceTier.choices, default=ServiceTier.STANDARD)

    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user', 'status']),
            models.Index(fields=['payment_status']),
        ]

    def __str__(self):
        return f"Order {self.order_number}"

    @property
    def is_paid(self):
        return self.payment_status == PaymentStatus.COMPLETED

    @property
    def item_count(self):
        return sum(item.quantity for item in self.items.all())

    def append_note(self, entry: dict):
        """Append a JSON line to the order's notes log; caller saves"""
        line = json.dumps(entry, default=str, sort_keys=True)
        self.notes = f"{self.notes}\n{line}" if self.notes else line
        return self.notes


class OrderItem(models.Model):
    """Line item with the price captured when the order was placed"""

    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    art_listing_id = models.CharField(max_length=64)
    title = models.CharField(max_length=255)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    quantity = models.PositiveIntegerField(default=1)
    weight_kg = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)

    class Meta:
        db_table = 'order_items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity} x {self.title}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity
