# apps/shipping/models.py

"""
Shipment records and their tracking history
"""

import random
import string
import time
import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone

from apps.core.models import TimestampedModel

from .transitions import STATUS_DESCRIPTIONS, ShipmentStatus, is_terminal
from .zones import ServiceTier


def generate_tracking_number(prefix: str = 'AF') -> str:
    """Prefix + base36 timestamp + random suffix"""
    alphabet = string.digits + string.ascii_uppercase
    value = int(time.time() * 1000)
    encoded = ''
    while value:
        value, remainder = divmod(value, 36)
        encoded = alphabet[remainder] + encoded
    suffix = ''.join(random.choices(alphabet, k=6))
    return f"{prefix}{encoded}{suffix}"


class Shipment(TimestampedModel):
    """
    Shipment for an order. Exactly one per order; the tracking number is
    assigned once the shipment leaves CREATED.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    order = models.OneToOneField('ecommerce.Order', on_delete=models.PROTECT, related_name='shipment')
    tracking_number = models.CharField(max_length=40, unique=True, null=True, blank=True)

    carrier = models.CharField(max_length=100, blank=True)
    service_tier = models.CharField(max_length=10, choices=ServiceTier.choices, default=ServiceTier.STANDARD)
    status = models.CharField(max_length=20, choices=ShipmentStatus.choices, default=ShipmentStatus.CREATED)

    # Destination
    recipient_name = models.CharField(max_length=200, blank=True)
    recipient_phone = models.CharField(max_length=30, blank=True)
    recipient_email = models.EmailField(blank=True)
    destination_address = models.CharField(max_length=500, blank=True)
    destination_city = models.CharField(max_length=100, blank=True)
    destination_country = models.CharField(max_length=2)

    # Package
    total_weight_kg = models.DecimalField(max_digits=8, decimal_places=2, default=Decimal('0.50'))
    shipping_cost = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal('0.00'))

    # Timing
    estimated_delivery = models.DateField(null=True, blank=True)
    picked_up_at = models.DateTimeField(null=True, blank=True)
    shipped_at = models.DateTimeField(null=True, blank=True)
    out_for_delivery_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)

    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'shipping_shipments'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['destination_country']),
        ]

    def __str__(self):
        return f"Shipment {self.tracking_number or self.pk} - {self.status}"

    @property
    def is_delivered(self):
        return self.status == ShipmentStatus.DELIVERED

    @property
    def is_terminal(self):
        return is_terminal(self.status)

    @property
    def status_description(self):
        return STATUS_DESCRIPTIONS.get(self.status, 'Unknown status')

    @property
    def is_delayed(self):
        if not self.estimated_delivery or self.is_terminal:
            return False
        return timezone.localdate() > self.estimated_delivery


class TrackingEventQuerySet(models.QuerySet):

    def delete(self):
        raise TypeError("Tracking events are append-only")

    def update(self, **kwargs):
        raise TypeError("Tracking events are append-only")


class TrackingEvent(models.Model):
    """Append-only tracking history entry"""

    shipment = models.ForeignKey(Shipment, on_delete=models.PROTECT, related_name='events')
    status = models.CharField(max_length=20, choices=ShipmentStatus.choices)
    description = models.CharField(max_length=500)
    location = models.CharField(max_length=200, blank=True)
    occurred_at = models.DateTimeField(default=timezone.now)

    objects = TrackingEventQuerySet.as_manager()

    class Meta:
        db_table = 'shipping_tracking_events'
        ordering = ['occurred_at', 'id']

    def __str__(self):
        return f"{self.status} at {self.occurred_at:%Y-%m-%d %H:%M}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise TypeError("Tracking events cannot be modified once recorded")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise TypeError("Tracking events are append-only")
