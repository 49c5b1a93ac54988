# apps/payments/models.py

from decimal import Decimal

from django.db import models

from apps.core.models import TimestampedModel
from apps.ecommerce.models import PaymentStatus


class Provider(models.TextChoices):
    MPESA = 'MPESA', 'M-Pesa'
    PESAPAL = 'PESAPAL', 'PesaPal'


class PaymentAttempt(TimestampedModel):
    """
    One payment try on an order.

    Callbacks are matched on ``correlation_id`` (the M-Pesa MerchantRequestID
    or the PesaPal merchant reference) by exact equality.
    """

    order = models.ForeignKey('ecommerce.Order', on_delete=models.CASCADE, related_name='payment_attempts')
    provider = models.CharField(max_length=10, choices=Provider.choices)
    correlation_id = models.CharField(max_length=100)
    checkout_request_id = models.CharField(max_length=100, blank=True)
    provider_tracking_id = models.CharField(max_length=100, blank=True)

    status = models.CharField(max_length=20, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal('0.00'))
    currency = models.CharField(max_length=3, default='KES')
    phone_number = models.CharField(max_length=20, blank=True)

    receipt_number = models.CharField(max_length=100, blank=True)
    result_description = models.CharField(max_length=500, blank=True)
    raw_callback = models.JSONField(null=True, blank=True)
    is_simulated = models.BooleanField(default=False)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'payment_attempts'
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['provider', 'correlation_id'], name='unique_provider_correlation'),
        ]
        indexes = [
            models.Index(fields=['status', 'provider']),
        ]

    def __str__(self):
        return f"{self.provider} {self.correlation_id} ({self.status})"

    @property
    def is_final(self):
        return self.status in (PaymentStatus.COMPLETED, PaymentStatus.FAILED)
