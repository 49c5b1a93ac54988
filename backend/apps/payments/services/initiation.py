# apps/payments/services/initiation.py

"""
Payment initiation for M-Pesa STK push and PesaPal direct orders.

Each initiation records a PaymentAttempt carrying the provider's exact
correlation id. Without provider credentials the request is simulated so the
checkout flow still works in development.
"""

import math
import uuid
from decimal import Decimal
from typing import Dict, Optional

from django.conf import settings
from django.db import transaction

from apps.core.exceptions import PaymentInitiationFailed
from apps.core.services import BaseService, ConflictError, ValidationError
from apps.ecommerce.models import OPEN_PAYMENT_STATUSES, Order, OrderStatus, PaymentStatus
from apps.shipping.zones import shipping_setting

from ..clients import (
    MpesaClient, MpesaError, PesaPalClient, PesaPalError, generate_merchant_reference, normalize_phone
)
from ..models import PaymentAttempt, Provider


def amount_in_kes(order: Order) -> int:
    """Whole-shilling amount for an order priced in USD; M-Pesa accepts integers only"""
    amount = order.total
    if order.currency == 'USD':
        amount = amount * shipping_setting('USD_TO_KES')
    return int(math.ceil(amount))


def app_url(path: str) -> str:
    return f"{getattr(settings, 'APP_URL', 'http://localhost:8000').rstrip('/')}{path}"


class PaymentInitiationService(BaseService):

    def __init__(self, mpesa_client: Optional[MpesaClient] = None, pesapal_client: Optional[PesaPalClient] = None):
        super().__init__()
        self.mpesa_client = mpesa_client
        self.pesapal_client = pesapal_client

    def _mpesa(self) -> MpesaClient:
        return self.mpesa_client or MpesaClient()

    def _pesapal(self) -> PesaPalClient:
        return self.pesapal_client or PesaPalClient()

    def _prepare_order(self, order: Order):
        """Reset a failed order for a new attempt; refuse paid orders"""
        if order.payment_status == PaymentStatus.COMPLETED:
            raise ConflictError(f"Order {order.order_number} is already paid")
        if order.payment_status == PaymentStatus.FAILED:
            Order.objects.filter(pk=order.pk, payment_status=PaymentStatus.FAILED).update(
                payment_status=PaymentStatus.PENDING, status=OrderStatus.PENDING
            )
            order.refresh_from_db()
            self.log_info(f"Order {order.order_number} reopened for a new payment attempt")

    def start_mpesa(self, order: Order, phone_number: str) -> Dict:
        try:
            phone = normalize_phone(phone_number)
        except ValueError as e:
            raise ValidationError(str(e), original_error=e)

        self._prepare_order(order)
        amount = amount_in_kes(order)
        client = self._mpesa()

        if not client.is_configured:
            self.log_warning("M-Pesa not configured; simulating STK push")
            correlation_id = f"SIM-{uuid.uuid4().hex[:20]}"
            attempt = self._record_attempt(
                order, Provider.MPESA, correlation_id, amount=amount, currency='KES',
                phone_number=phone, checkout_request_id=f"SIM-CHECKOUT-{uuid.uuid4().hex[:12]}",
                is_simulated=True,
            )
            return {
                'orderNumber': order.order_number,
                'paymentMethod': Provider.MPESA,
                'isDevelopment': True,
                'merchantRequestId': attempt.correlation_id,
                'checkoutRequestId': attempt.checkout_request_id,
                'message': 'M-Pesa STK push simulated. In production, you would receive a prompt on your phone.',
                'simulation': {'phoneNumber': phone, 'amount': amount},
            }

        try:
            response = client.stk_push(
                phone_number=phone,
                amount=amount,
                account_reference=order.order_number,
                description=f"ArtAfrik Order {order.order_number}",
                callback_url=app_url('/api/payments/mpesa/callback/'),
            )
        except MpesaError as e:
            self.log_error(f"STK push failed for order {order.order_number}", e)
            raise PaymentInitiationFailed(str(e))

        attempt = self._record_attempt(
            order, Provider.MPESA, response['MerchantRequestID'], amount=amount, currency='KES',
            phone_number=phone, checkout_request_id=response.get('CheckoutRequestID', ''),
        )
        return {
            'orderNumber': order.order_number,
            'paymentMethod': Provider.MPESA,
            'merchantRequestId': attempt.correlation_id,
            'checkoutRequestId': attempt.checkout_request_id,
            'message': 'STK push sent successfully. Please check your phone.',
        }

    def start_pesapal(self, order: Order) -> Dict:
        self._prepare_order(order)
        reference = generate_merchant_reference(order.order_number)
        client = self._pesapal()

        if not client.is_configured:
            self.log_warning("PesaPal not configured; simulating payment page")
            attempt = self._record_attempt(
                order, Provider.PESAPAL, reference, amount=order.total, currency=order.currency,
                phone_number=order.shipping_phone, is_simulated=True,
            )
            return {
                'orderNumber': order.order_number,
                'paymentMethod': Provider.PESAPAL,
                'isDevelopment': True,
                'merchantReference': attempt.correlation_id,
                'redirectUrl': app_url(f"/checkout/success?order={order.order_number}&method=pesapal"),
            }

        try:
            result = client.submit_order(
                order, reference, order.total,
                callback_url=app_url(f"/checkout/success?order={order.order_number}&method=pesapal"),
                notification_url=app_url('/api/payments/pesapal/ipn/'),
            )
        except PesaPalError as e:
            self.log_error(f"PesaPal order failed for {order.order_number}", e)
            raise PaymentInitiationFailed(str(e))

        attempt = self._record_attempt(
            order, Provider.PESAPAL, reference, amount=order.total, currency=order.currency,
            phone_number=order.shipping_phone, provider_tracking_id=result['tracking_id'],
        )
        return {
            'orderNumber': order.order_number,
            'paymentMethod': Provider.PESAPAL,
            'merchantReference': attempt.correlation_id,
            'trackingId': attempt.provider_tracking_id,
            'redirectUrl': result['redirect_url'],
        }

    def _record_attempt(self, order: Order, provider: str, correlation_id: str, amount, **fields) -> PaymentAttempt:
        with transaction.atomic():
            attempt = PaymentAttempt.objects.create(
                order=order,
                provider=provider,
                correlation_id=correlation_id,
                status=PaymentStatus.PROCESSING,
                amount=Decimal(str(amount)),
                **fields
            )
            Order.objects.filter(pk=order.pk, payment_status__in=OPEN_PAYMENT_STATUSES).update(
                payment_status=PaymentStatus.PROCESSING
            )

        self.log_info(f"{provider} payment attempt {correlation_id} started", {
            'order_number': order.order_number,
            'amount': str(amount),
        })
        return attempt

    def payment_status(self, order: Order) -> Dict:
        attempt = order.payment_attempts.order_by('-created_at').first()
        return {
            'orderNumber': order.order_number,
            'paymentStatus': order.payment_status,
            'orderStatus': order.status,
            'provider': attempt.provider if attempt else order.payment_method or None,
            'receiptNumber': attempt.receipt_number if attempt else None,
            'isDevelopment': bool(attempt and attempt.is_simulated),
        }


payment_initiation_service = PaymentInitiationService()
