# apps/payments/services/reconciliation.py

"""
Payment callback reconciliation.

Provider callbacks are matched to a PaymentAttempt by its exact correlation
id and applied with conditional updates: a callback only takes effect if the
attempt (and the order's payment status) is still open. Redelivered or
concurrent callbacks therefore change nothing the second time.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from apps.core.exceptions import InvalidSignature, ShipmentAlreadyExists
from apps.core.services import BaseService, ServiceError, ValidationError
from apps.ecommerce.models import OPEN_PAYMENT_STATUSES, Order, OrderStatus, PaymentStatus
from apps.notifications.models import NotificationType
from apps.notifications.services import notification_service
from apps.shipping.services import shipment_service

from ..constants import MPESA_SUCCESS_CODE, PESAPAL_STATUS_MAP
from ..models import PaymentAttempt, Provider
from ..signatures import verify_pesapal_signature


class SignatureError(ServiceError):
    """Callback failed signature verification"""
    api_exception = InvalidSignature


class Outcome:
    APPLIED = 'applied'
    DUPLICATE = 'duplicate'
    IGNORED = 'ignored'
    UNMATCHED = 'unmatched'


def extract_mpesa_metadata(callback: Dict[str, Any]) -> Dict[str, Any]:
    """Scan the STK callback metadata list into a name -> value dict"""
    callback_metadata = callback.get('CallbackMetadata')
    if not isinstance(callback_metadata, dict):
        return {}
    items = callback_metadata.get('Item')
    if not isinstance(items, list):
        return {}
    metadata = {}
    for item in items:
        if isinstance(item, dict) and item.get('Name'):
            metadata[item['Name']] = item.get('Value')
    return metadata


class ReconciliationService(BaseService):
    """Applies provider payment results to attempts and orders"""

    def apply_result(self, attempt: PaymentAttempt, payment_status: str, order_status: str,
                     receipt_number: str = '', tracking_id: str = '', description: str = '',
                     raw: Optional[Dict] = None, extra_note: Optional[Dict] = None) -> str:
        """
        Move an attempt and its order to a final payment status.

        Returns ``Outcome.DUPLICATE`` when the attempt was already final, in
        which case nothing is written.
        """
        if payment_status == PaymentStatus.PENDING:
            return Outcome.IGNORED

        succeeded = payment_status == PaymentStatus.COMPLETED
        description = str(description or '')
        # Without an M-Pesa receipt the checkout request id is the reference
        reference = receipt_number or tracking_id or attempt.checkout_request_id
        now = timezone.now()

        with transaction.atomic():
            attempt_fields = {
                'status': payment_status,
                'result_description': description[:500],
                'raw_callback': raw,
                'completed_at': now,
                'updated_at': now,
            }
            if receipt_number:
                attempt_fields['receipt_number'] = receipt_number
            if tracking_id:
                attempt_fields['provider_tracking_id'] = tracking_id

            claimed = PaymentAttempt.objects.filter(
                pk=attempt.pk, status__in=OPEN_PAYMENT_STATUSES
            ).update(**attempt_fields)
            if not claimed:
                self.log_info(f"Duplicate {attempt.provider} callback for {attempt.correlation_id}")
                return Outcome.DUPLICATE

            order_fields = {
                'payment_status': payment_status,
                'status': order_status,
                'updated_at': now,
            }
            if succeeded and reference:
                order_fields['provider_transaction_id'] = reference

            moved = Order.objects.filter(
                pk=attempt.order_id, payment_status__in=OPEN_PAYMENT_STATUSES
            ).update(**order_fields)

            order = Order.objects.select_for_update().get(pk=attempt.order_id)
            note = {
                'at': now.isoformat(),
                'event': 'payment_completed' if succeeded else 'payment_failed',
                'provider': attempt.provider,
                'correlation_id': attempt.correlation_id,
                'reference': reference or None,
                'description': description or None,
            }
            if extra_note:
                note.update(extra_note)
            order.append_note(note)
            order.save(update_fields=['notes'])

            if not moved:
                # Another attempt already settled the order
                self.log_warning(
                    f"Order {order.order_number} already {order.payment_status}; "
                    f"attempt {attempt.correlation_id} recorded only",
                )
                return Outcome.APPLIED

            dedupe_key = f"payment:{attempt.provider}:{attempt.correlation_id}:{payment_status}"
            if succeeded:
                notification_service.notify(
                    NotificationType.PAYMENT_RECEIVED,
                    title=f"Payment received for order {order.order_number}",
                    message=f"We received your payment of {order.currency} {order.total}. Your order is confirmed.",
                    order=order,
                    metadata={'provider': attempt.provider, 'reference': reference},
                    dedupe_key=dedupe_key,
                )
                self._create_shipment(order)
            else:
                notification_service.notify(
                    NotificationType.PAYMENT_FAILED,
                    title=f"Payment failed for order {order.order_number}",
                    message=f"Your payment could not be completed: {description or 'declined by provider'}.",
                    order=order,
                    metadata={'provider': attempt.provider},
                    dedupe_key=dedupe_key,
                )

        self.log_info(f"Order {order.order_number} payment {payment_status}", {
            'provider': attempt.provider,
            'correlation_id': attempt.correlation_id,
        })
        return Outcome.APPLIED

    def _create_shipment(self, order: Order):
        try:
            shipment_service.create_shipment(order)
        except ShipmentAlreadyExists:
            self.log_info(f"Shipment already exists for order {order.order_number}")
        except ValidationError as e:
            self.log_warning(f"No shipment created for order {order.order_number}: {e.message}")

    # -------------------------------------------------------------------------
    # M-Pesa
    # -------------------------------------------------------------------------

    def handle_mpesa_callback(self, payload: Dict[str, Any]) -> str:
        try:
            callback = payload['Body']['stkCallback']
            merchant_request_id = str(callback['MerchantRequestID'])
            result_code = int(callback['ResultCode'])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError("Malformed M-Pesa callback", original_error=e)

        attempt = PaymentAttempt.objects.filter(
            provider=Provider.MPESA, correlation_id=merchant_request_id
        ).first()
        if attempt is None:
            self.log_warning(f"M-Pesa callback for unknown MerchantRequestID {merchant_request_id}")
            return Outcome.UNMATCHED

        return self.apply_mpesa_result(
            attempt, result_code, str(callback.get('ResultDesc') or ''),
            metadata=extract_mpesa_metadata(callback), raw=payload,
        )

    def apply_mpesa_result(self, attempt: PaymentAttempt, result_code: int, description: str,
                           metadata: Optional[Dict] = None, raw: Optional[Dict] = None) -> str:
        metadata = metadata or {}
        if result_code != MPESA_SUCCESS_CODE:
            return self.apply_result(
                attempt, PaymentStatus.FAILED, OrderStatus.CANCELLED,
                description=description, raw=raw, extra_note={'result_code': result_code},
            )

        extra = {}
        paid = metadata.get('Amount')
        if paid is not None:
            try:
                paid_amount = Decimal(str(paid))
            except InvalidOperation:
                paid_amount = None
            if paid_amount is not None and attempt.amount and paid_amount != attempt.amount:
                self.log_warning(
                    f"M-Pesa amount mismatch for {attempt.correlation_id}: "
                    f"expected {attempt.amount}, paid {paid_amount}"
                )
                extra['amount_mismatch'] = str(paid_amount)
        if metadata.get('PhoneNumber'):
            extra['phone_number'] = str(metadata['PhoneNumber'])

        return self.apply_result(
            attempt, PaymentStatus.COMPLETED, OrderStatus.CONFIRMED,
            receipt_number=str(metadata.get('MpesaReceiptNumber') or ''),
            description=description, raw=raw, extra_note=extra or None,
        )

    # -------------------------------------------------------------------------
    # PesaPal
    # -------------------------------------------------------------------------

    def handle_pesapal_ipn(self, data: Dict[str, Any], signature: Optional[str]) -> str:
        tracking_id = str(data.get('pesapal_transaction_tracking_id') or '').strip()
        merchant_reference = str(data.get('pesapal_merchant_reference') or '').strip()
        if not tracking_id or not merchant_reference:
            raise ValidationError("Missing required PesaPal IPN fields")

        secret = getattr(settings, 'PESAPAL_IPN_SECRET', '')
        if not verify_pesapal_signature(secret, tracking_id, merchant_reference, signature):
            self.log_warning(f"Rejected PesaPal IPN for {merchant_reference}: bad signature")
            raise SignatureError("Invalid PesaPal IPN signature")

        mapped = PESAPAL_STATUS_MAP.get(str(data.get('status') or '').strip().upper())
        if mapped is None:
            self.log_warning(f"Unrecognised PesaPal status {data.get('status')!r} for {merchant_reference}")
            return Outcome.IGNORED

        attempt = PaymentAttempt.objects.filter(
            provider=Provider.PESAPAL, correlation_id=merchant_reference
        ).first()
        if attempt is None:
            self.log_warning(f"PesaPal IPN for unknown merchant reference {merchant_reference}")
            return Outcome.UNMATCHED

        payment_status, order_status = mapped
        return self.apply_result(
            attempt, payment_status, order_status,
            tracking_id=tracking_id,
            description=str(data.get('status')),
            raw=dict(data),
        )


reconciliation_service = ReconciliationService()
