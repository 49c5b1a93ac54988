# apps/payments/tasks.py

import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from apps.ecommerce.models import PaymentStatus

from .clients import MpesaClient, MpesaError
from .models import PaymentAttempt, Provider
from .services import reconciliation_service

logger = logging.getLogger(__name__)


@shared_task
def query_stuck_mpesa_payments():
    """Ask Daraja for the result of STK pushes whose callback never arrived"""
    client = MpesaClient()
    if not client.is_configured:
        return "M-Pesa not configured"

    cutoff = timezone.now() - timedelta(minutes=getattr(settings, 'MPESA_QUERY_AFTER_MINUTES', 5))
    attempts = PaymentAttempt.objects.filter(
        provider=Provider.MPESA,
        status=PaymentStatus.PROCESSING,
        is_simulated=False,
        created_at__lte=cutoff,
    ).exclude(checkout_request_id='')

    resolved = 0
    for attempt in attempts.iterator():
        try:
            response = client.stk_query(attempt.checkout_request_id)
        except MpesaError as e:
            # Daraja answers with an error while the push is still pending
            logger.info(f"STK query for {attempt.correlation_id} not final: {e}")
            continue

        try:
            result_code = int(response.get('ResultCode'))
        except (TypeError, ValueError):
            logger.warning(f"STK query for {attempt.correlation_id} returned no result code")
            continue

        reconciliation_service.apply_mpesa_result(
            attempt, result_code, str(response.get('ResultDesc') or ''), raw=response
        )
        resolved += 1

    logger.info(f"Stuck M-Pesa sweep resolved {resolved} attempts")
    return f"Resolved {resolved} attempts"
