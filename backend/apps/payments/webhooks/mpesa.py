from django.http import JsonResponse

from ..models import Provider
from ..services import reconciliation_service
from .base import BaseWebhookView


class MpesaCallbackView(BaseWebhookView):
    """Receives STK push results from Daraja"""

    provider = Provider.MPESA

    def process_webhook(self, payload, request):
        return reconciliation_service.handle_mpesa_callback(payload)

    def acknowledge(self, outcome):
        # Daraja reads ResultCode 0 as accepted
        return JsonResponse({'ResultCode': 0, 'ResultDesc': 'Accepted', 'outcome': outcome})
