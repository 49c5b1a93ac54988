from django.http import JsonResponse

from ..constants import PESAPAL_SIGNATURE_HEADER
from ..models import Provider
from ..services import reconciliation_service
from .base import BaseWebhookView


class PesaPalIPNView(BaseWebhookView):
    """Receives instant payment notifications from PesaPal"""

    provider = Provider.PESAPAL

    def get(self, request, *args, **kwargs):
        return JsonResponse({'status': 'ok', 'message': 'PesaPal IPN endpoint is active'})

    def get_signature(self, request, payload):
        return request.META.get(PESAPAL_SIGNATURE_HEADER) or payload.get('signature')

    def process_webhook(self, payload, request):
        return reconciliation_service.handle_pesapal_ipn(payload, self.get_signature(request, payload))
