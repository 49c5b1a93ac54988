import json
import logging

from django.http import JsonResponse
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from apps.core.services import ServiceError

from ..services import Outcome, SignatureError

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name='dispatch')
class BaseWebhookView(View):
    """
    Base webhook view for payment providers.

    Providers retry on anything but 2xx, so unmatched and duplicate callbacks
    are acknowledged with 200. Malformed or unsigned callbacks get 400 and
    unexpected failures 500, without internals.
    """

    provider = None

    def post(self, request, *args, **kwargs):
        """Handle webhook POST request"""
        payload = self.parse_payload(request)
        if payload is None:
            return self.reject('Invalid payload')

        try:
            outcome = self.process_webhook(payload, request)
        except SignatureError as e:
            logger.warning(f"Invalid webhook signature from {self.provider}: {e.message}")
            return self.reject('Invalid signature')
        except ServiceError as e:
            logger.warning(f"Rejected {self.provider} webhook: {e.message}")
            return self.reject(e.message)
        except Exception as e:
            logger.error(f"Webhook processing error from {self.provider}: {e}", exc_info=True)
            return JsonResponse({'success': False, 'error': 'Internal server error'}, status=500)

        logger.info(f"{self.provider} webhook processed: {outcome}")
        return self.acknowledge(outcome)

    def parse_payload(self, request):
        """Parse webhook payload; JSON first, then form fields"""
        if request.body:
            try:
                payload = json.loads(request.body.decode('utf-8'))
            except (json.JSONDecodeError, UnicodeDecodeError):
                payload = None
            if isinstance(payload, dict):
                return payload
        if request.POST:
            return request.POST.dict()
        logger.error(f"Invalid JSON in {self.provider} webhook payload")
        return None

    def process_webhook(self, payload, request):
        """Process webhook event - to be implemented by subclasses"""
        raise NotImplementedError("Subclasses must implement process_webhook")

    def acknowledge(self, outcome):
        return JsonResponse({'success': True, 'outcome': outcome or Outcome.IGNORED})

    def reject(self, message):
        return JsonResponse({'success': False, 'error': message}, status=400)
