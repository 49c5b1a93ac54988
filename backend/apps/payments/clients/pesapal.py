# apps/payments/clients/pesapal.py

"""
PesaPal direct-order client
"""

import logging
import time
import xml.etree.ElementTree as ET
from decimal import Decimal
from xml.sax.saxutils import quoteattr

import requests
from django.conf import settings

from ..constants import PESAPAL_ORDER_URLS

logger = logging.getLogger(__name__)


class PesaPalError(Exception):
    """Raised when PesaPal rejects an order or cannot be reached"""


def generate_merchant_reference(order_number: str) -> str:
    return f"PESA-{order_number}-{int(time.time() * 1000)}"


class PesaPalClient:
    timeout = 30

    def __init__(self):
        self.environment = getattr(settings, 'PESAPAL_ENVIRONMENT', 'sandbox')
        self.order_url = PESAPAL_ORDER_URLS.get(self.environment, PESAPAL_ORDER_URLS['sandbox'])
        self.consumer_key = getattr(settings, 'PESAPAL_CONSUMER_KEY', '')
        self.consumer_secret = getattr(settings, 'PESAPAL_CONSUMER_SECRET', '')

    @property
    def is_configured(self) -> bool:
        return bool(self.consumer_key and self.consumer_secret)

    def build_order_xml(self, order, reference: str, amount: Decimal, callback_url: str,
                        notification_url: str) -> str:
        first_name, _, last_name = (order.shipping_name or '').partition(' ')
        attributes = {
            'Currency': order.currency,
            'Amount': f"{amount:.2f}",
            'Description': f"ArtAfrik Order {order.order_number}",
            'Type': 'MERCHANT',
            'Reference': reference,
            'FirstName': first_name,
            'LastName': last_name,
            'Email': order.shipping_email,
            'PhoneNumber': order.shipping_phone,
            'CountryCode': order.shipping_country,
            'CallbackUrl': callback_url,
            'NotificationUrl': notification_url,
        }
        rendered = ' '.join(f"{name}={quoteattr(str(value or ''))}" for name, value in attributes.items())
        return (
            '<?xml version="1.0" encoding="utf-8"?>'
            '<PesapalDirectOrderInfo xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
            f'xmlns:xsd="http://www.w3.org/2001/XMLSchema" {rendered} />'
        )

    def parse_response(self, body: str) -> dict:
        try:
            root = ET.fromstring(body)
        except ET.ParseError as e:
            raise PesaPalError(f"Unreadable PesaPal response: {e}") from e

        def text(tag):
            node = root.find(f".//{tag}")
            return node.text.strip() if node is not None and node.text else ''

        return {
            'merchant_reference': text('Reference'),
            'tracking_id': text('TrackingId'),
            'redirect_url': text('Url'),
            'error': text('Error'),
        }

    def submit_order(self, order, reference: str, amount: Decimal, callback_url: str,
                     notification_url: str) -> dict:
        """Post a direct order; returns the tracking id and the payment page URL"""
        xml = self.build_order_xml(order, reference, amount, callback_url, notification_url)
        try:
            response = requests.post(
                self.order_url,
                data=xml.encode('utf-8'),
                auth=(self.consumer_key, self.consumer_secret),
                headers={'Content-Type': 'application/xml', 'Accept': 'application/xml'},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise PesaPalError(f"Could not reach PesaPal: {e}") from e

        result = self.parse_response(response.text)
        if response.status_code != 200 or result['error'] or result['merchant_reference'] != reference:
            logger.error(f"PesaPal order {reference} rejected: {result['error'] or response.status_code}")
            raise PesaPalError(result['error'] or 'PesaPal rejected the order')
        return result
