# apps/payments/clients/mpesa.py

"""
Safaricom Daraja client for STK push and STK status queries
"""

import base64
import logging
import re

import requests
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from ..constants import MPESA_BASE_URLS

logger = logging.getLogger(__name__)

TOKEN_CACHE_KEY = 'payments:mpesa:access_token'


class MpesaError(Exception):
    """Raised when Daraja rejects a request or cannot be reached"""


def normalize_phone(phone_number) -> str:
    """Normalise a Kenyan mobile number to 2547XXXXXXXX / 2541XXXXXXXX"""
    digits = re.sub(r'\D', '', str(phone_number or ''))
    if digits.startswith('254'):
        normalized = digits
    elif digits.startswith('0'):
        normalized = '254' + digits[1:]
    else:
        normalized = '254' + digits
    if not re.fullmatch(r'254[17]\d{8}', normalized):
        raise ValueError(f"Invalid M-Pesa phone number: {phone_number}")
    return normalized


class MpesaClient:
    timeout = 30

    def __init__(self):
        self.environment = getattr(settings, 'MPESA_ENVIRONMENT', 'sandbox')
        self.base_url = MPESA_BASE_URLS.get(self.environment, MPESA_BASE_URLS['sandbox'])
        self.shortcode = getattr(settings, 'MPESA_SHORTCODE', '')
        self.consumer_key = getattr(settings, 'MPESA_CONSUMER_KEY', '')
        self.consumer_secret = getattr(settings, 'MPESA_CONSUMER_SECRET', '')
        self.passkey = getattr(settings, 'MPESA_PASSKEY', '')

    @property
    def is_configured(self) -> bool:
        return all([self.shortcode, self.consumer_key, self.consumer_secret, self.passkey])

    def get_access_token(self) -> str:
        token = cache.get(TOKEN_CACHE_KEY)
        if token:
            return token

        try:
            response = requests.get(
                f"{self.base_url}/oauth/v1/generate",
                params={'grant_type': 'client_credentials'},
                auth=(self.consumer_key, self.consumer_secret),
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise MpesaError(f"Could not reach M-Pesa: {e}") from e

        if response.status_code != 200:
            logger.error(f"M-Pesa token request failed: {response.status_code} {response.text}")
            raise MpesaError('Failed to get M-Pesa access token')

        data = response.json()
        token = data['access_token']
        expires_in = int(data.get('expires_in', 3599))
        cache.set(TOKEN_CACHE_KEY, token, max(expires_in - 60, 60))
        return token

    def timestamp(self) -> str:
        return timezone.localtime().strftime('%Y%m%d%H%M%S')

    def password(self, timestamp: str) -> str:
        raw = f"{self.shortcode}{self.passkey}{timestamp}"
        return base64.b64encode(raw.encode('utf-8')).decode('ascii')

    def _post(self, path: str, payload: dict) -> dict:
        token = self.get_access_token()
        try:
            response = requests.post(
                f"{self.base_url}{path}",
                json=payload,
                headers={'Authorization': f"Bearer {token}"},
                timeout=self.timeout
            )
        except requests.RequestException as e:
            raise MpesaError(f"Could not reach M-Pesa: {e}") from e

        try:
            data = response.json()
        except ValueError:
            raise MpesaError(f"Unexpected M-Pesa response: {response.status_code}")

        if response.status_code != 200 or str(data.get('ResponseCode')) != '0':
            logger.error(f"M-Pesa request to {path} failed: {data}")
            raise MpesaError(data.get('ResponseDescription') or data.get('errorMessage') or 'M-Pesa request failed')
        return data

    def stk_push(self, phone_number: str, amount: int, account_reference: str,
                 description: str, callback_url: str) -> dict:
        """Send an STK push; returns Daraja's MerchantRequestID and CheckoutRequestID"""
        timestamp = self.timestamp()
        return self._post('/mpesa/stkpush/v1/processrequest', {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'TransactionType': 'CustomerPayBillOnline',
            'Amount': int(amount),
            'PartyA': phone_number,
            'PartyB': self.shortcode,
            'PhoneNumber': phone_number,
            'CallBackURL': callback_url,
            'AccountReference': account_reference,
            'TransactionDesc': description,
        })

    def stk_query(self, checkout_request_id: str) -> dict:
        timestamp = self.timestamp()
        return self._post('/mpesa/stkquery/v1/query', {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'CheckoutRequestID': checkout_request_id,
        })
