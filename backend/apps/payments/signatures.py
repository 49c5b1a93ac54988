# apps/payments/signatures.py

import base64
import hashlib
import hmac


def pesapal_signature(secret: str, tracking_id: str, merchant_reference: str) -> str:
    """base64(HMAC-SHA256(secret, tracking_id + merchant_reference))"""
    digest = hmac.new(
        secret.encode('utf-8'),
        f"{tracking_id}{merchant_reference}".encode('utf-8'),
        hashlib.sha256
    ).digest()
    return base64.b64encode(digest).decode('ascii')


def verify_pesapal_signature(secret: str, tracking_id: str, merchant_reference: str, signature) -> bool:
    """Constant-time check of an IPN signature; a missing secret or signature fails"""
    if not secret or not signature:
        return False
    expected = pesapal_signature(secret, tracking_id, merchant_reference)
    return hmac.compare_digest(str(signature).encode('utf-8'), expected.encode('utf-8'))
