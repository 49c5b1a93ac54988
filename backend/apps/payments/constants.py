# apps/payments/constants.py

from apps.ecommerce.models import OrderStatus, PaymentStatus

# PesaPal status -> (payment status, order status)
PESAPAL_STATUS_MAP = {
    'COMPLETED': (PaymentStatus.COMPLETED, OrderStatus.CONFIRMED),
    'PAID': (PaymentStatus.COMPLETED, OrderStatus.CONFIRMED),
    'PENDING': (PaymentStatus.PENDING, OrderStatus.PENDING),
    'FAILED': (PaymentStatus.FAILED, OrderStatus.CANCELLED),
    'INVALID': (PaymentStatus.FAILED, OrderStatus.CANCELLED),
    'CANCELLED': (PaymentStatus.FAILED, OrderStatus.CANCELLED),
}

MPESA_SUCCESS_CODE = 0

MPESA_BASE_URLS = {
    'sandbox': 'https://sandbox.safaricom.co.ke',
    'live': 'https://api.safaricom.co.ke',
}

PESAPAL_ORDER_URLS = {
    'sandbox': 'https://demo.pesapal.com/API/PostPesapalDirectOrderV4',
    'live': 'https://www.pesapal.com/API/PostPesapalDirectOrderV4',
}

PESAPAL_SIGNATURE_HEADER = 'HTTP_X_PESAPAL_SIGNATURE'
