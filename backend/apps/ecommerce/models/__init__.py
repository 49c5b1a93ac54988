# apps/ecommerce/models/__init__.py

from .orders import (
    OPEN_PAYMENT_STATUSES, Order, OrderItem, OrderStatus, PaymentMethod,
    PaymentStatus, generate_order_number
)

__all__ = [
    'OPEN_PAYMENT_STATUSES', 'Order', 'OrderItem', 'OrderStatus', 'PaymentMethod',
    'PaymentStatus', 'generate_order_number',
]
