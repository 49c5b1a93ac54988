"""
E-Commerce Order Service
Handles checkout: turning cart contents into an order with captured prices
"""
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, Optional

from django.conf import settings
from django.db import transaction

from apps.core.services import BaseService, NotFoundError, ValidationError
from apps.notifications.models import NotificationType
from apps.notifications.services import notification_service
from apps.shipping.calculator import calculate_shipping, calculate_total_weight
from apps.shipping.zones import ServiceTier

from ..cart import CartItem
from ..models import Order, OrderItem, PaymentMethod

CENTS = Decimal('0.01')


class OrderService(BaseService):
    """Service for creating and reading orders"""

    def get_tax_rate(self) -> Decimal:
        return Decimal(str(getattr(settings, 'ORDER_TAX_RATE', '0.08')))

    def create_order(self, user, cart_items: Iterable, shipping_info: Dict,
                     payment_method: str, tier=ServiceTier.STANDARD, notes: Optional[str] = None) -> Order:
        """
        Create an order from cart items.

        Unit prices and weights are captured on the order items; shipping is
        quoted for the destination and tier, and tax applies to the subtotal.
        """
        items = [item if isinstance(item, CartItem) else CartItem.from_dict(item) for item in cart_items]
        if not items:
            raise ValidationError("Cart is empty")

        shipping_info = shipping_info or {}
        self.validate_required_fields(shipping_info, ['country'])
        if payment_method not in PaymentMethod.values:
            raise ValidationError(f"Unsupported payment method: {payment_method}")
        tier = ServiceTier(str(tier or ServiceTier.STANDARD).upper())

        subtotal = sum((item.line_total for item in items), Decimal('0')).quantize(CENTS, rounding=ROUND_HALF_UP)
        try:
            quote = calculate_shipping(
                shipping_info['country'],
                weight=calculate_total_weight(items),
                subtotal=subtotal,
                tier=tier,
            )
        except ValueError as e:
            raise ValidationError(str(e), original_error=e)

        tax = (subtotal * self.get_tax_rate()).quantize(CENTS, rounding=ROUND_HALF_UP)
        total = subtotal + quote.cost_usd + tax

        try:
            with transaction.atomic():
                order = Order.objects.create(
                    user=user if user is not None and user.is_authenticated else None,
                    payment_method=payment_method,
                    subtotal=subtotal,
                    shipping_cost=quote.cost_usd,
                    tax=tax,
                    total=total,
                    shipping_name=shipping_info.get('name', ''),
                    shipping_email=shipping_info.get('email', ''),
                    shipping_phone=shipping_info.get('phone', ''),
                    shipping_address=shipping_info.get('address', ''),
                    shipping_city=shipping_info.get('city', ''),
                    shipping_country=quote.country_code,
                    shipping_tier=tier,
                    notes=notes or '',
                )
                OrderItem.objects.bulk_create([
                    OrderItem(
                        order=order,
                        art_listing_id=item.art_listing_id,
                        title=item.title,
                        unit_price=item.price,
                        quantity=item.quantity,
                        weight_kg=item.weight,
                    )
                    for item in items
                ])

                notification_service.notify(
                    NotificationType.ORDER_PLACED,
                    title=f"Order {order.order_number} placed",
                    message=f"We received your order for {len(items)} item(s). Total: {order.currency} {total}.",
                    order=order,
                    metadata={'total': str(total)},
                    dedupe_key=f"order:{order.order_number}:placed",
                )
        except Exception as e:
            self.log_error("Order creation failed", e, {'user_id': getattr(user, 'pk', None)})
            raise

        self.log_info(f"Order {order.order_number} created", {
            'order_id': order.pk,
            'total': str(total),
            'zone': quote.zone,
        })
        return order

    def get_order(self, order_number: str) -> Order:
        order = (
            Order.objects.filter(order_number=order_number)
            .select_related('shipment')
            .prefetch_related('items')
            .first()
        )
        if order is None:
            raise NotFoundError(f"Order {order_number} not found")
        return order

    def list_user_orders(self, user):
        return (
            Order.objects.filter(user=user)
            .select_related('shipment')
            .prefetch_related('items')
            .order_by('-created_at')
        )


order_service = OrderService()
