# apps/shipping/services.py

"""
Shipment record management.

A shipment is created once per order after payment succeeds and then moves
through the status machine in ``transitions``. Every status change appends a
tracking event and keeps the order's fulfilment status in step, inside the
same database transaction.
"""

import uuid
from typing import Dict, Optional

from django.db import IntegrityError, transaction
from django.db.models import Count, Q
from django.utils import timezone

from apps.core.exceptions import InvalidShipmentTransition, ShipmentAlreadyExists
from apps.core.services import BaseService, NotFoundError, ValidationError
from apps.ecommerce.models import Order, OrderStatus
from apps.notifications.models import NotificationType
from apps.notifications.services import notification_service

from .calculator import calculate_shipping, calculate_total_weight, estimated_delivery_date
from .filters import ShipmentFilter
from .models import Shipment, TrackingEvent, generate_tracking_number
from .transitions import (
    STATUS_DESCRIPTIONS, STATUS_TIMESTAMP_FIELDS, ShipmentStatus, can_transition
)
from .zones import ServiceTier, get_country_name

IN_FLIGHT_STATUSES = (
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
)

EDITABLE_FIELDS = ('carrier', 'estimated_delivery', 'notes')


class ShipmentService(BaseService):
    """Service for creating, advancing and reporting on shipments"""

    def create_shipment(self, order: Order, address_info: Optional[Dict] = None,
                        tier=None, carrier: Optional[str] = None) -> Shipment:
        """Create the order's shipment in CREATED state, without a tracking number"""
        if Shipment.objects.filter(order=order).exists():
            raise ShipmentAlreadyExists()

        address = address_info or {}
        country = address.get('country') or order.shipping_country
        if not country:
            raise ValidationError("Shipping country is required to create a shipment")

        tier = ServiceTier(str(tier or order.shipping_tier or ServiceTier.STANDARD).upper())
        weight = calculate_total_weight(order.items.all())
        quote = calculate_shipping(country, weight=weight, subtotal=order.subtotal, tier=tier)

        try:
            with transaction.atomic():
                shipment = Shipment.objects.create(
                    order=order,
                    carrier=carrier or quote.courier,
                    service_tier=tier,
                    recipient_name=address.get('name') or order.shipping_name,
                    recipient_phone=address.get('phone') or order.shipping_phone,
                    recipient_email=address.get('email') or order.shipping_email,
                    destination_address=address.get('address') or order.shipping_address,
                    destination_city=address.get('city') or order.shipping_city,
                    destination_country=quote.country_code,
                    total_weight_kg=quote.weight_kg,
                    shipping_cost=order.shipping_cost or quote.cost_usd,
                    estimated_delivery=estimated_delivery_date(quote.zone, tier, timezone.localdate()),
                )
        except IntegrityError:
            raise ShipmentAlreadyExists()

        self.log_info(f"Shipment created for order {order.order_number}", {
            'shipment_id': str(shipment.id),
            'zone': quote.zone,
            'tier': tier.value,
        })
        return shipment

    def _lookup(self, reference):
        """Filter matching a tracking number, shipment id or order number"""
        reference = str(reference).strip()
        lookup = Q(tracking_number=reference.upper()) | Q(order__order_number=reference)
        try:
            lookup |= Q(pk=uuid.UUID(reference))
        except ValueError:
            pass
        return lookup

    def get_shipment(self, reference) -> Shipment:
        if not reference or not str(reference).strip():
            raise ValidationError("Shipment reference is required")
        shipment = Shipment.objects.select_related('order').filter(self._lookup(reference)).first()
        if shipment is None:
            raise NotFoundError(f"Shipment {reference} not found")
        return shipment

    def _assign_tracking_number(self, shipment: Shipment):
        tracking_number = generate_tracking_number()
        while Shipment.objects.filter(tracking_number=tracking_number).exists():
            tracking_number = generate_tracking_number()
        shipment.tracking_number = tracking_number

    def update_shipment_status(self, reference, new_status, description: Optional[str] = None,
                               location: Optional[str] = None) -> Shipment:
        """
        Move a shipment to ``new_status``.

        Appends exactly one tracking event, stamps the milestone timestamp,
        assigns the tracking number on the first move out of CREATED and
        updates the linked order. Rejected transitions raise
        ``InvalidShipmentTransition`` and change nothing.
        """
        if not reference or not str(reference).strip():
            raise ValidationError("Shipment reference is required")
        new_status = str(new_status or '').strip().upper()
        if new_status not in ShipmentStatus.values:
            raise ValidationError(f"Unknown shipment status: {new_status or 'missing'}")

        with transaction.atomic():
            shipment = (
                Shipment.objects.select_for_update()
                .filter(self._lookup(reference))
                .first()
            )
            if shipment is None:
                raise NotFoundError(f"Shipment {reference} not found")

            if not can_transition(shipment.status, new_status):
                self.log_warning(
                    f"Rejected shipment transition {shipment.status} -> {new_status}",
                    {'shipment_id': str(shipment.id)}
                )
                raise InvalidShipmentTransition(shipment.status, new_status)

            now = timezone.now()
            previous_status = shipment.status
            shipment.status = new_status
            timestamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
            if timestamp_field:
                setattr(shipment, timestamp_field, now)
            if not shipment.tracking_number:
                self._assign_tracking_number(shipment)
            shipment.save()

            TrackingEvent.objects.create(
                shipment=shipment,
                status=new_status,
                description=description or STATUS_DESCRIPTIONS[new_status],
                location=location or '',
                occurred_at=now,
            )

            self._sync_order(shipment, new_status)

        self.log_info(f"Shipment {shipment.tracking_number} {previous_status} -> {new_status}", {
            'shipment_id': str(shipment.id),
            'order_id': shipment.order_id,
        })
        return shipment

    def _sync_order(self, shipment: Shipment, new_status: str):
        order = Order.objects.select_for_update().get(pk=shipment.order_id)

        if new_status in IN_FLIGHT_STATUSES:
            if order.status not in (OrderStatus.SHIPPED, OrderStatus.DELIVERED):
                order.status = OrderStatus.SHIPPED
                order.save(update_fields=['status', 'updated_at'])
            notification_service.notify(
                NotificationType.ORDER_SHIPPED,
                title=f"Order {order.order_number} shipped",
                message=(
                    f"Your order is on its way with {shipment.carrier or 'our courier'}. "
                    f"Tracking number: {shipment.tracking_number}"
                ),
                order=order,
                metadata={'tracking_number': shipment.tracking_number},
                dedupe_key=f"shipment:{shipment.id}:shipped",
            )
        elif new_status == ShipmentStatus.DELIVERED:
            order.status = OrderStatus.DELIVERED
            order.save(update_fields=['status', 'updated_at'])
            notification_service.notify(
                NotificationType.ORDER_DELIVERED,
                title=f"Order {order.order_number} delivered",
                message="Your order has been delivered. Thank you for supporting African artisans.",
                order=order,
                metadata={'tracking_number': shipment.tracking_number},
                dedupe_key=f"shipment:{shipment.id}:delivered",
            )

    def get_tracking_info(self, tracking_number) -> Optional[Dict]:
        """
        Public tracking view of a shipment, or None when the number is unknown.

        Carries destination city and country only; no recipient details or
        prices.
        """
        if not tracking_number or not str(tracking_number).strip():
            raise ValidationError("Tracking number is required")

        shipment = Shipment.objects.filter(
            tracking_number=str(tracking_number).strip().upper()
        ).first()
        if shipment is None:
            return None

        events = list(shipment.events.all())
        timeline = [
            {
                'status': event.status,
                'description': event.description,
                'location': event.location or None,
                'timestamp': event.occurred_at.isoformat(),
                'is_current': index == len(events) - 1,
            }
            for index, event in enumerate(events)
        ]

        return {
            'tracking_number': shipment.tracking_number,
            'carrier': shipment.carrier,
            'service_tier': shipment.service_tier,
            'status': shipment.status,
            'status_label': ShipmentStatus(shipment.status).label,
            'status_description': shipment.status_description,
            'destination': {
                'city': shipment.destination_city or None,
                'country': shipment.destination_country,
                'country_name': get_country_name(shipment.destination_country),
            },
            'estimated_delivery': shipment.estimated_delivery.isoformat() if shipment.estimated_delivery else None,
            'delivered_at': shipment.delivered_at.isoformat() if shipment.delivered_at else None,
            'is_delayed': shipment.is_delayed,
            'events': timeline,
            'last_updated': (events[-1].occurred_at if events else shipment.updated_at).isoformat(),
        }

    def list_shipments(self, params=None):
        """Admin shipment list filtered by status, date range and search"""
        queryset = Shipment.objects.select_related('order').order_by('-created_at')
        return ShipmentFilter(params or {}, queryset=queryset).qs

    def update_shipment_details(self, reference, data: Dict) -> Shipment:
        """Update carrier, estimated delivery or notes without touching status"""
        shipment = self.get_shipment(reference)
        unknown = set(data) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        for field, value in data.items():
            if value is None and field != 'estimated_delivery':
                value = ''
            setattr(shipment, field, value)
        shipment.save()

        self.log_info(f"Shipment {shipment.id} details updated", {'fields': sorted(data)})
        return shipment

    def shipment_stats(self) -> Dict:
        counts = {
            row['status']: row['count']
            for row in Shipment.objects.order_by().values('status').annotate(count=Count('id'))
        }
        by_status = {status: counts.get(status, 0) for status in ShipmentStatus.values}
        delayed = Shipment.objects.filter(
            estimated_delivery__lt=timezone.localdate()
        ).exclude(
            status__in=[ShipmentStatus.DELIVERED, ShipmentStatus.RETURNED, ShipmentStatus.CANCELLED]
        ).count()
        return {
            'total': sum(by_status.values()),
            'by_status': by_status,
            'in_transit': sum(by_status[status] for status in IN_FLIGHT_STATUSES),
            'delayed': delayed,
        }


shipment_service = ShipmentService()
