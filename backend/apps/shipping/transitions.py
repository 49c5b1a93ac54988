# apps/shipping/transitions.py

"""
Shipment status machine.

Statuses advance forward along the delivery sequence; skipping ahead is
allowed, moving back is not. RETURNED and CANCELLED can be reached from any
non-terminal status.
"""

from django.db import models


class ShipmentStatus(models.TextChoices):
    CREATED = 'CREATED', 'Created'
    LABEL_GENERATED = 'LABEL_GENERATED', 'Label Generated'
    PICKED_UP = 'PICKED_UP', 'Picked Up'
    IN_TRANSIT = 'IN_TRANSIT', 'In Transit'
    OUT_FOR_DELIVERY = 'OUT_FOR_DELIVERY', 'Out for Delivery'
    DELIVERED = 'DELIVERED', 'Delivered'
    RETURNED = 'RETURNED', 'Returned to Sender'
    CANCELLED = 'CANCELLED', 'Cancelled'


DELIVERY_SEQUENCE = [
    ShipmentStatus.CREATED,
    ShipmentStatus.LABEL_GENERATED,
    ShipmentStatus.PICKED_UP,
    ShipmentStatus.IN_TRANSIT,
    ShipmentStatus.OUT_FOR_DELIVERY,
    ShipmentStatus.DELIVERED,
]

TERMINAL_STATUSES = frozenset({
    ShipmentStatus.DELIVERED.value,
    ShipmentStatus.RETURNED.value,
    ShipmentStatus.CANCELLED.value,
})


def _build_transitions():
    transitions = {}
    for index, current in enumerate(DELIVERY_SEQUENCE):
        if current.value in TERMINAL_STATUSES:
            transitions[current.value] = frozenset()
            continue
        forward = {status.value for status in DELIVERY_SEQUENCE[index + 1:]}
        forward.update({ShipmentStatus.RETURNED.value, ShipmentStatus.CANCELLED.value})
        transitions[current.value] = frozenset(forward)
    transitions[ShipmentStatus.RETURNED.value] = frozenset()
    transitions[ShipmentStatus.CANCELLED.value] = frozenset()
    return transitions


ALLOWED_TRANSITIONS = _build_transitions()

STATUS_DESCRIPTIONS = {
    ShipmentStatus.CREATED: 'Your shipment is being prepared',
    ShipmentStatus.LABEL_GENERATED: 'A shipping label has been created',
    ShipmentStatus.PICKED_UP: 'Your shipment has been picked up',
    ShipmentStatus.IN_TRANSIT: 'Your shipment is on its way',
    ShipmentStatus.OUT_FOR_DELIVERY: 'Your shipment is out for delivery',
    ShipmentStatus.DELIVERED: 'Your shipment has been delivered',
    ShipmentStatus.RETURNED: 'Your shipment is being returned',
    ShipmentStatus.CANCELLED: 'Your shipment has been cancelled',
}

# Milestone timestamp field set on entering a status
STATUS_TIMESTAMP_FIELDS = {
    ShipmentStatus.PICKED_UP: 'picked_up_at',
    ShipmentStatus.IN_TRANSIT: 'shipped_at',
    ShipmentStatus.OUT_FOR_DELIVERY: 'out_for_delivery_at',
    ShipmentStatus.DELIVERED: 'delivered_at',
}


def is_terminal(status) -> bool:
    return str(status) in TERMINAL_STATUSES


def can_transition(current, new) -> bool:
    return str(new) in ALLOWED_TRANSITIONS.get(str(current), frozenset())
