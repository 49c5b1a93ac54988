# apps/shipping/serializers.py

from rest_framework import serializers

from .models import Shipment, TrackingEvent
from .transitions import ShipmentStatus
from .zones import ServiceTier


class ShippingItemSerializer(serializers.Serializer):
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, required=False, allow_null=True)
    quantity = serializers.IntegerField(min_value=1, default=1)


class ShippingQuoteRequestSerializer(serializers.Serializer):
    """Body of a shipping quote request; accepts camelCase keys from the storefront"""
    countryCode = serializers.CharField(max_length=2, min_length=2)
    items = ShippingItemSerializer(many=True, required=False)
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, required=False, allow_null=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    tier = serializers.ChoiceField(choices=ServiceTier.values, required=False)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and data.get('tier'):
            data = data.copy()
            data['tier'] = str(data['tier']).upper()
        return super().to_internal_value(data)


class TrackingEventSerializer(serializers.ModelSerializer):
    class Meta:
        model = TrackingEvent
        fields = ['id', 'status', 'description', 'location', 'occurred_at']
        read_only_fields = fields


class ShipmentSerializer(serializers.ModelSerializer):
    """Admin view of a shipment, including recipient details"""
    order_number = serializers.CharField(source='order.order_number', read_only=True)
    status_description = serializers.CharField(read_only=True)
    is_delayed = serializers.BooleanField(read_only=True)
    events = TrackingEventSerializer(many=True, read_only=True)

    class Meta:
        model = Shipment
        fields = [
            'id', 'order_number', 'tracking_number', 'carrier', 'service_tier', 'status',
            'status_description', 'recipient_name', 'recipient_phone', 'recipient_email',
            'destination_address', 'destination_city', 'destination_country',
            'total_weight_kg', 'shipping_cost', 'estimated_delivery',
            'picked_up_at', 'shipped_at', 'out_for_delivery_at', 'delivered_at',
            'is_delayed', 'notes', 'events', 'created_at', 'updated_at',
        ]
        read_only_fields = fields


class ShipmentCreateSerializer(serializers.Serializer):
    order_number = serializers.CharField()
    tier = serializers.ChoiceField(choices=ServiceTier.values, required=False)
    carrier = serializers.CharField(required=False, allow_blank=True)
    name = serializers.CharField(required=False, allow_blank=True)
    phone = serializers.CharField(required=False, allow_blank=True)
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True)
    country = serializers.CharField(required=False, max_length=2)


class ShipmentUpdateSerializer(serializers.Serializer):
    carrier = serializers.CharField(required=False, allow_blank=True, max_length=100)
    estimated_delivery = serializers.DateField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True)


class ShipmentStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=ShipmentStatus.values)
    description = serializers.CharField(required=False, allow_blank=True, max_length=500)
    location = serializers.CharField(required=False, allow_blank=True, max_length=200)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and data.get('status'):
            data = data.copy()
            data['status'] = str(data['status']).upper()
        return super().to_internal_value(data)
