# apps/ecommerce/serializers.py

from rest_framework import serializers

from apps.shipping.zones import ServiceTier

from .cart import CartAction
from .models import Order, OrderItem


class CartItemInputSerializer(serializers.Serializer):
    art_listing_id = serializers.CharField(max_length=64)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True, default='')
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    quantity = serializers.IntegerField(min_value=1, default=1)
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, required=False, allow_null=True)
    image = serializers.CharField(required=False, allow_blank=True, default='')


class CartUpdateSerializer(serializers.Serializer):
    """Cart mutation: an action type plus its payload"""
    action = serializers.ChoiceField(choices=[
        CartAction.ADD_ITEM, CartAction.REMOVE_ITEM, CartAction.UPDATE_QUANTITY, CartAction.CLEAR,
    ], default=CartAction.ADD_ITEM)
    art_listing_id = serializers.CharField(max_length=64, required=False)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0, required=False)
    quantity = serializers.IntegerField(required=False)
    weight = serializers.DecimalField(max_digits=8, decimal_places=3, required=False, allow_null=True)
    image = serializers.CharField(required=False, allow_blank=True)

    def validate(self, attrs):
        action = attrs['action']
        if action != CartAction.CLEAR and not attrs.get('art_listing_id'):
            raise serializers.ValidationError({'art_listing_id': 'This field is required.'})
        if action == CartAction.ADD_ITEM and attrs.get('price') is None:
            raise serializers.ValidationError({'price': 'This field is required.'})
        if action == CartAction.UPDATE_QUANTITY and attrs.get('quantity') is None:
            raise serializers.ValidationError({'quantity': 'This field is required.'})
        return attrs


class WishlistUpdateSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=[
        CartAction.WISHLIST_ADD, CartAction.WISHLIST_REMOVE, CartAction.WISHLIST_TOGGLE,
    ], default=CartAction.WISHLIST_TOGGLE)
    art_listing_id = serializers.CharField(max_length=64)
    title = serializers.CharField(max_length=255, required=False, allow_blank=True)
    price = serializers.DecimalField(max_digits=12, decimal_places=2, required=False, allow_null=True)
    image = serializers.CharField(required=False, allow_blank=True)


class ShippingInfoSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=200, required=False, allow_blank=True, default='')
    email = serializers.EmailField(required=False, allow_blank=True, default='')
    phone = serializers.CharField(max_length=30, required=False, allow_blank=True, default='')
    address = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    city = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    country = serializers.CharField(max_length=2, min_length=2)


class CheckoutSerializer(serializers.Serializer):
    """Shared checkout body for the payment initiation endpoints"""
    shipping_info = ShippingInfoSerializer(required=False)
    items = CartItemInputSerializer(many=True, required=False)
    tier = serializers.ChoiceField(choices=ServiceTier.values, default=ServiceTier.STANDARD)
    notes = serializers.CharField(required=False, allow_blank=True)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and data.get('shippingInfo') and not data.get('shipping_info'):
            data = data.copy()
            data['shipping_info'] = data['shippingInfo']
        if hasattr(data, 'get') and data.get('tier'):
            data = data.copy()
            data['tier'] = str(data['tier']).upper()
        return super().to_internal_value(data)


class OrderItemSerializer(serializers.ModelSerializer):
    line_total = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = ['art_listing_id', 'title', 'unit_price', 'quantity', 'weight_kg', 'line_total']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    tracking_number = serializers.SerializerMethodField()
    shipment_status = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'order_number', 'status', 'payment_status', 'payment_method', 'currency',
            'subtotal', 'shipping_cost', 'tax', 'total',
            'shipping_name', 'shipping_email', 'shipping_phone', 'shipping_address',
            'shipping_city', 'shipping_country', 'shipping_tier',
            'tracking_number', 'shipment_status', 'items', 'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def _shipment(self, obj):
        return getattr(obj, 'shipment', None)

    def get_tracking_number(self, obj):
        shipment = self._shipment(obj)
        return shipment.tracking_number if shipment else None

    def get_shipment_status(self, obj):
        shipment = self._shipment(obj)
        return shipment.status if shipment else None
