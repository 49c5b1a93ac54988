# apps/payments/serializers.py

from rest_framework import serializers

from apps.ecommerce.serializers import CheckoutSerializer


class MpesaPaymentSerializer(CheckoutSerializer):
    phone_number = serializers.CharField(max_length=20)
    order_number = serializers.CharField(required=False)

    def to_internal_value(self, data):
        if hasattr(data, 'get') and data.get('phoneNumber') and not data.get('phone_number'):
            data = data.copy()
            data['phone_number'] = data['phoneNumber']
        return super().to_internal_value(data)


class PesaPalPaymentSerializer(CheckoutSerializer):
    order_number = serializers.CharField(required=False)
