# apps/payments/views.py

import logging

from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import ResourceNotFound, ValidationFailed
from apps.core.permissions import get_admin_check
from apps.core.services import ServiceError
from apps.ecommerce.cart import CartAction, CartStore
from apps.ecommerce.models import Order, PaymentMethod
from apps.ecommerce.services import order_service

from .serializers import MpesaPaymentSerializer, PesaPalPaymentSerializer
from .services import payment_initiation_service

logger = logging.getLogger(__name__)


class PaymentInitiationMixin:
    """Resolve the order to pay: an existing unpaid order, or a new one from the cart"""

    payment_method = None

    def get_order(self, request, data):
        order_number = data.get('order_number')
        if order_number:
            order = Order.objects.filter(order_number=order_number, user=request.user).first()
            if order is None:
                raise ResourceNotFound('Order not found')
            return order, False

        store = CartStore.for_request(request)
        items = data.get('items') or list(store.state.items)
        if not items:
            raise ValidationFailed('Cart is empty')

        shipping_info = dict(data.get('shipping_info') or {})
        if self.payment_method == PaymentMethod.MPESA and not shipping_info.get('phone'):
            shipping_info['phone'] = data.get('phone_number', '')

        order = order_service.create_order(
            request.user, items, shipping_info, self.payment_method,
            tier=data.get('tier'), notes=data.get('notes'),
        )
        return order, not data.get('items')

    def clear_cart(self, request):
        CartStore.for_request(request).dispatch(CartAction.CLEAR)


class MpesaPaymentView(PaymentInitiationMixin, APIView):
    """Create an order and send an M-Pesa STK push"""
    permission_classes = [IsAuthenticated]
    payment_method = PaymentMethod.MPESA

    def post(self, request):
        serializer = MpesaPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order, from_cart = self.get_order(request, data)
            result = payment_initiation_service.start_mpesa(order, data['phone_number'])
        except ServiceError as e:
            raise e.to_api_exception()

        if from_cart:
            self.clear_cart(request)
        return Response({'success': True, 'data': result}, status=status.HTTP_201_CREATED)


class PesaPalPaymentView(PaymentInitiationMixin, APIView):
    """Create an order and open a PesaPal payment page"""
    permission_classes = [IsAuthenticated]
    payment_method = PaymentMethod.PESAPAL

    def post(self, request):
        serializer = PesaPalPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            order, from_cart = self.get_order(request, data)
            result = payment_initiation_service.start_pesapal(order)
        except ServiceError as e:
            raise e.to_api_exception()

        if from_cart:
            self.clear_cart(request)
        return Response({'success': True, 'data': result}, status=status.HTTP_201_CREATED)


class PaymentStatusView(APIView):
    """Current payment status of one of the user's orders"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        order_number = request.query_params.get('order')
        if not order_number:
            raise ValidationFailed('Order number is required')

        order = Order.objects.filter(order_number=order_number).first()
        if order is None or (order.user_id != request.user.id and not get_admin_check()(request.user)):
            raise ResourceNotFound('Order not found')

        return Response({'success': True, 'data': payment_initiation_service.payment_status(order)})
