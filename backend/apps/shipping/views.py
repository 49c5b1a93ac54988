# apps/shipping/views.py

import logging

from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.exceptions import ResourceNotFound, ValidationFailed
from apps.core.pagination import StandardResultsSetPagination
from apps.core.permissions import IsMarketplaceAdmin
from apps.core.services import ServiceError
from apps.ecommerce.models import Order

from .calculator import calculate_shipping, calculate_total_weight, shipping_options
from .serializers import (
    ShipmentCreateSerializer, ShipmentSerializer, ShipmentStatusUpdateSerializer,
    ShipmentUpdateSerializer, ShippingQuoteRequestSerializer
)
from .services import shipment_service
from .zones import ServiceTier, shipping_setting

logger = logging.getLogger(__name__)


class ShippingQuoteView(APIView):
    """Public shipping cost calculator"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request):
        serializer = ShippingQuoteRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        if data.get('items'):
            weight = calculate_total_weight(data['items'])
        else:
            weight = data.get('weight')
        subtotal = data.get('subtotal')
        tier = data.get('tier') or ServiceTier.STANDARD

        main = calculate_shipping(data['countryCode'], weight=weight, subtotal=subtotal, tier=tier)
        options = shipping_options(data['countryCode'], weight=weight, subtotal=subtotal)

        return Response({
            'success': True,
            'data': {
                'weight': float(main.weight_kg),
                'mainShipping': main.to_dict(),
                'options': [option.to_dict() for option in options],
                'currency': {
                    'base': main.currency,
                    'display': main.display_currency,
                    'rate': float(shipping_setting('USD_TO_KES')),
                },
            },
        })

    def get(self, request):
        country = request.query_params.get('country', '').strip()
        if not country:
            raise ValidationFailed('Country code is required')
        try:
            quote = calculate_shipping(
                country,
                weight=request.query_params.get('weight'),
                subtotal=request.query_params.get('subtotal'),
                tier=request.query_params.get('tier') or ServiceTier.STANDARD,
            )
        except ValueError as e:
            raise ValidationFailed(str(e))
        return Response({'success': True, 'data': quote.to_dict()})


class TrackingView(APIView):
    """Public shipment tracking by tracking number"""
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        return self._track(request.query_params.get('tracking'))

    def post(self, request):
        tracking_number = request.data.get('trackingNumber') or request.data.get('tracking')
        return self._track(tracking_number)

    def _track(self, tracking_number):
        if not tracking_number or not str(tracking_number).strip():
            raise ValidationFailed('Tracking number required')
        info = shipment_service.get_tracking_info(tracking_number)
        if info is None:
            raise ResourceNotFound('Shipment not found')
        return Response({'success': True, 'data': info})


class ShipmentViewSet(mixins.ListModelMixin,
                      mixins.RetrieveModelMixin,
                      viewsets.GenericViewSet):
    """Admin shipment management; shipments are never deleted"""
    serializer_class = ShipmentSerializer
    permission_classes = [IsMarketplaceAdmin]
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return shipment_service.list_shipments(self.request.query_params).prefetch_related('events')

    def get_object(self):
        try:
            return shipment_service.get_shipment(self.kwargs['pk'])
        except ServiceError as e:
            raise e.to_api_exception()

    def create(self, request):
        serializer = ShipmentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        tier = data.pop('tier', None)
        carrier = data.pop('carrier', None)

        order = Order.objects.filter(order_number=data.pop('order_number')).first()
        if order is None:
            raise ResourceNotFound('Order not found')

        try:
            shipment = shipment_service.create_shipment(
                order,
                address_info=data,
                tier=tier,
                carrier=carrier,
            )
        except ServiceError as e:
            raise e.to_api_exception()
        except ValueError as e:
            raise ValidationFailed(str(e))

        return Response(ShipmentSerializer(shipment).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, pk=None):
        serializer = ShipmentUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        try:
            shipment = shipment_service.update_shipment_details(pk, serializer.validated_data)
        except ServiceError as e:
            raise e.to_api_exception()
        return Response(ShipmentSerializer(shipment).data)

    @action(detail=True, methods=['post'], url_path='status')
    def update_status(self, request, pk=None):
        serializer = ShipmentStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        try:
            shipment = shipment_service.update_shipment_status(
                pk, data['status'],
                description=data.get('description'),
                location=data.get('location'),
            )
        except ServiceError as e:
            raise e.to_api_exception()

        logger.info(f"Shipment {shipment.tracking_number} set to {shipment.status} by {request.user}")
        return Response(ShipmentSerializer(shipment).data)

    @action(detail=False, methods=['get'])
    def stats(self, request):
        return Response(shipment_service.shipment_stats())
