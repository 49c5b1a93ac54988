# apps/ecommerce/views.py

from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from apps.core.pagination import StandardResultsSetPagination
from apps.core.permissions import IsOwnerOrMarketplaceAdmin
from apps.core.services import ServiceError

from .cart import CartAction, CartStore
from .serializers import CartUpdateSerializer, OrderSerializer, WishlistUpdateSerializer
from .services import order_service


# =============================================================================
# CART & WISHLIST
# =============================================================================

class CartView(APIView):
    """Cart for the current user, or the session for anonymous shoppers"""
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({'success': True, 'data': CartStore.for_request(request).snapshot()})

    def post(self, request):
        serializer = CartUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = dict(serializer.validated_data)
        action = payload.pop('action')

        store = CartStore.for_request(request)
        store.dispatch(action, payload)
        return Response({'success': True, 'data': store.snapshot()})

    def delete(self, request):
        store = CartStore.for_request(request)
        art_listing_id = request.query_params.get('item')
        if art_listing_id:
            store.dispatch(CartAction.REMOVE_ITEM, {'art_listing_id': art_listing_id})
        else:
            store.dispatch(CartAction.CLEAR)
        return Response({'success': True, 'data': store.snapshot()})


class WishlistView(APIView):
    """Wishlist, stored alongside the cart"""
    permission_classes = [AllowAny]

    def get(self, request):
        state = CartStore.for_request(request).state
        return Response({'success': True, 'data': [entry.to_dict() for entry in state.wishlist]})

    def post(self, request):
        serializer = WishlistUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payload = dict(serializer.validated_data)
        action = payload.pop('action')

        store = CartStore.for_request(request)
        state = store.dispatch(action, payload)
        return Response({
            'success': True,
            'data': [entry.to_dict() for entry in state.wishlist],
            'in_wishlist': state.in_wishlist(payload['art_listing_id']),
        })

    def delete(self, request):
        store = CartStore.for_request(request)
        art_listing_id = request.query_params.get('item')
        if art_listing_id:
            state = store.dispatch(CartAction.WISHLIST_REMOVE, {'art_listing_id': art_listing_id})
        else:
            state = store.dispatch(CartAction.WISHLIST_CLEAR)
        return Response({'success': True, 'data': [entry.to_dict() for entry in state.wishlist]})


# =============================================================================
# ORDERS
# =============================================================================

class OrderListView(ListAPIView):
    """The current user's orders, newest first"""
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]
    pagination_class = StandardResultsSetPagination

    def get_queryset(self):
        return order_service.list_user_orders(self.request.user)


class OrderDetailView(APIView):
    permission_classes = [IsOwnerOrMarketplaceAdmin]

    def get(self, request, order_number):
        try:
            order = order_service.get_order(order_number)
        except ServiceError as e:
            raise e.to_api_exception()
        self.check_object_permissions(request, order)
        return Response(OrderSerializer(order).data, status=status.HTTP_200_OK)
