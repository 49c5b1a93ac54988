# apps/shipping/urls.py

from django.urls import include, path, re_path
from rest_framework.routers import SimpleRouter

from .views import ShipmentViewSet, ShippingQuoteView, TrackingView

app_name = 'shipping'

router = SimpleRouter()
router.register(r'shipments', ShipmentViewSet, basename='shipment')

urlpatterns = [
    re_path(r'^shipping/?$', ShippingQuoteView.as_view(), name='quote'),
    re_path(r'^tracking/?$', TrackingView.as_view(), name='tracking'),
    path('', include(router.urls)),
]
