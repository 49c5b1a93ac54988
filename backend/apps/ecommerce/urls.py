# apps/ecommerce/urls.py

from django.urls import path

from .views import CartView, OrderDetailView, OrderListView, WishlistView

app_name = 'ecommerce'

urlpatterns = [
    path('cart/', CartView.as_view(), name='cart'),
    path('wishlist/', WishlistView.as_view(), name='wishlist'),
    path('orders/', OrderListView.as_view(), name='order-list'),
    path('orders/<str:order_number>/', OrderDetailView.as_view(), name='order-detail'),
]
