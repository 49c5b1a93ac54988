# apps/payments/urls.py

from django.urls import re_path

from .views import MpesaPaymentView, PaymentStatusView, PesaPalPaymentView
from .webhooks import MpesaCallbackView, PesaPalIPNView

app_name = 'payments'

# Storefronts and providers post with or without the trailing slash
urlpatterns = [
    re_path(r'^mpesa/?$', MpesaPaymentView.as_view(), name='mpesa'),
    re_path(r'^pesapal/?$', PesaPalPaymentView.as_view(), name='pesapal'),
    re_path(r'^status/?$', PaymentStatusView.as_view(), name='status'),

    # Provider callbacks
    re_path(r'^mpesa/callback/?$', MpesaCallbackView.as_view(), name='mpesa-callback'),
    re_path(r'^pesapal/ipn/?$', PesaPalIPNView.as_view(), name='pesapal-ipn'),
]
