# apps/shipping/filters.py

import django_filters
from django.db.models import Q

from .models import Shipment
from .transitions import ShipmentStatus


class ShipmentFilter(django_filters.FilterSet):
    """Filter for the admin shipment list"""

    status = django_filters.ChoiceFilter(choices=ShipmentStatus.choices)

    created_after = django_filters.DateFilter(
        field_name='created_at',
        lookup_expr='date__gte',
        label='Created From'
    )

    created_before = django_filters.DateFilter(
        field_name='created_at',
        lookup_expr='date__lte',
        label='Created To'
    )

    country = django_filters.CharFilter(
        field_name='destination_country',
        lookup_expr='iexact',
        label='Destination Country'
    )

    search = django_filters.CharFilter(
        method='filter_search',
        label='Tracking number, recipient or order'
    )

    class Meta:
        model = Shipment
        fields = ['status', 'service_tier']

    def filter_search(self, queryset, name, value):
        value = value.strip()
        if not value:
            return queryset
        return queryset.filter(
            Q(tracking_number__icontains=value) |
            Q(recipient_name__icontains=value) |
            Q(recipient_phone__icontains=value) |
            Q(order__order_number__icontains=value)
        )
