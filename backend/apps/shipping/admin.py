# apps/shipping/admin.py

from django.contrib import admin

from .models import Shipment, TrackingEvent


class TrackingEventInline(admin.TabularInline):
    model = TrackingEvent
    extra = 0
    can_delete = False
    readonly_fields = ('status', 'description', 'location', 'occurred_at')

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Shipment)
class ShipmentAdmin(admin.ModelAdmin):
    """Status changes go through the shipments API so events stay consistent"""

    list_display = (
        'tracking_number', 'order', 'status', 'carrier', 'service_tier',
        'destination_country', 'estimated_delivery', 'created_at'
    )
    list_filter = ('status', 'service_tier', 'destination_country')
    search_fields = ('tracking_number', 'order__order_number', 'recipient_name', 'recipient_phone')
    readonly_fields = (
        'tracking_number', 'status', 'picked_up_at', 'shipped_at',
        'out_for_delivery_at', 'delivered_at', 'created_at', 'updated_at'
    )
    inlines = [TrackingEventInline]

    def has_delete_permission(self, request, obj=None):
        return False
