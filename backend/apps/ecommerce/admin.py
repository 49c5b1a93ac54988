# apps/ecommerce/admin.py

"""
Django admin configuration for orders
"""

from django.contrib import admin

from .models import Order, OrderItem


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ('art_listing_id', 'title', 'unit_price', 'quantity', 'weight_kg')


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """Orders are changed through payments and shipments, not edited by hand"""

    list_display = (
        'order_number', 'shipping_name', 'status', 'payment_status',
        'payment_method', 'total', 'created_at'
    )
    list_filter = ('status', 'payment_status', 'payment_method', 'shipping_country', 'created_at')
    search_fields = ('order_number', 'shipping_email', 'shipping_name', 'provider_transaction_id')
    readonly_fields = (
        'order_number', 'status', 'payment_status', 'provider_transaction_id',
        'subtotal', 'shipping_cost', 'tax', 'total', 'notes', 'created_at', 'updated_at'
    )
    inlines = [OrderItemInline]

    fieldsets = (
        ('Order Information', {
            'fields': ('order_number', 'user', 'status', 'created_at', 'updated_at')
        }),
        ('Financial Summary', {
            'fields': ('subtotal', 'shipping_cost', 'tax', 'total', 'currency')
        }),
        ('Payment Information', {
            'fields': ('payment_status', 'payment_method', 'provider_transaction_id')
        }),
        ('Shipping Information', {
            'fields': (
                'shipping_name', 'shipping_email', 'shipping_phone', 'shipping_address',
                'shipping_city', 'shipping_country', 'shipping_tier'
            )
        }),
        ('Notes', {
            'fields': ('notes',),
            'classes': ('collapse',)
        }),
    )
