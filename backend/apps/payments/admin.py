# apps/payments/admin.py

from django.contrib import admin

from .models import PaymentAttempt


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ('correlation_id', 'provider', 'order', 'status', 'amount', 'currency', 'created_at')
    list_filter = ('provider', 'status', 'is_simulated')
    search_fields = ('correlation_id', 'checkout_request_id', 'receipt_number', 'order__order_number')
    readonly_fields = [field.name for field in PaymentAttempt._meta.fields]

    def has_add_permission(self, request):
        return False
