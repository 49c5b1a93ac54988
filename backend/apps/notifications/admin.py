# apps/notifications/admin.py

from django.contrib import admin

from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ('title', 'type', 'user', 'order', 'is_read', 'email_sent', 'created_at')
    list_filter = ('type', 'is_read', 'email_sent')
    search_fields = ('title', 'message', 'dedupe_key')
    readonly_fields = ('dedupe_key', 'created_at')
