"""
Admin configuration for the notifications app.
"""
from django.contrib import admin
from .models import Notification


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['title', 'type', 'recipient_type', 'recipient_id', 'priority', 'is_read', 'created_at']
    list_filter = ['type', 'priority', 'is_read', 'recipient_type']
    search_fields = ['title', 'message', 'related_entity_id']
    readonly_fields = ['created_at', 'read_at']
