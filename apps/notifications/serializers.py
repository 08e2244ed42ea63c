"""
Serializers for the notifications app.
"""
from rest_framework import serializers

from .models import Notification


class NotificationSerializer(serializers.ModelSerializer):

    class Meta:
        model = Notification
        fields = [
            'id', 'type', 'title', 'message', 'related_entity_type', 'related_entity_id',
            'action_url', 'priority', 'metadata', 'is_read', 'read_at', 'expires_at', 'created_at'
        ]
        read_only_fields = fields
