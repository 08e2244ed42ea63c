from django.core.serializers.json import DjangoJSONEncoder
from django.db import models

from apps.core.models import BaseModel, PRINCIPAL_TYPE_CHOICES


class AuditLog(BaseModel):
    """
    Immutable record of a successful mutating call.
    """
    actor_id = models.UUIDField(null=True, blank=True)
    actor_type = models.CharField(max_length=20, choices=PRINCIPAL_TYPE_CHOICES, blank=True)
    actor_email = models.EmailField(blank=True)
    action = models.CharField(max_length=50)
    entity_type = models.CharField(max_length=30)
    entity_id = models.CharField(max_length=64, blank=True)
    changes = models.JSONField(null=True, blank=True, encoder=DjangoJSONEncoder)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True)
    path = models.CharField(max_length=500, blank=True)
    method = models.CharField(max_length=10, blank=True)
    status_code = models.PositiveSmallIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'audit_log'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['entity_type', 'entity_id']),
            models.Index(fields=['actor_id', 'actor_type']),
            models.Index(fields=['action']),
        ]

    def __str__(self):
        return f"{self.action} {self.entity_type}:{self.entity_id} by {self.actor_email or 'anonymous'}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Audit log entries are immutable')
        super().save(*args, **kwargs)
