from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.db.models import Q
from django.utils import timezone

from apps.core.models import BaseModel, PRINCIPAL_TYPE_CHOICES


class NotificationQuerySet(models.QuerySet):

    def for_recipient(self, recipient_id, recipient_type):
        return self.filter(recipient_id=recipient_id, recipient_type=recipient_type)

    def unexpired(self, now=None):
        now = now or timezone.now()
        return self.filter(Q(expires_at__isnull=True) | Q(expires_at__gt=now))

    def unread(self):
        return self.unexpired().filter(is_read=False)


class Notification(BaseModel):
    """
    Message to a single recipient with binary read state.
    """
    TYPE_CHOICES = [
        ('LOAD_ASSIGNED', 'Load Assigned'),
        ('LOAD_ACCEPTED', 'Load Accepted'),
        ('LOAD_STATUS_CHANGED', 'Load Status Changed'),
        ('POD_SUBMITTED', 'POD Submitted'),
        ('POD_VERIFIED', 'POD Verified'),
        ('DOCUMENT_REVIEWED', 'Document Reviewed'),
        ('INVOICE_ISSUED', 'Invoice Issued'),
        ('INVOICE_OVERDUE', 'Invoice Overdue'),
        ('SETTLEMENT_READY', 'Settlement Ready'),
        ('SETTLEMENT_APPROVED', 'Settlement Approved'),
        ('SETTLEMENT_PAID', 'Settlement Paid'),
        ('SETTLEMENT_DISPUTED', 'Settlement Disputed'),
        ('DOCUMENT_EXPIRING', 'Document Expiring'),
        ('SYSTEM', 'System'),
    ]
    PRIORITY_CHOICES = [
        ('LOW', 'Low'),
        ('NORMAL', 'Normal'),
        ('HIGH', 'High'),
        ('URGENT', 'Urgent'),
    ]

    recipient_id = models.UUIDField()
    recipient_type = models.CharField(max_length=20, choices=PRINCIPAL_TYPE_CHOICES)
    type = models.CharField(max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(max_length=200)
    message = models.TextField()
    related_entity_type = models.CharField(max_length=30, blank=True)
    related_entity_id = models.CharField(max_length=64, blank=True)
    action_url = models.CharField(max_length=500, blank=True)
    priority = models.CharField(max_length=10, choices=PRIORITY_CHOICES, default='NORMAL')
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    # Distinguishes repeated events of the same kind on the same entity.
    dedupe_key = models.CharField(max_length=100, blank=True)
    expires_at = models.DateTimeField(null=True, blank=True)
    is_read = models.BooleanField(default=False)
    read_at = models.DateTimeField(null=True, blank=True)

    objects = NotificationQuerySet.as_manager()

    class Meta:
        db_table = 'notifications_notification'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['recipient_id', 'recipient_type', 'is_read']),
            models.Index(fields=['expires_at']),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=[
                    'recipient_id', 'recipient_type', 'type',
                    'related_entity_type', 'related_entity_id', 'dedupe_key'
                ],
                name='uniq_notification_per_event'
            ),
        ]

    def __str__(self):
        return f"{self.type} -> {self.recipient_type}:{self.recipient_id}"

    def mark_read(self):
        if not self.is_read:
            self.is_read = True
            self.read_at = timezone.now()
            self.save(update_fields=['is_read', 'read_at', 'updated_at'])
