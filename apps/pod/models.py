"""
Proof-of-delivery capture: signature, recipient identity, GPS and an
ordered photo set.
"""
from django.db import models

from apps.core.models import BaseModel
from apps.documents.models import FileUpload
from apps.fleet.models import Driver
from apps.loads.models import Load


class PodDocument(BaseModel):
    """
    Proof of delivery for a load. Immutable once verified.
    """
    MAX_PHOTOS = 5

    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='pod_documents')
    driver = models.ForeignKey(Driver, on_delete=models.PROTECT, related_name='pod_documents')
    signature_file = models.OneToOneField(FileUpload, on_delete=models.PROTECT, related_name='pod_signature')

    recipient_name = models.CharField(max_length=200)
    recipient_title = models.CharField(max_length=100, blank=True)
    gps_lat = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    gps_lng = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    captured_at = models.DateTimeField()
    notes = models.TextField(blank=True)

    verified_at = models.DateTimeField(null=True, blank=True)
    verified_by_id = models.UUIDField(null=True, blank=True)
    is_approved = models.BooleanField(null=True, blank=True)
    verification_notes = models.TextField(blank=True)

    class Meta:
        db_table = 'pod_document'
        ordering = ['-created_at']
        verbose_name = 'POD document'

    def __str__(self):
        return f"POD {self.load.load_number} ({self.recipient_name})"

    @property
    def is_verified(self):
        return self.verified_at is not None

    def save(self, *args, **kwargs):
        if not self._state.adding and PodDocument.objects.filter(pk=self.pk, verified_at__isnull=False).exists():
            raise ValueError('Verified PODs are immutable')
        super().save(*args, **kwargs)


class PodPhoto(BaseModel):
    pod = models.ForeignKey(PodDocument, on_delete=models.CASCADE, related_name='photos')
    file = models.OneToOneField(FileUpload, on_delete=models.PROTECT, related_name='pod_photo')
    photo_order = models.PositiveSmallIntegerField()
    caption = models.CharField(max_length=200, blank=True)

    class Meta:
        db_table = 'pod_photo'
        ordering = ['photo_order']
        constraints = [
            models.UniqueConstraint(fields=['pod', 'photo_order'], name='uniq_pod_photo_order'),
        ]
