"""
Document models: stored file metadata, load paperwork and its review
history.
"""
from django.db import models

from apps.core.models import BaseModel, PRINCIPAL_TYPE_CHOICES
from apps.loads.models import Load


class FileUploadQuerySet(models.QuerySet):

    def alive(self):
        return self.filter(deleted_at__isnull=True)


class FileUpload(BaseModel):
    """
    Metadata for a blob held by the storage backend.
    """
    CATEGORY_CHOICES = [
        ('LOAD_DOCUMENT', 'Load Document'),
        ('POD_SIGNATURE', 'POD Signature'),
        ('POD_PHOTO', 'POD Photo'),
        ('DRIVER_DOCUMENT', 'Driver Document'),
        ('VEHICLE_DOCUMENT', 'Vehicle Document'),
        ('OTHER', 'Other'),
    ]

    original_name = models.CharField(max_length=255)
    storage_key = models.CharField(max_length=500, unique=True)
    mime_type = models.CharField(max_length=100)
    size_bytes = models.PositiveIntegerField()
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    uploaded_by_id = models.UUIDField()
    uploaded_by_type = models.CharField(max_length=20, choices=PRINCIPAL_TYPE_CHOICES)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = FileUploadQuerySet.as_manager()

    class Meta:
        db_table = 'documents_file_upload'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['category']),
            models.Index(fields=['uploaded_by_id']),
        ]

    def __str__(self):
        return self.original_name

    def get_file_size_mb(self):
        return round(self.size_bytes / (1024 * 1024), 2)


class LoadDocument(BaseModel):
    """
    Paperwork attached to a load (bill of lading, rate confirmation, ...).
    """
    DOCUMENT_TYPE_CHOICES = [
        ('BILL_OF_LADING', 'Bill of Lading'),
        ('RATE_CONFIRMATION', 'Rate Confirmation'),
        ('LUMPER_RECEIPT', 'Lumper Receipt'),
        ('SCALE_TICKET', 'Scale Ticket'),
        ('INVOICE', 'Invoice'),
        ('OTHER', 'Other'),
    ]
    STATUS_PENDING_REVIEW = 'PENDING_REVIEW'
    STATUS_APPROVED = 'APPROVED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = [
        (STATUS_PENDING_REVIEW, 'Pending Review'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
    ]

    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='documents')
    file = models.OneToOneField(FileUpload, on_delete=models.PROTECT, related_name='load_document')
    document_type = models.CharField(max_length=30, choices=DOCUMENT_TYPE_CHOICES)
    description = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING_REVIEW)
    uploaded_by_id = models.UUIDField()
    uploaded_by_type = models.CharField(max_length=20, choices=PRINCIPAL_TYPE_CHOICES)

    class Meta:
        db_table = 'documents_load_document'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['load', 'status']),
        ]

    def __str__(self):
        return f"{self.load.load_number} {self.document_type}"


class DocumentApproval(BaseModel):
    """
    Append-only review decision on a load document.
    """
    document = models.ForeignKey(LoadDocument, on_delete=models.CASCADE, related_name='approvals')
    approved = models.BooleanField()
    reviewed_by_id = models.UUIDField()
    rejection_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'documents_approval'
        ordering = ['created_at']

    def __str__(self):
        return f"{'Approved' if self.approved else 'Rejected'}: {self.document}"
