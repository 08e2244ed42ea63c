"""
Document capture: stores uploaded files through the storage backend and
binds them to loads with a review workflow.
"""
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.core.exceptions import ConflictError
from apps.core.permissions import ensure_load_access, is_internal, principal_type_of
from apps.core.storage import StorageError, get_storage_backend, validate_upload
from apps.loads.models import Load
from apps.notifications.services import NotificationService
from .models import DocumentApproval, FileUpload, LoadDocument
import logging

logger = logging.getLogger(__name__)


class StoredBlobs:
    """
    Tracks blobs written during one unit of work. If the block raises, every
    blob written inside it is removed again so no file outlives a failed
    metadata write.
    """

    def __init__(self, storage=None):
        self.storage = storage or get_storage_backend()
        self.keys = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            return False
        for key in self.keys:
            try:
                self.storage.delete(key)
                logger.warning(f"Removed orphaned blob {key} after failed write")
            except StorageError as e:
                logger.error(f"Could not remove orphaned blob {key}: {str(e)}")
        return False

    def store(self, uploaded_file, category, actor, allowed_types):
        """
        Validate, store and record one uploaded file. Returns the FileUpload row.
        """
        error = validate_upload(uploaded_file, allowed_types)
        if error:
            raise ValidationError({'file': error})

        try:
            key = self.storage.put(uploaded_file, category, uploaded_file.name)
        except StorageError as e:
            raise ValidationError({'file': str(e)})
        self.keys.append(key)

        return FileUpload.objects.create(
            original_name=uploaded_file.name,
            storage_key=key,
            mime_type=uploaded_file.content_type,
            size_bytes=uploaded_file.size,
            category=category,
            uploaded_by_id=actor.pk,
            uploaded_by_type=principal_type_of(actor),
        )


def open_file(file_upload):
    """
    Open a stored file for reading.
    """
    if file_upload.deleted_at is not None:
        raise NotFound('File not found')
    try:
        return get_storage_backend().get(file_upload.storage_key)
    except StorageError:
        raise NotFound('File not found in storage')


class DocumentService:
    """
    Upload, retrieval, deletion and review of load documents.
    """

    def __init__(self, actor):
        self.actor = actor

    def _get_load(self, load_id):
        try:
            load = Load.objects.alive().get(pk=load_id)
        except Load.DoesNotExist:
            raise NotFound('Load not found')
        ensure_load_access(self.actor, load)
        return load

    def get(self, document_id):
        try:
            document = LoadDocument.objects.select_related('load', 'file').get(pk=document_id)
        except LoadDocument.DoesNotExist:
            raise NotFound('Document not found')
        ensure_load_access(self.actor, document.load)
        return document

    def list_for_load(self, load_id, status=None):
        load = self._get_load(load_id)
        queryset = load.documents.select_related('file').prefetch_related('approvals')
        if status:
            queryset = queryset.filter(status=status)
        return queryset

    def upload(self, load_id, uploaded_file, document_type, description=''):
        if uploaded_file is None:
            raise ValidationError({'file': 'No file uploaded'})

        load = self._get_load(load_id)
        with StoredBlobs() as blobs, transaction.atomic():
            file_upload = blobs.store(
                uploaded_file, 'LOAD_DOCUMENT', self.actor, settings.TMS['ALLOWED_DOCUMENT_TYPES']
            )
            document = LoadDocument.objects.create(
                load=load,
                file=file_upload,
                document_type=document_type,
                description=description or '',
                uploaded_by_id=self.actor.pk,
                uploaded_by_type=principal_type_of(self.actor),
            )

        logger.info(f"Uploaded {document_type} for load {load.load_number}: {file_upload.storage_key}")
        return document

    def delete(self, document_id):
        document = self.get(document_id)
        is_uploader = (
            str(document.uploaded_by_id) == str(self.actor.pk)
            and document.uploaded_by_type == principal_type_of(self.actor)
        )
        if not (is_uploader or is_internal(self.actor)):
            raise PermissionDenied('Access denied. Only the uploader or staff can delete a document.')

        file_upload = document.file
        with transaction.atomic():
            document.delete()
            file_upload.deleted_at = timezone.now()
            file_upload.save(update_fields=['deleted_at', 'updated_at'])

        try:
            get_storage_backend().delete(file_upload.storage_key)
        except StorageError as e:
            logger.error(f"Failed to delete blob {file_upload.storage_key}: {str(e)}")
        logger.info(f"Deleted document {document_id}")

    def _review(self, document_id, approved, rejection_reason='', notes=''):
        with transaction.atomic():
            try:
                document = LoadDocument.objects.select_for_update().select_related('load').get(pk=document_id)
            except LoadDocument.DoesNotExist:
                raise NotFound('Document not found')

            target = LoadDocument.STATUS_APPROVED if approved else LoadDocument.STATUS_REJECTED
            if document.status == target:
                raise ConflictError(f"Document already {target.lower()}")

            DocumentApproval.objects.create(
                document=document,
                approved=approved,
                reviewed_by_id=self.actor.pk,
                rejection_reason=rejection_reason,
                notes=notes or '',
            )
            document.status = target
            document.save(update_fields=['status', 'updated_at'])

        NotificationService.notify_document_reviewed(document, approved)
        return document

    def approve(self, document_id, notes=''):
        return self._review(document_id, True, notes=notes)

    def reject(self, document_id, reason, notes=''):
        if not reason or not reason.strip():
            raise ValidationError({'reason': 'Rejection reason is required'})
        return self._review(document_id, False, rejection_reason=reason, notes=notes)
