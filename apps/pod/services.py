"""
Proof-of-delivery submission and verification.
"""
from django.conf import settings
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.core.permissions import ensure_load_access, is_driver
from apps.documents.services import StoredBlobs
from apps.loads.models import Load, LoadStatus, LoadStatusEvent
from apps.loads.services import lock_load, record_transition
from apps.notifications.services import NotificationService
from .models import PodDocument, PodPhoto
import logging

logger = logging.getLogger(__name__)


class PodService:
    """
    A driver captures the POD at delivery; dispatch verifies it, which
    either completes the load or sends it back for resubmission.
    """

    def __init__(self, actor):
        self.actor = actor

    def _ensure_access(self, pod):
        if is_driver(self.actor) and pod.driver_id != self.actor.pk:
            raise PermissionDenied('Access denied')
        ensure_load_access(self.actor, pod.load)

    def get(self, pod_id):
        try:
            pod = PodDocument.objects.select_related('load', 'driver', 'signature_file').get(pk=pod_id)
        except PodDocument.DoesNotExist:
            raise NotFound('POD not found')
        self._ensure_access(pod)
        return pod

    def get_for_load(self, load_id):
        try:
            load = Load.objects.alive().get(pk=load_id)
        except Load.DoesNotExist:
            raise NotFound('Load not found')
        ensure_load_access(self.actor, load)

        pod = load.pod_documents.select_related('driver', 'signature_file').first()
        if pod is None:
            raise NotFound('POD not found for this load')
        return pod

    def get_photo(self, pod_id, photo_id):
        pod = self.get(pod_id)
        try:
            return pod.photos.select_related('file').get(pk=photo_id)
        except PodPhoto.DoesNotExist:
            raise NotFound('Photo not found')

    def submit(self, load_id, signature, photos=None, recipient_name='', recipient_title='',
               gps_lat=None, gps_lng=None, captured_at=None, notes=''):
        """
        Record the POD and move the load to POD_SUBMITTED.
        """
        photos = list(photos or [])
        if signature is None:
            raise ValidationError({'signature': 'Signature image is required'})
        if len(photos) > PodDocument.MAX_PHOTOS:
            raise ValidationError({'photos': f"At most {PodDocument.MAX_PHOTOS} photos may be attached"})

        allowed = settings.TMS['ALLOWED_IMAGE_TYPES']
        with StoredBlobs() as blobs, transaction.atomic():
            load = lock_load(load_id)
            holds_assignment = load.assignments.filter(
                driver_id=self.actor.pk, is_active=True, accepted_at__isnull=False
            ).exists()
            if not holds_assignment:
                raise PermissionDenied('You are not assigned to this load')
            if load.status not in LoadStatus.POD_SUBMITTABLE:
                raise InvalidStatusTransition(load.status, LoadStatus.POD_SUBMITTED)

            signature_file = blobs.store(signature, 'POD_SIGNATURE', self.actor, allowed)
            pod = PodDocument.objects.create(
                load=load,
                driver_id=self.actor.pk,
                signature_file=signature_file,
                recipient_name=recipient_name,
                recipient_title=recipient_title or '',
                gps_lat=gps_lat,
                gps_lng=gps_lng,
                captured_at=captured_at or timezone.now(),
                notes=notes or '',
            )
            for order, photo in enumerate(photos):
                PodPhoto.objects.create(
                    pod=pod,
                    file=blobs.store(photo, 'POD_PHOTO', self.actor, allowed),
                    photo_order=order,
                )

            record_transition(load, LoadStatus.POD_SUBMITTED, self.actor, 'POD submitted by driver')
            LoadStatusEvent.objects.create(
                load=load,
                driver_id=self.actor.pk,
                status=LoadStatus.POD_SUBMITTED,
                notes=notes or '',
                gps_lat=gps_lat,
                gps_lng=gps_lng,
            )

        logger.info(f"POD submitted for load {load.load_number} with {len(photos)} photos")
        NotificationService.notify_pod_submitted(pod)
        return pod

    def verify(self, pod_id, approved, notes=''):
        """
        Approve (load COMPLETED) or reject (load POD_PENDING) a submitted POD.
        """
        with transaction.atomic():
            try:
                pod = PodDocument.objects.select_for_update().select_related('driver').get(pk=pod_id)
            except PodDocument.DoesNotExist:
                raise NotFound('POD not found')
            if pod.is_verified:
                raise ConflictError('POD already verified')

            load = lock_load(pod.load_id)
            to_status = LoadStatus.COMPLETED if approved else LoadStatus.POD_PENDING
            if load.status != LoadStatus.POD_SUBMITTED:
                raise InvalidStatusTransition(load.status, to_status)

            pod.verified_at = timezone.now()
            pod.verified_by_id = self.actor.pk
            pod.is_approved = approved
            pod.verification_notes = notes or ''
            pod.save(update_fields=['verified_at', 'verified_by_id', 'is_approved', 'verification_notes', 'updated_at'])

            default_note = 'POD verified and approved' if approved else 'POD needs correction'
            record_transition(load, to_status, self.actor, notes or default_note)
            pod.load = load

        NotificationService.notify_pod_verified(pod)
        return pod
