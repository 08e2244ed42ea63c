import os

import pytest
from django.conf import settings
from django.core.files.uploadedfile import SimpleUploadedFile
from rest_framework.exceptions import PermissionDenied, ValidationError

from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.documents.models import FileUpload
from apps.loads.models import LoadStatus, LoadStatusHistory
from apps.notifications.models import Notification
from apps.pod.models import PodDocument
from apps.pod.services import PodService
from tests.conftest import png_file


def _stored_files():
    root = settings.TMS['STORAGE_ROOT']
    return sorted(
        os.path.join(directory, name)
        for directory, _, names in os.walk(root)
        for name in names
    )


def test_unassigned_driver_is_denied_before_anything_is_stored(draft_load, lifecycle, other_driver):
    lifecycle.delivered(draft_load)
    before = _stored_files()

    with pytest.raises(PermissionDenied):
        PodService(other_driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')

    assert _stored_files() == before
    assert not FileUpload.objects.exists()
    assert not PodDocument.objects.exists()
    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.DELIVERED


def test_submit_moves_load_to_pod_submitted(draft_load, lifecycle, driver, dispatcher):
    lifecycle.delivered(draft_load)

    pod = PodService(driver).submit(
        draft_load.pk, png_file(), photos=[png_file('front.png'), png_file('back.png')],
        recipient_name='Receiver', recipient_title='Dock lead',
    )

    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.POD_SUBMITTED
    assert pod.photos.count() == 2
    assert [photo.photo_order for photo in pod.photos.all()] == [0, 1]
    assert LoadStatusHistory.objects.filter(load=draft_load, to_status=LoadStatus.POD_SUBMITTED).count() == 1
    assert Notification.objects.filter(recipient_id=dispatcher.pk, type='POD_SUBMITTED').exists()


def test_submit_before_delivery_is_invalid(draft_load, lifecycle, driver):
    lifecycle.accepted(draft_load)

    with pytest.raises(InvalidStatusTransition):
        PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')

    assert not FileUpload.objects.exists()


def test_submit_rejects_non_image_signature(draft_load, lifecycle, driver):
    lifecycle.delivered(draft_load)
    before = _stored_files()
    text = SimpleUploadedFile('signature.txt', b'not an image', content_type='text/plain')

    with pytest.raises(ValidationError):
        PodService(driver).submit(draft_load.pk, text, recipient_name='Receiver')

    assert _stored_files() == before
    assert not FileUpload.objects.exists()


def test_too_many_photos_rejected(draft_load, lifecycle, driver):
    lifecycle.delivered(draft_load)
    photos = [png_file(f"photo{index}.png") for index in range(6)]

    with pytest.raises(ValidationError):
        PodService(driver).submit(draft_load.pk, png_file(), photos=photos, recipient_name='Receiver')


def test_verify_approve_completes_load(draft_load, lifecycle, driver, dispatcher, shipper_user):
    lifecycle.delivered(draft_load)
    pod = PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')

    pod = PodService(dispatcher).verify(pod.pk, approved=True, notes='Looks good')

    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.COMPLETED
    assert pod.is_approved is True
    assert pod.verification_notes == 'Looks good'
    assert Notification.objects.filter(recipient_id=shipper_user.pk, type='POD_VERIFIED').exists()

    with pytest.raises(ConflictError):
        PodService(dispatcher).verify(pod.pk, approved=False)


def test_verified_pod_cannot_be_changed(draft_load, lifecycle, driver, dispatcher):
    lifecycle.delivered(draft_load)
    pod = PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')
    PodService(dispatcher).verify(pod.pk, approved=True)

    stored = PodDocument.objects.get(pk=pod.pk)
    stored.recipient_name = 'Someone else'
    with pytest.raises(ValueError):
        stored.save()

    assert PodDocument.objects.get(pk=pod.pk).recipient_name == 'Receiver'


def test_rejected_pod_allows_resubmission(draft_load, lifecycle, driver, dispatcher):
    lifecycle.delivered(draft_load)
    first = PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')
    PodService(dispatcher).verify(first.pk, approved=False, notes='Signature unreadable')

    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.POD_PENDING

    second = PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')

    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.POD_SUBMITTED
    assert PodService(driver).get_for_load(draft_load.pk).pk == second.pk


def test_submit_through_api(authenticate, draft_load, lifecycle, driver):
    lifecycle.delivered(draft_load)

    response = authenticate(driver).post('/api/v1/pod/submit/', {
        'load_id': str(draft_load.pk),
        'signature': png_file(),
        'recipient_name': 'Receiver',
        'gps_lat': '39.5296',
        'gps_lng': '-119.8138',
    }, format='multipart')

    assert response.status_code == 201
    data = response.json()['data']
    assert data['recipient_name'] == 'Receiver'
    assert data['is_verified'] is False


def test_pod_visibility(authenticate, draft_load, lifecycle, driver, other_driver, shipper_user):
    lifecycle.delivered(draft_load)
    pod = PodService(driver).submit(draft_load.pk, png_file(), photos=[png_file('box.png')], recipient_name='Receiver')
    photo = pod.photos.get()

    assert authenticate(shipper_user).get(f"/api/v1/pod/load/{draft_load.pk}/").status_code == 200
    assert authenticate(other_driver).get(f"/api/v1/pod/{pod.pk}/").status_code == 403

    response = authenticate(driver).get(f"/api/v1/pod/{pod.pk}/photos/{photo.pk}/")
    assert response.status_code == 200
    assert response['Content-Type'] == 'image/png'


def test_only_dispatch_verifies(authenticate, draft_load, lifecycle, driver, shipper_user):
    lifecycle.delivered(draft_load)
    pod = PodService(driver).submit(draft_load.pk, png_file(), recipient_name='Receiver')

    response = authenticate(shipper_user).post(f"/api/v1/pod/{pod.pk}/verify/", {'approved': True}, format='json')

    assert response.status_code == 403


def test_failed_submission_removes_blobs_already_stored(draft_load, lifecycle, driver):
    lifecycle.delivered(draft_load)
    before = _stored_files()
    bad_photo = SimpleUploadedFile('photo.gif', b'GIF89a', content_type='image/gif')

    with pytest.raises(ValidationError):
        PodService(driver).submit(draft_load.pk, png_file(), photos=[bad_photo], recipient_name='Receiver')

    assert _stored_files() == before
    assert not PodDocument.objects.exists()
