from django.core.files.uploadedfile import SimpleUploadedFile

from apps.documents.models import DocumentApproval, FileUpload, LoadDocument
from apps.notifications.models import Notification


def _pdf(name='bol.pdf'):
    return SimpleUploadedFile(name, b'%PDF-1.4 test document', content_type='application/pdf')


def _upload(client, load, **extra):
    payload = {'file': _pdf(), 'document_type': 'BILL_OF_LADING'}
    payload.update(extra)
    return client.post(f"/api/v1/documents/loads/{load.pk}/", payload, format='multipart')


def test_shipper_uploads_and_lists_documents(authenticate, shipper_user, draft_load):
    client = authenticate(shipper_user)

    response = _upload(client, draft_load, description='Signed at origin')
    listing = client.get(f"/api/v1/documents/loads/{draft_load.pk}/")

    assert response.status_code == 201
    data = response.json()['data']
    assert data['status'] == 'PENDING_REVIEW'
    assert data['file']['original_name'] == 'bol.pdf'
    assert [row['id'] for row in listing.json()['data']] == [data['id']]
    assert FileUpload.objects.get().storage_key.startswith('documents/')


def test_upload_rejects_disallowed_type(authenticate, shipper_user, draft_load):
    script = SimpleUploadedFile('run.sh', b'echo hi', content_type='application/x-sh')

    response = _upload(authenticate(shipper_user), draft_load, file=script)

    assert response.status_code == 400
    assert response.json()['errors'][0]['field'] == 'file'
    assert not LoadDocument.objects.exists()


def test_upload_rejects_oversized_file(authenticate, shipper_user, draft_load, settings):
    settings.TMS = dict(settings.TMS, MAX_FILE_SIZE=10)

    response = _upload(authenticate(shipper_user), draft_load)

    assert response.status_code == 400
    assert 'maximum size' in response.json()['errors'][0]['message']


def test_download_streams_file(authenticate, shipper_user, draft_load):
    client = authenticate(shipper_user)
    document_id = _upload(client, draft_load).json()['data']['id']

    response = client.get(f"/api/v1/documents/{document_id}/download/")

    assert response.status_code == 200
    assert b''.join(response.streaming_content) == b'%PDF-1.4 test document'
    assert 'attachment' in response['Content-Disposition']


def test_review_history_and_notifications(authenticate, shipper_user, dispatcher, draft_load):
    document_id = _upload(authenticate(shipper_user), draft_load).json()['data']['id']
    client = authenticate(dispatcher)

    missing_reason = client.post(f"/api/v1/documents/{document_id}/reject/", {}, format='json')
    rejected = client.post(f"/api/v1/documents/{document_id}/reject/", {'reason': 'Blurry scan'}, format='json')
    approved = client.post(f"/api/v1/documents/{document_id}/approve/", {'notes': 'Rescanned'}, format='json')
    again = client.post(f"/api/v1/documents/{document_id}/approve/", {}, format='json')

    assert missing_reason.status_code == 400
    assert rejected.json()['data']['status'] == 'REJECTED'
    assert approved.json()['data']['status'] == 'APPROVED'
    assert again.status_code == 409
    assert DocumentApproval.objects.filter(document_id=document_id).count() == 2
    assert Notification.objects.filter(recipient_id=shipper_user.pk, type='DOCUMENT_REVIEWED').count() == 2


def test_shipper_cannot_review(authenticate, shipper_user, draft_load):
    client = authenticate(shipper_user)
    document_id = _upload(client, draft_load).json()['data']['id']

    response = client.post(f"/api/v1/documents/{document_id}/approve/", {}, format='json')

    assert response.status_code == 403


def test_delete_removes_blob_and_soft_deletes_metadata(authenticate, shipper_user, draft_load):
    from apps.core.storage import get_storage_backend

    client = authenticate(shipper_user)
    document_id = _upload(client, draft_load).json()['data']['id']
    key = FileUpload.objects.get().storage_key

    response = client.delete(f"/api/v1/documents/{document_id}/")

    assert response.status_code == 200
    assert not LoadDocument.objects.filter(pk=document_id).exists()
    assert FileUpload.objects.get(storage_key=key).deleted_at is not None
    assert not get_storage_backend().exists(key)


def test_other_principals_cannot_delete(authenticate, shipper_user, draft_load, lifecycle, driver):
    document_id = _upload(authenticate(shipper_user), draft_load).json()['data']['id']
    lifecycle.accepted(draft_load)

    response = authenticate(driver).delete(f"/api/v1/documents/{document_id}/")

    assert response.status_code == 403
