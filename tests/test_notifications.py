from datetime import timedelta

from django.db import DatabaseError
from django.utils import timezone

from apps.accounts.models import InternalUser
from apps.core.models import DRIVER, INTERNAL_USER
from apps.fleet.tasks import check_expiring_documents
from apps.loads.models import LoadStatus
from apps.loads.services import AssignmentService, LoadLifecycleService
from apps.notifications.models import Notification
from apps.notifications.services import NotificationService
from apps.notifications.tasks import purge_notifications


def _notify(recipient, **extra):
    payload = {
        'type': 'SYSTEM',
        'title': 'Heads up',
        'message': 'Something happened',
        'related_entity_type': 'LOAD',
        'related_entity_id': 'abc',
    }
    payload.update(extra)
    return NotificationService.create(recipient.pk, recipient.principal_type, **payload)


def test_repeated_event_is_delivered_once(driver, dispatcher):
    recipients = [(driver.pk, DRIVER), (dispatcher.pk, INTERNAL_USER)]

    NotificationService.create_bulk(recipients, type='SYSTEM', title='t', message='m',
                                    related_entity_type='LOAD', related_entity_id='1')
    NotificationService.create_bulk(recipients, type='SYSTEM', title='t', message='m',
                                    related_entity_type='LOAD', related_entity_id='1')

    assert Notification.objects.count() == 2
    assert Notification.objects.filter(recipient_id=driver.pk).count() == 1


def test_create_bulk_with_no_recipients_is_noop(db):
    assert NotificationService.create_bulk([], type='SYSTEM', title='t', message='m') == 0


def test_list_hides_expired_and_filters_unread(authenticate, driver):
    _notify(driver, related_entity_id='1')
    read = _notify(driver, related_entity_id='2')
    read.mark_read()
    _notify(driver, related_entity_id='3', expires_at=timezone.now() - timedelta(minutes=1))
    client = authenticate(driver)

    everything = client.get('/api/v1/notifications/').json()
    unread = client.get('/api/v1/notifications/', {'unread_only': 'true'}).json()
    count = client.get('/api/v1/notifications/unread-count/').json()

    assert everything['pagination']['total'] == 2
    assert unread['pagination']['total'] == 1
    assert count['data']['count'] == 1


def test_notifications_are_private(authenticate, driver, other_driver):
    notification = _notify(driver)
    client = authenticate(other_driver)

    assert client.get('/api/v1/notifications/').json()['pagination']['total'] == 0
    assert client.patch(f"/api/v1/notifications/{notification.pk}/read/").status_code == 404
    assert client.delete(f"/api/v1/notifications/{notification.pk}/").status_code == 404
    assert Notification.objects.filter(pk=notification.pk).exists()


def test_mark_read_and_delete(authenticate, driver):
    notification = _notify(driver)
    client = authenticate(driver)

    response = client.patch(f"/api/v1/notifications/{notification.pk}/read/")

    assert response.status_code == 200
    assert response.json()['data']['is_read'] is True
    assert client.delete(f"/api/v1/notifications/{notification.pk}/").status_code == 200
    assert not Notification.objects.filter(pk=notification.pk).exists()


def test_mark_all_read_only_touches_caller(authenticate, driver, other_driver):
    _notify(driver, related_entity_id='1')
    _notify(driver, related_entity_id='2')
    _notify(other_driver, related_entity_id='1')

    response = authenticate(driver).post('/api/v1/notifications/mark-all-read/')

    assert response.json()['data']['updated'] == 2
    assert Notification.objects.filter(recipient_id=driver.pk, is_read=False).count() == 0
    assert Notification.objects.filter(recipient_id=other_driver.pk, is_read=False).count() == 1


def test_purge_removes_expired_and_old_read(driver):
    _notify(driver, related_entity_id='expired', expires_at=timezone.now() - timedelta(seconds=1))
    old = _notify(driver, related_entity_id='old')
    old.mark_read()
    Notification.objects.filter(pk=old.pk).update(created_at=timezone.now() - timedelta(days=90))
    keep = _notify(driver, related_entity_id='fresh')

    result = purge_notifications()

    assert result == {'expired': 1, 'old_read': 1}
    assert list(Notification.objects.values_list('pk', flat=True)) == [keep.pk]


def test_expiring_license_warns_driver_and_dispatch(driver, dispatcher):
    driver.license_expiry = timezone.now().date() + timedelta(days=5)
    driver.save()

    check_expiring_documents()
    check_expiring_documents()

    warning = Notification.objects.get(recipient_id=driver.pk, type='DOCUMENT_EXPIRING')
    assert warning.priority == 'URGENT'
    assert Notification.objects.filter(recipient_id=dispatcher.pk, type='DOCUMENT_EXPIRING').count() == 1


def test_notification_failure_does_not_break_caller(driver, monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError('database unavailable')

    monkeypatch.setattr(Notification.objects, 'bulk_create', explode)

    assert _notify(driver) is None


def test_duplicate_create_returns_none(driver):
    first = _notify(driver)
    second = _notify(driver)

    assert first is not None
    assert second is None
    assert Notification.objects.filter(recipient_id=driver.pk).count() == 1


def test_recipient_lookup_failure_does_not_fail_acceptance(draft_load, lifecycle, dispatcher, driver, monkeypatch):
    lifecycle.scheduled(draft_load)
    assignment = LoadLifecycleService(dispatcher).assign(draft_load.pk, driver.pk)

    def replica_down(*args, **kwargs):
        raise DatabaseError('replica down')

    monkeypatch.setattr(InternalUser.objects, 'filter', replica_down)
    accepted = AssignmentService(driver).accept(assignment.pk)

    draft_load.refresh_from_db()
    assert accepted.accepted_at is not None
    assert draft_load.status == LoadStatus.ACCEPTED
    assert not Notification.objects.filter(type='LOAD_ACCEPTED').exists()
