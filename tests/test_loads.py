from decimal import Decimal

import pytest
from rest_framework.exceptions import PermissionDenied, ValidationError

from apps.audit.models import AuditLog
from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.loads.models import Load, LoadAssignment, LoadStatus, LoadStatusEvent, LoadStatusHistory
from apps.loads.services import AssignmentService, LoadLifecycleService, NegotiationService, record_transition
from apps.notifications.models import Notification
from tests.conftest import make_driver


def _history_chain(load):
    """
    Follow the history ledger from creation; returns the visited statuses.
    """
    by_source = {row.from_status: row.to_status for row in LoadStatusHistory.objects.filter(load=load)}
    chain, current = [], None
    while current in by_source:
        current = by_source.pop(current)
        chain.append(current)
    return chain


def test_create_load_starts_in_draft_with_history(draft_load, shipper_user):
    assert draft_load.status == LoadStatus.DRAFT
    assert draft_load.shipper_client_id == shipper_user.shipper_client_id

    history = LoadStatusHistory.objects.get(load=draft_load)
    assert history.from_status is None
    assert history.to_status == LoadStatus.DRAFT
    assert history.changed_by_type == 'SHIPPER_USER'


def test_full_lifecycle_writes_one_history_row_per_transition(draft_load, lifecycle):
    load = lifecycle.completed(draft_load)

    assert load.status == LoadStatus.COMPLETED
    assert load.actual_pickup_time is not None
    assert load.actual_delivery_time is not None
    assert _history_chain(load) == [
        LoadStatus.DRAFT,
        LoadStatus.PENDING_REVIEW,
        LoadStatus.NEGOTIATING,
        LoadStatus.RATE_APPROVED,
        LoadStatus.SCHEDULED,
        LoadStatus.ASSIGNED,
        LoadStatus.ACCEPTED,
        LoadStatus.EN_ROUTE_PICKUP,
        LoadStatus.AT_PICKUP,
        LoadStatus.LOADED,
        LoadStatus.EN_ROUTE_DELIVERY,
        LoadStatus.AT_DELIVERY,
        LoadStatus.DELIVERED,
        LoadStatus.POD_SUBMITTED,
        LoadStatus.COMPLETED,
    ]
    assert LoadStatusHistory.objects.filter(load=load).count() == 15
    assert LoadStatusEvent.objects.filter(load=load).count() == 7


def test_invalid_transition_names_both_states(draft_load, dispatcher):
    with pytest.raises(InvalidStatusTransition) as excinfo:
        LoadLifecycleService(dispatcher).approve(draft_load.pk, Decimal('900.00'))

    assert str(excinfo.value.detail) == 'Invalid status transition from DRAFT to SCHEDULED'
    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.DRAFT
    assert LoadStatusHistory.objects.filter(load=draft_load).count() == 1


def test_transition_from_stale_status_is_rejected(draft_load, shipper_user, dispatcher):
    stale = Load.objects.get(pk=draft_load.pk)
    LoadLifecycleService(shipper_user).submit(draft_load.pk)

    with pytest.raises(ConflictError):
        record_transition(stale, LoadStatus.CANCELLED, dispatcher, 'Cancelled from a stale read')
    with pytest.raises(ConflictError):
        record_transition(
            Load.objects.get(pk=draft_load.pk), LoadStatus.CANCELLED, dispatcher,
            expected_status=LoadStatus.DRAFT
        )

    draft_load.refresh_from_db()
    assert draft_load.status == LoadStatus.PENDING_REVIEW
    assert _history_chain(draft_load) == [LoadStatus.DRAFT, LoadStatus.PENDING_REVIEW]
    assert not LoadStatusHistory.objects.filter(load=draft_load, to_status=LoadStatus.CANCELLED).exists()

def test_driver_cannot_skip_progression(draft_load, lifecycle, driver):
    lifecycle.accepted(draft_load)

    with pytest.raises(InvalidStatusTransition):
        LoadLifecycleService(driver).update_status(draft_load.pk, LoadStatus.LOADED)


def test_unassigned_driver_cannot_update_status(draft_load, lifecycle, other_driver):
    lifecycle.accepted(draft_load)

    with pytest.raises(PermissionDenied):
        LoadLifecycleService(other_driver).update_status(draft_load.pk, LoadStatus.EN_ROUTE_PICKUP)


def test_negotiation_accept_sets_shipper_rate(draft_load, shipper_user, dispatcher):
    LoadLifecycleService(shipper_user).submit(draft_load.pk)
    NegotiationService(shipper_user).create(draft_load.pk, proposed_rate=Decimal('2000.00'))
    counter = NegotiationService(dispatcher).create(
        draft_load.pk, proposed_rate=Decimal('2000.00'), counter_rate=Decimal('2200.00')
    )

    negotiation, load = NegotiationService(shipper_user).accept(counter.pk)

    assert negotiation.status == 'ACCEPTED'
    assert load.status == LoadStatus.RATE_APPROVED
    assert load.shipper_rate == Decimal('2200.00')
    assert load.approved_negotiation_id == counter.pk


def test_assign_requires_available_driver(draft_load, lifecycle, dispatcher, driver):
    lifecycle.scheduled(draft_load)
    driver.is_available = False
    driver.save()

    with pytest.raises(ValidationError) as excinfo:
        LoadLifecycleService(dispatcher).assign(draft_load.pk, driver.pk)

    assert 'not available' in str(excinfo.value)
    assert not LoadAssignment.objects.filter(load=draft_load).exists()


def test_assignment_notifies_driver_and_acceptance_notifies_dispatch(draft_load, lifecycle, driver, dispatcher):
    lifecycle.accepted(draft_load)

    assert Notification.objects.filter(recipient_id=driver.pk, type='LOAD_ASSIGNED').count() == 1
    assert Notification.objects.filter(recipient_id=dispatcher.pk, type='LOAD_ACCEPTED').count() == 1


def test_rejected_assignment_returns_load_to_scheduled(draft_load, lifecycle, dispatcher, driver):
    lifecycle.scheduled(draft_load)
    assignment = LoadLifecycleService(dispatcher).assign(draft_load.pk, driver.pk)

    AssignmentService(driver).reject(assignment.pk, 'Truck in the shop')

    draft_load.refresh_from_db()
    assignment.refresh_from_db()
    assert draft_load.status == LoadStatus.SCHEDULED
    assert assignment.is_active is False
    assert assignment.rejection_reason == 'Truck in the shop'


def test_reassignment_keeps_single_active_assignment(draft_load, lifecycle, dispatcher, driver, other_driver):
    lifecycle.scheduled(draft_load)
    first = LoadLifecycleService(dispatcher).assign(draft_load.pk, driver.pk)
    AssignmentService(driver).reject(first.pk, 'No capacity')

    LoadLifecycleService(dispatcher).assign(draft_load.pk, other_driver.pk)

    active = LoadAssignment.objects.filter(load=draft_load, is_active=True)
    assert active.count() == 1
    assert active.get().driver_id == other_driver.pk


def test_cancel_deactivates_assignment(draft_load, lifecycle, dispatcher, driver):
    lifecycle.scheduled(draft_load)
    LoadLifecycleService(dispatcher).assign(draft_load.pk, driver.pk)

    load = LoadLifecycleService(dispatcher).cancel(draft_load.pk, 'Shipper withdrew')

    assert load.status == LoadStatus.CANCELLED
    assert not LoadAssignment.objects.filter(load=draft_load, is_active=True).exists()


def test_create_load_through_api(authenticate, shipper_user, load_data):
    payload = dict(load_data, pickup_date=load_data['pickup_date'].isoformat(),
                   delivery_date=load_data['delivery_date'].isoformat(), shipper_rate='2500.00')

    response = authenticate(shipper_user).post('/api/v1/loads/', payload, format='json')

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['data']['status'] == 'DRAFT'
    assert 'driver_pay' not in body['data']
    assert AuditLog.objects.filter(action='CREATE', entity_type='LOAD', entity_id=body['data']['id']).exists()


def test_create_load_rejects_delivery_before_pickup(authenticate, shipper_user, load_data):
    payload = dict(load_data, pickup_date=load_data['delivery_date'].isoformat(),
                   delivery_date=load_data['pickup_date'].isoformat(), shipper_rate='2500.00')

    response = authenticate(shipper_user).post('/api/v1/loads/', payload, format='json')

    assert response.status_code == 400
    assert response.json()['errors'][0]['field'] == 'delivery_date'


def test_update_records_diff_in_audit_log(authenticate, shipper_user, draft_load):
    response = authenticate(shipper_user).patch(
        f"/api/v1/loads/{draft_load.pk}/", {'commodity': 'Frozen produce'}, format='json'
    )

    assert response.status_code == 200
    entry = AuditLog.objects.get(action='UPDATE', entity_id=str(draft_load.pk))
    assert entry.changes == {'commodity': {'before': 'Produce', 'after': 'Frozen produce'}}


def test_loads_are_scoped_per_principal(authenticate, draft_load, shipper_user, dispatcher, shipper_client):
    from apps.accounts.models import ShipperClient, ShipperUser

    other_client = ShipperClient.objects.create(company_name='Rival Inc')
    rival = ShipperUser(email='rival@rival.test', first_name='R', last_name='Ival', shipper_client=other_client)
    rival.set_password('whatever123')
    rival.save()
    stranger = make_driver(email='stranger@tms.test', license_number='WA3000003')

    assert authenticate(shipper_user).get('/api/v1/loads/').json()['pagination']['total'] == 1
    assert authenticate(dispatcher).get('/api/v1/loads/').json()['pagination']['total'] == 1
    assert authenticate(rival).get('/api/v1/loads/').json()['pagination']['total'] == 0
    assert authenticate(stranger).get('/api/v1/loads/').json()['pagination']['total'] == 0
    assert authenticate(rival).get(f"/api/v1/loads/{draft_load.pk}/").status_code == 404


def test_deleted_load_is_hidden(authenticate, shipper_user, draft_load):
    client = authenticate(shipper_user)

    assert client.delete(f"/api/v1/loads/{draft_load.pk}/").status_code == 200
    assert client.get(f"/api/v1/loads/{draft_load.pk}/").status_code == 404
    assert Load.objects.filter(pk=draft_load.pk, deleted_at__isnull=False).exists()


def test_driver_status_update_through_api(authenticate, draft_load, lifecycle, driver):
    lifecycle.accepted(draft_load)
    client = authenticate(driver)

    ok = client.post(f"/api/v1/loads/{draft_load.pk}/status/", {
        'status': 'EN_ROUTE_PICKUP', 'gps_lat': '36.7378', 'gps_lng': '-119.7871',
    }, format='json')
    skipped = client.post(f"/api/v1/loads/{draft_load.pk}/status/", {'status': 'DELIVERED'}, format='json')

    assert ok.status_code == 200
    assert ok.json()['data']['status'] == 'EN_ROUTE_PICKUP'
    assert skipped.status_code == 400
    assert skipped.json()['message'] == 'Invalid status transition from EN_ROUTE_PICKUP to DELIVERED'


def test_status_history_endpoint(authenticate, shipper_user, draft_load):
    LoadLifecycleService(shipper_user).submit(draft_load.pk)

    response = authenticate(shipper_user).get(f"/api/v1/loads/{draft_load.pk}/status-history/")

    assert response.status_code == 200
    assert [row['to_status'] for row in response.json()['data']] == ['DRAFT', 'PENDING_REVIEW']
