from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.exceptions import ValidationError

from apps.billing.services import SettlementService
from apps.fleet.models import VehicleAssignment
from apps.fleet.services import DriverService, VehicleService


def test_vehicle_swap_leaves_single_current_assignment(vehicle, driver, other_driver):
    first = VehicleService().assign(vehicle.pk, driver.pk)
    second = VehicleService().assign(vehicle.pk, other_driver.pk, notes='Shift change')

    current = VehicleAssignment.objects.filter(vehicle=vehicle, is_currently_assigned=True)
    assert list(current) == [second]
    first.refresh_from_db()
    assert first.is_currently_assigned is False
    assert first.unassigned_at is not None
    assert vehicle.current_assignment.driver_id == other_driver.pk


def test_out_of_service_vehicle_cannot_be_assigned(vehicle, driver):
    vehicle.status = 'OUT_OF_SERVICE'
    vehicle.save()

    with pytest.raises(ValidationError):
        VehicleService().assign(vehicle.pk, driver.pk)

    assert not VehicleAssignment.objects.filter(vehicle=vehicle).exists()


def test_unassign_retires_current_binding(vehicle, driver):
    VehicleService().assign(vehicle.pk, driver.pk)

    VehicleService().unassign(vehicle.pk)

    assert vehicle.current_assignment is None


def test_maintenance_bumps_mileage(authenticate, dispatcher, vehicle):
    response = authenticate(dispatcher).post(f"/api/v1/vehicles/{vehicle.pk}/maintenance/", {
        'service_type': 'OIL_CHANGE',
        'description': 'Synthetic oil and filter',
        'serviced_at': timezone.now().isoformat(),
        'mileage_at_service': 61000,
        'cost': '189.99',
    }, format='json')

    assert response.status_code == 201
    vehicle.refresh_from_db()
    assert vehicle.current_mileage == 61000


def test_vehicle_assign_through_api(authenticate, dispatcher, vehicle, driver):
    response = authenticate(dispatcher).post(
        f"/api/v1/vehicles/{vehicle.pk}/assign/", {'driver_id': str(driver.pk)}, format='json'
    )

    assert response.status_code == 200
    detail = authenticate(dispatcher).get(f"/api/v1/vehicles/{vehicle.pk}/").json()['data']
    assert detail['current_assignment']['driver'] == str(driver.pk)
    assert len(detail['assignments']) == 1


def test_only_admin_creates_vehicles(authenticate, dispatcher, admin_user):
    payload = {
        'unit_number': 'T-200',
        'vin': '1fujgldr0clbp0002',
        'make': 'Volvo',
        'model': 'VNL',
        'year': 2023,
        'equipment_type': 'REEFER',
    }

    denied = authenticate(dispatcher).post('/api/v1/vehicles/', payload, format='json')
    created = authenticate(admin_user).post('/api/v1/vehicles/', payload, format='json')

    assert denied.status_code == 403
    assert created.status_code == 201
    assert created.json()['data']['vin'] == '1FUJGLDR0CLBP0002'


def test_deactivate_clears_availability(driver):
    driver = DriverService().deactivate(driver.pk)

    assert driver.is_active is False
    assert driver.is_available is False
    assert driver.termination_date == timezone.now().date()

    with pytest.raises(ValidationError):
        DriverService().set_availability(driver.pk, True)


def test_driver_may_toggle_only_own_availability(authenticate, driver, other_driver):
    client = authenticate(driver)

    own = client.patch(f"/api/v1/drivers/{driver.pk}/availability/", {'is_available': False}, format='json')
    other = client.patch(f"/api/v1/drivers/{other_driver.pk}/availability/", {'is_available': False}, format='json')

    assert own.status_code == 200
    assert own.json()['data']['is_available'] is False
    assert other.status_code == 403


def test_pay_rate_visible_to_accountant_and_self_only(authenticate, driver, dispatcher, accountant):
    url = f"/api/v1/drivers/{driver.pk}/"

    assert 'pay_rate' not in authenticate(dispatcher).get(url).json()['data']
    assert authenticate(accountant).get(url).json()['data']['pay_rate'] == '0.60'
    assert authenticate(driver).get(url).json()['data']['pay_rate'] == '0.60'


def test_driver_list_filters(authenticate, dispatcher, driver, other_driver):
    DriverService().deactivate(other_driver.pk)
    client = authenticate(dispatcher)

    active = client.get('/api/v1/drivers/', {'is_active': 'true'}).json()
    search = client.get('/api/v1/drivers/', {'search': 'TX2000'}).json()

    assert [row['id'] for row in active['data']] == [str(driver.pk)]
    assert [row['id'] for row in search['data']] == [str(other_driver.pk)]


def test_driver_metrics(draft_load, lifecycle, driver, accountant):
    load = lifecycle.completed(draft_load, driver_pay=Decimal('1000.00'))
    settlement = SettlementService(accountant).create_from_load(load.pk)
    SettlementService(accountant).approve(settlement.pk)
    SettlementService(accountant).mark_paid(settlement.pk, 'ACH')

    metrics = DriverService.metrics(driver.pk)

    assert metrics['completed_loads'] == 1
    assert metrics['active_assignments'] == 0
    assert metrics['total_earnings'] == '1000.00'
    assert metrics['on_time_delivery_percentage'] == '100.00'


def test_driver_assignments_filter(authenticate, draft_load, lifecycle, driver):
    lifecycle.accepted(draft_load)

    active = authenticate(driver).get(f"/api/v1/drivers/{driver.pk}/assignments/", {'status': 'active'}).json()
    completed = authenticate(driver).get(f"/api/v1/drivers/{driver.pk}/assignments/", {'status': 'completed'}).json()

    assert active['pagination']['total'] == 1
    assert completed['pagination']['total'] == 0
