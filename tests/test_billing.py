from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone
from rest_framework.exceptions import PermissionDenied, ValidationError

from apps.accounts.models import ShipperClient
from apps.billing.models import DriverSettlement, InvoiceStatus, SettlementDeduction, SettlementStatus
from apps.billing.services import (
    InvoiceService, SettlementService, compute_invoice_totals, compute_settlement_amounts
)
from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.loads.services import LoadLifecycleService
from apps.notifications.models import Notification


def test_settlement_amounts():
    gross, total, net = compute_settlement_amounts(Decimal('1000'), [
        {'amount': Decimal('100.00')},
        {'amount': '50'},
    ])

    assert (gross, total, net) == (Decimal('1000.00'), Decimal('150.00'), Decimal('850.00'))


def test_settlement_amounts_reject_negative_and_excess_deductions():
    with pytest.raises(ValidationError):
        compute_settlement_amounts(Decimal('1000'), [{'amount': Decimal('-1')}])
    with pytest.raises(ValidationError) as excinfo:
        compute_settlement_amounts(Decimal('1000'), [{'amount': Decimal('1100')}])

    assert 'Deductions exceed gross amount' in str(excinfo.value.detail)


def test_invoice_totals_round_half_up():
    priced, subtotal, tax, total = compute_invoice_totals([
        {'description': 'Linehaul', 'quantity': 1, 'unit_price': Decimal('2500.00')},
        {'description': 'Detention', 'quantity': Decimal('2.5'), 'unit_price': Decimal('75.00')},
    ], Decimal('8.25'))

    assert [item['amount'] for item in priced] == [Decimal('2500.00'), Decimal('187.50')]
    assert subtotal == Decimal('2687.50')
    assert tax == Decimal('221.72')
    assert total == Decimal('2909.22')


@pytest.fixture
def completed_load(draft_load, lifecycle):
    return lifecycle.completed(draft_load, driver_pay=Decimal('1000.00'))


def test_settlement_from_load(completed_load, accountant, driver):
    settlement = SettlementService(accountant).create_from_load(completed_load.pk, deductions=[
        {'description': 'Fuel advance', 'amount': Decimal('100.00'), 'category': 'FUEL_ADVANCE'},
        {'description': 'Escrow', 'amount': Decimal('50.00'), 'category': 'ESCROW'},
    ])

    assert settlement.driver_id == driver.pk
    assert settlement.gross_amount == Decimal('1000.00')
    assert settlement.total_deductions == Decimal('150.00')
    assert settlement.net_amount == Decimal('850.00')
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.settlement_number == f"SETTLE-{timezone.now().year}-0001"
    assert list(settlement.loads.all()) == [completed_load]
    assert Notification.objects.filter(recipient_id=driver.pk, type='SETTLEMENT_READY').exists()

    with pytest.raises(ConflictError):
        SettlementService(accountant).create_from_load(completed_load.pk)


def test_excess_deductions_persist_nothing(completed_load, accountant):
    with pytest.raises(ValidationError):
        SettlementService(accountant).create_from_load(
            completed_load.pk, deductions=[{'description': 'Too much', 'amount': Decimal('1100.00')}]
        )

    assert not DriverSettlement.objects.exists()
    assert not SettlementDeduction.objects.exists()


def test_settlement_requires_completed_load(draft_load, lifecycle, accountant):
    lifecycle.delivered(draft_load)

    with pytest.raises(ValidationError):
        SettlementService(accountant).create_from_load(draft_load.pk)


def test_settlement_approve_pay_and_dispute_flow(completed_load, accountant, driver):
    service = SettlementService(accountant)
    settlement = service.create_from_load(completed_load.pk)

    with pytest.raises(InvalidStatusTransition):
        service.mark_paid(settlement.pk, 'ACH')

    service.approve(settlement.pk)
    with pytest.raises(ValidationError):
        service.mark_paid(settlement.pk, '')
    paid = service.mark_paid(settlement.pk, 'DIRECT_DEPOSIT', payment_reference='DD-1')

    assert paid.status == SettlementStatus.PAID
    assert paid.paid_at is not None
    with pytest.raises(InvalidStatusTransition):
        SettlementService(driver).dispute(settlement.pk, 'Wrong amount')


def test_driver_disputes_own_settlement(completed_load, accountant, driver, other_driver, admin_user):
    settlement = SettlementService(accountant).create_from_load(completed_load.pk, notes='Week 12')

    with pytest.raises(PermissionDenied):
        SettlementService(other_driver).dispute(settlement.pk, 'Not mine')

    disputed = SettlementService(driver).dispute(settlement.pk, 'Missing detention pay')

    assert disputed.status == SettlementStatus.DISPUTED
    assert disputed.dispute_reason == 'Missing detention pay'
    assert disputed.notes.startswith('DISPUTED by driver on ')
    assert disputed.notes.endswith('Missing detention pay\n\nWeek 12')
    notice = Notification.objects.get(recipient_id=admin_user.pk, type='SETTLEMENT_DISPUTED')
    assert notice.priority == 'HIGH'

    with pytest.raises(ConflictError):
        SettlementService(driver).dispute(settlement.pk, 'Again')


def test_disputed_load_can_be_settled_again(completed_load, accountant, driver):
    first = SettlementService(accountant).create_from_load(completed_load.pk)
    SettlementService(driver).dispute(first.pk, 'Rate was wrong')

    second = SettlementService(accountant).create_from_load(completed_load.pk)

    assert second.pk != first.pk


def test_period_settlement_covers_loads_in_window(shipper_user, lifecycle, load_data, accountant, driver):
    first = lifecycle.completed(LoadLifecycleService(shipper_user).create_load(load_data), driver_pay=Decimal('600.00'))
    second = lifecycle.completed(LoadLifecycleService(shipper_user).create_load(load_data), driver_pay=Decimal('400.00'))
    start = timezone.now() - timedelta(days=1)
    end = timezone.now() + timedelta(days=1)

    settlement = SettlementService(accountant).create_for_period(
        driver.pk, start, end, deductions=[{'amount': Decimal('150.00')}]
    )

    assert set(settlement.loads.all()) == {first, second}
    assert settlement.gross_amount == Decimal('1000.00')
    assert settlement.net_amount == Decimal('850.00')

    with pytest.raises(ConflictError) as excinfo:
        SettlementService(accountant).create_for_period(driver.pk, start, end)
    assert first.load_number in str(excinfo.value.detail)


def test_pending_settlement_cannot_be_paid(completed_load, accountant):
    settlement = SettlementService(accountant).create_from_load(completed_load.pk)

    with pytest.raises(InvalidStatusTransition) as excinfo:
        SettlementService(accountant).mark_paid(settlement.pk, 'ACH')

    assert str(excinfo.value.detail) == 'Invalid status transition from PENDING to PAID'
    settlement.refresh_from_db()
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.paid_at is None


def test_settlement_payment_requires_method(completed_load, accountant):
    service = SettlementService(accountant)
    settlement = service.create_from_load(completed_load.pk)
    service.approve(settlement.pk)

    with pytest.raises(ValidationError) as excinfo:
        service.mark_paid(settlement.pk, None)

    assert 'payment_method' in excinfo.value.detail
    settlement.refresh_from_db()
    assert settlement.status == SettlementStatus.APPROVED
    assert settlement.payment_method == ''


def test_paid_settlement_cannot_be_disputed(completed_load, accountant, driver, admin_user):
    service = SettlementService(accountant)
    settlement = service.create_from_load(completed_load.pk)
    service.approve(settlement.pk)
    service.mark_paid(settlement.pk, 'ACH')

    with pytest.raises(InvalidStatusTransition):
        SettlementService(driver).dispute(settlement.pk, 'Short paid')

    settlement.refresh_from_db()
    assert settlement.status == SettlementStatus.PAID
    assert settlement.dispute_reason == ''
    assert not Notification.objects.filter(recipient_id=admin_user.pk, type='SETTLEMENT_DISPUTED').exists()


def test_period_settlement_names_loads_settled_individually(shipper_user, lifecycle, load_data, accountant, driver):
    settled = lifecycle.completed(LoadLifecycleService(shipper_user).create_load(load_data))
    open_load = lifecycle.completed(LoadLifecycleService(shipper_user).create_load(load_data))
    SettlementService(accountant).create_from_load(settled.pk)

    with pytest.raises(ConflictError) as excinfo:
        SettlementService(accountant).create_for_period(
            driver.pk, timezone.now() - timedelta(days=1), timezone.now() + timedelta(days=1)
        )

    message = str(excinfo.value.detail)
    assert settled.load_number in message
    assert open_load.load_number not in message
    assert DriverSettlement.objects.count() == 1

def test_invoice_from_load_uses_shipper_rate(completed_load, accountant):
    invoice = InvoiceService(accountant).create_from_load(completed_load.pk, tax_rate=Decimal('10'))

    item = invoice.line_items.get()
    assert item.description == f"Freight charges - Load {completed_load.load_number}"
    assert invoice.subtotal == Decimal('2500.00')
    assert invoice.tax_amount == Decimal('250.00')
    assert invoice.total == Decimal('2750.00')
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.due_date.date() == (timezone.now() + timedelta(days=30)).date()

    with pytest.raises(ConflictError):
        InvoiceService(accountant).create_from_load(completed_load.pk)


def test_invoice_update_only_in_draft(completed_load, accountant):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)

    invoice = service.update(invoice.pk, line_items=[
        {'description': 'Linehaul', 'quantity': 1, 'unit_price': Decimal('2000.00')},
        {'description': 'Fuel surcharge', 'quantity': 1, 'unit_price': Decimal('300.00')},
    ])
    assert invoice.total == Decimal('2300.00')
    assert invoice.line_items.count() == 2

    service.issue(invoice.pk)
    with pytest.raises(ValidationError):
        service.update(invoice.pk, notes='Too late')


def test_invoice_balance_follows_issue_and_payment(completed_load, accountant, shipper_user):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    client_id = completed_load.shipper_client_id

    service.issue(invoice.pk)
    assert ShipperClient.objects.get(pk=client_id).current_balance == Decimal('2500.00')
    assert Notification.objects.filter(recipient_id=shipper_user.pk, type='INVOICE_ISSUED').exists()

    paid = service.mark_paid(invoice.pk, 'WIRE', payment_reference='W-77')
    assert paid.status == InvoiceStatus.PAID
    assert ShipperClient.objects.get(pk=client_id).current_balance == Decimal('0.00')

    with pytest.raises(ConflictError):
        service.mark_paid(invoice.pk, 'WIRE')
    with pytest.raises(InvalidStatusTransition):
        service.cancel(invoice.pk, 'Changed mind')


def test_draft_invoice_must_be_issued_before_payment(completed_load, accountant):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    client_id = completed_load.shipper_client_id

    with pytest.raises(InvalidStatusTransition):
        service.mark_paid(invoice.pk, 'ACH')

    invoice.refresh_from_db()
    assert invoice.status == InvoiceStatus.DRAFT
    assert invoice.paid_at is None
    assert ShipperClient.objects.get(pk=client_id).current_balance == Decimal('0.00')

    service.issue(invoice.pk)
    service.mark_paid(invoice.pk, 'ACH')
    assert ShipperClient.objects.get(pk=client_id).current_balance == Decimal('0.00')


def test_overdue_invoice_payment_clears_balance(completed_load, accountant):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    service.issue(invoice.pk)
    InvoiceService.mark_overdue(now=timezone.now() + timedelta(days=31))

    paid = service.mark_paid(invoice.pk, 'CHECK', payment_reference='CHK-1001')

    assert paid.status == InvoiceStatus.PAID
    assert ShipperClient.objects.get(pk=completed_load.shipper_client_id).current_balance == Decimal('0.00')


def test_paid_invoice_cannot_be_cancelled(completed_load, accountant):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    service.issue(invoice.pk)
    service.mark_paid(invoice.pk, 'WIRE')

    with pytest.raises(InvalidStatusTransition) as excinfo:
        service.cancel(invoice.pk, 'Customer asked')

    assert 'PAID' in str(excinfo.value.detail)
    invoice.refresh_from_db()
    assert invoice.status == InvoiceStatus.PAID
    assert invoice.notes != 'Customer asked'

def test_cancelled_invoice_frees_the_load(completed_load, accountant):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    service.issue(invoice.pk)

    cancelled = service.cancel(invoice.pk, 'Billed wrong client')

    assert cancelled.status == InvoiceStatus.CANCELLED
    assert cancelled.notes == 'Billed wrong client'
    assert ShipperClient.objects.get(pk=completed_load.shipper_client_id).current_balance == Decimal('0.00')
    with pytest.raises(InvalidStatusTransition):
        service.mark_paid(invoice.pk, 'ACH')
    assert service.create_from_load(completed_load.pk).pk != invoice.pk


def test_mark_overdue(completed_load, accountant, shipper_user):
    service = InvoiceService(accountant)
    invoice = service.create_from_load(completed_load.pk)
    service.issue(invoice.pk)

    changed = InvoiceService.mark_overdue(now=timezone.now() + timedelta(days=31))

    assert [row.pk for row in changed] == [invoice.pk]
    invoice.refresh_from_db()
    assert invoice.status == InvoiceStatus.OVERDUE
    assert Notification.objects.filter(recipient_id=shipper_user.pk, type='INVOICE_OVERDUE').exists()


def test_invoice_api_scoping_and_stats(authenticate, completed_load, accountant, shipper_user, driver):
    created = authenticate(accountant).post(f"/api/v1/invoices/from-load/{completed_load.pk}/", {}, format='json')
    invoice_id = created.json()['data']['id']

    assert created.status_code == 201
    assert authenticate(shipper_user).get(f"/api/v1/invoices/{invoice_id}/").status_code == 200
    assert authenticate(shipper_user).get('/api/v1/invoices/').json()['pagination']['total'] == 1
    assert authenticate(driver).get('/api/v1/invoices/').status_code == 403
    assert authenticate(shipper_user).post(f"/api/v1/invoices/{invoice_id}/issue/").status_code == 403

    stats = authenticate(accountant).get('/api/v1/invoices/stats/overview/').json()['data']
    assert stats['total_invoices'] == 1
    assert stats['draft_invoices'] == 1
    assert stats['outstanding_revenue'] == '2500.00'


def test_settlement_api_driver_scoping(authenticate, completed_load, accountant, driver, other_driver):
    created = authenticate(accountant).post(
        f"/api/v1/settlements/from-load/{completed_load.pk}/",
        {'deductions': [{'description': 'Fuel', 'amount': '150.00', 'category': 'FUEL_ADVANCE'}]},
        format='json',
    )
    settlement_id = created.json()['data']['id']

    assert created.status_code == 201
    assert created.json()['data']['net_amount'] == '850.00'
    assert authenticate(driver).get('/api/v1/settlements/').json()['pagination']['total'] == 1
    assert authenticate(other_driver).get('/api/v1/settlements/').json()['pagination']['total'] == 0
    assert authenticate(other_driver).get(f"/api/v1/settlements/{settlement_id}/").status_code == 403

    response = authenticate(driver).post(f"/api/v1/settlements/{settlement_id}/dispute/", {}, format='json')
    assert response.status_code == 400
