"""
Invoice and settlement computation.

Amounts are ``Decimal`` quantized to cents with ROUND_HALF_UP:
``tax = subtotal * rate / 100``, ``total = subtotal + tax`` and
``net = gross - sum(deductions)``.
"""
from datetime import timedelta
from decimal import Decimal, InvalidOperation

from django.db import transaction
from django.db.models import Count, F, Q, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from apps.accounts.models import ShipperClient
from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.core.models import next_document_number
from apps.core.permissions import ensure_invoice_access, ensure_settlement_access
from apps.fleet.models import Driver
from apps.loads.models import Load, LoadStatus
from apps.notifications.services import NotificationService
from .models import (
    DriverSettlement, InvoiceLineItem, InvoiceStatus, SettlementDeduction,
    SettlementStatus, ShipperInvoice, to_money
)
import logging

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = 'INV'
SETTLEMENT_NUMBER_PREFIX = 'SETTLE'
ZERO = Decimal('0.00')


def compute_invoice_totals(line_items, tax_rate):
    """
    Return ``(priced_items, subtotal, tax_amount, total)`` for a list of
    ``{description, quantity, unit_price}`` dicts.
    """
    priced = []
    for item in line_items:
        quantity = Decimal(str(item.get('quantity', 1)))
        unit_price = to_money(item['unit_price'])
        priced.append({
            'description': item['description'],
            'quantity': quantity,
            'unit_price': unit_price,
            'amount': to_money(quantity * unit_price),
        })

    subtotal = to_money(sum((item['amount'] for item in priced), ZERO))
    tax_amount = to_money(subtotal * Decimal(str(tax_rate)) / Decimal('100'))
    return priced, subtotal, tax_amount, subtotal + tax_amount


def compute_settlement_amounts(gross_amount, deductions):
    """
    Validate deductions and return ``(gross, total_deductions, net)``.
    Raises before anything is persisted when a deduction is negative or
    the net would go below zero.
    """
    gross = to_money(gross_amount)
    total = ZERO
    for index, deduction in enumerate(deductions):
        try:
            amount = to_money(deduction['amount'])
        except (KeyError, TypeError, InvalidOperation):
            raise ValidationError({'deductions': f"Deduction {index + 1} must have a numeric amount"})
        if amount < 0:
            raise ValidationError({'deductions': f"Deduction {index + 1} amount cannot be negative"})
        total += amount

    net = gross - total
    if net < 0:
        raise ValidationError({'deductions': 'Deductions exceed gross amount'})
    return gross, total, net


def _adjust_balance(shipper_client_id, delta):
    ShipperClient.objects.filter(pk=shipper_client_id).update(
        current_balance=F('current_balance') + delta, updated_at=timezone.now()
    )


class InvoiceService:
    """
    Receivables: one live invoice per completed load.
    """

    def __init__(self, actor):
        self.actor = actor

    def get(self, invoice_id):
        try:
            invoice = ShipperInvoice.objects.select_related('shipper_client', 'load').get(pk=invoice_id)
        except ShipperInvoice.DoesNotExist:
            raise NotFound('Invoice not found')
        ensure_invoice_access(self.actor, invoice)
        return invoice

    def _lock(self, invoice_id):
        try:
            return ShipperInvoice.objects.select_for_update().get(pk=invoice_id)
        except ShipperInvoice.DoesNotExist:
            raise NotFound('Invoice not found')

    def create_from_load(self, load_id, line_items=None, tax_rate=ZERO, notes=''):
        with transaction.atomic():
            try:
                load = Load.objects.alive().select_for_update().select_related('shipper_client').get(pk=load_id)
            except Load.DoesNotExist:
                raise NotFound('Load not found')

            if load.status != LoadStatus.COMPLETED:
                raise ValidationError({'load_id': 'Load must be completed before invoicing'})
            if load.invoices.exclude(status=InvoiceStatus.CANCELLED).exists():
                raise ConflictError('Invoice already exists for this load')

            if not line_items:
                if load.shipper_rate is None:
                    raise ValidationError({'line_items': 'Load has no shipper rate; line items are required'})
                line_items = [{
                    'description': f"Freight charges - Load {load.load_number}",
                    'quantity': 1,
                    'unit_price': load.shipper_rate,
                }]

            priced, subtotal, tax_amount, total = compute_invoice_totals(line_items, tax_rate)
            invoice = ShipperInvoice.objects.create(
                invoice_number=next_document_number(INVOICE_NUMBER_PREFIX),
                shipper_client=load.shipper_client,
                load=load,
                subtotal=subtotal,
                tax_rate=tax_rate,
                tax_amount=tax_amount,
                total=total,
                due_date=timezone.now() + timedelta(days=load.shipper_client.effective_payment_terms),
                notes=notes or '',
                created_by_id=self.actor.pk,
            )
            InvoiceLineItem.objects.bulk_create([
                InvoiceLineItem(invoice=invoice, **item) for item in priced
            ])

        logger.info(f"Created invoice {invoice.invoice_number} for load {load.load_number}: {total}")
        return invoice

    def update(self, invoice_id, line_items=None, tax_rate=None, notes=None):
        """
        Edit a DRAFT invoice. New line items replace the old ones.
        """
        with transaction.atomic():
            invoice = self._lock(invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise ValidationError({'status': 'Only draft invoices can be updated'})

            if tax_rate is not None:
                invoice.tax_rate = tax_rate
            if notes is not None:
                invoice.notes = notes
            if line_items:
                priced, _, _, _ = compute_invoice_totals(line_items, invoice.tax_rate)
                invoice.line_items.all().delete()
                InvoiceLineItem.objects.bulk_create([
                    InvoiceLineItem(invoice=invoice, **item) for item in priced
                ])

            invoice.recalculate()
            invoice.save()
        return invoice

    def issue(self, invoice_id):
        with transaction.atomic():
            invoice = self._lock(invoice_id)
            if invoice.status != InvoiceStatus.DRAFT:
                raise InvalidStatusTransition(invoice.status, InvoiceStatus.SENT)

            invoice.status = InvoiceStatus.SENT
            invoice.issued_at = timezone.now()
            invoice.save(update_fields=['status', 'issued_at', 'updated_at'])
            _adjust_balance(invoice.shipper_client_id, invoice.total)

            transaction.on_commit(lambda: _email_invoice(invoice.pk))

        NotificationService.notify_invoice_issued(invoice)
        logger.info(f"Issued invoice {invoice.invoice_number}")
        return invoice

    def mark_paid(self, invoice_id, payment_method, payment_reference='', paid_at=None):
        with transaction.atomic():
            invoice = self._lock(invoice_id)
            if invoice.status == InvoiceStatus.PAID:
                raise ConflictError('Invoice already paid')
            # Only SENT and OVERDUE invoices carry a client balance
            if invoice.status not in InvoiceStatus.OUTSTANDING:
                raise InvalidStatusTransition(invoice.status, InvoiceStatus.PAID)

            invoice.status = InvoiceStatus.PAID
            invoice.paid_at = paid_at or timezone.now()
            invoice.payment_method = payment_method
            invoice.payment_reference = payment_reference or ''
            invoice.save()
            _adjust_balance(invoice.shipper_client_id, -invoice.total)

        logger.info(f"Invoice {invoice.invoice_number} paid via {payment_method}")
        return invoice

    def cancel(self, invoice_id, reason=''):
        with transaction.atomic():
            invoice = self._lock(invoice_id)
            if invoice.status == InvoiceStatus.PAID:
                raise InvalidStatusTransition(invoice.status, InvoiceStatus.CANCELLED)
            if invoice.status == InvoiceStatus.CANCELLED:
                raise ConflictError('Invoice already cancelled')

            was_outstanding = invoice.status in InvoiceStatus.OUTSTANDING
            invoice.status = InvoiceStatus.CANCELLED
            if reason:
                invoice.notes = reason
            invoice.save(update_fields=['status', 'notes', 'updated_at'])
            if was_outstanding:
                _adjust_balance(invoice.shipper_client_id, -invoice.total)

        logger.info(f"Cancelled invoice {invoice.invoice_number}")
        return invoice

    @staticmethod
    def stats(shipper_client_id=None, date_from=None, date_to=None):
        queryset = ShipperInvoice.objects.all()
        if shipper_client_id:
            queryset = queryset.filter(shipper_client_id=shipper_client_id)
        if date_from:
            queryset = queryset.filter(issued_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(issued_at__date__lte=date_to)

        now = timezone.now()
        live = ~Q(status__in=[InvoiceStatus.PAID, InvoiceStatus.CANCELLED])
        totals = queryset.aggregate(
            total_invoices=Count('id'),
            paid_invoices=Count('id', filter=Q(status=InvoiceStatus.PAID)),
            overdue_invoices=Count('id', filter=Q(status__in=InvoiceStatus.OUTSTANDING, due_date__lt=now)),
            draft_invoices=Count('id', filter=Q(status=InvoiceStatus.DRAFT)),
            total_revenue=Sum('total'),
            paid_revenue=Sum('total', filter=Q(status=InvoiceStatus.PAID)),
            outstanding_revenue=Sum('total', filter=live),
        )
        for key in ('total_revenue', 'paid_revenue', 'outstanding_revenue'):
            totals[key] = f"{totals[key] or ZERO:.2f}"
        return totals

    @staticmethod
    def mark_overdue(now=None):
        """
        Flip SENT invoices past their due date to OVERDUE. Returns the
        invoices that changed.
        """
        now = now or timezone.now()
        changed = []
        candidates = ShipperInvoice.objects.filter(status=InvoiceStatus.SENT, due_date__lt=now)
        for invoice in candidates:
            updated = ShipperInvoice.objects.filter(pk=invoice.pk, status=InvoiceStatus.SENT).update(
                status=InvoiceStatus.OVERDUE, updated_at=now
            )
            if updated:
                invoice.status = InvoiceStatus.OVERDUE
                changed.append(invoice)
                NotificationService.notify_invoice_overdue(invoice)
        return changed


def _email_invoice(invoice_id):
    from apps.accounts.models import ShipperUser
    from apps.notifications.tasks import send_email_task

    invoice = ShipperInvoice.objects.get(pk=invoice_id)
    recipients = list(
        ShipperUser.objects.filter(shipper_client_id=invoice.shipper_client_id, is_active=True)
        .values_list('email', flat=True)
    )
    if not recipients:
        return
    try:
        send_email_task.delay(
            f"Invoice {invoice.invoice_number}",
            f"Invoice {invoice.invoice_number} for ${invoice.total} is due on {invoice.due_date:%Y-%m-%d}.",
            recipients,
        )
    except Exception as e:
        logger.warning(f"Could not queue invoice email for {invoice.invoice_number}: {str(e)}")


class SettlementService:
    """
    Payables: settlements for one completed load or a driver's period.
    """

    def __init__(self, actor):
        self.actor = actor

    def get(self, settlement_id):
        try:
            settlement = DriverSettlement.objects.select_related('driver').get(pk=settlement_id)
        except DriverSettlement.DoesNotExist:
            raise NotFound('Settlement not found')
        ensure_settlement_access(self.actor, settlement)
        return settlement

    def _lock(self, settlement_id):
        try:
            return DriverSettlement.objects.select_for_update().select_related('driver').get(pk=settlement_id)
        except DriverSettlement.DoesNotExist:
            raise NotFound('Settlement not found')

    def _create(self, driver, loads, gross, total_deductions, net, deductions, period_start, period_end, notes):
        settlement = DriverSettlement.objects.create(
            settlement_number=next_document_number(SETTLEMENT_NUMBER_PREFIX),
            driver=driver,
            period_start=period_start,
            period_end=period_end,
            gross_amount=gross,
            total_deductions=total_deductions,
            net_amount=net,
            notes=notes or '',
            created_by_id=self.actor.pk,
        )
        settlement.loads.set(loads)
        SettlementDeduction.objects.bulk_create([
            SettlementDeduction(
                settlement=settlement,
                description=deduction.get('description', ''),
                amount=to_money(deduction['amount']),
                category=deduction.get('category') or 'OTHER',
            )
            for deduction in deductions
        ])
        return settlement

    def create_from_load(self, load_id, deductions=None, notes=''):
        deductions = list(deductions or [])
        with transaction.atomic():
            try:
                load = Load.objects.alive().select_for_update().get(pk=load_id)
            except Load.DoesNotExist:
                raise NotFound('Load not found')

            if load.status != LoadStatus.COMPLETED:
                raise ValidationError({'load_id': 'Load must be completed before creating settlement'})
            if load.driver_pay is None:
                raise ValidationError({'load_id': 'Driver pay not set for this load'})

            assignments = list(load.assignments.filter(accepted_at__isnull=False, rejected_at__isnull=True))
            if len(assignments) != 1:
                raise NotFound('No accepted driver assignment found')
            if load.settlements.exclude(status=SettlementStatus.DISPUTED).exists():
                raise ConflictError('Settlement already exists for this load')

            gross, total_deductions, net = compute_settlement_amounts(load.driver_pay, deductions)
            settlement = self._create(
                assignments[0].driver, [load], gross, total_deductions, net, deductions,
                load.actual_pickup_time or load.pickup_date,
                load.actual_delivery_time or load.delivery_date,
                notes,
            )

        logger.info(f"Created settlement {settlement.settlement_number} for load {load.load_number}: net {net}")
        NotificationService.notify_settlement(settlement, 'SETTLEMENT_READY')
        return settlement

    def create_for_period(self, driver_id, period_start, period_end, deductions=None, notes=''):
        """
        Settle every completed load the driver delivered in
        ``[period_start, period_end)``.
        """
        deductions = list(deductions or [])
        if period_start >= period_end:
            raise ValidationError({'period_start': 'period_start must be before period_end'})

        try:
            driver = Driver.objects.get(pk=driver_id)
        except Driver.DoesNotExist:
            raise NotFound('Driver not found')

        with transaction.atomic():
            candidate_ids = list(
                Load.objects.alive().filter(
                    status=LoadStatus.COMPLETED,
                    actual_delivery_time__gte=period_start,
                    actual_delivery_time__lt=period_end,
                    assignments__driver=driver,
                    assignments__accepted_at__isnull=False,
                    assignments__rejected_at__isnull=True,
                ).values_list('pk', flat=True).distinct()
            )
            loads = list(
                Load.objects.select_for_update().filter(pk__in=candidate_ids).order_by('actual_delivery_time')
            )
            if not loads:
                raise NotFound('No completed loads found in period for this driver')

            settled = list(
                Load.objects.filter(
                    pk__in=candidate_ids,
                    settlements__status__in=[SettlementStatus.PENDING, SettlementStatus.APPROVED, SettlementStatus.PAID],
                )
                .values_list('load_number', flat=True).distinct()
            )
            if settled:
                raise ConflictError(f"Settlement already exists for loads: {', '.join(sorted(settled))}")

            gross_total = sum((load.driver_pay or ZERO for load in loads), ZERO)
            gross, total_deductions, net = compute_settlement_amounts(gross_total, deductions)
            settlement = self._create(
                driver, loads, gross, total_deductions, net, deductions, period_start, period_end, notes
            )

        logger.info(f"Created period settlement {settlement.settlement_number} covering {len(loads)} loads")
        NotificationService.notify_settlement(settlement, 'SETTLEMENT_READY')
        return settlement

    def approve(self, settlement_id, notes=''):
        with transaction.atomic():
            settlement = self._lock(settlement_id)
            if settlement.status != SettlementStatus.PENDING:
                raise InvalidStatusTransition(settlement.status, SettlementStatus.APPROVED)

            settlement.status = SettlementStatus.APPROVED
            settlement.approved_at = timezone.now()
            settlement.approved_by_id = self.actor.pk
            if notes:
                settlement.notes = notes
            settlement.save()

        NotificationService.notify_settlement(settlement, 'SETTLEMENT_APPROVED')
        return settlement

    def mark_paid(self, settlement_id, payment_method, payment_reference='', paid_at=None):
        if not payment_method:
            raise ValidationError({'payment_method': 'Payment method is required'})

        with transaction.atomic():
            settlement = self._lock(settlement_id)
            if settlement.status != SettlementStatus.APPROVED:
                raise InvalidStatusTransition(settlement.status, SettlementStatus.PAID)

            settlement.status = SettlementStatus.PAID
            settlement.paid_at = paid_at or timezone.now()
            settlement.payment_method = payment_method
            settlement.payment_reference = payment_reference or ''
            settlement.save()

        NotificationService.notify_settlement(settlement, 'SETTLEMENT_PAID')
        return settlement

    def dispute(self, settlement_id, reason):
        if not reason or not reason.strip():
            raise ValidationError({'reason': 'Dispute reason is required'})

        with transaction.atomic():
            settlement = self._lock(settlement_id)
            ensure_settlement_access(self.actor, settlement)
            if settlement.status == SettlementStatus.DISPUTED:
                raise ConflictError('Settlement already disputed')
            if settlement.status == SettlementStatus.PAID:
                raise InvalidStatusTransition(settlement.status, SettlementStatus.DISPUTED)

            now = timezone.now()
            settlement.status = SettlementStatus.DISPUTED
            settlement.disputed_at = now
            settlement.dispute_reason = reason
            settlement.notes = f"DISPUTED by driver on {now.isoformat()}:\n{reason}\n\n{settlement.notes}".rstrip()
            settlement.save()

        NotificationService.notify_settlement_disputed(settlement)
        return settlement

    @staticmethod
    def stats(driver_id=None, date_from=None, date_to=None):
        queryset = DriverSettlement.objects.all()
        if driver_id:
            queryset = queryset.filter(driver_id=driver_id)
        if date_from:
            queryset = queryset.filter(period_end__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(period_end__date__lte=date_to)

        open_statuses = Q(status__in=[SettlementStatus.PENDING, SettlementStatus.APPROVED])
        totals = queryset.aggregate(
            total_settlements=Count('id'),
            paid_settlements=Count('id', filter=Q(status=SettlementStatus.PAID)),
            pending_settlements=Count('id', filter=Q(status=SettlementStatus.PENDING)),
            approved_settlements=Count('id', filter=Q(status=SettlementStatus.APPROVED)),
            disputed_settlements=Count('id', filter=Q(status=SettlementStatus.DISPUTED)),
            total_paid=Sum('net_amount', filter=Q(status=SettlementStatus.PAID)),
            total_pending=Sum('net_amount', filter=open_statuses),
            total_gross=Sum('gross_amount'),
            total_deductions=Sum('total_deductions'),
        )
        for key in ('total_paid', 'total_pending', 'total_gross', 'total_deductions'):
            totals[key] = f"{totals[key] or ZERO:.2f}"
        return totals
