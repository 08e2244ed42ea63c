"""
Billing models: invoices owed by shipper clients and settlements
payable to drivers.
"""
from decimal import Decimal, ROUND_HALF_UP

from django.db import models

from apps.accounts.models import ShipperClient
from apps.core.models import BaseModel
from apps.fleet.models import Driver
from apps.loads.models import Load

CENT = Decimal('0.01')


def to_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


PAYMENT_METHOD_CHOICES = [
    ('ACH', 'ACH'),
    ('WIRE', 'Wire Transfer'),
    ('CHECK', 'Check'),
    ('CREDIT_CARD', 'Credit Card'),
    ('DIRECT_DEPOSIT', 'Direct Deposit'),
    ('OTHER', 'Other'),
]


class InvoiceStatus:
    DRAFT = 'DRAFT'
    SENT = 'SENT'
    PAID = 'PAID'
    OVERDUE = 'OVERDUE'
    CANCELLED = 'CANCELLED'

    CHOICES = [
        (DRAFT, 'Draft'),
        (SENT, 'Sent'),
        (PAID, 'Paid'),
        (OVERDUE, 'Overdue'),
        (CANCELLED, 'Cancelled'),
    ]
    OUTSTANDING = (SENT, OVERDUE)


class ShipperInvoice(BaseModel):
    """
    Receivable billed to a shipper client for a completed load.
    """
    invoice_number = models.CharField(max_length=20, unique=True)
    shipper_client = models.ForeignKey(ShipperClient, on_delete=models.PROTECT, related_name='invoices')
    load = models.ForeignKey(Load, on_delete=models.PROTECT, related_name='invoices')
    status = models.CharField(max_length=20, choices=InvoiceStatus.CHOICES, default=InvoiceStatus.DRAFT)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    tax_rate = models.DecimalField(max_digits=5, decimal_places=2, default=0)
    tax_amount = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    due_date = models.DateTimeField()
    issued_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    payment_reference = models.CharField(max_length=100, blank=True)
    notes = models.TextField(blank=True)
    created_by_id = models.UUIDField()

    class Meta:
        db_table = 'billing_shipper_invoice'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'due_date']),
            models.Index(fields=['shipper_client', 'status']),
        ]

    def __str__(self):
        return f"{self.invoice_number} ({self.status})"

    def recalculate(self):
        """
        Derive subtotal, tax and total from the current line items.
        """
        subtotal = sum((item.amount for item in self.line_items.all()), Decimal('0'))
        self.subtotal = to_money(subtotal)
        self.tax_amount = to_money(self.subtotal * Decimal(self.tax_rate) / Decimal('100'))
        self.total = self.subtotal + self.tax_amount


class InvoiceLineItem(BaseModel):
    invoice = models.ForeignKey(ShipperInvoice, on_delete=models.CASCADE, related_name='line_items')
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    amount = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = 'billing_invoice_line_item'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.description}: {self.amount}"


class SettlementStatus:
    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    PAID = 'PAID'
    DISPUTED = 'DISPUTED'

    CHOICES = [
        (PENDING, 'Pending'),
        (APPROVED, 'Approved'),
        (PAID, 'Paid'),
        (DISPUTED, 'Disputed'),
    ]


class DriverSettlement(BaseModel):
    """
    Payable to a driver covering one load or every load in a period.
    """
    settlement_number = models.CharField(max_length=20, unique=True)
    driver = models.ForeignKey(Driver, on_delete=models.PROTECT, related_name='settlements')
    loads = models.ManyToManyField(Load, related_name='settlements', db_table='billing_settlement_load')

    period_start = models.DateTimeField()
    period_end = models.DateTimeField()
    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    total_deductions = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    net_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=SettlementStatus.CHOICES, default=SettlementStatus.PENDING)

    approved_at = models.DateTimeField(null=True, blank=True)
    approved_by_id = models.UUIDField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    payment_method = models.CharField(max_length=20, choices=PAYMENT_METHOD_CHOICES, blank=True)
    payment_reference = models.CharField(max_length=100, blank=True)
    disputed_at = models.DateTimeField(null=True, blank=True)
    dispute_reason = models.TextField(blank=True)
    notes = models.TextField(blank=True)
    created_by_id = models.UUIDField()

    class Meta:
        db_table = 'billing_driver_settlement'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'status']),
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return f"{self.settlement_number} ({self.status})"


class SettlementDeduction(BaseModel):
    CATEGORY_CHOICES = [
        ('FUEL_ADVANCE', 'Fuel Advance'),
        ('CASH_ADVANCE', 'Cash Advance'),
        ('INSURANCE', 'Insurance'),
        ('EQUIPMENT_LEASE', 'Equipment Lease'),
        ('ESCROW', 'Escrow'),
        ('TOLLS', 'Tolls'),
        ('OTHER', 'Other'),
    ]

    settlement = models.ForeignKey(DriverSettlement, on_delete=models.CASCADE, related_name='deductions')
    description = models.CharField(max_length=500)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES, default='OTHER')

    class Meta:
        db_table = 'billing_settlement_deduction'
        ordering = ['created_at']

    def __str__(self):
        return f"{self.category}: {self.amount}"
