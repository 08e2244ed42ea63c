"""
Admin configuration for the billing app.
"""
from django.contrib import admin
from .models import DriverSettlement, InvoiceLineItem, SettlementDeduction, ShipperInvoice


class InvoiceLineItemInline(admin.TabularInline):
    model = InvoiceLineItem
    extra = 0


class SettlementDeductionInline(admin.TabularInline):
    model = SettlementDeduction
    extra = 0


@admin.register(ShipperInvoice)
class ShipperInvoiceAdmin(admin.ModelAdmin):
    list_display = ['invoice_number', 'shipper_client', 'load', 'status', 'total', 'due_date', 'paid_at']
    list_filter = ['status', 'payment_method']
    search_fields = ['invoice_number', 'shipper_client__company_name', 'load__load_number']
    readonly_fields = ['invoice_number', 'subtotal', 'tax_amount', 'total', 'created_at', 'updated_at']
    inlines = [InvoiceLineItemInline]


@admin.register(DriverSettlement)
class DriverSettlementAdmin(admin.ModelAdmin):
    list_display = ['settlement_number', 'driver', 'status', 'gross_amount', 'total_deductions', 'net_amount', 'period_end']
    list_filter = ['status']
    search_fields = ['settlement_number', 'driver__email', 'driver__last_name']
    readonly_fields = ['settlement_number', 'gross_amount', 'total_deductions', 'net_amount', 'created_at']
    filter_horizontal = ['loads']
    inlines = [SettlementDeductionInline]
