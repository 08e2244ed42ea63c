"""
Serializers for the billing app.
"""
from rest_framework import serializers

from .models import (
    PAYMENT_METHOD_CHOICES, DriverSettlement, InvoiceLineItem, SettlementDeduction, ShipperInvoice
)


class InvoiceLineItemSerializer(serializers.ModelSerializer):

    class Meta:
        model = InvoiceLineItem
        fields = ['id', 'description', 'quantity', 'unit_price', 'amount']


class ShipperInvoiceSerializer(serializers.ModelSerializer):
    """
    Invoice with line items and client/load references.
    """
    line_items = InvoiceLineItemSerializer(many=True, read_only=True)
    company_name = serializers.CharField(source='shipper_client.company_name', read_only=True)
    load_number = serializers.CharField(source='load.load_number', read_only=True)

    class Meta:
        model = ShipperInvoice
        fields = [
            'id', 'invoice_number', 'shipper_client', 'company_name', 'load', 'load_number',
            'status', 'subtotal', 'tax_rate', 'tax_amount', 'total', 'due_date', 'issued_at',
            'paid_at', 'payment_method', 'payment_reference', 'notes', 'line_items',
            'created_by_id', 'created_at', 'updated_at'
        ]


class LineItemInputSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500)
    quantity = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, default=1)
    unit_price = serializers.DecimalField(max_digits=12, decimal_places=2)


class InvoiceCreateSerializer(serializers.Serializer):
    line_items = LineItemInputSerializer(many=True, required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, default=0)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class InvoiceUpdateSerializer(serializers.Serializer):
    line_items = LineItemInputSerializer(many=True, required=False)
    tax_rate = serializers.DecimalField(max_digits=5, decimal_places=2, min_value=0, max_value=100, required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class PaymentSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PAYMENT_METHOD_CHOICES)
    payment_reference = serializers.CharField(required=False, allow_blank=True, default='')
    paid_at = serializers.DateTimeField(required=False, allow_null=True)


class CancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default='')


class SettlementDeductionSerializer(serializers.ModelSerializer):

    class Meta:
        model = SettlementDeduction
        fields = ['id', 'description', 'amount', 'category']


class SettlementSummarySerializer(serializers.ModelSerializer):

    class Meta:
        model = DriverSettlement
        fields = [
            'id', 'settlement_number', 'driver', 'period_start', 'period_end',
            'gross_amount', 'total_deductions', 'net_amount', 'status', 'paid_at', 'created_at'
        ]


class DriverSettlementSerializer(serializers.ModelSerializer):
    """
    Settlement with deductions and the loads it covers.
    """
    deductions = SettlementDeductionSerializer(many=True, read_only=True)
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)
    loads = serializers.SerializerMethodField()

    class Meta:
        model = DriverSettlement
        fields = [
            'id', 'settlement_number', 'driver', 'driver_name', 'loads', 'period_start',
            'period_end', 'gross_amount', 'total_deductions', 'net_amount', 'status',
            'approved_at', 'approved_by_id', 'paid_at', 'payment_method', 'payment_reference',
            'disputed_at', 'dispute_reason', 'notes', 'deductions', 'created_by_id',
            'created_at', 'updated_at'
        ]

    def get_loads(self, obj):
        return [
            {'id': str(load.pk), 'load_number': load.load_number, 'driver_pay': str(load.driver_pay)}
            for load in obj.loads.all()
        ]


class DeductionInputSerializer(serializers.Serializer):
    description = serializers.CharField(max_length=500, required=False, allow_blank=True, default='')
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    category = serializers.ChoiceField(choices=SettlementDeduction.CATEGORY_CHOICES, default='OTHER')


class SettlementFromLoadSerializer(serializers.Serializer):
    deductions = DeductionInputSerializer(many=True, required=False, default=list)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class SettlementPeriodSerializer(serializers.Serializer):
    driver_id = serializers.UUIDField()
    period_start = serializers.DateTimeField()
    period_end = serializers.DateTimeField()
    deductions = DeductionInputSerializer(many=True, required=False, default=list)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate(self, data):
        if data['period_start'] >= data['period_end']:
            raise serializers.ValidationError('period_start must be before period_end')
        return data


class SettlementApproveSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class DisputeSerializer(serializers.Serializer):
    reason = serializers.CharField()
