"""
Views for the billing app.
"""
from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from apps.audit.decorators import audited
from apps.core.permissions import (
    ActionPermissionsMixin, HasRole, HasShipperPermission, IsDriver, IsInternalUser,
    is_driver, is_internal, is_shipper
)
from apps.core.responses import created_response, success_response
from .models import DriverSettlement, ShipperInvoice
from .serializers import (
    CancelSerializer, DisputeSerializer, DriverSettlementSerializer, InvoiceCreateSerializer,
    InvoiceUpdateSerializer, PaymentSerializer, SettlementApproveSerializer,
    SettlementFromLoadSerializer, SettlementPeriodSerializer, SettlementSummarySerializer,
    ShipperInvoiceSerializer
)
from .services import InvoiceService, SettlementService

ACCOUNTING = HasRole('ADMIN', 'ACCOUNTANT')


class InvoiceViewSet(ActionPermissionsMixin, viewsets.GenericViewSet):
    """
    Shipper invoices: creation from a completed load and the payment lifecycle.
    """
    serializer_class = ShipperInvoiceSerializer
    permission_classes = [IsAuthenticated, ACCOUNTING]
    permission_classes_by_action = {
        'list': [IsAuthenticated, IsInternalUser | HasShipperPermission('VIEW_INVOICES')],
        'retrieve': [IsAuthenticated, IsInternalUser | HasShipperPermission('VIEW_INVOICES')],
    }

    def get_queryset(self):
        user = self.request.user
        queryset = ShipperInvoice.objects.select_related('shipper_client', 'load').prefetch_related('line_items')

        if is_shipper(user):
            queryset = queryset.filter(shipper_client_id=user.shipper_client_id)
        elif not is_internal(user):
            return queryset.none()

        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('shipper_client_id') and is_internal(user):
            queryset = queryset.filter(shipper_client_id=params['shipper_client_id'])
        if params.get('date_from'):
            queryset = queryset.filter(issued_at__date__gte=params['date_from'])
        if params.get('date_to'):
            queryset = queryset.filter(issued_at__date__lte=params['date_to'])
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(
                Q(invoice_number__icontains=term) | Q(shipper_client__company_name__icontains=term)
            )
        return queryset

    def _invoice_response(self, invoice, message=None, created=False):
        data = ShipperInvoiceSerializer(invoice).data
        if created:
            return created_response(data, message)
        return success_response(data=data, message=message)

    def list(self, request):
        page = self.paginate_queryset(self.get_queryset())
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        return self._invoice_response(InvoiceService(request.user).get(pk))

    @action(detail=False, methods=['post'], url_path=r'from-load/(?P<load_id>[^/.]+)')
    @audited('CREATE', 'INVOICE', lookup_kwarg=None)
    def from_load(self, request, load_id=None):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = InvoiceService(request.user).create_from_load(load_id, **serializer.validated_data)
        return self._invoice_response(invoice, 'Invoice created successfully', created=True)

    @audited('UPDATE', 'INVOICE')
    def update(self, request, pk=None):
        serializer = InvoiceUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = InvoiceService(request.user).update(pk, **serializer.validated_data)
        return self._invoice_response(invoice, 'Invoice updated successfully')

    @action(detail=True, methods=['post'])
    @audited('ISSUE', 'INVOICE')
    def issue(self, request, pk=None):
        invoice = InvoiceService(request.user).issue(pk)
        return self._invoice_response(invoice, 'Invoice issued successfully')

    @action(detail=True, methods=['post'], url_path='mark-paid')
    @audited('MARK_PAID', 'INVOICE')
    def mark_paid(self, request, pk=None):
        serializer = PaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = InvoiceService(request.user).mark_paid(pk, **serializer.validated_data)
        return self._invoice_response(invoice, 'Invoice marked as paid')

    @action(detail=True, methods=['post'])
    @audited('CANCEL', 'INVOICE')
    def cancel(self, request, pk=None):
        serializer = CancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        invoice = InvoiceService(request.user).cancel(pk, serializer.validated_data['reason'])
        return self._invoice_response(invoice, 'Invoice cancelled')

    @action(detail=False, methods=['get'], url_path='stats/overview')
    def stats(self, request):
        params = request.query_params
        return success_response(data=InvoiceService.stats(
            params.get('shipper_client_id'), params.get('date_from'), params.get('date_to')
        ))


class SettlementViewSet(ActionPermissionsMixin, viewsets.GenericViewSet):
    """
    Driver settlements: creation, approval, payment and disputes.
    """
    serializer_class = DriverSettlementSerializer
    permission_classes = [IsAuthenticated, ACCOUNTING]
    permission_classes_by_action = {
        'list': [IsAuthenticated, IsInternalUser | IsDriver],
        'retrieve': [IsAuthenticated, IsInternalUser | IsDriver],
        'dispute': [IsAuthenticated, IsDriver],
    }

    def get_queryset(self):
        user = self.request.user
        queryset = DriverSettlement.objects.select_related('driver')

        if is_driver(user):
            queryset = queryset.filter(driver_id=user.pk)
        elif not is_internal(user):
            return queryset.none()

        params = self.request.query_params
        if params.get('driver_id') and is_internal(user):
            queryset = queryset.filter(driver_id=params['driver_id'])
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('date_from'):
            queryset = queryset.filter(period_end__date__gte=params['date_from'])
        if params.get('date_to'):
            queryset = queryset.filter(period_end__date__lte=params['date_to'])
        return queryset

    def _settlement_response(self, settlement, message=None, created=False):
        data = DriverSettlementSerializer(settlement).data
        if created:
            return created_response(data, message)
        return success_response(data=data, message=message)

    def list(self, request):
        page = self.paginate_queryset(self.get_queryset())
        return self.get_paginated_response(SettlementSummarySerializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        return self._settlement_response(SettlementService(request.user).get(pk))

    @action(detail=False, methods=['post'], url_path=r'from-load/(?P<load_id>[^/.]+)')
    @audited('CREATE', 'SETTLEMENT', lookup_kwarg=None)
    def from_load(self, request, load_id=None):
        serializer = SettlementFromLoadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService(request.user).create_from_load(load_id, **serializer.validated_data)
        return self._settlement_response(settlement, 'Settlement created successfully', created=True)

    @action(detail=False, methods=['post'], url_path='create-period')
    @audited('CREATE_PERIOD', 'SETTLEMENT', lookup_kwarg=None)
    def create_period(self, request):
        """
        Settle all of a driver's completed loads delivered inside a period.
        """
        serializer = SettlementPeriodSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService(request.user).create_for_period(**serializer.validated_data)
        return self._settlement_response(settlement, 'Period settlement created successfully', created=True)

    @action(detail=True, methods=['post'])
    @audited('APPROVE', 'SETTLEMENT')
    def approve(self, request, pk=None):
        serializer = SettlementApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService(request.user).approve(pk, serializer.validated_data['notes'])
        return self._settlement_response(settlement, 'Settlement approved')

    @action(detail=True, methods=['post'], url_path='mark-paid')
    @audited('MARK_PAID', 'SETTLEMENT')
    def mark_paid(self, request, pk=None):
        serializer = PaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService(request.user).mark_paid(pk, **serializer.validated_data)
        return self._settlement_response(settlement, 'Settlement marked as paid')

    @action(detail=True, methods=['post'])
    @audited('DISPUTE', 'SETTLEMENT')
    def dispute(self, request, pk=None):
        serializer = DisputeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService(request.user).dispute(pk, serializer.validated_data['reason'])
        return self._settlement_response(settlement, 'Settlement disputed')

    @action(detail=False, methods=['get'], url_path='stats/overview')
    def stats(self, request):
        params = request.query_params
        return success_response(data=SettlementService.stats(
            params.get('driver_id'), params.get('date_from'), params.get('date_to')
        ))
