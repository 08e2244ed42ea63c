"""
Views for the loads app.
"""
from django.db.models import Q
from rest_framework import mixins, status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from apps.audit.decorators import audited
from apps.core.models import INTERNAL_USER, SHIPPER_USER
from apps.core.permissions import (
    ActionPermissionsMixin, HasPrincipalType, HasRole, HasShipperPermission,
    IsDriver, IsShipperUser, ensure_load_access, is_driver, is_internal, is_shipper
)
from apps.core.responses import created_response, success_response
from .models import Load, LoadNegotiation
from .serializers import (
    LoadApproveSerializer, LoadAssignSerializer, LoadAssignmentSerializer,
    LoadCreateSerializer, LoadNegotiationSerializer, LoadSerializer,
    LoadStatusHistorySerializer, LoadStatusUpdateSerializer, LoadSummarySerializer,
    LoadUpdateSerializer, NegotiationCreateSerializer, NotesSerializer, ReasonSerializer
)
from .services import LoadLifecycleService, NegotiationService
import logging

logger = logging.getLogger(__name__)

DISPATCH = HasRole('ADMIN', 'DISPATCHER')


class LoadViewSet(ActionPermissionsMixin, viewsets.ModelViewSet):
    """
    ViewSet for managing loads and driving their lifecycle.
    """
    permission_classes = [IsAuthenticated]
    permission_classes_by_action = {
        'create': [IsAuthenticated, HasShipperPermission('CREATE_LOAD')],
        'update': [IsAuthenticated, DISPATCH | IsShipperUser],
        'partial_update': [IsAuthenticated, DISPATCH | IsShipperUser],
        'destroy': [IsAuthenticated, HasPrincipalType(INTERNAL_USER, SHIPPER_USER)],
        'submit': [IsAuthenticated, IsShipperUser],
        'approve': [IsAuthenticated, DISPATCH],
        'assign': [IsAuthenticated, DISPATCH],
        'cancel': [IsAuthenticated, DISPATCH | IsShipperUser],
        'negotiate': [IsAuthenticated, DISPATCH | IsShipperUser],
        'update_status': [IsAuthenticated, DISPATCH | IsDriver],
    }

    def get_queryset(self):
        user = self.request.user
        queryset = Load.objects.alive().select_related('shipper_client')

        if is_shipper(user):
            queryset = queryset.filter(shipper_client_id=user.shipper_client_id)
        elif is_driver(user):
            queryset = queryset.filter(assignments__driver_id=user.pk).distinct()
        elif not is_internal(user):
            return queryset.none()

        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('equipment_type'):
            queryset = queryset.filter(equipment_type=params['equipment_type'])
        if params.get('shipper_client_id') and is_internal(user):
            queryset = queryset.filter(shipper_client_id=params['shipper_client_id'])
        if params.get('pickup_from'):
            queryset = queryset.filter(pickup_date__date__gte=params['pickup_from'])
        if params.get('pickup_to'):
            queryset = queryset.filter(pickup_date__date__lte=params['pickup_to'])
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(
                Q(load_number__icontains=term) |
                Q(origin__icontains=term) |
                Q(destination__icontains=term) |
                Q(commodity__icontains=term)
            )
        return queryset

    def get_serializer_class(self):
        if self.action == 'list':
            return LoadSummarySerializer
        if self.action == 'create':
            return LoadCreateSerializer
        if self.action in ('update', 'partial_update'):
            return LoadUpdateSerializer
        return LoadSerializer

    def get_object(self):
        load = super().get_object()
        ensure_load_access(self.request.user, load)
        return load

    def _load_response(self, load, message, status_code=status.HTTP_200_OK):
        data = LoadSerializer(load, context=self.get_serializer_context()).data
        return success_response(data=data, message=message, status_code=status_code)

    def retrieve(self, request, pk=None):
        load = self.get_object()
        return self._load_response(load, None)

    @audited('CREATE', 'LOAD')
    def create(self, request):
        """
        Create a DRAFT load for the caller's shipper client.
        """
        serializer = LoadCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        load = LoadLifecycleService(request.user).create_load(serializer.validated_data)
        return self._load_response(load, 'Load created successfully', status.HTTP_201_CREATED)

    @audited('UPDATE', 'LOAD')
    def update(self, request, pk=None, partial=False):
        load = self.get_object()
        serializer = LoadUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)

        load, diff = LoadLifecycleService(request.user).update_load(load.pk, serializer.validated_data)
        request.audit_changes = diff
        return self._load_response(load, 'Load updated successfully')

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    @audited('DELETE', 'LOAD')
    def destroy(self, request, pk=None):
        load = self.get_object()
        LoadLifecycleService(request.user).delete_load(load.pk)
        return success_response(message='Load deleted successfully')

    @action(detail=True, methods=['post'])
    @audited('SUBMIT', 'LOAD')
    def submit(self, request, pk=None):
        """
        Submit a DRAFT load for review.
        """
        load = self.get_object()
        load = LoadLifecycleService(request.user).submit(load.pk)
        return self._load_response(load, 'Load submitted for review')

    @action(detail=True, methods=['post'])
    @audited('APPROVE', 'LOAD')
    def approve(self, request, pk=None):
        """
        Schedule a rate-approved load and set the driver pay.
        """
        load = self.get_object()
        serializer = LoadApproveSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        load = LoadLifecycleService(request.user).approve(
            load.pk, serializer.validated_data['driver_pay'], serializer.validated_data['notes']
        )
        return self._load_response(load, 'Load approved and scheduled')

    @action(detail=True, methods=['post'])
    @audited('ASSIGN', 'LOAD')
    def assign(self, request, pk=None):
        """
        Assign a scheduled load to an available driver.
        """
        load = self.get_object()
        serializer = LoadAssignSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = LoadLifecycleService(request.user).assign(load.pk, **serializer.validated_data)
        return success_response(
            data=LoadAssignmentSerializer(assignment).data,
            message='Load assigned to driver',
            status_code=status.HTTP_201_CREATED
        )

    @action(detail=True, methods=['post'])
    @audited('CANCEL', 'LOAD')
    def cancel(self, request, pk=None):
        load = self.get_object()
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        load = LoadLifecycleService(request.user).cancel(load.pk, serializer.validated_data['reason'])
        return self._load_response(load, 'Load cancelled')

    @action(detail=True, methods=['post'], url_path='status')
    @audited('UPDATE_STATUS', 'LOAD')
    def update_status(self, request, pk=None):
        """
        Advance the load along the en-route/pickup/delivery progression.
        """
        load = self.get_object()
        serializer = LoadStatusUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        load = LoadLifecycleService(request.user).update_status(
            load.pk, data['status'], data['notes'], data.get('gps_lat'), data.get('gps_lng')
        )
        return self._load_response(load, 'Load status updated')

    @action(detail=True, methods=['get'], url_path='status-history')
    def status_history(self, request, pk=None):
        load = self.get_object()
        serializer = LoadStatusHistorySerializer(load.status_history.all(), many=True)
        return success_response(data=serializer.data)

    @action(detail=True, methods=['get'])
    def negotiations(self, request, pk=None):
        load = self.get_object()
        serializer = LoadNegotiationSerializer(load.negotiations.all(), many=True)
        return success_response(data=serializer.data)

    @action(detail=True, methods=['post'])
    @audited('NEGOTIATE', 'LOAD')
    def negotiate(self, request, pk=None):
        """
        Propose or counter a rate for the load.
        """
        load = self.get_object()
        serializer = NegotiationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        negotiation = NegotiationService(request.user).create(load.pk, **serializer.validated_data)
        return created_response(LoadNegotiationSerializer(negotiation).data, 'Negotiation created')


class NegotiationViewSet(ActionPermissionsMixin, viewsets.GenericViewSet):
    """
    Accept or reject an open rate negotiation.
    """
    queryset = LoadNegotiation.objects.select_related('load')
    permission_classes = [IsAuthenticated, DISPATCH | IsShipperUser]
    serializer_class = LoadNegotiationSerializer

    def get_object(self):
        negotiation = super().get_object()
        ensure_load_access(self.request.user, negotiation.load)
        return negotiation

    @action(detail=True, methods=['post'])
    @audited('ACCEPT_NEGOTIATION', 'LOAD')
    def accept(self, request, pk=None):
        negotiation = self.get_object()
        negotiation, load = NegotiationService(request.user).accept(negotiation.pk)
        return success_response(
            data={
                'negotiation': LoadNegotiationSerializer(negotiation).data,
                'load': LoadSerializer(load, context=self.get_serializer_context()).data,
            },
            message='Negotiation accepted'
        )

    @action(detail=True, methods=['post'])
    @audited('REJECT_NEGOTIATION', 'LOAD')
    def reject(self, request, pk=None):
        negotiation = self.get_object()
        serializer = NotesSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        negotiation = NegotiationService(request.user).reject(negotiation.pk, serializer.validated_data['notes'])
        return success_response(data=LoadNegotiationSerializer(negotiation).data, message='Negotiation rejected')
