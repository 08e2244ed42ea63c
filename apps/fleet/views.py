"""
Views for the fleet app.
"""
from django.db.models import Q
from rest_framework import mixins, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated

from apps.audit.decorators import audited
from apps.billing.serializers import SettlementSummarySerializer
from apps.core.permissions import (
    ActionPermissionsMixin, HasRole, IsDriver, IsInternalUser, ensure_driver_self
)
from apps.core.responses import created_response, success_response
from apps.loads.models import LoadAssignment
from apps.loads.serializers import LoadAssignmentSerializer, ReasonSerializer
from apps.loads.services import AssignmentService
from .models import Driver, Vehicle
from .serializers import (
    AvailabilitySerializer, DriverSerializer, DriverUpdateSerializer,
    MaintenanceRecordSerializer, VehicleAssignInputSerializer,
    VehicleAssignmentSerializer, VehicleSerializer
)
from .services import DriverService, VehicleService
import logging

logger = logging.getLogger(__name__)

DISPATCH = HasRole('ADMIN', 'DISPATCHER')


def _flag(value):
    return str(value).lower() in ('true', '1', 'yes')


class DriverViewSet(ActionPermissionsMixin, viewsets.GenericViewSet):
    """
    ViewSet for drivers: profile, activation, availability and metrics.
    """
    queryset = Driver.objects.all()
    serializer_class = DriverSerializer
    permission_classes = [IsAuthenticated]
    permission_classes_by_action = {
        'list': [IsAuthenticated, IsInternalUser],
        'update': [IsAuthenticated, DISPATCH],
        'partial_update': [IsAuthenticated, DISPATCH],
        'deactivate': [IsAuthenticated, HasRole('ADMIN')],
        'activate': [IsAuthenticated, HasRole('ADMIN')],
        'metrics': [IsAuthenticated, IsInternalUser],
    }

    def get_queryset(self):
        queryset = Driver.objects.all()
        params = self.request.query_params

        if params.get('is_active') is not None:
            queryset = queryset.filter(is_active=_flag(params['is_active']))
        if params.get('is_available') is not None:
            queryset = queryset.filter(is_available=_flag(params['is_available']))
        if params.get('driver_type'):
            queryset = queryset.filter(driver_type=params['driver_type'])
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(
                Q(first_name__icontains=term) |
                Q(last_name__icontains=term) |
                Q(email__icontains=term) |
                Q(license_number__icontains=term)
            )
        return queryset

    def get_object(self):
        ensure_driver_self(self.request.user, self.kwargs['pk'])
        return super().get_object()

    def _driver_response(self, driver, message=None):
        return success_response(data=self.get_serializer(driver).data, message=message)

    def list(self, request):
        page = self.paginate_queryset(self.get_queryset())
        return self.get_paginated_response(self.get_serializer(page, many=True).data)

    def retrieve(self, request, pk=None):
        return self._driver_response(self.get_object())

    @audited('UPDATE', 'DRIVER')
    def update(self, request, pk=None, partial=False):
        driver = self.get_object()
        serializer = DriverUpdateSerializer(driver, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        driver = serializer.save()
        return self._driver_response(driver, 'Driver updated successfully')

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    @action(detail=True, methods=['post'])
    @audited('DEACTIVATE', 'DRIVER')
    def deactivate(self, request, pk=None):
        driver = DriverService().deactivate(self.get_object().pk)
        return self._driver_response(driver, 'Driver deactivated successfully')

    @action(detail=True, methods=['post'])
    @audited('ACTIVATE', 'DRIVER')
    def activate(self, request, pk=None):
        driver = DriverService().activate(self.get_object().pk)
        return self._driver_response(driver, 'Driver activated successfully')

    @action(detail=True, methods=['get'])
    def assignments(self, request, pk=None):
        driver = self.get_object()
        queryset = DriverService.assignments(driver.pk, request.query_params.get('status'))
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(LoadAssignmentSerializer(page, many=True).data)

    @action(detail=True, methods=['get'])
    def settlements(self, request, pk=None):
        driver = self.get_object()
        queryset = driver.settlements.all()
        if request.query_params.get('status'):
            queryset = queryset.filter(status=request.query_params['status'])
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(SettlementSummarySerializer(page, many=True).data)

    @action(detail=True, methods=['patch', 'put'])
    @audited('UPDATE_AVAILABILITY', 'DRIVER')
    def availability(self, request, pk=None):
        """
        Drivers toggle their own availability; internal users may toggle any.
        """
        driver = self.get_object()
        serializer = AvailabilitySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        driver = DriverService().set_availability(driver.pk, serializer.validated_data['is_available'])
        return self._driver_response(driver, 'Availability updated')

    @action(detail=True, methods=['get'])
    def metrics(self, request, pk=None):
        return success_response(data=DriverService.metrics(pk))


class DriverAssignmentViewSet(viewsets.GenericViewSet):
    """
    Driver-side acceptance or rejection of a load assignment.
    """
    queryset = LoadAssignment.objects.select_related('load', 'driver')
    serializer_class = LoadAssignmentSerializer
    permission_classes = [IsAuthenticated, IsDriver]

    @action(detail=True, methods=['post'])
    @audited('ACCEPT_ASSIGNMENT', 'LOAD_ASSIGNMENT')
    def accept(self, request, pk=None):
        assignment = AssignmentService(request.user).accept(pk)
        return success_response(data=LoadAssignmentSerializer(assignment).data, message='Assignment accepted')

    @action(detail=True, methods=['post'])
    @audited('REJECT_ASSIGNMENT', 'LOAD_ASSIGNMENT')
    def reject(self, request, pk=None):
        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = AssignmentService(request.user).reject(pk, serializer.validated_data['reason'])
        return success_response(data=LoadAssignmentSerializer(assignment).data, message='Assignment rejected')


class VehicleViewSet(ActionPermissionsMixin, mixins.ListModelMixin, viewsets.GenericViewSet):
    """
    ViewSet for fleet vehicles, their driver bindings and maintenance.
    """
    serializer_class = VehicleSerializer
    permission_classes = [IsAuthenticated, DISPATCH]
    permission_classes_by_action = {
        'create': [IsAuthenticated, HasRole('ADMIN')],
    }

    def get_queryset(self):
        queryset = Vehicle.objects.all()
        params = self.request.query_params

        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('equipment_type'):
            queryset = queryset.filter(equipment_type=params['equipment_type'])
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(
                Q(unit_number__icontains=term) |
                Q(vin__icontains=term) |
                Q(plate_number__icontains=term) |
                Q(make__icontains=term) |
                Q(model__icontains=term)
            )
        return queryset

    def retrieve(self, request, pk=None):
        vehicle = self.get_object()
        data = self.get_serializer(vehicle).data
        data['assignments'] = VehicleAssignmentSerializer(vehicle.assignments.select_related('driver'), many=True).data
        data['maintenance_records'] = MaintenanceRecordSerializer(vehicle.maintenance_records.all()[:10], many=True).data
        return success_response(data=data)

    @audited('CREATE', 'VEHICLE')
    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        vehicle = serializer.save()
        logger.info(f"Created vehicle {vehicle.unit_number}")
        return created_response(serializer.data, 'Vehicle created successfully')

    @audited('UPDATE', 'VEHICLE')
    def update(self, request, pk=None, partial=False):
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success_response(data=serializer.data, message='Vehicle updated successfully')

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    @action(detail=True, methods=['post'])
    @audited('ASSIGN', 'VEHICLE')
    def assign(self, request, pk=None):
        vehicle = self.get_object()
        serializer = VehicleAssignInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        assignment = VehicleService().assign(
            vehicle.pk, serializer.validated_data['driver_id'], serializer.validated_data['notes']
        )
        return success_response(
            data=VehicleAssignmentSerializer(assignment).data,
            message='Vehicle assigned successfully'
        )

    @action(detail=True, methods=['post'])
    @audited('UNASSIGN', 'VEHICLE')
    def unassign(self, request, pk=None):
        vehicle = self.get_object()
        VehicleService().unassign(vehicle.pk)
        return success_response(message='Vehicle unassigned successfully')

    @action(detail=True, methods=['get', 'post'])
    def maintenance(self, request, pk=None):
        vehicle = self.get_object()
        if request.method == 'GET':
            page = self.paginate_queryset(vehicle.maintenance_records.all())
            return self.get_paginated_response(MaintenanceRecordSerializer(page, many=True).data)

        serializer = MaintenanceRecordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        record = VehicleService().add_maintenance(vehicle.pk, serializer.validated_data)
        return created_response(MaintenanceRecordSerializer(record).data, 'Maintenance record added')
