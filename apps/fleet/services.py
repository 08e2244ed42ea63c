"""
Fleet services: vehicle-to-driver binding, driver status and driver
performance metrics.
"""
from decimal import Decimal

from django.db import transaction
from django.db.models import F, Sum
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from apps.loads.models import Load, LoadAssignment, LoadStatus
from .models import Driver, MaintenanceRecord, Vehicle, VehicleAssignment
import logging

logger = logging.getLogger(__name__)


def get_driver(driver_id):
    try:
        return Driver.objects.get(pk=driver_id)
    except Driver.DoesNotExist:
        raise NotFound('Driver not found')


class VehicleService:
    """
    Binds vehicles to drivers. A vehicle has at most one current
    assignment; the swap happens under a row lock on the vehicle.
    """

    @staticmethod
    def _lock_vehicle(vehicle_id):
        try:
            return Vehicle.objects.select_for_update().get(pk=vehicle_id)
        except Vehicle.DoesNotExist:
            raise NotFound('Vehicle not found')

    @staticmethod
    def _retire_current(vehicle, now):
        return VehicleAssignment.objects.filter(
            vehicle=vehicle, is_currently_assigned=True
        ).update(is_currently_assigned=False, unassigned_at=now, updated_at=now)

    def assign(self, vehicle_id, driver_id, notes=''):
        with transaction.atomic():
            vehicle = self._lock_vehicle(vehicle_id)
            if vehicle.status in ('OUT_OF_SERVICE', 'RETIRED'):
                raise ValidationError({'vehicle': f"Vehicle {vehicle.unit_number} is {vehicle.status} and cannot be assigned"})

            driver = get_driver(driver_id)
            if not driver.is_active:
                raise ValidationError({'driver_id': 'Driver is not active'})

            now = timezone.now()
            retired = self._retire_current(vehicle, now)
            assignment = VehicleAssignment.objects.create(
                vehicle=vehicle,
                driver=driver,
                notes=notes or '',
                is_currently_assigned=True,
            )

        logger.info(f"Vehicle {vehicle.unit_number} assigned to driver {driver.email} (retired {retired})")
        return assignment

    def unassign(self, vehicle_id):
        with transaction.atomic():
            vehicle = self._lock_vehicle(vehicle_id)
            retired = self._retire_current(vehicle, timezone.now())

        logger.info(f"Vehicle {vehicle.unit_number} unassigned ({retired} binding(s) retired)")
        return retired

    def add_maintenance(self, vehicle_id, record_data):
        try:
            vehicle = Vehicle.objects.get(pk=vehicle_id)
        except Vehicle.DoesNotExist:
            raise NotFound('Vehicle not found')

        with transaction.atomic():
            record = MaintenanceRecord.objects.create(vehicle=vehicle, **record_data)
            mileage = record_data.get('mileage_at_service')
            if mileage and mileage > vehicle.current_mileage:
                Vehicle.objects.filter(pk=vehicle.pk).update(current_mileage=mileage, updated_at=timezone.now())
        return record


class DriverService:
    """
    Driver activation and availability.
    """

    def deactivate(self, driver_id):
        driver = get_driver(driver_id)
        driver.is_active = False
        driver.is_available = False
        driver.termination_date = timezone.now().date()
        driver.save(update_fields=['is_active', 'is_available', 'termination_date', 'updated_at'])
        logger.info(f"Deactivated driver {driver.email}")
        return driver

    def activate(self, driver_id):
        driver = get_driver(driver_id)
        driver.is_active = True
        driver.termination_date = None
        driver.save(update_fields=['is_active', 'termination_date', 'updated_at'])
        logger.info(f"Activated driver {driver.email}")
        return driver

    def set_availability(self, driver_id, is_available):
        driver = get_driver(driver_id)
        if is_available and not driver.is_active:
            raise ValidationError({'is_available': 'An inactive driver cannot be made available'})
        driver.is_available = is_available
        driver.save(update_fields=['is_available', 'updated_at'])
        return driver

    @staticmethod
    def assignments(driver_id, status=None):
        queryset = LoadAssignment.objects.filter(driver_id=driver_id).select_related('load')
        if status == 'active':
            queryset = queryset.filter(load__status__in=LoadStatus.ACTIVE_ASSIGNMENT)
        elif status == 'completed':
            queryset = queryset.filter(load__status__in=LoadStatus.FINISHED)
        return queryset

    @staticmethod
    def metrics(driver_id):
        """
        Completed loads, on-time delivery rate, paid earnings and open work
        for one driver.
        """
        from apps.billing.models import DriverSettlement, SettlementStatus

        driver = get_driver(driver_id)
        completed = Load.objects.alive().filter(
            status=LoadStatus.COMPLETED,
            assignments__driver=driver,
            assignments__accepted_at__isnull=False,
        ).distinct()

        delivered = completed.filter(actual_delivery_time__isnull=False)
        delivered_count = delivered.count()
        on_time = delivered.filter(actual_delivery_time__lte=F('delivery_date')).count()
        on_time_percentage = (Decimal(on_time) * 100 / delivered_count) if delivered_count else Decimal('0')

        earnings = DriverSettlement.objects.filter(
            driver=driver, status=SettlementStatus.PAID
        ).aggregate(total=Sum('net_amount'))['total'] or Decimal('0')

        active = LoadAssignment.objects.filter(
            driver=driver, is_active=True, load__status__in=LoadStatus.ACTIVE_ASSIGNMENT
        ).count()

        return {
            'completed_loads': completed.count(),
            'on_time_delivery_percentage': f"{on_time_percentage:.2f}",
            'total_earnings': f"{earnings:.2f}",
            'active_assignments': active,
        }
