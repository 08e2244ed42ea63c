"""
Serializers for the fleet app.
"""
from django.utils import timezone
from rest_framework import serializers

from apps.core.permissions import is_driver, is_internal
from .models import Driver, MaintenanceRecord, Vehicle, VehicleAssignment


class DriverSerializer(serializers.ModelSerializer):
    """
    Driver profile. Pay rate is only visible to admins, accountants and the
    driver themself.
    """
    full_name = serializers.CharField(read_only=True)
    current_vehicle = serializers.SerializerMethodField()

    class Meta:
        model = Driver
        fields = [
            'id', 'email', 'first_name', 'last_name', 'full_name', 'phone',
            'driver_type', 'license_number', 'license_state', 'license_expiry',
            'medical_cert_expiry', 'hire_date', 'termination_date', 'pay_type',
            'pay_rate', 'is_active', 'is_available', 'home_address',
            'emergency_contact', 'current_vehicle', 'last_login', 'created_at', 'updated_at'
        ]
        read_only_fields = fields

    def get_current_vehicle(self, obj):
        binding = obj.vehicle_assignments.filter(is_currently_assigned=True).select_related('vehicle').first()
        if binding is None:
            return None
        return {'id': str(binding.vehicle_id), 'unit_number': binding.vehicle.unit_number}

    def to_representation(self, instance):
        data = super().to_representation(instance)
        request = self.context.get('request')
        user = getattr(request, 'user', None)
        can_see_pay = is_internal(user, 'ADMIN', 'ACCOUNTANT') or (
            is_driver(user) and user.pk == instance.pk
        )
        if not can_see_pay:
            data.pop('pay_rate', None)
        return data


class DriverUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = Driver
        fields = [
            'first_name', 'last_name', 'phone', 'driver_type', 'license_number',
            'license_state', 'license_expiry', 'medical_cert_expiry', 'hire_date',
            'pay_type', 'pay_rate', 'home_address', 'emergency_contact'
        ]

    def validate_license_state(self, value):
        return value.upper()


class AvailabilitySerializer(serializers.Serializer):
    is_available = serializers.BooleanField()


class VehicleAssignmentSerializer(serializers.ModelSerializer):
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)
    unit_number = serializers.CharField(source='vehicle.unit_number', read_only=True)

    class Meta:
        model = VehicleAssignment
        fields = [
            'id', 'vehicle', 'unit_number', 'driver', 'driver_name', 'assigned_at',
            'unassigned_at', 'is_currently_assigned', 'notes'
        ]


class VehicleSerializer(serializers.ModelSerializer):
    """
    Serializer for Vehicle model.
    """
    current_assignment = serializers.SerializerMethodField()

    class Meta:
        model = Vehicle
        fields = [
            'id', 'unit_number', 'vin', 'plate_number', 'plate_state', 'make', 'model',
            'year', 'equipment_type', 'status', 'current_mileage', 'registration_expiry',
            'insurance_expiry', 'notes', 'current_assignment', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'created_at', 'updated_at']

    def get_current_assignment(self, obj):
        assignment = obj.current_assignment
        return VehicleAssignmentSerializer(assignment).data if assignment else None

    def validate_vin(self, value):
        value = value.upper()
        if len(value) != 17:
            raise serializers.ValidationError('VIN must be 17 characters')
        return value

    def validate_year(self, value):
        if value < 1980 or value > timezone.now().year + 1:
            raise serializers.ValidationError('Invalid model year')
        return value


class VehicleAssignInputSerializer(serializers.Serializer):
    driver_id = serializers.UUIDField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class MaintenanceRecordSerializer(serializers.ModelSerializer):

    class Meta:
        model = MaintenanceRecord
        fields = [
            'id', 'vehicle', 'service_type', 'description', 'serviced_at', 'serviced_by',
            'cost', 'mileage_at_service', 'next_service_due', 'next_service_mileage', 'created_at'
        ]
        read_only_fields = ['id', 'vehicle', 'created_at']
