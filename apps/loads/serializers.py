"""
Serializers for the loads app.
"""
from rest_framework import serializers

from apps.fleet.models import EQUIPMENT_TYPE_CHOICES
from mapping.utils import validate_coordinates
from .models import Load, LoadAssignment, LoadNegotiation, LoadStatus, LoadStatusEvent, LoadStatusHistory


class AddressSerializer(serializers.Serializer):
    street = serializers.CharField(required=False, allow_blank=True)
    city = serializers.CharField(required=False, allow_blank=True)
    state = serializers.CharField(required=False, allow_blank=True, max_length=2)
    zip = serializers.CharField(required=False, allow_blank=True, max_length=10)


class LoadStatusHistorySerializer(serializers.ModelSerializer):

    class Meta:
        model = LoadStatusHistory
        fields = ['id', 'from_status', 'to_status', 'changed_by_id', 'changed_by_type', 'notes', 'created_at']


class LoadStatusEventSerializer(serializers.ModelSerializer):

    class Meta:
        model = LoadStatusEvent
        fields = ['id', 'driver', 'status', 'notes', 'gps_lat', 'gps_lng', 'created_at']


class LoadAssignmentSerializer(serializers.ModelSerializer):
    """
    Serializer for LoadAssignment with a driver summary.
    """
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)
    load_number = serializers.CharField(source='load.load_number', read_only=True)
    load_status = serializers.CharField(source='load.status', read_only=True)

    class Meta:
        model = LoadAssignment
        fields = [
            'id', 'load', 'load_number', 'load_status', 'driver', 'driver_name',
            'assigned_by_id', 'assigned_at', 'estimated_pickup', 'estimated_delivery',
            'notes', 'accepted_at', 'rejected_at', 'rejection_reason', 'is_active'
        ]


class LoadNegotiationSerializer(serializers.ModelSerializer):
    agreed_rate = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = LoadNegotiation
        fields = [
            'id', 'load', 'initiated_by', 'initiated_by_id', 'proposed_rate',
            'counter_rate', 'agreed_rate', 'notes', 'status', 'responded_at',
            'responded_by_id', 'created_at'
        ]


class LoadSummarySerializer(serializers.ModelSerializer):
    """
    Lightweight serializer for load lists.
    """
    shipper_client_name = serializers.CharField(source='shipper_client.company_name', read_only=True)

    class Meta:
        model = Load
        fields = [
            'id', 'load_number', 'shipper_client', 'shipper_client_name', 'origin',
            'destination', 'equipment_type', 'weight_lbs', 'commodity',
            'pickup_date', 'delivery_date', 'shipper_rate', 'status', 'created_at'
        ]


class LoadSerializer(serializers.ModelSerializer):
    """
    Serializer for Load model with its active assignment.
    """
    shipper_client_name = serializers.CharField(source='shipper_client.company_name', read_only=True)
    active_assignment = serializers.SerializerMethodField()

    class Meta:
        model = Load
        fields = [
            'id', 'load_number', 'shipper_client', 'shipper_client_name', 'created_by',
            'origin', 'origin_address', 'origin_latitude', 'origin_longitude',
            'destination', 'destination_address', 'destination_latitude', 'destination_longitude',
            'distance_miles', 'equipment_type', 'weight_lbs', 'commodity',
            'special_instructions', 'pickup_date', 'pickup_window_end',
            'delivery_date', 'delivery_window_end', 'actual_pickup_time',
            'actual_delivery_time', 'shipper_rate', 'driver_pay',
            'approved_negotiation', 'status', 'active_assignment',
            'created_at', 'updated_at'
        ]

    def get_active_assignment(self, obj):
        assignment = obj.active_assignment
        return LoadAssignmentSerializer(assignment).data if assignment else None

    def to_representation(self, instance):
        data = super().to_representation(instance)
        user = self.context.get('request').user if self.context.get('request') else None
        # Driver pay is internal; shippers never see it.
        if getattr(user, 'principal_type', None) == 'SHIPPER_USER':
            data.pop('driver_pay', None)
        return data


class LoadCreateSerializer(serializers.Serializer):
    """
    Serializer for load creation input.
    """
    origin = serializers.CharField(max_length=500)
    origin_address = AddressSerializer(required=False)
    destination = serializers.CharField(max_length=500)
    destination_address = AddressSerializer(required=False)
    equipment_type = serializers.ChoiceField(choices=EQUIPMENT_TYPE_CHOICES)
    weight_lbs = serializers.IntegerField(min_value=1)
    commodity = serializers.CharField(max_length=200)
    special_instructions = serializers.CharField(required=False, allow_blank=True)
    pickup_date = serializers.DateTimeField()
    pickup_window_end = serializers.DateTimeField(required=False, allow_null=True)
    delivery_date = serializers.DateTimeField()
    delivery_window_end = serializers.DateTimeField(required=False, allow_null=True)
    shipper_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)

    def validate_origin(self, value):
        if not value.strip():
            raise serializers.ValidationError('Origin is required')
        return value.strip()

    def validate_destination(self, value):
        if not value.strip():
            raise serializers.ValidationError('Destination is required')
        return value.strip()

    def validate(self, data):
        pickup = data.get('pickup_date')
        delivery = data.get('delivery_date')
        if pickup and delivery and delivery <= pickup:
            raise serializers.ValidationError({'delivery_date': 'Delivery date must be after pickup date'})
        return data


class LoadUpdateSerializer(LoadCreateSerializer):

    def validate(self, data):
        return data


class LoadApproveSerializer(serializers.Serializer):
    driver_pay = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class LoadAssignSerializer(serializers.Serializer):
    driver_id = serializers.UUIDField()
    estimated_pickup = serializers.DateTimeField(required=False, allow_null=True)
    estimated_delivery = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class LoadStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=LoadStatus.CHOICES)
    notes = serializers.CharField(required=False, allow_blank=True, default='')
    gps_lat = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True)
    gps_lng = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True)

    def validate(self, data):
        lat, lng = data.get('gps_lat'), data.get('gps_lng')
        if (lat is None) != (lng is None):
            raise serializers.ValidationError('gps_lat and gps_lng must be provided together')
        if lat is not None and not validate_coordinates(float(lat), float(lng)):
            raise serializers.ValidationError('GPS coordinates are out of range')
        return data


class NegotiationCreateSerializer(serializers.Serializer):
    proposed_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    counter_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()


class NotesSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default='')
