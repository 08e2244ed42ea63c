"""
Serializers for the pod app.
"""
from rest_framework import serializers

from mapping.utils import validate_coordinates
from .models import PodDocument, PodPhoto


class PodPhotoSerializer(serializers.ModelSerializer):
    mime_type = serializers.CharField(source='file.mime_type', read_only=True)

    class Meta:
        model = PodPhoto
        fields = ['id', 'photo_order', 'caption', 'mime_type', 'created_at']


class PodDocumentSerializer(serializers.ModelSerializer):
    """
    POD with its ordered photos and a driver summary.
    """
    photos = PodPhotoSerializer(many=True, read_only=True)
    driver_name = serializers.CharField(source='driver.full_name', read_only=True)
    load_number = serializers.CharField(source='load.load_number', read_only=True)
    is_verified = serializers.BooleanField(read_only=True)

    class Meta:
        model = PodDocument
        fields = [
            'id', 'load', 'load_number', 'driver', 'driver_name', 'recipient_name',
            'recipient_title', 'gps_lat', 'gps_lng', 'captured_at', 'notes', 'photos',
            'is_verified', 'verified_at', 'verified_by_id', 'is_approved',
            'verification_notes', 'created_at'
        ]


class PodSubmitSerializer(serializers.Serializer):
    load_id = serializers.UUIDField()
    signature = serializers.FileField()
    photos = serializers.ListField(child=serializers.FileField(), required=False, default=list)
    recipient_name = serializers.CharField(max_length=200)
    recipient_title = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')
    gps_lat = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True)
    gps_lng = serializers.DecimalField(max_digits=10, decimal_places=7, required=False, allow_null=True)
    captured_at = serializers.DateTimeField(required=False, allow_null=True)
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_photos(self, value):
        if len(value) > PodDocument.MAX_PHOTOS:
            raise serializers.ValidationError(f"At most {PodDocument.MAX_PHOTOS} photos may be attached")
        return value

    def validate(self, attrs):
        lat, lng = attrs.get('gps_lat'), attrs.get('gps_lng')
        if (lat is None) != (lng is None):
            raise serializers.ValidationError('gps_lat and gps_lng must be provided together')
        if lat is not None and not validate_coordinates(float(lat), float(lng)):
            raise serializers.ValidationError('Invalid GPS coordinates')
        return attrs


class PodVerifySerializer(serializers.Serializer):
    approved = serializers.BooleanField()
    notes = serializers.CharField(required=False, allow_blank=True, default='')
