"""
Serializers for the accounts app.
"""
from rest_framework import serializers

from apps.fleet.models import Driver
from .models import InternalUser, ShipperClient


class RegisterBaseSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(min_length=8, write_only=True)
    first_name = serializers.CharField(max_length=100)
    last_name = serializers.CharField(max_length=100)
    phone = serializers.CharField(max_length=20, required=False, allow_blank=True, default='')


class InternalUserRegisterSerializer(RegisterBaseSerializer):
    role = serializers.ChoiceField(choices=InternalUser.ROLE_CHOICES)
    department = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class ShipperUserRegisterSerializer(RegisterBaseSerializer):
    shipper_client_id = serializers.UUIDField()
    job_title = serializers.CharField(max_length=100, required=False, allow_blank=True, default='')


class DriverRegisterSerializer(RegisterBaseSerializer):
    driver_type = serializers.ChoiceField(choices=Driver.DRIVER_TYPE_CHOICES, default='COMPANY')
    license_number = serializers.CharField(max_length=50)
    license_state = serializers.CharField(min_length=2, max_length=2)
    license_expiry = serializers.DateField()
    medical_cert_expiry = serializers.DateField()
    hire_date = serializers.DateField(required=False, allow_null=True)
    pay_type = serializers.ChoiceField(choices=Driver.PAY_TYPE_CHOICES, default='PER_MILE')
    pay_rate = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False, allow_null=True)

    def validate_license_state(self, value):
        return value.upper()


class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(write_only=True)


class RefreshSerializer(serializers.Serializer):
    refresh_token = serializers.CharField()


class ChangePasswordSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True)


class ForgotPasswordSerializer(serializers.Serializer):
    email = serializers.EmailField()
    principal_type = serializers.ChoiceField(choices=['INTERNAL_USER', 'SHIPPER_USER', 'DRIVER'])


class ResetPasswordSerializer(serializers.Serializer):
    uid = serializers.CharField()
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True)


class ShipperClientSerializer(serializers.ModelSerializer):
    """
    Serializer for ShipperClient model.
    """
    user_count = serializers.SerializerMethodField()

    class Meta:
        model = ShipperClient
        fields = [
            'id', 'company_name', 'contact_name', 'contact_email', 'contact_phone',
            'billing_address', 'tax_id', 'payment_terms_days', 'credit_limit',
            'current_balance', 'status', 'user_count', 'created_at', 'updated_at'
        ]
        read_only_fields = ['id', 'current_balance', 'created_at', 'updated_at']

    def get_user_count(self, obj):
        return obj.users.count()
