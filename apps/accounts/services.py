"""
Authentication services: registration, login with lockout, token refresh
and password management for all three principal types.
"""
from django.conf import settings
from django.contrib.auth.tokens import PasswordResetTokenGenerator
from django.db import transaction
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework.exceptions import AuthenticationFailed, NotFound, PermissionDenied, ValidationError
from rest_framework_simplejwt.exceptions import TokenError
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import RefreshToken

from apps.core.authentication import PRINCIPAL_TYPE_CLAIM, issue_tokens
from apps.core.exceptions import AccountLocked, ConflictError
from apps.core.models import SHIPPER_USER
from .models import InternalUser, ShipperClient, ShipperUser, ShipperUserPermission, get_principal_model
import logging

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 8

password_reset_tokens = PasswordResetTokenGenerator()


class AuthService:
    """
    Service class for principal authentication.
    """

    @staticmethod
    def _ensure_unique_email(model, email):
        if model.objects.filter(email__iexact=email).exists():
            raise ConflictError('Email already registered')

    @transaction.atomic
    def register_internal_user(self, data):
        email = data.pop('email').lower()
        self._ensure_unique_email(InternalUser, email)

        password = data.pop('password')
        user = InternalUser(email=email, **data)
        user.set_password(password)
        user.save()

        logger.info(f"Registered internal user {user.email} ({user.role})")
        return user

    @transaction.atomic
    def register_shipper_user(self, data):
        email = data.pop('email').lower()
        client_id = data.pop('shipper_client_id')
        try:
            client = ShipperClient.objects.get(pk=client_id)
        except ShipperClient.DoesNotExist:
            raise NotFound('Shipper client not found')

        self._ensure_unique_email(ShipperUser, email)

        password = data.pop('password')
        user = ShipperUser(email=email, shipper_client=client, **data)
        user.set_password(password)
        user.save()

        ShipperUserPermission.objects.bulk_create([
            ShipperUserPermission(shipper_user=user, permission=permission)
            for permission in ShipperUserPermission.DEFAULT_PERMISSIONS
        ])

        logger.info(f"Registered shipper user {user.email} for {client.company_name}")
        return user

    @transaction.atomic
    def register_driver(self, data):
        from apps.fleet.models import Driver

        email = data.pop('email').lower()
        self._ensure_unique_email(Driver, email)
        if Driver.objects.filter(license_number=data['license_number']).exists():
            raise ConflictError('License number already registered')

        password = data.pop('password')
        driver = Driver(email=email, **data)
        driver.set_password(password)
        driver.save()

        logger.info(f"Registered driver {driver.email}")
        return driver

    def login(self, principal_type, email, password):
        """
        Verify credentials and return ``(principal, tokens)``.

        Five consecutive failures lock the account for the configured window;
        a success resets the counter.
        """
        model = get_principal_model(principal_type)
        principal = model.objects.filter(email__iexact=email).first()
        if principal is None:
            raise AuthenticationFailed('Invalid email or password')

        if principal.is_locked():
            raise AccountLocked()

        if not principal.check_password(password):
            principal.register_failed_login()
            logger.warning(f"Failed login for {principal_type} {principal.email} ({principal.failed_login_attempts} attempts)")
            if principal.is_locked():
                raise AccountLocked()
            raise AuthenticationFailed('Invalid email or password')

        if not principal.is_active:
            raise PermissionDenied('Account is deactivated')
        if principal_type == SHIPPER_USER and principal.shipper_client.status != 'ACTIVE':
            raise PermissionDenied('Shipper account is not active')

        principal.register_successful_login()
        logger.info(f"Successful login for {principal_type} {principal.email}")
        return principal, issue_tokens(principal)

    def refresh(self, raw_refresh_token):
        try:
            refresh = RefreshToken(raw_refresh_token)
        except TokenError as e:
            raise AuthenticationFailed(f"Invalid refresh token: {str(e)}")

        model = get_principal_model(refresh.get(PRINCIPAL_TYPE_CLAIM))
        if model is None:
            raise AuthenticationFailed('Invalid refresh token')

        principal = model.objects.filter(pk=refresh.get(api_settings.USER_ID_CLAIM)).first()
        if principal is None or not principal.is_active:
            raise AuthenticationFailed('User not found or inactive')

        return issue_tokens(principal)

    def change_password(self, principal, current_password, new_password):
        if not principal.check_password(current_password):
            raise ValidationError({'current_password': 'Current password is incorrect'})
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError({'new_password': f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})

        principal.set_password(new_password)
        principal.save(update_fields=['password', 'password_updated_at', 'updated_at'])
        logger.info(f"Password changed for {principal.principal_type} {principal.email}")

    def request_password_reset(self, principal_type, email):
        """
        Email a reset token when the principal exists. Callers always
        answer success so the endpoint does not reveal registered emails.
        """
        from apps.notifications.tasks import send_email_task

        model = get_principal_model(principal_type)
        principal = model.objects.filter(email__iexact=email, is_active=True).first()
        if principal is None:
            return None

        uid = urlsafe_base64_encode(force_bytes(f"{principal_type}:{principal.pk}"))
        token = password_reset_tokens.make_token(principal)
        link = f"{settings.TMS['FRONTEND_URL']}/reset-password?uid={uid}&token={token}"

        transaction.on_commit(lambda: send_email_task.delay(
            'Reset your password',
            f"Use the following link to reset your password: {link}",
            [principal.email],
        ))
        logger.info(f"Password reset requested for {principal_type} {principal.email}")
        return uid, token

    def reset_password(self, uid, token, new_password):
        try:
            principal_type, principal_id = force_str(urlsafe_base64_decode(uid)).split(':', 1)
        except (ValueError, TypeError):
            raise ValidationError('Invalid reset link')

        model = get_principal_model(principal_type)
        principal = model.objects.filter(pk=principal_id).first() if model else None
        if principal is None or not password_reset_tokens.check_token(principal, token):
            raise ValidationError('Invalid or expired reset link')
        if len(new_password) < MIN_PASSWORD_LENGTH:
            raise ValidationError({'new_password': f"Password must be at least {MIN_PASSWORD_LENGTH} characters"})

        principal.set_password(new_password)
        principal.failed_login_attempts = 0
        principal.locked_until = None
        principal.save(update_fields=['password', 'password_updated_at', 'failed_login_attempts', 'locked_until', 'updated_at'])
        logger.info(f"Password reset for {principal_type} {principal.email}")
        return principal
