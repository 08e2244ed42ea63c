"""
Authentication endpoints and shipper client management.
"""
from django.conf import settings
from django.db.models import Q
from rest_framework import viewsets
from rest_framework.decorators import action, api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.throttling import ScopedRateThrottle

from apps.core.authentication import issue_tokens
from apps.core.models import INTERNAL_USER, SHIPPER_USER, DRIVER
from apps.core.permissions import ActionPermissionsMixin, HasRole, IsInternalUser, is_internal, is_shipper
from apps.core.responses import created_response, success_response
from .models import ShipperClient
from .serializers import (
    ChangePasswordSerializer, DriverRegisterSerializer, ForgotPasswordSerializer,
    InternalUserRegisterSerializer, LoginSerializer, RefreshSerializer,
    ResetPasswordSerializer, ShipperClientSerializer, ShipperUserRegisterSerializer
)
from .services import AuthService
import logging

logger = logging.getLogger(__name__)


class AuthRateThrottle(ScopedRateThrottle):
    scope = 'auth'

    def get_cache_key(self, request, view):
        return self.cache_format % {'scope': self.scope, 'ident': self.get_ident(request)}


def _registration_response(principal, message):
    data = principal.describe()
    return created_response({'user': data, **issue_tokens(principal)}, message)


@api_view(['POST'])
@permission_classes([IsAuthenticated, HasRole('ADMIN')])
def register_internal(request):
    """
    Create a back-office user. Only admins may add staff.
    """
    serializer = InternalUserRegisterSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = AuthService().register_internal_user(dict(serializer.validated_data))
    return _registration_response(user, 'User registered successfully')


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def register_shipper(request):
    serializer = ShipperUserRegisterSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    user = AuthService().register_shipper_user(dict(serializer.validated_data))
    return _registration_response(user, 'User registered successfully')


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def register_driver(request):
    serializer = DriverRegisterSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    driver = AuthService().register_driver(dict(serializer.validated_data))
    return _registration_response(driver, 'Driver registered successfully')


def _login(request, principal_type):
    serializer = LoginSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)

    principal, tokens = AuthService().login(
        principal_type,
        serializer.validated_data['email'],
        serializer.validated_data['password']
    )
    response = success_response(data={'user': principal.describe(), **tokens}, message='Login successful')
    response.set_cookie(
        settings.SIMPLE_JWT['AUTH_COOKIE'],
        tokens['access_token'],
        max_age=int(settings.SIMPLE_JWT['ACCESS_TOKEN_LIFETIME'].total_seconds()),
        secure=settings.SIMPLE_JWT['AUTH_COOKIE_SECURE'],
        httponly=settings.SIMPLE_JWT['AUTH_COOKIE_HTTP_ONLY'],
        samesite=settings.SIMPLE_JWT['AUTH_COOKIE_SAMESITE'],
        path=settings.SIMPLE_JWT['AUTH_COOKIE_PATH'],
    )
    return response


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def login_internal(request):
    return _login(request, INTERNAL_USER)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def login_shipper(request):
    return _login(request, SHIPPER_USER)


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def login_driver(request):
    return _login(request, DRIVER)


@api_view(['POST'])
@permission_classes([AllowAny])
def refresh_token(request):
    """
    Exchange a refresh token for a new token pair.
    """
    serializer = RefreshSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    tokens = AuthService().refresh(serializer.validated_data['refresh_token'])
    return success_response(data=tokens, message='Token refreshed')


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def forgot_password(request):
    serializer = ForgotPasswordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    AuthService().request_password_reset(
        serializer.validated_data['principal_type'],
        serializer.validated_data['email']
    )
    return success_response(message='If the account exists, a password reset email has been sent')


@api_view(['POST'])
@permission_classes([AllowAny])
@throttle_classes([AuthRateThrottle])
def reset_password(request):
    serializer = ResetPasswordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    AuthService().reset_password(**serializer.validated_data)
    return success_response(message='Password reset successful')


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    return success_response(data=request.user.describe())


@api_view(['PUT', 'POST'])
@permission_classes([IsAuthenticated])
def change_password(request):
    serializer = ChangePasswordSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    AuthService().change_password(
        request.user,
        serializer.validated_data['current_password'],
        serializer.validated_data['new_password']
    )
    return success_response(message='Password changed successfully')


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def logout(request):
    response = success_response(message='Logged out successfully')
    response.delete_cookie(settings.SIMPLE_JWT['AUTH_COOKIE'], path=settings.SIMPLE_JWT['AUTH_COOKIE_PATH'])
    response.delete_cookie(settings.SIMPLE_JWT['AUTH_COOKIE_REFRESH'], path=settings.SIMPLE_JWT['AUTH_COOKIE_PATH'])
    return response


class ShipperClientViewSet(ActionPermissionsMixin, viewsets.ModelViewSet):
    """
    ViewSet for shipper client companies.
    """
    serializer_class = ShipperClientSerializer
    permission_classes = [IsAuthenticated]
    permission_classes_by_action = {
        'list': [IsAuthenticated, IsInternalUser],
        'create': [IsAuthenticated, HasRole('ADMIN')],
        'update': [IsAuthenticated, HasRole('ADMIN')],
        'partial_update': [IsAuthenticated, HasRole('ADMIN')],
        'destroy': [IsAuthenticated, HasRole('ADMIN')],
    }

    def get_queryset(self):
        user = self.request.user
        queryset = ShipperClient.objects.all()
        if is_shipper(user):
            return queryset.filter(pk=user.shipper_client_id)
        if not is_internal(user):
            return queryset.none()

        params = self.request.query_params
        if params.get('status'):
            queryset = queryset.filter(status=params['status'])
        if params.get('search'):
            term = params['search']
            queryset = queryset.filter(Q(company_name__icontains=term) | Q(contact_email__icontains=term))
        return queryset

    def retrieve(self, request, pk=None):
        return success_response(data=self.get_serializer(self.get_object()).data)

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        client = serializer.save()
        logger.info(f"Created shipper client {client.company_name}")
        return created_response(serializer.data, 'Shipper client created successfully')

    def update(self, request, pk=None, partial=False):
        serializer = self.get_serializer(self.get_object(), data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return success_response(data=serializer.data, message='Shipper client updated successfully')

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        client = self.get_object()
        client.status = 'INACTIVE'
        client.save(update_fields=['status', 'updated_at'])
        return success_response(message='Shipper client deactivated')

    @action(detail=True, methods=['get'])
    def users(self, request, pk=None):
        client = self.get_object()
        return success_response(data=[user.describe() for user in client.users.all()])
