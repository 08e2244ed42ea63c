# apps/core/authentication.py
from django.conf import settings
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken
from rest_framework_simplejwt.settings import api_settings
from rest_framework_simplejwt.tokens import RefreshToken


PRINCIPAL_TYPE_CLAIM = 'principal_type'


class PrincipalJWTAuthentication(JWTAuthentication):
    """
    JWT authentication over the three principal tables:
    - First checks the access token cookie
    - If missing or invalid, falls back to 'Authorization: Bearer <token>' header
    - Resolves the principal by the token's principal_type claim
    """

    def authenticate(self, request):
        # 1. Check cookies
        access_token = request.COOKIES.get(settings.SIMPLE_JWT['AUTH_COOKIE'])
        if access_token:
            try:
                validated_token = self.get_validated_token(access_token)
                return (self.get_user(validated_token), validated_token)
            except (InvalidToken, AuthenticationFailed):
                pass  # invalid/expired token in cookie → fall back to header

        # 2. Fallback to default header-based JWT auth
        header = self.get_header(request)
        if header is None:
            return None

        raw_token = self.get_raw_token(header)
        if raw_token is None:
            return None

        validated_token = self.get_validated_token(raw_token)
        return (self.get_user(validated_token), validated_token)

    def get_user(self, validated_token):
        from apps.accounts.models import get_principal_model

        try:
            principal_id = validated_token[api_settings.USER_ID_CLAIM]
            principal_type = validated_token[PRINCIPAL_TYPE_CLAIM]
        except KeyError:
            raise InvalidToken('Token contained no recognizable principal identification')

        model = get_principal_model(principal_type)
        if model is None:
            raise InvalidToken('Token carries an unknown principal type')

        try:
            principal = model.objects.get(pk=principal_id)
        except (model.DoesNotExist, ValueError):
            raise AuthenticationFailed('User not found', code='user_not_found')

        if not principal.is_active:
            raise AuthenticationFailed('User account is inactive', code='user_inactive')

        return principal


def issue_tokens(principal):
    """
    Build an access/refresh pair whose claims identify the principal.
    """
    refresh = RefreshToken()
    refresh[api_settings.USER_ID_CLAIM] = str(principal.pk)
    refresh[PRINCIPAL_TYPE_CLAIM] = principal.principal_type
    refresh['email'] = principal.email
    for claim, value in principal.token_claims().items():
        refresh[claim] = value

    return {
        'access_token': str(refresh.access_token),
        'refresh_token': str(refresh),
    }
