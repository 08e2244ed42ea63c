"""
Project exceptions and the centralized DRF exception handler.

Every error leaves the API in the same envelope shape:
``{"success": false, "message": ..., "errors": [...]}``.
"""
import logging

from django.core.exceptions import ObjectDoesNotExist, ValidationError as DjangoValidationError
from django.db import IntegrityError
from rest_framework import status
from rest_framework.exceptions import APIException, NotFound, ValidationError
from rest_framework.response import Response
from rest_framework.serializers import as_serializer_error
from rest_framework.views import exception_handler, set_rollback

logger = logging.getLogger(__name__)


class ConflictError(APIException):
    status_code = status.HTTP_409_CONFLICT
    default_detail = 'Resource conflict.'
    default_code = 'conflict'


class InvalidStatusTransition(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid status transition.'
    default_code = 'invalid_transition'

    def __init__(self, from_status, to_status):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Invalid status transition from {from_status} to {to_status}")


class AccountLocked(APIException):
    status_code = status.HTTP_423_LOCKED
    default_detail = 'Account is temporarily locked due to too many failed login attempts.'
    default_code = 'account_locked'


def _integrity_error_response(exc):
    text = str(exc).lower()
    if 'unique' in text or 'duplicate' in text:
        return status.HTTP_409_CONFLICT, 'A record with this value already exists'
    if 'foreign key' in text:
        return status.HTTP_400_BAD_REQUEST, 'Invalid reference to related record'
    return status.HTTP_400_BAD_REQUEST, 'Database constraint violated'


def _flatten_errors(detail, field=None):
    if isinstance(detail, dict):
        errors = []
        for key, value in detail.items():
            name = key if field is None else f"{field}.{key}"
            errors.extend(_flatten_errors(value, name))
        return errors
    if isinstance(detail, list):
        errors = []
        for item in detail:
            errors.extend(_flatten_errors(item, field))
        return errors
    return [{'field': field, 'message': str(detail)}]


def build_error_body(detail):
    if isinstance(detail, dict):
        if set(detail.keys()) == {'detail'}:
            return {'success': False, 'message': str(detail['detail'])}
        return {
            'success': False,
            'message': 'Validation failed',
            'errors': _flatten_errors(detail),
        }
    if isinstance(detail, list):
        if len(detail) == 1 and not isinstance(detail[0], (dict, list)):
            return {'success': False, 'message': str(detail[0])}
        return {
            'success': False,
            'message': 'Validation failed',
            'errors': _flatten_errors(detail),
        }
    return {'success': False, 'message': str(detail)}


def envelope_exception_handler(exc, context):
    """
    Translate any exception raised by a view into the response envelope.
    """
    if isinstance(exc, IntegrityError):
        set_rollback()
        status_code, message = _integrity_error_response(exc)
        logger.warning(f"Integrity error in {context.get('view').__class__.__name__}: {str(exc)}")
        return Response({'success': False, 'message': message}, status=status_code)

    if isinstance(exc, DjangoValidationError):
        exc = ValidationError(detail=as_serializer_error(exc))
    elif isinstance(exc, ObjectDoesNotExist):
        exc = NotFound(str(exc) or None)

    response = exception_handler(exc, context)
    if response is None:
        set_rollback()
        logger.error(f"Unhandled error: {str(exc)}", exc_info=exc)
        return Response(
            {'success': False, 'message': 'Internal server error'},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    detail = exc.detail if isinstance(exc, APIException) else response.data
    response.data = build_error_body(detail)
    return response
