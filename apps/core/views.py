"""
Core views: health check, signed file download and JSON error handlers.
"""
import mimetypes
import logging

from django.core import signing
from django.db import connection
from django.http import FileResponse, JsonResponse
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes, throttle_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status

from .storage import LocalStorageBackend, StorageError, get_storage_backend

logger = logging.getLogger(__name__)


@api_view(['GET'])
@permission_classes([AllowAny])
def health_check(request):
    """
    Health check endpoint to verify the API and its database are reachable.
    """
    database_ok = True
    try:
        with connection.cursor() as cursor:
            cursor.execute('SELECT 1')
    except Exception as e:
        logger.error(f"Health check database probe failed: {str(e)}")
        database_ok = False

    return Response({
        'success': database_ok,
        'data': {
            'status': 'healthy' if database_ok else 'degraded',
            'message': 'TMS API is running',
            'version': '1.0.0',
            'database': database_ok,
            'timestamp': timezone.now().isoformat(),
        }
    }, status=status.HTTP_200_OK if database_ok else status.HTTP_503_SERVICE_UNAVAILABLE)


@api_view(['GET'])
@permission_classes([AllowAny])
@throttle_classes([])
def signed_file(request, token):
    """
    Stream a stored file addressed by a signed, expiring token.
    """
    try:
        key = LocalStorageBackend.resolve_signed_token(token)
    except signing.SignatureExpired:
        return JsonResponse({'success': False, 'message': 'Link has expired'}, status=410)
    except signing.BadSignature:
        return JsonResponse({'success': False, 'message': 'Invalid link'}, status=403)

    try:
        handle = get_storage_backend().get(key)
    except StorageError:
        return JsonResponse({'success': False, 'message': 'File not found'}, status=404)

    content_type, _ = mimetypes.guess_type(key)
    return FileResponse(handle, content_type=content_type or 'application/octet-stream')


# Error handlers
def bad_request(request, exception):
    """400 Bad Request error handler"""
    return JsonResponse(
        {'success': False, 'message': 'Bad request'},
        status=400
    )


def permission_denied(request, exception):
    """403 Permission Denied error handler"""
    return JsonResponse(
        {'success': False, 'message': 'Permission denied'},
        status=403
    )


def page_not_found(request, exception):
    """404 Not Found error handler"""
    return JsonResponse(
        {'success': False, 'message': 'Resource not found'},
        status=404
    )


def server_error(request):
    """500 Internal Server Error handler"""
    return JsonResponse(
        {'success': False, 'message': 'Internal server error'},
        status=500
    )
