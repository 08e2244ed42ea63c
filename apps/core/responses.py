"""
Helpers building the ``{success, message, data, pagination}`` envelope.
"""
from rest_framework import status
from rest_framework.response import Response


def success_response(data=None, message=None, status_code=status.HTTP_200_OK, pagination=None):
    body = {'success': True}
    if message:
        body['message'] = message
    if data is not None:
        body['data'] = data
    if pagination is not None:
        body['pagination'] = pagination
    return Response(body, status=status_code)


def created_response(data, message):
    return success_response(data=data, message=message, status_code=status.HTTP_201_CREATED)


def error_response(message, status_code=status.HTTP_400_BAD_REQUEST, errors=None):
    body = {'success': False, 'message': message}
    if errors:
        body['errors'] = errors
    return Response(body, status=status_code)
