"""
View decorator publishing completed operations to the audit trail.
"""
import functools
import logging

from .signals import operation_performed

logger = logging.getLogger(__name__)


def _entity_id(kwargs, response, lookup_kwarg):
    if lookup_kwarg and kwargs.get(lookup_kwarg):
        return str(kwargs[lookup_kwarg])
    data = getattr(response, 'data', None)
    if isinstance(data, dict):
        payload = data.get('data')
        if isinstance(payload, dict) and payload.get('id'):
            return str(payload['id'])
    return ''


def audited(action, entity_type, lookup_kwarg='pk'):
    """
    Wrap a DRF view method; once it returns a 2xx response, emit
    ``operation_performed``. Receivers run after the handler so they never
    alter the client's response.

    Views may attach a before/after diff by setting ``request.audit_changes``.
    """

    def decorator(view_method):

        @functools.wraps(view_method)
        def wrapper(view, request, *args, **kwargs):
            response = view_method(view, request, *args, **kwargs)

            if 200 <= response.status_code < 300:
                try:
                    operation_performed.send(
                        sender=view.__class__,
                        actor=request.user,
                        action=action,
                        entity_type=entity_type,
                        entity_id=_entity_id(kwargs, response, lookup_kwarg),
                        changes=getattr(request, 'audit_changes', None),
                        request=request,
                        response=response,
                    )
                except Exception as e:
                    logger.error(f"Audit dispatch failed for {action} {entity_type}: {str(e)}")

            return response

        return wrapper

    return decorator
