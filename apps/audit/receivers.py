import logging

from django.db import transaction
from django.dispatch import receiver

from apps.core.permissions import principal_type_of
from .models import AuditLog
from .signals import operation_performed

logger = logging.getLogger(__name__)


def _client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR') or None


@receiver(operation_performed)
def record_audit_entry(sender, actor, action, entity_type, entity_id, changes, request, response, **kwargs):
    """
    Persist the audit row. Failures are logged and never reach the caller.
    """
    principal_type = principal_type_of(actor)
    try:
        with transaction.atomic():
            AuditLog.objects.create(
                actor_id=actor.pk if principal_type else None,
                actor_type=principal_type or '',
                actor_email=getattr(actor, 'email', '') or '',
                action=action,
                entity_type=entity_type,
                entity_id=entity_id or '',
                changes=changes,
                metadata={
                    'query': request.query_params.dict() if hasattr(request, 'query_params') else {},
                },
                ip_address=_client_ip(request),
                user_agent=request.META.get('HTTP_USER_AGENT', ''),
                path=request.path[:500],
                method=request.method,
                status_code=response.status_code,
            )
    except Exception as e:
        logger.error(f"Failed to write audit log for {action} {entity_type}:{entity_id}: {str(e)}")
