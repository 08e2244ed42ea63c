from django.dispatch import Signal

# Sent after a mutating API operation completed successfully.
# Arguments: actor, action, entity_type, entity_id, changes, request, response
operation_performed = Signal()
