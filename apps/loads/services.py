"""
Load lifecycle engine.

Every status change goes through ``record_transition``: the load row is
locked, the status is swapped only if it still holds the expected value,
and one ``LoadStatusHistory`` row is appended in the same transaction.
"""
from django.db import transaction
from django.utils import timezone
from rest_framework.exceptions import NotFound, PermissionDenied, ValidationError

from apps.core.exceptions import ConflictError, InvalidStatusTransition
from apps.core.models import next_document_number
from apps.core.permissions import ensure_assignment_owner, is_driver, is_shipper, principal_type_of
from apps.fleet.models import Driver
from apps.notifications.services import NotificationService
from .models import Load, LoadAssignment, LoadNegotiation, LoadStatus, LoadStatusEvent, LoadStatusHistory
import logging

logger = logging.getLogger(__name__)

LOAD_NUMBER_PREFIX = 'LOAD'

# Fields a shipper or dispatcher may edit while the load is editable.
EDITABLE_FIELDS = [
    'origin', 'origin_address', 'destination', 'destination_address',
    'equipment_type', 'weight_lbs', 'commodity', 'special_instructions',
    'pickup_date', 'pickup_window_end', 'delivery_date', 'delivery_window_end',
    'shipper_rate',
]


def lock_load(load_id):
    """
    Fetch a live load with a row lock. Must be called inside a transaction.
    """
    try:
        return Load.objects.alive().select_for_update().get(pk=load_id)
    except Load.DoesNotExist:
        raise NotFound('Load not found')


def record_transition(load, to_status, actor=None, notes='', expected_status=None, **fields):
    """
    Move ``load`` to ``to_status`` and append the history row.

    The update is conditional on the status the caller observed, so a
    concurrent transition on the same load makes this one fail instead of
    silently overwriting it.
    """
    from_status = expected_status or load.status
    now = timezone.now()
    values = dict(fields, status=to_status, updated_at=now)

    updated = Load.objects.filter(pk=load.pk, status=from_status, deleted_at__isnull=True).update(**values)
    if updated != 1:
        raise ConflictError(f"Load {load.load_number} was modified concurrently; expected status {from_status}")

    for field, value in values.items():
        setattr(load, field, value)

    LoadStatusHistory.objects.create(
        load=load,
        from_status=from_status,
        to_status=to_status,
        changed_by_id=getattr(actor, 'pk', None),
        changed_by_type=principal_type_of(actor) or '',
        notes=notes,
    )
    logger.info(f"Load {load.load_number}: {from_status} -> {to_status}")
    return load


def _require_status(load, allowed, to_status):
    if load.status not in allowed:
        raise InvalidStatusTransition(load.status, to_status)


class LoadLifecycleService:
    """
    Service class for load creation, edits and lifecycle transitions.
    """

    def __init__(self, actor):
        self.actor = actor

    def create_load(self, load_data):
        """
        Create a DRAFT load owned by the acting shipper user's client.
        """
        try:
            with transaction.atomic():
                load = Load.objects.create(
                    load_number=next_document_number(LOAD_NUMBER_PREFIX),
                    shipper_client_id=self.actor.shipper_client_id,
                    created_by=self.actor,
                    status=LoadStatus.DRAFT,
                    **load_data
                )
                LoadStatusHistory.objects.create(
                    load=load,
                    from_status=None,
                    to_status=LoadStatus.DRAFT,
                    changed_by_id=self.actor.pk,
                    changed_by_type=self.actor.principal_type,
                    notes='Load created',
                )
                transaction.on_commit(lambda: _schedule_geocoding(load.pk))

            logger.info(f"Successfully created load {load.load_number}")
            return load

        except Exception as e:
            logger.error(f"Error in create_load: {str(e)}")
            raise

    @transaction.atomic
    def update_load(self, load_id, changes):
        """
        Apply field edits; returns the load and a before/after diff.
        """
        load = lock_load(load_id)
        if load.status not in LoadStatus.EDITABLE:
            raise ValidationError('Load can only be updated in DRAFT or NEGOTIATING status')

        diff = {}
        for field in EDITABLE_FIELDS:
            if field in changes and getattr(load, field) != changes[field]:
                diff[field] = {'before': getattr(load, field), 'after': changes[field]}
                setattr(load, field, changes[field])

        if load.delivery_date <= load.pickup_date:
            raise ValidationError({'delivery_date': 'Delivery date must be after pickup date'})

        if diff:
            load.save(update_fields=list(diff.keys()) + ['updated_at'])
            logger.info(f"Updated load {load.load_number}: {', '.join(diff.keys())}")
        return load, diff

    @transaction.atomic
    def delete_load(self, load_id):
        load = lock_load(load_id)
        if load.status not in LoadStatus.DELETABLE:
            raise ValidationError('Only DRAFT or CANCELLED loads can be deleted')

        load.deleted_at = timezone.now()
        load.save(update_fields=['deleted_at', 'updated_at'])
        logger.info(f"Soft-deleted load {load.load_number}")
        return load

    @transaction.atomic
    def submit(self, load_id):
        load = lock_load(load_id)
        _require_status(load, [LoadStatus.DRAFT], LoadStatus.PENDING_REVIEW)
        return record_transition(load, LoadStatus.PENDING_REVIEW, self.actor, 'Load submitted for review')

    @transaction.atomic
    def approve(self, load_id, driver_pay, notes=''):
        load = lock_load(load_id)
        _require_status(load, [LoadStatus.RATE_APPROVED], LoadStatus.SCHEDULED)
        return record_transition(
            load, LoadStatus.SCHEDULED, self.actor,
            notes or f"Load approved with driver pay ${driver_pay}",
            driver_pay=driver_pay,
        )

    def assign(self, load_id, driver_id, estimated_pickup=None, estimated_delivery=None, notes=''):
        """
        Bind a driver to a SCHEDULED load, retiring any previous active
        assignment in the same transaction.
        """
        with transaction.atomic():
            load = lock_load(load_id)
            _require_status(load, [LoadStatus.SCHEDULED], LoadStatus.ASSIGNED)

            try:
                driver = Driver.objects.select_for_update().get(pk=driver_id)
            except Driver.DoesNotExist:
                raise NotFound('Driver not found')
            if not driver.can_take_loads():
                raise ValidationError('Driver is not available')

            load.assignments.filter(is_active=True).update(is_active=False, updated_at=timezone.now())
            assignment = LoadAssignment.objects.create(
                load=load,
                driver=driver,
                assigned_by_id=self.actor.pk,
                estimated_pickup=estimated_pickup,
                estimated_delivery=estimated_delivery,
                notes=notes,
            )
            record_transition(load, LoadStatus.ASSIGNED, self.actor, f"Load assigned to driver {driver.full_name}")

        NotificationService.notify_load_assigned(assignment)
        return assignment

    @transaction.atomic
    def cancel(self, load_id, reason):
        load = lock_load(load_id)
        cancellable = [
            LoadStatus.DRAFT, LoadStatus.PENDING_REVIEW, LoadStatus.NEGOTIATING,
            LoadStatus.RATE_APPROVED, LoadStatus.SCHEDULED, LoadStatus.ASSIGNED,
        ]
        _require_status(load, cancellable, LoadStatus.CANCELLED)

        load.assignments.filter(is_active=True).update(is_active=False, updated_at=timezone.now())
        return record_transition(load, LoadStatus.CANCELLED, self.actor, f"Load cancelled: {reason}")

    def update_status(self, load_id, to_status, notes='', gps_lat=None, gps_lng=None):
        """
        Driver progression along the fixed en-route/pickup/delivery table.
        """
        with transaction.atomic():
            load = lock_load(load_id)

            if is_driver(self.actor):
                holds_assignment = load.assignments.filter(
                    driver_id=self.actor.pk, is_active=True, accepted_at__isnull=False
                ).exists()
                if not holds_assignment:
                    raise PermissionDenied('Access denied. This load is not assigned to you.')

            if LoadStatus.PROGRESSION.get(load.status) != to_status:
                raise InvalidStatusTransition(load.status, to_status)

            fields = {}
            if to_status == LoadStatus.LOADED:
                fields['actual_pickup_time'] = timezone.now()
            elif to_status == LoadStatus.DELIVERED:
                fields['actual_delivery_time'] = timezone.now()

            LoadStatusEvent.objects.create(
                load=load,
                driver_id=self.actor.pk if is_driver(self.actor) else None,
                status=to_status,
                notes=notes,
                gps_lat=gps_lat,
                gps_lng=gps_lng,
            )
            record_transition(load, to_status, self.actor, notes, **fields)

        return load


class NegotiationService:
    """
    Rate negotiation between the shipper and dispatch.
    """
    OPEN_LOAD_STATUSES = (LoadStatus.PENDING_REVIEW, LoadStatus.NEGOTIATING)

    def __init__(self, actor):
        self.actor = actor

    @transaction.atomic
    def create(self, load_id, proposed_rate, counter_rate=None, notes=''):
        load = lock_load(load_id)
        if load.status not in self.OPEN_LOAD_STATUSES + (LoadStatus.RATE_APPROVED,):
            raise ValidationError(f"Cannot negotiate a load in {load.status} status")

        negotiation = LoadNegotiation.objects.create(
            load=load,
            initiated_by='SHIPPER' if is_shipper(self.actor) else 'DISPATCHER',
            initiated_by_id=self.actor.pk,
            proposed_rate=proposed_rate,
            counter_rate=counter_rate,
            notes=notes,
            status=(
                LoadNegotiation.STATUS_COUNTER_OFFERED if counter_rate is not None
                else LoadNegotiation.STATUS_PENDING
            ),
        )

        if load.status != LoadStatus.NEGOTIATING:
            record_transition(load, LoadStatus.NEGOTIATING, self.actor, 'Rate negotiation opened', approved_negotiation=None)

        logger.info(f"Negotiation {negotiation.pk} opened on load {load.load_number}")
        return negotiation

    def _lock_negotiation(self, negotiation_id):
        try:
            negotiation = LoadNegotiation.objects.select_for_update().select_related('load').get(pk=negotiation_id)
        except LoadNegotiation.DoesNotExist:
            raise NotFound('Negotiation not found')
        if negotiation.status not in LoadNegotiation.OPEN_STATUSES:
            raise ValidationError(f"Negotiation is already {negotiation.status}")
        return negotiation

    @transaction.atomic
    def accept(self, negotiation_id):
        negotiation = self._lock_negotiation(negotiation_id)
        load = lock_load(negotiation.load_id)
        _require_status(load, self.OPEN_LOAD_STATUSES, LoadStatus.RATE_APPROVED)

        rate = negotiation.agreed_rate
        negotiation.status = LoadNegotiation.STATUS_ACCEPTED
        negotiation.responded_at = timezone.now()
        negotiation.responded_by_id = self.actor.pk
        negotiation.save(update_fields=['status', 'responded_at', 'responded_by_id', 'updated_at'])

        record_transition(
            load, LoadStatus.RATE_APPROVED, self.actor,
            f"Rate approved at ${rate}",
            shipper_rate=rate,
            approved_negotiation=negotiation,
        )
        return negotiation, load

    @transaction.atomic
    def reject(self, negotiation_id, notes=''):
        negotiation = self._lock_negotiation(negotiation_id)
        negotiation.status = LoadNegotiation.STATUS_REJECTED
        negotiation.responded_at = timezone.now()
        negotiation.responded_by_id = self.actor.pk
        if notes:
            negotiation.notes = f"{negotiation.notes}\n{notes}".strip()
        negotiation.save(update_fields=['status', 'responded_at', 'responded_by_id', 'notes', 'updated_at'])
        return negotiation


class AssignmentService:
    """
    Driver-side resolution of a load assignment.
    """

    def __init__(self, actor):
        self.actor = actor

    def _lock_assignment(self, assignment_id):
        try:
            assignment = LoadAssignment.objects.select_for_update().select_related('driver').get(pk=assignment_id)
        except LoadAssignment.DoesNotExist:
            raise NotFound('Assignment not found')

        ensure_assignment_owner(self.actor, assignment)
        if assignment.accepted_at is not None:
            raise ConflictError('Assignment already accepted')
        if assignment.rejected_at is not None:
            raise ConflictError('Assignment already rejected')
        return assignment

    def accept(self, assignment_id):
        with transaction.atomic():
            assignment = self._lock_assignment(assignment_id)
            load = lock_load(assignment.load_id)
            _require_status(load, [LoadStatus.ASSIGNED], LoadStatus.ACCEPTED)

            assignment.accepted_at = timezone.now()
            assignment.save(update_fields=['accepted_at', 'updated_at'])
            record_transition(load, LoadStatus.ACCEPTED, self.actor, 'Driver accepted assignment')
            assignment.load = load

        NotificationService.notify_load_accepted(assignment)
        return assignment

    def reject(self, assignment_id, reason):
        if not reason or not reason.strip():
            raise ValidationError({'reason': 'Rejection reason is required'})

        with transaction.atomic():
            assignment = self._lock_assignment(assignment_id)
            load = lock_load(assignment.load_id)
            _require_status(load, [LoadStatus.ASSIGNED], LoadStatus.SCHEDULED)

            assignment.rejected_at = timezone.now()
            assignment.rejection_reason = reason
            assignment.is_active = False
            assignment.save(update_fields=['rejected_at', 'rejection_reason', 'is_active', 'updated_at'])
            record_transition(load, LoadStatus.SCHEDULED, self.actor, f"Driver rejected assignment: {reason}")
            assignment.load = load

        NotificationService.notify_assignment_rejected(assignment)
        return assignment


def _schedule_geocoding(load_id):
    from .tasks import geocode_load_locations

    try:
        geocode_load_locations.delay(str(load_id))
    except Exception as e:
        logger.warning(f"Could not schedule geocoding for load {load_id}: {str(e)}")
