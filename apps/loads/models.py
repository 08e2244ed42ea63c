"""
Load lifecycle models: the load itself, driver assignments, the
append-only status ledger and rate negotiations.
"""
from django.db import models
from django.db.models import Q

from apps.accounts.models import ShipperClient, ShipperUser
from apps.core.models import BaseModel, PRINCIPAL_TYPE_CHOICES
from apps.fleet.models import Driver, EQUIPMENT_TYPE_CHOICES


class LoadStatus:
    DRAFT = 'DRAFT'
    PENDING_REVIEW = 'PENDING_REVIEW'
    NEGOTIATING = 'NEGOTIATING'
    RATE_APPROVED = 'RATE_APPROVED'
    SCHEDULED = 'SCHEDULED'
    ASSIGNED = 'ASSIGNED'
    ACCEPTED = 'ACCEPTED'
    EN_ROUTE_PICKUP = 'EN_ROUTE_PICKUP'
    AT_PICKUP = 'AT_PICKUP'
    LOADED = 'LOADED'
    EN_ROUTE_DELIVERY = 'EN_ROUTE_DELIVERY'
    AT_DELIVERY = 'AT_DELIVERY'
    DELIVERED = 'DELIVERED'
    POD_SUBMITTED = 'POD_SUBMITTED'
    POD_PENDING = 'POD_PENDING'
    COMPLETED = 'COMPLETED'
    CANCELLED = 'CANCELLED'

    CHOICES = [
        (DRAFT, 'Draft'),
        (PENDING_REVIEW, 'Pending Review'),
        (NEGOTIATING, 'Negotiating'),
        (RATE_APPROVED, 'Rate Approved'),
        (SCHEDULED, 'Scheduled'),
        (ASSIGNED, 'Assigned'),
        (ACCEPTED, 'Accepted'),
        (EN_ROUTE_PICKUP, 'En Route to Pickup'),
        (AT_PICKUP, 'At Pickup'),
        (LOADED, 'Loaded'),
        (EN_ROUTE_DELIVERY, 'En Route to Delivery'),
        (AT_DELIVERY, 'At Delivery'),
        (DELIVERED, 'Delivered'),
        (POD_SUBMITTED, 'POD Submitted'),
        (POD_PENDING, 'POD Pending'),
        (COMPLETED, 'Completed'),
        (CANCELLED, 'Cancelled'),
    ]

    # Driver-reported progression: exactly one next state per current state.
    PROGRESSION = {
        ACCEPTED: EN_ROUTE_PICKUP,
        EN_ROUTE_PICKUP: AT_PICKUP,
        AT_PICKUP: LOADED,
        LOADED: EN_ROUTE_DELIVERY,
        EN_ROUTE_DELIVERY: AT_DELIVERY,
        AT_DELIVERY: DELIVERED,
    }

    EDITABLE = (DRAFT, NEGOTIATING)
    DELETABLE = (DRAFT, CANCELLED)
    POD_SUBMITTABLE = (DELIVERED, AT_DELIVERY, POD_PENDING)
    ACTIVE_ASSIGNMENT = (ASSIGNED, ACCEPTED, EN_ROUTE_PICKUP, AT_PICKUP, LOADED, EN_ROUTE_DELIVERY, AT_DELIVERY)
    FINISHED = (DELIVERED, POD_SUBMITTED, POD_PENDING, COMPLETED)


class LoadQuerySet(models.QuerySet):

    def alive(self):
        return self.filter(deleted_at__isnull=True)


class Load(BaseModel):
    """
    A shipment tendered by a shipper client and moved through the
    lifecycle by dispatch and the assigned driver.
    """
    load_number = models.CharField(max_length=20, unique=True)
    shipper_client = models.ForeignKey(ShipperClient, on_delete=models.PROTECT, related_name='loads')
    created_by = models.ForeignKey(ShipperUser, on_delete=models.PROTECT, related_name='created_loads')

    origin = models.CharField(max_length=500)
    origin_address = models.JSONField(default=dict, blank=True)
    origin_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    origin_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    destination = models.CharField(max_length=500)
    destination_address = models.JSONField(default=dict, blank=True)
    destination_latitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    destination_longitude = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    distance_miles = models.DecimalField(max_digits=8, decimal_places=1, null=True, blank=True)

    equipment_type = models.CharField(max_length=20, choices=EQUIPMENT_TYPE_CHOICES)
    weight_lbs = models.PositiveIntegerField()
    commodity = models.CharField(max_length=200)
    special_instructions = models.TextField(blank=True)

    pickup_date = models.DateTimeField()
    pickup_window_end = models.DateTimeField(null=True, blank=True)
    delivery_date = models.DateTimeField()
    delivery_window_end = models.DateTimeField(null=True, blank=True)
    actual_pickup_time = models.DateTimeField(null=True, blank=True)
    actual_delivery_time = models.DateTimeField(null=True, blank=True)

    shipper_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    driver_pay = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    approved_negotiation = models.ForeignKey(
        'LoadNegotiation',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='+'
    )

    status = models.CharField(max_length=20, choices=LoadStatus.CHOICES, default=LoadStatus.DRAFT)
    deleted_at = models.DateTimeField(null=True, blank=True)

    objects = LoadQuerySet.as_manager()

    class Meta:
        db_table = 'loads_load'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['shipper_client', 'status']),
            models.Index(fields=['pickup_date']),
            models.Index(fields=['deleted_at']),
        ]

    def __str__(self):
        return f"{self.load_number} ({self.status})"

    @property
    def active_assignment(self):
        return self.assignments.filter(is_active=True).select_related('driver').first()


class LoadAssignment(BaseModel):
    """
    Driver assignment for a load. Only one row per load is active; resolved
    rows keep their accepted/rejected timestamps as history.
    """
    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='assignments')
    driver = models.ForeignKey(Driver, on_delete=models.PROTECT, related_name='load_assignments')
    assigned_by_id = models.UUIDField()
    assigned_at = models.DateTimeField(auto_now_add=True)
    estimated_pickup = models.DateTimeField(null=True, blank=True)
    estimated_delivery = models.DateTimeField(null=True, blank=True)
    notes = models.TextField(blank=True)

    accepted_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'loads_load_assignment'
        ordering = ['-assigned_at']
        constraints = [
            models.UniqueConstraint(
                fields=['load'],
                condition=Q(is_active=True),
                name='uniq_active_load_assignment'
            ),
        ]
        indexes = [
            models.Index(fields=['driver', 'is_active']),
        ]

    def __str__(self):
        return f"{self.load.load_number} -> {self.driver.full_name}"

    @property
    def is_resolved(self):
        return self.accepted_at is not None or self.rejected_at is not None


class LoadStatusHistory(BaseModel):
    """
    Append-only ledger row written for every status change.
    """
    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='status_history')
    from_status = models.CharField(max_length=20, choices=LoadStatus.CHOICES, null=True, blank=True)
    to_status = models.CharField(max_length=20, choices=LoadStatus.CHOICES)
    changed_by_id = models.UUIDField(null=True, blank=True)
    changed_by_type = models.CharField(max_length=20, choices=PRINCIPAL_TYPE_CHOICES, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'loads_status_history'
        ordering = ['created_at']
        verbose_name_plural = 'Load status history'

    def __str__(self):
        return f"{self.load.load_number}: {self.from_status} -> {self.to_status}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Status history rows are immutable')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('Status history rows are immutable')


class LoadStatusEvent(BaseModel):
    """
    Driver-reported progress event with optional GPS fix.
    """
    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='status_events')
    driver = models.ForeignKey(Driver, on_delete=models.SET_NULL, null=True, blank=True, related_name='status_events')
    status = models.CharField(max_length=20, choices=LoadStatus.CHOICES)
    notes = models.TextField(blank=True)
    gps_lat = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)
    gps_lng = models.DecimalField(max_digits=10, decimal_places=7, null=True, blank=True)

    class Meta:
        db_table = 'loads_status_event'
        ordering = ['created_at']

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Status events are immutable')
        super().save(*args, **kwargs)


class LoadNegotiation(BaseModel):
    """
    Proposed or countered rate for a load.
    """
    STATUS_PENDING = 'PENDING'
    STATUS_COUNTER_OFFERED = 'COUNTER_OFFERED'
    STATUS_ACCEPTED = 'ACCEPTED'
    STATUS_REJECTED = 'REJECTED'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_COUNTER_OFFERED, 'Counter Offered'),
        (STATUS_ACCEPTED, 'Accepted'),
        (STATUS_REJECTED, 'Rejected'),
    ]
    OPEN_STATUSES = (STATUS_PENDING, STATUS_COUNTER_OFFERED)

    INITIATED_BY_CHOICES = [
        ('DISPATCHER', 'Dispatcher'),
        ('SHIPPER', 'Shipper'),
    ]

    load = models.ForeignKey(Load, on_delete=models.CASCADE, related_name='negotiations')
    initiated_by = models.CharField(max_length=20, choices=INITIATED_BY_CHOICES)
    initiated_by_id = models.UUIDField()
    proposed_rate = models.DecimalField(max_digits=10, decimal_places=2)
    counter_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    notes = models.TextField(blank=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    responded_at = models.DateTimeField(null=True, blank=True)
    responded_by_id = models.UUIDField(null=True, blank=True)

    class Meta:
        db_table = 'loads_negotiation'
        ordering = ['-created_at']

    def __str__(self):
        return f"{self.load.load_number} negotiation ({self.status})"

    @property
    def agreed_rate(self):
        return self.counter_rate if self.counter_rate is not None else self.proposed_rate
