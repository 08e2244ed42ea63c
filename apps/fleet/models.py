"""
Fleet models: drivers, vehicles, vehicle-to-driver bindings and
maintenance history.
"""
from django.db import models
from django.db.models import Q

from apps.accounts.models import Principal
from apps.core.models import BaseModel, DRIVER


EQUIPMENT_TYPE_CHOICES = [
    ('DRY_VAN', 'Dry Van'),
    ('REEFER', 'Reefer'),
    ('FLATBED', 'Flatbed'),
    ('STEP_DECK', 'Step Deck'),
    ('LOWBOY', 'Lowboy'),
]


class Driver(Principal):
    """
    Driver identity, licensing and pay details.
    """
    principal_type = DRIVER

    DRIVER_TYPE_CHOICES = [
        ('COMPANY', 'Company Driver'),
        ('OWNER_OPERATOR', 'Owner Operator'),
        ('LEASE_OPERATOR', 'Lease Operator'),
    ]
    PAY_TYPE_CHOICES = [
        ('PER_MILE', 'Per Mile'),
        ('PERCENTAGE', 'Percentage of Load'),
        ('FLAT_RATE', 'Flat Rate'),
        ('HOURLY', 'Hourly'),
    ]

    driver_type = models.CharField(max_length=20, choices=DRIVER_TYPE_CHOICES, default='COMPANY')
    license_number = models.CharField(max_length=50, unique=True)
    license_state = models.CharField(max_length=2)
    license_expiry = models.DateField()
    medical_cert_expiry = models.DateField()
    hire_date = models.DateField(null=True, blank=True)
    termination_date = models.DateField(null=True, blank=True)

    pay_type = models.CharField(max_length=20, choices=PAY_TYPE_CHOICES, default='PER_MILE')
    pay_rate = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    is_available = models.BooleanField(default=True)
    home_address = models.JSONField(default=dict, blank=True)
    emergency_contact = models.JSONField(default=dict, blank=True)

    class Meta:
        db_table = 'fleet_driver'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['is_active', 'is_available']),
            models.Index(fields=['license_expiry']),
            models.Index(fields=['medical_cert_expiry']),
        ]

    def can_take_loads(self):
        return self.is_active and self.is_available

    def describe(self):
        data = super().describe()
        data.update({
            'driver_type': self.driver_type,
            'license_number': self.license_number,
            'license_state': self.license_state,
            'is_available': self.is_available,
        })
        return data


class Vehicle(BaseModel):
    """
    Fleet unit (tractor or trailer).
    """
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('IN_MAINTENANCE', 'In Maintenance'),
        ('OUT_OF_SERVICE', 'Out of Service'),
        ('RETIRED', 'Retired'),
    ]

    unit_number = models.CharField(max_length=50, unique=True)
    vin = models.CharField(max_length=17, unique=True)
    plate_number = models.CharField(max_length=20, blank=True)
    plate_state = models.CharField(max_length=2, blank=True)
    make = models.CharField(max_length=50)
    model = models.CharField(max_length=50)
    year = models.PositiveIntegerField()
    equipment_type = models.CharField(max_length=20, choices=EQUIPMENT_TYPE_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')

    current_mileage = models.PositiveIntegerField(default=0)
    registration_expiry = models.DateField(null=True, blank=True)
    insurance_expiry = models.DateField(null=True, blank=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'fleet_vehicle'
        ordering = ['unit_number']
        indexes = [
            models.Index(fields=['status']),
            models.Index(fields=['equipment_type']),
        ]

    def __str__(self):
        return f"Unit {self.unit_number} ({self.year} {self.make} {self.model})"

    @property
    def current_assignment(self):
        return self.assignments.filter(is_currently_assigned=True).select_related('driver').first()


class VehicleAssignment(BaseModel):
    """
    Binding of a vehicle to a driver. At most one row per vehicle is
    currently assigned; retired rows keep their unassigned timestamp.
    """
    vehicle = models.ForeignKey(Vehicle, on_delete=models.CASCADE, related_name='assignments')
    driver = models.ForeignKey(Driver, on_delete=models.CASCADE, related_name='vehicle_assignments')
    assigned_at = models.DateTimeField(auto_now_add=True)
    unassigned_at = models.DateTimeField(null=True, blank=True)
    is_currently_assigned = models.BooleanField(default=True)
    notes = models.TextField(blank=True)

    class Meta:
        db_table = 'fleet_vehicle_assignment'
        ordering = ['-assigned_at']
        constraints = [
            models.UniqueConstraint(
                fields=['vehicle'],
                condition=Q(is_currently_assigned=True),
                name='uniq_current_vehicle_assignment'
            ),
        ]

    def __str__(self):
        return f"{self.vehicle.unit_number} -> {self.driver.full_name}"


class MaintenanceRecord(BaseModel):
    """
    Service performed on a vehicle.
    """
    SERVICE_TYPE_CHOICES = [
        ('PREVENTIVE', 'Preventive Maintenance'),
        ('REPAIR', 'Repair'),
        ('INSPECTION', 'Inspection'),
        ('TIRE', 'Tire Service'),
        ('OIL_CHANGE', 'Oil Change'),
        ('OTHER', 'Other'),
    ]

    vehicle = models.ForeignKey(Vehicle, on_delete=models.CASCADE, related_name='maintenance_records')
    service_type = models.CharField(max_length=20, choices=SERVICE_TYPE_CHOICES)
    description = models.TextField()
    serviced_at = models.DateTimeField()
    serviced_by = models.CharField(max_length=200, blank=True)
    cost = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    mileage_at_service = models.PositiveIntegerField(null=True, blank=True)
    next_service_due = models.DateField(null=True, blank=True)
    next_service_mileage = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        db_table = 'fleet_maintenance_record'
        ordering = ['-serviced_at']

    def __str__(self):
        return f"{self.vehicle.unit_number} {self.service_type} on {self.serviced_at:%Y-%m-%d}"
