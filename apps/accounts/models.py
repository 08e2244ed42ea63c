"""
Identity store: internal staff, shipper-side users and their client
companies. Drivers live in the fleet app but share the ``Principal``
capability defined here.
"""
from datetime import timedelta

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.db import models
from django.utils import timezone

from apps.core.models import BaseModel, INTERNAL_USER, SHIPPER_USER, DRIVER


class Principal(BaseModel):
    """
    Abstract credential holder: password hash, lockout counters and the
    behaviour shared by every kind of authenticated caller.
    """
    principal_type = None

    email = models.EmailField(unique=True)
    password = models.CharField(max_length=128)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    phone = models.CharField(max_length=20, blank=True)

    is_active = models.BooleanField(default=True)
    failed_login_attempts = models.PositiveIntegerField(default=0)
    locked_until = models.DateTimeField(null=True, blank=True)
    last_login = models.DateTimeField(null=True, blank=True)
    password_updated_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True

    def __str__(self):
        return f"{self.full_name} <{self.email}>"

    # DRF and Django treat any resolved principal as an authenticated user.
    @property
    def is_authenticated(self):
        return True

    @property
    def is_anonymous(self):
        return False

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @classmethod
    def get_email_field_name(cls):
        return 'email'

    def set_password(self, raw_password):
        self.password = make_password(raw_password)
        self.password_updated_at = timezone.now()

    def check_password(self, raw_password):
        return check_password(raw_password, self.password)

    def is_locked(self, now=None):
        now = now or timezone.now()
        return self.locked_until is not None and self.locked_until > now

    def register_failed_login(self):
        """
        Count a failed password check; lock the account once the
        threshold is reached.
        """
        self.failed_login_attempts += 1
        update_fields = ['failed_login_attempts', 'updated_at']
        if self.failed_login_attempts >= settings.TMS['LOGIN_MAX_ATTEMPTS']:
            self.locked_until = timezone.now() + timedelta(minutes=settings.TMS['LOGIN_LOCKOUT_MINUTES'])
            update_fields.append('locked_until')
        self.save(update_fields=update_fields)

    def register_successful_login(self):
        self.failed_login_attempts = 0
        self.locked_until = None
        self.last_login = timezone.now()
        self.save(update_fields=['failed_login_attempts', 'locked_until', 'last_login', 'updated_at'])

    def token_claims(self):
        return {}

    def describe(self):
        return {
            'id': str(self.pk),
            'type': self.principal_type,
            'email': self.email,
            'first_name': self.first_name,
            'last_name': self.last_name,
            'phone': self.phone,
            'last_login': self.last_login.isoformat() if self.last_login else None,
        }


class InternalUser(Principal):
    """
    Back-office staff member.
    """
    principal_type = INTERNAL_USER

    ROLE_ADMIN = 'ADMIN'
    ROLE_DISPATCHER = 'DISPATCHER'
    ROLE_ACCOUNTANT = 'ACCOUNTANT'
    ROLE_CHOICES = [
        (ROLE_ADMIN, 'Admin'),
        (ROLE_DISPATCHER, 'Dispatcher'),
        (ROLE_ACCOUNTANT, 'Accountant'),
    ]

    role = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_DISPATCHER)
    department = models.CharField(max_length=100, blank=True)

    class Meta:
        db_table = 'accounts_internal_user'
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['role', 'is_active']),
        ]

    def token_claims(self):
        return {'role': self.role}

    def describe(self):
        data = super().describe()
        data.update({'role': self.role, 'department': self.department})
        return data


class ShipperClient(BaseModel):
    """
    Shipping company that owns loads and receives invoices.
    """
    STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('SUSPENDED', 'Suspended'),
        ('INACTIVE', 'Inactive'),
    ]

    company_name = models.CharField(max_length=200)
    contact_name = models.CharField(max_length=200, blank=True)
    contact_email = models.EmailField(blank=True)
    contact_phone = models.CharField(max_length=20, blank=True)
    billing_address = models.JSONField(default=dict, blank=True)
    tax_id = models.CharField(max_length=50, blank=True)

    payment_terms_days = models.PositiveIntegerField(null=True, blank=True)
    credit_limit = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    current_balance = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='ACTIVE')

    class Meta:
        db_table = 'accounts_shipper_client'
        ordering = ['company_name']
        indexes = [
            models.Index(fields=['status']),
        ]

    def __str__(self):
        return self.company_name

    @property
    def effective_payment_terms(self):
        return self.payment_terms_days or settings.TMS['DEFAULT_PAYMENT_TERMS_DAYS']


class ShipperUser(Principal):
    """
    Login belonging to a shipper client company.
    """
    principal_type = SHIPPER_USER

    shipper_client = models.ForeignKey(
        ShipperClient,
        on_delete=models.PROTECT,
        related_name='users'
    )
    job_title = models.CharField(max_length=100, blank=True)
    is_primary_contact = models.BooleanField(default=False)

    class Meta:
        db_table = 'accounts_shipper_user'
        ordering = ['last_name', 'first_name']
        indexes = [
            models.Index(fields=['shipper_client', 'is_active']),
        ]

    def permission_codes(self):
        return list(self.permissions.values_list('permission', flat=True))

    def token_claims(self):
        return {'shipper_client_id': str(self.shipper_client_id)}

    def describe(self):
        data = super().describe()
        data.update({
            'job_title': self.job_title,
            'shipper_client': {
                'id': str(self.shipper_client_id),
                'company_name': self.shipper_client.company_name,
                'status': self.shipper_client.status,
            },
            'permissions': self.permission_codes(),
        })
        return data


class ShipperUserPermission(BaseModel):
    """
    Capability granted to a shipper user.
    """
    CREATE_LOAD = 'CREATE_LOAD'
    VIEW_INVOICES = 'VIEW_INVOICES'
    MANAGE_DOCUMENTS = 'MANAGE_DOCUMENTS'
    MANAGE_USERS = 'MANAGE_USERS'
    PERMISSION_CHOICES = [
        (CREATE_LOAD, 'Create loads'),
        (VIEW_INVOICES, 'View invoices'),
        (MANAGE_DOCUMENTS, 'Manage documents'),
        (MANAGE_USERS, 'Manage users'),
    ]
    DEFAULT_PERMISSIONS = [CREATE_LOAD, VIEW_INVOICES, MANAGE_DOCUMENTS]

    shipper_user = models.ForeignKey(
        ShipperUser,
        on_delete=models.CASCADE,
        related_name='permissions'
    )
    permission = models.CharField(max_length=30, choices=PERMISSION_CHOICES)

    class Meta:
        db_table = 'accounts_shipper_user_permission'
        constraints = [
            models.UniqueConstraint(
                fields=['shipper_user', 'permission'],
                name='uniq_shipper_user_permission'
            ),
        ]

    def __str__(self):
        return f"{self.shipper_user.email}: {self.permission}"


def get_principal_model(principal_type):
    from apps.fleet.models import Driver

    return {
        INTERNAL_USER: InternalUser,
        SHIPPER_USER: ShipperUser,
        DRIVER: Driver,
    }.get(principal_type)
