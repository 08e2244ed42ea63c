from datetime import timedelta
from decimal import Decimal

import pytest
from django.core.files.uploadedfile import SimpleUploadedFile
from django.utils import timezone
from rest_framework.test import APIClient

from apps.accounts.models import InternalUser, ShipperClient, ShipperUser, ShipperUserPermission
from apps.core.authentication import issue_tokens
from apps.fleet.models import Driver, Vehicle
from apps.loads.models import LoadAssignment, LoadStatus
from apps.loads.services import AssignmentService, LoadLifecycleService, NegotiationService
from apps.pod.services import PodService

PASSWORD = 'Secret123!'

PNG_BYTES = (
    b'\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01'
    b'\x08\x06\x00\x00\x00\x1f\x15\xc4\x89\x00\x00\x00\rIDATx\x9cc\xf8\x0f'
    b'\x00\x00\x01\x01\x00\x05\x18\xd8N\x00\x00\x00\x00IEND\xaeB`\x82'
)


def make_internal_user(role, email=None):
    user = InternalUser(
        email=email or f"{role.lower()}@tms.test",
        first_name='Test',
        last_name=role.title(),
        role=role,
    )
    user.set_password(PASSWORD)
    user.save()
    return user


def make_driver(email='driver@tms.test', license_number='CA1000001', **extra):
    today = timezone.now().date()
    driver = Driver(
        email=email,
        first_name='Dana',
        last_name='Driver',
        license_number=license_number,
        license_state='CA',
        license_expiry=today + timedelta(days=365),
        medical_cert_expiry=today + timedelta(days=365),
        pay_rate=Decimal('0.60'),
        **extra
    )
    driver.set_password(PASSWORD)
    driver.save()
    return driver


def png_file(name='signature.png'):
    return SimpleUploadedFile(name, PNG_BYTES, content_type='image/png')


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def authenticate():
    """
    Return an APIClient authorised as the given principal.
    """
    def _authenticate(principal):
        client = APIClient()
        token = issue_tokens(principal)['access_token']
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")
        return client

    return _authenticate


@pytest.fixture
def admin_user(db):
    return make_internal_user(InternalUser.ROLE_ADMIN)


@pytest.fixture
def dispatcher(db):
    return make_internal_user(InternalUser.ROLE_DISPATCHER)


@pytest.fixture
def accountant(db):
    return make_internal_user(InternalUser.ROLE_ACCOUNTANT)


@pytest.fixture
def shipper_client(db):
    return ShipperClient.objects.create(
        company_name='Acme Foods',
        contact_email='ap@acme.test',
        payment_terms_days=30,
    )


@pytest.fixture
def shipper_user(shipper_client):
    user = ShipperUser(
        email='shipper@acme.test',
        first_name='Sam',
        last_name='Shipper',
        shipper_client=shipper_client,
    )
    user.set_password(PASSWORD)
    user.save()
    ShipperUserPermission.objects.bulk_create([
        ShipperUserPermission(shipper_user=user, permission=permission)
        for permission in ShipperUserPermission.DEFAULT_PERMISSIONS
    ])
    return user


@pytest.fixture
def driver(db):
    return make_driver()


@pytest.fixture
def other_driver(db):
    return make_driver(email='other.driver@tms.test', license_number='TX2000002')


@pytest.fixture
def vehicle(db):
    return Vehicle.objects.create(
        unit_number='T-100',
        vin='1FUJGLDR0CLBP0001',
        make='Freightliner',
        model='Cascadia',
        year=2022,
        equipment_type='DRY_VAN',
    )


@pytest.fixture
def load_data():
    pickup = timezone.now() + timedelta(days=1)
    return {
        'origin': 'Fresno, CA',
        'destination': 'Reno, NV',
        'equipment_type': 'DRY_VAN',
        'weight_lbs': 40000,
        'commodity': 'Produce',
        'pickup_date': pickup,
        'delivery_date': pickup + timedelta(days=1),
        'shipper_rate': Decimal('2500.00'),
    }


@pytest.fixture
def draft_load(shipper_user, load_data):
    return LoadLifecycleService(shipper_user).create_load(load_data)


@pytest.fixture
def lifecycle(shipper_user, dispatcher, driver):
    """
    Drive a load through the lifecycle with service calls.
    """

    class Lifecycle:

        def scheduled(self, load, driver_pay=Decimal('1000.00')):
            LoadLifecycleService(shipper_user).submit(load.pk)
            negotiation = NegotiationService(dispatcher).create(load.pk, proposed_rate=Decimal('2500.00'))
            NegotiationService(shipper_user).accept(negotiation.pk)
            return LoadLifecycleService(dispatcher).approve(load.pk, driver_pay)

        def accepted(self, load, assignee=None, **kwargs):
            self.scheduled(load, **kwargs)
            assignment = LoadLifecycleService(dispatcher).assign(load.pk, (assignee or driver).pk)
            AssignmentService(assignee or driver).accept(assignment.pk)
            return LoadAssignment.objects.get(pk=assignment.pk)

        def delivered(self, load, assignee=None, **kwargs):
            self.accepted(load, assignee=assignee, **kwargs)
            service = LoadLifecycleService(assignee or driver)
            current = LoadStatus.ACCEPTED
            while current != LoadStatus.DELIVERED:
                current = LoadStatus.PROGRESSION[current]
                service.update_status(load.pk, current)
            load.refresh_from_db()
            return load

        def completed(self, load, assignee=None, **kwargs):
            self.delivered(load, assignee=assignee, **kwargs)
            pod = PodService(assignee or driver).submit(load.pk, png_file(), recipient_name='Receiver')
            PodService(dispatcher).verify(pod.pk, approved=True)
            load.refresh_from_db()
            return load

    return Lifecycle()
