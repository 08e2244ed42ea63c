from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from apps.accounts.models import InternalUser, ShipperClient, ShipperUser, ShipperUserPermission
from apps.fleet.models import Driver, Vehicle
from apps.fleet.services import VehicleService

DEMO_PASSWORD = 'DemoPass123!'


class Command(BaseCommand):
    help = 'Create demo staff, a shipper client, drivers and vehicles'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Remove previously seeded demo records first',
        )

    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing demo data...')
            Vehicle.objects.filter(unit_number__startswith='DEMO').delete()
            Driver.objects.filter(email__endswith='@demo-drivers.test').delete()
            ShipperUser.objects.filter(email__endswith='@demo-shipper.test').delete()
            ShipperClient.objects.filter(company_name__startswith='Demo').delete()
            InternalUser.objects.filter(email__endswith='@demo-tms.test').delete()

        self.stdout.write('Creating demo data...')

        with transaction.atomic():
            for role in (InternalUser.ROLE_ADMIN, InternalUser.ROLE_DISPATCHER, InternalUser.ROLE_ACCOUNTANT):
                user = InternalUser(
                    email=f"{role.lower()}@demo-tms.test",
                    first_name='Demo',
                    last_name=role.title(),
                    role=role,
                )
                user.set_password(DEMO_PASSWORD)
                user.save()

            client = ShipperClient.objects.create(
                company_name='Demo Produce Co',
                contact_name='Pat Lee',
                contact_email='billing@demo-shipper.test',
                billing_address={'street': '400 Market St', 'city': 'Fresno', 'state': 'CA', 'zip': '93721'},
                payment_terms_days=30,
                credit_limit=Decimal('50000.00'),
            )
            shipper = ShipperUser(
                email='pat.lee@demo-shipper.test',
                first_name='Pat',
                last_name='Lee',
                shipper_client=client,
                is_primary_contact=True,
            )
            shipper.set_password(DEMO_PASSWORD)
            shipper.save()
            ShipperUserPermission.objects.bulk_create([
                ShipperUserPermission(shipper_user=shipper, permission=permission)
                for permission in ShipperUserPermission.DEFAULT_PERMISSIONS
            ])

            today = timezone.now().date()
            drivers = []
            for index, (first, last, state) in enumerate([
                ('John', 'Smith', 'CA'),
                ('Maria', 'Rodriguez', 'TX'),
                ('David', 'Johnson', 'FL'),
            ], start=1):
                driver = Driver(
                    email=f"{first.lower()}.{last.lower()}@demo-drivers.test",
                    first_name=first,
                    last_name=last,
                    license_number=f"{state}DEMO{index:04d}",
                    license_state=state,
                    license_expiry=today + timedelta(days=365 * 2),
                    medical_cert_expiry=today + timedelta(days=180),
                    hire_date=today - timedelta(days=90 * index),
                    pay_type='PER_MILE',
                    pay_rate=Decimal('0.65'),
                )
                driver.set_password(DEMO_PASSWORD)
                driver.save()
                drivers.append(driver)

            vehicles = []
            for index in range(1, 4):
                vehicles.append(Vehicle.objects.create(
                    unit_number=f"DEMO{index:03d}",
                    vin=f"1FUJGLDR0CLBP{index:04d}",
                    plate_number=f"DMO{index:04d}",
                    plate_state='CA',
                    make='Freightliner',
                    model='Cascadia',
                    year=2021 + index,
                    equipment_type='REEFER' if index == 1 else 'DRY_VAN',
                    current_mileage=50000 + index * 10000,
                    registration_expiry=today + timedelta(days=200),
                    insurance_expiry=today + timedelta(days=300),
                ))

        for vehicle, driver in zip(vehicles, drivers):
            VehicleService().assign(vehicle.pk, driver.pk, notes='Demo assignment')

        self.stdout.write(self.style.SUCCESS(
            f"Created 3 staff users, 1 shipper client, {len(drivers)} drivers and {len(vehicles)} vehicles "
            f"(password: {DEMO_PASSWORD})"
        ))
