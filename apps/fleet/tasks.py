"""
Periodic fleet compliance checks.
"""
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Q
from django.utils import timezone

from apps.core.models import DRIVER
from apps.notifications.services import NotificationService
from .models import Driver, Vehicle
import logging

logger = logging.getLogger(__name__)


@shared_task
def check_expiring_documents():
    """
    Warn drivers and dispatch about licenses, medical certificates and
    vehicle paperwork expiring inside the warning window.
    """
    today = timezone.now().date()
    horizon = today + timedelta(days=settings.TMS['EXPIRY_WARNING_DAYS'])
    dispatch = NotificationService.internal_recipients('DISPATCHER', 'ADMIN')
    warnings = 0

    drivers = Driver.objects.filter(is_active=True).filter(
        Q(license_expiry__range=(today, horizon)) | Q(medical_cert_expiry__range=(today, horizon))
    )
    for driver in drivers:
        recipients = [(driver.pk, DRIVER)] + dispatch
        if today <= driver.license_expiry <= horizon:
            NotificationService.notify_expiring(
                recipients, f"CDL for {driver.full_name}", driver.license_expiry, 'DRIVER', driver.pk
            )
            warnings += 1
        if today <= driver.medical_cert_expiry <= horizon:
            NotificationService.notify_expiring(
                recipients, f"Medical certificate for {driver.full_name}", driver.medical_cert_expiry, 'DRIVER', driver.pk
            )
            warnings += 1

    vehicles = Vehicle.objects.exclude(status='RETIRED').filter(
        Q(registration_expiry__range=(today, horizon)) | Q(insurance_expiry__range=(today, horizon))
    )
    for vehicle in vehicles:
        for label, expires_on in (('Registration', vehicle.registration_expiry), ('Insurance', vehicle.insurance_expiry)):
            if expires_on and today <= expires_on <= horizon:
                NotificationService.notify_expiring(
                    dispatch, f"{label} for unit {vehicle.unit_number}", expires_on, 'VEHICLE', vehicle.pk
                )
                warnings += 1

    logger.info(f"Expiring document check: {warnings} warnings issued")
    return {'warnings': warnings}
