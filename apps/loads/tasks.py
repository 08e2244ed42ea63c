"""
Celery tasks for load processing.
"""
from decimal import Decimal

from celery import shared_task

from mapping.services import format_structured_address, geocode_address_service
from mapping.utils import calculate_distance
from .models import Load
import logging

logger = logging.getLogger(__name__)


def _coordinate(value):
    return Decimal(str(value)).quantize(Decimal('0.0000001'))


@shared_task(bind=True, max_retries=3)
def geocode_load_locations(self, load_id):
    """
    Resolve origin/destination coordinates and the straight-line distance.
    """
    try:
        load = Load.objects.get(pk=load_id)
    except Load.DoesNotExist:
        logger.warning(f"Skipping geocoding for missing load {load_id}")
        return {'success': False, 'error': 'Load not found'}

    try:
        origin = geocode_address_service(format_structured_address(load.origin_address) or load.origin)
        destination = geocode_address_service(format_structured_address(load.destination_address) or load.destination)
    except Exception as e:
        logger.error(f"Error geocoding load {load_id}: {str(e)}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            countdown = 2 ** self.request.retries
            raise self.retry(countdown=countdown, exc=e)

        return {'success': False, 'error': str(e)}

    update_fields = []
    if origin:
        load.origin_latitude = _coordinate(origin['latitude'])
        load.origin_longitude = _coordinate(origin['longitude'])
        update_fields += ['origin_latitude', 'origin_longitude']
    if destination:
        load.destination_latitude = _coordinate(destination['latitude'])
        load.destination_longitude = _coordinate(destination['longitude'])
        update_fields += ['destination_latitude', 'destination_longitude']
    if origin and destination:
        miles = calculate_distance(
            (origin['latitude'], origin['longitude']),
            (destination['latitude'], destination['longitude'])
        )
        load.distance_miles = Decimal(str(round(miles, 1)))
        update_fields.append('distance_miles')

    if update_fields:
        # Coordinates only; the lifecycle status is never touched here.
        Load.objects.filter(pk=load.pk).update(**{field: getattr(load, field) for field in update_fields})

    logger.info(f"Geocoded load {load.load_number}: {len(update_fields)} fields updated")
    return {'success': True, 'load_id': str(load.pk), 'updated': update_fields}
