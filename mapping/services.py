"""
External geocoding services.
"""
import hashlib

import requests
from django.conf import settings
from django.core.cache import cache
from geopy.geocoders import Nominatim
import logging

logger = logging.getLogger(__name__)


def geocode_address_service(address):
    """
    Geocode an address using MapBox Geocoding API with fallback to Nominatim.
    """
    if not address:
        return None

    cache_key = f"geocode:{hashlib.md5(address.lower().encode()).hexdigest()}"
    cached = cache.get(cache_key)
    if cached is not None:
        return cached

    try:
        # Try MapBox first if API key is available
        if settings.MAPBOX_API_KEY:
            result = _geocode_with_mapbox(address)
        else:
            result = _geocode_with_nominatim(address)
    except Exception as e:
        logger.error(f"Error geocoding address '{address}': {str(e)}")
        return None

    if result:
        timeout = getattr(settings, 'CACHE_TIMEOUTS', {}).get('geocoding', 86400)
        cache.set(cache_key, result, timeout)
    return result


def format_structured_address(address):
    """
    Collapse a structured address dict into a single geocodable line.
    """
    parts = [
        address.get('street', ''),
        address.get('city', ''),
        ' '.join(filter(None, [address.get('state', ''), address.get('zip', '')])),
    ]
    return ', '.join(part for part in parts if part)


def _geocode_with_mapbox(address):
    """
    Geocode address using MapBox Geocoding API.
    """
    url = "https://api.mapbox.com/geocoding/v5/mapbox.places/{}.json".format(
        requests.utils.quote(address)
    )

    params = {
        'access_token': settings.MAPBOX_API_KEY,
        'country': 'US',
        'types': 'address,place,poi',
        'limit': 1
    }

    response = requests.get(url, params=params, timeout=10)
    response.raise_for_status()

    data = response.json()

    if data['features']:
        feature = data['features'][0]
        coordinates = feature['geometry']['coordinates']
        context = feature.get('context', [])

        return {
            'address': feature['place_name'],
            'latitude': coordinates[1],
            'longitude': coordinates[0],
            'city': _extract_context_value(context, 'place') or '',
            'state': _extract_context_value(context, 'region') or '',
            'postal_code': _extract_context_value(context, 'postcode') or '',
        }

    return None


def _extract_context_value(context, context_type):
    """
    Extract value from MapBox context array.
    """
    for item in context:
        if item.get('id', '').startswith(context_type):
            return item.get('text', '')
    return None


def _geocode_with_nominatim(address):
    """
    Fallback geocoding using Nominatim (OpenStreetMap).
    """
    geolocator = Nominatim(user_agent="tms_backend")
    location = geolocator.geocode(f"{address}, USA", timeout=10)

    if location:
        return {
            'address': location.address,
            'latitude': location.latitude,
            'longitude': location.longitude,
            'city': '',
            'state': '',
            'postal_code': '',
        }

    return None
