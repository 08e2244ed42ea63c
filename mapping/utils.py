"""
Geographic helpers.
"""
from geopy.distance import geodesic
from typing import Tuple


def calculate_distance(point1: Tuple[float, float], point2: Tuple[float, float]) -> float:
    """
    Calculate distance between two points in miles.

    Args:
        point1: (latitude, longitude) tuple
        point2: (latitude, longitude) tuple

    Returns:
        Distance in miles
    """
    return geodesic(point1, point2).miles


def validate_coordinates(lat: float, lng: float) -> bool:
    """
    Check that a latitude/longitude pair is within valid ranges.
    """
    return -90 <= lat <= 90 and -180 <= lng <= 180
