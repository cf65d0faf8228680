"""Great-circle distance between two coordinates."""

from math import asin, cos, radians, sin, sqrt

from .domain import Coordinate

# Mean radius of Earth in kilometres.
EARTH_RADIUS_KM = 6371.0


def haversine_km(origin: Coordinate, destination: Coordinate) -> float:
    """Return the great-circle distance in km between two coordinates."""
    lat1, lon1 = radians(origin.latitude), radians(origin.longitude)
    lat2, lon2 = radians(destination.latitude), radians(destination.longitude)
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push a a hair above 1 for antipodal points.
    return 2 * EARTH_RADIUS_KM * asin(sqrt(min(a, 1.0)))
