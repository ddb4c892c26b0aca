from math import atan2, cos, radians, sin, sqrt
from typing import Iterable, List, Tuple

import config
from schemas import CarPark

EARTH_RADIUS_KM = 6371.0


def haversine(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in km."""
    dlat = radians(lat2 - lat1)
    dlon = radians(lon2 - lon1)
    a = sin(dlat / 2) ** 2 + cos(radians(lat1)) * cos(radians(lat2)) * sin(dlon / 2) ** 2
    c = 2 * atan2(sqrt(a), sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def nearby_carparks(
    carparks: Iterable[CarPark],
    lat: float,
    lng: float,
    radius_km: float = config.DEFAULT_RADIUS_KM,
) -> List[Tuple[CarPark, float]]:
    results = []
    for park in carparks:
        if park.latitude is None or park.longitude is None:
            continue
        dist = haversine(lat, lng, park.latitude, park.longitude)
        if dist <= radius_km:
            results.append((park, dist))
    results.sort(key=lambda pair: pair[1])
    return results
