from math import asin, cos, radians, sin, sqrt

EARTH_RADIUS_M = 6371000.0


def distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    lat1_rad = radians(lat1)
    lon1_rad = radians(lon1)
    lat2_rad = radians(lat2)
    lon2_rad = radians(lon2)

    delta_lat = lat2_rad - lat1_rad
    delta_lon = lon2_rad - lon1_rad

    a = sin(delta_lat / 2) ** 2 + cos(lat1_rad) * cos(lat2_rad) * sin(delta_lon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return EARTH_RADIUS_M * c


def within_radius(
    *,
    center_lat: float,
    center_lon: float,
    lat: float,
    lon: float,
    radius_m: float,
) -> tuple[bool, float]:
    distance_value = distance_m(center_lat, center_lon, lat, lon)
    return distance_value <= radius_m, distance_value
