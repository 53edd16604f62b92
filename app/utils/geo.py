import math
from dataclasses import dataclass

from app.core import config
from app.core.exceptions import InvalidLocation

EARTH_RADIUS_MILES = 3958.8


@dataclass(frozen=True)
class ServiceRegion:
    center_lat: float
    center_lng: float
    radius_miles: float


def default_region() -> ServiceRegion:
    return ServiceRegion(
        config.SERVICE_REGION_CENTER_LAT,
        config.SERVICE_REGION_CENTER_LNG,
        config.SERVICE_REGION_RADIUS_MILES,
    )


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle (haversine) distance between two points."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    return 2 * EARTH_RADIUS_MILES * math.asin(math.sqrt(a))


def is_valid_coordinate(lat: float, lng: float) -> bool:
    return -90 <= lat <= 90 and -180 <= lng <= 180


def is_within_service_region(lat: float, lng: float, region: ServiceRegion | None = None) -> bool:
    region = region or default_region()
    if not is_valid_coordinate(lat, lng):
        return False
    return distance_miles(region.center_lat, region.center_lng, lat, lng) <= region.radius_miles


def validate_location(lat: float, lng: float, label: str, region: ServiceRegion | None = None):
    if not is_valid_coordinate(lat, lng):
        raise InvalidLocation(
            f"{label.capitalize()} coordinates are not a valid latitude/longitude",
            details={"field": label, "lat": lat, "lng": lng},
        )

    if not is_within_service_region(lat, lng, region):
        raise InvalidLocation(
            f"{label.capitalize()} location is outside the service region",
            details={"field": label, "lat": lat, "lng": lng},
        )
