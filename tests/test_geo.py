import pytest

from app.core.exceptions import InvalidLocation
from app.utils.geo import (
    ServiceRegion,
    distance_miles,
    is_valid_coordinate,
    is_within_service_region,
    validate_location,
)

from conftest import CENTER, OUTSIDE_REGION, TEN_MILES_NORTH


def test_distance_is_zero_for_same_point():
    assert distance_miles(*CENTER, *CENTER) == 0


def test_distance_along_meridian():
    assert distance_miles(*CENTER, *TEN_MILES_NORTH) == pytest.approx(10.0, abs=0.01)


def test_distance_is_symmetric():
    a = distance_miles(*CENTER, 30.5, -97.5)
    b = distance_miles(30.5, -97.5, *CENTER)
    assert a == pytest.approx(b)


@pytest.mark.parametrize("lat,lng", [(91, 0), (-90.5, 10), (10, 181), (0, -180.01)])
def test_out_of_range_coordinates_are_invalid(lat, lng):
    assert not is_valid_coordinate(lat, lng)


def test_region_membership():
    assert is_within_service_region(*CENTER)
    assert is_within_service_region(*TEN_MILES_NORTH)
    assert not is_within_service_region(*OUTSIDE_REGION)


def test_custom_region():
    region = ServiceRegion(center_lat=CENTER[0], center_lng=CENTER[1], radius_miles=5)
    assert not is_within_service_region(*TEN_MILES_NORTH, region=region)


def test_validate_location_rejects_outside_region():
    with pytest.raises(InvalidLocation) as exc:
        validate_location(*OUTSIDE_REGION, "delivery")

    assert exc.value.details["field"] == "delivery"
    assert exc.value.status_code == 400


def test_validate_location_rejects_bad_coordinates():
    with pytest.raises(InvalidLocation):
        validate_location(120, 0, "pickup")
