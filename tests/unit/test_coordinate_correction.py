"""
Tests for coordinate correction.
"""

import pytest

from itinerary_planner.data.models import Itinerary
from itinerary_planner.services.coordinate_correction import (
    CoordinateCorrector,
    in_china,
    wgs84_to_gcj02,
)
from tests.unit.fakes import BASE_LAT, BASE_LNG, build_itinerary


def test_in_china():
    assert in_china(BASE_LNG, BASE_LAT)
    assert not in_china(2.3522, 48.8566)


def test_conversion_shifts_points_in_china():
    lng, lat = wgs84_to_gcj02(BASE_LNG, BASE_LAT)

    # The datum shift in eastern China is a few hundred meters
    assert 0.001 < abs(lng - BASE_LNG) < 0.01
    assert 0.0005 < abs(lat - BASE_LAT) < 0.01


def test_conversion_outside_china_is_identity():
    assert wgs84_to_gcj02(2.3522, 48.8566) == (2.3522, 48.8566)


@pytest.mark.asyncio
async def test_correct_converts_every_location():
    itinerary = Itinerary.model_validate(build_itinerary(1))

    corrected = await CoordinateCorrector().correct(itinerary, "杭州")

    before = [loc.lat for _, loc in itinerary.iter_locations() if loc.has_coordinates]
    after = [loc.lat for _, loc in corrected.iter_locations() if loc.has_coordinates]
    assert len(after) == len(before) == 3
    assert all(a != b for a, b in zip(after, before, strict=True))


@pytest.mark.asyncio
async def test_geocoder_takes_precedence_within_budget():
    calls = []

    async def geocoder(name, destination):
        calls.append((name, destination))
        return 30.0, 120.0

    itinerary = Itinerary.model_validate(build_itinerary(1))
    corrector = CoordinateCorrector(geocoder=geocoder, max_geocode_calls=2)

    corrected = await corrector.correct(itinerary, "杭州")

    assert len(calls) == 2
    assert calls[0] == ("Morning sight 1", "杭州")
    activities = corrected.days[0].activities
    assert (activities[0].location.lat, activities[0].location.lng) == (30.0, 120.0)
    assert activities[1].location.lat == 30.0
    # Budget exhausted: the meal falls back to datum conversion
    assert corrected.days[0].meals[0].location.lat != 30.0


@pytest.mark.asyncio
async def test_geocoder_failure_falls_back_to_conversion():
    async def geocoder(name, destination):
        raise RuntimeError("quota exceeded")

    itinerary = Itinerary.model_validate(build_itinerary(1))

    corrected = await CoordinateCorrector(geocoder=geocoder).correct(
        itinerary, "杭州"
    )

    expected_lng, expected_lat = wgs84_to_gcj02(BASE_LNG, BASE_LAT)
    location = corrected.days[0].activities[0].location
    assert location.lat == pytest.approx(expected_lat)
    assert location.lng == pytest.approx(expected_lng)


@pytest.mark.asyncio
async def test_places_outside_china_are_untouched():
    itinerary = Itinerary.model_validate(
        {
            "days": [
                {
                    "day": 1,
                    "activities": [
                        {"name": "Louvre", "location": {"lat": 48.86, "lng": 2.34}}
                    ],
                }
            ]
        }
    )

    corrected = await CoordinateCorrector().correct(itinerary, "Paris")

    assert corrected == itinerary


@pytest.mark.asyncio
async def test_internal_failure_returns_input(monkeypatch):
    itinerary = Itinerary.model_validate(build_itinerary(1))

    def broken_copy(*args, **kwargs):
        raise RuntimeError("copy failed")

    monkeypatch.setattr(Itinerary, "model_copy", broken_copy)

    corrected = await CoordinateCorrector().correct(itinerary, "杭州")

    assert corrected is itinerary
