"""
Coordinate correction service.

Models tend to emit WGS-84 coordinates, while maps of mainland China use
the GCJ-02 datum. Each place is first looked up with an optional geocoder
(bounded number of calls); otherwise its coordinates are converted to
GCJ-02 when they fall inside China and the shift is significant.
Correction is best-effort: any internal failure returns the input
itinerary unchanged.
"""

import math
from collections.abc import Awaitable, Callable

from itinerary_planner.data.models import Itinerary, Location
from itinerary_planner.utils.logging import get_logger

logger = get_logger(__name__)

# Krasovsky 1940 ellipsoid
_A = 6378245.0
_EE = 0.00669342162296594323
_METERS_PER_DEGREE = 111000
_PI = math.pi

Geocoder = Callable[[str, str], Awaitable[tuple[float, float] | None]]


def in_china(lng: float, lat: float) -> bool:
    """Rough bounding box of mainland China, where GCJ-02 applies."""
    return 72.004 <= lng <= 137.8347 and 0.8293 <= lat <= 55.8271


def _transform_lat(x: float, y: float) -> float:
    ret = (
        -100.0
        + 2.0 * x
        + 3.0 * y
        + 0.2 * y * y
        + 0.1 * x * y
        + 0.2 * math.sqrt(abs(x))
    )
    ret += (20.0 * math.sin(6.0 * x * _PI) + 20.0 * math.sin(2.0 * x * _PI)) * 2 / 3
    ret += (20.0 * math.sin(y * _PI) + 40.0 * math.sin(y / 3.0 * _PI)) * 2 / 3
    ret += (
        (160.0 * math.sin(y / 12.0 * _PI) + 320.0 * math.sin(y * _PI / 30.0))
        * 2
        / 3
    )
    return ret


def _transform_lng(x: float, y: float) -> float:
    ret = (
        300.0
        + x
        + 2.0 * y
        + 0.1 * x * x
        + 0.1 * x * y
        + 0.1 * math.sqrt(abs(x))
    )
    ret += (20.0 * math.sin(6.0 * x * _PI) + 20.0 * math.sin(2.0 * x * _PI)) * 2 / 3
    ret += (20.0 * math.sin(x * _PI) + 40.0 * math.sin(x / 3.0 * _PI)) * 2 / 3
    ret += (
        (150.0 * math.sin(x / 12.0 * _PI) + 300.0 * math.sin(x / 30.0 * _PI))
        * 2
        / 3
    )
    return ret


def wgs84_to_gcj02(lng: float, lat: float) -> tuple[float, float]:
    """
    Convert a WGS-84 coordinate to GCJ-02.

    Coordinates outside China are returned unchanged.

    Returns:
        (lng, lat) in GCJ-02
    """
    if not in_china(lng, lat):
        return lng, lat

    dlat = _transform_lat(lng - 105.0, lat - 35.0)
    dlng = _transform_lng(lng - 105.0, lat - 35.0)
    radlat = lat / 180.0 * _PI
    magic = 1 - _EE * math.sin(radlat) ** 2
    sqrtmagic = math.sqrt(magic)
    dlat = (dlat * 180.0) / ((_A * (1 - _EE)) / (magic * sqrtmagic) * _PI)
    dlng = (dlng * 180.0) / (_A / sqrtmagic * math.cos(radlat) * _PI)
    return lng + dlng, lat + dlat


def _offset_meters(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    return math.hypot(
        (lng2 - lng1) * _METERS_PER_DEGREE, (lat2 - lat1) * _METERS_PER_DEGREE
    )


class CoordinateCorrector:
    """Best-effort coordinate correction for generated itineraries."""

    def __init__(
        self,
        geocoder: Geocoder | None = None,
        max_geocode_calls: int = 30,
        min_offset_m: float = 10.0,
    ):
        """
        Initialize the corrector.

        Args:
            geocoder: Async lookup ``(place_name, destination) -> (lat, lng)``
            max_geocode_calls: Geocoder call budget per itinerary
            min_offset_m: Minimum datum shift worth applying
        """
        self.geocoder = geocoder
        self.max_geocode_calls = max_geocode_calls
        self.min_offset_m = min_offset_m

    async def correct(self, itinerary: Itinerary, destination: str) -> Itinerary:
        """
        Correct every coordinate in an itinerary.

        Args:
            itinerary: Itinerary to correct; it is not modified
            destination: Destination name used to disambiguate geocoder lookups

        Returns:
            A corrected copy, or the input itinerary if correction failed
        """
        try:
            corrected = itinerary.model_copy(deep=True)
            calls = 0
            converted = 0
            for name, location in corrected.iter_locations():
                used_call, changed = await self._correct_location(
                    location, name, destination, calls < self.max_geocode_calls
                )
                calls += used_call
                converted += changed
            logger.debug(
                f"Coordinate correction for {destination}: "
                f"{converted} changed, {calls}/{self.max_geocode_calls} geocoder calls"
            )
            return corrected
        except Exception as e:
            logger.warning(f"Coordinate correction failed, keeping input: {e!s}")
            return itinerary

    async def _correct_location(
        self, location: Location, name: str, destination: str, may_geocode: bool
    ) -> tuple[int, int]:
        """Returns (geocoder calls used, locations changed)."""
        if not location.has_coordinates:
            return 0, 0

        if self.geocoder is not None and may_geocode:
            try:
                result = await self.geocoder(name, destination)
            except Exception as e:
                logger.debug(f"Geocoding '{name}' failed, falling back: {e!s}")
                result = None
            if result is not None:
                location.lat, location.lng = result
                return 1, 1
            used = 1
        else:
            used = 0

        lng, lat = wgs84_to_gcj02(location.lng, location.lat)
        if _offset_meters(location.lat, location.lng, lat, lng) > self.min_offset_m:
            location.lat, location.lng = lat, lng
            return used, 1
        return used, 0
