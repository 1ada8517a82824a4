#Purpose: Delivery geofencing logic.
#Decides whether a customer location can be served by a shop.
#Typical responsibilities:
#Validate raw coordinates coming from the client
#Service-area bounding box check (center +/- fixed degree offset)
#Great-circle (Haversine) distance from shop to customer
#Apply the shop's effective delivery radius
#Output: a GeofenceResult with eligibility, distance and a display message.
#Pure functions only: no database, no HTTP.

from dataclasses import dataclass #for simple data structures
from typing import Optional, Tuple #for type annotations
import math

#internal coordinate type :(lat,lon)
LatLon = Tuple[float, float]

EARTH_RADIUS_KM = 6371.0

#reasons returned to the client
REASON_AVAILABLE = "available"
REASON_OUTSIDE_SERVICE_AREA = "outside_service_area"
REASON_OUTSIDE_RADIUS = "outside_radius"
REASON_LOCATION_UNAVAILABLE = "location_unavailable"


class InvalidCoordinates(ValueError):
    """Raised when a latitude/longitude pair is non-numeric or out of range."""
    pass


@dataclass(frozen=True)
class ServiceArea:
    """
    The area the platform delivers to.
    The bounding box is center +/- box_offset_deg on both axes
    (0.045 degrees is roughly 5 km of latitude).
    """
    center: LatLon = (12.4962, 78.5696) # Tirupattur Bus Stand
    max_radius_km: float = 5.0
    box_offset_deg: float = 0.045
    name: str = "Tirupattur"

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(south, north, west, east)"""
        lat, lon = self.center
        return (
            lat - self.box_offset_deg,
            lat + self.box_offset_deg,
            lon - self.box_offset_deg,
            lon + self.box_offset_deg,
        )

    def contains(self, lat: float, lon: float) -> bool:
        south, north, west, east = self.bounds
        return south <= lat <= north and west <= lon <= east

    def validate(self) -> None:
        validate_coordinates(*self.center)
        if self.max_radius_km <= 0:
            raise ValueError("max_radius_km must be > 0")
        if self.box_offset_deg <= 0:
            raise ValueError("box_offset_deg must be > 0")


DEFAULT_SERVICE_AREA = ServiceArea()


@dataclass(frozen=True)
class GeofenceResult:
    """
    Output of the geofence for one (customer, shop) pair.
    distance_km is None only when the shop has no usable location.
    """
    eligible: bool
    distance_km: Optional[float]
    reason: str
    message: str

    def to_dict(self) -> dict:
        return {
            "available": self.eligible,
            "distance": round(self.distance_km, 2) if self.distance_km is not None else None,
            "reason": self.reason,
            "message": self.message,
        }


def _is_number(value) -> bool:
    #bool is an int subclass, a True latitude is a client bug
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_coordinates(lat, lon) -> LatLon:
    """
    Returns (lat, lon) as floats or raises InvalidCoordinates.
    NaN fails the range comparison and is rejected with it.
    """
    if not _is_number(lat) or not _is_number(lon):
        raise InvalidCoordinates("Latitude and longitude must be numbers")
    lat, lon = float(lat), float(lon)
    if not (-90.0 <= lat <= 90.0) or not (-180.0 <= lon <= 180.0):
        raise InvalidCoordinates("Coordinates out of valid range")
    return lat, lon


def haversine_km(origin: LatLon, destination: LatLon) -> float:
    """Great-circle distance in kilometers between two (lat, lon) points."""
    lat1, lon1 = origin
    lat2, lon2 = destination
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def evaluate(
        user_lat,
        user_lng,
        shop_location: Optional[LatLon],
        *,
        radius_km: Optional[float] = None, #per-shop radius, falls back to the service area radius
        service_area: ServiceArea = DEFAULT_SERVICE_AREA,
) -> GeofenceResult:
    """
    Delivery eligibility of a customer point for one shop.

    Args:
        user_lat, user_lng: raw customer coordinates (validated here)
        shop_location: (lat, lon) of the shop, or None when the shop has no location
        radius_km: effective delivery radius for the shop
        service_area: platform service area (bounding box + default radius)

    Returns:
        GeofenceResult. The bounding box is checked before the radius, so a point
        outside the box is always outside_service_area whatever its distance.

    Raises:
        InvalidCoordinates for a malformed customer point. A malformed shop location
        is reported as location_unavailable instead.
    """
    user_point = validate_coordinates(user_lat, user_lng)

    if shop_location is None:
        return GeofenceResult(False, None, REASON_LOCATION_UNAVAILABLE, "Shop location not available")
    try:
        shop_point = validate_coordinates(*shop_location)
    except (InvalidCoordinates, TypeError):
        return GeofenceResult(False, None, REASON_LOCATION_UNAVAILABLE, "Shop location not available")

    distance_km = haversine_km(user_point, shop_point)

    if not service_area.contains(*user_point):
        return GeofenceResult(
            False,
            distance_km,
            REASON_OUTSIDE_SERVICE_AREA,
            f"Location is outside {service_area.name} service area",
        )

    effective_radius = radius_km if radius_km is not None else service_area.max_radius_km
    if distance_km <= effective_radius:
        return GeofenceResult(
            True,
            distance_km,
            REASON_AVAILABLE,
            f"Delivery available ({distance_km:.1f}km away)",
        )
    return GeofenceResult(
        False,
        distance_km,
        REASON_OUTSIDE_RADIUS,
        "Not available for your location",
    )
