#Marks routing as a package.
#Re-exports the geofence API so other modules import from routing without
#knowing internal file names.
#No business logic.

from .geofence import (
    DEFAULT_SERVICE_AREA,
    GeofenceResult,
    InvalidCoordinates,
    ServiceArea,
    evaluate,
    haversine_km,
    validate_coordinates,
)

__all__ = [
           "DEFAULT_SERVICE_AREA",
           "GeofenceResult",
             "InvalidCoordinates",
             "ServiceArea",
             "evaluate",
             "haversine_km",
             "validate_coordinates",
             ]
