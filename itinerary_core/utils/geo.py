"""Great-circle distance and distance-based commute estimates."""

import math

from itinerary_core.models.common import CommuteMethod, Coordinates

EARTH_RADIUS_M = 6371000.0

# Average door-to-door speeds in meters per minute
_SPEEDS_M_PER_MIN: dict[CommuteMethod, float] = {
    CommuteMethod.walk: 80.0,
    CommuteMethod.transit: 500.0,
    CommuteMethod.taxi: 400.0,
    CommuteMethod.drive: 400.0,
    CommuteMethod.bus: 300.0,
}

# Fixed overhead per leg (waiting, walking to the station)
_BUFFERS_MIN: dict[CommuteMethod, int] = {
    CommuteMethod.walk: 0,
    CommuteMethod.transit: 10,
}

WALK_MAX_DISTANCE_M = 2000


def haversine_meters(origin: Coordinates, destination: Coordinates) -> float:
    """Straight-line distance between two points in meters."""
    lat1 = math.radians(origin.lat)
    lat2 = math.radians(destination.lat)
    d_lat = math.radians(destination.lat - origin.lat)
    d_lng = math.radians(destination.lng - origin.lng)

    a = math.sin(d_lat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def infer_commute_method(distance_m: float) -> CommuteMethod:
    """Walk short hops, take transit otherwise."""
    return CommuteMethod.walk if distance_m <= WALK_MAX_DISTANCE_M else CommuteMethod.transit


def estimate_commute_minutes(distance_m: float, method: CommuteMethod) -> int:
    """Estimate a commute duration from distance and mode."""
    speed = _SPEEDS_M_PER_MIN.get(method, _SPEEDS_M_PER_MIN[CommuteMethod.transit])
    buffer = _BUFFERS_MIN.get(method, 5)
    return round(distance_m / speed + buffer)


def estimate_leg_travel_minutes(distance_m: float) -> float:
    """Coarse leg estimate used by day travel budgets: ~20 min per 5 km, at least 10 min."""
    return max(10.0, distance_m / 5000 * 20)
