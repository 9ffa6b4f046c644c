"""Great-circle distance helpers and the South African city table."""

import math
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Tuple, TypeVar

from ..models.listing import Coordinate

EARTH_RADIUS_KM = 6371.0
AVERAGE_URBAN_SPEED_KMH = 50.0

T = TypeVar("T")


class DistanceInfo(NamedTuple):
    distance_km: float
    travel_minutes: int


class City(NamedTuple):
    name: str
    coordinates: Coordinate
    province: str


SA_CITIES: List[City] = [
    City("Cape Town", Coordinate(latitude=-33.9249, longitude=18.4241), "Western Cape"),
    City("Johannesburg", Coordinate(latitude=-26.2041, longitude=28.0473), "Gauteng"),
    City("Durban", Coordinate(latitude=-29.8587, longitude=31.0218), "KwaZulu-Natal"),
    City("Pretoria", Coordinate(latitude=-25.7479, longitude=28.2293), "Gauteng"),
    City("Port Elizabeth", Coordinate(latitude=-33.9608, longitude=25.6022), "Eastern Cape"),
    City("Bloemfontein", Coordinate(latitude=-29.0852, longitude=26.1596), "Free State"),
    City("East London", Coordinate(latitude=-33.0153, longitude=27.9116), "Eastern Cape"),
    City("Pietermaritzburg", Coordinate(latitude=-29.6017, longitude=30.3794), "KwaZulu-Natal"),
    City("Kimberley", Coordinate(latitude=-28.7282, longitude=24.7499), "Northern Cape"),
    City("Polokwane", Coordinate(latitude=-23.9045, longitude=29.4689), "Limpopo"),
    City("Nelspruit", Coordinate(latitude=-25.4753, longitude=30.9700), "Mpumalanga"),
    City("Rustenburg", Coordinate(latitude=-25.6670, longitude=27.2502), "North West"),
]

CITY_ALIASES: Dict[str, str] = {
    "jozi": "Johannesburg",
    "joburg": "Johannesburg",
    "jhb": "Johannesburg",
    "cpt": "Cape Town",
    "pta": "Pretoria",
    "tshwane": "Pretoria",
    "pmb": "Pietermaritzburg",
    "gqeberha": "Port Elizabeth",
    "pe": "Port Elizabeth",
    "mbombela": "Nelspruit",
}


def distance(a: Coordinate, b: Coordinate) -> float:
    """Haversine distance in kilometres between two coordinates.

    Symmetric and zero for identical points. Out-of-range latitudes or
    longitudes are not rejected.
    """
    lat1, lat2 = math.radians(a.latitude), math.radians(b.latitude)
    d_lat = lat2 - lat1
    d_lon = math.radians(b.longitude - a.longitude)

    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(d_lon / 2) ** 2
    )
    # Rounding can push h a hair above 1 for antipodal points.
    h = min(1.0, h)
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(h))


def distance_info(a: Coordinate, b: Coordinate) -> DistanceInfo:
    """Distance rounded to 0.1 km plus an estimated urban travel time."""
    km = round(distance(a, b), 1)
    minutes = round(km / AVERAGE_URBAN_SPEED_KMH * 60)
    return DistanceInfo(distance_km=km, travel_minutes=minutes)


def is_within_radius(center: Coordinate, target: Coordinate, radius_km: float) -> bool:
    return distance(center, target) <= radius_km


def filter_by_radius(
    items: Sequence[T],
    reference: Coordinate,
    radius_km: float,
    get_coordinates: Callable[[T], Optional[Coordinate]],
) -> List[T]:
    """Keep the items within ``radius_km`` of ``reference``; items without
    coordinates are dropped."""
    kept = []
    for item in items:
        coords = get_coordinates(item)
        if coords is not None and is_within_radius(reference, coords, radius_km):
            kept.append(item)
    return kept


def sort_by_distance(
    items: Sequence[T],
    reference: Coordinate,
    get_coordinates: Callable[[T], Optional[Coordinate]],
) -> List[T]:
    """Stable sort, nearest first; items without coordinates go to the end."""

    def key(item: T) -> Tuple[bool, float]:
        coords = get_coordinates(item)
        if coords is None:
            return (True, 0.0)
        return (False, distance(reference, coords))

    return sorted(items, key=key)


def nearest_city(coordinate: Coordinate) -> Tuple[City, float]:
    """Return the closest known city and its distance in kilometres."""
    best = min(SA_CITIES, key=lambda city: distance(coordinate, city.coordinates))
    return best, round(distance(coordinate, best.coordinates), 1)


def city_coordinates(name: str) -> Optional[Coordinate]:
    """Look up a city by name or common alias, case-insensitively."""
    needle = name.strip().lower()
    needle = CITY_ALIASES.get(needle, needle).lower()
    for city in SA_CITIES:
        if city.name.lower() == needle:
            return city.coordinates
    return None


def format_distance(km: float) -> str:
    if km < 1:
        return f"{round(km * 1000)}m"
    if km < 10:
        return f"{km:.1f}km"
    return f"{round(km)}km"


def format_travel_time(minutes: int) -> str:
    if minutes < 60:
        return f"{minutes} min"
    hours, remaining = divmod(minutes, 60)
    if remaining == 0:
        return f"{hours} hr"
    return f"{hours} hr {remaining} min"
