"""Geographic helpers and the placeholder address scheme."""

from __future__ import annotations

import hashlib
import math

EARTH_RADIUS_M = 6_371_000
# Rough metres per degree used for simulated offsets
METERS_PER_DEGREE = 111_320.0

# Placeholder address parts for Santa Cruz, Laguna. Addresses are a stable
# hash of the rounded coordinates, never a real lookup.
STREETS: tuple[str, ...] = (
    "P. Guevara Ave",
    "A. Regidor St",
    "J. De Leon St",
    "Quezon Ave",
    "Rizal Ave",
    "Burgos St",
    "Mabini St",
    "National Highway",
)
BARANGAYS: tuple[str, ...] = (
    "Poblacion I",
    "Poblacion II",
    "Poblacion III",
    "Bagumbayan",
    "Calios",
    "Duhat",
    "Gatid",
    "Pagsawitan",
    "Patimbao",
    "Santo Angel Central",
)
CITY = "Santa Cruz, Laguna"
ADDRESS_PRECISION = 4  # ~11 m cells


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Haversine distance in meters between two lat/lng points."""
    R = EARTH_RADIUS_M
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlam = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlam / 2) ** 2
    return R * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def meters_to_degrees(meters: float) -> float:
    return meters / METERS_PER_DEGREE


def approximate_address(lat: float, lng: float) -> str:
    """Deterministic placeholder address for a coordinate."""
    key = f"{round(lat, ADDRESS_PRECISION):.{ADDRESS_PRECISION}f},{round(lng, ADDRESS_PRECISION):.{ADDRESS_PRECISION}f}"
    digest = hashlib.sha256(key.encode("ascii")).digest()
    number = int.from_bytes(digest[0:2], "big") % 200 + 1
    street = STREETS[digest[2] % len(STREETS)]
    barangay = BARANGAYS[digest[3] % len(BARANGAYS)]
    return f"{number} {street}, Brgy. {barangay}, {CITY}"
