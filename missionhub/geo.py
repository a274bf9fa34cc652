"""Great-circle distance helpers."""

import math

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres between two WGS84 coordinates."""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def within_radius(
    origin: tuple[float, float],
    rows: list[dict],
    radius_km: float,
) -> list[dict]:
    """Rows whose ``latitude``/``longitude`` lie within ``radius_km`` of origin.

    Each returned row is a copy with ``distance_km`` set, nearest first.
    """
    lat, lon = origin
    nearby = []
    for row in rows:
        if row.get("latitude") is None or row.get("longitude") is None:
            continue
        distance = haversine_km(lat, lon, row["latitude"], row["longitude"])
        if distance <= radius_km:
            nearby.append({**row, "distance_km": round(distance, 3)})
    nearby.sort(key=lambda r: r["distance_km"])
    return nearby
