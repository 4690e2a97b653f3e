import logging
import time
from math import atan2, ceil, cos, radians, sin, sqrt
from typing import Optional, Tuple

import requests

logger = logging.getLogger(__name__)

NOMINATIM_URL = "https://nominatim.openstreetmap.org"
HEADERS = {
    "User-Agent": "CareLink-Emergency-Dispatch/1.0"
}

EARTH_RADIUS_KM = 6371.0

# ambulance speed assumed for every response estimate (km/h)
AVERAGE_RESPONSE_SPEED_KMH = 40


def _nominatim(path: str, params: dict, max_retries: int, timeout: int = 10) -> Optional[dict]:
    """GET a Nominatim endpoint, retrying timeouts only. Returns None on failure."""
    for attempt in range(1, max_retries + 1):
        try:
            response = requests.get(f"{NOMINATIM_URL}/{path}", params={**params, "format": "json"},
                                    headers=HEADERS, timeout=timeout)
            response.raise_for_status()
            return response.json()
        except requests.exceptions.Timeout:
            logger.warning(f"Nominatim /{path} timed out (attempt {attempt}/{max_retries})")
            if attempt < max_retries:
                time.sleep(1)
        except requests.exceptions.RequestException as e:
            logger.error(f"Nominatim /{path} request error: {e}")
            return None
        except ValueError as e:
            logger.error(f"Could not parse Nominatim /{path} response: {e}")
            return None
    return None

def reverse_geocode(lat: float, lon: float, max_retries: int = 2) -> Optional[str]:
    data = _nominatim("reverse", {"lat": lat, "lon": lon, "zoom": 18, "addressdetails": 1}, max_retries)
    if not data or "display_name" not in data:
        return None
    logger.info(f"Reverse geocoded ({lat}, {lon}) -> {data['display_name']}")
    return data["display_name"]

def address_from_coordinates(lat: float, lon: float) -> str:
    """Reverse geocode, falling back to the raw coordinates."""
    return reverse_geocode(lat, lon) or f"{lat}, {lon}"

def distance_km(point_a: Tuple[float, float], point_b: Tuple[float, float]) -> float:
    """Great-circle (Haversine) distance between two (lat, lon) points."""
    lat1, lon1 = radians(point_a[0]), radians(point_a[1])
    lat2, lon2 = radians(point_b[0]), radians(point_b[1])

    a = sin((lat2 - lat1) / 2) ** 2 + cos(lat1) * cos(lat2) * sin((lon2 - lon1) / 2) ** 2
    return EARTH_RADIUS_KM * 2 * atan2(sqrt(a), sqrt(1 - a))

def response_time(distance: float) -> str:
    return f"{ceil(distance / AVERAGE_RESPONSE_SPEED_KMH)} mins"
