import logging
from typing import Dict, List, Optional

import requests

from carelink import config

logger = logging.getLogger(__name__)

BASE_URL = "https://maps.googleapis.com/maps/api/place"
SEARCH_RADIUS_M = 10000
FACILITY_TYPES = ("pharmacy", "hospital", "clinic")
DETAIL_FIELDS = "name,formatted_address,formatted_phone_number,website,opening_hours,rating"


class PlacesError(RuntimeError):
    pass


def facility_type(place: dict) -> str:
    types = place.get("types") or []
    name = (place.get("name") or "").lower()

    if "pharmacy" in types or "pharmacy" in name or "medical store" in name:
        return "pharmacy"
    if "hospital" in types or "hospital" in name or "medical center" in name:
        return "hospital"
    return "clinic"

def place_to_facility(place: dict) -> dict:
    location = place["geometry"]["location"]
    return {
        "id": place["place_id"],
        "name": place.get("name", ""),
        "address": place.get("vicinity") or place.get("formatted_address") or "Address not available",
        "lat": location["lat"],
        "lon": location["lng"],
        "type": facility_type(place),
        "rating": place.get("rating"),
        "is_open": (place.get("opening_hours") or {}).get("open_now"),
    }

def fetch_nearby_facilities(lat: float, lon: float, kind: Optional[str] = None) -> List[dict]:
    keywords = [kind] if kind else ["pharmacy", "hospital", "clinic", "medical", "healthcare"]
    params = {
        "location": f"{lat},{lon}",
        "radius": SEARCH_RADIUS_M,
        "keyword": "|".join(keywords),
        "key": config.GOOGLE_PLACES_API_KEY,
    }
    response = requests.get(f"{BASE_URL}/nearbysearch/json", params=params, timeout=15)
    response.raise_for_status()
    data = response.json()

    status = data.get("status")
    if status == "ZERO_RESULTS":
        return []
    if status != "OK":
        logger.error(f"Places nearby search failed: {status} {data.get('error_message', '')}")
        raise PlacesError(f"Google Places API error: {status} - {data.get('error_message', 'Unknown error')}")

    return [place_to_facility(p) for p in data.get("results", [])]

def fetch_facilities_by_type(lat: float, lon: float) -> Dict[str, List[dict]]:
    return {
        "pharmacies": fetch_nearby_facilities(lat, lon, "pharmacy"),
        "hospitals": fetch_nearby_facilities(lat, lon, "hospital"),
        "clinics": fetch_nearby_facilities(lat, lon, "clinic"),
    }

def get_facility_details(place_id: str) -> dict:
    params = {"place_id": place_id, "fields": DETAIL_FIELDS, "key": config.GOOGLE_PLACES_API_KEY}
    response = requests.get(f"{BASE_URL}/details/json", params=params, timeout=15)
    response.raise_for_status()
    data = response.json()
    if data.get("status") != "OK":
        raise PlacesError(f"Google Places API error: {data.get('status')}")
    return data["result"]
