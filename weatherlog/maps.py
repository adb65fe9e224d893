"""
Google Maps link generation.

No HTTP calls here: every link is built from coordinates and a place name.
Without an API key only the keyless links are produced.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple
from urllib.parse import quote
import logging

from .weather_clients import WeatherError

logger = logging.getLogger("weatherlog.maps")

DIRECTION_MODES = {"driving": "0", "bicycling": "1", "walking": "2", "transit": "3"}


def validate_coordinates(lat: Any, lon: Any) -> Tuple[float, float]:
    """Parse and range-check a coordinate pair."""
    try:
        latitude = float(lat)
        longitude = float(lon)
    except (TypeError, ValueError):
        raise WeatherError("Coordinates must be valid numbers.")

    if latitude != latitude or longitude != longitude:
        raise WeatherError("Coordinates must be valid numbers.")
    if not (-90.0 <= latitude <= 90.0):
        raise WeatherError("Latitude must be between -90 and 90.")
    if not (-180.0 <= longitude <= 180.0):
        raise WeatherError("Longitude must be between -180 and 180.")
    return latitude, longitude


def embed_url(lat: float, lon: float, name: Optional[str], api_key: Optional[str] = None) -> str:
    if not api_key:
        return (
            "https://www.google.com/maps/embed?pb=!1m18!1m12!1m3!1d3000"
            f"!2d{lon}!3d{lat}!2m3!1f0!2f0!3f0!3m2!1i1024!2i768!4f13.1"
            "!3m3!1m2!1s0x0%3A0x0!2zM!5e0!3m2!1sen!2sus!4v1234567890123!5m2!1sen!2sus"
        )
    q = quote(name or f"{lat},{lon}", safe="")
    return f"https://www.google.com/maps/embed/v1/place?key={api_key}&q={q}&center={lat},{lon}&zoom=12"


def static_map_url(lat: float, lon: float, name: Optional[str], api_key: str,
                   zoom: int = 12, size: str = "600x400", maptype: str = "roadmap") -> str:
    label = quote(name[0].upper(), safe="") if name else "A"
    return (
        f"https://maps.googleapis.com/maps/api/staticmap?center={lat},{lon}"
        f"&zoom={zoom}&size={size}&maptype={maptype}&format=png&key={api_key}"
        f"&markers=color:red%7Clabel:{label}%7C{lat},{lon}"
    )


def street_view_url(lat: float, lon: float, api_key: str, size: str = "600x400",
                    heading: int = 0, pitch: int = 0, fov: int = 90) -> str:
    return (
        f"https://maps.googleapis.com/maps/api/streetview?size={size}&location={lat},{lon}"
        f"&heading={heading}&pitch={pitch}&fov={fov}&key={api_key}"
    )


def directions_url(from_lat: float, from_lon: float, to_lat: float, to_lon: float,
                   mode: str = "driving") -> str:
    code = DIRECTION_MODES.get(mode, "0")
    return (
        f"https://www.google.com/maps/dir/{from_lat},{from_lon}/{to_lat},{to_lon}"
        f"/@{to_lat},{to_lon},12z/data=!3m1!4b1!4m2!4m1!3e{code}"
    )


def generate_maps_data(lat: float, lon: float, name: Optional[str] = None,
                       api_key: Optional[str] = None,
                       user_location: Optional[Tuple[float, float]] = None) -> Dict[str, Any]:
    """
    Bundle of map links for one place.

    staticMapUrl/streetViewUrl need an API key; directions need the user's
    own coordinates.
    """
    lat, lon = validate_coordinates(lat, lon)
    label = name or f"{lat}, {lon}"

    data: Dict[str, Any] = {
        "coordinates": {"lat": lat, "lon": lon},
        "locationName": label,
        "embedUrl": embed_url(lat, lon, name, api_key),
        "googleMapsUrl": f"https://www.google.com/maps?q={lat},{lon}",
        "searchUrl": f"https://www.google.com/maps/search/{quote(name or f'{lat},{lon}', safe='')}",
    }

    if api_key:
        data["staticMapUrl"] = static_map_url(lat, lon, name, api_key)
        data["streetViewUrl"] = street_view_url(lat, lon, api_key)
    else:
        logger.debug("Google Maps API key not configured; skipping static and street view links")

    if user_location is not None:
        user_lat, user_lon = validate_coordinates(*user_location)
        data["directions"] = {
            mode: directions_url(user_lat, user_lon, lat, lon, mode)
            for mode in ("driving", "walking", "transit")
        }

    return data
