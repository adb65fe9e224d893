"""
OpenWeatherMap client.

Kept apart from the FastAPI endpoints so the same calls serve the lookup
pages, entry creation and entry updates, and can be tested in isolation.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, date, timezone
from typing import Any, Dict, List, Tuple
import asyncio
import logging
import re

import httpx

logger = logging.getLogger("weatherlog.weather")

COORDS_RE = re.compile(r"\s*(-?\d+(?:\.\d+)?)\s*,\s*(-?\d+(?:\.\d+)?)\s*")
ZIP_RE = re.compile(r"\d{5}(?:-\d{4})?")
ZIP_COUNTRY_RE = re.compile(r"\d{5},\w{2}")


class WeatherError(RuntimeError):
    """Raised for user-facing weather lookup failures."""
    pass


@dataclass(frozen=True)
class WeatherData:
    """Current conditions plus the 3-hour forecast for one location."""
    current: Dict[str, Any]
    forecast: Dict[str, Any]

    @property
    def lat(self) -> float:
        return float(self.current["coord"]["lat"])

    @property
    def lon(self) -> float:
        return float(self.current["coord"]["lon"])

    @property
    def city_name(self) -> str:
        return self.current.get("name", "")

    @property
    def country(self) -> str:
        return (self.current.get("sys") or {}).get("country", "")


def location_params(location: str) -> Dict[str, str]:
    """
    Pick the query parameters for a free-form location.

    Supported input formats (checked in this order):
    1) Coordinates: "40.7128,-74.0060"
    2) US ZIP code: "10001", "10001-1234" or "10001,us"
    3) Anything else is sent as a place name: "Paris, FR"
    """
    raw = location.strip()
    coords = COORDS_RE.fullmatch(raw)
    if coords:
        return {"lat": coords.group(1), "lon": coords.group(2)}
    if ZIP_RE.fullmatch(raw) or ZIP_COUNTRY_RE.fullmatch(raw):
        return {"zip": raw}
    return {"q": raw}


class OpenWeatherClient:
    """
    OpenWeatherMap wrapper.

    Endpoints used:
    - Current weather:
        /data/2.5/weather?q=...&units=metric&appid=KEY
    - 5-day forecast (3-hour increments):
        /data/2.5/forecast?q=...&units=metric&appid=KEY
    """

    def __init__(self, api_key: str, timeout_s: float = 10.0, units: str = "metric"):
        self.api_key = api_key
        self.timeout_s = timeout_s
        self.units = units
        self.base = "https://api.openweathermap.org/data/2.5"

    async def _get(self, endpoint: str, location: str) -> Dict[str, Any]:
        params: Dict[str, Any] = dict(location_params(location))
        params.update({"units": self.units, "appid": self.api_key})
        try:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                r = await client.get(
                    f"{self.base}/{endpoint}",
                    params=params,
                    headers={"User-Agent": "weatherlog/1.0"},
                )
        except httpx.TimeoutException as e:
            raise WeatherError("Request timeout. Please check your internet connection and try again.") from e
        except httpx.TransportError as e:
            raise WeatherError("Unable to connect to weather service. Please try again later.") from e

        if r.status_code == 200:
            return r.json()

        logger.warning("OpenWeather %s failed for %r with status %s", endpoint, location, r.status_code)
        if r.status_code == 401:
            raise WeatherError("Invalid API key. Please check your OpenWeatherMap API key.")
        if r.status_code == 404:
            raise WeatherError(f'Location "{location}" not found. Please check the spelling and try again.')
        if r.status_code == 429:
            raise WeatherError("API rate limit exceeded. Please try again later.")
        try:
            message = r.json().get("message") or "Unknown API error"
        except ValueError:
            message = r.text or "Unknown API error"
        raise WeatherError(f"Weather API error: {message}")

    async def current_weather(self, location: str) -> Dict[str, Any]:
        """Current conditions for a location."""
        return await self._get("weather", location)

    async def forecast(self, location: str) -> Dict[str, Any]:
        """5-day forecast in 3-hour steps."""
        return await self._get("forecast", location)

    async def fetch_weather_data(self, location: str) -> WeatherData:
        """Fetch current + forecast concurrently and sanity-check both."""
        logger.info("Fetching weather data for %r", location)
        current, forecast = await asyncio.gather(
            self.current_weather(location),
            self.forecast(location),
        )

        if not current or not current.get("coord"):
            raise WeatherError("Invalid current weather data received from API")
        if not forecast or forecast.get("list") is None:
            raise WeatherError("Invalid forecast data received from API")

        data = WeatherData(current=current, forecast=forecast)
        logger.info("Fetched weather data for %s, %s", data.city_name, data.country)
        return data

    @staticmethod
    def summarize_to_5_days(forecast_3h: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Collapse ~40 three-hour steps into one card per local day.

        For each day: min/max temperature, the most frequent
        (icon, description) pair and the highest precipitation chance.
        """
        tz_offset = int((forecast_3h.get("city") or {}).get("timezone", 0))

        def local_day(dt_utc: int) -> date:
            return datetime.fromtimestamp(dt_utc + tz_offset, tz=timezone.utc).date()

        grouped: Dict[date, List[Dict[str, Any]]] = {}
        for item in forecast_3h.get("list", []):
            grouped.setdefault(local_day(int(item["dt"])), []).append(item)

        days: List[Dict[str, Any]] = []
        for d in sorted(grouped)[:5]:
            steps = grouped[d]

            pops = [float(x["pop"]) for x in steps if x.get("pop") is not None]
            pop_max = max(pops) if pops else None

            temps = [float(x["main"]["temp"]) for x in steps if "temp" in (x.get("main") or {})]

            conditions: Counter[Tuple[str, str]] = Counter()
            for x in steps:
                w = (x.get("weather") or [{}])[0]
                conditions[(w.get("icon", ""), w.get("description", ""))] += 1
            icon, desc = conditions.most_common(1)[0][0] if conditions else ("", "")

            days.append({
                "date": d.isoformat(),
                "dow": d.strftime("%a"),
                "date_display": d.strftime("%b %d, %Y"),
                "tmin": min(temps) if temps else None,
                "tmax": max(temps) if temps else None,
                "icon": icon,
                "description": desc,
                "pop_max": pop_max,
                "pop_pct": round(pop_max * 100) if pop_max is not None else None,
            })

        return days


def icon_url(icon_code: str) -> str:
    return f"https://openweathermap.org/img/wn/{icon_code}@2x.png"
