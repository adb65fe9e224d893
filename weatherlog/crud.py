"""
CRUD functions.

main.py handles routing and request/response shaping; everything that
touches the database or composes an entry document lives here.

Payloads arrive already validated (see validation.py).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple
import json
import logging

import httpx
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models
from .maps import generate_maps_data
from .models import to_naive_utc
from .validation import NormalizedEntry
from .video_client import YouTubeClient
from .weather_clients import OpenWeatherClient, WeatherData, WeatherError

logger = logging.getLogger("weatherlog.crud")

SORT_COLUMNS = {
    "createdAt": models.WeatherEntry.created_at,
    "updatedAt": models.WeatherEntry.updated_at,
    "location": models.WeatherEntry.location,
    "startDate": models.WeatherEntry.start_date,
}


def _location_contains(location: str):
    """Case-insensitive substring match; % and _ in the input match literally."""
    escaped = location.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return models.WeatherEntry.location.ilike(f"%{escaped}%", escape="\\")


def find_recent_match(db: Session, location: str, start: datetime, end: datetime) -> Optional[models.WeatherEntry]:
    """
    Stored entry for the same place whose date range covers [start, end].

    Location matching is a case-insensitive substring match.
    """
    stmt = (
        select(models.WeatherEntry)
        .where(_location_contains(location))
        .where(models.WeatherEntry.start_date <= to_naive_utc(start))
        .where(models.WeatherEntry.end_date >= to_naive_utc(end))
        .order_by(models.WeatherEntry.updated_at.desc())
        .limit(1)
    )
    return db.scalars(stmt).first()


def _apply_weather(record: models.WeatherEntry, weather: WeatherData) -> None:
    sys_info = weather.current.get("sys") or {}
    record.lat = weather.lat
    record.lon = weather.lon
    record.city_name = weather.city_name
    record.country = weather.country
    record.timezone_offset = int(weather.current.get("timezone") or 0)
    record.sunrise = sys_info.get("sunrise")
    record.sunset = sys_info.get("sunset")
    record.current_weather_json = json.dumps(weather.current)
    record.forecast_json = json.dumps(weather.forecast)


async def _lookup_videos(yt: YouTubeClient, place: str, max_results: int,
                         fallback: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    try:
        return await yt.search_videos(place, max_results=max_results)
    except (httpx.HTTPError, ValueError):
        logger.warning("Video lookup for %r failed; keeping previous videos", place, exc_info=True)
        return fallback


def _maps_for(weather: WeatherData, maps_key: Optional[str], fallback: Dict[str, Any]) -> Dict[str, Any]:
    try:
        return generate_maps_data(weather.lat, weather.lon, weather.city_name, api_key=maps_key)
    except WeatherError:
        logger.warning("Map link generation failed for %s", weather.city_name, exc_info=True)
        return fallback


async def create_entry(
    db: Session,
    entry: NormalizedEntry,
    owm: OpenWeatherClient,
    yt: YouTubeClient,
    now: datetime,
    maps_key: Optional[str] = None,
    ttl_minutes: int = 60,
    max_videos: int = 5,
) -> Tuple[models.WeatherEntry, bool]:
    """
    CREATE entry:
    - reuse a covering entry refreshed within ttl_minutes
    - otherwise fetch weather, optional videos and map links, and store

    Returns (entry, reused).
    """
    existing = find_recent_match(db, entry.location, entry.start_date, entry.end_date)
    if existing is not None and existing.is_data_recent(now, ttl_minutes):
        logger.info("Reusing entry %s for %r", existing.id, entry.location)
        return existing, True

    weather = await owm.fetch_weather_data(entry.location)

    additional: Dict[str, Any] = {}
    if entry.include_youtube:
        additional["youtubeVideos"] = await _lookup_videos(yt, weather.city_name, max_videos, [])
    if entry.include_maps:
        additional["mapsData"] = _maps_for(weather, maps_key, {})

    stamp = to_naive_utc(now)
    record = models.WeatherEntry(
        location=entry.location,
        start_date=to_naive_utc(entry.start_date),
        end_date=to_naive_utc(entry.end_date),
        additional_data_json=json.dumps(additional),
        created_at=stamp,
        updated_at=stamp,
    )
    _apply_weather(record, weather)

    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("Created entry %s for %r", record.id, record.location)
    return record, False


def list_entries(
    db: Session,
    page: int = 1,
    limit: int = 10,
    location: Optional[str] = None,
    sort_by: str = "createdAt",
    sort_order: str = "desc",
) -> Tuple[List[models.WeatherEntry], int]:
    """One page of entries plus the total matching count."""
    column = SORT_COLUMNS.get(sort_by, models.WeatherEntry.created_at)
    order = column.desc() if sort_order == "desc" else column.asc()

    stmt = select(models.WeatherEntry)
    count_stmt = select(func.count()).select_from(models.WeatherEntry)
    if location:
        stmt = stmt.where(_location_contains(location))
        count_stmt = count_stmt.where(_location_contains(location))

    items = db.scalars(stmt.order_by(order).offset((page - 1) * limit).limit(limit)).all()
    total = db.scalar(count_stmt) or 0
    return list(items), total


def get_entry(db: Session, entry_id: str) -> Optional[models.WeatherEntry]:
    """Fetch a single entry by id."""
    return db.get(models.WeatherEntry, entry_id)


async def update_entry(
    db: Session,
    record: models.WeatherEntry,
    entry: NormalizedEntry,
    owm: OpenWeatherClient,
    yt: YouTubeClient,
    now: datetime,
    maps_key: Optional[str] = None,
    max_videos: int = 5,
) -> models.WeatherEntry:
    """
    UPDATE entry:
    - merge provided fields over the stored ones
    - re-fetch weather for the (possibly new) location
    - refresh lookups whose flag is true, drop those whose flag is false,
      keep those whose flag was not sent
    """
    location = entry.location if entry.location is not None else record.location
    start = to_naive_utc(entry.start_date) if entry.start_date is not None else record.start_date
    end = to_naive_utc(entry.end_date) if entry.end_date is not None else record.end_date

    if end < start:
        raise WeatherError("End date must be after start date")

    weather = await owm.fetch_weather_data(location)

    previous = record.additional_data
    additional = dict(previous)
    if entry.include_youtube is True:
        additional["youtubeVideos"] = await _lookup_videos(
            yt, weather.city_name, max_videos, previous.get("youtubeVideos", [])
        )
    elif entry.include_youtube is False:
        additional.pop("youtubeVideos", None)

    if entry.include_maps is True:
        additional["mapsData"] = _maps_for(weather, maps_key, previous.get("mapsData", {}))
    elif entry.include_maps is False:
        additional.pop("mapsData", None)

    record.location = location
    record.start_date = start
    record.end_date = end
    record.additional_data_json = json.dumps(additional)
    record.updated_at = to_naive_utc(now)
    _apply_weather(record, weather)

    db.add(record)
    db.commit()
    db.refresh(record)
    logger.info("Updated entry %s", record.id)
    return record


def delete_entry(db: Session, record: models.WeatherEntry) -> None:
    """DELETE entry."""
    db.delete(record)
    db.commit()
    logger.info("Deleted entry %s", record.id)
