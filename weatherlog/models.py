"""
ORM models.

One row per saved weather entry:
- what the user typed and the date range they asked for
- the resolved city (coordinates, country, timezone, sun times)
- upstream payloads (current weather, forecast) as JSON text
- optional lookups (videos, map links) as JSON text
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
import json
import secrets

from sqlalchemy import String, Integer, Float, DateTime, Text
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def new_entry_id() -> str:
    """24 hex characters, the shape is_valid_record_id accepts."""
    return secrets.token_hex(12)


def to_naive_utc(value: datetime) -> datetime:
    """SQLite keeps no offset, so timestamps are stored as naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class WeatherEntry(Base):
    __tablename__ = "weather_entries"

    id: Mapped[str] = mapped_column(String(24), primary_key=True, default=new_entry_id)

    location: Mapped[str] = mapped_column(String(100), index=True)

    lat: Mapped[float] = mapped_column(Float)
    lon: Mapped[float] = mapped_column(Float)

    city_name: Mapped[str] = mapped_column(String(255), default="")
    country: Mapped[str] = mapped_column(String(32), default="")
    timezone_offset: Mapped[int] = mapped_column(Integer, default=0)
    sunrise: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    sunset: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    start_date: Mapped[datetime] = mapped_column(DateTime, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime, index=True)

    current_weather_json: Mapped[str] = mapped_column(Text, default="{}")
    forecast_json: Mapped[str] = mapped_column(Text, default="{}")
    # {"youtubeVideos": [...], "mapsData": {...}}, keys only when requested
    additional_data_json: Mapped[str] = mapped_column(Text, default="{}")

    created_at: Mapped[datetime] = mapped_column(DateTime, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime)

    @property
    def current_weather(self) -> Dict[str, Any]:
        return json.loads(self.current_weather_json or "{}")

    @property
    def forecast(self) -> Dict[str, Any]:
        return json.loads(self.forecast_json or "{}")

    @property
    def additional_data(self) -> Dict[str, Any]:
        return json.loads(self.additional_data_json or "{}")

    def is_data_recent(self, now: datetime, ttl_minutes: int = 60) -> bool:
        """True when the entry was refreshed within the last ttl_minutes."""
        return self.updated_at > to_naive_utc(now) - timedelta(minutes=ttl_minutes)
