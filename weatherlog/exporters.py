"""
Export helpers.

Exporters take entry dicts (see main.entry_to_dict) and return text:
- JSON: pretty printed, wrapped with export metadata
- CSV: 1 row per entry, current conditions flattened into columns
- Markdown: one section per entry with forecast and related videos
"""

from __future__ import annotations
import csv
import io
import json
from datetime import datetime, timezone
from typing import List, Dict, Any, Optional


CSV_HEADERS = [
    "ID",
    "Location",
    "Latitude",
    "Longitude",
    "Start Date",
    "End Date",
    "Current Temperature (°C)",
    "Feels Like (°C)",
    "Humidity (%)",
    "Pressure (hPa)",
    "Wind Speed (m/s)",
    "Weather Description",
    "Created At",
    "Updated At",
]

MEDIA_TYPES = {
    "json": "application/json",
    "csv": "text/csv",
    "md": "text/markdown",
}


def normalize_format(fmt: str) -> str:
    """'markdown' and 'md' are the same format; anything unknown falls back to JSON."""
    fmt = (fmt or "json").lower()
    if fmt in ("markdown", "md"):
        return "md"
    if fmt == "csv":
        return "csv"
    return "json"


def export_filename(prefix: str, fmt: str, now: datetime) -> str:
    """e.g. weather-data-2025-06-15T12-00-00-000Z.csv"""
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S-") + f"{now.microsecond // 1000:03d}Z"
    return f"{prefix}-{stamp}.{fmt}"


def _iso_now(now: Optional[datetime]) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _current(entry: Dict[str, Any]) -> Dict[str, Any]:
    current = entry.get("currentWeather") or {}
    main = current.get("main") or {}
    wind = current.get("wind") or {}
    weather = (current.get("weather") or [{}])[0]
    return {
        "temp": main.get("temp"),
        "feels_like": main.get("feels_like"),
        "humidity": main.get("humidity"),
        "pressure": main.get("pressure"),
        "wind_speed": wind.get("speed"),
        "description": weather.get("description", ""),
    }


def export_json(entries: List[Dict[str, Any]], now: Optional[datetime] = None) -> str:
    """Export list of entries as pretty JSON."""
    return json.dumps(
        {
            "success": True,
            "exportedAt": _iso_now(now),
            "totalEntries": len(entries),
            "data": entries,
        },
        indent=2,
        default=str,
        ensure_ascii=False,
    )


def export_entry_json(entry: Dict[str, Any], now: Optional[datetime] = None) -> str:
    """Export a single entry as pretty JSON."""
    return json.dumps(
        {"success": True, "exportedAt": _iso_now(now), "data": entry},
        indent=2,
        default=str,
        ensure_ascii=False,
    )


def export_csv(entries: List[Dict[str, Any]]) -> str:
    """Export list of entries as CSV. Dates are reduced to YYYY-MM-DD."""
    if not entries:
        return ""

    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(CSV_HEADERS)

    for e in entries:
        cur = _current(e)
        coords = e.get("coordinates") or {}
        date_range = e.get("dateRange") or {}
        writer.writerow([
            e.get("id"),
            e.get("location"),
            coords.get("lat"),
            coords.get("lon"),
            str(date_range.get("startDate", ""))[:10],
            str(date_range.get("endDate", ""))[:10],
            cur["temp"],
            cur["feels_like"],
            cur["humidity"],
            cur["pressure"],
            cur["wind_speed"],
            cur["description"],
            e.get("createdAt"),
            e.get("updatedAt"),
        ])

    return output.getvalue()


def export_markdown(entries: List[Dict[str, Any]], now: Optional[datetime] = None) -> str:
    """Export a Markdown report."""
    if not entries:
        return "# Weather Data Export\n\nNo data available."

    lines = [
        "# Weather Data Export",
        "",
        f"Generated on: {_iso_now(now)}",
        "",
        f"Total entries: {len(entries)}",
        "",
    ]

    for index, e in enumerate(entries, start=1):
        cur = _current(e)
        coords = e.get("coordinates") or {}
        date_range = e.get("dateRange") or {}
        lines += [
            f"## {index}. {e.get('location')}",
            "",
            f"- **Coordinates:** {coords.get('lat')}, {coords.get('lon')}",
            f"- **Date Range:** {str(date_range.get('startDate', ''))[:10]} to {str(date_range.get('endDate', ''))[:10]}",
            f"- **Current Temperature:** {cur['temp']}°C (feels like {cur['feels_like']}°C)",
            f"- **Weather:** {cur['description']}",
            f"- **Humidity:** {cur['humidity']}%",
            f"- **Pressure:** {cur['pressure']} hPa",
            f"- **Wind Speed:** {cur['wind_speed']} m/s",
            f"- **Created:** {e.get('createdAt')}",
            f"- **Updated:** {e.get('updatedAt')}",
            "",
        ]

        steps = (e.get("forecastData") or {}).get("list") or []
        if steps:
            lines += ["### 5-Day Forecast", ""]
            for step in steps[:5]:
                when = datetime.fromtimestamp(int(step["dt"]), tz=timezone.utc).strftime("%Y-%m-%d %H:%M")
                temp = (step.get("main") or {}).get("temp")
                desc = (step.get("weather") or [{}])[0].get("description", "")
                lines.append(f"- **{when}:** {temp}°C, {desc}")
            lines.append("")

        videos = (e.get("additionalData") or {}).get("youtubeVideos") or []
        if videos:
            lines += ["### Related Videos", ""]
            for video in videos:
                lines.append(f"- [{video.get('title')}](https://www.youtube.com/watch?v={video.get('videoId')})")
            lines.append("")

        lines += ["---", ""]

    return "\n".join(lines)
