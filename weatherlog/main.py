"""
FastAPI entrypoint.

This file focuses on:
- routing
- request/response handling
- wiring together DB + clients + templates
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import time

from fastapi import Body, Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from sqlalchemy.orm import Session

from .settings import settings
from .db import get_db, init_db
from . import models
from .crud import create_entry, list_entries, get_entry, update_entry, delete_entry
from .exporters import (
    MEDIA_TYPES, export_csv, export_entry_json, export_filename, export_json,
    export_markdown, normalize_format,
)
from .maps import validate_coordinates
from .validation import (
    Clock, ValidationFailure, is_valid_record_id, utc_now, validate_create, validate_update,
)
from .video_client import YouTubeClient
from .weather_clients import OpenWeatherClient, WeatherError, icon_url

logger = logging.getLogger("weatherlog")
if not logger.handlers:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

BASE_DIR = Path(__file__).resolve().parent

# Create tables on import so `uvicorn weatherlog.main:app` works on a fresh database.
init_db()

app = FastAPI(title=settings.app_name)

app.mount("/static", StaticFiles(directory=str(BASE_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
templates.env.globals["icon_url"] = icon_url

# API clients (constructed once).
owm = OpenWeatherClient(settings.openweather_api_key, timeout_s=settings.http_timeout_s)
yt = YouTubeClient(settings.youtube_api_key, timeout_s=settings.http_timeout_s)


class EntryValidationError(Exception):
    """Carries a ValidationFailure out of a route."""

    def __init__(self, failure: ValidationFailure):
        super().__init__("Validation failed")
        self.failure = failure


class InvalidEntryId(Exception):
    pass


class EntryNotFound(Exception):
    pass


@app.exception_handler(EntryValidationError)
async def _validation_failed(request: Request, exc: EntryValidationError):
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": exc.failure.as_list()},
    )


@app.exception_handler(RequestValidationError)
async def _request_invalid(request: Request, exc: RequestValidationError):
    """Malformed bodies and query params share the entry validation envelope."""
    details = []
    for err in exc.errors():
        path = [str(part) for part in err["loc"] if part not in ("body", "query", "path")]
        details.append({"field": ".".join(path) or "object", "message": err["msg"]})
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Validation failed", "details": details},
    )


@app.exception_handler(InvalidEntryId)
async def _invalid_id(request: Request, exc: InvalidEntryId):
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": "Invalid ID format",
            "message": "The provided ID is not a valid entry id",
        },
    )


@app.exception_handler(EntryNotFound)
async def _not_found(request: Request, exc: EntryNotFound):
    return JSONResponse(status_code=404, content={"success": False, "error": "Weather entry not found"})


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    dur_ms = (time.perf_counter() - start) * 1000.0
    logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
    return response


def get_clock() -> Clock:
    """Time source for validation and timestamps; overridden in tests."""
    return utc_now


def valid_entry_id(entry_id: str) -> str:
    if not is_valid_record_id(entry_id):
        raise InvalidEntryId(entry_id)
    return entry_id


def _iso(value: Optional[datetime]) -> Optional[str]:
    """Stored timestamps are naive UTC."""
    if value is None:
        return None
    return value.isoformat(timespec="milliseconds") + "Z"


def entry_to_dict(model: models.WeatherEntry) -> Dict[str, Any]:
    """Convert ORM model -> dict for JSON/templates/export."""
    return {
        "id": model.id,
        "location": model.location,
        "coordinates": {"lat": model.lat, "lon": model.lon},
        "city": {
            "name": model.city_name,
            "country": model.country,
            "timezone": model.timezone_offset,
            "sunrise": model.sunrise,
            "sunset": model.sunset,
        },
        "dateRange": {"startDate": _iso(model.start_date), "endDate": _iso(model.end_date)},
        "currentWeather": model.current_weather,
        "forecastData": model.forecast,
        "additionalData": model.additional_data,
        "createdAt": _iso(model.created_at),
        "updatedAt": _iso(model.updated_at),
    }


def _require_entry(db: Session, entry_id: str) -> models.WeatherEntry:
    record = get_entry(db, entry_id)
    if record is None:
        raise EntryNotFound(entry_id)
    return record


def _upstream_error(error: str, exc: WeatherError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"success": False, "error": error, "message": str(exc)})


async def _lookup(location: str) -> Dict[str, Any]:
    data = await owm.fetch_weather_data(location)
    return {
        "current": data.current,
        "forecast": data.forecast,
        "five_day": owm.summarize_to_5_days(data.forecast),
    }


# -------------------------
# UI routes
# -------------------------

@app.get("/", response_class=HTMLResponse)
async def home(request: Request, db: Session = Depends(get_db)):
    """Landing page: search form + most recent saved entries."""
    entries, total = list_entries(db, page=1, limit=10)
    return templates.TemplateResponse(
        request,
        "index.html",
        {"app_name": settings.app_name, "entries": [entry_to_dict(e) for e in entries], "total": total},
    )


@app.get("/results", response_class=HTMLResponse)
async def results_page(request: Request, q: str = Query(..., min_length=1, max_length=100)):
    """Server-rendered current conditions + 5-day forecast."""
    try:
        result = await _lookup(q)
    except WeatherError as e:
        return templates.TemplateResponse(
            request, "results.html", {"app_name": settings.app_name, "error": str(e), "q": q}, status_code=400,
        )
    return templates.TemplateResponse(request, "results.html", {"app_name": settings.app_name, "q": q, **result})


@app.get("/entries/{entry_id}", response_class=HTMLResponse)
async def entry_detail_page(request: Request, entry_id: str = Depends(valid_entry_id), db: Session = Depends(get_db)):
    """One saved entry with its forecast, videos and map links."""
    record = _require_entry(db, entry_id)
    return templates.TemplateResponse(
        request, "entry_detail.html", {"app_name": settings.app_name, "entry": entry_to_dict(record)},
    )


# -------------------------
# Meta + lookup APIs
# -------------------------

@app.get("/health")
async def health():
    return {"status": "ok", "app": settings.app_name}


@app.get("/api/lookup")
async def api_lookup(q: str = Query(..., min_length=1, max_length=100)):
    """Current weather + 5-day forecast for a location, not persisted."""
    try:
        return {"success": True, "data": await _lookup(q)}
    except WeatherError as e:
        return _upstream_error("Failed to fetch weather data", e)


@app.get("/api/lookup/by-coords")
async def api_lookup_by_coords(lat: float, lon: float):
    """Same as /api/lookup for browser geolocation coordinates."""
    try:
        lat, lon = validate_coordinates(lat, lon)
        return {"success": True, "data": await _lookup(f"{lat},{lon}")}
    except WeatherError as e:
        return _upstream_error("Failed to fetch weather data", e)


# -------------------------
# Entry CRUD APIs
# -------------------------

@app.get("/api/weather")
def api_list_entries(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    location: Optional[str] = Query(None, max_length=100),
    sort_by: str = Query("createdAt", alias="sortBy", pattern="^(createdAt|updatedAt|location|startDate)$"),
    sort_order: str = Query("desc", alias="sortOrder", pattern="^(asc|desc)$"),
    db: Session = Depends(get_db),
):
    """List entries with pagination."""
    entries, total = list_entries(db, page=page, limit=limit, location=location, sort_by=sort_by, sort_order=sort_order)
    total_pages = -(-total // limit)
    return {
        "success": True,
        "data": [entry_to_dict(e) for e in entries],
        "pagination": {
            "currentPage": page,
            "totalPages": total_pages,
            "totalEntries": total,
            "hasNext": page < total_pages,
            "hasPrev": page > 1,
        },
    }


@app.get("/api/weather/{entry_id}")
def api_get_entry(entry_id: str = Depends(valid_entry_id), db: Session = Depends(get_db)):
    """Fetch a single entry."""
    return {"success": True, "data": entry_to_dict(_require_entry(db, entry_id))}


@app.post("/api/weather")
async def api_create_entry(
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Validate, fetch weather (+ optional videos/maps) and store."""
    now = clock()
    result = validate_create(payload, now=now)
    if isinstance(result, ValidationFailure):
        raise EntryValidationError(result)

    try:
        record, reused = await create_entry(
            db, result, owm, yt, now,
            maps_key=settings.google_maps_api_key,
            ttl_minutes=settings.cache_ttl_minutes,
            max_videos=settings.youtube_max_results,
        )
    except WeatherError as e:
        return _upstream_error("Failed to create weather entry", e)

    if reused:
        return {"success": True, "data": entry_to_dict(record), "message": "Returning cached weather data"}
    return JSONResponse(
        status_code=201,
        content={"success": True, "data": entry_to_dict(record), "message": "Weather entry created successfully"},
    )


@app.put("/api/weather/{entry_id}")
async def api_update_entry(
    entry_id: str = Depends(valid_entry_id),
    payload: Dict[str, Any] = Body(...),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Update location/date range/lookups, re-fetch weather, and persist."""
    now = clock()
    result = validate_update(payload, now=now)
    if isinstance(result, ValidationFailure):
        raise EntryValidationError(result)

    record = _require_entry(db, entry_id)
    try:
        updated = await update_entry(
            db, record, result, owm, yt, now,
            maps_key=settings.google_maps_api_key,
            max_videos=settings.youtube_max_results,
        )
    except WeatherError as e:
        return _upstream_error("Failed to update weather entry", e)
    return {"success": True, "data": entry_to_dict(updated), "message": "Weather entry updated successfully"}


@app.delete("/api/weather/{entry_id}")
def api_delete_entry(entry_id: str = Depends(valid_entry_id), db: Session = Depends(get_db)):
    """Delete an entry."""
    delete_entry(db, _require_entry(db, entry_id))
    return {"success": True, "message": "Weather entry deleted successfully", "data": {"id": entry_id}}


# -------------------------
# Export endpoints
# -------------------------

def _export_response(entries: List[Dict[str, Any]], fmt: str, prefix: str, now: datetime,
                     single: bool = False) -> Response:
    fmt = normalize_format(fmt)
    if fmt == "csv":
        body = export_csv(entries)
    elif fmt == "md":
        body = export_markdown(entries, now=now)
    elif single:
        body = export_entry_json(entries[0], now=now)
    else:
        body = export_json(entries, now=now)

    filename = export_filename(prefix, fmt, now)
    return Response(
        content=body,
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/api/export")
def api_export_entries(
    fmt: str = Query("json", alias="format"),
    location: Optional[str] = Query(None, max_length=100),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Export entries to JSON/CSV/Markdown."""
    entries, _ = list_entries(db, page=1, limit=settings.export_limit, location=location)
    if not entries:
        return JSONResponse(status_code=404, content={"success": False, "error": "No weather data found to export"})
    return _export_response([entry_to_dict(e) for e in entries], fmt, "weather-data", clock())


@app.get("/api/export/{entry_id}")
def api_export_entry(
    entry_id: str = Depends(valid_entry_id),
    fmt: str = Query("json", alias="format"),
    db: Session = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Export one entry."""
    record = _require_entry(db, entry_id)
    return _export_response([entry_to_dict(record)], fmt, f"weather-entry-{entry_id}", clock(), single=True)
