import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Callable, Dict

# Settings are read at import time, so the environment has to be ready first.
_TMP_DIR = tempfile.mkdtemp(prefix="weatherlog-tests-")
os.environ.setdefault("OPENWEATHER_API_KEY", "test-owm-key")
os.environ.setdefault("YOUTUBE_API_KEY", "test-youtube-key")
os.environ["SQLITE_PATH"] = os.path.join(_TMP_DIR, "weatherlog-test.sqlite3")

import httpx
import pytest
import respx
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from weatherlog import main
from weatherlog.db import Base, get_db
from weatherlog.settings import settings

FROZEN_NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)

OWM_CURRENT_URL = "https://api.openweathermap.org/data/2.5/weather"
OWM_FORECAST_URL = "https://api.openweathermap.org/data/2.5/forecast"
YOUTUBE_SEARCH_URL = "https://www.googleapis.com/youtube/v3/search"


def current_payload(name: str = "Paris", country: str = "FR", lat: float = 48.8534, lon: float = 2.3488) -> Dict[str, Any]:
    return {
        "coord": {"lat": lat, "lon": lon},
        "weather": [{"id": 800, "main": "Clear", "description": "clear sky", "icon": "01d"}],
        "main": {"temp": 21.4, "feels_like": 20.9, "temp_min": 19.0, "temp_max": 23.1, "pressure": 1016, "humidity": 48},
        "wind": {"speed": 3.6, "deg": 240},
        "visibility": 10000,
        "dt": 1749988800,
        "sys": {"country": country, "sunrise": 1749959200, "sunset": 1750017400},
        "timezone": 7200,
        "name": name,
        "cod": 200,
    }


def forecast_payload(name: str = "Paris") -> Dict[str, Any]:
    # 2025-06-15 00:00 UTC, eight 3-hour steps per day for two days
    start = 1749945600
    steps = []
    for i in range(16):
        steps.append({
            "dt": start + i * 3 * 3600,
            "main": {"temp": 15.0 + i, "feels_like": 14.0 + i, "pressure": 1015, "humidity": 60},
            "weather": [{"description": "few clouds" if i % 4 else "light rain", "icon": "02d" if i % 4 else "10d"}],
            "wind": {"speed": 2.0},
            "pop": 0.1 * (i % 5),
            "dt_txt": datetime.fromtimestamp(start + i * 3 * 3600, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S"),
        })
    return {"cod": "200", "cnt": len(steps), "list": steps, "city": {"name": name, "country": "FR", "timezone": 0}}


def youtube_payload() -> Dict[str, Any]:
    return {
        "items": [
            {
                "id": {"videoId": "abc123"},
                "snippet": {
                    "title": "Paris travel guide",
                    "channelTitle": "Travel Channel",
                    "publishedAt": "2024-05-01T10:00:00Z",
                    "description": "Everything about Paris.",
                    "thumbnails": {"medium": {"url": "https://i.ytimg.com/vi/abc123/mqdefault.jpg"}},
                },
            }
        ]
    }


@pytest.fixture
def upstream():
    """Stubs every third-party API with a healthy response."""
    with respx.mock(assert_all_called=False) as mock:
        mock.get(OWM_CURRENT_URL, name="owm_current").mock(
            return_value=httpx.Response(200, json=current_payload())
        )
        mock.get(OWM_FORECAST_URL, name="owm_forecast").mock(
            return_value=httpx.Response(200, json=forecast_payload())
        )
        mock.get(YOUTUBE_SEARCH_URL, name="youtube_search").mock(
            return_value=httpx.Response(200, json=youtube_payload())
        )
        yield mock


@pytest.fixture
def settings_override() -> Callable[..., None]:
    original: Dict[str, Any] = {}

    def _apply(**overrides: Any) -> None:
        for key, value in overrides.items():
            if key not in original:
                original[key] = getattr(settings, key)
            setattr(settings, key, value)

    yield _apply

    for key, value in original.items():
        setattr(settings, key, value)


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def clock():
    """Mutable frozen clock; tests may move it with clock['now'] = ..."""
    return {"now": FROZEN_NOW}


@pytest.fixture
def client(db_session, clock) -> TestClient:
    def _get_db():
        yield db_session

    main.app.dependency_overrides[get_db] = _get_db
    main.app.dependency_overrides[main.get_clock] = lambda: (lambda: clock["now"])
    with TestClient(main.app) as test_client:
        yield test_client
    main.app.dependency_overrides.clear()
