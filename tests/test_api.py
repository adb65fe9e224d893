from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient

from conftest import FROZEN_NOW, current_payload


def _create(client: TestClient, **overrides):
    payload = {"location": "Paris", "startDate": "2025-06-13", "endDate": "2025-06-14"}
    payload.update(overrides)
    return client.post("/api/weather", json=payload)


def test_health(client: TestClient) -> None:
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_create_entry_stores_weather(client: TestClient, upstream) -> None:
    resp = _create(client, location="  Paris  ", unknownField="ignored")

    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Weather entry created successfully"
    data = body["data"]
    assert len(data["id"]) == 24
    assert data["location"] == "Paris"
    assert data["coordinates"] == {"lat": 48.8534, "lon": 2.3488}
    assert data["city"]["name"] == "Paris"
    assert data["city"]["country"] == "FR"
    assert data["dateRange"] == {
        "startDate": "2025-06-13T00:00:00.000Z",
        "endDate": "2025-06-14T00:00:00.000Z",
    }
    assert data["currentWeather"]["main"]["temp"] == 21.4
    assert len(data["forecastData"]["list"]) == 16
    assert data["additionalData"] == {}
    assert data["createdAt"] == "2025-06-15T12:00:00.000Z"
    assert not upstream.routes["youtube_search"].called


def test_create_entry_with_lookups(client: TestClient, upstream) -> None:
    resp = _create(client, includeYouTube=True, includeMaps=True)

    assert resp.status_code == 201
    extra = resp.json()["data"]["additionalData"]
    assert extra["youtubeVideos"][0]["videoId"] == "abc123"
    assert extra["mapsData"]["googleMapsUrl"] == "https://www.google.com/maps?q=48.8534,2.3488"
    assert upstream.routes["youtube_search"].calls.last.request.url.params["q"].startswith("Paris ")


def test_create_entry_survives_video_failure(client: TestClient, upstream) -> None:
    upstream.routes["youtube_search"].return_value = httpx.Response(403, json={"error": {}})

    resp = _create(client, includeYouTube=True)

    assert resp.status_code == 201
    assert resp.json()["data"]["additionalData"] == {"youtubeVideos": []}


def test_create_entry_validation_failure(client: TestClient, upstream) -> None:
    resp = client.post("/api/weather", json={"location": "", "startDate": "yesterday"})

    assert resp.status_code == 400
    assert resp.json() == {
        "success": False,
        "error": "Validation failed",
        "details": [
            {"field": "location", "message": "Location is required"},
            {"field": "startDate", "message": "Start date must be in ISO format"},
            {"field": "endDate", "message": "End date is required"},
        ],
    }
    assert not upstream.routes["owm_current"].called


def test_create_entry_rejects_old_start_date(client: TestClient, upstream) -> None:
    resp = _create(client, startDate="2025-06-09", endDate="2025-06-15")

    assert resp.status_code == 400
    assert resp.json()["details"] == [
        {"field": "startDate", "message": "Start date cannot be more than 5 days in the past"}
    ]


@pytest.mark.parametrize("start", ["9999-12-31T23:59:59-01:00", "0001-01-01T00:00:00+01:00"])
def test_create_entry_out_of_range_date_is_a_violation(client: TestClient, upstream, start: str) -> None:
    resp = _create(client, startDate=start, endDate="2025-06-15T00:00:00Z")

    assert resp.status_code == 400
    assert resp.json()["details"] == [{"field": "startDate", "message": "Start date must be a valid date"}]


def test_create_entry_without_body(client: TestClient, upstream) -> None:
    resp = client.post("/api/weather")

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert body["details"][0]["field"] == "object"


def test_update_entry_with_non_object_body(client: TestClient, upstream) -> None:
    entry_id = _create(client).json()["data"]["id"]

    resp = client.put(f"/api/weather/{entry_id}", json=["Lyon"])

    assert resp.status_code == 400
    assert resp.json()["error"] == "Validation failed"
    assert [d["field"] for d in resp.json()["details"]] == ["object"]


def test_create_entry_rejects_digits_in_location(client: TestClient, upstream) -> None:
    resp = _create(client, location="Paris 75001")

    assert resp.status_code == 400
    assert resp.json()["details"] == [{"field": "location", "message": "Location contains invalid characters"}]


def test_create_entry_upstream_failure(client: TestClient, upstream) -> None:
    upstream.routes["owm_current"].return_value = httpx.Response(404, json={"message": "city not found"})

    resp = _create(client, location="Atlantis")

    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Failed to create weather entry"
    assert "Atlantis" in body["message"]


def test_recent_entry_is_reused(client: TestClient, upstream, clock) -> None:
    first = _create(client, startDate="2025-06-12", endDate="2025-06-15")
    assert first.status_code == 201
    calls = upstream.routes["owm_current"].call_count

    clock["now"] = FROZEN_NOW + timedelta(minutes=30)
    again = _create(client, location="paris", startDate="2025-06-13", endDate="2025-06-14")

    assert again.status_code == 200
    assert again.json()["message"] == "Returning cached weather data"
    assert again.json()["data"]["id"] == first.json()["data"]["id"]
    assert upstream.routes["owm_current"].call_count == calls


def test_stale_entry_is_not_reused(client: TestClient, upstream, clock) -> None:
    first = _create(client)
    clock["now"] = FROZEN_NOW + timedelta(minutes=61)

    again = _create(client)

    assert again.status_code == 201
    assert again.json()["data"]["id"] != first.json()["data"]["id"]


def test_list_entries_paginates(client: TestClient, upstream, clock) -> None:
    for i, name in enumerate(["Paris", "Lyon", "Nice"]):
        clock["now"] = FROZEN_NOW + timedelta(minutes=i)
        assert _create(client, location=name, startDate="2025-06-14", endDate="2025-06-15").status_code == 201

    resp = client.get("/api/weather", params={"page": 1, "limit": 2})

    assert resp.status_code == 200
    body = resp.json()
    assert [e["location"] for e in body["data"]] == ["Nice", "Lyon"]
    assert body["pagination"] == {
        "currentPage": 1,
        "totalPages": 2,
        "totalEntries": 3,
        "hasNext": True,
        "hasPrev": False,
    }

    page2 = client.get("/api/weather", params={"page": 2, "limit": 2}).json()
    assert [e["location"] for e in page2["data"]] == ["Paris"]
    assert page2["pagination"]["hasPrev"] is True
    assert page2["pagination"]["hasNext"] is False


def test_list_entries_filters_and_sorts(client: TestClient, upstream, clock) -> None:
    for i, name in enumerate(["Paris", "Lyon", "Paris, Texas"]):
        clock["now"] = FROZEN_NOW + timedelta(minutes=i)
        _create(client, location=name, startDate="2025-06-14", endDate="2025-06-15")

    resp = client.get("/api/weather", params={"location": "PARIS", "sortBy": "location", "sortOrder": "asc"})

    body = resp.json()
    assert [e["location"] for e in body["data"]] == ["Paris", "Paris, Texas"]
    assert body["pagination"]["totalEntries"] == 2


def test_list_entries_rejects_unknown_sort(client: TestClient) -> None:
    resp = client.get("/api/weather", params={"sortBy": "password"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Validation failed"
    assert [d["field"] for d in body["details"]] == ["sortBy"]


def test_list_entries_location_filter_is_literal(client: TestClient, upstream) -> None:
    _create(client, location="Paris")

    for pattern in ("%", "_aris", "P%s"):
        body = client.get("/api/weather", params={"location": pattern}).json()
        assert body["pagination"]["totalEntries"] == 0, pattern

    assert client.get("/api/weather", params={"location": "ari"}).json()["pagination"]["totalEntries"] == 1


def test_get_entry(client: TestClient, upstream) -> None:
    entry_id = _create(client).json()["data"]["id"]

    resp = client.get(f"/api/weather/{entry_id}")

    assert resp.status_code == 200
    assert resp.json()["data"]["id"] == entry_id


def test_get_entry_with_malformed_id(client: TestClient) -> None:
    resp = client.get("/api/weather/not-an-id")

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid ID format"


def test_get_missing_entry(client: TestClient) -> None:
    resp = client.get("/api/weather/507f1f77bcf86cd799439011")

    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "Weather entry not found"}


def test_update_entry_partial(client: TestClient, upstream, clock) -> None:
    created = _create(client, includeYouTube=True).json()["data"]
    upstream.routes["owm_current"].return_value = httpx.Response(
        200, json=current_payload(name="Lyon", lat=45.75, lon=4.85)
    )
    clock["now"] = FROZEN_NOW + timedelta(hours=2)

    resp = client.put(f"/api/weather/{created['id']}", json={"location": "Lyon", "includeMaps": True})

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Weather entry updated successfully"
    data = body["data"]
    assert data["location"] == "Lyon"
    assert data["city"]["name"] == "Lyon"
    assert data["dateRange"] == created["dateRange"]
    assert data["additionalData"]["youtubeVideos"] == created["additionalData"]["youtubeVideos"]
    assert data["additionalData"]["mapsData"]["locationName"] == "Lyon"
    assert data["updatedAt"] == "2025-06-15T14:00:00.000Z"
    assert data["createdAt"] == created["createdAt"]


def test_update_entry_drops_disabled_lookup(client: TestClient, upstream) -> None:
    created = _create(client, includeYouTube=True, includeMaps=True).json()["data"]

    resp = client.put(f"/api/weather/{created['id']}", json={"includeYouTube": False})

    assert resp.status_code == 200
    assert set(resp.json()["data"]["additionalData"]) == {"mapsData"}


def test_update_entry_rejects_empty_payload(client: TestClient, upstream) -> None:
    created = _create(client).json()["data"]

    resp = client.put(f"/api/weather/{created['id']}", json={"nope": 1})

    assert resp.status_code == 400
    assert resp.json()["details"] == [
        {"field": "object", "message": "At least one field must be provided for update"}
    ]


def test_update_entry_rejects_merged_range(client: TestClient, upstream) -> None:
    created = _create(client, startDate="2025-06-13", endDate="2025-06-14").json()["data"]

    resp = client.put(f"/api/weather/{created['id']}", json={"startDate": "2025-06-15"})

    assert resp.status_code == 400
    assert resp.json()["message"] == "End date must be after start date"


def test_update_missing_entry(client: TestClient, upstream) -> None:
    resp = client.put("/api/weather/507f1f77bcf86cd799439011", json={"location": "Lyon"})

    assert resp.status_code == 404


def test_delete_entry(client: TestClient, upstream) -> None:
    entry_id = _create(client).json()["data"]["id"]

    resp = client.delete(f"/api/weather/{entry_id}")

    assert resp.status_code == 200
    assert resp.json() == {
        "success": True,
        "message": "Weather entry deleted successfully",
        "data": {"id": entry_id},
    }
    assert client.get(f"/api/weather/{entry_id}").status_code == 404
    assert client.delete(f"/api/weather/{entry_id}").status_code == 404


def test_lookup(client: TestClient, upstream) -> None:
    resp = client.get("/api/lookup", params={"q": "Paris"})

    assert resp.status_code == 200
    data = resp.json()["data"]
    assert data["current"]["name"] == "Paris"
    assert [d["date"] for d in data["five_day"]] == ["2025-06-15", "2025-06-16"]


def test_lookup_by_coords(client: TestClient, upstream) -> None:
    resp = client.get("/api/lookup/by-coords", params={"lat": 48.85, "lon": 2.35})

    assert resp.status_code == 200
    params = upstream.routes["owm_current"].calls.last.request.url.params
    assert (params["lat"], params["lon"]) == ("48.85", "2.35")


def test_lookup_by_coords_out_of_range(client: TestClient, upstream) -> None:
    resp = client.get("/api/lookup/by-coords", params={"lat": 95, "lon": 2.35})

    assert resp.status_code == 400
    assert resp.json()["message"] == "Latitude must be between -90 and 90."


def test_export_nothing(client: TestClient) -> None:
    resp = client.get("/api/export")

    assert resp.status_code == 404
    assert resp.json()["error"] == "No weather data found to export"


def test_export_formats(client: TestClient, upstream) -> None:
    _create(client)

    as_json = client.get("/api/export")
    assert as_json.status_code == 200
    assert as_json.headers["content-type"].startswith("application/json")
    assert as_json.headers["content-disposition"] == (
        'attachment; filename="weather-data-2025-06-15T12-00-00-000Z.json"'
    )
    assert as_json.json()["totalEntries"] == 1

    as_csv = client.get("/api/export", params={"format": "csv"})
    assert as_csv.headers["content-type"].startswith("text/csv")
    assert as_csv.text.splitlines()[1].split(",")[1] == "Paris"

    as_md = client.get("/api/export", params={"format": "markdown"})
    assert as_md.headers["content-type"].startswith("text/markdown")
    assert "## 1. Paris" in as_md.text


def test_export_location_filter(client: TestClient, upstream) -> None:
    _create(client)

    assert client.get("/api/export", params={"location": "Lyon"}).status_code == 404


def test_export_single_entry(client: TestClient, upstream) -> None:
    entry_id = _create(client).json()["data"]["id"]

    resp = client.get(f"/api/export/{entry_id}", params={"format": "json"})

    assert resp.status_code == 200
    assert f'weather-entry-{entry_id}-' in resp.headers["content-disposition"]
    body = resp.json()
    assert body["data"]["id"] == entry_id
    assert "totalEntries" not in body

    md = client.get(f"/api/export/{entry_id}", params={"format": "md"})
    assert md.headers["content-disposition"].endswith('.md"')
