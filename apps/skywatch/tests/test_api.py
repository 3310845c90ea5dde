import time
from typing import Any, Callable

import respx
from fastapi.testclient import TestClient
from httpx import Response

from config import settings
from main import create_app


def _wait_for(client: TestClient, predicate: Callable[[dict[str, Any]], bool], timeout: float = 2.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout
    payload = client.get("/api/v1/location").json()
    while not predicate(payload):
        assert time.monotonic() < deadline, f"location state never settled: {payload}"
        time.sleep(0.01)
        payload = client.get("/api/v1/location").json()
    return payload


def _settled(payload: dict[str, Any]) -> bool:
    return payload["bundle"] is not None and not payload["loading"]


def test_meta_health(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "version": settings.app_version}


def test_v1_health_reports_running_controller(client: TestClient) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_v1_info(client: TestClient) -> None:
    response = client.get("/api/v1/info")
    assert response.status_code == 200
    payload = response.json()
    assert payload["name"] == settings.app_name
    assert payload["version"] == settings.app_version
    assert payload["cors_origins"] == settings.cors_origins
    assert payload["default_city"] == settings.default_city_name
    assert payload["geolocation_enabled"] is False
    assert payload["coordinate_epsilon"] == settings.coordinate_epsilon


def test_location_endpoints_unavailable_before_startup(openweather_mock: respx.MockRouter) -> None:
    # no context manager, so startup never runs
    client = TestClient(create_app())
    response = client.get("/api/v1/location")
    assert response.status_code == 503


def test_startup_fetches_default_city(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    payload = _wait_for(client, _settled)

    assert payload["mode"] == "automatic"
    assert payload["coordinate"] == {"lat": settings.default_lat, "lon": settings.default_lon}
    assert payload["bundle"]["current"]["name"] == "Bengaluru"
    assert payload["bundle"]["air_quality"] == {"list": [{"main": {"aqi": 2}}]}
    assert payload["bundle"]["units"] == "metric"
    assert payload["error"] is None
    params = openweather_mock["current"].calls.last.request.url.params
    assert params["appid"] == "test-key"
    assert params["units"] == "metric"


def test_manual_location_switches_mode_and_fetches(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    _wait_for(client, _settled)

    response = client.post(
        "/api/v1/location/manual",
        json={"lat": 19.0144, "lon": 72.8479, "name": "Mumbai", "country": "IN"},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "manual"
    assert body["place"]["label"] == "Mumbai, IN"

    payload = _wait_for(client, lambda p: _settled(p) and p["bundle"]["coordinate"]["lat"] == 19.0144)
    assert payload["coordinate"] == {"lat": 19.0144, "lon": 72.8479}
    params = openweather_mock["forecast"].calls.last.request.url.params
    assert params["lat"] == "19.0144"


def test_manual_location_rejects_out_of_range_coordinates(client: TestClient) -> None:
    response = client.post("/api/v1/location/manual", json={"lat": 91.0, "lon": 0.0})
    assert response.status_code == 422


def test_current_location_without_geolocation_reports_error(client: TestClient) -> None:
    _wait_for(client, _settled)
    client.post("/api/v1/location/manual", json={"lat": 1.5, "lon": 2.5})

    response = client.post("/api/v1/location/current")
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "automatic"
    assert body["location_error"] == "position_unavailable"
    assert body["coordinate"] == {"lat": 1.5, "lon": 2.5}


def test_position_report_dropped_while_not_watching(client: TestClient) -> None:
    response = client.post("/api/v1/location/position", json={"latitude": 28.61, "longitude": 77.2})
    assert response.status_code == 200
    assert response.json() == {"accepted": False}


def test_position_report_requires_fix_or_error(client: TestClient) -> None:
    assert client.post("/api/v1/location/position", json={"latitude": 28.61}).status_code == 422
    both = {"latitude": 28.61, "longitude": 77.2, "error": "timeout"}
    assert client.post("/api/v1/location/position", json=both).status_code == 422


def test_toggle_units_refetches_in_imperial(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    _wait_for(client, _settled)

    response = client.post("/api/v1/location/units")
    assert response.status_code == 200
    assert response.json()["units"] == "imperial"

    payload = _wait_for(client, lambda p: _settled(p) and p["bundle"]["units"] == "imperial")
    assert payload["units"] == "imperial"
    assert openweather_mock["current"].calls.last.request.url.params["units"] == "imperial"


def test_refresh_forces_new_fetch(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    first = _wait_for(client, _settled)
    calls_before = openweather_mock["current"].call_count

    response = client.post("/api/v1/location/refresh")
    assert response.status_code == 200
    assert response.json()["generation"] == first["generation"] + 1

    _wait_for(client, lambda p: _settled(p) and p["generation"] == first["generation"] + 1)
    assert openweather_mock["current"].call_count == calls_before + 1


def test_failed_fetch_keeps_previous_bundle(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    first = _wait_for(client, _settled)
    openweather_mock["forecast"].mock(return_value=Response(503))

    client.post("/api/v1/location/manual", json={"lat": 40.7128, "lon": -74.006})
    payload = _wait_for(client, lambda p: p["error"] is not None and not p["loading"])

    assert payload["error"] == "http_status"
    assert payload["bundle"] == first["bundle"]
    assert payload["coordinate"] == {"lat": 40.7128, "lon": -74.006}


def test_search_cities(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    response = client.get("/api/v1/search/cities", params={"q": "Che"})
    assert response.status_code == 200
    body = response.json()
    assert [item["label"] for item in body] == ["Chennai, IN", "Chengdu, CN"]
    params = openweather_mock["find"].calls.last.request.url.params
    assert params["q"] == "Che"
    assert params["cnt"] == str(settings.city_search_limit)


def test_search_cities_short_query_skips_upstream(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    response = client.get("/api/v1/search/cities", params={"q": "Ch"})
    assert response.status_code == 200
    assert response.json() == []
    assert not openweather_mock["find"].called


def test_search_cities_upstream_failure(client: TestClient, openweather_mock: respx.MockRouter) -> None:
    openweather_mock["find"].mock(return_value=Response(500))
    response = client.get("/api/v1/search/cities", params={"q": "Chennai"})
    assert response.status_code == 502


def test_search_query_then_select(client: TestClient) -> None:
    _wait_for(client, _settled)

    response = client.post("/api/v1/search/query", json={"query": "Chen"})
    assert response.status_code == 200
    assert response.json()["query"] == "Chen"

    deadline = time.monotonic() + 2.0
    state = client.get("/api/v1/search/state").json()
    while not state["suggestions"]:
        assert time.monotonic() < deadline
        time.sleep(0.01)
        state = client.get("/api/v1/search/state").json()
    assert state["suggestions"][0]["name"] == "Chennai"

    response = client.post("/api/v1/search/select", json={"index": 0})
    assert response.status_code == 200
    body = response.json()
    assert body["mode"] == "manual"
    assert body["place"]["name"] == "Chennai"
    assert client.get("/api/v1/search/state").json()["suggestions"] == []

    payload = _wait_for(client, lambda p: _settled(p) and p["bundle"]["coordinate"]["lat"] == 13.0878)
    assert payload["coordinate"] == {"lat": 13.0878, "lon": 80.2785}


def test_select_without_suggestions_is_not_found(client: TestClient) -> None:
    response = client.post("/api/v1/search/select", json={"index": 3})
    assert response.status_code == 404


def test_run_serves_app_on_configured_port(monkeypatch, settings_override) -> None:
    import uvicorn

    import main

    calls: list[tuple[tuple[Any, ...], dict[str, Any]]] = []
    monkeypatch.setattr(uvicorn, "run", lambda *args, **kwargs: calls.append((args, kwargs)))
    settings_override(port=8123, debug=False)

    main.run()

    assert calls == [(("main:app",), {"host": "0.0.0.0", "port": 8123, "reload": False})]
