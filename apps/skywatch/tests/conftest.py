import sys
from pathlib import Path
from typing import Any, Callable, Dict

ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

import pytest  # noqa: E402
import respx  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from httpx import Response  # noqa: E402

from config import settings  # noqa: E402
from main import create_app  # noqa: E402
from services.location import location_controller  # noqa: E402

OPENWEATHER_URL = "https://api.openweathermap.org/data/2.5"


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


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


@pytest.fixture(autouse=True)
def _fast_timings(settings_override: Callable[..., None]) -> None:
    settings_override(
        debounce_seconds=0.02,
        search_debounce_seconds=0.02,
        geolocation_timeout=0.5,
        openweather_base_url=OPENWEATHER_URL,
        openweather_api_key="test-key",
    )
    yield


@pytest.fixture
def weather_payloads() -> Dict[str, Dict[str, Any]]:
    return {
        "current": {"name": "Bengaluru", "coord": {"lat": 12.97, "lon": 77.59}, "main": {"temp": 24.1}},
        "forecast": {"cnt": 2, "list": [{"dt": 1_700_000_000, "main": {"temp": 23.0}}]},
        "air_quality": {"list": [{"main": {"aqi": 2}}]},
    }


@pytest.fixture
def openweather_mock(weather_payloads: Dict[str, Dict[str, Any]]) -> respx.MockRouter:
    with respx.mock(base_url=OPENWEATHER_URL, assert_all_called=False) as router:
        router.get("/weather", name="current").mock(return_value=Response(200, json=weather_payloads["current"]))
        router.get("/forecast", name="forecast").mock(return_value=Response(200, json=weather_payloads["forecast"]))
        router.get("/air_pollution", name="air").mock(return_value=Response(200, json=weather_payloads["air_quality"]))
        router.get("/find", name="find").mock(
            return_value=Response(
                200,
                json={
                    "list": [
                        {"name": "Chennai", "coord": {"lat": 13.0878, "lon": 80.2785}, "sys": {"country": "IN"}},
                        {"name": "Chengdu", "coord": {"lat": 30.6667, "lon": 104.0667}, "sys": {"country": "CN"}},
                    ]
                },
            )
        )
        yield router


@pytest.fixture
def client(settings_override: Callable[..., None], openweather_mock: respx.MockRouter) -> TestClient:
    settings_override(geolocation_enabled=False)
    location_controller.reset()
    app = create_app()
    with TestClient(app) as test_client:
        yield test_client
    location_controller.reset()
