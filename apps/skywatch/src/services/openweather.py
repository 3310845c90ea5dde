from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from config import settings

from .coordinates import CitySuggestion

logger = logging.getLogger("skywatch.hub.openweather")


class ProviderError(RuntimeError):
    """Raised when an upstream call fails; ``kind`` classifies the failure."""

    def __init__(self, kind: str, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.status_code = status_code


class FetchError(ProviderError):
    pass


class SearchError(ProviderError):
    pass


class OpenWeatherClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = (base_url or settings.openweather_base_url).rstrip("/")
        self._api_key = api_key if api_key is not None else settings.openweather_api_key
        self._timeout = timeout if timeout is not None else settings.weather_request_timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {
                "User-Agent": settings.weather_user_agent,
                "Accept": "application/json",
            }
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=self._timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def current_weather(self, lat: float, lon: float, units: str) -> dict[str, Any]:
        return await self._get_json("/weather", {"lat": lat, "lon": lon, "units": units}, FetchError)

    async def forecast(self, lat: float, lon: float, units: str) -> dict[str, Any]:
        return await self._get_json("/forecast", {"lat": lat, "lon": lon, "units": units}, FetchError)

    async def air_pollution(self, lat: float, lon: float) -> dict[str, Any]:
        return await self._get_json("/air_pollution", {"lat": lat, "lon": lon}, FetchError)

    async def find_cities(self, query: str, limit: int) -> list[CitySuggestion]:
        params = {"q": query, "type": "like", "sort": "population", "cnt": limit}
        payload = await self._get_json("/find", params, SearchError)
        entries = payload.get("list")
        if not isinstance(entries, list):
            raise SearchError("invalid_response", "City search response missing list")
        suggestions: list[CitySuggestion] = []
        for entry in entries:
            suggestion = _parse_city(entry)
            if suggestion is not None:
                suggestions.append(suggestion)
        return suggestions[:limit]

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any],
        error_cls: type[ProviderError],
    ) -> dict[str, Any]:
        client = await self._get_client()
        query = dict(params)
        if self._api_key:
            query["appid"] = self._api_key
        logger.debug("Fetching %s with %s", path, params)
        try:
            response = await client.get(path, params=query)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise error_cls("timeout", f"{path} timed out") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            raise error_cls("http_status", f"{path} returned HTTP {status_code}", status_code=status_code) from exc
        except httpx.HTTPError as exc:
            raise error_cls("network", f"{path} request failed: {exc}") from exc
        except ValueError as exc:
            raise error_cls("invalid_response", f"{path} returned invalid JSON") from exc
        if not isinstance(data, dict):
            raise error_cls("invalid_response", f"{path} returned unexpected payload")
        return data


def _parse_city(entry: Any) -> CitySuggestion | None:
    if not isinstance(entry, dict):
        return None
    coord = entry.get("coord") if isinstance(entry.get("coord"), dict) else {}
    sys_block = entry.get("sys") if isinstance(entry.get("sys"), dict) else {}
    name = entry.get("name")
    try:
        lat = float(coord["lat"])
        lon = float(coord["lon"])
    except (KeyError, TypeError, ValueError):
        return None
    if not name:
        return None
    return CitySuggestion(name=str(name), country=str(sys_block.get("country") or ""), lat=lat, lon=lon)


__all__ = ["FetchError", "OpenWeatherClient", "ProviderError", "SearchError"]
