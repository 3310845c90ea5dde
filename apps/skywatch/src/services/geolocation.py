from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Literal, Optional, Protocol, Union

import httpx

from config import settings

from .coordinates import Coordinate

logger = logging.getLogger("skywatch.hub.geolocation")

LocationErrorCode = Literal["permission_denied", "position_unavailable", "timeout", "unknown"]
LOCATION_ERROR_CODES: frozenset[str] = frozenset({"permission_denied", "position_unavailable", "timeout", "unknown"})


class LocationError(RuntimeError):
    def __init__(self, code: str, message: str | None = None) -> None:
        if code not in LOCATION_ERROR_CODES:
            code = "unknown"
        super().__init__(message or code)
        self.code: LocationErrorCode = code  # type: ignore[assignment]


@dataclass(frozen=True, slots=True)
class PositionReading:
    latitude: float
    longitude: float
    accuracy: float | None = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.latitude, lon=self.longitude)


@dataclass(frozen=True, slots=True)
class PositionEvent:
    coordinate: Coordinate
    accuracy: float | None = None


@dataclass(frozen=True, slots=True)
class PositionErrorEvent:
    error: LocationError


GeolocationEvent = Union[PositionEvent, PositionErrorEvent]


class PositionProvider(Protocol):
    async def read_position(self) -> PositionReading:
        """Wait for the next position fix or raise :class:`LocationError`."""

    def reset(self) -> None:
        """Drop readings buffered before a watch starts."""


class PushPositionProvider:
    """Positions reported by a client device (e.g. a browser's geolocation API)."""

    def __init__(self, *, max_buffer: int = 16) -> None:
        self._queue: asyncio.Queue[PositionReading | LocationError] = asyncio.Queue(max(1, max_buffer))

    def report_position(self, reading: PositionReading) -> None:
        self._put(reading)

    def report_error(self, code: str, message: str | None = None) -> None:
        self._put(LocationError(code, message))

    def reset(self) -> None:
        while not self._queue.empty():
            self._queue.get_nowait()

    async def read_position(self) -> PositionReading:
        item = await self._queue.get()
        if isinstance(item, LocationError):
            raise item
        return item

    def _put(self, item: PositionReading | LocationError) -> None:
        if self._queue.full():
            # keep the freshest readings
            self._queue.get_nowait()
        self._queue.put_nowait(item)


class IpPositionProvider:
    """Approximate device position from an IP geolocation service, polled at an interval."""

    def __init__(
        self,
        *,
        url: str | None = None,
        interval: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = url or settings.ip_geolocation_url
        self._interval = interval if interval is not None else settings.ip_geolocation_interval
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._reads = 0

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers={"User-Agent": settings.weather_user_agent, "Accept": "application/json"},
                timeout=settings.geolocation_timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    def reset(self) -> None:
        self._reads = 0

    async def read_position(self) -> PositionReading:
        if self._reads:
            await asyncio.sleep(self._interval)
        self._reads += 1
        client = await self._get_client()
        try:
            response = await client.get(self._url)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException as exc:
            raise LocationError("timeout", "IP geolocation lookup timed out") from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise LocationError("position_unavailable", f"IP geolocation lookup failed: {exc}") from exc
        try:
            return PositionReading(latitude=float(payload["latitude"]), longitude=float(payload["longitude"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise LocationError("position_unavailable", "IP geolocation response missing coordinates") from exc


class GeolocationWatch:
    """Cancellable subscription to a position provider.

    While enabled, every fix is delivered to ``on_event`` as a
    :class:`PositionEvent`. The first failure is delivered once as a
    :class:`PositionErrorEvent` and ends the watch; restarting it is up to the
    caller.
    """

    def __init__(
        self,
        provider: PositionProvider,
        on_event: Callable[[GeolocationEvent], None],
        *,
        timeout: float | None = None,
    ) -> None:
        self._provider = provider
        self._on_event = on_event
        self._timeout = timeout if timeout is not None else settings.geolocation_timeout
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def set_enabled(self, enabled: bool) -> None:
        if enabled:
            self.start()
        else:
            self.stop()

    def start(self) -> None:
        if self.active:
            return
        self._provider.reset()
        self._task = asyncio.create_task(self._watch_loop(), name="geolocation-watch")
        logger.info("Geolocation watch started (timeout=%.1fs)", self._timeout)

    def stop(self) -> None:
        task = self._task
        self._task = None
        if task is None or task.done():
            return
        task.cancel()
        logger.info("Geolocation watch stopped")

    async def close(self) -> None:
        task = self._task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _watch_loop(self) -> None:
        # only the first fix is bounded by the timeout; later readings arrive when the device moves
        timeout: float | None = self._timeout
        while True:
            try:
                reading = await asyncio.wait_for(self._provider.read_position(), timeout=timeout)
            except asyncio.TimeoutError:
                self._fail(LocationError("timeout", "Timed out waiting for a position fix"))
                return
            except LocationError as exc:
                self._fail(exc)
                return
            timeout = None
            self._on_event(PositionEvent(coordinate=reading.coordinate, accuracy=reading.accuracy))

    def _fail(self, error: LocationError) -> None:
        logger.warning("Geolocation failed (%s): %s", error.code, error)
        self._task = None
        self._on_event(PositionErrorEvent(error=error))


__all__ = [
    "GeolocationEvent",
    "GeolocationWatch",
    "IpPositionProvider",
    "LocationError",
    "LocationErrorCode",
    "PositionErrorEvent",
    "PositionEvent",
    "PositionProvider",
    "PositionReading",
    "PushPositionProvider",
]
