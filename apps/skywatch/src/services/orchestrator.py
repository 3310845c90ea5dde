from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from .coordinates import Coordinate
from .location_store import LocationStore, Units, WeatherBundle
from .openweather import FetchError

logger = logging.getLogger("skywatch.hub.weather.orchestrator")


class WeatherProvider(Protocol):
    async def current_weather(self, lat: float, lon: float, units: str) -> dict[str, Any]: ...

    async def forecast(self, lat: float, lon: float, units: str) -> dict[str, Any]: ...

    async def air_pollution(self, lat: float, lon: float) -> dict[str, Any]: ...


class WeatherFetchOrchestrator:
    """Turns coordinates into committed weather bundles.

    Every request gets a new store generation. Results are committed through
    :meth:`LocationStore.apply_fetch_result`, which drops anything whose
    generation has been superseded, so a late response can never overwrite a
    newer one even if cancelling the underlying HTTP call was not possible.
    """

    def __init__(self, provider: WeatherProvider, store: LocationStore, *, epsilon: float) -> None:
        self._provider = provider
        self._store = store
        self._epsilon = epsilon
        self._task: Optional[asyncio.Task[None]] = None
        self._task_generation: int | None = None

    @property
    def in_flight(self) -> bool:
        return self._task is not None and not self._task.done()

    def request(self, coordinate: Coordinate, *, force: bool = False) -> int | None:
        """Start a fetch for ``coordinate``; returns its generation or None when skipped."""
        state = self._store.state
        if not force and self._is_fresh(coordinate, state.units):
            logger.debug("Skipping fetch for %s; bundle already current", coordinate)
            return None
        generation = self._store.begin_fetch()
        self._cancel_current()
        self._task_generation = generation
        self._task = asyncio.create_task(
            self._run(generation, coordinate, state.units),
            name=f"weather-fetch-{generation}",
        )
        logger.info("Fetching weather for %.4f,%.4f (generation %s)", coordinate.lat, coordinate.lon, generation)
        return generation

    def refresh(self) -> int | None:
        return self.request(self._store.state.coordinate, force=True)

    async def wait(self) -> None:
        """Wait for the in-flight fetch, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def close(self) -> None:
        task = self._task
        self._cancel_current()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _is_fresh(self, coordinate: Coordinate, units: Units) -> bool:
        state = self._store.state
        bundle = state.bundle
        if bundle is None or state.loading or state.error is not None:
            return False
        return bundle.units == units and coordinate.close_to(bundle.coordinate, self._epsilon)

    def _cancel_current(self) -> None:
        task = self._task
        if task is not None and not task.done():
            logger.debug("Cancelling superseded fetch (generation %s)", self._task_generation)
            task.cancel()
        self._task = None
        self._task_generation = None

    async def _run(self, generation: int, coordinate: Coordinate, units: Units) -> None:
        try:
            current, forecast, air_quality = await asyncio.gather(
                self._provider.current_weather(coordinate.lat, coordinate.lon, units),
                self._provider.forecast(coordinate.lat, coordinate.lon, units),
                self._provider.air_pollution(coordinate.lat, coordinate.lon),
            )
        except FetchError as exc:
            logger.warning("Weather fetch failed for generation %s (%s): %s", generation, exc.kind, exc)
            self._store.apply_fetch_result(generation, error=exc.kind, error_message=str(exc))  # type: ignore[arg-type]
            return
        except Exception as exc:  # noqa: BLE001 - commit a failure instead of leaving loading set
            logger.exception("Unexpected error while fetching weather for generation %s", generation)
            self._store.apply_fetch_result(generation, error="unknown", error_message=str(exc))
            return
        bundle = WeatherBundle(
            current=current,
            forecast=forecast,
            air_quality=air_quality,
            coordinate=coordinate,
            units=units,
        )
        if not self._store.apply_fetch_result(generation, bundle):
            logger.debug("Discarded superseded weather bundle (generation %s)", generation)


__all__ = ["WeatherFetchOrchestrator", "WeatherProvider"]
