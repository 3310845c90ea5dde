from __future__ import annotations

import logging
from typing import Any

from config import settings

from .city_search import CitySearchService, SearchState
from .coordinates import CitySuggestion, Coordinate
from .debounce import CoordinateDebouncer
from .event_bus import EventBus, event_bus
from .geolocation import (
    GeolocationEvent,
    GeolocationWatch,
    IpPositionProvider,
    PositionErrorEvent,
    PositionProvider,
    PositionReading,
    PushPositionProvider,
)
from .location_store import LocationState, LocationStore, SelectionMode
from .openweather import OpenWeatherClient
from .orchestrator import WeatherFetchOrchestrator

logger = logging.getLogger("skywatch.hub.location")


def _build_position_provider() -> PositionProvider:
    if settings.geolocation_provider == "ip":
        return IpPositionProvider()
    return PushPositionProvider()


class LocationController:
    """Owns the location/weather state and every component that feeds it.

    Geolocation readings and city selections both end up in the coordinate
    debouncer; settled coordinates go to the fetch orchestrator, whose results
    are committed to the store. All of it runs on one event loop.
    """

    def __init__(
        self,
        *,
        weather_client: OpenWeatherClient | None = None,
        position_provider: PositionProvider | None = None,
        bus: EventBus | None = None,
    ) -> None:
        self._weather_client_override = weather_client
        self._position_provider_override = position_provider
        self._bus = bus or event_bus
        self._started = False
        self.reset()

    def reset(self) -> None:
        """Rebuild every component from the current settings; only valid while stopped."""
        if self._started:
            raise RuntimeError("Cannot reset a running location controller")
        self._geolocation_enabled = settings.geolocation_enabled
        self.client = self._weather_client_override or OpenWeatherClient()
        self.provider = self._position_provider_override or _build_position_provider()
        self.store = LocationStore(
            LocationState(
                coordinate=Coordinate(lat=settings.default_lat, lon=settings.default_lon),
                units=settings.weather_units,
            )
        )
        self.store.subscribe(self._publish_location)
        self.orchestrator = WeatherFetchOrchestrator(self.client, self.store, epsilon=settings.coordinate_epsilon)
        self.debouncer = CoordinateDebouncer(
            settings.debounce_seconds,
            settings.coordinate_epsilon,
            self._on_coordinate_settled,
        )
        self.search = CitySearchService(
            self.client,
            limit=settings.city_search_limit,
            min_length=settings.city_search_min_length,
            debounce_seconds=settings.search_debounce_seconds,
            on_change=self._publish_search,
        )
        self.watch = GeolocationWatch(self.provider, self._on_geolocation_event, timeout=settings.geolocation_timeout)

    @property
    def state(self) -> LocationState:
        return self.store.state

    @property
    def started(self) -> bool:
        return self._started

    @property
    def bus(self) -> EventBus:
        return self._bus

    async def start(self) -> None:
        if self._started:
            return
        self._started = True
        logger.info(
            "Location controller starting at %s (%.4f, %.4f)",
            settings.default_city_name,
            self.state.coordinate.lat,
            self.state.coordinate.lon,
        )
        self.debouncer.push(self.state.coordinate, force=True)
        if self._geolocation_enabled and self.state.mode is SelectionMode.AUTOMATIC:
            self.watch.start()

    async def stop(self) -> None:
        if not self._started:
            return
        self._started = False
        self.debouncer.cancel()
        await self.watch.close()
        await self.search.close()
        await self.orchestrator.close()
        await self.client.close()
        close_provider = getattr(self.provider, "close", None)
        if close_provider is not None:
            await close_provider()
        logger.info("Location controller stopped")

    def set_manual_location(self, coordinate: Coordinate, place: CitySuggestion | None = None) -> LocationState:
        state = self.store.set_manual_location(coordinate, place)
        self.watch.stop()
        self.debouncer.push(coordinate, force=True)
        logger.info("Manual location set to %.4f,%.4f", coordinate.lat, coordinate.lon)
        return state

    def select_city(self, city: CitySuggestion) -> LocationState:
        self.search.clear()
        return self.set_manual_location(city.coordinate, city)

    def use_current_location(self) -> LocationState:
        state = self.store.use_current_location()
        if not self._geolocation_enabled:
            logger.info("Geolocation disabled; keeping %.4f,%.4f", state.coordinate.lat, state.coordinate.lon)
            return self.store.location_failed("position_unavailable")
        # restarting the watch is the retry for a previous failure
        self.watch.stop()
        self.watch.start()
        self.debouncer.push(state.coordinate, force=True)
        return self.store.state

    def report_position(self, reading: PositionReading) -> bool:
        """Feed a device-reported fix to the push provider; False when nothing is watching."""
        provider = self._require_push_provider()
        if not self.watch.active:
            logger.debug("Dropping reported position; geolocation watch inactive")
            return False
        provider.report_position(reading)
        return True

    def report_position_error(self, code: str, message: str | None = None) -> bool:
        provider = self._require_push_provider()
        if not self.watch.active:
            return False
        provider.report_error(code, message)
        return True

    def toggle_units(self) -> LocationState:
        state = self.store.toggle_units()
        self.orchestrator.request(state.coordinate)
        return self.store.state

    def refresh(self) -> LocationState:
        self.orchestrator.refresh()
        return self.store.state

    def snapshot(self) -> dict[str, Any]:
        return {
            "location": self.store.state.to_payload(),
            "search": self.search.state.to_payload(),
            "geolocation": {
                "enabled": self._geolocation_enabled,
                "provider": type(self.provider).__name__,
                "watching": self.watch.active,
            },
        }

    def _require_push_provider(self) -> PushPositionProvider:
        if not isinstance(self.provider, PushPositionProvider):
            raise RuntimeError("Position reports require the push geolocation provider")
        return self.provider

    def _on_geolocation_event(self, event: GeolocationEvent) -> None:
        if self.store.state.mode is SelectionMode.MANUAL:
            logger.debug("Ignoring geolocation event in manual mode: %r", event)
            return
        if isinstance(event, PositionErrorEvent):
            self.store.location_failed(event.error.code)
            return
        self.store.apply_position(event.coordinate)
        self.debouncer.push(event.coordinate)

    def _on_coordinate_settled(self, coordinate: Coordinate) -> None:
        self.orchestrator.request(coordinate)

    def _publish_location(self, state: LocationState) -> None:
        self._bus.publish("location", state.to_payload())

    def _publish_search(self, state: SearchState) -> None:
        self._bus.publish("search", state.to_payload())


location_controller = LocationController()

__all__ = ["LocationController", "location_controller"]
