from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Literal, Union

from .coordinates import CitySuggestion, Coordinate

logger = logging.getLogger("skywatch.hub.location.store")

Units = Literal["metric", "imperial"]
ErrorKind = Literal["network", "timeout", "http_status", "invalid_response", "unknown"]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _isoformat(timestamp: datetime) -> str:
    iso = timestamp.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    if iso.endswith("+00:00"):
        return iso[:-6] + "Z"
    return iso


class SelectionMode(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


@dataclass(frozen=True, slots=True)
class WeatherBundle:
    """Current weather, forecast and air quality for one coordinate, always all three."""

    current: dict[str, Any]
    forecast: dict[str, Any]
    air_quality: dict[str, Any]
    coordinate: Coordinate
    units: Units
    fetched_at: datetime = field(default_factory=_utc_now)

    def to_payload(self) -> dict[str, Any]:
        return {
            "current": self.current,
            "forecast": self.forecast,
            "air_quality": self.air_quality,
            "coordinate": self.coordinate.to_payload(),
            "units": self.units,
            "fetched_at": _isoformat(self.fetched_at),
        }


@dataclass(frozen=True, slots=True)
class LocationState:
    coordinate: Coordinate
    mode: SelectionMode = SelectionMode.AUTOMATIC
    bundle: WeatherBundle | None = None
    loading: bool = False
    error: ErrorKind | None = None
    error_message: str | None = None
    generation: int = 0
    units: Units = "metric"
    place: CitySuggestion | None = None
    location_error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        return {
            "coordinate": self.coordinate.to_payload(),
            "mode": self.mode.value,
            "bundle": self.bundle.to_payload() if self.bundle is not None else None,
            "loading": self.loading,
            "error": self.error,
            "error_message": self.error_message,
            "generation": self.generation,
            "units": self.units,
            "place": self.place.to_payload() if self.place is not None else None,
            "location_error": self.location_error,
        }


# Actions


@dataclass(frozen=True, slots=True)
class SetManualLocation:
    coordinate: Coordinate
    place: CitySuggestion | None = None


@dataclass(frozen=True, slots=True)
class UseCurrentLocation:
    pass


@dataclass(frozen=True, slots=True)
class ApplyPosition:
    coordinate: Coordinate


@dataclass(frozen=True, slots=True)
class LocationFailed:
    code: str


@dataclass(frozen=True, slots=True)
class BeginFetch:
    pass


@dataclass(frozen=True, slots=True)
class ApplyFetchResult:
    generation: int
    bundle: WeatherBundle | None = None
    error: ErrorKind | None = None
    error_message: str | None = None


@dataclass(frozen=True, slots=True)
class ToggleUnits:
    pass


Action = Union[
    SetManualLocation,
    UseCurrentLocation,
    ApplyPosition,
    LocationFailed,
    BeginFetch,
    ApplyFetchResult,
    ToggleUnits,
]


def reduce(state: LocationState, action: Action) -> LocationState:
    """Return the state after ``action``; returns ``state`` itself when nothing changes."""
    if isinstance(action, SetManualLocation):
        return replace(
            state,
            mode=SelectionMode.MANUAL,
            coordinate=action.coordinate,
            place=action.place,
            location_error=None,
        )
    if isinstance(action, UseCurrentLocation):
        return replace(state, mode=SelectionMode.AUTOMATIC, place=None, location_error=None)
    if isinstance(action, ApplyPosition):
        if state.mode is SelectionMode.MANUAL:
            return state
        return replace(state, coordinate=action.coordinate, location_error=None)
    if isinstance(action, LocationFailed):
        if state.mode is SelectionMode.MANUAL:
            return state
        # the previous valid coordinate stays in place
        return replace(state, location_error=action.code)
    if isinstance(action, BeginFetch):
        return replace(state, generation=state.generation + 1, loading=True)
    if isinstance(action, ApplyFetchResult):
        if action.generation != state.generation:
            return state
        if action.bundle is not None:
            return replace(state, bundle=action.bundle, loading=False, error=None, error_message=None)
        return replace(
            state,
            loading=False,
            error=action.error or "network",
            error_message=action.error_message,
        )
    if isinstance(action, ToggleUnits):
        return replace(state, units="imperial" if state.units == "metric" else "metric")
    raise TypeError(f"Unsupported action: {action!r}")


Listener = Callable[[LocationState], None]


class LocationStore:
    """Single writer for the location/weather state; readers get immutable snapshots."""

    def __init__(self, initial: LocationState) -> None:
        self._state = initial
        self._listeners: list[Listener] = []

    @property
    def state(self) -> LocationState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def dispatch(self, action: Action) -> LocationState:
        previous = self._state
        updated = reduce(previous, action)
        if updated is previous:
            logger.debug("Action %s left state unchanged", type(action).__name__)
            return previous
        self._state = updated
        for listener in list(self._listeners):
            listener(updated)
        return updated

    def set_manual_location(self, coordinate: Coordinate, place: CitySuggestion | None = None) -> LocationState:
        return self.dispatch(SetManualLocation(coordinate=coordinate, place=place))

    def use_current_location(self) -> LocationState:
        return self.dispatch(UseCurrentLocation())

    def apply_fetch_result(
        self,
        generation: int,
        bundle: WeatherBundle | None = None,
        *,
        error: ErrorKind | None = None,
        error_message: str | None = None,
    ) -> bool:
        """Commit a fetch outcome; returns False when the generation was superseded."""
        if generation != self._state.generation:
            logger.debug(
                "Discarding result for generation %s (current %s)",
                generation,
                self._state.generation,
            )
            return False
        self.dispatch(
            ApplyFetchResult(generation=generation, bundle=bundle, error=error, error_message=error_message)
        )
        return True

    def apply_position(self, coordinate: Coordinate) -> bool:
        """Record a geolocation reading; returns False when ignored because of manual mode."""
        if self._state.mode is SelectionMode.MANUAL:
            return False
        self.dispatch(ApplyPosition(coordinate=coordinate))
        return True

    def location_failed(self, code: str) -> LocationState:
        return self.dispatch(LocationFailed(code=code))

    def begin_fetch(self) -> int:
        return self.dispatch(BeginFetch()).generation

    def toggle_units(self) -> LocationState:
        return self.dispatch(ToggleUnits())


__all__ = [
    "Action",
    "ApplyFetchResult",
    "ApplyPosition",
    "BeginFetch",
    "ErrorKind",
    "LocationFailed",
    "LocationState",
    "LocationStore",
    "SelectionMode",
    "SetManualLocation",
    "ToggleUnits",
    "Units",
    "UseCurrentLocation",
    "WeatherBundle",
    "reduce",
]
