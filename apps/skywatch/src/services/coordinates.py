from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class Coordinate:
    lat: float
    lon: float

    def close_to(self, other: Coordinate | None, epsilon: float) -> bool:
        """Approximate equality used to ignore GPS jitter."""
        if other is None:
            return False
        return abs(self.lat - other.lat) < epsilon and abs(self.lon - other.lon) < epsilon

    def to_payload(self) -> dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True, slots=True)
class CitySuggestion:
    name: str
    country: str
    lat: float
    lon: float
    state: str | None = None

    @property
    def coordinate(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)

    @property
    def label(self) -> str:
        return f"{self.name}, {self.country}" if self.country else self.name

    def to_payload(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "country": self.country,
            "state": self.state,
            "lat": self.lat,
            "lon": self.lon,
            "label": self.label,
        }


__all__ = ["Coordinate", "CitySuggestion"]
