from __future__ import annotations

import logging
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, model_validator

from services.coordinates import CitySuggestion, Coordinate
from services.geolocation import PositionReading
from services.location import LocationController

from .dependencies import get_location_controller

logger = logging.getLogger("skywatch.hub.api.location")

router = APIRouter(prefix="/location", tags=["location"])


class ManualLocationRequest(BaseModel):
    lat: float = Field(..., ge=-90.0, le=90.0)
    lon: float = Field(..., ge=-180.0, le=180.0)
    name: str | None = Field(default=None, description="City name shown for the selection")
    country: str | None = None
    state: str | None = None


class PositionReport(BaseModel):
    latitude: float | None = Field(default=None, ge=-90.0, le=90.0)
    longitude: float | None = Field(default=None, ge=-180.0, le=180.0)
    accuracy: float | None = Field(default=None, ge=0.0, description="Accuracy radius in meters")
    error: Literal["permission_denied", "position_unavailable", "timeout", "unknown"] | None = None
    message: str | None = None

    @model_validator(mode="after")
    def _require_fix_or_error(self) -> "PositionReport":
        has_fix = self.latitude is not None and self.longitude is not None
        if self.error is None and not has_fix:
            raise ValueError("Provide latitude and longitude, or an error code")
        if self.error is not None and has_fix:
            raise ValueError("A report carries either a position or an error, not both")
        return self


class PositionReportResult(BaseModel):
    accepted: bool


@router.get("")
async def get_location(controller: LocationController = Depends(get_location_controller)) -> dict[str, Any]:
    return controller.state.to_payload()


@router.post("/manual")
async def set_manual_location(
    body: ManualLocationRequest,
    controller: LocationController = Depends(get_location_controller),
) -> dict[str, Any]:
    coordinate = Coordinate(lat=body.lat, lon=body.lon)
    place = None
    if body.name:
        place = CitySuggestion(
            name=body.name,
            country=body.country or "",
            lat=body.lat,
            lon=body.lon,
            state=body.state,
        )
    return controller.set_manual_location(coordinate, place).to_payload()


@router.post("/current")
async def use_current_location(controller: LocationController = Depends(get_location_controller)) -> dict[str, Any]:
    return controller.use_current_location().to_payload()


@router.post("/position", response_model=PositionReportResult)
async def report_position(
    body: PositionReport,
    controller: LocationController = Depends(get_location_controller),
) -> PositionReportResult:
    try:
        if body.error is not None:
            accepted = controller.report_position_error(body.error, body.message)
        else:
            assert body.latitude is not None and body.longitude is not None
            accepted = controller.report_position(
                PositionReading(latitude=body.latitude, longitude=body.longitude, accuracy=body.accuracy)
            )
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return PositionReportResult(accepted=accepted)


@router.post("/units")
async def toggle_units(controller: LocationController = Depends(get_location_controller)) -> dict[str, Any]:
    return controller.toggle_units().to_payload()


@router.post("/refresh")
async def refresh_weather(controller: LocationController = Depends(get_location_controller)) -> dict[str, Any]:
    return controller.refresh().to_payload()


__all__ = ["router"]
