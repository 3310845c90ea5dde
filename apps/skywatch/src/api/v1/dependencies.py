from __future__ import annotations

from fastapi import HTTPException, status

from services.location import LocationController, location_controller


def get_location_controller() -> LocationController:
    if not location_controller.started:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Location service not running")
    return location_controller
