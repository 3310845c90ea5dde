from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from services.location import LocationController
from services.openweather import SearchError

from .dependencies import get_location_controller

router = APIRouter(prefix="/search", tags=["search"])


class CitySuggestionModel(BaseModel):
    name: str
    country: str
    state: str | None = None
    lat: float
    lon: float
    label: str


class QueryRequest(BaseModel):
    query: str = Field(default="", max_length=200)


class SelectRequest(BaseModel):
    index: int = Field(..., ge=0, description="Position in the current suggestion list")


@router.get("/cities", response_model=list[CitySuggestionModel])
async def search_cities(
    q: str = Query(..., max_length=200, description="City name"),
    controller: LocationController = Depends(get_location_controller),
) -> list[CitySuggestionModel]:
    try:
        results = await controller.search.search(q)
    except SearchError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return [CitySuggestionModel(**item.to_payload()) for item in results]


@router.post("/query")
async def update_query(
    body: QueryRequest,
    controller: LocationController = Depends(get_location_controller),
) -> dict[str, Any]:
    controller.search.update_query(body.query)
    return controller.search.state.to_payload()


@router.get("/state")
async def search_state(controller: LocationController = Depends(get_location_controller)) -> dict[str, Any]:
    return controller.search.state.to_payload()


@router.post("/select")
async def select_suggestion(
    body: SelectRequest,
    controller: LocationController = Depends(get_location_controller),
) -> dict[str, Any]:
    try:
        city = controller.search.suggestion(body.index)
    except IndexError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No suggestion at that index") from exc
    return controller.select_city(city).to_payload()


__all__ = ["router"]
