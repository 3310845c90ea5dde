from fastapi import APIRouter

from config import settings
from services.location import location_controller
from .events_router import router as events_router
from .location_router import router as location_router
from .search_router import router as search_router

router = APIRouter(prefix="/api/v1", tags=["v1"])
router.include_router(location_router)
router.include_router(search_router)
router.include_router(events_router)


@router.get("/health")
async def health():
    return {
        "status": "ok" if location_controller.started else "starting",
        "version": settings.app_version,
    }


@router.get("/info")
async def info():
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "debug": settings.debug,
        "cors_origins": settings.cors_origins,
        "default_city": settings.default_city_name,
        "geolocation_enabled": settings.geolocation_enabled,
        "geolocation_provider": settings.geolocation_provider,
        "debounce_seconds": settings.debounce_seconds,
        "coordinate_epsilon": settings.coordinate_epsilon,
    }
