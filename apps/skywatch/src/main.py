from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
import logging, time

from config import settings
from api.v1.router import router as v1_router
from services.location import location_controller

logger = logging.getLogger("skywatch.hub")
if not logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, version=settings.app_version)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.perf_counter()
        response = await call_next(request)
        dur_ms = (time.perf_counter() - start) * 1000.0
        logger.info("%s %s -> %s (%.1f ms)", request.method, request.url.path, response.status_code, dur_ms)
        return response

    @app.get("/", tags=["meta"])
    async def root():
        return {"name": settings.app_name, "version": settings.app_version}

    @app.get("/health", tags=["meta"])
    async def health():
        return JSONResponse({"status": "ok", "version": settings.app_version})

    app.include_router(v1_router)

    @app.on_event("startup")
    async def _startup():
        if not settings.openweather_api_key:
            logger.warning("OPENWEATHER_API_KEY not set; provider calls will be rejected upstream.")
        if settings.geolocation_enabled:
            logger.info("Geolocation enabled (provider=%s).", settings.geolocation_provider)
        else:
            logger.info("Geolocation disabled (set GEOLOCATION_ENABLED=true to enable).")
        await location_controller.start()

    @app.on_event("shutdown")
    async def _shutdown():
        await location_controller.stop()

    return app

app = create_app()


def run() -> None:
    """Serve the hub with uvicorn on the configured port."""
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=settings.port, reload=settings.debug)


if __name__ == "__main__":
    run()
