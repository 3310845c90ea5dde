from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from services.event_bus import EventMessage
from services.location import LocationController

from .dependencies import get_location_controller

logger = logging.getLogger("skywatch.hub.events")

router = APIRouter(prefix="/events", tags=["events"])

KEEPALIVE_SECONDS = 20.0


@router.get(
    "/stream",
    response_class=StreamingResponse,
    summary="Server-sent events stream of location, weather and search state",
)
async def stream_events(controller: LocationController = Depends(get_location_controller)) -> StreamingResponse:
    logger.debug("Event stream requested")

    async def _event_source() -> AsyncIterator[bytes]:
        subscription = controller.bus.subscribe()
        try:
            yield EventMessage(type="init", data=controller.snapshot()).to_sse()
            while True:
                try:
                    message = await asyncio.wait_for(subscription.get(), timeout=KEEPALIVE_SECONDS)
                    yield message.to_sse()
                except asyncio.TimeoutError:
                    yield b": keep-alive\n\n"
        except asyncio.CancelledError:  # pragma: no cover - server shutdown
            raise
        finally:
            subscription.close()

    headers = {
        "Cache-Control": "no-cache",
        "X-Accel-Buffering": "no",
    }
    return StreamingResponse(_event_source(), media_type="text/event-stream", headers=headers)


__all__ = ["router"]
