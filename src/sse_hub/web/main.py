from __future__ import annotations

import logging
import re
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import StreamingResponse

from sse_hub.config import Settings
from sse_hub.models import HubStats, Subscriber
from .events import Hub
from .ticker import Ticker


logger = logging.getLogger(__name__)

# SSE recognises only these line ends
_LINE_BREAK = re.compile(r"\r\n|\r|\n")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_event(message: str) -> str:
    """Frame ``message`` as an SSE event, one ``data:`` line per text line."""
    lines = _LINE_BREAK.split(message)
    return "".join(f"data: {line}\n" for line in lines) + "\n"


async def stream_events(hub: Hub, subscriber: Subscriber) -> AsyncIterator[str]:
    """Relay the subscriber's outbox until it is closed or the client leaves."""
    try:
        while True:
            message = await subscriber.outbox.get()
            if message is None:
                break
            yield format_event(message)
    finally:
        # Also reached on cancellation when the client disconnects
        hub.deregister(subscriber.id)


def event_response(hub: Hub) -> StreamingResponse:
    sub = hub.subscribe()
    return StreamingResponse(stream_events(hub, sub), media_type="text/event-stream", headers=SSE_HEADERS)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        hub = Hub(outbox_size=settings.outbox_size)
        hub.start()
        app.state.hub = hub
        ticker: Optional[Ticker] = None
        if settings.tick_interval > 0:
            ticker = Ticker(hub, settings.tick_interval)
            ticker.start()
        logger.info("== SSE hub ready (tick every %ss) ==", settings.tick_interval)
        try:
            yield
        finally:
            if ticker is not None:
                await ticker.stop()
            await hub.stop()
            logger.info("== SSE hub stopped ==")

    app = FastAPI(title="SSE Hub", lifespan=lifespan)
    app.state.settings = settings

    @app.get("/")
    @app.get("/events")
    async def sse_events(request: Request) -> StreamingResponse:
        return event_response(request.app.state.hub)

    @app.get("/status", response_model=HubStats)
    def status(request: Request) -> HubStats:
        return request.app.state.hub.stats()

    return app

