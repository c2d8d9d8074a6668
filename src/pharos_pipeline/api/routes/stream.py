"""SSE relay route.

``GET /stream/open-stream?id=<stream id>`` proxies the backend worker's
event stream for one session to the browser, adding ``connecting`` /
``connected`` / ``error`` / ``retrying`` / ``complete`` events around the
relayed ones.
"""

from __future__ import annotations

import asyncio
from typing import Annotated, AsyncGenerator

import httpx
import structlog
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, StreamingResponse

from pharos_pipeline.api.dependencies import get_app_settings, get_http_client
from pharos_pipeline.config.settings import Settings
from pharos_pipeline.stream.relay import EventStreamRelay, QueueSink

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/stream", tags=["stream"])

SSE_HEADERS: dict[str, str] = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


@router.get("/open-stream", response_model=None)
async def open_stream(
    client: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    stream_id: Annotated[str | None, Query(alias="id")] = None,
) -> StreamingResponse | JSONResponse:
    """Relay the upstream stream identified by ``id``.

    Returns:
        A ``text/event-stream`` response, or HTTP 400 when ``id`` is missing.
    """
    if not stream_id:
        return JSONResponse(
            {"error": "No stream ID provided"}, status_code=status.HTTP_400_BAD_REQUEST
        )

    logger.info("stream_relay_open", stream_id=stream_id)
    sink = QueueSink()
    relay = EventStreamRelay(
        client,
        sink,
        endpoint=settings.stream_endpoint,
        connection_timeout=settings.stream_connection_timeout,
    )

    async def event_generator() -> AsyncGenerator[str, None]:
        task = asyncio.create_task(relay.start(stream_id, settings.stream_max_retries))
        try:
            async for frame in sink:
                yield frame
        finally:
            # Client gone or relay finished: stop the upstream read either way.
            relay.close()
            if not task.done():
                task.cancel()
            logger.info("stream_relay_closed", stream_id=stream_id)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
