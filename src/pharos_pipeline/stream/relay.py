"""Reconnecting relay from an upstream SSE endpoint to a downstream sink.

The relay is an explicit loop over four states::

    CONNECTING -> STREAMING -> (RETRYING -> CONNECTING)* -> CLOSED

Upstream events are forwarded byte-for-byte and only once complete (see
:class:`~pharos_pipeline.stream.framing.SSEFrameBuffer`).  Around them the
relay emits its own ``connecting``, ``connected``, ``error``, ``retrying``
and ``complete`` events.  Failures are retried with capped exponential
backoff; once the retry budget is spent the relay closes quietly.  The
caller only ever sees the events already written to the sink.

Every write goes through :meth:`EventStreamRelay.safe_enqueue`, which
respects ``StreamSession.sink_closed``.  The downstream consumer can go away
at any time; the relay notices at the next write or chunk boundary and
releases the upstream connection.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

from pharos_pipeline.core.exceptions import StreamReadError, StreamUpstreamError
from pharos_pipeline.core.logging_config import stream_session_id_var
from pharos_pipeline.stream.framing import SSEFrameBuffer, format_sse_event

logger = logging.getLogger(__name__)

BACKOFF_BASE_MS = 1000
BACKOFF_CAP_MS = 10000
DEFAULT_MAX_RETRIES = 3
DEFAULT_CONNECTION_TIMEOUT = 300.0

UPSTREAM_HEADERS: dict[str, str] = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}


def backoff_delay_ms(
    attempt: int, base_ms: int = BACKOFF_BASE_MS, cap_ms: int = BACKOFF_CAP_MS
) -> int:
    """Delay before retry number ``attempt + 1``: ``min(base * 2**attempt, cap)``."""
    return min(base_ms * 2**attempt, cap_ms)


def _now_ms() -> int:
    return int(time.time() * 1000)


class RelayState(str, Enum):
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RETRYING = "retrying"
    CLOSED = "closed"


@dataclass
class StreamSession:
    """Mutable state of one relay run.

    Attributes:
        id: Upstream stream ID (sent as ``?id=``).
        max_retries: Retries allowed after the first connection.
        attempt: Zero for the first connection, incremented per retry.
            Never exceeds ``max_retries``.
        backoff_ms: Delay scheduled before the pending retry.
        sink_closed: Whether further writes to the sink are legal.  Set by
            a failed write or by an external close.
        state: Current relay state.
    """

    id: str
    max_retries: int = DEFAULT_MAX_RETRIES
    attempt: int = 0
    backoff_ms: int = 0
    sink_closed: bool = False
    state: RelayState = RelayState.CONNECTING


# ---------------------------------------------------------------------------
# Sinks
# ---------------------------------------------------------------------------


class EventSink(Protocol):
    """Downstream destination.  Both methods raise once the sink is gone."""

    def put(self, frame: str) -> None: ...

    def close(self) -> None: ...


_END = object()


class QueueSink:
    """``asyncio.Queue``-backed sink drained by an HTTP streaming response.

    Iterating the sink yields frames until :meth:`close` is called.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def put(self, frame: str) -> None:
        if self._closed:
            raise RuntimeError("sink is closed")
        self._queue.put_nowait(frame)

    def close(self) -> None:
        if self._closed:
            raise RuntimeError("sink is already closed")
        self._closed = True
        self._queue.put_nowait(_END)

    async def __aiter__(self) -> AsyncIterator[str]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            yield item


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


class EventStreamRelay:
    """Proxy one upstream SSE session into ``sink`` with reconnects.

    Args:
        client: HTTP client used for the upstream request; the caller owns
            its lifetime.
        sink: Where framed events are written.
        endpoint: Upstream SSE URL without the ``id`` query parameter.
        connection_timeout: Ceiling (seconds) on one upstream connection.
        sleep: Coroutine used for backoff delays (injectable for tests).
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        sink: EventSink,
        *,
        endpoint: str,
        connection_timeout: float = DEFAULT_CONNECTION_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self._sink = sink
        self._endpoint = endpoint
        self._timeout = httpx.Timeout(connection_timeout)
        self._sleep = sleep
        self._closed_before_start = False
        self.session: StreamSession | None = None

    # ------------------------------------------------------------------
    # Guarded sink access
    # ------------------------------------------------------------------

    def _sink_closed(self) -> bool:
        if self.session is None:
            return self._closed_before_start
        return self.session.sink_closed

    def _mark_sink_closed(self) -> None:
        if self.session is None:
            self._closed_before_start = True
        else:
            self.session.sink_closed = True

    def safe_enqueue(self, frame: str) -> None:
        """Write ``frame`` unless the sink is closed; a failed write closes it."""
        if self._sink_closed():
            return
        try:
            self._sink.put(frame)
        except Exception as exc:  # noqa: BLE001
            logger.warning("relay: write failed, treating sink as closed: %s", exc)
            self._mark_sink_closed()

    def safe_close(self) -> None:
        """Close the sink once; later calls are no-ops."""
        if self._sink_closed():
            return
        self._mark_sink_closed()
        try:
            self._sink.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("relay: closing sink failed: %s", exc)

    def emit(self, event: str, data: dict[str, Any]) -> None:
        self.safe_enqueue(format_sse_event(event, data))

    def close(self) -> None:
        """External close signal, e.g. the downstream client disconnected."""
        logger.info("relay: close requested")
        self.safe_close()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    async def start(self, session_id: str, max_retries: int = DEFAULT_MAX_RETRIES) -> StreamSession:
        """Relay ``session_id`` until the session is closed.

        Never raises for upstream failures; they are reported downstream as
        ``error`` events.

        Returns:
            The final session state.
        """
        session = StreamSession(
            id=session_id,
            max_retries=max_retries,
            sink_closed=self._closed_before_start,
        )
        self.session = session
        token = stream_session_id_var.set(session_id)
        logger.info("relay: proxying stream %s (max_retries=%d)", session_id, max_retries)
        try:
            while session.state is not RelayState.CLOSED:
                if session.sink_closed:
                    session.state = RelayState.CLOSED
                elif session.state is RelayState.CONNECTING:
                    session.state = await self._connect(session)
                elif session.state is RelayState.RETRYING:
                    await self._sleep(session.backoff_ms / 1000)
                    session.attempt += 1
                    session.state = RelayState.CONNECTING
        finally:
            session.state = RelayState.CLOSED
            self.safe_close()
            logger.info("relay: stream %s closed after %d retries", session_id, session.attempt)
            stream_session_id_var.reset(token)
        return session

    async def _connect(self, session: StreamSession) -> RelayState:
        self.emit(
            "connecting",
            {
                "message": "Connecting to backend stream",
                "attempt": session.attempt + 1,
                "timestamp": _now_ms(),
            },
        )
        try:
            async with self._client.stream(
                "GET",
                self._endpoint,
                params={"id": session.id},
                headers=UPSTREAM_HEADERS,
                timeout=self._timeout,
            ) as response:
                await self._check_response(session, response)
                self.emit(
                    "connected",
                    {"message": "Stream connected to backend", "timestamp": _now_ms()},
                )
                session.state = RelayState.STREAMING
                return await self._pump(session, response)
        except StreamUpstreamError as exc:
            logger.warning("relay: upstream rejected %s: %s", session.id, exc)
            payload: dict[str, Any] = {"error": str(exc)}
            if exc.details is not None:
                payload["details"] = exc.details
            self.emit("error", payload)
            return self._retry_or_close(session, "Retrying connection")
        except StreamReadError as exc:
            logger.warning("relay: read failed for %s: %s", session.id, exc)
            if session.sink_closed:
                return RelayState.CLOSED
            self.emit(
                "error",
                {"error": "Error reading from backend stream", "message": str(exc)},
            )
            return self._retry_or_close(session, "Connection interrupted. Retrying")
        except httpx.HTTPError as exc:
            logger.warning("relay: cannot connect for %s: %s", session.id, exc)
            if session.sink_closed:
                return RelayState.CLOSED
            self.emit(
                "error",
                {
                    "error": "Failed to connect to backend stream",
                    "message": str(exc) or type(exc).__name__,
                },
            )
            return self._retry_or_close(session, "Connection failed. Retrying")

    async def _check_response(self, session: StreamSession, response: httpx.Response) -> None:
        if not response.is_success:
            body = (await response.aread()).decode("utf-8", errors="replace")
            raise StreamUpstreamError(
                f"Backend connection failed with status {response.status_code}",
                status_code=response.status_code,
                details=body,
                session_id=session.id,
            )
        if response.status_code == httpx.codes.NO_CONTENT:
            raise StreamUpstreamError(
                "Backend response has no body",
                status_code=response.status_code,
                session_id=session.id,
            )

    async def _pump(self, session: StreamSession, response: httpx.Response) -> RelayState:
        frames = SSEFrameBuffer()
        forwarded = 0
        try:
            async for chunk in response.aiter_bytes():
                for frame in frames.feed(chunk):
                    self.safe_enqueue(frame)
                    forwarded += 1
                if session.sink_closed:
                    logger.info("relay: sink closed, releasing upstream for %s", session.id)
                    return RelayState.CLOSED
        except httpx.HTTPError as exc:
            raise StreamReadError(str(exc) or "Stream read error", session_id=session.id) from exc

        leftover = frames.reset()
        if leftover:
            logger.debug("relay: dropping %d chars of incomplete event", len(leftover))
        logger.info("relay: upstream ended for %s after %d events", session.id, forwarded)
        self.emit("complete", {"message": "Backend stream ended", "timestamp": _now_ms()})
        return RelayState.CLOSED

    def _retry_or_close(self, session: StreamSession, message: str) -> RelayState:
        if session.sink_closed or session.attempt >= session.max_retries:
            return RelayState.CLOSED
        delay = backoff_delay_ms(session.attempt)
        session.backoff_ms = delay
        self.emit(
            "retrying",
            {
                "message": f"{message} in {delay / 1000:g} seconds",
                "attempt": session.attempt + 1,
                "maxRetries": session.max_retries,
                "delayMs": delay,
                "timestamp": _now_ms(),
            },
        )
        return RelayState.RETRYING
