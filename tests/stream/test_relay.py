"""Unit tests for the reconnecting SSE relay.

The upstream endpoint is mocked with ``respx``; backoff sleeps are replaced
with an ``AsyncMock`` so retry schedules can be asserted without waiting.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest
import respx

from pharos_pipeline.core.logging_config import stream_session_id_var
from pharos_pipeline.stream.relay import (
    EventStreamRelay,
    QueueSink,
    RelayState,
    backoff_delay_ms,
)

ENDPOINT = "https://backend.test/api/open-stream"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class ListSink:
    """Collects frames; optionally fails on the n-th write."""

    def __init__(self, fail_on_put: int | None = None) -> None:
        self.frames: list[str] = []
        self.session_ids: list[str | None] = []
        self.closes = 0
        self._fail_on_put = fail_on_put
        self._puts = 0

    def put(self, frame: str) -> None:
        self._puts += 1
        if self._fail_on_put is not None and self._puts >= self._fail_on_put:
            raise ConnectionResetError("client went away")
        self.frames.append(frame)
        self.session_ids.append(stream_session_id_var.get())

    def close(self) -> None:
        self.closes += 1


def _relay_events(frames: list[str]) -> list[tuple[str, dict[str, Any]]]:
    events = []
    for frame in frames:
        lines = frame.rstrip("\n").split("\n")
        if len(lines) == 2 and lines[0].startswith("event: ") and lines[1].startswith("data: "):
            data = json.loads(lines[1].removeprefix("data: "))
            if isinstance(data, dict) and ("timestamp" in data or "error" in data):
                events.append((lines[0].removeprefix("event: "), data))
    return events


def _names(frames: list[str]) -> list[str]:
    return [name for name, _ in _relay_events(frames)]


def _sse_response(*chunks: bytes, error: Exception | None = None) -> httpx.Response:
    async def body() -> AsyncIterator[bytes]:
        for chunk in chunks:
            yield chunk
        if error is not None:
            raise error

    return httpx.Response(
        200, content=body(), headers={"content-type": "text/event-stream"}
    )


def _route(mock: respx.MockRouter) -> respx.Route:
    return mock.route(method="GET", host="backend.test", path="/api/open-stream")


def _relay(client: httpx.AsyncClient, sink: Any, sleep: AsyncMock) -> EventStreamRelay:
    return EventStreamRelay(client, sink, endpoint=ENDPOINT, sleep=sleep)


UPSTREAM_1 = b'event: progress\ndata: {"step":1}\n\n'
UPSTREAM_2 = b'event: progress\ndata: {"step":2}\n\n'


# ---------------------------------------------------------------------------
# Backoff
# ---------------------------------------------------------------------------


class TestBackoff:
    @pytest.mark.parametrize(
        ("attempt", "expected"),
        [(0, 1000), (1, 2000), (2, 4000), (3, 8000), (4, 10000), (5, 10000), (12, 10000)],
    )
    def test_capped_exponential(self, attempt: int, expected: int) -> None:
        assert backoff_delay_ms(attempt) == expected


# ---------------------------------------------------------------------------
# Relay
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestEventStreamRelay:
    async def test_successful_stream_is_forwarded_verbatim(self) -> None:
        sink = ListSink()
        sleep = AsyncMock()
        with respx.mock() as mock:
            route = _route(mock).mock(
                return_value=_sse_response(UPSTREAM_1[:10], UPSTREAM_1[10:] + UPSTREAM_2[:5], UPSTREAM_2[5:])
            )
            async with httpx.AsyncClient() as client:
                session = await _relay(client, sink, sleep).start("abc123")

        request = route.calls.last.request
        assert request.url.params["id"] == "abc123"
        assert request.headers["accept"] == "text/event-stream"
        assert request.headers["cache-control"] == "no-cache"

        assert sink.frames[2:4] == [UPSTREAM_1.decode(), UPSTREAM_2.decode()]
        assert _names(sink.frames) == ["connecting", "connected", "complete"]
        assert _relay_events(sink.frames)[0][1]["attempt"] == 1
        assert sink.closes == 1
        assert session.state is RelayState.CLOSED
        assert session.attempt == 0
        sleep.assert_not_awaited()

    async def test_incomplete_trailing_event_is_dropped(self) -> None:
        sink = ListSink()
        with respx.mock() as mock:
            _route(mock).mock(return_value=_sse_response(UPSTREAM_1 + b"event: progress\ndata: {"))
            async with httpx.AsyncClient() as client:
                await _relay(client, sink, AsyncMock()).start("abc")

        assert UPSTREAM_1.decode() in sink.frames
        assert not any("data: {\n" in f or f.endswith("data: {") for f in sink.frames)

    async def test_persistent_503_exhausts_retry_budget(self) -> None:
        sink = ListSink()
        sleep = AsyncMock()
        with respx.mock() as mock:
            route = _route(mock).mock(return_value=httpx.Response(503, text="worker busy"))
            async with httpx.AsyncClient() as client:
                session = await _relay(client, sink, sleep).start("abc", max_retries=3)

        assert route.call_count == 4
        assert _names(sink.frames) == ["connecting", "error", "retrying"] * 3 + ["connecting", "error"]
        retrying = [data for name, data in _relay_events(sink.frames) if name == "retrying"]
        assert [r["delayMs"] for r in retrying] == [1000, 2000, 4000]
        assert [r["attempt"] for r in retrying] == [1, 2, 3]
        assert all(r["maxRetries"] == 3 for r in retrying)
        assert retrying[0]["message"] == "Retrying connection in 1 seconds"
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

        errors = [data for name, data in _relay_events(sink.frames) if name == "error"]
        assert errors[0] == {
            "error": "Backend connection failed with status 503",
            "details": "worker busy",
        }
        assert session.state is RelayState.CLOSED
        assert session.attempt == 3
        assert sink.closes == 1

    async def test_zero_retries_closes_after_first_failure(self) -> None:
        sink = ListSink()
        sleep = AsyncMock()
        with respx.mock() as mock:
            route = _route(mock).mock(return_value=httpx.Response(204))
            async with httpx.AsyncClient() as client:
                await _relay(client, sink, sleep).start("abc", max_retries=0)

        assert route.call_count == 1
        assert _names(sink.frames) == ["connecting", "error"]
        assert _relay_events(sink.frames)[1][1]["error"] == "Backend response has no body"
        sleep.assert_not_awaited()
        assert sink.closes == 1

    async def test_connect_error_is_retried(self) -> None:
        sink = ListSink()
        sleep = AsyncMock()
        with respx.mock() as mock:
            _route(mock).mock(
                side_effect=[httpx.ConnectError("connection refused"), _sse_response(UPSTREAM_1)]
            )
            async with httpx.AsyncClient() as client:
                session = await _relay(client, sink, sleep).start("abc")

        events = _relay_events(sink.frames)
        assert [name for name, _ in events] == [
            "connecting", "error", "retrying", "connecting", "connected", "complete",
        ]
        assert events[1][1] == {
            "error": "Failed to connect to backend stream",
            "message": "connection refused",
        }
        assert events[2][1]["message"] == "Connection failed. Retrying in 1 seconds"
        assert events[3][1]["attempt"] == 2
        assert UPSTREAM_1.decode() in sink.frames
        sleep.assert_awaited_once_with(1.0)
        assert session.attempt == 1

    async def test_mid_stream_read_error_is_retried(self) -> None:
        sink = ListSink()
        sleep = AsyncMock()
        with respx.mock() as mock:
            _route(mock).mock(
                side_effect=[
                    _sse_response(UPSTREAM_1, error=httpx.ReadError("peer reset")),
                    _sse_response(UPSTREAM_2),
                ]
            )
            async with httpx.AsyncClient() as client:
                await _relay(client, sink, sleep).start("abc")

        events = _relay_events(sink.frames)
        assert [name for name, _ in events] == [
            "connecting", "connected", "error", "retrying", "connecting", "connected", "complete",
        ]
        assert events[2][1] == {"error": "Error reading from backend stream", "message": "peer reset"}
        assert events[3][1]["message"] == "Connection interrupted. Retrying in 1 seconds"
        assert sink.frames.count(UPSTREAM_1.decode()) == 1
        assert sink.frames.count(UPSTREAM_2.decode()) == 1

    async def test_external_close_stops_writes(self) -> None:
        sink = ListSink()
        relay_box: list[EventStreamRelay] = []

        async def body() -> AsyncIterator[bytes]:
            yield UPSTREAM_1
            relay_box[0].close()
            yield UPSTREAM_2
            yield UPSTREAM_2

        with respx.mock() as mock:
            route = _route(mock).mock(
                return_value=httpx.Response(200, content=body(), headers={"content-type": "text/event-stream"})
            )
            async with httpx.AsyncClient() as client:
                relay = _relay(client, sink, AsyncMock())
                relay_box.append(relay)
                session = await relay.start("abc")

        assert sink.frames[-1] == UPSTREAM_1.decode()
        assert UPSTREAM_2.decode() not in sink.frames
        assert sink.closes == 1
        assert session.sink_closed is True
        assert route.call_count == 1

    async def test_close_before_start_skips_upstream(self) -> None:
        sink = ListSink()
        with respx.mock(assert_all_called=False) as mock:
            route = _route(mock).mock(return_value=_sse_response(UPSTREAM_1))
            async with httpx.AsyncClient() as client:
                relay = _relay(client, sink, AsyncMock())
                relay.close()
                relay.close()
                session = await relay.start("abc")

        assert route.call_count == 0
        assert sink.frames == []
        assert sink.closes == 1
        assert session.state is RelayState.CLOSED

    async def test_failed_write_marks_sink_closed(self) -> None:
        sink = ListSink(fail_on_put=1)
        sleep = AsyncMock()
        with respx.mock() as mock:
            route = _route(mock).mock(return_value=httpx.Response(503))
            async with httpx.AsyncClient() as client:
                session = await _relay(client, sink, sleep).start("abc", max_retries=3)

        assert session.sink_closed is True
        assert sink.frames == []
        assert route.call_count == 1
        sleep.assert_not_awaited()

    async def test_session_id_bound_while_relaying(self) -> None:
        sink = ListSink()
        with respx.mock() as mock:
            _route(mock).mock(return_value=_sse_response(UPSTREAM_1))
            async with httpx.AsyncClient() as client:
                await _relay(client, sink, AsyncMock()).start("session-42")

        assert set(sink.session_ids) == {"session-42"}
        assert stream_session_id_var.get() is None


@pytest.mark.asyncio
class TestQueueSink:
    async def test_iterates_until_closed(self) -> None:
        sink = QueueSink()
        sink.put("a")
        sink.put("b")
        sink.close()

        assert [frame async for frame in sink] == ["a", "b"]
        assert sink.closed is True

    async def test_writes_after_close_raise(self) -> None:
        sink = QueueSink()
        sink.close()

        with pytest.raises(RuntimeError):
            sink.put("late")
        with pytest.raises(RuntimeError):
            sink.close()

    async def test_relay_into_queue_sink(self) -> None:
        sink = QueueSink()
        with respx.mock() as mock:
            _route(mock).mock(return_value=_sse_response(UPSTREAM_1))
            async with httpx.AsyncClient() as client:
                await _relay(client, sink, AsyncMock()).start("abc")

        frames = [frame async for frame in sink]
        assert _names(frames) == ["connecting", "connected", "complete"]
        assert sink.closed is True
