"""SSE connection tests — the queue between broadcaster and response body."""

import asyncio

import pytest

from paraconnect.realtime.broadcaster import Broadcaster, WriteError
from paraconnect.realtime.sse import CONNECTED, KEEPALIVE, SSEConnection, sse_response


@pytest.mark.asyncio
async def test_stream_yields_retry_hint_then_connected_then_messages():
    conn = SSEConnection(retry_ms=5000)
    conn.write(b"event: messages\ndata: {}\n\n")

    stream = conn.stream()
    assert await anext(stream) == b"retry: 5000\n\n"
    assert await anext(stream) == CONNECTED
    assert await anext(stream) == b"event: messages\ndata: {}\n\n"
    await stream.aclose()


@pytest.mark.asyncio
async def test_no_retry_hint_when_not_configured():
    conn = SSEConnection()
    stream = conn.stream()
    assert await anext(stream) == CONNECTED
    await stream.aclose()


@pytest.mark.asyncio
async def test_keepalive_comment_when_idle():
    conn = SSEConnection(keepalive_seconds=0.01)
    stream = conn.stream()
    assert await anext(stream) == CONNECTED
    assert await anext(stream) == KEEPALIVE
    await stream.aclose()


@pytest.mark.asyncio
async def test_close_drains_queued_messages_then_ends():
    conn = SSEConnection()
    conn.write(b"one")
    conn.write(b"two")
    conn.close()

    chunks = [chunk async for chunk in conn.stream()]
    assert chunks == [CONNECTED, b"one", b"two"]


@pytest.mark.asyncio
async def test_close_wakes_a_waiting_stream():
    conn = SSEConnection(keepalive_seconds=10)
    stream = conn.stream()
    assert await anext(stream) == CONNECTED

    async def next_chunk():
        return await anext(stream)

    waiter = asyncio.create_task(next_chunk())
    await asyncio.sleep(0.01)
    conn.close()
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(waiter, timeout=1)


def test_write_after_close_raises():
    conn = SSEConnection()
    conn.close()
    conn.close()  # idempotent
    with pytest.raises(WriteError):
        conn.write(b"late")


def test_full_queue_closes_connection():
    conn = SSEConnection(queue_size=2)
    conn.write(b"1")
    conn.write(b"2")
    with pytest.raises(WriteError):
        conn.write(b"3")
    assert conn.closed


@pytest.mark.asyncio
async def test_slow_client_is_pruned_by_broadcaster():
    b = Broadcaster()
    slow = SSEConnection(queue_size=1)
    b.subscribe("case-1", slow)

    b.publish("case-1", "messages", {"n": 1})
    b.publish("case-1", "messages", {"n": 2})  # queue full -> pruned

    assert "case-1" not in b
    chunks = [chunk async for chunk in slow.stream()]
    assert chunks == [CONNECTED, b'event: messages\ndata: {"n":1}\n\n']


@pytest.mark.asyncio
async def test_sse_response_headers_and_detach_on_disconnect():
    b = Broadcaster()
    conn = SSEConnection()
    unsubscribe = b.subscribe("case-1", conn)

    resp = sse_response(conn, unsubscribe)
    assert resp.media_type == "text/event-stream"
    assert resp.headers["Cache-Control"] == "no-cache"
    assert resp.headers["X-Accel-Buffering"] == "no"

    body = resp.body_iterator
    assert await anext(body) == CONNECTED
    b.publish("case-1", "case_update", {"title": "X"})
    assert await anext(body) == b'event: case_update\ndata: {"title":"X"}\n\n'

    # Client goes away: the server closes the body iterator
    await body.aclose()
    assert conn.closed
    assert "case-1" not in b


@pytest.mark.asyncio
async def test_sse_response_detaches_when_body_never_starts():
    b = Broadcaster()
    conn = SSEConnection()
    resp = sse_response(conn, b.subscribe("case-1", conn))

    async def receive():
        await asyncio.Event().wait()

    async def send(message):
        raise OSError("client went away before headers")

    scope = {"type": "http", "asgi": {"spec_version": "2.4"}}
    with pytest.raises(Exception):
        await resp(scope, receive, send)

    assert conn.closed
    assert "case-1" not in b
