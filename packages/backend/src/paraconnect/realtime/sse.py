"""Server-Sent Events connections — the HTTP side of a subscription.

Learn: The broadcaster writes synchronously, but an HTTP response body is
an async iterator. SSEConnection bridges the two with a bounded queue:
write() enqueues without blocking, stream() drains the queue into the
StreamingResponse. A client too slow to keep up fills its queue, and the
next write fails — the broadcaster then prunes it like any dead socket.

Idle connections get a comment line every keepalive_seconds so proxies
don't time them out. Comments are ignored by EventSource.
"""

import asyncio
from typing import AsyncIterator, Optional

from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from paraconnect.realtime.broadcaster import Unsubscribe, WriteError

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable nginx response buffering
}

CONNECTED = b": connected\n\n"
KEEPALIVE = b": keepalive\n\n"


class SSEConnection:
    """One client's event stream. Implements the Subscriber protocol."""

    def __init__(
        self,
        queue_size: int = 100,
        keepalive_seconds: float = 25.0,
        retry_ms: Optional[int] = None,
    ):
        self.keepalive_seconds = keepalive_seconds
        self.retry_ms = retry_ms
        self._queue: asyncio.Queue[Optional[bytes]] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, data: bytes) -> None:
        if self._closed:
            raise WriteError("connection closed")
        try:
            self._queue.put_nowait(data)
        except asyncio.QueueFull:
            self.close()
            raise WriteError("client is not keeping up; queue full")

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked on get(); a full queue means no one is blocked
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass

    async def stream(self) -> AsyncIterator[bytes]:
        """Yield the response body until the connection is closed."""
        if self.retry_ms:
            yield f"retry: {self.retry_ms}\n\n".encode("utf-8")
        yield CONNECTED
        while True:
            if self._closed and self._queue.empty():
                break
            try:
                chunk = await asyncio.wait_for(self._queue.get(), timeout=self.keepalive_seconds)
            except asyncio.TimeoutError:
                yield KEEPALIVE
                continue
            if chunk is None:
                break
            yield chunk


class SSEResponse(StreamingResponse):
    """text/event-stream response that owns one subscription.

    The connection is detached however the response ends: client
    disconnect (body cancelled), server close, slow-client pruning, or a
    failure before the body was ever iterated (e.g. the client went away
    before the headers were sent).
    """

    def __init__(self, connection: SSEConnection, unsubscribe: Unsubscribe):
        self.connection = connection
        self._unsubscribe = unsubscribe
        super().__init__(self._body(), media_type="text/event-stream", headers=SSE_HEADERS)

    async def _body(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self.connection.stream():
                yield chunk
        finally:
            self.detach()

    def detach(self) -> None:
        """Close the connection and unsubscribe it (idempotent)."""
        self.connection.close()
        self._unsubscribe()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.detach()


def sse_response(connection: SSEConnection, unsubscribe: Unsubscribe) -> SSEResponse:
    """Wrap a subscribed connection in a text/event-stream response."""
    return SSEResponse(connection, unsubscribe)
