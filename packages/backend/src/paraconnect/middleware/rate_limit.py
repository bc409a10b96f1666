"""Rate limiting middleware — Redis-based fixed window per minute.

Learn: Each IP gets a counter key like "paraconnect:rl:{ip}:{bucket}:{minute}".
Opening a stream gets a stricter bucket: a page stuck in a reconnect loop
would otherwise open connections as fast as EventSource retries.

Only the request that opens a stream is counted, not the events that flow
over it. Gracefully skips rate limiting if Redis is unavailable (e.g., in
tests or single-process deployments).
"""

import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Redis-based rate limiting per IP per minute."""

    def __init__(self, app, default_rpm: int = 100, stream_rpm: int = 20):
        super().__init__(app)
        self.default_rpm = default_rpm
        self.stream_rpm = stream_rpm

    async def dispatch(self, request: Request, call_next) -> Response:
        # Try to get Redis: skip rate limiting if unavailable
        try:
            from paraconnect.realtime.pubsub import get_redis

            redis = get_redis()
        except RuntimeError:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        is_stream = request.url.path.endswith("/stream")
        rpm = self.stream_rpm if is_stream else self.default_rpm

        window = int(time.time() // 60)
        bucket = "stream" if is_stream else "api"
        key = f"paraconnect:rl:{client_ip}:{bucket}:{window}"

        try:
            count = await redis.incr(key)
            if count == 1:
                await redis.expire(key, 120)  # 2-min TTL for safety
        except Exception:
            # Redis error: don't block the request
            return await call_next(request)

        if count > rpm:
            return JSONResponse(
                status_code=429,
                content={"detail": "Rate limit exceeded. Try again later."},
                headers={"Retry-After": "60"},
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(rpm)
        response.headers["X-RateLimit-Remaining"] = str(max(0, rpm - count))
        return response
