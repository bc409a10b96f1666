"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. The realtime hub is created here, not in the lifespan, so every
app instance (tests included) owns its own broadcasters. The lifespan only
manages the optional Redis relay.
"""

import asyncio
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from paraconnect import __version__
from paraconnect.api import api_router
from paraconnect.config import settings
from paraconnect.realtime.hub import RealtimeHub

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at
    shutdown. Redis is optional — without it the hub delivers locally.
    """
    logger.info(
        "paraconnect.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    from paraconnect.realtime.pubsub import close_redis, init_redis, listen

    hub: RealtimeHub = app.state.hub
    listener = None
    try:
        redis = await init_redis()
        hub.redis = redis
        listener = asyncio.create_task(listen(hub, redis))
        logger.info("paraconnect.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("paraconnect.redis_unavailable", error=str(e))
        await close_redis()

    yield

    logger.info("paraconnect.shutdown", **hub.stats())

    hub.redis = None
    if listener is not None:
        listener.cancel()
        try:
            await listener
        except asyncio.CancelledError:
            pass
    await close_redis()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="ParaConnect Realtime",
        description="Live case and notification updates for Let's-ParaConnect",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.hub = RealtimeHub(
        max_subscribers_per_case=settings.max_subscribers_per_case,
        max_subscribers_per_user=settings.max_subscribers_per_user,
        max_payload_bytes=settings.max_event_payload_bytes,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → RateLimit → CORS → handler

    from paraconnect.middleware.headers import RequestIdMiddleware, SecurityHeadersMiddleware
    from paraconnect.middleware.rate_limit import RateLimitMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        stream_rpm=settings.rate_limit_stream_rpm,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: paraconnect.main:app)
app = create_app()
