"""Redis pub/sub — relay events between worker processes.

Learn: Redis pub/sub is fire-and-forget. If no one is listening, the message
is lost. That's fine for live updates (the frontend re-fetches the case when
it reconnects), and it's exactly the broadcaster's own delivery contract.

Every worker runs one listen() task subscribed to the relay channel and
hands each message to its local hub.
"""

import asyncio
from typing import Optional

import redis.asyncio as aioredis
import structlog

from paraconnect.config import settings
from paraconnect.realtime.hub import RELAY_CHANNEL, RealtimeHub

logger = structlog.get_logger()

# Global Redis connection pool (initialized in lifespan)
_redis: Optional[aioredis.Redis] = None


async def init_redis() -> aioredis.Redis:
    """Initialize the Redis connection pool."""
    global _redis
    _redis = aioredis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    # Verify connection
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool."""
    global _redis
    if _redis:
        await _redis.aclose()
        _redis = None


def get_redis() -> aioredis.Redis:
    """Get the Redis connection (must be initialized first)."""
    if _redis is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis


async def listen(hub: RealtimeHub, redis: aioredis.Redis) -> None:
    """Forward relay-channel messages into the hub until cancelled.

    If the subscription dies (connection lost) or ends, the hub is
    detached from Redis so publishes fall back to local delivery instead
    of going to a channel nobody in this process reads any more.
    """
    pubsub = redis.pubsub()
    await pubsub.subscribe(RELAY_CHANNEL)
    logger.info("realtime.relay_listening", channel=RELAY_CHANNEL)
    try:
        async for message in pubsub.listen():
            if message["type"] == "message":
                hub.handle_message(message["data"])
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error("realtime.relay_listener_failed", channel=RELAY_CHANNEL, error=str(e))
        _detach(hub, redis)
    else:
        logger.warning("realtime.relay_listener_stopped", channel=RELAY_CHANNEL)
        _detach(hub, redis)
    finally:
        try:
            await pubsub.unsubscribe(RELAY_CHANNEL)
            await pubsub.aclose()
        except Exception as e:
            # Connection already gone
            logger.debug("realtime.relay_cleanup_failed", error=str(e))


def _detach(hub: RealtimeHub, redis: aioredis.Redis) -> None:
    if hub.redis is redis:
        hub.redis = None
        logger.warning("realtime.relay_detached", relay="local")
