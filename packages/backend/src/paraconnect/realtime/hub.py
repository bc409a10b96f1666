"""Realtime hub — the process's broadcasters plus the Redis relay.

Learn: Two channels share one mechanism:
- "cases": keyed by case id, watched from the case workspace
- "notifications": keyed by user id, the bell icon / inbox badge

With several worker processes behind a load balancer, a publish handled by
worker A must reach a client connected to worker B. When Redis is attached,
publish() sends one envelope to the relay channel and every worker
(including A) delivers it to its own subscribers via handle_message().
Without Redis, publish() delivers locally and the service is single-process.
"""

import json
from typing import Any, Optional

import structlog
from fastapi import Request

from paraconnect.realtime.broadcaster import Broadcaster

logger = structlog.get_logger()

CASES = "cases"
NOTIFICATIONS = "notifications"

RELAY_CHANNEL = "paraconnect:events"


class RealtimeHub:
    """Owns the broadcasters for every realtime channel of this process."""

    def __init__(
        self,
        max_subscribers_per_case: Optional[int] = None,
        max_subscribers_per_user: Optional[int] = None,
        max_payload_bytes: Optional[int] = None,
    ):
        self.cases = Broadcaster(
            CASES,
            max_subscribers=max_subscribers_per_case,
            max_payload_bytes=max_payload_bytes,
        )
        self.notifications = Broadcaster(
            NOTIFICATIONS,
            max_subscribers=max_subscribers_per_user,
            max_payload_bytes=max_payload_bytes,
        )
        self.redis = None  # attached in the app lifespan when reachable

    def channel(self, name: str) -> Broadcaster:
        if name == CASES:
            return self.cases
        if name == NOTIFICATIONS:
            return self.notifications
        raise ValueError(f"Unknown realtime channel: {name!r}")

    def deliver(self, channel: str, key: Any, event: str, payload: Any = None) -> None:
        """Publish to this process's subscribers only."""
        self.channel(channel).publish(key, event, payload)

    async def publish(self, channel: str, key: Any, event: str, payload: Any = None) -> None:
        """Publish to subscribers in every process (via Redis when attached)."""
        self.channel(channel)  # reject unknown channels before going remote
        if self.redis is None:
            self.deliver(channel, key, event, payload)
            return

        envelope = json.dumps({
            "channel": channel,
            "key": str(key) if key else "",
            "event": event,
            "payload": payload if payload is not None else {},
        }, default=str)
        try:
            await self.redis.publish(RELAY_CHANNEL, envelope)
        except Exception as e:
            logger.warning("realtime.relay_publish_failed", channel=channel, error=str(e))
            self.deliver(channel, key, event, payload)

    def handle_message(self, raw: Any) -> None:
        """Deliver an envelope received on the relay channel."""
        try:
            if isinstance(raw, bytes):
                raw = raw.decode("utf-8")
            envelope = json.loads(raw)
            channel = envelope["channel"]
            key = envelope["key"]
            event = envelope["event"]
            if not isinstance(event, str):
                raise TypeError(f"event name must be a string, got {type(event).__name__}")
            payload = envelope.get("payload")
            broadcaster = self.channel(channel)
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("realtime.relay_message_invalid", error=str(e))
            return
        broadcaster.publish(key, event, payload)

    def stats(self) -> dict[str, Any]:
        return {
            CASES: self.cases.stats(),
            NOTIFICATIONS: self.notifications.stats(),
            "relay": "redis" if self.redis is not None else "local",
        }


def get_hub(request: Request) -> RealtimeHub:
    """FastAPI dependency — the hub created by create_app()."""
    return request.app.state.hub
