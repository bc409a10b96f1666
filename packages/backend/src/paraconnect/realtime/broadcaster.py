"""Per-key event broadcaster — fan-out to open streaming connections.

Learn: Producers (case updates, new messages, document uploads) call
publish(case_id, event, payload) after committing a change. Consumers are
whatever connections are currently watching that case. Neither side knows
about the other, and nothing is persisted: if no one is listening, the
event is simply dropped. Clients re-fetch state when they reconnect.

Delivery is fire-and-forget. A subscriber whose write fails is treated as
a dead connection and pruned on the spot — it never blocks delivery to the
other subscribers and the error never reaches the publisher.

Registry invariant: a key is present only while its subscriber set is
non-empty, so memory is bounded by the number of open connections.
"""

import json
import math
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import structlog

from paraconnect.events.types import breaks_framing

logger = structlog.get_logger()

Unsubscribe = Callable[[], None]


class WriteError(Exception):
    """Raised by a subscriber whose connection is closed or broken."""


class SubscriberLimitError(Exception):
    """Raised when a key already has the maximum number of subscribers."""


@runtime_checkable
class Subscriber(Protocol):
    """Anything that can receive an encoded event-stream message."""

    def write(self, data: bytes) -> None:
        """Deliver data or raise WriteError if the connection is gone."""


def _noop() -> None:
    return None


def normalize_key(key: Any) -> str:
    """Coerce a case/user id to its registry key ("" means no key)."""
    if not key:
        return ""
    return str(key)


def serialize_payload(payload: Any) -> str:
    """Compact JSON, byte-for-byte what JSON.stringify produces for plain data.

    NaN and the infinities become null, as in JSON.stringify; json.dumps
    would write bare NaN/Infinity tokens that browsers refuse to parse.
    """
    if payload is None:
        payload = {}
    try:
        return _dumps(payload)
    except ValueError:
        return _dumps(_replace_non_finite(payload))


def _dumps(payload: Any) -> str:
    return json.dumps(
        payload,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
        default=_json_default,
    )


def _replace_non_finite(value: Any) -> Any:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {k: _replace_non_finite(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_replace_non_finite(v) for v in value]
    return value


def _json_default(value: Any) -> Any:
    isoformat = getattr(value, "isoformat", None)
    if callable(isoformat):
        return isoformat()
    return str(value)


def format_event(event: str, data: str) -> bytes:
    """Build one event-stream message: event line, data line, blank line."""
    return f"event: {event}\ndata: {data}\n\n".encode("utf-8")


class Broadcaster:
    """In-process registry of subscribers, keyed by case (or user) id.

    Single-threaded by contract: subscribe, publish and the returned
    unsubscribe callables run to completion on the event loop thread.
    """

    def __init__(
        self,
        name: str = "events",
        max_subscribers: Optional[int] = None,
        max_payload_bytes: Optional[int] = None,
    ):
        self.name = name
        self.max_subscribers = max_subscribers
        self.max_payload_bytes = max_payload_bytes
        # key -> id(subscriber) -> subscriber, in subscription order.
        # Keyed by identity so unhashable or equal-comparing subscribers
        # stay distinct entries.
        self._subscribers: dict[str, dict[int, Subscriber]] = {}

    def subscribe(self, key: Any, subscriber: Subscriber) -> Unsubscribe:
        """Register a subscriber for key. Returns an idempotent unsubscribe."""
        key = normalize_key(key)
        if not key:
            return _noop

        subs = self._subscribers.get(key, {})
        if (
            self.max_subscribers is not None
            and id(subscriber) not in subs
            and len(subs) >= self.max_subscribers
        ):
            raise SubscriberLimitError(
                f"{self.name}:{key} already has {len(subs)} subscribers"
            )
        subs[id(subscriber)] = subscriber
        self._subscribers[key] = subs
        logger.debug("realtime.subscribed", channel=self.name, key=key, subscribers=len(subs))

        def unsubscribe() -> None:
            self._discard(key, subscriber)

        return unsubscribe

    def publish(self, key: Any, event: str, payload: Any = None) -> None:
        """Send event + payload to every current subscriber of key.

        Silent no-op for an empty key or a key nobody is watching.
        """
        key = normalize_key(key)
        if not key:
            return
        subs = self._subscribers.get(key)
        if not subs:
            return

        if breaks_framing(event):
            logger.warning("realtime.invalid_event_name", channel=self.name, key=key, event_name=event)
            return

        try:
            data = serialize_payload(payload)
        except (ValueError, RecursionError) as e:
            # Circular payloads
            logger.warning(
                "realtime.payload_unserializable",
                channel=self.name,
                key=key,
                event_name=event,
                error=str(e),
            )
            return
        if self.max_payload_bytes is not None:
            size = len(data.encode("utf-8"))
            if size > self.max_payload_bytes:
                logger.warning(
                    "realtime.payload_too_large",
                    channel=self.name,
                    key=key,
                    event_name=event,
                    size=size,
                    limit=self.max_payload_bytes,
                )
                return

        message = format_event(event, data)
        # Snapshot: a subscriber may detach while we are writing to another
        for subscriber_id, subscriber in list(subs.items()):
            try:
                subscriber.write(message)
            except Exception as e:
                subs.pop(subscriber_id, None)
                logger.debug(
                    "realtime.subscriber_pruned",
                    channel=self.name,
                    key=key,
                    error=str(e),
                )

        if not subs and self._subscribers.get(key) is subs:
            del self._subscribers[key]

    def subscriber_count(self, key: Any = None) -> int:
        """Subscribers for one key, or across all keys when key is None."""
        if key is None:
            return sum(len(subs) for subs in self._subscribers.values())
        subs = self._subscribers.get(normalize_key(key))
        return len(subs) if subs else 0

    def stats(self) -> dict[str, int]:
        return {"keys": len(self), "subscribers": self.subscriber_count()}

    def _discard(self, key: str, subscriber: Subscriber) -> None:
        subs = self._subscribers.get(key)
        if not subs:
            return
        if subs.get(id(subscriber)) is not subscriber:
            return
        del subs[id(subscriber)]
        if not subs:
            del self._subscribers[key]
        logger.debug("realtime.unsubscribed", channel=self.name, key=key)

    def __len__(self) -> int:
        return len(self._subscribers)

    def __contains__(self, key: Any) -> bool:
        return normalize_key(key) in self._subscribers
