"""Events API — publish endpoints for the web app's backend.

Learn: The web app calls these right after it commits a change, e.g.
after a document upload:

    POST /api/v1/cases/{case_id}/events
    {"event": "documents", "payload": {"at": "2024-05-01T12:00:00Z"}}

Publishing is fire-and-forget: the response only says the event was
accepted, never how many clients got it. Nobody watching is not an error.
"""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from paraconnect.config import settings
from paraconnect.events import types as event_types
from paraconnect.realtime.broadcaster import serialize_payload
from paraconnect.realtime.hub import CASES, NOTIFICATIONS, RealtimeHub, get_hub

logger = structlog.get_logger()
router = APIRouter()


# ─── Schemas ─────────────────────────────────────────────


class EventPublish(BaseModel):
    event: str = Field(..., pattern=event_types.EVENT_NAME_PATTERN, description="Event name, e.g. 'case_update'")
    payload: dict[str, Any] = Field(default_factory=dict)


class NotificationPublish(BaseModel):
    event: str = Field(event_types.NOTIFICATIONS, pattern=event_types.EVENT_NAME_PATTERN)
    payload: dict[str, Any] = Field(default_factory=dict)


class PublishAccepted(BaseModel):
    status: str = "accepted"


# ─── Helpers ─────────────────────────────────────────────


def _check_payload_size(payload: dict[str, Any]) -> None:
    size = len(serialize_payload(payload).encode("utf-8"))
    if size > settings.max_event_payload_bytes:
        raise HTTPException(
            status_code=413,
            detail=f"Payload is {size} bytes; limit is {settings.max_event_payload_bytes}",
        )


# ─── Routes ──────────────────────────────────────────────


@router.post("/cases/{case_id}/events", response_model=PublishAccepted, status_code=202)
async def publish_case_event(
    case_id: str,
    body: EventPublish,
    hub: RealtimeHub = Depends(get_hub),
):
    """Broadcast an event to everyone watching a case."""
    _check_payload_size(body.payload)
    await hub.publish(CASES, case_id, body.event, body.payload)
    logger.info("realtime.case_event_published", case_id=case_id, event_name=body.event)
    return PublishAccepted()


@router.post("/users/{user_id}/notifications", response_model=PublishAccepted, status_code=202)
async def publish_notification_event(
    user_id: str,
    body: NotificationPublish,
    hub: RealtimeHub = Depends(get_hub),
):
    """Poke every open page of one user (bell badge, inbox)."""
    _check_payload_size(body.payload)
    await hub.publish(NOTIFICATIONS, user_id, body.event, body.payload)
    logger.info("realtime.notification_published", user_id=user_id, event_name=body.event)
    return PublishAccepted()


@router.get("/realtime/stats")
async def realtime_stats(hub: RealtimeHub = Depends(get_hub)):
    """Active keys and open connections in this process."""
    return hub.stats()
