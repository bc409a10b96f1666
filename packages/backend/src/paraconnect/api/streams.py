"""Stream API — live Server-Sent Events for browsers.

Learn: Each open case page holds one EventSource on
/cases/{case_id}/stream; every logged-in page holds one on
/notifications/stream. The response never ends on its own — it is
detached from the broadcaster when the client goes away.

    const es = new EventSource(`/api/v1/cases/${caseId}/stream?token=${t}`);
    es.addEventListener("documents", () => reloadDocuments());
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException

from paraconnect.auth.dependencies import CurrentIdentity, get_current_user
from paraconnect.config import settings
from paraconnect.realtime.broadcaster import Broadcaster, SubscriberLimitError
from paraconnect.realtime.hub import RealtimeHub, get_hub
from paraconnect.realtime.sse import SSEConnection, sse_response

logger = structlog.get_logger()
router = APIRouter()


def _open_stream(broadcaster: Broadcaster, key: str):
    connection = SSEConnection(
        queue_size=settings.sse_queue_size,
        keepalive_seconds=settings.sse_keepalive_seconds,
        retry_ms=settings.sse_retry_ms,
    )
    try:
        unsubscribe = broadcaster.subscribe(key, connection)
    except SubscriberLimitError:
        logger.warning("realtime.subscriber_limit", channel=broadcaster.name, key=key)
        raise HTTPException(
            status_code=429,
            detail="Too many open live-update connections",
            headers={"Retry-After": "30"},
        )
    logger.info(
        "realtime.stream_opened",
        channel=broadcaster.name,
        key=key,
        subscribers=broadcaster.subscriber_count(key),
    )
    return sse_response(connection, unsubscribe)


@router.get("/cases/{case_id}/stream")
async def case_stream(
    case_id: str,
    identity: CurrentIdentity = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_hub),
):
    """Live updates for one case (participants and admins only)."""
    if not identity.can_watch_case(case_id):
        raise HTTPException(status_code=403, detail="Access denied")
    return _open_stream(hub.cases, case_id)


@router.get("/notifications/stream")
async def notification_stream(
    identity: CurrentIdentity = Depends(get_current_user),
    hub: RealtimeHub = Depends(get_hub),
):
    """Live notification events for the current user."""
    return _open_stream(hub.notifications, identity.user_id)
