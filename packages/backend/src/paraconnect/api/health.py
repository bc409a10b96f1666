"""Health check endpoint.

Learn: Simple GET endpoint that verifies the server is running and reports
whether the Redis relay is reachable. Without Redis the service still works,
single-process, so a missing relay is "degraded", not down.
"""

from fastapi import APIRouter, Depends

from paraconnect import __version__
from paraconnect.realtime.hub import RealtimeHub, get_hub

router = APIRouter()


@router.get("/health")
async def health_check(hub: RealtimeHub = Depends(get_hub)):
    """Check server health and dependency connectivity."""
    checks = {"server": "ok", "version": __version__}

    # Check Redis
    try:
        from paraconnect.realtime.pubsub import get_redis

        await get_redis().ping()
        checks["redis"] = "ok"
    except Exception as e:
        checks["redis"] = f"error: {e}"

    status = "healthy" if checks["redis"] == "ok" else "degraded"

    return {"status": status, **checks, "realtime": hub.stats()}
