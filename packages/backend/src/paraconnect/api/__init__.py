"""API route aggregation.

All routers registered here get mounted in main.py.

Learn: Auth is applied at the include_router level using FastAPI's
dependencies parameter. The publish routes are guarded by the service
API key; the stream routes resolve the user from the stream token inside
each handler (they need the identity, not just a yes/no).
"""

from fastapi import APIRouter, Depends

from paraconnect.api.events import router as events_router
from paraconnect.api.health import router as health_router
from paraconnect.api.streams import router as streams_router
from paraconnect.auth.dependencies import require_service_key

# Backend-to-backend routes require a service API key
_service = [Depends(require_service_key)]

api_router = APIRouter(prefix="/api/v1")

# Open routes: no auth required
api_router.include_router(health_router, tags=["health"])

# User routes: stream token required
api_router.include_router(streams_router, tags=["streams"])

# Service routes: X-API-Key required
api_router.include_router(events_router, tags=["events"], dependencies=_service)
