"""FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract
and validate the caller's identity from the request.

Two auth mechanisms:
1. Stream token (JWT) for browsers — Bearer header, ?token= query param
   (EventSource cannot set headers) or the session cookie
2. Service API key in x-api-key header for the web app's backend,
   which publishes events after it commits a change
"""

import hmac
from typing import Optional

import structlog
from fastapi import Header, HTTPException, Request

from paraconnect.auth.jwt import TokenError, verify_token
from paraconnect.config import settings

logger = structlog.get_logger()

TOKEN_COOKIES = ("access", "token")


class CurrentIdentity:
    """Represents the authenticated user holding a stream.

    Learn: Case membership comes from the token's "cases" claim. The web app
    checks participation (attorney or paralegal on the case) when it mints
    the token, so this service never needs the case database.
    """

    def __init__(
        self,
        user_id: str,
        role: str = "paralegal",
        case_ids: Optional[list[str]] = None,
    ):
        self.user_id = user_id
        self.role = (role or "").lower()
        self.case_ids = {str(c) for c in case_ids or []}

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    def can_watch_case(self, case_id: str) -> bool:
        return self.is_admin or str(case_id) in self.case_ids


def extract_token(request: Request) -> Optional[str]:
    """Find the stream token: header, then query param, then cookie."""
    authorization = request.headers.get("authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:]
    token = request.query_params.get("token")
    if token:
        return token
    for name in TOKEN_COOKIES:
        token = request.cookies.get(name)
        if token:
            return token
    return None


async def get_current_user(request: Request) -> CurrentIdentity:
    """Extract current identity (required — 401 if no valid token)."""
    token = extract_token(request)
    if not token:
        raise HTTPException(
            status_code=401,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        payload = verify_token(token)
    except TokenError as e:
        raise HTTPException(
            status_code=401,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    cases = payload.get("cases")
    return CurrentIdentity(
        user_id=str(payload["sub"]),
        role=payload.get("role", ""),
        case_ids=cases if isinstance(cases, list) else None,
    )


async def require_service_key(
    x_api_key: Optional[str] = Header(None),
) -> None:
    """Guard for the publish endpoints (backend-to-backend only)."""
    keys = settings.service_api_keys
    if not keys:
        if settings.environment == "development":
            return
        raise HTTPException(status_code=503, detail="Service keys are not configured")

    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    if not any(hmac.compare_digest(x_api_key.encode(), k.encode()) for k in keys):
        logger.warning("auth.invalid_service_key")
        raise HTTPException(status_code=401, detail="Invalid API key")

