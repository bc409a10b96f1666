"""JWT stream token creation and verification.

Learn: The main web app already authenticates users; it hands the browser a
short-lived token signed with the shared secret. This service only verifies
it. Claims:
- sub: user id
- role: "attorney", "paralegal" or "admin"
- cases: ids of the cases the user participates in

Secret rotation: tokens signed with the current secret or any of the
previous secrets are accepted, so the web app can roll its secret first.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import jwt

from paraconnect.config import settings


class TokenError(Exception):
    """Raised when token creation/verification fails."""


def create_stream_token(
    user_id: str,
    role: str = "paralegal",
    cases: Optional[Iterable[str]] = None,
    expires_minutes: Optional[int] = None,
) -> str:
    """Create a JWT access token for the stream endpoints."""
    if not user_id:
        raise TokenError("user_id is required")
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "role": role,
        "type": "access",
        "iat": now,
        "exp": now + timedelta(
            minutes=expires_minutes or settings.access_token_expire_minutes
        ),
    }
    if cases is not None:
        payload["cases"] = [str(c) for c in cases]
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict:
    """Verify and decode a JWT token.

    Returns the payload dict on success.
    Raises TokenError on failure.
    """
    secrets = [settings.jwt_secret, *settings.jwt_previous_secrets]
    error: Optional[Exception] = None
    for secret in secrets:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[settings.jwt_algorithm],
                leeway=settings.jwt_leeway_seconds,
            )
        except jwt.ExpiredSignatureError:
            raise TokenError("Token has expired")
        except jwt.InvalidSignatureError as e:
            error = e
            continue
        except jwt.InvalidTokenError as e:
            raise TokenError(f"Invalid token: {e}")
        if not payload.get("sub"):
            raise TokenError("Invalid token: missing subject")
        return payload
    raise TokenError(f"Invalid token: {error}")
