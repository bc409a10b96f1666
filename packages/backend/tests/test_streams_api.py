"""Stream endpoint tests.

Learn: ASGITransport buffers the whole response body, so a successful
(never-ending) stream cannot be read through the HTTP client. Rejections
(401/403/429) return immediately and are tested over HTTP; the happy path
calls the route handler directly and drives the StreamingResponse body.
"""

import pytest

from paraconnect.api.streams import case_stream, notification_stream
from paraconnect.auth.dependencies import CurrentIdentity
from paraconnect.auth.jwt import create_stream_token
from paraconnect.realtime.sse import CONNECTED


async def _skip_preamble(body):
    """Consume the retry hint and the connected comment."""
    chunk = await anext(body)
    if chunk.startswith(b"retry:"):
        chunk = await anext(body)
    assert chunk == CONNECTED


# ═══════════════════════════════════════════════════════════
# Case stream
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_case_stream_receives_published_events(hub, identity):
    resp = await case_stream("case-1", identity=identity, hub=hub)
    assert resp.media_type == "text/event-stream"
    assert hub.cases.subscriber_count("case-1") == 1

    body = resp.body_iterator
    await _skip_preamble(body)
    hub.cases.publish("case-1", "case_update", {"title": "X"})
    assert await anext(body) == b'event: case_update\ndata: {"title":"X"}\n\n'

    await body.aclose()
    assert "case-1" not in hub.cases


@pytest.mark.asyncio
async def test_two_viewers_of_same_case(hub, identity):
    paralegal = CurrentIdentity(user_id="user-2", role="paralegal", case_ids=["case-1"])
    r1 = await case_stream("case-1", identity=identity, hub=hub)
    r2 = await case_stream("case-1", identity=paralegal, hub=hub)
    assert hub.cases.subscriber_count("case-1") == 2

    await _skip_preamble(r1.body_iterator)
    await _skip_preamble(r2.body_iterator)
    hub.cases.publish("case-1", "messages", {"id": 1})
    assert await anext(r1.body_iterator) == b'event: messages\ndata: {"id":1}\n\n'
    assert await anext(r2.body_iterator) == b'event: messages\ndata: {"id":1}\n\n'

    await r1.body_iterator.aclose()
    assert hub.cases.subscriber_count("case-1") == 1
    await r2.body_iterator.aclose()
    assert "case-1" not in hub.cases


@pytest.mark.asyncio
async def test_admin_may_watch_any_case(hub):
    admin = CurrentIdentity(user_id="admin-1", role="Admin")
    resp = await case_stream("any-case", identity=admin, hub=hub)
    assert hub.cases.subscriber_count("any-case") == 1
    await resp.body_iterator.aclose()


@pytest.mark.asyncio
async def test_case_stream_forbidden_for_non_participant(client):
    r = await client.get("/api/v1/cases/case-2/stream")
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_case_stream_subscriber_limit(client, hub):
    hub.cases.max_subscribers = 0
    r = await client.get("/api/v1/cases/case-1/stream")
    assert r.status_code == 429
    assert r.headers["Retry-After"] == "30"
    assert "case-1" not in hub.cases


# ═══════════════════════════════════════════════════════════
# Notification stream
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_notification_stream_is_keyed_by_user(hub, identity):
    resp = await notification_stream(identity=identity, hub=hub)
    assert hub.notifications.subscriber_count("user-1") == 1

    body = resp.body_iterator
    await _skip_preamble(body)
    hub.notifications.publish("user-1", "notifications", {"unread": 2})
    assert await anext(body) == b'event: notifications\ndata: {"unread":2}\n\n'

    await body.aclose()
    assert len(hub.notifications) == 0


@pytest.mark.asyncio
async def test_notification_stream_subscriber_limit(client, hub):
    hub.notifications.max_subscribers = 0
    r = await client.get("/api/v1/notifications/stream")
    assert r.status_code == 429


# ═══════════════════════════════════════════════════════════
# Real token flows
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_stream_requires_token(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/cases/case-1/stream")
    assert r.status_code == 401
    assert r.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_stream_rejects_invalid_token(unauthenticated_client):
    r = await unauthenticated_client.get("/api/v1/cases/case-1/stream?token=not-a-jwt")
    assert r.status_code == 401


@pytest.mark.asyncio
async def test_token_in_query_param_is_checked_against_cases(unauthenticated_client):
    token = create_stream_token("user-9", role="paralegal", cases=["case-1"])
    r = await unauthenticated_client.get(f"/api/v1/cases/case-2/stream?token={token}")
    # Authenticated (not 401) but not a participant of case-2
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_token_in_bearer_header(unauthenticated_client):
    token = create_stream_token("user-9", role="attorney", cases=[])
    r = await unauthenticated_client.get(
        "/api/v1/cases/case-1/stream",
        headers={"Authorization": f"Bearer {token}"},
    )
    assert r.status_code == 403


@pytest.mark.asyncio
async def test_token_in_cookie(unauthenticated_client):
    token = create_stream_token("user-9", role="attorney", cases=[])
    unauthenticated_client.cookies.set("access", token)
    r = await unauthenticated_client.get("/api/v1/cases/case-1/stream")
    assert r.status_code == 403
