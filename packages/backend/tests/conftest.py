"""Test fixtures — a fresh app (and realtime hub) per test.

Learn: create_app() builds its own RealtimeHub, so tests never share
subscribers. The lifespan (Redis) does not run under ASGITransport, which
is what we want: every test exercises the local, single-process path
unless it attaches a fake Redis itself.
"""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from paraconnect.auth.dependencies import CurrentIdentity, get_current_user
from paraconnect.main import create_app
from paraconnect.realtime.broadcaster import WriteError


class RecordingSubscriber:
    """Subscriber double that records writes, or fails like a dead socket."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.messages: list[bytes] = []

    def write(self, data: bytes) -> None:
        if self.fail:
            raise WriteError("broken pipe")
        self.messages.append(data)


@pytest.fixture()
def subscriber():
    """Factory: subscriber() for a live one, subscriber(fail=True) for a dead one."""
    return RecordingSubscriber


@pytest.fixture()
def app():
    return create_app()


@pytest.fixture()
def hub(app):
    return app.state.hub


@pytest.fixture()
def identity():
    """The user the `client` fixture is authenticated as."""
    return CurrentIdentity(user_id="user-1", role="attorney", case_ids=["case-1"])


@pytest_asyncio.fixture()
async def client(app, identity):
    """HTTP client with get_current_user overridden for testing.

    Learn: We override get_current_user to return a fixed identity so
    stream routes work without minting real JWTs.
    """
    app.dependency_overrides[get_current_user] = lambda: identity

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def unauthenticated_client(app):
    """HTTP client WITHOUT auth override — for testing real token flows."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
