"""ParaConnect CLI — watch and poke live case streams from a terminal.

Usage:
    paraconnect token 64f0c2 --role attorney --case 65a1b3    # Mint a dev stream token
    paraconnect watch 65a1b3 --token $TOKEN                    # Follow a case stream
    paraconnect publish 65a1b3 case_update --data '{"title": "X"}'
    paraconnect notify 64f0c2 --data '{"count": 3}'            # Poke a user's bell
    paraconnect stats                                          # Open connections
"""

from __future__ import annotations

import asyncio
import json
import os
import sys
from typing import Iterable, Iterator, Optional

import click
import httpx

from paraconnect import __version__
from paraconnect.events.types import CASE_EVENTS

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_API_URL = "http://localhost:8000"


def _api_url() -> str:
    return os.environ.get("PARACONNECT_API_URL", DEFAULT_API_URL).rstrip("/")


def _client(api_key: Optional[str] = None, timeout: Optional[float] = 30.0) -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the realtime service."""
    headers = {"X-API-Key": api_key} if api_key else {}
    return httpx.AsyncClient(base_url=_api_url(), timeout=timeout, headers=headers)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler."""
    return asyncio.run(coro)


def _parse_data(data: Optional[str]) -> dict:
    if not data:
        return {}
    try:
        payload = json.loads(data)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint="--data")
    if not isinstance(payload, dict):
        raise click.BadParameter("must be a JSON object", param_hint="--data")
    return payload


def parse_sse(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Turn event-stream lines into (event, data) pairs.

    Comment lines (keepalives) and retry hints are skipped. Multiple data
    lines of one event are joined with newlines, as EventSource does.
    """
    event = "message"
    data: list[str] = []
    for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


async def _aiter_sse(response: httpx.Response):
    buffer: list[str] = []
    async for line in response.aiter_lines():
        buffer.append(line)
        if line == "":
            for item in parse_sse(buffer):
                yield item
            buffer = []


def _fail(resp: httpx.Response) -> None:
    click.secho(f"Error: {resp.status_code} {resp.text}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="paraconnect")
def main():
    """ParaConnect realtime — live case and notification streams."""


# ---------------------------------------------------------------------------
# paraconnect token
# ---------------------------------------------------------------------------


@main.command()
@click.argument("user_id")
@click.option("--role", "-r", default="paralegal", show_default=True,
              type=click.Choice(["attorney", "paralegal", "admin"]))
@click.option("--case", "-c", "cases", multiple=True, help="Case id the user may watch (repeatable)")
@click.option("--minutes", "-m", type=int, help="Lifetime (default: PARACONNECT_ACCESS_TOKEN_EXPIRE_MINUTES)")
def token(user_id: str, role: str, cases: tuple[str, ...], minutes: Optional[int]):
    """Mint a stream token signed with the local PARACONNECT_JWT_SECRET."""
    from paraconnect.auth.jwt import create_stream_token

    click.echo(create_stream_token(user_id, role=role, cases=list(cases), expires_minutes=minutes))


# ---------------------------------------------------------------------------
# paraconnect watch
# ---------------------------------------------------------------------------


@main.command()
@click.argument("case_id")
@click.option("--token", "-t", "stream_token", envvar="PARACONNECT_TOKEN", required=True,
              help="Stream token (or set PARACONNECT_TOKEN)")
def watch(case_id: str, stream_token: str):
    """Follow the live event stream of a case until interrupted."""
    try:
        _run(_watch_impl(case_id, stream_token))
    except KeyboardInterrupt:
        click.echo("\nStopped.")


async def _watch_impl(case_id: str, stream_token: str):
    async with _client(timeout=None) as c:
        headers = {"Authorization": f"Bearer {stream_token}", "Accept": "text/event-stream"}
        async with c.stream("GET", f"/api/v1/cases/{case_id}/stream", headers=headers) as resp:
            if resp.status_code != 200:
                await resp.aread()
                _fail(resp)
            click.secho(f"Watching case {case_id} (Ctrl+C to stop)", fg="green")
            async for event, data in _aiter_sse(resp):
                click.secho(f"[{event}] ", fg="cyan", nl=False)
                click.echo(data)


# ---------------------------------------------------------------------------
# paraconnect publish / notify
# ---------------------------------------------------------------------------


@main.command(epilog="Known case events: " + ", ".join(sorted(CASE_EVENTS)))
@click.argument("case_id")
@click.argument("event")
@click.option("--data", "-d", help="JSON object payload")
@click.option("--api-key", "-k", envvar="PARACONNECT_API_KEY", help="Service API key")
def publish(case_id: str, event: str, data: Optional[str], api_key: Optional[str]):
    """Publish EVENT to everyone watching CASE_ID."""
    payload = _parse_data(data)
    _run(_post_impl(f"/api/v1/cases/{case_id}/events", {"event": event, "payload": payload}, api_key))
    click.secho(f"Published {event} to case {case_id}", fg="green")


@main.command()
@click.argument("user_id")
@click.argument("event", default="notifications")
@click.option("--data", "-d", help="JSON object payload")
@click.option("--api-key", "-k", envvar="PARACONNECT_API_KEY", help="Service API key")
def notify(user_id: str, event: str, data: Optional[str], api_key: Optional[str]):
    """Publish a notification EVENT to every open page of USER_ID."""
    payload = _parse_data(data)
    _run(_post_impl(f"/api/v1/users/{user_id}/notifications", {"event": event, "payload": payload}, api_key))
    click.secho(f"Notified user {user_id} ({event})", fg="green")


async def _post_impl(path: str, body: dict, api_key: Optional[str]):
    async with _client(api_key) as c:
        r = await c.post(path, json=body)
        if r.status_code != 202:
            _fail(r)


# ---------------------------------------------------------------------------
# paraconnect stats
# ---------------------------------------------------------------------------


@main.command()
@click.option("--api-key", "-k", envvar="PARACONNECT_API_KEY", help="Service API key")
def stats(api_key: Optional[str]):
    """Show open live-update connections on the server."""
    data = _run(_stats_impl(api_key))
    click.secho(f"Relay: {data.get('relay', '—')}", bold=True)
    for channel in ("cases", "notifications"):
        s = data.get(channel, {})
        click.echo(f"  {channel:<14} keys={s.get('keys', 0):<6} subscribers={s.get('subscribers', 0)}")


async def _stats_impl(api_key: Optional[str]) -> dict:
    async with _client(api_key) as c:
        r = await c.get("/api/v1/realtime/stats")
        if r.status_code != 200:
            _fail(r)
        return r.json()


if __name__ == "__main__":
    main()
