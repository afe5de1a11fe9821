"""Tests for the REST client against a local aiohttp server."""

import asyncio

import pytest
import pytest_asyncio
from aiohttp import test_utils, web

from vault_calendar_sync.calendar_api import CalendarApiClient
from vault_calendar_sync.events import CalendarEvent, EventTime
from vault_calendar_sync.calendar_sync import CalendarSync
from vault_calendar_sync.exceptions import CalendarApiError, DeliveryError
from vault_calendar_sync.models import Todo


def make_app(received: list) -> web.Application:
    async def list_events(request):
        received.append(("GET", request.match_info["calendar"], dict(request.query), request.headers.get("Authorization")))
        return web.json_response({
            "items": [
                {
                    "id": "evt1",
                    "summary": "Buy milk",
                    "start": {"date": "2024-01-01"},
                    "end": {"date": "2024-01-01"},
                },
            ],
        })

    async def insert_event(request):
        body = await request.json()
        received.append(("POST", body))
        return web.json_response(dict(body, id="evt2", htmlLink="https://calendar.example/evt2"))

    async def patch_event(request):
        event_id = request.match_info["event_id"]
        if event_id == "missing":
            return web.json_response({"error": "not found"}, status=404)
        if event_id == "slow":
            received.append(("PATCH", event_id))
            await asyncio.sleep(0.5)
            return web.json_response({"id": event_id})
        if event_id == "garbled":
            return web.Response(text="<html>maintenance</html>", content_type="text/html")
        body = await request.json()
        received.append(("PATCH", event_id, body))
        return web.json_response(dict(body, id=event_id))

    async def delete_event(request):
        received.append(("DELETE", request.match_info["event_id"]))
        return web.Response(status=204)

    app = web.Application()
    app.router.add_get("/calendars/{calendar}/events", list_events)
    app.router.add_post("/calendars/{calendar}/events", insert_event)
    app.router.add_patch("/calendars/{calendar}/events/{event_id}", patch_event)
    app.router.add_delete("/calendars/{calendar}/events/{event_id}", delete_event)
    return app


@pytest_asyncio.fixture
async def api():
    received = []
    server = test_utils.TestServer(make_app(received))
    await server.start_server()
    client = CalendarApiClient(
        access_token="secret",
        calendar_id="me@example.com",
        base_url=str(server.make_url("/")),
        proxy="",
        timeout=0.1,
    )
    try:
        yield client, received
    finally:
        await client.close()
        await server.close()


def test_events_url_quotes_ids():
    client = CalendarApiClient(access_token="t", calendar_id="me@example.com", base_url="https://api.example/v3/")
    assert client._events_url() == "https://api.example/v3/calendars/me%40example.com/events"
    assert client._events_url("a/b") == "https://api.example/v3/calendars/me%40example.com/events/a%2Fb"


@pytest.mark.asyncio
async def test_list_events(api, window_start):
    client, received = api

    events = await client.list_events(window_start, 50)

    assert [e.id for e in events] == ["evt1"]
    assert events[0].start.date == "2024-01-01"
    method, calendar_id, query, auth = received[0]
    assert calendar_id == "me@example.com"
    assert query["maxResults"] == "50"
    assert query["singleEvents"] == "true"
    assert query["orderBy"] == "startTime"
    assert auth == "Bearer secret"


@pytest.mark.asyncio
async def test_insert_patch_delete(api):
    client, received = api
    event = CalendarEvent(
        summary="Buy milk",
        description="{}",
        start=EventTime(date="2024-01-01"),
        end=EventTime(date="2024-01-01"),
    )

    created = await client.insert_event(event)
    patched = await client.patch_event("evt2", CalendarEvent(summary="✅ Buy milk"))
    await client.delete_event("evt2")

    assert created.id == "evt2"
    assert created.html_link == "https://calendar.example/evt2"
    assert received[0] == ("POST", event.to_api())
    assert received[1] == ("PATCH", "evt2", {"summary": "✅ Buy milk"})
    assert patched.summary == "✅ Buy milk"
    assert received[2] == ("DELETE", "evt2")


@pytest.mark.asyncio
async def test_error_status_raises(api):
    client, _ = api

    with pytest.raises(CalendarApiError) as excinfo:
        await client.patch_event("missing", CalendarEvent(summary="x"))

    assert excinfo.value.status == 404
    assert "not found" in excinfo.value.body


def test_missing_token(monkeypatch):
    monkeypatch.delenv("CALENDAR_ACCESS_TOKEN", raising=False)
    with pytest.raises(ValueError):
        CalendarApiClient()


@pytest.mark.asyncio
async def test_timeout_raises_api_error(api):
    client, _ = api

    with pytest.raises(CalendarApiError) as excinfo:
        await client.patch_event("slow", CalendarEvent(summary="x"))

    assert "Timed out" in str(excinfo.value)


@pytest.mark.asyncio
async def test_invalid_json_raises_api_error(api):
    client, _ = api

    with pytest.raises(CalendarApiError) as excinfo:
        await client.patch_event("garbled", CalendarEvent(summary="x"))

    assert excinfo.value.status == 200


@pytest.mark.asyncio
async def test_timeouts_are_retried_then_reported(api):
    client, received = api
    calendar = CalendarSync(client, retry_attempts=3, retry_delay_ms=0)
    todo = Todo(content="Buy milk", status="x", block_id="AB12CD34", remote_id="slow")

    with pytest.raises(DeliveryError) as excinfo:
        await calendar.patch_event(todo)

    assert excinfo.value.attempts == 3
    assert received.count(("PATCH", "slow")) == 3
