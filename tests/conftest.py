"""
Shared fixtures: an in-memory vault and a scriptable calendar client.

No test touches the network or the real vault.
"""

from dataclasses import replace
from datetime import datetime
from pathlib import Path
import asyncio

import pytest

from vault_calendar_sync.calendar_sync import CalendarSync
from vault_calendar_sync.events import CalendarEvent, EventTime
from vault_calendar_sync.exceptions import CalendarApiError
from vault_calendar_sync.status import StatusBroadcaster
from vault_calendar_sync.sync_engine import Synchronizer
from vault_calendar_sync.sync_history import SyncHistory
from vault_calendar_sync.vault import VaultTasks


class InMemoryVault:
    """VaultStorage over a dict of path -> text."""

    def __init__(self, files: dict[str, str] = None):
        self.files = dict(files or {})
        self.writes: list[str] = []

    async def read(self, path: str) -> str:
        if path not in self.files:
            raise FileNotFoundError(path)
        return self.files[path]

    async def write(self, path: str, text: str) -> None:
        self.files[path] = text
        self.writes.append(path)

    async def list(self) -> list[str]:
        return sorted(self.files)


class YieldingVault(InMemoryVault):
    """InMemoryVault that gives up the loop around every read and write."""

    async def read(self, path: str) -> str:
        await asyncio.sleep(0)
        text = await super().read(path)
        await asyncio.sleep(0)
        return text

    async def write(self, path: str, text: str) -> None:
        await asyncio.sleep(0)
        await super().write(path, text)


class FakeCalendarClient:
    """
    Stands in for CalendarApiClient.

    Set ``failures`` to make the next N mutations raise, or ``always_fail``
    to make every mutation raise.
    """

    def __init__(self):
        self.events: dict[str, CalendarEvent] = {}
        self.calls: list[tuple] = []
        self.failures = 0
        self.always_fail = False
        self.list_fails = False
        self._next_id = 1

    def add_event(self, event: CalendarEvent) -> CalendarEvent:
        if event.id is None:
            event = replace(event, id=f"evt{self._next_id}")
            self._next_id += 1
        self.events[event.id] = event
        return event

    def _maybe_fail(self, operation: str):
        if self.always_fail or self.failures > 0:
            self.failures = max(self.failures - 1, 0)
            raise CalendarApiError(f"{operation} failed: 503", status=503)

    async def list_events(self, time_min: datetime, max_results: int) -> list[CalendarEvent]:
        self.calls.append(("list", time_min, max_results))
        if self.list_fails:
            raise CalendarApiError("list failed: 500", status=500)
        return list(self.events.values())[:max_results]

    async def insert_event(self, event: CalendarEvent) -> CalendarEvent:
        self.calls.append(("insert", event))
        self._maybe_fail("insert")
        created = replace(
            event,
            id=f"evt{self._next_id}",
            html_link=f"https://calendar.example/evt{self._next_id}",
            updated="2024-01-01T00:00:00Z",
        )
        self._next_id += 1
        self.events[created.id] = created
        return created

    async def patch_event(self, event_id: str, patch: CalendarEvent) -> CalendarEvent:
        self.calls.append(("patch", event_id, patch))
        self._maybe_fail("patch")
        if event_id not in self.events:
            raise CalendarApiError(f"patch {event_id} failed: 404", status=404)
        current = self.events[event_id]
        for name in ("summary", "description", "start", "end"):
            value = getattr(patch, name)
            if value is not None:
                current = replace(current, **{name: value})
        self.events[event_id] = current
        return current

    async def delete_event(self, event_id: str) -> None:
        self.calls.append(("delete", event_id))
        self._maybe_fail("delete")
        self.events.pop(event_id, None)

    def calls_of(self, operation: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == operation]


def all_day_event(summary: str, day: str, description: str = None, event_id: str = None) -> CalendarEvent:
    return CalendarEvent(
        summary=summary,
        description=description,
        start=EventTime(date=day),
        end=EventTime(date=day),
        id=event_id,
    )


@pytest.fixture
def window_start() -> datetime:
    return datetime(2023, 12, 1).astimezone()


@pytest.fixture
def storage() -> InMemoryVault:
    return InMemoryVault()


@pytest.fixture
def vault_tasks(storage: InMemoryVault) -> VaultTasks:
    return VaultTasks(storage)


@pytest.fixture
def fake_client() -> FakeCalendarClient:
    return FakeCalendarClient()


@pytest.fixture
def status() -> StatusBroadcaster:
    return StatusBroadcaster()


@pytest.fixture
def calendar(fake_client: FakeCalendarClient, status: StatusBroadcaster) -> CalendarSync:
    return CalendarSync(fake_client, status=status, retry_attempts=3, retry_delay_ms=0)


@pytest.fixture
def history(tmp_path: Path) -> SyncHistory:
    return SyncHistory(tmp_path / "history.db")


@pytest.fixture
def synchronizer(vault_tasks: VaultTasks, calendar: CalendarSync, history: SyncHistory) -> Synchronizer:
    return Synchronizer(
        vault=vault_tasks,
        calendar=calendar,
        history=history,
        status_authority="remote",
        retry_queue_max=100,
    )
