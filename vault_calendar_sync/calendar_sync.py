"""
Calendar Adapter

Remote side of the sync. Translates todos to calendar events and back, and
wraps every mutation in a bounded retry loop with a fixed delay.

Status transitions are reported through an injected StatusBroadcaster:
DOWNLOAD while listing, UPLOAD while mutating, then SUCCESS_WAITING/HEALTH or
FAILED_WARNING/CONNECTION_ERROR.
"""

from dataclasses import replace
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar
import asyncio
import logging

from .calendar_api import CalendarApiClient
from .events import CalendarEvent, event_status_patch, from_remote_event, to_remote_event
from .exceptions import CalendarApiError, DeliveryError, MappingError
from .models import Todo
from .status import StatusBroadcaster, SyncStatus
from . import config

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CalendarSync:
    """
    Calendar operations in terms of todos.

    The client only needs list_events, insert_event, patch_event and
    delete_event coroutines; tests pass a fake.
    """

    def __init__(
        self,
        client: Optional[CalendarApiClient] = None,
        status: Optional[StatusBroadcaster] = None,
        retry_attempts: Optional[int] = None,
        retry_delay_ms: Optional[int] = None
    ):
        """
        Args:
            client: Transport for the events API (default: CalendarApiClient from env)
            status: Receives network/sync transitions (default: a private broadcaster)
            retry_attempts: Attempts per mutation (env: SYNC_RETRY_ATTEMPTS)
            retry_delay_ms: Fixed delay between attempts (env: SYNC_RETRY_DELAY_MS)
        """
        self.client = client or CalendarApiClient()
        self.status = status or StatusBroadcaster()
        self.retry_attempts = retry_attempts if retry_attempts is not None else config.RETRY_ATTEMPTS
        self.retry_delay_ms = retry_delay_ms if retry_delay_ms is not None else config.RETRY_DELAY_MS

    async def list_events(self, window_start: datetime, max_results: int) -> list[Todo]:
        """
        List calendar todos starting at or after window_start.

        Events that cannot be mapped are logged and skipped.

        Raises:
            CalendarApiError: if the listing itself fails (not retried)
        """
        self.status.set_sync_status(SyncStatus.DOWNLOAD)
        try:
            events = await self.client.list_events(window_start, max_results)
        except CalendarApiError:
            self.status.failed()
            raise
        self.status.succeeded()

        todos = []
        for event in events:
            try:
                todos.append(from_remote_event(event))
            except MappingError as e:
                logger.warning(f"Skipping calendar event: {e}")
        return todos

    async def insert_event(self, todo: Todo) -> Todo:
        """
        Create an event for a todo.

        Returns:
            A copy of the todo carrying the new event's id, link and update time

        Raises:
            InvalidTodoError: if the todo has no date (not retried)
            DeliveryError: if every attempt failed
        """
        event = to_remote_event(todo)
        created = await self._with_retry(
            f"insert '{todo.content}' ^{todo.block_id}",
            lambda: self.client.insert_event(event),
        )
        logger.info(f"Added event: {todo.content} (link: {created.html_link})")
        return replace(
            todo,
            remote_id=created.id,
            remote_link=created.html_link,
            last_modified=created.updated,
        )

    async def patch_event(
        self,
        todo: Todo,
        patch_fn: Callable[[Todo], CalendarEvent] = event_status_patch
    ) -> None:
        """
        Apply a partial update built by patch_fn to the todo's event.

        Raises:
            MappingError: if the todo has no remote id
            DeliveryError: if every attempt failed
        """
        remote_id = self._require_remote_id(todo, "patch")
        patch = patch_fn(todo)
        await self._with_retry(
            f"patch '{todo.content}' ^{todo.block_id}",
            lambda: self.client.patch_event(remote_id, patch),
        )
        logger.info(f"Patched event: {todo.content}")

    async def delete_event(self, todo: Todo) -> None:
        """
        Delete the todo's event.

        Raises:
            MappingError: if the todo has no remote id
            DeliveryError: if every attempt failed
        """
        remote_id = self._require_remote_id(todo, "delete")
        await self._with_retry(
            f"delete '{todo.content}' ^{todo.block_id}",
            lambda: self.client.delete_event(remote_id),
        )
        logger.info(f"Deleted event: {todo.content}")

    async def is_ready(self) -> bool:
        """Check that the calendar answers a minimal listing."""
        try:
            await self.client.list_events(datetime.now().astimezone(), 1)
            return True
        except CalendarApiError as e:
            logger.error(f"Calendar not reachable: {e}")
            return False

    @staticmethod
    def _require_remote_id(todo: Todo, operation: str) -> str:
        if not todo.remote_id:
            raise MappingError(f"Cannot {operation} '{todo.content}': todo has no remote id")
        return todo.remote_id

    async def _with_retry(self, description: str, call: Callable[[], Awaitable[T]]) -> T:
        """Run call until it succeeds or the attempt cap is reached."""
        self.status.set_sync_status(SyncStatus.UPLOAD)
        last_error: Optional[Exception] = None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                result = await call()
            except CalendarApiError as e:
                last_error = e
                logger.debug(f"Attempt {attempt}/{self.retry_attempts} to {description} failed: {e}")
                await asyncio.sleep(self.retry_delay_ms / 1000)
                continue
            self.status.succeeded()
            return result

        self.status.failed()
        raise DeliveryError(
            f"Failed to {description} after {self.retry_attempts} attempts: {last_error}",
            attempts=self.retry_attempts,
        )
