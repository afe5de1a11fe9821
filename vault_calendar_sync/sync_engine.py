"""
Sync Engine

Reconciles vault tasks with calendar events. A pass is stateless: both
collections are fetched, indexed by block ID, classified into inserts,
status patches and pulls, and applied. Nothing but the two stores carries
over between passes.
"""

from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional
import asyncio
import logging

from .calendar_sync import CalendarSync
from .dates import date_part, is_date
from .exceptions import DeliveryError, ValidationError
from .models import SyncAction, SyncPlan, SyncResult, Todo, TodoStatus
from .retry_queue import RetryQueue
from .serialization import TodoSerializer
from .sync_history import SyncHistory
from .vault import FileSystemVault, VaultTasks
from . import config

logger = logging.getLogger(__name__)

STATUS_AUTHORITIES = ("remote", "local")


class Synchronizer:
    """
    Bidirectional sync between the vault and the calendar.

    Key rules:
    - block ID is the only join key; vault tasks without one are never matched
    - the vault is authoritative for creation, status changes flow both ways
    - when both sides changed the status, ``status_authority`` decides
    - per-item failures never abort a pass; failed status patches are queued
    """

    def __init__(
        self,
        vault: Optional[VaultTasks] = None,
        calendar: Optional[CalendarSync] = None,
        history: Optional[SyncHistory] = None,
        status_authority: Optional[str] = None,
        retry_queue_max: Optional[int] = None
    ):
        """
        Initialize the synchronizer.

        Args:
            vault: VaultTasks instance (creates one over VAULT_PATH if None)
            calendar: CalendarSync instance (creates default if None)
            history: SyncHistory instance (creates default if None)
            status_authority: "remote" or "local" (env: SYNC_STATUS_AUTHORITY)
            retry_queue_max: Retry queue bound (env: SYNC_RETRY_QUEUE_MAX)
        """
        self.vault = vault or VaultTasks(FileSystemVault(config.VAULT_PATH))
        self.calendar = calendar or CalendarSync()
        self.history = history or SyncHistory()
        self.serializer = self.vault.serializer

        self.status_authority = status_authority or config.STATUS_AUTHORITY
        if self.status_authority not in STATUS_AUTHORITIES:
            raise ValidationError(
                f"Status authority must be one of {STATUS_AUTHORITIES}, got '{self.status_authority}'"
            )

        self.retry_queue: RetryQueue[Todo] = RetryQueue(
            self._deliver_status_patch,
            max_items=retry_queue_max if retry_queue_max is not None else config.RETRY_QUEUE_MAX,
        )

    @staticmethod
    def default_window_start() -> datetime:
        """Now minus SYNC_FETCH_WEEKS_AGO weeks."""
        return datetime.now().astimezone() - timedelta(weeks=config.FETCH_WEEKS_AGO)

    async def run_sync(
        self,
        window_start: Optional[datetime] = None,
        max_results: Optional[int] = None,
        mode: str = "auto",
        dry_run: bool = False
    ) -> SyncResult:
        """
        Execute one reconciliation pass.

        Args:
            window_start: Earliest relevant moment (default: default_window_start())
            max_results: Cap on listed events (env: SYNC_FETCH_MAX_EVENTS)
            mode: "auto" skips the task under the cursor, "manual" does not
            dry_run: If True, only show what would be done without making changes

        Returns:
            SyncResult with summary of operations
        """
        result = SyncResult(started_at=datetime.now())
        window_start = window_start or self.default_window_start()
        max_results = max_results or config.FETCH_MAX_EVENTS

        if dry_run:
            logger.info("=== DRY RUN MODE ===")

        try:
            logger.info("Loading tasks from vault...")
            local_todos = await self.vault.list_tasks(window_start, mode, assign_ids=not dry_run)
            logger.info(f"  Found {len(local_todos)} vault tasks")

            logger.info("Loading events from calendar...")
            remote_todos = await self.calendar.list_events(window_start, max_results)
            logger.info(f"  Found {len(remote_todos)} calendar events")

            plan = self.plan(local_todos, remote_todos)
            logger.info(f"Detected {len(plan)} sync actions")

            result.no_change = len(plan.noops)
            result.remote_created = len(plan.remote_created)
            result.active_todos = self._active_todos(remote_todos, local_todos)

            if dry_run:
                for action in plan.actions:
                    logger.info(f"  [DRY RUN] {action}")
            else:
                await self._apply(plan, result)

            result.completed_at = datetime.now()

            if not dry_run:
                await asyncio.to_thread(self.history.log_action, "sync_complete", details=result.to_dict())

            logger.info("\n" + result.summary())

        except Exception as e:
            logger.error(f"Sync failed: {e}")
            result.errors.append(str(e))
            result.completed_at = datetime.now()

        return result

    def plan(self, local_todos: list[Todo], remote_todos: list[Todo]) -> SyncPlan:
        """
        Classify both collections from one pair of snapshots.

        Every vault task with a block ID lands in exactly one of inserts,
        patches or noops; pulls are computed from the calendar side and may
        accompany a patch when other fields changed as well.
        """
        plan = SyncPlan()

        local_by_id: dict[str, Todo] = {}
        for todo in local_todos:
            if not todo.block_id:
                logger.debug(f"Vault task '{todo.content}' has no block ID, cannot be matched")
                continue
            local_by_id[todo.block_id] = todo

        remote_by_id: dict[str, Todo] = {}
        for todo in remote_todos:
            if not todo.block_id:
                plan.remote_created.append(todo)
                continue
            remote_by_id[todo.block_id] = todo

        for block_id, local in local_by_id.items():
            remote = remote_by_id.get(block_id)
            if remote is None:
                plan.inserts.append(SyncAction(
                    action="insert",
                    target_system="calendar",
                    todo=local,
                    reason="New in vault",
                ))
                continue
            self._classify_pair(local, remote, plan)

        return plan

    def _classify_pair(self, local: Todo, remote: Todo, plan: SyncPlan):
        """Decide between status patch, pull, both or nothing for one pair."""
        merged = self._merge_remote(local, remote)

        local_status = local.status or TodoStatus.TODO
        remote_status = remote.status or TodoStatus.TODO
        patched = False

        if local_status != remote_status and not TodoStatus.is_default(local_status):
            if TodoStatus.is_default(remote_status) or self.status_authority == "local":
                # The calendar takes the vault's status; keep it in the merge
                merged.status = local_status
                plan.patches.append(SyncAction(
                    action="patch",
                    target_system="calendar",
                    todo=replace(merged),
                    reason=f"Status '{remote_status}' -> '{local_status}'",
                ))
                patched = True
            else:
                logger.info(
                    f"Status changed on both sides for ^{local.block_id} "
                    f"('{local_status}' vs '{remote_status}'), calendar wins"
                )

        merged_status = merged.status or TodoStatus.TODO
        if merged_status != local_status or self.serializer.serialize(merged) != self.serializer.serialize(local):
            plan.pulls.append(SyncAction(
                action="pull",
                target_system="vault",
                todo=merged,
                reason="Changed in calendar",
            ))
        elif not patched:
            plan.noops.append(local)

    async def list_active_todos(
        self,
        window_start: Optional[datetime] = None,
        max_results: Optional[int] = None
    ) -> list[Todo]:
        """Open calendar todos in the window, without changing either store."""
        window_start = window_start or self.default_window_start()
        remote_todos = await self.calendar.list_events(window_start, max_results or config.FETCH_MAX_EVENTS)
        local_todos = await self.vault.list_tasks(window_start, mode="manual", assign_ids=False)
        return self._active_todos(remote_todos, local_todos)

    async def find_todo(self, block_id: str, window_start: Optional[datetime] = None) -> Optional[Todo]:
        """Calendar todo carrying block_id, or None."""
        window_start = window_start or self.default_window_start()
        for todo in await self.calendar.list_events(window_start, config.FETCH_MAX_EVENTS):
            if todo.block_id == block_id:
                return todo
        return None

    @staticmethod
    def _merge_remote(local: Todo, remote: Todo) -> Todo:
        """
        Copy of the vault task updated from its calendar event.

        All-day dates that only restate the vault's own dates keep the vault
        value, so a date-time start is not truncated and a task without a
        due date does not gain the interval's default end.
        """
        merged = replace(local, tags=list(local.tags) if local.tags is not None else None)
        merged.update_from(remote)

        for name in ("start_date_time", "due_date_time"):
            local_value = getattr(local, name)
            remote_value = getattr(remote, name)
            if not remote_value or not is_date(remote_value):
                continue
            if local_value and date_part(local_value) == remote_value:
                setattr(merged, name, local_value)

        if not local.due_date_time and remote.due_date_time and is_date(remote.due_date_time):
            if remote.due_date_time == remote.start_date_time:
                merged.due_date_time = None

        return merged

    @staticmethod
    def _active_todos(remote_todos: list[Todo], local_todos: list[Todo]) -> list[Todo]:
        """Non-terminal calendar todos, linked to their vault file when known."""
        paths = {todo.block_id: todo.source_path for todo in local_todos if todo.block_id}
        active = []
        for todo in remote_todos:
            if todo.is_terminal:
                continue
            if todo.block_id and todo.block_id in paths:
                todo.source_path = paths[todo.block_id]
            active.append(todo)
        return active

    async def _apply(self, plan: SyncPlan, result: SyncResult):
        """Dispatch every action concurrently; one failure never stops the rest."""
        await asyncio.gather(*(self._execute_action(action, result) for action in plan.actions))

    async def _execute_action(self, action: SyncAction, result: SyncResult):
        """Execute a single sync action and update the result."""
        todo = action.todo
        try:
            if action.action == "insert":
                await self.calendar.insert_event(todo)
                result.inserted += 1
            elif action.action == "patch":
                try:
                    await self.calendar.patch_event(todo)
                except DeliveryError:
                    self.retry_queue.enqueue(todo)
                    result.queued += 1
                    raise
                result.patched += 1
            elif action.action == "pull":
                if await self.vault.update_todo(todo):
                    result.pulled += 1

            await asyncio.to_thread(self.history.log_action, action.action, block_id=todo.block_id, details={"reason": action.reason})
            logger.info(f"  ✓ {action}")

        except Exception as e:
            logger.error(f"  ✗ {action} [{todo.source_path} ^{todo.block_id}]: {e}")
            result.errors.append(f"{action}: {e}")

    async def insert_todo(self, todo: Todo) -> Todo:
        """Create a calendar event for a vault task."""
        created = await self.calendar.insert_event(todo)
        await asyncio.to_thread(self.history.log_action, "insert", block_id=todo.block_id)
        return created

    async def delete_todo(self, todo: Todo):
        """Delete a task from its note, then its calendar event."""
        await self.vault.delete_todo(todo)
        await self.calendar.delete_event(todo)
        await asyncio.to_thread(self.history.log_action, "delete", block_id=todo.block_id)

    async def patch_todo_to_done(self, todo: Todo) -> bool:
        """
        Mark a task done in its note and in the calendar.

        A calendar delivery failure queues the status patch for later.

        Returns:
            True if the calendar was updated now, False if it was queued
        """
        done = replace(todo, status=TodoStatus.DONE)
        await self.vault.mark_done(done)

        try:
            await self.calendar.patch_event(done)
        except DeliveryError as e:
            logger.warning(f"Queued status patch for '{done.content}' ^{done.block_id}: {e}")
            self.retry_queue.enqueue(done)
            await asyncio.to_thread(self.history.log_action, "done", block_id=done.block_id, details={"queued": True})
            return False

        await asyncio.to_thread(self.history.log_action, "done", block_id=done.block_id)
        return True

    async def _deliver_status_patch(self, todo: Todo) -> bool:
        await self.calendar.patch_event(todo)
        return True

    async def flush_retry_queue(self) -> int:
        """
        Replay queued status patches once.

        Returns:
            Number of patches delivered
        """
        pending = len(self.retry_queue)
        if not pending:
            return 0

        all_delivered = await self.retry_queue.drain()
        delivered = max(pending - len(self.retry_queue), 0)
        if all_delivered:
            logger.info(f"Delivered {delivered} queued status patches")
        else:
            logger.warning(f"Delivered {delivered}/{pending} queued status patches")
        return delivered

    def get_status(self) -> dict:
        """Get current sync status."""
        return {
            "retry_queue": len(self.retry_queue),
            "sync_status": self.calendar.status.sync_status.value,
            "network_status": self.calendar.status.network_status.value,
            "history": self.history.get_stats(),
            "last_logs": self.history.get_recent_logs(5),
        }
