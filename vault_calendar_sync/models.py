"""
Data Models for Vault-Calendar Sync

Defines the Todo entity shared by both stores, plus the plan and result
structures produced by a reconciliation pass.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Optional

from .dates import compare_by_date, is_date_time, parse_moment, start_of_day


class Priority(str, Enum):
    """Priority levels, valued by the symbol used in note lines."""
    NONE = ""
    LOW = "🔽"
    MEDIUM = "🔼"
    HIGH = "⏫"

    @classmethod
    def from_symbol(cls, symbol: Optional[str]) -> "Priority":
        for priority in cls:
            if priority.value == symbol:
                return priority
        return cls.NONE


class TodoStatus:
    """Checkbox status characters and their meaning."""
    TODO = " "
    DONE = "x"
    CANCELLED = "-"
    IN_PROGRESS = "/"
    DEFERRED = ">"
    IMPORTANT = "!"
    QUESTION = "?"

    TERMINAL = frozenset({"x", "X", "-"})

    @classmethod
    def is_terminal(cls, status: Optional[str]) -> bool:
        return status in cls.TERMINAL

    @classmethod
    def is_default(cls, status: Optional[str]) -> bool:
        """An unset or blank status, i.e. a plain open checkbox."""
        return not status or status == cls.TODO


@dataclass
class Todo:
    """
    A task as seen by either store.

    ``block_id`` is the only join key between a note line and a calendar
    event. A Todo without one either came from the calendar or has not been
    identified yet.
    """
    content: Optional[str] = None
    priority: Optional[str] = None
    tags: Optional[list[str]] = None

    start_date_time: Optional[str] = None
    scheduled_date_time: Optional[str] = None
    due_date_time: Optional[str] = None
    done_date_time: Optional[str] = None

    status: Optional[str] = None

    block_id: Optional[str] = None
    remote_id: Optional[str] = None
    remote_link: Optional[str] = None
    source_path: Optional[str] = None
    last_modified: Optional[str] = None

    children: Optional[list["Todo"]] = None

    def update_from(self, other: "Todo") -> None:
        """
        Merge another todo into this one.

        Only fields that are present on ``other`` overwrite; nothing is ever
        cleared.
        """
        for f in fields(self):
            value = getattr(other, f.name)
            if value is None or value == "" or value == []:
                continue
            setattr(self, f.name, value)

    def identical_to(self, other: "Todo") -> bool:
        """Content equality used to skip redundant writes."""
        for name in ("content", "priority", "remote_id", "source_path", "block_id", "last_modified"):
            if getattr(self, name) != getattr(other, name):
                return False

        # Tags are the same only if the values are in the same order
        if self.tags is None or other.tags is None:
            if self.tags is not other.tags:
                return False
        elif list(self.tags) != list(other.tags):
            return False

        for name in ("start_date_time", "scheduled_date_time", "due_date_time"):
            if compare_by_date(getattr(self, name), getattr(other, name)) != 0:
                return False

        return True

    def is_overdue(self, reference: datetime) -> bool:
        """True if the due date lies strictly before the reference moment."""
        due = parse_moment(self.due_date_time)
        if due is None:
            return False
        if reference.tzinfo is None:
            reference = reference.astimezone()
        if is_date_time(self.due_date_time):
            return due < reference
        return due < start_of_day(reference.astimezone())

    @property
    def is_terminal(self) -> bool:
        return TodoStatus.is_terminal(self.status)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "content": self.content,
            "priority": self.priority,
            "tags": list(self.tags) if self.tags is not None else None,
            "start_date_time": self.start_date_time,
            "scheduled_date_time": self.scheduled_date_time,
            "due_date_time": self.due_date_time,
            "done_date_time": self.done_date_time,
            "status": self.status,
            "block_id": self.block_id,
            "remote_id": self.remote_id,
            "remote_link": self.remote_link,
            "source_path": self.source_path,
            "last_modified": self.last_modified,
        }


def todos_lists_identical(old: list[Todo], new: list[Todo]) -> bool:
    """Pairwise identical_to over two equally ordered lists."""
    if len(old) != len(new):
        return False
    return all(a.identical_to(b) for a, b in zip(old, new))


@dataclass
class SyncAction:
    """Represents a single mutation decided by the reconciler."""
    action: str  # 'insert', 'patch', 'pull'
    target_system: str  # 'calendar', 'vault'
    todo: Todo
    reason: str = ""

    def __str__(self) -> str:
        return f"{self.action} in {self.target_system}: {self.todo.content} ({self.reason})"


@dataclass
class SyncPlan:
    """Classification of one pass, computed from a single pair of snapshots."""
    inserts: list[SyncAction] = field(default_factory=list)
    patches: list[SyncAction] = field(default_factory=list)
    pulls: list[SyncAction] = field(default_factory=list)
    noops: list[Todo] = field(default_factory=list)
    remote_created: list[Todo] = field(default_factory=list)

    @property
    def actions(self) -> list[SyncAction]:
        return self.inserts + self.patches + self.pulls

    def __len__(self) -> int:
        return len(self.inserts) + len(self.patches) + len(self.pulls)


@dataclass
class SyncResult:
    """Summary of a sync operation."""
    started_at: datetime
    completed_at: Optional[datetime] = None
    inserted: int = 0
    patched: int = 0
    pulled: int = 0
    queued: int = 0
    no_change: int = 0
    remote_created: int = 0
    errors: list = field(default_factory=list)
    active_todos: list = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "vault_to_calendar": {
                "inserted": self.inserted,
                "patched": self.patched,
                "queued": self.queued,
            },
            "calendar_to_vault": {
                "pulled": self.pulled,
                "remote_created": self.remote_created,
            },
            "no_change": self.no_change,
            "errors": self.errors,
        }

    def summary(self) -> str:
        """Generate a human-readable summary."""
        lines = [
            f"Sync completed at {self.completed_at}",
            f"Vault → Calendar: {self.inserted} inserted, {self.patched} patched, "
            f"{self.queued} queued for retry",
            f"Calendar → Vault: {self.pulled} pulled, "
            f"{self.remote_created} created outside the vault",
            f"No-op (unchanged): {self.no_change}",
        ]
        if self.errors:
            lines.append(f"Errors: {len(self.errors)}")
        return "\n".join(lines)
