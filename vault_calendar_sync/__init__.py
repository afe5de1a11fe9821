"""
Vault ↔ Calendar Sync

A bidirectional sync tool that keeps the tasks written in a markdown note
vault and the events of a remote calendar in agreement.
"""

from .models import Todo, SyncAction, SyncPlan, SyncResult
from .serialization import TodoSerializer
from .vault import FileSystemVault, VaultTasks
from .calendar_sync import CalendarSync
from .sync_history import SyncHistory
from .sync_engine import Synchronizer

__all__ = [
    "Todo",
    "SyncAction",
    "SyncPlan",
    "SyncResult",
    "TodoSerializer",
    "FileSystemVault",
    "VaultTasks",
    "CalendarSync",
    "SyncHistory",
    "Synchronizer",
]

__version__ = "0.1.0"
