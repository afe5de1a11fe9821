"""
Sync Status Reporting

The remote adapter reports network and sync transitions through a
StatusBroadcaster owned by the composing application, which decides how to
show them (log lines, a status bar, ...).
"""

from enum import Enum
from typing import Callable, Protocol
import logging

logger = logging.getLogger(__name__)


class NetworkStatus(Enum):
    UNKNOWN = "unknown"
    HEALTH = "health"
    CONNECTION_ERROR = "connection_error"


class SyncStatus(Enum):
    UNKNOWN = "unknown"
    UPLOAD = "upload"  # insert, patch, delete
    DOWNLOAD = "download"  # list
    SUCCESS_WAITING = "success_waiting"
    FAILED_WARNING = "failed_warning"


class StatusListener(Protocol):
    def on_sync_status(self, status: SyncStatus) -> None: ...

    def on_network_status(self, status: NetworkStatus) -> None: ...


class StatusBroadcaster:
    """Remembers the latest statuses and forwards every change to listeners."""

    def __init__(self):
        self.sync_status = SyncStatus.UNKNOWN
        self.network_status = NetworkStatus.UNKNOWN
        self._listeners: list[StatusListener] = []

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def set_sync_status(self, status: SyncStatus) -> None:
        self.sync_status = status
        for listener in list(self._listeners):
            try:
                listener.on_sync_status(status)
            except Exception as e:
                logger.error(f"Status listener {listener!r} failed: {e}")

    def set_network_status(self, status: NetworkStatus) -> None:
        self.network_status = status
        for listener in list(self._listeners):
            try:
                listener.on_network_status(status)
            except Exception as e:
                logger.error(f"Status listener {listener!r} failed: {e}")

    def succeeded(self) -> None:
        self.set_sync_status(SyncStatus.SUCCESS_WAITING)
        self.set_network_status(NetworkStatus.HEALTH)

    def failed(self) -> None:
        self.set_sync_status(SyncStatus.FAILED_WARNING)
        self.set_network_status(NetworkStatus.CONNECTION_ERROR)


class LoggingStatusListener:
    """Writes every transition to the log, standing in for a status bar."""

    SYNC_ICONS = {
        SyncStatus.UNKNOWN: "*️⃣",
        SyncStatus.UPLOAD: "⬆️",
        SyncStatus.DOWNLOAD: "⬇️",
        SyncStatus.SUCCESS_WAITING: "🆗",
        SyncStatus.FAILED_WARNING: "🆖",
    }
    NETWORK_ICONS = {
        NetworkStatus.UNKNOWN: "🔵",
        NetworkStatus.HEALTH: "🟢",
        NetworkStatus.CONNECTION_ERROR: "🔴",
    }

    def on_sync_status(self, status: SyncStatus) -> None:
        logger.debug(f"Sync: {self.SYNC_ICONS[status]}")

    def on_network_status(self, status: NetworkStatus) -> None:
        logger.debug(f"Net: {self.NETWORK_ICONS[status]}")
