"""
Sync History

SQLite audit log of what each pass and direct operation did. Reconciliation
never reads it: both stores are the only state that matters for a pass.
"""

import sqlite3
from pathlib import Path
from datetime import datetime
from typing import Optional
import json

from . import config


class SyncHistory:
    """
    Append-only log of sync operations.

    Schema:
    - sync_log: one row per logged action, with optional block ID and JSON details
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize the history database.

        Args:
            db_path: Path to the SQLite database (env: SYNC_HISTORY_DB)
        """
        if db_path is None:
            db_path = config.SYNC_HISTORY_DB

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS sync_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp INTEGER NOT NULL,
                    action TEXT NOT NULL,
                    block_id TEXT,
                    details TEXT
                )
            """)

            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sync_log_action
                ON sync_log(action)
            """)

            conn.commit()

    def log_action(self, action: str, block_id: Optional[str] = None, details: Optional[dict] = None):
        """Log a sync action for auditing."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("""
                INSERT INTO sync_log (timestamp, action, block_id, details)
                VALUES (?, ?, ?, ?)
            """, (
                int(datetime.now().timestamp()),
                action,
                block_id,
                json.dumps(details, ensure_ascii=False) if details else None,
            ))
            conn.commit()

    def get_recent_logs(self, limit: int = 100) -> list[dict]:
        """Get recent sync log entries, newest first."""
        logs = []
        with sqlite3.connect(self.db_path) as conn:
            conn.row_factory = sqlite3.Row
            cursor = conn.execute(
                "SELECT * FROM sync_log ORDER BY id DESC LIMIT ?",
                (limit,)
            )
            for row in cursor:
                logs.append({
                    "id": row["id"],
                    "timestamp": datetime.fromtimestamp(row["timestamp"]),
                    "action": row["action"],
                    "block_id": row["block_id"],
                    "details": json.loads(row["details"]) if row["details"] else None,
                })
        return logs

    def clear_all(self):
        """Delete every log entry."""
        with sqlite3.connect(self.db_path) as conn:
            conn.execute("DELETE FROM sync_log")
            conn.commit()

    def get_stats(self) -> dict:
        """Get history statistics."""
        with sqlite3.connect(self.db_path) as conn:
            total = conn.execute("SELECT COUNT(*) FROM sync_log").fetchone()[0]
            by_action = dict(conn.execute(
                "SELECT action, COUNT(*) FROM sync_log GROUP BY action"
            ).fetchall())
            last_sync = conn.execute(
                "SELECT MAX(timestamp) FROM sync_log WHERE action = 'sync_complete'"
            ).fetchone()[0]

            return {
                "total_entries": total,
                "by_action": by_action,
                "last_sync": datetime.fromtimestamp(last_sync) if last_sync else None,
            }
