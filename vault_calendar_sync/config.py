"""
Configuration Management

Centralizes all configurable settings with environment variable overrides.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_project_root() -> Path:
    """Get the project root directory."""
    return Path(__file__).parent.parent


# Load .env file if present
load_dotenv(_get_project_root() / ".env")


def get_env(key: str, default: Optional[str] = None, required: bool = False) -> Optional[str]:
    """Get environment variable with optional default."""
    value = os.environ.get(key, default)
    if required and not value:
        raise ValueError(
            f"Required environment variable {key} is not set. "
            f"Set it with: export {key}='your-value'"
        )
    return value


def get_int_env(key: str, default: int) -> int:
    """Get an integer environment variable."""
    raw = get_env(key, str(default))
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValueError(f"Environment variable {key} must be an integer, got {raw!r}")


# =============================================================================
# Vault Configuration
# =============================================================================

# Root directory of the note vault
VAULT_PATH = Path(os.path.expanduser(get_env("VAULT_PATH", "~/vault")))


# =============================================================================
# Calendar Configuration
# =============================================================================

# Calendar to sync with
CALENDAR_ID = get_env("CALENDAR_ID", "primary")

# REST endpoint of the calendar service
CALENDAR_API_URL = get_env("CALENDAR_API_URL", "https://www.googleapis.com/calendar/v3")

# Optional proxy for every remote call, e.g. http://127.0.0.1:20171
HTTP_PROXY_URL = get_env("HTTP_PROXY_URL")

# Total time allowed for one remote call
CALENDAR_TIMEOUT_SECONDS = get_int_env("CALENDAR_TIMEOUT_SECONDS", 30)


# Access token (required, obtained and refreshed outside this tool)
def get_access_token() -> str:
    """Get the calendar access token from environment."""
    return get_env("CALENDAR_ACCESS_TOKEN", required=True)


# =============================================================================
# Sync Configuration
# =============================================================================

# How many weeks back the "earliest relevant" window starts
FETCH_WEEKS_AGO = get_int_env("SYNC_FETCH_WEEKS_AGO", 4)

# Maximum number of events listed from the calendar per pass
FETCH_MAX_EVENTS = get_int_env("SYNC_FETCH_MAX_EVENTS", 2000)

# Who wins when both sides changed a status: "remote" or "local"
STATUS_AUTHORITY = get_env("SYNC_STATUS_AUTHORITY", "remote").lower()
if STATUS_AUTHORITY not in ("remote", "local"):
    raise ValueError(
        f"SYNC_STATUS_AUTHORITY must be 'remote' or 'local', got {STATUS_AUTHORITY!r}"
    )

# Attempts per remote mutation before it is reported as undelivered
RETRY_ATTEMPTS = get_int_env("SYNC_RETRY_ATTEMPTS", 20)

# Fixed delay between attempts
RETRY_DELAY_MS = get_int_env("SYNC_RETRY_DELAY_MS", 100)

# Upper bound on pending items in the retry queue
RETRY_QUEUE_MAX = get_int_env("SYNC_RETRY_QUEUE_MAX", 1000)

# Watch mode intervals
SYNC_INTERVAL_SECONDS = get_int_env("SYNC_INTERVAL_SECONDS", 300)
QUEUE_INTERVAL_SECONDS = get_int_env("SYNC_QUEUE_INTERVAL_SECONDS", 1)


# =============================================================================
# Data Paths
# =============================================================================

# Project root for relative paths
PROJECT_ROOT = _get_project_root()

# Sync history database path
SYNC_HISTORY_DB = Path(
    get_env("SYNC_HISTORY_DB", str(PROJECT_ROOT / "sync_history.db"))
)

# Logs directory
LOGS_DIR = Path(
    get_env("LOGS_DIR", str(PROJECT_ROOT / "logs"))
)


# =============================================================================
# Helper to print current configuration
# =============================================================================

def print_config():
    """Print current configuration (for debugging)."""
    print("Current Configuration:")
    print(f"  VAULT_PATH: {VAULT_PATH}")
    print(f"  CALENDAR_ID: {CALENDAR_ID}")
    print(f"  CALENDAR_API_URL: {CALENDAR_API_URL}")
    print(f"  CALENDAR_ACCESS_TOKEN: {'*' * 8} (set)" if os.environ.get("CALENDAR_ACCESS_TOKEN") else "  CALENDAR_ACCESS_TOKEN: NOT SET")
    print(f"  HTTP_PROXY_URL: {HTTP_PROXY_URL or '(none)'}")
    print(f"  CALENDAR_TIMEOUT_SECONDS: {CALENDAR_TIMEOUT_SECONDS}")
    print(f"  FETCH_WEEKS_AGO: {FETCH_WEEKS_AGO}")
    print(f"  FETCH_MAX_EVENTS: {FETCH_MAX_EVENTS}")
    print(f"  STATUS_AUTHORITY: {STATUS_AUTHORITY}")
    print(f"  RETRY_ATTEMPTS: {RETRY_ATTEMPTS}")
    print(f"  RETRY_DELAY_MS: {RETRY_DELAY_MS}")
    print(f"  RETRY_QUEUE_MAX: {RETRY_QUEUE_MAX}")
    print(f"  SYNC_INTERVAL_SECONDS: {SYNC_INTERVAL_SECONDS}")
    print(f"  QUEUE_INTERVAL_SECONDS: {QUEUE_INTERVAL_SECONDS}")
    print(f"  SYNC_HISTORY_DB: {SYNC_HISTORY_DB}")
    print(f"  LOGS_DIR: {LOGS_DIR}")
