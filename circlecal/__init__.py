"""
circlecal: Privacy-aware availability engine

Finds common free time across friends and decides how much of one user's
calendar another user may see.

Components:
    availability/: Interval algebra and the find-time orchestrator
    policies/: Friendship checks, calendar access resolution, event redaction
    store/: Data-access interface and the SQLite reference adapter
    config_models.py: Validated settings from args/availability.yaml
    logging_config.py: structlog setup
    cli.py: Command-line entry point

Usage:
    from circlecal.availability.orchestrator import find_common_slots
    from circlecal.store.sqlite_store import SqliteCalendarStore

    store = SqliteCalendarStore()
    slots = await find_common_slots("alice", ["bob"], start, end, 30, store)
"""

from pathlib import Path

# Path constants
PROJECT_ROOT = Path(__file__).parent.parent
DATA_DIR = PROJECT_ROOT / "data"
ARGS_DIR = PROJECT_ROOT / "args"

# Database paths
DB_PATH = DATA_DIR / "calendar.db"

__all__ = [
    "PROJECT_ROOT",
    "DATA_DIR",
    "ARGS_DIR",
    "DB_PATH",
]
