"""
Environment configuration for Countarr.

Runtime-tunable values (poll intervals, import window, log level) live in the
settings table, see countarr/services/settings.py.
"""
import os
from pathlib import Path


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


DATA_DIR = Path(os.getenv("COUNTARR_DATA_DIR", "./data"))

DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{DATA_DIR / 'countarr.db'}")

LOG_DIR = Path(os.getenv("COUNTARR_LOG_DIR", str(DATA_DIR / "logs")))
LOG_LEVEL = os.getenv("COUNTARR_LOG_LEVEL", "INFO").upper()

# Sekunden pro Request an externe Dienste
REQUEST_TIMEOUT = _int_env("COUNTARR_REQUEST_TIMEOUT", 30)

HOST = os.getenv("COUNTARR_HOST", "0.0.0.0")
PORT = _int_env("COUNTARR_PORT", 7474)

# Coded defaults for the settings table
DEFAULT_POLL_INTERVAL_HISTORY = 5
DEFAULT_POLL_INTERVAL_METADATA = 30
DEFAULT_POLL_INTERVAL_PLAYBACK = 1
DEFAULT_HISTORY_IMPORT_MONTHS = 12
