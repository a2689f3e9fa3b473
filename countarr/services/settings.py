"""
Settings provider: Poll-Intervalle und Import-Zeitraum aus der settings-Tabelle
"""
import json
import logging
from dataclasses import dataclass, asdict

from sqlalchemy.orm import Session

from countarr.config import (
    DEFAULT_HISTORY_IMPORT_MONTHS,
    DEFAULT_POLL_INTERVAL_HISTORY,
    DEFAULT_POLL_INTERVAL_METADATA,
    DEFAULT_POLL_INTERVAL_PLAYBACK,
    LOG_LEVEL,
)
from countarr.models import Setting

logger = logging.getLogger(__name__)

POLL_INTERVAL_HISTORY = "poll_interval_history"
POLL_INTERVAL_METADATA = "poll_interval_metadata"
POLL_INTERVAL_PLAYBACK = "poll_interval_playback"
HISTORY_IMPORT_MONTHS = "history_import_months"
LOG_LEVEL_KEY = "log_level"

# key -> (default, data_type, description)
DEFAULT_SETTINGS = {
    POLL_INTERVAL_HISTORY: (DEFAULT_POLL_INTERVAL_HISTORY, "int", "History sync interval (minutes)"),
    POLL_INTERVAL_METADATA: (DEFAULT_POLL_INTERVAL_METADATA, "int", "Library/metadata sync interval (minutes)"),
    POLL_INTERVAL_PLAYBACK: (DEFAULT_POLL_INTERVAL_PLAYBACK, "int", "Playback sync interval (minutes)"),
    HISTORY_IMPORT_MONTHS: (DEFAULT_HISTORY_IMPORT_MONTHS, "int", "How many months of history to import"),
    LOG_LEVEL_KEY: (LOG_LEVEL, "string", "Log-Level (DEBUG, INFO, WARNING, ERROR)"),
}


@dataclass
class SyncSettings:
    poll_interval_history: int = DEFAULT_POLL_INTERVAL_HISTORY
    poll_interval_metadata: int = DEFAULT_POLL_INTERVAL_METADATA
    poll_interval_playback: int = DEFAULT_POLL_INTERVAL_PLAYBACK
    history_import_months: int = DEFAULT_HISTORY_IMPORT_MONTHS

    def to_dict(self):
        return asdict(self)


def get_setting(db: Session, key: str, default=None):
    """Typed value of a setting, default when missing or malformed"""
    setting = db.query(Setting).filter_by(key=key).first()
    if setting is None or setting.value is None:
        return default
    try:
        return setting.typed_value
    except (TypeError, ValueError) as e:
        logger.warning(f"Invalid value for setting {key}: {e}")
        return default


def get_sync_settings(db: Session) -> SyncSettings:
    values = {}
    for key in (POLL_INTERVAL_HISTORY, POLL_INTERVAL_METADATA, POLL_INTERVAL_PLAYBACK, HISTORY_IMPORT_MONTHS):
        default = DEFAULT_SETTINGS[key][0]
        value = get_setting(db, key, default)
        # Intervalle < 1 Minute sind nicht erlaubt
        values[key] = value if isinstance(value, int) and value >= 1 else default
    return SyncSettings(**values)


def _serialize(value, data_type: str) -> str:
    if data_type == "json":
        return json.dumps(value)
    if data_type == "bool":
        return "true" if value else "false"
    return str(value)


def update_setting(db: Session, key: str, value) -> Setting:
    setting = db.query(Setting).filter_by(key=key).first()
    if setting is None:
        default, data_type, description = DEFAULT_SETTINGS.get(key, (None, "string", None))
        setting = Setting(key=key, data_type=data_type, description=description)
        db.add(setting)

    setting.value = _serialize(value, setting.data_type)
    db.commit()
    logger.info(f"✓ Updated setting: {key}")
    return setting
