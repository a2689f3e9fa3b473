from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional
import logging

from countarr.api.deps import get_scheduler
from countarr.database import get_db
from countarr.services.scheduler import SyncScheduler
from countarr.services.settings import (
    LOG_LEVEL_KEY,
    get_setting,
    get_sync_settings,
    update_setting,
)
from countarr.utils.logger import change_log_level_runtime
from countarr.config import LOG_LEVEL


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


class SettingsUpdate(BaseModel):
    poll_interval_history: Optional[int] = Field(None, ge=1)
    poll_interval_metadata: Optional[int] = Field(None, ge=1)
    poll_interval_playback: Optional[int] = Field(None, ge=1)
    history_import_months: Optional[int] = Field(None, ge=1)
    log_level: Optional[str] = None


def _current_settings(db: Session) -> dict:
    values = get_sync_settings(db).to_dict()
    values["log_level"] = str(get_setting(db, LOG_LEVEL_KEY, LOG_LEVEL)).upper()
    return values


@router.get("")
async def get_settings(db: Session = Depends(get_db)):
    return _current_settings(db)


@router.patch("")
async def patch_settings(
    update: SettingsUpdate,
    db: Session = Depends(get_db),
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Einstellungen speichern, Intervalle und Log-Level sofort übernehmen"""
    changes = update.model_dump(exclude_none=True)

    if "log_level" in changes:
        changes["log_level"] = changes["log_level"].upper()
        if changes["log_level"] not in LOG_LEVELS:
            raise HTTPException(status_code=400, detail=f"Invalid log level '{update.log_level}'")

    for key, value in changes.items():
        update_setting(db, key, value)

    if any(key.startswith("poll_interval_") for key in changes):
        scheduler.reschedule(get_sync_settings(db))

    if "log_level" in changes:
        change_log_level_runtime(changes["log_level"])

    return _current_settings(db)
