from fastapi import APIRouter, Depends, HTTPException, BackgroundTasks
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional
import logging

from countarr.api.deps import get_scheduler
from countarr.database import get_db
from countarr.models import ServiceConnection, SyncState
from countarr.services.scheduler import SyncScheduler
from countarr.services.sync_status import FULL, HISTORY, METADATA, PLAYBACK


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])

SYNC_TYPES = (FULL, HISTORY, METADATA, PLAYBACK)


class TriggerRequest(BaseModel):
    type: str = FULL


class SyncStateResponse(BaseModel):
    connection_id: int
    last_sync_at: Optional[datetime]
    last_history_id: Optional[int]
    status: Optional[str]
    error: Optional[str]
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


@router.get("/status")
async def get_sync_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    """Aktueller Sync-Status inkl. Tasks und letztem Ergebnis"""
    return scheduler.get_sync_status().to_dict()


@router.get("/scheduler")
async def get_scheduler_status(scheduler: SyncScheduler = Depends(get_scheduler)):
    return scheduler.get_status()


@router.get("/state", response_model=List[SyncStateResponse])
async def get_sync_states(db: Session = Depends(get_db)):
    return (
        db.query(SyncState)
        .join(ServiceConnection, ServiceConnection.id == SyncState.connection_id)
        .order_by(SyncState.connection_id)
        .all()
    )


@router.post("/trigger")
async def trigger_sync(
    background_tasks: BackgroundTasks,
    body: Optional[TriggerRequest] = None,
    scheduler: SyncScheduler = Depends(get_scheduler),
):
    """Manuellen Sync starten (läuft im Hintergrund)"""
    sync_type = body.type if body else FULL
    if sync_type not in SYNC_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown sync type '{sync_type}'")

    if scheduler.is_sync_running():
        raise HTTPException(status_code=409, detail="A sync is already running")

    background_tasks.add_task(scheduler.trigger_sync, sync_type)
    logger.info(f"🔄 Manual {sync_type} sync requested")
    return {"started": True, "type": sync_type}
