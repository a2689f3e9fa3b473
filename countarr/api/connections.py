from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional
from datetime import datetime
import logging

from countarr.database import get_db
from countarr.models import ServiceConnection, ServiceType
from countarr.services import connections as registry
from countarr.services.connections import ConnectionTestError, mask_api_key


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/connections", tags=["connections"])


# Pydantic Schemas
class ConnectionCreate(BaseModel):
    name: str
    type: ServiceType
    url: str
    api_key: str
    enabled: bool = True


class ConnectionUpdate(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None
    api_key: Optional[str] = None
    enabled: Optional[bool] = None
    is_default: Optional[bool] = None


class ConnectionTestRequest(BaseModel):
    type: ServiceType
    url: str
    api_key: str


class ConnectionResponse(BaseModel):
    id: int
    name: str
    type: str
    url: str
    api_key: str
    enabled: bool
    is_default: bool
    last_test_at: Optional[datetime]
    last_test_success: Optional[bool]
    last_test_error: Optional[str]
    created_at: Optional[datetime]

    class Config:
        from_attributes = True


class ConnectionTestResponse(BaseModel):
    success: bool
    version: Optional[str] = None
    error: Optional[str] = None


def _to_response(connection: ServiceConnection) -> ConnectionResponse:
    """API-Key wird nie im Klartext ausgeliefert"""
    response = ConnectionResponse.model_validate(connection)
    response.api_key = mask_api_key(connection.api_key)
    return response


def _get_or_404(db: Session, connection_id: int) -> ServiceConnection:
    connection = registry.get_connection(db, connection_id)
    if connection is None:
        raise HTTPException(status_code=404, detail=f"Connection {connection_id} not found")
    return connection


@router.get("", response_model=List[ConnectionResponse])
async def list_connections(db: Session = Depends(get_db)):
    return [_to_response(c) for c in registry.get_all_connections(db)]


@router.post("", response_model=ConnectionResponse, status_code=201)
async def create_connection(data: ConnectionCreate, db: Session = Depends(get_db)):
    """Verbindung testen und nur bei Erfolg speichern"""
    try:
        connection = await registry.create_connection(
            db, data.name, data.type, data.url, data.api_key, enabled=data.enabled
        )
    except ConnectionTestError as e:
        raise HTTPException(status_code=400, detail=f"Connection test failed: {e}")
    return _to_response(connection)


@router.post("/test", response_model=ConnectionTestResponse)
async def test_unsaved_connection(data: ConnectionTestRequest):
    return await registry.test_connection(data.type, data.url, data.api_key)


@router.post("/test-all")
async def test_all_connections(db: Session = Depends(get_db)):
    results = await registry.test_all_connections(db)
    failed = [cid for cid, result in results.items() if not result.get("success")]
    if failed:
        logger.warning(f"✗ {len(failed)} of {len(results)} connections failed the test")
    return results


@router.get("/{connection_id}", response_model=ConnectionResponse)
async def get_connection(connection_id: int, db: Session = Depends(get_db)):
    return _to_response(_get_or_404(db, connection_id))


@router.patch("/{connection_id}", response_model=ConnectionResponse)
async def update_connection(connection_id: int, data: ConnectionUpdate, db: Session = Depends(get_db)):
    _get_or_404(db, connection_id)
    connection = await registry.update_connection(db, connection_id, **data.model_dump(exclude_none=True))
    return _to_response(connection)


@router.delete("/{connection_id}")
async def delete_connection(connection_id: int, db: Session = Depends(get_db)):
    if not registry.delete_connection(db, connection_id):
        raise HTTPException(status_code=404, detail=f"Connection {connection_id} not found")
    return {"deleted": True}


@router.post("/{connection_id}/test", response_model=ConnectionTestResponse)
async def test_existing_connection(connection_id: int, db: Session = Depends(get_db)):
    _get_or_404(db, connection_id)
    return await registry.test_existing_connection(db, connection_id)
