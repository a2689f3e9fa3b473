"""
Connection Registry: konfigurierte Dienste (CRUD + Verbindungstest)
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from countarr.clients import create_client
from countarr.models import ServiceConnection, ServiceType
from countarr.utils.dates import utcnow

logger = logging.getLogger(__name__)


class ConnectionTestError(Exception):
    """Connection test failed, the connection was not saved"""


def normalize_url(url: str) -> str:
    return url.strip().rstrip("/")


def mask_api_key(api_key: Optional[str]) -> str:
    if not api_key:
        return ""
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return f"{api_key[:4]}{'*' * (len(api_key) - 8)}{api_key[-4:]}"


async def test_connection(service_type, url: str, api_key: str) -> Dict:
    """
    Test a service before saving it
    Returns: {"success": bool, "version": str?, "error": str?}
    """
    try:
        client = create_client(service_type, normalize_url(url), api_key)
    except ValueError as e:
        return {"success": False, "error": str(e)}
    return await client.test_connection()


def get_all_connections(db: Session) -> List[ServiceConnection]:
    return db.query(ServiceConnection).order_by(ServiceConnection.type, ServiceConnection.name).all()


def get_enabled_connections(db: Session) -> List[ServiceConnection]:
    return (
        db.query(ServiceConnection)
        .filter(ServiceConnection.enabled.is_(True))
        .order_by(ServiceConnection.type, ServiceConnection.name)
        .all()
    )


def get_connections_by_type(db: Session, service_type) -> List[ServiceConnection]:
    return (
        db.query(ServiceConnection)
        .filter(
            ServiceConnection.type == ServiceType(service_type).value,
            ServiceConnection.enabled.is_(True),
        )
        .order_by(ServiceConnection.name)
        .all()
    )


def get_default_connection(db: Session, service_type) -> Optional[ServiceConnection]:
    connections = get_connections_by_type(db, service_type)
    for connection in connections:
        if connection.is_default:
            return connection
    return connections[0] if connections else None


def get_connection(db: Session, connection_id: int) -> Optional[ServiceConnection]:
    return db.query(ServiceConnection).filter_by(id=connection_id).first()


def has_any_connections(db: Session) -> bool:
    return db.query(ServiceConnection.id).first() is not None


def get_configured_service_types(db: Session) -> List[str]:
    types = []
    for connection in get_enabled_connections(db):
        if connection.type not in types:
            types.append(connection.type)
    return types


def _record_test(connection: ServiceConnection, result: Dict):
    connection.last_test_at = utcnow()
    connection.last_test_success = bool(result.get("success"))
    connection.last_test_error = result.get("error")


def _clear_other_defaults(db: Session, connection: ServiceConnection):
    others = db.query(ServiceConnection).filter(
        ServiceConnection.type == connection.type,
        ServiceConnection.id != connection.id,
        ServiceConnection.is_default.is_(True),
    )
    for other in others:
        other.is_default = False


async def create_connection(db: Session, name: str, service_type, url: str, api_key: str,
                            enabled: bool = True) -> ServiceConnection:
    """Testet zuerst, speichert nur bei Erfolg. Erste Verbindung eines Typs wird Default."""
    service_type = ServiceType(service_type)
    url = normalize_url(url)

    result = await test_connection(service_type, url, api_key)
    if not result.get("success"):
        logger.warning(f"✗ Connection test failed for {service_type.value} '{name}': {result.get('error')}")
        raise ConnectionTestError(result.get("error") or "Connection test failed")

    is_first = db.query(ServiceConnection.id).filter_by(type=service_type.value).first() is None

    connection = ServiceConnection(
        name=name,
        type=service_type.value,
        url=url,
        api_key=api_key,
        enabled=enabled,
        is_default=is_first,
    )
    _record_test(connection, result)
    db.add(connection)
    db.commit()
    db.refresh(connection)

    logger.info(f"✓ Added connection: {service_type.value} '{name}' ({url})")
    return connection


async def update_connection(db: Session, connection_id: int, **changes) -> Optional[ServiceConnection]:
    """Re-Test wenn URL oder API-Key geändert werden"""
    connection = get_connection(db, connection_id)
    if connection is None:
        return None

    changes = {key: value for key, value in changes.items() if value is not None}
    if "url" in changes:
        changes["url"] = normalize_url(changes["url"])

    if "url" in changes or "api_key" in changes:
        result = await test_connection(
            connection.type,
            changes.get("url", connection.url),
            changes.get("api_key", connection.api_key),
        )
        _record_test(connection, result)

    for field in ("name", "url", "api_key", "enabled", "is_default"):
        if field in changes:
            setattr(connection, field, changes[field])

    if changes.get("is_default"):
        _clear_other_defaults(db, connection)

    db.commit()
    db.refresh(connection)
    logger.info(f"✓ Updated connection {connection_id}")
    return connection


def delete_connection(db: Session, connection_id: int) -> bool:
    connection = get_connection(db, connection_id)
    if connection is None:
        return False

    was_default = connection.is_default
    service_type = connection.type
    db.delete(connection)
    db.flush()

    # Default an die nächste Verbindung desselben Typs weitergeben
    if was_default:
        successor = (
            db.query(ServiceConnection)
            .filter_by(type=service_type)
            .order_by(ServiceConnection.name)
            .first()
        )
        if successor:
            successor.is_default = True

    db.commit()
    logger.info(f"✓ Deleted connection {connection_id}")
    return True


async def test_existing_connection(db: Session, connection_id: int) -> Dict:
    connection = get_connection(db, connection_id)
    if connection is None:
        return {"success": False, "error": "Connection not found"}

    result = await test_connection(connection.type, connection.url, connection.api_key)
    _record_test(connection, result)
    db.commit()
    return result


async def test_all_connections(db: Session) -> Dict[int, Dict]:
    results = {}
    for connection in get_all_connections(db):
        results[connection.id] = await test_existing_connection(db, connection.id)
    return results
