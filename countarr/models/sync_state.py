from sqlalchemy import Column, Integer, String, DateTime, Text, ForeignKey

from countarr.database import Base
from countarr.utils.dates import utcnow


class SyncState(Base):
    """Letzter Sync-Stand pro Verbindung (Diagnose + inkrementeller Sync)"""
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True)
    connection_id = Column(Integer, ForeignKey("service_connections.id", ondelete="CASCADE"),
                           unique=True, nullable=False)
    last_sync_at = Column(DateTime, nullable=True)
    last_history_id = Column(Integer, nullable=True)
    status = Column(String, default="idle")  # idle, running, error
    error = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
