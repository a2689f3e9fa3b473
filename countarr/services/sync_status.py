"""
Status-Modell des Sync-Schedulers (wird an Listener und die API gegeben)
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional

from countarr.utils.dates import isoformat

# Zyklus-Typen
FULL = "full"
HISTORY = "history"
METADATA = "metadata"
PLAYBACK = "playback"
# Zusätzlicher Task-Typ im Metadata-Zyklus
STATS = "stats"

PENDING = "pending"
RUNNING = "running"
COMPLETED = "completed"
ERROR = "error"


@dataclass
class TaskProgress:
    current: int = 0
    total: int = 0
    message: Optional[str] = None


@dataclass
class TaskResult:
    processed: int = 0
    added: Optional[int] = None
    updated: Optional[int] = None
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncTaskStatus:
    connection_id: int
    connection_name: str
    connection_type: str
    sync_type: str
    status: str = PENDING
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    progress: Optional[TaskProgress] = None
    result: Optional[TaskResult] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "connection_id": self.connection_id,
            "connection_name": self.connection_name,
            "connection_type": self.connection_type,
            "sync_type": self.sync_type,
            "status": self.status,
            "started_at": isoformat(self.started_at),
            "completed_at": isoformat(self.completed_at),
            "progress": vars(self.progress) if self.progress else None,
            "result": {
                "processed": self.result.processed,
                "added": self.result.added,
                "updated": self.result.updated,
                "errors": list(self.result.errors),
            } if self.result else None,
            "error": self.error,
        }


@dataclass
class LastSync:
    type: str
    completed_at: datetime
    duration_ms: int
    total_processed: int
    total_errors: int

    def to_dict(self) -> Dict:
        return {
            "type": self.type,
            "completed_at": isoformat(self.completed_at),
            "duration_ms": self.duration_ms,
            "total_processed": self.total_processed,
            "total_errors": self.total_errors,
        }


@dataclass
class SyncStatus:
    is_running: bool = False
    current_sync_type: Optional[str] = None
    started_at: Optional[datetime] = None
    tasks: List[SyncTaskStatus] = field(default_factory=list)
    last_sync: Optional[LastSync] = None

    def to_dict(self) -> Dict:
        return {
            "is_running": self.is_running,
            "current_sync_type": self.current_sync_type,
            "started_at": isoformat(self.started_at),
            "tasks": [task.to_dict() for task in self.tasks],
            "last_sync": self.last_sync.to_dict() if self.last_sync else None,
        }
