"""
Sync-Scheduler: einzige Instanz, die weiß ob und welcher Sync läuft.

- ein globaler Lock (bool) verhindert überlappende Syncs, weitere Anfragen
  werden verworfen statt eingereiht
- Verbindungen werden strikt nacheinander abgearbeitet
- jeder Statuswechsel wird an registrierte Listener gemeldet
"""
import copy
import itertools
import logging
import time
from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from countarr.collectors import SyncResult, create_collector
from countarr.database import SessionLocal
from countarr.models import ServiceConnection, SyncState
from countarr.services import capabilities
from countarr.services.connections import (
    get_configured_service_types,
    get_enabled_connections,
    has_any_connections,
)
from countarr.services.settings import SyncSettings, get_sync_settings
from countarr.services.sync_status import (
    COMPLETED, ERROR, FULL, HISTORY, METADATA, PENDING, PLAYBACK, RUNNING, STATS,
    LastSync, SyncStatus, SyncTaskStatus, TaskProgress, TaskResult,
)
from countarr.utils.dates import utcnow

logger = logging.getLogger(__name__)

MAX_LISTENERS = 100
# Überlappung beim inkrementellen History-Sync, Duplikate fängt der Dedup-Key ab
HISTORY_OVERLAP = timedelta(hours=1)

JOB_IDS = {
    HISTORY: "history_sync",
    METADATA: "metadata_sync",
    PLAYBACK: "playback_sync",
}

StatusListener = Callable[[SyncStatus], None]


class SyncScheduler:

    def __init__(self, session_factory=SessionLocal, collector_factory=create_collector,
                 scheduler: Optional[AsyncIOScheduler] = None):
        self.session_factory = session_factory
        self.collector_factory = collector_factory
        self.scheduler = scheduler or AsyncIOScheduler()

        self._sync_lock = False
        self._status = SyncStatus()
        self._listeners: "OrderedDict[int, StatusListener]" = OrderedDict()
        self._listener_ids = itertools.count()
        self._started_monotonic: Optional[float] = None

    # --- Lifecycle -------------------------------------------------------

    async def start(self):
        """Jobs aus den Settings anlegen, initialen Full-Sync planen, APScheduler starten"""
        db = self.session_factory()
        try:
            settings = get_sync_settings(db)
            run_initial_sync = has_any_connections(db)
        finally:
            db.close()

        self._add_interval_job(HISTORY, self.run_history_sync, settings.poll_interval_history)
        self._add_interval_job(METADATA, self.run_metadata_sync, settings.poll_interval_metadata)
        self._add_interval_job(PLAYBACK, self.run_playback_sync, settings.poll_interval_playback)

        if run_initial_sync:
            self.scheduler.add_job(
                self.run_full_sync,
                id="initial_sync",
                name="Initial Full Sync",
                next_run_time=datetime.now(),
                replace_existing=True,
            )

        if not self.scheduler.running:
            self.scheduler.start()
        logger.info(
            f"✓ Scheduler started (history {settings.poll_interval_history}m, "
            f"metadata {settings.poll_interval_metadata}m, playback {settings.poll_interval_playback}m)"
        )

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("✓ Scheduler stopped")

    def _add_interval_job(self, sync_type: str, func, minutes: int):
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(minutes=minutes),
            id=JOB_IDS[sync_type],
            name=f"{sync_type.capitalize()} Sync ({minutes}m)",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def reschedule(self, settings: SyncSettings):
        """Intervalle nach einer Settings-Änderung neu setzen"""
        intervals = {
            HISTORY: settings.poll_interval_history,
            METADATA: settings.poll_interval_metadata,
            PLAYBACK: settings.poll_interval_playback,
        }
        for sync_type, minutes in intervals.items():
            job = self.scheduler.get_job(JOB_IDS[sync_type])
            if job is None:
                continue
            job.reschedule(trigger=IntervalTrigger(minutes=minutes))
            job.modify(name=f"{sync_type.capitalize()} Sync ({minutes}m)")
        logger.info(f"✓ Sync intervals updated: {intervals}")

    # --- Status ----------------------------------------------------------

    def on_status_change(self, listener: StatusListener) -> Callable[[], None]:
        """Listener registrieren, gibt eine Unsubscribe-Funktion zurück"""
        if len(self._listeners) >= MAX_LISTENERS:
            oldest_id, _ = self._listeners.popitem(last=False)
            logger.warning(f"Max status listeners reached, evicting listener {oldest_id}")

        listener_id = next(self._listener_ids)
        self._listeners[listener_id] = listener

        def unsubscribe():
            self._listeners.pop(listener_id, None)

        return unsubscribe

    def _notify(self):
        snapshot = self.get_sync_status()
        for listener in list(self._listeners.values()):
            try:
                listener(snapshot)
            except Exception as e:
                logger.error(f"Status listener failed: {e}")

    def get_sync_status(self) -> SyncStatus:
        return copy.deepcopy(self._status)

    def is_sync_running(self) -> bool:
        return self._sync_lock

    def get_status(self) -> Dict:
        db = self.session_factory()
        try:
            configured = get_configured_service_types(db)
            connection_count = len(get_enabled_connections(db))
        finally:
            db.close()

        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
            })

        return {
            "is_running": self.scheduler.running,
            "jobs": jobs,
            "configured_services": configured,
            "connection_count": connection_count,
        }

    def _start_sync(self, sync_type: str):
        self._status.is_running = True
        self._status.current_sync_type = sync_type
        self._status.started_at = utcnow()
        self._status.tasks = []
        self._started_monotonic = time.monotonic()
        self._notify()

    def _complete_sync(self, sync_type: str):
        tasks = self._status.tasks
        total_processed = sum(task.result.processed for task in tasks if task.result)
        total_errors = sum(
            len(task.result.errors) if task.result else (1 if task.error else 0)
            for task in tasks
        )
        duration_ms = int((time.monotonic() - (self._started_monotonic or time.monotonic())) * 1000)

        self._status.is_running = False
        self._status.current_sync_type = None
        self._status.last_sync = LastSync(
            type=sync_type,
            completed_at=utcnow(),
            duration_ms=duration_ms,
            total_processed=total_processed,
            total_errors=total_errors,
        )
        self._notify()
        logger.info(
            f"✅ {sync_type.capitalize()} sync completed in {duration_ms}ms: "
            f"{total_processed} processed, {total_errors} errors"
        )

    def _reset_status(self):
        self._status.is_running = False
        self._status.current_sync_type = None
        self._notify()

    def _acquire(self, sync_type: str) -> bool:
        # Kein await zwischen Prüfen und Setzen => atomar im Event-Loop
        if self._sync_lock:
            logger.info(f"Sync already running, skipping {sync_type} sync")
            return False
        self._sync_lock = True
        return True

    # --- Entry points ----------------------------------------------------

    async def trigger_sync(self, sync_type: str = FULL) -> bool:
        """Manueller Sync, False wenn bereits einer läuft"""
        runners = {
            FULL: self.run_full_sync,
            HISTORY: self.run_history_sync,
            METADATA: self.run_metadata_sync,
            PLAYBACK: self.run_playback_sync,
        }
        if sync_type not in runners:
            raise ValueError(f"Unknown sync type: {sync_type}")
        return await runners[sync_type]()

    async def run_full_sync(self) -> bool:
        """Metadata, dann History, dann Playback unter einem Lock"""
        if not self._acquire(FULL):
            return False

        try:
            logger.info("🔄 Starting full sync...")
            self._start_sync(FULL)
            await self.run_metadata_sync(standalone=False)
            await self.run_history_sync(standalone=False)
            await self.run_playback_sync(standalone=False)
            self._complete_sync(FULL)
        except Exception as e:
            logger.error(f"❌ Full sync failed: {e}", exc_info=True)
            self._reset_status()
        finally:
            self._sync_lock = False
        return True

    async def run_history_sync(self, standalone: bool = True) -> bool:
        return await self._run_cycle(HISTORY, standalone, self._history_cycle)

    async def run_metadata_sync(self, standalone: bool = True) -> bool:
        return await self._run_cycle(METADATA, standalone, self._metadata_cycle)

    async def run_playback_sync(self, standalone: bool = True) -> bool:
        return await self._run_cycle(PLAYBACK, standalone, self._playback_cycle)

    async def _run_cycle(self, sync_type: str, standalone: bool, cycle) -> bool:
        if not standalone:
            # Teil eines Full-Syncs: Lock + Status gehören dem Aufrufer,
            # Fehler brechen den ganzen Full-Sync ab
            await cycle()
            return True

        if not self._acquire(sync_type):
            return False

        try:
            self._start_sync(sync_type)
            await cycle()
            self._complete_sync(sync_type)
        except Exception as e:
            logger.error(f"❌ {sync_type.capitalize()} sync failed: {e}", exc_info=True)
            self._reset_status()
        finally:
            self._sync_lock = False
        return True

    # --- Cycles ----------------------------------------------------------

    def _load_connections(self, capability: str) -> List[ServiceConnection]:
        db = self.session_factory()
        try:
            connections = get_enabled_connections(db)
        finally:
            db.close()
        return [c for c in connections if capabilities.supports(c.type, capability)]

    def _load_settings(self) -> SyncSettings:
        db = self.session_factory()
        try:
            return get_sync_settings(db)
        finally:
            db.close()

    def _add_tasks(self, connections: List[ServiceConnection], sync_type: str) -> List[SyncTaskStatus]:
        tasks = [
            SyncTaskStatus(
                connection_id=connection.id,
                connection_name=connection.name,
                connection_type=connection.type,
                sync_type=sync_type,
                status=PENDING,
            )
            for connection in connections
        ]
        self._status.tasks.extend(tasks)
        return tasks

    async def _history_cycle(self):
        settings = self._load_settings()
        connections = self._load_connections(capabilities.HISTORY)
        tasks = self._add_tasks(connections, HISTORY)
        self._notify()

        for connection, task in zip(connections, tasks):
            since = self._history_since(connection.id)

            async def sync(collector, since=since):
                return await collector.sync_history(since=since, import_months=settings.history_import_months)

            await self._run_task(connection, task, sync)

    async def _metadata_cycle(self):
        connections = self._load_connections(capabilities.METADATA)
        stats_connections = self._load_connections(capabilities.STATS)
        tasks = self._add_tasks(connections, METADATA)
        stats_tasks = self._add_tasks(stats_connections, STATS)
        self._notify()

        for connection, task in zip(connections, tasks):
            await self._run_task(connection, task, lambda collector: collector.sync_metadata())

        for connection, task in zip(stats_connections, stats_tasks):
            await self._run_task(connection, task, lambda collector: collector.sync_stats())

    async def _playback_cycle(self):
        connections = self._load_connections(capabilities.PLAYBACK)
        tasks = self._add_tasks(connections, PLAYBACK)
        self._notify()

        for connection, task in zip(connections, tasks):
            await self._run_task(connection, task, lambda collector: collector.sync_playback())

    async def _run_task(self, connection: ServiceConnection, task: SyncTaskStatus, operation):
        """Eine Verbindung synchronisieren, Fehler landen im Task statt den Zyklus abzubrechen"""
        task.status = RUNNING
        task.started_at = utcnow()
        task.progress = TaskProgress(message=f"Syncing {task.sync_type} for {connection.name}...")
        self._notify()

        try:
            collector = self.collector_factory(connection, session_factory=self.session_factory)
            result: SyncResult = await operation(collector)

            task.result = TaskResult(
                processed=result.processed,
                added=result.added,
                updated=result.updated,
                errors=list(result.errors),
            )
            task.status = ERROR if result.errors else COMPLETED
            task.error = result.errors[0] if result.errors else None
            task.progress = TaskProgress(current=result.processed, total=result.processed)
            if result.errors:
                logger.warning(f"✗ {task.sync_type} sync for {connection.name}: {len(result.errors)} errors")
            else:
                logger.info(f"✓ {task.sync_type} sync for {connection.name}: {result.processed} processed")
        except Exception as e:
            logger.error(f"❌ {task.sync_type} sync failed for {connection.name}: {e}")
            task.status = ERROR
            task.error = str(e) or e.__class__.__name__

        task.completed_at = utcnow()
        self._notify()
        self._record_sync_state(connection.id, task)

    def _history_since(self, connection_id: int) -> Optional[datetime]:
        db = self.session_factory()
        try:
            state = db.query(SyncState).filter_by(connection_id=connection_id).first()
            if state and state.status == "idle" and state.last_sync_at:
                return state.last_sync_at - HISTORY_OVERLAP
            return None
        finally:
            db.close()

    def _record_sync_state(self, connection_id: int, task: SyncTaskStatus):
        db = self.session_factory()
        try:
            state = db.query(SyncState).filter_by(connection_id=connection_id).first()
            if state is None:
                state = SyncState(connection_id=connection_id)
                db.add(state)

            failed = task.status == ERROR
            state.status = "error" if failed else "idle"
            state.error = task.error if failed else None
            if task.sync_type == HISTORY and not failed:
                state.last_sync_at = task.started_at
            db.commit()
        except Exception as e:
            db.rollback()
            logger.warning(f"Could not update sync state for connection {connection_id}: {e}")
        finally:
            db.close()
