import asyncio
from datetime import timedelta

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from countarr.collectors import SyncResult
from countarr.models import SyncState
from countarr.services.scheduler import MAX_LISTENERS, SyncScheduler
from countarr.services.settings import SyncSettings


class FakeCollector:
    """Records every call in a shared log, optionally blocking or failing"""

    def __init__(self, connection, log, behaviour):
        self.connection = connection
        self.log = log
        self.behaviour = behaviour

    async def _run(self, category, **kwargs):
        name = self.connection.name
        self.log.append(("start", category, name, kwargs))
        action = self.behaviour.get((name, category))
        if isinstance(action, asyncio.Event):
            await action.wait()
        else:
            await asyncio.sleep(0)
        self.log.append(("end", category, name))
        if isinstance(action, Exception):
            raise action
        if isinstance(action, SyncResult):
            return action
        return SyncResult(processed=1, added=1)

    async def sync_history(self, since=None, import_months=12):
        return await self._run("history", since=since, import_months=import_months)

    async def sync_metadata(self):
        return await self._run("metadata")

    async def sync_stats(self):
        return await self._run("stats")

    async def sync_playback(self):
        return await self._run("playback")


@pytest.fixture
def log():
    return []


@pytest.fixture
def behaviour():
    return {}


@pytest.fixture
def scheduler(session_factory, log, behaviour):
    def factory(connection, **kwargs):
        return FakeCollector(connection, log, behaviour)

    sync_scheduler = SyncScheduler(
        session_factory=session_factory,
        collector_factory=factory,
        scheduler=AsyncIOScheduler(),
    )
    yield sync_scheduler
    sync_scheduler.stop()


def calls(log, category=None):
    return [(entry[1], entry[2]) for entry in log
            if entry[0] == "start" and (category is None or entry[1] == category)]


class TestMutualExclusion:

    async def test_second_sync_rejected_while_running(self, scheduler, make_connection, behaviour):
        make_connection("radarr", name="Radarr")
        gate = asyncio.Event()
        behaviour[("Radarr", "history")] = gate

        running = asyncio.ensure_future(scheduler.run_history_sync())
        while not scheduler.is_sync_running():
            await asyncio.sleep(0)

        assert await scheduler.run_metadata_sync() is False
        assert await scheduler.run_full_sync() is False
        assert await scheduler.trigger_sync("playback") is False
        assert scheduler.get_sync_status().is_running

        gate.set()
        assert await running is True
        assert not scheduler.is_sync_running()
        assert not scheduler.get_sync_status().is_running

    async def test_connections_run_one_at_a_time(self, scheduler, make_connection, log):
        make_connection("radarr", name="Radarr A")
        make_connection("radarr", name="Radarr B")
        make_connection("sonarr", name="Sonarr")

        await scheduler.run_history_sync()

        starts_and_ends = [entry[0] for entry in log]
        assert starts_and_ends == ["start", "end"] * 3

    async def test_lock_released_after_failure(self, scheduler, make_connection, monkeypatch):
        make_connection("radarr", name="Radarr")

        async def broken():
            raise RuntimeError("database gone")

        monkeypatch.setattr(scheduler, "_history_cycle", broken)
        assert await scheduler.run_history_sync() is True
        assert not scheduler.is_sync_running()

        monkeypatch.undo()
        assert await scheduler.run_history_sync() is True


class TestFullSync:

    async def test_order_metadata_history_playback(self, scheduler, make_connection, log):
        make_connection("radarr", name="Radarr")
        make_connection("emby", name="Emby")
        make_connection("prowlarr", name="Prowlarr")

        assert await scheduler.run_full_sync() is True

        assert calls(log) == [
            ("metadata", "Radarr"),
            ("stats", "Prowlarr"),
            ("history", "Prowlarr"),
            ("history", "Radarr"),
            ("playback", "Emby"),
        ]
        status = scheduler.get_sync_status()
        assert status.last_sync.type == "full"
        assert status.last_sync.total_processed == 5
        assert status.last_sync.total_errors == 0
        assert [(t.sync_type, t.status) for t in status.tasks] == [
            ("metadata", "completed"),
            ("stats", "completed"),
            ("history", "completed"),
            ("history", "completed"),
            ("playback", "completed"),
        ]

    async def test_cycle_failure_resets_without_last_sync(self, scheduler, make_connection, monkeypatch):
        make_connection("radarr", name="Radarr")

        async def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(scheduler, "_history_cycle", broken)

        assert await scheduler.run_full_sync() is True
        status = scheduler.get_sync_status()
        assert not status.is_running
        assert status.current_sync_type is None
        assert status.last_sync is None
        assert not scheduler.is_sync_running()


class TestCapabilityGating:

    async def test_only_capable_connections_run(self, scheduler, make_connection, log):
        for service_type in ("radarr", "sonarr", "bazarr", "prowlarr", "jellyseerr", "emby", "jellyfin"):
            make_connection(service_type, name=service_type)

        await scheduler.run_history_sync()
        await scheduler.run_metadata_sync()
        await scheduler.run_playback_sync()

        assert sorted(name for _, name in calls(log, "history")) == \
            ["bazarr", "jellyseerr", "prowlarr", "radarr", "sonarr"]
        assert sorted(name for _, name in calls(log, "metadata")) == ["radarr", "sonarr"]
        assert [name for _, name in calls(log, "stats")] == ["prowlarr"]
        assert sorted(name for _, name in calls(log, "playback")) == ["emby", "jellyfin"]

    async def test_disabled_connections_skipped(self, scheduler, make_connection, log):
        make_connection("radarr", name="Radarr", enabled=False)

        await scheduler.run_history_sync()

        assert log == []
        assert scheduler.get_sync_status().last_sync.total_processed == 0


class TestErrors:

    async def test_failing_connection_does_not_stop_others(self, scheduler, make_connection, behaviour, session_factory):
        failing = make_connection("radarr", name="Radarr A")
        make_connection("radarr", name="Radarr B")
        behaviour[("Radarr A", "history")] = RuntimeError("connection reset")

        await scheduler.run_history_sync()

        status = scheduler.get_sync_status()
        a, b = status.tasks
        assert (a.status, a.error) == ("error", "connection reset")
        assert a.result is None
        assert b.status == "completed"
        assert status.last_sync.total_errors == 1

        db = session_factory()
        state = db.query(SyncState).filter_by(connection_id=failing.id).one()
        assert state.status == "error"
        assert state.error == "connection reset"
        assert state.last_sync_at is None
        db.close()

    async def test_result_errors_mark_task(self, scheduler, make_connection, behaviour):
        make_connection("radarr", name="Radarr")
        behaviour[("Radarr", "history")] = SyncResult(processed=3, errors=["Event 1: bad", "Event 2: bad"])

        await scheduler.run_history_sync()

        status = scheduler.get_sync_status()
        [task] = status.tasks
        assert task.status == "error"
        assert task.error == "Event 1: bad"
        assert task.result.processed == 3
        assert status.last_sync.total_errors == 2
        assert status.last_sync.total_processed == 3


class TestIncrementalHistory:

    async def test_since_follows_last_successful_sync(self, scheduler, make_connection, log, session_factory):
        connection = make_connection("radarr", name="Radarr")

        await scheduler.run_history_sync()
        db = session_factory()
        state = db.query(SyncState).filter_by(connection_id=connection.id).one()
        assert state.status == "idle"
        last_sync_at = state.last_sync_at
        db.close()

        await scheduler.run_history_sync()

        first, second = [entry[3] for entry in log if entry[0] == "start"]
        assert first["since"] is None
        assert first["import_months"] == 12
        assert second["since"] == last_sync_at - timedelta(hours=1)

    async def test_error_state_forces_full_window(self, scheduler, make_connection, log, behaviour):
        make_connection("radarr", name="Radarr")
        behaviour[("Radarr", "history")] = RuntimeError("timeout")
        await scheduler.run_history_sync()

        del behaviour[("Radarr", "history")]
        await scheduler.run_history_sync()

        assert all(entry[3]["since"] is None for entry in log if entry[0] == "start")


class TestListeners:

    async def test_listener_receives_status_snapshots(self, scheduler, make_connection):
        make_connection("radarr", name="Radarr")
        seen = []
        unsubscribe = scheduler.on_status_change(lambda status: seen.append(status))

        await scheduler.run_history_sync()

        assert seen[0].is_running
        assert seen[0].current_sync_type == "history"
        assert not seen[-1].is_running
        assert seen[-1].last_sync is not None
        assert any(task.status == "running" for status in seen for task in status.tasks)

        count = len(seen)
        unsubscribe()
        await scheduler.run_history_sync()
        assert len(seen) == count

    async def test_failing_listener_is_isolated(self, scheduler, make_connection):
        make_connection("radarr", name="Radarr")
        seen = []

        def broken(status):
            raise ValueError("listener bug")

        scheduler.on_status_change(broken)
        scheduler.on_status_change(seen.append)

        await scheduler.run_history_sync()

        assert seen
        assert seen[-1].last_sync.total_errors == 0

    def test_oldest_listener_evicted(self, scheduler):
        first_calls = []
        scheduler.on_status_change(first_calls.append)
        for _ in range(MAX_LISTENERS):
            scheduler.on_status_change(lambda status: None)

        assert len(scheduler._listeners) == MAX_LISTENERS
        scheduler._notify()
        assert first_calls == []

    def test_snapshot_is_a_copy(self, scheduler):
        snapshot = scheduler.get_sync_status()
        snapshot.is_running = True
        snapshot.tasks.append("junk")

        assert not scheduler.get_sync_status().is_running
        assert scheduler.get_sync_status().tasks == []


class TestJobs:

    async def test_start_registers_jobs_and_initial_sync(self, scheduler, make_connection):
        make_connection("radarr", name="Radarr")

        await scheduler.start()

        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert {"history_sync", "metadata_sync", "playback_sync", "initial_sync"} <= job_ids
        status = scheduler.get_status()
        assert status["is_running"]
        assert status["configured_services"] == ["radarr"]
        assert status["connection_count"] == 1
        scheduler.stop()

    async def test_no_initial_sync_without_connections(self, scheduler):
        await scheduler.start()

        job_ids = {job.id for job in scheduler.scheduler.get_jobs()}
        assert job_ids == {"history_sync", "metadata_sync", "playback_sync"}
        scheduler.stop()

    async def test_reschedule(self, scheduler):
        await scheduler.start()

        scheduler.reschedule(SyncSettings(poll_interval_history=15))

        job = scheduler.scheduler.get_job("history_sync")
        assert job.trigger.interval == timedelta(minutes=15)
        assert job.name == "History Sync (15m)"
        scheduler.stop()

    async def test_trigger_unknown_type(self, scheduler):
        with pytest.raises(ValueError):
            await scheduler.trigger_sync("everything")
