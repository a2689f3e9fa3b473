from unittest.mock import AsyncMock, MagicMock

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi.testclient import TestClient

from countarr.api import settings as settings_api
from countarr.database import get_db
from countarr.main import app
from countarr.models import SyncState
from countarr.services import connections as registry
from countarr.services.scheduler import SyncScheduler


@pytest.fixture
def scheduler(session_factory):
    return SyncScheduler(session_factory=session_factory, scheduler=AsyncIOScheduler())


@pytest.fixture
def client(session_factory, scheduler):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.state.scheduler = scheduler
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def connection_test(monkeypatch):
    mock = AsyncMock(return_value={"success": True, "version": "5.2.6"})
    monkeypatch.setattr(registry, "test_connection", mock)
    return mock


def create(client, name="Radarr", service_type="radarr", api_key="0123456789abcdef"):
    response = client.post("/api/connections", json={
        "name": name,
        "type": service_type,
        "url": "http://radarr.local:7878/",
        "api_key": api_key,
    })
    assert response.status_code == 201, response.text
    return response.json()


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["database"] is True
    assert body["scheduler_running"] is False


class TestSync:

    def test_status_idle(self, client):
        body = client.get("/api/sync/status").json()

        assert body["is_running"] is False
        assert body["tasks"] == []
        assert body["last_sync"] is None

    def test_trigger_runs_in_background(self, client):
        response = client.post("/api/sync/trigger", json={"type": "history"})

        assert response.status_code == 200
        assert response.json()["started"] is True
        body = client.get("/api/sync/status").json()
        assert body["last_sync"]["type"] == "history"

    def test_trigger_conflict_while_running(self, client, scheduler):
        scheduler._sync_lock = True

        response = client.post("/api/sync/trigger", json={"type": "full"})

        assert response.status_code == 409

    def test_trigger_unknown_type(self, client):
        response = client.post("/api/sync/trigger", json={"type": "everything"})

        assert response.status_code == 400

    def test_scheduler_status(self, client, connection_test):
        create(client)

        body = client.get("/api/sync/scheduler").json()

        assert body["is_running"] is False
        assert body["configured_services"] == ["radarr"]
        assert body["connection_count"] == 1

    def test_sync_state_rows(self, client, connection_test, session_factory):
        connection = create(client)
        db = session_factory()
        db.add(SyncState(connection_id=connection["id"], status="error", error="Request timeout"))
        db.commit()
        db.close()

        [row] = client.get("/api/sync/state").json()

        assert row["connection_id"] == connection["id"]
        assert row["status"] == "error"
        assert row["error"] == "Request timeout"


class TestSettings:

    def test_defaults(self, client):
        body = client.get("/api/settings").json()

        assert body["poll_interval_history"] == 5
        assert body["poll_interval_metadata"] == 30
        assert body["poll_interval_playback"] == 1
        assert body["history_import_months"] == 12

    def test_patch_reschedules_and_changes_log_level(self, client, scheduler, monkeypatch):
        log_level = MagicMock(return_value=True)
        monkeypatch.setattr(settings_api, "change_log_level_runtime", log_level)
        reschedule = MagicMock()
        monkeypatch.setattr(scheduler, "reschedule", reschedule)

        response = client.patch("/api/settings", json={"poll_interval_history": 10, "log_level": "debug"})

        assert response.status_code == 200
        body = response.json()
        assert body["poll_interval_history"] == 10
        assert body["log_level"] == "DEBUG"
        reschedule.assert_called_once()
        assert reschedule.call_args[0][0].poll_interval_history == 10
        log_level.assert_called_once_with("DEBUG")

    def test_import_months_does_not_reschedule(self, client, scheduler, monkeypatch):
        reschedule = MagicMock()
        monkeypatch.setattr(scheduler, "reschedule", reschedule)

        response = client.patch("/api/settings", json={"history_import_months": 6})

        assert response.json()["history_import_months"] == 6
        reschedule.assert_not_called()

    def test_interval_below_one_rejected(self, client):
        response = client.patch("/api/settings", json={"poll_interval_playback": 0})

        assert response.status_code == 422

    def test_invalid_log_level_rejected(self, client):
        response = client.patch("/api/settings", json={"log_level": "LOUD"})

        assert response.status_code == 400


class TestConnections:

    def test_create_masks_api_key(self, client, connection_test):
        body = create(client)

        assert body["api_key"] == "0123********cdef"
        assert body["url"] == "http://radarr.local:7878"
        assert body["is_default"] is True
        assert body["last_test_success"] is True

    def test_create_failed_test_returns_400(self, client, connection_test):
        connection_test.return_value = {"success": False, "error": "Unauthorized - check API key"}

        response = client.post("/api/connections", json={
            "name": "Radarr", "type": "radarr", "url": "http://radarr.local", "api_key": "bad",
        })

        assert response.status_code == 400
        assert "Unauthorized" in response.json()["detail"]
        assert client.get("/api/connections").json() == []

    def test_unknown_service_type_rejected(self, client, connection_test):
        response = client.post("/api/connections", json={
            "name": "Plex", "type": "plex", "url": "http://plex.local", "api_key": "key",
        })

        assert response.status_code == 422

    def test_crud(self, client, connection_test):
        created = create(client)
        connection_id = created["id"]

        assert client.get(f"/api/connections/{connection_id}").json()["name"] == "Radarr"

        response = client.patch(f"/api/connections/{connection_id}", json={"name": "Radarr 4K", "enabled": False})
        assert response.status_code == 200
        assert response.json()["name"] == "Radarr 4K"
        assert response.json()["enabled"] is False

        assert client.delete(f"/api/connections/{connection_id}").json() == {"deleted": True}
        assert client.get(f"/api/connections/{connection_id}").status_code == 404
        assert client.delete(f"/api/connections/{connection_id}").status_code == 404
        assert client.patch(f"/api/connections/{connection_id}", json={"name": "x"}).status_code == 404

    def test_connection_tests(self, client, connection_test):
        first = create(client)
        second = create(client, name="Sonarr", service_type="sonarr")

        unsaved = client.post("/api/connections/test", json={
            "type": "emby", "url": "http://emby.local", "api_key": "key",
        })
        assert unsaved.json() == {"success": True, "version": "5.2.6", "error": None}

        connection_test.return_value = {"success": False, "error": "Request timeout"}
        existing = client.post(f"/api/connections/{first['id']}/test")
        assert existing.json()["success"] is False
        assert client.get(f"/api/connections/{first['id']}").json()["last_test_error"] == "Request timeout"

        results = client.post("/api/connections/test-all").json()
        assert set(results) == {str(first["id"]), str(second["id"])}

        assert client.post("/api/connections/999/test").status_code == 404
