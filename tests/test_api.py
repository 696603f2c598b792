"""Tests for the FastAPI operator surface."""

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from pgmirror.api import main as api_main
from pgmirror.cdc.bulk import TableSyncSummary
from pgmirror.cdc.manager import MirrorSyncWorker
from pgmirror.exceptions import ConfigurationError, MirrorWriteError, UnknownTableError


@pytest.fixture
def worker(registry, fetcher, mirror, stats, retry):
    return MirrorSyncWorker(
        registry=registry,
        fetcher=fetcher,
        mirror=mirror,
        connection_params={"host": "localhost"},
        stats=stats,
        retry=retry
    )


@pytest.fixture
def client(worker):
    api_main.set_worker(worker)
    yield TestClient(api_main.app)
    api_main.set_worker(None)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_sync_status(client, worker):
    response = client.get("/sync/status")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["is_running"] is False
    assert data["sync_count"] == 0
    assert data["tables"] == worker.registry.table_names()
    assert "listener" in data
    assert "queue" in data


def test_sync_status_not_configured(monkeypatch):
    def fail(settings):
        raise ConfigurationError("Missing SUPABASE_URL environment variable")

    api_main.set_worker(None)
    monkeypatch.setattr(api_main, "create_worker", fail)

    response = TestClient(api_main.app).get("/sync/status")

    assert response.json() == {
        "status": "not_configured",
        "message": "Missing SUPABASE_URL environment variable",
    }


def test_list_tables(client):
    response = client.get("/sync/tables")

    tables = response.json()["tables"]
    assert tables[0]["table_name"] == "conversations"
    assert tables[0]["channel"] == "sync_conversations"


def test_manual_sync_single_table(client, fetcher, mirror):
    fetcher.put("conversations", {"id": 1, "user_id": "u1"})

    response = client.post("/sync/manual", json={"table": "conversations"})

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "success"
    assert data["tables"][0]["rows_synced"] == 1
    assert mirror.get("conversations", 1) == {"id": 1, "user_id": "u1"}


def test_manual_sync_all_tables(client, registry):
    response = client.post("/sync/manual", json={"limit": 10})

    assert response.status_code == 200
    assert [t["table_name"] for t in response.json()["tables"]] == registry.table_names()


def test_manual_sync_partial(client, fetcher, mirror):
    fetcher.put("conversations", {"id": 1})
    mirror.fail_on_upsert_call = {1: MirrorWriteError("boom")}

    response = client.post("/sync/manual", json={"table": "conversations"})

    assert response.json()["status"] == "partial"
    assert response.json()["tables"][0]["batches_failed"] == 1


def test_manual_sync_unknown_table(client):
    response = client.post("/sync/manual", json={"table": "missing"})
    assert response.status_code == 400


def test_manual_sync_rejects_bad_limit(client):
    response = client.post("/sync/manual", json={"limit": 0})
    assert response.status_code == 422


class TestControl:

    @pytest.fixture
    def mock_worker(self):
        worker = MagicMock(spec=MirrorSyncWorker)
        api_main.set_worker(worker)
        yield worker
        api_main.set_worker(None)

    def test_start(self, mock_worker):
        response = TestClient(api_main.app).post("/sync/control", json={"action": "start"})

        assert response.status_code == 200
        assert response.json()["message"] == "Mirror sync started"
        mock_worker.start.assert_called_once()

    def test_stop(self, mock_worker):
        response = TestClient(api_main.app).post("/sync/control", json={"action": "stop"})

        assert response.status_code == 200
        mock_worker.stop.assert_called_once()

    def test_restart(self, mock_worker):
        response = TestClient(api_main.app).post("/sync/control", json={"action": "restart"})

        assert response.json()["message"] == "Mirror sync restarted"
        mock_worker.stop.assert_called_once()
        mock_worker.start.assert_called_once()

    def test_unknown_action(self, mock_worker):
        response = TestClient(api_main.app).post("/sync/control", json={"action": "pause"})
        assert response.status_code == 400

    def test_start_failure(self, mock_worker):
        mock_worker.start.side_effect = ConnectionError("db down")

        response = TestClient(api_main.app).post("/sync/control", json={"action": "start"})

        assert response.status_code == 500
        assert "db down" in response.json()["detail"]

    def test_manual_sync_summary_passthrough(self, mock_worker):
        mock_worker.manual_sync.return_value = [TableSyncSummary("conversations", rows_read=2, rows_synced=2)]

        response = TestClient(api_main.app).post("/sync/manual", json={"table": "conversations"})

        mock_worker.manual_sync.assert_called_once_with("conversations", None)
        assert response.json()["status"] == "success"

    def test_manual_sync_unknown_table_from_worker(self, mock_worker):
        mock_worker.manual_sync.side_effect = UnknownTableError("Table 'x' is not configured for sync")

        response = TestClient(api_main.app).post("/sync/manual", json={"table": "x"})

        assert response.status_code == 400

    def test_manual_sync_invalid_limit_from_worker(self, mock_worker):
        mock_worker.manual_sync.side_effect = ValueError("limit must not be negative, got -1")

        response = TestClient(api_main.app).post("/sync/manual", json={"table": "conversations"})

        assert response.status_code == 400
