"""Tests for the mirror sync worker."""

from unittest.mock import MagicMock, patch

import psycopg2
import pytest

from pgmirror.cdc.manager import MirrorSyncWorker, create_worker
from pgmirror.config.settings import Settings
from pgmirror.exceptions import ConfigurationError, UnknownTableError
from tests.fakes import wait_for


@pytest.fixture
def worker(registry, fetcher, mirror, stats, retry):
    worker = MirrorSyncWorker(
        registry=registry,
        fetcher=fetcher,
        mirror=mirror,
        connection_params={"host": "localhost"},
        stats=stats,
        retry=retry,
        workers=2
    )
    worker.listener = MagicMock(wraps=worker.listener)
    worker.listener.start = MagicMock()
    worker.listener.stop = MagicMock()
    worker.listener.get_status.return_value = {"is_running": True}
    yield worker
    worker.queue.stop()


class TestLifecycle:

    def test_start_and_stop(self, worker):
        worker.start()

        assert worker.is_running
        assert worker.queue.is_running
        worker.listener.start.assert_called_once()

        worker.stop()

        assert not worker.is_running
        assert not worker.queue.is_running
        worker.listener.stop.assert_called_once()

    def test_start_is_idempotent(self, worker):
        worker.start()
        worker.start()
        worker.listener.start.assert_called_once()

    def test_stop_when_not_running(self, worker):
        worker.stop()
        worker.listener.stop.assert_not_called()

    def test_start_fails_when_primary_unreachable(self, worker, fetcher):
        fetcher.ping_error = ConnectionError("db down")

        with pytest.raises(ConnectionError):
            worker.start()

        assert not worker.is_running
        worker.listener.start.assert_not_called()

    def test_start_fails_when_listener_cannot_connect(self, worker):
        worker.listener.start.side_effect = RuntimeError("LISTEN failed")

        with pytest.raises(RuntimeError):
            worker.start()

        assert not worker.is_running
        assert not worker.queue.is_running

    def test_start_resets_stats(self, worker, stats):
        stats.record_error()
        worker.start()
        assert stats.error_count == 0

    def test_initial_sync_on_start(self, worker, fetcher, mirror):
        fetcher.put("conversations", {"id": 1, "user_id": "u1"})
        worker.initial_sync = True

        worker.start()

        assert mirror.get("conversations", 1) == {"id": 1, "user_id": "u1"}

    def test_close_releases_fetcher(self, worker, fetcher):
        worker.start()
        worker.close()
        assert fetcher.closed


class TestChangeFlow:

    def test_notification_reaches_mirror(self, worker, fetcher, mirror, stats):
        fetcher.put("conversations", {"id": 42, "user_id": "u1", "user_message": "hi"})
        worker.start()

        worker.listener.handle_notification("sync_conversations", "INSERT:42")

        assert wait_for(lambda: mirror.get("conversations", 42) is not None)
        assert wait_for(lambda: stats.sync_count == 1)


class TestManualSync:

    def test_single_table(self, worker, fetcher, mirror):
        fetcher.put("conversations", {"id": 1})
        fetcher.put("conversations", {"id": 2})

        summaries = worker.manual_sync("conversations")

        assert len(summaries) == 1
        assert summaries[0].rows_synced == 2
        assert fetcher.page_calls == [("conversations", 100, 0)]

    def test_all_tables_with_limit(self, worker, fetcher, registry):
        summaries = worker.manual_sync(limit=5)

        assert [summary.table_name for summary in summaries] == registry.table_names()
        assert all(call[1] == 5 for call in fetcher.page_calls)

    def test_unknown_table(self, worker):
        with pytest.raises(UnknownTableError):
            worker.manual_sync("missing")

    def test_zero_limit_reads_nothing(self, worker, fetcher, mirror):
        for i in range(1, 121):
            fetcher.put("conversations", {"id": i})

        summaries = worker.manual_sync("conversations", 0)

        assert fetcher.page_calls == [("conversations", 0, 0)]
        assert summaries[0].rows_read == 0
        assert mirror.upsert_calls == []

    def test_negative_limit_is_rejected(self, worker, fetcher):
        with pytest.raises(ValueError):
            worker.manual_sync("conversations", -1)
        assert fetcher.page_calls == []


def test_health_status(worker):
    worker.start()

    status = worker.get_health_status()

    assert status["is_running"] is True
    assert status["sync_count"] == 0
    assert status["tables"] == worker.registry.table_names()
    assert status["listener"] == {"is_running": True}
    assert status["queue"]["workers"] == 2


def test_health_reports_stopped_listener(worker):
    worker.start()
    worker.listener.is_running = False

    assert worker.get_health_status()["is_running"] is False


def test_health_after_listener_connection_loss(registry, fetcher, mirror, stats, retry):
    worker = MirrorSyncWorker(
        registry=registry,
        fetcher=fetcher,
        mirror=mirror,
        connection_params={"host": "localhost"},
        stats=stats,
        retry=retry,
        reconnect=False
    )
    lost = MagicMock()
    lost.closed = 0
    lost.notifies = []
    lost.poll.side_effect = psycopg2.OperationalError("terminating connection due to administrator command")

    with patch("pgmirror.cdc.postgres_listener.psycopg2.connect", return_value=lost), \
            patch("pgmirror.cdc.postgres_listener.select.select", side_effect=lambda r, w, x, t: (r, [], [])):
        worker.start()
        try:
            assert wait_for(lambda: not worker.listener.is_running)
            status = worker.get_health_status()
        finally:
            worker.stop()

    assert status["is_running"] is False
    assert status["error_count"] == 1
    assert "terminating connection" in status["listener"]["last_error"]


def test_create_worker_requires_credentials():
    settings = Settings(_env_file=None, supabase_url=None, supabase_key=None)
    with pytest.raises(ConfigurationError):
        create_worker(settings)


def test_create_worker_from_settings(monkeypatch):
    created = MagicMock()
    monkeypatch.setattr("pgmirror.mirror.supabase_store.create_client", created)
    settings = Settings(
        _env_file=None,
        supabase_url="https://x.supabase.co",
        supabase_key="key",
        sync_max_attempts=5,
        bulk_batch_size=25,
        sync_workers=3
    )

    worker = create_worker(settings)

    assert worker.pipeline.retry.max_attempts == 5
    assert worker.bulk.batch_size == 25
    assert worker.queue.workers == 3
    assert worker.mirror.client is created.return_value
    assert worker.listener.connection_params["dbname"] == settings.postgres_db
