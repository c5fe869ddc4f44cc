"""Tests for the background workers.

Tests cover:
- WorkerBase cycle semantics
- ScheduledNotificationWorker lifecycle hooks
- WorkerRunner orchestration
"""

from datetime import datetime, timedelta
from unittest.mock import Mock, patch
from uuid import uuid4

import pytest
from sqlmodel import Session

from app.models.scheduled_notification import ScheduledNotification, ScheduledStatus
from app.workers.base import WorkerBase, WorkerResult, WorkerStatus
from app.workers.runner import RunnerResult, WorkerRunner
from app.workers.scheduled_worker import ScheduledNotificationWorker

NOW = datetime(2026, 10, 19, 8, 0, 0)


class ListWorker(WorkerBase[dict]):
    """In-memory worker used to exercise WorkerBase.run."""

    def __init__(self, items, fail_ids=(), taken_ids=()):
        super().__init__(batch_size=10)
        self.items = items
        self.fail_ids = set(fail_ids)
        self.taken_ids = set(taken_ids)
        self.completed = []
        self.failed = {}

    @property
    def worker_name(self) -> str:
        return "ListWorker"

    def fetch_pending(self, session):
        return self.items

    def mark_processing(self, session, item):
        return item["id"] not in self.taken_ids

    def process_item(self, session, item):
        if item["id"] in self.fail_ids:
            raise RuntimeError(f"cannot process {item['id']}")

    def mark_completed(self, session, item):
        self.completed.append(item["id"])

    def mark_failed(self, session, item, error):
        self.failed[item["id"]] = error

    def get_item_id(self, item):
        return item["id"]


# ============================================================================
# WorkerBase Tests
# ============================================================================

class TestWorkerBase:
    """Tests for the WorkerBase processing cycle."""

    def test_no_work(self):
        result = ListWorker([]).run(Mock())
        assert result.status == WorkerStatus.NO_WORK

    def test_all_processed(self):
        items = [{"id": uuid4()}, {"id": uuid4()}]
        worker = ListWorker(items)

        result = worker.run(Mock())

        assert result.status == WorkerStatus.SUCCESS
        assert result.processed_count == 2
        assert worker.completed == [i["id"] for i in items]

    def test_failure_is_isolated(self):
        """One failing item is rolled back and recorded; the rest continue."""
        bad, good = uuid4(), uuid4()
        session = Mock()
        worker = ListWorker([{"id": bad}, {"id": good}], fail_ids=[bad])

        result = worker.run(session)

        assert result.status == WorkerStatus.PARTIAL
        assert result.failed_count == 1
        assert worker.completed == [good]
        assert worker.failed[bad] == f"cannot process {bad}"
        assert result.errors == [{"item_id": str(bad), "error": f"cannot process {bad}"}]
        session.rollback.assert_called_once()

    def test_unclaimed_items_are_skipped(self):
        taken = uuid4()
        worker = ListWorker([{"id": taken}], taken_ids=[taken])

        result = worker.run(Mock())

        assert result.skipped_count == 1
        assert result.processed_count == 0
        assert worker.completed == []

    def test_fetch_error_fails_cycle(self):
        worker = ListWorker([])
        worker.fetch_pending = Mock(side_effect=RuntimeError("database unavailable"))

        result = worker.run(Mock())

        assert result.status == WorkerStatus.FAILED
        assert result.errors[-1]["error"] == "database unavailable"

    def test_result_to_dict(self):
        d = WorkerResult(status=WorkerStatus.SUCCESS, processed_count=3, skipped_count=1).to_dict()
        assert d["status"] == "success"
        assert d["processed_count"] == 3
        assert d["skipped_count"] == 1


# ============================================================================
# ScheduledNotificationWorker Tests
# ============================================================================

class TestScheduledNotificationWorker:
    """Tests for ScheduledNotificationWorker hooks."""

    def make_item(self, session, **overrides):
        values = dict(
            name="Exam reminder",
            type="exam.reminder",
            recipients=[str(uuid4())],
            schedule={"type": "weekly"},
            scheduled_at=NOW - timedelta(minutes=5),
        )
        values.update(overrides)
        item = ScheduledNotification(**values)
        session.add(item)
        session.commit()
        session.refresh(item)
        return item

    def test_worker_name(self):
        assert ScheduledNotificationWorker().worker_name == "ScheduledNotificationWorker"

    def test_fetch_pending_returns_due_entries_oldest_first(self, db_session: Session):
        newer = self.make_item(db_session, scheduled_at=NOW - timedelta(minutes=1))
        older = self.make_item(db_session, scheduled_at=NOW - timedelta(hours=1))
        self.make_item(db_session, scheduled_at=NOW + timedelta(minutes=1))
        self.make_item(db_session, status=ScheduledStatus.CANCELLED)

        items = ScheduledNotificationWorker(now=NOW).fetch_pending(db_session)

        assert [i.id for i in items] == [older.id, newer.id]

    def test_fetch_pending_respects_batch_size(self, db_session: Session):
        for _ in range(3):
            self.make_item(db_session)

        items = ScheduledNotificationWorker(batch_size=2, now=NOW).fetch_pending(db_session)
        assert len(items) == 2

    def test_mark_completed_reschedules_recurring(self, db_session: Session):
        item = self.make_item(db_session, failure_reason="previous failure")
        worker = ScheduledNotificationWorker(now=NOW)

        worker.mark_completed(db_session, item)
        db_session.commit()

        assert item.status == ScheduledStatus.PENDING
        assert item.scheduled_at == NOW + timedelta(weeks=1)
        assert item.run_count == 1
        assert item.failure_reason is None

    def test_mark_completed_once_is_sent(self, db_session: Session):
        item = self.make_item(db_session, schedule={"type": "once", "datetime": "2026-10-19T07:55:00"})

        ScheduledNotificationWorker(now=NOW).mark_completed(db_session, item)

        assert item.status == ScheduledStatus.SENT
        assert item.sent_at == NOW

    def test_mark_failed_records_reason(self, db_session: Session):
        item = self.make_item(db_session)

        ScheduledNotificationWorker(now=NOW).mark_failed(db_session, item, "All 1 deliveries failed")

        assert item.status == ScheduledStatus.FAILED
        assert item.failure_reason == "All 1 deliveries failed"


# ============================================================================
# WorkerRunner Tests
# ============================================================================

class TestWorkerRunner:
    """Tests for WorkerRunner."""

    def test_runner_defaults_to_scheduled_worker(self):
        with patch("app.workers.runner.get_settings") as mock_settings:
            mock_settings.return_value.WORKER_BATCH_SIZE = 25

            runner = WorkerRunner()

            assert [w.worker_name for w in runner._workers] == ["ScheduledNotificationWorker"]
            assert runner._workers[0].batch_size == 25

    def test_zero_batch_size_is_kept(self):
        with patch("app.workers.runner.get_settings") as mock_settings:
            mock_settings.return_value.WORKER_BATCH_SIZE = 25

            runner = WorkerRunner(batch_size=0)

            assert runner.batch_size == 0
            assert runner._workers[0].batch_size == 0

    def test_negative_batch_size_rejected(self):
        with pytest.raises(ValueError):
            WorkerRunner(batch_size=-1)
        with pytest.raises(ValueError):
            ScheduledNotificationWorker(batch_size=-1)

    def test_run_once_aggregates(self):
        worker = Mock(worker_name="ScheduledNotificationWorker")
        worker.run.return_value = WorkerResult(
            status=WorkerStatus.PARTIAL, processed_count=4, failed_count=1, skipped_count=2,
        )
        runner = WorkerRunner(batch_size=10, workers=[worker])

        result = runner.run_once(session=Mock())

        assert isinstance(result, RunnerResult)
        assert result.workers_run == 1
        assert result.total_processed == 4
        assert result.total_failed == 1
        assert result.total_skipped == 2
        assert result.completed_at is not None

    def test_worker_exception_is_recorded(self):
        worker = Mock(worker_name="Broken")
        worker.run.side_effect = RuntimeError("boom")
        runner = WorkerRunner(batch_size=10, workers=[worker])

        result = runner.run_once(session=Mock())

        assert result.workers_run == 0
        assert result.errors == ["Broken failed: boom"]

    def test_run_loop_stops_at_max_iterations(self):
        runner = WorkerRunner(batch_size=10, workers=[Mock(worker_name="W")])
        runner.run_once = Mock(return_value=RunnerResult(started_at=NOW))

        with patch("app.workers.runner.time.sleep") as sleep, \
                patch.object(runner, "_setup_signal_handlers"):
            runner.run_loop(interval_seconds=1, max_iterations=3)

        assert runner.run_once.call_count == 3
        assert sleep.call_count == 3

    def test_request_shutdown_stops_loop(self):
        runner = WorkerRunner(batch_size=10, workers=[Mock(worker_name="W")])
        runner.run_once = Mock(side_effect=lambda: runner.request_shutdown() or RunnerResult(started_at=NOW))

        with patch("app.workers.runner.time.sleep") as sleep, \
                patch.object(runner, "_setup_signal_handlers"):
            runner.run_loop(interval_seconds=1)

        assert runner.run_once.call_count == 1
        sleep.assert_not_called()

    def test_runner_result_to_dict(self):
        result = RunnerResult(started_at=NOW, completed_at=NOW + timedelta(seconds=2))
        result.total_processed = 5

        d = result.to_dict()

        assert d["duration_ms"] == 2000.0
        assert d["total_processed"] == 5
