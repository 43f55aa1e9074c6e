# advanced_export/tests/test_tasks.py

from unittest.mock import MagicMock

import pytest
from celery.exceptions import TimeLimitExceeded, WorkerLostError
from sqlalchemy import select

from advanced_export.exports import tasks
from advanced_export.exports.config import ExportConfig, LimitsConfig, QueueConfig
from advanced_export.exports.entities import export_registry
from advanced_export.exports.exceptions import ExportStorageError
from advanced_export.exports.models import ExportJob, ExportStatus
from advanced_export.exports.queue import PROCESS_EXPORT_TASK, CeleryExportQueue, ExportJobPayload
from advanced_export.exports.service import ExportRequest, ExportService
from advanced_export.notifications.models import UserNotification
from advanced_export.tests.fakes import FakeQueue
from advanced_export.utils import storage


class ReadOnlyDisk:
    name = "local"

    def put(self, path, file_obj):
        raise ExportStorageError(self.name, path, "read-only file system")


@pytest.fixture
def queued_config():
    return ExportConfig(limits=LimitsConfig(chunk_size=2, queue_threshold=3))


@pytest.fixture
def worker_env(monkeypatch, db_session, registry, queued_config, local_disk):
    """Point the Celery task at the test session, registry, disk and config"""
    monkeypatch.setattr(tasks, "SessionLocal", lambda: db_session)
    monkeypatch.setattr(tasks, "get_export_config", lambda: queued_config)
    monkeypatch.setitem(export_registry._entities, "customers", registry.get("customers"))
    monkeypatch.setitem(storage._disks, "local", local_disk)
    return monkeypatch


@pytest.fixture
def payload(db_session, sample_customers, registry, queued_config):
    queue = FakeQueue()
    ExportService(db_session, queued_config, queue, registry=registry).dispatch(
        ExportRequest("customers", owner_user_id=7)
    )
    return queue.payloads[0]


def _payload(**overrides):
    values = {"export_id": 12, "entity_type": "customers", "file_name": "customers.xlsx", "template": "t"}
    values.update(overrides)
    return ExportJobPayload(**values)


class TestCeleryExportQueue:
    """Test dispatching jobs to Celery"""

    def test_celery_queue_sends_task_by_name(self):
        celery_app = MagicMock()
        celery_app.send_task.return_value.id = "abc-123"

        task_id = CeleryExportQueue(ExportConfig(), celery_app=celery_app).enqueue(
            _payload(filters={"status": {"values": ["active"]}})
        )

        assert task_id == "abc-123"
        args, kwargs = celery_app.send_task.call_args
        assert args == (PROCESS_EXPORT_TASK,)
        assert kwargs["queue"] == "exports"
        assert kwargs["kwargs"]["payload"]["export_id"] == 12
        assert kwargs["kwargs"]["payload"]["filters"] == {"status": {"values": ["active"]}}
        celery_app.connection_for_write.assert_not_called()

    def test_celery_queue_uses_configured_connection(self):
        celery_app = MagicMock()
        config = ExportConfig(queue=QueueConfig(connection="redis://other:6379/3", name="heavy"))

        CeleryExportQueue(config, celery_app=celery_app).enqueue(_payload())

        celery_app.connection_for_write.assert_called_once_with("redis://other:6379/3")
        assert celery_app.send_task.call_args.kwargs["queue"] == "heavy"


class TestProcessExportJob:
    """Test the export Celery task"""

    def test_task_generates_the_export(self, worker_env, db_session, payload, local_disk):
        result = tasks.process_export_job.run(payload.model_dump(mode="json"))

        assert result["status"] == "success"
        assert result["record_count"] == 5
        assert local_disk.exists(result["path"])

        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.COMPLETED

    def test_failed_first_attempt_leaves_job_pending(self, worker_env, db_session, payload):
        worker_env.setitem(storage._disks, "local", ReadOnlyDisk())

        with pytest.raises(ExportStorageError):
            tasks.process_export_job.run(payload.model_dump(mode="json"))

        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.PENDING
        assert job.error_message.startswith("Attempt 1 of 3 failed")

    def test_task_options_follow_queue_config(self):
        task = tasks.process_export_job
        queue_config = tasks._queue_config

        assert task.name == PROCESS_EXPORT_TASK
        assert task.max_retries == queue_config.tries - 1
        assert task.default_retry_delay == queue_config.retry_delay
        assert task.time_limit == queue_config.timeout
        assert task.soft_time_limit == max(queue_config.timeout - 30, 1)
        assert task.acks_late is True
        assert not task.reject_on_worker_lost

    def test_default_queue_config_allows_three_tries_in_ten_minutes(self):
        queue_config = ExportConfig().queue

        assert queue_config.tries - 1 == 2
        assert queue_config.timeout == 600


class TestInterruptedExportTasks:
    """Test jobs whose attempt was killed before it could clean up"""

    def _start(self, db_session, payload):
        job = db_session.get(ExportJob, payload.export_id)
        job.status = ExportStatus.PROCESSING
        db_session.commit()
        return {"payload": payload.model_dump(mode="json")}

    def test_hard_time_limit_fails_the_job(self, worker_env, db_session, payload):
        task_kwargs = self._start(db_session, payload)

        tasks.process_export_job.on_failure(TimeLimitExceeded(600), "task-1", (), task_kwargs, None)

        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.FAILED
        assert "interrupted" in job.error_message
        assert "TimeLimitExceeded" in job.error_message
        assert job.completed_at is not None

        [notification] = db_session.execute(select(UserNotification)).scalars().all()
        assert notification.user_id == 7
        assert notification.event == "JOB_FAILED"

    def test_lost_worker_reported_by_the_pool_fails_the_job(self, worker_env, db_session, payload):
        task_kwargs = self._start(db_session, payload)

        tasks.fail_export_on_interruption(
            sender=tasks.process_export_job,
            task_id="task-2",
            exception=WorkerLostError("Worker exited prematurely: signal 9 (SIGKILL)."),
            args=(),
            kwargs=task_kwargs,
        )

        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.FAILED
        assert "WorkerLostError" in job.error_message

    def test_positional_payload_is_accepted(self, worker_env, db_session, payload):
        task_kwargs = self._start(db_session, payload)

        assert tasks.fail_interrupted_job((task_kwargs["payload"],), {}, TimeLimitExceeded(600))

        assert db_session.get(ExportJob, payload.export_id).status == ExportStatus.FAILED

    def test_ordinary_failures_are_left_to_the_task(self, worker_env, db_session, payload):
        task_kwargs = self._start(db_session, payload)

        tasks.fail_export_on_interruption(
            sender=tasks.process_export_job,
            task_id="task-3",
            exception=RuntimeError("boom"),
            args=(),
            kwargs=task_kwargs,
        )

        assert db_session.get(ExportJob, payload.export_id).status == ExportStatus.PROCESSING

    def test_other_tasks_are_ignored(self, worker_env, db_session, payload):
        task_kwargs = self._start(db_session, payload)
        other_task = MagicMock()
        other_task.name = "reports.weekly"

        tasks.fail_export_on_interruption(
            sender=other_task,
            task_id="task-4",
            exception=TimeLimitExceeded(600),
            args=(),
            kwargs=task_kwargs,
        )

        assert db_session.get(ExportJob, payload.export_id).status == ExportStatus.PROCESSING

    def test_finished_jobs_are_not_touched(self, worker_env, db_session, payload):
        result = tasks.process_export_job.run(payload.model_dump(mode="json"))
        assert result["status"] == "success"

        failed = tasks.fail_interrupted_job((), {"payload": payload.model_dump(mode="json")}, TimeLimitExceeded(600))

        assert failed is False
        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.COMPLETED
        assert job.error_message is None

    def test_missing_payload_is_logged_and_ignored(self, worker_env):
        assert tasks.fail_interrupted_job((), {}, WorkerLostError("lost")) is False
