# advanced_export/tests/test_job_runner.py

import io

import pytest
from celery.exceptions import WorkerLostError
from openpyxl import load_workbook
from sqlalchemy import select

from advanced_export.exports.config import ExportConfig, LimitsConfig
from advanced_export.exports.exceptions import ExportStorageError, UnknownEntityError
from advanced_export.exports.job_runner import ExportJobRunner
from advanced_export.exports.models import ExportJob, ExportStatus
from advanced_export.exports.queue import JobAttempt, run_attempt
from advanced_export.exports.service import ExportRequest, ExportService, OutcomeKind
from advanced_export.notifications.models import UserNotification
from advanced_export.notifications.services import ExportNotifier
from advanced_export.tests.fakes import FailingBackend, FakeQueue


class ReadOnlyDisk:
    """Disk whose writes always fail"""

    name = "local"

    def put(self, path, file_obj):
        raise ExportStorageError(self.name, path, "read-only file system")


@pytest.fixture
def queued_config():
    return ExportConfig(limits=LimitsConfig(chunk_size=2, queue_threshold=3))


@pytest.fixture
def queued_payload(db_session, sample_customers, registry, queued_config):
    """Queue an advanced export of every customer and return its payload"""
    queue = FakeQueue()
    service = ExportService(db_session, queued_config, queue, registry=registry)

    outcome = service.dispatch(
        ExportRequest(
            "customers",
            columns=[{"field": "id", "title": "ID"}, {"field": "region.name", "title": "Region"}],
            owner_user_id=7,
        )
    )
    assert outcome.kind == OutcomeKind.QUEUED
    return queue.payloads[0]


def _runner(db_session, config, registry, disk, notifier=None):
    return ExportJobRunner(
        db_session,
        config,
        disk_resolver=lambda name: disk,
        notifier=notifier,
        registry=registry,
    )


def _notifications(db_session):
    return db_session.execute(select(UserNotification)).scalars().all()


class TestJobAttempt:
    """Test attempt bookkeeping"""

    def test_attempts_remaining(self):
        assert JobAttempt(1, 3).attempts_remaining == 2
        assert JobAttempt(3, 3).attempts_remaining == 0
        assert JobAttempt(3, 3).is_last
        assert JobAttempt(5, 3).attempts_remaining == 0


class TestExportJobRunner:
    """Test background export job scenarios"""

    def test_successful_job_stores_file_and_notifies_owner(
        self,
        db_session, registry, queued_config, queued_payload, local_disk
    ):
        runner = _runner(db_session, queued_config, registry, local_disk)
        retries = []

        result = run_attempt(runner, queued_payload, JobAttempt(1, 3), retry=retries.append)

        assert retries == []
        assert result.records == 5
        assert result.path == f"exports/{queued_payload.file_name}"

        job = db_session.get(ExportJob, queued_payload.export_id)
        assert job.status == ExportStatus.COMPLETED
        assert job.processed_records == 5
        assert job.total_records == 5
        assert job.path == result.path
        assert job.started_at is not None
        assert job.completed_at is not None
        assert job.progress == 100

        workbook = load_workbook(io.BytesIO(local_disk.read(job.path)))
        rows = list(workbook.active.iter_rows(values_only=True))
        assert rows[0] == ("ID", "Region")
        assert [r[0] for r in rows[1:]] == [4, 5, 3, 2, 1]
        assert rows[3] == (3, "North")

        [notification] = _notifications(db_session)
        assert notification.user_id == 7
        assert notification.event == "JOB_COMPLETED"
        assert notification.action_url == f"/api/exports/{job.id}/download"

    def test_third_failed_attempt_marks_job_failed(self, db_session, registry, queued_config, queued_payload):
        runner = _runner(db_session, queued_config, registry, ReadOnlyDisk())
        retries = []

        for number in (1, 2):
            with pytest.raises(ExportStorageError):
                run_attempt(runner, queued_payload, JobAttempt(number, 3), retry=retries.append)

            job = db_session.get(ExportJob, queued_payload.export_id)
            assert job.status == ExportStatus.PENDING
            assert f"Attempt {number} of 3 failed" in job.error_message
            assert _notifications(db_session) == []

        with pytest.raises(ExportStorageError):
            run_attempt(runner, queued_payload, JobAttempt(3, 3), retry=retries.append)

        assert len(retries) == 2

        job = db_session.get(ExportJob, queued_payload.export_id)
        assert job.status == ExportStatus.FAILED
        assert "read-only file system" in job.error_message
        assert job.completed_at is not None

        [notification] = _notifications(db_session)
        assert notification.user_id == 7
        assert notification.event == "JOB_FAILED"
        assert queued_payload.file_name in notification.body

    def test_validation_errors_are_not_retried(self, db_session, registry, queued_config, queued_payload, local_disk):
        runner = _runner(db_session, queued_config, registry, local_disk)
        payload = queued_payload.model_copy(update={"entity_type": "invoices"})
        retries = []

        with pytest.raises(UnknownEntityError):
            run_attempt(runner, payload, JobAttempt(1, 3), retry=retries.append)

        assert retries == []
        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.FAILED

    def test_failure_notification_errors_do_not_escape(self, db_session, registry, queued_config, queued_payload):
        backend = FailingBackend()
        notifier = ExportNotifier(queued_config, backend)
        runner = _runner(db_session, queued_config, registry, ReadOnlyDisk(), notifier=notifier)

        with pytest.raises(ExportStorageError):
            run_attempt(runner, queued_payload, JobAttempt(3, 3), retry=lambda exc: None)

        assert backend.attempts == 1
        job = db_session.get(ExportJob, queued_payload.export_id)
        assert job.status == ExportStatus.FAILED

    def test_records_gone_before_execution_completes_without_file(
        self,
        db_session, registry, queued_config, queued_payload, local_disk
    ):
        payload = queued_payload.model_copy(update={"filters": {"status": "archived"}})
        runner = _runner(db_session, queued_config, registry, local_disk)

        result = run_attempt(runner, payload, JobAttempt(1, 3), retry=lambda exc: None)

        assert result is None
        job = db_session.get(ExportJob, payload.export_id)
        assert job.status == ExportStatus.COMPLETED
        assert job.total_records == 0
        assert job.path is None

        [notification] = _notifications(db_session)
        assert notification.event == "NO_DATA"

    def test_interrupted_attempt_fails_the_job_once(
        self,
        db_session, registry, queued_config, queued_payload, local_disk
    ):
        runner = _runner(db_session, queued_config, registry, local_disk)
        job = db_session.get(ExportJob, queued_payload.export_id)
        job.status = ExportStatus.PROCESSING
        db_session.commit()

        assert runner.on_interrupted(queued_payload, WorkerLostError("lost"))
        assert not runner.on_interrupted(queued_payload, WorkerLostError("lost"))

        job = db_session.get(ExportJob, queued_payload.export_id)
        assert job.status == ExportStatus.FAILED
        assert job.error_message.startswith("Export attempt interrupted")

        [notification] = _notifications(db_session)
        assert notification.event == "JOB_FAILED"

    def test_interruption_after_completion_is_ignored(
        self,
        db_session, registry, queued_config, queued_payload, local_disk
    ):
        runner = _runner(db_session, queued_config, registry, local_disk)
        run_attempt(runner, queued_payload, JobAttempt(1, 3), retry=lambda exc: None)

        assert not runner.on_interrupted(queued_payload, WorkerLostError("lost"))

        job = db_session.get(ExportJob, queued_payload.export_id)
        assert job.status == ExportStatus.COMPLETED
        assert [n.event for n in _notifications(db_session)] == ["JOB_COMPLETED"]
