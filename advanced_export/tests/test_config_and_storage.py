# advanced_export/tests/test_config_and_storage.py

import io
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError
from pydantic import ValidationError

from advanced_export.core.config import Settings
from advanced_export.exports.config import ExportConfig, LimitsConfig
from advanced_export.exports.exceptions import ExportStorageError
from advanced_export.utils.storage import S3Disk, get_disk


class TestSettings:
    def test_settings_build_export_config(self):
        settings = Settings(
            _env_file=None,
            export_max_records=5000,
            export_queue_threshold=100,
            export_queue_enabled=False,
            export_file_disk="s3",
            export_notify_on_failure=False,
            export_locale="pt",
        )

        config = settings.export_config()

        assert config.limits.max_records == 5000
        assert config.limits.chunk_size == 500
        assert config.limits.queue_threshold == 100
        assert config.queue.enabled is False
        assert config.file.disk == "s3"
        assert config.notifications.notify_on_failure is False
        assert config.notifications.notify_on_completion is True
        assert config.locale == "pt"

    def test_fallback_columns_and_filters_come_from_settings(self):
        settings = Settings(
            _env_file=None,
            export_fallback_columns={"id": "Key"},
            export_default_filters=["created_at"],
            export_fallback_filters=["status"],
        )

        config = settings.export_config()

        assert config.fallback_columns == {"id": "Key"}
        assert list(config.default_filters) == ["created_at"]
        assert list(config.fallback_filters) == ["status"]

    def test_default_settings_match_export_defaults(self):
        config = Settings(_env_file=None).export_config()
        defaults = ExportConfig()

        assert config.fallback_columns == defaults.fallback_columns
        assert list(config.default_filters) == list(defaults.default_filters)
        assert list(config.fallback_filters) == list(defaults.fallback_filters)

    def test_redis_urls(self):
        settings = Settings(_env_file=None, redis_host="cache", redis_password="secret")

        assert settings.redis_url == "redis://:secret@cache:6379"
        assert settings.celery_broker == "redis://:secret@cache:6379/1"
        assert settings.celery_backend == "redis://:secret@cache:6379/2"


class TestExportConfig:
    def test_export_config_is_immutable(self):
        config = ExportConfig()

        with pytest.raises(ValidationError):
            config.locale = "pt"

    @pytest.mark.parametrize("limits", [{"max_records": 0}, {"chunk_size": 0}, {"unknown": 1}])
    def test_invalid_limits_are_rejected(self, limits):
        with pytest.raises(ValidationError):
            LimitsConfig(**limits)


class TestLocalDisk:
    def test_local_disk_round_trip(self, local_disk):
        path = local_disk.put("exports/report.xlsx", io.BytesIO(b"content"))

        assert path == "exports/report.xlsx"
        assert local_disk.exists(path)
        assert local_disk.read(path) == b"content"
        assert local_disk.delete(path)
        assert not local_disk.exists(path)
        assert not local_disk.delete(path)

    def test_local_disk_refuses_paths_outside_its_root(self, local_disk):
        with pytest.raises(ExportStorageError):
            local_disk.put("../outside.xlsx", io.BytesIO(b"x"))


class TestS3Disk:
    def test_s3_disk_uploads_with_content_type(self):
        client = MagicMock()
        disk = S3Disk("exports-bucket", client=client)

        disk.put("exports/report.csv", io.BytesIO(b"a,b"))

        args, kwargs = client.upload_fileobj.call_args
        assert args[1:] == ("exports-bucket", "exports/report.csv")
        assert kwargs["ExtraArgs"] == {"ContentType": "text/csv"}
        assert disk.local_path("exports/report.csv") is None

    def test_s3_upload_failure_becomes_storage_error(self):
        client = MagicMock()
        client.upload_fileobj.side_effect = ClientError({"Error": {"Code": "AccessDenied"}}, "PutObject")
        disk = S3Disk("exports-bucket", client=client)

        with pytest.raises(ExportStorageError, match="s3"):
            disk.put("exports/report.xlsx", io.BytesIO(b"x"))

    def test_s3_missing_object(self):
        client = MagicMock()
        client.head_object.side_effect = ClientError({"Error": {"Code": "404"}}, "HeadObject")

        assert not S3Disk("exports-bucket", client=client).exists("exports/missing.xlsx")

    def test_get_disk_rejects_unknown_or_unconfigured_disks(self):
        with pytest.raises(ExportStorageError):
            get_disk("ftp", Settings(_env_file=None))

        with pytest.raises(ExportStorageError):
            get_disk("s3", Settings(_env_file=None, s3_bucket_name=None))
