### advanced_export/utils/storage.py

"""
Storage disks for generated export files.

``local`` writes below a root directory on the filesystem, ``s3`` uploads to
the configured bucket through boto3.
"""

import os
import shutil
from pathlib import Path
from typing import BinaryIO, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from advanced_export.core.config import Settings, settings
from advanced_export.exports.exceptions import ExportStorageError
from advanced_export.utils.logger import get_logger

logger = get_logger(__name__)

CONTENT_TYPES = {
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".csv": "text/csv",
}


class LocalDisk:
    """Filesystem disk rooted at a directory"""

    name = "local"

    def __init__(self, root: str):
        self.root = Path(root)

    def _full_path(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if self.root.resolve() not in full.parents and full != self.root.resolve():
            raise ExportStorageError(self.name, path, "path escapes the storage root")
        return full

    def put(self, path: str, file_obj: BinaryIO) -> str:
        target = self._full_path(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            file_obj.seek(0)
            with open(target, "wb") as out:
                shutil.copyfileobj(file_obj, out)
        except OSError as e:
            logger.error("Failed to write export file", disk=self.name, path=path, error=str(e))
            raise ExportStorageError(self.name, path, str(e)) from e
        logger.info("Stored export file", disk=self.name, path=str(target))
        return path

    def exists(self, path: str) -> bool:
        return self._full_path(path).exists()

    def read(self, path: str) -> bytes:
        return self._full_path(path).read_bytes()

    def local_path(self, path: str) -> Optional[str]:
        return str(self._full_path(path))

    def delete(self, path: str) -> bool:
        target = self._full_path(path)
        if not target.exists():
            return False
        target.unlink()
        return True


class S3Disk:
    """Disk backed by an S3 bucket"""

    name = "s3"

    def __init__(self, bucket_name: str, region: Optional[str] = None,
                 access_key_id: Optional[str] = None, secret_access_key: Optional[str] = None,
                 url_expiration: int = 3600, client=None):
        """Initialize S3 client with AWS credentials"""
        self.bucket_name = bucket_name
        self.url_expiration = url_expiration
        self.s3_client = client or boto3.client(
            "s3",
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name=region,
        )

    def put(self, path: str, file_obj: BinaryIO) -> str:
        extra_args = {}
        content_type = CONTENT_TYPES.get(os.path.splitext(path)[1])
        if content_type:
            extra_args["ContentType"] = content_type
        try:
            file_obj.seek(0)
            self.s3_client.upload_fileobj(file_obj, self.bucket_name, path, ExtraArgs=extra_args)
        except (ClientError, BotoCoreError) as e:
            logger.error("Error uploading export to S3", bucket=self.bucket_name, key=path, error=str(e))
            raise ExportStorageError(self.name, path, str(e)) from e
        logger.info("Uploaded export file to S3", bucket=self.bucket_name, key=path)
        return path

    def exists(self, path: str) -> bool:
        try:
            self.s3_client.head_object(Bucket=self.bucket_name, Key=path)
            return True
        except ClientError:
            return False

    def read(self, path: str) -> bytes:
        response = self.s3_client.get_object(Bucket=self.bucket_name, Key=path)
        return response["Body"].read()

    def local_path(self, path: str) -> Optional[str]:
        return None

    def url(self, path: str) -> str:
        """Presigned URL for temporary access to the object"""
        return self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket_name, "Key": path},
            ExpiresIn=self.url_expiration,
        )

    def delete(self, path: str) -> bool:
        try:
            self.s3_client.delete_object(Bucket=self.bucket_name, Key=path)
            return True
        except ClientError as e:
            logger.warning("Failed to delete export from S3", key=path, error=str(e))
            return False


_disks: Dict[str, object] = {}


def get_disk(name: str, app_settings: Settings = None):
    """Return (and cache) the storage disk with the given name."""
    app_settings = app_settings or settings
    if name in _disks:
        return _disks[name]

    if name == "local":
        disk = LocalDisk(app_settings.export_storage_root)
    elif name == "s3":
        if not app_settings.s3_bucket_name:
            raise ExportStorageError(name, "", "S3_BUCKET_NAME is not configured")
        disk = S3Disk(
            bucket_name=app_settings.s3_bucket_name,
            region=app_settings.aws_region,
            access_key_id=app_settings.aws_access_key_id,
            secret_access_key=app_settings.aws_secret_access_key,
            url_expiration=app_settings.s3_presigned_url_expiration,
        )
    else:
        raise ExportStorageError(name, "", "unknown storage disk")

    _disks[name] = disk
    return disk