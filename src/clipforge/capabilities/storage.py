"""Blob storage: local directory or S3-compatible bucket."""

from __future__ import annotations

import logging
import mimetypes
import os
import shutil
import tempfile
from pathlib import Path

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from clipforge.capabilities.base import BlobStorage
from clipforge.errors import TransientExternalFailure

logger = logging.getLogger(__name__)


class LocalBlobStorage(BlobStorage):
    """Stores blobs as files under ``root``; keys map to relative paths.

    Uploads copy to a temp file in the destination directory and then
    ``os.replace`` it, so a key never points at a partial file.
    """

    def __init__(self, root: Path) -> None:
        self._root = root

    def path_for(self, ref: str) -> Path:
        path = (self._root / ref).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise ValueError(f"Storage key escapes the storage root: {ref}")
        return path

    def upload(self, local_path: Path, key: str, content_type: str = "") -> str:
        target = self.path_for(key)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
        os.close(fd)
        try:
            shutil.copyfile(local_path, tmp_name)
            os.replace(tmp_name, target)
        except OSError as exc:
            Path(tmp_name).unlink(missing_ok=True)
            raise TransientExternalFailure(f"Local upload of {key} failed: {exc}") from exc
        logger.debug("Stored %s (%d bytes)", key, target.stat().st_size)
        return key

    def presigned_url(self, ref: str, ttl_seconds: int = 3600) -> str:
        # ffmpeg and the transcribers accept plain paths
        return str(self.path_for(ref))

    def delete(self, ref: str) -> None:
        self.path_for(ref).unlink(missing_ok=True)

    def exists(self, ref: str) -> bool:
        return self.path_for(ref).is_file()


class S3BlobStorage(BlobStorage):
    """S3 (or MinIO) bucket via boto3. ``upload_file`` only exposes the
    object once the (multipart) upload completes."""

    def __init__(
        self,
        bucket: str,
        *,
        region: str = "",
        endpoint_url: str = "",
        client: object | None = None,
    ) -> None:
        self._bucket = bucket
        self._s3 = client or boto3.client(
            "s3",
            region_name=region or None,
            endpoint_url=endpoint_url or None,
        )

    def upload(self, local_path: Path, key: str, content_type: str = "") -> str:
        content_type = content_type or mimetypes.guess_type(local_path.name)[0] or ""
        extra = {"ContentType": content_type} if content_type else None
        try:
            self._s3.upload_file(str(local_path), self._bucket, key, ExtraArgs=extra)
        except (ClientError, BotoCoreError) as exc:
            raise TransientExternalFailure(f"S3 upload of {key} failed: {exc}") from exc
        logger.debug("Uploaded s3://%s/%s", self._bucket, key)
        return key

    def presigned_url(self, ref: str, ttl_seconds: int = 3600) -> str:
        try:
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": ref},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as exc:
            raise TransientExternalFailure(f"Cannot presign {ref}: {exc}") from exc

    def delete(self, ref: str) -> None:
        try:
            self._s3.delete_object(Bucket=self._bucket, Key=ref)
        except (ClientError, BotoCoreError) as exc:
            raise TransientExternalFailure(f"S3 delete of {ref} failed: {exc}") from exc

    def exists(self, ref: str) -> bool:
        try:
            self._s3.head_object(Bucket=self._bucket, Key=ref)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise TransientExternalFailure(f"S3 head of {ref} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise TransientExternalFailure(f"S3 head of {ref} failed: {exc}") from exc
        return True
