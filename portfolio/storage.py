"""
Storage abstraction for uploaded images: local disk, S3-compatible object
storage, Appwrite buckets, and in-memory testing.
"""

from __future__ import annotations

import logging
import os
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from uuid import uuid4

import boto3
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.input_file import InputFile
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from portfolio.errors import StorageError, UploadTooLarge, UpstreamError

logger = logging.getLogger(__name__)


class FileStorage(Protocol):
    """Defines the operations the API needs from file storage."""

    def open(self) -> None:
        ...

    def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> str:
        """Persist ``data`` and return a URL the public pages can load."""
        ...


def build_object_name(filename: str) -> str:
    """Timestamp-namespaced, filesystem-safe name for an upload."""
    base = os.path.basename(filename or "")
    safe = re.sub(r"[^A-Za-z0-9._-]+", "_", base).strip("._") or "upload"
    return f"{int(time.time() * 1000)}-{uuid4().hex[:8]}-{safe}"


def ingest(
    storage: FileStorage,
    data: bytes,
    filename: str,
    content_type: Optional[str] = None,
    *,
    max_bytes: int,
) -> str:
    if len(data) > max_bytes:
        raise UploadTooLarge(f"Upload exceeds the {max_bytes} byte limit")
    url = storage.save(data, filename, content_type)
    logger.info("Stored upload %s (%d bytes) at %s", filename, len(data), url)
    return url


@dataclass
class InMemoryFileStorage:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/uploads"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def open(self) -> None:
        pass

    def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> str:
        name = build_object_name(filename)
        self.stored_objects[name] = data
        return f"{self.base_url}/{name}"


@dataclass
class LocalFileStorage:
    """Writes uploads to a directory that the app serves statically."""

    directory: str
    url_prefix: str = "/uploads"

    def open(self) -> None:
        Path(self.directory).mkdir(parents=True, exist_ok=True)

    def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> str:
        name = build_object_name(filename)
        target = Path(self.directory) / name
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Could not write upload: {exc}") from exc
        return f"{self.url_prefix.rstrip('/')}/{name}"


@dataclass
class S3FileStorage:
    """
    S3-compatible storage client (AWS, Tencent COS, MinIO).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: Optional[str] = None
    key_prefix: str = "uploads"
    presign_expires_in: int = 7 * 24 * 3600

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )

    def open(self) -> None:
        pass

    def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> str:
        key = f"{self.key_prefix}/{build_object_name(filename)}"
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type or "application/octet-stream",
            )
        except (BotoCoreError, ClientError) as exc:
            raise UpstreamError(f"Object storage upload failed: {exc}") from exc
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        return self._client.generate_presigned_url(
            ClientMethod="get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=self.presign_expires_in,
        )


@dataclass
class AppwriteFileStorage:
    """Uploads into an Appwrite bucket and links the file's view endpoint."""

    storage: object
    bucket_id: str
    endpoint: str
    project_id: str

    def open(self) -> None:
        pass

    def save(
        self, data: bytes, filename: str, content_type: Optional[str] = None
    ) -> str:
        name = build_object_name(filename)
        try:
            created = self.storage.create_file(
                bucket_id=self.bucket_id,
                file_id=ID.unique(),
                file=InputFile.from_bytes(data, filename=name, mime_type=content_type),
            )
        except AppwriteException as exc:
            raise UpstreamError(f"Appwrite upload failed: {exc.message}") from exc
        file_id = created["$id"]
        return (
            f"{self.endpoint.rstrip('/')}/storage/buckets/{self.bucket_id}"
            f"/files/{file_id}/view?project={self.project_id}"
        )
