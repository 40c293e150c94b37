import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from appwrite.exception import AppwriteException
from botocore.exceptions import ClientError

from portfolio.errors import StorageError, UploadTooLarge, UpstreamError
from portfolio.storage import (
    AppwriteFileStorage,
    InMemoryFileStorage,
    LocalFileStorage,
    S3FileStorage,
    build_object_name,
    ingest,
)


class ObjectNameTests(unittest.TestCase):
    def test_name_is_timestamp_namespaced(self):
        name = build_object_name("My Photo.png")
        prefix, _, rest = name.partition("-")
        self.assertTrue(prefix.isdigit())
        self.assertTrue(rest.endswith("My_Photo.png"))

    def test_path_components_are_stripped(self):
        name = build_object_name("../../etc/passwd")
        self.assertNotIn("/", name)
        self.assertTrue(name.endswith("passwd"))

    def test_empty_filename_gets_placeholder(self):
        self.assertTrue(build_object_name("").endswith("-upload"))


class LocalFileStorageTests(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.directory = Path(tmp.name) / "uploads"
        self.storage = LocalFileStorage(directory=str(self.directory))
        self.storage.open()

    def test_save_writes_file_and_returns_public_url(self):
        url = self.storage.save(b"image-bytes", "cover.jpg", "image/jpeg")
        self.assertTrue(url.startswith("/uploads/"))
        written = self.directory / url.rsplit("/", 1)[1]
        self.assertEqual(written.read_bytes(), b"image-bytes")

    def test_write_failure_raises_storage_error(self):
        with patch.object(Path, "write_bytes", side_effect=OSError("disk full")):
            with self.assertRaises(StorageError):
                self.storage.save(b"x", "a.png")


class IngestTests(unittest.TestCase):
    def test_rejects_payload_over_limit(self):
        storage = InMemoryFileStorage()
        with self.assertRaises(UploadTooLarge):
            ingest(storage, b"x" * 11, "a.png", max_bytes=10)
        self.assertEqual(storage.stored_objects, {})

    def test_stores_payload_within_limit(self):
        storage = InMemoryFileStorage()
        url = ingest(storage, b"x" * 10, "a.png", max_bytes=10)
        self.assertTrue(url.startswith(storage.base_url))
        self.assertEqual(len(storage.stored_objects), 1)


class S3FileStorageTests(unittest.TestCase):
    def make_storage(self, **kwargs):
        patcher = patch("portfolio.storage.boto3.client")
        self.client_factory = patcher.start()
        self.addCleanup(patcher.stop)
        self.client = self.client_factory.return_value
        return S3FileStorage(
            bucket="media",
            region="eu-west-1",
            endpoint="https://s3.example",
            access_key_id="key",
            secret_access_key="secret",
            **kwargs,
        )

    def test_save_uses_public_base_url(self):
        storage = self.make_storage(public_base_url="https://cdn.example/")
        url = storage.save(b"data", "pic.png", "image/png")
        kwargs = self.client.put_object.call_args.kwargs
        self.assertEqual(kwargs["Bucket"], "media")
        self.assertTrue(kwargs["Key"].startswith("uploads/"))
        self.assertEqual(kwargs["ContentType"], "image/png")
        self.assertEqual(url, f"https://cdn.example/{kwargs['Key']}")

    def test_save_falls_back_to_presigned_url(self):
        storage = self.make_storage()
        self.client.generate_presigned_url.return_value = "https://signed.example"
        self.assertEqual(storage.save(b"data", "pic.png"), "https://signed.example")

    def test_client_error_becomes_upstream_error(self):
        storage = self.make_storage()
        self.client.put_object.side_effect = ClientError(
            {"Error": {"Code": "500", "Message": "boom"}}, "PutObject"
        )
        with self.assertRaises(UpstreamError):
            storage.save(b"data", "pic.png")


class AppwriteFileStorageTests(unittest.TestCase):
    def setUp(self):
        self.service = MagicMock()
        self.storage = AppwriteFileStorage(
            storage=self.service,
            bucket_id="uploads",
            endpoint="https://cloud.example/v1",
            project_id="proj",
        )

    def test_save_returns_view_url(self):
        self.service.create_file.return_value = {"$id": "file123"}
        url = self.storage.save(b"data", "pic.png", "image/png")
        self.assertEqual(
            url,
            "https://cloud.example/v1/storage/buckets/uploads/files/file123/view?project=proj",
        )
        self.assertEqual(self.service.create_file.call_args.kwargs["bucket_id"], "uploads")

    def test_appwrite_failure_becomes_upstream_error(self):
        self.service.create_file.side_effect = AppwriteException("quota", 500)
        with self.assertRaises(UpstreamError):
            self.storage.save(b"data", "pic.png")


if __name__ == "__main__":
    unittest.main()
