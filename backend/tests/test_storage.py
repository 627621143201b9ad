import unittest
from unittest.mock import MagicMock, patch

from app.core.errors import StorageError
from app.core.storage import (
    create_signed_url,
    download_object,
    remove_object,
    upload_object,
    user_file_path,
)


class StorageWrapperTests(unittest.TestCase):
    def setUp(self):
        self.bucket = MagicMock()
        client = MagicMock()
        client.storage.from_.return_value = self.bucket
        self._client_patch = patch("app.core.storage.get_storage_client", return_value=client)
        self._client_patch.start()

    def tearDown(self):
        self._client_patch.stop()

    def test_user_file_path(self):
        self.assertEqual(user_file_path("u-1", "invoice.pdf"), "u-1/invoice.pdf")

    def test_upload_with_upsert_sends_true(self):
        self.bucket.upload.return_value = {"path": "u-1/invoice.pdf"}
        path = upload_object("documents", "u-1/invoice.pdf", b"%PDF", "application/pdf", upsert=True)
        self.assertEqual(path, "u-1/invoice.pdf")
        self.bucket.upload.assert_called_once_with(
            "u-1/invoice.pdf",
            b"%PDF",
            {"upsert": "true", "content-type": "application/pdf"},
        )

    def test_upload_defaults_to_no_overwrite(self):
        self.bucket.upload.return_value = {"path": "u-1/a.csv"}
        upload_object("exports", "u-1/a.csv", b"x", None)
        self.assertEqual(self.bucket.upload.call_args.args[2], {"upsert": "false"})

    def test_upload_error_becomes_storage_error(self):
        self.bucket.upload.side_effect = RuntimeError("The resource already exists")
        with self.assertRaises(StorageError) as ctx:
            upload_object("documents", "u-1/invoice.pdf", b"x", "text/plain")
        self.assertIn("Failed to upload file", str(ctx.exception))

    def test_signed_url_variants(self):
        self.bucket.create_signed_url.return_value = {"signedURL": "https://s/1"}
        self.assertEqual(create_signed_url("documents", "p", 60), "https://s/1")
        self.bucket.create_signed_url.side_effect = RuntimeError("not found")
        self.assertIsNone(create_signed_url("documents", "p", 60))

    def test_download_and_remove_errors(self):
        self.bucket.download.side_effect = RuntimeError("boom")
        self.bucket.remove.side_effect = RuntimeError("boom")
        with self.assertRaises(StorageError):
            download_object("exports", "p")
        with self.assertRaises(StorageError):
            remove_object("exports", "p")
