import os
import unittest
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import CurrentUser, get_current_user
from app.core.config import get_settings
from app.core.dependencies import get_db
from app.core.errors import StorageError
from app.main import app
from app.models.documents import Base, ExportJob


class ExportDownloadApiTests(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine)

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.current_user = CurrentUser(id=str(uuid.uuid4()))

        def override_get_current_user():
            return self.current_user

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = override_get_current_user

        self.downloads = []

        def fake_download(bucket, path):
            self.downloads.append((bucket, path))
            return b'{"documents": []}'

        self._download_patch = patch("app.api.v1.exports.download_object", side_effect=fake_download)
        self._download_patch.start()
        self._remove_patch = patch("app.services.export_jobs.remove_object")
        self.remove_object = self._remove_patch.start()
        get_settings.cache_clear()
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        self._remove_patch.stop()
        self._download_patch.stop()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()
        get_settings.cache_clear()

    def _create_job(self, *, user_id=None, status="completed", fmt="json", expires_in=timedelta(days=7), file_path="__default__"):
        db = self.SessionLocal()
        now = datetime.now(timezone.utc)
        owner = user_id or self.current_user.id
        job = ExportJob(
            user_id=owner,
            name="March",
            type="document_export",
            format=fmt,
            status=status,
            file_path=f"{owner}/March_1700000000000.{fmt}" if file_path == "__default__" else file_path,
            file_size=17,
            records_count=1,
            download_count=0,
            completed_at=now,
            expires_at=now + expires_in if expires_in is not None else None,
        )
        db.add(job)
        db.commit()
        job_id = str(job.id)
        db.close()
        return job_id

    def test_download_streams_file_and_counts(self):
        job_id = self._create_job()
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")

        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.content, b'{"documents": []}')
        self.assertTrue(resp.headers["content-type"].startswith("application/json"))
        self.assertEqual(resp.headers["content-disposition"], 'attachment; filename="March_1700000000000.json"')
        self.assertEqual(resp.headers["cache-control"], "private, no-cache")
        self.assertEqual(self.downloads, [("exports", f"{self.current_user.id}/March_1700000000000.json")])

        self.client.get(f"/api/v1/exports/{job_id}/download")
        db = self.SessionLocal()
        try:
            self.assertEqual(db.get(ExportJob, uuid.UUID(job_id)).download_count, 2)
        finally:
            db.close()

    def test_excel_content_type(self):
        job_id = self._create_job(fmt="excel", file_path=f"{self.current_user.id}/March_1.xlsx")
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(
            resp.headers["content-type"],
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

    def test_other_users_export_not_found(self):
        job_id = self._create_job(user_id=str(uuid.uuid4()))
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Export not found")
        self.assertEqual(self.downloads, [])

    def test_malformed_id_not_found(self):
        resp = self.client.get("/api/v1/exports/nope/download")
        self.assertEqual(resp.status_code, 404)

    def test_pending_export_not_ready(self):
        job_id = self._create_job(status="processing")
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json()["detail"],
            {"error": "Export is not ready for download", "status": "processing"},
        )

    def test_expired_export_gone(self):
        job_id = self._create_job(expires_in=-timedelta(minutes=1))
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 410)
        self.assertEqual(resp.json()["detail"], "Export has expired")

    def test_export_without_expiry_downloads(self):
        job_id = self._create_job(expires_in=None)
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 200)

    def test_missing_file_path(self):
        job_id = self._create_job(file_path=None)
        resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Export file not found")

    def test_storage_failure(self):
        job_id = self._create_job()
        os.environ["EXPOSE_ERROR_DETAILS"] = "true"
        try:
            get_settings.cache_clear()
            with patch("app.api.v1.exports.download_object", side_effect=StorageError("Failed to download file: boom")):
                resp = self.client.get(f"/api/v1/exports/{job_id}/download")
        finally:
            os.environ.pop("EXPOSE_ERROR_DETAILS", None)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["detail"], "Failed to download export file")

    def test_list_exports_for_owner(self):
        self._create_job(fmt="json")
        self._create_job(fmt="csv", status="failed")
        self._create_job(user_id=str(uuid.uuid4()))

        body = self.client.get("/api/v1/exports").json()
        self.assertEqual(len(body["exports"]), 2)
        self.assertEqual(body["pagination"]["total"], 2)
        self.assertIn("download_count", body["exports"][0])

        failed = self.client.get("/api/v1/exports", params={"status": "failed"}).json()
        self.assertEqual([e["format"] for e in failed["exports"]], ["csv"])

        by_format = self.client.get("/api/v1/exports", params={"format": "json"}).json()
        self.assertEqual([e["status"] for e in by_format["exports"]], ["completed"])

    def test_get_export(self):
        job_id = self._create_job()
        resp = self.client.get(f"/api/v1/exports/{job_id}")
        self.assertEqual(resp.status_code, 200)
        export = resp.json()["export"]
        self.assertEqual(export["id"], job_id)
        self.assertEqual(export["name"], "March")
        self.assertIsNotNone(export["expires_at"])

        other = self._create_job(user_id=str(uuid.uuid4()))
        self.assertEqual(self.client.get(f"/api/v1/exports/{other}").status_code, 404)

    def test_delete_export(self):
        job_id = self._create_job()
        resp = self.client.delete(f"/api/v1/exports/{job_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Export deleted successfully"})
        self.remove_object.assert_called_once_with(
            "exports", f"{self.current_user.id}/March_1700000000000.json"
        )
        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(ExportJob).count(), 0)
        finally:
            db.close()

    def test_delete_export_keeps_row_removal_when_storage_fails(self):
        job_id = self._create_job()
        self.remove_object.side_effect = StorageError("Failed to delete file")
        resp = self.client.delete(f"/api/v1/exports/{job_id}")
        self.assertEqual(resp.status_code, 200)
        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(ExportJob).count(), 0)
        finally:
            db.close()

    def test_bulk_delete_only_touches_own_exports(self):
        mine = [self._create_job(), self._create_job(file_path=None)]
        foreign = self._create_job(user_id=str(uuid.uuid4()))

        resp = self.client.delete("/api/v1/exports", params={"ids": ",".join(mine + [foreign, "junk"])})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"message": "Successfully deleted 2 exports"})
        self.assertEqual(self.remove_object.call_count, 1)

        db = self.SessionLocal()
        try:
            remaining = [str(job.id) for job in db.query(ExportJob).all()]
        finally:
            db.close()
        self.assertEqual(remaining, [foreign])

    def test_bulk_delete_requires_ids(self):
        resp = self.client.delete("/api/v1/exports")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Export IDs are required")

        resp = self.client.delete("/api/v1/exports", params={"ids": "junk,,"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "No valid export IDs provided")
