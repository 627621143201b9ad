import os
import unittest
import uuid
from datetime import datetime, timezone
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
from app.models.documents import AuditLog, Base, Document, ExportJob


class DocumentApiTests(unittest.TestCase):
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

        self.current_user = CurrentUser(id=str(uuid.uuid4()), email="owner@example.com")

        def override_get_current_user():
            return self.current_user

        app.dependency_overrides[get_db] = override_get_db
        app.dependency_overrides[get_current_user] = override_get_current_user

        self.stored = {}

        def fake_upload(bucket, path, content, content_type, **kwargs):
            self.stored[(bucket, path)] = content
            return path

        self._patches = [
            patch.dict(os.environ, {"AI_PROVIDER": "mock", "AI_MODEL": ""}, clear=False),
            patch("app.services.document_service.upload_object", side_effect=fake_upload),
            patch("app.services.document_service.remove_object"),
            patch("app.services.exports.ai_exporter.upload_object", side_effect=fake_upload),
            patch(
                "app.services.exports.ai_exporter.create_signed_url",
                return_value="https://storage.example/signed",
            ),
        ]
        for p in self._patches:
            p.start()
        get_settings.cache_clear()

        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        for p in reversed(self._patches):
            p.stop()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()
        get_settings.cache_clear()

    def _upload(self, content=b"Invoice INV-0001 total $1,250.00", content_type="text/plain", **data):
        return self.client.post(
            "/api/v1/documents/upload",
            files={"file": ("invoice.txt", content, content_type)},
            data=data,
        )

    def _create_document(
        self, *, user_id=None, status="completed", fields=None, name="invoice.pdf", document_type="invoice", description=None
    ):
        db = self.SessionLocal()
        doc = Document(
            user_id=user_id or self.current_user.id,
            name=name,
            original_name=name,
            file_path=f"x/{name}",
            file_size=1000,
            file_type="application/pdf",
            document_type=document_type,
            description=description,
            template="auto",
            status=status,
            confidence=88,
            pages=1,
            fields_extracted=1,
            processed_date=datetime(2024, 1, 15, tzinfo=timezone.utc),
            extracted_fields=fields if fields is not None else [
                {"name": "Total", "value": "$10", "confidence": 90, "type": "currency"}
            ],
        )
        db.add(doc)
        db.commit()
        doc_id = str(doc.id)
        db.close()
        return doc_id

    def test_upload_parses_document(self):
        resp = self._upload(documentType="invoice", description="March")
        self.assertEqual(resp.status_code, 201)
        body = resp.json()

        self.assertTrue(body["success"])
        self.assertIsNone(body["processingError"])
        self.assertEqual(body["document"]["name"], "invoice.txt")
        self.assertEqual(body["document"]["status"], "completed")
        self.assertEqual(body["document"]["fieldsExtracted"], 4)
        self.assertEqual(body["parsing"]["documentType"], "invoice")
        self.assertEqual(body["parsing"]["provider"], "mock")
        self.assertEqual(body["exports"]["csv"]["rows"], 4)
        self.assertIn(("documents", f"{self.current_user.id}/invoice.txt"), self.stored)

        db = self.SessionLocal()
        try:
            doc = db.query(Document).one()
            self.assertEqual(str(doc.user_id), self.current_user.id)
            self.assertEqual(doc.description, "March")
            upload_log = db.query(AuditLog).filter(AuditLog.action == "DOCUMENT_UPLOADED").one()
            self.assertEqual(upload_log.actor_type, "USER")
            self.assertEqual(upload_log.user_agent, "testclient")
        finally:
            db.close()

    def test_upload_without_file(self):
        resp = self.client.post("/api/v1/documents/upload", data={"documentType": "invoice"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "No file provided")

    def test_upload_rejects_unsupported_type(self):
        resp = self._upload(content=b"PK\x03\x04", content_type="application/zip")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Unsupported file type: application/zip")
        self.assertEqual(self.stored, {})

    def test_upload_storage_failure_is_hidden(self):
        with patch(
            "app.services.document_service.upload_object",
            side_effect=StorageError("Failed to upload file: bucket not found"),
        ):
            resp = self._upload()
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["detail"], "Internal server error")

    def test_upload_storage_failure_exposed_when_enabled(self):
        os.environ["EXPOSE_ERROR_DETAILS"] = "true"
        try:
            get_settings.cache_clear()
            with patch(
                "app.services.document_service.upload_object",
                side_effect=StorageError("Failed to upload file: bucket not found"),
            ):
                resp = self._upload()
        finally:
            os.environ.pop("EXPOSE_ERROR_DETAILS", None)
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["detail"], "Failed to upload file")

    def test_upload_with_invalid_ai_config_still_saves(self):
        os.environ["AI_PROVIDER"] = "openai"
        os.environ["OPENAI_API_KEY"] = ""
        get_settings.cache_clear()

        resp = self._upload()
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertEqual(body["document"]["status"], "uploaded")
        self.assertIsNone(body["parsing"])
        self.assertIsNone(body["exports"])
        self.assertIn("Missing API key for provider: openai", body["processingError"])

    def test_export_options_for_owner(self):
        doc_id = self._create_document()
        resp = self.client.get(f"/api/v1/documents/{doc_id}/export")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["document"]["id"], doc_id)
        self.assertTrue(body["exportOptions"]["canExport"])
        self.assertEqual(body["exportOptions"]["availableFields"][0]["name"], "Total")

    def test_export_options_hidden_from_other_users(self):
        doc_id = self._create_document(user_id=str(uuid.uuid4()))
        resp = self.client.get(f"/api/v1/documents/{doc_id}/export")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Document not found")

        resp = self.client.get("/api/v1/documents/not-a-uuid/export")
        self.assertEqual(resp.status_code, 404)

    def test_export_document_creates_job(self):
        doc_id = self._create_document()
        resp = self.client.post(
            f"/api/v1/documents/{doc_id}/export",
            json={"format": "csv", "exportName": "march", "settings": {"groupByType": True}},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["export"]["name"], "march")
        self.assertEqual(body["export"]["format"], "csv")
        self.assertEqual(body["export"]["status"], "completed")
        self.assertEqual(body["export"]["records_count"], 1)
        self.assertEqual(
            body["message"],
            'Document "invoice.pdf" exported successfully as CSV. You can download it from the Exports page.',
        )

        db = self.SessionLocal()
        try:
            job = db.query(ExportJob).one()
            self.assertEqual(job.type, "document_export")
            self.assertEqual(job.filters, {"document_id": doc_id})
            self.assertTrue(job.settings["group_by_type"])
            self.assertTrue(job.file_path.startswith(f"{self.current_user.id}/march_"))
            self.assertGreater(job.expires_at, job.completed_at)
        finally:
            db.close()

        exported = [path for (bucket, path) in self.stored if bucket == "exports"]
        self.assertEqual(len(exported), 1)

    def test_export_rejects_bad_format(self):
        doc_id = self._create_document()
        resp = self.client.post(f"/api/v1/documents/{doc_id}/export", json={"format": "pdf"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Invalid export format")

    def test_export_requires_completed_document(self):
        doc_id = self._create_document(status="processing")
        resp = self.client.post(f"/api/v1/documents/{doc_id}/export", json={"format": "json"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(
            resp.json()["detail"],
            {"error": "Document is not fully processed yet", "status": "processing"},
        )

    def test_export_generation_failure(self):
        doc_id = self._create_document()
        os.environ["EXPOSE_ERROR_DETAILS"] = "true"
        try:
            get_settings.cache_clear()
            with patch(
                "app.services.exports.ai_exporter.upload_object",
                side_effect=StorageError("Failed to upload file: quota"),
            ):
                resp = self.client.post(f"/api/v1/documents/{doc_id}/export", json={"format": "json"})
        finally:
            os.environ.pop("EXPOSE_ERROR_DETAILS", None)

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(
            resp.json()["detail"],
            {"error": "Export generation failed", "details": "Failed to upload file: quota"},
        )
        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(ExportJob).count(), 0)
        finally:
            db.close()

    def test_export_generation_failure_hidden_by_default(self):
        doc_id = self._create_document()
        with patch(
            "app.services.exports.ai_exporter.upload_object",
            side_effect=StorageError("Failed to upload file: quota"),
        ):
            resp = self.client.post(f"/api/v1/documents/{doc_id}/export", json={"format": "json"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"detail": "Internal server error"})

    def test_export_rejects_invalid_settings(self):
        doc_id = self._create_document()
        resp = self.client.post(
            f"/api/v1/documents/{doc_id}/export",
            json={"format": "csv", "settings": {"groupByType": "maybe"}},
        )
        self.assertEqual(resp.status_code, 400)
        detail = resp.json()["detail"]
        self.assertEqual(detail["error"], "Invalid export settings")
        self.assertIsInstance(detail["details"], list)
        self.assertEqual(detail["details"][0]["loc"][0], "group_by_type")

        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(ExportJob).count(), 0)
        finally:
            db.close()
        self.assertFalse([path for (bucket, path) in self.stored if bucket == "exports"])

    def test_list_documents_filters_and_paginates(self):
        self._create_document(name="alpha.pdf")
        self._create_document(name="beta.pdf", description="march statement", document_type="bank_statement")
        self._create_document(name="gamma.pdf", status="error")
        self._create_document(name="other.pdf", user_id=str(uuid.uuid4()))

        resp = self.client.get("/api/v1/documents", params={"sortBy": "name", "sortOrder": "asc", "limit": 2})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual([d["name"] for d in body["documents"]], ["alpha.pdf", "beta.pdf"])
        self.assertEqual(
            body["pagination"],
            {"page": 1, "limit": 2, "total": 3, "totalPages": 2, "hasNextPage": True, "hasPrevPage": False},
        )
        self.assertEqual(body["documents"][0]["size"], "1000 Bytes")

        page_two = self.client.get(
            "/api/v1/documents", params={"sortBy": "name", "sortOrder": "asc", "limit": 2, "page": 2}
        ).json()
        self.assertEqual([d["name"] for d in page_two["documents"]], ["gamma.pdf"])

        by_search = self.client.get("/api/v1/documents", params={"search": "MARCH"}).json()
        self.assertEqual([d["name"] for d in by_search["documents"]], ["beta.pdf"])

        by_status = self.client.get("/api/v1/documents", params={"status": "error"}).json()
        self.assertEqual([d["name"] for d in by_status["documents"]], ["gamma.pdf"])

        by_type = self.client.get("/api/v1/documents", params={"type": "bank_statement"}).json()
        self.assertEqual([d["name"] for d in by_type["documents"]], ["beta.pdf"])
        self.assertEqual(by_type["filters"]["type"], "bank_statement")

    def test_list_documents_unknown_sort_falls_back(self):
        self._create_document(name="alpha.pdf")
        resp = self.client.get("/api/v1/documents", params={"sortBy": "file_path; drop", "sortOrder": "sideways"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["pagination"]["total"], 1)

    def test_get_document_detail_with_signed_link(self):
        doc_id = self._create_document(name="alpha.pdf")
        with patch(
            "app.services.document_service.create_signed_url",
            return_value="https://storage.example/doc",
        ) as signer:
            resp = self.client.get(f"/api/v1/documents/{doc_id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["id"], doc_id)
        self.assertEqual(body["fileUrl"], "https://storage.example/doc")
        self.assertEqual(body["extractedFields"][0]["name"], "Total")
        self.assertEqual(body["processingHistory"], [])
        signer.assert_called_once_with("documents", "x/alpha.pdf", get_settings().document_url_ttl_seconds)

    def test_get_document_detail_without_signed_link(self):
        doc_id = self._create_document()
        with patch(
            "app.services.document_service.create_signed_url",
            side_effect=StorageError("Failed to create signed URL"),
        ):
            resp = self.client.get(f"/api/v1/documents/{doc_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertIsNone(resp.json()["fileUrl"])

        other = self._create_document(user_id=str(uuid.uuid4()))
        self.assertEqual(self.client.get(f"/api/v1/documents/{other}").status_code, 404)

    def test_update_document(self):
        doc_id = self._create_document(description="old")
        resp = self.client.put(
            f"/api/v1/documents/{doc_id}",
            json={"description": "Q1 invoice", "document_type": "receipt"},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["document"]["description"], "Q1 invoice")
        self.assertEqual(body["document"]["type"], "receipt")

        db = self.SessionLocal()
        try:
            log = db.query(AuditLog).filter(AuditLog.action == "DOCUMENT_UPDATED").one()
            self.assertEqual(log.old_value, {"description": "old", "document_type": "invoice"})
            self.assertEqual(str(log.actor_id), self.current_user.id)
        finally:
            db.close()

    def test_update_document_requires_changes(self):
        doc_id = self._create_document()
        resp = self.client.put(f"/api/v1/documents/{doc_id}", json={"template": None})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "No valid fields to update")

        other = self._create_document(user_id=str(uuid.uuid4()))
        resp = self.client.put(f"/api/v1/documents/{other}", json={"description": "x"})
        self.assertEqual(resp.status_code, 404)

    def test_delete_document(self):
        doc_id = self._create_document(name="alpha.pdf")
        with patch("app.services.document_service.remove_object") as remover:
            resp = self.client.delete(f"/api/v1/documents/{doc_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True, "message": "Document deleted successfully"})
        remover.assert_called_once_with("documents", "x/alpha.pdf")

        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(Document).count(), 0)
            self.assertEqual(db.query(AuditLog).filter(AuditLog.action == "DOCUMENT_DELETED").count(), 1)
        finally:
            db.close()

    def test_delete_document_survives_storage_failure(self):
        doc_id = self._create_document()
        with patch(
            "app.services.document_service.remove_object",
            side_effect=StorageError("Failed to delete file"),
        ):
            resp = self.client.delete(f"/api/v1/documents/{doc_id}")
        self.assertEqual(resp.status_code, 200)
        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(Document).count(), 0)
        finally:
            db.close()
