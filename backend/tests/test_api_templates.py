import unittest
import uuid

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.auth import CurrentUser, get_current_user
from app.core.config import get_settings
from app.core.dependencies import get_db
from app.main import app
from app.models.documents import Base, Document, Template


class TemplateApiTests(unittest.TestCase):
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
        get_settings.cache_clear()
        self.client = TestClient(app)

    def tearDown(self):
        self.client.close()
        app.dependency_overrides.clear()
        Base.metadata.drop_all(self.engine)
        self.engine.dispose()
        get_settings.cache_clear()

    def _create_template(self, *, name="Utility bill", user_id="__owner__", is_public=False):
        db = self.SessionLocal()
        row = Template(
            user_id=self.current_user.id if user_id == "__owner__" else user_id,
            name=name,
            document_type="invoice",
            status="active",
            fields=[{"name": "Total", "type": "currency", "required": True}],
            settings={"confidence_threshold": 80, "auto_approve": False},
            is_public=is_public,
            tags=["utility"],
        )
        db.add(row)
        db.commit()
        template_id = str(row.id)
        db.close()
        return template_id

    def test_create_template(self):
        resp = self.client.post(
            "/api/v1/templates",
            json={
                "name": "Payslip",
                "document_type": "payslip",
                "fields": [{"name": "Net Pay", "type": "currency", "required": True}],
                "tags": ["hr"],
            },
        )
        self.assertEqual(resp.status_code, 201)
        body = resp.json()
        self.assertTrue(body["success"])
        template = body["template"]
        self.assertEqual(template["name"], "Payslip")
        self.assertEqual(template["status"], "draft")
        self.assertEqual(template["fields"], 1)
        self.assertEqual(template["fieldsData"], [{"name": "Net Pay", "type": "currency", "required": True}])
        self.assertEqual(template["userId"], self.current_user.id)
        self.assertFalse(template["isPublic"])

    def test_create_template_requires_name_and_type(self):
        resp = self.client.post("/api/v1/templates", json={"name": "No type"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Name and document type are required")

    def test_list_templates_with_public(self):
        self._create_template(name="Mine")
        self._create_template(name="Shared", user_id=None, is_public=True)
        self._create_template(name="Someone else", user_id=str(uuid.uuid4()))

        own = self.client.get("/api/v1/templates", params={"sortBy": "name", "sortOrder": "asc"}).json()
        self.assertEqual([t["name"] for t in own["templates"]], ["Mine"])

        both = self.client.get(
            "/api/v1/templates",
            params={"includePublic": "true", "sortBy": "name", "sortOrder": "asc"},
        ).json()
        self.assertEqual([t["name"] for t in both["templates"]], ["Mine", "Shared"])
        self.assertEqual(both["pagination"]["total"], 2)
        self.assertTrue(both["filters"]["includePublic"])

    def test_get_template_visibility(self):
        public_id = self._create_template(name="Shared", user_id=None, is_public=True)
        private_id = self._create_template(name="Hidden", user_id=str(uuid.uuid4()))

        resp = self.client.get(f"/api/v1/templates/{public_id}")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertFalse(body["isOwner"])
        self.assertEqual(body["fieldsCount"], 1)
        self.assertEqual(body["fields"][0]["name"], "Total")

        resp = self.client.get(f"/api/v1/templates/{private_id}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Template not found")
        self.assertEqual(self.client.get("/api/v1/templates/not-a-uuid").status_code, 404)

    def test_update_template(self):
        template_id = self._create_template()
        resp = self.client.put(
            f"/api/v1/templates/{template_id}",
            json={"name": "Electricity bill", "is_favorite": True},
        )
        self.assertEqual(resp.status_code, 200)
        template = resp.json()["template"]
        self.assertEqual(template["name"], "Electricity bill")
        self.assertTrue(template["isFavorite"])
        self.assertEqual(template["tags"], ["utility"])

        resp = self.client.put(f"/api/v1/templates/{template_id}", json={})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "No valid fields to update")

    def test_public_template_is_read_only_for_others(self):
        public_id = self._create_template(name="Shared", user_id=None, is_public=True)
        resp = self.client.put(f"/api/v1/templates/{public_id}", json={"name": "Mine now"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["detail"], "Template not found or access denied")

        resp = self.client.delete(f"/api/v1/templates/{public_id}")
        self.assertEqual(resp.status_code, 404)

    def test_delete_template(self):
        template_id = self._create_template()
        resp = self.client.delete(f"/api/v1/templates/{template_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"success": True, "message": "Template deleted successfully"})

        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(Template).count(), 0)
        finally:
            db.close()

    def test_delete_template_in_use(self):
        template_id = self._create_template()
        db = self.SessionLocal()
        db.add(
            Document(
                user_id=self.current_user.id,
                name="bill.pdf",
                original_name="bill.pdf",
                file_path="x/bill.pdf",
                file_size=10,
                file_type="application/pdf",
                template_id=uuid.UUID(template_id),
            )
        )
        db.commit()
        db.close()

        resp = self.client.delete(f"/api/v1/templates/{template_id}")
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["detail"], "Cannot delete template that is being used by documents")

        db = self.SessionLocal()
        try:
            self.assertEqual(db.query(Template).count(), 1)
        finally:
            db.close()
