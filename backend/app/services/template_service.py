"""Extraction templates: access-checked lookup, user CRUD and the public starter set."""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session

from app.core.errors import TemplateInUse
from app.models.documents import Document, Template
from app.services.ai.parser.contracts import DocumentTemplate, TemplateField, TemplateSettings
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

STARTER_TEMPLATES: list[dict[str, Any]] = [
    {
        "name": "Standard Invoice Template",
        "description": "Extract common invoice fields like amount, date, vendor details",
        "document_type": "invoice",
        "fields": [
            {"name": "Invoice Number", "type": "text", "required": True},
            {"name": "Invoice Date", "type": "date", "required": True},
            {"name": "Due Date", "type": "date", "required": False},
            {"name": "Vendor Name", "type": "text", "required": True},
            {"name": "Vendor Address", "type": "address", "required": False},
            {"name": "Subtotal", "type": "currency", "required": True},
            {"name": "Tax Amount", "type": "currency", "required": False},
            {"name": "Total Amount", "type": "currency", "required": True},
            {"name": "Payment Terms", "type": "text", "required": False},
            {"name": "Description", "type": "text", "required": False},
        ],
        "settings": {"confidence_threshold": 85, "auto_approve": False},
        "is_favorite": False,
        "tags": ["invoice", "accounting", "standard"],
    },
    {
        "name": "Bank Statement Parser",
        "description": "Parse bank statements and extract transaction details",
        "document_type": "bank-statement",
        "fields": [
            {"name": "Statement Date", "type": "date", "required": True},
            {"name": "Account Number", "type": "text", "required": True},
            {"name": "Beginning Balance", "type": "currency", "required": True},
            {"name": "Ending Balance", "type": "currency", "required": True},
            {"name": "Bank Name", "type": "text", "required": False},
            {"name": "Account Holder", "type": "text", "required": False},
        ],
        "settings": {"confidence_threshold": 90, "auto_approve": True},
        "is_favorite": False,
        "tags": ["bank", "transactions", "finance"],
    },
    {
        "name": "Receipt Scanner Pro",
        "description": "Advanced receipt scanning with line item detection",
        "document_type": "receipt",
        "fields": [
            {"name": "Merchant Name", "type": "text", "required": True},
            {"name": "Receipt Date", "type": "date", "required": True},
            {"name": "Receipt Time", "type": "time", "required": False},
            {"name": "Total Amount", "type": "currency", "required": True},
            {"name": "Tax Amount", "type": "currency", "required": False},
            {"name": "Payment Method", "type": "text", "required": False},
            {"name": "Items", "type": "array", "required": False},
        ],
        "settings": {"confidence_threshold": 80, "auto_approve": False},
        "is_favorite": True,
        "tags": ["receipt", "expenses", "retail"],
    },
]


def template_from_row(row: Template) -> DocumentTemplate:
    settings = row.settings or {}
    return DocumentTemplate(
        id=str(row.id),
        name=row.name,
        document_type=row.document_type or "other",
        fields=[TemplateField.model_validate(f) for f in (row.fields or [])],
        settings=TemplateSettings.model_validate(settings),
    )


def _parse_uuid(value: str) -> Optional[uuid.UUID]:
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError):
        return None


def load_template(db: Session, template_id: Optional[str], user_id: str) -> Optional[DocumentTemplate]:
    """Return the template if *user_id* owns it or it is public; ``None`` otherwise."""
    if not template_id or template_id == "auto":
        return None
    row = accessible_template(db, template_id, user_id)
    if row is None:
        logger.info("Template %r not accessible for user %s", template_id, user_id)
        return None
    return template_from_row(row)


def seed_public_templates(db: Session) -> int:
    """Insert the starter templates that are missing (matched by name). Caller commits."""
    existing = {
        name
        for (name,) in db.query(Template.name).filter(Template.is_public.is_(True)).all()
    }
    added = 0
    for starter in STARTER_TEMPLATES:
        if starter["name"] in existing:
            continue
        db.add(Template(user_id=None, is_public=True, **starter))
        added += 1
    if added:
        db.flush()
    logger.info("Seeded %d public template(s)", added)
    return added


TEMPLATE_SORT_COLUMNS = {
    "created_date": Template.created_at,
    "created_at": Template.created_at,
    "last_used": Template.last_used,
    "name": Template.name,
    "accuracy": Template.accuracy,
    "documents_processed": Template.documents_processed,
}
UPDATABLE_TEMPLATE_FIELDS = (
    "name",
    "description",
    "document_type",
    "status",
    "fields",
    "settings",
    "is_public",
    "is_favorite",
    "tags",
)


def list_templates(
    db: Session,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    status: str = "all",
    document_type: str = "all",
    sort_by: str = "created_date",
    sort_order: str = "desc",
    include_public: bool = False,
) -> tuple[list[Template], int]:
    owner = Template.user_id == user_id
    query = db.query(Template).filter(
        or_(owner, Template.is_public.is_(True)) if include_public else owner
    )
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Template.name.ilike(pattern), Template.description.ilike(pattern)))
    if status != "all":
        query = query.filter(Template.status == status)
    if document_type != "all":
        query = query.filter(Template.document_type == document_type)

    column = TEMPLATE_SORT_COLUMNS.get(sort_by)
    if column is None or sort_order not in ("asc", "desc"):
        column, sort_order = Template.created_at, "desc"
    direction = asc if sort_order == "asc" else desc
    return paginate(query.order_by(direction(column), direction(Template.id)), page, limit)


def template_summary(row: Template) -> dict[str, Any]:
    fields = row.fields or []
    return {
        "id": str(row.id),
        "name": row.name,
        "description": row.description,
        "type": row.document_type,
        "status": row.status,
        "fields": len(fields),
        "fieldsData": fields,
        "documents": row.documents_processed or 0,
        "accuracy": row.accuracy,
        "createdDate": row.created_at.isoformat() if row.created_at else None,
        "lastUsed": row.last_used.isoformat() if row.last_used else None,
        "isPublic": bool(row.is_public),
        "isFavorite": bool(row.is_favorite),
        "tags": row.tags or [],
        "settings": row.settings or {},
        "userId": str(row.user_id) if row.user_id else None,
    }


def template_detail(row: Template, user_id: str) -> dict[str, Any]:
    detail = template_summary(row)
    detail["fieldsCount"] = detail["fields"]
    detail["fields"] = detail.pop("fieldsData")
    detail["isOwner"] = detail["userId"] == str(user_id)
    return detail


def accessible_template(
    db: Session,
    template_id: str,
    user_id: str,
    *,
    owner_only: bool = False,
) -> Optional[Template]:
    """Owned (or, unless *owner_only*, public) template; ``None`` for anything else."""
    parsed_id = _parse_uuid(template_id)
    if parsed_id is None:
        return None
    visible = Template.user_id == user_id
    if not owner_only:
        visible = or_(visible, Template.is_public.is_(True))
    return db.query(Template).filter(Template.id == parsed_id, visible).first()


def create_template(db: Session, user_id: str, values: dict[str, Any]) -> Template:
    """Insert a user template; ``values`` uses column names. Caller commits."""
    row = Template(
        user_id=user_id,
        name=values["name"],
        description=values.get("description"),
        document_type=values["document_type"],
        status=values.get("status") or "draft",
        fields=values.get("fields") or [],
        settings=values.get("settings") or {},
        is_public=bool(values.get("is_public")),
        is_favorite=bool(values.get("is_favorite")),
        tags=values.get("tags") or [],
        documents_processed=0,
    )
    db.add(row)
    db.flush()
    logger.info("Template %s created by %s", row.id, user_id)
    return row


def update_template(row: Template, changes: dict[str, Any]) -> Template:
    for key, value in changes.items():
        if key in UPDATABLE_TEMPLATE_FIELDS:
            setattr(row, key, value)
    return row


def delete_template(db: Session, row: Template) -> None:
    """Delete *row* unless documents still reference it. Caller commits."""
    in_use = db.query(Document.id).filter(Document.template_id == row.id).first()
    if in_use is not None:
        raise TemplateInUse("Cannot delete template that is being used by documents")
    db.delete(row)
