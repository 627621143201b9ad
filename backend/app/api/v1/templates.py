import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.dependencies import get_db
from app.core.errors import TemplateInUse
from app.services.ai.parser.contracts import TemplateField, TemplateSettings
from app.services.template_service import (
    accessible_template,
    create_template,
    delete_template,
    list_templates,
    template_detail,
    template_summary,
    update_template,
)
from app.utils.pagination import pagination_block

router = APIRouter()
logger = logging.getLogger(__name__)


class TemplateBody(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    document_type: Optional[str] = None
    status: Optional[str] = None
    fields: Optional[list[TemplateField]] = None
    settings: Optional[TemplateSettings] = None
    is_public: Optional[bool] = None
    is_favorite: Optional[bool] = None
    tags: Optional[list[str]] = None


def _column_values(payload: TemplateBody) -> dict:
    values = payload.model_dump(exclude_unset=True, exclude_none=True)
    if payload.fields is not None:
        values["fields"] = [f.model_dump(exclude_none=True) for f in payload.fields]
    return values


@router.get("/templates")
def list_user_templates(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    status: str = "all",
    document_type: str = Query("all", alias="type"),
    sort_by: str = Query("created_date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    include_public: bool = Query(False, alias="includePublic"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = list_templates(
        db,
        current_user.id,
        page=page,
        limit=limit,
        search=search,
        status=status,
        document_type=document_type,
        sort_by=sort_by,
        sort_order=sort_order,
        include_public=include_public,
    )
    return {
        "templates": [template_summary(row) for row in rows],
        "pagination": pagination_block(page, limit, total),
        "filters": {
            "search": search,
            "status": status,
            "type": document_type,
            "sortBy": sort_by,
            "sortOrder": sort_order,
            "includePublic": include_public,
        },
    }


@router.post("/templates", status_code=201)
def create_user_template(
    payload: TemplateBody,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not payload.name or not payload.document_type:
        raise HTTPException(400, "Name and document type are required")

    row = create_template(db, current_user.id, _column_values(payload))
    db.commit()
    db.refresh(row)
    return {"success": True, "template": template_summary(row)}


@router.get("/templates/{template_id}")
def get_template(
    template_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = accessible_template(db, template_id, current_user.id)
    if row is None:
        raise HTTPException(404, "Template not found")
    return template_detail(row, current_user.id)


@router.put("/templates/{template_id}")
def update_user_template(
    template_id: str,
    payload: TemplateBody,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    changes = _column_values(payload)
    if not changes:
        raise HTTPException(400, "No valid fields to update")

    row = accessible_template(db, template_id, current_user.id, owner_only=True)
    if row is None:
        raise HTTPException(404, "Template not found or access denied")
    update_template(row, changes)
    db.commit()
    db.refresh(row)
    return {"success": True, "template": template_summary(row)}


@router.delete("/templates/{template_id}")
def delete_user_template(
    template_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    row = accessible_template(db, template_id, current_user.id, owner_only=True)
    if row is None:
        raise HTTPException(404, "Template not found or access denied")
    try:
        delete_template(db, row)
    except TemplateInUse as exc:
        raise HTTPException(400, str(exc))
    db.commit()
    logger.info("Template %s deleted by %s", template_id, current_user.id)
    return {"success": True, "message": "Template deleted successfully"}
