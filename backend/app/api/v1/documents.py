import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.dependencies import get_db
from app.core.errors import DocumentPersistError, StorageError, UploadRejected
from app.models.documents import Document
from app.services.document_service import (
    build_export_request,
    delete_document,
    document_detail,
    document_file_url,
    document_list_item,
    document_summary,
    export_options,
    list_documents,
    parsing_summary,
    process_upload,
    update_document,
)
from app.services.export_jobs import export_summary, record_export
from app.services.exports.ai_exporter import ai_exporter
from app.services.exports.contracts import EXPORT_FORMATS
from app.utils.pagination import pagination_block
from app.utils.rate_limit import get_client_ip, get_user_agent

router = APIRouter()
logger = logging.getLogger(__name__)


class DocumentExportBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    format: str = "json"
    export_name: Optional[str] = Field(None, alias="exportName")
    description: Optional[str] = None
    include_fields: Optional[list[str]] = Field(None, alias="includeFields")
    settings: Optional[dict[str, Any]] = None


class DocumentUpdateBody(BaseModel):
    description: Optional[str] = None
    document_type: Optional[str] = None
    template: Optional[str] = None


def _owned_document(db: Session, document_id: str, user_id: str) -> Document:
    try:
        doc_uuid = uuid.UUID(document_id)
    except ValueError:
        raise HTTPException(404, "Document not found")
    document = (
        db.query(Document)
        .filter(Document.id == doc_uuid, Document.user_id == user_id)
        .first()
    )
    if document is None:
        raise HTTPException(404, "Document not found")
    return document


def _validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    return [
        {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
        for err in exc.errors()
    ]


@router.get("/documents")
def list_user_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    search: str = "",
    status: str = "all",
    document_type: str = Query("all", alias="type"),
    sort_by: str = Query("upload_date", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = list_documents(
        db,
        current_user.id,
        page=page,
        limit=limit,
        search=search,
        status=status,
        document_type=document_type,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    return {
        "documents": [document_list_item(doc) for doc in rows],
        "pagination": pagination_block(page, limit, total),
        "filters": {
            "search": search,
            "status": status,
            "type": document_type,
            "sortBy": sort_by,
            "sortOrder": sort_order,
        },
    }


@router.post("/documents/upload", status_code=201)
async def upload_document(
    request: Request,
    file: Optional[UploadFile] = File(None),
    document_type: Optional[str] = Form(None, alias="documentType"),
    template: Optional[str] = Form(None),
    template_id: Optional[str] = Form(None, alias="templateId"),
    description: Optional[str] = Form(None),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if file is None:
        raise HTTPException(400, "No file provided")
    content = await file.read()

    try:
        outcome = await process_upload(
            db,
            user_id=current_user.id,
            filename=file.filename or "document",
            content=content,
            content_type=file.content_type,
            document_type=document_type,
            template_label=template,
            template_id=template_id,
            description=description,
            ip_address=get_client_ip(request),
            user_agent=get_user_agent(request),
        )
    except UploadRejected as exc:
        raise HTTPException(400, str(exc))
    except StorageError as exc:
        logger.error("Document upload to storage failed: %s", exc)
        raise HTTPException(500, "Failed to upload file")
    except DocumentPersistError as exc:
        raise HTTPException(500, str(exc))

    return {
        "success": True,
        "document": document_summary(outcome.document),
        "parsing": parsing_summary(outcome.parsing) if outcome.parsing else None,
        "exports": outcome.exports,
        "processingError": outcome.processing_error,
    }


@router.get("/documents/{document_id}")
def get_document(
    document_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = _owned_document(db, document_id, current_user.id)
    return document_detail(document, document_file_url(document))


@router.put("/documents/{document_id}")
def update_user_document(
    document_id: str,
    payload: DocumentUpdateBody,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    # Only description may be cleared; the other columns are NOT NULL.
    changes = {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key == "description"
    }
    if not changes:
        raise HTTPException(400, "No valid fields to update")

    document = _owned_document(db, document_id, current_user.id)
    update_document(db, document, changes, actor_id=current_user.id)
    db.commit()
    db.refresh(document)
    return {"success": True, "document": document_list_item(document)}


@router.delete("/documents/{document_id}")
def delete_user_document(
    document_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = _owned_document(db, document_id, current_user.id)
    delete_document(db, document, actor_id=current_user.id)
    db.commit()
    return {"success": True, "message": "Document deleted successfully"}


@router.get("/documents/{document_id}/export")
def get_document_export_options(
    document_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    document = _owned_document(db, document_id, current_user.id)
    return export_options(document)


@router.post("/documents/{document_id}/export")
async def export_document(
    document_id: str,
    payload: DocumentExportBody,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if payload.format not in EXPORT_FORMATS:
        raise HTTPException(400, "Invalid export format")

    document = _owned_document(db, document_id, current_user.id)
    if document.status != "completed":
        raise HTTPException(
            400,
            {"error": "Document is not fully processed yet", "status": document.status},
        )

    try:
        export_request = build_export_request(
            document,
            user_id=current_user.id,
            fmt=payload.format,
            export_name=payload.export_name,
            description=payload.description,
            include_fields=payload.include_fields,
            settings=payload.settings,
        )
    except ValidationError as exc:
        raise HTTPException(
            400,
            {"error": "Invalid export settings", "details": _validation_details(exc)},
        )

    started_at = datetime.now(timezone.utc)
    result = await ai_exporter.generate_export(export_request, db=db)
    if not result.success:
        # Shown to clients only when expose_error_details is set.
        raise HTTPException(500, {"error": "Export generation failed", "details": result.error})

    job = record_export(
        db,
        document=document,
        request=export_request,
        result=result,
        started_at=started_at,
    )
    db.commit()
    db.refresh(job)

    return {
        "success": True,
        "export": export_summary(job),
        "message": (
            f'Document "{document.name}" exported successfully as {payload.format.upper()}. '
            "You can download it from the Exports page."
        ),
    }
