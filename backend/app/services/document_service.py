"""Documents: upload pipeline, listing and edits, and per-document export prep."""

from __future__ import annotations

import json
import logging
import math
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Optional

from sqlalchemy import asc, desc, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import DocumentPersistError, StorageError, UploadRejected
from app.core.storage import create_signed_url, remove_object, upload_object, user_file_path
from app.models.documents import Document
from app.services.ai.common.catalogue import validate_ai_config
from app.services.ai.formatter import data_formatter
from app.services.ai.parser.contracts import DocumentParsingResult
from app.services.ai.parser.service import document_parser
from app.services.audit_service import create_audit_log
from app.services.exports.contracts import (
    EXPORT_FORMATS,
    DocumentExportData,
    DocumentExportMetadata,
    ExportFilters,
    ExportRequest,
    ExportSettings,
)
from app.services.template_service import load_template
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)

MB = 1024 * 1024
PREVIEW_CHARS = 500

SUPPORTED_TYPES: dict[str, dict[str, Any]] = {
    "application/pdf": {"ext": "pdf", "max_size": 10 * MB},
    "text/plain": {"ext": "txt", "max_size": 5 * MB},
    "application/msword": {"ext": "doc", "max_size": 10 * MB},
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": {
        "ext": "docx",
        "max_size": 10 * MB,
    },
    "image/jpeg": {"ext": "jpg", "max_size": 5 * MB},
    "image/png": {"ext": "png", "max_size": 5 * MB},
    "image/tiff": {"ext": "tiff", "max_size": 10 * MB},
}

_SIZE_UNITS = ("Bytes", "KB", "MB", "GB")


def format_file_size(size: int) -> str:
    if size <= 0:
        return "0 Bytes"
    idx = min(int(math.floor(math.log(size, 1024))), len(_SIZE_UNITS) - 1)
    value = round(size / (1024 ** idx), 2)
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {_SIZE_UNITS[idx]}"


def validate_upload(content_type: Optional[str], size: int) -> dict[str, Any]:
    """Return the ``SUPPORTED_TYPES`` entry or raise ``UploadRejected``."""
    file_type = SUPPORTED_TYPES.get((content_type or "").lower())
    if file_type is None:
        raise UploadRejected(f"Unsupported file type: {content_type}")
    max_size = min(file_type["max_size"], get_settings().max_upload_bytes)
    if size > max_size:
        raise UploadRejected(f"File too large. Maximum size is {max_size // MB}MB")
    return file_type


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _history_entry(entry_id: int, action: str, user: str, details: str) -> dict[str, Any]:
    return {
        "id": entry_id,
        "action": action,
        "timestamp": _now().isoformat(),
        "user": user,
        "details": details,
    }


@dataclass
class UploadOutcome:
    document: Document
    parsing: Optional[DocumentParsingResult] = None
    processing_error: Optional[str] = None
    exports: Optional[dict[str, Any]] = None


def build_export_previews(result: DocumentParsingResult) -> dict[str, Any]:
    json_export = data_formatter.to_json(result)
    csv_export = data_formatter.to_csv(result)
    structured_export = data_formatter.to_structured(result)
    preview = json.dumps(result.structured_data, indent=2, ensure_ascii=False, default=str)
    return {
        "json": {
            "filename": json_export.filename,
            "size": json_export.size,
            "preview": preview[:PREVIEW_CHARS] + "...",
        },
        "csv": {
            "filename": csv_export.filename,
            "size": csv_export.size,
            "rows": len(result.extracted_fields),
        },
        "structured": {
            "filename": structured_export.filename,
            "size": structured_export.size,
            "fields": len(result.extracted_fields),
        },
    }


def _apply_parsing(document: Document, result: DocumentParsingResult, size: int) -> None:
    meta = result.metadata
    document.status = "completed"
    document.confidence = int(round(result.confidence))
    document.pages = meta.pages if meta else 1
    document.fields_extracted = len(result.extracted_fields)
    document.processed_date = _now()
    document.document_type = result.document_type.value
    document.extracted_fields = [f.model_dump(mode="json", exclude_none=True) for f in result.extracted_fields]
    document.structured_data = json.loads(json.dumps(result.structured_data, default=str))
    document.ai_provider = meta.provider if meta else None
    document.ai_model = meta.model if meta else None
    document.processing_time_ms = int(meta.processing_time) if meta else None
    document.processing_history = [
        _history_entry(
            1,
            "Document uploaded",
            "User",
            f"File uploaded: {document.original_name} ({format_file_size(size)})",
        ),
        _history_entry(
            2,
            "AI processing started",
            "System",
            f"Processing with {document.ai_provider}/{document.ai_model}",
        ),
        _history_entry(
            3,
            "AI processing completed",
            "System",
            f"Extracted {document.fields_extracted} fields with {result.confidence:g}% confidence "
            f"in {document.processing_time_ms}ms",
        ),
    ]


def _mark_failed(document: Document, error: str) -> None:
    document.status = "error"
    document.processing_history = [
        _history_entry(1, "Document uploaded", "User", f"File uploaded: {document.original_name}"),
        _history_entry(2, "Processing failed", "System", f"AI processing failed: {error}"),
    ]


async def process_upload(
    db: Session,
    *,
    user_id: str,
    filename: str,
    content: bytes,
    content_type: Optional[str],
    document_type: Optional[str] = None,
    template_label: Optional[str] = None,
    template_id: Optional[str] = None,
    description: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> UploadOutcome:
    settings = get_settings()
    validate_upload(content_type, len(content))

    safe_name = PurePosixPath(filename or "document").name or "document"
    file_path = user_file_path(user_id, safe_name)
    # Same name from the same user replaces the stored file.
    upload_object(settings.storage_documents_bucket, file_path, content, content_type, upsert=True)

    template = load_template(db, template_id, user_id)
    document = Document(
        id=uuid.uuid4(),
        user_id=user_id,
        name=safe_name,
        original_name=safe_name,
        file_path=file_path,
        file_size=len(content),
        file_type=content_type,
        document_type=document_type or "unknown",
        template=template_label or "auto",
        template_id=uuid.UUID(template.id) if template else None,
        description=description or None,
        status="uploaded",
        upload_date=_now(),
        fields_extracted=0,
        processing_history=[],
    )

    outcome = UploadOutcome(document=document)
    validation = validate_ai_config()
    if not validation.is_valid:
        logger.warning("AI processing disabled: %s", validation.error)
        outcome.processing_error = validation.error or "AI configuration invalid"
        document.processing_history = [
            _history_entry(1, "Document uploaded", "User", f"File uploaded: {safe_name}"),
        ]
    else:
        t0 = time.monotonic()
        try:
            result = await document_parser.parse_document_with_file(
                content,
                filename=safe_name,
                content_type=content_type,
                template=template,
                db=db,
                actor_id=user_id,
            )
        except Exception as exc:
            logger.exception("AI processing failed for %s", safe_name)
            outcome.processing_error = str(exc) or "Unknown processing error"
            _mark_failed(document, outcome.processing_error)
        else:
            _apply_parsing(document, result, len(content))
            outcome.parsing = result
            logger.info(
                "Processed %s in %.0fms: %d fields, %d%% confidence",
                safe_name,
                (time.monotonic() - t0) * 1000,
                document.fields_extracted,
                document.confidence,
            )

    try:
        db.add(document)
        db.flush()
        create_audit_log(
            db,
            entity_type="document",
            entity_id=str(document.id),
            action="DOCUMENT_UPLOADED",
            old_value=None,
            new_value={
                "status": document.status,
                "file_type": document.file_type,
                "file_size": document.file_size,
                "template_id": str(document.template_id) if document.template_id else None,
            },
            actor_type="USER",
            actor_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            metadata={"processing_error": outcome.processing_error},
        )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database insert failed for %s: %s", file_path, exc)
        try:
            remove_object(settings.storage_documents_bucket, file_path)
        except StorageError:
            logger.error("Failed to clean up uploaded file %s", file_path, exc_info=True)
        raise DocumentPersistError("Failed to save document record") from exc

    if outcome.parsing is not None:
        try:
            outcome.exports = build_export_previews(outcome.parsing)
        except (TypeError, ValueError) as exc:
            logger.warning("Failed to generate export previews: %s", exc)

    return outcome


def document_summary(document: Document) -> dict[str, Any]:
    return {
        "id": str(document.id),
        "name": document.name,
        "status": document.status,
        "size": document.file_size,
        "type": document.document_type,
        "uploadedAt": document.upload_date.isoformat() if document.upload_date else None,
        "confidence": document.confidence,
        "pages": document.pages,
        "fieldsExtracted": document.fields_extracted,
        "processedAt": document.processed_date.isoformat() if document.processed_date else None,
    }


DOCUMENT_SORT_COLUMNS = {
    "upload_date": Document.upload_date,
    "processed_date": Document.processed_date,
    "name": Document.name,
    "file_size": Document.file_size,
    "confidence": Document.confidence,
}
UPDATABLE_DOCUMENT_FIELDS = ("description", "document_type", "template")


def list_documents(
    db: Session,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 10,
    search: str = "",
    status: str = "all",
    document_type: str = "all",
    sort_by: str = "upload_date",
    sort_order: str = "desc",
) -> tuple[list[Document], int]:
    """One page of the user's documents and the filtered total.

    Unknown sort keys fall back to newest upload first.
    """
    query = db.query(Document).filter(Document.user_id == user_id)
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Document.name.ilike(pattern),
                Document.original_name.ilike(pattern),
                Document.description.ilike(pattern),
            )
        )
    if status != "all":
        query = query.filter(Document.status == status)
    if document_type != "all":
        query = query.filter(Document.document_type == document_type)

    column = DOCUMENT_SORT_COLUMNS.get(sort_by)
    if column is None or sort_order not in ("asc", "desc"):
        column, sort_order = Document.upload_date, "desc"
    direction = asc if sort_order == "asc" else desc
    query = query.order_by(direction(column), direction(Document.id))
    return paginate(query, page, limit)


def document_list_item(document: Document) -> dict[str, Any]:
    template = document.template_ref
    return {
        "id": str(document.id),
        "name": document.name,
        "originalName": document.original_name,
        "type": document.document_type,
        "status": document.status,
        "uploadDate": document.upload_date.isoformat() if document.upload_date else None,
        "processedDate": document.processed_date.isoformat() if document.processed_date else None,
        "size": format_file_size(document.file_size or 0),
        "sizeBytes": document.file_size,
        "fileType": document.file_type,
        "confidence": document.confidence,
        "pages": document.pages,
        "fieldsExtracted": document.fields_extracted or 0,
        "description": document.description,
        "template": document.template or "auto",
        "templateId": str(document.template_id) if document.template_id else None,
        "templateData": {
            "id": str(template.id),
            "name": template.name,
            "type": template.document_type,
        }
        if template is not None
        else None,
    }


def document_file_url(document: Document) -> Optional[str]:
    """Short-lived link to the original upload; ``None`` when storage cannot sign."""
    settings = get_settings()
    try:
        return create_signed_url(
            settings.storage_documents_bucket,
            document.file_path,
            settings.document_url_ttl_seconds,
        )
    except StorageError as exc:
        logger.warning("Could not sign %s: %s", document.file_path, exc)
        return None


def document_detail(document: Document, file_url: Optional[str]) -> dict[str, Any]:
    detail = document_list_item(document)
    detail.pop("templateData")
    detail.update(
        {
            "processingHistory": document.processing_history or [],
            "extractedFields": document.extracted_fields or [],
            "structuredData": document.structured_data or {},
            "fileUrl": file_url,
            "tags": [],
        }
    )
    return detail


def update_document(
    db: Session,
    document: Document,
    changes: dict[str, Any],
    *,
    actor_id: str,
) -> Document:
    """Apply user-editable fields and audit the change. Caller commits."""
    old_value = {key: getattr(document, key) for key in changes}
    for key, value in changes.items():
        setattr(document, key, value)
    create_audit_log(
        db,
        entity_type="document",
        entity_id=str(document.id),
        action="DOCUMENT_UPDATED",
        old_value=old_value,
        new_value=dict(changes),
        actor_type="USER",
        actor_id=actor_id,
        ip_address=None,
        user_agent=None,
    )
    return document


def delete_document(db: Session, document: Document, *, actor_id: str) -> None:
    """Drop the stored file (best effort) and the row. Caller commits."""
    try:
        remove_object(get_settings().storage_documents_bucket, document.file_path)
    except StorageError as exc:
        logger.warning("Stored file %s not removed: %s", document.file_path, exc)
    create_audit_log(
        db,
        entity_type="document",
        entity_id=str(document.id),
        action="DOCUMENT_DELETED",
        old_value={"name": document.name, "file_path": document.file_path, "status": document.status},
        new_value=None,
        actor_type="USER",
        actor_id=actor_id,
        ip_address=None,
        user_agent=None,
    )
    db.delete(document)


def parsing_summary(result: DocumentParsingResult) -> dict[str, Any]:
    meta = result.metadata
    return {
        "summary": result.summary,
        "documentType": result.document_type.value,
        "confidence": result.confidence,
        "extractedFields": [f.model_dump(mode="json", exclude_none=True) for f in result.extracted_fields],
        "structuredData": result.structured_data,
        "provider": meta.provider if meta else None,
        "model": meta.model if meta else None,
        "processingTime": meta.processing_time if meta else None,
    }


def export_options(document: Document) -> dict[str, Any]:
    fields = [
        {
            "name": f.get("name"),
            "type": f.get("type"),
            "confidence": f.get("confidence"),
            "hasValue": bool(f.get("value")),
        }
        for f in (document.extracted_fields or [])
    ]
    return {
        "document": {
            "id": str(document.id),
            "name": document.name,
            "type": document.document_type,
            "status": document.status,
            "confidence": document.confidence,
            "pages": document.pages,
            "template": document.template,
            "fieldsCount": len(fields),
        },
        "exportOptions": {
            "availableFormats": list(EXPORT_FORMATS),
            "availableFields": fields,
            "suggestedName": f"{document.name}_export",
            "canExport": document.status == "completed" and len(fields) > 0,
        },
    }


# Dashboard clients send camelCase export settings.
_SETTINGS_KEYS = {
    "groupByType": "group_by_type",
    "includeMetadata": "include_metadata",
    "customFields": "custom_fields",
}


def document_export_data(document: Document) -> DocumentExportData:
    return DocumentExportData(
        id=str(document.id),
        name=document.name,
        type=document.document_type or "unknown",
        status=document.status,
        extracted_fields=[
            {
                "name": str(f.get("name", "")),
                "value": str(f.get("value", "")),
                "confidence": f.get("confidence") or 0,
                "type": str(f.get("type", "text")),
            }
            for f in (document.extracted_fields or [])
        ],
        metadata=DocumentExportMetadata(
            confidence=document.confidence,
            processing_date=document.processed_date.isoformat() if document.processed_date else None,
            pages=document.pages,
            template=document.template,
        ),
    )


def build_export_request(
    document: Document,
    *,
    user_id: str,
    fmt: str,
    export_name: Optional[str] = None,
    description: Optional[str] = None,
    include_fields: Optional[list[str]] = None,
    settings: Optional[dict[str, Any]] = None,
) -> ExportRequest:
    name = export_name or f"{document.name}_export_{int(time.time() * 1000)}"
    merged: dict[str, Any] = {"group_by_type": False, "include_metadata": True}
    for key, value in (settings or {}).items():
        merged[_SETTINGS_KEYS.get(key, key)] = value
    return ExportRequest(
        user_id=user_id,
        name=name,
        description=description or f"{fmt.upper()} export of {document.name}",
        format=fmt,
        documents=[document_export_data(document)],
        filters=ExportFilters(document_type=document.document_type),
        include_fields=include_fields or None,
        settings=ExportSettings.model_validate(merged),
    )
