"""Export job rows: recording finished exports, listing, lookup and removal."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import StorageError
from app.core.storage import remove_object
from app.models.documents import Document, ExportJob
from app.services.exports.contracts import ExportRequest, ExportResult
from app.utils.pagination import paginate

logger = logging.getLogger(__name__)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def record_export(
    db: Session,
    *,
    document: Document,
    request: ExportRequest,
    result: ExportResult,
    started_at: datetime,
) -> ExportJob:
    """Persist a finished single-document export. Caller commits."""
    completed_at = datetime.now(timezone.utc)
    job = ExportJob(
        user_id=request.user_id,
        name=request.name,
        description=request.description,
        type="document_export",
        format=request.format,
        filters={"document_id": str(document.id)},
        include_fields=request.include_fields or [],
        settings=request.settings.model_dump(exclude_none=True) if request.settings else {},
        status="completed",
        file_path=result.file_path,
        file_size=result.file_size,
        records_count=1,
        download_count=0,
        created_at=started_at,
        started_at=started_at,
        completed_at=completed_at,
        expires_at=completed_at + timedelta(days=get_settings().export_retention_days),
    )
    db.add(job)
    db.flush()
    return job


def export_summary(job: ExportJob) -> dict[str, Any]:
    return {
        "id": str(job.id),
        "name": job.name,
        "description": job.description,
        "status": job.status,
        "type": job.type,
        "format": job.format,
        "file_size": job.file_size,
        "records_count": job.records_count,
        "created_at": _iso(job.created_at),
        "completed_at": _iso(job.completed_at),
    }


def export_detail(job: ExportJob) -> dict[str, Any]:
    detail = export_summary(job)
    detail.update(
        {
            "filters": job.filters or {},
            "include_fields": job.include_fields or [],
            "settings": job.settings or {},
            "download_count": job.download_count or 0,
            "started_at": _iso(job.started_at),
            "expires_at": _iso(job.expires_at),
            "error_message": job.error_message,
            "retry_count": job.retry_count or 0,
        }
    )
    return detail


def list_exports(
    db: Session,
    user_id: str,
    *,
    page: int = 1,
    limit: int = 20,
    status: Optional[str] = None,
    export_type: Optional[str] = None,
    fmt: Optional[str] = None,
) -> tuple[list[ExportJob], int]:
    query = db.query(ExportJob).filter(ExportJob.user_id == user_id)
    if status:
        query = query.filter(ExportJob.status == status)
    if export_type:
        query = query.filter(ExportJob.type == export_type)
    if fmt:
        query = query.filter(ExportJob.format == fmt)
    query = query.order_by(desc(ExportJob.created_at), desc(ExportJob.id))
    return paginate(query, page, limit)


def owned_export(db: Session, export_id: str, user_id: str) -> Optional[ExportJob]:
    try:
        export_uuid = uuid.UUID(str(export_id))
    except ValueError:
        return None
    return (
        db.query(ExportJob)
        .filter(ExportJob.id == export_uuid, ExportJob.user_id == user_id)
        .first()
    )


def delete_exports(db: Session, jobs: Iterable[ExportJob]) -> int:
    """Remove the stored files (best effort) and the rows. Caller commits."""
    bucket = get_settings().storage_exports_bucket
    deleted = 0
    for job in jobs:
        if job.file_path:
            try:
                remove_object(bucket, job.file_path)
            except StorageError as exc:
                logger.warning("Export file %s not removed: %s", job.file_path, exc)
        db.delete(job)
        deleted += 1
    return deleted
