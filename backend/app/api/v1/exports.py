import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.config import get_settings
from app.core.dependencies import get_db
from app.core.errors import StorageError
from app.core.storage import download_object
from app.models.documents import ExportJob
from app.services.export_jobs import delete_exports, export_detail, list_exports, owned_export
from app.services.exports.ai_exporter import CONTENT_TYPES
from app.utils.pagination import pagination_block

router = APIRouter()
logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _require_export(db: Session, export_id: str, user_id: str) -> ExportJob:
    job = owned_export(db, export_id, user_id)
    if job is None:
        raise HTTPException(404, "Export not found")
    return job


@router.get("/exports")
def list_user_exports(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    status: Optional[str] = None,
    export_type: Optional[str] = Query(None, alias="type"),
    fmt: Optional[str] = Query(None, alias="format"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rows, total = list_exports(
        db,
        current_user.id,
        page=page,
        limit=limit,
        status=status,
        export_type=export_type,
        fmt=fmt,
    )
    return {
        "exports": [export_detail(job) for job in rows],
        "pagination": pagination_block(page, limit, total),
    }


@router.delete("/exports")
def bulk_delete_exports(
    ids: Optional[str] = None,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if not ids:
        raise HTTPException(400, "Export IDs are required")
    export_ids = []
    for raw in ids.split(","):
        try:
            export_ids.append(uuid.UUID(raw.strip()))
        except ValueError:
            continue
    if not export_ids:
        raise HTTPException(400, "No valid export IDs provided")

    jobs = (
        db.query(ExportJob)
        .filter(ExportJob.id.in_(export_ids), ExportJob.user_id == current_user.id)
        .all()
    )
    deleted = delete_exports(db, jobs)
    db.commit()
    return {"message": f"Successfully deleted {deleted} exports"}


@router.get("/exports/{export_id}")
def get_export(
    export_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"export": export_detail(_require_export(db, export_id, current_user.id))}


@router.delete("/exports/{export_id}")
def delete_export(
    export_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job = _require_export(db, export_id, current_user.id)
    delete_exports(db, [job])
    db.commit()
    return {"message": "Export deleted successfully"}


@router.get("/exports/{export_id}/download")
def download_export(
    export_id: str,
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    job = _require_export(db, export_id, current_user.id)
    if job.status != "completed":
        raise HTTPException(400, {"error": "Export is not ready for download", "status": job.status})
    if job.expires_at and _as_utc(job.expires_at) < datetime.now(timezone.utc):
        raise HTTPException(410, "Export has expired")
    if not job.file_path:
        raise HTTPException(404, "Export file not found")

    try:
        content = download_object(get_settings().storage_exports_bucket, job.file_path)
    except StorageError as exc:
        logger.error("Export %s download failed: %s", job.id, exc)
        raise HTTPException(500, "Failed to download export file")

    job.download_count = (job.download_count or 0) + 1
    db.commit()

    file_name = job.file_path.rsplit("/", 1)[-1]
    return Response(
        content=content,
        media_type=CONTENT_TYPES.get(job.format, "application/octet-stream"),
        headers={
            "Content-Disposition": f'attachment; filename="{file_name}"',
            "Cache-Control": "private, no-cache",
        },
    )
