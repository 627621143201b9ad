"""AI diagnostics: configuration status and a one-shot parsing dry run."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.core.auth import CurrentUser, get_current_user
from app.core.dependencies import get_db
from app.services.ai.common.catalogue import validate_ai_config
from app.services.ai.formatter import data_formatter
from app.services.ai.parser.service import document_parser
from app.services.template_service import load_template

router = APIRouter()
logger = logging.getLogger(__name__)

PREVIEW_CHARS = 500
CSV_PREVIEW_LINES = 5

PROVIDER_NOTES = {
    "openai": "Supports text and images, high accuracy",
    "google": "Supports text and images, fast processing",
    "groq": "Text only, very fast and cost-effective",
}


@router.get("/ai/test")
def ai_status(current_user: CurrentUser = Depends(get_current_user)):
    validation = validate_ai_config()
    return {
        "ai_status": "configured" if validation.is_valid else "not_configured",
        "error": validation.error,
        "message": (
            "AI services are properly configured and ready for use"
            if validation.is_valid
            else "AI services require configuration"
        ),
        "instructions": {
            "setup": "Set AI_PROVIDER (openai/google/groq) and appropriate API key",
            "test": "POST file to this endpoint to test AI parsing",
            "providers": PROVIDER_NOTES,
        },
    }


@router.post("/ai/test")
async def ai_parse_test(
    file: Optional[UploadFile] = File(None),
    template_id: Optional[str] = Form(None, alias="templateId"),
    current_user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    validation = validate_ai_config()
    if not validation.is_valid:
        raise HTTPException(400, {"error": "AI configuration invalid", "details": validation.error})
    if file is None:
        raise HTTPException(400, "No file provided")

    content = await file.read()
    logger.info("AI test parse: %s (%s, %d bytes)", file.filename, file.content_type, len(content))

    try:
        template = load_template(db, template_id, current_user.id)
        result = await document_parser.parse_document_with_file(
            content,
            filename=file.filename,
            content_type=file.content_type,
            template=template,
            db=db,
            actor_id=current_user.id,
        )
        db.commit()

        json_export = data_formatter.to_json(result)
        csv_export = data_formatter.to_csv(result)
        structured_export = data_formatter.to_structured(result)
    except Exception as exc:
        db.rollback()
        logger.exception("AI parsing test failed")
        raise HTTPException(500, {"error": "AI parsing test failed", "details": str(exc)})

    meta = result.metadata
    csv_preview = "\n".join(csv_export.data.split("\n")[:CSV_PREVIEW_LINES]) + "\n..."
    return {
        "success": True,
        "test": True,
        "parsing": {
            "summary": result.summary,
            "document_type": result.document_type.value,
            "confidence": result.confidence,
            "fields_count": len(result.extracted_fields),
            "provider": meta.provider if meta else None,
            "model": meta.model if meta else None,
            "processing_time": meta.processing_time if meta else None,
        },
        "extracted_fields": [f.model_dump(mode="json", exclude_none=True) for f in result.extracted_fields],
        "structured_data": result.structured_data,
        "exports": {
            "json": {
                "filename": json_export.filename,
                "size": json_export.size,
                "preview": json_export.data[:PREVIEW_CHARS] + "...",
            },
            "csv": {
                "filename": csv_export.filename,
                "size": csv_export.size,
                "rows": len(result.extracted_fields),
                "preview": csv_preview,
            },
            "structured": {
                "filename": structured_export.filename,
                "size": structured_export.size,
                "fields": len(result.extracted_fields),
            },
        },
    }
