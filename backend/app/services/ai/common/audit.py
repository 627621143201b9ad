"""Audit trail for model calls made while parsing documents or building exports."""

from __future__ import annotations

import hashlib
import logging
import uuid
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.documents import AuditLog
from app.services.audit_service import create_audit_log

from .structured import StructuredResult

logger = logging.getLogger(__name__)

PARSE_SCOPE = "document_parse"
EXPORT_SCOPE = "export_generate"

SCOPE_ACTIONS: dict[str, str] = {
    PARSE_SCOPE: "AI_DOCUMENT_PARSED",
    EXPORT_SCOPE: "AI_EXPORT_GENERATED",
}


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def run_metadata(run: StructuredResult, scope: str) -> dict[str, Any]:
    """Provider usage for one structured run. Raw text only with ``AI_DEBUG_STORE_RAW``."""
    reply = run.provider_result
    meta: dict[str, Any] = {
        "scope": scope,
        "provider": reply.provider,
        "model": reply.model,
        "attempts": run.attempts,
        "prompt_tokens": reply.prompt_tokens,
        "completion_tokens": reply.completion_tokens,
        "latency_ms": reply.latency_ms,
        "prompt_hash": _digest(run.prompt),
        "response_hash": _digest(reply.raw_text),
    }
    if get_settings().ai_debug_store_raw:
        meta["prompt_raw"] = run.prompt
        meta["response_raw"] = reply.raw_text
    return meta


def log_ai_run(
    db: Session,
    *,
    scope: str,
    run: StructuredResult,
    summary: Optional[dict[str, Any]],
    actor_id: Optional[str] = None,
    subject_id: Optional[str] = None,
    extra_meta: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Add one audit row for *run*; the caller commits.

    Dry runs have no stored subject, so they are filed under a fresh id.
    """
    meta = run_metadata(run, scope)
    meta.update(extra_meta or {})
    action = SCOPE_ACTIONS.get(scope, "AI_RUN")
    logger.debug("Auditing %s via %s/%s", action, meta["provider"], meta["model"])

    return create_audit_log(
        db,
        entity_type="ai",
        entity_id=subject_id or str(uuid.uuid4()),
        action=action,
        old_value=None,
        new_value=summary,
        actor_type="SYSTEM",
        actor_id=actor_id,
        ip_address=None,
        user_agent=None,
        metadata=meta,
    )
