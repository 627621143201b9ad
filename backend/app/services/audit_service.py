import logging
from typing import Any, Optional

from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.models.documents import AuditLog

logger = logging.getLogger(__name__)

PII_REDACTION_FALLBACK_FIELDS = {
    "phone",
    "email",
    "address",
    "ssn",
    "tax_id",
    "iban",
    "account_number",
}


def _redact_pii(value: Any, redact_keys: set[str]) -> Any:
    if value is None:
        return None
    if isinstance(value, dict):
        return {
            key: "[REDACTED]"
            if isinstance(key, str) and key.lower() in redact_keys
            else _redact_pii(item, redact_keys)
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_redact_pii(item, redact_keys) for item in value]
    return value


def create_audit_log(
    db: Session,
    *,
    entity_type: str,
    entity_id: str,
    action: str,
    old_value: Optional[dict[str, Any]],
    new_value: Optional[dict[str, Any]],
    actor_type: str,
    actor_id: Optional[str],
    ip_address: Optional[str],
    user_agent: Optional[str],
    metadata: Optional[dict[str, Any]] = None,
) -> AuditLog:
    """Add an audit row to the session; the caller owns the commit."""
    settings = get_settings()
    if settings.pii_redaction_enabled:
        configured = {item.lower() for item in settings.pii_redaction_fields}
        redact_keys = configured or set(PII_REDACTION_FALLBACK_FIELDS)
        old_value = _redact_pii(old_value, redact_keys)
        new_value = _redact_pii(new_value, redact_keys)
        if metadata is not None:
            metadata = _redact_pii(metadata, redact_keys)

    log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        old_value=old_value,
        new_value=new_value,
        actor_type=actor_type,
        actor_id=actor_id,
        ip_address=ip_address,
        user_agent=user_agent,
        audit_meta=metadata,
    )
    db.add(log)
    logger.debug("Audit %s %s/%s", action, entity_type, entity_id)
    return log
