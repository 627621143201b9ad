import logging
from typing import Optional

from supabase import create_client

from app.core.config import get_settings
from app.core.errors import StorageError

logger = logging.getLogger(__name__)


def get_storage_client():
    settings = get_settings()
    key = settings.supabase_service_role_key or settings.supabase_key
    if not settings.supabase_url or not key:
        raise StorageError("Supabase storage credentials are not configured")
    return create_client(settings.supabase_url, key)


def user_file_path(user_id: str, filename: str) -> str:
    return f"{user_id}/{filename}"


def _result_error(result) -> Optional[str]:
    if isinstance(result, dict):
        return result.get("error")
    return getattr(result, "error", None)


def upload_object(
    bucket: str,
    path: str,
    content: bytes,
    content_type: Optional[str],
    *,
    upsert: bool = False,
) -> str:
    """Upload *content* to ``bucket/path`` and return the stored path."""
    options = {"upsert": "true" if upsert else "false"}
    if content_type:
        options["content-type"] = content_type
    try:
        result = get_storage_client().storage.from_(bucket).upload(path, content, options)
    except StorageError:
        raise
    except Exception as exc:
        logger.warning("Upload to %s/%s failed: %s", bucket, path, exc)
        raise StorageError(f"Failed to upload file: {exc}") from exc

    error = _result_error(result)
    if error:
        raise StorageError(f"Failed to upload file: {error}")
    return path


def create_signed_url(bucket: str, path: str, expires_in: int) -> Optional[str]:
    """Signed download URL, or ``None`` when the store refuses to sign."""
    try:
        result = get_storage_client().storage.from_(bucket).create_signed_url(path, expires_in)
    except StorageError:
        raise
    except Exception as exc:
        logger.warning("Signing %s/%s failed: %s", bucket, path, exc)
        return None
    if isinstance(result, dict):
        return result.get("signedURL") or result.get("signedUrl") or result.get("signed_url")
    return getattr(result, "signed_url", None)


def download_object(bucket: str, path: str) -> bytes:
    try:
        return get_storage_client().storage.from_(bucket).download(path)
    except StorageError:
        raise
    except Exception as exc:
        logger.warning("Download of %s/%s failed: %s", bucket, path, exc)
        raise StorageError(f"Failed to download file: {exc}") from exc


def remove_object(bucket: str, path: str) -> None:
    try:
        get_storage_client().storage.from_(bucket).remove([path])
    except StorageError:
        raise
    except Exception as exc:
        logger.warning("Removal of %s/%s failed: %s", bucket, path, exc)
        raise StorageError(f"Failed to remove file: {exc}") from exc
