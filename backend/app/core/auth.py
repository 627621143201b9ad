import logging
import threading
from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Header, HTTPException
from jwt import PyJWKClient

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Lazily created; PyJWKClient caches signing keys itself.
_jwks_client: Optional[PyJWKClient] = None
_jwks_lock = threading.Lock()


def _get_jwks_client(jwks_url: str) -> PyJWKClient:
    global _jwks_client
    if _jwks_client is not None:
        return _jwks_client
    with _jwks_lock:
        if _jwks_client is None:
            _jwks_client = PyJWKClient(jwks_url, cache_keys=True, lifespan=3600)
        return _jwks_client


@dataclass
class CurrentUser:
    """Authenticated document owner. Everything is scoped by ``id``."""

    id: str
    email: Optional[str] = None


def _decode_kwargs(settings) -> dict:
    audience = (settings.supabase_jwt_audience or "").strip()
    if audience:
        return {"audience": audience, "options": {"verify_aud": True}}
    return {"options": {"verify_aud": False}}


def _verify_hs256(token: str, settings) -> Optional[dict]:
    if not settings.supabase_jwt_secret:
        return None
    try:
        return jwt.decode(
            token,
            settings.supabase_jwt_secret,
            algorithms=["HS256"],
            **_decode_kwargs(settings),
        )
    except jwt.InvalidTokenError:
        return None


def _verify_es256(token: str, settings) -> Optional[dict]:
    base_url = (settings.supabase_url or "").rstrip("/")
    if not base_url:
        return None
    try:
        client = _get_jwks_client(f"{base_url}/auth/v1/.well-known/jwks.json")
        signing_key = client.get_signing_key_from_jwt(token)
        return jwt.decode(
            token,
            signing_key.key,
            algorithms=["ES256"],
            **_decode_kwargs(settings),
        )
    except (jwt.InvalidTokenError, jwt.PyJWKClientError) as exc:
        logger.debug("ES256 verification failed: %s", exc)
        return None


def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
) -> CurrentUser:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(401, "Unauthorized")

    token = authorization.split(" ", 1)[1].strip()
    settings = get_settings()
    if not settings.supabase_jwt_secret and not settings.supabase_url:
        raise HTTPException(500, "SUPABASE_JWT_SECRET is not configured")

    try:
        alg = jwt.get_unverified_header(token).get("alg", "")
    except jwt.DecodeError:
        raise HTTPException(401, "Unauthorized")

    # Try the strategy the header names first to avoid a JWKS round trip.
    strategies = (_verify_es256, _verify_hs256) if alg == "ES256" else (_verify_hs256, _verify_es256)
    payload = None
    for verify in strategies:
        payload = verify(token, settings)
        if payload is not None:
            break

    if payload is None or not payload.get("sub"):
        raise HTTPException(401, "Unauthorized")

    return CurrentUser(id=str(payload["sub"]), email=payload.get("email"))
