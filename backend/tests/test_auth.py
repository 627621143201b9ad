import jwt
import pytest
from fastapi import HTTPException

from app.core.auth import get_current_user
from app.core.config import get_settings

USER_ID = "00000000-0000-0000-0000-000000000123"


def _make_token(secret: str, aud: str | None = "authenticated", **claims) -> str:
    payload = {"sub": USER_ID, "email": "owner@test.local", **claims}
    if aud is not None:
        payload["aud"] = aud
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def hs256_env(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPABASE_JWT_AUDIENCE", "authenticated")
    monkeypatch.setenv("SUPABASE_URL", "")
    get_settings.cache_clear()


def test_accepts_matching_audience(hs256_env):
    user = get_current_user(authorization=f"Bearer {_make_token('test-secret')}")
    assert user.id == USER_ID
    assert user.email == "owner@test.local"


def test_rejects_wrong_audience(hs256_env):
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {_make_token('test-secret', 'other')}")
    assert exc.value.status_code == 401


def test_rejects_wrong_secret(hs256_env):
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {_make_token('another-secret')}")
    assert exc.value.status_code == 401


def test_rejects_token_without_subject(hs256_env):
    token = jwt.encode({"aud": "authenticated"}, "test-secret", algorithm="HS256")
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {token}")
    assert exc.value.status_code == 401


def test_audience_check_skipped_when_unset(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "test-secret")
    monkeypatch.setenv("SUPABASE_JWT_AUDIENCE", "")
    monkeypatch.setenv("SUPABASE_URL", "")
    get_settings.cache_clear()

    user = get_current_user(authorization=f"Bearer {_make_token('test-secret', 'anything')}")
    assert user.id == USER_ID


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer not.a.jwt"])
def test_malformed_headers_unauthorized(hs256_env, header):
    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=header)
    assert exc.value.status_code == 401


def test_missing_configuration_is_server_error(monkeypatch):
    monkeypatch.setenv("SUPABASE_JWT_SECRET", "")
    monkeypatch.setenv("SUPABASE_URL", "")
    get_settings.cache_clear()

    with pytest.raises(HTTPException) as exc:
        get_current_user(authorization=f"Bearer {_make_token('x')}")
    assert exc.value.status_code == 500
