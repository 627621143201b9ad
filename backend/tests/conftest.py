import os

import pytest

from app.core.config import get_settings

# app.main reads settings at import time; keep the suite offline by default.
os.environ.setdefault("AI_PROVIDER", "mock")


@pytest.fixture(autouse=True)
def _reset_settings_cache():
    # Tests patch env vars; never leak a cached Settings instance across tests.
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
