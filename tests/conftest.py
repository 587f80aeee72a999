from __future__ import annotations

import pytest

from aurax.config import get_settings

from .fakes import API_KEY, BASE_URL, KEY_ID


@pytest.fixture(autouse=True)
def aurax_env(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("AURAX_API_KEY", API_KEY)
    monkeypatch.setenv("AURAX_KEY_ID", KEY_ID)
    monkeypatch.setenv("AURAX_BASE_URL", BASE_URL)
    monkeypatch.setenv("AURAX_STREAM_RETRY", "0")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
