from __future__ import annotations

import pytest

from ridehail.config import _ENV_NAMES


@pytest.fixture(autouse=True)
def clean_ridehail_env(monkeypatch):
    for env_name in _ENV_NAMES.values():
        monkeypatch.delenv(env_name, raising=False)
