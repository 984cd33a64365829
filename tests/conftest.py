import os

import pytest


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch):
    for name in list(os.environ):
        if name.startswith("PRODUCTLOADER_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("PRODUCTLOADER_API_KEY", "test-key")
