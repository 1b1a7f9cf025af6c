"""PyTest configuration shared by all ropchain tests."""

import os
import pytest
from ropchain.util import config


@pytest.fixture(autouse=True)
def isolated_config(monkeypatch, tmp_path):
    """
    Keep every test independent of the user's ~/.ropchain.toml and of any
    ROPCHAIN_* environment variables.
    """
    monkeypatch.setenv("HOME", str(tmp_path))
    for env_var in list(os.environ):
        if env_var.startswith("ROPCHAIN_"):
            monkeypatch.delenv(env_var)
    config.reset_config()
    yield
    config.reset_config()
