"""Shared fixtures for Home Ledger tests."""

import os

import pytest

from homeledger.config import get_settings
from homeledger.config.settings import AppSettings, LedgerSettings, Settings


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    """Every test starts from default settings, whatever the environment or a local .env says."""
    for var in list(os.environ):
        if var.startswith("LEDGER_"):
            monkeypatch.delenv(var)
    for settings_cls in (LedgerSettings, AppSettings, Settings):
        monkeypatch.setitem(settings_cls.model_config, "env_file", None)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
