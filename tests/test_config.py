import importlib

import pytest
from pydantic import ValidationError

from appraisal.core import config
from appraisal.core.config import Settings


def test_strategy_setting_accepts_known_strategies():
    assert Settings(DEFAULT_STRATEGY="hedonic").DEFAULT_STRATEGY == "hedonic"
    with pytest.raises(ValidationError):
        Settings(DEFAULT_STRATEGY="median")


def test_bad_strategy_in_env_fails_at_startup(monkeypatch):
    # Restored on teardown, so the rest of the suite keeps the original objects
    monkeypatch.setattr(config, "Settings", config.Settings)
    monkeypatch.setattr(config, "settings", config.settings)
    monkeypatch.setenv("DEFAULT_STRATEGY", "median")
    with pytest.raises(ValidationError):
        importlib.reload(config)
