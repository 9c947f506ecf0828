"""Shared pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from pro_audio_config import logging_setup
from pro_audio_config.config import Config

from fakes import FakeAvailability


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep the log file and config lookups inside tmp_path."""
    log_dir = tmp_path / "state"
    monkeypatch.setenv("PRO_AUDIO_CONFIG_LOG_DIR", str(log_dir))
    monkeypatch.setenv("PRO_AUDIO_CONFIG_INI", str(tmp_path / "absent.ini"))
    monkeypatch.delenv("PKEXEC_UID", raising=False)
    monkeypatch.delenv("SUDO_UID", raising=False)
    monkeypatch.setattr(logging_setup, "_LOG_PATH", None)
    monkeypatch.setattr(logging_setup, "_STARTED", False)
    monkeypatch.setattr(logging_setup, "_DEBUG", False)
    return log_dir


@pytest.fixture
def config():
    return Config()


@pytest.fixture
def all_installed():
    return FakeAvailability()
