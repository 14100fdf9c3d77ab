"""Tests for Settings from environment and logging setup."""

import logging
from pathlib import Path

import pytest

from bidportal.authz.policy import DEFAULT_POLICY_PATH
from bidportal.logging_config import AUDIT_LOGGER, configure_app_logging
from bidportal.settings import Settings


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DB_URL", "POLICY_PATH", "LOG_LEVEL", "AUDIT_LOG_LEVEL", "SEED_DEMO_DATA"):
        monkeypatch.delenv(f"BIDPORTAL_{name}", raising=False)


def test_settings_defaults():
    settings = Settings()
    assert settings.resolved_db_url().startswith("sqlite:///")
    assert settings.resolved_db_url().endswith("bidportal.db")
    assert settings.resolved_policy_path() == DEFAULT_POLICY_PATH
    assert settings.log_level == "INFO"
    assert settings.audit_log_level is None
    assert settings.seed_demo_data is True


def test_settings_from_environ(monkeypatch, tmp_path):
    monkeypatch.setenv("BIDPORTAL_DB_URL", "postgresql://portal@db/portal")
    monkeypatch.setenv("BIDPORTAL_POLICY_PATH", str(tmp_path / "policy.yaml"))
    monkeypatch.setenv("BIDPORTAL_SEED_DEMO_DATA", "false")
    monkeypatch.setenv("BIDPORTAL_AUDIT_LOG_LEVEL", "WARNING")

    settings = Settings()

    assert settings.resolved_db_url() == "postgresql://portal@db/portal"
    assert settings.resolved_policy_path() == Path(tmp_path / "policy.yaml")
    assert settings.seed_demo_data is False
    assert settings.audit_log_level == "WARNING"


@pytest.fixture
def _restore_levels():
    names = ("bidportal", AUDIT_LOGGER)
    saved = {n: logging.getLogger(n).level for n in names}
    yield
    for name, level in saved.items():
        logging.getLogger(name).setLevel(level)


@pytest.mark.usefixtures("_restore_levels")
def test_configure_app_logging_sets_package_and_audit_levels():
    configure_app_logging("debug", audit_level="warning")
    assert logging.getLogger("bidportal").level == logging.DEBUG
    assert logging.getLogger(AUDIT_LOGGER).level == logging.WARNING

    configure_app_logging("error")
    assert logging.getLogger(AUDIT_LOGGER).level == logging.ERROR
