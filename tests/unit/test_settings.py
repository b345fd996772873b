"""Tests for calhub/settings.py and calhub/logging_config.py"""

import logging

import pytest

from calhub import PROJECT_ROOT
from calhub.logging_config import QUIET_LOGGERS, setup_logging
from calhub.settings import (
    ADMIN_TOKEN_ENV,
    CONFIG_FILE_ENV,
    DATA_DIR_ENV,
    ENCRYPTION_KEY_ENV,
    CalhubSettings,
    load_settings,
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (CONFIG_FILE_ENV, DATA_DIR_ENV, ADMIN_TOKEN_ENV, ENCRYPTION_KEY_ENV):
        monkeypatch.delenv(name, raising=False)


# ─────────────────────────────────────────────────────────────────────────────
# YAML loading
# ─────────────────────────────────────────────────────────────────────────────


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults_when_missing(self, tmp_path):
        settings = load_settings(tmp_path / "missing.yaml")

        assert settings.admin.port == 8080
        assert settings.admin.token is None
        assert settings.auth.device_code_wait_seconds == 30.0
        assert settings.config_file == PROJECT_ROOT / "data" / "appsettings.json"

    def test_reads_calhub_section(self, tmp_path):
        path = tmp_path / "calhub.yaml"
        path.write_text(
            "calhub:\n"
            "  paths:\n"
            f"    config_file: {tmp_path / 'accounts.json'}\n"
            "  admin:\n"
            "    port: 9090\n"
            "    token: from-yaml\n"
            "  auth:\n"
            "    device_code_wait_seconds: 5\n"
        )

        settings = load_settings(path)

        assert settings.config_file == tmp_path / "accounts.json"
        assert settings.admin.port == 9090
        assert settings.admin_token == "from-yaml"
        assert settings.auth.device_code_wait_seconds == 5.0

    def test_invalid_values_fall_back_to_defaults(self, tmp_path):
        path = tmp_path / "calhub.yaml"
        path.write_text("calhub:\n  admin:\n    port: 70000\n")

        assert load_settings(path).admin.port == 8080

    def test_shipped_file_loads(self):
        settings = load_settings()
        assert settings.admin.host == "127.0.0.1"
        assert settings.auth.device_code_expires_in == 900


class TestEnvironmentOverrides:
    """Environment variables win over YAML."""

    def test_paths(self, monkeypatch, tmp_path):
        monkeypatch.setenv(CONFIG_FILE_ENV, str(tmp_path / "doc.json"))
        monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path / "tokens"))

        settings = CalhubSettings()

        assert settings.config_file == tmp_path / "doc.json"
        assert settings.data_dir == tmp_path / "tokens"

    def test_relative_paths_resolve_against_project_root(self, monkeypatch):
        monkeypatch.setenv(DATA_DIR_ENV, "var/tokens")
        assert CalhubSettings().data_dir == PROJECT_ROOT / "var" / "tokens"

    def test_admin_token(self, monkeypatch):
        settings = CalhubSettings.model_validate({"admin": {"token": "from-yaml"}})
        monkeypatch.setenv(ADMIN_TOKEN_ENV, "from-env")
        assert settings.admin_token == "from-env"

    def test_empty_token_means_none(self):
        settings = CalhubSettings.model_validate({"admin": {"token": ""}})
        assert settings.admin_token is None

    def test_encryption_key_only_from_env(self, monkeypatch):
        assert CalhubSettings().encryption_key is None
        monkeypatch.setenv(ENCRYPTION_KEY_ENV, "a2V5")
        assert CalhubSettings().encryption_key == "a2V5"


# ─────────────────────────────────────────────────────────────────────────────
# Logging
# ─────────────────────────────────────────────────────────────────────────────


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def restore_root_logger(self):
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_sets_root_level(self):
        setup_logging(level="DEBUG", json_output=True)
        assert logging.getLogger().level == logging.DEBUG
        assert len(logging.getLogger().handlers) == 1

    def test_quiets_third_party_loggers(self):
        setup_logging(level="DEBUG", json_output=False)
        for name in QUIET_LOGGERS:
            assert logging.getLogger(name).level == logging.WARNING

    def test_unknown_level_means_info(self):
        setup_logging(level="chatty")
        assert logging.getLogger().level == logging.INFO
