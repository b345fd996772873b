"""Tests for calhub/cli.py

Commands run through main(argv) against a temporary configuration document
selected with CALHUB_CONFIG_FILE / CALHUB_DATA_DIR.
"""

import base64
import json
import logging

import pytest

from calhub import __version__
from calhub import cli
from calhub.settings import CONFIG_FILE_ENV, DATA_DIR_ENV, ENCRYPTION_KEY_ENV

M365_ARGS = [
    "add",
    "acme-m365",
    "--name",
    "Acme Work",
    "--provider",
    "microsoft365",
    "--config",
    "TenantId=acme.onmicrosoft.com",
    "--config",
    "ClientId=client-123",
]


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, config_path, data_dir):
    monkeypatch.setenv(CONFIG_FILE_ENV, str(config_path))
    monkeypatch.setenv(DATA_DIR_ENV, str(data_dir))
    monkeypatch.delenv(ENCRYPTION_KEY_ENV, raising=False)

    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def run(*argv):
    """Run the CLI and return its exit code (0 when it does not exit)."""
    try:
        cli.main(list(argv))
    except SystemExit as e:
        return e.code
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Account commands
# ─────────────────────────────────────────────────────────────────────────────


class TestAccountCommands:
    """add / list / update / remove / logout"""

    def test_add_and_list(self, capsys):
        assert run(*M365_ARGS, "--domain", "acme.com") == 0
        assert "Added account 'acme-m365' (Microsoft 365)." in capsys.readouterr().out

        assert run("list", "--json") == 0
        listed = json.loads(capsys.readouterr().out)
        assert listed == [
            {
                "id": "acme-m365",
                "displayName": "Acme Work",
                "provider": "microsoft365",
                "domains": ["acme.com"],
                "enabled": True,
                "priority": 0,
            }
        ]

    def test_list_empty(self, capsys):
        assert run("list") == 0
        assert "No accounts configured" in capsys.readouterr().out

    def test_list_table(self, capsys):
        run(*M365_ARGS)
        capsys.readouterr()

        run("list")

        out = capsys.readouterr().out
        assert "acme-m365" in out
        assert "client-123" not in out

    def test_add_invalid_account(self, capsys, config_path):
        code = run("add", "Bad Id", "--name", "X", "--provider", "ics", "--config", "IcsUrl=https://x/y.ics")
        assert code == 1
        assert "Account ID" in capsys.readouterr().err
        assert not config_path.exists()

    def test_add_duplicate(self, capsys):
        run(*M365_ARGS)
        assert run(*M365_ARGS) == 1
        assert "already exists" in capsys.readouterr().err

    def test_malformed_config_pair(self, capsys):
        code = run("add", "cal", "--name", "Cal", "--provider", "ics", "--config", "IcsUrl")
        assert code == 2
        assert "KEY=VALUE" in capsys.readouterr().err

    def test_update_merges_config(self, store):
        run(*M365_ARGS)

        assert run("update", "acme-m365", "--priority", "7", "--disable", "--config", "ClientId=client-999") == 0

        record = store.get("acme-m365")
        assert record.priority == 7
        assert record.enabled is False
        assert record.provider_config == {"TenantId": "acme.onmicrosoft.com", "ClientId": "client-999"}

    def test_update_unset_required_key(self, capsys, store):
        run(*M365_ARGS)

        assert run("update", "acme-m365", "--unset", "tenantid") == 1
        assert "TenantId" in capsys.readouterr().err
        assert store.get("acme-m365").config_value("TenantId") == "acme.onmicrosoft.com"

    def test_update_missing(self, capsys):
        assert run("update", "nobody", "--priority", "1") == 1
        assert "not found" in capsys.readouterr().err

    def test_remove_with_logout(self, capsys, store, data_dir):
        run(*M365_ARGS)
        cache = data_dir / "msal_cache_acme-m365.bin"
        cache.write_text("{}", encoding="utf-8")

        assert run("remove", "acme-m365", "--logout") == 0

        assert "cleared its credentials" in capsys.readouterr().out
        assert not cache.exists()
        assert store.list() == []

    def test_logout(self, capsys, data_dir):
        run(*M365_ARGS)
        (data_dir / "msal_cache_acme-m365.bin").write_text("{}", encoding="utf-8")
        capsys.readouterr()

        run("logout", "acme-m365")
        assert "Credentials cleared for account 'acme-m365'." in capsys.readouterr().out

        run("logout", "acme-m365")
        assert "No stored credentials" in capsys.readouterr().out


# ─────────────────────────────────────────────────────────────────────────────
# Status
# ─────────────────────────────────────────────────────────────────────────────


class TestStatusCommand:
    def test_status_json(self, capsys):
        run(*M365_ARGS)
        run("add", "holidays", "--name", "Holidays", "--provider", "ics", "--config", "IcsUrl=https://x/h.ics")
        capsys.readouterr()

        assert run("status", "--json") == 0

        rows = {row["id"]: row["credentialStatus"] for row in json.loads(capsys.readouterr().out)}
        assert rows == {"acme-m365": "not_authenticated", "holidays": "not_required"}

    def test_status_single_account(self, capsys):
        run(*M365_ARGS)
        capsys.readouterr()

        run("status", "ACME-M365")

        assert "not_authenticated" in capsys.readouterr().out

    def test_status_unknown_account(self, capsys):
        assert run("status", "nobody") == 1
        assert "not found" in capsys.readouterr().out


# ─────────────────────────────────────────────────────────────────────────────
# Re-authentication
# ─────────────────────────────────────────────────────────────────────────────


class TestReauthCommand:
    """reauth against the fake identity clients."""

    @pytest.fixture(autouse=True)
    def fake_services(self, monkeypatch, store, credential_manager, orchestrator):
        monkeypatch.setattr(cli, "_services", lambda: (store, credential_manager, orchestrator))
        monkeypatch.setattr(cli, "POLL_INTERVAL_SECONDS", 0.01)

    def test_device_code(self, capsys, store, microsoft_client, m365_account):
        store.add(m365_account)
        microsoft_client.finish.set()

        assert run("reauth", "acme-m365", "--device-code") == 0

        out = capsys.readouterr().out
        assert "ABCD1234" in out
        assert "Authentication successful." in out

    def test_device_code_failure(self, capsys, store, microsoft_client, m365_account):
        store.add(m365_account)
        microsoft_client.error = RuntimeError("user declined")
        microsoft_client.finish.set()

        assert run("reauth", "acme-m365", "--device-code") == 1
        assert "Authentication failed: user declined" in capsys.readouterr().out

    def test_interactive(self, capsys, store, google_client, google_account):
        store.add(google_account)

        assert run("reauth", "family-google") == 0

        assert google_client.interactive_calls[0][0] == "family-google"
        assert "Authentication completed for 'family-google'." in capsys.readouterr().out

    def test_device_code_unsupported(self, capsys, store, google_account):
        store.add(google_account)
        assert run("reauth", "family-google", "--device-code") == 1
        assert "not supported" in capsys.readouterr().err


# ─────────────────────────────────────────────────────────────────────────────
# Utilities
# ─────────────────────────────────────────────────────────────────────────────


class TestUtilityCommands:
    def test_version(self, capsys):
        run("--version")
        assert __version__ in capsys.readouterr().out

    def test_keygen(self, capsys):
        run("keygen")
        key = capsys.readouterr().out.strip()
        assert len(base64.b64decode(key)) == 32

    def test_no_command_prints_help(self, capsys):
        assert run() == 0
        assert "usage" in capsys.readouterr().out.lower()
