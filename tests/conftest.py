"""Shared test fixtures for calhub tests.

This module provides common fixtures used across all test modules:
- An isolated configuration document and data directory per test
- Sample account records for every provider
- An orchestrator wired to fake identity clients

Usage:
    def test_something(store, m365_account):
        store.add(m365_account)
        ...
"""

import json
from pathlib import Path

import pytest

from calhub.accounts.config_store import AccountConfigStore
from calhub.accounts.credentials import CredentialManager
from calhub.accounts.models import AccountRecord, Provider
from calhub.auth.orchestrator import AuthFlowOrchestrator
from tests.fakes import FakeDeviceCodeClient, FakeInteractiveOnlyClient


# ─────────────────────────────────────────────────────────────────────────────
# Path Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    """Location of the configuration document (not created)."""
    return tmp_path / "appsettings.json"


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory for credential files."""
    path = tmp_path / "data"
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def write_document(config_path: Path):
    """Write a JSON document to the config path and return its raw bytes."""

    def _write(document) -> bytes:
        config_path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return config_path.read_bytes()

    return _write


# ─────────────────────────────────────────────────────────────────────────────
# Store Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def credential_manager(data_dir: Path) -> CredentialManager:
    return CredentialManager(data_dir)


@pytest.fixture
def store(config_path: Path, credential_manager: CredentialManager) -> AccountConfigStore:
    return AccountConfigStore(config_path, credential_manager)


# ─────────────────────────────────────────────────────────────────────────────
# Account Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def m365_account() -> AccountRecord:
    return AccountRecord(
        id="acme-m365",
        display_name="Acme Work",
        provider=Provider.MICROSOFT365,
        domains=["acme.com"],
        provider_config={"TenantId": "acme.onmicrosoft.com", "ClientId": "client-123"},
    )


@pytest.fixture
def outlook_account() -> AccountRecord:
    return AccountRecord(
        id="personal",
        display_name="Personal Outlook",
        provider=Provider.OUTLOOK_COM,
        provider_config={"TenantId": "consumers", "ClientId": "client-456"},
    )


@pytest.fixture
def google_account() -> AccountRecord:
    return AccountRecord(
        id="family-google",
        display_name="Family",
        provider=Provider.GOOGLE,
        provider_config={"ClientId": "g-client", "ClientSecret": "g-secret"},
    )


@pytest.fixture
def ics_account() -> AccountRecord:
    return AccountRecord(
        id="holidays",
        display_name="Public Holidays",
        provider=Provider.ICS,
        provider_config={"IcsUrl": "https://example.com/holidays.ics"},
    )


@pytest.fixture
def json_local_account() -> AccountRecord:
    return AccountRecord(
        id="team-local",
        display_name="Team (local file)",
        provider=Provider.JSON,
        provider_config={"source": "local", "filePath": "/srv/calendars/team.json"},
    )


@pytest.fixture
def json_delegated_account() -> AccountRecord:
    return AccountRecord(
        id="team-onedrive",
        display_name="Team (OneDrive)",
        provider=Provider.JSON,
        provider_config={
            "source": "onedrive",
            "oneDrivePath": "/Calendars/team.json",
            "authAccountId": "acme-m365",
        },
    )


@pytest.fixture
def json_own_auth_account() -> AccountRecord:
    return AccountRecord(
        id="shared-onedrive",
        display_name="Shared (OneDrive)",
        provider=Provider.JSON,
        provider_config={
            "source": "onedrive",
            "oneDrivePath": "/Calendars/shared.json",
            "clientId": "json-client",
        },
    )


# ─────────────────────────────────────────────────────────────────────────────
# Orchestrator Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def microsoft_client() -> FakeDeviceCodeClient:
    client = FakeDeviceCodeClient()
    yield client
    # Release any flow still polling
    client.finish.set()
    if client.message_gate is not None:
        client.message_gate.set()


@pytest.fixture
def google_client() -> FakeInteractiveOnlyClient:
    return FakeInteractiveOnlyClient()


@pytest.fixture
def orchestrator(store, microsoft_client, google_client) -> AuthFlowOrchestrator:
    orch = AuthFlowOrchestrator(
        store,
        microsoft=microsoft_client,
        google=google_client,
        code_wait_seconds=2.0,
        expires_in=900,
    )
    yield orch
    orch.shutdown()
