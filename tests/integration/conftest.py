"""
Integration test fixtures for the calhub admin API.

Provides:
- An admin app wired to a temporary configuration document and the fake
  identity clients from tests/fakes.py
- TestClients with and without the admin token
"""

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from calhub.admin.main import create_app
from calhub.settings import ADMIN_TOKEN_ENV, CalhubSettings


ADMIN_TOKEN = "test-admin-token"


# ─────────────────────────────────────────────────────────────────────────────
# Admin API Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def admin_settings(monkeypatch, config_path, data_dir) -> CalhubSettings:
    monkeypatch.delenv(ADMIN_TOKEN_ENV, raising=False)
    return CalhubSettings.model_validate(
        {
            "paths": {"config_file": str(config_path), "data_dir": str(data_dir)},
            "admin": {"token": ADMIN_TOKEN},
        }
    )


@pytest.fixture
def admin_app(admin_settings, store, credential_manager, orchestrator):
    return create_app(
        admin_settings,
        store=store,
        credentials=credential_manager,
        orchestrator=orchestrator,
    )


@pytest.fixture
def anonymous_client(admin_app) -> Generator[TestClient, None, None]:
    """Client that sends no admin token."""
    with TestClient(admin_app) as client:
        yield client


@pytest.fixture
def test_client(admin_app) -> Generator[TestClient, None, None]:
    """Client that authenticates every request with the admin token."""
    with TestClient(admin_app, headers={"Authorization": f"Bearer {ADMIN_TOKEN}"}) as client:
        yield client
