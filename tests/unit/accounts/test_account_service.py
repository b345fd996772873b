"""Tests for calhub/accounts/service.py

The concurrency tests hold the first writer inside validation and start a
second one meanwhile; the second must see the first writer's result.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from unittest.mock import patch

import pytest

from calhub.accounts import service
from calhub.accounts.errors import AccountNotFoundError, AccountValidationError
from calhub.accounts.models import Provider
from calhub.accounts.service import create_account, update_account


ICS_CONFIG = {"IcsUrl": "https://example.com/work.ics"}


@pytest.fixture
def hold_first_validation():
    """
    Patch validate_account so the first call blocks until released.

    Yields (entered, release) events.
    """
    entered = threading.Event()
    release = threading.Event()
    calls = []
    real = service.validate_account

    def validate(record, accounts):
        calls.append(record.id)
        if len(calls) == 1:
            entered.set()
            release.wait(timeout=5)
        real(record, accounts)

    with patch("calhub.accounts.service.validate_account", side_effect=validate):
        yield entered, release


def _run_overlapping(first, second, entered, release):
    """Start first, wait until it is validating, start second, then let both finish."""
    with ThreadPoolExecutor(max_workers=2) as pool:
        first_future = pool.submit(first)
        assert entered.wait(timeout=5)
        second_future = pool.submit(second)
        time.sleep(0.1)
        release.set()
        return first_future, second_future


# ─────────────────────────────────────────────────────────────────────────────
# Create / update
# ─────────────────────────────────────────────────────────────────────────────


class TestCreateAccount:
    def test_creates_validated_record(self, store):
        record = create_account(store, "work", " Work ", "ics", provider_config=ICS_CONFIG)

        assert record.display_name == "Work"
        assert store.get("work").provider is Provider.ICS

    def test_rejected_record_is_not_written(self, store, config_path):
        with pytest.raises(AccountValidationError) as exc_info:
            create_account(store, "work", "", "ics", provider_config=ICS_CONFIG)

        assert exc_info.value.field == "displayName"
        assert not config_path.exists()


class TestUpdateAccount:
    def test_omitted_fields_keep_their_value(self, store):
        create_account(store, "work", "Work", "ics", priority=3, provider_config=ICS_CONFIG)

        record = update_account(store, "work", enabled=False)

        assert record.priority == 3
        assert record.enabled is False
        assert store.get("work").enabled is False

    def test_missing_account(self, store):
        with pytest.raises(AccountNotFoundError):
            update_account(store, "ghost", priority=1)

    def test_provider_change_leaves_document_untouched(self, store, config_path):
        create_account(store, "work", "Work", "ics", provider_config=ICS_CONFIG)
        before = config_path.read_bytes()

        with pytest.raises(AccountValidationError):
            update_account(store, "work", provider="google")

        assert config_path.read_bytes() == before


# ─────────────────────────────────────────────────────────────────────────────
# Concurrent writers
# ─────────────────────────────────────────────────────────────────────────────


class TestConcurrentWriters:
    """Merge and validation happen on the document as it is at write time."""

    def test_partial_updates_of_different_fields_both_land(self, store, hold_first_validation):
        create_account(store, "work", "Work", "ics", provider_config=ICS_CONFIG)
        entered, release = hold_first_validation

        first, second = _run_overlapping(
            lambda: update_account(store, "work", priority=42),
            lambda: update_account(store, "work", display_name="Renamed"),
            entered,
            release,
        )
        first.result()
        second.result()

        stored = store.get("work")
        assert stored.priority == 42
        assert stored.display_name == "Renamed"

    def test_create_sees_account_written_meanwhile(self, store, hold_first_validation):
        entered, release = hold_first_validation

        first, second = _run_overlapping(
            lambda: create_account(store, "work", "Work", "ics", provider_config=ICS_CONFIG),
            lambda: create_account(
                store,
                "shared",
                "Shared",
                "json",
                provider_config={"source": "onedrive", "oneDrivePath": "/x.json", "authAccountId": "work"},
            ),
            entered,
            release,
        )
        first.result()

        # "work" is an ICS account by the time "shared" is validated
        with pytest.raises(AccountValidationError):
            second.result()
        assert not store.exists("shared")
