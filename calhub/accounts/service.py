"""
Validated account mutations shared by the admin API and the CLI.

Every function validates the complete record against the account list as
it stands under the document lock; a rejected request leaves the document
byte-identical.
"""

from __future__ import annotations

from calhub.accounts.config_store import AccountConfigStore
from calhub.accounts.models import AccountRecord, Provider
from calhub.accounts.validation import (
    validate_account,
    validate_account_id,
    validate_provider,
    validate_provider_unchanged,
)


def create_account(
    store: AccountConfigStore,
    account_id: str | None,
    display_name: str | None,
    provider: str | Provider | None,
    domains: list[str] | None = None,
    enabled: bool = True,
    priority: int = 0,
    provider_config: dict[str, str] | None = None,
) -> AccountRecord:
    """Validate and add a new account. Raises AccountConflictError on duplicates."""
    account_id = validate_account_id(account_id)
    record = AccountRecord(
        id=account_id,
        display_name=(display_name or "").strip(),
        provider=validate_provider(provider),
        enabled=enabled,
        priority=priority,
        domains=list(domains or []),
        provider_config=dict(provider_config or {}),
    )
    store.add(record, validate=validate_account)
    return record


def update_account(
    store: AccountConfigStore,
    account_id: str,
    display_name: str | None = None,
    provider: str | Provider | None = None,
    domains: list[str] | None = None,
    enabled: bool | None = None,
    priority: int | None = None,
    provider_config: dict[str, str] | None = None,
) -> AccountRecord:
    """
    Update an existing account. Fields left as None keep their current value.

    The provider can be repeated but never changed. The merge runs on the
    record as stored at write time, so concurrent partial updates of
    different fields all land.
    """

    def merge(existing: AccountRecord, accounts: list[AccountRecord]) -> AccountRecord:
        validate_provider_unchanged(existing, provider)
        record = AccountRecord(
            id=existing.id,
            display_name=existing.display_name if display_name is None else display_name.strip(),
            provider=existing.provider,
            enabled=existing.enabled if enabled is None else enabled,
            priority=existing.priority if priority is None else priority,
            domains=list(existing.domains if domains is None else domains),
            provider_config=dict(existing.provider_config if provider_config is None else provider_config),
        )
        validate_account(record, accounts)
        return record

    return store.modify(account_id, merge)
