"""
Tool: Account Validation
Purpose: Stateless rules for account records

Callers run these before touching the configuration store; the store itself
never validates. Every rule raises AccountValidationError naming the
offending field, so nothing is ever partially applied.

Usage:
    from calhub.accounts.validation import validate_account, requires_authentication

    validate_account(record, existing_accounts)
    if requires_authentication(record):
        orchestrator.start_device_code_flow(record.id)
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from urllib.parse import urlparse

from calhub.accounts.errors import AccountValidationError
from calhub.accounts.models import (
    AUTH_ACCOUNT_ID,
    CLIENT_ID,
    CLIENT_SECRET,
    ICS_URL,
    JSON_FILE_PATH,
    JSON_ONEDRIVE_PATH,
    JSON_SOURCE,
    TENANT_ID,
    AccountRecord,
    JsonSource,
    Provider,
    get_config_value,
)


SLUG_PATTERN = re.compile(r"^[a-z0-9][a-z0-9\-_]*$")

KNOWN_PROVIDERS = tuple(p.value for p in Provider)


# =============================================================================
# Field rules
# =============================================================================


def validate_account_id(account_id: str | None) -> str:
    """
    Require a slug: lowercase letters, digits, hyphens and underscores,
    starting with a letter or digit.
    """
    if account_id is None or not account_id.strip():
        raise AccountValidationError("id", "Account ID is required.")

    if any(ch.isspace() for ch in account_id):
        raise AccountValidationError("id", "Account ID must not contain whitespace.")

    if not SLUG_PATTERN.match(account_id):
        raise AccountValidationError(
            "id",
            "Account ID must contain only lowercase letters, digits, hyphens, and "
            "underscores, and start with a letter or digit.",
        )

    return account_id


def validate_provider(provider: str | Provider | None) -> Provider:
    """Membership in the five known providers, case-insensitive."""
    if isinstance(provider, Provider):
        return provider

    if provider is None or not provider.strip():
        raise AccountValidationError("provider", "Provider is required.")

    parsed = Provider.from_value(provider)
    if parsed is None:
        raise AccountValidationError(
            "provider",
            f"Unknown provider '{provider}'. Known providers: {', '.join(KNOWN_PROVIDERS)}.",
        )
    return parsed


def _require_keys(config: dict[str, str], *keys: str) -> None:
    for key in keys:
        if not get_config_value(config, key).strip():
            raise AccountValidationError(key, f"ProviderConfig is missing required key '{key}'.")


def _validate_ics_config(config: dict[str, str]) -> None:
    _require_keys(config, ICS_URL)

    parsed = urlparse(get_config_value(config, ICS_URL).strip())
    if parsed.scheme.lower() not in ("http", "https") or not parsed.netloc:
        raise AccountValidationError(ICS_URL, f"{ICS_URL} must be a valid HTTP or HTTPS URL.")


def _validate_json_config(config: dict[str, str]) -> None:
    source = get_config_value(config, JSON_SOURCE).strip().lower()
    if not source:
        raise AccountValidationError(
            JSON_SOURCE,
            f"ProviderConfig is missing required key '{JSON_SOURCE}' (local or onedrive).",
        )

    if source == JsonSource.LOCAL.value:
        if not get_config_value(config, JSON_FILE_PATH).strip():
            raise AccountValidationError(
                JSON_FILE_PATH,
                f"ProviderConfig is missing required key '{JSON_FILE_PATH}' for local source.",
            )
    elif source == JsonSource.ONEDRIVE.value:
        if not get_config_value(config, JSON_ONEDRIVE_PATH).strip():
            raise AccountValidationError(
                JSON_ONEDRIVE_PATH,
                f"ProviderConfig is missing required key '{JSON_ONEDRIVE_PATH}' for onedrive source.",
            )
    else:
        raise AccountValidationError(
            JSON_SOURCE, f"ProviderConfig '{JSON_SOURCE}' must be 'local' or 'onedrive'."
        )


def validate_provider_config(provider: str | Provider, config: dict[str, str] | None) -> None:
    """Check the provider-specific required keys."""
    provider = validate_provider(provider)
    config = config or {}

    if provider in (Provider.MICROSOFT365, Provider.OUTLOOK_COM):
        _require_keys(config, TENANT_ID, CLIENT_ID)
    elif provider == Provider.GOOGLE:
        _require_keys(config, CLIENT_ID, CLIENT_SECRET)
    elif provider == Provider.ICS:
        _validate_ics_config(config)
    elif provider == Provider.JSON:
        _validate_json_config(config)
    else:
        raise AccountValidationError("provider", f"Unknown provider '{provider}'.")


def validate_provider_unchanged(existing: AccountRecord, provider: str | Provider | None) -> None:
    """Provider is fixed once the account exists."""
    if provider is None:
        return
    requested = validate_provider(provider)
    if requested != existing.provider:
        raise AccountValidationError(
            "provider",
            f"Provider cannot be changed (account '{existing.id}' is {existing.provider.value}).",
        )


# =============================================================================
# Authentication requirement
# =============================================================================


def _json_source(account: AccountRecord) -> str:
    return account.config_value(JSON_SOURCE).strip().lower()


def get_auth_delegate_account_id(account: AccountRecord) -> str | None:
    """The account whose credential a JSON/OneDrive account reuses, if any."""
    if account.provider != Provider.JSON:
        return None
    if _json_source(account) != JsonSource.ONEDRIVE.value:
        return None

    delegate = account.config_value(AUTH_ACCOUNT_ID).strip()
    return delegate or None


def requires_authentication(account: AccountRecord) -> bool:
    """
    Whether the account needs credentials of its own.

    ICS feeds never do. A JSON file needs them only when it is read from
    OneDrive without delegating to another account.
    """
    if account.provider == Provider.ICS:
        return False

    if account.provider == Provider.JSON:
        if _json_source(account) == JsonSource.LOCAL.value:
            return False
        return get_auth_delegate_account_id(account) is None

    return True


def find_account(accounts: Iterable[AccountRecord], account_id: str) -> AccountRecord | None:
    for account in accounts:
        if account.id.lower() == account_id.lower():
            return account
    return None


def resolve_auth_account(account: AccountRecord, accounts: Iterable[AccountRecord]) -> AccountRecord:
    """
    Follow the delegate chain to the account whose credential is used.

    A delegate that is not configured resolves to the account itself, so the
    caller still sees that authentication is required.
    """
    accounts = list(accounts)
    seen = {account.id.lower()}
    current = account

    while True:
        delegate_id = get_auth_delegate_account_id(current)
        if delegate_id is None:
            return current

        if delegate_id.lower() in seen:
            raise AccountValidationError(
                AUTH_ACCOUNT_ID,
                f"Delegate chain starting at '{account.id}' loops back to '{delegate_id}'.",
            )
        seen.add(delegate_id.lower())

        delegate = find_account(accounts, delegate_id)
        if delegate is None:
            return current
        current = delegate


def validate_auth_delegate(account: AccountRecord, accounts: Iterable[AccountRecord]) -> None:
    """Reject self-references, cycles and delegates that cannot supply OneDrive access."""
    delegate_id = get_auth_delegate_account_id(account)
    if delegate_id is None:
        return

    if delegate_id.lower() == account.id.lower():
        raise AccountValidationError(
            AUTH_ACCOUNT_ID, f"Account '{account.id}' cannot delegate authentication to itself."
        )

    # Check the chain as it would look after this write
    others = [a for a in accounts if a.id.lower() != account.id.lower()]
    resolve_auth_account(account, [*others, account])

    delegate = find_account(others, delegate_id)
    if delegate is not None and not delegate.provider.is_microsoft:
        raise AccountValidationError(
            AUTH_ACCOUNT_ID,
            f"Delegate account '{delegate_id}' must be a Microsoft account "
            f"(found {delegate.provider.value}).",
        )


def validate_account(record: AccountRecord, accounts: Iterable[AccountRecord] = ()) -> None:
    """All rules for a record about to be written, in order."""
    validate_account_id(record.id)
    if not (record.display_name or "").strip():
        raise AccountValidationError("displayName", "Display name is required.")
    validate_provider(record.provider)
    validate_provider_config(record.provider, record.provider_config)
    validate_auth_delegate(record, accounts)
