"""
Tool: Account Models
Purpose: Data structures for configured calendar/email accounts

Usage:
    from calhub.accounts.models import AccountRecord, Provider

An AccountRecord is one entry in the shared configuration document. Its
``provider_config`` schema depends on the provider; see
calhub.accounts.validation for the rules.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Provider(str, Enum):
    """Supported account backends."""

    MICROSOFT365 = "microsoft365"
    OUTLOOK_COM = "outlook.com"
    GOOGLE = "google"
    ICS = "ics"
    JSON = "json"

    @property
    def display_name(self) -> str:
        """Human-readable provider name."""
        names = {
            Provider.MICROSOFT365: "Microsoft 365",
            Provider.OUTLOOK_COM: "Outlook.com",
            Provider.GOOGLE: "Google",
            Provider.ICS: "ICS feed",
            Provider.JSON: "JSON calendar file",
        }
        return names[self]

    @property
    def is_microsoft(self) -> bool:
        return self in (Provider.MICROSOFT365, Provider.OUTLOOK_COM)

    @classmethod
    def from_value(cls, value: str) -> Provider | None:
        """Exact canonical name, case-insensitive."""
        normalized = (value or "").strip().lower()
        for provider in cls:
            if provider.value == normalized:
                return provider
        return None

    @classmethod
    def from_stored(cls, value: str) -> Provider | None:
        """Like from_value, but also accepts aliases found in older documents."""
        provider = cls.from_value(value)
        if provider is None:
            provider = LEGACY_PROVIDER_ALIASES.get((value or "").strip().lower())
        return provider


LEGACY_PROVIDER_ALIASES: dict[str, Provider] = {
    "m365": Provider.MICROSOFT365,
    "outlook": Provider.OUTLOOK_COM,
    "hotmail": Provider.OUTLOOK_COM,
    "gmail": Provider.GOOGLE,
    "google workspace": Provider.GOOGLE,
    "json-calendar": Provider.JSON,
}


class JsonSource(str, Enum):
    """Where a JSON calendar file is read from."""

    LOCAL = "local"
    ONEDRIVE = "onedrive"


# ProviderConfig keys (matched case-insensitively)
TENANT_ID = "TenantId"
CLIENT_ID = "ClientId"
CLIENT_SECRET = "ClientSecret"
ICS_URL = "IcsUrl"
JSON_SOURCE = "source"
JSON_FILE_PATH = "filePath"
JSON_ONEDRIVE_PATH = "oneDrivePath"
AUTH_ACCOUNT_ID = "authAccountId"


def get_config_value(config: dict[str, str] | None, key: str) -> str:
    """Case-insensitive lookup in a provider config; missing keys read as ''."""
    if not config:
        return ""
    if key in config:
        return config[key] or ""
    lowered = key.lower()
    for k, v in config.items():
        if k.lower() == lowered:
            return v or ""
    return ""


@dataclass
class AccountRecord:
    """
    One configured account.

    ``id`` is the immutable key; ``provider`` cannot change once created.
    ``priority`` breaks ties when results from several accounts are merged,
    and ``domains`` lets callers route by e-mail domain.
    """

    id: str
    display_name: str
    provider: Provider
    enabled: bool = True
    priority: int = 0
    domains: list[str] = field(default_factory=list)
    provider_config: dict[str, str] = field(default_factory=dict)

    def config_value(self, key: str) -> str:
        return get_config_value(self.provider_config, key)

    def summary(self) -> dict[str, Any]:
        """Public view for listings. Never includes provider_config."""
        return {
            "id": self.id,
            "displayName": self.display_name,
            "provider": self.provider.value,
            "domains": list(self.domains),
            "enabled": self.enabled,
            "priority": self.priority,
        }
