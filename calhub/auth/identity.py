"""
Tool: Identity Clients
Purpose: Talk to the external identity providers (Microsoft via MSAL, Google
via google-auth-oauthlib) and persist what they hand back

The orchestrator never sees tokens. A client runs one exchange, writes the
result into the account's credential store and returns nothing; failures
surface as IdentityProviderError, cooperative cancellation as
FlowCancelledError.

Usage:
    client = MicrosoftIdentityClient(credential_manager)
    client.authenticate_device_code(account, scopes, on_message, cancel_event)
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable

import msal
from google_auth_oauthlib.flow import InstalledAppFlow

from calhub.accounts.credentials import CredentialManager
from calhub.accounts.errors import (
    AccountValidationError,
    FlowCancelledError,
    IdentityProviderError,
    UnsupportedProviderError,
)
from calhub.accounts.models import CLIENT_ID, CLIENT_SECRET, TENANT_ID, AccountRecord
from calhub.accounts.scopes import MSAL_RESERVED_SCOPES

logger = logging.getLogger(__name__)


MICROSOFT_AUTHORITY = "https://login.microsoftonline.com/{tenant}"
DEFAULT_TENANT = "common"

GOOGLE_AUTH_URI = "https://accounts.google.com/o/oauth2/auth"
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"


def microsoft_app_settings(account: AccountRecord) -> tuple[str, str]:
    """(client_id, tenant_id) for an account that signs in with Microsoft."""
    client_id = account.config_value(CLIENT_ID).strip()
    if not client_id:
        raise AccountValidationError(
            CLIENT_ID, f"Account '{account.id}' is missing {CLIENT_ID} in ProviderConfig."
        )
    tenant_id = account.config_value(TENANT_ID).strip() or DEFAULT_TENANT
    return client_id, tenant_id


class IdentityClient(ABC):
    """One identity provider's sign-in exchanges."""

    name: str = "identity"
    supports_device_code: bool = False

    def check_configuration(self, account: AccountRecord) -> None:
        """Raise AccountValidationError if the account cannot sign in at all."""
        pass

    @abstractmethod
    def authenticate_interactive(self, account: AccountRecord, scopes: list[str]) -> None:
        """Browser-based sign-in on this machine. Blocks until done."""
        pass

    def authenticate_device_code(
        self,
        account: AccountRecord,
        scopes: list[str],
        on_message: Callable[[str], None],
        cancel_event: threading.Event,
    ) -> None:
        """
        Headless sign-in. Calls ``on_message`` once with the provider's
        human-readable instructions, then blocks until the user finishes,
        the code expires, or ``cancel_event`` is set.
        """
        raise UnsupportedProviderError(
            f"Device code flow is not supported for provider '{account.provider.value}'."
        )


# =============================================================================
# Microsoft
# =============================================================================


class MicrosoftIdentityClient(IdentityClient):
    """MSAL public client, one token cache file per account."""

    name = "microsoft"
    supports_device_code = True

    def __init__(self, credentials: CredentialManager):
        self.credentials = credentials

    def check_configuration(self, account: AccountRecord) -> None:
        microsoft_app_settings(account)

    def _build_app(self, account: AccountRecord, cache: msal.SerializableTokenCache) -> msal.PublicClientApplication:
        client_id, tenant_id = microsoft_app_settings(account)
        return msal.PublicClientApplication(
            client_id,
            authority=MICROSOFT_AUTHORITY.format(tenant=tenant_id),
            token_cache=cache,
        )

    @staticmethod
    def _request_scopes(scopes: list[str]) -> list[str]:
        return [s for s in scopes if s.lower() not in MSAL_RESERVED_SCOPES]

    @staticmethod
    def _error_text(result: dict) -> str:
        return result.get("error_description") or result.get("error") or "no token returned"

    def authenticate_interactive(self, account: AccountRecord, scopes: list[str]) -> None:
        store = self.credentials.microsoft_store(account.id)
        cache = store.load()
        app = self._build_app(account, cache)

        result = app.acquire_token_interactive(self._request_scopes(scopes))
        if "access_token" not in result:
            raise IdentityProviderError(self._error_text(result))

        store.save(cache)
        logger.info(f"Interactive sign-in completed for '{account.id}'")

    def authenticate_device_code(
        self,
        account: AccountRecord,
        scopes: list[str],
        on_message: Callable[[str], None],
        cancel_event: threading.Event,
    ) -> None:
        store = self.credentials.microsoft_store(account.id)
        cache = store.load()
        app = self._build_app(account, cache)

        flow = app.initiate_device_flow(scopes=self._request_scopes(scopes))
        if "user_code" not in flow:
            raise IdentityProviderError(self._error_text(flow))

        on_message(flow.get("message", ""))

        result = app.acquire_token_by_device_flow(
            flow,
            exit_condition=lambda f: cancel_event.is_set() or f.get("expires_at", 0) < time.time(),
        )

        # A token that arrived despite a late cancel is still kept
        if "access_token" in result:
            store.save(cache)
            return

        if cancel_event.is_set():
            raise FlowCancelledError(f"Device code flow for '{account.id}' was cancelled.")
        raise IdentityProviderError(self._error_text(result))


# =============================================================================
# Google
# =============================================================================


class GoogleIdentityClient(IdentityClient):
    """
    Installed-app (loopback) flow via google-auth-oauthlib.

    Device code is not offered: Google only issues device codes to
    "TV and limited input" client types.
    """

    name = "google"

    def __init__(self, credentials: CredentialManager):
        self.credentials = credentials

    def check_configuration(self, account: AccountRecord) -> None:
        self.client_config(account)

    @staticmethod
    def client_config(account: AccountRecord) -> dict:
        client_id = account.config_value(CLIENT_ID).strip()
        client_secret = account.config_value(CLIENT_SECRET).strip()
        if not client_id or not client_secret:
            missing = CLIENT_ID if not client_id else CLIENT_SECRET
            raise AccountValidationError(
                missing, f"Account '{account.id}' is missing {missing} in ProviderConfig."
            )
        return {
            "installed": {
                "client_id": client_id,
                "client_secret": client_secret,
                "auth_uri": GOOGLE_AUTH_URI,
                "token_uri": GOOGLE_TOKEN_URI,
                "redirect_uris": ["http://localhost"],
            }
        }

    def authenticate_interactive(self, account: AccountRecord, scopes: list[str]) -> None:
        flow = InstalledAppFlow.from_client_config(self.client_config(account), scopes)
        creds = flow.run_local_server(port=0)
        if creds is None or not creds.token:
            raise IdentityProviderError("Google sign-in returned no credentials.")

        self.credentials.google_store(account.id).save(creds)
        logger.info(f"Interactive sign-in completed for '{account.id}'")
