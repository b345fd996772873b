"""
Tool: Authentication Flow Orchestrator
Purpose: Start, track and cancel per-account sign-in flows

Device code flows run on one daemon thread each. The caller that starts a
flow blocks only until the identity provider hands out a user code (bounded
by ``code_wait_seconds``); the rest of the exchange finishes in the
background and is observed through get_flow_status().

At most one flow per account: starting a new one cancels the previous one.
Flow state is in-memory only.

Usage:
    orchestrator = AuthFlowOrchestrator(store, microsoft_client, google_client)
    response = orchestrator.start_device_code_flow("acme-m365")
    print(response.verification_url, response.user_code)
    orchestrator.get_flow_status("acme-m365")
"""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import Optional

from calhub.accounts.config_store import AccountConfigStore
from calhub.accounts.errors import (
    AccountNotFoundError,
    DeviceCodeParseError,
    DeviceCodeTimeoutError,
    FlowCancelledError,
    IdentityProviderError,
    UnsupportedProviderError,
)
from calhub.accounts.models import AccountRecord, Provider
from calhub.accounts.scopes import ONEDRIVE_FILES_SCOPE, scopes_for_provider
from calhub.accounts.validation import (
    find_account,
    get_auth_delegate_account_id,
    requires_authentication,
)
from calhub.auth.flows import (
    DEFAULT_USER_CODE,
    DEFAULT_VERIFICATION_URL,
    AuthFlowSnapshot,
    AuthFlowState,
    DeviceCodeResponse,
    parse_device_code_message,
    scrub_secrets,
)
from calhub.auth.identity import IdentityClient

logger = logging.getLogger(__name__)


DEFAULT_CODE_WAIT_SECONDS = 30.0
DEFAULT_EXPIRES_IN = 900


def _settle(future: futures.Future, exc: Exception) -> None:
    if not future.done():
        future.set_exception(exc)


class AuthFlowOrchestrator:
    """
    Per-account authentication state machine.

    Args:
        store: Where accounts are looked up (read only)
        microsoft: Identity client for Microsoft-backed accounts
        google: Identity client for Google accounts
        code_wait_seconds: Longest a caller waits for a device code
        expires_in: Code lifetime reported to callers
    """

    def __init__(
        self,
        store: AccountConfigStore,
        microsoft: IdentityClient,
        google: IdentityClient,
        code_wait_seconds: float = DEFAULT_CODE_WAIT_SECONDS,
        expires_in: int = DEFAULT_EXPIRES_IN,
    ):
        self.store = store
        self.code_wait_seconds = code_wait_seconds
        self.expires_in = expires_in
        self._clients: dict[Provider, Optional[IdentityClient]] = {
            Provider.MICROSOFT365: microsoft,
            Provider.OUTLOOK_COM: microsoft,
            Provider.GOOGLE: google,
            Provider.ICS: None,
            Provider.JSON: microsoft,
        }
        self._flows: dict[str, AuthFlowState] = {}
        self._lock = threading.Lock()

    # ── Lookup ───────────────────────────────────────────────────────

    def _load(self, account_id: str) -> tuple[AccountRecord, list[AccountRecord]]:
        accounts = self.store.list()
        account = find_account(accounts, account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account, accounts

    def _client_for(self, account: AccountRecord) -> IdentityClient:
        if account.provider == Provider.ICS:
            raise UnsupportedProviderError(
                f"Account '{account.id}' is an ICS feed and does not require authentication."
            )

        if not requires_authentication(account):
            delegate = get_auth_delegate_account_id(account)
            if delegate:
                raise UnsupportedProviderError(
                    f"Account '{account.id}' uses the credentials of account '{delegate}'. "
                    f"Authenticate '{delegate}' instead."
                )
            raise UnsupportedProviderError(
                f"Account '{account.id}' reads a local file and does not require authentication."
            )

        client = self._clients[account.provider]
        if client is None:
            raise UnsupportedProviderError(
                f"Provider '{account.provider.value}' has no identity client."
            )
        return client

    def scopes_for(self, account: AccountRecord, accounts: list[AccountRecord]) -> list[str]:
        """
        Scopes to request for an account's own credential.

        A Microsoft account that JSON calendar accounts delegate to also
        needs Files.Read to fetch their OneDrive files.
        """
        scopes = scopes_for_provider(account.provider)

        if account.provider.is_microsoft:
            delegated_by = [
                a.id
                for a in accounts
                if a.provider == Provider.JSON
                and (get_auth_delegate_account_id(a) or "").lower() == account.id.lower()
            ]
            if delegated_by and ONEDRIVE_FILES_SCOPE not in scopes:
                scopes.append(ONEDRIVE_FILES_SCOPE)
                logger.info(
                    f"Including {ONEDRIVE_FILES_SCOPE} for '{account.id}' "
                    f"(used by {', '.join(delegated_by)})"
                )

        return scopes

    # ── Interactive ──────────────────────────────────────────────────

    def authenticate_interactive(self, account_id: str) -> None:
        """Blocking browser sign-in on this machine. No flow state is kept."""
        account, accounts = self._load(account_id)
        client = self._client_for(account)
        client.check_configuration(account)
        scopes = self.scopes_for(account, accounts)

        logger.info(f"Starting interactive sign-in for '{account.id}' ({account.provider.value})")
        client.authenticate_interactive(account, scopes)

    # ── Device code ──────────────────────────────────────────────────

    def start_device_code_flow(self, account_id: str) -> DeviceCodeResponse:
        """
        Start a headless sign-in and return the code for the user.

        Raises:
            AccountNotFoundError: No such account
            UnsupportedProviderError: Provider or account kind has no device code flow
            AccountValidationError: Client id missing
            DeviceCodeParseError: Provider message held neither code nor URL
            DeviceCodeTimeoutError: No code within code_wait_seconds
            IdentityProviderError: Provider failed before issuing a code
        """
        account, accounts = self._load(account_id)
        client = self._client_for(account)
        if not client.supports_device_code:
            raise UnsupportedProviderError(
                f"Device code flow is not supported for {account.provider.display_name} accounts. "
                "Use `calhub reauth` for interactive authentication instead."
            )
        client.check_configuration(account)
        scopes = self.scopes_for(account, accounts)

        state = AuthFlowState(account.id)
        with self._lock:
            previous = self._flows.get(account.id.lower())
            self._flows[account.id.lower()] = state
        if previous is not None and previous.request_cancel():
            logger.info(f"Superseded running authentication flow for '{account.id}'")

        thread = threading.Thread(
            target=self._run_device_code_flow,
            args=(state, client, account, scopes),
            name=f"auth-flow-{account.id}",
            daemon=True,
        )
        thread.start()
        logger.info(f"Started device code flow for '{account.id}'")

        try:
            return state.code_ready.result(timeout=self.code_wait_seconds)
        except futures.TimeoutError:
            # The flow keeps running; a late code still shows up in status polling
            raise DeviceCodeTimeoutError(
                "Timed out waiting for device code from identity provider."
            ) from None

    def _run_device_code_flow(
        self,
        state: AuthFlowState,
        client: IdentityClient,
        account: AccountRecord,
        scopes: list[str],
    ) -> None:
        def on_message(message: str) -> None:
            if state.cancel_event.is_set():
                return

            user_code, verification_url = parse_device_code_message(message)
            if user_code is None and verification_url is None:
                reason = "Could not find a user code or verification URL in the identity provider's message."
                state.cancel_event.set()
                state.mark_failed(reason)
                logger.error(f"Device code flow for '{account.id}': {reason}")
                _settle(state.code_ready, DeviceCodeParseError(reason))
                return

            response = DeviceCodeResponse(
                account_id=account.id,
                user_code=user_code or DEFAULT_USER_CODE,
                verification_url=verification_url or DEFAULT_VERIFICATION_URL,
                message=message,
                expires_in=self.expires_in,
            )
            if state.mark_awaiting_user(response.user_code, response.verification_url, message):
                logger.info(f"Device code issued for '{account.id}', awaiting user")
                if not state.code_ready.done():
                    state.code_ready.set_result(response)

        try:
            if state.cancel_event.is_set():
                raise FlowCancelledError(f"Device code flow for '{account.id}' was cancelled.")
            client.authenticate_device_code(account, scopes, on_message, state.cancel_event)
        except FlowCancelledError as e:
            if state.mark_cancelled():
                logger.info(f"Authentication flow for '{account.id}' cancelled")
            _settle(state.code_ready, e)
        except Exception as e:
            reason = scrub_secrets(str(e) or type(e).__name__)
            if state.mark_failed(reason):
                logger.error(f"Device code authentication failed for '{account.id}': {reason}")
            _settle(state.code_ready, IdentityProviderError(reason))
        else:
            if state.mark_completed():
                logger.info(f"Device code authentication completed for '{account.id}'")
            _settle(state.code_ready, IdentityProviderError("Sign-in finished without issuing a device code."))

    def get_flow_status(self, account_id: str) -> AuthFlowSnapshot:
        with self._lock:
            state = self._flows.get(account_id.lower())
        if state is None:
            return AuthFlowSnapshot.not_found(account_id)
        return state.snapshot()

    def cancel_flow(self, account_id: str) -> bool:
        """Request cancellation of an active flow. False if none is active."""
        with self._lock:
            state = self._flows.get(account_id.lower())
        if state is None or not state.request_cancel():
            return False
        logger.info(f"Cancellation requested for authentication flow of '{account_id}'")
        return True

    def shutdown(self) -> None:
        """Cancel every active flow."""
        with self._lock:
            states = list(self._flows.values())
        cancelled = sum(1 for state in states if state.request_cancel())
        if cancelled:
            logger.info(f"Cancelled {cancelled} active authentication flow(s)")
