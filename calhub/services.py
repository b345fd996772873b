"""Wire the account store, credential manager and flow orchestrator from settings."""

from calhub.accounts.config_store import AccountConfigStore
from calhub.accounts.credentials import CredentialManager
from calhub.auth.identity import GoogleIdentityClient, MicrosoftIdentityClient
from calhub.auth.orchestrator import AuthFlowOrchestrator
from calhub.security.token_crypto import TokenCipher
from calhub.settings import CalhubSettings


def build_services(settings: CalhubSettings) -> tuple[AccountConfigStore, CredentialManager, AuthFlowOrchestrator]:
    credentials = CredentialManager(settings.data_dir, TokenCipher.from_key(settings.encryption_key))
    store = AccountConfigStore(settings.config_file, credentials)
    orchestrator = AuthFlowOrchestrator(
        store,
        microsoft=MicrosoftIdentityClient(credentials),
        google=GoogleIdentityClient(credentials),
        code_wait_seconds=settings.auth.device_code_wait_seconds,
        expires_in=settings.auth.device_code_expires_in,
    )
    return store, credentials, orchestrator
