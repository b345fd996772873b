"""
Tool: Credential Stores
Purpose: Where each account's identity-provider credential lives on disk

Layout under the data directory:
    msal_cache_<id>.bin     MSAL token cache (Microsoft accounts, and JSON
                            accounts reading OneDrive with their own login)
    google/<id>/token.json  google-auth authorized-user credentials

Removing the file (or directory) removes the secret. Clearing is idempotent
and best-effort: filesystem errors are logged, never raised. Ids read from a
hand-edited document are checked again before any path is built from them;
an id that is not a slug, or whose path would leave the data directory, owns
no credential location at all.

Usage:
    from calhub.accounts.credentials import CredentialManager

    manager = CredentialManager(settings.data_dir, TokenCipher.from_key(key))
    manager.clear(record)
    manager.status(record, store.list())
"""

from __future__ import annotations

import logging
import os
import shutil
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from enum import Enum
from pathlib import Path

import msal
from cryptography.exceptions import InvalidTag
from google.oauth2.credentials import Credentials

from calhub.accounts.errors import AccountValidationError
from calhub.accounts.models import AccountRecord, Provider
from calhub.accounts.validation import (
    get_auth_delegate_account_id,
    requires_authentication,
    resolve_auth_account,
    validate_account_id,
)
from calhub.security.token_crypto import TokenCipher

logger = logging.getLogger(__name__)


class CredentialStatus(str, Enum):
    NOT_REQUIRED = "not_required"
    DELEGATED = "delegated"
    AUTHENTICATED = "authenticated"
    NOT_AUTHENTICATED = "not_authenticated"


class CredentialStore(ABC):
    """One account's stored credential."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    @abstractmethod
    def clear(self) -> bool:
        """Delete the stored credential. Returns True if anything was deleted."""
        pass

    @abstractmethod
    def has_usable_credential(self) -> bool:
        """Offline check: could a silent token acquisition succeed?"""
        pass


# =============================================================================
# Microsoft (MSAL token cache)
# =============================================================================


class MicrosoftTokenCacheStore(CredentialStore):
    """MSAL SerializableTokenCache persisted to one file, optionally encrypted."""

    def __init__(self, path: Path, cipher: TokenCipher | None = None):
        super().__init__(path)
        self.cipher = cipher or TokenCipher()

    def load(self) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()
        if not self.path.exists():
            return cache

        try:
            data = self.cipher.decrypt(self.path.read_bytes())
            cache.deserialize(data.decode("utf-8"))
        except InvalidTag:
            logger.warning(f"Could not decrypt token cache {self.path.name}; wrong encryption key?")
            return msal.SerializableTokenCache()
        except (ValueError, UnicodeDecodeError):
            logger.warning(f"Token cache {self.path.name} is unreadable, starting empty")
            return msal.SerializableTokenCache()

        return cache

    def save(self, cache: msal.SerializableTokenCache) -> None:
        if not cache.has_state_changed:
            return

        blob = self.cipher.encrypt(cache.serialize().encode("utf-8"))
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_name(f".{self.path.name}.tmp")
        tmp.write_bytes(blob)
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
        cache.has_state_changed = False

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        self.path.unlink()
        return True

    def has_usable_credential(self) -> bool:
        cache = self.load()
        return bool(cache.find(msal.TokenCache.CredentialType.REFRESH_TOKEN))


# =============================================================================
# Google (authorized-user JSON)
# =============================================================================


class GoogleCredentialStore(CredentialStore):
    """Per-account directory holding google-auth credentials."""

    TOKEN_FILE = "token.json"

    @property
    def token_path(self) -> Path:
        return self.path / self.TOKEN_FILE

    def load(self, scopes: list[str] | None = None) -> Credentials | None:
        if not self.token_path.exists():
            return None
        try:
            return Credentials.from_authorized_user_file(str(self.token_path), scopes)
        except ValueError:
            logger.warning(f"Google credentials in {self.path.name} are incomplete, ignoring")
            return None

    def save(self, creds: Credentials) -> None:
        self.path.mkdir(parents=True, exist_ok=True)
        self.token_path.write_text(creds.to_json(), encoding="utf-8")
        os.chmod(self.token_path, 0o600)

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        shutil.rmtree(self.path)
        return True

    def has_usable_credential(self) -> bool:
        creds = self.load()
        if creds is None:
            return False
        # An access token may be absent or stale; the refresh token is what counts
        return bool(creds.valid or creds.refresh_token)


# =============================================================================
# Manager
# =============================================================================


class CredentialManager:
    """Maps accounts to their credential stores."""

    def __init__(self, data_dir: Path, cipher: TokenCipher | None = None):
        self.data_dir = Path(data_dir)
        self.cipher = cipher or TokenCipher()

    def _scoped_path(self, account_id: str, relative: Path) -> Path:
        """
        Account-owned path under the data directory.

        Raises:
            AccountValidationError: The id is not a slug or the path escapes
                the data directory
        """
        # Stored ids match case-insensitively, so mixed case is still a slug
        validate_account_id(account_id.lower())

        path = self.data_dir / relative
        if self.data_dir.resolve() not in path.resolve().parents:
            raise AccountValidationError(
                "id", f"Credential path for account '{account_id}' leaves the data directory."
            )
        return path

    def microsoft_store(self, account_id: str) -> MicrosoftTokenCacheStore:
        path = self._scoped_path(account_id, Path(f"msal_cache_{account_id}.bin"))
        return MicrosoftTokenCacheStore(path, self.cipher)

    def google_store(self, account_id: str) -> GoogleCredentialStore:
        return GoogleCredentialStore(self._scoped_path(account_id, Path("google") / account_id))

    def _json_store(self, account: AccountRecord) -> CredentialStore | None:
        # OneDrive with its own login keeps an MSAL cache; everything else owns nothing
        if requires_authentication(account):
            return self.microsoft_store(account.id)
        return None

    def store_for(self, account: AccountRecord) -> CredentialStore | None:
        """
        The store owned by this account, or None if it owns no credential.

        Raises AccountValidationError for an id that cannot own a path.
        """
        factories: dict[Provider, Callable[[AccountRecord], CredentialStore | None]] = {
            Provider.MICROSOFT365: lambda a: self.microsoft_store(a.id),
            Provider.OUTLOOK_COM: lambda a: self.microsoft_store(a.id),
            Provider.GOOGLE: lambda a: self.google_store(a.id),
            Provider.ICS: lambda a: None,
            Provider.JSON: self._json_store,
        }
        return factories[account.provider](account)

    def clear(self, account: AccountRecord) -> bool:
        try:
            store = self.store_for(account)
        except AccountValidationError as e:
            logger.warning(f"Refusing to clear credentials for {account.id!r}: {e.message}")
            return False
        if store is None:
            logger.debug(f"Account '{account.id}' owns no credentials")
            return False

        try:
            cleared = store.clear()
        except OSError as e:
            logger.warning(f"Failed to clear credentials for '{account.id}': {e}")
            return False

        if cleared:
            logger.info(f"Cleared credentials for '{account.id}'")
        return cleared

    def status(self, account: AccountRecord, accounts: Iterable[AccountRecord]) -> CredentialStatus:
        if get_auth_delegate_account_id(account) is not None:
            try:
                resolved = resolve_auth_account(account, accounts)
            except AccountValidationError:
                return CredentialStatus.NOT_AUTHENTICATED
            if resolved.id.lower() == account.id.lower():
                return CredentialStatus.NOT_AUTHENTICATED
            if self._has_usable_credential(resolved):
                return CredentialStatus.DELEGATED
            return CredentialStatus.NOT_AUTHENTICATED

        if not requires_authentication(account):
            return CredentialStatus.NOT_REQUIRED

        if self._has_usable_credential(account):
            return CredentialStatus.AUTHENTICATED
        return CredentialStatus.NOT_AUTHENTICATED

    def _has_usable_credential(self, account: AccountRecord) -> bool:
        try:
            store = self.store_for(account)
        except AccountValidationError as e:
            logger.warning(f"Ignoring credentials for {account.id!r}: {e.message}")
            return False
        if store is None:
            return False
        try:
            return store.has_usable_credential()
        except OSError as e:
            logger.warning(f"Could not read credentials for '{account.id}': {e}")
            return False
