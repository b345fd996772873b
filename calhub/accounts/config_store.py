"""
Tool: Account Configuration Store
Purpose: Atomic CRUD over the shared JSON configuration document

The document is a plain JSON object that other tools (and people) edit too.
Accounts live under ``Calhub.Accounts``; every other section is carried
through each write unchanged. The store only ever replaces the accounts
subtree and the schema version stamp next to it.

Consistency:
    Every operation, reads included, takes one process-wide lock per document
    path, does a full read (and for mutations a full write), then releases
    it. Concurrent callers are strictly serialized, so nobody sees a half
    written document and no two writers lose each other's update. Writes go
    through a temp file + os.replace, so out-of-process readers never see a
    torn file either. Coordination across processes is NOT provided.

Field casing:
    Fields are written in PascalCase. Older files and hand edits may use
    camelCase; reads accept both (canonical first), and the document is
    migrated to canonical names on the next write.

Usage:
    from calhub.accounts.config_store import AccountConfigStore

    store = AccountConfigStore(Path("data/appsettings.json"))
    store.add(record)
    store.remove("old-account", clear_credentials=True)
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any

from calhub.accounts.errors import (
    AccountConflictError,
    AccountNotFoundError,
    ConfigDocumentError,
)
from calhub.accounts.models import AccountRecord, Provider

if TYPE_CHECKING:
    from calhub.accounts.credentials import CredentialManager

logger = logging.getLogger(__name__)

# Callbacks run under the document lock against the freshly read account list
RecordCheck = Callable[[AccountRecord, list[AccountRecord]], None]
RecordChange = Callable[[AccountRecord, list[AccountRecord]], AccountRecord]


ACCOUNTS_SECTION = "Calhub"
ACCOUNTS_KEY = "Accounts"
SCHEMA_VERSION_KEY = "SchemaVersion"
SCHEMA_VERSION = 1

# Canonical field names, in write order
FIELD_ID = "Id"
FIELD_DISPLAY_NAME = "DisplayName"
FIELD_PROVIDER = "Provider"
FIELD_ENABLED = "Enabled"
FIELD_PRIORITY = "Priority"
FIELD_DOMAINS = "Domains"
FIELD_PROVIDER_CONFIG = "ProviderConfig"

ACCOUNT_FIELDS = (
    FIELD_ID,
    FIELD_DISPLAY_NAME,
    FIELD_PROVIDER,
    FIELD_ENABLED,
    FIELD_PRIORITY,
    FIELD_DOMAINS,
    FIELD_PROVIDER_CONFIG,
)


def alternate_name(name: str) -> str:
    """camelCase spelling of a canonical PascalCase name."""
    return name[:1].lower() + name[1:]


# One lock per resolved document path, shared by every store instance
_document_locks: dict[str, threading.Lock] = {}
_document_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    key = str(path.resolve())
    with _document_locks_guard:
        lock = _document_locks.get(key)
        if lock is None:
            lock = threading.Lock()
            _document_locks[key] = lock
        return lock


# =============================================================================
# Node helpers
# =============================================================================


def _get_field(node: dict[str, Any], name: str) -> Any:
    """Canonical name first, then the camelCase alternate."""
    if name in node:
        return node[name]
    return node.get(alternate_name(name))


def _rename_key(obj: dict[str, Any], old: str, new: str) -> dict[str, Any]:
    """Copy of obj with one key renamed in place (order kept)."""
    return {(new if k == old else k): v for k, v in obj.items()}


def _migrate_node(node: dict[str, Any]) -> dict[str, Any]:
    for name in ACCOUNT_FIELDS:
        alt = alternate_name(name)
        if name not in node and alt in node:
            node = _rename_key(node, alt, name)
    return node


def _as_bool(value: Any, default: bool) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return default


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return default
    return default


def parse_account_node(node: Any) -> AccountRecord | None:
    """Build a record from one document node; None if it cannot be read."""
    if not isinstance(node, dict):
        return None

    account_id = _get_field(node, FIELD_ID)
    display_name = _get_field(node, FIELD_DISPLAY_NAME)
    provider_raw = _get_field(node, FIELD_PROVIDER)
    if not isinstance(account_id, str) or not isinstance(display_name, str):
        return None
    if not isinstance(provider_raw, str):
        return None

    provider = Provider.from_stored(provider_raw)
    if provider is None:
        logger.warning(f"Skipping account '{account_id}': unknown provider '{provider_raw}'")
        return None

    domains_raw = _get_field(node, FIELD_DOMAINS)
    domains = [d for d in domains_raw if isinstance(d, str)] if isinstance(domains_raw, list) else []

    config_raw = _get_field(node, FIELD_PROVIDER_CONFIG)
    provider_config: dict[str, str] = {}
    if isinstance(config_raw, dict):
        for key, value in config_raw.items():
            if value is None or isinstance(value, (dict, list)):
                continue
            provider_config[key] = value if isinstance(value, str) else json.dumps(value)

    return AccountRecord(
        id=account_id,
        display_name=display_name,
        provider=provider,
        enabled=_as_bool(_get_field(node, FIELD_ENABLED), True),
        priority=_as_int(_get_field(node, FIELD_PRIORITY), 0),
        domains=domains,
        provider_config=provider_config,
    )


def account_to_node(record: AccountRecord) -> dict[str, Any]:
    """Canonical document node for a record."""
    return {
        FIELD_ID: record.id,
        FIELD_DISPLAY_NAME: record.display_name,
        FIELD_PROVIDER: record.provider.value,
        FIELD_ENABLED: record.enabled,
        FIELD_PRIORITY: record.priority,
        FIELD_DOMAINS: list(record.domains),
        FIELD_PROVIDER_CONFIG: dict(record.provider_config),
    }


def _find_index(accounts: list[Any], account_id: str) -> int:
    wanted = account_id.lower()
    for i, node in enumerate(accounts):
        if not isinstance(node, dict):
            continue
        node_id = _get_field(node, FIELD_ID)
        if isinstance(node_id, str) and node_id.lower() == wanted:
            return i
    return -1


# =============================================================================
# Store
# =============================================================================


class AccountConfigStore:
    """
    Serialized access to the account list in one configuration document.

    The store does not validate records itself. Callers pass their checks
    to add() and modify(), which run them under the document lock so the
    account list they see cannot go stale before the write.
    """

    def __init__(self, path: Path, credentials: CredentialManager | None = None):
        self.path = Path(path)
        self._credentials = credentials
        self._lock = _lock_for(self.path)

    # ── Reads ────────────────────────────────────────────────────────

    def list(self) -> list[AccountRecord]:
        with self._lock:
            _, accounts = self._read()
            return self._parse_all(accounts)

    def get(self, account_id: str) -> AccountRecord | None:
        with self._lock:
            _, accounts = self._read()
            index = _find_index(accounts, account_id)
            if index < 0:
                return None
            return parse_account_node(accounts[index])

    def exists(self, account_id: str) -> bool:
        with self._lock:
            _, accounts = self._read()
            return _find_index(accounts, account_id) >= 0

    # ── Writes ───────────────────────────────────────────────────────

    def add(self, record: AccountRecord, validate: RecordCheck | None = None) -> None:
        """
        Append a new account.

        ``validate(record, accounts)`` runs on the freshly read account list
        while the lock is held; if it raises, nothing is written.
        """
        with self._lock:
            root, accounts = self._read()

            if validate is not None:
                validate(record, self._parse_all(accounts))
            if _find_index(accounts, record.id) >= 0:
                raise AccountConflictError(record.id)

            accounts.append(account_to_node(record))
            self._write(root)

        logger.info(f"Added account '{record.id}' ({record.provider.value})")

    def update(self, record: AccountRecord) -> None:
        """Replace an account wholesale."""
        self.modify(record.id, lambda existing, accounts: record)

    def modify(self, account_id: str, change: RecordChange) -> AccountRecord:
        """
        Read-modify-write one account as a single locked step.

        ``change(existing, accounts)`` gets the current record and the full
        account list and returns the record to store. It must not call back
        into the store. If it raises, the document is left untouched.

        Returns:
            The stored record
        """
        with self._lock:
            root, accounts = self._read()

            index = _find_index(accounts, account_id)
            existing = parse_account_node(accounts[index]) if index >= 0 else None
            if existing is None:
                raise AccountNotFoundError(account_id)

            record = change(existing, self._parse_all(accounts))

            # Keys this store does not manage stay on the node
            old = accounts[index]
            node = account_to_node(record)
            for key, value in old.items():
                if key not in node:
                    node[key] = value
            accounts[index] = node
            self._write(root)

        logger.info(f"Updated account '{record.id}'")
        return record

    def remove(self, account_id: str, clear_credentials: bool = False) -> AccountRecord | None:
        """
        Remove an account; optionally clear its credentials afterwards.

        Credential clearing happens after the document lock is released and
        never fails the removal.

        Returns:
            The removed record, or None if its node could not be parsed
        """
        with self._lock:
            root, accounts = self._read()

            index = _find_index(accounts, account_id)
            if index < 0:
                raise AccountNotFoundError(account_id)

            removed = parse_account_node(accounts.pop(index))
            self._write(root)

        logger.info(f"Removed account '{account_id}'")

        if clear_credentials:
            if removed is None:
                logger.debug(f"No readable provider for '{account_id}', skipping credential clear")
            else:
                self._clear(removed)

        return removed

    def clear_credentials(self, account_id: str) -> bool:
        """Logout: delete cached credentials but keep the account configured."""
        record = self.get(account_id)
        if record is None:
            raise AccountNotFoundError(account_id)
        return self._clear(record)

    # ── Internals ────────────────────────────────────────────────────

    def _clear(self, record: AccountRecord) -> bool:
        if self._credentials is None:
            logger.debug(f"No credential manager configured, nothing cleared for '{record.id}'")
            return False
        return self._credentials.clear(record)

    def _parse_all(self, accounts: list[Any]) -> list[AccountRecord]:
        records = []
        for node in accounts:
            record = parse_account_node(node)
            if record is None:
                logger.warning(f"Skipping unreadable account entry in {self.path}")
                continue
            records.append(record)
        return records

    def _read(self) -> tuple[dict[str, Any], list[Any]]:
        """
        Load the document and return (root, accounts list).

        Scaffolds a missing section or accounts array and migrates
        alternate-cased names. Must hold the lock.
        """
        root: dict[str, Any] = {}
        if self.path.exists():
            text = self.path.read_text(encoding="utf-8")
            if text.strip():
                try:
                    root = json.loads(text)
                except json.JSONDecodeError as e:
                    raise ConfigDocumentError(
                        f"Configuration file {self.path} is not valid JSON "
                        f"(line {e.lineno}, column {e.colno})."
                    ) from e
                if not isinstance(root, dict):
                    raise ConfigDocumentError(
                        f"Configuration file {self.path} must contain a JSON object."
                    )

        alt_section = alternate_name(ACCOUNTS_SECTION)
        if not isinstance(root.get(ACCOUNTS_SECTION), dict) and isinstance(root.get(alt_section), dict):
            root = _rename_key(root, alt_section, ACCOUNTS_SECTION)
        section = root.get(ACCOUNTS_SECTION)
        if not isinstance(section, dict):
            section = {}
            root[ACCOUNTS_SECTION] = section

        alt_accounts = alternate_name(ACCOUNTS_KEY)
        if not isinstance(section.get(ACCOUNTS_KEY), list) and isinstance(section.get(alt_accounts), list):
            section = _rename_key(section, alt_accounts, ACCOUNTS_KEY)
            root[ACCOUNTS_SECTION] = section
        accounts = section.get(ACCOUNTS_KEY)
        if not isinstance(accounts, list):
            accounts = []
            section[ACCOUNTS_KEY] = accounts

        for i, node in enumerate(accounts):
            if isinstance(node, dict):
                accounts[i] = _migrate_node(node)

        return root, accounts

    def _write(self, root: dict[str, Any]) -> None:
        """Replace the document atomically. Must hold the lock."""
        root[ACCOUNTS_SECTION][SCHEMA_VERSION_KEY] = SCHEMA_VERSION
        payload = json.dumps(root, indent=2, ensure_ascii=False) + "\n"

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
