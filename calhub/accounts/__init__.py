"""Accounts - configured calendar/email accounts and their credentials

Philosophy:
    The configuration document is shared with other tools and with humans
    editing it by hand. Nothing here may lose a section it does not own,
    and nothing is written until every rule has passed.

Components:
    models.py: AccountRecord, Provider and provider config keys
    errors.py: Error categories (validation, not found, conflict, ...)
    validation.py: Stateless account rules and the auth delegate chain
    config_store.py: Atomic CRUD over the JSON configuration document
    credentials.py: Token cache and credential directories per account
    scopes.py: OAuth scopes per provider family
    service.py: Validated create/update used by the admin API and CLI
"""

from calhub.accounts.errors import (
    AccountConflictError,
    AccountNotFoundError,
    AccountValidationError,
    CalhubError,
    ConfigDocumentError,
)
from calhub.accounts.models import AccountRecord, JsonSource, Provider


__all__ = [
    "AccountConflictError",
    "AccountNotFoundError",
    "AccountRecord",
    "AccountValidationError",
    "CalhubError",
    "ConfigDocumentError",
    "JsonSource",
    "Provider",
]
