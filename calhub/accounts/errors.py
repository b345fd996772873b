"""
Error categories for account configuration and authentication.

Callers branch on the class, not on message text:

    AccountValidationError   -> 400 (names the offending field)
    AccountNotFoundError     -> 404
    AccountConflictError     -> 409
    UnsupportedProviderError -> 400
    DeviceCodeParseError     -> 502
    DeviceCodeTimeoutError   -> 504

Messages carry structural detail only. Token values and client secrets
never appear in them.
"""


class CalhubError(Exception):
    """Base class for all calhub errors."""


class AccountValidationError(CalhubError):
    """A requested account mutation failed validation."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


class AccountNotFoundError(CalhubError):
    def __init__(self, account_id: str):
        super().__init__(f"Account '{account_id}' not found.")
        self.account_id = account_id


class AccountConflictError(CalhubError):
    def __init__(self, account_id: str):
        super().__init__(f"Account '{account_id}' already exists.")
        self.account_id = account_id


class ConfigDocumentError(CalhubError):
    """The configuration document exists but cannot be parsed.

    The store refuses to overwrite it so hand edits are never lost.
    """


class UnsupportedProviderError(CalhubError):
    """The account's provider cannot run the requested authentication flow."""


class IdentityProviderError(CalhubError):
    """The external identity provider rejected or failed the exchange."""


class FlowCancelledError(CalhubError):
    """An authentication flow was cancelled before it finished."""


class DeviceCodeTimeoutError(CalhubError):
    """No device code was issued within the bounded wait."""


class DeviceCodeParseError(CalhubError):
    """The identity provider's sign-in message held no usable code or URL."""
