"""
OAuth scopes per provider family.

MSAL for Python adds the reserved scopes (openid, profile, offline_access)
on its own and rejects them if passed explicitly, so they never appear here.
"""

from calhub.accounts.models import Provider


MICROSOFT_DEFAULT_SCOPES = [
    "Mail.Read",
    "Mail.Send",
    "Mail.ReadWrite",
    "Calendars.ReadWrite",
]

# Needed by JSON calendar accounts that read their file from OneDrive
ONEDRIVE_FILES_SCOPE = "Files.Read"

ONEDRIVE_SCOPES = [ONEDRIVE_FILES_SCOPE]

GOOGLE_DEFAULT_SCOPES = [
    "https://www.googleapis.com/auth/gmail.readonly",
    "https://www.googleapis.com/auth/gmail.send",
    "https://www.googleapis.com/auth/gmail.compose",
    "https://www.googleapis.com/auth/gmail.modify",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/calendar.events",
]

MSAL_RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})


def scopes_for_provider(provider: Provider) -> list[str]:
    """Base scopes for an account's own credential (before augmentation)."""
    scopes = {
        Provider.MICROSOFT365: MICROSOFT_DEFAULT_SCOPES,
        Provider.OUTLOOK_COM: MICROSOFT_DEFAULT_SCOPES,
        Provider.GOOGLE: GOOGLE_DEFAULT_SCOPES,
        Provider.ICS: [],
        Provider.JSON: ONEDRIVE_SCOPES,
    }
    return list(scopes[provider])
