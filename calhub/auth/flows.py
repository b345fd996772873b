"""
Authentication flow state.

One AuthFlowState per account with a running or finished device-code flow.
State lives in process memory only and is gone after a restart; a flow that
was waiting on the user simply has to be started again.

Lifecycle:
    pending -> awaiting_user -> completed
                             -> failed
                             -> cancelled
    (pending may also go straight to failed or cancelled)

Terminal states never change again.
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any


DEFAULT_USER_CODE = "(see message)"
DEFAULT_VERIFICATION_URL = "https://microsoft.com/devicelogin"

_URL_PATTERN = re.compile(r"(https?://\S+)")
_CODE_PATTERN = re.compile(r"code\s+(\S+)\s+to", re.IGNORECASE)

# Token-ish values that must never reach a status response or a log line
_SECRET_PATTERNS = [
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    re.compile(
        r"(?i)((?:client_secret|access_token|refresh_token|id_token|assertion|code)"
        r"[\"']?\s*[:=]\s*[\"']?)[^\s\"'&,}]+"
    ),
]


class AuthFlowStatus(str, Enum):
    PENDING = "pending"
    AWAITING_USER = "awaiting_user"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (AuthFlowStatus.COMPLETED, AuthFlowStatus.FAILED, AuthFlowStatus.CANCELLED)


@dataclass(frozen=True)
class DeviceCodeResponse:
    """What a caller needs to finish sign-in on another device."""

    account_id: str
    user_code: str
    verification_url: str
    message: str
    expires_in: int


@dataclass(frozen=True)
class AuthFlowSnapshot:
    """Consistent copy of a flow's fields at one instant."""

    account_id: str
    status: str
    message: str
    started_at: datetime | None = None
    completed_at: datetime | None = None
    user_code: str | None = None
    verification_url: str | None = None

    @classmethod
    def not_found(cls, account_id: str) -> AuthFlowSnapshot:
        return cls(
            account_id=account_id,
            status="not_found",
            message="No authentication flow found for this account.",
        )


def parse_device_code_message(message: str) -> tuple[str | None, str | None]:
    """
    Pull (user_code, verification_url) out of the provider's sign-in text.

    Microsoft phrases it as "To sign in, use a web browser to open the page
    https://microsoft.com/devicelogin and enter the code ABCD1234 to
    authenticate." Either part may be missing.
    """
    url_match = _URL_PATTERN.search(message or "")
    code_match = _CODE_PATTERN.search(message or "")
    url = url_match.group(1).rstrip(".,;)") if url_match else None
    code = code_match.group(1) if code_match else None
    return code, url


def scrub_secrets(text: str) -> str:
    """Redact bearer tokens and credential-looking key/value pairs."""
    for pattern in _SECRET_PATTERNS:
        text = pattern.sub(r"\1[REDACTED]", text)
    return text


def _now() -> datetime:
    return datetime.now(timezone.utc)


class AuthFlowState:
    """
    Mutable state of one device-code flow.

    Written by the flow's background thread, read by status callers. Every
    field access goes through the lock, so snapshots are never torn.
    """

    def __init__(self, account_id: str):
        self.account_id = account_id
        self.cancel_event = threading.Event()
        self.code_ready: Future[DeviceCodeResponse] = Future()
        self._lock = threading.Lock()
        self._status = AuthFlowStatus.PENDING
        self._message = "Waiting for device code from identity provider."
        self._started_at = _now()
        self._completed_at: datetime | None = None
        self._user_code: str | None = None
        self._verification_url: str | None = None

    @property
    def status(self) -> AuthFlowStatus:
        with self._lock:
            return self._status

    @property
    def is_active(self) -> bool:
        with self._lock:
            return not self._status.is_terminal

    def request_cancel(self) -> bool:
        """Ask the flow to stop at its next checkpoint. False if already finished."""
        with self._lock:
            if self._status.is_terminal:
                return False
            self.cancel_event.set()
            return True

    def _transition(self, status: AuthFlowStatus, message: str, **fields: Any) -> bool:
        with self._lock:
            if self._status.is_terminal:
                return False
            self._status = status
            self._message = message
            for name, value in fields.items():
                setattr(self, f"_{name}", value)
            if status.is_terminal:
                self._completed_at = _now()
            return True

    def mark_awaiting_user(self, user_code: str, verification_url: str, message: str) -> bool:
        return self._transition(
            AuthFlowStatus.AWAITING_USER,
            message,
            user_code=user_code,
            verification_url=verification_url,
        )

    def mark_completed(self) -> bool:
        return self._transition(AuthFlowStatus.COMPLETED, "Authentication successful.")

    def mark_cancelled(self) -> bool:
        return self._transition(AuthFlowStatus.CANCELLED, "Authentication flow was cancelled.")

    def mark_failed(self, reason: str) -> bool:
        return self._transition(AuthFlowStatus.FAILED, f"Authentication failed: {scrub_secrets(reason)}")

    def snapshot(self) -> AuthFlowSnapshot:
        with self._lock:
            return AuthFlowSnapshot(
                account_id=self.account_id,
                status=self._status.value,
                message=self._message,
                started_at=self._started_at,
                completed_at=self._completed_at,
                user_code=self._user_code,
                verification_url=self._verification_url,
            )
