"""
Admin token gate.

When a token is configured, every /admin request must present it exactly,
either as ``Authorization: Bearer <token>`` or in ``X-Admin-Token``. With no
token configured the admin API is open; that is only meant for local use
and is logged as a warning at startup.
"""

import hmac

from starlette.datastructures import Headers


ADMIN_TOKEN_HEADER = "X-Admin-Token"
BEARER_PREFIX = "Bearer "


def extract_admin_token(headers: Headers) -> str | None:
    """Bearer token first, then the X-Admin-Token header."""
    auth_header = headers.get("Authorization", "")
    if auth_header.startswith(BEARER_PREFIX):
        token = auth_header[len(BEARER_PREFIX):]
        if token:
            return token
    return headers.get(ADMIN_TOKEN_HEADER) or None


def is_authorized(headers: Headers, expected: str | None) -> bool:
    if not expected:
        return True
    presented = extract_admin_token(headers)
    if not presented:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))
