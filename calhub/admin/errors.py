"""Map calhub error categories to HTTP responses."""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from calhub.accounts.errors import (
    AccountConflictError,
    AccountNotFoundError,
    AccountValidationError,
    CalhubError,
    ConfigDocumentError,
    DeviceCodeParseError,
    DeviceCodeTimeoutError,
    FlowCancelledError,
    IdentityProviderError,
    UnsupportedProviderError,
)
from calhub.admin.models import ErrorResponse

logger = logging.getLogger(__name__)


ERROR_STATUS: dict[type[CalhubError], tuple[int, str]] = {
    AccountValidationError: (status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR"),
    UnsupportedProviderError: (status.HTTP_400_BAD_REQUEST, "UNSUPPORTED_PROVIDER"),
    AccountNotFoundError: (status.HTTP_404_NOT_FOUND, "NOT_FOUND"),
    AccountConflictError: (status.HTTP_409_CONFLICT, "CONFLICT"),
    FlowCancelledError: (status.HTTP_409_CONFLICT, "FLOW_CANCELLED"),
    DeviceCodeParseError: (status.HTTP_502_BAD_GATEWAY, "DEVICE_CODE_UNPARSABLE"),
    DeviceCodeTimeoutError: (status.HTTP_504_GATEWAY_TIMEOUT, "DEVICE_CODE_TIMEOUT"),
    IdentityProviderError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "IDENTITY_PROVIDER_ERROR"),
    ConfigDocumentError: (status.HTTP_500_INTERNAL_SERVER_ERROR, "CONFIG_DOCUMENT_ERROR"),
}


def status_for(exc: CalhubError) -> tuple[int, str]:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR"


def error_response(status_code: int, error: str, code: str, field: str | None = None) -> JSONResponse:
    body = ErrorResponse(error=error, code=code, field=field)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


async def calhub_exception_handler(request: Request, exc: CalhubError):
    """One handler for every calhub error category."""
    status_code, code = status_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {status_code} {code}")
    return error_response(status_code, str(exc), code, getattr(exc, "field", None))
