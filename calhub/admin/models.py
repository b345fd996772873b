"""
Pydantic models for admin API request/response types.

Wire names are camelCase (``displayName``, ``providerConfig``) to match the
configuration document; Python attributes stay snake_case.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from calhub.accounts.models import AccountRecord
from calhub.auth.flows import AuthFlowSnapshot, DeviceCodeResponse


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Accounts
# =============================================================================


class AccountCreateRequest(CamelModel):
    """
    New account. Fields are optional at the schema level so the validation
    rules can name the missing field in a 400 response.
    """

    id: str | None = Field(None, description="Account slug (lowercase, digits, '-', '_')")
    display_name: str | None = Field(None, description="Human-readable name")
    provider: str | None = Field(None, description="microsoft365, outlook.com, google, ics or json")
    domains: list[str] = Field(default_factory=list, description="E-mail domains routed to this account")
    enabled: bool = Field(True, description="Whether the account is active")
    priority: int = Field(0, description="Tie-breaker when merging results")
    provider_config: dict[str, str] = Field(default_factory=dict, description="Provider-specific settings")


class AccountUpdateRequest(CamelModel):
    """Fields to change. Omitted fields keep their current value."""

    display_name: str | None = None
    provider: str | None = Field(None, description="Must match the existing provider if given")
    domains: list[str] | None = None
    enabled: bool | None = None
    priority: int | None = None
    provider_config: dict[str, str] | None = None


class AccountSummary(CamelModel):
    """Public view of an account. Never carries provider config."""

    id: str
    display_name: str
    provider: str
    domains: list[str] = Field(default_factory=list)
    enabled: bool = True
    priority: int = 0

    @classmethod
    def from_record(cls, record: AccountRecord) -> "AccountSummary":
        return cls.model_validate(record.summary())


class AccountListResponse(BaseModel):
    accounts: list[AccountSummary] = Field(default_factory=list)


# =============================================================================
# Authentication flows
# =============================================================================


class DeviceCodeStartResponse(CamelModel):
    """What the operator needs to finish sign-in on another device."""

    account_id: str
    user_code: str
    verification_url: str
    message: str
    expires_in: int

    @classmethod
    def from_response(cls, response: DeviceCodeResponse) -> "DeviceCodeStartResponse":
        return cls(
            account_id=response.account_id,
            user_code=response.user_code,
            verification_url=response.verification_url,
            message=response.message,
            expires_in=response.expires_in,
        )


class AuthFlowStatusResponse(CamelModel):
    account_id: str
    status: str = Field(..., description="pending, awaiting_user, completed, failed, cancelled or not_found")
    message: str = ""
    started_at: datetime | None = None
    completed_at: datetime | None = None
    user_code: str | None = None
    verification_url: str | None = None

    @classmethod
    def from_snapshot(cls, snapshot: AuthFlowSnapshot) -> "AuthFlowStatusResponse":
        return cls(
            account_id=snapshot.account_id,
            status=snapshot.status,
            message=snapshot.message,
            started_at=snapshot.started_at,
            completed_at=snapshot.completed_at,
            user_code=snapshot.user_code,
            verification_url=snapshot.verification_url,
        )


class AccountStatusResponse(AccountSummary):
    """Account summary plus offline credential status and any known flow."""

    credential_status: str
    auth_flow: AuthFlowStatusResponse | None = None


# =============================================================================
# Common
# =============================================================================


class MessageResponse(BaseModel):
    message: str


class HealthCheck(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy", description="Overall status")
    version: str = Field(default="0.1.0", description="API version")
    timestamp: datetime = Field(default_factory=datetime.now, description="Check timestamp")
    services: dict[str, str] = Field(default_factory=dict, description="Individual component statuses")


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str = Field(..., description="Error message")
    code: str = Field(default="INTERNAL_ERROR", description="Error code")
    field: str | None = Field(None, description="Offending field for validation errors")
