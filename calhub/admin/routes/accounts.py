"""
Account Routes - Configuration CRUD

Provides:
- GET    /admin/accounts
- GET    /admin/accounts/{account_id}/status
- POST   /admin/accounts
- PUT    /admin/accounts/{account_id}
- DELETE /admin/accounts/{account_id}?logout=bool
- POST   /admin/accounts/{account_id}/logout
"""

from fastapi import APIRouter, Query, Request, Response, status
from fastapi.concurrency import run_in_threadpool

from calhub.accounts.errors import AccountNotFoundError
from calhub.accounts.service import create_account, update_account
from calhub.admin.models import (
    AccountCreateRequest,
    AccountListResponse,
    AccountStatusResponse,
    AccountSummary,
    AccountUpdateRequest,
    AuthFlowStatusResponse,
    MessageResponse,
)


router = APIRouter()


@router.get("", response_model=AccountListResponse)
async def list_accounts(request: Request):
    """List configured accounts (no secrets)."""
    records = await run_in_threadpool(request.app.state.store.list)
    return AccountListResponse(accounts=[AccountSummary.from_record(r) for r in records])


@router.get("/{account_id}/status", response_model=AccountStatusResponse)
async def get_account_status(account_id: str, request: Request):
    """Offline credential status plus the latest authentication flow, if any."""
    store = request.app.state.store
    records = await run_in_threadpool(store.list)

    record = next((r for r in records if r.id.lower() == account_id.lower()), None)
    if record is None:
        raise AccountNotFoundError(account_id)

    credential_status = await run_in_threadpool(request.app.state.credentials.status, record, records)
    snapshot = request.app.state.orchestrator.get_flow_status(record.id)

    return AccountStatusResponse(
        **AccountSummary.from_record(record).model_dump(),
        credential_status=credential_status.value,
        auth_flow=None if snapshot.status == "not_found" else AuthFlowStatusResponse.from_snapshot(snapshot),
    )


@router.post("", response_model=AccountSummary, status_code=status.HTTP_201_CREATED)
async def add_account(body: AccountCreateRequest, request: Request):
    """Create an account. 400 on validation failure, 409 if the id exists."""
    record = await run_in_threadpool(
        create_account,
        request.app.state.store,
        body.id,
        body.display_name,
        body.provider,
        domains=body.domains,
        enabled=body.enabled,
        priority=body.priority,
        provider_config=body.provider_config,
    )
    return AccountSummary.from_record(record)


@router.put("/{account_id}", response_model=AccountSummary)
async def edit_account(account_id: str, body: AccountUpdateRequest, request: Request):
    """Update an account. The provider cannot change."""
    record = await run_in_threadpool(
        update_account,
        request.app.state.store,
        account_id,
        display_name=body.display_name,
        provider=body.provider,
        domains=body.domains,
        enabled=body.enabled,
        priority=body.priority,
        provider_config=body.provider_config,
    )
    return AccountSummary.from_record(record)


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: str,
    request: Request,
    logout: bool = Query(False, description="Also clear cached credentials"),
):
    """Remove an account; credential clearing is best-effort."""
    # A flow finishing after removal would write a cache nobody owns
    request.app.state.orchestrator.cancel_flow(account_id)
    await run_in_threadpool(request.app.state.store.remove, account_id, logout)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{account_id}/logout", response_model=MessageResponse)
async def logout_account(account_id: str, request: Request):
    """Clear cached credentials, keep the account configured."""
    await run_in_threadpool(request.app.state.store.clear_credentials, account_id)
    return MessageResponse(message=f"Credentials cleared for account '{account_id}'.")
