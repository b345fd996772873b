"""
Authentication Routes - Device Code Flows

Provides:
- POST /admin/auth/{account_id}/start
- GET  /admin/auth/{account_id}/status
- POST /admin/auth/{account_id}/cancel
"""

from fastapi import APIRouter, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool

from calhub.admin.models import AuthFlowStatusResponse, DeviceCodeStartResponse, MessageResponse


router = APIRouter()


@router.post("/{account_id}/start", response_model=DeviceCodeStartResponse)
async def start_device_code_auth(account_id: str, request: Request):
    """
    Begin a device code flow and return the user code.

    Blocks (in the threadpool) until the identity provider issues a code or
    the configured wait runs out (504).
    """
    orchestrator = request.app.state.orchestrator
    response = await run_in_threadpool(orchestrator.start_device_code_flow, account_id)
    return DeviceCodeStartResponse.from_response(response)


@router.get("/{account_id}/status", response_model=AuthFlowStatusResponse)
async def get_auth_status(account_id: str, request: Request):
    snapshot = request.app.state.orchestrator.get_flow_status(account_id)
    return AuthFlowStatusResponse.from_snapshot(snapshot)


@router.post("/{account_id}/cancel", response_model=MessageResponse)
async def cancel_auth(account_id: str, request: Request):
    if not request.app.state.orchestrator.cancel_flow(account_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No pending authentication flow found for '{account_id}'.",
        )
    return MessageResponse(message=f"Authentication flow for '{account_id}' has been cancelled.")
