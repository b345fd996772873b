"""Admin API Routes Package

Aggregates the route handlers into a single router mounted at /admin.
"""

from fastapi import APIRouter

from .accounts import router as accounts_router
from .auth import router as auth_router


admin_router = APIRouter(prefix="/admin")

admin_router.include_router(accounts_router, prefix="/accounts", tags=["accounts"])
admin_router.include_router(auth_router, prefix="/auth", tags=["auth"])

__all__ = ["admin_router"]
