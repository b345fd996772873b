"""
calhub Admin API - FastAPI Application

Account CRUD and device code sign-in over HTTP, for headless hosts where
nobody can open a browser on the machine itself.

Usage:
    uvicorn calhub.admin.main:create_app --factory --host 127.0.0.1 --port 8080

    Or run directly:
    python -m calhub.admin.main
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

# Load .env file before anything else
from dotenv import load_dotenv
load_dotenv()

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from calhub import __version__
from calhub.accounts.config_store import AccountConfigStore
from calhub.accounts.credentials import CredentialManager
from calhub.accounts.errors import CalhubError
from calhub.admin.errors import calhub_exception_handler, error_response
from calhub.admin.models import HealthCheck
from calhub.admin.routes import admin_router
from calhub.admin.security import is_authorized
from calhub.auth.orchestrator import AuthFlowOrchestrator
from calhub.logging_config import setup_logging
from calhub.services import build_services
from calhub.settings import CalhubSettings, load_settings

logger = logging.getLogger(__name__)


def create_app(
    settings: CalhubSettings | None = None,
    store: AccountConfigStore | None = None,
    credentials: CredentialManager | None = None,
    orchestrator: AuthFlowOrchestrator | None = None,
) -> FastAPI:
    """
    Build the admin application.

    Components not passed in are built from settings, so tests can swap in
    a temp-dir store or an orchestrator driving fake identity clients.
    """
    settings = settings or load_settings()
    if store is None or credentials is None or orchestrator is None:
        default_store, default_credentials, default_orchestrator = build_services(settings)
        store = store or default_store
        credentials = credentials or default_credentials
        orchestrator = orchestrator or default_orchestrator

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events."""
        logger.info(f"Starting calhub admin API (config: {store.path})")
        app.state.started_at = datetime.now()

        if not app.state.admin_token:
            logger.warning(
                "No admin token configured. Admin API is unprotected. "
                "Set CALHUB_ADMIN_TOKEN for anything but local use."
            )

        yield

        logger.info("Shutting down calhub admin API...")
        orchestrator.shutdown()

    app = FastAPI(
        title="calhub Admin API",
        description="Account configuration and authentication for calhub",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.store = store
    app.state.credentials = credentials
    app.state.orchestrator = orchestrator
    app.state.admin_token = settings.admin_token
    app.state.started_at = None

    if settings.admin.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.admin.allowed_origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # =========================================================================
    # Admin token middleware
    # =========================================================================

    @app.middleware("http")
    async def admin_token_middleware(request: Request, call_next):
        """Enforce the shared admin token on /admin routes."""
        if not request.url.path.startswith("/admin"):
            return await call_next(request)

        if not is_authorized(request.headers, app.state.admin_token):
            client = request.client.host if request.client else "unknown"
            logger.warning(f"Unauthorized admin API access attempt from {client}")
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "Unauthorized. Provide admin token via Authorization: Bearer <token> "
                "or X-Admin-Token header.",
                "AUTH_REQUIRED",
            )

        return await call_next(request)

    # =========================================================================
    # Health Check Endpoint
    # =========================================================================

    @app.get("/health", response_model=HealthCheck, tags=["health"])
    async def health_check():
        """Liveness plus configuration document readability."""
        services = {}

        try:
            accounts = await run_in_threadpool(store.list)
            services["config_document"] = "healthy"
            services["accounts"] = str(len(accounts))
        except (CalhubError, OSError) as e:
            logger.error(f"Configuration health check failed: {e}")
            services["config_document"] = "unhealthy"

        if app.state.started_at is not None:
            uptime = datetime.now() - app.state.started_at
            services["uptime_seconds"] = str(int(uptime.total_seconds()))

        overall = "healthy" if services["config_document"] == "healthy" else "degraded"
        return HealthCheck(status=overall, version=__version__, services=services)

    # =========================================================================
    # Error Handlers
    # =========================================================================

    app.add_exception_handler(CalhubError, calhub_exception_handler)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        """Malformed bodies are client errors like any other validation failure."""
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = [str(p) for p in first.get("loc", ()) if p != "body"]
        return error_response(
            status.HTTP_400_BAD_REQUEST,
            first.get("msg", "Invalid request."),
            "INVALID_REQUEST",
            ".".join(location) or None,
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle HTTP exceptions with consistent format."""
        return error_response(exc.status_code, str(exc.detail), f"HTTP_{exc.status_code}")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error(f"Unhandled exception: {type(exc).__name__}", exc_info=True)
        return error_response(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error", "INTERNAL_ERROR"
        )

    app.include_router(admin_router)

    return app


# =============================================================================
# Main Entry Point
# =============================================================================


def serve(settings: CalhubSettings | None = None, host: str | None = None, port: int | None = None) -> None:
    """Run the admin API under uvicorn."""
    import uvicorn

    settings = settings or load_settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.admin.host,
        port=port or settings.admin.port,
        log_config=None,
    )


if __name__ == "__main__":
    setup_logging()
    serve()
