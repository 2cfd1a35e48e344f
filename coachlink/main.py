"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    uvicorn coachlink.main:app --reload

For production:
    gunicorn coachlink.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import accounts, health, webhooks
from .config.settings import get_settings
from .core.onboarding.errors import (
    InvalidSignature,
    OnboardingIncomplete,
    RemoteServiceError,
    StorageUnavailable,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=get_settings().log_level.upper(),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Logs startup configuration and warns about missing settings.
    FastAPI calls this automatically when the application starts/stops.
    """
    settings = get_settings()

    logger.info(
        "CoachLink API starting",
        extra={
            "version": __version__,
            "mock_mode": {
                "snowflake": settings.snowflake_mock_mode,
                "stripe": settings.stripe_mock_mode,
            }
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )
        # Readiness reports not_ready until these are set; keep serving liveness

    yield

    logger.info("CoachLink API shutting down")


def _envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message, "data": None},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the onboarding error taxonomy onto HTTP responses.

    Every failure uses the same envelope as a success, with success=false.
    """

    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        logger.warning("Validation failed", extra={"path": request.url.path, "error": str(exc)})
        return _envelope(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(OnboardingIncomplete)
    async def onboarding_incomplete_handler(request: Request, exc: OnboardingIncomplete):
        return _envelope(status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(InvalidSignature)
    async def invalid_signature_handler(request: Request, exc: InvalidSignature):
        logger.error("Invalid webhook signature", extra={"error": str(exc)})
        return _envelope(status.HTTP_400_BAD_REQUEST, "Invalid signature")

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        first = errors[0] if errors else {}
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = first.get("msg", "Invalid request")
        message = f"Invalid request: {location}: {detail}" if location else f"Invalid request: {detail}"
        logger.warning("Request validation failed", extra={"path": request.url.path, "error": message})
        return _envelope(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(RemoteServiceError)
    async def remote_service_handler(request: Request, exc: RemoteServiceError):
        logger.error(
            "Stripe request failed",
            extra={"path": request.url.path, "code": exc.code, "error": exc.message},
        )
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    @app.exception_handler(StorageUnavailable)
    async def storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        logger.error(
            "Storage unavailable",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Storage unavailable")

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )
        return _envelope(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Payout onboarding for coaches via Stripe Connect Express accounts.

        ## Workflow

        1. **Register**: `POST /api/v1/accounts`
           - Creates a Stripe Express account, or reuses the one the email has
        2. **Onboard**: `POST /api/v1/accounts/onboarding-link`
           - Returns a single-use hosted onboarding URL
        3. **Check status**: `GET /api/v1/accounts/status`
           - Reads Stripe and caches details/payout flags locally
        4. **Manage**: `GET /api/v1/accounts/dashboard-link`
           - Express dashboard link once onboarding details are submitted

        Stripe also pushes `account.updated` events to
        `POST /api/v1/webhooks/stripe`, which keep the cached flags current.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        accounts.router,
        prefix="/api/v1/accounts",
        tags=["Accounts"],
    )

    app.include_router(
        webhooks.router,
        prefix="/api/v1/webhooks",
        tags=["Webhooks"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - points at the docs."""
        return {
            "message": "CoachLink API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    register_exception_handlers(app)

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "coachlink.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
