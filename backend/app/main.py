"""
App Ideas Finder - FastAPI Application

Main entry point for the backend API.
Provides subscription access control, usage metering, billing, and the
admin and account endpoints around them.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config.settings import settings
from app.infrastructure.exceptions import (
    AppIdeasFinderError,
    AuthenticationError,
    AuthorizationError,
    ConfigurationError,
    DependencyError,
    DuplicateError,
    NotFoundError,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    logger.info(f"App Ideas Finder Backend starting in {settings.environment} mode...")

    if settings.database_url:
        from app.infrastructure.db.database import init_db
        await init_db()
        logger.info("Database connection pool initialized")
    else:
        logger.warning("DATABASE_URL not set; database-backed routes will fail")

    yield

    if settings.database_url:
        from app.infrastructure.db.database import close_db
        await close_db()
        logger.info("Database connection pool closed")

    logger.info("App Ideas Finder Backend shutting down...")


app = FastAPI(
    title="App Ideas Finder",
    description="Subscription, usage and admin backend for App Ideas Finder",
    version="1.0.0",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS configuration from Settings
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Exception Handlers
# ============================================================================

@app.exception_handler(AuthenticationError)
async def authentication_error_handler(request: Request, exc: AuthenticationError):
    """Handle missing or invalid sessions."""
    return JSONResponse(
        status_code=401,
        content=exc.to_dict(),
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(AuthorizationError)
async def authorization_error_handler(request: Request, exc: AuthorizationError):
    """Handle missing roles and denied access."""
    return JSONResponse(
        status_code=403,
        content=exc.to_dict(),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError):
    """Handle validation errors."""
    return JSONResponse(
        status_code=400,
        content=exc.to_dict(),
    )


@app.exception_handler(NotFoundError)
async def not_found_error_handler(request: Request, exc: NotFoundError):
    """Handle not found errors."""
    return JSONResponse(
        status_code=404,
        content=exc.to_dict(),
    )


@app.exception_handler(DuplicateError)
async def duplicate_error_handler(request: Request, exc: DuplicateError):
    """Handle unique-constraint conflicts."""
    return JSONResponse(
        status_code=409,
        content=exc.to_dict(),
    )


@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: DependencyError):
    """Handle database and external service failures."""
    logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Handle missing configuration."""
    logger.error(f"Configuration error on {request.url.path}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


@app.exception_handler(AppIdeasFinderError)
async def general_error_handler(request: Request, exc: AppIdeasFinderError):
    """Handle all other application errors."""
    return JSONResponse(
        status_code=500,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    """Last resort: log the traceback, hide the details."""
    logger.exception(f"Unhandled error on {request.url.path}")
    return JSONResponse(
        status_code=500,
        content={"error": "InternalServerError", "message": "Internal server error", "details": {}},
    )


# ============================================================================
# Health Check
# ============================================================================

@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "app-ideas-finder"}


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "App Ideas Finder API",
        "version": "1.0.0",
        "docs": "/docs",
    }


# ============================================================================
# Import and register routers
# ============================================================================

from app.api.routes import (  # noqa: E402
    account,
    admin,
    admin_email,
    analysis,
    billing,
    feedback,
    subscriptions,
    unsubscribe,
    webhooks,
)

app.include_router(subscriptions.router, prefix="/api", tags=["Subscription"])
app.include_router(billing.router, prefix="/api", tags=["Billing"])
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
app.include_router(analysis.router, prefix="/api", tags=["Analysis"])
app.include_router(account.router, prefix="/api", tags=["Account"])
app.include_router(feedback.router, prefix="/api", tags=["Feedback"])
app.include_router(unsubscribe.router, prefix="/api", tags=["Unsubscribe"])
app.include_router(admin.router, prefix="/api", tags=["Admin"])
app.include_router(admin_email.router, prefix="/api", tags=["Admin Email"])
