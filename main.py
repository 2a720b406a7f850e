"""
Nog Auth service entry point.

Builds the FastAPI app: logging from config, CORS/GZip/trusted-host
middleware, JSON error envelopes, the v1 routers and the avatar mount.
The lifespan hook creates missing tables and seeds RBAC data.

    uvicorn main:app --reload

Interactive docs are served at /docs and /redoc.
"""

import logging
import os
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.gzip import GZipMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from src import __version__
from src.utils import setup_root_logger
from src.api.v1 import (
    router,
    auth_router,
    two_factor_router,
    passkey_router,
    admin_router,
    admin_plus_router,
    rbac_router,
    console_router,
    avatar_router,
)
from src.auth.errors import APIError
from src.database import get_db_manager, init_database
from src.utils.config_loader import ConfigLoader

DEFAULT_ALLOWED_HOSTS = ["localhost", "testserver", "127.0.0.1", "*.localhost"]


# ============================================================================
# Logging Setup
# ============================================================================

def configure_logging(settings: ConfigLoader) -> logging.Logger:
    log_cfg = settings.get_logging_config()
    setup_root_logger(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file", "./logs/app.log"),
        max_bytes=int(log_cfg.get("max_bytes", 10485760)),
        backup_count=int(log_cfg.get("backup_count", 5)),
    )

    log = logging.getLogger(__name__)
    log.info(f"Nog Auth v{__version__} ({settings.get('app.env', 'development')})")
    return log


cfg = ConfigLoader()
logger = configure_logging(cfg)


# ============================================================================
# Lifespan Events
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup: create missing tables and seed RBAC roles/permissions.
    Shutdown: dispose of the connection pool.
    """
    init_database()
    logger.info("📦 Database ready, RBAC seed applied")

    yield

    get_db_manager().close()
    logger.info("🛑 Database connections closed")


# ============================================================================
# FastAPI Application Setup
# ============================================================================

app = FastAPI(
    title="Nog Auth API",
    description="Authentication, sessions, two-factor, passkeys, social sign-in and RBAC administration",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# ============================================================================
# Middleware Configuration
# ============================================================================

# Cookies carry the session, so credentials must be allowed
app.add_middleware(
    CORSMiddleware,
    allow_origins=cfg.get_cors_config().get("allow_origins") or ["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

app.add_middleware(TrustedHostMiddleware, allowed_hosts=cfg.get("app.allowed_hosts") or DEFAULT_ALLOWED_HOSTS)


# ============================================================================
# Error Envelopes
# ============================================================================

def error_response(request: Request, status_code: int, error: str, message, **extra) -> JSONResponse:
    """Every error leaves the API in the same JSON shape"""
    body = {"error": error, "message": message, "status_code": status_code, "path": request.url.path}
    body.update(extra)
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(APIError)
async def handle_api_error(request: Request, exc: APIError):
    level = logging.ERROR if exc.status_code >= 500 else logging.INFO
    logger.log(level, f"{exc.status_code} {exc.code} on {request.url.path}")
    return error_response(request, exc.status_code, "api_error", exc.message, code=exc.code)


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    logger.warning(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return error_response(request, exc.status_code, "http_error", exc.detail)


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    logger.warning(f"Rejected input on {request.url.path}: {errors}")
    details = [
        {"field": ".".join(str(part) for part in err["loc"][1:]), "message": err["msg"], "type": err["type"]}
        for err in errors
    ]
    return error_response(request, 422, "validation_error", "Request validation failed", details=details)


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.error(f"💥 Unhandled {type(exc).__name__} on {request.url.path}: {exc}", exc_info=True)
    return error_response(request, 500, "internal_server_error", "An unexpected error occurred")


@app.middleware("http")
async def timing_middleware(request: Request, call_next):
    """Debug-log each request and report its duration in X-Process-Time"""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed = time.perf_counter() - started
    logger.debug(f"{request.method} {request.url.path} -> {response.status_code} ({elapsed:.3f}s)")
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    return response


# ============================================================================
# Routes Registration
# ============================================================================

app.include_router(router)
app.include_router(auth_router)
app.include_router(two_factor_router)
app.include_router(passkey_router)
app.include_router(admin_router)
app.include_router(admin_plus_router)
app.include_router(rbac_router)
app.include_router(console_router)
app.include_router(avatar_router)

storage_cfg = cfg.get_storage_config()
avatar_dir = storage_cfg.get("avatar_dir", "./media/avatars")
os.makedirs(avatar_dir, exist_ok=True)
app.mount(
    storage_cfg.get("avatar_url_prefix", "/media/avatars"),
    StaticFiles(directory=avatar_dir),
    name="avatars",
)


# ============================================================================
# Root Endpoint
# ============================================================================

@app.get("/", tags=["root"])
async def root():
    return {
        "message": f"Nog Auth API v{__version__}",
        "status": "running",
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
    }


@app.get("/health/live", tags=["health"])
async def health_live():
    """Liveness check."""
    return {
        "status": "alive",
        "service": "nog-auth",
        "version": __version__,
    }


@app.get("/health/ready", tags=["health"])
async def health_ready():
    """Readiness check: the database must answer."""
    if get_db_manager().health_check():
        return {"status": "ready", "database": "connected"}
    logger.error("Readiness check failed: database unavailable")
    return JSONResponse(status_code=503, content={"status": "not_ready", "database": "unavailable"})


@app.get("/info", tags=["info"])
async def app_info():
    return {
        "name": cfg.get("app.name", "Nog"),
        "version": __version__,
        "description": "Authentication service and RBAC admin console",
        "python_version": f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}",
        "environment": cfg.get("app.env", "development"),
        "features": [
            "Email and password sign-in",
            "Email verification and password reset",
            "Two-factor authentication (TOTP, backup codes)",
            "Passkeys (WebAuthn)",
            "Social sign-in (Google, GitHub)",
            "User administration and impersonation",
            "Role-based access control",
            "CSV user export",
        ],
    }


# ============================================================================
# Main Entry Point
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=cfg.get("app.host", "0.0.0.0"), port=int(cfg.get("app.port", 8000)), reload=True)
