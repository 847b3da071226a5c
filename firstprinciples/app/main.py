"""
First Principles portal - FastAPI application.

Entry point for the portal API.

Hardening:
- Bearer access tokens from the backend's auth subsystem on every protected route
- Rate limiting (disabled under ENV=TEST or DISABLE_RATE_LIMITS=1)
- Exception handlers that never return stack traces or request bodies
- Row-level policy set checked for recursion on startup
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

from firstprinciples.app.db.migrate import database_configured, ensure_schema
from firstprinciples.app.db.policies import ALL_POLICIES, check_policy_recursion
from firstprinciples.app.routes import admin, health, images, me, notifications, status as status_routes, views
from firstprinciples.app.routes.deps import get_route_limiter

logger = logging.getLogger(__name__)

limiter = get_route_limiter()


def sanitize_error_detail(detail: Any) -> dict:
    """
    Return an error body that is safe to send to clients.

    Dict details are produced by this codebase and passed through; anything
    else is replaced with a generic message.
    """
    if isinstance(detail, dict):
        return detail

    return {
        "error": "internal_error",
        "message": "An error occurred processing your request",
    }


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    On startup:
    - Refuse to start with a policy set that would recurse
    - Apply migrations when DATABASE_URL is configured
    """
    check_policy_recursion(ALL_POLICIES)

    if database_configured():
        ensure_schema()
    else:
        logger.info("DATABASE_URL not set; skipping schema migration")

    yield


app = FastAPI(
    title="First Principles Portal",
    description="Spine surgery case review portal API",
    version="0.1.0",
    lifespan=lifespan,
    debug=False,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content=sanitize_error_detail(exc.detail),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Report field names and error types only, never submitted values."""
    errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        errors.append({"field": field_path, "type": error["type"], "message": error["msg"]})

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": errors,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception on %s: %s", request.url.path, type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred",
        },
    )


app.include_router(health.router)
app.include_router(me.router)
app.include_router(admin.router)
app.include_router(notifications.router)
app.include_router(views.router)
app.include_router(status_routes.router)
app.include_router(images.router)


@app.get("/")
async def root():
    return {
        "service": "First Principles Portal",
        "version": "0.1.0",
        "status": "operational",
    }
