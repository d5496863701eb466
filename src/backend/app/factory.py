"""
Application factory for FastAPI.

This module provides the create_app() function that creates and configures
the FastAPI application instance.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.v1 import api_router
from app.routes import health_router
from core.config import settings
from core.exceptions import (
    ReportingError,
    ReportValidationError,
    UpstreamFetchError,
)
from core.lifespan import lifespan

logger = logging.getLogger(__name__)


def status_for(exc: ReportingError) -> int:
    """HTTP status code of a reporting error."""
    if isinstance(exc, ReportValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, UpstreamFetchError):
        return status.HTTP_502_BAD_GATEWAY
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def reporting_error_handler(request: Request, exc: ReportingError) -> JSONResponse:
    """Answer with the structured ``{errorKind, message}`` body."""
    code = status_for(exc)
    if code >= 500:
        logger.error(f"{exc.error_kind} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=code, content=exc.to_payload())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed query parameters are filter errors."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
        for error in exc.errors()
    )
    error = ReportValidationError(f"Invalid request parameters: {problems}")
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=error.to_payload())


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application with middleware, error
    handlers and routes.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.api.app_name,
        version=settings.api.app_version,
        description="Business-calendar-aware reporting for field-service tickets and offers",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=True,
        allow_methods=["GET", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization", "Accept", "Origin"],
        expose_headers=["Content-Disposition"],
    )

    # Error handlers
    app.add_exception_handler(ReportingError, reporting_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.api.api_v1_prefix)

    return app
