"""
Health check endpoint handler.
"""

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from core.config import settings
from core.database import get_session_factory

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """
    Health check endpoint for monitoring.
    Checks that the record store answers a trivial query.
    """
    health_status = {
        "status": "healthy",
        "version": settings.api.app_version,
        "services": {},
    }

    try:
        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
        health_status["services"]["database"] = {"status": "healthy"}
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Health check database query failed: {e}")
        health_status["services"]["database"] = {
            "status": "unhealthy",
            "error": str(e),
        }
        health_status["status"] = "degraded"

    return health_status
