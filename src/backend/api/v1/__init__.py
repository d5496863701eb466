"""
API v1 routes.
"""

from fastapi import APIRouter

from .endpoints import reports

api_router = APIRouter()

api_router.include_router(reports.router)

__all__ = ["api_router"]
