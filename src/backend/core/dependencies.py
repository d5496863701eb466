"""
Report dependencies for FastAPI.

Authentication lives outside this service; deployments that restrict callers
to a subset of zones override ``get_report_scope`` with a dependency that
derives the scope from their identity provider.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.config import Settings, get_settings
from core.database import get_session_factory
from schemas.reports.filters import ReportScope
from services.report_assembler import ReportAssembler, build_report_assembler
from services.sql_record_fetcher import SqlRecordFetcher


async def get_report_scope() -> ReportScope:
    """Caller zone scope. Unrestricted unless overridden."""
    return ReportScope()


def get_report_assembler(
    session_factory: async_sessionmaker = Depends(get_session_factory),
    settings: Settings = Depends(get_settings),
) -> ReportAssembler:
    """Assembler reading from the application database."""
    return build_report_assembler(SqlRecordFetcher(session_factory), settings)
