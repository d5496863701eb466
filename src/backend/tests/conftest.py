"""
Pytest configuration and fixtures for testing.

Provides:
- A fixed clock and an Asia/Kolkata working calendar
- Metrics calculator and batch scheduler instances
- In-memory record fetchers and report assemblers built over them
- An in-memory SQLite database for the SQL-backed fetcher

Usage:
    pytest src/backend/tests -v
"""

from datetime import datetime
from typing import AsyncGenerator, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

import db.models  # noqa: F401  registers the read-model tables
from core.config import ExportSettings, ReportSettings
from services.batch_scheduler import BatchScheduler
from services.export_serializer import ExportSerializer
from services.metrics_calculator import MetricsCalculator
from services.record_fetcher import InMemoryRecordFetcher
from services.report_assembler import ReportAssembler
from services.work_calendar import WorkCalendarConfig
from tests.factories import IST, NOW


TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# ============================================================================
# Clock and Calendar
# ============================================================================

@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def calendar_config() -> WorkCalendarConfig:
    """Mon-Sat 09:00-17:30 in Asia/Kolkata."""
    return WorkCalendarConfig(timezone="Asia/Kolkata")


@pytest.fixture
def calculator(calendar_config: WorkCalendarConfig) -> MetricsCalculator:
    return MetricsCalculator(calendar_config)


@pytest.fixture
def scheduler() -> BatchScheduler:
    return BatchScheduler(chunk_size=5, retries=1)


# ============================================================================
# Record Store Fixtures
# ============================================================================

@pytest.fixture
def empty_fetcher() -> InMemoryRecordFetcher:
    return InMemoryRecordFetcher()


# ============================================================================
# Database Fixtures
# ============================================================================

@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with the read-model tables created.

    StaticPool keeps every session on the one connection that owns the
    in-memory database.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


# ============================================================================
# Assembler Fixtures
# ============================================================================

@pytest.fixture
def report_settings() -> ReportSettings:
    return ReportSettings()


@pytest.fixture
def build_assembler(
    calculator: MetricsCalculator,
    scheduler: BatchScheduler,
    report_settings: ReportSettings,
) -> Callable[[InMemoryRecordFetcher], ReportAssembler]:
    """Factory building an assembler over a given fetcher."""

    def _build(fetcher: InMemoryRecordFetcher) -> ReportAssembler:
        return ReportAssembler(
            fetcher,
            calculator,
            scheduler,
            settings=report_settings,
            tz=IST,
            serializer=ExportSerializer(ExportSettings(), IST),
        )

    return _build
