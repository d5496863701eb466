"""
Application lifespan manager.

This module provides the lifespan context manager that handles
startup and shutdown events for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from core.config import settings
from core.logging_config import LogConfig, stop_queue_listener
from . import tasks


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    # Setup logging
    log_config = LogConfig(**settings.logging.log_config)
    await tasks.initialize_logging(settings, log_config)

    logger = logging.getLogger("main")

    await tasks.log_calendar_configuration(settings, logger)

    yield

    # Shutdown
    logger.info("Shutting down report service")

    # Close database connections
    await tasks.shutdown_database()

    # Stop logging queue listener
    stop_queue_listener()
