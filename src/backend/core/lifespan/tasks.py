"""
Lifespan startup and shutdown task functions.

This module contains individual task functions for application startup
and shutdown sequences. Each function handles a specific responsibility.
"""

import logging


async def initialize_logging(settings, log_config):
    """Setup logging configuration."""
    from core.logging_config import setup_logging

    logger = logging.getLogger("main")
    setup_logging(log_config)

    logger.info(f"Starting {settings.api.app_name} v{settings.api.app_version}")


async def log_calendar_configuration(settings, logger):
    """Log the working calendar and SLA table the reports run with."""
    calendar = settings.calendar
    logger.info(
        f"Work calendar | Hours: {calendar.start_hour:02d}:{calendar.start_minute:02d}-"
        f"{calendar.end_hour:02d}:{calendar.end_minute:02d} | "
        f"Weekdays: {sorted(calendar.weekday_set)} | Timezone: {calendar.timezone}"
    )
    logger.info(f"SLA hours by priority: {settings.sla.hours_by_priority}")


async def shutdown_database():
    """Close database connections."""
    from core.database import dispose_engine

    logger = logging.getLogger("main")
    await dispose_engine()
    logger.info("Database connections closed")
