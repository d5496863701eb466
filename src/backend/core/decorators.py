"""
Centralized logging and error translation decorators for report operations.

Record-store failures are classified and logged here once, then re-raised as
UpstreamFetchError so report code above the fetcher boundary only ever deals
with the reporting error taxonomy.
"""
import functools
import inspect
import logging
import time
import traceback
from typing import Any, Callable, Optional

from sqlalchemy.exc import (
    DisconnectionError,
    OperationalError,
    SQLAlchemyError,
    StatementError,
    TimeoutError,
)

from core.exceptions import ReportingError, UpstreamFetchError


logger = logging.getLogger(__name__)


class FetchErrorHandler:
    """Centralized record-store error classification."""

    # Exceptions a record store may raise that mean "the fetch failed"
    FETCH_EXCEPTIONS = (
        SQLAlchemyError,
        ConnectionError,
        OSError,
    )

    @staticmethod
    def describe(exc: Exception, operation: str, context: Optional[dict] = None) -> str:
        """
        Build a log message for a failed fetch and log it at the right level.

        Args:
            exc: The exception that occurred
            operation: Description of the fetch operation
            context: Additional context information

        Returns:
            The error message that was logged
        """
        context_str = f" | Context: {context}" if context else ""

        if isinstance(exc, (ConnectionError, DisconnectionError)):
            error_msg = f"Record store connection error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
        elif isinstance(exc, TimeoutError):
            error_msg = f"Record store timeout during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
        elif isinstance(exc, OperationalError):
            error_msg = f"Record store operational error during {operation}: {exc}{context_str}"
            logger.error(error_msg)
        elif isinstance(exc, StatementError):
            error_msg = f"Record store statement error during {operation}: {exc}{context_str}"
            logger.warning(error_msg)
        else:
            error_msg = (
                f"Unexpected record store error during {operation}: "
                f"{type(exc).__name__}: {exc}{context_str}"
            )
            logger.error(f"{error_msg}\nTraceback: {traceback.format_exc()}")
        return error_msg


def translate_fetch_errors(operation_name: Optional[str] = None) -> Callable:
    """
    Decorator for record fetcher methods.

    Store exceptions are logged with context and re-raised as
    UpstreamFetchError. Reporting errors pass through untouched.

    Args:
        operation_name: Name of the operation for logging (defaults to function name)
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            operation = operation_name or getattr(func, "__name__", "unknown")
            try:
                return await func(*args, **kwargs)
            except ReportingError:
                raise
            except FetchErrorHandler.FETCH_EXCEPTIONS as exc:
                context = {
                    "function": getattr(func, "__name__", "unknown"),
                    "kwargs_keys": list(kwargs.keys()) if kwargs else [],
                }
                error_msg = FetchErrorHandler.describe(exc, operation, context)
                raise UpstreamFetchError(error_msg, operation=operation) from exc

        return async_wrapper

    return decorator


def log_report_operation(operation: str, level: str = "debug") -> Callable:
    """
    Decorator to log the start, completion and failure of an operation.

    Works on both sync and async callables and reports elapsed time.

    Args:
        operation: Description of the operation
        level: Logging level ('debug', 'info', 'warning')
    """
    def decorator(func: Callable) -> Callable:
        is_async = inspect.iscoroutinefunction(func)
        func_name = getattr(func, "__name__", "unknown")

        if not is_async:
            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs) -> Any:
                logger_method = getattr(logger, level)
                started = time.perf_counter()
                logger_method(f"Starting {operation} via {func_name}")
                try:
                    result = func(*args, **kwargs)
                except Exception as exc:
                    logger_method(f"Failed {operation} via {func_name}: {exc}")
                    raise
                elapsed_ms = (time.perf_counter() - started) * 1000
                logger_method(f"Completed {operation} via {func_name} in {elapsed_ms:.1f} ms")
                return result

            return sync_wrapper

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            logger_method = getattr(logger, level)
            started = time.perf_counter()
            logger_method(f"Starting {operation} via {func_name}")
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                logger_method(f"Failed {operation} via {func_name}: {exc}")
                raise
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger_method(f"Completed {operation} via {func_name} in {elapsed_ms:.1f} ms")
            return result

        return async_wrapper

    return decorator
