"""
Reporting error taxonomy.

Every fatal error raised by the metrics engine carries a stable ``error_kind``
code so the HTTP layer can answer with a structured ``{errorKind, message}``
body without inspecting exception types.
"""

from typing import Dict, Optional


class ReportingError(Exception):
    """Base exception for reporting errors."""

    error_kind: str = "REPORTING_ERROR"

    def __init__(self, message: str, error_kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if error_kind:
            self.error_kind = error_kind

    def to_payload(self) -> Dict[str, str]:
        """Return the structured body sent back to the caller."""
        return {"errorKind": self.error_kind, "message": self.message}


class ConfigurationError(ReportingError):
    """Raised when a calendar, SLA table or scheduler is misconfigured."""

    error_kind = "CONFIGURATION_ERROR"


class ReportValidationError(ReportingError):
    """Raised when report filters, paging or export options are invalid."""

    error_kind = "INVALID_FILTER"


class InvalidViewError(ReportValidationError):
    """Raised when the requested report view does not exist."""

    error_kind = "INVALID_VIEW"

    def __init__(self, view: str):
        super().__init__(f"Invalid report type: {view}")
        self.view = view


class UpstreamFetchError(ReportingError):
    """Raised when the record store fails to answer a primary fetch."""

    error_kind = "UPSTREAM_FETCH_FAILED"

    def __init__(self, message: str, operation: Optional[str] = None):
        super().__init__(message)
        self.operation = operation
