"""
Schemas package for API validation and serialization.

Report payloads, request filters, record snapshots and the record query
vocabulary live under ``schemas.reports``.
"""
from .reports import (
    ExportFormat,
    ReportRequest,
    ReportResult,
    ReportScope,
    ReportView,
    TimeWindow,
)

__all__ = [
    "ExportFormat",
    "ReportRequest",
    "ReportResult",
    "ReportScope",
    "ReportView",
    "TimeWindow",
]
