"""
Report engine services: calendar arithmetic, ticket metrics, record fetching,
batched trend fetches, report assembly and export rendering.
"""
from .batch_scheduler import BatchScheduler
from .export_serializer import ExportSerializer
from .metrics_calculator import MetricsCalculator
from .record_fetcher import InMemoryRecordFetcher, RecordFetcher
from .report_assembler import ReportAssembler
from .sql_record_fetcher import SqlRecordFetcher
from .work_calendar import WorkCalendar, WorkCalendarConfig

__all__ = [
    "BatchScheduler",
    "ExportSerializer",
    "InMemoryRecordFetcher",
    "MetricsCalculator",
    "RecordFetcher",
    "ReportAssembler",
    "SqlRecordFetcher",
    "WorkCalendar",
    "WorkCalendarConfig",
]
