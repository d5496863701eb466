"""
Report Assembler - validates report calls and dispatches them to view builders.

Every call resolves its inputs to a concrete TimeWindow, an effective zone
scope and paging before anything is fetched, then hands a ReportContext to
the view builder registered for the requested view. Exports reuse the same
pipeline without pagination and pass the payload to the ExportSerializer.
"""
import logging
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import FrozenSet, List, Optional, Tuple
from zoneinfo import ZoneInfo

from core.async_utils import run_blocking
from core.config import ReportSettings, Settings
from core.decorators import log_report_operation
from core.exceptions import ReportingError, ReportValidationError
from core.logging_config import ReportLogger
from schemas.reports.common import ExportFormat, ReportResult, ReportView, TimeWindow
from schemas.reports.filters import ReportRequest, ReportScope
from services.batch_scheduler import BatchScheduler
from services.export_columns import build_export_document
from services.export_serializer import ExportSerializer
from services.metrics_calculator import MetricsCalculator, SlaTable
from services.record_fetcher import RecordFetcher
from services.report_views import PAGINATED_VIEWS, VIEW_BUILDERS, ReportContext
from services.work_calendar import WorkCalendarConfig

logger = logging.getLogger(__name__)
report_logger = ReportLogger("assembler")


@dataclass(frozen=True)
class ExportFile:
    """A rendered export ready to stream back."""

    filename: str
    media_type: str
    content: bytes


class ReportAssembler:
    """Entry point for report generation and export."""

    def __init__(
        self,
        fetcher: RecordFetcher,
        calculator: MetricsCalculator,
        scheduler: BatchScheduler,
        settings: Optional[ReportSettings] = None,
        tz: tzinfo = timezone.utc,
        serializer: Optional[ExportSerializer] = None,
    ):
        self.fetcher = fetcher
        self.calculator = calculator
        self.scheduler = scheduler
        self.settings = settings or ReportSettings()
        self.tz = tz
        self.serializer = serializer or ExportSerializer(tz=tz)

    @staticmethod
    def list_views() -> List[str]:
        return [view.value for view in ReportView]

    # =========================================================================
    # Input validation
    # =========================================================================

    def resolve_window(self, request: ReportRequest, now: datetime) -> TimeWindow:
        """
        Resolve the request's local date range to a concrete window.

        Missing bounds default to the configured number of days ending today
        (local calendar). A range whose start is after its end is rejected.
        """
        today = now.astimezone(self.tz).date()
        span = timedelta(days=self.settings.default_window_days)
        last: date = request.to_date or today
        first: date = request.from_date or (last - span)
        if first > last:
            raise ReportValidationError(
                f"Invalid date range: from {first.isoformat()} is after to {last.isoformat()}"
            )
        return TimeWindow.for_local_dates(first, last, self.tz)

    @staticmethod
    def resolve_zones(request: ReportRequest, scope: ReportScope) -> Optional[FrozenSet[int]]:
        """
        Effective zone set of a call; ``None`` means every zone.

        Requested zones must lie within the caller's scope.
        """
        requested = frozenset(request.zone_ids) if request.zone_ids else None
        if not scope.is_restricted:
            return requested
        if requested is None:
            return frozenset(scope.zone_ids)
        outside = requested - scope.zone_ids
        if outside:
            raise ReportValidationError(
                f"Zones outside caller scope: {', '.join(str(z) for z in sorted(outside))}"
            )
        return requested

    def resolve_paging(self, request: ReportRequest) -> Tuple[int, int]:
        page = 1 if request.page is None else request.page
        limit = self.settings.default_page_size if request.limit is None else request.limit
        if page < 1:
            raise ReportValidationError(f"Page must be at least 1, got {page}")
        if limit < 1:
            raise ReportValidationError(f"Limit must be at least 1, got {limit}")
        return page, min(limit, self.settings.max_page_size)

    def build_context(
        self,
        view: ReportView,
        request: ReportRequest,
        scope: ReportScope,
        now: datetime,
        for_export: bool = False,
    ) -> ReportContext:
        page, limit = self.resolve_paging(request)
        return ReportContext(
            view=view,
            request=request,
            window=self.resolve_window(request, now),
            zone_ids=self.resolve_zones(request, scope),
            tz=self.tz,
            now=now,
            page=page,
            limit=limit,
            paginate=view in PAGINATED_VIEWS and not for_export,
        )

    # =========================================================================
    # Operations
    # =========================================================================

    @log_report_operation("report generation")
    async def generate(
        self,
        view_name: str,
        request: Optional[ReportRequest] = None,
        scope: Optional[ReportScope] = None,
        now: Optional[datetime] = None,
    ) -> ReportResult:
        """
        Assemble one report view.

        Raises:
            InvalidViewError: Unknown view name
            ReportValidationError: Invalid date range, paging or zone filter
            UpstreamFetchError: The record store failed a primary fetch
        """
        return await self._run(view_name, request, scope, now, for_export=False)

    @log_report_operation("report export")
    async def export(
        self,
        view_name: str,
        export_format: str,
        request: Optional[ReportRequest] = None,
        scope: Optional[ReportScope] = None,
        now: Optional[datetime] = None,
    ) -> ExportFile:
        """Assemble a view without pagination and render it as a table or spreadsheet."""
        try:
            fmt = ExportFormat((export_format or "").strip().lower())
        except ValueError:
            raise ReportValidationError(
                f"Unsupported export format: {export_format}. "
                f"Use one of: {', '.join(f.value for f in ExportFormat)}"
            )

        now = now or datetime.now(timezone.utc)
        result = await self._run(view_name, request, scope, now, for_export=True)
        doc = build_export_document(result, now, self.serializer.format_date)
        try:
            content = await run_blocking(self.serializer.render, doc, fmt)
        except ReportingError:
            raise
        except Exception as exc:
            report_logger.error_occurred("export", result.view.value, str(exc))
            raise

        report_logger.export_rendered(result.view.value, fmt.value, len(content))
        return ExportFile(
            filename=self.serializer.filename(doc, fmt),
            media_type=self.serializer.media_type(fmt),
            content=content,
        )

    async def _run(
        self,
        view_name: str,
        request: Optional[ReportRequest],
        scope: Optional[ReportScope],
        now: Optional[datetime],
        for_export: bool,
    ) -> ReportResult:
        request = request or ReportRequest()
        scope = scope or ReportScope()
        now = now or datetime.now(timezone.utc)

        try:
            view = ReportView.parse(view_name)
            ctx = self.build_context(view, request, scope, now, for_export=for_export)
        except ReportingError as exc:
            report_logger.error_occurred("validate", view_name, exc.message)
            raise

        report_logger.report_started(view.value, ctx.window.start, ctx.window.end, ctx.filters)
        started = time.perf_counter()
        builder = VIEW_BUILDERS[view](self.fetcher, self.calculator, self.scheduler, self.settings)
        try:
            result = await builder.build(ctx)
        except ReportingError as exc:
            report_logger.error_occurred("assemble", view.value, exc.message)
            raise
        except Exception as exc:
            report_logger.error_occurred("assemble", view.value, f"{type(exc).__name__}: {exc}")
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        report_logger.report_completed(view.value, len(getattr(result, "rows", [])), elapsed_ms)
        return result


def build_report_assembler(fetcher: RecordFetcher, settings: Settings) -> ReportAssembler:
    """Build an assembler whose calendar, SLA table and scheduler come from settings."""
    calendar_settings = settings.calendar
    calendar = WorkCalendarConfig(
        start_hour=calendar_settings.start_hour,
        start_minute=calendar_settings.start_minute,
        end_hour=calendar_settings.end_hour,
        end_minute=calendar_settings.end_minute,
        working_weekdays=calendar_settings.weekday_set,
        timezone=calendar_settings.timezone,
    )
    sla_table = SlaTable(
        hours_by_priority=settings.sla.hours_by_priority,
        default_priority=settings.sla.default_priority,
        at_risk_minutes=settings.sla.at_risk_minutes,
    )
    scheduler = BatchScheduler(
        chunk_size=settings.reports.trend_chunk_size,
        retries=settings.reports.trend_retries,
    )
    tz = calendar.tzinfo or ZoneInfo("UTC")
    return ReportAssembler(
        fetcher=fetcher,
        calculator=MetricsCalculator(calendar=calendar, sla_table=sla_table),
        scheduler=scheduler,
        settings=settings.reports,
        tz=tz,
        serializer=ExportSerializer(settings.export, tz),
    )
