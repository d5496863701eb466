"""
Reports API endpoints for field-service dashboards.

Provides one generic endpoint per report operation; the view name selects
which report is assembled.

**Key Features:**
- Eleven report views (tickets, SLA, zones, agents, machines, executive, sales)
- Local-calendar date range filtering (default: last 30 days)
- Zone, customer, asset, product type and stage filters
- Paginated row listings for listing-style views
- PDF and XLSX exports of any view
"""
import logging
from datetime import date
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import StreamingResponse

from core.dependencies import get_report_assembler, get_report_scope
from core.exceptions import ReportValidationError
from schemas.reports.filters import ReportRequest, ReportScope
from services.report_assembler import ReportAssembler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["Reports & Analytics"])

EXPORT_CHUNK_SIZE = 64 * 1024


def iter_chunks(content: bytes, size: int = EXPORT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a rendered export in fixed-size chunks."""
    for offset in range(0, len(content), size):
        yield content[offset:offset + size]


def parse_zone_ids(zone_ids: Optional[str]) -> Optional[List[int]]:
    """Parse a comma-separated zone id list.

    Raises:
        ReportValidationError: A non-integer id was supplied
    """
    if not zone_ids:
        return None
    try:
        return [int(x.strip()) for x in zone_ids.split(",") if x.strip()] or None
    except ValueError:
        raise ReportValidationError(f"Invalid zoneIds filter: {zone_ids}")


def build_request(
    from_date: Optional[date] = Query(None, alias="from", description="First day (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, alias="to", description="Last day (YYYY-MM-DD)"),
    zone_ids: Optional[str] = Query(None, alias="zoneIds", description="Comma-separated zone IDs"),
    customer_id: Optional[int] = Query(None, alias="customerId"),
    asset_id: Optional[int] = Query(None, alias="assetId"),
    product_type: Optional[str] = Query(None, alias="productType"),
    stage: Optional[str] = Query(None),
    page: Optional[int] = Query(None, description="Page number (1-based)"),
    limit: Optional[int] = Query(None, description="Rows per page"),
) -> ReportRequest:
    """Build a ReportRequest from query parameters.

    Range and paging checks are left to the assembler so they surface as
    INVALID_FILTER errors.
    """
    return ReportRequest(
        from_date=from_date,
        to_date=to_date,
        zone_ids=parse_zone_ids(zone_ids),
        customer_id=customer_id,
        asset_id=asset_id,
        product_type=product_type,
        stage=stage,
        page=page,
        limit=limit,
    )


@router.get(
    "/views",
    summary="List Report Views",
    description="Returns the names of every report view.",
)
async def list_report_views() -> List[str]:
    return ReportAssembler.list_views()


@router.get(
    "/{view}",
    summary="Generate Report",
    description="Returns summary, distributions and rows for one report view.",
)
async def get_report(
    view: str,
    request: ReportRequest = Depends(build_request),
    scope: ReportScope = Depends(get_report_scope),
    assembler: ReportAssembler = Depends(get_report_assembler),
):
    """
    Generate one report view.

    Args:
        view: Report view name (e.g. ticket-summary, offer-summary)
        request: Date range, filters and paging from the query string
        scope: Zones the caller may see
        assembler: Report assembler bound to the record store

    Returns:
        The view payload in camelCase

    Raises:
        InvalidViewError: Unknown view (400, INVALID_VIEW)
        ReportValidationError: Invalid filters or paging (400, INVALID_FILTER)
        UpstreamFetchError: Record store failure (502, UPSTREAM_FETCH_FAILED)
    """
    result = await assembler.generate(view, request, scope)
    return result.model_dump(mode="json", by_alias=True)


@router.get(
    "/{view}/export",
    summary="Export Report",
    description="Renders a report view as a PDF table or an XLSX spreadsheet.",
)
async def export_report(
    view: str,
    export_format: str = Query("table", alias="format", description="table or spreadsheet"),
    request: ReportRequest = Depends(build_request),
    scope: ReportScope = Depends(get_report_scope),
    assembler: ReportAssembler = Depends(get_report_assembler),
) -> StreamingResponse:
    """
    Export every row of a report view as an attachment.

    Pagination parameters are ignored; the export contains the full listing.
    """
    export = await assembler.export(view, export_format, request, scope)
    return StreamingResponse(
        iter_chunks(export.content),
        media_type=export.media_type,
        headers={"Content-Disposition": f'attachment; filename="{export.filename}"'},
    )
