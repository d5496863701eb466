"""Report request filters and caller scope."""

from datetime import date
from typing import Dict, FrozenSet, List, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel


class ReportRequest(HTTPSchemaModel):
    """Filters and paging supplied by the caller for one report call.

    Validation of ranges and paging happens in the assembler so every
    problem surfaces as an INVALID_FILTER error rather than a schema error.
    """

    from_date: Optional[date] = Field(default=None, description="First local day (inclusive)")
    to_date: Optional[date] = Field(default=None, description="Last local day (inclusive)")
    zone_ids: Optional[List[int]] = None
    customer_id: Optional[int] = None
    asset_id: Optional[int] = None
    product_type: Optional[str] = None
    stage: Optional[str] = None
    page: Optional[int] = None
    limit: Optional[int] = None

    def applied_filters(self) -> Dict[str, str]:
        """Render the non-empty equality/set filters as display strings."""
        applied = {}
        if self.zone_ids:
            applied["zoneIds"] = ", ".join(str(z) for z in self.zone_ids)
        if self.customer_id is not None:
            applied["customerId"] = str(self.customer_id)
        if self.asset_id is not None:
            applied["assetId"] = str(self.asset_id)
        if self.product_type:
            applied["productType"] = self.product_type
        if self.stage:
            applied["stage"] = self.stage
        return applied


class ReportScope(HTTPSchemaModel):
    """Zones the caller may see. ``None`` means unrestricted."""

    zone_ids: Optional[FrozenSet[int]] = None

    @property
    def is_restricted(self) -> bool:
        return self.zone_ids is not None
