"""Sales funnel report payloads: offers, product types, customers, targets."""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel
from schemas.reports.common import DistributionItem, ReportResult


class FunnelMetrics(HTTPSchemaModel):
    """Offer funnel figures for one group of offers."""

    total_offers: int = 0
    won_offers: int = 0
    lost_offers: int = 0
    total_value: float = 0.0
    won_value: float = 0.0
    total_po_value: float = 0.0
    won_po_value: float = 0.0
    win_rate: float = 0.0
    average_deal_size: float = 0.0
    conversion_rate: float = 0.0


# =============================================================================
# Offer Summary
# =============================================================================


class OfferRow(HTTPSchemaModel):
    id: int
    offer_reference_number: str
    title: Optional[str] = None
    customer_name: Optional[str] = None
    zone_name: Optional[str] = None
    assignee_name: Optional[str] = None
    product_type: Optional[str] = None
    stage: str
    status: Optional[str] = None
    offer_value: Optional[float] = None
    po_value: Optional[float] = None
    created_at: datetime


class OfferSummaryMetrics(HTTPSchemaModel):
    total_offers: int = 0
    total_offer_value: float = 0.0
    total_po_value: float = 0.0
    won_offers: int = 0
    won_offer_value: float = 0.0
    won_po_value: float = 0.0
    lost_offers: int = 0
    success_rate: float = 0.0
    conversion_rate: float = 0.0


class OfferSummaryReport(ReportResult):
    summary: OfferSummaryMetrics
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[OfferRow] = Field(default_factory=list)


# =============================================================================
# Product Type Analysis
# =============================================================================


class ProductTypeRow(FunnelMetrics):
    product_type: str


class ProductTypeSummary(HTTPSchemaModel):
    active_product_types: int = 0
    total_offers: int = 0
    total_value: float = 0.0
    won_value: float = 0.0
    overall_win_rate: float = 0.0
    top_product_type: Optional[str] = None


class ProductTypeReport(ReportResult):
    summary: ProductTypeSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[ProductTypeRow] = Field(default_factory=list)


# =============================================================================
# Customer Performance
# =============================================================================


class CustomerPerformanceRow(FunnelMetrics):
    customer_id: int
    customer_name: str
    location: Optional[str] = None
    industry: Optional[str] = None
    zone_name: Optional[str] = None


class CustomerPerformanceSummary(HTTPSchemaModel):
    total_customers: int = 0
    active_customers: int = 0
    total_offers: int = 0
    total_value: float = 0.0
    won_value: float = 0.0
    overall_win_rate: float = 0.0
    top_customer: Optional[str] = None


class CustomerPerformanceReport(ReportResult):
    summary: CustomerPerformanceSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[CustomerPerformanceRow] = Field(default_factory=list)


# =============================================================================
# Targets
# =============================================================================


class TargetRow(HTTPSchemaModel):
    target_id: int
    target_kind: str = Field(description="ZONE or USER")
    owner_name: str
    zone_name: Optional[str] = None
    period_type: str
    target_period: str
    product_type: Optional[str] = None
    target_value: float = 0.0
    actual_value: float = 0.0
    achievement: float = 0.0


class TargetSummary(HTTPSchemaModel):
    total_targets: int = 0
    targets_met: int = 0
    total_target_value: float = 0.0
    total_actual_value: float = 0.0
    overall_achievement: float = 0.0


class TargetReport(ReportResult):
    summary: TargetSummary
    distributions: Dict[str, List[DistributionItem]] = Field(default_factory=dict)
    rows: List[TargetRow] = Field(default_factory=list)
