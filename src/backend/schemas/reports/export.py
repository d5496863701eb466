"""Export document schemas consumed by the table and spreadsheet renderers."""

from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel
from schemas.reports.common import ReportView, TimeWindow


class ColumnFormat(str, Enum):
    """Cell rendering applied to a column's values."""

    TEXT = "text"
    INTEGER = "integer"
    NUMBER = "number"
    PERCENT = "percentage"
    CURRENCY = "currency"
    DURATION = "duration"
    DATETIME = "date"
    BOOLEAN = "boolean"
    LIST = "list"


class ColumnSpec(HTTPSchemaModel):
    """One exported column.

    ``key`` may be a dotted path (``customer.company_name``) resolved against
    each row. ``formatter`` replaces the format-driven rendering of present
    values and writes text cells; missing values still show the placeholder.
    """

    key: str
    header: str
    format: ColumnFormat = ColumnFormat.TEXT
    width: int = Field(default=14, ge=4, description="Spreadsheet width in characters")
    formatter: Optional[Callable[[Any], str]] = Field(default=None, exclude=True)


class SummaryEntry(HTTPSchemaModel):
    label: str
    value: Any = None
    format: ColumnFormat = ColumnFormat.TEXT


class ExportDocument(HTTPSchemaModel):
    """Everything a renderer needs; carries no view-specific semantics."""

    view: ReportView
    title: str
    generated_at: datetime
    window: TimeWindow
    filters: Dict[str, str] = Field(default_factory=dict)
    summary: List[SummaryEntry] = Field(default_factory=list)
    columns: List[ColumnSpec] = Field(default_factory=list)
    rows: List[Any] = Field(default_factory=list)

    def column(self, key: str) -> Optional[ColumnSpec]:
        return next((c for c in self.columns if c.key == key), None)
