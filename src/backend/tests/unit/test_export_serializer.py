"""
Unit tests for export formatting and rendering.

Tests cover:
- Currency, duration, percentage and date cell formatting
- Placeholder handling for missing values
- Export filenames
- PDF table and XLSX workbook rendering
- Export document layout from an assembled report
"""

from datetime import date, datetime, timezone
from io import BytesIO

import pytest
from openpyxl import load_workbook

from core.config import ExportSettings
from core.exceptions import ReportValidationError
from schemas.reports.common import ExportFormat, ReportView, RiskLevel, TimeWindow
from schemas.reports.export import ColumnFormat, ColumnSpec, ExportDocument, SummaryEntry
from schemas.reports.operations import (
    ZonePerformanceReport,
    ZonePerformanceRow,
    ZonePerformanceSummary,
)
from services.export_columns import build_export_document, enum_label, report_title, resolve_path
from services.export_serializer import ExportSerializer
from tests.factories import IST, ist


F = ColumnFormat


@pytest.fixture
def serializer() -> ExportSerializer:
    return ExportSerializer(ExportSettings(), IST)


def make_document(rows=None, **overrides) -> ExportDocument:
    fields = dict(
        view=ReportView.ZONE_PERFORMANCE,
        title="Zone Performance Report",
        generated_at=ist(2024, 6, 5, 12),
        window=TimeWindow.for_local_dates(date(2024, 5, 6), date(2024, 6, 5), IST),
        filters={"Report Period": "May 06, 2024 00:00 to Jun 05, 2024 23:59", "zoneIds": "1, 2"},
        summary=[
            SummaryEntry(label="Tickets", value=12, format=F.INTEGER),
            SummaryEntry(label="Avg Resolution Rate", value=41.5, format=F.PERCENT),
        ],
        columns=[
            ColumnSpec(key="zone_name", header="Zone", width=20),
            ColumnSpec(key="resolution_rate", header="Resolution Rate", format=F.PERCENT),
            ColumnSpec(key="last_seen", header="Last Seen", format=F.DATETIME, width=18),
        ],
        rows=rows if rows is not None else [
            {"zone_name": "North", "resolution_rate": 50.0, "last_seen": ist(2024, 6, 3, 10, 5)},
            {"zone_name": "South", "resolution_rate": 0.0, "last_seen": None},
        ],
    )
    fields.update(overrides)
    return ExportDocument(**fields)


class TestCellFormatting:
    """Tests for display text of cell values."""

    @pytest.mark.parametrize(
        "amount,expected",
        [
            (25_000_000, "Rs. 2.50 Cr"),
            (250_000, "Rs. 2.50 L"),
            (12_345, "Rs. 12,345.00"),
            (-150_000, "Rs. -1.50 L"),
            (0, "Rs. 0.00"),
        ],
    )
    def test_currency(self, serializer, amount, expected):
        """Large amounts use crore and lakh suffixes."""
        assert serializer.format_currency(amount) == expected

    def test_duration(self, serializer):
        """Minutes render as hours and minutes."""
        assert serializer.format_duration(125) == "2h 5m"
        assert serializer.format_duration(0) == "0h 0m"
        assert serializer.format_duration(59.6) == "1h 0m"

    def test_placeholders(self, serializer):
        """Missing values and empty lists render as the placeholder."""
        assert serializer.format_value(None, F.CURRENCY) == "N/A"
        assert serializer.format_value([], F.LIST) == "N/A"

    def test_scalar_formats(self, serializer):
        """Each column format renders its own way."""
        assert serializer.format_value(["North", "South"], F.LIST) == "North, South"
        assert serializer.format_value(True, F.BOOLEAN) == "Yes"
        assert serializer.format_value(False, F.TEXT) == "No"
        assert serializer.format_value(66.666, F.PERCENT) == "66.7%"
        assert serializer.format_value(1234, F.INTEGER) == "1,234"
        assert serializer.format_value(3.14159, F.NUMBER) == "3.14"
        assert serializer.format_value(RiskLevel.HIGH, F.TEXT) == "HIGH"

    def test_dates_rendered_in_local_time(self, serializer):
        """UTC instants render on the local clock."""
        utc_instant = datetime(2024, 6, 3, 4, 35, tzinfo=timezone.utc)
        assert serializer.format_value(utc_instant, F.DATETIME) == "Jun 03, 2024 10:05"

    def test_custom_settings(self):
        """Symbol and placeholder come from settings."""
        custom = ExportSerializer(ExportSettings(currency_symbol="INR", placeholder="-"), IST)
        assert custom.format_currency(500) == "INR 500.00"
        assert custom.format_value(None, F.TEXT) == "-"

    def test_spreadsheet_values(self, serializer):
        """Percentages become fractions and datetimes become naive local values."""
        assert serializer.spreadsheet_value(50.0, F.PERCENT) == 0.5
        assert serializer.spreadsheet_value(None, F.INTEGER) == "N/A"
        assert serializer.spreadsheet_value(True, F.BOOLEAN) == "Yes"
        assert serializer.spreadsheet_value(ist(2024, 6, 3, 10), F.DATETIME) == datetime(2024, 6, 3, 10)
        assert serializer.spreadsheet_value(90, F.DURATION) == "1h 30m"

    def test_explicit_formatter_wins(self, serializer):
        """A column formatter replaces the format-driven text in both renderings."""
        column = ColumnSpec(
            key="rate", header="Rate", format=F.PERCENT, formatter=lambda v: f"{v:.0f} of 100"
        )
        assert serializer.cell_text({"rate": 42.4}, column) == "42 of 100"
        assert serializer.spreadsheet_cell({"rate": 42.4}, column) == "42 of 100"
        assert serializer.cell_text({"rate": None}, column) == "N/A"
        assert serializer.spreadsheet_cell({"rate": 50.0}, ColumnSpec(
            key="rate", header="Rate", format=F.PERCENT
        )) == 0.5

    def test_formatter_not_serialized(self):
        """Formatters stay out of the column's JSON form."""
        column = ColumnSpec(key="role", header="Role", formatter=enum_label)
        assert column.formatter("ZONE_USER") == "Zone User"
        assert "formatter" not in column.model_dump(by_alias=True)

    def test_resolve_path(self):
        """Dotted paths walk attributes and mappings; missing links give None."""
        row = {"customer": {"company_name": "Acme"}}
        assert resolve_path(row, "customer.company_name") == "Acme"
        assert resolve_path(row, "customer.address") is None
        assert resolve_path({"customer": None}, "customer.company_name") is None


class TestFilenames:
    """Tests for export filenames and media types."""

    def test_filename_uses_local_generation_date(self, serializer):
        """The date stamp is the local calendar date of generation."""
        doc = make_document(generated_at=datetime(2024, 6, 5, 20, 0, tzinfo=timezone.utc))
        assert serializer.filename(doc, ExportFormat.TABLE) == "Zone-Performance-Report-2024-06-06.pdf"
        assert serializer.filename(doc, ExportFormat.SPREADSHEET).endswith("2024-06-06.xlsx")

    def test_title_fallback(self):
        """Views without a registered title use their name."""
        assert report_title(ReportView.PRODUCT_TYPE_ANALYSIS) == "Product Type Analysis"
        assert report_title(ReportView.INDUSTRIAL_DOWNTIME) == "Machine Report"


class TestRendering:
    """Tests for the table and spreadsheet renderers."""

    def test_pdf_table(self, serializer):
        """Table exports are PDF documents."""
        content = serializer.render(make_document(), ExportFormat.TABLE)
        assert content.startswith(b"%PDF")

    def test_pdf_without_rows(self, serializer):
        """An empty listing still renders a document."""
        content = serializer.render_table(make_document(rows=[]))
        assert content.startswith(b"%PDF")

    def test_pdf_with_long_listing(self, serializer):
        """Listings longer than a page render with wrapped cells."""
        rows = [
            {"zone_name": f"Zone {i} with a rather long descriptive name", "resolution_rate": i,
             "last_seen": ist(2024, 6, 3, 10)}
            for i in range(200)
        ]
        content = serializer.render_table(make_document(rows=rows))
        assert content.startswith(b"%PDF")
        assert len(content) > len(serializer.render_table(make_document()))

    def test_spreadsheet_layout(self, serializer):
        """The Report sheet has a styled header, typed cells, a frozen header and a filter."""
        content = serializer.render(make_document(), ExportFormat.SPREADSHEET)
        workbook = load_workbook(BytesIO(content))

        assert workbook.sheetnames == ["Report", "Summary"]
        sheet = workbook["Report"]
        assert [c.value for c in sheet[1]] == ["Zone", "Resolution Rate", "Last Seen"]
        assert sheet["A1"].font.bold is True
        assert sheet.freeze_panes == "A2"
        assert sheet.auto_filter.ref == "A1:C3"
        assert sheet["B2"].value == 0.5
        assert sheet["B2"].number_format == "0.0%"
        assert sheet["C2"].value == datetime(2024, 6, 3, 10, 5)
        assert sheet["C3"].value == "N/A"
        assert sheet.column_dimensions["A"].width == 20

    def test_spreadsheet_summary_sheet(self, serializer):
        """The Summary sheet carries title, filters and summary metrics."""
        content = serializer.render_spreadsheet(make_document())
        summary = load_workbook(BytesIO(content))["Summary"]

        values = [
            tuple(cell.value for cell in row)
            for row in summary.iter_rows(max_col=2)
        ]
        assert values[0][0] == "Zone Performance Report"
        assert ("zoneIds", "1, 2") in values
        assert ("Metric", "Value") in values
        assert ("Tickets", "12") in values
        assert ("Avg Resolution Rate", "41.5%") in values

    def test_unknown_format_rejected(self, serializer):
        """Only the two export formats render."""
        with pytest.raises(ReportValidationError):
            serializer.render(make_document(), "csv")


class TestExportDocument:
    """Tests for laying out an assembled report."""

    def test_build_from_report(self, serializer):
        """Title, period line, summary and columns come from the view."""
        window = TimeWindow.for_local_dates(date(2024, 6, 1), date(2024, 6, 5), IST)
        report = ZonePerformanceReport(
            view=ReportView.ZONE_PERFORMANCE,
            window=window,
            filters={"zoneIds": "1"},
            summary=ZonePerformanceSummary(total_zones=1, total_tickets=4),
            rows=[ZonePerformanceRow(zone_id=1, zone_name="North", total_tickets=4)],
        )
        doc = build_export_document(report, ist(2024, 6, 5, 12), serializer.format_date)

        assert doc.title == "Zone Performance Report"
        assert list(doc.filters) == ["Report Period", "zoneIds"]
        assert doc.filters["Report Period"] == "Jun 01, 2024 00:00 to Jun 05, 2024 23:59"
        assert doc.summary[0].label == "Zones"
        assert doc.summary[0].value == 1
        assert doc.column("zone_name").header == "Zone"
        assert serializer.cell_text(doc.rows[0], doc.column("total_tickets")) == "4"
