"""
Export renderers for assembled reports.

Turns an ExportDocument into either a paged PDF table document (reportlab) or
a formatted XLSX workbook (openpyxl). Renderers only format values already on
the rows; a missing or null cell renders as the configured placeholder.
"""
import logging
from datetime import date, datetime, timezone, tzinfo
from enum import Enum
from io import BytesIO
from typing import Any, List, Optional
from xml.sax.saxutils import escape

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import mm
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from core.config import ExportSettings
from core.exceptions import ReportValidationError
from schemas.reports.common import ExportFormat
from schemas.reports.export import ColumnFormat, ColumnSpec, ExportDocument
from services.export_columns import resolve_path

logger = logging.getLogger(__name__)

CRORE = 10_000_000
LAKH = 100_000

PDF_MEDIA_TYPE = "application/pdf"
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER_COLOR = "1F4E78"
STRIPE_COLOR = "F2F2F2"

# Native spreadsheet number formats; other formats are written as text
SPREADSHEET_FORMATS = {
    ColumnFormat.INTEGER: "#,##0",
    ColumnFormat.NUMBER: "#,##0.00",
    ColumnFormat.PERCENT: "0.0%",
    ColumnFormat.CURRENCY: "#,##0.00",
}


class ExportSerializer:
    """Formats cells and renders export documents."""

    def __init__(self, config: Optional[ExportSettings] = None, tz: tzinfo = timezone.utc):
        self.config = config or ExportSettings()
        self.tz = tz

    # =========================================================================
    # Cell formatting
    # =========================================================================

    def local(self, value: datetime) -> datetime:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(self.tz)

    def format_date(self, value: datetime) -> str:
        return self.local(value).strftime(self.config.date_format)

    def format_currency(self, value: float) -> str:
        """Currency with crore / lakh suffixes for large amounts.

        Example:
            >>> ExportSerializer().format_currency(25_000_000)
            'Rs. 2.50 Cr'
        """
        symbol = self.config.currency_symbol
        amount = float(value)
        magnitude = abs(amount)
        if magnitude >= CRORE:
            return f"{symbol} {amount / CRORE:.2f} Cr"
        if magnitude >= LAKH:
            return f"{symbol} {amount / LAKH:.2f} L"
        return f"{symbol} {amount:,.2f}"

    @staticmethod
    def format_duration(minutes: float) -> str:
        """Minutes as ``Xh Ym``."""
        total = int(round(float(minutes)))
        hours, mins = divmod(abs(total), 60)
        sign = "-" if total < 0 else ""
        return f"{sign}{hours}h {mins}m"

    def format_value(self, value: Any, fmt: ColumnFormat) -> str:
        """Render one value as display text."""
        if value is None:
            return self.config.placeholder
        if isinstance(value, Enum):
            return str(value.value)
        if isinstance(value, (list, tuple, set, frozenset)):
            return ", ".join(str(v) for v in value) if value else self.config.placeholder
        if fmt == ColumnFormat.BOOLEAN or isinstance(value, bool):
            return "Yes" if value else "No"
        if fmt == ColumnFormat.DATETIME or isinstance(value, datetime):
            if isinstance(value, datetime):
                return self.format_date(value)
            if isinstance(value, date):
                return value.strftime("%b %d, %Y")
            return str(value)
        if isinstance(value, (int, float)):
            if fmt == ColumnFormat.CURRENCY:
                return self.format_currency(value)
            if fmt == ColumnFormat.PERCENT:
                return f"{float(value):.1f}%"
            if fmt == ColumnFormat.DURATION:
                return self.format_duration(value)
            if fmt == ColumnFormat.INTEGER:
                return f"{int(round(value)):,}"
            if fmt == ColumnFormat.NUMBER:
                return f"{float(value):,.2f}"
        return str(value)

    def cell_text(self, row: Any, column: ColumnSpec) -> str:
        value = resolve_path(row, column.key)
        if column.formatter is not None and value is not None:
            return column.formatter(value)
        return self.format_value(value, column.format)

    def spreadsheet_cell(self, row: Any, column: ColumnSpec) -> Any:
        """Spreadsheet value of one cell; explicit formatters always write text."""
        value = resolve_path(row, column.key)
        if column.formatter is not None and value is not None:
            return column.formatter(value)
        return self.spreadsheet_value(value, column.format)

    def spreadsheet_value(self, value: Any, fmt: ColumnFormat) -> Any:
        """Typed cell value for the spreadsheet; falls back to display text."""
        if value is None:
            return self.config.placeholder
        if isinstance(value, bool):
            return "Yes" if value else "No"
        if fmt == ColumnFormat.DATETIME and isinstance(value, datetime):
            # openpyxl rejects aware datetimes
            return self.local(value).replace(tzinfo=None)
        if fmt in SPREADSHEET_FORMATS and isinstance(value, (int, float)):
            if fmt == ColumnFormat.PERCENT:
                return float(value) / 100
            return value
        return self.format_value(value, fmt)

    def number_format(self, fmt: ColumnFormat) -> Optional[str]:
        if fmt == ColumnFormat.DATETIME:
            return self.config.spreadsheet_date_format
        if fmt == ColumnFormat.CURRENCY:
            return f'"{self.config.currency_symbol} "#,##0.00'
        return SPREADSHEET_FORMATS.get(fmt)

    # =========================================================================
    # Rendering
    # =========================================================================

    def filename(self, doc: ExportDocument, export_format: ExportFormat) -> str:
        """``Title-With-Dashes-yyyy-mm-dd.ext`` using the local generation date."""
        stem = "-".join(doc.title.split())
        stamp = self.local(doc.generated_at).strftime("%Y-%m-%d")
        ext = "pdf" if export_format == ExportFormat.TABLE else "xlsx"
        return f"{stem}-{stamp}.{ext}"

    @staticmethod
    def media_type(export_format: ExportFormat) -> str:
        return PDF_MEDIA_TYPE if export_format == ExportFormat.TABLE else XLSX_MEDIA_TYPE

    def render(self, doc: ExportDocument, export_format: ExportFormat) -> bytes:
        if export_format == ExportFormat.TABLE:
            return self.render_table(doc)
        if export_format == ExportFormat.SPREADSHEET:
            return self.render_spreadsheet(doc)
        raise ReportValidationError(f"Unsupported export format: {export_format}")

    def render_table(self, doc: ExportDocument) -> bytes:
        """Landscape A4 PDF with a repeating header row and page footer."""
        buffer = BytesIO()
        pdf = SimpleDocTemplate(
            buffer,
            pagesize=landscape(A4),
            leftMargin=12 * mm,
            rightMargin=12 * mm,
            topMargin=12 * mm,
            bottomMargin=15 * mm,
            title=doc.title,
        )
        styles = getSampleStyleSheet()
        cell_style = ParagraphStyle(
            "CellWrap",
            parent=styles["BodyText"],
            fontSize=7,
            leading=8.5,
            wordWrap="LTR",
            splitLongWords=False,
        )

        story: List[Any] = [Paragraph(escape(doc.title), styles["Title"])]
        for label, value in doc.filters.items():
            story.append(Paragraph(f"<b>{escape(label)}:</b> {escape(value)}", styles["Normal"]))
        story.append(Spacer(1, 4 * mm))

        if doc.summary:
            summary_data = [["Metric", "Value"]] + [
                [entry.label, self.format_value(entry.value, entry.format)]
                for entry in doc.summary
            ]
            summary_table = Table(summary_data, hAlign="LEFT", colWidths=[70 * mm, 50 * mm])
            summary_table.setStyle(self._table_style(font_size=8))
            story.extend([summary_table, Spacer(1, 6 * mm)])

        if doc.columns:
            total_width = sum(c.width for c in doc.columns)
            col_widths = [pdf.width * c.width / total_width for c in doc.columns]
            data: List[List[Any]] = [[c.header for c in doc.columns]]
            for row in doc.rows:
                cells = []
                for column in doc.columns:
                    text = self.cell_text(row, column)
                    cells.append(Paragraph(escape(text), cell_style) if len(text) > 18 else text)
                data.append(cells)

            table = Table(data, colWidths=col_widths, hAlign="LEFT", repeatRows=1, splitByRow=1)
            table.setStyle(self._table_style(font_size=7))
            story.append(table)
        if not doc.rows:
            story.append(Paragraph("No records found for the selected filters.", styles["Italic"]))

        generated = self.format_date(doc.generated_at)

        def draw_footer(canvas, document):
            canvas.saveState()
            canvas.setFont("Helvetica", 7)
            canvas.drawString(document.leftMargin, 8 * mm, f"Generated: {generated}")
            canvas.drawRightString(
                document.pagesize[0] - document.rightMargin,
                8 * mm,
                f"Page {canvas.getPageNumber()}",
            )
            canvas.restoreState()

        pdf.build(story, onFirstPage=draw_footer, onLaterPages=draw_footer)
        return buffer.getvalue()

    @staticmethod
    def _table_style(font_size: float) -> TableStyle:
        return TableStyle(
            [
                ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, 0), font_size + 0.5),
                ("FONTNAME", (0, 1), (-1, -1), "Helvetica"),
                ("FONTSIZE", (0, 1), (-1, -1), font_size),
                ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor(f"#{HEADER_COLOR}")),
                ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
                ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
                ("LEFTPADDING", (0, 0), (-1, -1), 4),
                ("RIGHTPADDING", (0, 0), (-1, -1), 4),
                ("TOPPADDING", (0, 0), (-1, -1), 3),
                ("BOTTOMPADDING", (0, 0), (-1, -1), 3),
                (
                    "ROWBACKGROUNDS",
                    (0, 1),
                    (-1, -1),
                    [colors.white, colors.Color(0.95, 0.95, 0.95)],
                ),
            ]
        )

    def render_spreadsheet(self, doc: ExportDocument) -> bytes:
        """Workbook with a "Report" data sheet and a "Summary" sheet."""
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Report"

        thin = Side(style="thin", color="BFBFBF")
        border = Border(left=thin, right=thin, top=thin, bottom=thin)
        header_font = Font(bold=True, color="FFFFFF")
        header_fill = PatternFill(
            start_color=HEADER_COLOR, end_color=HEADER_COLOR, fill_type="solid"
        )
        stripe_fill = PatternFill(
            start_color=STRIPE_COLOR, end_color=STRIPE_COLOR, fill_type="solid"
        )

        sheet.append([c.header for c in doc.columns])
        for cell in sheet[1]:
            cell.font = header_font
            cell.fill = header_fill
            cell.border = border
            cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)

        for row_idx, row in enumerate(doc.rows, start=2):
            for col_idx, column in enumerate(doc.columns, start=1):
                value = self.spreadsheet_cell(row, column)
                cell = sheet.cell(row=row_idx, column=col_idx, value=value)
                cell.border = border
                number_format = self.number_format(column.format)
                if number_format and not isinstance(value, str):
                    cell.number_format = number_format
                if row_idx % 2 == 1:
                    cell.fill = stripe_fill

        for col_idx, column in enumerate(doc.columns, start=1):
            sheet.column_dimensions[get_column_letter(col_idx)].width = column.width

        if doc.columns:
            sheet.freeze_panes = "A2"
            last = get_column_letter(len(doc.columns))
            sheet.auto_filter.ref = f"A1:{last}{len(doc.rows) + 1}"

        summary = workbook.create_sheet("Summary")
        summary.append([doc.title])
        summary["A1"].font = Font(bold=True, size=14)
        summary.append([])
        for label, value in doc.filters.items():
            summary.append([label, value])
        summary.append([])
        summary.append(["Metric", "Value"])
        for cell in summary[summary.max_row]:
            cell.font = header_font
            cell.fill = header_fill
        for entry in doc.summary:
            summary.append([entry.label, self.format_value(entry.value, entry.format)])
        summary.append([])
        summary.append(["Generated", self.format_date(doc.generated_at)])
        summary.column_dimensions["A"].width = 32
        summary.column_dimensions["B"].width = 40

        output = BytesIO()
        workbook.save(output)
        return output.getvalue()
