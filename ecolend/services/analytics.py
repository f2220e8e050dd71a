import io
from datetime import datetime
from enum import Enum
from typing import NamedTuple

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.table import Table, TableStyleInfo

from ecolend.domain.analytics import AuditLog, ESGMetric
from ecolend.error import ValidationFailed
from ecolend.repositories.audit import AuditLogRepository
from ecolend.repositories.loans import LoanRecordSource
from ecolend.services.esg import Granularity, aggregate_esg_metrics

CSV_HEADER = "type,period,unit,value"


class ReportFormat(str, Enum):
    CSV = "csv"
    TXT = "txt"
    XLSX = "xlsx"


class ExportedReport(NamedTuple):
    content: bytes
    media_type: str
    filename: str


def format_value(value: float) -> str:
    # 75.0 -> "75"，66.67 -> "66.67"
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def render_csv(metrics: list[ESGMetric]) -> str:
    rows = [f"{m.type.value},{m.period},{m.unit.value},{format_value(m.value)}" for m in metrics]
    return "\n".join([CSV_HEADER, *rows])


def render_text(metrics: list[ESGMetric]) -> str:
    return "\n".join(f"{m.period} {m.type.value}: {format_value(m.value)} {m.unit.value}" for m in metrics)


def render_xlsx(metrics: list[ESGMetric]) -> bytes:
    header = ["Period", "Metric", "Unit", "Value"]

    wb = Workbook()
    ws = wb.active
    ws.title = "ESG Report"

    header_font = Font(bold=True)
    header_fill = PatternFill("solid", fgColor="DDDDDD")
    header_align = Alignment(horizontal="center", vertical="center")

    ws.append(header)
    ws.row_dimensions[1].height = 26
    for col in range(1, len(header) + 1):
        cell = ws.cell(row=1, column=col)
        cell.font = header_font
        cell.fill = header_fill
        cell.alignment = header_align

    for m in metrics:
        ws.append([m.period, m.type.value, m.unit.value, m.value])

    data_end_row = 1 + len(metrics)

    # ✅ 冻结首行
    ws.freeze_panes = "A2"
    for r in range(2, data_end_row + 1):
        ws.cell(row=r, column=4).number_format = "0" if ws.cell(row=r, column=3).value == "COUNT" else "0.00"

    for k, w in {"A": 12, "B": 20, "C": 14, "D": 12}.items():
        ws.column_dimensions[k].width = w

    # Table 至少要盖住表头+一行，否则 Excel 会报范围非法
    if metrics:
        table = Table(displayName="ESGMetrics", ref=f"A1:D{data_end_row}")
        table.tableStyleInfo = TableStyleInfo(
            name="TableStyleMedium9",
            showFirstColumn=False,
            showLastColumn=False,
            showRowStripes=True,
            showColumnStripes=False,
        )
        ws.add_table(table)

    ws.append([])
    ws.append(["Exported at", datetime.now().strftime("%Y-%m-%d %H:%M:%S")])

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


class AnalyticsService:
    def __init__(self, records: LoanRecordSource, audit: AuditLogRepository):
        self.records = records
        self.audit = audit

    def generate_metrics(
        self, start: datetime, end: datetime, granularity: Granularity | str
    ) -> list[ESGMetric]:
        if start > end:
            raise ValidationFailed("from must not be later than to")
        return aggregate_esg_metrics(self.records.records_between(start, end), granularity)

    def export_report(
        self,
        start: datetime,
        end: datetime,
        granularity: Granularity | str,
        fmt: ReportFormat | str = ReportFormat.CSV,
    ) -> ExportedReport:
        try:
            fmt = ReportFormat(fmt)
        except ValueError:
            raise ValidationFailed(f"Unsupported report format: {fmt} (csv / txt / xlsx)")

        metrics = self.generate_metrics(start, end, granularity)
        if fmt == ReportFormat.CSV:
            return ExportedReport(render_csv(metrics).encode("utf-8"), "text/csv", "esg-report.csv")
        if fmt == ReportFormat.TXT:
            return ExportedReport(render_text(metrics).encode("utf-8"), "text/plain", "esg-report.txt")
        return ExportedReport(
            render_xlsx(metrics),
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            "esg-report.xlsx",
        )

    def list_audit_logs(self, limit: int = 50, offset: int = 0) -> list[AuditLog]:
        return self.audit.list(limit=limit, offset=offset)
