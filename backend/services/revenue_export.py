"""
Revenue report export.

One row per non-operator tenant with columns:
  Tenant | Ratio | TotalViews | GrossRevenue | PlatformFee | NetRevenue

Formatting:
  - Ratio and PlatformFee as "N%" (PlatformFee is the configured percentage)
  - Monetary values to 4 decimal places
  - Rows in tenant registry order

Two output formats:
  - CSV  (pandas):   "Revenue_Report_{YYYY-MM-DD}.csv"
  - XLSX (openpyxl): "Revenue_Report_{YYYY-MM-DD}.xlsx", bold frozen header,
                     auto-fit columns

This is the only place revenue figures are rounded.
"""

import os
import logging
from datetime import date
from typing import Literal, Optional

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, Alignment
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

import config
from models.schemas import RateConfig, TenantRevenue

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
COLUMNS = ["Tenant", "Ratio", "TotalViews", "GrossRevenue", "PlatformFee", "NetRevenue"]
MONEY_DECIMALS = 4
SHEET_TITLE = "Revenue Report"

MIN_COL_WIDTH = 10
MAX_COL_WIDTH = 50
HEADER_FONT = Font(bold=True)
NUMBER_FORMAT = '#,##0'
MONEY_FORMAT = '$#,##0.0000'

ExportFormat = Literal["csv", "xlsx"]


# ===========================================================================
# Public API
# ===========================================================================

def build_report_frame(revenues: list[TenantRevenue], rate: RateConfig) -> pd.DataFrame:
    """Formatted report rows as a DataFrame (all cells already display-ready)."""
    records = [
        {
            "Tenant": r.display_name,
            "Ratio": format_percent(r.split_ratio),
            "TotalViews": r.total_views,
            "GrossRevenue": format_money(r.gross_revenue),
            "PlatformFee": format_percent(rate.platform_fee_percent),
            "NetRevenue": format_money(r.net_revenue),
        }
        for r in revenues
    ]
    return pd.DataFrame.from_records(records, columns=COLUMNS)


def render_csv(revenues: list[TenantRevenue], rate: RateConfig) -> str:
    return build_report_frame(revenues, rate).to_csv(index=False, lineterminator="\n")


def report_filename(report_date: date, fmt: ExportFormat = "csv") -> str:
    return f"Revenue_Report_{report_date.isoformat()}.{fmt}"


def generate_report(
    revenues: list[TenantRevenue],
    rate: RateConfig,
    fmt: ExportFormat = "csv",
    report_date: Optional[date] = None,
    output_dir: Optional[str] = None,
) -> str:
    """
    Write the revenue report to disk.

    Args:
        revenues:    Per-tenant revenue (from attribution.revenue_by_tenant)
        rate:        Rate config in effect (for the PlatformFee column)
        fmt:         "csv" or "xlsx"
        report_date: Date stamped into the filename (defaults to today)
        output_dir:  Directory to save the file (defaults to config.OUTPUT_DIR)

    Returns:
        Absolute file path of the generated report.
    """
    if output_dir is None:
        output_dir = config.OUTPUT_DIR
    if report_date is None:
        report_date = date.today()

    os.makedirs(output_dir, exist_ok=True)
    filepath = os.path.abspath(os.path.join(output_dir, report_filename(report_date, fmt)))

    if fmt == "csv":
        with open(filepath, "w", encoding="utf-8", newline="") as fh:
            fh.write(render_csv(revenues, rate))
    elif fmt == "xlsx":
        _write_workbook(filepath, revenues, rate)
    else:
        raise ValueError(f"Unsupported export format: {fmt}")

    logger.info(f"Revenue report saved: {filepath} ({len(revenues)} tenants)")
    return filepath


# ===========================================================================
# Value formatting
# ===========================================================================

def format_percent(value: float) -> str:
    """75.0 → "75%", 12.5 → "12.5%", 1000000 → "1000000%". No rounding."""
    if float(value).is_integer():
        return f"{int(value)}%"
    return f"{value!r}%"


def format_money(value: float) -> str:
    return f"{value:.{MONEY_DECIMALS}f}"


# ===========================================================================
# XLSX output
# ===========================================================================

def _write_workbook(filepath: str, revenues: list[TenantRevenue], rate: RateConfig) -> None:
    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE

    ws.append(COLUMNS)
    for r in revenues:
        ws.append([
            r.display_name,
            format_percent(r.split_ratio),
            r.total_views,
            round(r.gross_revenue, MONEY_DECIMALS),
            format_percent(rate.platform_fee_percent),
            round(r.net_revenue, MONEY_DECIMALS),
        ])

    _format_header_row(ws)
    ws.freeze_panes = "A2"
    _apply_column_format(ws, col_idx=3, fmt=NUMBER_FORMAT)
    for col_idx in (4, 6):
        _apply_column_format(ws, col_idx=col_idx, fmt=MONEY_FORMAT)
    _auto_fit_columns(ws)

    wb.save(filepath)


def _format_header_row(ws: Worksheet) -> None:
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.alignment = Alignment(horizontal="center", vertical="center")


def _apply_column_format(ws: Worksheet, col_idx: int, fmt: str, start_row: int = 2) -> None:
    for row in range(start_row, ws.max_row + 1):
        cell = ws.cell(row=row, column=col_idx)
        if cell.value is not None:
            cell.number_format = fmt


def _auto_fit_columns(ws: Worksheet) -> None:
    """Width = longest cell text + 2, clamped to [MIN_COL_WIDTH, MAX_COL_WIDTH]."""
    for col_idx in range(1, ws.max_column + 1):
        max_length = 0
        for row in range(1, ws.max_row + 1):
            value = ws.cell(row=row, column=col_idx).value
            if value is not None:
                max_length = max(max_length, len(str(value)))

        width = min(max(max_length + 2, MIN_COL_WIDTH), MAX_COL_WIDTH)
        ws.column_dimensions[get_column_letter(col_idx)].width = width
