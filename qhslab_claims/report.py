"""Fallback processing report, written only when the in-place update fails."""

from __future__ import annotations

import logging
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import pandas as pd

from .models import InputRow, PatientResult

LOGGER = logging.getLogger(__name__)

REPORT_PREFIX = "claims_processing_report"

REPORT_COLUMNS = [
    "Row Number",
    "MRN",
    "Custom ID",
    "DOS",
    "Appointment Date",
    "CPT Codes",
    "Status",
    "Billing Status",
    "Error Message",
    "Processing Time (ms)",
    "Timestamp",
    "Notes",
]

COLUMN_WIDTHS = [12, 15, 15, 12, 18, 20, 16, 16, 40, 20, 25, 30]


def report_frame(results: Iterable[PatientResult], rows: Optional[Dict[int, InputRow]] = None) -> pd.DataFrame:
    """One line per result, joined back to its input row for context."""
    rows = rows or {}
    records = []
    for result in results:
        row = rows.get(result.row_number)
        records.append(
            {
                "Row Number": result.row_number,
                "MRN": result.mrn or (row.mrn if row else ""),
                "Custom ID": row.custom_id if row else "",
                "DOS": row.dos if row else "",
                "Appointment Date": row.appointment_date if row else "",
                "CPT Codes": ", ".join(row.cpt_codes) if row else "",
                "Status": result.status.label,
                "Billing Status": result.billing_status,
                "Error Message": result.error_message,
                "Processing Time (ms)": result.processing_time_ms,
                "Timestamp": result.timestamp,
                "Notes": result.notes,
            }
        )
    return pd.DataFrame(records, columns=REPORT_COLUMNS)


def summary_frame(results: List[PatientResult]) -> pd.DataFrame:
    counts = Counter(result.status.label for result in results)
    summary = [("Total Results", len(results))]
    summary.extend(sorted(counts.items()))
    summary.append(("Report Generated", datetime.now().isoformat(timespec="seconds")))
    return pd.DataFrame(summary, columns=["Metric", "Value"])


def _report_path(output_dir: Path, suffix: str) -> Path:
    stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    return Path(output_dir) / f"{REPORT_PREFIX}_{stamp}{suffix}"


def generate_report(
    results: Iterable[PatientResult],
    rows: Optional[Dict[int, InputRow]] = None,
    output_dir: Path = Path("."),
    output_path: Optional[Path] = None,
) -> Path:
    results = list(results)
    path = Path(output_path) if output_path else _report_path(output_dir, ".xlsx")
    path.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        report_frame(results, rows).to_excel(writer, sheet_name="Processing Report", index=False)
        summary_frame(results).to_excel(writer, sheet_name="Summary", index=False)

        sheet = writer.sheets["Processing Report"]
        for column_cells, width in zip(sheet.iter_cols(min_row=1, max_row=1), COLUMN_WIDTHS):
            sheet.column_dimensions[column_cells[0].column_letter].width = width
        writer.sheets["Summary"].column_dimensions["A"].width = 25
        writer.sheets["Summary"].column_dimensions["B"].width = 22

    LOGGER.info("Report written to %s", path)
    return path


def generate_csv_report(
    results: Iterable[PatientResult],
    rows: Optional[Dict[int, InputRow]] = None,
    output_dir: Path = Path("."),
    output_path: Optional[Path] = None,
) -> Path:
    path = Path(output_path) if output_path else _report_path(output_dir, ".csv")
    path.parent.mkdir(parents=True, exist_ok=True)
    report_frame(results, rows).to_csv(path, index=False, encoding="utf-8")
    LOGGER.info("CSV report written to %s", path)
    return path


__all__ = ["REPORT_COLUMNS", "generate_csv_report", "generate_report", "report_frame", "summary_frame"]
