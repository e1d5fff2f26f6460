"""Spreadsheet input: file discovery, header aliasing and row validation."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

import openpyxl
import pandas as pd
from openpyxl.worksheet.worksheet import Worksheet

from .config import BotConfig
from .errors import ConfigurationError, ValidationError
from .models import InputRow

LOGGER = logging.getLogger(__name__)

WORKBOOK_SUFFIXES = (".xlsx", ".xlsm")
SPREADSHEET_SUFFIXES = WORKBOOK_SUFFIXES + (".csv",)
DEFAULT_SHEET = "Input"
STATUS_HEADER = "status"

# Normalised header -> InputRow field
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "mrn": ("mrn", "patientmrn"),
    "custom_id": ("customid",),
    "dos": ("dos", "dateofservice"),
    "appointment_date": ("appointmentdate", "apptdate", "origapptdate", "originalappointmentdate"),
    "cpt": ("cpt", "cptcode", "cptcodes", "cpts"),
    "icd": ("icd", "icdcode", "icdcodes"),
    "raw_billing_classification": ("billingstatus", "qhsbillingstatus", "billingclassification"),
}

_EXCEL_EPOCH = datetime(1899, 12, 30)
_CPT_SPLIT = re.compile(r"[,\s]+")


# ----------------------------------------------------------------------
# Value helpers
# ----------------------------------------------------------------------
def normalize_column_key(key: Any) -> str:
    key = str(key or "").strip().lower()
    return "".join(ch for ch in key if ch.isalnum())


def value_to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.strftime("%m/%d/%Y")
    if isinstance(value, float) and value.is_integer():
        # MRNs typed as numbers come back as 12345.0
        return str(int(value))
    return str(value).strip()


def parse_date(value: Any) -> Optional[date]:
    """Best-effort date parse; None when the value is not a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _from_serial(float(value))

    text = str(value).strip()
    if not text:
        return None
    for fmt in ("%m/%d/%Y", "%Y-%m-%d"):
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    if text.isdigit():
        return _from_serial(float(text))

    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        return None
    return parsed.date()


def _from_serial(serial: float) -> Optional[date]:
    if not 0 < serial < 1000000:
        return None
    try:
        return (_EXCEL_EPOCH + timedelta(days=serial)).date()
    except OverflowError:
        return None


def format_date(value: Optional[date]) -> str:
    return value.strftime("%m/%d/%Y") if value else ""


def parse_cpt_codes(value: Any) -> Tuple[str, ...]:
    text = value_to_string(value)
    return tuple(code for code in _CPT_SPLIT.split(text) if code)


def _extract(normalized: Dict[str, Any], field_name: str) -> Any:
    for key in FIELD_ALIASES[field_name]:
        value = normalized.get(key)
        if value_to_string(value):
            return value
    return None


def build_row(row_number: int, record: Dict[str, Any]) -> InputRow:
    """Validate one raw record (header -> cell value) into an ``InputRow``."""
    normalized = {normalize_column_key(k): v for k, v in record.items()}
    problems: List[str] = []

    mrn = value_to_string(_extract(normalized, "mrn"))
    if not mrn:
        problems.append("MRN is required")

    dates: Dict[str, str] = {}
    for field_name, label in (("dos", "DOS"), ("appointment_date", "Appointment Date")):
        raw = _extract(normalized, field_name)
        if raw is None:
            dates[field_name] = ""
            continue
        parsed = parse_date(raw)
        if parsed is None:
            problems.append(f'{label} "{value_to_string(raw)}" is not a valid date')
        dates[field_name] = format_date(parsed)

    if problems:
        raise ValidationError(row_number, problems)

    known = {alias for aliases in FIELD_ALIASES.values() for alias in aliases} | {STATUS_HEADER}
    extra = {
        str(k): value_to_string(v)
        for k, v in record.items()
        if normalize_column_key(k) not in known and value_to_string(v)
    }
    return InputRow(
        row_number=row_number,
        mrn=mrn,
        custom_id=value_to_string(_extract(normalized, "custom_id")),
        dos=dates["dos"],
        appointment_date=dates["appointment_date"],
        cpt_codes=parse_cpt_codes(_extract(normalized, "cpt")),
        icd=value_to_string(_extract(normalized, "icd")),
        raw_billing_classification=value_to_string(_extract(normalized, "raw_billing_classification")),
        extra=extra,
    )


# ----------------------------------------------------------------------
# File and sheet discovery
# ----------------------------------------------------------------------
def find_input_file(directory: Path, preferred_name: Optional[str] = None) -> Path:
    """Newest non-report spreadsheet in ``directory``; ``preferred_name`` wins if it matches."""
    directory = Path(directory)
    if not directory.is_dir():
        raise ConfigurationError(f"Input directory not found: {directory}")

    candidates = [
        p for p in directory.iterdir()
        if p.is_file() and p.suffix.lower() in SPREADSHEET_SUFFIXES and not p.name.startswith("~$")
    ]
    data_files = [p for p in candidates if "report" not in p.name.lower()]
    files = data_files or candidates
    if not files:
        raise ConfigurationError(f"No spreadsheet files found in {directory}")

    if preferred_name:
        wanted = preferred_name.lower()
        for path in files:
            if path.name.lower() == wanted:
                return path
        for path in files:
            if wanted in path.name.lower():
                return path
        LOGGER.warning("Preferred file %r not found in %s; using newest spreadsheet", preferred_name, directory)

    return max(files, key=lambda p: p.stat().st_mtime)


def resolve_input_path(config: BotConfig) -> Path:
    if config.excel_path:
        path = Path(config.excel_path)
        if not path.is_absolute() and not path.exists():
            path = Path(config.excel_dir) / path
        if not path.exists():
            raise ConfigurationError(f"Excel file not found: {path}")
        return path
    return find_input_file(Path(config.excel_dir), config.excel_file_name)


def select_worksheet(workbook, sheet_name: Optional[str] = None) -> Worksheet:
    if sheet_name:
        if sheet_name not in workbook.sheetnames:
            raise ConfigurationError(
                f'Sheet "{sheet_name}" not found. Available sheets: {", ".join(workbook.sheetnames)}'
            )
        return workbook[sheet_name]
    if DEFAULT_SHEET in workbook.sheetnames:
        return workbook[DEFAULT_SHEET]
    if not workbook.sheetnames:
        raise ConfigurationError("No sheets found in workbook")
    return workbook[workbook.sheetnames[0]]


def find_header_row(ws: Worksheet) -> Optional[int]:
    """First row holding any non-empty cell, or None for an empty sheet."""
    for row in ws.iter_rows(min_row=1, max_row=ws.max_row):
        if any(value_to_string(cell.value) for cell in row):
            return row[0].row
    return None


# ----------------------------------------------------------------------
# Loading
# ----------------------------------------------------------------------
@dataclass
class LoadedInput:
    path: Path
    sheet_name: str
    rows: List[InputRow] = field(default_factory=list)
    rejected: List[ValidationError] = field(default_factory=list)


def _iter_workbook_records(
    path: Path, sheet_name: Optional[str], skip_hidden_rows: bool
) -> Tuple[str, Iterator[Tuple[int, Dict[str, Any]]]]:
    wb = openpyxl.load_workbook(path, data_only=True)
    ws = select_worksheet(wb, sheet_name)
    header_row = find_header_row(ws)

    def _records() -> Iterator[Tuple[int, Dict[str, Any]]]:
        try:
            if header_row is None:
                return
            headers = [value_to_string(c.value) for c in ws[header_row]]
            hidden = 0
            for row_num in range(header_row + 1, ws.max_row + 1):
                row_dim = ws.row_dimensions.get(row_num)
                if skip_hidden_rows and row_dim is not None and row_dim.hidden:
                    hidden += 1
                    continue
                values = [ws.cell(row=row_num, column=i + 1).value for i in range(len(headers))]
                if not any(value_to_string(v) for v in values):
                    continue
                yield row_num, {h: v for h, v in zip(headers, values) if h}
            if hidden:
                LOGGER.info("Skipped %d hidden/filtered row(s)", hidden)
        finally:
            wb.close()

    return ws.title, _records()


def _iter_csv_records(path: Path) -> Iterator[Tuple[int, Dict[str, Any]]]:
    df = pd.read_csv(path, dtype=str, keep_default_na=False)
    for index, record in enumerate(df.to_dict(orient="records")):
        if not any(value_to_string(v) for v in record.values()):
            continue
        # Header occupies line 1
        yield index + 2, record


def load_input(config: BotConfig, path: Optional[Path] = None) -> LoadedInput:
    """Read and validate every data row of the input spreadsheet."""
    path = Path(path) if path is not None else resolve_input_path(config)
    LOGGER.info("Reading input file: %s", path)

    if path.suffix.lower() == ".csv":
        sheet_name, records = path.stem, _iter_csv_records(path)
    elif path.suffix.lower() in WORKBOOK_SUFFIXES:
        sheet_name, records = _iter_workbook_records(path, config.sheet_name, config.skip_hidden_rows)
    else:
        raise ConfigurationError(f"Unsupported input file type: {path.suffix}")

    loaded = LoadedInput(path=path, sheet_name=sheet_name)
    for row_number, record in records:
        try:
            loaded.rows.append(build_row(row_number, record))
        except ValidationError as exc:
            LOGGER.warning("Skipping invalid row: %s", exc)
            loaded.rejected.append(exc)

    LOGGER.info(
        "Loaded %d valid row(s) from sheet '%s' (%d rejected)",
        len(loaded.rows), sheet_name, len(loaded.rejected),
    )
    return loaded


__all__ = [
    "FIELD_ALIASES",
    "LoadedInput",
    "build_row",
    "find_header_row",
    "find_input_file",
    "format_date",
    "load_input",
    "normalize_column_key",
    "parse_cpt_codes",
    "parse_date",
    "resolve_input_path",
    "select_worksheet",
    "value_to_string",
]
