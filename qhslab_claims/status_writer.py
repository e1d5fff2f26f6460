"""In-place write-back of row statuses into the input workbook.

After ``write_statuses`` the sheet has exactly one "Status" column and it
is the last one. Rows with an aggregated status get it written; rows
without one get "Not Processed" only when their Status cell is empty.
"""

from __future__ import annotations

import logging
from copy import copy
from pathlib import Path
from typing import Dict, List, Optional

import openpyxl
from openpyxl.utils import get_column_letter
from openpyxl.utils.exceptions import InvalidFileException
from openpyxl.worksheet.worksheet import Worksheet

from .errors import ConfigurationError, StatusWriteError
from .sheet_reader import WORKBOOK_SUFFIXES, find_header_row, select_worksheet, value_to_string

LOGGER = logging.getLogger(__name__)

STATUS_HEADER = "Status"
NOT_PROCESSED = "Not Processed"
DEFAULT_STATUS_WIDTH = 15


def _is_status_header(value) -> bool:
    return value_to_string(value).lower() == STATUS_HEADER.lower()


def _last_header_column(ws: Worksheet, header_row: int) -> int:
    last = 0
    for col in range(1, ws.max_column + 1):
        if value_to_string(ws.cell(row=header_row, column=col).value):
            last = col
    return last


def _column_width(ws: Worksheet, col: int) -> Optional[float]:
    dim = ws.column_dimensions.get(get_column_letter(col))
    return dim.width if dim is not None else None


def _delete_column(ws: Worksheet, col: int) -> None:
    """``delete_cols`` leaves column widths behind; shift them with the cells."""
    max_col = ws.max_column
    widths = {c: _column_width(ws, c) for c in range(col + 1, max_col + 1)}
    ws.delete_cols(col)
    for c in range(col, max_col + 1):
        letter = get_column_letter(c)
        if letter in ws.column_dimensions:
            del ws.column_dimensions[letter]
    for c, width in widths.items():
        if width is not None:
            ws.column_dimensions[get_column_letter(c - 1)].width = width


def ensure_status_column(ws: Worksheet, header_row: int) -> int:
    """Make "Status" the single, last header column and return its index."""
    status_cols = [
        col for col in range(1, ws.max_column + 1)
        if _is_status_header(ws.cell(row=header_row, column=col).value)
    ]
    last_col = _last_header_column(ws, header_row)

    if status_cols and status_cols[-1] == last_col:
        keep = status_cols[-1]
        for col in reversed(status_cols[:-1]):
            _delete_column(ws, col)
            keep -= 1
        if len(status_cols) > 1:
            LOGGER.info("Removed %d duplicate Status column(s)", len(status_cols) - 1)
        return keep

    styles: Dict[int, object] = {}
    width: Optional[float] = None
    header_style = None
    if status_cols:
        source = status_cols[-1]
        LOGGER.info("Status column %s is not last; replacing it with a fresh last column", get_column_letter(source))
        width = _column_width(ws, source)
        header_style = copy(ws.cell(row=header_row, column=source)._style)
        for row in range(header_row + 1, ws.max_row + 1):
            styles[row] = copy(ws.cell(row=row, column=source)._style)
        for col in reversed(status_cols):
            _delete_column(ws, col)
    elif last_col:
        header_style = copy(ws.cell(row=header_row, column=last_col)._style)

    new_col = _last_header_column(ws, header_row) + 1
    header_cell = ws.cell(row=header_row, column=new_col, value=STATUS_HEADER)
    if header_style is not None:
        header_cell._style = header_style
    # Old values are dropped with the column; only the formatting moves
    for row, style in styles.items():
        ws.cell(row=row, column=new_col)._style = style
    ws.column_dimensions[get_column_letter(new_col)].width = width or DEFAULT_STATUS_WIDTH
    return new_col


def _row_is_blank(ws: Worksheet, row: int, status_col: int) -> bool:
    return not any(
        value_to_string(ws.cell(row=row, column=col).value)
        for col in range(1, ws.max_column + 1)
        if col != status_col
    )


def apply_statuses(ws: Worksheet, statuses: Dict[int, str]) -> int:
    """Write ``statuses`` (sheet row -> text) into ``ws``; returns the Status column."""
    header_row = find_header_row(ws) or 1
    status_col = ensure_status_column(ws, header_row)

    written = not_processed = 0
    for row in range(header_row + 1, ws.max_row + 1):
        cell = ws.cell(row=row, column=status_col)
        if row in statuses:
            cell.value = statuses[row]
            written += 1
        elif not value_to_string(cell.value) and not _row_is_blank(ws, row, status_col):
            cell.value = NOT_PROCESSED
            not_processed += 1

    LOGGER.info(
        "Status column %s: %d row(s) updated, %d marked %s",
        get_column_letter(status_col), written, not_processed, NOT_PROCESSED,
    )
    return status_col


def write_statuses(path: Path, statuses: Dict[int, str], sheet_name: Optional[str] = None) -> Path:
    """Update the input workbook in place. Raises ``StatusWriteError`` on any failure."""
    path = Path(path)
    if path.suffix.lower() not in WORKBOOK_SUFFIXES:
        raise StatusWriteError(f"Cannot write statuses into {path.suffix or 'extensionless'} file {path.name}")

    try:
        wb = openpyxl.load_workbook(path, keep_vba=path.suffix.lower() == ".xlsm")
    except (OSError, InvalidFileException, KeyError) as exc:
        raise StatusWriteError(f"Could not open {path}: {exc}") from exc

    try:
        ws = select_worksheet(wb, sheet_name)
        apply_statuses(ws, statuses)
        wb.save(path)
    except PermissionError as exc:
        raise StatusWriteError(f"Could not save {path} (is it open in Excel?): {exc}") from exc
    except (OSError, ConfigurationError) as exc:
        raise StatusWriteError(f"Could not update {path}: {exc}") from exc
    finally:
        wb.close()

    LOGGER.info("Statuses written to %s", path)
    return path


__all__ = [
    "DEFAULT_STATUS_WIDTH",
    "NOT_PROCESSED",
    "STATUS_HEADER",
    "apply_statuses",
    "ensure_status_column",
    "write_statuses",
]
