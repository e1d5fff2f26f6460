"""Top-level batch loop."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .aggregator import aggregate_results
from .config import BotConfig
from .credentials import Credentials, resolve_credentials
from .driver import AutomationDriver, open_browser_session
from .errors import SessionLost, StatusWriteError
from .models import InputRow, PatientResult, PatientStatus
from .report import generate_report
from .row_processor import RowProcessor
from .session import SessionState
from .sheet_reader import LoadedInput, load_input
from .status_writer import write_statuses

LOGGER = logging.getLogger(__name__)


@dataclass
class RunSummary:
    results: List[PatientResult] = field(default_factory=list)
    state: SessionState = field(default_factory=SessionState)
    input_path: Optional[Path] = None
    persisted_path: Optional[Path] = None
    report_path: Optional[Path] = None
    halted: bool = False
    rows_total: int = 0
    rows_processed: int = 0

    @property
    def rows_not_reached(self) -> int:
        return self.rows_total - self.rows_processed

    def counts(self) -> Dict[str, int]:
        return dict(Counter(result.status.label for result in self.results))


def _rejected_results(loaded: LoadedInput) -> List[PatientResult]:
    return [
        PatientResult(
            row_number=error.row_number,
            patient_index=0,
            total_patients=0,
            status=PatientStatus.SKIPPED,
            error_message="; ".join(error.problems),
            notes="Row validation failed",
        )
        for error in loaded.rejected
    ]


def persist_results(
    loaded: LoadedInput,
    results: List[PatientResult],
    summary: RunSummary,
) -> None:
    """Write statuses back into the input; fall back to a standalone report."""
    statuses = aggregate_results(results)
    try:
        summary.persisted_path = write_statuses(loaded.path, statuses, loaded.sheet_name)
        return
    except StatusWriteError as exc:
        LOGGER.error("Failed to update original spreadsheet: %s", exc)

    rows: Dict[int, InputRow] = {row.row_number: row for row in loaded.rows}
    try:
        summary.report_path = generate_report(results, rows, output_dir=loaded.path.parent)
    except (OSError, ValueError) as exc:
        LOGGER.error("Failed to generate fallback report: %s", exc)


def _log_summary(summary: RunSummary) -> None:
    LOGGER.info("=" * 60)
    LOGGER.info("Run complete%s", " (halted early)" if summary.halted else "")
    LOGGER.info("Total results: %d", len(summary.results))
    for label, count in sorted(summary.counts().items()):
        LOGGER.info("  %s: %d", label, count)
    if summary.rows_not_reached:
        LOGGER.warning("Rows not reached: %d", summary.rows_not_reached)
    if summary.persisted_path:
        LOGGER.info("Statuses written to: %s", summary.persisted_path)
    if summary.report_path:
        LOGGER.info("Fallback report: %s", summary.report_path)
    LOGGER.info("=" * 60)


def run_batch(
    config: BotConfig,
    *,
    credentials: Optional[Credentials] = None,
    driver_factory: Optional[Callable[[BotConfig], AutomationDriver]] = None,
    loaded: Optional[LoadedInput] = None,
) -> RunSummary:
    """Process every input row in order and persist the outcome.

    Configuration and input problems raise before the browser starts.
    Once rows are being processed, persistence always runs, even after a
    lost session or an unexpected error.
    """
    if loaded is None:
        loaded = load_input(config)
    if not config.dry_run and credentials is None:
        credentials = resolve_credentials(config)

    summary = RunSummary(input_path=loaded.path, rows_total=len(loaded.rows))
    results: List[PatientResult] = _rejected_results(loaded)

    try:
        if not loaded.rows:
            LOGGER.error("No valid rows to process")
        else:
            with open_browser_session(config, driver_factory) as driver:
                processor = RowProcessor.build(config, driver, credentials)
                state = SessionState()
                for position, row in enumerate(loaded.rows, start=1):
                    LOGGER.info("Row %d/%d (sheet row %d)", position, len(loaded.rows), row.row_number)
                    try:
                        row_results, state = processor.process(row, state)
                    except SessionLost as exc:
                        LOGGER.error("Session lost on sheet row %d: %s. Halting.", row.row_number, exc)
                        results.extend(exc.partial_results)
                        summary.halted = True
                        break
                    results.extend(row_results)
                    summary.rows_processed += 1
                    summary.state = state
    except Exception:
        LOGGER.exception("Unexpected error during run")
        summary.halted = True
    finally:
        summary.results = results
        persist_results(loaded, results, summary)
        _log_summary(summary)
    return summary


__all__ = ["RunSummary", "persist_results", "run_batch"]
