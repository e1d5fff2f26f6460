"""Domain records shared by the processors, the aggregator and the writers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional, Tuple


class RunMode(str, Enum):
    NORMAL = "normal"
    DRY_RUN = "dry-run"


class PatientStatus(Enum):
    """Closed set of per-patient outcomes. ``label`` is the sheet text."""

    BILLED = "Billed"
    APPOINTMENT_CANCELLED = "Appt. Cancelled"
    SUCCESS = "Success"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    DRY_RUN_SKIPPED = "Skipped (Dry Run)"
    UNKNOWN = "Unknown"

    @property
    def label(self) -> str:
        return self.value


class StepOutcome(Enum):
    OK = "ok"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass(frozen=True)
class StepResult:
    step: str
    outcome: StepOutcome
    detail: str = ""

    @classmethod
    def ok(cls, step: str, detail: str = "") -> "StepResult":
        return cls(step, StepOutcome.OK, detail)

    @classmethod
    def degraded(cls, step: str, detail: str) -> "StepResult":
        return cls(step, StepOutcome.DEGRADED, detail)

    @classmethod
    def failed(cls, step: str, detail: str) -> "StepResult":
        return cls(step, StepOutcome.FAILED, detail)


@dataclass(frozen=True)
class InputRow:
    """One validated worksheet row. ``row_number`` is the 1-based sheet row."""

    row_number: int
    mrn: str
    custom_id: str = ""
    dos: str = ""
    appointment_date: str = ""
    cpt_codes: Tuple[str, ...] = ()
    icd: str = ""
    raw_billing_classification: str = ""
    extra: Dict[str, str] = field(default_factory=dict, compare=False)


@dataclass(frozen=True)
class PatientResult:
    row_number: int
    patient_index: int
    total_patients: int
    status: PatientStatus
    error_message: str = ""
    billing_status: str = ""
    processing_time_ms: int = 0
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))
    notes: str = ""
    mrn: str = ""

    @property
    def failed(self) -> bool:
        return self.status is PatientStatus.FAILED


def row_result(
    row: InputRow,
    status: PatientStatus,
    *,
    error_message: str = "",
    notes: str = "",
    processing_time_ms: int = 0,
) -> PatientResult:
    """Result recorded for a whole row (skip, dry run, row-level failure)."""
    return PatientResult(
        row_number=row.row_number,
        patient_index=0,
        total_patients=0,
        status=status,
        error_message=error_message,
        processing_time_ms=processing_time_ms,
        notes=notes,
        mrn=row.mrn,
    )


def fold_notes(steps, prefix: Optional[str] = None) -> str:
    """Collapse non-OK step results into a single notes string."""
    parts = [prefix] if prefix else []
    for step in steps:
        if step.outcome is not StepOutcome.OK and step.detail:
            parts.append(f"{step.step}: {step.detail}")
    return "; ".join(parts)


__all__ = [
    "InputRow",
    "PatientResult",
    "PatientStatus",
    "RunMode",
    "StepOutcome",
    "StepResult",
    "fold_notes",
    "row_result",
]
