"""Reduce the per-patient results of a row to one display status."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import AggregationAmbiguous
from .models import PatientResult, PatientStatus

LOGGER = logging.getLogger(__name__)

PRIORITY = (
    PatientStatus.BILLED,
    PatientStatus.APPOINTMENT_CANCELLED,
    PatientStatus.SUCCESS,
    PatientStatus.FAILED,
)


def aggregate_statuses(
    statuses: Sequence[PatientStatus],
    total: Optional[int] = None,
    row_number: Optional[int] = None,
) -> str:
    """Display text for a row given its patients' statuses.

    ``total`` is the row's patient count and defaults to ``len(statuses)``.
    Composite Failed text counts failed entries only, the other composites
    count every patient::

        [Billed, Failed]  -> "Billed (2 patients)"
        [Failed, Skipped] -> "Failed (1/2 patients)"
    """
    if not statuses:
        return PatientStatus.UNKNOWN.label
    total = len(statuses) if total is None else total
    distinct = list(OrderedDict.fromkeys(statuses))

    for status in PRIORITY:
        if status not in distinct:
            continue
        if len(distinct) == 1:
            return status.label
        if status is PatientStatus.FAILED:
            failed = sum(1 for s in statuses if s is PatientStatus.FAILED)
            return f"{status.label} ({failed}/{total} patients)"
        return f"{status.label} ({total} patients)"

    if len(distinct) == 1:
        return distinct[0].label
    labels = [s.label for s in distinct]
    LOGGER.warning("%s", AggregationAmbiguous(row_number, labels))
    return ", ".join(labels)


def group_by_row(results: Iterable[PatientResult]) -> Dict[int, List[PatientResult]]:
    grouped: Dict[int, List[PatientResult]] = OrderedDict()
    for result in results:
        grouped.setdefault(result.row_number, []).append(result)
    return grouped


def aggregate_results(results: Iterable[PatientResult]) -> Dict[int, str]:
    """Map each referenced row number to its display status."""
    return {
        row_number: aggregate_statuses([r.status for r in group], len(group), row_number)
        for row_number, group in group_by_row(results).items()
    }


__all__ = ["PRIORITY", "aggregate_results", "aggregate_statuses", "group_by_row"]
