"""Exception taxonomy for the claims bot."""

from __future__ import annotations

from typing import List, Optional, Sequence


class ClaimsBotError(Exception):
    """Base class for every error raised by the bot."""


class ConfigurationError(ClaimsBotError):
    """Settings or credentials are missing or malformed."""


class ValidationError(ClaimsBotError):
    """An input row failed its required-field checks."""

    def __init__(self, row_number: int, problems: Sequence[str]) -> None:
        self.row_number = row_number
        self.problems = list(problems)
        super().__init__(f"Row {row_number}: {'; '.join(self.problems)}")


class ResolutionFailed(ClaimsBotError):
    """Every candidate strategy for a control failed."""

    def __init__(self, purpose: str, reasons: Sequence[str]) -> None:
        self.purpose = purpose
        self.reasons = list(reasons)
        detail = " | ".join(self.reasons) if self.reasons else "no strategies configured"
        super().__init__(f"Could not resolve {purpose}: {detail}")


class ActionFailed(ClaimsBotError):
    """A driver action failed after its target was resolved."""


class SessionLost(ClaimsBotError):
    """The browser session became unusable; the batch cannot continue."""

    def __init__(self, message: str, partial_results: Optional[List] = None) -> None:
        super().__init__(message)
        self.partial_results = list(partial_results or [])


class AggregationAmbiguous(ClaimsBotError):
    """Several unranked statuses share one row. Logged, never raised."""

    def __init__(self, row_number: Optional[int], statuses: Sequence[str]) -> None:
        self.row_number = row_number
        self.statuses = list(statuses)
        where = f"row {row_number}" if row_number is not None else "row"
        super().__init__(f"Ambiguous statuses for {where}: {', '.join(self.statuses)}")


class StatusWriteError(ClaimsBotError):
    """The workbook could not be updated in place."""


__all__ = [
    "ActionFailed",
    "AggregationAmbiguous",
    "ClaimsBotError",
    "ConfigurationError",
    "ResolutionFailed",
    "SessionLost",
    "StatusWriteError",
    "ValidationError",
]
