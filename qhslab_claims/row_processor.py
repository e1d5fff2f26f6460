"""Per-row orchestration: session readiness, row filters, entry fan-out."""

from __future__ import annotations

import logging
import time
from typing import List, Optional, Tuple

from . import locators
from .config import BotConfig
from .credentials import Credentials
from .driver import AutomationDriver
from .errors import ActionFailed, ResolutionFailed, SessionLost
from .filters import FilterPlan, replace_filter_value, set_appointment_date
from .models import InputRow, PatientResult, PatientStatus, row_result
from .patient_processor import PatientProcessor, entry_row_predicate
from .portal import ClaimsPortal
from .resolver import ElementResolver
from .session import SessionState, SessionStateMachine

LOGGER = logging.getLogger(__name__)

DRY_RUN_NOTE = "Dry run mode - no automation executed"
NO_MATCH_MESSAGE = "No matching entries for this MRN"


class RowProcessor:
    """Turns one ``InputRow`` into one or more ``PatientResult`` records.

    Rows never raise except with ``SessionLost``; that exception carries
    whatever results the interrupted row had already produced.
    """

    def __init__(
        self,
        config: BotConfig,
        resolver: Optional[ElementResolver] = None,
        session: Optional[SessionStateMachine] = None,
        patients: Optional[PatientProcessor] = None,
    ) -> None:
        self.config = config
        self.resolver = resolver
        self.driver: Optional[AutomationDriver] = resolver.driver if resolver else None
        self.session = session
        self.patients = patients
        self._custom_id_active = False

    @classmethod
    def build(
        cls,
        config: BotConfig,
        driver: Optional[AutomationDriver],
        credentials: Optional[Credentials] = None,
    ) -> "RowProcessor":
        if driver is None:
            return cls(config)
        resolver = ElementResolver(driver, config.timeouts.element_wait)
        portal = ClaimsPortal(resolver, config, credentials)
        return cls(
            config,
            resolver=resolver,
            session=SessionStateMachine(portal, driver),
            patients=PatientProcessor(resolver, config),
        )

    def process(self, row: InputRow, state: SessionState) -> Tuple[List[PatientResult], SessionState]:
        plan = FilterPlan.for_row(row)
        if self.config.dry_run or self.driver is None:
            LOGGER.info("[DRY RUN] Row %d would filter by %s", row.row_number, plan.describe())
            return [row_result(row, PatientStatus.DRY_RUN_SKIPPED, notes=DRY_RUN_NOTE)], state

        LOGGER.info("Processing row %d (MRN %s)", row.row_number, row.mrn)
        start = time.monotonic()
        results: List[PatientResult] = []
        try:
            state = self.session.ensure_ready(state)
            if not state.ready:
                raise ActionFailed(f"Session not ready: {', '.join(state.pending)} pending")

            skipped_filters = self._apply_filters(plan)
            total = self._count_entries()
            LOGGER.info("Row %d: %d matching entr%s", row.row_number, total, "y" if total == 1 else "ies")

            if total == 0:
                notes = "; ".join(f"{name} filter not applied" for name in skipped_filters)
                results.append(
                    row_result(
                        row,
                        PatientStatus.SKIPPED,
                        error_message=NO_MATCH_MESSAGE,
                        notes=notes,
                        processing_time_ms=int((time.monotonic() - start) * 1000),
                    )
                )
            else:
                # Positions come from the single count above; never re-counted mid-row
                for index in range(total):
                    results.append(self.patients.process(row, index, total))
        except SessionLost as exc:
            exc.partial_results = results + exc.partial_results
            raise
        except Exception as exc:
            LOGGER.error("Row %d failed: %s", row.row_number, exc)
            results.append(
                row_result(
                    row,
                    PatientStatus.FAILED,
                    error_message=str(exc),
                    processing_time_ms=int((time.monotonic() - start) * 1000),
                )
            )
        return results, state

    # ------------------------------------------------------------------
    # Filters
    # ------------------------------------------------------------------
    def _apply_filters(self, plan: FilterPlan) -> List[str]:
        """Apply the row filters; returns the names of optional ones that failed."""
        settle = self.config.settle_delay
        skipped = []

        if plan.custom_id or self._custom_id_active:
            value = plan.custom_id or ""
            try:
                handle = self.resolver.resolve(locators.CUSTOM_ID_FILTER, purpose="Custom ID filter")
                replace_filter_value(self.driver, handle, value, settle)
                self._custom_id_active = bool(value)
                LOGGER.info("Custom ID filter %s", f"set to {value}" if value else "cleared")
            except (ResolutionFailed, ActionFailed) as exc:
                LOGGER.warning("Custom ID filter failed, continuing with MRN: %s", exc)
                skipped.append("Custom ID")

        try:
            handle = self.resolver.resolve(locators.MRN_FILTER, purpose="Patient MRN filter")
            replace_filter_value(self.driver, handle, plan.mrn, settle)
        except (ResolutionFailed, ActionFailed) as exc:
            raise ActionFailed(f"Failed to apply MRN filter: {exc}") from exc
        LOGGER.info("MRN filter set to %s", plan.mrn)

        if plan.appointment_date:
            try:
                set_appointment_date(self.resolver, plan.appointment_date, settle=settle)
                LOGGER.info("Appointment Date filter set to %s", plan.appointment_date)
            except (ResolutionFailed, ActionFailed) as exc:
                LOGGER.warning("Appointment Date filter failed, continuing: %s", exc)
                skipped.append("Appointment Date")

        self.driver.settle(settle * 4)
        return skipped

    def _count_entries(self) -> int:
        if self.resolver.try_resolve(locators.LISTING_TABLE, purpose="listing table") is None:
            LOGGER.warning("Listing table not visible")
        entries = self.driver.query(
            locators.LISTING_ROWS,
            predicate=entry_row_predicate(self.driver, self.config.entity_source),
        )
        return len(entries)


__all__ = ["DRY_RUN_NOTE", "NO_MATCH_MESSAGE", "RowProcessor"]
