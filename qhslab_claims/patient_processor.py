"""Per-entry claim update: open, fill, classify, save.

One call to ``PatientProcessor.process`` handles one matched listing entry
and always returns exactly one ``PatientResult``. Optional steps record a
degraded ``StepResult`` instead of failing the patient; only a missing
Billing Status field, a failed Save or an unexpected error marks the
patient Failed. ``SessionLost`` is the one error that escapes.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Callable, List, Optional, Sequence

from . import locators
from .config import BotConfig
from .driver import AutomationDriver, Handle
from .errors import ActionFailed, ClaimsBotError, ResolutionFailed, SessionLost
from .models import InputRow, PatientResult, PatientStatus, StepOutcome, StepResult, fold_notes
from .resolver import ElementResolver

LOGGER = logging.getLogger(__name__)

BILLED_LABEL = "Billed"
CANCELLED_LABEL = "Appt. Cancelled"

# Letter followed by 2-3 digits, optional decimal part (F33, F33.1, Z00.00)
_CODE_SHAPE = re.compile(r"^[A-Z]\d{2,3}\.?\d*")


# ----------------------------------------------------------------------
# Pure helpers
# ----------------------------------------------------------------------
def is_billable(raw_classification: str, sentinel: str) -> bool:
    return (raw_classification or "").strip().upper() == sentinel.strip().upper()


def billing_label_for(raw_classification: str, sentinel: str) -> str:
    """Sentinel means billed; anything else, empty included, means cancelled."""
    return BILLED_LABEL if is_billable(raw_classification, sentinel) else CANCELLED_LABEL


def diagnosis_search_term(code: str) -> str:
    code = (code or "").strip()
    return code.split(".")[0] or code


def choose_diagnosis_option(option_texts: Sequence[str], code: str) -> Optional[int]:
    """Index of the option to pick for ``code``, or None when there are none.

    Priority: an option starting with the full code, then one starting with
    the part before the decimal point, then the first code-shaped option,
    then simply the first option. Only code-shaped options qualify for the
    first three tiers.
    """
    if not option_texts:
        return None
    wanted = (code or "").strip().upper()
    prefix = diagnosis_search_term(wanted)
    shaped = [(i, text.strip()) for i, text in enumerate(option_texts) if _CODE_SHAPE.match(text.strip())]

    if wanted:
        for index, text in shaped:
            if text.upper().startswith(wanted):
                return index
    if prefix:
        for index, text in shaped:
            if text.upper().startswith(prefix):
                return index
    if shaped:
        return shaped[0][0]
    return 0


def entry_row_predicate(driver: AutomationDriver, entity_source: str) -> Callable[[Handle], bool]:
    """Listing rows that are claim entries: no filter input, entity source text present."""
    needle = entity_source.lower()

    def _is_entry(handle: Handle) -> bool:
        if driver.query(locators.ROW_FILTER_INPUT, within=handle):
            return False
        return needle in driver.text_of(handle).lower()

    return _is_entry


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


# ----------------------------------------------------------------------
# Processor
# ----------------------------------------------------------------------
class PatientProcessor:
    def __init__(self, resolver: ElementResolver, config: BotConfig) -> None:
        self.resolver = resolver
        self.driver = resolver.driver
        self.config = config

    def _settle(self, factor: float = 1.0) -> None:
        self.driver.settle(self.config.settle_delay * factor)

    @property
    def _short(self) -> float:
        return self.config.timeouts.short

    def process(self, row: InputRow, index: int, total: int) -> PatientResult:
        """Update the ``index``-th (0-based) matching entry for ``row``."""
        position = f"{index + 1}/{total}"
        LOGGER.info("Processing patient %s for MRN %s (row %d)", position, row.mrn, row.row_number)
        start = time.monotonic()
        label = billing_label_for(row.raw_billing_classification, self.config.billable_sentinel)
        steps: List[StepResult] = []

        try:
            self._open_record(index)
            steps.append(self._open_edit_form())

            if is_billable(row.raw_billing_classification, self.config.billable_sentinel):
                steps.append(self._fill_service_date(row.dos))
                steps.append(self._fill_diagnosis(row.icd))
            else:
                LOGGER.info(
                    "Billing classification %r is not billable; skipping DOS and ICD",
                    row.raw_billing_classification or "(empty)",
                )

            billing_step = self._set_billing_classification(label)
            steps.append(billing_step)
            self._save()
            steps.append(self._confirm())
        except SessionLost:
            raise
        except Exception as exc:
            LOGGER.error("Patient %s for MRN %s failed: %s", position, row.mrn, exc)
            self._dismiss_form()
            return PatientResult(
                row_number=row.row_number,
                patient_index=index + 1,
                total_patients=total,
                status=PatientStatus.FAILED,
                error_message=str(exc),
                billing_status=label,
                processing_time_ms=_elapsed_ms(start),
                notes=fold_notes(steps),
                mrn=row.mrn,
            )

        if billing_step.outcome is StepOutcome.FAILED:
            status = PatientStatus.SUCCESS
            prefix = f"Patient {position} processed (billing status not set)"
        else:
            status = PatientStatus.BILLED if label == BILLED_LABEL else PatientStatus.APPOINTMENT_CANCELLED
            prefix = f"Patient {position} processed - marked {label}"

        result = PatientResult(
            row_number=row.row_number,
            patient_index=index + 1,
            total_patients=total,
            status=status,
            billing_status=label,
            processing_time_ms=_elapsed_ms(start),
            notes=fold_notes(steps, prefix=prefix),
            mrn=row.mrn,
        )
        LOGGER.info("Patient %s for MRN %s: %s (%d ms)", position, row.mrn, status.label, result.processing_time_ms)
        return result

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def _open_record(self, index: int) -> None:
        entries = self.driver.query(
            locators.LISTING_ROWS,
            predicate=entry_row_predicate(self.driver, self.config.entity_source),
        )
        if index >= len(entries):
            raise ActionFailed(f"Patient index {index + 1} exceeds available entries ({len(entries)})")
        entry = entries[index]
        self.driver.scroll_into_view(entry)
        self._settle()
        link = self.resolver.resolve(
            locators.entry_link(self.config.entity_source),
            purpose=f"{self.config.entity_source} entry link",
            within=entry,
        )
        self.driver.click(link)
        self._settle(2)

    def _open_edit_form(self) -> StepResult:
        try:
            button = self.resolver.resolve(locators.EDIT_FORM_BUTTON, self._short * 3, purpose="edit form button")
            self.driver.click(button)
            self._settle(3)
        except (ResolutionFailed, ActionFailed) as exc:
            LOGGER.warning("Edit form button not usable, continuing: %s", exc)
            return StepResult.degraded("edit form", "form button not found")
        return StepResult.ok("edit form")

    def _fill_service_date(self, dos: str) -> StepResult:
        if not dos:
            LOGGER.info("No Date of Service on the row")
            return StepResult.ok("service date", "no value")
        try:
            field = self.resolver.resolve(locators.DOS_FIELD, self._short * 3, purpose="Date of Service field")
            self.driver.scroll_into_view(field)
            self.driver.click(field)
            self._settle()
            self.driver.clear(field)
            self._settle(0.6)
            self.driver.fill(field, dos)
            self._settle()
            self.driver.press(field, "ENTER")
            self._settle()
        except (ResolutionFailed, ActionFailed) as exc:
            LOGGER.warning("Date of Service entry failed, continuing: %s", exc)
            return StepResult.degraded("service date", str(exc))
        LOGGER.info("Date of Service entered: %s", dos)
        return StepResult.ok("service date", dos)

    def _fill_diagnosis(self, code: str) -> StepResult:
        if not code:
            LOGGER.info("No ICD code on the row")
            return StepResult.ok("diagnosis", "no value")
        try:
            field = self.resolver.resolve(locators.ICD_FIELD, self._short * 3, purpose="ICD field")
            self.driver.scroll_into_view(field)
            self.driver.click(field)
            self._settle(3)

            search = self.resolver.resolve(locators.ICD_SEARCH, self._short * 2, purpose="ICD search input")
            self.driver.click(search)
            self.driver.clear(search)
            self.driver.fill(search, diagnosis_search_term(code))
            self._settle(2)
            self.driver.press(search, "ENTER")
            self._settle(4)

            options = self._visible_options()
            texts = [self.driver.text_of(option) for option in options]
            choice = choose_diagnosis_option(texts, code)
            if choice is None:
                raise ActionFailed("No visible options in the ICD list")
            chosen = options[choice]
            self.driver.scroll_into_view(chosen)
            self.driver.click(chosen)
            self._settle(3)
        except (ResolutionFailed, ActionFailed) as exc:
            LOGGER.warning("ICD entry failed, continuing: %s", exc)
            return StepResult.degraded("diagnosis", str(exc))
        LOGGER.info("ICD %s selected option %r", code, texts[choice])
        return StepResult.ok("diagnosis", texts[choice])

    def _visible_options(self) -> List[Handle]:
        fallback: List[Handle] = []
        for locator in locators.ICD_OPTION_LOCATORS:
            visible = [h for h in self.driver.query(locator) if self.driver.wait_visible(h, 0.5)]
            if not visible:
                continue
            if any(_CODE_SHAPE.match(self.driver.text_of(h)) for h in visible):
                return visible
            if not fallback:
                fallback = visible
        return fallback

    def _set_billing_classification(self, label: str) -> StepResult:
        # A missing field is fatal for the patient; a missing option is not
        field = self.resolver.resolve(locators.BILLING_STATUS_FIELD, self._short * 2, purpose="Billing Status field")
        self.driver.click(field)
        self._settle()

        item = self.resolver.try_resolve(
            locators.billing_menu_item(label),
            self.config.timeouts.element_wait / 2,
            purpose=f"Billing Status option '{label}'",
        )
        if item is not None:
            try:
                self.driver.click(item)
                LOGGER.info("Billing Status set to %s", label)
                return StepResult.ok("billing status", label)
            except ActionFailed as exc:
                LOGGER.warning("Could not click Billing Status option %r: %s", label, exc)

        first = self.resolver.try_resolve(locators.FIRST_MENU_ITEM, self._short * 2, purpose="first Billing Status option")
        if first is not None:
            try:
                text = self.driver.text_of(first)
                self.driver.click(first)
                LOGGER.warning("Billing Status %r unavailable; selected first option %r", label, text)
                return StepResult.degraded("billing status", f"'{label}' unavailable, selected '{text}'")
            except ActionFailed as exc:
                LOGGER.warning("Could not click first Billing Status option: %s", exc)

        LOGGER.warning("Billing Status could not be set")
        return StepResult.failed("billing status", "billing status not set")

    def _save(self) -> None:
        try:
            button = self.resolver.resolve(locators.SAVE_BUTTON, self.config.timeouts.element_wait, purpose="Save button")
            self.driver.click(button)
        except (ResolutionFailed, ActionFailed) as exc:
            raise ActionFailed(f"Save failed: {exc}") from exc
        self._settle(6)

    def _confirm(self) -> StepResult:
        notes = []
        try:
            if self.resolver.try_resolve(locators.SAVE_BUTTON, self._short * 2, purpose="Save button after save"):
                close = self.resolver.try_resolve(locators.CLOSE_BUTTON, self._short, purpose="Close button")
                if close is not None:
                    self.driver.click(close)
                    self._settle(2)
                notes.append("form still open after save")
            self._settle(4)
            if self.resolver.try_resolve(locators.LISTING_TABLE, self.config.timeouts.element_wait, purpose="listing table") is None:
                notes.append("listing table not visible after save")
        except ActionFailed as exc:
            notes.append(str(exc))
        if notes:
            LOGGER.warning("After save: %s", "; ".join(notes))
            return StepResult.degraded("confirm", "; ".join(notes))
        return StepResult.ok("confirm")

    def _dismiss_form(self) -> None:
        try:
            close = self.resolver.try_resolve(locators.CLOSE_BUTTON, self._short, purpose="Close button")
            if close is not None:
                self.driver.click(close)
                self._settle()
        except SessionLost:
            raise
        except ClaimsBotError as exc:
            LOGGER.debug("Could not dismiss form: %s", exc)


__all__ = [
    "BILLED_LABEL",
    "CANCELLED_LABEL",
    "PatientProcessor",
    "billing_label_for",
    "choose_diagnosis_option",
    "diagnosis_search_term",
    "entry_row_predicate",
    "is_billable",
]
