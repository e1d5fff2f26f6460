"""Row-scoped listing filters with replace (clear, then write) semantics."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from . import locators
from .driver import AutomationDriver, Handle
from .models import InputRow
from .resolver import ElementResolver

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class FilterPlan:
    """Which row-scoped filters a row sets, and with which values."""

    mrn: str
    custom_id: Optional[str] = None
    appointment_date: Optional[str] = None

    @classmethod
    def for_row(cls, row: InputRow) -> "FilterPlan":
        return cls(
            mrn=row.mrn,
            custom_id=row.custom_id.strip() or None,
            appointment_date=row.appointment_date.strip() or None,
        )

    def steps(self) -> List[Tuple[str, str]]:
        planned = []
        if self.custom_id:
            planned.append(("Custom ID", self.custom_id))
        planned.append(("Patient MRN", self.mrn))
        if self.appointment_date:
            planned.append(("Appointment Date", self.appointment_date))
        return planned

    def describe(self) -> str:
        return ", ".join(f"{name}={value}" for name, value in self.steps())


def replace_filter_value(driver: AutomationDriver, handle: Handle, value: str, settle: float = 0.5) -> None:
    """Replace whatever the filter holds with ``value``.

    Some listing filters append to their current text, so the field is
    always emptied before the new value goes in.
    """
    driver.click(handle)
    driver.clear(handle)
    driver.settle(settle)
    driver.fill(handle, value)
    driver.settle(settle)


def set_appointment_date(
    resolver: ElementResolver,
    start: str,
    end: Optional[str] = None,
    settle: float = 0.5,
    timeout: Optional[float] = None,
) -> None:
    """Open the appointment date picker and replace its range."""
    driver = resolver.driver
    trigger = resolver.resolve(locators.APPOINTMENT_DATE_FILTER, timeout, purpose="Appointment Date filter")
    driver.scroll_into_view(trigger)
    driver.click(trigger)
    driver.settle(settle)

    start_input = resolver.resolve(locators.DATE_RANGE_START, timeout, purpose="appointment start date")
    replace_filter_value(driver, start_input, start, settle)

    end_input = resolver.try_resolve(locators.DATE_RANGE_END, timeout, purpose="appointment end date")
    if end_input is not None:
        replace_filter_value(driver, end_input, end or start, settle)
    else:
        LOGGER.debug("No end date input in the picker; start date only")

    apply_button = resolver.resolve(locators.APPLY_BUTTON, timeout, purpose="date filter Apply")
    driver.click(apply_button)
    driver.settle(settle)


__all__ = ["FilterPlan", "replace_filter_value", "set_appointment_date"]
