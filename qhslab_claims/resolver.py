"""Ordered-fallback element resolution.

A control is described as a tuple of ``Strategy`` objects. ``ElementResolver``
walks them in order; each one locates a handle, waits for it to become
visible, then optionally verifies it (for example that the header above a
filter input really is "Patient MRN" and not "Custom ID"). The first
strategy to pass all three wins.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Sequence

from .driver import AutomationDriver, Handle, Locator
from .errors import ClaimsBotError, ResolutionFailed, SessionLost

LOGGER = logging.getLogger(__name__)

# Returns a failure reason, or None when the handle is acceptable
Verifier = Callable[[AutomationDriver, Handle], Optional[str]]


@dataclass(frozen=True)
class Strategy:
    name: str
    locator: Locator
    verify: Optional[Verifier] = None


def header_matches(pattern: str) -> Verifier:
    """Accept a handle only if the column header above it matches ``pattern``."""
    compiled = re.compile(pattern, re.IGNORECASE)

    def _verify(driver: AutomationDriver, handle: Handle) -> Optional[str]:
        header = driver.column_header_of(handle)
        if compiled.search(header or ""):
            return None
        return f"header {header!r} does not match {pattern!r}"

    return _verify


def is_editable(driver: AutomationDriver, handle: Handle) -> Optional[str]:
    if driver.is_editable(handle):
        return None
    return "element is readonly or disabled"


class ElementResolver:
    def __init__(self, driver: AutomationDriver, default_timeout: float = 10.0) -> None:
        self.driver = driver
        self.default_timeout = default_timeout

    def resolve(
        self,
        candidates: Sequence[Strategy],
        timeout: Optional[float] = None,
        purpose: str = "element",
        within: Optional[Handle] = None,
    ) -> Handle:
        """Return the first visible, verified handle or raise ``ResolutionFailed``.

        Every strategy is attempted at most once. ``SessionLost`` is never
        swallowed; any other driver error just counts as that strategy's
        failure reason.
        """
        wait = self.default_timeout if timeout is None else timeout
        reasons: List[str] = []

        for strategy in candidates:
            reason = self._attempt(strategy, wait, within)
            if isinstance(reason, str):
                LOGGER.debug("%s: strategy '%s' failed (%s)", purpose, strategy.name, reason)
                reasons.append(f"{strategy.name}: {reason}")
                continue
            LOGGER.debug("%s: resolved with strategy '%s'", purpose, strategy.name)
            return reason.handle

        raise ResolutionFailed(purpose, reasons)

    def try_resolve(
        self,
        candidates: Sequence[Strategy],
        timeout: Optional[float] = None,
        purpose: str = "element",
        within: Optional[Handle] = None,
    ) -> Optional[Handle]:
        """Like ``resolve`` but returns ``None`` on exhaustion."""
        try:
            return self.resolve(candidates, timeout, purpose, within)
        except ResolutionFailed as exc:
            LOGGER.debug("%s", exc)
            return None

    def _attempt(self, strategy: Strategy, wait: float, within: Optional[Handle]):
        try:
            handle = self.driver.locate(strategy.locator, within=within, timeout=wait)
            if handle is None:
                return "not found"
            if not self.driver.wait_visible(handle, wait):
                return "not visible"
            if strategy.verify is not None:
                problem = strategy.verify(self.driver, handle)
                if problem:
                    return problem
        except SessionLost:
            raise
        except ClaimsBotError as exc:
            return str(exc)
        return _Resolved(handle)


@dataclass(frozen=True)
class _Resolved:
    handle: Handle


__all__ = ["ElementResolver", "Strategy", "Verifier", "header_matches", "is_editable"]
