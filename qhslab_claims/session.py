"""One-time session setup tracked as an explicit, immutable state value."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import FrozenSet, List

from .errors import ClaimsBotError, ResolutionFailed, SessionLost

LOGGER = logging.getLogger(__name__)

# Gate name -> portal method, in the order they must be satisfied
GATES = (
    ("logged_in", "login"),
    ("listing_navigated", "open_listing"),
    ("claims_opened", "open_claims"),
    ("entity_source_filtered", "apply_entity_source_filter"),
    ("assessment_filtered", "apply_assessment_filter"),
)

# A failure on these is tolerated; the run continues without them
OPTIONAL_GATES = frozenset({"claims_opened", "entity_source_filtered", "assessment_filtered"})


@dataclass(frozen=True)
class SessionState:
    logged_in: bool = False
    listing_navigated: bool = False
    claims_opened: bool = False
    entity_source_filtered: bool = False
    assessment_filtered: bool = False
    # Optional gates that were attempted once and failed; never retried
    degraded: FrozenSet[str] = field(default_factory=frozenset)

    def is_settled(self, gate: str) -> bool:
        return getattr(self, gate) or gate in self.degraded

    @property
    def pending(self) -> List[str]:
        return [name for name, _ in GATES if not self.is_settled(name)]

    @property
    def ready(self) -> bool:
        return not self.pending


class SessionStateMachine:
    """Drives any missing session transition exactly once.

    ``ensure_ready`` returns a new ``SessionState``; nothing is mutated in
    place. A failed optional gate is marked degraded and left alone for
    the rest of the run. A failed navigation stops the walk and stays
    pending, so the caller sees ``ready`` is false and the next call
    tries again.
    """

    def __init__(self, portal, driver) -> None:
        self.portal = portal
        self.driver = driver

    def ensure_ready(self, state: SessionState) -> SessionState:
        if not self.driver.is_session_open():
            raise SessionLost("Browser session is no longer open")

        for gate, action_name in GATES:
            if state.is_settled(gate):
                continue
            try:
                getattr(self.portal, action_name)()
            except SessionLost:
                raise
            except ClaimsBotError as exc:
                if gate == "logged_in":
                    raise SessionLost(f"Login failed: {exc}") from exc
                if gate not in OPTIONAL_GATES:
                    LOGGER.error("Session step '%s' failed: %s", gate, exc)
                    return state
                LOGGER.warning("Session gate '%s' failed, continuing without it: %s", gate, exc)
                if isinstance(exc, ResolutionFailed):
                    for reason in exc.reasons:
                        LOGGER.debug("  %s", reason)
                state = replace(state, degraded=state.degraded | {gate})
                continue
            LOGGER.info("Session gate '%s' satisfied", gate)
            state = replace(state, **{gate: True})
        return state


__all__ = ["GATES", "OPTIONAL_GATES", "SessionState", "SessionStateMachine"]
