# flowprobe/locators/actionability.py
from __future__ import annotations

"""Actionability polling
------------------------
Bounded, fixed-interval polling of a resolved element's attribute state until
a predicate holds. The outcome is reported, never retried past the budget.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from playwright.sync_api import Error as PlaywrightError

from flowprobe.errors import StillBlocked
from flowprobe.locators.resolver import ResolvedElement
from flowprobe.utils.config import get_settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import Clock, SystemClock

log = get_logger(__name__)

# Attribute reads are quick; never let one stall a poll for long.
_READ_TIMEOUT_MS = 1000


@dataclass(frozen=True)
class ActionabilityState:
    attached: bool
    visible: bool
    disabled: bool  # native `disabled` attribute present
    aria_disabled: Optional[str]

    @property
    def enabled(self) -> bool:
        return not self.disabled and (self.aria_disabled or "").strip().lower() != "true"


DETACHED = ActionabilityState(attached=False, visible=False, disabled=False, aria_disabled=None)

Predicate = Callable[[ActionabilityState], bool]


def is_enabled(state: ActionabilityState) -> bool:
    """Not disabled and not aria-disabled."""
    return state.attached and state.enabled


def is_actionable(state: ActionabilityState) -> bool:
    """Visible and enabled: safe to click or fill."""
    return state.attached and state.visible and state.enabled


@dataclass(frozen=True)
class ActionabilityResult:
    target: str
    ready: bool
    polls: int
    last_state: ActionabilityState

    @property
    def still_blocked(self) -> bool:
        return not self.ready

    def raise_if_blocked(self) -> "ActionabilityResult":
        if not self.ready:
            raise StillBlocked(self.target, self.polls, self.last_state)
        return self


def snapshot(element: ResolvedElement) -> ActionabilityState:
    """Read the element's current attribute state; a failed read means detached."""
    loc = element.locator
    try:
        disabled = loc.get_attribute("disabled", timeout=_READ_TIMEOUT_MS)
        aria_disabled = loc.get_attribute("aria-disabled", timeout=_READ_TIMEOUT_MS)
        visible = loc.is_visible()
    except PlaywrightError as e:
        log.debug(f"Snapshot of {element.describe()} failed: {type(e).__name__}")
        return DETACHED
    return ActionabilityState(
        attached=True,
        visible=visible,
        disabled=disabled is not None,
        aria_disabled=aria_disabled,
    )


def wait_actionable(
    element: ResolvedElement,
    predicate: Predicate = is_enabled,
    poll_interval_ms: Optional[int] = None,
    max_attempts: Optional[int] = None,
    *,
    clock: Optional[Clock] = None,
    read_state: Callable[[ResolvedElement], ActionabilityState] = snapshot,
) -> ActionabilityResult:
    """
    Poll until `predicate(state)` holds or `max_attempts` polls have failed.

    The attempt counter starts at 0 and grows by one per failed poll; the poll
    that brings it to `max_attempts` is the last one and is not followed by a
    sleep. Polls are spaced by a fixed `poll_interval_ms`.
    """
    s = get_settings()
    interval = s.ACTIONABLE_POLL_INTERVAL_MS if poll_interval_ms is None else max(0, poll_interval_ms)
    budget = s.ACTIONABLE_MAX_ATTEMPTS if max_attempts is None else max_attempts
    if budget < 1:
        raise ValueError("max_attempts must be >= 1")
    clock = clock or SystemClock()

    attempts = 0
    while True:
        state = read_state(element)
        if predicate(state):
            log.debug(f"{element.describe()} actionable after {attempts + 1} poll(s)")
            return ActionabilityResult(element.target, True, attempts + 1, state)
        attempts += 1
        if attempts >= budget:
            log.warning(f"{element.describe()} still blocked after {attempts} poll(s): {state}")
            return ActionabilityResult(element.target, False, attempts, state)
        clock.sleep_ms(interval)
