# flowprobe/locators/resolver.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from flowprobe.errors import ElementNotFound
from flowprobe.locators.descriptor import LocatorDescriptor, LocatorSet, to_locator
from flowprobe.utils.config import get_settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import Clock, SystemClock

log = get_logger(__name__)


@dataclass(frozen=True)
class ProbeAttempt:
    index: int
    descriptor: LocatorDescriptor
    timeout_ms: int
    elapsed_ms: int
    outcome: str  # "matched" | "timeout" | "error"
    error: Optional[str] = None


@dataclass
class ResolvedElement:
    """Live handle to the element that won resolution. Valid until the page changes."""
    target: str
    descriptor: LocatorDescriptor
    locator: Locator
    index: int
    attempts: List[ProbeAttempt] = field(default_factory=list)

    def describe(self) -> str:
        return f"{self.target} ({self.descriptor.describe()})"


class LocatorResolver:
    """
    Ordered fallback across equivalent descriptors:
      - Probe descriptors strictly in order, never concurrently
      - The first one to reach the set's state within its probe timeout wins
      - Later descriptors are never built or probed after a win
      - An optional overall budget clamps each probe and stops the walk once spent
    """

    def __init__(self, page: Page, *, clock: Optional[Clock] = None, probe_timeout_ms: Optional[int] = None) -> None:
        self.page = page
        self.clock = clock or SystemClock()
        self.probe_timeout_ms = probe_timeout_ms if probe_timeout_ms is not None else get_settings().PROBE_TIMEOUT_MS

    # ---------- Resolution ----------

    def resolve(
        self,
        locator_set: LocatorSet,
        per_descriptor_timeout_ms: Optional[int] = None,
        overall_timeout_ms: Optional[int] = None,
    ) -> ResolvedElement:
        per_probe = self._probe_timeout_for(locator_set, per_descriptor_timeout_ms)
        started = self.clock.now_ms()
        attempts: List[ProbeAttempt] = []

        for idx, desc in enumerate(locator_set.descriptors):
            timeout = per_probe
            if overall_timeout_ms is not None:
                remaining = overall_timeout_ms - (self.clock.now_ms() - started)
                if remaining <= 0:
                    skipped = len(locator_set) - idx
                    log.debug(f"'{locator_set.name}': budget of {overall_timeout_ms} ms spent, {skipped} descriptor(s) skipped")
                    raise ElementNotFound(locator_set.name, attempts, budget_exhausted=True, skipped=skipped)
                timeout = min(per_probe, remaining)

            attempt_start = self.clock.now_ms()
            loc = to_locator(self.page, desc).first
            try:
                loc.wait_for(state=locator_set.state, timeout=timeout)
            except PlaywrightError as e:
                outcome = "timeout" if isinstance(e, PlaywrightTimeoutError) else "error"
                attempts.append(ProbeAttempt(
                    index=idx,
                    descriptor=desc,
                    timeout_ms=timeout,
                    elapsed_ms=self.clock.now_ms() - attempt_start,
                    outcome=outcome,
                    error=e.message.splitlines()[0] if e.message else None,
                ))
                log.debug(f"'{locator_set.name}' [{idx}] {desc.describe()} -> {outcome} after {timeout} ms")
                continue

            attempts.append(ProbeAttempt(idx, desc, timeout, self.clock.now_ms() - attempt_start, "matched"))
            log.debug(f"'{locator_set.name}' matched [{idx}] {desc.describe()}")
            return ResolvedElement(target=locator_set.name, descriptor=desc, locator=loc, index=idx, attempts=attempts)

        # a clamped final probe means the budget, not the descriptor list, ended the walk
        clamped = bool(attempts) and attempts[-1].timeout_ms < per_probe
        raise ElementNotFound(locator_set.name, attempts, budget_exhausted=clamped)

    def try_resolve(
        self,
        locator_set: LocatorSet,
        per_descriptor_timeout_ms: Optional[int] = None,
        overall_timeout_ms: Optional[int] = None,
    ) -> Optional[ResolvedElement]:
        """Recoverable form of `resolve`: logs and returns None instead of raising."""
        try:
            return self.resolve(locator_set, per_descriptor_timeout_ms, overall_timeout_ms)
        except ElementNotFound as e:
            log.warning(f"'{locator_set.name}' not found ({len(e.attempts)} descriptor(s) tried)")
            return None

    # ---------- Race among interchangeable signals ----------

    def wait_for_any(self, locator_set: LocatorSet, timeout_ms: int) -> Optional[ResolvedElement]:
        """
        Wait once for whichever descriptor shows up first.

        Only for mutually exclusive, equivalent signals (e.g. "logged in" markers):
        order does not encode preference here, it only breaks ties when several
        are present at the moment the wait returns.
        """
        locs = [to_locator(self.page, d) for d in locator_set.descriptors]
        combined = locs[0]
        for loc in locs[1:]:
            combined = combined.or_(loc)

        try:
            combined.first.wait_for(state=locator_set.state, timeout=timeout_ms)
        except PlaywrightError as e:
            log.debug(f"'{locator_set.name}': no signal within {timeout_ms} ms ({type(e).__name__})")
            return None

        present: Optional[int] = None
        for idx, loc in enumerate(locs):
            if loc.count() == 0:
                continue
            if locator_set.state == "attached" or loc.first.is_visible():
                return ResolvedElement(
                    target=locator_set.name,
                    descriptor=locator_set.descriptors[idx],
                    locator=loc.first,
                    index=idx,
                )
            if present is None:
                present = idx

        if present is not None:
            return ResolvedElement(
                target=locator_set.name,
                descriptor=locator_set.descriptors[present],
                locator=locs[present].first,
                index=present,
            )
        # matched element detached between the wait and the lookup
        return None

    def count(self, locator_set: LocatorSet) -> int:
        """Number of elements matching any descriptor right now (no waiting)."""
        total = 0
        for d in locator_set.descriptors:
            total += to_locator(self.page, d).count()
        return total

    # ---------- Internals ----------

    def _probe_timeout_for(self, locator_set: LocatorSet, explicit: Optional[int]) -> int:
        if explicit is not None:
            return max(1, explicit)
        if locator_set.probe_timeout_ms is not None:
            return max(1, locator_set.probe_timeout_ms)
        return max(1, self.probe_timeout_ms)

