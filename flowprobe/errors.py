# flowprobe/errors.py
from __future__ import annotations

"""Error taxonomy
-----------------
Resolution failures are recoverable (callers may degrade); action failures
always propagate to the scenario-level handler.
"""

from typing import TYPE_CHECKING, Any, Optional, Sequence

if TYPE_CHECKING:
    from flowprobe.locators.actionability import ActionabilityState
    from flowprobe.locators.resolver import ProbeAttempt


class FlowProbeError(RuntimeError):
    pass


class ResolutionError(FlowProbeError):
    pass


class ElementNotFound(ResolutionError):
    """No descriptor of a locator set matched within budget."""

    def __init__(
        self,
        target: str,
        attempts: Sequence["ProbeAttempt"],
        *,
        budget_exhausted: bool = False,
        skipped: int = 0,
    ) -> None:
        self.target = target
        self.attempts = list(attempts)
        self.budget_exhausted = budget_exhausted
        self.skipped = skipped
        lines = [f"[{a.index}] {a.descriptor.describe()} -> {a.outcome}" for a in self.attempts]
        reason = "overall budget exhausted" if budget_exhausted else "all descriptors exhausted"
        msg = f"No element matched for '{target}' ({reason}). Tried:\n  " + "\n  ".join(lines or ["<none>"])
        if skipped:
            msg += f"\n  ({skipped} descriptor(s) not probed)"
        super().__init__(msg)

    @property
    def attempted(self) -> list[str]:
        return [a.descriptor.describe() for a in self.attempts]


class StillBlocked(ResolutionError):
    """Element was found but never became actionable."""

    def __init__(self, target: str, attempts: int, last_state: Optional["ActionabilityState"] = None) -> None:
        self.target = target
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(f"'{target}' still not actionable after {attempts} poll(s); last state: {last_state}")


class ActionFailed(FlowProbeError):
    """A primitive action raised after a successful resolution."""

    def __init__(self, action: str, target: str, detail: Any = None, reason: str = "") -> None:
        self.action = action
        self.target = target
        self.detail = detail
        self.reason = reason
        msg = f"{action} failed on '{target}'"
        if detail is not None:
            msg += f" (detail={detail!r})"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class ValidationFailure(FlowProbeError):
    """The bot accepted input it should have rejected."""

    def __init__(self, verdict) -> None:
        self.verdict = verdict
        super().__init__(
            f"Input {verdict.value!r} was accepted when it should have been rejected "
            f"(signal={verdict.signal.value}, confidence={verdict.confidence.value})"
        )


class ScenarioConfigError(FlowProbeError):
    pass


class CatalogError(FlowProbeError):
    pass


__all__ = [
    "FlowProbeError",
    "ResolutionError",
    "ElementNotFound",
    "StillBlocked",
    "ActionFailed",
    "ValidationFailure",
    "ScenarioConfigError",
    "CatalogError",
]
