# flowprobe/core/flows.py
from __future__ import annotations

"""Chat flow steps
------------------
The bot conversation broken into reusable steps. Each step resolves targets
from the catalog, acts through the executor and records validation verdicts.
Scenarios are ordered lists of step names (see SCENARIOS).
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from flowprobe.capture.diagnostics import DiagnosticCapture, slugify
from flowprobe.core.executor import ActionExecutor
from flowprobe.core.operator import Operator
from flowprobe.errors import ScenarioConfigError, ValidationFailure
from flowprobe.locators.actionability import ActionabilityResult, is_enabled, wait_actionable
from flowprobe.locators.catalog import Catalog, load_catalog
from flowprobe.locators.descriptor import to_locator
from flowprobe.locators.resolver import LocatorResolver
from flowprobe.utils.config import get_settings, Settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import Clock, PageClock

log = get_logger(__name__)

# Pause between an invalid input and the check for the bot moving on.
_CONTINUATION_GRACE_MS = 2000


class Outcome(str, Enum):
    REJECTED = "rejected"
    ACCEPTED = "accepted"
    INCONCLUSIVE = "inconclusive"


class Signal(str, Enum):
    ERROR_INDICATOR = "error_indicator"
    UPLOAD_PROMPT = "upload_prompt"
    SUCCESS_INDICATOR = "success_indicator"
    CONVERSATION_CONTINUED = "conversation_continued"
    NONE = "none"


class Confidence(str, Enum):
    HIGH = "high"
    LOW = "low"
    NONE = "none"


@dataclass(frozen=True)
class Verdict:
    """Outcome of one validation probe and the evidence behind it."""
    probe: str           # "name" | "upload"
    value: str
    expected: Outcome
    outcome: Outcome
    signal: Signal
    confidence: Confidence

    @property
    def unexpected_acceptance(self) -> bool:
        return self.expected == Outcome.REJECTED and self.outcome == Outcome.ACCEPTED

    def as_dict(self) -> dict:
        return {
            "probe": self.probe,
            "value": self.value,
            "expected": self.expected.value,
            "outcome": self.outcome.value,
            "signal": self.signal.value,
            "confidence": self.confidence.value,
        }


class ChatFlow:
    """Steps of the bot conversation, bound to one page."""

    def __init__(
        self,
        page: Page,
        *,
        settings: Optional[Settings] = None,
        catalog: Optional[Catalog] = None,
        clock: Optional[Clock] = None,
        resolver: Optional[LocatorResolver] = None,
        diagnostics: Optional[DiagnosticCapture] = None,
        executor: Optional[ActionExecutor] = None,
        operator: Optional[Operator] = None,
    ) -> None:
        self.page = page
        self.settings = settings or get_settings()
        self.catalog = catalog or load_catalog(self.settings.CATALOG_FILE)
        self.clock = clock or PageClock(page)
        self.resolver = resolver or LocatorResolver(page, clock=self.clock, probe_timeout_ms=self.settings.PROBE_TIMEOUT_MS)
        self.diagnostics = diagnostics or DiagnosticCapture(settings=self.settings)
        self.executor = executor or ActionExecutor(
            page, diagnostics=self.diagnostics, settings=self.settings, clock=self.clock
        )
        self.operator = operator or Operator(settings=self.settings, clock=self.clock)
        self.verdicts: List[Verdict] = []

    # ---------- Helpers ----------

    def pause(self, ms: int, reason: Optional[str] = None) -> None:
        if reason:
            log.info(f"Waiting {ms / 1000:.0f}s for {reason}...")
        self.clock.sleep_ms(ms)

    def capture(self, name: str) -> None:
        self.diagnostics.capture(self.page, name)

    def require(self, field: str):
        value = getattr(self.settings, field)
        if value is None or value == "" or value == []:
            raise ScenarioConfigError(f"{field} is not set (environment or .env)")
        return value

    def recent_messages(self, limit: int = 5) -> List[str]:
        """Texts of the last `limit` rows, read from the first descriptor that matches any."""
        rows = self.catalog.get("message_rows")
        for desc in rows.descriptors:
            loc = to_locator(self.page, desc)
            try:
                if loc.count() == 0:
                    continue
                texts = loc.all_inner_texts()
            except PlaywrightError as e:
                log.debug(f"Could not read conversation rows via {desc.describe()}: {type(e).__name__}")
                continue
            cleaned = [t.strip() for t in texts if t and t.strip()]
            return cleaned[-limit:]
        return []

    def _log_recent_messages(self) -> None:
        messages = self.recent_messages()
        if not messages:
            return
        log.info("Recent messages:")
        for i, m in enumerate(messages, 1):
            log.info(f"  {i}. {m}")

    def record(self, verdict: Verdict) -> Verdict:
        """Store a verdict; unexpected acceptance fails the step unless the evidence is indirect."""
        self.verdicts.append(verdict)
        if not verdict.unexpected_acceptance:
            if verdict.outcome == Outcome.INCONCLUSIVE:
                log.warning(f"No clear response for {verdict.probe} input {verdict.value!r}")
            else:
                log.info(f"{verdict.probe} input {verdict.value!r}: {verdict.outcome.value} ({verdict.signal.value})")
            return verdict

        self.capture(f"validation_failed_{verdict.probe}_{slugify(verdict.value)}")
        if verdict.confidence == Confidence.HIGH or self.settings.STRICT_INDIRECT_VALIDATION:
            log.error(f"{verdict.probe} input {verdict.value!r} was accepted ({verdict.signal.value})")
            raise ValidationFailure(verdict)
        log.warning(
            f"{verdict.probe} input {verdict.value!r} looks accepted "
            f"({verdict.signal.value}, {verdict.confidence.value} confidence)"
        )
        return verdict

    # ---------- Steps ----------

    def open_app(self) -> None:
        s = self.settings
        log.info(f"Opening {s.APP_URL}...")
        self.page.goto(s.APP_URL, wait_until="networkidle", timeout=s.NAVIGATION_TIMEOUT)
        self.pause(s.PAGE_SETTLE_MS)
        self.capture("app_loaded")

    def ensure_logged_in(self) -> bool:
        s = self.settings
        qr = self.resolver.try_resolve(self.catalog.get("qr_code"))
        if qr is not None:
            log.info("QR code found - scan it with your phone.")
            self.capture("qr_code")
            self.operator.await_confirmation(
                "Scan the QR code in the browser, then press ENTER here to continue...",
                s.QR_SCAN_TIMEOUT,
            )
        else:
            log.info("No QR code - checking whether the session is already logged in.")

        if self.resolver.try_resolve(self.catalog.get("loading_chats")) is not None:
            log.info("Chats are loading...")
            self.capture("loading_chats")

        ready = self.resolver.wait_for_any(self.catalog.get("login_ready"), s.LOGIN_READY_TIMEOUT)
        if ready is None:
            log.warning(f"No login marker within {s.LOGIN_READY_TIMEOUT} ms")
            self.capture("login_pending")
            return False
        log.info(f"Logged in ({ready.descriptor.describe()})")
        self.capture("login_success")
        return True

    def open_contact(self, contact: Optional[str] = None) -> bool:
        s = self.settings
        contact = contact or self.require("CONTACT_NUMBER")
        search = self.resolver.resolve(self.catalog.get("search_box"))
        log.info(f"Search box: {search.descriptor.describe()}")
        self.executor.fill(search, contact, "contact search")
        self.pause(s.PAGE_SETTLE_MS)

        result = self.resolver.try_resolve(self.catalog.get("contact_result", contact=contact))
        if result is None:
            log.warning(f"Contact {contact!r} not found in search results")
            self.capture("contact_not_found")
            return False
        self.executor.click(result, "contact result")
        self.pause(s.PAGE_SETTLE_MS)
        self.capture("contact_opened")
        return True

    def send_message(self, text: str, description: str = "Message") -> None:
        box = self.resolver.resolve(self.catalog.get("message_box"))
        self.executor.send_text(box, text, description)

    def send_trigger(self) -> None:
        s = self.settings
        self.send_message(self.require("TRIGGER_MESSAGE"), "Trigger message")
        self.pause(s.MESSAGE_DELAY, "the bot to respond")
        self.capture("after_trigger_message")

    def press_proceed(self) -> ActionabilityResult:
        button = self.resolver.resolve(self.catalog.get("proceed_button"))
        self.capture("proceed_button_found")
        result = wait_actionable(
            button,
            is_enabled,
            self.settings.ACTIONABLE_POLL_INTERVAL_MS,
            self.settings.ACTIONABLE_MAX_ATTEMPTS,
            clock=self.clock,
        )
        if result.ready:
            self.executor.click(button, "proceed button")
        else:
            log.warning(f"Proceed button still disabled after {result.polls} poll(s)")
            self.capture("proceed_button_disabled")
        return result

    def send_activation(self) -> None:
        self.send_message(self.settings.ACTIVATION_MESSAGE, "Activation message")
        self.pause(self.settings.ERROR_DELAY)

    def probe_name_validation(
        self,
        invalid_names: Optional[Sequence[str]] = None,
        valid_name: Optional[str] = None,
    ) -> List[Verdict]:
        s = self.settings
        names = list(invalid_names if invalid_names is not None else s.INVALID_NAMES)
        valid = valid_name or self.require("USER_NAME")
        verdicts: List[Verdict] = []

        for idx, name in enumerate(names, start=1):
            self.pause(s.ERROR_DELAY)
            self.send_message(name, f"Error name {idx}")
            self.pause(s.MESSAGE_DELAY)
            verdicts.append(self.record(self.judge_name_rejection(name)))

        self.pause(s.ERROR_DELAY)
        self.send_message(valid, "Correct user name")
        self.pause(s.MESSAGE_DELAY)
        accepted = self.resolver.try_resolve(self.catalog.get("name_accepted"))
        verdicts.append(self.record(Verdict(
            probe="name",
            value=valid,
            expected=Outcome.ACCEPTED,
            outcome=Outcome.ACCEPTED if accepted else Outcome.INCONCLUSIVE,
            signal=Signal.SUCCESS_INDICATOR if accepted else Signal.NONE,
            confidence=Confidence.HIGH if accepted else Confidence.NONE,
        )))
        self.capture("name_validation_complete")
        return verdicts

    def judge_name_rejection(self, name: str) -> Verdict:
        """Direct error text wins; the bot merely moving on is weak evidence of acceptance."""
        if self.resolver.try_resolve(self.catalog.get("name_error_indicators")) is not None:
            return Verdict("name", name, Outcome.REJECTED, Outcome.REJECTED, Signal.ERROR_INDICATOR, Confidence.HIGH)

        self.pause(_CONTINUATION_GRACE_MS)
        if self.resolver.count(self.catalog.get("conversation_continued")) > 0:
            return Verdict(
                "name", name, Outcome.REJECTED, Outcome.ACCEPTED, Signal.CONVERSATION_CONTINUED, Confidence.LOW
            )
        return Verdict("name", name, Outcome.REJECTED, Outcome.INCONCLUSIVE, Signal.NONE, Confidence.NONE)

    def upload_receipt(self, file_path: Optional[Path | str] = None) -> bool:
        s = self.settings
        path = Path(file_path or self.require("UPLOAD_FILE"))
        self.capture("before_upload")

        attach = self.resolver.try_resolve(self.catalog.get("attach_button"))
        if attach is None:
            direct = self.resolver.try_resolve(self.catalog.get("file_input"))
            if direct is None:
                self._manual_file_selection(path, s.MANUAL_UPLOAD_WAIT)
            else:
                self.executor.attach_file(direct, path)
            return self._send_media()

        self.executor.click(attach, "attach button")
        option = self.resolver.try_resolve(self.catalog.get("photo_option"))
        if option is None:
            log.warning("Photos & Videos option not found")
            self._manual_file_selection(path, s.MANUAL_UPLOAD_WAIT)
            return self._send_media()

        if self.executor.accepts_files(option):
            self.executor.attach_file(option, path)
        else:
            self.executor.click(option, "photos option")
            file_input = self.resolver.try_resolve(self.catalog.get("file_input"))
            if file_input is None:
                self._manual_file_selection(path, s.RECEIPT_UPLOAD_WAIT)
            else:
                self.executor.attach_file(file_input, path)
        return self._send_media()

    def _manual_file_selection(self, path: Path, wait_ms: int) -> None:
        log.warning(f"Automatic upload not possible - select {path} in the browser by hand")
        self.capture("manual_upload_needed")
        self.operator.manual_wait(wait_ms, "manual file selection")

    def _send_media(self) -> bool:
        send = self.resolver.try_resolve(self.catalog.get("send_button"))
        if send is None:
            log.warning("Send button not found - the receipt may not have been sent")
            self.capture("send_button_missing")
            return False
        self.executor.click(send, "send button")
        log.info("Receipt sent")
        self.pause(self.settings.MESSAGE_DELAY, "the bot to process the receipt")
        self.capture("after_receipt_upload")
        return True

    def probe_upload_rejection(self, messages: Optional[Sequence[str]] = None) -> Verdict:
        """Send text where an image is expected, then read the bot's direct answer."""
        s = self.settings
        texts = list(messages if messages is not None else s.INVALID_UPLOAD_MESSAGES)
        for idx, text in enumerate(texts, start=1):
            self.pause(s.MESSAGE_DELAY)
            self.send_message(text, f"Error message {idx} for receipt upload")
            self.pause(_CONTINUATION_GRACE_MS)

        self.pause(s.MESSAGE_DELAY)
        value = " | ".join(texts)
        if self.resolver.try_resolve(self.catalog.get("upload_prompt")) is not None:
            verdict = Verdict("upload", value, Outcome.REJECTED, Outcome.REJECTED, Signal.UPLOAD_PROMPT, Confidence.HIGH)
        elif self.resolver.try_resolve(self.catalog.get("submission_success")) is not None:
            verdict = Verdict(
                "upload", value, Outcome.REJECTED, Outcome.ACCEPTED, Signal.SUCCESS_INDICATOR, Confidence.HIGH
            )
        else:
            self._log_recent_messages()
            verdict = Verdict("upload", value, Outcome.REJECTED, Outcome.INCONCLUSIVE, Signal.NONE, Confidence.NONE)
        self.capture("upload_validation_complete")
        return self.record(verdict)

    def manual_upload(self) -> None:
        s = self.settings
        log.info("Manual receipt upload:")
        log.info("  1. Click the attachment (paperclip) icon")
        log.info("  2. Choose Photos & Videos")
        log.info("  3. Pick the receipt image and press Send")
        if s.UPLOAD_FILE:
            log.info(f"  Suggested file: {s.UPLOAD_FILE}")
        self.capture("ready_for_manual_upload")
        self.operator.manual_wait(s.MANUAL_UPLOAD_WAIT, "manual receipt upload")
        self.capture("after_manual_upload")

    def hand_off_to_agent(self, message: Optional[str] = None) -> bool:
        s = self.settings
        self.operator.manual_wait(s.RECEIPT_UPLOAD_WAIT, "additional receipt uploads")

        agent = self.resolver.try_resolve(self.catalog.get("chat_with_agent"))
        if agent is None:
            log.warning("'Chat with Agent' button not found")
            self.capture("no_chat_agent_button")
        else:
            self.executor.click(agent, "chat with agent")
            self.pause(s.ERROR_DELAY, "the agent response")

        self.send_message(message or s.AGENT_MESSAGE, "Agent enquiry")
        self.pause(s.MESSAGE_DELAY)

        if self.resolver.try_resolve(self.catalog.get("agent_ack")) is not None:
            log.info("Agent hand-off acknowledged")
            self.capture("system_response_received")
            return True
        log.warning("No acknowledgement from the agent hand-off")
        self.capture("no_system_response")
        self._log_recent_messages()
        return False


_LOGIN = ["open_app", "ensure_logged_in"]
_CONTACT = _LOGIN + ["open_contact"]
_TRIGGER = _CONTACT + ["send_trigger", "press_proceed"]

SCENARIOS: Dict[str, List[str]] = {
    "login": _LOGIN,
    "contact-search": _CONTACT,
    "trigger": _TRIGGER,
    "name-validation": _TRIGGER + ["probe_name_validation"],
    "receipt-upload": _CONTACT + ["send_activation", "upload_receipt"],
    "manual-upload": _CONTACT + ["probe_upload_rejection", "manual_upload"],
    "agent": _CONTACT + ["hand_off_to_agent"],
    "full": _TRIGGER + ["probe_name_validation", "upload_receipt", "hand_off_to_agent"],
}


def scenario_steps(name: str) -> List[str]:
    try:
        return list(SCENARIOS[name])
    except KeyError:
        raise ScenarioConfigError(
            f"Unknown scenario {name!r}; choose from: {', '.join(sorted(SCENARIOS))}"
        ) from None


__all__ = [
    "Outcome",
    "Signal",
    "Confidence",
    "Verdict",
    "ChatFlow",
    "SCENARIOS",
    "scenario_steps",
]
