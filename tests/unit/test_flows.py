from pathlib import Path

import pytest

from flowprobe.capture.diagnostics import DiagnosticCapture
from flowprobe.core.flows import SCENARIOS, ChatFlow, Confidence, Outcome, Signal, scenario_steps
from flowprobe.core.operator import Operator
from flowprobe.errors import ScenarioConfigError, ValidationFailure
from flowprobe.locators.catalog import Catalog
from flowprobe.locators.descriptor import LocatorSet, css
from flowprobe.utils.config import Settings

COMPOSE = '[data-testid="conversation-compose-box-input"]'
NAME_ERROR = "text:Please enter a valid name"
PROCEED_BUTTON = 'div._ahef[role="button"]:has-text("Proceed")'
UPLOAD_PROMPT = "text:Please upload an image using WhatsApp (click a camera icon and choose a photo)"


class Confirmer:
    def __init__(self, answer=True):
        self.answer = answer
        self.prompts = []

    def __call__(self, prompt, timeout_ms):
        self.prompts.append((prompt, timeout_ms))
        return self.answer


@pytest.fixture
def confirmer():
    return Confirmer()


def build_flow(page, clock, settings, tmp_path, confirmer=None) -> ChatFlow:
    return ChatFlow(
        page,
        settings=settings,
        catalog=Catalog(),
        clock=clock,
        diagnostics=DiagnosticCapture(tmp_path / "run", settings=settings),
        operator=Operator(confirmer or Confirmer(), settings=settings, clock=clock),
    )


@pytest.fixture
def flow(page, clock, settings, tmp_path, confirmer):
    page.add(COMPOSE)
    return build_flow(page, clock, settings, tmp_path, confirmer)


def sent_texts(page):
    return [a[2] for a in page.actions if a[0] == "fill"]


# ---------- validation verdicts ----------

def test_direct_error_indicator_is_a_high_confidence_rejection(flow, page):
    page.add(NAME_ERROR)

    v = flow.judge_name_rejection("123")

    assert (v.outcome, v.signal, v.confidence) == (Outcome.REJECTED, Signal.ERROR_INDICATOR, Confidence.HIGH)


def test_conversation_continuing_is_only_low_confidence_acceptance(flow, page):
    page.add("text:Proceed")

    v = flow.record(flow.judge_name_rejection("Hello123"))

    assert (v.outcome, v.signal, v.confidence) == (Outcome.ACCEPTED, Signal.CONVERSATION_CONTINUED, Confidence.LOW)
    assert v.unexpected_acceptance
    assert flow.verdicts == [v]
    assert any(c.name.startswith("validation_failed_name") for c in flow.diagnostics.captured)


def test_strict_mode_fails_on_indirect_acceptance(page, clock, tmp_path):
    page.add(COMPOSE)
    page.add("text:Proceed")
    strict = Settings(SCREENSHOT_DIR=tmp_path / "screens", STRICT_INDIRECT_VALIDATION=True)
    flow = build_flow(page, clock, strict, tmp_path)

    with pytest.raises(ValidationFailure) as ei:
        flow.record(flow.judge_name_rejection("Hello123"))

    assert ei.value.verdict.signal == Signal.CONVERSATION_CONTINUED


def test_no_signal_is_inconclusive(flow):
    v = flow.record(flow.judge_name_rejection("✅✅✅"))

    assert v.outcome == Outcome.INCONCLUSIVE
    assert v.confidence == Confidence.NONE


def test_name_validation_sends_invalid_then_valid_names(flow, page):
    page.add(NAME_ERROR)
    page.add("text:Next step")

    verdicts = flow.probe_name_validation(["123", "Hello123"])

    assert sent_texts(page) == ["123", "Hello123", "Siti Aminah"]
    assert [v.outcome for v in verdicts] == [Outcome.REJECTED, Outcome.REJECTED, Outcome.ACCEPTED]
    assert verdicts[-1].signal == Signal.SUCCESS_INDICATOR
    assert flow.verdicts == verdicts


def test_upload_prompt_means_text_was_rejected(flow, page):
    page.add(UPLOAD_PROMPT)

    v = flow.probe_upload_rejection(["dsvdsvefew", "23432@@@@@"])

    assert sent_texts(page) == ["dsvdsvefew", "23432@@@@@"]
    assert (v.outcome, v.signal) == (Outcome.REJECTED, Signal.UPLOAD_PROMPT)


def test_submission_success_after_text_upload_fails(flow, page):
    page.add("text:Thank you for your submission!")

    with pytest.raises(ValidationFailure) as ei:
        flow.probe_upload_rejection(["dsvdsvefew"])

    assert ei.value.verdict.confidence == Confidence.HIGH


# ---------- steps ----------

def test_press_proceed_clicks_once_enabled(flow, page):
    page.add(PROCEED_BUTTON)

    res = flow.press_proceed()

    assert res.ready and res.polls == 1
    assert ("click", PROCEED_BUTTON) in page.actions


def test_press_proceed_reports_still_blocked(flow, page, clock):
    page.add(PROCEED_BUTTON, attrs={"aria-disabled": "true"})

    res = flow.press_proceed()

    assert res.still_blocked
    assert res.polls == 3
    assert ("click", PROCEED_BUTTON) not in page.actions
    assert any(c.name == "proceed_button_disabled" for c in flow.diagnostics.captured)


def test_login_with_qr_waits_for_operator(flow, page, confirmer, settings):
    page.add('canvas[aria-label="Scan me!"]')
    page.add('[data-testid="chat-list"]')

    assert flow.ensure_logged_in() is True
    assert confirmer.prompts[0][1] == settings.QR_SCAN_TIMEOUT


def test_login_without_markers_is_reported(flow, confirmer):
    assert flow.ensure_logged_in() is False
    assert confirmer.prompts == []


def test_open_contact_fills_search_and_clicks_result(flow, page):
    page.add('[data-testid="chat-list-search"]')
    page.add('[data-testid="cell-frame-container"]')

    assert flow.open_contact() is True
    assert sent_texts(page) == ["+60 12-345 6789"]
    assert ("click", '[data-testid="cell-frame-container"]') in page.actions


def test_open_contact_uses_bound_title_selector(flow, page):
    page.add('[data-testid="chat-list-search"]')
    page.add('span[title*="Promo Bot"]')

    assert flow.open_contact("Promo Bot") is True
    assert ("click", 'span[title*="Promo Bot"]') in page.actions


def test_missing_scenario_parameter(page, clock, tmp_path):
    flow = build_flow(page, clock, Settings(SCREENSHOT_DIR=tmp_path / "screens"), tmp_path)

    with pytest.raises(ScenarioConfigError, match="CONTACT_NUMBER"):
        flow.open_contact()
    with pytest.raises(ScenarioConfigError, match="TRIGGER_MESSAGE"):
        flow.send_trigger()


def test_upload_through_attach_menu(flow, page, tmp_path: Path):
    receipt = tmp_path / "receipt.jpg"
    receipt.write_bytes(b"\xff\xd8")
    page.add('[data-testid="clip"]')
    page.add('li[role="menuitem"]:has-text("Photos & Videos")')
    page.add('input[type="file"][accept*="image"]', visible=False, attrs={"type": "file"})
    page.add('[data-testid="send"]')

    assert flow.upload_receipt(receipt) is True
    assert ("set_input_files", 'input[type="file"][accept*="image"]', str(receipt)) in page.actions
    assert ("click", '[data-testid="send"]') in page.actions


def test_upload_falls_back_to_manual_selection(flow, clock, settings, tmp_path: Path):
    receipt = tmp_path / "receipt.jpg"
    receipt.write_bytes(b"")

    assert flow.upload_receipt(receipt) is False
    assert sum(clock.sleeps) >= settings.MANUAL_UPLOAD_WAIT
    assert any(c.name == "manual_upload_needed" for c in flow.diagnostics.captured)


def test_agent_hand_off_acknowledged(flow, page, settings):
    page.add('div[role="button"]:has-text("Chat with Agent")')
    page.add("text:Our friendly agent will get back to you")

    assert flow.hand_off_to_agent() is True
    assert sent_texts(page) == [settings.AGENT_MESSAGE]


def test_agent_hand_off_without_acknowledgement_lists_recent_rows(flow, page):
    page.add('[role="row"]', text="Bot: Sorry, I did not get that")

    assert flow.hand_off_to_agent() is False
    assert flow.recent_messages() == ["Bot: Sorry, I did not get that"]


def test_recent_messages_fall_back_to_later_row_descriptors(page, clock, settings, tmp_path):
    rows = LocatorSet(
        name="message_rows",
        descriptors=(css("div.message-row"), css('[data-testid="msg-container"]')),
        state="attached",
    )
    page.add('[data-testid="msg-container"]', text="Bot: Please enter your full name")
    flow = ChatFlow(
        page,
        settings=settings,
        catalog=Catalog().override({"message_rows": rows}),
        clock=clock,
        diagnostics=DiagnosticCapture(tmp_path / "run", settings=settings),
        operator=Operator(Confirmer(), settings=settings, clock=clock),
    )

    assert flow.recent_messages() == ["Bot: Please enter your full name"]


# ---------- registry ----------

def test_every_scenario_step_is_a_flow_method():
    for name, steps in SCENARIOS.items():
        assert steps, name
        for step in steps:
            assert callable(getattr(ChatFlow, step, None)), f"{name}: {step}"


def test_unknown_scenario():
    with pytest.raises(ScenarioConfigError):
        scenario_steps("does-not-exist")
    assert scenario_steps("login") == ["open_app", "ensure_logged_in"]


def test_only_the_receipt_upload_scenario_sends_the_activation_message():
    assert "send_activation" in SCENARIOS["receipt-upload"]
    assert "send_activation" not in SCENARIOS["manual-upload"]
    assert "send_activation" not in SCENARIOS["agent"]
    assert SCENARIOS["agent"] == ["open_app", "ensure_logged_in", "open_contact", "hand_off_to_agent"]
