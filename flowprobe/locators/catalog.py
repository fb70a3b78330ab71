# flowprobe/locators/catalog.py
from __future__ import annotations

"""Locator catalog
------------------
Static locator sets per logical UI target, with optional YAML overrides.

YAML shape:

    version: "1"
    targets:
      message_box:
        description: Compose box
        probe_timeout_ms: 10000
        state: visible
        descriptors:
          - {strategy: css, value: '[data-testid="conversation-compose-box-input"]'}
          - '[contenteditable="true"][data-tab="10"]'   # bare string = css

`${ENV_VAR}` references in string values are substituted before validation.
"""

import os
import re
from pathlib import Path
from typing import Dict, Iterator, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from flowprobe.errors import CatalogError
from flowprobe.locators.descriptor import LocatorSet, css, role, text


def _set(name: str, description: str, *descriptors, probe_timeout_ms: Optional[int] = None, state: str = "visible") -> LocatorSet:
    return LocatorSet(
        name=name,
        description=description,
        descriptors=descriptors,
        probe_timeout_ms=probe_timeout_ms,
        state=state,
    )


# ---------- Defaults (WhatsApp Web) ----------

DEFAULT_TARGETS: Dict[str, LocatorSet] = {
    s.name: s
    for s in (
        _set("qr_code", "Login QR code canvas",
             css('canvas[aria-label="Scan me!"]'),
             css('[data-testid="qr-code"]'),
             probe_timeout_ms=3000),
        _set("loading_chats", "Chat list loading banner",
             text("Loading your chats"),
             probe_timeout_ms=3000),
        _set("login_ready", "Any marker that the chat list is usable (raced, not ordered)",
             css('[data-testid="chat-list"]'),
             css('[data-testid="chat-list-search"]'),
             css('div[contenteditable="true"]')),
        _set("search_box", "Chat list search box",
             css('[data-testid="chat-list-search"]'),
             css('div[contenteditable="true"][data-tab="3"]'),
             css('div[contenteditable="true"]'),
             probe_timeout_ms=10000),
        _set("contact_result", "Search result row for the contact",
             css('[data-testid="cell-frame-container"]'),
             css('span[title*="{contact}"]'),
             css('div[role="listitem"]'),
             probe_timeout_ms=10000),
        _set("message_box", "Conversation compose box",
             css('[data-testid="conversation-compose-box-input"]'),
             css('div[contenteditable="true"][data-tab="10"]'),
             css('div[contenteditable="true"]'),
             probe_timeout_ms=10000),
        _set("proceed_button", "Bot 'Proceed' quick-reply button",
             css('div._ahef[role="button"]:has-text("Proceed")'),
             role("button|Proceed"),
             css('div[role="button"]:has-text("Proceed")'),
             probe_timeout_ms=30000),
        _set("name_error_indicators", "Bot rejected the submitted name",
             text("Please enter your FULL NAME ONLY as per your NRIC, without any numbers, symbols or images"),
             text("Please enter a valid name", exact=True),
             text("Invalid name format", exact=True),
             text("Name should only contain letters", exact=True),
             text("Please try again", exact=True),
             css('[aria-label*="error"]'),
             css('[class*="error"]'),
             probe_timeout_ms=2000),
        _set("conversation_continued", "Bot moved past the name step",
             text("Please submit your receipt as a proof of purchase"),
             text("Next step", exact=True),
             text("Please upload", exact=True),
             text("Proceed", exact=True)),
        _set("name_accepted", "Bot accepted the name",
             text("Please submit your receipt as a proof of purchase. The receipt must contain the following information:"),
             text("Next step", exact=True),
             text("Please upload", exact=True),
             text("Proceed", exact=True),
             probe_timeout_ms=3000),
        _set("attach_button", "Attachment (clip) button",
             css('[data-testid="clip"]'),
             css('span[data-icon="clip"]'),
             css('button[aria-label*="Attach"]'),
             css('div[role="button"][title*="Attach"]'),
             probe_timeout_ms=5000),
        _set("photo_option", "Photos & Videos entry of the attach menu",
             css('li[role="menuitem"]:has-text("Photos & Videos")'),
             css('div[role="button"]:has-text("Photos")'),
             css('button:has-text("Photos")'),
             css('input[type="file"][accept*="image"]'),
             probe_timeout_ms=3000),
        _set("file_input", "Hidden file input",
             css('input[type="file"][accept*="image"]'),
             css('input[type="file"]'),
             probe_timeout_ms=5000, state="attached"),
        _set("send_button", "Send button of the media preview",
             css('[data-testid="send"]'),
             css('span[data-icon="send"]'),
             probe_timeout_ms=5000),
        _set("upload_prompt", "Bot asks for an image instead of text",
             text("Please upload an image using WhatsApp (click a camera icon and choose a photo)"),
             probe_timeout_ms=5000),
        _set("submission_success", "Bot confirmed a submission",
             text("Thank you for your submission!"),
             probe_timeout_ms=5000),
        _set("chat_with_agent", "Hand-off button",
             css('div[role="button"]:has-text("Chat with Agent")'),
             role("button|Chat with Agent"),
             probe_timeout_ms=20000),
        _set("agent_ack", "Hand-off acknowledgement",
             text("Our friendly agent will get back to you"),
             probe_timeout_ms=10000),
        _set("message_rows", "Rendered conversation rows",
             css('[role="row"]'),
             state="attached"),
    )
}


# ---------- YAML schema ----------

class _TargetDoc(BaseModel):
    description: str = ""
    probe_timeout_ms: Optional[int] = Field(default=None, ge=1)
    state: str = Field(default="visible")
    descriptors: list = Field(..., min_length=1)

    @field_validator("descriptors", mode="before")
    @classmethod
    def _bare_strings_are_css(cls, v):
        if not isinstance(v, list):
            return v
        return [{"strategy": "css", "value": d} if isinstance(d, str) else d for d in v]


class _CatalogDoc(BaseModel):
    version: str = Field(default="1")
    targets: Dict[str, _TargetDoc] = Field(default_factory=dict)


def _subst_env(obj):
    if isinstance(obj, str):
        def repl(m):
            return os.environ.get(m.group(1), m.group(0))
        return re.sub(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}", repl, obj)
    if isinstance(obj, list):
        return [_subst_env(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _subst_env(v) for k, v in obj.items()}
    return obj


def _format_errors(header: str, ve: ValidationError) -> str:
    lines = [header]
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []))
        lines.append(f"  - {loc}: {e.get('msg', 'invalid value')}")
    return "\n".join(lines)


# ---------- Catalog ----------

class Catalog:
    """Named locator sets; `get` binds `{placeholders}` per call."""

    def __init__(self, targets: Optional[Dict[str, LocatorSet]] = None) -> None:
        self._targets: Dict[str, LocatorSet] = dict(DEFAULT_TARGETS if targets is None else targets)

    def get(self, name: str, **params: str) -> LocatorSet:
        try:
            ls = self._targets[name]
        except KeyError:
            raise CatalogError(f"Unknown locator target: {name!r}") from None
        return ls.bind(**params)

    def override(self, other: Dict[str, LocatorSet]) -> "Catalog":
        merged = dict(self._targets)
        merged.update(other)
        return Catalog(merged)

    def names(self) -> list[str]:
        return sorted(self._targets)

    def __contains__(self, name: object) -> bool:
        return name in self._targets

    def __iter__(self) -> Iterator[LocatorSet]:
        return iter(self._targets[n] for n in self.names())

    def __len__(self) -> int:
        return len(self._targets)


def parse_targets(data: dict, source: str = "<catalog>") -> Dict[str, LocatorSet]:
    if not isinstance(data, dict):
        raise CatalogError(f"Catalog {source} must define a mapping/object at the top level.")
    data = _subst_env(data)
    try:
        doc = _CatalogDoc.model_validate(data)
        return {
            name: LocatorSet(
                name=name,
                description=t.description,
                descriptors=t.descriptors,
                probe_timeout_ms=t.probe_timeout_ms,
                state=t.state,
            )
            for name, t in doc.targets.items()
        }
    except ValidationError as ve:
        raise CatalogError(_format_errors(f"Invalid catalog '{source}':", ve)) from ve


def load_catalog(path: Optional[Path | str] = None) -> Catalog:
    """Defaults, overridden by the targets of the YAML file at `path` (if any)."""
    base = Catalog()
    if path is None:
        return base
    p = Path(path)
    if not p.exists():
        raise CatalogError(f"Catalog file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as ye:
        raise CatalogError(f"YAML parse error in {p}: {ye}") from ye
    return base.override(parse_targets(data, str(p)))


__all__ = ["DEFAULT_TARGETS", "Catalog", "load_catalog", "parse_targets"]
