# flowprobe/locators/descriptor.py
from __future__ import annotations

"""Locator descriptors and sets
-------------------------------
Immutable pydantic models describing how to find one logical UI target, plus
the translation of a descriptor into a Playwright Locator.
"""

import re
from enum import Enum
from typing import Literal, Optional, Tuple

from playwright.sync_api import Locator, Page
from pydantic import BaseModel, ConfigDict, Field, field_validator

from flowprobe.utils.logger import get_logger

log = get_logger(__name__)

_PLACEHOLDER = re.compile(r"\{([a-z_][a-z0-9_]*)\}")


class Strategy(str, Enum):
    css = "css"
    text = "text"
    role = "role"
    xpath = "xpath"
    test_id = "test_id"
    placeholder = "placeholder"
    label = "label"


class LocatorDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str = Field(..., description="Selector string, interpreted per strategy")
    strategy: Strategy = Field(default=Strategy.css)
    exact: bool = Field(default=False, description="Exact match for text/label/placeholder")

    @field_validator("value")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("descriptor.value cannot be empty")
        return v

    def describe(self) -> str:
        return f"{self.strategy.value}:{self.value}"

    def bind(self, **params: str) -> "LocatorDescriptor":
        """Fill `{name}` placeholders; unknown placeholders are left as-is."""
        if not params or "{" not in self.value:
            return self

        def repl(m: re.Match) -> str:
            key = m.group(1)
            return str(params[key]) if key in params else m.group(0)

        return self.model_copy(update={"value": _PLACEHOLDER.sub(repl, self.value)})


class LocatorSet(BaseModel):
    """Ordered, equivalent descriptors for one logical target. First match wins."""

    model_config = ConfigDict(frozen=True)

    name: str
    description: str = ""
    descriptors: Tuple[LocatorDescriptor, ...] = Field(..., min_length=1)
    probe_timeout_ms: Optional[int] = Field(default=None, ge=1)
    state: Literal["attached", "visible"] = Field(default="visible")

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("locator set name cannot be empty")
        return v

    def bind(self, **params: str) -> "LocatorSet":
        if not params:
            return self
        return self.model_copy(update={"descriptors": tuple(d.bind(**params) for d in self.descriptors)})

    def placeholders(self) -> set[str]:
        found: set[str] = set()
        for d in self.descriptors:
            found.update(_PLACEHOLDER.findall(d.value))
        return found

    def __len__(self) -> int:
        return len(self.descriptors)


def _parse_role_value(value: str) -> Tuple[str, Optional[str]]:
    """
    Accept a few simple role notations:

    - "button"                      → role="button"
    - "button|Chat with Agent"      → role="button", name="Chat with Agent"
    - "button name=Proceed"         → same as above (space syntax)

    Returns: (role, accessible_name_or_None)
    """
    v = value.strip()
    if "|" in v:
        role, name = v.split("|", 1)
        return role.strip(), name.strip() or None
    if " name=" in v:
        role, name = v.split(" name=", 1)
        return role.strip(), name.strip() or None
    return v, None


def to_locator(page: Page, desc: LocatorDescriptor) -> Locator:
    """Convert a descriptor into a (lazy) Playwright Locator."""
    strategy = desc.strategy
    value = desc.value

    if strategy == Strategy.css:
        return page.locator(value)

    if strategy == Strategy.text:
        return page.get_by_text(value, exact=desc.exact)

    if strategy == Strategy.role:
        role, name = _parse_role_value(value)
        kwargs = {}
        if name:
            kwargs["name"] = name
            kwargs["exact"] = desc.exact
        return page.get_by_role(role, **kwargs)  # type: ignore[arg-type]

    if strategy == Strategy.xpath:
        return page.locator(f"xpath={value}")

    if strategy == Strategy.test_id:
        return page.get_by_test_id(value)

    if strategy == Strategy.placeholder:
        return page.get_by_placeholder(value, exact=desc.exact)

    if strategy == Strategy.label:
        return page.get_by_label(value, exact=desc.exact)

    log.debug(f"Unknown strategy '{strategy}', falling back to css for value={value!r}")
    return page.locator(value)


def css(value: str) -> LocatorDescriptor:
    return LocatorDescriptor(value=value, strategy=Strategy.css)


def text(value: str, *, exact: bool = False) -> LocatorDescriptor:
    return LocatorDescriptor(value=value, strategy=Strategy.text, exact=exact)


def role(value: str, *, exact: bool = False) -> LocatorDescriptor:
    return LocatorDescriptor(value=value, strategy=Strategy.role, exact=exact)
