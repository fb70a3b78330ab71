from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from flowprobe.utils.config import Settings, get_settings
from flowprobe.utils.timing import Clock


class FakeClock(Clock):
    """Virtual time: sleeping only moves the counter forward."""

    def __init__(self, start: int = 0):
        self.t = start
        self.sleeps: List[int] = []

    def now_ms(self) -> int:
        return self.t

    def sleep_ms(self, ms: int) -> None:
        self.sleeps.append(ms)
        self.t += max(0, ms)


@dataclass
class FakeElement:
    visible: bool = True
    attrs: Dict[str, Optional[str]] = field(default_factory=dict)
    appear_at: int = 0
    fail_on: set = field(default_factory=set)    # action names that raise PlaywrightError
    probe_error: bool = False                     # wait_for raises a non-timeout error
    text: str = ""


class FakeKeyboard:
    def __init__(self, page: "FakePage"):
        self.page = page

    def press(self, key: str) -> None:
        self.page.actions.append(("press", key))


class FakeLocator:
    def __init__(self, page: "FakePage", keys: List[str]):
        self.page = page
        self.keys = keys

    @property
    def key(self) -> str:
        return " || ".join(self.keys)

    @property
    def first(self) -> "FakeLocator":
        return self

    def or_(self, other: "FakeLocator") -> "FakeLocator":
        return FakeLocator(self.page, self.keys + other.keys)

    def _present(self) -> List[FakeElement]:
        return [
            el for el in (self.page.elements.get(k) for k in self.keys)
            if el is not None and el.appear_at <= self.page.clock.t
        ]

    def _element(self) -> FakeElement:
        found = self._present()
        if not found:
            raise PlaywrightTimeoutError(f"Timeout exceeded waiting for {self.key}")
        return found[0]

    def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        clock = self.page.clock
        self.page.probes.append((self.key, timeout))
        candidates = []
        for k in self.keys:
            el = self.page.elements.get(k)
            if el is None:
                continue
            if el.probe_error:
                raise PlaywrightError(f"Unsupported selector: {k}")
            if state == "visible" and not el.visible:
                continue
            candidates.append(el.appear_at)
        earliest = min(candidates) if candidates else None
        if earliest is not None and earliest <= clock.t + timeout:
            clock.t = max(clock.t, earliest)
            return
        clock.t += timeout
        raise PlaywrightTimeoutError(f"Locator.wait_for: Timeout {timeout}ms exceeded.")

    def count(self) -> int:
        return len(self._present())

    def is_visible(self) -> bool:
        found = self._present()
        return bool(found) and found[0].visible

    def get_attribute(self, name: str, timeout: Optional[float] = None) -> Optional[str]:
        return self._element().attrs.get(name)

    def _act(self, action: str, *args) -> None:
        el = self._element()
        if action in el.fail_on:
            raise PlaywrightError(f"Element is not attached to the DOM ({action})")
        self.page.actions.append((action, self.key) + args)

    def click(self) -> None:
        self._act("click")

    def fill(self, value: str) -> None:
        self._act("fill", value)

    def set_input_files(self, files) -> None:
        self._act("set_input_files", files)

    def all_inner_texts(self) -> List[str]:
        return [el.text for el in self._present()]


class FakePage:
    def __init__(self, clock: Optional[FakeClock] = None):
        self.clock = clock or FakeClock()
        self.elements: Dict[str, FakeElement] = {}
        self.built: List[str] = []
        self.probes: List[tuple] = []
        self.actions: List[tuple] = []
        self.screenshots: List[Path] = []
        self.keyboard = FakeKeyboard(self)
        self.url = "https://web.whatsapp.com/"
        self.fail_screenshots = False

    def add(self, key: str, **kwargs) -> FakeElement:
        el = FakeElement(**kwargs)
        self.elements[key] = el
        return el

    def _loc(self, key: str) -> FakeLocator:
        self.built.append(key)
        return FakeLocator(self, [key])

    def locator(self, selector: str) -> FakeLocator:
        return self._loc(selector)

    def get_by_text(self, text: str, exact: bool = False) -> FakeLocator:
        return self._loc(f"text:{text}")

    def get_by_role(self, role: str, name: Optional[str] = None, exact: bool = False) -> FakeLocator:
        return self._loc(f"role:{role}|{name}" if name else f"role:{role}")

    def get_by_test_id(self, test_id: str) -> FakeLocator:
        return self._loc(f"test_id:{test_id}")

    def get_by_placeholder(self, text: str, exact: bool = False) -> FakeLocator:
        return self._loc(f"placeholder:{text}")

    def get_by_label(self, text: str, exact: bool = False) -> FakeLocator:
        return self._loc(f"label:{text}")

    def wait_for_timeout(self, timeout: float) -> None:
        self.clock.sleep_ms(int(timeout))

    def goto(self, url: str, **kwargs) -> None:
        self.actions.append(("goto", url))
        self.url = url

    def screenshot(self, path: str, **kwargs) -> bytes:
        if self.fail_screenshots:
            raise PlaywrightError("Target page, context or browser has been closed")
        p = Path(path)
        p.write_bytes(b"")
        self.screenshots.append(p)
        return b""


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path: Path, monkeypatch):
    """Point every writable path at tmp_path and keep scenario defaults predictable."""
    monkeypatch.setenv("SCREENSHOT_DIR", str(tmp_path / "screens"))
    monkeypatch.setenv("USER_DATA_DIR", str(tmp_path / "profile"))
    monkeypatch.setenv("LOG_FILE", str(tmp_path / "logs" / "flowprobe.log"))
    monkeypatch.setenv("CI", "true")
    for name in ("CATALOG_FILE", "CONTACT_NUMBER", "TRIGGER_MESSAGE", "USER_NAME", "UPLOAD_FILE",
                 "AUTO_CONFIRM", "STRICT_INDIRECT_VALIDATION", "ACTIONABLE_MAX_ATTEMPTS"):
        monkeypatch.delenv(name, raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def page(clock: FakeClock) -> FakePage:
    return FakePage(clock)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        SCREENSHOT_DIR=tmp_path / "screens",
        ACTIONABLE_POLL_INTERVAL_MS=1000,
        ACTIONABLE_MAX_ATTEMPTS=3,
        CONTACT_NUMBER="+60 12-345 6789",
        TRIGGER_MESSAGE="Hi, I want to join the promo",
        USER_NAME="Siti Aminah",
    )
