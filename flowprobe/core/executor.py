# flowprobe/core/executor.py
from __future__ import annotations

"""Action executor
-----------------
Performs one observable action against a resolved element, then captures a
diagnostic. Playwright failures become ActionFailed after a failure capture and
always propagate.
"""

from pathlib import Path
from typing import Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from flowprobe.capture.diagnostics import DiagnosticCapture, slugify
from flowprobe.errors import ActionFailed
from flowprobe.locators.resolver import ResolvedElement
from flowprobe.utils.config import get_settings, Settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import Clock, SystemClock, measure

__all__ = ["ActionExecutor"]


def _first_line(e: PlaywrightError) -> str:
    return e.message.splitlines()[0] if e.message else repr(e)


class ActionExecutor:
    def __init__(
        self,
        page: Page,
        *,
        diagnostics: Optional[DiagnosticCapture] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.page = page
        self.settings = settings or get_settings()
        self.diagnostics = diagnostics or DiagnosticCapture(settings=self.settings)
        self.clock = clock or SystemClock()
        self.log = get_logger(__name__)

    @measure("send_text")
    def send_text(self, element: ResolvedElement, text: str, description: str = "Message", *, submit_key: str = "Enter") -> None:
        """Focus, replace content, submit; then settle and capture."""
        try:
            element.locator.click()
            element.locator.fill(text)
            self.page.keyboard.press(submit_key)
        except PlaywrightError as e:
            self.log.error(f"Failed to send {description} {text!r} to {element.describe()}: {_first_line(e)}")
            self.diagnostics.failure(self.page, description)
            raise ActionFailed("send_text", element.describe(), detail=text, reason=_first_line(e)) from e

        self.clock.sleep_ms(self.settings.POST_ACTION_DELAY_MS)
        self.log.info(f"{description} sent: {text!r}")
        self.diagnostics.capture(self.page, description)

    @measure("fill")
    def fill(self, element: ResolvedElement, text: str, description: Optional[str] = None) -> None:
        """Focus and replace content without submitting (e.g. a search box)."""
        label = description or element.target
        try:
            element.locator.click()
            element.locator.fill(text)
        except PlaywrightError as e:
            self.log.error(f"Failed to fill {element.describe()} with {text!r}: {_first_line(e)}")
            self.diagnostics.failure(self.page, label)
            raise ActionFailed("fill", element.describe(), detail=text, reason=_first_line(e)) from e

        self.log.info(f"Filled {label}: {text!r}")
        self.diagnostics.capture(self.page, f"{slugify(label)}_filled")

    @measure("click")
    def click(self, element: ResolvedElement, description: Optional[str] = None) -> None:
        label = description or element.target
        try:
            element.locator.click()
        except PlaywrightError as e:
            self.log.error(f"Failed to click {element.describe()}: {_first_line(e)}")
            self.diagnostics.failure(self.page, label)
            raise ActionFailed("click", element.describe(), reason=_first_line(e)) from e

        self.clock.sleep_ms(self.settings.POST_ACTION_DELAY_MS)
        self.log.info(f"Clicked {label}")
        self.diagnostics.capture(self.page, f"{slugify(label)}_clicked")

    @measure("attach_file")
    def attach_file(self, element: ResolvedElement, file_path: Path | str) -> None:
        """Bind a local file to a file input. Fails on elements that cannot take files."""
        path = Path(file_path)
        if not path.is_file():
            self.diagnostics.failure(self.page, "attach_file")
            raise ActionFailed("attach_file", element.describe(), detail=str(path), reason="file does not exist")

        try:
            input_type = element.locator.get_attribute("type")
        except PlaywrightError as e:
            self.diagnostics.failure(self.page, "attach_file")
            raise ActionFailed("attach_file", element.describe(), detail=str(path), reason=_first_line(e)) from e
        if (input_type or "").lower() != "file":
            self.diagnostics.failure(self.page, "attach_file")
            raise ActionFailed(
                "attach_file", element.describe(), detail=str(path), reason="element is not a file input"
            )

        try:
            element.locator.set_input_files(str(path))
        except PlaywrightError as e:
            self.log.error(f"Failed to attach {path} via {element.describe()}: {_first_line(e)}")
            self.diagnostics.failure(self.page, "attach_file")
            raise ActionFailed("attach_file", element.describe(), detail=str(path), reason=_first_line(e)) from e

        self.clock.sleep_ms(self.settings.POST_ACTION_DELAY_MS)
        self.log.info(f"Attached {path.name} via {element.describe()}")
        self.diagnostics.capture(self.page, "file_attached")

    @staticmethod
    def accepts_files(element: ResolvedElement) -> bool:
        try:
            return (element.locator.get_attribute("type") or "").lower() == "file"
        except PlaywrightError:
            return False
