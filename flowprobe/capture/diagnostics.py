# flowprobe/capture/diagnostics.py
from __future__ import annotations

"""Diagnostic capture
--------------------
Page screenshots taken after every action and at every failure, with
deterministic, timestamped filenames. A failed capture is logged and never
replaces the error that triggered it.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page

from flowprobe.utils.config import get_settings, Settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import measure


@dataclass
class CaptureResult:
    path: Path
    name: str            # logical name (e.g., "error_trigger_message")
    url: str
    ts: str              # ISO timestamp


def slugify(label: str) -> str:
    return "".join(ch if ch.isalnum() or ch in ("-", "_") else "_" for ch in label.strip().lower().replace(" ", "_"))


class DiagnosticCapture:
    """
    Centralized screenshot helper.
    - Respects global settings (format/quality/full-page).
    - Appends a millisecond timestamp so repeated steps never overwrite each other.
    - Keeps a list of everything captured in this run.
    """

    def __init__(self, out_dir: Optional[Path] = None, settings: Optional[Settings] = None):
        self.settings: Settings = settings or get_settings()
        self.out_dir = Path(out_dir) if out_dir else self.settings.SCREENSHOT_DIR
        self.log = get_logger(__name__)
        self.captured: List[CaptureResult] = []

    @measure("capture")
    def capture(self, page: Page, name: str, full_page: Optional[bool] = None) -> Optional[CaptureResult]:
        fmt = self.settings.SCREENSHOT_FORMAT.value
        is_full = full_page if full_page is not None else self.settings.FULL_PAGE_SCREENSHOT
        out_path = self._build_path(name, fmt)
        try:
            page.screenshot(
                path=str(out_path),
                type=fmt,
                full_page=is_full,
                quality=(self.settings.SCREENSHOT_QUALITY if fmt == "jpeg" else None),
            )
        except PlaywrightError as e:
            self.log.warning(f"Could not capture '{name}': {e.message.splitlines()[0] if e.message else e!r}")
            return None

        result = CaptureResult(path=out_path, name=name, url=page.url, ts=self._ts())
        self.captured.append(result)
        self.log.debug(f"Captured {out_path.name}")
        return result

    def failure(self, page: Page, name: str) -> Optional[CaptureResult]:
        return self.capture(page, f"error_{name}")

    # ----------- Internals -----------

    def _build_path(self, base: str, ext: str) -> Path:
        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")[:-3]
        out_path = self.out_dir / f"{slugify(base)}_{stamp}.{ext}"
        out_path.parent.mkdir(parents=True, exist_ok=True)
        return out_path

    @staticmethod
    def _ts() -> str:
        return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")
