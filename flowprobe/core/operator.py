# flowprobe/core/operator.py
from __future__ import annotations

"""Human-in-the-loop primitives
-------------------------------
`await_confirmation` blocks until an operator confirms (or a timeout passes);
`manual_wait` is a fixed pause with periodic progress logging for out-of-band
work such as picking a file by hand.
"""

import math
import queue
import threading
from typing import Callable, Optional

from flowprobe.utils.config import get_settings, Settings
from flowprobe.utils.logger import get_logger
from flowprobe.utils.timing import Clock, SystemClock

# (prompt, timeout_ms) -> confirmed?
ConfirmFn = Callable[[str, int], bool]

log = get_logger(__name__)


class ConsoleReader:
    """
    One long-lived thread reads stdin lines into a queue; prompts take from it.

    A prompt that times out leaves no reader of its own behind, so the next
    prompt gets the next ENTER. Lines typed while nobody was asking are dropped.
    """

    def __init__(self) -> None:
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def _read_forever(self) -> None:
        while True:
            try:
                line = input()
            except EOFError:
                self._lines.put(None)
                return
            self._lines.put(line)

    def _ensure_started(self) -> None:
        with self._lock:
            if self._thread is None or not self._thread.is_alive():
                self._thread = threading.Thread(target=self._read_forever, name="operator-console", daemon=True)
                self._thread.start()

    def _drain(self) -> None:
        while True:
            try:
                self._lines.get_nowait()
            except queue.Empty:
                return

    def confirm(self, prompt: str, timeout_ms: int) -> bool:
        """Wait for ENTER for up to `timeout_ms`; False on timeout or closed stdin."""
        self._drain()
        print(f"{prompt} ", end="", flush=True)
        self._ensure_started()
        try:
            line = self._lines.get(timeout=max(0, timeout_ms) / 1000.0)
        except queue.Empty:
            return False
        return line is not None


_console = ConsoleReader()


def console_confirm(prompt: str, timeout_ms: int) -> bool:
    """Read ENTER from the console; give up after `timeout_ms`."""
    return _console.confirm(prompt, timeout_ms)


class Operator:
    def __init__(
        self,
        confirm_fn: Optional[ConfirmFn] = None,
        *,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.confirm_fn = confirm_fn or console_confirm
        self.clock = clock or SystemClock()

    def await_confirmation(self, prompt: str, timeout_ms: int) -> bool:
        if self.settings.AUTO_CONFIRM:
            log.info(f"Auto-confirmed: {prompt}")
            return True
        log.info(f"Waiting up to {timeout_ms / 1000:.0f}s for operator: {prompt}")
        confirmed = self.confirm_fn(prompt, timeout_ms)
        if confirmed:
            log.info("Operator confirmed")
        else:
            log.warning(f"No operator confirmation within {timeout_ms} ms")
        return confirmed

    def manual_wait(self, total_ms: int, description: str, *, progress_every_ms: Optional[int] = None) -> None:
        """Sleep `total_ms` in slices, logging the remaining time after each slice."""
        step = progress_every_ms or self.settings.PROGRESS_LOG_INTERVAL
        log.info(f"Waiting {total_ms / 1000:.0f}s for {description}...")
        remaining = max(0, total_ms)
        while remaining > 0:
            chunk = min(step, remaining)
            self.clock.sleep_ms(chunk)
            remaining -= chunk
            if remaining > 0:
                log.info(f"{math.ceil(remaining / 1000)}s remaining for {description}...")
        log.info(f"Done waiting for {description}")
