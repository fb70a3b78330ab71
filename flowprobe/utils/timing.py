# flowprobe/utils/timing.py
from __future__ import annotations

import functools
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar, ParamSpec

from flowprobe.utils.logger import get_logger

P = ParamSpec("P")
T = TypeVar("T")


# ---------------- Monotonic time helpers ----------------

def now_ms() -> int:
    """Monotonic time in milliseconds."""
    return time.monotonic_ns() // 1_000_000


def sleep_ms(ms: int) -> None:
    """Sleep for `ms` milliseconds (blocking)."""
    if ms <= 0:
        return
    time.sleep(ms / 1000.0)


# ---------------- Clocks ----------------

class Clock:
    """
    Time source for every bounded wait in the resolver, poller and flows.
    Swap in a fake in tests to make waits deterministic.
    """

    def now_ms(self) -> int:
        raise NotImplementedError

    def sleep_ms(self, ms: int) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    def now_ms(self) -> int:
        return now_ms()

    def sleep_ms(self, ms: int) -> None:
        sleep_ms(ms)


class PageClock(SystemClock):
    """
    Sleeps through `page.wait_for_timeout` so Playwright keeps dispatching
    events while a scenario pauses.
    """

    def __init__(self, page) -> None:
        self.page = page

    def sleep_ms(self, ms: int) -> None:
        if ms <= 0:
            return
        self.page.wait_for_timeout(ms)


# ---------------- Stopwatch ----------------

@dataclass
class Stopwatch:
    """Simple stopwatch usable as a context manager."""
    clock: Optional[Clock] = None
    start_ms: Optional[int] = None

    def _now(self) -> int:
        return self.clock.now_ms() if self.clock else now_ms()

    def start(self) -> "Stopwatch":
        self.start_ms = self._now()
        return self

    def elapsed_ms(self) -> int:
        if self.start_ms is None:
            return 0
        return max(0, self._now() - self.start_ms)

    def __enter__(self) -> "Stopwatch":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        return None


# ---------------- measure decorator ----------------

def measure(label: str = "", level: str = "DEBUG") -> Callable[[Callable[P, T]], Callable[P, T]]:
    """
    Decorator to log the execution time of a function.
    Example:
        @measure("send_text")
        def send_text(...): ...
    """
    level = level.upper()

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        @functools.wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            log = get_logger(func.__module__)
            log_fn = getattr(log, level.lower(), log.debug)
            with Stopwatch() as sw:
                try:
                    return func(*args, **kwargs)
                finally:
                    ms = sw.elapsed_ms()
                    human = f"{ms} ms" if ms < 1000 else f"{ms/1000:.3f} s"
                    log_fn(f"{label or func.__name__} took {human}")
        return wrapper
    return decorator
