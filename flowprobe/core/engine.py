from __future__ import annotations

"""Scenario engine
-----------------
Opens a persistent Playwright context (so the chat session survives between
runs), drives one scenario's steps in order, and writes the run's screenshots,
log and manifest to a timestamped run directory.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from playwright.sync_api import sync_playwright

from flowprobe.capture.diagnostics import DiagnosticCapture
from flowprobe.core.flows import ChatFlow, scenario_steps
from flowprobe.core.operator import ConfirmFn, Operator
from flowprobe.locators.catalog import Catalog, load_catalog
from flowprobe.utils.config import Settings, get_settings
from flowprobe.utils.logger import (
    get_logger,
    log_with_context,
    bound,
    run_log,
)
from flowprobe.utils.timing import PageClock, Stopwatch


def _ts() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S")


class Engine:
    """Runs named scenarios against a live, persistent browser profile."""
    def __init__(
        self,
        settings: Optional[Settings] = None,
        catalog: Optional[Catalog] = None,
        confirm_fn: Optional[ConfirmFn] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog or load_catalog(self.settings.CATALOG_FILE)
        self.confirm_fn = confirm_fn
        self.log = get_logger(__name__)
        self.last_run_dir: Optional[Path] = None
        self.last_error: Optional[BaseException] = None

    def _prepare_run_dir(self, name: str) -> Path:
        base = self.settings.SCREENSHOT_DIR / name / _ts()
        base.mkdir(parents=True, exist_ok=True)
        self.last_run_dir = base
        return base

    def _write_manifest(self, run_dir: Path, name: str, steps: List[str], result: Dict[str, Any]) -> None:
        doc = {
            "scenario": name,
            "steps": steps,
            "created_at": datetime.now(timezone.utc).isoformat(),
            **{k: v for k, v in result.items() if k != "run_dir"},
        }
        (run_dir / "manifest.json").write_text(json.dumps(doc, indent=2, default=str), encoding="utf-8")

    def build_flow(self, page, run_dir: Path) -> ChatFlow:
        clock = PageClock(page)
        return ChatFlow(
            page,
            settings=self.settings,
            catalog=self.catalog,
            clock=clock,
            diagnostics=DiagnosticCapture(run_dir, settings=self.settings),
            operator=Operator(self.confirm_fn, settings=self.settings, clock=clock),
        )

    def run_scenario(self, name: str, *, raise_on_failure: bool = False) -> dict:
        """Execute every step of scenario `name` and return a small result dict.

        Returns {"ok": bool, "run_dir": str, "steps_completed": [...], "verdicts": [...]}
        plus "error", "error_type" and "failed_step" when a step raised.
        With raise_on_failure=True the failing step's exception is re-raised once
        its diagnostics and the manifest are written.
        """
        s = self.settings
        steps = scenario_steps(name)
        run_dir = self._prepare_run_dir(name)

        with run_log(run_dir / "run.log"), bound(scenario=name), sync_playwright() as p:
            browser_type = getattr(p, s.BROWSER_TYPE.value)
            context = browser_type.launch_persistent_context(
                str(s.USER_DATA_DIR), **s.playwright_context_kwargs()
            )
            try:
                page = context.pages[0] if context.pages else context.new_page()
                page.set_default_timeout(s.DEFAULT_TIMEOUT)
                page.set_default_navigation_timeout(s.NAVIGATION_TIMEOUT)
                flow = self.build_flow(page, run_dir)
                result = self.run_steps(flow, name, steps, run_dir)

                if not s.CI and s.KEEP_OPEN_MS:
                    self.log.info(f"Keeping the browser open for {s.KEEP_OPEN_MS / 1000:.0f}s...")
                    flow.clock.sleep_ms(s.KEEP_OPEN_MS)
            finally:
                context.close()
        self._write_manifest(run_dir, name, steps, result)
        if raise_on_failure and not result["ok"] and self.last_error is not None:
            raise self.last_error
        return result

    def run_steps(self, flow: ChatFlow, name: str, steps: List[str], run_dir: Path) -> dict:
        """Run `steps` in order on `flow`; the first exception ends the scenario."""
        log_with = log_with_context(self.log, scenario=name)
        log_with.info(f"Starting scenario: {name} (steps={len(steps)})")
        completed: List[str] = []
        self.last_error = None
        sw = Stopwatch().start()

        for idx, step in enumerate(steps, start=1):
            step_log = log_with_context(log_with, step_index=idx, step=step)
            step_log.info(f"Step {idx}/{len(steps)}: {step}")
            action: Callable[[], Any] = getattr(flow, step)
            try:
                action()
            except Exception as e:
                step_log.exception(f"Scenario '{name}' failed at step {idx} ({step}):")
                flow.diagnostics.failure(flow.page, f"{name}_{step}")
                self.last_error = e
                return {
                    "ok": False,
                    "run_dir": str(run_dir),
                    "error": str(e),
                    "error_type": e.__class__.__name__,
                    "failed_step": {"index": idx, "step": step},
                    "steps_completed": completed,
                    "verdicts": [v.as_dict() for v in flow.verdicts],
                    "elapsed_ms": sw.elapsed_ms(),
                }
            completed.append(step)

        log_with.info(f"Scenario '{name}' completed in {sw.elapsed_ms() / 1000:.1f}s")
        return {
            "ok": True,
            "run_dir": str(run_dir),
            "steps_completed": completed,
            "verdicts": [v.as_dict() for v in flow.verdicts],
            "elapsed_ms": sw.elapsed_ms(),
        }


def run_scenario(name: str, *, raise_on_failure: bool = False) -> dict:
    eng = Engine(settings=get_settings())
    return eng.run_scenario(name, raise_on_failure=raise_on_failure)
