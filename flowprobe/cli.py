# flowprobe/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Show the effective config, list or validate locator targets, and run scenarios.
Thin wrapper around the catalog and the engine for local runs.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import click

from flowprobe.core.flows import SCENARIOS
from flowprobe.errors import CatalogError
from flowprobe.locators.catalog import load_catalog
from flowprobe.utils.config import get_settings
from flowprobe.utils.logger import get_logger, bind, unbind, set_log_level


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
@click.version_option(package_name="chat-flow-probe")
def cli(log_level: Optional[str]):
    # Initialize settings + logger once at process start
    _ = get_settings()
    if log_level:
        set_log_level(log_level.upper())


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars)."""
    s = get_settings()
    _echo_json(s.model_dump(mode="json"))


@cli.command("targets")
@click.option("--catalog", "catalog_file", type=click.Path(dir_okay=False), default=None,
              help="YAML overrides (defaults to CATALOG_FILE)")
@click.option("--verbose", "-v", is_flag=True, help="Show every descriptor")
def cmd_targets(catalog_file: Optional[str], verbose: bool):
    """List the locator targets the scenarios resolve."""
    try:
        catalog = load_catalog(catalog_file or get_settings().CATALOG_FILE)
    except CatalogError as e:
        click.echo(f"ERR {e}")
        sys.exit(1)

    click.echo(f"{len(catalog)} target(s):\n")
    for ls in catalog:
        timeout = f"{ls.probe_timeout_ms} ms" if ls.probe_timeout_ms else "default"
        click.echo(f" - {ls.name}  ({len(ls)} descriptor(s), {ls.state}, {timeout})  {ls.description}")
        if verbose:
            for i, d in enumerate(ls.descriptors):
                click.echo(f"     [{i}] {d.describe()}")


@cli.command("validate")
@click.argument("files", nargs=-1, required=True)
def cmd_validate(files: List[str]):
    """Validate catalog YAML files."""
    ok = True
    for fp in [Path(f).resolve() for f in files]:
        try:
            catalog = load_catalog(fp)
            click.echo(f"OK  {fp}  ->  {len(catalog)} target(s)")
        except CatalogError as e:
            ok = False
            click.echo(f"ERR {fp}  ->  {e}")

    sys.exit(0 if ok else 1)


@cli.command("scenarios")
def cmd_scenarios():
    """List runnable scenarios and their steps."""
    for name, steps in SCENARIOS.items():
        click.echo(f" - {name}: {' -> '.join(steps)}")


@cli.command("run")
@click.argument("scenarios", nargs=-1, required=True, type=click.Choice(sorted(SCENARIOS)))
@click.option("--auto-confirm/--no-auto-confirm", default=None, help="Override AUTO_CONFIRM from settings")
@click.option("--json-out", type=click.Path(dir_okay=False), default=None, help="Write a JSON summary to this file")
def cmd_run(scenarios: List[str], auto_confirm: Optional[bool], json_out: Optional[str]):
    """
    Run one or more scenarios, one after another.

    Examples:
      flowprobe run login
      flowprobe run trigger name-validation --json-out out/summary.json
    """
    settings = get_settings()
    log = get_logger(__name__)
    if auto_confirm is not None:
        settings = settings.model_copy(update={"AUTO_CONFIRM": auto_confirm})

    bind(run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"))
    click.echo(f"Running {len(scenarios)} scenario(s)...")

    from flowprobe.core.engine import Engine  # local import to avoid circulars

    results: List[dict] = []
    for name in scenarios:
        try:
            res = Engine(settings=settings).run_scenario(name)
        except Exception as e:
            log.exception(f"Scenario '{name}' could not run:")
            res = {"ok": False, "error": str(e), "error_type": e.__class__.__name__}
        res.setdefault("scenario", name)
        results.append(res)

    for res in results:
        name = res["scenario"]
        if res.get("ok"):
            click.echo(f"OK  {name} -> run_dir={res.get('run_dir', '-')}")
        else:
            reason = res.get("error", "unknown error")
            err_type = res.get("error_type")
            failed = res.get("failed_step") or {}
            step_desc = f" [step {failed.get('index', '?')} {failed.get('step', '')}]" if failed else ""
            prefix = f"{err_type}: " if err_type else ""
            click.echo(f"ERR {name}{step_desc} -> {prefix}{reason}")
        for v in res.get("verdicts", []):
            click.echo(f"      {v['probe']} {v['value']!r}: {v['outcome']} ({v['signal']}, {v['confidence']})")

    ok_count = sum(1 for r in results if r.get("ok"))
    fail_count = len(results) - ok_count
    click.echo(f"Done. OK={ok_count}  FAIL={fail_count}")

    if json_out:
        outp = Path(json_out).resolve()
        outp.parent.mkdir(parents=True, exist_ok=True)
        outp.write_text(json.dumps({"results": results}, indent=2, default=str), encoding="utf-8")
        click.echo(f"Wrote summary: {outp}")

    unbind("run_id")
    sys.exit(0 if fail_count == 0 else 1)


def main() -> None:
    cli(prog_name="flowprobe")


if __name__ == "__main__":
    main()
