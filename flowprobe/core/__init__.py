"""
Core package for chat-flow-probe.
Lightweight package init to avoid import cycles.

Consumers should import submodules directly, e.g.:
  from flowprobe.core.executor import ActionExecutor
  from flowprobe.core.flows import ChatFlow, SCENARIOS
  from flowprobe.core.engine import Engine, run_scenario
"""

__all__: list[str] = []
