"""
chat-flow-probe: resilient Playwright-driven end-to-end probes for chat bot flows.

Consumers should import submodules directly, e.g.:
  from flowprobe.locators.resolver import LocatorResolver
  from flowprobe.core.executor import ActionExecutor
  from flowprobe.core.engine import Engine
"""

__version__ = "0.1.0"
