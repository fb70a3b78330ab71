# flowprobe/locators/__init__.py
"""
Locators package
----------------
Locator descriptors/sets, the ordered fallback resolver, and actionability
polling for resolved elements.
"""

from .descriptor import LocatorDescriptor, LocatorSet, Strategy, to_locator
from .resolver import LocatorResolver, ProbeAttempt, ResolvedElement
from .actionability import (
    ActionabilityResult,
    ActionabilityState,
    is_actionable,
    is_enabled,
    wait_actionable,
)
from .catalog import Catalog, load_catalog

__all__ = [
    "LocatorDescriptor",
    "LocatorSet",
    "Strategy",
    "to_locator",
    "LocatorResolver",
    "ProbeAttempt",
    "ResolvedElement",
    "ActionabilityResult",
    "ActionabilityState",
    "is_actionable",
    "is_enabled",
    "wait_actionable",
    "Catalog",
    "load_catalog",
]
