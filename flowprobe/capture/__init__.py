"""
Capture package for chat-flow-probe.
Handles diagnostic screenshots taken after actions and at failures.
"""

from .diagnostics import CaptureResult, DiagnosticCapture

__all__ = [
    "CaptureResult",
    "DiagnosticCapture",
]
