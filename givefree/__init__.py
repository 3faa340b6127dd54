"""
GiveFree client application.

`FreeCycleApp.bootstrap()` resolves the runtime environment, connects the
listing store (or falls back to demo / degraded mode) and wires the assistant.
"""

from .app import FreeCycleApp, View

__all__ = ["FreeCycleApp", "View"]
