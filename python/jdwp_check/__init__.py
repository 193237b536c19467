"""
jdwp-check CLI package.

Runs the ThreadReference.CurrentContendedMonitor check against a freshly
launched debuggee VM.  Use ``python/curcontmonitor.py`` or the
``jdwp-curcontmonitor`` console script.
"""

from __future__ import annotations

from .cli import main, run

__all__ = ["main", "run"]
__version__ = "0.1.0"
