"""
Module-level logger that follows the application context.

Code anywhere in the package logs through `logger`. Until `ctx.init()` has run,
records go to a stderr bootstrap logger whose level follows `KG_DEBUG`, so
settings loading can already report what it does. Afterwards every call is
forwarded to the context's `kg-memory` logger with its file handler.
"""

from __future__ import annotations

import logging as lg
import os

BOOTSTRAP_LOGGER_NAME = "kg-memory.bootstrap"


def bootstrap_level() -> int:
    """DEBUG when KG_DEBUG is "true", INFO otherwise (same rule as the settings)."""
    return lg.DEBUG if os.environ.get("KG_DEBUG", "false").lower() == "true" else lg.INFO


def bootstrap_logger() -> lg.Logger:
    log = lg.getLogger(BOOTSTRAP_LOGGER_NAME)
    if not log.handlers:
        # Configured once; settings loading may raise the level later (--debug)
        log.setLevel(bootstrap_level())
        handler = lg.StreamHandler()
        handler.setFormatter(lg.Formatter("[kg-memory] %(levelname)s %(message)s"))
        log.addHandler(handler)
        # stdout may carry the stdio transport; never let early records reach the root handlers
        log.propagate = False
    return log


def current_logger() -> lg.Logger:
    """The context logger once initialized, the bootstrap logger before."""
    from .context import ctx

    return ctx.logger if ctx.is_initialized else bootstrap_logger()


class _ContextLogger:
    def __getattr__(self, name: str):
        return getattr(current_logger(), name)


logger = _ContextLogger()

__all__ = ["bootstrap_level", "current_logger", "logger"]
