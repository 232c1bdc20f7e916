"""Logging configuration for the agent process."""

from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | int = "INFO") -> logging.Logger:
    """Install one stream handler on the ``autoloop`` logger. Safe to call twice."""
    root = logging.getLogger("autoloop")
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        level = resolved if isinstance(resolved, int) else logging.INFO
    root.setLevel(level)
    if not any(getattr(handler, "_autoloop", False) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._autoloop = True  # type: ignore[attr-defined]
        root.addHandler(handler)
    return root
