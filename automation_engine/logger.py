"""Logging setup for the engine process."""

from __future__ import annotations

import logging
import os

# Channel HTTP clients log every request at INFO
QUIET_LOGGERS = ("httpx", "httpcore")

_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def resolve_level(name: str | None) -> int:
    value = getattr(logging, (name or "INFO").strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | None = None) -> int:
    """Configure the root logger; ``level`` overrides ``LOG_LEVEL``.

    Returns the level applied.
    """
    resolved = resolve_level(level or os.environ.get("LOG_LEVEL"))
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        root.addHandler(handler)
    root.setLevel(resolved)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, resolved))
    return resolved


__all__ = ["setup_logging", "resolve_level"]
