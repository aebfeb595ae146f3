"""Central configuration for automation_engine."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)

_MAX_CHANNEL_TIMEOUT_S = 15.0


def _read_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _read_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _split_floats(s: str, default: Tuple[float, ...]) -> Tuple[float, ...]:
    """Parse comma-separated string into a tuple of non-negative floats.

    Args:
        s: Comma-separated string of numbers (e.g., "2,4")
        default: Returned when nothing valid is found.

    Returns:
        Tuple of parsed floats. Invalid or negative entries are skipped.

    Example:
        >>> _split_floats("2, 4,x", (1.0,))
        (2.0, 4.0)
    """
    out: list[float] = []
    for part in (s or "").split(","):
        p = part.strip()
        if not p:
            continue
        try:
            value = float(p)
        except ValueError:
            continue
        if value >= 0:
            out.append(value)
    return tuple(out) or default


def _first_env(*names: str) -> str | None:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


@dataclass
class Settings:
    """Configuration settings for automation_engine.

    All settings are loaded from environment variables with sensible defaults.
    """

    TICK_INTERVAL_S: float
    QUERY_TICK_INTERVAL_S: float
    METRIC_DEBOUNCE_S: float
    SCHEDULE_DEBOUNCE_S: float
    RETRY_BACKOFF_S: Tuple[float, ...]
    CHANNEL_TIMEOUT_S: float
    STORAGE_PATH: str
    STATE_FILE: str
    SMTP_HOST: str
    SMTP_PORT: int
    SMTP_USER: str
    SMTP_PASSWORD: str
    SMTP_FROM: str


def _read_settings() -> Settings:
    """Read all configuration from environment variables.

    Returns:
        Settings object with all configuration values.

    Note:
        Invalid numeric values fall back to sensible defaults. The
        ``AI_SMTP_*`` variables take precedence over plain ``SMTP_*``.
    """
    tick = _read_float("TICK_INTERVAL_S", 30.0)
    query_tick = _read_float("QUERY_TICK_INTERVAL_S", 30.0)
    metric_debounce = _read_float("METRIC_DEBOUNCE_S", 300.0)
    schedule_debounce = _read_float("SCHEDULE_DEBOUNCE_S", 60.0)
    backoff = _split_floats(os.environ.get("RETRY_BACKOFF_S", ""), (2.0, 4.0))

    channel_timeout = _read_float("CHANNEL_TIMEOUT_S", _MAX_CHANNEL_TIMEOUT_S)
    if channel_timeout <= 0 or channel_timeout > _MAX_CHANNEL_TIMEOUT_S:
        channel_timeout = _MAX_CHANNEL_TIMEOUT_S

    storage_path = os.environ.get("STORAGE_PATH") or "/"
    state_file = os.environ.get("STATE_FILE") or "/app/data/automation_state.json"

    # Process-level mail fallback
    smtp_host = _first_env("AI_SMTP_HOST", "SMTP_HOST") or "smtp.gmail.com"
    smtp_port_raw = _first_env("AI_SMTP_PORT", "SMTP_PORT") or "587"
    try:
        smtp_port = int(smtp_port_raw.strip())
    except ValueError:
        smtp_port = 587
    smtp_user = _first_env("AI_SMTP_USER", "SMTP_USER") or ""
    smtp_password = _first_env("AI_SMTP_PASSWORD", "SMTP_PASSWORD") or ""
    smtp_from = _first_env("AI_SMTP_FROM", "SMTP_FROM") or smtp_user or "automation@localhost"

    return Settings(
        TICK_INTERVAL_S=tick if tick > 0 else 30.0,
        QUERY_TICK_INTERVAL_S=query_tick if query_tick > 0 else 30.0,
        METRIC_DEBOUNCE_S=max(0.0, metric_debounce),
        SCHEDULE_DEBOUNCE_S=max(0.0, schedule_debounce),
        RETRY_BACKOFF_S=backoff,
        CHANNEL_TIMEOUT_S=channel_timeout,
        STORAGE_PATH=storage_path,
        STATE_FILE=state_file,
        SMTP_HOST=smtp_host,
        SMTP_PORT=smtp_port,
        SMTP_USER=smtp_user,
        SMTP_PASSWORD=smtp_password,
        SMTP_FROM=smtp_from,
    )


settings = _read_settings()


def validate_settings() -> None:
    """Log warnings for configuration that will degrade delivery."""
    if not settings.SMTP_USER or not settings.SMTP_PASSWORD:
        logger.warning(
            "SMTP_USER/SMTP_PASSWORD not set; email rules without connected "
            "accounts will fail."
        )
    if len(settings.RETRY_BACKOFF_S) < 2:
        logger.warning(
            "RETRY_BACKOFF_S has %d entries; rules get %d attempts.",
            len(settings.RETRY_BACKOFF_S),
            len(settings.RETRY_BACKOFF_S) + 1,
        )


# Exported constants
TICK_INTERVAL_S: float = settings.TICK_INTERVAL_S
QUERY_TICK_INTERVAL_S: float = settings.QUERY_TICK_INTERVAL_S
METRIC_DEBOUNCE_S: float = settings.METRIC_DEBOUNCE_S
SCHEDULE_DEBOUNCE_S: float = settings.SCHEDULE_DEBOUNCE_S
RETRY_BACKOFF_S: Tuple[float, ...] = settings.RETRY_BACKOFF_S
CHANNEL_TIMEOUT_S: float = settings.CHANNEL_TIMEOUT_S
STORAGE_PATH: str = settings.STORAGE_PATH
STATE_FILE: str = settings.STATE_FILE

validate_settings()
