"""Error taxonomy for rule evaluation and dispatch."""

from __future__ import annotations


class AutomationError(RuntimeError):
    """Base class for engine errors."""


class SignalFetchError(AutomationError):
    """A metric, query or clock lookup failed; the rule is skipped this tick."""


class ConfigurationError(AutomationError):
    """Required action fields could not be resolved (recipient, endpoint)."""


class ChannelDeliveryError(AutomationError):
    """Network or HTTP-level failure from a delivery channel."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(AutomationError):
    """Writing rule state or the execution log failed."""
