"""Application-level exception types for Limi."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from limi.synthesis.strategy import Outcome


class LimiError(Exception):
    """Base exception for Limi."""


class ConfigurationError(LimiError):
    """Base exception for configuration and startup validation errors."""


class TimingConfigurationError(ConfigurationError):
    """Raised when strategy timeouts and the reply deadline do not nest."""


class StrategyError(LimiError):
    """Base exception for one failed strategy attempt."""

    def __init__(self, detail: str = "", *, strategy: str | None = None) -> None:
        self.detail = detail
        self.strategy = strategy
        super().__init__(f"{strategy}: {detail}" if strategy else detail)


class StrategyTimeout(StrategyError):
    """Raised when the completion service misses a strategy timeout."""


class StrategyEmpty(StrategyError):
    """Raised when the completion service returns no usable text."""


class StrategyTransportError(StrategyError):
    """Raised on network errors, non-2xx statuses and unreadable payloads."""


class MalformedPayloadError(StrategyTransportError):
    """Raised when a completion payload does not match any known shape."""


class AllStrategiesExhausted(LimiError):
    """Raised when neither the hedged strategies nor escalation produced text."""

    def __init__(self, attempts: tuple[Outcome, ...]) -> None:
        self.attempts = attempts
        summary = ", ".join(f"{outcome.strategy}={outcome.kind}" for outcome in attempts)
        super().__init__(summary or "no strategies configured")


class DeadlineExceeded(LimiError):
    """Raised when the reply deadline elapses before the pipeline finishes."""
