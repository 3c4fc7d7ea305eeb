"""Bounded-latency answer synthesis pipeline."""

from limi.synthesis.executor import CompletionClient, StrategyExecutor
from limi.synthesis.finalizer import FinalAnswer, ReplyFinalizer
from limi.synthesis.guard import DeadlineGuard, Emission, ResponseGate
from limi.synthesis.hedge import HedgeCoordinator
from limi.synthesis.strategy import (
    Empty,
    NoneAvailable,
    Outcome,
    RaceResult,
    Strategy,
    Success,
    Timeout,
    TransportError,
    Won,
)

__all__ = [
    "CompletionClient",
    "DeadlineGuard",
    "Emission",
    "Empty",
    "FinalAnswer",
    "HedgeCoordinator",
    "NoneAvailable",
    "Outcome",
    "RaceResult",
    "ReplyFinalizer",
    "ResponseGate",
    "Strategy",
    "StrategyExecutor",
    "Success",
    "Timeout",
    "TransportError",
    "Won",
]
