"""Strategy definitions and per-attempt outcome types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

Endpoint = Literal["chat", "responses"]


@dataclass(frozen=True)
class Strategy:
    """One configured way of asking the completion service for an answer."""

    name: str
    model: str
    max_tokens: int
    timeout_seconds: float
    instruction: str = ""
    endpoint: Endpoint = "chat"
    temperature: float | None = None


@dataclass(frozen=True)
class Success:
    strategy: str
    text: str
    elapsed_seconds: float = 0.0
    kind: Literal["success"] = field(default="success", init=False)

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Empty:
    strategy: str
    elapsed_seconds: float = 0.0
    kind: Literal["empty"] = field(default="empty", init=False)

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class Timeout:
    strategy: str
    elapsed_seconds: float = 0.0
    kind: Literal["timeout"] = field(default="timeout", init=False)

    @property
    def ok(self) -> bool:
        return False


@dataclass(frozen=True)
class TransportError:
    strategy: str
    detail: str
    elapsed_seconds: float = 0.0
    kind: Literal["transport_error"] = field(default="transport_error", init=False)

    @property
    def ok(self) -> bool:
        return False


Outcome = Success | Empty | Timeout | TransportError


@dataclass(frozen=True)
class Won:
    """The race produced text."""

    text: str
    strategy: str
    escalated: bool = False


@dataclass(frozen=True)
class NoneAvailable:
    """Every attempt, escalation included, failed to produce text."""

    attempts: tuple[Outcome, ...] = ()


RaceResult = Won | NoneAvailable


def describe(outcome: Outcome) -> dict[str, object]:
    """Render an outcome as a diagnostics payload."""
    payload: dict[str, object] = {
        "strategy": outcome.strategy,
        "kind": outcome.kind,
        "elapsed_ms": int(outcome.elapsed_seconds * 1000),
    }
    match outcome:
        case Success(text=text):
            payload["chars"] = len(text)
        case TransportError(detail=detail):
            payload["detail"] = detail
    return payload
