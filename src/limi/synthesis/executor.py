"""Run one strategy against the completion service under its own timeout."""

from __future__ import annotations

import asyncio
import time
from functools import partial
from typing import Protocol

from loguru import logger

from limi.errors import StrategyEmpty, StrategyError, StrategyTimeout, StrategyTransportError
from limi.synthesis.diagnostics import DiagnosticsSink, NullDiagnostics, SafeDiagnostics
from limi.synthesis.extract import extract_answer, normalize_whitespace
from limi.synthesis.strategy import Empty, Outcome, Strategy, Success, Timeout, TransportError, describe


class CompletionClient(Protocol):
    async def invoke(self, strategy: Strategy, user_text: str, timeout: float) -> Outcome: ...


class StrategyExecutor:
    """Turns one completion call into exactly one outcome, on time.

    The upstream call runs in its own task. When the strategy timeout elapses
    first, the executor answers ``Timeout`` at once and abandons the task: it
    is kept referenced until it settles and whatever it produces is dropped.
    """

    def __init__(self, client: CompletionClient, diagnostics: DiagnosticsSink | None = None) -> None:
        self._client = client
        self._diagnostics = NullDiagnostics() if diagnostics is None else SafeDiagnostics(diagnostics)
        self._abandoned: set[asyncio.Future[Outcome]] = set()

    @property
    def abandoned(self) -> int:
        """Number of abandoned upstream calls that have not settled yet."""
        return len(self._abandoned)

    async def run(self, strategy: Strategy, user_text: str) -> Outcome:
        self._diagnostics.record(
            "strategy.request",
            {"strategy": strategy.name, "model": strategy.model, "timeout_s": strategy.timeout_seconds},
        )
        start = time.monotonic()
        try:
            text = await self._attempt(strategy, user_text)
        except StrategyError as exc:
            outcome = _outcome_from_error(strategy, exc, time.monotonic() - start)
        else:
            outcome = Success(strategy=strategy.name, text=text, elapsed_seconds=time.monotonic() - start)

        logger.info(
            "strategy.outcome strategy={} kind={} elapsed_ms={}",
            strategy.name,
            outcome.kind,
            int(outcome.elapsed_seconds * 1000),
        )
        self._diagnostics.record("strategy.outcome", describe(outcome))
        return outcome

    async def _attempt(self, strategy: Strategy, user_text: str) -> str:
        call = asyncio.ensure_future(self._client.invoke(strategy, user_text, strategy.timeout_seconds))
        try:
            done, _ = await asyncio.wait({call}, timeout=strategy.timeout_seconds)
        except asyncio.CancelledError:
            self._abandon(strategy, call)
            raise
        if call not in done:
            self._abandon(strategy, call)
            raise StrategyTimeout(f"no response within {strategy.timeout_seconds}s", strategy=strategy.name)

        try:
            result = call.result()
        except StrategyError:
            raise
        except Exception as exc:
            logger.exception("strategy.client.error strategy={}", strategy.name)
            raise StrategyTransportError(f"{type(exc).__name__}: {exc!s}", strategy=strategy.name) from exc

        match result:
            case Success(text=raw):
                text = normalize_whitespace(extract_answer(raw))
                if not text:
                    raise StrategyEmpty("blank after extraction", strategy=strategy.name)
                return text
            case TransportError(detail=detail):
                raise StrategyTransportError(detail, strategy=strategy.name)
            case Timeout():
                raise StrategyTimeout("client reported timeout", strategy=strategy.name)
            case _:
                raise StrategyEmpty("no text", strategy=strategy.name)

    def _abandon(self, strategy: Strategy, call: asyncio.Future[Outcome]) -> None:
        self._abandoned.add(call)
        call.add_done_callback(partial(self._drop_phantom, strategy.name))

    def _drop_phantom(self, strategy_name: str, call: asyncio.Future[Outcome]) -> None:
        self._abandoned.discard(call)
        if call.cancelled():
            return
        if (exc := call.exception()) is not None:
            logger.debug("strategy.phantom strategy={} error={!s}", strategy_name, exc)
            return
        logger.debug("strategy.phantom strategy={} kind={}", strategy_name, call.result().kind)


def _outcome_from_error(strategy: Strategy, exc: StrategyError, elapsed: float) -> Outcome:
    if isinstance(exc, StrategyTimeout):
        return Timeout(strategy=strategy.name, elapsed_seconds=elapsed)
    if isinstance(exc, StrategyTransportError):
        return TransportError(strategy=strategy.name, detail=exc.detail, elapsed_seconds=elapsed)
    return Empty(strategy=strategy.name, elapsed_seconds=elapsed)
