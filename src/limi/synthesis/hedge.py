"""Hedged fan-out over strategies with a single escalation tier."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from functools import partial

from loguru import logger

from limi.errors import AllStrategiesExhausted
from limi.synthesis.diagnostics import DiagnosticsSink, NullDiagnostics, SafeDiagnostics
from limi.synthesis.executor import StrategyExecutor
from limi.synthesis.strategy import NoneAvailable, Outcome, RaceResult, Strategy, Success, TransportError, Won


class HedgeCoordinator:
    """Start every strategy at once and keep the first one that answers.

    Outcomes are pushed into a per-race queue as their tasks finish, so queue
    order is completion order. Once a winner is read the queue is simply no
    longer consumed; the other executors run out on their own timeouts.
    """

    def __init__(
        self,
        executor: StrategyExecutor,
        strategies: Sequence[Strategy],
        escalation: Strategy | None = None,
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._executor = executor
        self._strategies = tuple(strategies)
        self._escalation = escalation
        self._diagnostics = NullDiagnostics() if diagnostics is None else SafeDiagnostics(diagnostics)
        self._running: set[asyncio.Task[Outcome]] = set()

    async def race(self, user_text: str) -> RaceResult:
        results: asyncio.Queue[Outcome] = asyncio.Queue()
        for strategy in self._strategies:
            task = asyncio.create_task(self._executor.run(strategy, user_text), name=f"strategy:{strategy.name}")
            self._running.add(task)
            task.add_done_callback(partial(self._publish, results, strategy))

        attempts: list[Outcome] = []
        for _ in self._strategies:
            outcome = await results.get()
            attempts.append(outcome)
            if isinstance(outcome, Success):
                return self._won(outcome, attempts, escalated=False)

        try:
            return await self._escalate(user_text, attempts)
        except AllStrategiesExhausted as exc:
            logger.warning("race.exhausted {}", exc)
            self._diagnostics.record("race.exhausted", {"attempts": [outcome.kind for outcome in exc.attempts]})
            return NoneAvailable(attempts=exc.attempts)

    async def _escalate(self, user_text: str, attempts: list[Outcome]) -> Won:
        if self._escalation is None:
            raise AllStrategiesExhausted(tuple(attempts))

        logger.info("race.escalation strategy={} failed_attempts={}", self._escalation.name, len(attempts))
        self._diagnostics.record(
            "race.escalation",
            {"strategy": self._escalation.name, "failed": [outcome.kind for outcome in attempts]},
        )
        outcome = await self._executor.run(self._escalation, user_text)
        attempts.append(outcome)
        if isinstance(outcome, Success):
            return self._won(outcome, attempts, escalated=True)
        raise AllStrategiesExhausted(tuple(attempts))

    def _won(self, outcome: Success, attempts: list[Outcome], *, escalated: bool) -> Won:
        logger.info("race.winner strategy={} escalated={}", outcome.strategy, escalated)
        self._diagnostics.record(
            "race.winner",
            {
                "strategy": outcome.strategy,
                "escalated": escalated,
                "position": len(attempts),
                "elapsed_ms": int(outcome.elapsed_seconds * 1000),
            },
        )
        return Won(text=outcome.text, strategy=outcome.strategy, escalated=escalated)

    def _publish(self, results: asyncio.Queue[Outcome], strategy: Strategy, task: asyncio.Task[Outcome]) -> None:
        self._running.discard(task)
        if task.cancelled():
            results.put_nowait(TransportError(strategy=strategy.name, detail="cancelled"))
            return
        if (exc := task.exception()) is not None:
            results.put_nowait(TransportError(strategy=strategy.name, detail=f"{type(exc).__name__}: {exc!s}"))
            return
        results.put_nowait(task.result())
