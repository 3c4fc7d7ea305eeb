import asyncio
import time

import pytest
from fakes import (
    NEVER,
    FakeCompletionClient,
    RecordingDiagnostics,
    Scripted,
    empty,
    make_strategy,
    success,
    transport_error,
)

from limi.errors import AllStrategiesExhausted
from limi.synthesis.executor import StrategyExecutor
from limi.synthesis.hedge import HedgeCoordinator
from limi.synthesis.strategy import Empty, NoneAvailable, Timeout, TransportError, Won


def _coordinator(
    client: FakeCompletionClient,
    strategies: list,
    escalation=None,
    diagnostics: RecordingDiagnostics | None = None,
) -> HedgeCoordinator:
    return HedgeCoordinator(StrategyExecutor(client), strategies, escalation, diagnostics)


@pytest.mark.asyncio
async def test_first_to_finish_wins_regardless_of_declaration_order() -> None:
    client = FakeCompletionClient(
        {
            "a": Scripted(0.2, success("a", "answer from a")),
            "b": Scripted(0.05, success("b", "answer from b")),
        }
    )
    coordinator = _coordinator(client, [make_strategy("a", timeout=0.4), make_strategy("b", timeout=1.0)])

    result = await coordinator.race("q")

    assert result == Won(text="answer from b", strategy="b", escalated=False)


@pytest.mark.asyncio
async def test_all_strategies_start_concurrently() -> None:
    client = FakeCompletionClient(
        {
            "a": Scripted(0.1, empty("a")),
            "b": Scripted(0.1, empty("b")),
            "c": Scripted(0.1, success("c", "ok")),
        }
    )
    coordinator = _coordinator(client, [make_strategy(name) for name in "abc"])

    start = time.monotonic()
    result = await coordinator.race("q")

    assert isinstance(result, Won)
    assert time.monotonic() - start < 0.25
    assert sorted(client.called()) == ["a", "b", "c"]


@pytest.mark.asyncio
async def test_failed_fast_strategy_does_not_gate_a_later_success() -> None:
    client = FakeCompletionClient(
        {
            "fast": Scripted(0.01, transport_error("fast")),
            "slow": Scripted(0.1, success("slow", "made it")),
        }
    )
    coordinator = _coordinator(client, [make_strategy("fast"), make_strategy("slow")], make_strategy("esc"))

    result = await coordinator.race("q")

    assert result == Won(text="made it", strategy="slow", escalated=False)
    assert "esc" not in client.called()


@pytest.mark.asyncio
async def test_all_empty_triggers_exactly_one_escalation(diagnostics: RecordingDiagnostics) -> None:
    client = FakeCompletionClient(
        {
            "a": Scripted(0.0, empty("a")),
            "b": Scripted(0.01, empty("b")),
            "esc": Scripted(0.0, empty("esc")),
        }
    )
    coordinator = _coordinator(
        client, [make_strategy("a"), make_strategy("b")], make_strategy("esc", max_tokens=800), diagnostics
    )

    result = await coordinator.race("q")

    assert isinstance(result, NoneAvailable)
    assert client.called().count("esc") == 1
    assert [outcome.kind for outcome in result.attempts] == ["empty", "empty", "empty"]
    assert "race.escalation" in diagnostics.names()
    assert diagnostics.names()[-1] == "race.exhausted"


@pytest.mark.asyncio
async def test_escalation_success_is_marked_escalated() -> None:
    client = FakeCompletionClient(
        {
            "a": Scripted(NEVER, success("a", "never")),
            "b": Scripted(0.0, transport_error("b")),
            "esc": Scripted(0.0, success("esc", "deep answer")),
        }
    )
    coordinator = _coordinator(client, [make_strategy("a", timeout=0.05), make_strategy("b")], make_strategy("esc"))

    result = await coordinator.race("q")

    assert result == Won(text="deep answer", strategy="esc", escalated=True)


@pytest.mark.asyncio
async def test_no_escalation_configured_reports_none_available() -> None:
    client = FakeCompletionClient({"a": Scripted(0.0, empty("a"))})
    result = await _coordinator(client, [make_strategy("a")]).race("q")
    assert isinstance(result, NoneAvailable)
    assert isinstance(result.attempts[0], Empty)


@pytest.mark.asyncio
async def test_empty_strategy_list_goes_straight_to_escalation() -> None:
    client = FakeCompletionClient({"esc": Scripted(0.0, success("esc", "only me"))})
    result = await _coordinator(client, [], make_strategy("esc")).race("q")
    assert result == Won(text="only me", strategy="esc", escalated=True)


@pytest.mark.asyncio
async def test_losers_are_not_retried_and_finish_in_background() -> None:
    client = FakeCompletionClient(
        {
            "winner": Scripted(0.0, success("winner", "first")),
            "loser": Scripted(NEVER, success("loser", "never")),
        }
    )
    coordinator = _coordinator(client, [make_strategy("loser", timeout=0.05), make_strategy("winner")])

    result = await coordinator.race("q")
    assert isinstance(result, Won)

    await asyncio.sleep(0.1)
    assert client.called().count("loser") == 1
    assert client.settled == ["winner"]


@pytest.mark.asyncio
async def test_timeouts_and_transport_errors_are_collected_before_escalating() -> None:
    client = FakeCompletionClient(
        {
            "stall": Scripted(NEVER, success("stall", "never")),
            "broken": Scripted(0.0, transport_error("broken")),
        }
    )
    result = await _coordinator(client, [make_strategy("stall", timeout=0.05), make_strategy("broken")]).race("q")

    assert isinstance(result, NoneAvailable)
    assert isinstance(result.attempts[0], TransportError)
    assert isinstance(result.attempts[1], Timeout)


def test_exhaustion_reason_names_each_attempt() -> None:
    reason = AllStrategiesExhausted((Empty(strategy="a"), Timeout(strategy="b")))
    assert str(reason) == "a=empty, b=timeout"
    assert reason.attempts[1].kind == "timeout"
    assert str(AllStrategiesExhausted(())) == "no strategies configured"
