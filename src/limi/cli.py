"""Limi command line interface."""

from __future__ import annotations

import asyncio
import contextlib
import signal

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from limi.app.runtime import SynthesisRuntime
from limi.channels.stdout import StdoutGateway
from limi.channels.telegram import TelegramChannel, TelegramConfig
from limi.config import Settings, get_settings
from limi.errors import ConfigurationError
from limi.logging_utils import configure_logging
from limi.synthesis.guard import Emission

app = typer.Typer(name="limi", help="Short answers within a hard latency budget.", add_completion=False)
console = Console()


def _load_settings() -> Settings:
    try:
        settings = get_settings()
    except (ConfigurationError, ValidationError) as exc:
        typer.echo(f"configuration error: {exc}", err=True)
        raise typer.Exit(1) from exc
    configure_logging(profile=settings.log_profile, level=settings.log_level)
    return settings


@app.command()
def ask(
    text: str = typer.Argument(..., help="Question to answer"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show reply source and latency"),
) -> None:
    """Run one question through the full pipeline and print the reply."""
    settings = _load_settings()
    emission = asyncio.run(_ask(settings, text))
    if verbose:
        typer.echo(f"[{emission.source}] {int(emission.elapsed_seconds * 1000)}ms", err=True)
    if not emission.delivered:
        raise typer.Exit(1)


async def _ask(settings: Settings, text: str) -> Emission:
    async with SynthesisRuntime(settings) as runtime:
        runtime.router.register("stdout", StdoutGateway(console))
        return await runtime.ask(text)


@app.command()
def strategies() -> None:
    """Show the configured strategies and timing budget."""
    settings = _load_settings()

    table = Table(title="strategies")
    table.add_column("name", no_wrap=True)
    table.add_column("tier", no_wrap=True)
    table.add_column("model")
    table.add_column("endpoint")
    table.add_column("max tokens", justify="right")
    table.add_column("timeout (s)", justify="right")
    for strategy in settings.build_strategies():
        table.add_row(
            strategy.name,
            "hedged",
            strategy.model,
            strategy.endpoint,
            str(strategy.max_tokens),
            f"{strategy.timeout_seconds:g}",
        )
    if (escalation := settings.build_escalation()) is not None:
        table.add_row(
            escalation.name,
            "escalation",
            escalation.model,
            escalation.endpoint,
            str(escalation.max_tokens),
            f"{escalation.timeout_seconds:g}",
        )
    console.print(table)
    console.print(
        f"deadline: {settings.deadline_seconds:g}s  gateway window: {settings.gateway_window_seconds:g}s  "
        f"reply ceiling: {settings.max_sentences} sentences / {settings.max_chars} chars"
    )


@app.command()
def telegram() -> None:
    """Answer Telegram messages until interrupted."""
    settings = _load_settings()
    if not settings.telegram_token:
        typer.echo("configuration error: LIMI_TELEGRAM_TOKEN is not set", err=True)
        raise typer.Exit(1)
    asyncio.run(_serve_telegram(settings))


async def _serve_telegram(settings: Settings) -> None:
    async with SynthesisRuntime(settings) as runtime:
        channel = TelegramChannel(
            TelegramConfig(token=settings.telegram_token or "", allow_from=settings.allowed_senders),
            runtime.handle,
        )
        runtime.router.register(channel.name, channel)

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop_event.set)

        task = asyncio.create_task(channel.start())
        task.add_done_callback(lambda _task: stop_event.set())
        try:
            await stop_event.wait()
        finally:
            await channel.stop()
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
