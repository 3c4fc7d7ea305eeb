"""Console gateway used by the CLI."""

from __future__ import annotations

from rich.console import Console


class StdoutGateway:
    name = "stdout"

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console()
        self.delivered: list[tuple[str, str]] = []

    async def deliver(self, channel: str, destination: str, text: str) -> bool:
        self.delivered.append((destination, text))
        self._console.print(text, markup=False, highlight=False)
        return True
