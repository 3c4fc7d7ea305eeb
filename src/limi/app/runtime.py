"""Application runtime: process-wide clients and the per-request pipeline."""

from __future__ import annotations

from types import TracebackType

from loguru import logger

from limi.channels.events import InboundRequest
from limi.channels.manager import GatewayRouter
from limi.config import Settings
from limi.integrations.openai_client import OpenAICompletionClient, build_openai
from limi.synthesis.diagnostics import (
    DiagnosticsSink,
    FanoutDiagnostics,
    JsonlDiagnostics,
    LogDiagnostics,
    SafeDiagnostics,
)
from limi.synthesis.executor import CompletionClient, StrategyExecutor
from limi.synthesis.finalizer import ReplyFinalizer
from limi.synthesis.guard import DeadlineGuard, Emission
from limi.synthesis.hedge import HedgeCoordinator


def build_diagnostics(settings: Settings) -> DiagnosticsSink:
    sinks: list[DiagnosticsSink] = [SafeDiagnostics(LogDiagnostics())]
    if settings.diagnostics_path is not None:
        sinks.append(SafeDiagnostics(JsonlDiagnostics(settings.diagnostics_path)))
    return FanoutDiagnostics(sinks)


class SynthesisRuntime:
    """Owns the completion client, gateways and the assembled pipeline.

    Clients live as long as the runtime; use it as an async context manager so
    they are closed on shutdown.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: CompletionClient | None = None,
        router: GatewayRouter | None = None,
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self.settings = settings
        self.router = router or GatewayRouter()
        self.diagnostics = diagnostics or build_diagnostics(settings)
        self._owned_client: OpenAICompletionClient | None = None
        if client is None:
            self._owned_client = OpenAICompletionClient(
                build_openai(settings.api_key, settings.api_base),
                persona_prompt=settings.persona_prompt,
            )
            client = self._owned_client

        self.executor = StrategyExecutor(client, self.diagnostics)
        self.coordinator = HedgeCoordinator(
            self.executor,
            settings.build_strategies(),
            settings.build_escalation(),
            self.diagnostics,
        )
        self.finalizer = ReplyFinalizer(
            max_sentences=settings.max_sentences,
            max_chars=settings.max_chars,
            uncertain_text=settings.uncertain_text,
        )
        self.guard = DeadlineGuard(
            self.coordinator,
            self.finalizer,
            self.router,
            deadline_seconds=settings.deadline_seconds,
            degraded_text=settings.degraded_text,
            diagnostics=self.diagnostics,
        )

    async def handle(self, request: InboundRequest) -> Emission:
        return await self.guard.handle(request)

    async def ask(self, text: str, *, channel: str = "stdout", destination: str = "console") -> Emission:
        return await self.handle(InboundRequest(channel=channel, destination=destination, text=text))

    async def aclose(self) -> None:
        if self._owned_client is not None:
            await self._owned_client.close()
            self._owned_client = None
            logger.debug("runtime.client.closed")

    async def __aenter__(self) -> SynthesisRuntime:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
