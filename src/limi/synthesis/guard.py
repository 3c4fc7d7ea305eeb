"""Deadline guard: one reply per request, on time."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from functools import partial
from typing import Literal

from loguru import logger

from limi.channels.base import MessagingGateway
from limi.channels.events import InboundRequest
from limi.errors import DeadlineExceeded
from limi.synthesis.diagnostics import DiagnosticsSink, NullDiagnostics, SafeDiagnostics
from limi.synthesis.finalizer import FinalAnswer, ReplyFinalizer
from limi.synthesis.hedge import HedgeCoordinator

DEGRADED_TEXT = "The service is currently slow, please try again."

EmissionSource = Literal["answer", "uncertain", "deadline", "fault"]


class ResponseGate:
    """Single-assignment flag guarding the reply of one request."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._owner: str | None = None

    @property
    def is_set(self) -> bool:
        return self._owner is not None

    @property
    def owner(self) -> str | None:
        return self._owner

    def try_set(self, owner: str) -> bool:
        """Set the gate; only the first caller gets True."""
        with self._lock:
            if self._owner is not None:
                return False
            self._owner = owner
            return True


@dataclass(frozen=True)
class Emission:
    """The one reply written for a request."""

    text: str
    source: EmissionSource
    delivered: bool
    elapsed_seconds: float


class DeadlineGuard:
    """Race the hedge-and-finalize pipeline against a wall-clock deadline.

    The deadline is measured from ``InboundRequest.received_at``. The gateway
    is called exactly once per request, by whichever of the pipeline or the
    deadline finishes first. A pipeline that finishes late is left to run so
    its answer can be logged, but it is never delivered.
    """

    def __init__(
        self,
        coordinator: HedgeCoordinator,
        finalizer: ReplyFinalizer,
        gateway: MessagingGateway,
        *,
        deadline_seconds: float,
        degraded_text: str = DEGRADED_TEXT,
        diagnostics: DiagnosticsSink | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._finalizer = finalizer
        self._gateway = gateway
        self._deadline_seconds = deadline_seconds
        self._degraded_text = degraded_text
        self._diagnostics = NullDiagnostics() if diagnostics is None else SafeDiagnostics(diagnostics)
        self._late: set[asyncio.Task[FinalAnswer]] = set()

    async def handle(self, request: InboundRequest) -> Emission:
        with logger.contextualize(request_id=request.request_id):
            gate = ResponseGate()
            pipeline = asyncio.create_task(self._compute(request), name=f"pipeline:{request.request_id}")
            try:
                answer = await self._await_pipeline(request, pipeline)
            except DeadlineExceeded as exc:
                logger.warning("deadline.fired {}", exc)
                self._diagnostics.record("deadline.fired", {"deadline_s": self._deadline_seconds})
                self._late.add(pipeline)
                pipeline.add_done_callback(partial(self._log_late, request))
                return await self._emit(gate, request, self._degraded_text, "deadline")
            except Exception:
                logger.exception("reply.pipeline.error")
                self._diagnostics.record("reply.fault", {"request_id": request.request_id})
                return await self._emit(gate, request, self._degraded_text, "fault")
            return await self._emit(gate, request, answer.text, answer.source)

    async def _await_pipeline(self, request: InboundRequest, pipeline: asyncio.Task[FinalAnswer]) -> FinalAnswer:
        remaining = max(0.0, self._deadline_seconds - request.age())
        try:
            async with asyncio.timeout(remaining):
                return await asyncio.shield(pipeline)
        except TimeoutError as exc:
            raise DeadlineExceeded(f"no reply within {self._deadline_seconds}s") from exc

    async def _compute(self, request: InboundRequest) -> FinalAnswer:
        result = await self._coordinator.race(request.text)
        answer = self._finalizer.finalize(result)
        self._diagnostics.record(
            "reply.final",
            {"source": answer.source, "truncated": answer.truncated, "chars": len(answer.text)},
        )
        return answer

    async def _emit(self, gate: ResponseGate, request: InboundRequest, text: str, source: EmissionSource) -> Emission:
        if not gate.try_set(source):
            logger.error("reply.gate.already_set owner={} source={}", gate.owner, source)
            return Emission(text=text, source=source, delivered=False, elapsed_seconds=request.age())

        try:
            delivered = await self._gateway.deliver(request.channel, request.destination, text)
        except Exception:
            logger.exception("reply.deliver.error channel={}", request.channel)
            delivered = False

        elapsed = request.age()
        logger.info("reply.emitted source={} delivered={} elapsed_ms={}", source, delivered, int(elapsed * 1000))
        self._diagnostics.record(
            "reply.emitted",
            {
                "source": source,
                "delivered": delivered,
                "channel": request.channel,
                "elapsed_ms": int(elapsed * 1000),
            },
        )
        return Emission(text=text, source=source, delivered=delivered, elapsed_seconds=elapsed)

    def _log_late(self, request: InboundRequest, pipeline: asyncio.Task[FinalAnswer]) -> None:
        self._late.discard(pipeline)
        if pipeline.cancelled():
            return
        if (exc := pipeline.exception()) is not None:
            logger.debug("reply.late request_id={} error={!s}", request.request_id, exc)
            return
        answer = pipeline.result()
        logger.info(
            "reply.late request_id={} source={} elapsed_ms={}",
            request.request_id,
            answer.source,
            int(request.age() * 1000),
        )
        self._diagnostics.record(
            "reply.late",
            {"request_id": request.request_id, "source": answer.source, "text": answer.text},
        )
