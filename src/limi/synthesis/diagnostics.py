"""Diagnostics sinks for pipeline state transitions."""

from __future__ import annotations

import json
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from loguru import logger


class DiagnosticsSink(Protocol):
    def record(self, event: str, payload: dict[str, Any]) -> None: ...


class LogDiagnostics:
    """Write each transition as a loguru record."""

    def __init__(self, level: str = "DEBUG") -> None:
        self._level = level

    def record(self, event: str, payload: dict[str, Any]) -> None:
        logger.log(self._level, "{} {}", event, " ".join(f"{key}={value}" for key, value in payload.items()))


class JsonlDiagnostics:
    """Append each transition as one JSON line."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: str, payload: dict[str, Any]) -> None:
        entry = {"event": event, "ts": datetime.now(UTC).isoformat(), **payload}
        with self._path.open("a", encoding="utf-8") as file:
            file.write(json.dumps(entry, ensure_ascii=False, default=str) + "\n")


class FanoutDiagnostics:
    def __init__(self, sinks: Iterable[DiagnosticsSink]) -> None:
        self._sinks = list(sinks)

    def record(self, event: str, payload: dict[str, Any]) -> None:
        for sink in self._sinks:
            sink.record(event, payload)


class SafeDiagnostics:
    """Shield the reply path from failures of the wrapped sink."""

    def __init__(self, sink: DiagnosticsSink) -> None:
        self._sink = sink

    def record(self, event: str, payload: dict[str, Any]) -> None:
        try:
            self._sink.record(event, dict(payload))
        except Exception as exc:
            logger.debug("diagnostics.record.failed event={} error={!s}", event, exc)


class NullDiagnostics:
    def record(self, event: str, payload: dict[str, Any]) -> None:
        return None
