from __future__ import annotations

import os
from pathlib import Path

import pytest
from fakes import RecordingDiagnostics, RecordingGateway


@pytest.fixture(autouse=True)
def _isolate_settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # keep a developer's LIMI_* variables and .env file out of the tests
    for key in list(os.environ):
        if key.startswith("LIMI_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def gateway() -> RecordingGateway:
    return RecordingGateway()


@pytest.fixture
def diagnostics() -> RecordingDiagnostics:
    return RecordingDiagnostics()
