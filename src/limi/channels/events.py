"""Channel request model."""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class InboundRequest:
    """Text received from an external channel, awaiting exactly one reply."""

    channel: str
    destination: str
    text: str
    metadata: dict[str, Any] = field(default_factory=dict)
    received_at: float = field(default_factory=time.monotonic)
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    def age(self) -> float:
        """Seconds elapsed since the request arrived."""
        return time.monotonic() - self.received_at
