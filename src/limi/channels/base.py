"""Messaging gateway interface."""

from __future__ import annotations

from typing import Protocol


class MessagingGateway(Protocol):
    """Deliver one plain-text reply; report success instead of raising."""

    async def deliver(self, channel: str, destination: str, text: str) -> bool: ...
