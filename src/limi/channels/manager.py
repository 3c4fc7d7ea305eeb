"""Gateway router."""

from __future__ import annotations

from loguru import logger

from limi.channels.base import MessagingGateway


class GatewayRouter:
    """Dispatch replies to the gateway registered for their channel."""

    def __init__(self) -> None:
        self._gateways: dict[str, MessagingGateway] = {}

    def register(self, channel: str, gateway: MessagingGateway) -> None:
        self._gateways[channel] = gateway

    async def deliver(self, channel: str, destination: str, text: str) -> bool:
        gateway = self._gateways.get(channel)
        if gateway is None:
            logger.warning("gateway.unknown_channel channel={}", channel)
            return False
        try:
            return await gateway.deliver(channel, destination, text)
        except Exception:
            logger.exception("gateway.deliver.error channel={} destination={}", channel, destination)
            return False
