"""Channel adapters and gateways."""

from limi.channels.base import MessagingGateway
from limi.channels.events import InboundRequest
from limi.channels.manager import GatewayRouter
from limi.channels.stdout import StdoutGateway

__all__ = ["GatewayRouter", "InboundRequest", "MessagingGateway", "StdoutGateway"]
