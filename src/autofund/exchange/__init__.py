"""Exchange gateway layer -- Bitfinex stream and REST integration."""

from autofund.exchange.bitfinex_client import BitfinexGateway
from autofund.exchange.client import ExchangeGateway
from autofund.exchange.events import EventType, FundingEvent

__all__ = ["BitfinexGateway", "EventType", "ExchangeGateway", "FundingEvent"]
