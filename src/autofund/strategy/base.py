"""Strategy interface.

Both strategies implement the same explicit event methods. The store calls
``handle`` after every applied event; ``handle`` routes it to the matching
hook. Hooks are synchronous so event processing never blocks behind a
workflow: anything that needs to wait is started as a background task on
the desk.
"""

from abc import ABC

from autofund.exchange.events import EventType, FundingEvent
from autofund.logging import get_logger
from autofund.models import Borrow, Offer, Order, Trade
from autofund.strategy.desk import FundingDesk

logger = get_logger(__name__)


class FundingStrategy(ABC):
    """Base class for funding replacement strategies.

    Args:
        desk: Shared state access, cooldown and commands.
    """

    name = "base"

    def __init__(self, desk: FundingDesk) -> None:
        self.desk = desk

    def handle(self, event: FundingEvent) -> None:
        """Route a store event to the matching hook."""
        payload = event.payload
        if event.type == EventType.OFFER_UPDATED:
            assert isinstance(payload, Offer)
            self.on_offer_changed(payload)
        elif event.type in (EventType.BORROW_UPDATED, EventType.BORROW_CANCELLED):
            assert isinstance(payload, Borrow)
            self.on_borrow_changed(payload, cancelled=event.type == EventType.BORROW_CANCELLED)
        elif event.type in (
            EventType.ORDER_NEW,
            EventType.ORDER_UPDATED,
            EventType.ORDER_CANCELLED,
        ):
            assert isinstance(payload, Order)
            self.on_order_changed(payload, event.type)
        elif event.type == EventType.TRADE_EXECUTED:
            assert isinstance(payload, Trade)
            self.on_trade(payload)

    def on_offer_changed(self, offer: Offer) -> None:
        """A funding book level was added or changed."""

    def on_borrow_changed(self, borrow: Borrow, cancelled: bool = False) -> None:
        """A borrow was opened, updated or closed."""

    def on_order_changed(self, order: Order, event_type: EventType) -> None:
        """One of our own funding offers was placed, part filled or closed."""

    def on_trade(self, trade: Trade) -> None:
        """A funding trade executed against one of our offers."""

    async def on_timer(self) -> None:
        """Periodic tick, every ``StrategySettings.interval`` seconds."""

    async def before_shutdown(self) -> None:
        """Last chance to clean up before the connection closes."""
        logger.info("strategy_stopping", strategy=self.name)
