"""Abstract exchange gateway interface.

Defines the contract between the bot and the exchange. The state store and
strategies depend only on typed events coming out of this interface and on
the three funding commands going in, keeping Bitfinex-specific details
isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from autofund.exchange.events import EventHandler


class ExchangeGateway(ABC):
    """Abstract base class for the streaming exchange connection."""

    @abstractmethod
    def set_event_handler(self, handler: EventHandler) -> None:
        """Register the callback that receives every decoded event, in arrival order."""
        ...

    @abstractmethod
    async def run(self) -> None:
        """Connect, authenticate and pump push messages until close() is called.

        Transport failures are retried internally with backoff.

        Raises:
            AuthenticationError: If the exchange rejects the API keys.
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Stop the receive loop and release connection resources."""
        ...

    @abstractmethod
    async def submit_funding_offer(
        self, amount: Decimal, rate: Decimal, period: int
    ) -> None:
        """Place a limit offer to borrow ``amount`` at ``rate`` for ``period`` days."""
        ...

    @abstractmethod
    async def cancel_funding_offer(self, offer_id: int) -> None:
        """Cancel one of our own open funding offers."""
        ...

    @abstractmethod
    async def close_funding(self, borrow_id: int) -> None:
        """Return an active borrow to the lender.

        Raises:
            CommandError: If the exchange rejects the request.
        """
        ...
