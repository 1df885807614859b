"""Abstract funding command executor.

Both LiveExecutor and DryRunExecutor implement this ABC, so strategy code is
identical whether or not the account is really being changed. The concrete
executor is chosen at startup from StrategySettings.dry_run.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from decimal import Decimal

from autofund.models import Borrow


class FundingExecutor(ABC):
    """Abstract base class for the mutating funding commands."""

    @abstractmethod
    async def borrow(self, amount: Decimal, rate: Decimal, period: int) -> bool:
        """Request new funding at a limit rate.

        Returns:
            True if the request was sent, False if it was rejected or suppressed.
        """
        ...

    @abstractmethod
    async def cancel_offers(self, offer_ids: Sequence[int]) -> list[int]:
        """Cancel a set of our own open funding offers.

        Returns:
            The ids whose cancel request was sent.
        """
        ...

    @abstractmethod
    async def return_borrows(self, borrows: Sequence[Borrow]) -> list[int]:
        """Close out active borrows, one request each.

        A rejected return is logged and skipped; the rest are still attempted.

        Returns:
            The ids that were returned.
        """
        ...
