"""Dry-run executor: logs every intended action, sends nothing.

The decision logic runs exactly as it would live, so the logs show what the
bot would have done. Ideal for the first run against a real account.
"""

from collections.abc import Sequence
from decimal import Decimal

from autofund.execution.executor import FundingExecutor
from autofund.logging import get_logger
from autofund.models import Borrow

logger = get_logger(__name__)


class DryRunExecutor(FundingExecutor):
    """Executor that suppresses every mutating command.

    borrow() reports False so callers know no order will appear. Cancels and
    returns report nothing done for the same reason.
    """

    def __init__(self) -> None:
        logger.warning("dry_run_enabled", note="Borrowing will not be changed")

    async def borrow(self, amount: Decimal, rate: Decimal, period: int) -> bool:
        logger.info(
            "dry_run_borrow",
            dry_run=True,
            amount=str(amount),
            rate=str(rate),
            period=period,
        )
        return False

    async def cancel_offers(self, offer_ids: Sequence[int]) -> list[int]:
        if offer_ids:
            logger.info("dry_run_cancel_offers", dry_run=True, offer_ids=list(offer_ids))
        return []

    async def return_borrows(self, borrows: Sequence[Borrow]) -> list[int]:
        if borrows:
            logger.info(
                "dry_run_return_borrows",
                dry_run=True,
                borrow_ids=[b.id for b in borrows],
                amount=str(sum((b.amount for b in borrows), Decimal("0"))),
            )
        return []
