"""Live funding executor via the exchange gateway.

Every command really changes the account. Rejections from the exchange are
treated as "no effect happened": they are logged and reported back to the
caller through the return value, never raised.
"""

from collections.abc import Sequence
from decimal import Decimal

from autofund.exceptions import CommandError
from autofund.exchange.client import ExchangeGateway
from autofund.execution.executor import FundingExecutor
from autofund.lock import SerializationLock
from autofund.logging import get_logger
from autofund.models import Borrow

logger = get_logger(__name__)


class LiveExecutor(FundingExecutor):
    """Real executor that delegates to an exchange gateway.

    REST returns are issued strictly one at a time through a SerializationLock
    so a burst of returns from overlapping fills does not race the exchange's
    nonce check.

    Args:
        gateway: The connected exchange gateway.
    """

    def __init__(self, gateway: ExchangeGateway) -> None:
        self._gateway = gateway
        self._api_lock = SerializationLock()

    async def borrow(self, amount: Decimal, rate: Decimal, period: int) -> bool:
        try:
            await self._gateway.submit_funding_offer(amount, rate, period)
        except CommandError as exc:
            logger.error("borrow_request_failed", amount=str(amount), rate=str(rate), error=str(exc))
            return False
        logger.info("borrow_requested", amount=str(amount), rate=str(rate), period=period)
        return True

    async def cancel_offers(self, offer_ids: Sequence[int]) -> list[int]:
        if not offer_ids:
            return []

        logger.info("cancelling_offers", count=len(offer_ids))
        cancelled: list[int] = []
        for offer_id in offer_ids:
            try:
                await self._gateway.cancel_funding_offer(offer_id)
                cancelled.append(offer_id)
            except CommandError as exc:
                logger.warning("cancel_offer_failed", offer_id=offer_id, error=str(exc))
        return cancelled

    async def return_borrows(self, borrows: Sequence[Borrow]) -> list[int]:
        returned: list[int] = []
        for borrow in borrows:
            try:
                await self._api_lock.run_locked(
                    lambda b=borrow: self._gateway.close_funding(b.id)
                )
            except CommandError as exc:
                logger.error(
                    "return_borrow_failed",
                    borrow_id=borrow.id,
                    amount=str(borrow.amount),
                    error=str(exc),
                )
                continue
            logger.info("borrow_returned", borrow_id=borrow.id, amount=str(borrow.amount))
            returned.append(borrow.id)
        return returned
