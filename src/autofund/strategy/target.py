"""Staged target rates: ratchet expensive borrowing down one tier at a time.

On each timer tick the strategy cancels its open borrow orders, finds the
highest target rate that some borrows are paying more than, and places one
order for that amount at that rate. As fills arrive, borrows above the tier
are returned as soon as enough new funding has come in to cover them.
"""

from decimal import Decimal

from autofund.exchange.events import EventType
from autofund.lock import SerializationLock
from autofund.logging import get_logger
from autofund.models import Borrow, Order
from autofund.strategy.base import FundingStrategy
from autofund.strategy.calculations import annual_to_daily_rate, total_amount
from autofund.strategy.desk import FundingDesk

logger = get_logger(__name__)


class TargetRateStrategy(FundingStrategy):
    """Runs on the strategy timer.

    Fill handling and the timer cycle share one SerializationLock, so the
    counters below are only ever touched by one coroutine at a time.
    """

    name = "target"

    def __init__(self, desk: FundingDesk) -> None:
        super().__init__(desk)
        self.too_expensive: list[Borrow] = []
        self.pending_return = Decimal("0")
        self.filled_so_far = Decimal("0")
        # Per order, so a cancel notification for last cycle's order is not counted again
        self._filled_by_order: dict[int, Decimal] = {}
        self.fill_lock = SerializationLock()

    def on_order_changed(self, order: Order, event_type: EventType) -> None:
        # Fills can flood in and overlap, so they are serialised here
        self.desk.spawn(
            self.fill_lock.run_locked(lambda: self._on_fill(order, event_type)),
            name=f"fill-{order.id}",
        )

    async def _on_fill(self, order: Order, event_type: EventType) -> None:
        if order.amount >= 0:
            # Our lending offers bring in no funding to return borrows with
            return

        filled = abs(order.filled)
        seen = self._filled_by_order.get(order.id, Decimal("0"))

        if event_type == EventType.ORDER_CANCELLED:
            self._filled_by_order.pop(order.id, None)
        else:
            self._filled_by_order[order.id] = max(filled, seen)

        if filled <= seen:
            return

        executed = filled - seen
        self.filled_so_far += executed
        self.pending_return += executed
        logger.info(
            "fill_detected",
            order_id=order.id,
            executed=executed,
            remaining=abs(order.amount_remaining),
            amount=abs(order.amount),
            pending_return=self.pending_return,
        )
        await self.return_excess_borrows()

    async def return_excess_borrows(self) -> Decimal:
        """Return too-expensive borrows that unspent fills now cover.

        Returns:
            Total amount returned.
        """
        tolerance = self.desk.settings.return_tolerance
        returned = Decimal("0")

        while self.pending_return > 0 and self.too_expensive:
            borrow = next(
                (b for b in self.too_expensive if b.amount <= self.pending_return + tolerance),
                None,
            )
            if borrow is None:
                break

            logger.info("returning_borrow", borrow_id=borrow.id, amount=borrow.amount)
            if borrow.id not in await self.desk.return_borrows([borrow]):
                # Rejected: the borrow is still open and the fill is still unspent
                logger.warning("return_not_confirmed", borrow_id=borrow.id)
                break

            returned += borrow.amount
            self.pending_return -= borrow.amount
            self.too_expensive = [b for b in self.too_expensive if b.id != borrow.id]

        logger.info(
            "excess_borrows_returned",
            returned=f"{returned:.2f}",
            outstanding=f"{self.pending_return:.2f}",
        )
        return returned

    async def on_timer(self) -> None:
        await self.fill_lock.run_locked(self._run_cycle)

    async def _run_cycle(self) -> None:
        await self.cancel_all_orders()

        self.too_expensive = []
        self.filled_so_far = Decimal("0")

        borrows = self.desk.store.borrows
        if not borrows:
            return

        settings = self.desk.settings
        for annual_pct in settings.target_rates:
            rate = annual_to_daily_rate(annual_pct)
            expensive = [b for b in borrows if b.rate > rate]
            logger.info(
                "borrows_above_target",
                count=len(expensive),
                target_apr=str(annual_pct),
                target_rate=f"{rate:.8f}",
            )
            if not expensive:
                continue

            self.too_expensive = expensive
            amount_to_replace = total_amount(expensive)
            to_borrow = amount_to_replace - self.pending_return
            logger.info(
                "target_replacement",
                want_to_replace=str(amount_to_replace),
                unspent_fills=str(self.pending_return),
                borrow_now=str(to_borrow),
            )

            if to_borrow >= settings.min_borrow_size:
                await self.desk.borrow(to_borrow, rate)
            else:
                logger.info("target_borrow_below_min_size", amount=str(to_borrow))
            # only one tier is attacked per tick
            return

        logger.info("target_nothing_to_do")

    def _open_borrow_orders(self) -> list[Order]:
        return [o for o in self.desk.store.orders if o.amount < 0]

    async def cancel_all_orders(self) -> None:
        """Cancel our open borrow orders and wait (a bounded while) for them to go."""
        settings = self.desk.settings
        await self.desk.cancel_orders([o.id for o in self._open_borrow_orders()])

        tries = 0
        while tries < settings.cancel_drain_attempts and self._open_borrow_orders():
            tries += 1
            await self.desk.sleep(settings.cancel_drain_delay)

    async def before_shutdown(self) -> None:
        await super().before_shutdown()
        await self.desk.cancel_orders([o.id for o in self._open_borrow_orders()])
