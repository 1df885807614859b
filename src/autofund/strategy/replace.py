"""Continuous replacement: swap expensive borrows for cheaper book liquidity.

Every funding book update re-evaluates whether some prefix of the borrows
(most expensive first) can be refinanced from offers that are at least
``min_improvement`` cheaper than the cheapest borrow in that prefix. The
largest prefix that qualifies wins, so one action replaces as much expensive
debt as the book can absorb.

Workflow once a match is found:
1. Pause further evaluation and record the PendingReplacement.
2. Place one limit borrow sized to the prefix at the slippage-aware rate.
3. Poll a fixed number of times for a fill on that order.
4. Cancel whatever is left of the order.
5. If anything filled, return the replaced borrows the fill covers.
6. Settle, pause again and clear the PendingReplacement.
"""

import asyncio
from decimal import Decimal

from autofund.exchange.events import EventType
from autofund.logging import get_logger
from autofund.models import Borrow, Offer, Order, PendingReplacement, Trade
from autofund.strategy.base import FundingStrategy
from autofund.strategy.calculations import apr, borrows_to_return, total_amount
from autofund.strategy.desk import FundingDesk

logger = get_logger(__name__)


class ReplaceIfCheaperStrategy(FundingStrategy):
    """Runs on every funding book update.

    At most one PendingReplacement exists at any time: evaluation is refused
    while one is active or while the desk is paused.
    """

    name = "replace"

    def __init__(self, desk: FundingDesk) -> None:
        super().__init__(desk)
        self.pending: PendingReplacement | None = None

    def on_offer_changed(self, offer: Offer) -> None:
        self.replace_borrowing_if_cheaper()

    def on_order_changed(self, order: Order, event_type: EventType) -> None:
        if self.pending is None or order.amount >= 0:
            return
        if event_type in (EventType.ORDER_NEW, EventType.ORDER_UPDATED):
            self.pending.order_ids.add(order.id)

    def on_trade(self, trade: Trade) -> None:
        pending = self.pending
        if pending is None:
            return
        if pending.order_ids:
            if trade.offer_id not in pending.order_ids:
                return
        elif trade.amount >= 0:
            # Before the order id is known, only borrower-side trades can be ours
            return

        pending.filled_count += 1
        pending.filled_amount += abs(trade.amount)
        logger.info(
            "replacement_fill",
            offer_id=trade.offer_id,
            amount=abs(trade.amount),
            filled_amount=pending.filled_amount,
            target=pending.amount,
        )

    def replace_borrowing_if_cheaper(self) -> asyncio.Task | None:  # type: ignore[type-arg]
        """Look for a set of borrows that the book can refinance more cheaply.

        Returns:
            The workflow task if a replacement was started, otherwise None.
        """
        if self.desk.is_paused() or self.pending is not None:
            return None

        borrows = self.desk.store.borrows
        book = self.desk.store.offers
        if not borrows or not book:
            return None

        settings = self.desk.settings
        seeking = borrows[0].rate - settings.min_improvement
        if book[0].rate > seeking:
            return None

        # Start with every borrow and work back to just the most expensive one
        for size in range(len(borrows), 0, -1):
            subset = borrows[:size]
            cost = self.desk.compute_replacement_cost(subset)
            cheaper_book = self.desk.offers_cheaper_than(cost.best_rate)
            available = total_amount(cheaper_book)

            if cost.total_amount >= settings.min_borrow_size and available > cost.total_amount:
                target_rate = self.desk.find_fill_rate(cheaper_book, cost.total_amount)

                self.desk.log_state()
                logger.info(
                    "replacement_match_found",
                    replace_count=size,
                    borrow_count=len(borrows),
                    needed=str(cost.total_amount),
                    available=str(available),
                    replaces_rate=str(cost.best_rate),
                    replaces_apr=f"{apr(cost.best_rate):.4f}",
                    target_rate=str(target_rate),
                    target_apr=f"{apr(target_rate):.4f}",
                )
                return self._start_replacement(cost.total_amount, target_rate, subset)

        return None

    def _start_replacement(
        self, amount: Decimal, rate: Decimal, to_replace: list[Borrow]
    ) -> asyncio.Task:  # type: ignore[type-arg]
        # Pending and the pause are set before anything awaits so a burst of
        # book updates cannot start a second replacement.
        self.desk.pause(self.desk.settings.borrow_cooldown)
        pending = PendingReplacement(
            amount=amount, rate=rate, to_replace=list(to_replace), started_at=self.desk.now()
        )
        self.pending = pending
        return self.desk.spawn(self._run_replacement(pending), name="replace-borrowing")

    async def _run_replacement(self, pending: PendingReplacement) -> None:
        settings = self.desk.settings
        logger.info("replacement_begin", amount=str(pending.amount), rate=str(pending.rate))
        try:
            await self.desk.borrow(pending.amount, pending.rate)

            tries = 0
            while tries < settings.fill_poll_attempts and pending.filled_count == 0:
                logger.debug("waiting_for_fill", attempt=tries + 1)
                await self.desk.sleep(settings.fill_poll_delay)
                tries += 1

            await self.desk.cancel_orders(sorted(pending.order_ids))

            if pending.filled_count > 0:
                still_active = [
                    b for b in pending.to_replace if self.desk.store.get_borrow(b.id) is not None
                ]
                to_return = borrows_to_return(still_active, pending.filled_amount)
                logger.info(
                    "returning_replaced_borrows",
                    filled=str(pending.filled_amount),
                    returning=str(total_amount(to_return)),
                    items=len(to_return),
                )
                await self.desk.return_borrows(to_return)
            else:
                logger.info("replacement_no_fills", note="returning nothing")

            await self.desk.sleep(settings.settle_delay)
            self.desk.log_state()
        finally:
            self.desk.pause(settings.replace_cooldown)
            self.pending = None
            logger.info(
                "replacement_end", elapsed=f"{self.desk.now() - pending.started_at:.1f}s"
            )
