"""Shared bookkeeping and commands used by every strategy.

A FundingDesk is built once and handed to whichever strategy is configured.
It owns the cooldown timer and the background tasks the strategies start,
gives read access to the state store, and wraps the executor with the size
checks and logging every strategy wants.
"""

import asyncio
import time
from collections.abc import Callable, Coroutine, Sequence
from decimal import Decimal
from typing import Any

from autofund.config import StrategySettings
from autofund.execution.executor import FundingExecutor
from autofund.logging import get_logger
from autofund.models import Borrow, Offer, ReplacementCost
from autofund.state.store import FundingStateStore
from autofund.strategy.calculations import (
    apr,
    compute_replacement_cost,
    find_fill_rate,
    offers_cheaper_than,
)

logger = get_logger(__name__)


class FundingDesk:
    """Composition object shared by the replace and target strategies.

    Args:
        store: Live funding state (read only from here).
        executor: Live or dry-run command executor.
        settings: Strategy settings.
        report: Optional callable that logs a state summary.
        clock: Wall clock in seconds, injectable for tests.
    """

    def __init__(
        self,
        store: FundingStateStore,
        executor: FundingExecutor,
        settings: StrategySettings,
        report: Callable[[], None] | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.executor = executor
        self.settings = settings
        self._report = report
        self._clock = clock
        self._tasks: set[asyncio.Task] = set()  # type: ignore[type-arg]

        self.pause_until = clock() + settings.startup_pause
        # Rings the terminal when borrowing, even in dry run, so a human notices
        self.bell = " <bong>\u0007" if settings.sound_on_change else ""

    # ------------------------------------------------------------------
    # Cooldown
    # ------------------------------------------------------------------

    def now(self) -> float:
        return self._clock()

    def pause(self, seconds: float) -> None:
        """Hold off new actions for ``seconds`` from now."""
        self.pause_until = self._clock() + seconds

    def is_paused(self) -> bool:
        return self._clock() < self.pause_until

    # ------------------------------------------------------------------
    # Background work
    # ------------------------------------------------------------------

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str | None = None) -> asyncio.Task:  # type: ignore[type-arg]
        """Run ``coro`` in the background, keeping a reference until it finishes."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:  # type: ignore[type-arg]
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "background_task_failed",
                task=task.get_name(),
                error=str(exc),
                exc_info=exc,
            )

    @property
    def active_tasks(self) -> int:
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait until every background task started so far has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel outstanding background tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    def log_state(self) -> None:
        if self._report is not None:
            self._report()

    # ------------------------------------------------------------------
    # Shared calculations bound to the live state
    # ------------------------------------------------------------------

    def compute_replacement_cost(self, borrows: Sequence[Borrow]) -> ReplacementCost:
        return compute_replacement_cost(borrows)

    def offers_cheaper_than(self, rate: Decimal) -> list[Offer]:
        """Book offers worth switching to from a borrow paying ``rate``."""
        return offers_cheaper_than(self.store.offers, rate, self.settings.min_improvement)

    def find_fill_rate(self, offers: Sequence[Offer], amount: Decimal) -> Decimal:
        return find_fill_rate(offers, amount)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def borrow(self, amount: Decimal, rate: Decimal) -> bool:
        """Request ``amount`` of new funding at limit ``rate``.

        No-op below the configured minimum borrow size.

        Returns:
            True if an order was actually sent to the exchange.
        """
        if amount < self.settings.min_borrow_size:
            logger.info(
                "borrow_below_min_size",
                amount=str(amount),
                min_borrow_size=str(self.settings.min_borrow_size),
            )
            return False

        logger.info(
            "borrowing" + self.bell,
            amount=str(amount),
            rate=str(rate),
            apr=f"{apr(rate):.4f}",
            period=self.settings.borrow_period,
        )
        return await self.executor.borrow(amount, rate, self.settings.borrow_period)

    async def return_borrows(self, borrows: Sequence[Borrow]) -> list[int]:
        if not borrows:
            return []
        return await self.executor.return_borrows(borrows)

    async def cancel_orders(self, order_ids: Sequence[int]) -> list[int]:
        if not order_ids:
            return []
        return await self.executor.cancel_offers(order_ids)
