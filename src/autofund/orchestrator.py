"""Main bot orchestrator -- wires the event pipeline and runs the loops.

Event pipeline, one event at a time in arrival order:
  gateway (decoded push message) -> store.apply -> strategy.handle

Two loops run side by side:
  1. The gateway receive loop, which reconnects on its own and only ends on
     close() or a rejected login.
  2. The timer loop: first tick after ``first_timer_delay``, then every
     ``interval`` seconds. Each tick logs the state report and then runs
     ``strategy.on_timer()``.
"""

import asyncio

from autofund.config import AppSettings
from autofund.exchange.client import ExchangeGateway
from autofund.logging import get_logger
from autofund.reporting import StateReporter
from autofund.state.store import FundingStateStore
from autofund.strategy.base import FundingStrategy
from autofund.strategy.desk import FundingDesk

logger = get_logger(__name__)


class Orchestrator:
    """Runs one funding symbol end to end.

    Args:
        settings: Application-wide settings.
        gateway: Exchange stream and command interface.
        store: Live funding state.
        desk: Shared desk the strategy was built with.
        strategy: The configured strategy.
        reporter: Periodic state summary.
    """

    def __init__(
        self,
        settings: AppSettings,
        gateway: ExchangeGateway,
        store: FundingStateStore,
        desk: FundingDesk,
        strategy: FundingStrategy,
        reporter: StateReporter,
    ) -> None:
        self._settings = settings
        self._gateway = gateway
        self._store = store
        self._desk = desk
        self._strategy = strategy
        self._reporter = reporter
        self._running = False
        self._stopped = False
        self._timer_task: asyncio.Task | None = None  # type: ignore[type-arg]

        gateway.set_event_handler(store.apply)
        store.subscribe(strategy.handle)

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Run until stop() is called or the exchange rejects our keys.

        Raises:
            AuthenticationError: Propagated from the gateway.
        """
        strategy_settings = self._settings.strategy
        logger.info(
            "orchestrator_starting",
            strategy=self._strategy.name,
            symbol=self._store.symbol,
            dry_run=strategy_settings.dry_run,
            interval=strategy_settings.interval,
        )
        self._running = True
        self._stopped = False
        # Let the book and borrow snapshots arrive before acting on anything
        self._desk.pause(strategy_settings.startup_pause)

        if strategy_settings.interval > 0:
            self._timer_task = asyncio.create_task(self._timer_loop(), name="strategy-timer")

        try:
            await self._gateway.run()
        finally:
            self._running = False
            await self._cancel_timer()
            logger.info("orchestrator_stopped")

    async def stop(self) -> None:
        """Stop gracefully: pause the strategy, let it clean up, then disconnect."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("orchestrator_stopping_gracefully")

        self._desk.pause(float("inf"))
        await self._cancel_timer()
        try:
            await self._strategy.before_shutdown()
        except Exception as e:
            logger.error("strategy_shutdown_failed", error=str(e), exc_info=True)

        await self._desk.shutdown()
        await self._gateway.close()

    async def tick(self) -> None:
        """One timer tick: report, then let the strategy act."""
        self._reporter.log_state()
        await self._strategy.on_timer()

    async def _timer_loop(self) -> None:
        strategy_settings = self._settings.strategy
        await asyncio.sleep(strategy_settings.first_timer_delay)
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("timer_tick_error", error=str(e), exc_info=True)
            await asyncio.sleep(strategy_settings.interval)

    async def _cancel_timer(self) -> None:
        task = self._timer_task
        self._timer_task = None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
