"""Entry point for the funding replacement bot.

Wires all components together and starts the orchestrator.
Handles SIGINT/SIGTERM for graceful shutdown.

Component wiring order (in _build_components):
1. AppSettings (configuration)
2. Logging setup
3. BitfinexGateway (websocket stream + ccxt REST)
4. FundingStateStore (live state)
5. Executor (DryRunExecutor or LiveExecutor based on dry_run)
6. StateReporter (periodic summary)
7. FundingDesk (shared cooldown, tasks and commands)
8. Strategy (replace or target)
9. Orchestrator (event pipeline and timer)
"""

import asyncio
import signal
import sys
from typing import Any

from pydantic import ValidationError

from autofund.config import AppSettings
from autofund.exceptions import AuthenticationError, UnknownStrategyError
from autofund.exchange.bitfinex_client import BitfinexGateway
from autofund.logging import get_logger, setup_logging
from autofund.orchestrator import Orchestrator
from autofund.reporting import StateReporter
from autofund.state.store import FundingStateStore
from autofund.strategy.desk import FundingDesk
from autofund.strategy.factory import create_strategy


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all bot components from settings.

    Note: Does NOT connect -- that happens when the orchestrator starts.

    Args:
        settings: Application-wide settings.

    Returns:
        Dict mapping component names to instances.
    """
    logger = get_logger("autofund.main")

    # 3. Create exchange gateway
    gateway = BitfinexGateway(
        settings.exchange,
        include_account_updates=settings.strategy.show_wallet_position,
    )

    if not settings.exchange.api_key.get_secret_value():
        logger.warning(
            "no_api_keys_configured",
            note="The authenticated stream will be rejected without BITFINEX_API_KEY.",
        )

    # 4. Create state store
    store = FundingStateStore(symbol=settings.exchange.symbol)

    # 5. Create executor based on mode
    if settings.strategy.dry_run:
        from autofund.execution.dry_run_executor import DryRunExecutor

        executor = DryRunExecutor()
    else:
        from autofund.execution.live_executor import LiveExecutor

        executor = LiveExecutor(gateway)

    # 6. Create reporter
    reporter = StateReporter(store, settings.strategy)

    # 7. Create desk
    desk = FundingDesk(store, executor, settings.strategy, report=reporter.log_state)

    # 8. Create strategy
    strategy = create_strategy(settings.strategy, desk)

    # 9. Create orchestrator
    orchestrator = Orchestrator(
        settings=settings,
        gateway=gateway,
        store=store,
        desk=desk,
        strategy=strategy,
        reporter=reporter,
    )

    return {
        "gateway": gateway,
        "store": store,
        "executor": executor,
        "reporter": reporter,
        "desk": desk,
        "strategy": strategy,
        "orchestrator": orchestrator,
    }


def _setup_signal_handlers(orchestrator: Orchestrator) -> list[asyncio.Task]:  # type: ignore[type-arg]
    """Register SIGINT/SIGTERM to stop the orchestrator gracefully.

    Must be called after the asyncio event loop is running.

    Returns:
        The shutdown tasks started by signals, for the caller to await.
    """
    logger = get_logger("autofund.main")
    loop = asyncio.get_running_loop()
    shutdown_tasks: list[asyncio.Task] = []  # type: ignore[type-arg]

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        shutdown_tasks.append(asyncio.create_task(orchestrator.stop(), name="shutdown"))

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)
    return shutdown_tasks


async def run() -> None:
    """Run the funding replacement bot until stopped."""
    # 1. Load settings
    settings = AppSettings()

    # 2. Setup logging
    setup_logging(settings.log_level)
    logger = get_logger("autofund.main")

    # 3-9. Build all components
    components = _build_components(settings)
    orchestrator: Orchestrator = components["orchestrator"]

    shutdown_tasks = _setup_signal_handlers(orchestrator)

    logger.info(
        "starting_autofund",
        symbol=settings.exchange.symbol,
        strategy=settings.strategy.name,
        dry_run=settings.strategy.dry_run,
        min_borrow_size=str(settings.strategy.min_borrow_size),
        min_improvement=str(settings.strategy.min_improvement),
    )

    try:
        await orchestrator.start()
    finally:
        # A signal-driven stop may still be closing the connections
        await asyncio.gather(*shutdown_tasks)
        await orchestrator.stop()
        logger.info("autofund_stopped")


def main() -> None:
    """Synchronous entry point."""
    try:
        asyncio.run(run())
    except AuthenticationError as e:
        get_logger("autofund.main").critical("authentication_failed", error=str(e))
        sys.exit(1)
    except (UnknownStrategyError, ValidationError) as e:
        get_logger("autofund.main").critical("invalid_configuration", error=str(e))
        sys.exit(2)


if __name__ == "__main__":
    main()
