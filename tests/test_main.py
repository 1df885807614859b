"""Tests for component wiring and the process entry point."""

import asyncio
from decimal import Decimal
from unittest.mock import MagicMock, patch

import pytest

from autofund.config import AppSettings
from autofund.exceptions import AuthenticationError
from autofund.exchange.events import EventType, FundingEvent
from autofund.execution.dry_run_executor import DryRunExecutor
from autofund.execution.live_executor import LiveExecutor
from autofund.main import _build_components, main, run
from autofund.strategy.replace import ReplaceIfCheaperStrategy
from autofund.strategy.target import TargetRateStrategy


def test_dry_run_selects_dry_run_executor(mock_settings: AppSettings) -> None:
    mock_settings.strategy.dry_run = True

    with patch("autofund.main.BitfinexGateway"):
        components = _build_components(mock_settings)

    assert isinstance(components["executor"], DryRunExecutor)
    assert isinstance(components["strategy"], ReplaceIfCheaperStrategy)


def test_live_mode_selects_live_executor(mock_settings: AppSettings) -> None:
    mock_settings.strategy.dry_run = False
    mock_settings.strategy.name = "target"

    with patch("autofund.main.BitfinexGateway"):
        components = _build_components(mock_settings)

    assert isinstance(components["executor"], LiveExecutor)
    assert isinstance(components["strategy"], TargetRateStrategy)


@pytest.mark.asyncio
async def test_dry_run_sends_no_commands(mock_settings: AppSettings, make_borrow, make_offer) -> None:
    """A state that triggers a replacement sends nothing to the exchange in dry run."""
    mock_settings.strategy.dry_run = True

    with patch("autofund.main.BitfinexGateway") as gateway_cls:
        components = _build_components(mock_settings)
    gateway: MagicMock = gateway_cls.return_value
    handler = gateway.set_event_handler.call_args.args[0]

    handler(FundingEvent(EventType.BORROW_UPDATED, make_borrow(1, "0.0003", "500")))
    handler(FundingEvent(EventType.BORROW_UPDATED, make_borrow(2, "0.0002", "300")))
    handler(FundingEvent(EventType.OFFER_UPDATED, make_offer("0.00015", "1000")))
    strategy = components["strategy"]
    assert strategy.pending is not None
    assert strategy.pending.amount == Decimal("800")

    await components["desk"].wait_idle()

    assert gateway.submit_funding_offer.call_count == 0
    assert gateway.cancel_funding_offer.call_count == 0
    assert gateway.close_funding.call_count == 0


def test_main_exits_non_zero_on_authentication_error() -> None:
    with patch("autofund.main.run", MagicMock(side_effect=AuthenticationError("bad keys"))):
        with pytest.raises(SystemExit) as exc_info:
            main()

    assert exc_info.value.code == 1


def test_main_exits_on_invalid_configuration(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STRATEGY__NAME", "martingale")

    with pytest.raises(SystemExit) as exc_info:
        main()

    assert exc_info.value.code == 2


class SlowStoppingOrchestrator:
    """Stands in for the orchestrator; stop() takes a moment to close connections."""

    def __init__(self) -> None:
        self.signal_handler = None
        self.stop_calls = 0
        self.closed = False

    async def start(self) -> None:
        # SIGINT arrives while the gateway loop is running
        self.signal_handler()

    async def stop(self) -> None:
        self.stop_calls += 1
        if self.stop_calls > 1:
            return
        await asyncio.sleep(0.01)
        self.closed = True


@pytest.mark.asyncio
async def test_run_waits_for_signal_shutdown(mock_settings: AppSettings) -> None:
    orchestrator = SlowStoppingOrchestrator()
    loop = asyncio.get_running_loop()

    def _capture(sig, handler) -> None:
        orchestrator.signal_handler = handler

    with (
        patch("autofund.main.AppSettings", return_value=mock_settings),
        patch("autofund.main.setup_logging"),
        patch("autofund.main._build_components", return_value={"orchestrator": orchestrator}),
        patch.object(loop, "add_signal_handler", side_effect=_capture),
    ):
        await run()

    assert orchestrator.closed
