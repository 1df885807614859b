"""Tests for LiveExecutor and DryRunExecutor.

Verifies:
- Live commands are forwarded to the gateway
- CommandError is logged and treated as "no effect happened"
- A rejected return does not stop the remaining returns
- Dry run never touches the gateway
"""

from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from structlog.testing import capture_logs

from autofund.exceptions import CommandError
from autofund.exchange.client import ExchangeGateway
from autofund.execution.dry_run_executor import DryRunExecutor
from autofund.execution.live_executor import LiveExecutor


@pytest.fixture
def gateway() -> AsyncMock:
    return AsyncMock(spec=ExchangeGateway)


@pytest.fixture
def live(gateway: AsyncMock) -> LiveExecutor:
    return LiveExecutor(gateway)


@pytest.mark.asyncio
async def test_live_borrow_submits_offer(live: LiveExecutor, gateway: AsyncMock) -> None:
    sent = await live.borrow(Decimal("500"), Decimal("0.00025"), 2)

    assert sent is True
    gateway.submit_funding_offer.assert_awaited_once_with(Decimal("500"), Decimal("0.00025"), 2)


@pytest.mark.asyncio
async def test_live_borrow_rejected(live: LiveExecutor, gateway: AsyncMock) -> None:
    gateway.submit_funding_offer.side_effect = CommandError("websocket not connected")

    assert await live.borrow(Decimal("500"), Decimal("0.00025"), 2) is False


@pytest.mark.asyncio
async def test_live_cancel_skips_failures(live: LiveExecutor, gateway: AsyncMock) -> None:
    gateway.cancel_funding_offer.side_effect = [None, CommandError("gone"), None]

    cancelled = await live.cancel_offers([1, 2, 3])

    assert cancelled == [1, 3]
    assert gateway.cancel_funding_offer.await_count == 3


@pytest.mark.asyncio
async def test_live_returns_one_at_a_time(live: LiveExecutor, gateway: AsyncMock, make_borrow) -> None:
    borrows = [make_borrow(1, "0.0003", "500"), make_borrow(2, "0.0002", "300")]

    returned = await live.return_borrows(borrows)

    assert returned == [1, 2]
    assert [c.args[0] for c in gateway.close_funding.await_args_list] == [1, 2]


@pytest.mark.asyncio
async def test_live_return_failure_continues(live: LiveExecutor, gateway: AsyncMock, make_borrow) -> None:
    gateway.close_funding.side_effect = [CommandError("funding close rejected"), None]
    borrows = [make_borrow(1, "0.0003", "500"), make_borrow(2, "0.0002", "300")]

    returned = await live.return_borrows(borrows)

    assert returned == [2]


@pytest.mark.asyncio
async def test_dry_run_sends_nothing(gateway: AsyncMock, make_borrow) -> None:
    executor = DryRunExecutor()

    assert await executor.borrow(Decimal("500"), Decimal("0.00025"), 2) is False
    assert await executor.cancel_offers([1, 2]) == []
    assert await executor.return_borrows([make_borrow(1, "0.0003", "500")]) == []

    assert gateway.submit_funding_offer.await_count == 0
    assert gateway.cancel_funding_offer.await_count == 0
    assert gateway.close_funding.await_count == 0


@pytest.mark.asyncio
async def test_dry_run_logs_intended_borrow() -> None:
    executor = DryRunExecutor()

    with capture_logs() as logs:
        await executor.borrow(Decimal("500"), Decimal("0.00025"), 2)

    assert logs[0]["event"] == "dry_run_borrow"
    assert logs[0]["dry_run"] is True
    assert logs[0]["amount"] == "500"
