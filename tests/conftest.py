"""Shared test fixtures for the funding replacement bot."""

from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from autofund.config import AppSettings, ExchangeSettings, StrategySettings
from autofund.exchange.events import EventType, FundingEvent
from autofund.execution.executor import FundingExecutor
from autofund.models import Borrow, BorrowSide, Offer, Order, Trade, UsageType
from autofund.state.store import FundingStateStore
from autofund.strategy.desk import FundingDesk


@pytest.fixture
def strategy_settings() -> StrategySettings:
    """Strategy settings with every workflow delay set to zero."""
    return StrategySettings(
        dry_run=False,
        min_improvement=Decimal("0.00001"),
        min_borrow_size=Decimal("150"),
        fill_poll_attempts=3,
        fill_poll_delay=0,
        settle_delay=0,
        borrow_cooldown=0,
        replace_cooldown=0,
        cancel_drain_attempts=3,
        cancel_drain_delay=0,
        startup_pause=0,
        first_timer_delay=0,
    )


@pytest.fixture
def mock_settings(strategy_settings: StrategySettings) -> AppSettings:
    """Return AppSettings with test defaults (dummy API keys, zero delays)."""
    return AppSettings(
        log_level="DEBUG",
        exchange=ExchangeSettings(
            api_key="test-api-key",  # type: ignore[arg-type]
            api_secret="test-api-secret",  # type: ignore[arg-type]
            reconnect_delay=0,
        ),
        strategy=strategy_settings,
    )


@pytest.fixture
def store() -> FundingStateStore:
    return FundingStateStore(symbol="fUSD")


@pytest.fixture
def mock_executor() -> AsyncMock:
    executor = AsyncMock(spec=FundingExecutor)
    executor.borrow.return_value = True
    executor.cancel_offers.side_effect = lambda ids: list(ids)
    executor.return_borrows.side_effect = lambda borrows: [b.id for b in borrows]
    return executor


@pytest.fixture
def desk(
    store: FundingStateStore,
    mock_executor: AsyncMock,
    strategy_settings: StrategySettings,
) -> FundingDesk:
    return FundingDesk(store, mock_executor, strategy_settings)


@pytest.fixture
def make_borrow() -> Callable[..., Borrow]:
    """Factory for Borrow objects with sensible defaults."""

    def _make(
        id: int,
        rate: str,
        amount: str,
        usage: UsageType = UsageType.UNUSED,
        period: int = 2,
        expires_at: int = 0,
    ) -> Borrow:
        return Borrow(
            id=id,
            symbol="fUSD",
            side=BorrowSide.BORROWER,
            usage=usage,
            rate=Decimal(rate),
            period=period,
            amount=Decimal(amount),
            status="ACTIVE",
            expires_at=expires_at,
        )

    return _make


@pytest.fixture
def make_offer() -> Callable[..., Offer]:
    def _make(rate: str, amount: str, period: int = 2, count: int = 1) -> Offer:
        return Offer(rate=Decimal(rate), period=period, count=count, amount=Decimal(amount))

    return _make


@pytest.fixture
def make_order() -> Callable[..., Order]:
    """Factory for our own borrow orders (negative amounts)."""

    def _make(id: int, amount: str, remaining: str | None = None, rate: str = "0.0002") -> Order:
        return Order(
            id=id,
            symbol="fUSD",
            amount=Decimal(amount),
            amount_remaining=Decimal(remaining if remaining is not None else amount),
            rate=Decimal(rate),
            period=2,
            status="active",
        )

    return _make


@pytest.fixture
def make_trade() -> Callable[..., Trade]:
    def _make(offer_id: int | None, amount: str, id: int = 1) -> Trade:
        return Trade(
            id=id,
            currency="fUSD",
            offer_id=offer_id,
            amount=Decimal(amount),
            rate=Decimal("0.0002"),
            period=2,
            is_maker=False,
        )

    return _make


@pytest.fixture
def apply_event(store: FundingStateStore) -> Callable[[EventType, object], bool]:
    """Apply a payload to the store as a FundingEvent."""

    def _apply(event_type: EventType, payload: object) -> bool:
        return store.apply(FundingEvent(event_type, payload))  # type: ignore[arg-type]

    return _apply
