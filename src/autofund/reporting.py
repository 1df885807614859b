"""Periodic human-readable summary of the funding state.

Logged before each strategy timer tick and whenever a strategy wants a
snapshot around an action. Only reads the store, apart from resetting its
event counter.
"""

import math
import time
from collections.abc import Callable, Sequence
from decimal import Decimal

from autofund.config import StrategySettings
from autofund.logging import get_logger
from autofund.models import Borrow
from autofund.state.store import FundingStateStore
from autofund.strategy.calculations import apr, total_amount

logger = get_logger(__name__)

# Used as "no expiry" when there are no borrows
_NO_EXPIRY_HORIZON_MS = 120 * 24 * 60 * 60 * 1000


def time_remaining_str(expires_at_ms: int, now: float) -> str:
    """Format the time until ``expires_at_ms`` for humans.

    Args:
        expires_at_ms: Target time, Unix milliseconds.
        now: Current time, Unix seconds.

    Returns:
        ``"a few seconds"``, ``"N m"``, ``"N hr"`` (under 3 days) or ``"N d"``.
    """
    remaining = expires_at_ms / 1000 - now
    if remaining < 60:
        return "a few seconds"
    if remaining < 60 * 60:
        return f"{math.floor(remaining / 60)} m"
    if remaining < 60 * 60 * 24 * 3:
        return f"{math.ceil(remaining / (60 * 60))} hr"
    return f"{math.ceil(remaining / (60 * 60 * 24))} d"


def next_expiry(borrows: Sequence[Borrow], now: float) -> int:
    """Expiry of the borrow due soonest, in Unix milliseconds."""
    horizon = int(now * 1000) + _NO_EXPIRY_HORIZON_MS
    return min((b.expires_at for b in borrows), default=horizon)


class StateReporter:
    """Logs the borrow book, best offer and running totals.

    Args:
        store: State to summarise.
        settings: Strategy settings (``show_wallet_position``).
        clock: Wall clock in seconds.
    """

    def __init__(
        self,
        store: FundingStateStore,
        settings: StrategySettings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._settings = settings
        self._clock = clock

    def log_state(self) -> None:
        if self._settings.show_wallet_position:
            self._log_wallet_position()

        store = self._store
        borrows = store.borrows
        offers = store.offers
        now = self._clock()

        state: dict[str, object] = {
            "symbol": store.symbol,
            "borrow_count": len(borrows),
            "next_expiry": time_remaining_str(next_expiry(borrows, now), now) if borrows else None,
            "net_using": f"{store.net_using:.2f}",
            "net_unused": f"{store.net_unused:.2f}",
            "events_since_last_report": store.event_count,
        }

        if borrows:
            worst, best = borrows[0], borrows[-1]
            borrowed = total_amount(borrows)
            state.update(
                worst_rate=f"{worst.rate:.8f}",
                worst_apr=f"{apr(worst.rate):.4f}",
                worst_amount=f"{worst.amount:.4f}",
                best_rate=f"{best.rate:.8f}",
                best_apr=f"{apr(best.rate):.4f}",
                best_amount=f"{best.amount:.4f}",
                total_borrowed=f"{borrowed:.4f}",
            )
            if borrowed > 0:
                avg_rate = sum((b.rate * b.amount for b in borrows), Decimal("0")) / borrowed
                state.update(avg_rate=f"{avg_rate:.8f}", avg_apr=f"{apr(avg_rate):.4f}")

        if offers:
            state.update(
                best_offer_rate=f"{offers[0].rate:.8f}",
                best_offer_apr=f"{apr(offers[0].rate):.4f}",
                best_offer_amount=f"{offers[0].amount:.4f}",
            )

        logger.info("funding_state", **state)
        store.reset_event_count()

    def _log_wallet_position(self) -> None:
        wallets = self._store.wallets
        positions = self._store.positions

        for wallet in wallets:
            logger.info(
                "wallet_balance",
                currency=wallet.currency,
                wallet_type=wallet.type,
                balance=f"{wallet.balance:.4f}",
            )
        for position in positions:
            logger.info(
                "position_status",
                symbol=position.symbol,
                amount=f"{position.amount:.4f}",
                base_price=f"{position.base_price:.2f}",
                cost=f"{position.cost:.2f}",
            )

        balances = sum((w.balance for w in wallets), Decimal("0"))
        position_cost = sum((p.cost for p in positions), Decimal("0"))
        expected = position_cost - balances if position_cost > balances else Decimal("0")
        logger.info(
            "wallet_position_summary",
            sum_of_balances=f"{balances:.2f}",
            sum_of_positions=f"{position_cost:.2f}",
            expected_borrowing=f"{expected:.2f}",
        )
