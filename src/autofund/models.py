"""Shared data models for the funding replacement bot.

CRITICAL: All monetary values and rates use Decimal. Never use float for
amounts or rates. Timestamps are Unix milliseconds as sent by the exchange.
"""

import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum


class UsageType(str, Enum):
    """Whether a borrow is backing an open position or sitting idle."""

    USING = "using"
    UNUSED = "unused"


class BorrowSide(str, Enum):
    """Which side of the funding contract the account is on."""

    BORROWER = "borrower"
    LENDER = "lender"
    BOTH = "both"


@dataclass
class Borrow:
    """An active funding position the account is paying interest on."""

    id: int
    symbol: str
    side: BorrowSide
    usage: UsageType
    rate: Decimal  # fractional daily rate
    period: int  # days
    amount: Decimal  # absolute size
    status: str
    created_at: int = 0
    updated_at: int = 0
    expires_at: int = 0
    pair: str = "none"


@dataclass
class Offer:
    """A price level in the public funding book."""

    rate: Decimal
    period: int
    count: int
    amount: Decimal


@dataclass
class Order:
    """One of our own funding offers waiting to be matched.

    ``amount`` is signed: negative means we are asking to borrow.
    """

    id: int
    symbol: str
    amount: Decimal
    amount_remaining: Decimal
    rate: Decimal
    period: int
    status: str
    order_type: str = "limit"
    created_at: int = 0
    updated_at: int = 0

    @property
    def filled(self) -> Decimal:
        return self.amount - self.amount_remaining


@dataclass
class Trade:
    """A funding trade executed against one of our orders."""

    id: int | None
    currency: str
    offer_id: int | None
    amount: Decimal
    rate: Decimal
    period: int
    is_maker: bool
    created_at: int = 0


@dataclass
class Wallet:
    """Balance of one currency in one wallet type (exchange, margin, funding)."""

    type: str
    currency: str
    balance: Decimal
    available: Decimal | None = None


@dataclass
class Position:
    """An open margin position that the borrowing is financing."""

    symbol: str
    status: str
    amount: Decimal
    base_price: Decimal

    @property
    def cost(self) -> Decimal:
        return self.amount * self.base_price


@dataclass
class ReplacementCost:
    """Size and best (lowest) rate of a candidate set of borrows to replace."""

    best_rate: Decimal
    total_amount: Decimal


@dataclass
class PendingReplacement:
    """One in-flight "replace expensive borrowing with cheaper borrowing" operation.

    Only one exists at a time. Owned by the replace strategy.
    """

    amount: Decimal
    rate: Decimal
    to_replace: list[Borrow]
    order_ids: set[int] = field(default_factory=set)
    filled_count: int = 0
    filled_amount: Decimal = Decimal("0")
    started_at: float = field(default_factory=time.time)
