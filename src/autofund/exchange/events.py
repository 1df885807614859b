"""Typed events flowing from the exchange gateway into the state store.

Every push message the gateway understands becomes one or more FundingEvents.
The store and the strategies dispatch on EventType; there is no
string-keyed emitter.
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Union

from autofund.models import Borrow, Offer, Order, Position, Trade, UsageType, Wallet


class EventType(str, Enum):
    """Kinds of state change pushed by the exchange."""

    OFFER_UPDATED = "offer_updated"
    OFFER_CANCELLED = "offer_cancelled"
    BORROW_UPDATED = "borrow_updated"
    BORROW_CANCELLED = "borrow_cancelled"
    ORDER_NEW = "order_new"
    ORDER_UPDATED = "order_updated"
    ORDER_CANCELLED = "order_cancelled"
    TRADE_EXECUTED = "trade_executed"
    TRADE_UPDATED = "trade_updated"
    WALLET_UPDATED = "wallet_updated"
    POSITION_UPDATED = "position_updated"
    POSITION_CLOSED = "position_closed"
    SNAPSHOT_STARTED = "snapshot_started"


class Collection(str, Enum):
    """Store collections that a snapshot replaces wholesale."""

    OFFERS = "offers"
    BORROWS = "borrows"
    ORDERS = "orders"


@dataclass(frozen=True)
class SnapshotStart:
    """Marks that a full snapshot of one collection follows.

    Borrow snapshots arrive per usage type, so only borrows of ``usage`` are
    replaced.
    """

    collection: Collection
    usage: UsageType | None = None


EventPayload = Union[Offer, Borrow, Order, Trade, Wallet, Position, SnapshotStart]


@dataclass(frozen=True)
class FundingEvent:
    """A single decoded state change."""

    type: EventType
    payload: EventPayload


EventHandler = Callable[[FundingEvent], None]
