"""In-memory funding state, kept current from exchange push events.

The store is the only writer of the borrow, offer, order, wallet and
position collections. Strategies read them through the accessors and are
notified after every change via subscribed listeners.

Ordering rules:
- borrows: most expensive first (rate descending), shorter period first on ties
- offers: cheapest first (rate ascending), longer period first on ties
- orders: arrival order, no implicit sort

A snapshot (on connect and after every reconnect) replaces the collection it
covers rather than merging into it.
"""

from collections.abc import Callable
from decimal import Decimal

from autofund.exchange.events import Collection, EventType, FundingEvent, SnapshotStart
from autofund.logging import get_logger
from autofund.models import Borrow, Offer, Order, Position, UsageType, Wallet

logger = get_logger(__name__)

StateListener = Callable[[FundingEvent], None]


def borrow_sort_key(borrow: Borrow) -> tuple[Decimal, int]:
    return (-borrow.rate, borrow.period)


def offer_sort_key(offer: Offer) -> tuple[Decimal, int]:
    return (offer.rate, -offer.period)


class FundingStateStore:
    """Live view of borrows, the public funding book, our orders, wallets and positions.

    Running totals ``net_using`` / ``net_unused`` are adjusted incrementally on
    every borrow upsert and cancel. They always equal a fresh sum over the
    active borrows grouped by usage type (see ``recompute_totals``).
    """

    def __init__(self, symbol: str = "fUSD") -> None:
        self.symbol = symbol
        self._borrows: list[Borrow] = []
        self._offers: list[Offer] = []
        self._orders: list[Order] = []
        self._wallets: dict[tuple[str, str], Wallet] = {}
        self._positions: dict[str, Position] = {}
        self._listeners: list[StateListener] = []

        self.net_using = Decimal("0")
        self.net_unused = Decimal("0")
        self.event_count = 0

        self._handlers: dict[EventType, Callable] = {
            EventType.OFFER_UPDATED: self._upsert_offer,
            EventType.OFFER_CANCELLED: self._cancel_offer,
            EventType.BORROW_UPDATED: self._upsert_borrow,
            EventType.BORROW_CANCELLED: self._cancel_borrow,
            EventType.ORDER_NEW: self._upsert_order,
            EventType.ORDER_UPDATED: self._upsert_order,
            EventType.ORDER_CANCELLED: self._cancel_order,
            EventType.TRADE_EXECUTED: self._record_trade,
            EventType.TRADE_UPDATED: self._record_trade,
            EventType.WALLET_UPDATED: self._upsert_wallet,
            EventType.POSITION_UPDATED: self._upsert_position,
            EventType.POSITION_CLOSED: self._close_position,
            EventType.SNAPSHOT_STARTED: self._start_snapshot,
        }

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def subscribe(self, listener: StateListener) -> None:
        """Register a listener called after each applied event, in registration order."""
        self._listeners.append(listener)

    def apply(self, event: FundingEvent) -> bool:
        """Apply one event to exactly one collection, then notify listeners.

        Never raises: an event that cannot be applied is logged and dropped so
        unrelated state is left untouched.

        Returns:
            True if the event was applied.
        """
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.warning("unhandled_event_type", event_type=str(event.type))
            return False

        try:
            handler(event.payload)
        except Exception:
            logger.error("state_update_failed", event_type=event.type.value, exc_info=True)
            return False

        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.error(
                    "state_listener_failed",
                    event_type=event.type.value,
                    listener=getattr(listener, "__qualname__", repr(listener)),
                    exc_info=True,
                )
        return True

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def borrows(self) -> list[Borrow]:
        """Active borrows, most expensive first."""
        return list(self._borrows)

    @property
    def offers(self) -> list[Offer]:
        """Funding book offers, cheapest first."""
        return list(self._offers)

    @property
    def orders(self) -> list[Order]:
        return list(self._orders)

    @property
    def wallets(self) -> list[Wallet]:
        return list(self._wallets.values())

    @property
    def positions(self) -> list[Position]:
        return list(self._positions.values())

    def get_borrow(self, borrow_id: int) -> Borrow | None:
        return next((b for b in self._borrows if b.id == borrow_id), None)

    def get_order(self, order_id: int) -> Order | None:
        return next((o for o in self._orders if o.id == order_id), None)

    def recompute_totals(self) -> tuple[Decimal, Decimal]:
        """Sum borrow amounts by usage type from scratch: (using, unused)."""
        using = sum(
            (b.amount for b in self._borrows if b.usage == UsageType.USING), Decimal("0")
        )
        unused = sum(
            (b.amount for b in self._borrows if b.usage == UsageType.UNUSED), Decimal("0")
        )
        return using, unused

    def reset_event_count(self) -> int:
        count = self.event_count
        self.event_count = 0
        return count

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _adjust_totals(self, borrow: Borrow, sign: int) -> None:
        if borrow.usage == UsageType.USING:
            self.net_using += sign * borrow.amount
        else:
            self.net_unused += sign * borrow.amount

    def _start_snapshot(self, snapshot: SnapshotStart) -> None:
        # Entries that follow re-populate the collection, anything not re-sent is gone
        if snapshot.collection == Collection.OFFERS:
            dropped = len(self._offers)
            self._offers = []
        elif snapshot.collection == Collection.ORDERS:
            dropped = len(self._orders)
            self._orders = []
        else:
            kept = [b for b in self._borrows if b.usage != snapshot.usage]
            dropped = len(self._borrows) - len(kept)
            self._borrows = kept
            self.net_using, self.net_unused = self.recompute_totals()

        logger.debug(
            "snapshot_reset",
            collection=snapshot.collection.value,
            usage=snapshot.usage.value if snapshot.usage else None,
            dropped=dropped,
        )

    def _upsert_offer(self, offer: Offer) -> None:
        # delete + insert at this rate
        self._offers = [o for o in self._offers if o.rate != offer.rate]
        self._offers.append(offer)
        self._offers.sort(key=offer_sort_key)

    def _cancel_offer(self, offer: Offer) -> None:
        self._offers = [o for o in self._offers if o.rate != offer.rate]
        self.event_count += 1

    def _upsert_borrow(self, borrow: Borrow) -> None:
        previous = self.get_borrow(borrow.id)
        if previous is not None:
            self._adjust_totals(previous, -1)
            self._borrows = [b for b in self._borrows if b.id != borrow.id]

        self._borrows.append(borrow)
        self._borrows.sort(key=borrow_sort_key)
        self._adjust_totals(borrow, 1)
        self.event_count += 1

    def _cancel_borrow(self, borrow: Borrow) -> None:
        previous = self.get_borrow(borrow.id)
        if previous is not None:
            self._adjust_totals(previous, -1)
            self._borrows = [b for b in self._borrows if b.id != borrow.id]
        self.event_count += 1
        logger.debug("borrow_closed", borrow_id=borrow.id, amount=str(borrow.amount))

    def _upsert_order(self, order: Order) -> None:
        self._orders = [o for o in self._orders if o.id != order.id]
        self._orders.append(order)
        self.event_count += 1

    def _cancel_order(self, order: Order) -> None:
        self._orders = [o for o in self._orders if o.id != order.id]
        self.event_count += 1
        logger.info(
            "order_closed",
            order_id=order.id,
            amount=str(abs(order.amount)),
            note="cancelled or filled",
        )

    def _record_trade(self, trade: object) -> None:
        # Trades carry no state of their own; strategies react via listeners
        pass

    def _upsert_wallet(self, wallet: Wallet) -> None:
        self._wallets[(wallet.type, wallet.currency)] = wallet

    def _upsert_position(self, position: Position) -> None:
        self._positions[position.symbol] = position

    def _close_position(self, position: Position) -> None:
        self._positions.pop(position.symbol, None)
