"""Bitfinex v2 wire format decoding.

Translates the positional arrays Bitfinex pushes on the authenticated
channel (channel 0) and the public funding book channel into typed
FundingEvents. Pure functions, no I/O, so every message shape is testable
in isolation.

Reference: https://docs.bitfinex.com/docs/ws-auth
"""

from decimal import Decimal, InvalidOperation
from typing import Any

from autofund.exceptions import MessageDecodeError
from autofund.exchange.events import Collection, EventType, FundingEvent, SnapshotStart
from autofund.logging import get_logger
from autofund.models import (
    Borrow,
    BorrowSide,
    Offer,
    Order,
    Position,
    Trade,
    UsageType,
    Wallet,
)

logger = get_logger(__name__)

_DAY_MS = 24 * 60 * 60 * 1000

# Funding credits are loans backing an open position, funding loans are idle.
_BORROW_MESSAGES: dict[str, tuple[UsageType, EventType]] = {
    "fcs": (UsageType.USING, EventType.BORROW_UPDATED),
    "fcn": (UsageType.USING, EventType.BORROW_UPDATED),
    "fcu": (UsageType.USING, EventType.BORROW_UPDATED),
    "fcc": (UsageType.USING, EventType.BORROW_CANCELLED),
    "fls": (UsageType.UNUSED, EventType.BORROW_UPDATED),
    "fln": (UsageType.UNUSED, EventType.BORROW_UPDATED),
    "flu": (UsageType.UNUSED, EventType.BORROW_UPDATED),
    "flc": (UsageType.UNUSED, EventType.BORROW_CANCELLED),
}

# Snapshot entries go through the same upsert path, after a SNAPSHOT_STARTED
# event has cleared what the store held before.
_ORDER_MESSAGES: dict[str, EventType] = {
    "fos": EventType.ORDER_UPDATED,
    "fon": EventType.ORDER_NEW,
    "fou": EventType.ORDER_UPDATED,
    "foc": EventType.ORDER_CANCELLED,
}

_TRADE_MESSAGES: dict[str, EventType] = {
    "fte": EventType.TRADE_EXECUTED,
    "ftu": EventType.TRADE_UPDATED,
}

_WALLET_MESSAGES = {"ws", "wu"}
_POSITION_MESSAGES = {"ps", "pn", "pu", "pc"}
_SNAPSHOT_MESSAGES = {"fcs", "fls", "fos", "ws", "ps"}

_SNAPSHOT_RESETS: dict[str, SnapshotStart] = {
    "fcs": SnapshotStart(Collection.BORROWS, UsageType.USING),
    "fls": SnapshotStart(Collection.BORROWS, UsageType.UNUSED),
    "fos": SnapshotStart(Collection.ORDERS),
}

# Known account messages we deliberately ignore
_IGNORED_MESSAGES = {"hb", "os", "on", "ou", "oc", "te", "tu", "bu", "miu", "fiu"}


def to_decimal(value: Any) -> Decimal:
    """Convert a wire number to Decimal via str() to avoid float artefacts."""
    if value is None:
        raise MessageDecodeError("expected a number, got null")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise MessageDecodeError(f"not a number: {value!r}") from exc


def decode_book_entry(entry: list) -> FundingEvent | None:
    """Decode one ``[RATE, PERIOD, COUNT, AMOUNT]`` funding book entry.

    Positive amounts are offers of funding we could borrow. Bids (negative
    amounts) are of no use to a borrower and are dropped, returning None.
    A count of zero means the price level has gone.
    """
    try:
        rate, period, count, amount = entry[0], entry[1], entry[2], entry[3]
    except (IndexError, TypeError) as exc:
        raise MessageDecodeError(f"bad book entry: {entry!r}") from exc

    amount_dec = to_decimal(amount)
    if amount_dec < 0:
        return None

    offer = Offer(
        rate=to_decimal(rate),
        period=int(period),
        count=int(count),
        amount=abs(amount_dec),
    )
    event_type = EventType.OFFER_CANCELLED if offer.count == 0 else EventType.OFFER_UPDATED
    return FundingEvent(event_type, offer)


def decode_book_message(data: list) -> list[FundingEvent]:
    """Decode a message from the funding book channel.

    The payload is either a single entry, a snapshot (list of entries) or the
    string "hb" for heartbeats. A snapshot starts with a SNAPSHOT_STARTED event
    so levels that vanished while we were disconnected are dropped.
    """
    entry = data[1] if len(data) > 1 else None

    if entry == "hb":
        return []

    if not isinstance(entry, list):
        raise MessageDecodeError(f"expected book entry list, got {entry!r}")

    is_snapshot = not entry or isinstance(entry[0], list)
    entries = entry if is_snapshot else [entry]
    events: list[FundingEvent] = []
    if is_snapshot:
        events.append(FundingEvent(EventType.SNAPSHOT_STARTED, SnapshotStart(Collection.OFFERS)))
    for e in entries:
        event = decode_book_entry(e)
        if event is not None:
            events.append(event)
    return events


def raw_to_borrow(f: list, usage: UsageType) -> Borrow:
    """Map a funding credit/loan array into a Borrow."""
    try:
        raw_side = f[2]
        # RATE_REAL is set for FRR-relative loans, otherwise the fixed RATE applies
        rate = to_decimal(f[19] if len(f) > 19 and f[19] is not None else f[11])
        period = int(f[12])
        opened_at = int(f[13] or f[3] or 0)

        if raw_side < 0:
            side = BorrowSide.BORROWER
        elif raw_side > 0:
            side = BorrowSide.LENDER
        else:
            side = BorrowSide.BOTH

        return Borrow(
            id=int(f[0]),
            symbol=f[1],
            side=side,
            usage=usage,
            rate=rate,
            period=period,
            amount=abs(to_decimal(f[5])),
            status=str(f[7]),
            created_at=int(f[3] or 0),
            updated_at=int(f[4] or 0),
            expires_at=opened_at + period * _DAY_MS,
            pair=f[21] if len(f) > 21 and f[21] else "none",
        )
    except (IndexError, TypeError, ValueError) as exc:
        raise MessageDecodeError(f"bad funding credit/loan: {f!r}") from exc


def raw_to_order(o: list) -> Order:
    """Map a funding offer array into an Order."""
    try:
        return Order(
            id=int(o[0]),
            symbol=o[1],
            created_at=int(o[2] or 0),
            updated_at=int(o[3] or 0),
            amount_remaining=to_decimal(o[4]),
            amount=to_decimal(o[5]),
            order_type=str(o[6]).lower(),
            status=str(o[10]).lower(),
            rate=to_decimal(o[14]),
            period=int(o[15]),
        )
    except (IndexError, TypeError, ValueError) as exc:
        raise MessageDecodeError(f"bad funding offer: {o!r}") from exc


def raw_to_trade(t: list) -> Trade:
    """Map a funding trade array into a Trade."""
    try:
        return Trade(
            id=t[0],
            currency=t[1],
            created_at=int(t[2] or 0),
            offer_id=t[3],
            amount=to_decimal(t[4]),
            rate=to_decimal(t[5]),
            period=int(t[6]),
            is_maker=t[7] == 1,
        )
    except (IndexError, TypeError, ValueError) as exc:
        raise MessageDecodeError(f"bad funding trade: {t!r}") from exc


def raw_to_wallet(w: list) -> Wallet:
    try:
        available = w[4] if len(w) > 4 else None
        return Wallet(
            type=w[0],
            currency=w[1],
            balance=to_decimal(w[2]),
            available=to_decimal(available) if available is not None else None,
        )
    except (IndexError, TypeError) as exc:
        raise MessageDecodeError(f"bad wallet: {w!r}") from exc


def raw_to_position(p: list) -> Position:
    try:
        return Position(
            symbol=p[0],
            status=str(p[1]).lower(),
            amount=to_decimal(p[2]),
            base_price=to_decimal(p[3]),
        )
    except (IndexError, TypeError) as exc:
        raise MessageDecodeError(f"bad position: {p!r}") from exc


def decode_account_message(data: list) -> list[FundingEvent]:
    """Decode a channel 0 (authenticated account) message into events.

    Raises:
        MessageDecodeError: If a recognised message carries a malformed payload.
    """
    if len(data) < 2:
        raise MessageDecodeError(f"short account message: {data!r}")

    msg_type = data[1]
    payload = data[2] if len(data) > 2 else None

    if msg_type in _IGNORED_MESSAGES:
        return []

    if msg_type == "n":
        logger.info("exchange_notification", notification=payload)
        return []

    if msg_type in _SNAPSHOT_MESSAGES:
        if not isinstance(payload, list):
            raise MessageDecodeError(f"snapshot {msg_type} is not a list")
        logger.info("snapshot_received", type=msg_type, entries=len(payload))
        items = payload
    else:
        items = [payload]

    events: list[FundingEvent] = []
    if msg_type in _SNAPSHOT_RESETS:
        events.append(FundingEvent(EventType.SNAPSHOT_STARTED, _SNAPSHOT_RESETS[msg_type]))

    if msg_type in _BORROW_MESSAGES:
        usage, event_type = _BORROW_MESSAGES[msg_type]
        return events + [FundingEvent(event_type, raw_to_borrow(f, usage)) for f in items]

    if msg_type in _ORDER_MESSAGES:
        event_type = _ORDER_MESSAGES[msg_type]
        return events + [FundingEvent(event_type, raw_to_order(o)) for o in items]

    if msg_type in _TRADE_MESSAGES:
        event_type = _TRADE_MESSAGES[msg_type]
        return [FundingEvent(event_type, raw_to_trade(t)) for t in items]

    if msg_type in _WALLET_MESSAGES:
        return [FundingEvent(EventType.WALLET_UPDATED, raw_to_wallet(w)) for w in items]

    if msg_type in _POSITION_MESSAGES:
        event_type = EventType.POSITION_CLOSED if msg_type == "pc" else EventType.POSITION_UPDATED
        return [FundingEvent(event_type, raw_to_position(p)) for p in items]

    logger.warning("unknown_account_message", type=msg_type)
    return []
