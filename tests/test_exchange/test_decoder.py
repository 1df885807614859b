"""Tests for Bitfinex v2 message decoding.

Message arrays follow the documented positional layouts for funding credits,
funding loans, funding offers, funding trades, wallets and positions.
"""

from decimal import Decimal

import pytest

from autofund.exceptions import MessageDecodeError
from autofund.exchange.decoder import (
    decode_account_message,
    decode_book_entry,
    decode_book_message,
    raw_to_borrow,
    raw_to_order,
)
from autofund.exchange.events import Collection, EventType, SnapshotStart
from autofund.models import BorrowSide, UsageType

DAY_MS = 24 * 60 * 60 * 1000
OPENED_MS = 1_700_000_000_000


def funding_credit(id: int = 101, amount: float = -500.0, rate: float = 0.0003, rate_real=None) -> list:
    return [
        id,  # ID
        "fUSD",  # SYMBOL
        -1,  # SIDE
        OPENED_MS - 5000,  # MTS_CREATE
        OPENED_MS,  # MTS_UPDATE
        amount,  # AMOUNT
        0,  # FLAGS
        "ACTIVE",  # STATUS
        None,
        None,
        None,
        rate,  # RATE
        2,  # PERIOD
        OPENED_MS,  # MTS_OPENING
        OPENED_MS,  # MTS_LAST_PAYOUT
        0,  # NOTIFY
        0,  # HIDDEN
        None,
        0,  # RENEW
        rate_real,  # RATE_REAL
        0,  # NO_CLOSE
        "tBTCUSD",  # POSITION_PAIR
    ]


def funding_offer(id: int = 42, amount: float = -500.0, remaining: float = -500.0) -> list:
    return [
        id,  # ID
        "fUSD",  # SYMBOL
        OPENED_MS,  # MTS_CREATED
        OPENED_MS,  # MTS_UPDATED
        remaining,  # AMOUNT
        amount,  # AMOUNT_ORIG
        "LIMIT",  # TYPE
        None,
        None,
        0,  # FLAGS
        "ACTIVE",  # STATUS
        None,
        None,
        None,
        0.00025,  # RATE
        2,  # PERIOD
        0,  # NOTIFY
        0,  # HIDDEN
        None,
        0,  # RENEW
    ]


# ---------------------------------------------------------------------------
# Funding book
# ---------------------------------------------------------------------------


def test_book_offer_entry() -> None:
    event = decode_book_entry([0.00025, 2, 3, 1500.5])

    assert event.type == EventType.OFFER_UPDATED
    assert event.payload.rate == Decimal("0.00025")
    assert event.payload.amount == Decimal("1500.5")
    assert event.payload.count == 3


def test_book_zero_count_cancels_level() -> None:
    event = decode_book_entry([0.00025, 2, 0, 1])

    assert event.type == EventType.OFFER_CANCELLED


def test_book_bid_dropped() -> None:
    assert decode_book_entry([0.0002, 30, 1, -800]) is None


def test_book_snapshot_drops_bids() -> None:
    events = decode_book_message(
        [17, [[0.0002, 2, 1, 100], [0.00021, 2, 2, 250], [0.00019, 30, 1, -400]]]
    )

    assert events[0].type == EventType.SNAPSHOT_STARTED
    assert events[0].payload == SnapshotStart(Collection.OFFERS)
    assert [e.payload.rate for e in events[1:]] == [Decimal("0.0002"), Decimal("0.00021")]


def test_book_single_entry_is_not_a_snapshot() -> None:
    events = decode_book_message([17, [0.0002, 2, 1, 100]])

    assert [e.type for e in events] == [EventType.OFFER_UPDATED]


def test_empty_book_snapshot_clears_levels() -> None:
    events = decode_book_message([17, []])

    assert [e.type for e in events] == [EventType.SNAPSHOT_STARTED]


def test_book_heartbeat_ignored() -> None:
    assert decode_book_message([17, "hb"]) == []


def test_book_garbage_raises() -> None:
    with pytest.raises(MessageDecodeError):
        decode_book_message([17, {"rate": 1}])


# ---------------------------------------------------------------------------
# Account channel
# ---------------------------------------------------------------------------


def test_funding_credit_is_using_borrow() -> None:
    events = decode_account_message([0, "fcn", funding_credit()])

    assert len(events) == 1
    borrow = events[0].payload
    assert events[0].type == EventType.BORROW_UPDATED
    assert borrow.usage == UsageType.USING
    assert borrow.side == BorrowSide.BORROWER
    assert borrow.amount == Decimal("500.0")
    assert borrow.rate == Decimal("0.0003")
    assert borrow.expires_at == OPENED_MS + 2 * DAY_MS
    assert borrow.pair == "tBTCUSD"


def test_funding_loan_is_unused_borrow() -> None:
    events = decode_account_message([0, "flc", funding_credit()])

    assert events[0].type == EventType.BORROW_CANCELLED
    assert events[0].payload.usage == UsageType.UNUSED


def test_rate_real_preferred() -> None:
    borrow = raw_to_borrow(funding_credit(rate=0.0003, rate_real=0.00028), UsageType.USING)

    assert borrow.rate == Decimal("0.00028")


def test_credit_snapshot() -> None:
    events = decode_account_message(
        [0, "fcs", [funding_credit(id=1), funding_credit(id=2)]]
    )

    assert events[0].payload == SnapshotStart(Collection.BORROWS, UsageType.USING)
    assert [e.payload.id for e in events[1:]] == [1, 2]
    assert all(e.type == EventType.BORROW_UPDATED for e in events[1:])


def test_empty_snapshot_still_resets() -> None:
    events = decode_account_message([0, "fls", []])

    assert [e.type for e in events] == [EventType.SNAPSHOT_STARTED]
    assert events[0].payload == SnapshotStart(Collection.BORROWS, UsageType.UNUSED)


def test_order_snapshot_resets_orders() -> None:
    events = decode_account_message([0, "fos", [funding_offer(id=5)]])

    assert events[0].payload == SnapshotStart(Collection.ORDERS)
    assert events[1].type == EventType.ORDER_UPDATED
    assert events[1].payload.id == 5


def test_malformed_snapshot_entry_drops_whole_message() -> None:
    with pytest.raises(MessageDecodeError):
        decode_account_message([0, "fcs", [funding_credit(id=1), [1, "fUSD"]]])


def test_funding_offer_lifecycle() -> None:
    new = decode_account_message([0, "fon", funding_offer()])[0]
    update = decode_account_message([0, "fou", funding_offer(remaining=-200.0)])[0]
    closed = decode_account_message([0, "foc", funding_offer(remaining=0.0)])[0]

    assert new.type == EventType.ORDER_NEW
    assert update.type == EventType.ORDER_UPDATED
    assert closed.type == EventType.ORDER_CANCELLED
    assert update.payload.filled == Decimal("-300.0")
    assert update.payload.rate == Decimal("0.00025")
    assert new.payload.order_type == "limit"


def test_funding_trade() -> None:
    events = decode_account_message(
        [0, "fte", [9001, "fUSD", OPENED_MS, 42, -300.0, 0.00025, 2, 0]]
    )

    trade = events[0].payload
    assert events[0].type == EventType.TRADE_EXECUTED
    assert trade.offer_id == 42
    assert trade.amount == Decimal("-300.0")
    assert trade.is_maker is False


def test_wallet_and_position() -> None:
    wallet = decode_account_message([0, "wu", ["margin", "USD", 1000.5, 0, 800.25]])[0]
    position = decode_account_message([0, "pc", ["tBTCUSD", "CLOSED", 0.5, 30000]])[0]

    assert wallet.type == EventType.WALLET_UPDATED
    assert wallet.payload.available == Decimal("800.25")
    assert position.type == EventType.POSITION_CLOSED
    assert position.payload.status == "closed"


def test_ignored_and_unknown_messages() -> None:
    assert decode_account_message([0, "hb"]) == []
    assert decode_account_message([0, "n", [None, "fon-req", None, None, [], None, "SUCCESS"]]) == []
    assert decode_account_message([0, "zzz", [1, 2, 3]]) == []


def test_malformed_credit_raises() -> None:
    with pytest.raises(MessageDecodeError):
        decode_account_message([0, "fcn", [1, "fUSD"]])


def test_malformed_order_raises() -> None:
    with pytest.raises(MessageDecodeError):
        raw_to_order([42, "fUSD", None, None, "x"])
