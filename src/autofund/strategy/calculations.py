"""Pure funding calculations shared by both strategies.

CRITICAL: All values use Decimal. Rates are fractional daily rates unless a
name says otherwise (``apr``, ``annual_pct``).
"""

from collections.abc import Iterable, Sequence
from decimal import Decimal
from itertools import combinations

from autofund.models import Borrow, Offer, ReplacementCost

_DAYS_PER_YEAR = Decimal("365")
_HUNDRED = Decimal("100")

# Upper bound on subsets examined by borrows_to_return
MAX_RETURN_COMBINATIONS = 100_000


def apr(rate: Decimal) -> Decimal:
    """Daily rate to annual percentage (0.0002 -> 7.3)."""
    return rate * _DAYS_PER_YEAR * _HUNDRED


def annual_to_daily_rate(annual_pct: Decimal) -> Decimal:
    """Annual percentage to daily rate (7.3 -> 0.0002)."""
    return annual_pct / _DAYS_PER_YEAR / _HUNDRED


def total_amount(items: Iterable[Borrow | Offer]) -> Decimal:
    return sum((item.amount for item in items), Decimal("0"))


def compute_replacement_cost(borrows: Sequence[Borrow]) -> ReplacementCost:
    """Size a candidate replacement.

    Any replacement has to cover the whole amount at a better rate than the
    cheapest borrow in the set.

    Args:
        borrows: Non-empty subset of the active borrows.

    Returns:
        ReplacementCost with the lowest rate in the subset and the summed amount.

    Raises:
        ValueError: If ``borrows`` is empty.
    """
    if not borrows:
        raise ValueError("cannot cost an empty set of borrows")

    return ReplacementCost(
        best_rate=min(b.rate for b in borrows),
        total_amount=total_amount(borrows),
    )


def offers_cheaper_than(
    offers: Sequence[Offer], rate: Decimal, min_improvement: Decimal
) -> list[Offer]:
    """Offers at least ``min_improvement`` cheaper than ``rate``, order preserved."""
    target = rate - min_improvement
    return [o for o in offers if o.rate <= target]


def find_fill_rate(offers: Sequence[Offer], amount: Decimal) -> Decimal:
    """Find the limit rate needed to fill ``amount`` against the book.

    Walks the offers cheapest first, accumulating depth until the requested
    size is covered, and returns the rate of the last tier that was needed.
    If the book runs out first, the most expensive tier walked is returned.

    Args:
        offers: Offers sorted by ascending rate.
        amount: Size we want to borrow.

    Raises:
        ValueError: If there are no offers.
    """
    if not offers:
        raise ValueError("cannot find a fill rate in an empty book")

    rate = offers[0].rate
    balance = amount
    for offer in offers:
        if balance <= 0:
            break
        rate = offer.rate
        balance -= offer.amount
    return rate


def borrows_to_return(
    to_replace: Sequence[Borrow],
    filled_amount: Decimal,
    max_combinations: int = MAX_RETURN_COMBINATIONS,
) -> list[Borrow]:
    """Choose which of the borrows being replaced to give back after a fill.

    Searches for the combination whose total is closest to, but never less
    than, the filled amount. Candidates are ordered by descending amount and
    subsets are examined by increasing size, so on equal overshoot the
    combination with fewer (and larger) items wins. The search stops early
    once overshoot is within ``total / 1_000_000``, and after
    ``max_combinations`` subsets.

    Returns:
        The borrows to return. Empty when nothing filled; everything when no
        combination covers the fill.
    """
    if filled_amount <= 0 or not to_replace:
        return []

    if len(to_replace) == 1:
        return list(to_replace)

    candidates = sorted(to_replace, key=lambda b: (-b.amount, -b.rate))
    total = total_amount(candidates)
    if filled_amount >= total:
        return candidates

    tolerance = total / Decimal("1000000")
    best: tuple[Borrow, ...] | None = None
    best_overshoot: Decimal | None = None
    examined = 0

    for size in range(1, len(candidates) + 1):
        # the largest items give the biggest sum for this size
        if total_amount(candidates[:size]) < filled_amount:
            continue

        for combo in combinations(candidates, size):
            examined += 1
            combo_total = total_amount(combo)
            if combo_total >= filled_amount:
                overshoot = combo_total - filled_amount
                if best_overshoot is None or overshoot < best_overshoot:
                    best, best_overshoot = combo, overshoot
                    if best_overshoot <= tolerance:
                        return list(best)

            if examined >= max_combinations:
                return list(best) if best is not None else candidates

    return list(best) if best is not None else candidates
