"""Reference calculation strategies for the seller report.

The pipeline never hard-codes how an item is priced or how a bonus is paid.
Callers inject two plain functions instead:

* a revenue strategy ``(item, product) -> amount``
* a bonus strategy ``(index, total, seller) -> amount``

The implementations below are the defaults selected by ``config.ini``. Any
other callable with the same signature can be passed through
:class:`core_logic.ReportOptions`.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Callable, Dict

from .constants import (
    DEFAULT_BONUS_RATE,
    FIRST_PLACE_BONUS_RATE,
    PODIUM_BONUS_RATE,
    BonusStrategyName,
    RevenueStrategyName,
)
from .data_manager import LineItem, Product

if TYPE_CHECKING:
    from .core_logic import SellerAccumulator


# Both strategy kinds receive ``Decimal`` money fields (``LineItem.sale_price``,
# ``LineItem.discount``, ``Product.purchase_price``, ``SellerAccumulator.profit``).
# Mixing them with float literals raises ``TypeError``; use ``Decimal`` or int
# constants instead. Return values may be ``Decimal``, ``int``, ``float`` or a
# numeric string and are converted with ``Decimal(str(value))``.
RevenueStrategy = Callable[[LineItem, Product], Any]
BonusStrategy = Callable[[int, int, "SellerAccumulator"], Any]


def calculate_simple_revenue(item: LineItem, _product: Product) -> Decimal:
    """Price a line item as ``sale_price * quantity`` less its percent discount.

    The result is not rounded; the accumulator rounds running totals itself.
    """

    discount_multiplier = 1 - item.discount / Decimal("100")
    return item.sale_price * item.quantity * discount_multiplier


def calculate_bonus_by_profit(index: int, total: int, seller: "SellerAccumulator") -> Decimal:
    """Pay a share of profit depending on the seller's rank.

    Rules are checked top to bottom and the first match wins:

    1. first place: 15 %
    2. second or third place: 10 %
    3. last place: nothing
    4. everyone else: 5 %

    Because the podium check comes before the last-place check, the second of
    two sellers still receives 10 %, and a lone seller receives 15 %.
    """

    position = index + 1
    if position == 1:
        return seller.profit * FIRST_PLACE_BONUS_RATE
    if position in (2, 3):
        return seller.profit * PODIUM_BONUS_RATE
    if position == total:
        return Decimal("0")
    return seller.profit * DEFAULT_BONUS_RATE


REVENUE_STRATEGIES: Dict[str, RevenueStrategy] = {
    RevenueStrategyName.SIMPLE.value: calculate_simple_revenue,
}

BONUS_STRATEGIES: Dict[str, BonusStrategy] = {
    BonusStrategyName.BY_PROFIT.value: calculate_bonus_by_profit,
}


def resolve_revenue_strategy(name: str) -> RevenueStrategy:
    """Return the revenue strategy registered under ``name``.

    Raises:
        KeyError: If no revenue strategy is registered under ``name``.
    """

    try:
        return REVENUE_STRATEGIES[name]
    except KeyError as exc:
        raise KeyError(f"Unknown revenue strategy: {name}") from exc


def resolve_bonus_strategy(name: str) -> BonusStrategy:
    """Return the bonus strategy registered under ``name``.

    Raises:
        KeyError: If no bonus strategy is registered under ``name``.
    """

    try:
        return BONUS_STRATEGIES[name]
    except KeyError as exc:
        raise KeyError(f"Unknown bonus strategy: {name}") from exc
