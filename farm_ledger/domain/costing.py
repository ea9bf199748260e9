"""
Weighted-average inventory costing.

Receipts with a positive unit cost blend into the running average; every
decrease (issue, consumption, transfer out, negative adjustment) leaves the
average unchanged.  Averages are rounded half-up to ``places`` decimals.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")


@dataclass(frozen=True, slots=True)
class BalanceChange:
    previous_qty: Decimal
    new_qty: Decimal
    previous_avg_cost: Decimal
    new_avg_cost: Decimal


def round_cost(value: Decimal, places: int) -> Decimal:
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def weighted_average(
    qty_on_hand: Decimal,
    avg_cost: Decimal,
    qty_delta: Decimal,
    unit_cost: Decimal,
    places: int = 2,
) -> BalanceChange:
    """
    Apply ``qty_delta`` at ``unit_cost`` to a balance.

    When the resulting quantity is not positive (a receipt into a negative
    balance that stays at or below zero) the incoming unit cost becomes the
    average.
    """
    new_qty = qty_on_hand + qty_delta
    new_avg = avg_cost

    if qty_delta > ZERO and unit_cost > ZERO:
        if new_qty > ZERO:
            new_avg = (qty_on_hand * avg_cost + qty_delta * unit_cost) / new_qty
        else:
            new_avg = unit_cost
        new_avg = round_cost(new_avg, places)

    return BalanceChange(
        previous_qty=qty_on_hand,
        new_qty=new_qty,
        previous_avg_cost=avg_cost,
        new_avg_cost=new_avg,
    )
