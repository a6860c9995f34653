"""
Money helpers
Project: BuildLedger (contractor billing)

Currency rounding and percentage arithmetic on Decimal. Every function
that produces a currency amount goes through round2 so repeated
recomputation never accumulates drift.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[Decimal, int, float, str]

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
ZERO = Decimal("0")


def to_decimal(value: Number | None) -> Decimal:
    """
    Convert a number to Decimal.

    Floats go through str() so 0.1 becomes Decimal("0.1") and not its
    binary approximation. None is treated as zero.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round2(value: Number | None) -> Decimal:
    """Round to cents, half up."""
    return to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percentage_of(amount: Number, pct: Number | None) -> Decimal:
    """Unrounded `amount * pct / 100`."""
    return to_decimal(amount) * to_decimal(pct) / HUNDRED


def apply_markup(cost: Number, markup_pct: Number | None) -> Decimal:
    """
    Apply a markup percentage to a cost.

    Args:
        cost: Base cost
        markup_pct: Markup percentage (None means no markup)

    Returns:
        Decimal: round2(cost * (1 + markup_pct / 100))
    """
    cost = to_decimal(cost)
    return round2(cost + percentage_of(cost, markup_pct))


def markup_amount(cost: Number, markup_pct: Number | None) -> Decimal:
    """Amount added by the markup alone."""
    return round2(percentage_of(cost, markup_pct))


def margin_from_markup(markup_pct: Number) -> Decimal:
    """
    Gross margin (%) obtained with a given markup (%).

    A 25% markup on cost is a 20% margin on the selling price.
    """
    markup_pct = to_decimal(markup_pct)
    if markup_pct == -HUNDRED:
        return ZERO
    return round2(markup_pct / (HUNDRED + markup_pct) * HUNDRED)


def markup_from_margin(margin_pct: Number) -> Decimal:
    """Markup (%) needed to reach a gross margin (%). Margins of 100% or more return 0."""
    margin_pct = to_decimal(margin_pct)
    if margin_pct >= HUNDRED:
        return ZERO
    return round2(margin_pct / (HUNDRED - margin_pct) * HUNDRED)


def deposit_amount(total: Number, deposit_pct: Number | None) -> Decimal:
    """Deposit requested on a document: round2(total * pct / 100)."""
    return round2(percentage_of(total, deposit_pct))
