"""
Discount engine
Project: BuildLedger (contractor billing)

Computes the single discount amount of a document from its list of
discounts. Each discount's base is taken from the original subtotal,
pre-discount total or category subtotal, never from a running
discounted value: discounts do not compound and their order does not
matter.
"""

import logging
from decimal import Decimal
from typing import Sequence

from buildledger.schemas.document import (
    Discount,
    DiscountScope,
    DiscountType,
    LineItem,
    ValidationWarning,
)
from buildledger.services.aggregation import category_subtotal
from buildledger.services.money import ZERO, percentage_of, round2, to_decimal

logger = logging.getLogger(__name__)


def discount_base(
    discount: Discount,
    subtotal: Decimal,
    total: Decimal,
    items: Sequence[LineItem],
) -> Decimal:
    """
    Base a discount applies to.

    Args:
        discount: The discount
        subtotal: Document subtotal
        total: Pre-discount total (subtotal + tax + change orders)
        items: Line items, used for category discounts

    Returns:
        Decimal: 0 for a category discount without a category
    """
    if discount.applies_to == DiscountScope.SUBTOTAL:
        return to_decimal(subtotal)
    if discount.applies_to == DiscountScope.TOTAL:
        return to_decimal(total)
    return category_subtotal(items, discount.category)


def discount_contribution(
    discount: Discount,
    subtotal: Decimal,
    total: Decimal,
    items: Sequence[LineItem],
) -> Decimal:
    """Unrounded amount removed by one discount."""
    if discount.type == DiscountType.FIXED:
        return to_decimal(discount.value)
    return percentage_of(discount_base(discount, subtotal, total, items), discount.value)


def discount_amount(
    subtotal: Decimal,
    total: Decimal,
    discounts: Sequence[Discount],
    items: Sequence[LineItem],
) -> Decimal:
    """Sum of every discount contribution, rounded once."""
    return round2(
        sum(
            (discount_contribution(d, subtotal, total, items) for d in discounts),
            ZERO,
        )
    )


def discount_warnings(
    subtotal: Decimal,
    total: Decimal,
    discounts: Sequence[Discount],
    items: Sequence[LineItem],
) -> list[ValidationWarning]:
    """Non-fatal findings about a discount list."""
    warnings = []

    amount = discount_amount(subtotal, total, discounts, items)
    if amount > to_decimal(total):
        logger.warning("Discount %s exceeds document total %s", amount, total)
        warnings.append(
            ValidationWarning(
                code="DISCOUNT_EXCEEDS_TOTAL",
                message=f"Discounts ({amount}) exceed the document total ({round2(total)})",
            )
        )

    for discount in discounts:
        if discount.applies_to == DiscountScope.CATEGORY and not discount.category:
            warnings.append(
                ValidationWarning(
                    code="DISCOUNT_MISSING_CATEGORY",
                    message=f"Category discount '{discount.description}' has no category",
                )
            )
        if discount.type == DiscountType.PERCENTAGE and discount.value > 100:
            warnings.append(
                ValidationWarning(
                    code="DISCOUNT_OVER_100_PERCENT",
                    message=f"Discount '{discount.description}' is above 100%",
                )
            )

    return warnings
