"""
Category aggregation
Project: BuildLedger (contractor billing)

Groups line items into the four financial buckets (material, labor,
equipment, other) and computes line, bucket and document subtotals.

Trade categories (permit, electrical, plumbing, framing, landscaping)
and any unknown or missing category are display-only subtypes of
"other": they never get a bucket of their own.
"""

from decimal import Decimal
from typing import Iterable, Optional, Sequence

from buildledger.schemas.document import CategoryBucket, CategorySubtotals, LineItem
from buildledger.services.money import ZERO, round2, to_decimal

_BUCKETS = {bucket.value: bucket for bucket in CategoryBucket}


def category_bucket(category: Optional[str]) -> CategoryBucket:
    """Map a line item category to its financial bucket."""
    if category is None:
        return CategoryBucket.OTHER
    return _BUCKETS.get(str(category).strip().lower(), CategoryBucket.OTHER)


def line_item_total(item: LineItem) -> Decimal:
    """round2(quantity * rate * (1 + markup / 100)), ignoring the stored total."""
    base = to_decimal(item.quantity) * to_decimal(item.rate)
    markup = to_decimal(item.markup)
    return round2(base + base * markup / Decimal("100"))


def recalculate_line_item(item: LineItem) -> LineItem:
    """Copy of the item with a fresh total."""
    return item.model_copy(update={"total": line_item_total(item)})


def recalculate_line_items(items: Iterable[LineItem]) -> list[LineItem]:
    return [recalculate_line_item(item) for item in items]


def category_subtotals(items: Sequence[LineItem]) -> CategorySubtotals:
    """
    Subtotal per bucket.

    Each bucket sums the rounded line totals, so the four buckets always
    add up to the document subtotal to the cent.

    Args:
        items: Line items, in any order

    Returns:
        CategorySubtotals: all zeros for an empty list
    """
    sums = {bucket: ZERO for bucket in CategoryBucket}
    for item in items:
        sums[category_bucket(item.category)] += line_item_total(item)

    return CategorySubtotals(**{bucket.value: round2(value) for bucket, value in sums.items()})


def subtotal(items: Sequence[LineItem]) -> Decimal:
    """Document subtotal: sum of the recomputed line totals."""
    return round2(sum((line_item_total(item) for item in items), ZERO))


def category_subtotal(items: Sequence[LineItem], category: Optional[str]) -> Decimal:
    """
    Subtotal of one named category.

    A bucket name (material, labor, equipment, other) returns the bucket
    subtotal. A trade subtype (e.g. "plumbing") returns the sum of the items
    with exactly that category. A missing category returns 0.
    """
    if not category:
        return ZERO

    name = str(category).strip().lower()
    if name in _BUCKETS:
        return category_subtotals(items).for_bucket(_BUCKETS[name])

    return round2(
        sum(
            (line_item_total(item) for item in items if (item.category or "").lower() == name),
            ZERO,
        )
    )
