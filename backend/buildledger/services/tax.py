"""
Tax engine
Project: BuildLedger (contractor billing)

Applies the per-bucket default tax rates, or a line item's own rate
override, and produces the tax breakdown of a document.
"""

from decimal import Decimal
from typing import Sequence

from buildledger.schemas.document import CategoryBucket, LineItem, TaxBreakdown, TaxRates
from buildledger.services.aggregation import category_bucket, line_item_total
from buildledger.services.money import ZERO, percentage_of, round2


def effective_tax_rate(item: LineItem, rates: TaxRates) -> Decimal:
    """The item's override rate when set, otherwise the default of its bucket."""
    if item.tax_rate is not None:
        return item.tax_rate
    return rates.for_bucket(category_bucket(item.category))


def item_tax(item: LineItem, rates: TaxRates) -> Decimal:
    """Unrounded tax of one line item."""
    return percentage_of(line_item_total(item), effective_tax_rate(item, rates))


def tax_breakdown(items: Sequence[LineItem], rates: TaxRates) -> TaxBreakdown:
    """
    Compute the tax breakdown of a list of line items.

    Item taxes are accumulated unrounded per bucket; each bucket is then
    rounded once and total_tax is the sum of the rounded buckets, so the
    breakdown always adds up exactly.

    Zero or negative rates are applied literally.

    Args:
        items: Line items
        rates: Default rates per bucket

    Returns:
        TaxBreakdown: all zeros for an empty list
    """
    buckets = {bucket: ZERO for bucket in CategoryBucket}
    for item in items:
        buckets[category_bucket(item.category)] += item_tax(item, rates)

    material_tax = round2(buckets[CategoryBucket.MATERIAL])
    labor_tax = round2(buckets[CategoryBucket.LABOR])
    equipment_tax = round2(buckets[CategoryBucket.EQUIPMENT])
    other_tax = round2(buckets[CategoryBucket.OTHER])

    return TaxBreakdown(
        material_tax=material_tax,
        labor_tax=labor_tax,
        equipment_tax=equipment_tax,
        other_tax=other_tax,
        total_tax=material_tax + labor_tax + equipment_tax + other_tax,
    )
