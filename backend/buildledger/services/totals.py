"""
Totals pipeline
Project: BuildLedger (contractor billing)

Runs the computation stages in their required order for one recompute:
aggregation -> tax -> discount -> total, then deposit, balance due and
progress phase amounts on top of the resulting total.
"""

from decimal import Decimal
from typing import Sequence

from buildledger.schemas.document import (
    ChangeOrder,
    ChangeOrderStatus,
    Discount,
    Document,
    DocumentTotals,
    LineItem,
    TaxRates,
    ValidationWarning,
)
from buildledger.services import aggregation, discounts, money, payments, progress_billing, tax

# Change orders that never reach the document total
EXCLUDED_CHANGE_ORDER_STATUSES = {ChangeOrderStatus.REJECTED}


def compute_change_order(change_order: ChangeOrder, tax_rates: TaxRates) -> ChangeOrder:
    """Copy of a change order with fresh line totals, subtotal, tax and total."""
    items = aggregation.recalculate_line_items(change_order.line_items)
    subtotal = aggregation.subtotal(items)
    tax_amount = tax.tax_breakdown(items, tax_rates).total_tax
    return change_order.model_copy(
        update={
            "line_items": items,
            "subtotal": subtotal,
            "tax_amount": tax_amount,
            "total": subtotal + tax_amount,
        }
    )


def change_order_total(change_orders: Sequence[ChangeOrder]) -> Decimal:
    """Sum of the change order totals, rejected change orders excluded."""
    return money.round2(
        sum(
            (
                money.to_decimal(co.total)
                for co in change_orders
                if co.status not in EXCLUDED_CHANGE_ORDER_STATUSES
            ),
            money.ZERO,
        )
    )


def compute_totals(
    line_items: Sequence[LineItem],
    tax_rates: TaxRates,
    discount_list: Sequence[Discount],
    change_orders: Sequence[ChangeOrder] = (),
) -> DocumentTotals:
    """
    Compute every derived amount of a document.

    Args:
        line_items: Line items (stored totals are ignored)
        tax_rates: Default tax rates per bucket
        discount_list: Discounts
        change_orders: Change orders (recomputed with the same tax rates)

    Returns:
        DocumentTotals: subtotal, category subtotals, tax breakdown, tax,
        discount, change order total, total (never negative) and warnings
    """
    categories = aggregation.category_subtotals(line_items)
    subtotal = aggregation.subtotal(line_items)
    breakdown = tax.tax_breakdown(line_items, tax_rates)
    tax_amount = breakdown.total_tax

    computed_change_orders = [compute_change_order(co, tax_rates) for co in change_orders]
    co_total = change_order_total(computed_change_orders)

    pre_discount_total = subtotal + tax_amount + co_total
    discount_amount = discounts.discount_amount(
        subtotal, pre_discount_total, discount_list, line_items
    )
    total = max(money.ZERO, money.round2(pre_discount_total - discount_amount))

    return DocumentTotals(
        subtotal=subtotal,
        category_subtotals=categories,
        tax_breakdown=breakdown,
        tax_amount=tax_amount,
        discount_amount=discount_amount,
        change_order_total=co_total,
        total=total,
        warnings=discounts.discount_warnings(
            subtotal, pre_discount_total, discount_list, line_items
        ),
    )


def recompute_document(document: Document) -> Document:
    """
    Refresh every derived field of a document.

    Line totals, category subtotals, tax, discount, change orders, total,
    deposit, balance due and phase amounts are all re-derived from the
    user inputs. Status is never changed here. Running it twice yields the
    same document.
    """
    items = aggregation.recalculate_line_items(document.line_items)
    change_orders = [compute_change_order(co, document.tax_rates) for co in document.change_orders]
    totals = compute_totals(items, document.tax_rates, document.discounts, change_orders)

    deposit = money.ZERO
    if document.deposit_percentage:
        deposit = money.deposit_amount(totals.total, document.deposit_percentage)

    return document.model_copy(
        update={
            "line_items": items,
            "change_orders": change_orders,
            "category_subtotals": totals.category_subtotals,
            "subtotal": totals.subtotal,
            "tax_breakdown": totals.tax_breakdown,
            "tax_amount": totals.tax_amount,
            "discount_amount": totals.discount_amount,
            "change_order_total": totals.change_order_total,
            "total": totals.total,
            "deposit_amount": deposit,
            "balance_due": payments.balance_due(totals.total, document.payments),
            "progress_billing": progress_billing.recompute_phases(
                document.progress_billing, totals.total
            ),
        }
    )


def document_warnings(document: Document) -> list[ValidationWarning]:
    """Non-fatal findings on an already recomputed document."""
    warnings = discounts.discount_warnings(
        document.subtotal,
        document.subtotal + document.tax_amount + document.change_order_total,
        document.discounts,
        document.line_items,
    )
    if document.is_progress_billing:
        warnings.extend(progress_billing.phase_warnings(document.progress_billing))
    return warnings
