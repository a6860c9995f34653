"""
Payment ledger
Project: BuildLedger (contractor billing)

Accumulates payments against a document total, derives the balance due
and owns the single transition function that infers the payment status
(partial_paid / paid). Inputs are never mutated: every operation
returns an updated copy of the document.
"""

import logging
import uuid
from decimal import Decimal
from typing import Iterable, Literal, Union

from buildledger.schemas.document import (
    Document,
    DocumentStatus,
    Payment,
    PaymentCreate,
)
from buildledger.services.money import ZERO, round2, to_decimal

logger = logging.getLogger(__name__)

PaymentDeletionPolicy = Literal["keep_status", "revert_status"]

# Statuses driven by the payment ledger
PAYMENT_STATUSES = {DocumentStatus.PAID, DocumentStatus.PARTIAL_PAID}


def total_paid(payments: Iterable[Payment]) -> Decimal:
    return round2(sum((to_decimal(p.amount) for p in payments), ZERO))


def balance_due(total: Decimal, payments: Iterable[Payment]) -> Decimal:
    """max(0, round2(total - paid)); never negative, never above total."""
    balance = round2(to_decimal(total) - total_paid(payments))
    return max(ZERO, balance)


def status_after_payment(balance: Decimal) -> DocumentStatus:
    """Status of a document right after a payment was applied."""
    if balance > ZERO:
        return DocumentStatus.PARTIAL_PAID
    return DocumentStatus.PAID


def record_payment(document: Document, payment: Union[Payment, PaymentCreate]) -> Document:
    """
    Apply a payment to a document.

    Args:
        document: Document receiving the payment
        payment: Payment to append (a PaymentCreate gets a fresh id)

    Returns:
        Document: Copy with the payment appended, balance recomputed and
        status inferred from the new balance
    """
    if not isinstance(payment, Payment):
        payment = Payment(**payment.model_dump())

    payments = [*document.payments, payment]
    balance = balance_due(document.total, payments)
    status = status_after_payment(balance)

    logger.info(
        "Payment of %s recorded on %s: balance %s, status %s",
        payment.amount,
        document.number,
        balance,
        status.value,
    )
    return document.model_copy(
        update={"payments": payments, "balance_due": balance, "status": status}
    )


def delete_payment(
    document: Document,
    payment_id: uuid.UUID,
    policy: PaymentDeletionPolicy = "keep_status",
) -> Document:
    """
    Remove a payment from a document.

    Policies:
    - keep_status: status is left untouched (a paid invoice stays paid)
    - revert_status: a paid/partial_paid document goes back to `sent`
      when no payments are left, otherwise its status is re-inferred

    An unknown payment id returns an unchanged copy.

    Args:
        document: Document owning the payment
        payment_id: UUID of the payment to remove
        policy: Status policy

    Returns:
        Document: Updated copy
    """
    payments = [p for p in document.payments if p.id != payment_id]
    if len(payments) == len(document.payments):
        logger.warning("Payment %s not found on %s", payment_id, document.number)
        return document.model_copy()

    balance = balance_due(document.total, payments)
    update = {"payments": payments, "balance_due": balance}

    if policy == "revert_status" and document.status in PAYMENT_STATUSES:
        update["status"] = status_after_payment(balance) if payments else DocumentStatus.SENT

    return document.model_copy(update=update)
