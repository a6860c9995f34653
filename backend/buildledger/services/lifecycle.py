"""
Document lifecycle
Project: BuildLedger (contractor billing)

State machine of invoices and quotes:

    quotes:   draft -> sent -> accepted | rejected | expired
    invoices: draft -> sent -> paid | partial_paid | overdue

plus `converted` (quotes only, terminal, reached through conversion) and
`archived` (either type, reachable from any non-terminal status; an
archived document can be restored to draft).

Every function takes the current document collection explicitly and
returns new copies: nothing here mutates its inputs.
"""

import datetime
import logging
import uuid
from typing import Iterable, Optional, Sequence

from buildledger.core.config import settings
from buildledger.core.exceptions import QuoteNotConvertibleError, StateTransitionError
from buildledger.schemas.document import (
    ConversionResult,
    Document,
    DocumentStatus,
    DocumentType,
    PhaseStatus,
)
from buildledger.services.money import ZERO
from buildledger.services.numbering import next_number
from buildledger.services.payments import PAYMENT_STATUSES
from buildledger.services.totals import recompute_document

logger = logging.getLogger(__name__)

S = DocumentStatus

# Explicit user transitions per document type
TRANSITIONS: dict[DocumentType, dict[DocumentStatus, set[DocumentStatus]]] = {
    DocumentType.QUOTE: {
        S.DRAFT: {S.SENT},
        S.SENT: {S.ACCEPTED, S.REJECTED, S.EXPIRED},
    },
    DocumentType.INVOICE: {
        S.DRAFT: {S.SENT},
        S.SENT: {S.OVERDUE},
        S.PARTIAL_PAID: {S.OVERDUE},
    },
}

TERMINAL_STATUSES = {S.CONVERTED, S.ARCHIVED}

NOT_CONVERTIBLE_STATUSES = {S.CONVERTED, S.REJECTED, S.EXPIRED, S.ARCHIVED}

OVERDUE_CANDIDATES = {S.SENT, S.PARTIAL_PAID}


def allowed_transitions(document: Document) -> set[DocumentStatus]:
    """Statuses a user can move the document to."""
    if document.status == S.ARCHIVED:
        return {S.DRAFT}
    if document.status in TERMINAL_STATUSES:
        return set()
    allowed = set(TRANSITIONS[document.type].get(document.status, set()))
    allowed.add(S.ARCHIVED)
    return allowed


def transition(document: Document, target: DocumentStatus) -> Document:
    """
    Apply an explicit user status change.

    Payment statuses are set by the payment ledger and `converted` only by
    conversion, so they are refused here.

    Raises:
        StateTransitionError: transition not allowed from the current status
    """
    target = DocumentStatus(target)
    if target in PAYMENT_STATUSES:
        raise StateTransitionError(
            f"Status '{target.value}' is set by recording payments",
            extra={"current": document.status.value, "requested": target.value},
        )
    if target == S.CONVERTED:
        raise StateTransitionError(
            "Quotes are marked converted by converting them to an invoice",
            extra={"current": document.status.value, "requested": target.value},
        )
    if target not in allowed_transitions(document):
        raise StateTransitionError(
            f"{document.type.value.capitalize()} {document.number} cannot go "
            f"from '{document.status.value}' to '{target.value}'",
            extra={"current": document.status.value, "requested": target.value},
        )

    logger.info("%s: %s -> %s", document.number, document.status.value, target.value)
    return document.model_copy(update={"status": target})


def archive(document: Document) -> Document:
    return transition(document, S.ARCHIVED)


def restore(document: Document) -> Document:
    """archived -> draft."""
    return transition(document, S.DRAFT)


# ------------------------------------------------------------
# Batch sweeps
# ------------------------------------------------------------

def expire_quotes(
    documents: Iterable[Document],
    today: Optional[datetime.date] = None,
) -> list[Document]:
    """
    Expire sent quotes whose expiry date is strictly before today.

    Idempotent: expired quotes are no longer `sent`, so a second run
    changes nothing.

    Returns:
        list[Document]: Copies of the quotes that changed
    """
    today = today or datetime.date.today()
    expired = [
        document.model_copy(update={"status": S.EXPIRED})
        for document in documents
        if document.type == DocumentType.QUOTE
        and document.status == S.SENT
        and document.expiry_date is not None
        and document.expiry_date < today
    ]
    if expired:
        logger.info("Expired %d quote(s)", len(expired))
    return expired


def mark_overdue_invoices(
    documents: Iterable[Document],
    today: Optional[datetime.date] = None,
) -> list[Document]:
    """
    Flag sent or partially paid invoices past their due date with a balance left.

    Returns:
        list[Document]: Copies of the invoices that changed
    """
    today = today or datetime.date.today()
    overdue = [
        document.model_copy(update={"status": S.OVERDUE})
        for document in documents
        if document.type == DocumentType.INVOICE
        and document.status in OVERDUE_CANDIDATES
        and document.due_date is not None
        and document.due_date < today
        and document.balance_due > ZERO
    ]
    if overdue:
        logger.info("Marked %d invoice(s) overdue", len(overdue))
    return overdue


# ------------------------------------------------------------
# Conversion and duplication
# ------------------------------------------------------------

def _fresh_copy(document: Document, **update) -> Document:
    """Deep copy without payments, links and phase progress."""
    phases = [
        phase.model_copy(update={"status": PhaseStatus.PENDING, "billed_date": None, "paid_date": None})
        for phase in document.progress_billing
    ]
    update = {
        "id": uuid.uuid4(),
        "status": S.DRAFT,
        "payments": [],
        "deposit_paid": False,
        "deposit_date": None,
        "progress_billing": phases,
        "original_quote_id": None,
        "converted_invoice_id": None,
        "created_at": None,
        "updated_at": None,
        **update,
    }
    return recompute_document(document.model_copy(deep=True, update=update))


def check_convertible(quote: Document, today: Optional[datetime.date] = None) -> None:
    """
    Raise when a document cannot be converted into an invoice.

    Raises:
        QuoteNotConvertibleError: not a quote, or converted, rejected,
            expired, archived, or past its expiry date
    """
    today = today or datetime.date.today()
    extra = {"id": str(quote.id), "number": quote.number, "status": quote.status.value}

    if quote.type != DocumentType.QUOTE:
        raise QuoteNotConvertibleError(f"{quote.number} is not a quote", extra=extra)
    if quote.status in NOT_CONVERTIBLE_STATUSES:
        raise QuoteNotConvertibleError(
            f"Quote {quote.number} is {quote.status.value} and cannot be converted",
            extra=extra,
        )
    if quote.expiry_date is not None and quote.expiry_date < today:
        raise QuoteNotConvertibleError(
            f"Quote {quote.number} expired on {quote.expiry_date.isoformat()}",
            extra=extra,
        )


def convert_quote_to_invoice(
    quote: Document,
    documents: Sequence[Document],
    today: Optional[datetime.date] = None,
    payment_terms_days: Optional[int] = None,
) -> ConversionResult:
    """
    Convert a quote into a new draft invoice.

    Both effects are produced together: the new invoice (fresh id and
    invoice number, dated today, due after the payment terms, no expiry,
    linked back to the quote) and the updated quote (status converted,
    linked to the invoice). Callers persist the pair in one transaction.

    Args:
        quote: Quote to convert
        documents: Every existing document, for invoice numbering
        today: Conversion date (default: today)
        payment_terms_days: Days until the invoice is due (default: settings)

    Returns:
        ConversionResult: invoice and updated quote

    Raises:
        QuoteNotConvertibleError: see check_convertible
    """
    today = today or datetime.date.today()
    check_convertible(quote, today)

    if payment_terms_days is None:
        payment_terms_days = settings.payment_terms_days

    invoice = _fresh_copy(
        quote,
        type=DocumentType.INVOICE,
        number=next_number(DocumentType.INVOICE, documents),
        date=today,
        due_date=today + datetime.timedelta(days=payment_terms_days),
        expiry_date=None,
        original_quote_id=quote.id,
    )
    updated_quote = quote.model_copy(
        update={"status": S.CONVERTED, "converted_invoice_id": invoice.id}
    )

    logger.info("Quote %s converted into invoice %s", quote.number, invoice.number)
    return ConversionResult(invoice=invoice, quote=updated_quote)


def duplicate_document(
    document: Document,
    documents: Sequence[Document],
    today: Optional[datetime.date] = None,
    payment_terms_days: Optional[int] = None,
) -> Document:
    """
    Clone a document as a fresh, unlinked draft.

    The copy gets a new id, the next number of its type and today's date;
    payments, deposit payment, phase progress and conversion links are
    cleared. An invoice copy is due after the payment terms; a quote copy
    keeps the validity window of the original.
    """
    today = today or datetime.date.today()
    if payment_terms_days is None:
        payment_terms_days = settings.payment_terms_days

    dates = {"date": today}
    if document.type == DocumentType.INVOICE:
        dates["due_date"] = today + datetime.timedelta(days=payment_terms_days)
    elif document.expiry_date is not None:
        dates["expiry_date"] = today + (document.expiry_date - document.date)

    duplicate = _fresh_copy(
        document,
        number=next_number(document.type, documents),
        **dates,
    )
    logger.info("%s duplicated as %s", document.number, duplicate.number)
    return duplicate
