"""
Service layer for billing documents
Project: BuildLedger (contractor billing)

Persists invoices and quotes and runs the computation engine on them:
creation with sequential numbering, updates with full recompute,
payments, progress phases, status changes, quote -> invoice conversion,
duplication and the maintenance sweeps (quote expiry, overdue invoices).
"""

import datetime
import logging
import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import and_, func, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.core.config import settings
from buildledger.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    DuplicateError,
    NotFoundError,
)
from buildledger.models import DocumentRecord
from buildledger.schemas.document import (
    ConversionResult,
    Document,
    DocumentCreate,
    DocumentList,
    DocumentRead,
    DocumentStatus,
    DocumentType,
    DocumentUpdate,
    PaymentCreate,
    PhaseStatus,
    ProgressPhase,
    ProgressPhaseCreate,
    SweepResult,
)
from buildledger.services import lifecycle, payments, progress_billing
from buildledger.services.numbering import next_number
from buildledger.services.totals import document_warnings, recompute_document

logger = logging.getLogger(__name__)

# Nested collections stored as JSON columns
JSON_FIELDS = (
    "line_items",
    "tax_rates",
    "category_subtotals",
    "tax_breakdown",
    "discounts",
    "change_orders",
    "payments",
    "progress_billing",
)

# Advisory lock keys serialising number assignment per type (PostgreSQL)
NUMBERING_LOCK_KEYS = {
    DocumentType.INVOICE: 7301,
    DocumentType.QUOTE: 7302,
}

# Name of the UNIQUE(type, number) constraint on documents
NUMBER_CONSTRAINT = "uq_documents_type_number"

# Documents that can no longer be edited
READ_ONLY_STATUSES = {DocumentStatus.CONVERTED, DocumentStatus.ARCHIVED}


def record_values(document: Document) -> dict:
    """Column values of a document: scalars as Python values, collections as JSON."""
    values = document.model_dump(exclude={*JSON_FIELDS, "created_at", "updated_at"})
    values.update(document.model_dump(mode="json", include=set(JSON_FIELDS)))
    values["type"] = document.type.value
    values["status"] = document.status.value
    return values


def to_document(record: DocumentRecord) -> Document:
    return Document.model_validate(record)


def to_read(document: Document) -> DocumentRead:
    """Document plus its non-fatal warnings."""
    return DocumentRead(**dict(document), warnings=document_warnings(document))


class DocumentService:
    """
    Service for invoice and quote operations.

    Async methods working on an AsyncSession, with no FastAPI dependency.

    Implements:
    - Creation with sequential numbering per type
    - Full recompute on every change
    - Payments with centralised status inference
    - Progress billing phases
    - Quote -> invoice conversion as a single transaction
    - Duplication, quote expiry and overdue sweeps
    """

    # ------------------------------------------------------------
    # Storage helpers
    # ------------------------------------------------------------

    async def _commit(self, db: AsyncSession, action: str) -> None:
        """
        Commit, turning integrity errors into application errors.

        Raises:
            DuplicateError: (type, number) already taken by a concurrent write
            ConflictError: Any other constraint violation
        """
        try:
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.error("Integrity error while trying to %s: %s", action, e)
            if NUMBER_CONSTRAINT in str(e.orig):
                raise DuplicateError(
                    f"Could not {action}: the document number is already taken, retry"
                ) from e
            raise ConflictError(
                f"Could not {action}: the document violates a database constraint"
            ) from e

    async def _lock_numbering(self, db: AsyncSession, doc_type: DocumentType) -> None:
        """
        Serialise number assignment for a document type.

        Uses a transaction-scoped PostgreSQL advisory lock; other backends
        rely on the (type, number) unique constraint alone.
        """
        bind = getattr(db, "bind", None)
        if bind is None or bind.dialect.name != "postgresql":
            return
        await db.execute(
            text("SELECT pg_advisory_xact_lock(:lock_key)"),
            {"lock_key": NUMBERING_LOCK_KEYS[doc_type]},
        )

    def _apply(self, record: DocumentRecord, document: Document) -> DocumentRecord:
        for key, value in record_values(document).items():
            setattr(record, key, value)
        return record

    def _add(self, db: AsyncSession, document: Document) -> DocumentRecord:
        record = self._apply(DocumentRecord(), document)
        db.add(record)
        return record

    async def load_all(
        self,
        db: AsyncSession,
        doc_type: Optional[DocumentType] = None,
    ) -> list[Document]:
        """
        Load every document, optionally of one type.

        Args:
            db: Database session
            doc_type: invoice | quote (None: both)

        Returns:
            list[Document]: Documents
        """
        stmt = select(DocumentRecord)
        if doc_type is not None:
            stmt = stmt.where(DocumentRecord.type == DocumentType(doc_type).value)
        result = await db.execute(stmt)
        return [to_document(record) for record in result.scalars().all()]

    async def save(self, db: AsyncSession, document: Document) -> DocumentRead:
        """
        Insert or update a document by id.

        Args:
            db: Database session
            document: Document to store (recomputed before saving)

        Returns:
            DocumentRead: Stored document
        """
        document = recompute_document(document)
        record = await db.get(DocumentRecord, document.id)
        if record is None:
            record = self._add(db, document)
        else:
            self._apply(record, document)

        await self._commit(db, "save the document")
        await db.refresh(record)
        return to_read(to_document(record))

    async def get_record(self, db: AsyncSession, document_id: uuid.UUID) -> DocumentRecord:
        """
        Load the stored row of a document.

        Raises:
            NotFoundError: Document not found
        """
        result = await db.execute(
            select(DocumentRecord).where(DocumentRecord.id == document_id)
        )
        record = result.scalar_one_or_none()

        if not record:
            raise NotFoundError(f"Document {document_id} not found")

        return record

    async def _store(
        self,
        db: AsyncSession,
        record: DocumentRecord,
        document: Document,
        action: str,
    ) -> DocumentRead:
        self._apply(record, document)
        await self._commit(db, action)
        await db.refresh(record)
        return to_read(to_document(record))

    # ------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------

    async def create(self, db: AsyncSession, data: DocumentCreate) -> DocumentRead:
        """
        Create a draft invoice or quote.

        Steps:
        1. Lock numbering for the type and assign the next number
        2. Default dates: today, and for invoices a due date after the
           payment terms
        3. Validate progress phases (at most 100% in total)
        4. Recompute every derived amount and store

        Args:
            db: Database session
            data: Document data

        Returns:
            DocumentRead: The created document

        Raises:
            BusinessValidationError: Progress phases above 100%
            DuplicateError: Number already taken by a concurrent creation
        """
        phases = [ProgressPhase(**p.model_dump()) for p in data.progress_billing]
        if progress_billing.total_percentage(phases) > 100:
            raise BusinessValidationError(
                "Progress billing phases cannot exceed 100% of the total"
            )

        await self._lock_numbering(db, data.type)
        existing = await self.load_all(db, data.type)

        today = datetime.date.today()
        issue_date = data.date or today
        due_date = data.due_date
        if data.type == DocumentType.INVOICE and due_date is None:
            due_date = issue_date + datetime.timedelta(days=settings.payment_terms_days)

        document = Document(
            **data.model_dump(
                exclude={"type", "date", "due_date", "progress_billing"},
            ),
            type=data.type,
            number=next_number(data.type, existing),
            date=issue_date,
            due_date=due_date,
            progress_billing=phases,
        )
        document = recompute_document(document)

        record = self._add(db, document)
        await self._commit(db, "create the document")
        await db.refresh(record)

        logger.info("Created %s %s", document.type.value, document.number)
        return to_read(to_document(record))

    async def get_by_id(self, db: AsyncSession, document_id: uuid.UUID) -> DocumentRead:
        """
        Load one document.

        Raises:
            NotFoundError: Document not found
        """
        record = await self.get_record(db, document_id)
        return to_read(to_document(record))

    async def get_all(
        self,
        db: AsyncSession,
        doc_type: Optional[DocumentType] = None,
        status_filter: Optional[DocumentStatus] = None,
        search: Optional[str] = None,
        from_date: Optional[datetime.date] = None,
        to_date: Optional[datetime.date] = None,
        min_amount: Optional[Decimal] = None,
        max_amount: Optional[Decimal] = None,
        include_archived: bool = False,
        page: int = 1,
        per_page: int = 10,
    ) -> DocumentList:
        """
        Paginated, filtered list of documents.

        Args:
            db: Database session
            doc_type: invoice | quote
            status_filter: Only this status
            search: Text matched against number, client and project title
            from_date: Issue date lower bound
            to_date: Issue date upper bound
            min_amount: Minimum total
            max_amount: Maximum total
            include_archived: Include archived documents when no status is given
            page: Page number
            per_page: Items per page

        Returns:
            DocumentList: Paginated documents, newest first
        """
        conditions = []

        if doc_type:
            conditions.append(DocumentRecord.type == DocumentType(doc_type).value)

        if status_filter:
            conditions.append(DocumentRecord.status == DocumentStatus(status_filter).value)
        elif not include_archived:
            conditions.append(DocumentRecord.status != DocumentStatus.ARCHIVED.value)

        if search:
            pattern = f"%{search.strip()}%"
            conditions.append(
                or_(
                    DocumentRecord.number.ilike(pattern),
                    DocumentRecord.client_name.ilike(pattern),
                    DocumentRecord.project_title.ilike(pattern),
                )
            )

        if from_date:
            conditions.append(DocumentRecord.date >= from_date)

        if to_date:
            conditions.append(DocumentRecord.date <= to_date)

        if min_amount is not None:
            conditions.append(DocumentRecord.total >= min_amount)

        if max_amount is not None:
            conditions.append(DocumentRecord.total <= max_amount)

        count_stmt = select(func.count(DocumentRecord.id))
        stmt = select(DocumentRecord)
        if conditions:
            count_stmt = count_stmt.where(and_(*conditions))
            stmt = stmt.where(and_(*conditions))

        count_result = await db.execute(count_stmt)
        total = count_result.scalar() or 0

        stmt = (
            stmt.order_by(DocumentRecord.date.desc(), DocumentRecord.number.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        result = await db.execute(stmt)
        items = [to_document(record) for record in result.scalars().all()]

        total_pages = (total + per_page - 1) // per_page if total > 0 else 1

        return DocumentList(
            items=items,
            total=total,
            page=page,
            per_page=per_page,
            total_pages=total_pages,
        )

    async def update(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        data: DocumentUpdate,
    ) -> DocumentRead:
        """
        Update a document and recompute it.

        Converted and archived documents are read-only.

        Raises:
            NotFoundError: Document not found
            ConflictError: Document is converted or archived
            BusinessValidationError: Date field not valid for the type
        """
        record = await self.get_record(db, document_id)
        document = to_document(record)

        if document.status in READ_ONLY_STATUSES:
            raise ConflictError(
                f"{document.number} is {document.status.value} and cannot be edited"
            )

        changes = {field: getattr(data, field) for field in data.model_fields_set}
        if document.type == DocumentType.INVOICE and changes.get("expiry_date"):
            raise BusinessValidationError("Invoices do not have an expiry date")
        if document.type == DocumentType.QUOTE and changes.get("due_date"):
            raise BusinessValidationError("Quotes do not have a due date")

        updated = recompute_document(document.model_copy(update=changes))
        return await self._store(db, record, updated, "update the document")

    async def delete(self, db: AsyncSession, document_id: uuid.UUID) -> None:
        """
        Delete a document.

        Only documents without payments can be deleted.

        Raises:
            NotFoundError: Document not found
            BusinessValidationError: The document has payments
        """
        record = await self.get_record(db, document_id)

        if record.payments:
            raise BusinessValidationError(
                "Cannot delete a document with recorded payments. "
                "Remove the payments first."
            )

        await db.delete(record)
        await db.commit()
        logger.info("Deleted document %s", record.number)

    # ------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------

    async def record_payment(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        data: PaymentCreate,
    ) -> DocumentRead:
        """
        Record a payment on an invoice.

        The status becomes partial_paid while a balance is left, paid
        otherwise.

        Raises:
            NotFoundError: Document not found
            BusinessValidationError: Not an invoice, or archived
        """
        record = await self.get_record(db, document_id)
        document = recompute_document(to_document(record))

        if document.type != DocumentType.INVOICE:
            raise BusinessValidationError("Payments can only be recorded on invoices")
        if document.status == DocumentStatus.ARCHIVED:
            raise BusinessValidationError("Cannot record payments on an archived invoice")

        updated = payments.record_payment(document, data)
        return await self._store(db, record, updated, "record the payment")

    async def delete_payment(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        payment_id: uuid.UUID,
    ) -> DocumentRead:
        """
        Delete a payment.

        The status follows the configured payment_deletion_policy.

        Raises:
            NotFoundError: Document or payment not found
        """
        record = await self.get_record(db, document_id)
        document = recompute_document(to_document(record))

        if not any(p.id == payment_id for p in document.payments):
            raise NotFoundError(f"Payment {payment_id} not found")

        updated = payments.delete_payment(
            document, payment_id, policy=settings.payment_deletion_policy
        )
        return await self._store(db, record, updated, "delete the payment")

    # ------------------------------------------------------------
    # Progress billing
    # ------------------------------------------------------------

    async def add_phase(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        data: ProgressPhaseCreate,
    ) -> DocumentRead:
        """
        Add a progress billing phase.

        Raises:
            NotFoundError: Document not found
            BusinessValidationError: Phases would exceed 100%
        """
        record = await self.get_record(db, document_id)
        document = recompute_document(to_document(record))

        if not progress_billing.can_add_phase(document.progress_billing, data.percentage):
            current = progress_billing.total_percentage(document.progress_billing)
            raise BusinessValidationError(
                f"Adding {data.percentage}% would exceed 100% "
                f"({current}% already allocated)",
                extra={"allocated": str(current), "requested": str(data.percentage)},
            )

        phases = progress_billing.add_phase(
            document.progress_billing,
            ProgressPhase(**data.model_dump()),
            document.total,
        )
        updated = document.model_copy(
            update={"progress_billing": phases, "is_progress_billing": True}
        )
        return await self._store(db, record, updated, "add the phase")

    async def remove_phase(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        phase_id: uuid.UUID,
    ) -> DocumentRead:
        """
        Remove a progress billing phase.

        Raises:
            NotFoundError: Document or phase not found
        """
        record = await self.get_record(db, document_id)
        document = recompute_document(to_document(record))

        phases = progress_billing.remove_phase(document.progress_billing, phase_id, document.total)
        updated = document.model_copy(update={"progress_billing": phases})
        return await self._store(db, record, updated, "remove the phase")

    async def advance_phase(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        phase_id: uuid.UUID,
        target: PhaseStatus,
    ) -> DocumentRead:
        """
        Move a phase to billed or paid.

        Raises:
            NotFoundError: Document or phase not found
            StateTransitionError: Step not allowed
        """
        record = await self.get_record(db, document_id)
        document = to_document(record)

        if target == PhaseStatus.BILLED:
            phases = progress_billing.mark_phase_billed(document.progress_billing, phase_id)
        elif target == PhaseStatus.PAID:
            phases = progress_billing.mark_phase_paid(document.progress_billing, phase_id)
        else:
            raise BusinessValidationError("A phase can only be marked billed or paid")

        updated = document.model_copy(update={"progress_billing": phases})
        return await self._store(db, record, updated, "update the phase")

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    async def change_status(
        self,
        db: AsyncSession,
        document_id: uuid.UUID,
        target: DocumentStatus,
    ) -> DocumentRead:
        """
        Apply an explicit status change (send, accept, reject, archive, restore).

        Raises:
            NotFoundError: Document not found
            StateTransitionError: Transition not allowed
        """
        record = await self.get_record(db, document_id)
        updated = lifecycle.transition(to_document(record), target)
        return await self._store(db, record, updated, "change the status")

    async def convert_quote(
        self,
        db: AsyncSession,
        quote_id: uuid.UUID,
    ) -> ConversionResult:
        """
        Convert a quote into a draft invoice.

        The new invoice and the converted quote are written in one
        transaction: on failure neither change is kept.

        Args:
            db: Database session
            quote_id: UUID of the quote

        Returns:
            ConversionResult: New invoice and updated quote

        Raises:
            NotFoundError: Quote not found
            QuoteNotConvertibleError: Not a quote, or not in a convertible state
            DuplicateError: Invoice number taken concurrently
        """
        quote_record = await self.get_record(db, quote_id)
        quote = to_document(quote_record)
        lifecycle.check_convertible(quote)

        await self._lock_numbering(db, DocumentType.INVOICE)
        invoices = await self.load_all(db, DocumentType.INVOICE)

        result = lifecycle.convert_quote_to_invoice(quote, invoices)

        invoice_record = self._add(db, result.invoice)
        self._apply(quote_record, result.quote)
        await self._commit(db, "convert the quote")
        await db.refresh(invoice_record)
        await db.refresh(quote_record)

        return ConversionResult(
            invoice=to_document(invoice_record),
            quote=to_document(quote_record),
        )

    async def duplicate(self, db: AsyncSession, document_id: uuid.UUID) -> DocumentRead:
        """
        Clone a document as a new unlinked draft with a fresh number.

        Raises:
            NotFoundError: Document not found
        """
        record = await self.get_record(db, document_id)
        document = to_document(record)

        await self._lock_numbering(db, document.type)
        existing = await self.load_all(db, document.type)

        duplicate = lifecycle.duplicate_document(document, existing)
        duplicate_record = self._add(db, duplicate)
        await self._commit(db, "duplicate the document")
        await db.refresh(duplicate_record)
        return to_read(to_document(duplicate_record))

    async def _sweep(self, db: AsyncSession, changed: list[Document], action: str) -> SweepResult:
        if not changed:
            return SweepResult(updated=0)

        for document in changed:
            record = await self.get_record(db, document.id)
            self._apply(record, document)
        await self._commit(db, action)

        return SweepResult(updated=len(changed), numbers=[d.number for d in changed])

    async def expire_quotes(
        self,
        db: AsyncSession,
        today: Optional[datetime.date] = None,
    ) -> SweepResult:
        """Expire sent quotes past their expiry date. Safe to run on every load."""
        quotes = await self.load_all(db, DocumentType.QUOTE)
        changed = lifecycle.expire_quotes(quotes, today)
        return await self._sweep(db, changed, "expire quotes")

    async def mark_overdue(
        self,
        db: AsyncSession,
        today: Optional[datetime.date] = None,
    ) -> SweepResult:
        """Flag unpaid invoices past their due date as overdue."""
        invoices = await self.load_all(db, DocumentType.INVOICE)
        changed = lifecycle.mark_overdue_invoices(invoices, today)
        return await self._sweep(db, changed, "mark invoices overdue")
