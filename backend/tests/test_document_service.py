"""
Unit tests for DocumentService.

The AsyncSession is mocked: each test configures what `db.execute`
returns, in call order.
"""

import datetime
import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from buildledger.core.exceptions import (
    BusinessValidationError,
    ConflictError,
    DuplicateError,
    NotFoundError,
    QuoteNotConvertibleError,
)
from buildledger.schemas.document import (
    DocumentCreate,
    DocumentStatus,
    DocumentType,
    DocumentUpdate,
    Payment,
    PaymentCreate,
    ProgressPhase,
    ProgressPhaseCreate,
)
from buildledger.services.document_service import DocumentService

from conftest import item, make_document, make_record, make_result


@pytest.fixture
def service():
    return DocumentService()


@pytest.fixture
def open_quote():
    """Sent quote without expiry date."""
    return make_document(
        doc_type=DocumentType.QUOTE,
        number="QUO-0001",
        status=DocumentStatus.SENT,
    )


# ============================================================
# Creation and lookup
# ============================================================


class TestCreate:
    """Tests for document creation."""

    @pytest.mark.asyncio
    async def test_assigns_next_number(self, service, mock_db):
        """Test the number follows the highest existing one."""
        existing = make_record(make_document(number="INV-0003"))
        mock_db.execute.return_value = make_result(records=[existing])

        data = DocumentCreate(type=DocumentType.INVOICE, line_items=[item("material", "1", "100")])
        result = await service.create(mock_db, data)

        assert result.number == "INV-0004"
        assert result.status == DocumentStatus.DRAFT
        assert result.total == Decimal("108.00")
        assert result.balance_due == Decimal("108.00")
        mock_db.add.assert_called_once()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_invoice_due_date_default(self, service, mock_db):
        """Test invoices are due after the payment terms."""
        mock_db.execute.return_value = make_result(records=[])

        data = DocumentCreate(type=DocumentType.INVOICE, date=datetime.date(2026, 1, 1))
        result = await service.create(mock_db, data)

        assert result.number == "INV-0001"
        assert result.due_date == datetime.date(2026, 1, 31)

    @pytest.mark.asyncio
    async def test_quote_without_due_date(self, service, mock_db):
        """Test quotes get no due date."""
        mock_db.execute.return_value = make_result(records=[])

        result = await service.create(mock_db, DocumentCreate(type=DocumentType.QUOTE))

        assert result.number == "QUO-0001"
        assert result.due_date is None

    @pytest.mark.asyncio
    async def test_phases_over_100_refused(self, service, mock_db):
        """Test phases above 100% are rejected before storing."""
        data = DocumentCreate(
            type=DocumentType.INVOICE,
            is_progress_billing=True,
            progress_billing=[
                ProgressPhaseCreate(phase="Start", percentage=Decimal("60")),
                ProgressPhaseCreate(phase="End", percentage=Decimal("50")),
            ],
        )

        with pytest.raises(BusinessValidationError):
            await service.create(mock_db, data)

        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_numbering_lock_on_postgresql(self, service, mock_db):
        """Test an advisory lock is taken before reading numbers."""
        mock_db.bind = MagicMock()
        mock_db.bind.dialect.name = "postgresql"
        mock_db.execute.side_effect = [make_result(), make_result(records=[])]

        await service.create(mock_db, DocumentCreate(type=DocumentType.QUOTE))

        assert mock_db.execute.await_count == 2
        lock_params = mock_db.execute.await_args_list[0].args[1]
        assert lock_params == {"lock_key": 7302}

    @pytest.mark.asyncio
    async def test_duplicate_number_conflict(self, service, mock_db):
        """Test a unique violation rolls back and raises ConflictError."""
        mock_db.execute.return_value = make_result(records=[])
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))

        with pytest.raises(ConflictError):
            await service.create(mock_db, DocumentCreate(type=DocumentType.INVOICE))

        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_number_taken_is_duplicate(self, service, mock_db):
        """Test a (type, number) violation raises DuplicateError."""
        mock_db.execute.return_value = make_result(records=[])
        mock_db.commit.side_effect = IntegrityError(
            "INSERT",
            {},
            Exception('duplicate key value violates unique constraint "uq_documents_type_number"'),
        )

        with pytest.raises(DuplicateError) as exc_info:
            await service.create(mock_db, DocumentCreate(type=DocumentType.INVOICE))

        assert exc_info.value.status_code == 409
        assert exc_info.value.error_code == "DUPLICATE_RESOURCE"
        mock_db.rollback.assert_awaited_once()


class TestSave:
    """Tests for the upsert used by the storage port."""

    @pytest.mark.asyncio
    async def test_insert_new(self, service, mock_db, sent_invoice):
        """Test an unknown id is inserted and recomputed."""
        stale = sent_invoice.model_copy(update={"total": Decimal("1")})

        result = await service.save(mock_db, stale)

        assert result.total == Decimal("108.00")
        mock_db.add.assert_called_once()

    @pytest.mark.asyncio
    async def test_update_existing(self, service, mock_db, sent_invoice):
        """Test a known id updates the stored row."""
        record = make_record(sent_invoice)
        mock_db.get.return_value = record

        await service.save(mock_db, sent_invoice.model_copy(update={"notes": "Net 30"}))

        assert record.notes == "Net 30"
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_load_all(self, service, mock_db, sent_invoice, sent_quote):
        """Test stored rows come back as documents."""
        mock_db.execute.return_value = make_result(
            records=[make_record(sent_invoice), make_record(sent_quote)]
        )

        documents = await service.load_all(mock_db)

        assert [d.number for d in documents] == ["INV-0001", "QUO-0001"]
        assert documents[1].expiry_date == datetime.date(2026, 2, 10)


class TestLookup:
    """Tests for get_by_id and get_all."""

    @pytest.mark.asyncio
    async def test_not_found(self, service, mock_db):
        """Test an unknown id raises NotFoundError."""
        mock_db.execute.return_value = make_result(scalar=None)

        with pytest.raises(NotFoundError):
            await service.get_by_id(mock_db, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_warnings_attached(self, service, mock_db):
        """Test an incomplete phase plan is reported as a warning."""
        document = make_document(
            is_progress_billing=True,
            progress_billing=[ProgressPhase(phase="Start", percentage=Decimal("40"))],
        )
        mock_db.execute.return_value = make_result(scalar=make_record(document))

        result = await service.get_by_id(mock_db, document.id)

        assert result.id == document.id
        assert [w.code for w in result.warnings] == ["PHASES_UNDER_100_PERCENT"]

    @pytest.mark.asyncio
    async def test_get_all_paginates(self, service, mock_db, sent_invoice):
        """Test the count and the page are returned."""
        mock_db.execute.side_effect = [
            make_result(count=11),
            make_result(records=[make_record(sent_invoice)]),
        ]

        result = await service.get_all(mock_db, doc_type=DocumentType.INVOICE, search="kitchen")

        assert result.total == 11
        assert result.total_pages == 2
        assert [d.number for d in result.items] == ["INV-0001"]


# ============================================================
# Updates and deletion
# ============================================================


class TestUpdate:
    """Tests for update and delete."""

    @pytest.mark.asyncio
    async def test_recomputes(self, service, mock_db, sent_invoice):
        """Test new line items change the totals."""
        record = make_record(sent_invoice)
        mock_db.execute.return_value = make_result(scalar=record)

        data = DocumentUpdate(line_items=[item("labor", "10", "50")])
        result = await service.update(mock_db, sent_invoice.id, data)

        assert result.subtotal == Decimal("500.00")
        assert result.tax_amount == Decimal("0")
        assert result.total == Decimal("500.00")
        assert record.total == Decimal("500.00")

    @pytest.mark.asyncio
    async def test_archived_is_read_only(self, service, mock_db, sent_invoice):
        """Test archived documents cannot be edited."""
        archived = sent_invoice.model_copy(update={"status": DocumentStatus.ARCHIVED})
        mock_db.execute.return_value = make_result(scalar=make_record(archived))

        with pytest.raises(ConflictError):
            await service.update(mock_db, archived.id, DocumentUpdate(notes="late"))

        mock_db.commit.assert_not_awaited()

    @pytest.mark.parametrize(
        "field",
        ["tax_rates", "line_items", "discounts", "change_orders", "client_name", "date"],
    )
    def test_null_fields_rejected(self, field):
        """Test required fields cannot be cleared with null."""
        with pytest.raises(ValidationError):
            DocumentUpdate.model_validate({field: None})

    def test_nullable_fields_cleared(self):
        """Test optional fields can still be cleared."""
        data = DocumentUpdate.model_validate({"notes": None, "deposit_percentage": None})
        assert data.model_fields_set == {"notes", "deposit_percentage"}

    @pytest.mark.asyncio
    async def test_clear_notes(self, service, mock_db, sent_invoice):
        """Test clearing a nullable field keeps the totals intact."""
        with_notes = sent_invoice.model_copy(update={"notes": "Gate code 1234"})
        mock_db.execute.return_value = make_result(scalar=make_record(with_notes))

        result = await service.update(
            mock_db, with_notes.id, DocumentUpdate.model_validate({"notes": None})
        )

        assert result.notes is None
        assert result.total == Decimal("108.00")

    @pytest.mark.asyncio
    async def test_expiry_date_on_invoice(self, service, mock_db, sent_invoice):
        """Test invoices refuse an expiry date."""
        mock_db.execute.return_value = make_result(scalar=make_record(sent_invoice))

        with pytest.raises(BusinessValidationError):
            await service.update(
                mock_db, sent_invoice.id, DocumentUpdate(expiry_date=datetime.date(2026, 5, 1))
            )

    @pytest.mark.asyncio
    async def test_delete_with_payments(self, service, mock_db, sent_invoice):
        """Test documents with payments cannot be deleted."""
        paid = sent_invoice.model_copy(update={"payments": [Payment(amount=Decimal("10"))]})
        mock_db.execute.return_value = make_result(scalar=make_record(paid))

        with pytest.raises(BusinessValidationError):
            await service.delete(mock_db, paid.id)

        mock_db.delete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delete(self, service, mock_db, sent_invoice):
        """Test deleting a document without payments."""
        record = make_record(sent_invoice)
        mock_db.execute.return_value = make_result(scalar=record)

        await service.delete(mock_db, sent_invoice.id)

        mock_db.delete.assert_awaited_once_with(record)
        mock_db.commit.assert_awaited_once()


# ============================================================
# Payments and phases
# ============================================================


class TestPayments:
    """Tests for payment recording."""

    @pytest.mark.asyncio
    async def test_partial_payment(self, service, mock_db, sent_invoice):
        """Test a partial payment sets partial_paid."""
        record = make_record(sent_invoice)
        mock_db.execute.return_value = make_result(scalar=record)

        result = await service.record_payment(
            mock_db, sent_invoice.id, PaymentCreate(amount=Decimal("8"))
        )

        assert result.status == DocumentStatus.PARTIAL_PAID
        assert result.balance_due == Decimal("100.00")
        assert record.status == "partial_paid"

    @pytest.mark.asyncio
    async def test_payment_on_quote_refused(self, service, mock_db, open_quote):
        """Test quotes do not take payments."""
        mock_db.execute.return_value = make_result(scalar=make_record(open_quote))

        with pytest.raises(BusinessValidationError):
            await service.record_payment(mock_db, open_quote.id, PaymentCreate(amount=Decimal("1")))

    @pytest.mark.asyncio
    async def test_delete_unknown_payment(self, service, mock_db, sent_invoice):
        """Test deleting an unknown payment raises NotFoundError."""
        mock_db.execute.return_value = make_result(scalar=make_record(sent_invoice))

        with pytest.raises(NotFoundError):
            await service.delete_payment(mock_db, sent_invoice.id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_delete_payment_keeps_status(self, service, mock_db, sent_invoice):
        """Test the default policy keeps the paid status."""
        payment = Payment(amount=Decimal("108"))
        paid = sent_invoice.model_copy(
            update={"payments": [payment], "status": DocumentStatus.PAID}
        )
        mock_db.execute.return_value = make_result(scalar=make_record(paid))

        result = await service.delete_payment(mock_db, paid.id, payment.id)

        assert result.payments == []
        assert result.balance_due == Decimal("108.00")
        assert result.status == DocumentStatus.PAID


class TestPhases:
    """Tests for progress phases."""

    @pytest.mark.asyncio
    async def test_add_phase(self, service, mock_db, sent_invoice):
        """Test a phase amount is derived from the total."""
        mock_db.execute.return_value = make_result(scalar=make_record(sent_invoice))

        result = await service.add_phase(
            mock_db, sent_invoice.id, ProgressPhaseCreate(phase="Deposit", percentage=Decimal("25"))
        )

        assert result.is_progress_billing
        assert result.progress_billing[0].amount == Decimal("27.00")

    @pytest.mark.asyncio
    async def test_add_phase_over_100(self, service, mock_db, sent_invoice):
        """Test exceeding 100% is refused."""
        phased = sent_invoice.model_copy(
            update={
                "is_progress_billing": True,
                "progress_billing": [ProgressPhase(phase="Start", percentage=Decimal("80"))],
            }
        )
        mock_db.execute.return_value = make_result(scalar=make_record(phased))

        with pytest.raises(BusinessValidationError):
            await service.add_phase(
                mock_db, phased.id, ProgressPhaseCreate(phase="More", percentage=Decimal("30"))
            )


# ============================================================
# Lifecycle
# ============================================================


class TestLifecycle:
    """Tests for status changes, conversion, duplication and sweeps."""

    @pytest.mark.asyncio
    async def test_change_status(self, service, mock_db):
        """Test draft -> sent."""
        draft = make_document()
        mock_db.execute.return_value = make_result(scalar=make_record(draft))

        result = await service.change_status(mock_db, draft.id, DocumentStatus.SENT)

        assert result.status == DocumentStatus.SENT

    @pytest.mark.asyncio
    async def test_convert_quote(self, service, mock_db, open_quote):
        """Test the invoice and the quote are stored in one commit."""
        quote_record = make_record(open_quote)
        mock_db.execute.side_effect = [
            make_result(scalar=quote_record),
            make_result(records=[make_record(make_document(number="INV-0002"))]),
        ]

        result = await service.convert_quote(mock_db, open_quote.id)

        assert result.invoice.number == "INV-0003"
        assert result.invoice.type == DocumentType.INVOICE
        assert result.invoice.original_quote_id == open_quote.id
        assert result.quote.status == DocumentStatus.CONVERTED
        assert result.quote.converted_invoice_id == result.invoice.id
        assert quote_record.status == "converted"
        mock_db.add.assert_called_once()
        mock_db.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_convert_commit_failure(self, service, mock_db, open_quote):
        """Test a failed commit rolls back both the invoice and the quote."""
        quote_record = make_record(open_quote)
        mock_db.execute.side_effect = [
            make_result(scalar=quote_record),
            make_result(records=[]),
        ]
        mock_db.commit.side_effect = IntegrityError(
            "INSERT",
            {},
            Exception('duplicate key value violates unique constraint "uq_documents_type_number"'),
        )

        result = None
        with pytest.raises(DuplicateError):
            result = await service.convert_quote(mock_db, open_quote.id)

        assert result is None
        mock_db.add.assert_called_once()
        mock_db.commit.assert_awaited_once()
        mock_db.rollback.assert_awaited_once()
        mock_db.refresh.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_convert_rejected_quote(self, service, mock_db, open_quote):
        """Test a rejected quote is not converted and nothing is stored."""
        rejected = open_quote.model_copy(update={"status": DocumentStatus.REJECTED})
        mock_db.execute.return_value = make_result(scalar=make_record(rejected))

        with pytest.raises(QuoteNotConvertibleError):
            await service.convert_quote(mock_db, rejected.id)

        mock_db.add.assert_not_called()
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_duplicate(self, service, mock_db, sent_invoice):
        """Test the copy is a new draft with the next number."""
        record = make_record(sent_invoice)
        mock_db.execute.side_effect = [
            make_result(scalar=record),
            make_result(records=[record]),
        ]

        result = await service.duplicate(mock_db, sent_invoice.id)

        assert result.id != sent_invoice.id
        assert result.number == "INV-0002"
        assert result.status == DocumentStatus.DRAFT

    @pytest.mark.asyncio
    async def test_expire_quotes(self, service, mock_db, sent_quote):
        """Test the sweep expires past quotes and reports them."""
        record = make_record(sent_quote)
        mock_db.execute.side_effect = [
            make_result(records=[record]),
            make_result(scalar=record),
        ]

        result = await service.expire_quotes(mock_db, today=datetime.date(2026, 3, 1))

        assert result.updated == 1
        assert result.numbers == ["QUO-0001"]
        assert record.status == "expired"

    @pytest.mark.asyncio
    async def test_expire_quotes_nothing_to_do(self, service, mock_db, sent_quote):
        """Test an empty sweep does not commit."""
        mock_db.execute.return_value = make_result(records=[make_record(sent_quote)])

        result = await service.expire_quotes(mock_db, today=datetime.date(2026, 1, 1))

        assert result.updated == 0
        mock_db.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_mark_overdue(self, service, mock_db, sent_invoice):
        """Test the overdue sweep."""
        record = make_record(sent_invoice)
        mock_db.execute.side_effect = [
            make_result(records=[record]),
            make_result(scalar=record),
        ]

        result = await service.mark_overdue(mock_db, today=datetime.date(2026, 3, 1))

        assert result.numbers == ["INV-0001"]
        assert record.status == "overdue"
