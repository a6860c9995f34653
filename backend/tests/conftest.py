"""
Pytest configuration and fixtures.

Provides a mocked AsyncSession for the service tests and factories for
line items, documents and stored document rows.
"""

import datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.models import DocumentRecord
from buildledger.schemas.document import (
    Document,
    DocumentStatus,
    DocumentType,
    LineItem,
    TaxRates,
)
from buildledger.services.document_service import record_values
from buildledger.services.totals import recompute_document


# ============================================================
# AsyncSession mock
# ============================================================


@pytest.fixture
def mock_db():
    """AsyncSession mock; execute results are configured per test."""
    db = AsyncMock(spec=AsyncSession)
    db.bind = None
    db.execute = AsyncMock()
    db.get = AsyncMock(return_value=None)
    db.add = MagicMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.flush = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    return db


def make_result(records=None, scalar=None, count=None):
    """Fake result of `await db.execute(...)`."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = scalar
    result.scalars.return_value.all.return_value = list(records or [])
    result.scalar.return_value = count
    return result


def make_record(document: Document) -> DocumentRecord:
    """Stored row for a document."""
    record = DocumentRecord()
    for key, value in record_values(document).items():
        setattr(record, key, value)
    return record


# ============================================================
# Factories
# ============================================================


def item(category="material", quantity="1", rate="0", markup=None, tax_rate=None, **kwargs):
    """Build a line item from short string amounts."""
    return LineItem(
        category=category,
        quantity=Decimal(quantity),
        rate=Decimal(rate),
        markup=Decimal(markup) if markup is not None else None,
        tax_rate=Decimal(tax_rate) if tax_rate is not None else None,
        **kwargs,
    )


def make_document(
    doc_type=DocumentType.INVOICE,
    number="INV-0001",
    status=DocumentStatus.DRAFT,
    line_items=None,
    **kwargs,
) -> Document:
    """Recomputed document with sensible defaults."""
    return recompute_document(
        Document(
            type=doc_type,
            number=number,
            status=status,
            date=kwargs.pop("date", datetime.date(2026, 1, 10)),
            client_name=kwargs.pop("client_name", "Jane Builder"),
            project_title=kwargs.pop("project_title", "Kitchen remodel"),
            line_items=line_items if line_items is not None else [item("material", "1", "100")],
            tax_rates=kwargs.pop("tax_rates", standard_rates()),
            **kwargs,
        )
    )


def standard_rates() -> TaxRates:
    return TaxRates(
        material=Decimal("8"),
        labor=Decimal("0"),
        equipment=Decimal("8"),
        other=Decimal("8"),
    )


@pytest.fixture
def rates():
    """Default rates: material 8%, labor 0%, equipment 8%, other 8%."""
    return standard_rates()


@pytest.fixture
def scenario_items():
    """Reference line items: 20 material, 15 labor, 50 equipment, 5 other taxed at 5%."""
    return [
        item("material", "2", "10"),
        item("labor", "1", "15"),
        item("equipment", "1", "50"),
        item("other", "1", "5", tax_rate="5"),
    ]


@pytest.fixture
def sent_quote():
    return make_document(
        doc_type=DocumentType.QUOTE,
        number="QUO-0001",
        status=DocumentStatus.SENT,
        expiry_date=datetime.date(2026, 2, 10),
    )


@pytest.fixture
def sent_invoice():
    """Sent invoice with a total of 108.00 (100 material + 8% tax)."""
    return make_document(
        number="INV-0001",
        status=DocumentStatus.SENT,
        due_date=datetime.date(2026, 2, 9),
    )
