"""
SQLAlchemy model for billing documents
Project: BuildLedger (contractor billing)

Contains:
- DocumentRecord: an invoice or a quote. Scalar amounts are columns so
  they can be filtered and sorted; nested collections are JSON columns
  holding the snake_case dump of the matching pydantic schemas.
"""

from __future__ import annotations

import uuid
import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Date,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from buildledger.models import Base
from buildledger.models.mixins import TimestampMixin, UUIDMixin


class DocumentRecord(Base, UUIDMixin, TimestampMixin):
    """
    Stored invoice or quote.

    Attribute names mirror the `Document` schema so that
    `Document.model_validate(record)` rebuilds the aggregate directly.

    Attributes:
        type: invoice | quote
        number: Sequential number per type (INV-0001, QUO-0001)
        status: Lifecycle status
        line_items: Line items (JSON)
        tax_rates: Default tax rates per bucket (JSON)
        category_subtotals: Subtotal per bucket (JSON)
        tax_breakdown: Tax per bucket (JSON)
        discounts: Discounts (JSON)
        change_orders: Change orders (JSON)
        payments: Payments (JSON)
        progress_billing: Progress billing phases (JSON)
        original_quote_id: Quote this invoice was converted from
        converted_invoice_id: Invoice this quote was converted into
    """

    __tablename__ = "documents"

    # ------------------------------------------------------------
    # Identification
    # ------------------------------------------------------------
    type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        doc="Document type: invoice | quote",
    )

    number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        doc="Sequential number per document type",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="draft",
        doc="Lifecycle status",
    )

    date: Mapped[datetime.date] = mapped_column(
        Date,
        nullable=False,
        doc="Issue date",
    )

    due_date: Mapped[Optional[datetime.date]] = mapped_column(
        Date,
        nullable=True,
        doc="Payment due date (invoices)",
    )

    expiry_date: Mapped[Optional[datetime.date]] = mapped_column(
        Date,
        nullable=True,
        doc="Validity end date (quotes)",
    )

    # ------------------------------------------------------------
    # Client and project
    # ------------------------------------------------------------
    client_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    project_title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    project_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    project_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Lines and computed amounts
    # ------------------------------------------------------------
    line_items: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        doc="Line items",
    )

    tax_rates: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Default tax rates per bucket",
    )

    category_subtotals: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Subtotal per bucket",
    )

    subtotal: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Sum of line item totals",
    )

    tax_breakdown: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        doc="Tax per bucket",
    )

    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="Total tax",
    )

    discounts: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    discount_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    change_orders: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    change_order_total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )

    total: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="subtotal + tax - discount + change orders, never negative",
    )

    # ------------------------------------------------------------
    # Deposit, payments, progress billing
    # ------------------------------------------------------------
    deposit_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(5, 2), nullable=True)
    deposit_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
    )
    deposit_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    deposit_date: Mapped[Optional[datetime.date]] = mapped_column(Date, nullable=True)

    payments: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    balance_due: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0"),
        doc="total - payments, never negative",
    )

    is_progress_billing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    progress_billing: Mapped[list[dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )

    terms: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # ------------------------------------------------------------
    # Conversion links
    # ------------------------------------------------------------
    original_quote_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="Quote this invoice was converted from",
    )

    converted_invoice_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        nullable=True,
        doc="Invoice this quote was converted into",
    )

    __table_args__ = (
        UniqueConstraint("type", "number", name="uq_documents_type_number"),
        Index("ix_documents_status", "status"),
        Index("ix_documents_date", "date"),
        Index("ix_documents_type_status", "type", "status"),
        CheckConstraint("type IN ('invoice', 'quote')", name="ck_documents_type"),
        CheckConstraint("total >= 0", name="ck_documents_total_positive"),
        CheckConstraint("balance_due >= 0", name="ck_documents_balance_due_positive"),
    )

    def __repr__(self) -> str:
        return f"<DocumentRecord(id={self.id}, number={self.number}, status={self.status})>"
