"""
Pydantic schemas for billing documents
Project: BuildLedger (contractor billing)

Contains:
- Enums: LineItemCategory, CategoryBucket, DocumentType, DocumentStatus,
  PaymentMethod, DiscountType, DiscountScope, PhaseStatus, ChangeOrderStatus
- Building blocks: LineItem, TaxRates, CategorySubtotals, TaxBreakdown,
  Discount, Payment, ProgressPhase, ChangeOrder, ValidationWarning
- Aggregate root: Document, plus the create/update/list schemas of the API
"""

import uuid
import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from buildledger.core.config import settings
from buildledger.core.exceptions import BusinessValidationError


ZERO = Decimal("0")


# -------------------------------------------------------------------
# Enum
# -------------------------------------------------------------------

class LineItemCategory(str, Enum):
    """Line item categories offered to the user."""
    MATERIAL = "material"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    PERMIT = "permit"
    ELECTRICAL = "electrical"
    PLUMBING = "plumbing"
    FRAMING = "framing"
    LANDSCAPING = "landscaping"
    OTHER = "other"


class CategoryBucket(str, Enum):
    """Financial buckets used for subtotals and tax."""
    MATERIAL = "material"
    LABOR = "labor"
    EQUIPMENT = "equipment"
    OTHER = "other"


class DocumentType(str, Enum):
    """Billing document types."""
    INVOICE = "invoice"
    QUOTE = "quote"


class DocumentStatus(str, Enum):
    """Lifecycle status of a document."""
    DRAFT = "draft"
    SENT = "sent"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    PAID = "paid"
    PARTIAL_PAID = "partial_paid"
    OVERDUE = "overdue"
    CONVERTED = "converted"
    ARCHIVED = "archived"


class PaymentMethod(str, Enum):
    """Supported payment methods."""
    CASH = "cash"
    CHECK = "check"
    CREDIT_CARD = "credit_card"
    BANK_TRANSFER = "bank_transfer"
    OTHER = "other"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountScope(str, Enum):
    """Base a discount is computed on."""
    SUBTOTAL = "subtotal"
    TOTAL = "total"
    CATEGORY = "category"


class PhaseStatus(str, Enum):
    PENDING = "pending"
    BILLED = "billed"
    PAID = "paid"


class ChangeOrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    IMPLEMENTED = "implemented"


# -------------------------------------------------------------------
# Line items and category totals
# -------------------------------------------------------------------

class LineItem(BaseModel):
    """
    One priced unit of work.

    `category` is a free string: the known values are listed in
    LineItemCategory, anything else is bucketed as "other" by the
    aggregator. `total` is derived and always recomputed by the engine.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Line item UUID")
    description: str = Field(default="", max_length=500, description="Description")
    category: Optional[str] = Field(
        default=LineItemCategory.OTHER.value,
        description="Category (material, labor, equipment, permit, ...)",
    )
    quantity: Decimal = Field(..., ge=0, description="Quantity")
    unit: str = Field(default="each", max_length=50, description="Unit of measure")
    rate: Decimal = Field(..., description="Price per unit")
    cost: Optional[Decimal] = Field(None, description="Internal cost per unit")
    markup: Optional[Decimal] = Field(None, description="Markup percentage")
    tax_rate: Optional[Decimal] = Field(
        None,
        description="Tax rate override (%) for this item",
        serialization_alias="taxRate",
    )
    total: Decimal = Field(default=ZERO, description="quantity * rate * (1 + markup/100)")
    notes: Optional[str] = Field(None, description="Notes")

    model_config = ConfigDict(from_attributes=True)

    @field_validator("category", mode="before")
    @classmethod
    def normalise_category(cls, v):
        """Lower-case known values; keep unknown strings as they are."""
        if isinstance(v, Enum):
            return v.value
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


class TaxRates(BaseModel):
    """Default tax rates (%) per category bucket."""

    material: Decimal = Field(default_factory=lambda: settings.default_material_tax_rate)
    labor: Decimal = Field(default_factory=lambda: settings.default_labor_tax_rate)
    equipment: Decimal = Field(default_factory=lambda: settings.default_equipment_tax_rate)
    other: Decimal = Field(default_factory=lambda: settings.default_other_tax_rate)

    model_config = ConfigDict(from_attributes=True)

    def for_bucket(self, bucket: CategoryBucket) -> Decimal:
        return getattr(self, bucket.value)


class CategorySubtotals(BaseModel):
    """Subtotal of each category bucket."""

    material: Decimal = ZERO
    labor: Decimal = ZERO
    equipment: Decimal = ZERO
    other: Decimal = ZERO

    model_config = ConfigDict(from_attributes=True)

    def for_bucket(self, bucket: CategoryBucket) -> Decimal:
        return getattr(self, bucket.value)

    def sum(self) -> Decimal:
        return self.material + self.labor + self.equipment + self.other


class TaxBreakdown(BaseModel):
    """Tax per bucket; total_tax is always the sum of the four buckets."""

    material_tax: Decimal = Field(default=ZERO, serialization_alias="materialTax")
    labor_tax: Decimal = Field(default=ZERO, serialization_alias="laborTax")
    equipment_tax: Decimal = Field(default=ZERO, serialization_alias="equipmentTax")
    other_tax: Decimal = Field(default=ZERO, serialization_alias="otherTax")
    total_tax: Decimal = Field(default=ZERO, serialization_alias="totalTax")

    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------------------------
# Discounts, payments, phases, change orders
# -------------------------------------------------------------------

class Discount(BaseModel):
    """A percentage or fixed discount scoped to subtotal, total or a category."""

    type: DiscountType = Field(..., description="percentage | fixed")
    value: Decimal = Field(..., ge=0, description="Percentage or fixed amount")
    description: str = Field(default="", description="Label shown on the document")
    applies_to: DiscountScope = Field(
        default=DiscountScope.SUBTOTAL,
        description="subtotal | total | category",
        serialization_alias="appliesTo",
    )
    category: Optional[str] = Field(
        None,
        description="Target category when applies_to is 'category'",
    )

    model_config = ConfigDict(from_attributes=True)

    @field_validator("category", mode="before")
    @classmethod
    def normalise_category(cls, v):
        if isinstance(v, Enum):
            return v.value
        if isinstance(v, str):
            return v.strip().lower() or None
        return v


class PaymentCreate(BaseModel):
    """Schema used to record a payment."""

    amount: Decimal = Field(..., gt=0, description="Amount paid")
    date: datetime.date = Field(default_factory=datetime.date.today, description="Payment date")
    method: PaymentMethod = Field(default=PaymentMethod.OTHER, description="Payment method")
    reference: Optional[str] = Field(
        None,
        max_length=255,
        description="Reference (check number, transfer id, ...)",
    )
    notes: Optional[str] = Field(None, description="Notes")

    model_config = ConfigDict(from_attributes=True)


class Payment(PaymentCreate):
    """A recorded payment. Immutable: it can only be deleted."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Payment UUID")

    model_config = ConfigDict(from_attributes=True, frozen=True)


class ProgressPhaseCreate(BaseModel):
    """Schema used to add a progress billing phase."""

    phase: str = Field(..., min_length=1, max_length=200, description="Phase name")
    description: str = Field(default="", description="Description")
    percentage: Decimal = Field(..., ge=0, le=100, description="Share of the total (%)")
    due_date: Optional[datetime.date] = Field(None, serialization_alias="dueDate")

    model_config = ConfigDict(from_attributes=True)


class ProgressPhase(ProgressPhaseCreate):
    """A progress billing phase; `amount` is derived from `percentage`."""

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Phase UUID")
    amount: Decimal = Field(default=ZERO, description="round2(total * percentage / 100)")
    status: PhaseStatus = Field(default=PhaseStatus.PENDING)
    billed_date: Optional[datetime.date] = Field(None, serialization_alias="billedDate")
    paid_date: Optional[datetime.date] = Field(None, serialization_alias="paidDate")


class ChangeOrder(BaseModel):
    """
    Change order attached to a document.

    Subtotal, tax and total are derived from its own line items with the
    parent document's tax rates.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Change order UUID")
    number: str = Field(default="", max_length=20, description="Change order number")
    date: datetime.date = Field(default_factory=datetime.date.today, description="Change order date")
    description: str = Field(default="", description="Description")
    line_items: list[LineItem] = Field(
        default_factory=list,
        serialization_alias="lineItems",
    )
    subtotal: Decimal = ZERO
    tax_amount: Decimal = Field(default=ZERO, serialization_alias="taxAmount")
    total: Decimal = ZERO
    status: ChangeOrderStatus = Field(default=ChangeOrderStatus.DRAFT)
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class ValidationWarning(BaseModel):
    """Non-fatal business rule finding returned alongside computed values."""

    code: str = Field(..., description="Stable warning identifier")
    message: str = Field(..., description="Human readable message")


class DocumentTotals(BaseModel):
    """Output of the totals pipeline."""

    subtotal: Decimal
    category_subtotals: CategorySubtotals = Field(serialization_alias="categorySubtotals")
    tax_breakdown: TaxBreakdown = Field(serialization_alias="taxBreakdown")
    tax_amount: Decimal = Field(serialization_alias="taxAmount")
    discount_amount: Decimal = Field(serialization_alias="discountAmount")
    change_order_total: Decimal = Field(default=ZERO, serialization_alias="changeOrderTotal")
    total: Decimal
    warnings: list[ValidationWarning] = Field(default_factory=list)


class TotalsRequest(BaseModel):
    """Stateless totals computation request."""

    line_items: list[LineItem] = Field(default_factory=list)
    tax_rates: TaxRates = Field(default_factory=TaxRates)
    discounts: list[Discount] = Field(default_factory=list)
    change_orders: list[ChangeOrder] = Field(default_factory=list)


# -------------------------------------------------------------------
# Document (aggregate root)
# -------------------------------------------------------------------

class Document(BaseModel):
    """
    An invoice or a quote.

    Every monetary field except the user inputs (line item quantities and
    rates, discounts, payments, phase percentages, deposit percentage) is
    derived and refreshed by `recompute_document`.
    """

    id: uuid.UUID = Field(default_factory=uuid.uuid4, description="Document UUID")
    type: DocumentType = Field(..., description="invoice | quote")
    number: str = Field(default="", max_length=20, description="INV-0001 / QUO-0001")
    status: DocumentStatus = Field(default=DocumentStatus.DRAFT)
    date: datetime.date = Field(default_factory=datetime.date.today, description="Issue date")
    due_date: Optional[datetime.date] = Field(None, serialization_alias="dueDate")
    expiry_date: Optional[datetime.date] = Field(None, serialization_alias="expiryDate")

    client_name: str = Field(default="", max_length=255, serialization_alias="clientName")
    project_title: str = Field(default="", max_length=255, serialization_alias="projectTitle")
    project_description: Optional[str] = Field(None, serialization_alias="projectDescription")
    project_address: Optional[str] = Field(None, serialization_alias="projectAddress")

    line_items: list[LineItem] = Field(default_factory=list, serialization_alias="lineItems")
    tax_rates: TaxRates = Field(default_factory=TaxRates, serialization_alias="taxRates")
    category_subtotals: CategorySubtotals = Field(
        default_factory=CategorySubtotals,
        serialization_alias="categorySubtotals",
    )
    subtotal: Decimal = ZERO
    tax_breakdown: TaxBreakdown = Field(
        default_factory=TaxBreakdown,
        serialization_alias="taxBreakdown",
    )
    tax_amount: Decimal = Field(default=ZERO, serialization_alias="taxAmount")
    discounts: list[Discount] = Field(default_factory=list)
    discount_amount: Decimal = Field(default=ZERO, serialization_alias="discountAmount")
    change_orders: list[ChangeOrder] = Field(
        default_factory=list,
        serialization_alias="changeOrders",
    )
    change_order_total: Decimal = Field(default=ZERO, serialization_alias="changeOrderTotal")
    total: Decimal = ZERO

    deposit_percentage: Optional[Decimal] = Field(
        None,
        ge=0,
        le=100,
        serialization_alias="depositPercentage",
    )
    deposit_amount: Decimal = Field(default=ZERO, serialization_alias="depositAmount")
    deposit_paid: bool = Field(default=False, serialization_alias="depositPaid")
    deposit_date: Optional[datetime.date] = Field(None, serialization_alias="depositDate")

    payments: list[Payment] = Field(default_factory=list)
    balance_due: Decimal = Field(default=ZERO, serialization_alias="balanceDue")

    is_progress_billing: bool = Field(default=False, serialization_alias="isProgressBilling")
    progress_billing: list[ProgressPhase] = Field(
        default_factory=list,
        serialization_alias="progressBilling",
    )

    terms: Optional[str] = None
    notes: Optional[str] = None

    original_quote_id: Optional[uuid.UUID] = Field(None, serialization_alias="originalQuoteId")
    converted_invoice_id: Optional[uuid.UUID] = Field(
        None,
        serialization_alias="convertedInvoiceId",
    )

    created_at: Optional[datetime.datetime] = Field(None, serialization_alias="createdAt")
    updated_at: Optional[datetime.datetime] = Field(None, serialization_alias="updatedAt")

    model_config = ConfigDict(from_attributes=True)


class DocumentCreate(BaseModel):
    """Schema used to create a document. Number and totals are assigned by the server."""

    type: DocumentType
    date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    expiry_date: Optional[datetime.date] = None
    client_name: str = Field(default="", max_length=255)
    project_title: str = Field(default="", max_length=255)
    project_description: Optional[str] = None
    project_address: Optional[str] = None
    line_items: list[LineItem] = Field(default_factory=list)
    tax_rates: TaxRates = Field(default_factory=TaxRates)
    discounts: list[Discount] = Field(default_factory=list)
    change_orders: list[ChangeOrder] = Field(default_factory=list)
    deposit_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    is_progress_billing: bool = False
    progress_billing: list[ProgressPhaseCreate] = Field(default_factory=list)
    terms: Optional[str] = None
    notes: Optional[str] = None

    @model_validator(mode="after")
    def validate_dates(self) -> "DocumentCreate":
        """Quotes carry an expiry date, invoices a due date."""
        if self.type == DocumentType.INVOICE and self.expiry_date is not None:
            raise BusinessValidationError("Invoices do not have an expiry date")
        if self.type == DocumentType.QUOTE and self.due_date is not None:
            raise BusinessValidationError("Quotes do not have a due date")
        return self


class DocumentUpdate(BaseModel):
    """
    Schema used to update a document.

    Every field is optional; the document is recomputed after the update.
    Status, number and payments have dedicated operations.
    """

    date: Optional[datetime.date] = None
    due_date: Optional[datetime.date] = None
    expiry_date: Optional[datetime.date] = None
    client_name: Optional[str] = Field(None, max_length=255)
    project_title: Optional[str] = Field(None, max_length=255)
    project_description: Optional[str] = None
    project_address: Optional[str] = None
    line_items: Optional[list[LineItem]] = None
    tax_rates: Optional[TaxRates] = None
    discounts: Optional[list[Discount]] = None
    change_orders: Optional[list[ChangeOrder]] = None
    deposit_percentage: Optional[Decimal] = Field(None, ge=0, le=100)
    deposit_paid: Optional[bool] = None
    deposit_date: Optional[datetime.date] = None
    is_progress_billing: Optional[bool] = None
    terms: Optional[str] = None
    notes: Optional[str] = None

    @field_validator(
        "date",
        "client_name",
        "project_title",
        "line_items",
        "tax_rates",
        "discounts",
        "change_orders",
        "deposit_paid",
        "is_progress_billing",
    )
    @classmethod
    def reject_null(cls, v, info):
        """These fields may be omitted but never cleared."""
        if v is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return v


class StatusChange(BaseModel):
    """Requested explicit status transition."""

    status: DocumentStatus


class DocumentRead(Document):
    """Document returned by the API, with non-fatal warnings attached."""

    warnings: list[ValidationWarning] = Field(default_factory=list)


class DocumentList(BaseModel):
    """Paginated list of documents."""

    items: list[Document] = Field(default_factory=list, description="Documents")
    total: int = Field(..., description="Total number of documents", serialization_alias="totalItems")
    page: int = Field(..., description="Current page", serialization_alias="currentPage")
    per_page: int = Field(..., description="Items per page", serialization_alias="itemsPerPage")
    total_pages: int = Field(..., description="Total pages", serialization_alias="totalPages")

    model_config = ConfigDict(from_attributes=True)


class ConversionResult(BaseModel):
    """Result of converting a quote: the new invoice and the updated quote."""

    invoice: Document
    quote: Document


class SweepResult(BaseModel):
    """Result of a maintenance sweep (quote expiry, overdue invoices)."""

    updated: int = Field(..., description="Number of documents changed")
    numbers: list[str] = Field(default_factory=list, description="Numbers of the changed documents")
