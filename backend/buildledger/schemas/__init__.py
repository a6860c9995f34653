"""
Pydantic schemas for BuildLedger

Engine types (line items, discounts, payments, phases, documents) and
the request/response schemas of the API.
"""

from buildledger.schemas.document import (
    CategoryBucket,
    CategorySubtotals,
    ChangeOrder,
    ChangeOrderStatus,
    ConversionResult,
    Discount,
    DiscountScope,
    DiscountType,
    Document,
    DocumentCreate,
    DocumentList,
    DocumentRead,
    DocumentStatus,
    DocumentTotals,
    DocumentType,
    DocumentUpdate,
    LineItem,
    LineItemCategory,
    Payment,
    PaymentCreate,
    PaymentMethod,
    PhaseStatus,
    ProgressPhase,
    ProgressPhaseCreate,
    StatusChange,
    SweepResult,
    TaxBreakdown,
    TaxRates,
    TotalsRequest,
    ValidationWarning,
)

__all__ = [
    "CategoryBucket",
    "CategorySubtotals",
    "ChangeOrder",
    "ChangeOrderStatus",
    "ConversionResult",
    "Discount",
    "DiscountScope",
    "DiscountType",
    "Document",
    "DocumentCreate",
    "DocumentList",
    "DocumentRead",
    "DocumentStatus",
    "DocumentTotals",
    "DocumentType",
    "DocumentUpdate",
    "LineItem",
    "LineItemCategory",
    "Payment",
    "PaymentCreate",
    "PaymentMethod",
    "PhaseStatus",
    "ProgressPhase",
    "ProgressPhaseCreate",
    "StatusChange",
    "SweepResult",
    "TaxBreakdown",
    "TaxRates",
    "TotalsRequest",
    "ValidationWarning",
]
