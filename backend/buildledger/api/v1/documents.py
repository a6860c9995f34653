"""
FastAPI router for billing documents
Project: BuildLedger (contractor billing)

Endpoints for invoices and quotes: CRUD, stateless totals computation,
payments, progress phases, status changes, conversion, duplication and
maintenance sweeps.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from buildledger.core.database import get_db
from buildledger.schemas.document import (
    ConversionResult,
    DocumentCreate,
    DocumentList,
    DocumentRead,
    DocumentStatus,
    DocumentTotals,
    DocumentType,
    DocumentUpdate,
    PaymentCreate,
    PhaseStatus,
    ProgressPhaseCreate,
    StatusChange,
    SweepResult,
    TotalsRequest,
)
from buildledger.services.document_service import DocumentService
from buildledger.services.totals import compute_totals

logger = logging.getLogger(__name__)

document_service = DocumentService()

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


# -------------------------------------------------------------------
# Stateless computation
# -------------------------------------------------------------------

@router.post(
    "/totals",
    name="documents_totals",
    summary="Compute totals",
    description="Compute subtotal, tax, discount and total for a set of line items without storing anything.",
    response_model=DocumentTotals,
    status_code=status.HTTP_200_OK,
)
async def compute_document_totals(data: TotalsRequest) -> DocumentTotals:
    return compute_totals(
        data.line_items,
        data.tax_rates,
        data.discounts,
        data.change_orders,
    )


# -------------------------------------------------------------------
# Maintenance
# -------------------------------------------------------------------

@router.post(
    "/maintenance/expire-quotes",
    name="documents_expire_quotes",
    summary="Expire quotes",
    description="Mark sent quotes past their expiry date as expired.",
    response_model=SweepResult,
    status_code=status.HTTP_200_OK,
)
async def expire_quotes(db: AsyncSession = Depends(get_db)) -> SweepResult:
    return await document_service.expire_quotes(db=db)


@router.post(
    "/maintenance/mark-overdue",
    name="documents_mark_overdue",
    summary="Flag overdue invoices",
    description="Mark unpaid invoices past their due date as overdue.",
    response_model=SweepResult,
    status_code=status.HTTP_200_OK,
)
async def mark_overdue(db: AsyncSession = Depends(get_db)) -> SweepResult:
    return await document_service.mark_overdue(db=db)


# -------------------------------------------------------------------
# CRUD
# -------------------------------------------------------------------

@router.get(
    "/",
    name="documents_list",
    summary="List documents",
    description="Paginated list of invoices and quotes with optional filters.",
    response_model=DocumentList,
    status_code=status.HTTP_200_OK,
)
async def get_documents(
    doc_type: Optional[DocumentType] = Query(None, alias="type", description="invoice | quote"),
    status_filter: Optional[DocumentStatus] = Query(None, alias="status", description="Status filter"),
    search: Optional[str] = Query(None, description="Number, client or project title"),
    from_date: Optional[date] = Query(None, description="Issue date from (YYYY-MM-DD)"),
    to_date: Optional[date] = Query(None, description="Issue date to (YYYY-MM-DD)"),
    min_amount: Optional[Decimal] = Query(None, ge=0, description="Minimum total"),
    max_amount: Optional[Decimal] = Query(None, ge=0, description="Maximum total"),
    include_archived: bool = Query(False, description="Include archived documents"),
    page: int = Query(1, ge=1, description="Page number"),
    per_page: int = Query(10, ge=1, le=100, description="Items per page"),
    db: AsyncSession = Depends(get_db),
) -> DocumentList:
    """
    List documents.

    Sweeps expired quotes first so the listed statuses are current.
    """
    await document_service.expire_quotes(db=db)
    return await document_service.get_all(
        db=db,
        doc_type=doc_type,
        status_filter=status_filter,
        search=search,
        from_date=from_date,
        to_date=to_date,
        min_amount=min_amount,
        max_amount=max_amount,
        include_archived=include_archived,
        page=page,
        per_page=per_page,
    )


@router.post(
    "/",
    name="documents_create",
    summary="Create document",
    description="Create a draft invoice or quote with the next number of its type.",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def create_document(
    data: DocumentCreate,
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.create(db=db, data=data)


@router.get(
    "/{document_id}",
    name="documents_detail",
    summary="Document detail",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def get_document(
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.get_by_id(db=db, document_id=document_id)


@router.put(
    "/{document_id}",
    name="documents_update",
    summary="Update document",
    description="Update a document; every derived amount is recomputed.",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def update_document(
    data: DocumentUpdate,
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.update(db=db, document_id=document_id, data=data)


@router.delete(
    "/{document_id}",
    name="documents_delete",
    summary="Delete document",
    description="Delete a document without recorded payments.",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_document(
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> None:
    await document_service.delete(db=db, document_id=document_id)


# -------------------------------------------------------------------
# Payments
# -------------------------------------------------------------------

@router.post(
    "/{document_id}/payments",
    name="documents_payment_add",
    summary="Record payment",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def record_payment(
    data: PaymentCreate,
    document_id: uuid.UUID = Path(..., description="Invoice UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.record_payment(db=db, document_id=document_id, data=data)


@router.delete(
    "/{document_id}/payments/{payment_id}",
    name="documents_payment_delete",
    summary="Delete payment",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def delete_payment(
    document_id: uuid.UUID = Path(..., description="Invoice UUID"),
    payment_id: uuid.UUID = Path(..., description="Payment UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.delete_payment(
        db=db, document_id=document_id, payment_id=payment_id
    )


# -------------------------------------------------------------------
# Progress billing
# -------------------------------------------------------------------

@router.post(
    "/{document_id}/phases",
    name="documents_phase_add",
    summary="Add progress phase",
    description="Add a progress billing phase; refused when phases would exceed 100%.",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_phase(
    data: ProgressPhaseCreate,
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.add_phase(db=db, document_id=document_id, data=data)


@router.delete(
    "/{document_id}/phases/{phase_id}",
    name="documents_phase_delete",
    summary="Remove progress phase",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def remove_phase(
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    phase_id: uuid.UUID = Path(..., description="Phase UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.remove_phase(db=db, document_id=document_id, phase_id=phase_id)


@router.post(
    "/{document_id}/phases/{phase_id}/{target}",
    name="documents_phase_advance",
    summary="Mark phase billed or paid",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def advance_phase(
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    phase_id: uuid.UUID = Path(..., description="Phase UUID"),
    target: PhaseStatus = Path(..., description="billed | paid"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.advance_phase(
        db=db, document_id=document_id, phase_id=phase_id, target=target
    )


# -------------------------------------------------------------------
# Lifecycle
# -------------------------------------------------------------------

@router.post(
    "/{document_id}/status",
    name="documents_status",
    summary="Change status",
    description="Send, accept, reject, archive or restore a document.",
    response_model=DocumentRead,
    status_code=status.HTTP_200_OK,
)
async def change_status(
    data: StatusChange,
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.change_status(db=db, document_id=document_id, target=data.status)


@router.post(
    "/{document_id}/convert",
    name="documents_convert",
    summary="Convert quote to invoice",
    description="Create a draft invoice from a quote and mark the quote converted.",
    response_model=ConversionResult,
    status_code=status.HTTP_201_CREATED,
)
async def convert_quote(
    document_id: uuid.UUID = Path(..., description="Quote UUID"),
    db: AsyncSession = Depends(get_db),
) -> ConversionResult:
    return await document_service.convert_quote(db=db, quote_id=document_id)


@router.post(
    "/{document_id}/duplicate",
    name="documents_duplicate",
    summary="Duplicate document",
    response_model=DocumentRead,
    status_code=status.HTTP_201_CREATED,
)
async def duplicate_document(
    document_id: uuid.UUID = Path(..., description="Document UUID"),
    db: AsyncSession = Depends(get_db),
) -> DocumentRead:
    return await document_service.duplicate(db=db, document_id=document_id)
