"""
SQLAlchemy database models
Project: BuildLedger (contractor billing)

Central import of every model, for metadata creation and general use.

Models:
- DocumentRecord: invoices and quotes, with their nested collections
  (line items, discounts, payments, phases, change orders) stored as JSON
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for every SQLAlchemy model."""
    pass


from buildledger.models.document import DocumentRecord  # noqa: E402

__all__ = [
    "Base",
    "DocumentRecord",
]
