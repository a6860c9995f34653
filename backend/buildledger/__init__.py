"""
BuildLedger - contractor billing backend.

Document computation (subtotals, tax, discounts, payments, progress
billing) and lifecycle (numbering, conversion, expiry) for invoices and
quotes.
"""

__version__ = "1.0.0"
