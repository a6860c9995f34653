"""
Document numbering
Project: BuildLedger (contractor billing)

Assigns the next sequential number of a document type by scanning the
existing documents: INV-0001, INV-0002, ... and QUO-0001, QUO-0002, ...
No external sequence is used.
"""

import logging
import re
from typing import Iterable, Optional, Union

from buildledger.core.config import settings
from buildledger.schemas.document import Document, DocumentType

logger = logging.getLogger(__name__)

_NON_DIGITS = re.compile(r"\D")


def number_prefix(doc_type: DocumentType) -> str:
    if doc_type == DocumentType.INVOICE:
        return settings.invoice_number_prefix
    return settings.quote_number_prefix


def numeric_suffix(number: Optional[str]) -> Optional[int]:
    """
    Numeric part of a document number.

    Every non-digit character is stripped ("INV-0012" -> 12). Returns None
    when nothing numeric is left.
    """
    if not number:
        return None
    digits = _NON_DIGITS.sub("", number)
    if not digits:
        return None
    return int(digits)


def format_number(doc_type: DocumentType, sequence: int) -> str:
    return f"{number_prefix(doc_type)}-{sequence:0{settings.number_padding}d}"


def next_number(
    doc_type: Union[DocumentType, str],
    documents: Iterable[Document],
) -> str:
    """
    Next number for a document type.

    Takes the highest numeric suffix among the documents of that type and
    adds one; starts at 1 when there are none. Malformed numbers are
    skipped.

    Args:
        doc_type: invoice | quote
        documents: Existing documents (any type)

    Returns:
        str: e.g. "INV-0004"
    """
    doc_type = DocumentType(doc_type)
    highest = 0
    for document in documents:
        if document.type != doc_type:
            continue
        suffix = numeric_suffix(document.number)
        if suffix is None:
            logger.warning("Skipping malformed document number %r", document.number)
            continue
        highest = max(highest, suffix)

    return format_number(doc_type, highest + 1)
