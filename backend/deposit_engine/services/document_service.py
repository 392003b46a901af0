# Overview: Sequential document numbers for sales and materialized products.

from __future__ import annotations

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import lock_for_update


def next_document_number(*, document_type: str, prefix: str, pad: int = 6) -> str:
    """
    Allocate the next number for a document type inside the caller's transaction.

    Uses a row-level lock on the sequence row; no commit here.
    """
    if not document_type:
        raise ValueError("document_type is required")

    seq = lock_for_update(
        db.session.query(DocumentSequence).filter_by(document_type=document_type)
    ).first()
    if seq is None:
        seq = DocumentSequence(document_type=document_type, next_number=1)
        db.session.add(seq)
        db.session.flush()

    number = seq.next_number
    seq.next_number = number + 1
    db.session.flush()
    return f"{prefix}-{number:0{pad}d}"
