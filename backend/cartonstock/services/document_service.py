# Overview: Receipt number allocation per location and document type.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError
from ..extensions import db
from ..models import DocumentSequence

DOC_TYPE_SALE = "SALE"

SALE_RECEIPT_PREFIX = "S"
ORDER_NUMBER_PREFIX = "ORD"


def _current_number(location_id: int, document_type: str) -> int:
    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(location_id=location_id, document_type=document_type)
        .scalar()
    )
    return current - 1


def next_document_number(
    *,
    location_id: int,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a location/type.

    Runs inside the caller's transaction so a rolled-back sale also releases
    its number. The increment is a single UPDATE; the first allocation for a
    pair inserts the sequence row inside a savepoint so a concurrent insert
    falls back to the UPDATE path.
    """
    if not location_id:
        raise ValidationError("location_id is required")
    if not document_type:
        raise ValidationError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.location_id == location_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        next_num = _current_number(location_id, document_type)
    else:
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    location_id=location_id,
                    document_type=document_type,
                    next_number=2,
                ))
            next_num = 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(location_id, document_type)

    return f"{prefix}-{next_num:0{pad}d}"


def next_sale_receipt_number(location_id: int) -> str:
    return next_document_number(
        location_id=location_id,
        document_type=DOC_TYPE_SALE,
        prefix=SALE_RECEIPT_PREFIX,
    )


def order_number_for(order_id: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}-{order_id:06d}"
