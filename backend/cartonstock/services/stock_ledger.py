# Overview: Live carton counts per (product, location); the only authority for "available to sell".

"""
Stock ledger.

Every write is a single server-side statement so two concurrent sellers can
never both read 5 and both write 3. Nothing here commits: the caller's unit
of work (sale, fulfillment, adjustment, receipt) owns the transaction.
"""
from __future__ import annotations

from sqlalchemy import case, update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, NotFound
from ..extensions import db
from ..models import Location, Product, StockEntry
from ..validation import validate_cartons
from .concurrency import lock_for_update


def _pair(product_id: int, location_id: int):
    return (
        StockEntry.product_id == product_id,
        StockEntry.location_id == location_id,
    )


def _execute(stmt):
    # Callers read counts back with column queries, never through loaded entities
    return db.session.execute(stmt, execution_options={"synchronize_session": False})


def _require_pair_exists(product_id: int, location_id: int) -> None:
    if db.session.get(Product, product_id) is None:
        raise NotFound(f"Product {product_id} not found", details={"product_id": product_id})
    if db.session.get(Location, location_id) is None:
        raise NotFound(f"Location {location_id} not found", details={"location_id": location_id})


def get_stock(product_id: int, location_id: int) -> int:
    """Live cartons; a missing entry reads as 0."""
    cartons = (
        db.session.query(StockEntry.cartons)
        .filter(*_pair(product_id, location_id))
        .scalar()
    )
    return int(cartons or 0)


def stock_by_product(location_id: int) -> dict[int, int]:
    rows = (
        db.session.query(StockEntry.product_id, StockEntry.cartons)
        .filter(StockEntry.location_id == location_id)
        .all()
    )
    return {product_id: cartons for product_id, cartons in rows}


def _insert_entry(product_id: int, location_id: int, cartons: int) -> bool:
    """
    Create the entry inside a savepoint.

    Returns False when a concurrent writer created it first; the caller then
    takes the UPDATE path again.
    """
    try:
        with db.session.begin_nested():
            db.session.add(StockEntry(product_id=product_id, location_id=location_id, cartons=cartons))
        return True
    except IntegrityError:
        return False


def set_stock(product_id: int, location_id: int, cartons) -> int:
    """
    Overwrite the live count. Returns the previous count (0 if no entry).

    The previous value is read under a row lock; the write is one UPDATE,
    falling back to INSERT for the first write of a pair.
    """
    cartons = validate_cartons(cartons)

    previous = lock_for_update(
        db.session.query(StockEntry.cartons).filter(*_pair(product_id, location_id))
    ).scalar()

    stmt = (
        update(StockEntry)
        .where(*_pair(product_id, location_id))
        .values(cartons=cartons, version_id=StockEntry.version_id + 1)
    )

    result = _execute(stmt)
    if result.rowcount:
        return int(previous or 0)

    _require_pair_exists(product_id, location_id)
    if _insert_entry(product_id, location_id, cartons):
        return 0

    # Lost the insert race; the row exists now
    previous = lock_for_update(
        db.session.query(StockEntry.cartons).filter(*_pair(product_id, location_id))
    ).scalar()
    _execute(stmt)
    return int(previous or 0)


def decrement(product_id: int, location_id: int, by) -> int:
    """
    Subtract cartons, clamping at zero. Returns the new count.

    cartons = CASE WHEN cartons > :n THEN cartons - :n ELSE 0 END
    """
    by = validate_cartons(by, "by")
    stmt = (
        update(StockEntry)
        .where(*_pair(product_id, location_id))
        .values(
            cartons=case((StockEntry.cartons > by, StockEntry.cartons - by), else_=0),
            version_id=StockEntry.version_id + 1,
        )
    )
    _execute(stmt)
    return get_stock(product_id, location_id)


def decrement_available(product_id: int, location_id: int, by) -> int:
    """
    Subtract cartons only if that many are available. Returns the new count.

    The guard lives in the UPDATE's WHERE clause, so the check and the write
    are one statement; zero rows matched means the stock is not there.
    """
    by = validate_cartons(by, "by", allow_zero=False)
    stmt = (
        update(StockEntry)
        .where(*_pair(product_id, location_id), StockEntry.cartons >= by)
        .values(
            cartons=StockEntry.cartons - by,
            version_id=StockEntry.version_id + 1,
        )
    )
    result = _execute(stmt)
    if not result.rowcount:
        available = get_stock(product_id, location_id)
        product = db.session.get(Product, product_id)
        raise InsufficientStock(
            product_id,
            available,
            requested=by,
            product_name=product.name if product else None,
        )
    return get_stock(product_id, location_id)


def increment(product_id: int, location_id: int, by) -> int:
    """Add received cartons. Returns the new count."""
    by = validate_cartons(by, "by", allow_zero=False)
    stmt = (
        update(StockEntry)
        .where(*_pair(product_id, location_id))
        .values(
            cartons=StockEntry.cartons + by,
            version_id=StockEntry.version_id + 1,
        )
    )
    result = _execute(stmt)
    if not result.rowcount:
        _require_pair_exists(product_id, location_id)
        if not _insert_entry(product_id, location_id, by):
            _execute(stmt)
    return get_stock(product_id, location_id)
