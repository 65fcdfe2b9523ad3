# Overview: Daily opening/added/sold/closing reconciliation rows and the day rollover.

"""
Daily snapshot engine.

One row per (product, location, business day). Invariant for rows nobody
edited by hand:

    closing = opening + added - sold

A manual edit may leave closing off that identity; such rows carry
is_overridden=True and later movements adjust the stored closing instead of
recomputing it.

Rows are bootstrapped lazily by the first movement of the day (sale,
receipt) or eagerly by run_daily_rollover. Reads for today never persist:
a missing row is derived from live stock and today's sale lines.
"""
from __future__ import annotations

import logging
from datetime import date, timedelta

from sqlalchemy import case, func, update
from sqlalchemy.exc import IntegrityError

from ..errors import ConcurrencyConflict, InvalidQuantity, ValidationError
from ..extensions import db
from ..models import DailySnapshot, Product, Sale, SaleLine, StockEntry
from ..permissions import ActorContext, require, require_location_access
from ..time_utils import business_today, to_iso_date
from ..validation import coerce_int, validate_cartons
from . import stock_ledger
from .catalog_service import active_products, load_product
from .concurrency import lock_for_update, run_with_retry
from .location_service import load_location

logger = logging.getLogger(__name__)


def _pair_on(product_id: int, location_id: int, day: date):
    return (
        DailySnapshot.product_id == product_id,
        DailySnapshot.location_id == location_id,
        DailySnapshot.snapshot_date == day,
    )


def _execute(stmt):
    return db.session.execute(stmt, execution_options={"synchronize_session": False})


def _floor_zero(expr):
    return case((expr > 0, expr), else_=0)


# =============================================================================
# Reads
# =============================================================================

def sold_by_product(location_id: int, day: date) -> dict[int, int]:
    """Cartons sold per product at a location on a business day."""
    rows = (
        db.session.query(SaleLine.product_id, func.coalesce(func.sum(SaleLine.cartons), 0))
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(Sale.location_id == location_id, Sale.business_date == day)
        .group_by(SaleLine.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def sold_on(product_id: int, location_id: int, day: date) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(SaleLine.cartons), 0))
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(
            SaleLine.product_id == product_id,
            Sale.location_id == location_id,
            Sale.business_date == day,
        )
        .scalar()
    )
    return int(total or 0)


def _row_dict(product_id: int, location_id: int, day: date, opening: int, added: int, sold: int,
              closing: int, is_overridden: bool = False, persisted: bool = False) -> dict:
    return {
        "product_id": product_id,
        "location_id": location_id,
        "snapshot_date": to_iso_date(day),
        "opening": opening,
        "added": added,
        "sold": sold,
        "closing": closing,
        "is_overridden": is_overridden,
        "persisted": persisted,
    }


def _persisted_dict(row: DailySnapshot) -> dict:
    return _row_dict(
        row.product_id, row.location_id, row.snapshot_date,
        row.opening, row.added, row.sold, row.closing,
        is_overridden=row.is_overridden, persisted=True,
    )


def _derived_today(product_id: int, location_id: int, day: date, live: int, sold_today: int) -> dict:
    return _row_dict(product_id, location_id, day, live + sold_today, 0, sold_today, live)


def get_row(product_id: int, location_id: int, day: date | None = None) -> dict:
    """
    The reconciliation row for a product at a location on a day.

    Persisted rows are returned verbatim. Today without a row is derived:
    opening = live + sold_today, added = 0, sold = sold_today, closing = live.
    A past day without a row is all zeros. Never writes.
    """
    day = day or business_today()
    row = db.session.query(DailySnapshot).filter(*_pair_on(product_id, location_id, day)).first()
    if row is not None:
        return _persisted_dict(row)
    if day == business_today():
        live = stock_ledger.get_stock(product_id, location_id)
        return _derived_today(product_id, location_id, day, live, sold_on(product_id, location_id, day))
    return _row_dict(product_id, location_id, day, 0, 0, 0, 0)


def get_sheet(actor: ActorContext, location_id: int, day: date | None = None) -> dict:
    """
    Every active product's row for a location and day, with column totals.

    Products that are no longer active still appear when a row was persisted
    for them that day.
    """
    require(actor, "VIEW_SNAPSHOTS")
    require_location_access(actor, location_id)
    location = load_location(location_id)

    day = day or business_today()
    is_today = day == business_today()

    persisted = {
        row.product_id: row
        for row in db.session.query(DailySnapshot)
        .filter(DailySnapshot.location_id == location_id, DailySnapshot.snapshot_date == day)
        .all()
    }
    products = {p.id: p for p in active_products()}
    for product_id in persisted:
        if product_id not in products:
            products[product_id] = db.session.get(Product, product_id)

    live = stock_ledger.stock_by_product(location_id) if is_today else {}
    sold = sold_by_product(location_id, day) if is_today else {}

    rows = []
    totals = {"opening": 0, "added": 0, "sold": 0, "closing": 0, "sale_value_cents": 0}
    for product in sorted(products.values(), key=lambda p: (p.name, p.id)):
        if product.id in persisted:
            row = _persisted_dict(persisted[product.id])
        elif is_today:
            row = _derived_today(product.id, location_id, day, live.get(product.id, 0), sold.get(product.id, 0))
        else:
            row = _row_dict(product.id, location_id, day, 0, 0, 0, 0)

        row["product_name"] = product.name
        row["price_per_carton_cents"] = product.price_per_carton_cents
        row["sale_value_cents"] = row["sold"] * product.price_per_carton_cents
        rows.append(row)

        for key in totals:
            totals[key] += row[key]

    return {
        "location": location.to_dict(),
        "snapshot_date": to_iso_date(day),
        "is_today": is_today,
        "rows": rows,
        "totals": totals,
    }


# =============================================================================
# Movements (run inside the caller's transaction)
# =============================================================================

def _ensure_row(product_id: int, location_id: int, day: date, live_before: int | None) -> None:
    """
    Create the day's row if missing.

    opening = the prior day's closing when that row exists, else the live
    count before the movement being applied.
    """
    exists = db.session.query(DailySnapshot.id).filter(*_pair_on(product_id, location_id, day)).first()
    if exists is not None:
        return

    prior_closing = (
        db.session.query(DailySnapshot.closing)
        .filter(*_pair_on(product_id, location_id, day - timedelta(days=1)))
        .scalar()
    )
    if prior_closing is not None:
        opening = prior_closing
    elif live_before is not None:
        opening = live_before
    else:
        opening = stock_ledger.get_stock(product_id, location_id)

    try:
        with db.session.begin_nested():
            db.session.add(DailySnapshot(
                product_id=product_id,
                location_id=location_id,
                snapshot_date=day,
                opening=opening,
                added=0,
                sold=0,
                closing=opening,
                is_overridden=False,
            ))
    except IntegrityError:
        # Created concurrently; the movement applies to that row
        pass


def _apply_movement(product_id: int, location_id: int, day: date, *, sold: int = 0, added: int = 0) -> None:
    """
    One UPDATE for sold/added deltas.

    SET expressions read the pre-update column values, so the deltas are
    added explicitly. Identity rows recompute closing; overridden rows shift
    the stored closing. is_overridden is re-derived from the result.
    """
    identity_after = DailySnapshot.opening + DailySnapshot.added + added - DailySnapshot.sold - sold
    closing_after = case(
        (DailySnapshot.is_overridden.is_(True), _floor_zero(DailySnapshot.closing + added - sold)),
        else_=_floor_zero(identity_after),
    )
    stmt = (
        update(DailySnapshot)
        .where(*_pair_on(product_id, location_id, day))
        .values(
            sold=DailySnapshot.sold + sold,
            added=DailySnapshot.added + added,
            closing=closing_after,
            is_overridden=case((closing_after != identity_after, True), else_=False),
        )
    )
    _execute(stmt)


def apply_sale(product_id: int, location_id: int, cartons: int, day: date | None = None,
               live_before: int | None = None) -> None:
    """Record cartons sold on the day's row, creating it if needed."""
    cartons = validate_cartons(cartons, allow_zero=False)
    day = day or business_today()
    _ensure_row(product_id, location_id, day, live_before)
    _apply_movement(product_id, location_id, day, sold=cartons)


def apply_receipt(product_id: int, location_id: int, cartons: int, day: date | None = None,
                  live_before: int | None = None) -> None:
    """Record cartons received on the day's row, creating it if needed."""
    cartons = validate_cartons(cartons, allow_zero=False)
    day = day or business_today()
    _ensure_row(product_id, location_id, day, live_before)
    _apply_movement(product_id, location_id, day, added=cartons)


def apply_adjustment(product_id: int, location_id: int, new_cartons: int, day: date | None = None,
                     live_before: int | None = None) -> bool:
    """
    Mirror a manual stock correction into the day's closing.

    With live_before (the count before the correction) a missing row is
    created first, so the correction is never lost to a later bootstrap.
    Without it only an existing row is touched. sold is never changed.
    Returns whether a row was updated.
    """
    new_cartons = validate_cartons(new_cartons, "new_cartons")
    day = day or business_today()
    if live_before is not None:
        _ensure_row(product_id, location_id, day, live_before)
    identity = DailySnapshot.opening + DailySnapshot.added - DailySnapshot.sold
    stmt = (
        update(DailySnapshot)
        .where(*_pair_on(product_id, location_id, day))
        .values(
            closing=new_cartons,
            is_overridden=case((identity != new_cartons, True), else_=False),
        )
    )
    return bool(_execute(stmt).rowcount)


# =============================================================================
# Manual override
# =============================================================================

SNAPSHOT_EDIT_FIELDS = ("opening", "added", "sold")


def _parse_override_rows(rows) -> list[dict]:
    if not isinstance(rows, list) or not rows:
        raise ValidationError("At least one row is required")

    parsed = []
    seen = set()
    for i, raw in enumerate(rows):
        if not isinstance(raw, dict):
            raise ValidationError(f"rows[{i}] must be an object")
        if "product_id" not in raw:
            raise ValidationError(f"rows[{i}].product_id is required")
        product_id = coerce_int(raw["product_id"], f"rows[{i}].product_id")
        if product_id in seen:
            raise ValidationError(
                f"rows[{i}]: product {product_id} appears more than once",
                details={"product_id": product_id},
            )
        seen.add(product_id)

        values = {}
        for field in SNAPSHOT_EDIT_FIELDS:
            if field not in raw:
                raise ValidationError(f"rows[{i}].{field} is required")
            values[field] = validate_cartons(raw[field], f"rows[{i}].{field}")

        identity = values["opening"] + values["added"] - values["sold"]
        if raw.get("closing") is None:
            if identity < 0:
                raise InvalidQuantity(
                    f"rows[{i}]: opening + added - sold is negative",
                    details={"product_id": product_id, **values},
                )
            closing = identity
        else:
            closing = validate_cartons(raw["closing"], f"rows[{i}].closing")

        parsed.append({
            "product_id": product_id,
            **values,
            "closing": closing,
            "is_overridden": closing != identity,
        })
    return parsed


def bulk_override(actor: ActorContext, location_id: int, day: date | None, rows) -> list[dict]:
    """
    Persist hand-edited reconciliation rows for one location and day.

    closing given -> stored as-is; omitted -> opening + added - sold.
    Editing today's sheet also sets live stock to each row's closing.
    All rows commit together or not at all.
    """
    require(actor, "OVERRIDE_SNAPSHOT")
    require_location_access(actor, location_id)
    load_location(location_id)

    day = day or business_today()
    parsed = _parse_override_rows(rows)
    for row in parsed:
        load_product(row["product_id"])
    sync_live = day == business_today()

    def _op():
        saved = []
        for row in parsed:
            product_id = row["product_id"]
            snapshot = lock_for_update(
                db.session.query(DailySnapshot).filter(*_pair_on(product_id, location_id, day))
            ).first()
            if snapshot is None:
                snapshot = DailySnapshot(product_id=product_id, location_id=location_id, snapshot_date=day)
                db.session.add(snapshot)
            snapshot.opening = row["opening"]
            snapshot.added = row["added"]
            snapshot.sold = row["sold"]
            snapshot.closing = row["closing"]
            snapshot.is_overridden = row["is_overridden"]

            if sync_live:
                stock_ledger.set_stock(product_id, location_id, row["closing"])
            saved.append(snapshot)

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConcurrencyConflict(
                "Snapshot rows were created concurrently; reload and retry",
                details={"location_id": location_id, "snapshot_date": to_iso_date(day)},
            )
        return [_persisted_dict(s) for s in saved]

    return run_with_retry(_op)


# =============================================================================
# Rollover and repair
# =============================================================================

def run_daily_rollover(day: date | None = None, actor: ActorContext | None = None) -> int:
    """
    Create the day's opening rows for every stock entry.

    Idempotent: if any row already exists for the day nothing is written.
    opening = yesterday's closing when present, else live; closing = live.
    Returns the number of rows inserted. Scheduler and CLI callers pass no
    actor; HTTP callers are authorized.
    """
    if actor is not None:
        require(actor, "RUN_ROLLOVER")
    day = day or business_today()

    def _op():
        if db.session.query(DailySnapshot.id).filter(DailySnapshot.snapshot_date == day).first() is not None:
            logger.info("Rollover for %s skipped: rows already exist", day)
            return 0

        yesterday = {
            (row.product_id, row.location_id): row.closing
            for row in db.session.query(DailySnapshot)
            .filter(DailySnapshot.snapshot_date == day - timedelta(days=1))
            .all()
        }

        inserted = 0
        drifted = 0
        for entry in db.session.query(StockEntry).order_by(StockEntry.id.asc()).all():
            live = entry.cartons
            opening = yesterday.get((entry.product_id, entry.location_id))
            if opening is None:
                opening = live
            elif opening != live:
                drifted += 1
            db.session.add(DailySnapshot(
                product_id=entry.product_id,
                location_id=entry.location_id,
                snapshot_date=day,
                opening=opening,
                added=0,
                sold=0,
                closing=live,
                is_overridden=opening != live,
            ))
            inserted += 1

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            logger.info("Rollover for %s lost to a concurrent run; treating as done", day)
            return 0

        logger.info("Rollover for %s created %d rows (%d opened off live stock)", day, inserted, drifted)
        return inserted

    return run_with_retry(_op)


def reconcile_closing(day: date | None = None, actor: ActorContext | None = None) -> list[dict]:
    """
    Repair non-overridden rows whose closing drifted from live stock.

    Only the current business day can be compared with live stock; past
    days are rejected. Each repair is logged; closing is rewritten to the
    live count and is_overridden re-derived. Returns the repaired rows.
    """
    if actor is not None:
        require(actor, "RUN_ROLLOVER")
    today = business_today()
    day = day or today
    if day != today:
        raise ValidationError(
            "Only today's snapshot can be reconciled against live stock",
            details={"snapshot_date": to_iso_date(day), "today": to_iso_date(today)},
        )

    def _op():
        repaired = []
        rows = (
            db.session.query(DailySnapshot)
            .filter(DailySnapshot.snapshot_date == day, DailySnapshot.is_overridden.is_(False))
            .order_by(DailySnapshot.location_id.asc(), DailySnapshot.product_id.asc())
            .all()
        )
        for row in rows:
            live = stock_ledger.get_stock(row.product_id, row.location_id)
            if row.closing == live:
                continue
            logger.warning(
                "Snapshot drift product=%s location=%s date=%s closing=%s live=%s",
                row.product_id, row.location_id, day, row.closing, live,
            )
            repaired.append({
                "product_id": row.product_id,
                "location_id": row.location_id,
                "snapshot_date": to_iso_date(day),
                "previous_closing": row.closing,
                "closing": live,
            })
            row.closing = live
            row.is_overridden = live != row.opening + row.added - row.sold
        db.session.commit()
        return repaired

    return run_with_retry(_op)
