# Overview: Read-only reports over sales, snapshots and live stock.

from __future__ import annotations

from datetime import date

from flask import current_app
from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import DailySnapshot, Location, Product, Sale, SaleLine, StockEntry
from ..permissions import ActorContext, require, require_location_access, LOCATION_SCOPED_ROLES
from ..time_utils import business_today, to_iso_date
from . import stock_ledger
from .catalog_service import active_products
from .location_service import load_location


def _date_range(start: date | None, end: date | None) -> tuple[date, date]:
    today = business_today()
    start = start or end or today
    end = end or today
    if start > end:
        raise ValidationError(
            "start must be on or before end",
            details={"start": to_iso_date(start), "end": to_iso_date(end)},
        )
    return start, end


def sales_report(actor: ActorContext, location_id: int, start: date | None = None,
                 end: date | None = None) -> dict:
    """
    Per-day sale count, cartons sold and revenue for a location.

    Days without sales are omitted. Revenue is the sum of sale totals, which
    always equals the sum of line totals.
    """
    require(actor, "VIEW_REPORTS")
    location = load_location(location_id)
    start, end = _date_range(start, end)

    header_rows = (
        db.session.query(
            Sale.business_date,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_amount_cents), 0),
        )
        .filter(Sale.location_id == location_id, Sale.business_date.between(start, end))
        .group_by(Sale.business_date)
        .all()
    )
    carton_rows = (
        db.session.query(Sale.business_date, func.coalesce(func.sum(SaleLine.cartons), 0))
        .join(SaleLine, SaleLine.sale_id == Sale.id)
        .filter(Sale.location_id == location_id, Sale.business_date.between(start, end))
        .group_by(Sale.business_date)
        .all()
    )
    cartons_by_day = {day: int(total) for day, total in carton_rows}

    days = []
    totals = {"sale_count": 0, "cartons_sold": 0, "revenue_cents": 0}
    for day, count, revenue in sorted(header_rows, key=lambda r: r[0]):
        row = {
            "date": to_iso_date(day),
            "sale_count": int(count),
            "cartons_sold": cartons_by_day.get(day, 0),
            "revenue_cents": int(revenue),
        }
        days.append(row)
        for key in totals:
            totals[key] += row[key]

    return {
        "location": location.to_dict(),
        "start": to_iso_date(start),
        "end": to_iso_date(end),
        "days": days,
        "totals": totals,
    }


def list_snapshots(actor: ActorContext, location_id: int, start: date | None = None,
                   end: date | None = None) -> list[DailySnapshot]:
    require(actor, "VIEW_SNAPSHOTS")
    require_location_access(actor, location_id)
    load_location(location_id)
    start, end = _date_range(start, end)
    return (
        db.session.query(DailySnapshot)
        .filter(
            DailySnapshot.location_id == location_id,
            DailySnapshot.snapshot_date.between(start, end),
        )
        .order_by(DailySnapshot.snapshot_date.asc(), DailySnapshot.product_id.asc())
        .all()
    )


def location_stock(actor: ActorContext, location_id: int) -> list[dict]:
    """Live cartons for every active product at one location."""
    require(actor, "VIEW_STOCK")
    require_location_access(actor, location_id)
    load_location(location_id)
    live = stock_ledger.stock_by_product(location_id)
    return [
        {
            "product_id": p.id,
            "product_name": p.name,
            "price_per_carton_cents": p.price_per_carton_cents,
            "cartons": live.get(p.id, 0),
        }
        for p in active_products()
    ]


def stock_overview(actor: ActorContext, location_id: int | None = None) -> dict:
    """
    Product x location matrix of live cartons with row and column totals.

    Location-scoped roles only ever see their own location.
    """
    require(actor, "VIEW_STOCK")
    if actor.role in LOCATION_SCOPED_ROLES:
        location_id = location_id or actor.location_id
        require_location_access(actor, location_id)
    if location_id is not None:
        locations = [load_location(location_id)]
    else:
        locations = db.session.query(Location).order_by(Location.type.asc(), Location.name.asc()).all()
    location_ids = [loc.id for loc in locations]

    cells: dict[tuple[int, int], int] = {}
    if location_ids:
        for product_id, loc_id, cartons in (
            db.session.query(StockEntry.product_id, StockEntry.location_id, StockEntry.cartons)
            .filter(StockEntry.location_id.in_(location_ids))
            .all()
        ):
            cells[(product_id, loc_id)] = cartons

    location_totals = {str(loc_id): 0 for loc_id in location_ids}
    products = []
    grand_total = 0
    for product in active_products():
        by_location = {}
        for loc_id in location_ids:
            cartons = cells.get((product.id, loc_id), 0)
            by_location[str(loc_id)] = cartons
            location_totals[str(loc_id)] += cartons
        total = sum(by_location.values())
        grand_total += total
        products.append({
            "product_id": product.id,
            "product_name": product.name,
            "by_location": by_location,
            "total": total,
        })

    return {
        "locations": [loc.to_dict() for loc in locations],
        "products": products,
        "location_totals": location_totals,
        "grand_total": grand_total,
    }


def low_stock(actor: ActorContext, location_id: int, threshold: int | None = None) -> list[dict]:
    """Active products under the threshold at a location; zero counts flagged out_of_stock."""
    require(actor, "VIEW_STOCK")
    require_location_access(actor, location_id)
    load_location(location_id)
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))
    if threshold < 0:
        raise ValidationError("threshold must be >= 0", details={"threshold": threshold})

    rows = (
        db.session.query(Product, func.coalesce(StockEntry.cartons, 0))
        .outerjoin(
            StockEntry,
            (StockEntry.product_id == Product.id) & (StockEntry.location_id == location_id),
        )
        .filter(Product.is_active.is_(True), Product.deleted_at.is_(None))
        .order_by(func.coalesce(StockEntry.cartons, 0).asc(), Product.name.asc())
        .all()
    )
    return [
        {
            "product_id": product.id,
            "product_name": product.name,
            "cartons": int(cartons),
            "out_of_stock": int(cartons) == 0,
        }
        for product, cartons in rows
        if int(cartons) < threshold
    ]
