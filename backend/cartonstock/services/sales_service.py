# Overview: Walk-in sales: validation, stock decrement, snapshot update and receipt in one transaction.

from __future__ import annotations

from datetime import date

from ..errors import InsufficientStock, NotFound, ValidationError
from ..extensions import db
from ..models import Sale, SaleLine
from ..permissions import ActorContext, require, require_location_access
from ..time_utils import business_today, to_utc_z
from ..validation import aggregate_line_items, parse_line_items, require_text
from . import snapshot_service, stock_ledger
from .catalog_service import load_product
from .concurrency import run_with_retry
from .document_service import next_sale_receipt_number
from .location_service import load_location


def price_lines(items, location_id: int | None = None) -> list[dict]:
    """
    Resolve [{product_id, cartons}] against the catalog.

    Duplicated products are merged. Prices come from the catalog, never the
    client. With a location, each line is checked against live stock and
    the first shortfall raises InsufficientStock before anything is written.
    """
    lines = []
    for product_id, cartons in aggregate_line_items(parse_line_items(items)).items():
        product = load_product(product_id, active_only=True)
        if location_id is not None:
            available = stock_ledger.get_stock(product_id, location_id)
            if available < cartons:
                raise InsufficientStock(product_id, available, requested=cartons, product_name=product.name)
        price = product.price_per_carton_cents
        lines.append({
            "product_id": product_id,
            "product_name": product.name,
            "cartons": cartons,
            "price_per_carton_cents": price,
            "line_total_cents": cartons * price,
        })
    return lines


def record_sale(actor: ActorContext, location_id: int, customer_name: str, items) -> Sale:
    """
    Record a walk-in sale at a location.

    Either everything happens (receipt number, sale and lines, stock
    decrement, snapshot update) or nothing does.
    """
    require(actor, "RECORD_SALE")
    require_location_access(actor, location_id)
    customer_name = require_text(customer_name, "customer_name")
    load_location(location_id)

    lines = price_lines(items, location_id=location_id)
    total = sum(line["line_total_cents"] for line in lines)

    def _op():
        day = business_today()
        sale = Sale(
            location_id=location_id,
            receipt_number=next_sale_receipt_number(location_id),
            customer_name=customer_name,
            total_amount_cents=total,
            business_date=day,
            created_by=actor.user_id,
        )
        for line in lines:
            sale.lines.append(SaleLine(
                product_id=line["product_id"],
                cartons=line["cartons"],
                price_per_carton_cents=line["price_per_carton_cents"],
                line_total_cents=line["line_total_cents"],
            ))
        db.session.add(sale)

        for line in lines:
            remaining = stock_ledger.decrement_available(line["product_id"], location_id, line["cartons"])
            snapshot_service.apply_sale(
                line["product_id"],
                location_id,
                line["cartons"],
                day,
                live_before=remaining + line["cartons"],
            )

        db.session.commit()
        return sale

    return run_with_retry(_op)


def _load_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFound(f"Sale {sale_id} not found", details={"sale_id": sale_id})
    return sale


def get_sale(actor: ActorContext, sale_id: int) -> Sale:
    require(actor, "VIEW_SALES")
    sale = _load_sale(sale_id)
    require_location_access(actor, sale.location_id)
    return sale


def list_sales(actor: ActorContext, location_id: int, start: date | None = None,
               end: date | None = None) -> list[Sale]:
    """Sales at a location within an inclusive business-date range, newest first."""
    require(actor, "VIEW_SALES")
    require_location_access(actor, location_id)
    load_location(location_id)
    if start and end and start > end:
        raise ValidationError("start must be on or before end")

    q = db.session.query(Sale).filter(Sale.location_id == location_id)
    if start:
        q = q.filter(Sale.business_date >= start)
    if end:
        q = q.filter(Sale.business_date <= end)
    return q.order_by(Sale.created_at.desc(), Sale.id.desc()).all()


def receipt_projection(*, type: str, receipt_number: str, created_at, customer_name: str,
                       lines, total_cents: int) -> dict:
    """Printable receipt shape shared by sales and orders."""
    return {
        "type": type,
        "receipt_number": receipt_number,
        "date": to_utc_z(created_at),
        "customer_name": customer_name,
        "items": [
            {
                "name": line.product.name if line.product else None,
                "cartons": line.cartons,
                "price_per_carton_cents": line.price_per_carton_cents,
            }
            for line in lines
        ],
        "total_cents": total_cents,
    }


def sale_receipt(actor: ActorContext, sale_id: int) -> dict:
    sale = get_sale(actor, sale_id)
    return receipt_projection(
        type="order" if sale.order_id else "sale",
        receipt_number=sale.receipt_number,
        created_at=sale.created_at,
        customer_name=sale.customer_name,
        lines=sale.lines,
        total_cents=sale.total_amount_cents,
    )
