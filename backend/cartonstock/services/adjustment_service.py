# Overview: Audited manual stock corrections and stock receipts.

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import StockAdjustment
from ..permissions import ActorContext, require, require_location_access
from ..time_utils import business_today
from ..validation import require_text, validate_cartons
from . import snapshot_service, stock_ledger
from .catalog_service import load_product
from .concurrency import run_with_retry
from .location_service import load_location

MAX_HISTORY = 500


def adjust_stock(actor: ActorContext, product_id: int, location_id: int, new_cartons, reason: str) -> StockAdjustment:
    """
    Set live stock to an absolute count and record why.

    The previous count is read under a row lock by set_stock. Today's
    snapshot row is created from that count if missing, then its closing
    follows the new count.
    """
    require(actor, "ADJUST_STOCK")
    new_cartons = validate_cartons(new_cartons, "new_cartons")
    reason = require_text(reason, "reason", max_length=1000)
    load_product(product_id)
    load_location(location_id)

    def _op():
        previous = stock_ledger.set_stock(product_id, location_id, new_cartons)
        adjustment = StockAdjustment(
            product_id=product_id,
            location_id=location_id,
            previous_cartons=previous,
            new_cartons=new_cartons,
            reason=reason,
            adjusted_by=actor.user_id,
        )
        db.session.add(adjustment)
        snapshot_service.apply_adjustment(
            product_id, location_id, new_cartons, business_today(), live_before=previous,
        )
        db.session.commit()
        return adjustment

    return run_with_retry(_op)


def receive_stock(actor: ActorContext, product_id: int, location_id: int, cartons) -> dict:
    """Add delivered cartons to live stock and to today's 'added' column."""
    require(actor, "RECEIVE_STOCK")
    cartons = validate_cartons(cartons, allow_zero=False)
    load_product(product_id)
    load_location(location_id)

    def _op():
        new_count = stock_ledger.increment(product_id, location_id, cartons)
        snapshot_service.apply_receipt(
            product_id,
            location_id,
            cartons,
            business_today(),
            live_before=new_count - cartons,
        )
        db.session.commit()
        return {
            "product_id": product_id,
            "location_id": location_id,
            "received": cartons,
            "cartons": new_count,
        }

    return run_with_retry(_op)


def list_adjustments(actor: ActorContext, location_id: int, limit: int = 100) -> list[StockAdjustment]:
    """Newest first."""
    require(actor, "VIEW_STOCK")
    require_location_access(actor, location_id)
    if limit < 1 or limit > MAX_HISTORY:
        raise ValidationError(f"limit must be between 1 and {MAX_HISTORY}", details={"limit": limit})
    return (
        db.session.query(StockAdjustment)
        .filter(StockAdjustment.location_id == location_id)
        .order_by(StockAdjustment.created_at.desc(), StockAdjustment.id.desc())
        .limit(limit)
        .all()
    )
