# Overview: Flask API routes for live stock, manual adjustments and receipts.

"""
Stock routes.

Reads: VIEW_STOCK (shop staff limited to their own location).
Writes: ADJUST_STOCK / RECEIVE_STOCK (admin, store_staff).
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import adjustment_service, reporting_service
from ..validation import require_int, require_object

stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.get("")
@require_actor
def location_stock_route():
    """Query params: location_id (required)."""
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        items = reporting_service.location_stock(g.actor, location_id)
        return jsonify({"location_id": location_id, "items": items, "count": len(items)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to read stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/overview")
@require_actor
def stock_overview_route():
    """Product x location matrix. Query params: location_id (optional)."""
    try:
        raw = request.args.get("location_id")
        location_id = require_int(raw, "location_id") if raw else None
        return jsonify(reporting_service.stock_overview(g.actor, location_id)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build stock overview")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/low")
@require_actor
def low_stock_route():
    """Query params: location_id (required), threshold (optional, default LOW_STOCK_THRESHOLD)."""
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        raw_threshold = request.args.get("threshold")
        threshold = require_int(raw_threshold, "threshold") if raw_threshold else None
        items = reporting_service.low_stock(g.actor, location_id, threshold)
        return jsonify({"location_id": location_id, "items": items, "count": len(items)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list low stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/adjust")
@require_actor
def adjust_stock_route():
    """
    Manual correction: {product_id, location_id, new_cartons, reason}.

    Writes one audit row; today's snapshot closing follows the new count.
    """
    try:
        data = require_object(request.get_json(silent=True))
        adjustment = adjustment_service.adjust_stock(
            g.actor,
            require_int(data.get("product_id"), "product_id"),
            require_int(data.get("location_id"), "location_id"),
            data.get("new_cartons"),
            data.get("reason"),
        )
        return jsonify({"adjustment": adjustment.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.post("/receive")
@require_actor
def receive_stock_route():
    """Add delivered cartons: {product_id, location_id, cartons}."""
    try:
        data = require_object(request.get_json(silent=True))
        result = adjustment_service.receive_stock(
            g.actor,
            require_int(data.get("product_id"), "product_id"),
            require_int(data.get("location_id"), "location_id"),
            data.get("cartons"),
        )
        return jsonify(result), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to receive stock")
        return jsonify({"error": "Internal server error"}), 500


@stock_bp.get("/adjustments")
@require_actor
def list_adjustments_route():
    """Query params: location_id (required), limit (default 100)."""
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        raw_limit = request.args.get("limit")
        limit = require_int(raw_limit, "limit") if raw_limit else 100
        adjustments = adjustment_service.list_adjustments(g.actor, location_id, limit=limit)
        return jsonify({"items": [a.to_dict() for a in adjustments], "count": len(adjustments)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list adjustments")
        return jsonify({"error": "Internal server error"}), 500
