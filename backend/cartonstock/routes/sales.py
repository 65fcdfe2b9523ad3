# Overview: Flask API routes for walk-in sales; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import sales_service
from ..validation import parse_date_arg, require_int, require_object

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


@sales_bp.post("")
@require_actor
def record_sale_route():
    """
    Record a sale: {location_id, customer_name, items: [{product_id, cartons}]}.

    Prices come from the catalog; any price or total in the body is ignored.
    Requires: RECORD_SALE (shop staff only at their own location)
    """
    try:
        data = require_object(request.get_json(silent=True))
        sale = sales_service.record_sale(
            g.actor,
            require_int(data.get("location_id"), "location_id"),
            data.get("customer_name"),
            data.get("items"),
        )
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("")
@require_actor
def list_sales_route():
    """Query params: location_id (required), start, end (YYYY-MM-DD, inclusive)."""
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        sales = sales_service.list_sales(
            g.actor,
            location_id,
            parse_date_arg(request.args.get("start"), "start"),
            parse_date_arg(request.args.get("end"), "end"),
        )
        return jsonify({"items": [s.to_dict() for s in sales], "count": len(sales)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>")
@require_actor
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.actor, sale_id)
        return jsonify({"sale": sale.to_dict(include_lines=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/<int:sale_id>/receipt")
@require_actor
def sale_receipt_route(sale_id: int):
    try:
        return jsonify({"receipt": sales_service.sale_receipt(g.actor, sale_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sale receipt")
        return jsonify({"error": "Internal server error"}), 500
