# Overview: Flask API routes for wholesale orders and their lifecycle.

"""
Order routes.

Customers create and view their own orders; admin and store staff approve,
reject and fulfill. Illegal lifecycle moves return 409.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import order_service
from ..validation import require_object

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_actor
def create_order_route():
    """Place an order: {items: [{product_id, cartons}], customer_id? (admin only)}."""
    try:
        data = require_object(request.get_json(silent=True))
        order = order_service.create_order(g.actor, data.get("items"), customer_id=data.get("customer_id"))
        return jsonify({"order": order.to_dict(include_lines=True)}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("")
@require_actor
def list_orders_route():
    """Query params: status (pending|approved|rejected|fulfilled, optional)."""
    try:
        orders = order_service.list_orders(g.actor, status=request.args.get("status") or None)
        return jsonify({"items": [o.to_dict() for o in orders], "count": len(orders)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.actor, order_id)
        return jsonify({"order": order.to_dict(include_lines=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/approve")
@require_actor
def approve_order_route(order_id: int):
    try:
        order = order_service.approve_order(g.actor, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/reject")
@require_actor
def reject_order_route(order_id: int):
    try:
        order = order_service.reject_order(g.actor, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reject order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("/<int:order_id>/fulfill")
@require_actor
def fulfill_order_route(order_id: int):
    """Decrement store stock, record the sale and mark fulfilled, all or nothing."""
    try:
        order = order_service.fulfill_order(g.actor, order_id)
        return jsonify({"order": order.to_dict(include_lines=True)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to fulfill order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/receipt")
@require_actor
def order_receipt_route(order_id: int):
    try:
        return jsonify({"receipt": order_service.order_receipt(g.actor, order_id)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build order receipt")
        return jsonify({"error": "Internal server error"}), 500
