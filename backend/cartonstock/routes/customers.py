# Overview: Flask API routes for wholesale customer accounts.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError, NotFound
from ..services import customer_service
from ..validation import require_object

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.get("")
@require_actor
def list_customers_route():
    """Query params: approved (true|false, optional)."""
    raw = request.args.get("approved")
    approved = None if raw is None else raw.lower() in ("1", "true", "yes")
    try:
        customers = customer_service.list_customers(g.actor, approved=approved)
        return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list customers")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("")
@require_actor
def create_customer_route():
    """
    Create a customer: {name, phone?, user_id?, approved?}.

    Customers calling this register themselves; user_id and approved are
    ignored for them.
    """
    try:
        data = require_object(request.get_json(silent=True))
        customer = customer_service.create_customer(
            g.actor,
            data.get("name"),
            phone=data.get("phone"),
            user_id=data.get("user_id"),
            approved=bool(data.get("approved", False)),
        )
        return jsonify({"customer": customer.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/me")
@require_actor
def my_customer_route():
    try:
        customer = customer_service.get_customer_for_user(g.actor.user_id)
        if customer is None:
            raise NotFound("No customer account for this user", details={"user_id": g.actor.user_id})
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer account")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.get("/<int:customer_id>")
@require_actor
def get_customer_route(customer_id: int):
    try:
        customer = customer_service.get_customer(g.actor, customer_id)
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.post("/<int:customer_id>/approve")
@require_actor
def approve_customer_route(customer_id: int):
    """Body (optional): {approved: false} to revoke approval."""
    try:
        data = require_object(request.get_json(silent=True))
        customer = customer_service.approve_customer(
            g.actor, customer_id, approved=bool(data.get("approved", True))
        )
        return jsonify({"customer": customer.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to approve customer")
        return jsonify({"error": "Internal server error"}), 500
