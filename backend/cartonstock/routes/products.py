# Overview: Flask API routes for the product catalog; parses input and returns JSON responses.

"""
Catalog routes.

SECURITY: All routes require an identity (@require_actor).
- Reads require VIEW_CATALOG (every role, customers included)
- Writes require MANAGE_CATALOG (admin, store_staff)
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import catalog_service

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_actor
def list_products_route():
    """
    List catalog products by name.

    Query params:
    - include_inactive: "1"/"true" to include deactivated products (managers only)
    """
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")
    try:
        products = catalog_service.list_products(g.actor, include_inactive=include_inactive)
        return jsonify({"items": [p.to_dict() for p in products], "count": len(products)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list products")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.post("")
@require_actor
def create_product_route():
    """Create a product: {name, price_per_carton_cents, is_active?}."""
    try:
        product = catalog_service.create_product(g.actor, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.get("/<int:product_id>")
@require_actor
def get_product_route(product_id: int):
    try:
        product = catalog_service.get_product(g.actor, product_id)
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.patch("/<int:product_id>")
@require_actor
def update_product_route(product_id: int):
    """Partial update of name, price_per_carton_cents and/or is_active."""
    try:
        product = catalog_service.update_product(g.actor, product_id, request.get_json(silent=True))
        return jsonify({"product": product.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update product")
        return jsonify({"error": "Internal server error"}), 500


@products_bp.delete("/<int:product_id>")
@require_actor
def delete_product_route(product_id: int):
    """Hard delete if never used, soft delete otherwise."""
    try:
        result = catalog_service.delete_product(g.actor, product_id)
        return jsonify(result), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete product")
        return jsonify({"error": "Internal server error"}), 500
