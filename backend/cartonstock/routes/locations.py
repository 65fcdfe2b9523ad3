# Overview: Flask API routes for stores and shops.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import location_service
from ..validation import require_object

locations_bp = Blueprint("locations", __name__, url_prefix="/api/locations")


@locations_bp.get("")
@require_actor
def list_locations_route():
    """Query params: type (store|shop, optional)."""
    try:
        locations = location_service.list_locations(g.actor, type=request.args.get("type"))
        return jsonify({"items": [loc.to_dict() for loc in locations], "count": len(locations)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list locations")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.post("")
@require_actor
def create_location_route():
    """Create a location: {name, type: store|shop}. Admin only."""
    try:
        data = require_object(request.get_json(silent=True))
        location = location_service.create_location(g.actor, data.get("name"), data.get("type"))
        return jsonify({"location": location.to_dict()}), 201
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create location")
        return jsonify({"error": "Internal server error"}), 500


@locations_bp.get("/<int:location_id>")
@require_actor
def get_location_route(location_id: int):
    try:
        location = location_service.get_location(g.actor, location_id)
        return jsonify({"location": location.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get location")
        return jsonify({"error": "Internal server error"}), 500
