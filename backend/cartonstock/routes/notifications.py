# Overview: Flask API routes for the caller's notification feed.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_actor
def list_notifications_route():
    """Recent notifications for the caller's role. Query params: unread=1."""
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    try:
        items = notification_service.list_notifications(g.actor, unread_only=unread_only)
        return jsonify({"items": items, "count": len(items)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list notifications")
        return jsonify({"error": "Internal server error"}), 500


@notifications_bp.post("/<int:notification_id>/read")
@require_actor
def mark_read_route(notification_id: int):
    try:
        notification = notification_service.mark_read(g.actor, notification_id)
        return jsonify({"notification": notification.to_dict()}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to mark notification read")
        return jsonify({"error": "Internal server error"}), 500
