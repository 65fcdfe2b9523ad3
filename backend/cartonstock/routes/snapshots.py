# Overview: Flask API routes for daily reconciliation sheets, overrides, rollover and repair.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import reporting_service, snapshot_service
from ..validation import parse_date_arg, require_int, require_object

snapshots_bp = Blueprint("snapshots", __name__, url_prefix="/api/snapshots")


@snapshots_bp.get("/sheet")
@require_actor
def sheet_route():
    """
    Reconciliation sheet for one location and day.

    Query params:
    - location_id: int (required)
    - date: YYYY-MM-DD (optional, default today)
    """
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        day = parse_date_arg(request.args.get("date"), "date")
        return jsonify(snapshot_service.get_sheet(g.actor, location_id, day)), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build snapshot sheet")
        return jsonify({"error": "Internal server error"}), 500


@snapshots_bp.get("")
@require_actor
def list_snapshots_route():
    """Persisted rows. Query params: location_id (required), start, end (YYYY-MM-DD)."""
    try:
        location_id = require_int(request.args.get("location_id"), "location_id")
        rows = reporting_service.list_snapshots(
            g.actor,
            location_id,
            parse_date_arg(request.args.get("start"), "start"),
            parse_date_arg(request.args.get("end"), "end"),
        )
        return jsonify({"items": [r.to_dict() for r in rows], "count": len(rows)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list snapshots")
        return jsonify({"error": "Internal server error"}), 500


@snapshots_bp.put("/sheet")
@require_actor
def bulk_override_route():
    """
    Save edited rows: {location_id, date?, rows: [{product_id, opening, added, sold, closing?}]}.

    Editing today's sheet also sets live stock to each row's closing.
    """
    try:
        data = require_object(request.get_json(silent=True))
        rows = snapshot_service.bulk_override(
            g.actor,
            require_int(data.get("location_id"), "location_id"),
            parse_date_arg(data.get("date"), "date"),
            data.get("rows"),
        )
        return jsonify({"items": rows, "count": len(rows)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to save snapshot rows")
        return jsonify({"error": "Internal server error"}), 500


@snapshots_bp.post("/rollover")
@require_actor
def rollover_route():
    """Create the day's opening rows. Body (optional): {date}. Safe to repeat."""
    try:
        data = require_object(request.get_json(silent=True))
        day = parse_date_arg(data.get("date"), "date")
        inserted = snapshot_service.run_daily_rollover(day, actor=g.actor)
        return jsonify({"inserted": inserted}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to run snapshot rollover")
        return jsonify({"error": "Internal server error"}), 500


@snapshots_bp.post("/reconcile")
@require_actor
def reconcile_route():
    """Repair drifted closings against live stock. Body (optional): {date}."""
    try:
        data = require_object(request.get_json(silent=True))
        day = parse_date_arg(data.get("date"), "date")
        repaired = snapshot_service.reconcile_closing(day, actor=g.actor)
        return jsonify({"items": repaired, "count": len(repaired)}), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to reconcile snapshots")
        return jsonify({"error": "Internal server error"}), 500
