# Overview: Flask API routes for date-range sales reports.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import LedgerError
from ..services import reporting_service
from ..validation import parse_date_arg, require_int

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")


@reports_bp.get("/sales")
@require_actor
def sales_report_route():
    """
    Per-day sale count, cartons and revenue.

    Query params:
    - location_id: int (required)
    - start, end: YYYY-MM-DD (inclusive, default today)
    """
    try:
        report = reporting_service.sales_report(
            g.actor,
            require_int(request.args.get("location_id"), "location_id"),
            parse_date_arg(request.args.get("start"), "start"),
            parse_date_arg(request.args.get("end"), "end"),
        )
        return jsonify(report), 200
    except LedgerError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500
