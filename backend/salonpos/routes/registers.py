# Overview: Flask API routes for cash register sessions; parses input and returns JSON responses.

"""
Cash Register API Routes

DESIGN:
- Session lifecycle: open -> close (immutable once closed)
- Manual cash movements while open
- Status is a read-only projection with live totals
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_business_context
from ..services import cash_register_service
from ..services.errors import PosError
from ..time_utils import parse_range
from ..validation import (
    ValidationError,
    parse_amount,
    parse_movement_type,
    parse_optional_int,
    parse_text,
)


registers_bp = Blueprint("registers", __name__, url_prefix="/api/cash-register")


@registers_bp.get("")
@require_business_context
def register_status_route():
    try:
        return jsonify(cash_register_service.get_register_status(g.business_id)), 200
    except Exception:
        current_app.logger.exception("Failed to load register status")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/open")
@require_business_context
def open_register_route():
    """Request body: {"initial_amount": 1000, "notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        session = cash_register_service.open_session(
            g.business_id,
            g.actor_id,
            parse_amount(data.get("initial_amount", 0), "initial_amount"),
            notes=parse_text(data.get("notes"), "notes", 500),
        )
        return jsonify({"session": session.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to open cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:session_id>/movements")
@require_business_context
def record_movement_route(session_id: int):
    """Request body: {"type": "in"|"out", "amount": 50, "reason": "Change fund", "notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        movement = cash_register_service.record_movement(
            g.business_id,
            session_id,
            parse_movement_type(data.get("type")),
            parse_amount(data.get("amount")),
            parse_text(data.get("reason"), "reason", 200, required=True),
            g.actor_id,
            notes=parse_text(data.get("notes"), "notes", 500),
        )
        return jsonify({"movement": movement.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to record cash movement")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.post("/<int:session_id>/close")
@require_business_context
def close_register_route(session_id: int):
    """Request body: {"final_amount": 1450, "notes": "..."}"""
    try:
        data = request.get_json(silent=True) or {}
        session, summary = cash_register_service.close_session(
            g.business_id,
            session_id,
            g.actor_id,
            parse_amount(data.get("final_amount"), "final_amount"),
            notes=parse_text(data.get("notes"), "notes", 500),
        )
        return jsonify({"session": session.to_dict(), "summary": summary}), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close cash register")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/history")
@require_business_context
def register_history_route():
    """Query: start_date, end_date, page, limit"""
    try:
        try:
            start, end = parse_range(request.args.get("start_date"), request.args.get("end_date"))
        except ValueError:
            raise ValidationError("start_date and end_date must be ISO-8601 dates")

        result = cash_register_service.get_session_history(
            g.business_id,
            start=start,
            end=end,
            page=parse_optional_int(request.args.get("page"), "page") or 1,
            limit=parse_optional_int(request.args.get("limit"), "limit") or 20,
            max_limit=current_app.config["POS_PAGE_SIZE_MAX"],
        )
        return jsonify({
            "sessions": [s.to_dict(include_movements=False) for s in result["sessions"]],
            "pagination": result["pagination"],
        }), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to load register history")
        return jsonify({"error": "Internal server error"}), 500


@registers_bp.get("/<int:session_id>")
@require_business_context
def get_session_route(session_id: int):
    try:
        session = cash_register_service.get_session(g.business_id, session_id)
        return jsonify({"session": session.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
