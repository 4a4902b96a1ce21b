# Overview: Flask API routes for POS sales, refunds and reports; parses input and returns JSON responses.

"""
POS API Routes

DESIGN:
- Thin layer: parse + validate payloads, call services, render JSON
- Tenant scope comes from require_business_context (g.business_id)
- Domain errors render with their own status code; anything else is a 500
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_business_context
from ..services import refund_service, reporting_service, sales_service
from ..services.errors import PosError
from ..time_utils import parse_range
from ..validation import (
    ValidationError,
    parse_amount,
    parse_optional_int,
    parse_refund_items,
    parse_sale_request,
    parse_text,
)


pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _page_args() -> tuple[int, int, int]:
    page = parse_optional_int(request.args.get("page"), "page") or 1
    limit = parse_optional_int(request.args.get("limit"), "limit") or 20
    return page, limit, current_app.config["POS_PAGE_SIZE_MAX"]


def _range_args():
    try:
        return parse_range(request.args.get("start_date"), request.args.get("end_date"))
    except ValueError:
        raise ValidationError("start_date and end_date must be ISO-8601 dates")


@pos_bp.post("/sales")
@require_business_context
def create_sale_route():
    """
    Checkout.

    Request body:
    {
        "items": [
            {"type": "service", "item_id": 3, "quantity": 1, "discount": 10, "staff_id": 7},
            {"type": "product", "item_id": 12, "quantity": 2},
            {"type": "service", "name": "Beard trim", "price": 8.0}
        ],
        "payment_method": "mixed",
        "payments": [{"method": "cash", "amount": 20}, {"method": "card", "amount": 30}],
        "global_discount": 0,
        "tip": 5,
        "appointment_id": null,
        "client": {"id": 4, "name": "Ana", "phone": "...", "email": "..."},
        "notes": "...",
        "idempotency_key": "checkout-abc"
    }
    """
    try:
        req = parse_sale_request(request.get_json(silent=True))
        sale = sales_service.create_sale(
            g.business_id,
            g.actor_id,
            req.items,
            req.payment_method,
            req.payments,
            global_discount=req.global_discount,
            tip=req.tip,
            appointment_id=req.appointment_id,
            client=req.client,
            notes=req.notes,
            gateway_payment_id=req.gateway_payment_id,
            idempotency_key=req.idempotency_key,
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create sale")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.post("/quick-sale")
@require_business_context
def quick_sale_route():
    """Request body: {"amount": 25.0, "description": "Haircut", "payment_method": "cash"}"""
    try:
        data = request.get_json(silent=True) or {}
        sale = sales_service.quick_sale(
            g.business_id,
            g.actor_id,
            parse_amount(data.get("amount")),
            description=parse_text(data.get("description"), "description", 255),
            payment_method=data.get("payment_method", "cash"),
            idempotency_key=parse_text(data.get("idempotency_key"), "idempotency_key", 64),
        )
        return jsonify({"sale": sale.to_dict()}), 201

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create quick sale")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/sales")
@require_business_context
def list_sales_route():
    """Query: start_date, end_date, payment_method, source, page, limit"""
    try:
        start, end = _range_args()
        page, limit, max_limit = _page_args()
        result = sales_service.list_sales(
            g.business_id,
            start=start,
            end=end,
            payment_method=request.args.get("payment_method") or None,
            source=request.args.get("source") or None,
            page=page,
            limit=limit,
            max_limit=max_limit,
        )
        return jsonify({
            "sales": [sale.to_dict() for sale in result["sales"]],
            "summary": result["summary"],
            "pagination": result["pagination"],
        }), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list sales")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/sales/<int:sale_id>")
@require_business_context
def get_sale_route(sale_id: int):
    try:
        sale = sales_service.get_sale(g.business_id, sale_id)
        return jsonify({"sale": sale.to_dict()}), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code


@pos_bp.post("/sales/<int:sale_id>/refund")
@require_business_context
def refund_sale_route(sale_id: int):
    """
    Refund a sale, fully or per line.

    Request body:
    {
        "reason": "Client unhappy",
        "refund_method": "cash",
        "items": [{"item_index": 0, "quantity": 1}],   (omit for a full refund)
        "idempotency_key": "refund-xyz"
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        result = refund_service.refund_sale(
            g.business_id,
            g.actor_id,
            sale_id,
            parse_text(data.get("reason"), "reason", 255, required=True),
            data.get("refund_method"),
            parse_refund_items(data.get("items")),
            idempotency_key=parse_text(data.get("idempotency_key"), "idempotency_key", 64),
        )
        return jsonify(result.to_dict()), 200

    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund sale %s", sale_id)
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/summary/daily")
@require_business_context
def daily_summary_route():
    """Query: date (YYYY-MM-DD, default today UTC)"""
    try:
        summary = reporting_service.daily_summary(g.business_id, request.args.get("date") or None)
        return jsonify(summary), 200
    except ValueError:
        return jsonify({"error": "date must be YYYY-MM-DD"}), 400
    except Exception:
        current_app.logger.exception("Failed to build daily summary")
        return jsonify({"error": "Internal server error"}), 500


@pos_bp.get("/reports/sales")
@require_business_context
def sales_report_route():
    """Query: start_date, end_date"""
    try:
        start, end = _range_args()
        return jsonify(reporting_service.sales_report(g.business_id, start, end)), 200
    except PosError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to build sales report")
        return jsonify({"error": "Internal server error"}), 500
