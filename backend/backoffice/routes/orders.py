# Overview: Flask API routes for orders and order lines; parses input and returns JSON responses.

# backend/backoffice/routes/orders.py
"""
Order API Routes

DESIGN:
- Orders are created Open and edited line by line
- Every response that changes money returns the recomputed summary
- Lifecycle transitions (close, cancel, refund) live in payments routes

All monetary values are returned as strings with two decimals.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import order_service
from ..services.totals_service import order_summary
from ..validation import (
    get_json_body,
    parse_datetime,
    parse_decimal,
    parse_int,
    resolve_business_id,
)


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# ORDERS
# =============================================================================

@orders_bp.post("/")
@require_actor
def create_order_route():
    """
    Create an Open order.

    Request body:
    {
        "business_id": 1,  (optional, defaults to the actor's business)
        "table_or_area": "T4",  (optional)
        "reservation_id": 12  (optional)
    }
    """
    try:
        data = get_json_body(request)
        order = order_service.create_order(
            g.actor,
            resolve_business_id(data, g.actor),
            table_or_area=data.get("table_or_area"),
            reservation_id=parse_int(data, "reservation_id", required=False),
        )
        return jsonify({"order": order.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/")
@require_actor
def list_orders_route():
    """
    Query params:
    - business_id: optional (SuperAdmin)
    - status: Open | Closed | Cancelled | Refunded
    """
    try:
        orders = order_service.list_orders(
            g.actor,
            resolve_business_id(request.args, g.actor),
            status=request.args.get("status"),
        )
        return jsonify({"orders": [o.to_dict() for o in orders]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>")
@require_actor
def get_order_route(order_id: int):
    """Order with lines, discount, tip, due, paid and remaining amounts."""
    try:
        order = order_service.get_order(g.actor, order_id)
        return jsonify(order_summary(order)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.put("/<int:order_id>/tip")
@require_actor
def set_tip_route(order_id: int):
    try:
        data = get_json_body(request)
        order = order_service.set_tip(g.actor, order_id, parse_decimal(data, "tip_amount"))
        return jsonify(order_summary(order)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set tip")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER LINES
# =============================================================================

@orders_bp.post("/<int:order_id>/lines")
@require_actor
def add_line_route(order_id: int):
    """
    Add a line.

    Request body:
    {
        "option_id": 5,  (or "catalog_item_id" for items without options)
        "qty": "2",
        "at": "2024-06-01T12:00:00Z"  (optional, tax date; defaults to now)
    }
    """
    try:
        data = get_json_body(request)
        line = order_service.add_line(
            g.actor,
            order_id,
            qty=parse_decimal(data, "qty"),
            option_id=parse_int(data, "option_id", required=False),
            catalog_item_id=parse_int(data, "catalog_item_id", required=False),
            at=parse_datetime(data, "at", required=False),
        )
        order = order_service.get_order(g.actor, order_id)
        return jsonify({"line": line.to_dict(), "summary": order_summary(order)}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add order line")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>/lines/<int:line_id>")
@require_actor
def update_line_route(order_id: int, line_id: int):
    try:
        data = get_json_body(request)
        line = order_service.update_line_qty(g.actor, order_id, line_id, parse_decimal(data, "qty"))
        order = order_service.get_order(g.actor, order_id)
        return jsonify({"line": line.to_dict(), "summary": order_summary(order)}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update order line")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>/lines/<int:line_id>")
@require_actor
def delete_line_route(order_id: int, line_id: int):
    try:
        order_service.delete_line(g.actor, order_id, line_id)
        order = order_service.get_order(g.actor, order_id)
        return jsonify(order_summary(order)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to delete order line")
        return jsonify({"error": "Internal server error"}), 500
