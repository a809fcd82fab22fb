# Overview: Flask API routes for discounts and applying them to orders.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import discount_service
from ..services.totals_service import order_summary
from ..validation import (
    get_json_body,
    parse_choice,
    parse_datetime,
    parse_decimal,
    parse_int_list,
    require_fields,
    resolve_business_id,
)


discounts_bp = Blueprint("discounts", __name__, url_prefix="/api/discounts")


@discounts_bp.get("/")
@require_actor
def list_discounts_route():
    try:
        discounts = discount_service.list_discounts(
            g.actor,
            resolve_business_id(request.args, g.actor),
            status=request.args.get("status"),
        )
        return jsonify({"discounts": [d.to_dict() for d in discounts]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list discounts")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.post("/")
@require_actor
def create_discount_route():
    """
    Create a discount.

    Request body:
    {
        "code": "SUMMER10",
        "discount_type": "Percent",  (Percent | Amount)
        "scope": "Order",  (Order | Line)
        "value": "10",
        "starts_at": "2024-06-01T00:00:00Z",
        "ends_at": null,
        "eligible_item_ids": [],  (Line scope)
        "eligible_option_ids": []  (Line scope)
    }
    """
    try:
        data = get_json_body(request)
        require_fields(data, "code", "discount_type", "scope", "value", "starts_at")
        discount = discount_service.create_discount(
            g.actor,
            business_id=resolve_business_id(data, g.actor),
            code=data["code"],
            discount_type=parse_choice(data, "discount_type", discount_service.VALID_DISCOUNT_TYPES),
            scope=parse_choice(data, "scope", discount_service.VALID_SCOPES),
            value=parse_decimal(data, "value"),
            starts_at=parse_datetime(data, "starts_at"),
            ends_at=parse_datetime(data, "ends_at", required=False),
            eligible_item_ids=parse_int_list(data, "eligible_item_ids"),
            eligible_option_ids=parse_int_list(data, "eligible_option_ids"),
        )
        return jsonify({"discount": discount.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.get("/code/<code>")
@require_actor
def get_discount_by_code_route(code: str):
    """Active, currently valid discount by code (422 outside its window)."""
    try:
        discount = discount_service.get_discount_by_code(
            g.actor, resolve_business_id(request.args, g.actor), code
        )
        return jsonify({"discount": discount.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.post("/<int:discount_id>/deactivate")
@require_actor
def deactivate_discount_route(discount_id: int):
    try:
        discount = discount_service.deactivate_discount(g.actor, discount_id)
        return jsonify({"discount": discount.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate discount")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER DISCOUNTS
# =============================================================================

@discounts_bp.post("/orders/<int:order_id>")
@require_actor
def apply_discount_route(order_id: int):
    try:
        data = get_json_body(request)
        require_fields(data, "code")
        order, applied = discount_service.apply_discount(g.actor, order_id, data["code"])
        return jsonify({"applied_amount": str(applied), "summary": order_summary(order)}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to apply discount")
        return jsonify({"error": "Internal server error"}), 500


@discounts_bp.delete("/orders/<int:order_id>")
@require_actor
def remove_discount_route(order_id: int):
    try:
        order = discount_service.remove_discount(g.actor, order_id)
        return jsonify(order_summary(order)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to remove discount")
        return jsonify({"error": "Internal server error"}), 500
