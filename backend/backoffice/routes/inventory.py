# Overview: Flask API routes for stock items and manual stock movements.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import inventory_service
from ..validation import (
    get_json_body,
    parse_choice,
    parse_decimal,
    parse_int,
    require_fields,
    resolve_business_id,
)


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("/items")
@require_actor
def list_stock_items_route():
    try:
        items = inventory_service.list_stock_items(g.actor, resolve_business_id(request.args, g.actor))
        return jsonify({"items": [i.to_dict() for i in items]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock items")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/items")
@require_actor
def create_stock_item_route():
    """
    Start tracking stock for a catalog item.

    Request body:
    {
        "catalog_item_id": 3,
        "unit": "pcs",
        "initial_qty": "40",  (optional, seeded as an Adjust movement)
        "average_unit_cost": "1.20"  (optional)
    }
    """
    try:
        data = get_json_body(request)
        require_fields(data, "catalog_item_id", "unit")
        item = inventory_service.create_stock_item(
            g.actor,
            parse_int(data, "catalog_item_id"),
            unit=data["unit"],
            initial_qty=parse_decimal(data, "initial_qty", required=False, default=0),
            average_unit_cost=parse_decimal(data, "average_unit_cost", required=False, default=0),
        )
        return jsonify({"item": item.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create stock item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:stock_item_id>")
@require_actor
def get_stock_item_route(stock_item_id: int):
    try:
        item = inventory_service.get_stock_item(g.actor, stock_item_id)
        return jsonify({"item": item.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get stock item")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.get("/items/<int:stock_item_id>/movements")
@require_actor
def list_movements_route(stock_item_id: int):
    """
    Query params:
    - limit: max rows (default 100), newest first
    """
    try:
        limit = parse_int(request.args, "limit", required=False, default=100)
        movements = inventory_service.list_movements(g.actor, stock_item_id, limit=limit)
        return jsonify({"movements": [m.to_dict() for m in movements]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list stock movements")
        return jsonify({"error": "Internal server error"}), 500


@inventory_bp.post("/items/<int:stock_item_id>/movements")
@require_actor
def post_movement_route(stock_item_id: int):
    """
    Post a manual movement.

    Request body:
    {
        "movement_type": "Receive",  (Receive | Waste | Adjust)
        "delta": "10",
        "unit_cost_snapshot": "1.25",
        "notes": "Weekly delivery"  (optional)
    }
    """
    try:
        data = get_json_body(request)
        movement = inventory_service.post_movement(
            g.actor,
            stock_item_id,
            parse_choice(data, "movement_type", inventory_service.MANUAL_MOVEMENT_TYPES),
            parse_decimal(data, "delta"),
            parse_decimal(data, "unit_cost_snapshot", required=False, default=0),
            notes=data.get("notes"),
        )
        item = inventory_service.get_stock_item(g.actor, stock_item_id)
        return jsonify({"movement": movement.to_dict(), "item": item.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to post stock movement")
        return jsonify({"error": "Internal server error"}), 500
