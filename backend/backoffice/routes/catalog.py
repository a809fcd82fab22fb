# Overview: Flask API routes for the catalog (items and options).

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import business_service, catalog_service
from ..validation import (
    get_json_body,
    parse_choice,
    parse_decimal,
    require_fields,
    resolve_business_id,
)


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/business")
@require_actor
def get_business_route():
    try:
        business_id = resolve_business_id(request.args, g.actor)
        business = business_service.get_business(g.actor, business_id)
        return jsonify({"business": business.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get business")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/items")
@require_actor
def list_items_route():
    try:
        business_id = resolve_business_id(request.args, g.actor)
        items = catalog_service.list_catalog_items(g.actor, business_id)
        return jsonify({"items": [i.to_dict(include_options=True) for i in items]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list catalog items")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/items")
@require_actor
def create_item_route():
    """
    Create a catalog item.

    Request body:
    {
        "name": "Espresso",
        "code": "ESP",
        "base_price": "3.50",
        "tax_class": "Food",
        "item_type": "Product"  (optional: Product | Service)
    }
    """
    try:
        data = get_json_body(request)
        require_fields(data, "name", "code", "base_price", "tax_class")

        item = catalog_service.create_catalog_item(
            g.actor,
            business_id=resolve_business_id(data, g.actor),
            name=data["name"],
            code=data["code"],
            base_price=parse_decimal(data, "base_price"),
            tax_class=data["tax_class"],
            item_type=parse_choice(
                data, "item_type", catalog_service.VALID_ITEM_TYPES,
                required=False, default=catalog_service.ITEM_TYPE_PRODUCT,
            ),
        )
        return jsonify({"item": item.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create catalog item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.get("/items/<int:item_id>")
@require_actor
def get_item_route(item_id: int):
    try:
        item = catalog_service.get_catalog_item(g.actor, item_id)
        return jsonify({"item": item.to_dict(include_options=True)}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get catalog item")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.patch("/items/<int:item_id>/price")
@require_actor
def update_price_route(item_id: int):
    try:
        data = get_json_body(request)
        item = catalog_service.update_base_price(g.actor, item_id, parse_decimal(data, "base_price"))
        return jsonify({"item": item.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update base price")
        return jsonify({"error": "Internal server error"}), 500


@catalog_bp.post("/items/<int:item_id>/options")
@require_actor
def add_option_route(item_id: int):
    try:
        data = get_json_body(request)
        require_fields(data, "name")
        option = catalog_service.add_option(
            g.actor,
            item_id,
            data["name"],
            parse_decimal(data, "price_modifier", required=False, default=0),
        )
        return jsonify({"option": option.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add option")
        return jsonify({"error": "Internal server error"}), 500
