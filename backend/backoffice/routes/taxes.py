# Overview: Flask API routes for tax rule administration.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import tax_service
from ..validation import get_json_body, parse_datetime, parse_decimal, require_fields


taxes_bp = Blueprint("taxes", __name__, url_prefix="/api/taxes")


@taxes_bp.get("/rules")
@require_actor
def list_rules_route():
    """
    Query params:
    - country_code, tax_class: optional filters
    - active_only: true/false (default false)
    """
    try:
        rules = tax_service.list_tax_rules(
            country_code=request.args.get("country_code"),
            tax_class=request.args.get("tax_class"),
            active_only=request.args.get("active_only", "false").lower() == "true",
        )
        return jsonify({"rules": [r.to_dict() for r in rules]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list tax rules")
        return jsonify({"error": "Internal server error"}), 500


@taxes_bp.post("/rules")
@require_actor
def create_rule_route():
    """
    Create a tax rule (SuperAdmin only).

    Overlapping active rules for the same country and class are
    deactivated in the same transaction.
    """
    try:
        data = get_json_body(request)
        require_fields(data, "country_code", "tax_class", "rate_percent", "valid_from")
        rule = tax_service.create_tax_rule(
            g.actor,
            country_code=data["country_code"],
            tax_class=data["tax_class"],
            rate_percent=parse_decimal(data, "rate_percent"),
            valid_from=parse_datetime(data, "valid_from"),
            valid_to=parse_datetime(data, "valid_to", required=False),
        )
        return jsonify({"rule": rule.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create tax rule")
        return jsonify({"error": "Internal server error"}), 500


@taxes_bp.post("/rules/<int:rule_id>/deactivate")
@require_actor
def deactivate_rule_route(rule_id: int):
    try:
        rule = tax_service.deactivate_tax_rule(g.actor, rule_id)
        return jsonify({"rule": rule.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to deactivate tax rule")
        return jsonify({"error": "Internal server error"}), 500
