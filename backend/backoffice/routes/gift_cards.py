# Overview: Flask API routes for gift cards.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import gift_card_service
from ..validation import (
    get_json_body,
    parse_choice,
    parse_datetime,
    parse_decimal,
    resolve_business_id,
)


gift_cards_bp = Blueprint("gift_cards", __name__, url_prefix="/api/gift-cards")


@gift_cards_bp.get("/")
@require_actor
def list_gift_cards_route():
    try:
        cards = gift_card_service.list_gift_cards(
            g.actor,
            resolve_business_id(request.args, g.actor),
            status=request.args.get("status"),
        )
        return jsonify({"gift_cards": [c.to_dict() for c in cards]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list gift cards")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.post("/")
@require_actor
def issue_gift_card_route():
    """
    Issue a gift card.

    Request body:
    {
        "initial_value": "50.00",
        "expires_at": "2025-12-31T23:59:59Z"  (optional)
    }
    """
    try:
        data = get_json_body(request)
        card = gift_card_service.issue_gift_card(
            g.actor,
            resolve_business_id(data, g.actor),
            parse_decimal(data, "initial_value"),
            expires_at=parse_datetime(data, "expires_at", required=False),
        )
        return jsonify({"gift_card": card.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to issue gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("/<int:gift_card_id>")
@require_actor
def get_gift_card_route(gift_card_id: int):
    try:
        card = gift_card_service.get_gift_card(g.actor, gift_card_id)
        return jsonify({"gift_card": card.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get gift card")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.get("/code/<code>")
@require_actor
def check_balance_route(code: str):
    try:
        card = gift_card_service.check_balance(g.actor, code)
        return jsonify({"gift_card": card.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to check gift card balance")
        return jsonify({"error": "Internal server error"}), 500


@gift_cards_bp.put("/<int:gift_card_id>/status")
@require_actor
def set_status_route(gift_card_id: int):
    try:
        data = get_json_body(request)
        card = gift_card_service.set_gift_card_status(
            g.actor,
            gift_card_id,
            parse_choice(data, "status", gift_card_service.SETTABLE_STATUSES),
        )
        return jsonify({"gift_card": card.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to set gift card status")
        return jsonify({"error": "Internal server error"}), 500
