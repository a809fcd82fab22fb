# Overview: Flask API routes for payments and order settlement; parses input and returns JSON responses.

# backend/backoffice/routes/payments.py
"""
Payment Processing API Routes

WHY: Orders are settled via REST API with split tenders (cash, cards,
gift cards), optionally in a foreign currency.

DESIGN:
- Add payments to orders (split payments allowed)
- Close once paid in full; cancel only before any payment
- Refunds append a negative payment and restore stock
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError
from ..services import payment_service
from ..services.totals_service import order_summary
from ..validation import get_json_body, parse_choice, parse_decimal, parse_int, require_fields


payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


# =============================================================================
# PAYMENT CREATION
# =============================================================================

@payments_bp.post("/")
@require_actor
def add_payment_route():
    """
    Add a payment to an order.

    Request body:
    {
        "order_id": 123,
        "method": "Cash",
        "amount": "10.00",
        "currency": "USD",  (optional, defaults to the business currency)
        "tip_portion": "1.00",  (optional)
        "gift_card_id": 7,  (required for GiftCard)
        "external_reference": "AUTH-12345"  (optional, for cards)
    }

    Returns:
        201: Payment created, with the payment summary
        400/402/404/409: business rule violated
    """
    try:
        data = get_json_body(request)
        require_fields(data, "order_id", "method", "amount")
        order_id = parse_int(data, "order_id")

        payment = payment_service.record_payment(
            g.actor,
            order_id,
            amount=parse_decimal(data, "amount"),
            method=parse_choice(data, "method", payment_service.VALID_METHODS),
            tip_portion=parse_decimal(data, "tip_portion", required=False, default=0),
            gift_card_id=parse_int(data, "gift_card_id", required=False),
            currency=data.get("currency"),
            external_reference=data.get("external_reference"),
        )
        summary = payment_service.payment_summary(g.actor, order_id)
        return jsonify({"payment": payment.to_dict(), "summary": summary}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to add payment")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# PAYMENT QUERIES
# =============================================================================

@payments_bp.get("/orders/<int:order_id>")
@require_actor
def get_order_payments_route(order_id: int):
    try:
        return jsonify(payment_service.payment_summary(g.actor, order_id)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get order payments")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# ORDER SETTLEMENT
# =============================================================================

@payments_bp.post("/orders/<int:order_id>/close")
@require_actor
def close_order_route(order_id: int):
    """Close the order. 402 with INSUFFICIENT_PAYMENT if not paid in full."""
    try:
        order = payment_service.close_order(g.actor, order_id)
        return jsonify(order_summary(order)), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to close order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/orders/<int:order_id>/cancel")
@require_actor
def cancel_order_route(order_id: int):
    try:
        order = payment_service.cancel_order(g.actor, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return jsonify({"error": "Internal server error"}), 500


@payments_bp.post("/orders/<int:order_id>/refund")
@require_actor
def refund_order_route(order_id: int):
    """
    Refund a closed order.

    Request body:
    {
        "amount": "8.56",
        "reason": "Customer complaint",  (optional)
        "method": "Cash"  (optional: Cash | CardDebit | CardCredit)
    }
    """
    try:
        data = get_json_body(request)
        refund = payment_service.refund_order(
            g.actor,
            order_id,
            parse_decimal(data, "amount"),
            reason=data.get("reason"),
            method=parse_choice(
                data, "method", payment_service.REFUND_METHODS,
                required=False, default=payment_service.METHOD_CASH,
            ),
        )
        summary = payment_service.payment_summary(g.actor, order_id)
        return jsonify({"refund": refund.to_dict(), "summary": summary}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to refund order")
        return jsonify({"error": "Internal server error"}), 500
