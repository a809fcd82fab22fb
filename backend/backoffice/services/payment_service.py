# Overview: Service-layer operations for payment; the settlement ledger that gates order closing.

"""
Payment Settlement Ledger

WHY: An order can be settled with several tenders (cash, debit, credit,
gift card), possibly in a foreign currency. The ledger records each one
and decides when the order's obligation is met.

DESIGN PRINCIPLES:
- Payments are append-only. A refund is a new negative Payment row.
- Payment.amount is always in the business currency; foreign tenders are
  converted on entry and keep the tendered amount and rate for audit.
- Card tenders arrive pre-authorized by an external processor; only the
  outcome (and its reference) is recorded here.
- Gift-card debit and Payment insert share one transaction.
- Closing compares SUM(payments.amount) with totals_service.due_total().

LIFECYCLE TRANSITIONS OWNED HERE:
- Open -> Closed     close_order()   (paid >= due; posts Sale movements)
- Open -> Cancelled  cancel_order()  (no payments at all)
- Closed -> Refunded refund_order()  (negative payment; posts Return movements)
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
from ..models import Business, Order, Payment
from ..money import ZERO, quantize_money, sum_decimal, to_decimal
from ..permissions import ActorContext, can_see_business, require_permission
from ..time_utils import to_utc_naive, utcnow
from .concurrency import run_with_retry, touch
from .exchange_rate_service import convert_to_base
from .gift_card_service import debit_for_payment
from .inventory_service import post_return_movements, post_sale_movements
from .order_service import (
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_CLOSED,
    ORDER_STATUS_OPEN,
    ORDER_STATUS_REFUNDED,
    ensure_open,
    load_order,
)
from .totals_service import due_total, paid_total, remaining_balance


# =============================================================================
# PAYMENT METHODS (CONSTANTS)
# =============================================================================

METHOD_CASH = "Cash"
METHOD_CARD_DEBIT = "CardDebit"
METHOD_CARD_CREDIT = "CardCredit"
METHOD_GIFT_CARD = "GiftCard"

VALID_METHODS = [
    METHOD_CASH,
    METHOD_CARD_DEBIT,
    METHOD_CARD_CREDIT,
    METHOD_GIFT_CARD,
]

REFUND_METHODS = [METHOD_CASH, METHOD_CARD_DEBIT, METHOD_CARD_CREDIT]


# =============================================================================
# PAYMENTS
# =============================================================================

def _order_currency(actor: ActorContext, order_id: int) -> str:
    row = (
        db.session.query(Order.business_id, Business.currency)
        .join(Business, Order.business_id == Business.id)
        .filter(Order.id == order_id)
        .first()
    )
    if not row or not can_see_business(actor, row.business_id):
        raise NotFoundError.for_entity("Order", order_id)
    return row.currency


def record_payment(
    actor: ActorContext,
    order_id: int,
    *,
    amount,
    method: str,
    tip_portion=0,
    gift_card_id: int | None = None,
    currency: str | None = None,
    external_reference: str | None = None,
    at: datetime | None = None,
) -> Payment:
    """
    Record a payment against an Open order.

    Args:
        amount: Amount tendered, in `currency` (default: business currency)
        method: Cash, CardDebit, CardCredit or GiftCard
        tip_portion: Part of this payment that is tip; added to order.tip_amount
        gift_card_id: Required for GiftCard payments
        external_reference: Processor reference for card payments

    Raises:
        InvalidStateError: order not Open, gift card blocked/expired
        InsufficientFundsError: gift card balance below amount
    """
    require_permission(actor, "TAKE_PAYMENTS")

    if method not in VALID_METHODS:
        raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_METHODS}")
    tendered = quantize_money(to_decimal(amount, field="amount"))
    if tendered <= ZERO:
        raise ValidationError("Payment amount must be positive")
    tip = to_decimal(tip_portion or ZERO, field="tip_portion")
    if tip < ZERO:
        raise ValidationError("tip_portion must not be negative")
    if method == METHOD_GIFT_CARD and not gift_card_id:
        raise ValidationError("gift_card_id is required for gift card payments")
    at = to_utc_naive(at) if at else utcnow()

    base_currency = _order_currency(actor, order_id)
    tender_currency = (currency or base_currency).upper()
    if method == METHOD_GIFT_CARD and tender_currency != base_currency:
        raise ValidationError("Gift card payments must be in the business currency")

    # Rate lookup may hit the network; keep it outside the locked section
    base_amount, rate = convert_to_base(tendered, tender_currency, base_currency)
    if base_amount <= ZERO:
        raise ValidationError(
            "Payment amount rounds to zero in the business currency",
            {"amount": str(tendered), "currency": tender_currency},
        )
    is_foreign = tender_currency != base_currency
    base_tip = quantize_money(tip / rate) if is_foreign else quantize_money(tip)

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)

        if method == METHOD_GIFT_CARD:
            debit_for_payment(gift_card_id, order.business_id, base_amount, at)

        payment = Payment(
            order_id=order.id,
            amount=base_amount,
            currency=tender_currency,
            tendered_amount=tendered if is_foreign else None,
            exchange_rate=rate if is_foreign else None,
            method=method,
            tip_portion=base_tip,
            gift_card_id=gift_card_id if method == METHOD_GIFT_CARD else None,
            external_reference=external_reference,
            created_by_user_id=actor.user_id,
            created_at=at,
        )
        db.session.add(payment)

        order.tip_amount = to_decimal(order.tip_amount or ZERO) + base_tip
        touch(order)

        db.session.commit()
        return payment

    return run_with_retry(_op)


def payment_summary(actor: ActorContext, order_id: int) -> dict:
    order = load_order(actor, order_id)
    due = due_total(order)
    paid = paid_total(order)
    return {
        "order_id": order.id,
        "status": order.status,
        "due_total": str(due),
        "paid_total": str(quantize_money(paid)),
        "remaining": str(remaining_balance(order)),
        "change_due": str(quantize_money(max(ZERO, paid - due))),
        "payments": [p.to_dict() for p in order.payments],
    }


# =============================================================================
# LIFECYCLE
# =============================================================================

def close_order(actor: ActorContext, order_id: int, at: datetime | None = None) -> Order:
    """
    Close an Open order once payments cover the due total.

    Posts a Sale movement for every line whose catalog item keeps stock,
    in the same transaction as the status change.
    """
    require_permission(actor, "TAKE_PAYMENTS")
    at = to_utc_naive(at) if at else utcnow()

    def _op():
        order = load_order(actor, order_id, lock=True)
        if order.status != ORDER_STATUS_OPEN:
            raise InvalidStateError(
                f"Order {order.id} is already {order.status}",
                {"order_id": order.id, "status": order.status},
                code="INVALID_OPERATION",
            )

        due = due_total(order)
        paid = paid_total(order)
        if paid < due:
            raise InsufficientFundsError(
                "Payment amount is less than order total",
                {"due_total": str(due), "paid_total": str(quantize_money(paid))},
                code="INSUFFICIENT_PAYMENT",
            )

        order.status = ORDER_STATUS_CLOSED
        order.closed_at = at
        touch(order)

        post_sale_movements(order, user_id=actor.user_id)

        db.session.commit()
        current_app.logger.info("Order %s closed (due %s, paid %s)", order.id, due, paid)
        return order

    return run_with_retry(_op)


def refund_order(
    actor: ActorContext,
    order_id: int,
    amount,
    reason: str | None = None,
    method: str = METHOD_CASH,
    at: datetime | None = None,
) -> Payment:
    """
    Refund a Closed order.

    Appends a negative Payment, marks the order Refunded and restores the
    full quantity of every stocked line (regardless of the amount).
    """
    require_permission(actor, "REFUND_ORDERS")

    refund_amount = quantize_money(to_decimal(amount, field="amount"))
    if refund_amount <= ZERO:
        raise ValidationError("Refund amount must be positive")
    if method not in REFUND_METHODS:
        raise ValidationError(f"Invalid refund method: {method}. Must be one of {REFUND_METHODS}")
    at = to_utc_naive(at) if at else utcnow()

    def _op():
        order = load_order(actor, order_id, lock=True)
        if order.status != ORDER_STATUS_CLOSED:
            raise InvalidStateError(
                "Can only refund closed orders",
                {"order_id": order.id, "status": order.status},
                code="INVALID_REFUND",
            )

        received = sum_decimal(to_decimal(p.amount) for p in order.payments if p.amount > 0)
        if refund_amount > received:
            raise ValidationError(
                "Refund amount exceeds total paid",
                {"refund_amount": str(refund_amount), "paid_total": str(received)},
                code="INVALID_REFUND_AMOUNT",
            )

        refund = Payment(
            order_id=order.id,
            amount=-refund_amount,
            currency=order.business.currency,
            method=method,
            tip_portion=ZERO,
            reason=reason,
            created_by_user_id=actor.user_id,
            created_at=at,
        )
        db.session.add(refund)

        order.status = ORDER_STATUS_REFUNDED
        touch(order)

        post_return_movements(order, user_id=actor.user_id)

        db.session.commit()
        current_app.logger.info("Order %s refunded %s: %s", order.id, refund_amount, reason)
        return refund

    return run_with_retry(_op)


def cancel_order(actor: ActorContext, order_id: int) -> Order:
    """Cancel an Open order that has no payments (refunds included)."""
    require_permission(actor, "TAKE_PAYMENTS")

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)
        if order.payments:
            raise InvalidStateError(
                "Order has payments, refund instead",
                {"order_id": order.id, "payment_count": len(order.payments)},
                code="ORDER_HAS_PAYMENTS",
            )
        order.status = ORDER_STATUS_CANCELLED
        touch(order)
        db.session.commit()
        current_app.logger.info("Order %s cancelled", order.id)
        return order

    return run_with_retry(_op)
