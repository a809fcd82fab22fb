# Overview: Service-layer operations for gift cards; issuing, status and balance consumption.

"""
Gift Card Service

INVARIANT: 0 <= balance <= initial_value.

The balance is only ever reduced by debit_for_payment(), which runs
inside the payment's transaction: the card row is locked, re-validated
and decremented, and the Payment row is inserted before a single commit.
The version_id column on GiftCard makes a concurrent debit against a
stale balance fail with StaleDataError instead of overdrawing the card.
"""

from __future__ import annotations

import secrets
from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import InsufficientFundsError, InvalidStateError, NotFoundError, ValidationError
from ..models import GiftCard
from ..money import ZERO, quantize_money, to_decimal
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission
from ..time_utils import to_utc_naive, utcnow
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# GIFT CARD STATUS (CONSTANTS)
# =============================================================================

GIFT_CARD_ACTIVE = "Active"
GIFT_CARD_BLOCKED = "Blocked"
GIFT_CARD_EXPIRED = "Expired"

# Statuses a caller may set directly; Expired is derived from expires_at
SETTABLE_STATUSES = [GIFT_CARD_ACTIVE, GIFT_CARD_BLOCKED]


def _generate_code() -> str:
    return secrets.token_hex(8).upper()


def _unique_code(attempts: int = 5) -> str:
    for _ in range(attempts):
        code = _generate_code()
        if not db.session.query(GiftCard.id).filter_by(code=code).first():
            return code
    raise RuntimeError("Could not generate a unique gift card code")


def issue_gift_card(
    actor: ActorContext,
    business_id: int,
    initial_value,
    expires_at: datetime | None = None,
) -> GiftCard:
    require_permission(actor, "MANAGE_GIFT_CARDS")
    ensure_business_access(actor, business_id)

    value = to_decimal(initial_value, field="initial_value")
    if value <= ZERO:
        raise ValidationError("initial_value must be greater than zero")
    value = quantize_money(value)

    card = GiftCard(
        business_id=business_id,
        code=_unique_code(),
        initial_value=value,
        balance=value,
        status=GIFT_CARD_ACTIVE,
        expires_at=to_utc_naive(expires_at),
    )
    db.session.add(card)
    db.session.commit()
    return card


def get_gift_card(actor: ActorContext, gift_card_id: int) -> GiftCard:
    card = db.session.get(GiftCard, gift_card_id)
    if not card or not can_see_business(actor, card.business_id):
        raise NotFoundError.for_entity("Gift card", gift_card_id)
    return card


def get_gift_card_by_code(actor: ActorContext, code: str) -> GiftCard:
    code = (code or "").strip().upper()
    card = db.session.query(GiftCard).filter_by(code=code).first()
    if not card or not can_see_business(actor, card.business_id):
        raise NotFoundError("Gift card not found", {"code": code})
    return card


def check_balance(actor: ActorContext, code: str, at: datetime | None = None) -> GiftCard:
    """Look up a card by code, flipping it to Expired if its date has passed."""
    at = to_utc_naive(at) if at else utcnow()

    def _op():
        card = get_gift_card_by_code(actor, code)
        if card.status == GIFT_CARD_ACTIVE and card.is_expired(at):
            card.status = GIFT_CARD_EXPIRED
            db.session.commit()
        return card

    return run_with_retry(_op)


def set_gift_card_status(actor: ActorContext, gift_card_id: int, status: str) -> GiftCard:
    require_permission(actor, "MANAGE_GIFT_CARDS")
    if status not in SETTABLE_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {SETTABLE_STATUSES}")

    def _op():
        card = lock_for_update(db.session.query(GiftCard).filter_by(id=gift_card_id)).first()
        if not card or not can_see_business(actor, card.business_id):
            raise NotFoundError.for_entity("Gift card", gift_card_id)
        if card.status == GIFT_CARD_EXPIRED:
            raise InvalidStateError("Expired gift cards cannot change status", {"gift_card_id": card.id})
        card.status = status
        db.session.commit()
        return card

    return run_with_retry(_op)


def list_gift_cards(actor: ActorContext, business_id: int, status: str | None = None) -> list[GiftCard]:
    ensure_business_access(actor, business_id)
    q = db.session.query(GiftCard).filter_by(business_id=business_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(GiftCard.issued_at.desc(), GiftCard.id.desc()).all()


def debit_for_payment(
    gift_card_id: int,
    business_id: int,
    amount: Decimal,
    at: datetime,
) -> GiftCard:
    """
    Lock, validate and decrement a card. Does NOT commit.

    Must be called inside the transaction that inserts the Payment.
    """
    card = lock_for_update(db.session.query(GiftCard).filter_by(id=gift_card_id)).first()
    if not card or card.business_id != business_id:
        raise NotFoundError.for_entity("Gift card", gift_card_id)

    if card.status != GIFT_CARD_ACTIVE:
        raise InvalidStateError(
            "Gift card is not active",
            {"gift_card_id": card.id, "status": card.status},
            code="GIFT_CARD_BLOCKED",
        )
    if card.is_expired(at):
        raise InvalidStateError(
            "Gift card has expired",
            {"gift_card_id": card.id},
            code="GIFT_CARD_EXPIRED",
        )

    balance = to_decimal(card.balance)
    if balance < amount:
        raise InsufficientFundsError(
            "Gift card has insufficient balance",
            {"gift_card_id": card.id, "balance": str(balance), "requested": str(amount)},
            code="GIFT_CARD_INSUFFICIENT_BALANCE",
        )

    card.balance = balance - amount
    current_app.logger.info("Gift card %s debited %s", card.id, amount)
    return card
