# Overview: Service-layer operations for discounts; evaluates and applies discount codes to orders.

"""
Discount Engine

APPLICABILITY:
- Discount must exist in the order's business, be Active and be inside
  its [starts_at, ends_at] window (ends_at NULL = unbounded).
- Order scope: the whole order qualifies.
- Line scope: only lines whose catalog item (or option) is listed in the
  discount's eligibilities qualify; zero qualifying lines -> NotApplicable.

AMOUNT:
- Order scope:  Percent -> lines_total * value / 100,  Amount -> value
- Line scope:   Percent -> eligible_base * value / 100
                Amount  -> value per qualifying line (cumulative),
                clamped to eligible_base (pre-tax subtotal of those lines)
- Always clamped to the order's pre-discount lines_total, then rounded
  half-up to cents.

The result is frozen on the order as a DiscountSnapshot. Totals read the
snapshot. Adding, resizing or deleting a line on the Open order recomputes
it in the same transaction (refresh_order_discount), so the applied amount
never exceeds the current lines total.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotApplicableError, NotFoundError, ValidationError
from ..models import CatalogItem, Discount, DiscountEligibility, Option, Order
from ..money import HUNDRED, ZERO, percent_of, quantize_money, to_decimal
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission
from ..time_utils import to_utc_naive, utcnow
from .concurrency import lock_for_update, run_with_retry, touch
from .discount_snapshot import DiscountSnapshot
from .order_service import ensure_open, load_order
from .pricing import amounts_for_line
from .totals_service import lines_total


# =============================================================================
# DISCOUNT CONSTANTS
# =============================================================================

DISCOUNT_TYPE_PERCENT = "Percent"
DISCOUNT_TYPE_AMOUNT = "Amount"
VALID_DISCOUNT_TYPES = [DISCOUNT_TYPE_PERCENT, DISCOUNT_TYPE_AMOUNT]

SCOPE_ORDER = "Order"
SCOPE_LINE = "Line"
VALID_SCOPES = [SCOPE_ORDER, SCOPE_LINE]

DISCOUNT_STATUS_ACTIVE = "Active"
DISCOUNT_STATUS_INACTIVE = "Inactive"


# =============================================================================
# ADMINISTRATION
# =============================================================================

def create_discount(
    actor: ActorContext,
    *,
    business_id: int,
    code: str,
    discount_type: str,
    scope: str,
    value,
    starts_at: datetime,
    ends_at: datetime | None = None,
    eligible_item_ids=(),
    eligible_option_ids=(),
) -> Discount:
    require_permission(actor, "MANAGE_DISCOUNTS")
    ensure_business_access(actor, business_id)

    code = (code or "").strip()
    if not code:
        raise ValidationError("code is required")
    if discount_type not in VALID_DISCOUNT_TYPES:
        raise ValidationError(f"Invalid discount type: {discount_type}. Must be one of {VALID_DISCOUNT_TYPES}")
    if scope not in VALID_SCOPES:
        raise ValidationError(f"Invalid scope: {scope}. Must be one of {VALID_SCOPES}")

    amount = to_decimal(value, field="value")
    if amount <= ZERO:
        raise ValidationError("value must be greater than zero")
    if discount_type == DISCOUNT_TYPE_PERCENT and amount > HUNDRED:
        raise ValidationError("Percent discount cannot exceed 100")

    starts_at = to_utc_naive(starts_at)
    ends_at = to_utc_naive(ends_at)
    if starts_at is None:
        raise ValidationError("starts_at is required")
    if ends_at is not None and ends_at < starts_at:
        raise ValidationError("ends_at must not be before starts_at")

    item_ids = list(dict.fromkeys(eligible_item_ids or ()))
    option_ids = list(dict.fromkeys(eligible_option_ids or ()))
    if scope == SCOPE_ORDER and (item_ids or option_ids):
        raise ValidationError("Order-scope discounts cannot have eligible items")

    existing = db.session.query(Discount).filter_by(business_id=business_id, code=code).first()
    if existing:
        raise ConflictError(
            "Discount with this code already exists",
            {"code": code},
            code="DUPLICATE_CODE",
        )

    for item_id in item_ids:
        item = db.session.get(CatalogItem, item_id)
        if not item or item.business_id != business_id:
            raise NotFoundError.for_entity("Catalog item", item_id)
    for option_id in option_ids:
        option = db.session.get(Option, option_id)
        if not option or option.catalog_item.business_id != business_id:
            raise NotFoundError.for_entity("Option", option_id)

    discount = Discount(
        business_id=business_id,
        code=code,
        discount_type=discount_type,
        scope=scope,
        value=amount,
        starts_at=starts_at,
        ends_at=ends_at,
        status=DISCOUNT_STATUS_ACTIVE,
    )
    db.session.add(discount)
    db.session.flush()

    for item_id in item_ids:
        db.session.add(DiscountEligibility(discount_id=discount.id, catalog_item_id=item_id))
    for option_id in option_ids:
        db.session.add(DiscountEligibility(discount_id=discount.id, option_id=option_id))

    db.session.commit()
    return discount


def deactivate_discount(actor: ActorContext, discount_id: int) -> Discount:
    require_permission(actor, "MANAGE_DISCOUNTS")

    def _op():
        discount = lock_for_update(db.session.query(Discount).filter_by(id=discount_id)).first()
        if not discount or not can_see_business(actor, discount.business_id):
            raise NotFoundError.for_entity("Discount", discount_id)
        discount.status = DISCOUNT_STATUS_INACTIVE
        db.session.commit()
        return discount

    return run_with_retry(_op)


def list_discounts(actor: ActorContext, business_id: int, status: str | None = None) -> list[Discount]:
    ensure_business_access(actor, business_id)
    q = db.session.query(Discount).filter_by(business_id=business_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Discount.created_at.desc(), Discount.id.desc()).all()


# =============================================================================
# EVALUATION
# =============================================================================

def _resolve_discount(business_id: int, code: str) -> Discount:
    discount = db.session.query(Discount).filter_by(business_id=business_id, code=code).first()
    if not discount:
        raise NotFoundError(f"Discount {code} not found", {"code": code}, code="DISCOUNT_NOT_FOUND")
    if discount.status != DISCOUNT_STATUS_ACTIVE:
        raise InvalidStateError(
            f"Discount {code} is {discount.status}",
            {"code": code, "status": discount.status},
            code="DISCOUNT_INACTIVE",
        )
    return discount


def ensure_in_window(discount: Discount, at: datetime) -> None:
    if discount.starts_at > at or (discount.ends_at is not None and discount.ends_at < at):
        raise NotApplicableError(
            "Discount is not currently valid",
            {"code": discount.code},
            code="INVALID_DISCOUNT",
        )


def get_discount_by_code(
    actor: ActorContext, business_id: int, code: str, at: datetime | None = None
) -> Discount:
    ensure_business_access(actor, business_id)
    discount = _resolve_discount(business_id, code)
    ensure_in_window(discount, to_utc_naive(at) if at else utcnow())
    return discount


def _is_line_eligible(line, item_ids: set[int], option_ids: set[int]) -> bool:
    if line.option_id is not None and line.option_id in option_ids:
        return True
    return line.catalog_item_id in item_ids


def compute_discount_amount(discount: Discount, lines) -> Decimal:
    """
    Discount amount for `lines`, clamped to their pre-discount total.

    Raises NotApplicableError when a Line-scope discount matches nothing.
    """
    order_total = lines_total(lines)
    value = to_decimal(discount.value)

    if discount.scope == SCOPE_ORDER:
        if discount.discount_type == DISCOUNT_TYPE_PERCENT:
            applied = percent_of(order_total, value)
        else:
            applied = value
    else:
        item_ids = discount.eligible_catalog_item_ids()
        option_ids = discount.eligible_option_ids()
        eligible = [line for line in lines if _is_line_eligible(line, item_ids, option_ids)]
        if not eligible:
            raise NotApplicableError(
                "Discount does not apply to any item in this order",
                {"code": discount.code},
                code="DISCOUNT_NOT_APPLICABLE",
            )

        eligible_base = ZERO
        applied = ZERO
        for line in eligible:
            base = amounts_for_line(line).base
            eligible_base += base
            if discount.discount_type == DISCOUNT_TYPE_PERCENT:
                applied += percent_of(base, value)
            else:
                applied += value
        applied = min(applied, eligible_base)

    applied = min(applied, order_total)
    return quantize_money(max(applied, ZERO))


def _snapshot_for(discount: Discount, applied: Decimal) -> DiscountSnapshot:
    return DiscountSnapshot(
        code=discount.code,
        discount_type=discount.discount_type,
        scope=discount.scope,
        value=to_decimal(discount.value),
        applied_amount=applied,
    )


def refresh_order_discount(order: Order) -> Decimal | None:
    """
    Recompute the order's discount after its lines changed.

    Runs inside the caller's transaction, on a locked Open order. A
    Line-scope discount left without qualifying lines is removed.
    Returns the new applied amount, or None when no discount remains.
    """
    if order.discount_id is None:
        return None

    db.session.flush()
    db.session.expire(order, ["lines"])
    discount = db.session.get(Discount, order.discount_id)

    try:
        applied = compute_discount_amount(discount, order.lines)
    except NotApplicableError:
        current_app.logger.info(
            "Discount %s no longer applies to order %s, removed", discount.code, order.id
        )
        order.discount_id = None
        order.discount_snapshot = None
        return None

    order.discount_snapshot = _snapshot_for(discount, applied).to_json()
    return applied


# =============================================================================
# ORDER OPERATIONS
# =============================================================================

def apply_discount(
    actor: ActorContext, order_id: int, code: str, at: datetime | None = None
) -> tuple[Order, Decimal]:
    """
    Apply (or replace) the order's discount.

    Returns (order, applied_amount).
    """
    require_permission(actor, "TAKE_ORDERS")
    code = (code or "").strip()
    if not code:
        raise ValidationError("code is required")
    at = to_utc_naive(at) if at else utcnow()

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)

        discount = _resolve_discount(order.business_id, code)
        ensure_in_window(discount, at)

        applied = compute_discount_amount(discount, order.lines)

        order.discount_id = discount.id
        order.discount_snapshot = _snapshot_for(discount, applied).to_json()
        touch(order)
        db.session.commit()

        current_app.logger.info(
            "Discount %s applied to order %s: %s", discount.code, order.id, applied
        )
        return order, applied

    return run_with_retry(_op)


def remove_discount(actor: ActorContext, order_id: int) -> Order:
    require_permission(actor, "TAKE_ORDERS")

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)
        order.discount_id = None
        order.discount_snapshot = None
        touch(order)
        db.session.commit()
        return order

    return run_with_retry(_op)
