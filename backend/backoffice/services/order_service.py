# Overview: Service-layer operations for orders and order lines (the line pricer).

"""
Order Service

WHY: An order is edited by several staff members at once. Every mutation
re-reads the order inside its own transaction (row lock + version check)
and verifies the status there, never trusting a status read earlier.

LINE SNAPSHOTS:
add_line() copies item name, option name, unit price (base + modifier),
tax class and the tax rate in force into the line. Those snapshots are
never recomputed. The order's discount snapshot is: every line change
re-evaluates it in the same transaction.
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import CatalogItem, Option, Order, OrderLine, Reservation
from ..money import ZERO, quantize_money, quantize_qty, to_decimal
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, touch
from .pricing import unit_price_for
from .tax_service import current_rate


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

ORDER_STATUS_OPEN = "Open"
ORDER_STATUS_CLOSED = "Closed"
ORDER_STATUS_CANCELLED = "Cancelled"
ORDER_STATUS_REFUNDED = "Refunded"

VALID_ORDER_STATUSES = [
    ORDER_STATUS_OPEN,
    ORDER_STATUS_CLOSED,
    ORDER_STATUS_CANCELLED,
    ORDER_STATUS_REFUNDED,
]


# =============================================================================
# LOOKUPS
# =============================================================================

def load_order(actor: ActorContext, order_id: int, *, lock: bool = False) -> Order:
    """Fetch an order visible to the actor; other businesses' orders are NotFound."""
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    order = query.first()
    if not order or not can_see_business(actor, order.business_id):
        raise NotFoundError.for_entity("Order", order_id)
    return order


def ensure_open(order: Order) -> None:
    if order.status != ORDER_STATUS_OPEN:
        raise InvalidStateError(
            f"Order {order.id} is {order.status} and cannot be modified",
            {"order_id": order.id, "status": order.status},
            code="ORDER_NOT_MODIFIABLE",
        )


def _load_line(order: Order, line_id: int) -> OrderLine:
    line = db.session.query(OrderLine).filter_by(id=line_id, order_id=order.id).first()
    if not line:
        raise NotFoundError.for_entity("Order line", line_id)
    return line


def _parse_qty(qty) -> object:
    value = quantize_qty(to_decimal(qty, field="qty"))
    if value <= ZERO:
        raise ValidationError("qty must be greater than zero")
    return value


def _refresh_discount(order: Order) -> None:
    # discount_service imports this module
    from .discount_service import refresh_order_discount
    refresh_order_discount(order)


# =============================================================================
# ORDERS
# =============================================================================

def create_order(
    actor: ActorContext,
    business_id: int,
    *,
    table_or_area: str | None = None,
    reservation_id: int | None = None,
) -> Order:
    """Create a new Open order attributed to the acting employee."""
    require_permission(actor, "TAKE_ORDERS")
    ensure_business_access(actor, business_id)

    if reservation_id is not None:
        reservation = db.session.get(Reservation, reservation_id)
        if not reservation or reservation.business_id != business_id:
            raise NotFoundError.for_entity("Reservation", reservation_id)

    order = Order(
        business_id=business_id,
        status=ORDER_STATUS_OPEN,
        employee_id=actor.user_id,
        reservation_id=reservation_id,
        table_or_area=table_or_area,
        tip_amount=ZERO,
    )
    db.session.add(order)
    db.session.commit()
    return order


def get_order(actor: ActorContext, order_id: int) -> Order:
    return load_order(actor, order_id)


def list_orders(actor: ActorContext, business_id: int, status: str | None = None) -> list[Order]:
    ensure_business_access(actor, business_id)
    if status is not None and status not in VALID_ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_ORDER_STATUSES}")

    q = db.session.query(Order).filter_by(business_id=business_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def set_tip(actor: ActorContext, order_id: int, amount) -> Order:
    """Replace the order's tip. Tips declared on payments add on top of it."""
    require_permission(actor, "TAKE_ORDERS")
    tip = to_decimal(amount, field="tip_amount")
    if tip < ZERO:
        raise ValidationError("tip_amount must not be negative")

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)
        order.tip_amount = quantize_money(tip)
        touch(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


# =============================================================================
# ORDER LINES
# =============================================================================

def add_line(
    actor: ActorContext,
    order_id: int,
    *,
    qty,
    option_id: int | None = None,
    catalog_item_id: int | None = None,
    at: datetime | None = None,
) -> OrderLine:
    """
    Add a line to an Open order.

    Either option_id (item variant) or catalog_item_id (item without
    options) identifies what is sold. Unit price and tax rate are
    resolved now and frozen on the line.
    """
    require_permission(actor, "TAKE_ORDERS")
    quantity = _parse_qty(qty)
    if option_id is None and catalog_item_id is None:
        raise ValidationError("option_id or catalog_item_id is required")

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)

        option = None
        if option_id is not None:
            option = db.session.get(Option, option_id)
            if not option or option.catalog_item.business_id != order.business_id:
                raise NotFoundError.for_entity("Option", option_id)
            item = option.catalog_item
            if catalog_item_id is not None and item.id != catalog_item_id:
                raise ValidationError("option_id does not belong to catalog_item_id")
        else:
            item = db.session.get(CatalogItem, catalog_item_id)
            if not item or item.business_id != order.business_id:
                raise NotFoundError.for_entity("Catalog item", catalog_item_id)

        rate = current_rate(order.business.country_code, item.tax_class, at or utcnow())

        line = OrderLine(
            order_id=order.id,
            catalog_item_id=item.id,
            option_id=option.id if option else None,
            item_name_snapshot=item.name,
            option_name_snapshot=option.name if option else None,
            qty=quantity,
            unit_price_snapshot=unit_price_for(item, option),
            tax_class_snapshot=item.tax_class,
            tax_rate_snapshot_pct=rate,
        )
        db.session.add(line)
        touch(order)
        _refresh_discount(order)
        db.session.commit()
        return line

    return run_with_retry(_op)


def update_line_qty(actor: ActorContext, order_id: int, line_id: int, qty) -> OrderLine:
    """Change a line's quantity; snapshots stay as they were."""
    require_permission(actor, "TAKE_ORDERS")
    quantity = _parse_qty(qty)

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)
        line = _load_line(order, line_id)
        line.qty = quantity
        touch(order)
        _refresh_discount(order)
        db.session.commit()
        return line

    return run_with_retry(_op)


def delete_line(actor: ActorContext, order_id: int, line_id: int) -> None:
    require_permission(actor, "TAKE_ORDERS")

    def _op():
        order = load_order(actor, order_id, lock=True)
        ensure_open(order)
        line = _load_line(order, line_id)
        db.session.delete(line)
        touch(order)
        _refresh_discount(order)
        db.session.commit()

    run_with_retry(_op)
