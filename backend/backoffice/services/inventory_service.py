# Overview: Service-layer operations for inventory; stock items and the append-only movement ledger.

"""
Inventory Adjustment Engine

Invariants (authoritative):
- qty_on_hand == SUM(delta) over the item's StockMovement rows, always.
- A movement row and the matching qty_on_hand change are written in the
  same DB transaction. Neither is ever written alone.
- StockMovement rows are append-only; corrections are new Adjust rows.

Movement types:
- Receive (delta > 0): replaces average_unit_cost with the receipt's unit
  cost. This is a simple replacement, not a weighted average.
- Waste (delta < 0), Adjust (delta != 0): manual entries.
- Sale / Return: posted only by the order lifecycle (close / refund),
  with unit_cost_snapshot = average_unit_cost at that moment.

Concurrency:
- StockItem rows are locked (FOR UPDATE) and versioned; two sales of the
  same item serialize instead of losing one decrement.
- On-hand may go negative through sales: the POS never blocks a sale on
  a stock count.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CatalogItem, Order, StockItem, StockMovement
from ..money import ZERO, quantize_qty, to_decimal
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry, touch


# =============================================================================
# MOVEMENT TYPES (CONSTANTS)
# =============================================================================

MOVEMENT_RECEIVE = "Receive"
MOVEMENT_WASTE = "Waste"
MOVEMENT_ADJUST = "Adjust"
MOVEMENT_SALE = "Sale"
MOVEMENT_RETURN = "Return"

VALID_MOVEMENT_TYPES = [MOVEMENT_RECEIVE, MOVEMENT_WASTE, MOVEMENT_ADJUST, MOVEMENT_SALE, MOVEMENT_RETURN]

# Types a user may post by hand; Sale and Return belong to the order lifecycle
MANUAL_MOVEMENT_TYPES = [MOVEMENT_RECEIVE, MOVEMENT_WASTE, MOVEMENT_ADJUST]


# =============================================================================
# LOOKUPS
# =============================================================================

def _load_stock_item(actor: ActorContext, stock_item_id: int, *, lock: bool = False) -> StockItem:
    query = db.session.query(StockItem).filter_by(id=stock_item_id)
    if lock:
        query = lock_for_update(query)
    item = query.first()
    if not item or not can_see_business(actor, item.catalog_item.business_id):
        raise NotFoundError.for_entity("Stock item", stock_item_id)
    return item


def get_stock_item(actor: ActorContext, stock_item_id: int) -> StockItem:
    require_permission(actor, "VIEW_INVENTORY")
    return _load_stock_item(actor, stock_item_id)


def list_stock_items(actor: ActorContext, business_id: int) -> list[StockItem]:
    require_permission(actor, "VIEW_INVENTORY")
    ensure_business_access(actor, business_id)
    return (
        db.session.query(StockItem)
        .join(CatalogItem, StockItem.catalog_item_id == CatalogItem.id)
        .filter(CatalogItem.business_id == business_id)
        .order_by(CatalogItem.name)
        .all()
    )


def list_movements(actor: ActorContext, stock_item_id: int, limit: int = 100) -> list[StockMovement]:
    require_permission(actor, "VIEW_INVENTORY")
    _load_stock_item(actor, stock_item_id)
    return (
        db.session.query(StockMovement)
        .filter_by(stock_item_id=stock_item_id)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def ledger_quantity(stock_item_id: int) -> Decimal:
    """Recompute on-hand from the ledger (audits; never used for writes)."""
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.delta), 0)
    ).filter(StockMovement.stock_item_id == stock_item_id).scalar()
    return quantize_qty(to_decimal(total or 0))


# =============================================================================
# POSTING
# =============================================================================

def _append_movement(
    stock_item: StockItem,
    movement_type: str,
    delta: Decimal,
    unit_cost_snapshot: Decimal,
    *,
    order_line_id: int | None = None,
    notes: str | None = None,
    user_id: int | None = None,
) -> StockMovement:
    """
    Core posting step without retry or commit.

    The caller owns the transaction and must hold the stock item row.
    """
    movement = StockMovement(
        stock_item_id=stock_item.id,
        movement_type=movement_type,
        delta=delta,
        unit_cost_snapshot=unit_cost_snapshot,
        order_line_id=order_line_id,
        notes=notes,
        created_by_user_id=user_id,
        created_at=utcnow(),
    )
    db.session.add(movement)

    stock_item.qty_on_hand = to_decimal(stock_item.qty_on_hand or ZERO) + delta
    if movement_type == MOVEMENT_RECEIVE:
        stock_item.average_unit_cost = unit_cost_snapshot
    touch(stock_item)

    db.session.flush()
    current_app.logger.info(
        "Stock movement %s on item %s: %s %s",
        movement.id, stock_item.id, movement_type, delta,
    )
    return movement


def _validate_manual_delta(movement_type: str, delta: Decimal) -> None:
    if movement_type not in MANUAL_MOVEMENT_TYPES:
        raise ValidationError(
            f"Invalid movement type: {movement_type}. Must be one of {MANUAL_MOVEMENT_TYPES}"
        )
    if delta == ZERO:
        raise ValidationError("delta must not be zero")
    if movement_type == MOVEMENT_RECEIVE and delta < ZERO:
        raise ValidationError("Receive delta must be positive")
    if movement_type == MOVEMENT_WASTE and delta > ZERO:
        raise ValidationError("Waste delta must be negative")


def post_movement(
    actor: ActorContext,
    stock_item_id: int,
    movement_type: str,
    delta,
    unit_cost_snapshot,
    notes: str | None = None,
) -> StockMovement:
    """Post a manual Receive/Waste/Adjust movement atomically."""
    require_permission(actor, "MANAGE_INVENTORY")

    qty_delta = quantize_qty(to_decimal(delta, field="delta"))
    unit_cost = to_decimal(unit_cost_snapshot, field="unit_cost_snapshot")
    if unit_cost < ZERO:
        raise ValidationError("unit_cost_snapshot must not be negative")
    _validate_manual_delta(movement_type, qty_delta)

    def _op():
        stock_item = _load_stock_item(actor, stock_item_id, lock=True)
        movement = _append_movement(
            stock_item,
            movement_type,
            qty_delta,
            unit_cost,
            notes=notes,
            user_id=actor.user_id,
        )
        db.session.commit()
        return movement

    return run_with_retry(_op)


def create_stock_item(
    actor: ActorContext,
    catalog_item_id: int,
    *,
    unit: str,
    initial_qty=0,
    average_unit_cost=0,
) -> StockItem:
    """
    Start tracking stock for a catalog item.

    A nonzero initial quantity is seeded through an Adjust movement so the
    ledger sums to qty_on_hand from the very first row.
    """
    require_permission(actor, "MANAGE_INVENTORY")

    unit = (unit or "").strip()
    if not unit:
        raise ValidationError("unit is required")
    qty = quantize_qty(to_decimal(initial_qty, field="initial_qty"))
    cost = to_decimal(average_unit_cost, field="average_unit_cost")
    if cost < ZERO:
        raise ValidationError("average_unit_cost must not be negative")

    def _op():
        catalog_item = db.session.get(CatalogItem, catalog_item_id)
        if not catalog_item or not can_see_business(actor, catalog_item.business_id):
            raise NotFoundError.for_entity("Catalog item", catalog_item_id)
        if catalog_item.stock_item is not None:
            raise ConflictError(
                "Catalog item already has a stock item",
                {"catalog_item_id": catalog_item_id},
                code="DUPLICATE_STOCK_ITEM",
            )

        stock_item = StockItem(
            catalog_item_id=catalog_item.id,
            unit=unit,
            qty_on_hand=ZERO,
            average_unit_cost=cost,
        )
        db.session.add(stock_item)
        db.session.flush()

        if qty != ZERO:
            _append_movement(
                stock_item,
                MOVEMENT_ADJUST,
                qty,
                cost,
                notes="Initial stock",
                user_id=actor.user_id,
            )

        db.session.commit()
        return stock_item

    return run_with_retry(_op)


def _tracked_lines(order: Order):
    """(line, locked stock item) for every line whose item keeps stock."""
    for line in order.lines:
        stock_item = line.catalog_item.stock_item if line.catalog_item else None
        if stock_item is None:
            continue
        locked = lock_for_update(db.session.query(StockItem).filter_by(id=stock_item.id)).first()
        yield line, locked


def post_sale_movements(order: Order, user_id: int | None = None) -> list[StockMovement]:
    """Sale movements for a closing order. Runs inside the caller's transaction."""
    movements = []
    for line, stock_item in _tracked_lines(order):
        movements.append(_append_movement(
            stock_item,
            MOVEMENT_SALE,
            -to_decimal(line.qty),
            to_decimal(stock_item.average_unit_cost or ZERO),
            order_line_id=line.id,
            notes=f"Order {order.id}",
            user_id=user_id,
        ))
    return movements


def post_return_movements(order: Order, user_id: int | None = None) -> list[StockMovement]:
    """
    Return movements for a refunded order. Runs inside the caller's transaction.

    Every line's full original quantity is restored, whatever the refunded
    amount; partial-quantity refunds are not modelled.
    """
    movements = []
    for line, stock_item in _tracked_lines(order):
        movements.append(_append_movement(
            stock_item,
            MOVEMENT_RETURN,
            to_decimal(line.qty),
            to_decimal(stock_item.average_unit_cost or ZERO),
            order_line_id=line.id,
            notes=f"Refund of order {order.id}",
            user_id=user_id,
        ))
    return movements
