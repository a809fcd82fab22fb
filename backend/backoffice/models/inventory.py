from __future__ import annotations

from ..extensions import db
from ..money import decimal_str, money_str
from ..time_utils import to_utc_z


class StockItem(db.Model):
    """
    Stock kept for one catalog item.

    INVARIANT: qty_on_hand == SUM(stock_movements.delta). The quantity is
    stored (not derived on read) and is only changed together with a new
    movement in the same transaction.
    """
    __tablename__ = "stock_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, unique=True)

    unit = db.Column(db.String(16), nullable=False)
    qty_on_hand = db.Column(db.Numeric(12, 3), nullable=False, default=0)
    average_unit_cost = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    catalog_item = db.relationship(
        "CatalogItem",
        backref=db.backref("stock_item", uselist=False, lazy=True),
    )
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "catalog_item_id": self.catalog_item_id,
            "name": self.catalog_item.name if self.catalog_item else None,
            "unit": self.unit,
            "qty_on_hand": decimal_str(self.qty_on_hand),
            "average_unit_cost": money_str(self.average_unit_cost),
            "version_id": self.version_id,
        }


class StockMovement(db.Model):
    """
    Append-only stock ledger.

    TYPES:
    - Receive: incoming stock, replaces average_unit_cost
    - Waste: spoilage/breakage (negative delta)
    - Adjust: count corrections and the seed of a new stock item
    - Sale: posted when an order closes (negative delta)
    - Return: posted when an order is refunded (positive delta)

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_item_created", "stock_item_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_item_id = db.Column(db.Integer, db.ForeignKey("stock_items.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    delta = db.Column(db.Numeric(12, 3), nullable=False)
    unit_cost_snapshot = db.Column(db.Numeric(12, 2), nullable=False)

    order_line_id = db.Column(db.Integer, db.ForeignKey("order_lines.id"), nullable=True, index=True)
    notes = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    stock_item = db.relationship("StockItem", backref=db.backref("movements", lazy=True))
    order_line = db.relationship("OrderLine")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "type": self.movement_type,
            "delta": decimal_str(self.delta),
            "unit_cost_snapshot": money_str(self.unit_cost_snapshot),
            "order_line_id": self.order_line_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
