from __future__ import annotations

from ..extensions import db
from ..money import decimal_str, money_str
from ..time_utils import to_utc_z
from ..services.pricing import line_amounts


class Order(db.Model):
    """
    Customer order (the bill).

    LIFECYCLE:
    - Open: lines, discount and tip may change
    - Closed: paid in full, stock sold; immutable
    - Cancelled: abandoned before any payment
    - Refunded: closed order whose payment was (partly) returned

    discount_snapshot holds the applied discount as JSON
    ({code, type, scope, value, applied_amount}); totals read the snapshot,
    never the live Discount row.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_business_status_created", "business_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False, default="Open", index=True)

    employee_id = db.Column(db.Integer, nullable=True, index=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=True)
    table_or_area = db.Column(db.String(64), nullable=True)

    tip_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=True)
    discount_snapshot = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    business = db.relationship("Business")
    discount = db.relationship("Discount")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "status": self.status,
            "employee_id": self.employee_id,
            "reservation_id": self.reservation_id,
            "table_or_area": self.table_or_area,
            "tip_amount": money_str(self.tip_amount),
            "discount_id": self.discount_id,
            "created_at": to_utc_z(self.created_at),
            "closed_at": to_utc_z(self.closed_at),
            "version_id": self.version_id,
        }


class OrderLine(db.Model):
    """
    Line on an order.

    Name, unit price, tax class and tax rate are snapshots frozen at
    insertion time; catalog or tax changes never touch existing lines.
    """
    __tablename__ = "order_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # References (not snapshots): used for discount eligibility and stock
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)
    option_id = db.Column(db.Integer, db.ForeignKey("catalog_options.id"), nullable=True)

    item_name_snapshot = db.Column(db.String(255), nullable=False)
    option_name_snapshot = db.Column(db.String(120), nullable=True)
    qty = db.Column(db.Numeric(12, 3), nullable=False)
    unit_price_snapshot = db.Column(db.Numeric(12, 2), nullable=False)
    tax_class_snapshot = db.Column(db.String(64), nullable=False)
    tax_rate_snapshot_pct = db.Column(db.Numeric(7, 3), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship(
        "Order",
        backref=db.backref("lines", lazy=True, order_by="OrderLine.id"),
    )
    catalog_item = db.relationship("CatalogItem")
    option = db.relationship("Option")

    def to_dict(self) -> dict:
        amounts = line_amounts(self.unit_price_snapshot, self.qty, self.tax_rate_snapshot_pct)
        return {
            "id": self.id,
            "order_id": self.order_id,
            "catalog_item_id": self.catalog_item_id,
            "option_id": self.option_id,
            "item_name_snapshot": self.item_name_snapshot,
            "option_name_snapshot": self.option_name_snapshot,
            "qty": decimal_str(self.qty),
            "unit_price_snapshot": money_str(self.unit_price_snapshot),
            "tax_class_snapshot": self.tax_class_snapshot,
            "tax_rate_snapshot_pct": decimal_str(self.tax_rate_snapshot_pct),
            "line_base": money_str(amounts.base),
            "line_tax": money_str(amounts.tax),
            "line_total": money_str(amounts.total),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Payment (or refund) recorded against an order.

    APPEND-ONLY: a refund is a new row with a negative amount, never an
    update of an earlier payment. amount is always in the business's base
    currency; for foreign tenders the tendered amount and rate are kept.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index("ix_payments_order_created", "order_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    tendered_amount = db.Column(db.Numeric(12, 2), nullable=True)
    exchange_rate = db.Column(db.Numeric(18, 8), nullable=True)

    method = db.Column(db.String(16), nullable=False, index=True)  # Cash, CardDebit, CardCredit, GiftCard
    tip_portion = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    gift_card_id = db.Column(db.Integer, db.ForeignKey("gift_cards.id"), nullable=True, index=True)
    external_reference = db.Column(db.String(128), nullable=True)
    reason = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    order = db.relationship(
        "Order",
        backref=db.backref("payments", lazy=True, order_by="Payment.id"),
    )
    gift_card = db.relationship("GiftCard")

    @property
    def is_refund(self) -> bool:
        return self.amount < 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount": money_str(self.amount),
            "currency": self.currency,
            "tendered_amount": money_str(self.tendered_amount),
            "exchange_rate": decimal_str(self.exchange_rate),
            "method": self.method,
            "tip_portion": money_str(self.tip_portion),
            "gift_card_id": self.gift_card_id,
            "external_reference": self.external_reference,
            "reason": self.reason,
            "is_refund": self.is_refund,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
