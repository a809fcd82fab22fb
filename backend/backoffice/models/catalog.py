from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class CatalogItem(db.Model):
    """
    Sellable product or service.

    Price and options may change over time; order lines snapshot the
    values in force when they were created.
    """
    __tablename__ = "catalog_items"
    __table_args__ = (
        db.UniqueConstraint("business_id", "code", name="uq_catalog_items_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(64), nullable=False)
    item_type = db.Column(db.String(16), nullable=False, default="Product")  # Product, Service

    base_price = db.Column(db.Numeric(12, 2), nullable=False)
    tax_class = db.Column(db.String(64), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", backref=db.backref("catalog_items", lazy=True))

    def to_dict(self, include_options: bool = False) -> dict:
        data = {
            "id": self.id,
            "business_id": self.business_id,
            "name": self.name,
            "code": self.code,
            "item_type": self.item_type,
            "base_price": money_str(self.base_price),
            "tax_class": self.tax_class,
            "is_active": self.is_active,
            "stock_item_id": self.stock_item.id if self.stock_item else None,
            "created_at": to_utc_z(self.created_at),
        }
        if include_options:
            data["options"] = [o.to_dict() for o in self.options]
        return data


class Option(db.Model):
    """Variant of a catalog item; price_modifier is added to base_price."""
    __tablename__ = "catalog_options"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    price_modifier = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    catalog_item = db.relationship(
        "CatalogItem",
        backref=db.backref("options", lazy=True, order_by="Option.id"),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "catalog_item_id": self.catalog_item_id,
            "name": self.name,
            "price_modifier": money_str(self.price_modifier),
        }
