from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z


class Discount(db.Model):
    """
    Discount code.

    type: Percent (value is a percentage) or Amount (value is money).
    scope: Order (whole order) or Line (only eligible catalog items).
    Active within [starts_at, ends_at]; ends_at NULL is unbounded.
    """
    __tablename__ = "discounts"
    __table_args__ = (
        db.UniqueConstraint("business_id", "code", name="uq_discounts_business_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    code = db.Column(db.String(64), nullable=False)
    discount_type = db.Column(db.String(16), nullable=False)  # Percent, Amount
    scope = db.Column(db.String(16), nullable=False)  # Order, Line
    value = db.Column(db.Numeric(12, 2), nullable=False)

    starts_at = db.Column(db.DateTime, nullable=False)
    ends_at = db.Column(db.DateTime, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="Active", index=True)  # Active, Inactive

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def eligible_catalog_item_ids(self) -> set[int]:
        return {e.catalog_item_id for e in self.eligibilities if e.catalog_item_id is not None}

    def eligible_option_ids(self) -> set[int]:
        return {e.option_id for e in self.eligibilities if e.option_id is not None}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "code": self.code,
            "type": self.discount_type,
            "scope": self.scope,
            "value": decimal_str(self.value),
            "starts_at": to_utc_z(self.starts_at),
            "ends_at": to_utc_z(self.ends_at),
            "status": self.status,
            "eligibilities": [e.to_dict() for e in self.eligibilities],
        }


class DiscountEligibility(db.Model):
    """Catalog item (or single option) a Line-scope discount applies to."""
    __tablename__ = "discount_eligibilities"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    discount_id = db.Column(db.Integer, db.ForeignKey("discounts.id"), nullable=False, index=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=True)
    option_id = db.Column(db.Integer, db.ForeignKey("catalog_options.id"), nullable=True)

    discount = db.relationship("Discount", backref=db.backref("eligibilities", lazy=True))

    def to_dict(self) -> dict:
        return {
            "catalog_item_id": self.catalog_item_id,
            "option_id": self.option_id,
        }
