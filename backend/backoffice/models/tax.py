from __future__ import annotations

from ..extensions import db
from ..money import decimal_str
from ..time_utils import to_utc_z


class TaxRule(db.Model):
    """
    Tax rate for a (country, tax class) pair over a validity window.

    Rules are superseded, never deleted: creating an overlapping rule
    deactivates the previous one. valid_to NULL means open-ended.
    """
    __tablename__ = "tax_rules"
    __table_args__ = (
        db.Index("ix_tax_rules_lookup", "country_code", "tax_class", "is_active", "valid_from"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    country_code = db.Column(db.String(2), nullable=False)
    tax_class = db.Column(db.String(64), nullable=False)
    rate_percent = db.Column(db.Numeric(7, 3), nullable=False)

    valid_from = db.Column(db.DateTime, nullable=False)
    valid_to = db.Column(db.DateTime, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "country_code": self.country_code,
            "tax_class": self.tax_class,
            "rate_percent": decimal_str(self.rate_percent),
            "valid_from": to_utc_z(self.valid_from),
            "valid_to": to_utc_z(self.valid_to),
            "is_active": self.is_active,
        }
