from __future__ import annotations

from ..extensions import db
from ..money import money_str
from ..time_utils import to_utc_z


class GiftCard(db.Model):
    """
    Stored-value card.

    INVARIANT: 0 <= balance <= initial_value. The balance only decreases,
    through gift-card payments; callers never set it.
    """
    __tablename__ = "gift_cards"
    __table_args__ = (
        db.CheckConstraint("balance >= 0", name="balance_non_negative"),
        db.CheckConstraint("balance <= initial_value", name="balance_le_initial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    initial_value = db.Column(db.Numeric(12, 2), nullable=False)
    balance = db.Column(db.Numeric(12, 2), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="Active")  # Active, Blocked, Expired
    expires_at = db.Column(db.DateTime, nullable=True)

    issued_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def is_expired(self, at) -> bool:
        return self.expires_at is not None and self.expires_at < at

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "code": self.code,
            "initial_value": money_str(self.initial_value),
            "balance": money_str(self.balance),
            "status": self.status,
            "expires_at": to_utc_z(self.expires_at),
            "issued_at": to_utc_z(self.issued_at),
        }
