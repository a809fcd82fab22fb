from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Reservation(db.Model):
    """
    Appointment booking.

    The interval is half-open: [appointment_start, appointment_end).
    Only Booked reservations take part in conflict checks.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.Index("ix_reservations_business_status_start", "business_id", "status", "appointment_start"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, nullable=True, index=True)

    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)

    appointment_start = db.Column(db.DateTime, nullable=False)
    appointment_end = db.Column(db.DateTime, nullable=False)
    planned_duration_min = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="Booked")  # Booked, Cancelled, Completed, Expired
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "business_id": self.business_id,
            "employee_id": self.employee_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "appointment_start": to_utc_z(self.appointment_start),
            "appointment_end": to_utc_z(self.appointment_end),
            "planned_duration_min": self.planned_duration_min,
            "status": self.status,
            "notes": self.notes,
            "services": [s.to_dict() for s in self.services],
        }


class ReservationService(db.Model):
    __tablename__ = "reservation_services"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=False, index=True)
    catalog_item_id = db.Column(db.Integer, db.ForeignKey("catalog_items.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)

    reservation = db.relationship(
        "Reservation",
        backref=db.backref("services", lazy=True, cascade="all, delete-orphan"),
    )
    catalog_item = db.relationship("CatalogItem")

    def to_dict(self) -> dict:
        return {
            "catalog_item_id": self.catalog_item_id,
            "name": self.catalog_item.name if self.catalog_item else None,
            "quantity": self.quantity,
        }
