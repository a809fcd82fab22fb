# Overview: Service-layer operations for reservations; booking with interval conflict checks.

"""
Reservation Service

Appointments occupy the half-open interval [appointment_start,
appointment_end). Two Booked reservations conflict when
existing.start < end AND existing.end > start, so back-to-back bookings
(one ending at 15:00, the next starting at 15:00) are allowed.

Conflict scope:
- employee_id given: only that employee's Booked reservations count.
- employee_id None: every Booked reservation in the business counts.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from ..models import CatalogItem, Reservation, ReservationService
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission
from ..time_utils import add_minutes, to_utc_naive, utcnow
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# RESERVATION STATUS (CONSTANTS)
# =============================================================================

RESERVATION_BOOKED = "Booked"
RESERVATION_CANCELLED = "Cancelled"
RESERVATION_COMPLETED = "Completed"
RESERVATION_EXPIRED = "Expired"

VALID_RESERVATION_STATUSES = [
    RESERVATION_BOOKED,
    RESERVATION_CANCELLED,
    RESERVATION_COMPLETED,
    RESERVATION_EXPIRED,
]


# =============================================================================
# CONFLICT DETECTION
# =============================================================================

def has_conflict(
    business_id: int,
    employee_id: int | None,
    start: datetime,
    end: datetime,
    exclude_reservation_id: int | None = None,
) -> bool:
    """True if [start, end) overlaps a Booked reservation in scope."""
    start = to_utc_naive(start)
    end = to_utc_naive(end)

    q = db.session.query(Reservation.id).filter(
        Reservation.business_id == business_id,
        Reservation.status == RESERVATION_BOOKED,
        Reservation.appointment_start < end,
        Reservation.appointment_end > start,
    )
    if employee_id is not None:
        q = q.filter(Reservation.employee_id == employee_id)
    if exclude_reservation_id is not None:
        q = q.filter(Reservation.id != exclude_reservation_id)
    return q.first() is not None


def _ensure_no_conflict(business_id, employee_id, start, end, exclude_reservation_id=None) -> None:
    if has_conflict(business_id, employee_id, start, end, exclude_reservation_id):
        raise ConflictError(
            "Reservation overlaps an existing booking",
            {
                "employee_id": employee_id,
                "appointment_start": start.isoformat(),
                "appointment_end": end.isoformat(),
            },
            code="RESERVATION_CONFLICT",
        )


# =============================================================================
# HELPERS
# =============================================================================

def _parse_duration(planned_duration_min) -> int:
    if isinstance(planned_duration_min, bool):
        raise ValidationError("planned_duration_min must be an integer")
    try:
        minutes = int(planned_duration_min)
    except (TypeError, ValueError):
        raise ValidationError("planned_duration_min must be an integer")
    if minutes <= 0:
        raise ValidationError("planned_duration_min must be greater than zero")
    return minutes


def _build_services(business_id: int, services) -> list[ReservationService]:
    """services: iterable of {"catalog_item_id": int, "quantity": int}."""
    rows = []
    for entry in services or ():
        catalog_item_id = entry.get("catalog_item_id")
        quantity = entry.get("quantity", 1)
        item = db.session.get(CatalogItem, catalog_item_id) if catalog_item_id else None
        if not item or item.business_id != business_id:
            raise NotFoundError.for_entity("Catalog item", catalog_item_id)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("Service quantity must be a positive integer")
        rows.append(ReservationService(catalog_item_id=item.id, quantity=quantity))
    return rows


def _load_reservation(actor: ActorContext, reservation_id: int, *, lock: bool = False) -> Reservation:
    query = db.session.query(Reservation).filter_by(id=reservation_id)
    if lock:
        query = lock_for_update(query)
    reservation = query.first()
    if not reservation or not can_see_business(actor, reservation.business_id):
        raise NotFoundError.for_entity("Reservation", reservation_id)
    return reservation


def _ensure_booked(reservation: Reservation) -> None:
    if reservation.status != RESERVATION_BOOKED:
        raise InvalidStateError(
            f"Reservation {reservation.id} is {reservation.status}",
            {"reservation_id": reservation.id, "status": reservation.status},
            code="RESERVATION_NOT_BOOKED",
        )


# =============================================================================
# OPERATIONS
# =============================================================================

def create_reservation(
    actor: ActorContext,
    business_id: int,
    *,
    customer_name: str,
    appointment_start: datetime,
    planned_duration_min,
    employee_id: int | None = None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    services=(),
    notes: str | None = None,
) -> Reservation:
    require_permission(actor, "MANAGE_RESERVATIONS")
    ensure_business_access(actor, business_id)

    customer_name = (customer_name or "").strip()
    if not customer_name:
        raise ValidationError("customer_name is required")
    start = to_utc_naive(appointment_start)
    if start is None:
        raise ValidationError("appointment_start is required")
    minutes = _parse_duration(planned_duration_min)
    end = add_minutes(start, minutes)

    def _op():
        _ensure_no_conflict(business_id, employee_id, start, end)

        reservation = Reservation(
            business_id=business_id,
            employee_id=employee_id,
            customer_name=customer_name,
            customer_email=customer_email,
            customer_phone=customer_phone,
            appointment_start=start,
            appointment_end=end,
            planned_duration_min=minutes,
            status=RESERVATION_BOOKED,
            notes=notes,
        )
        reservation.services = _build_services(business_id, services)
        db.session.add(reservation)
        db.session.commit()

        current_app.logger.info(
            "Reservation %s booked for employee %s at %s", reservation.id, employee_id, start
        )
        return reservation

    return run_with_retry(_op)


def update_reservation(
    actor: ActorContext,
    reservation_id: int,
    *,
    appointment_start: datetime | None = None,
    planned_duration_min=None,
    employee_id: int | None = None,
    clear_employee: bool = False,
    customer_name: str | None = None,
    customer_email: str | None = None,
    customer_phone: str | None = None,
    services=None,
    notes: str | None = None,
) -> Reservation:
    """
    Update a Booked reservation.

    Time or employee changes are re-checked for conflicts, excluding the
    reservation itself. Pass clear_employee=True to unassign the employee.
    """
    require_permission(actor, "MANAGE_RESERVATIONS")
    minutes = _parse_duration(planned_duration_min) if planned_duration_min is not None else None
    if customer_name is not None and not customer_name.strip():
        raise ValidationError("customer_name must not be empty")

    def _op():
        reservation = _load_reservation(actor, reservation_id, lock=True)
        _ensure_booked(reservation)

        start = to_utc_naive(appointment_start) if appointment_start else reservation.appointment_start
        duration = minutes if minutes is not None else reservation.planned_duration_min
        end = add_minutes(start, duration)
        if clear_employee:
            new_employee = None
        elif employee_id is not None:
            new_employee = employee_id
        else:
            new_employee = reservation.employee_id

        _ensure_no_conflict(reservation.business_id, new_employee, start, end, reservation.id)

        reservation.appointment_start = start
        reservation.appointment_end = end
        reservation.planned_duration_min = duration
        reservation.employee_id = new_employee
        if customer_name is not None:
            reservation.customer_name = customer_name.strip()
        if customer_email is not None:
            reservation.customer_email = customer_email
        if customer_phone is not None:
            reservation.customer_phone = customer_phone
        if notes is not None:
            reservation.notes = notes
        if services is not None:
            reservation.services = _build_services(reservation.business_id, services)

        db.session.commit()
        return reservation

    return run_with_retry(_op)


def _transition(actor: ActorContext, reservation_id: int, status: str) -> Reservation:
    require_permission(actor, "MANAGE_RESERVATIONS")

    def _op():
        reservation = _load_reservation(actor, reservation_id, lock=True)
        _ensure_booked(reservation)
        reservation.status = status
        db.session.commit()
        current_app.logger.info("Reservation %s -> %s", reservation.id, status)
        return reservation

    return run_with_retry(_op)


def cancel_reservation(actor: ActorContext, reservation_id: int) -> Reservation:
    return _transition(actor, reservation_id, RESERVATION_CANCELLED)


def complete_reservation(actor: ActorContext, reservation_id: int) -> Reservation:
    return _transition(actor, reservation_id, RESERVATION_COMPLETED)


def expire_overdue_reservations(business_id: int | None = None, at: datetime | None = None) -> int:
    """Mark Booked reservations whose end has passed as Expired. Returns the count."""
    at = to_utc_naive(at) if at else utcnow()

    def _op():
        q = db.session.query(Reservation).filter(
            Reservation.status == RESERVATION_BOOKED,
            Reservation.appointment_end <= at,
        )
        if business_id is not None:
            q = q.filter(Reservation.business_id == business_id)
        overdue = q.all()
        for reservation in overdue:
            reservation.status = RESERVATION_EXPIRED
        db.session.commit()
        return len(overdue)

    count = run_with_retry(_op)
    if count:
        current_app.logger.info("Expired %s overdue reservations", count)
    return count


def get_reservation(actor: ActorContext, reservation_id: int) -> Reservation:
    return _load_reservation(actor, reservation_id)


def list_reservations(
    actor: ActorContext,
    business_id: int,
    *,
    status: str | None = None,
    employee_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Reservation]:
    ensure_business_access(actor, business_id)
    if status is not None and status not in VALID_RESERVATION_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_RESERVATION_STATUSES}")

    q = db.session.query(Reservation).filter_by(business_id=business_id)
    if status:
        q = q.filter_by(status=status)
    if employee_id is not None:
        q = q.filter_by(employee_id=employee_id)
    if start is not None:
        q = q.filter(Reservation.appointment_end > to_utc_naive(start))
    if end is not None:
        q = q.filter(Reservation.appointment_start < to_utc_naive(end))
    return q.order_by(Reservation.appointment_start.asc(), Reservation.id.asc()).all()
