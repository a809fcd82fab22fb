# Overview: Flask API routes for reservations.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_actor
from ..errors import BackofficeError, ValidationError
from ..services import reservation_service
from ..validation import (
    get_json_body,
    parse_datetime,
    parse_int,
    require_fields,
    resolve_business_id,
)


reservations_bp = Blueprint("reservations", __name__, url_prefix="/api/reservations")


def _parse_services(data: dict):
    services = data.get("services")
    if services is None:
        return None
    if not isinstance(services, list) or not all(isinstance(s, dict) for s in services):
        raise ValidationError("services must be a list of objects")
    return [
        {
            "catalog_item_id": parse_int(s, "catalog_item_id"),
            "quantity": parse_int(s, "quantity", required=False, default=1),
        }
        for s in services
    ]


@reservations_bp.get("/")
@require_actor
def list_reservations_route():
    """
    Query params:
    - status, employee_id: optional filters
    - start, end: ISO datetimes bounding the appointment window
    """
    try:
        args = request.args
        reservations = reservation_service.list_reservations(
            g.actor,
            resolve_business_id(args, g.actor),
            status=args.get("status"),
            employee_id=parse_int(args, "employee_id", required=False),
            start=parse_datetime(args, "start", required=False),
            end=parse_datetime(args, "end", required=False),
        )
        return jsonify({"reservations": [r.to_dict() for r in reservations]}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to list reservations")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/")
@require_actor
def create_reservation_route():
    """
    Book an appointment. 409 with RESERVATION_CONFLICT on overlap.

    Request body:
    {
        "customer_name": "Ana",
        "appointment_start": "2024-06-01T14:00:00Z",
        "planned_duration_min": 60,
        "employee_id": 7,  (optional)
        "services": [{"catalog_item_id": 3, "quantity": 1}]  (optional)
    }
    """
    try:
        data = get_json_body(request)
        require_fields(data, "customer_name", "appointment_start", "planned_duration_min")
        reservation = reservation_service.create_reservation(
            g.actor,
            resolve_business_id(data, g.actor),
            customer_name=data["customer_name"],
            appointment_start=parse_datetime(data, "appointment_start"),
            planned_duration_min=parse_int(data, "planned_duration_min"),
            employee_id=parse_int(data, "employee_id", required=False),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            services=_parse_services(data) or (),
            notes=data.get("notes"),
        )
        return jsonify({"reservation": reservation.to_dict()}), 201
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to create reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.get("/<int:reservation_id>")
@require_actor
def get_reservation_route(reservation_id: int):
    try:
        reservation = reservation_service.get_reservation(g.actor, reservation_id)
        return jsonify({"reservation": reservation.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to get reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.patch("/<int:reservation_id>")
@require_actor
def update_reservation_route(reservation_id: int):
    try:
        data = get_json_body(request)
        reservation = reservation_service.update_reservation(
            g.actor,
            reservation_id,
            appointment_start=parse_datetime(data, "appointment_start", required=False),
            planned_duration_min=parse_int(data, "planned_duration_min", required=False),
            employee_id=parse_int(data, "employee_id", required=False),
            clear_employee="employee_id" in data and data["employee_id"] is None,
            customer_name=data.get("customer_name"),
            customer_email=data.get("customer_email"),
            customer_phone=data.get("customer_phone"),
            services=_parse_services(data),
            notes=data.get("notes"),
        )
        return jsonify({"reservation": reservation.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to update reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/<int:reservation_id>/cancel")
@require_actor
def cancel_reservation_route(reservation_id: int):
    try:
        reservation = reservation_service.cancel_reservation(g.actor, reservation_id)
        return jsonify({"reservation": reservation.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to cancel reservation")
        return jsonify({"error": "Internal server error"}), 500


@reservations_bp.post("/<int:reservation_id>/complete")
@require_actor
def complete_reservation_route(reservation_id: int):
    try:
        reservation = reservation_service.complete_reservation(g.actor, reservation_id)
        return jsonify({"reservation": reservation.to_dict()}), 200
    except BackofficeError as e:
        return jsonify(e.to_dict()), e.status_code
    except Exception:
        current_app.logger.exception("Failed to complete reservation")
        return jsonify({"error": "Internal server error"}), 500
