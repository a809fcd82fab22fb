from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .money import to_decimal
from .time_utils import parse_iso_datetime


def get_json_body(request) -> dict:
    """JSON object body or ValidationError; an empty body counts as {}."""
    data = request.get_json(silent=True)
    if data is None:
        if request.data:
            raise ValidationError("Request body must be valid JSON")
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) is None or data.get(f) == ""]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}", {"missing": missing})


def parse_decimal(data: dict, field: str, *, required: bool = True, default=None) -> Decimal | None:
    """
    Money and quantities travel as JSON strings ("3.50") or numbers.

    Floats are accepted but converted through their repr, never binary.
    """
    value = data.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return default
    return to_decimal(value, field=field)


def parse_int(data: dict, field: str, *, required: bool = True, default=None) -> int | None:
    value = data.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return default

    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip("-").isdigit():
            return int(stripped)
    raise ValidationError(f"{field} must be an integer")


def parse_datetime(data: dict, field: str, *, required: bool = True) -> datetime | None:
    value = data.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be an ISO-8601 string")
    try:
        return parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 datetime", {"value": value})


def parse_choice(data: dict, field: str, choices, *, required: bool = True, default=None) -> Any:
    value = data.get(field)
    if value is None or value == "":
        if required:
            raise ValidationError(f"{field} is required")
        return default
    if value not in choices:
        raise ValidationError(f"Invalid {field}: {value}. Must be one of {list(choices)}")
    return value


def parse_int_list(data: dict, field: str) -> list[int]:
    value = data.get(field) or []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list of integers")
    return [parse_int({field: v}, field) for v in value]


def resolve_business_id(data: dict, actor) -> int:
    """Explicit business_id from the payload/query, else the actor's own business."""
    business_id = parse_int(data, "business_id", required=False)
    if business_id is None:
        business_id = actor.business_id
    if business_id is None:
        raise ValidationError("business_id is required")
    return business_id
