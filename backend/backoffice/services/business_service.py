# Overview: Service-layer operations for businesses (tenants).

from __future__ import annotations

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Business
from ..permissions import ActorContext, ensure_business_access


def create_business(name: str, country_code: str, currency: str = "EUR") -> Business:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    country_code = (country_code or "").strip().upper()
    if len(country_code) != 2:
        raise ValidationError("country_code must be a two-letter code")
    currency = (currency or "").strip().upper()
    if len(currency) != 3:
        raise ValidationError("currency must be a three-letter code")

    business = Business(name=name, country_code=country_code, currency=currency, is_active=True)
    db.session.add(business)
    db.session.commit()
    return business


def get_business(actor: ActorContext, business_id: int) -> Business:
    ensure_business_access(actor, business_id)
    business = db.session.get(Business, business_id)
    if not business:
        raise NotFoundError.for_entity("Business", business_id)
    return business
