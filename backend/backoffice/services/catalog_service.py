# Overview: Service-layer operations for the catalog (items, options, prices).

"""
Catalog Service

Catalog prices are live values. Order lines copy what they need at the
moment they are created, so changing a price here never alters an
existing order.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import CatalogItem, Option
from ..money import ZERO, to_decimal
from ..permissions import ActorContext, can_see_business, ensure_business_access, require_permission


ITEM_TYPE_PRODUCT = "Product"
ITEM_TYPE_SERVICE = "Service"

VALID_ITEM_TYPES = [ITEM_TYPE_PRODUCT, ITEM_TYPE_SERVICE]


def get_catalog_item(actor: ActorContext, catalog_item_id: int) -> CatalogItem:
    item = db.session.get(CatalogItem, catalog_item_id)
    if not item or not can_see_business(actor, item.business_id):
        raise NotFoundError.for_entity("Catalog item", catalog_item_id)
    return item


def create_catalog_item(
    actor: ActorContext,
    *,
    business_id: int,
    name: str,
    code: str,
    base_price,
    tax_class: str,
    item_type: str = ITEM_TYPE_PRODUCT,
) -> CatalogItem:
    require_permission(actor, "MANAGE_CATALOG")
    ensure_business_access(actor, business_id)

    name = (name or "").strip()
    code = (code or "").strip()
    tax_class = (tax_class or "").strip()
    if not name or not code or not tax_class:
        raise ValidationError("name, code and tax_class are required")
    if item_type not in VALID_ITEM_TYPES:
        raise ValidationError(f"Invalid item type: {item_type}. Must be one of {VALID_ITEM_TYPES}")

    price = to_decimal(base_price, field="base_price")
    if price < ZERO:
        raise ValidationError("base_price must not be negative")

    existing = db.session.query(CatalogItem).filter_by(business_id=business_id, code=code).first()
    if existing:
        raise ConflictError(
            "Catalog item with this code already exists",
            {"code": code},
            code="DUPLICATE_CODE",
        )

    item = CatalogItem(
        business_id=business_id,
        name=name,
        code=code,
        item_type=item_type,
        base_price=price,
        tax_class=tax_class,
    )
    db.session.add(item)
    db.session.commit()
    return item


def add_option(actor: ActorContext, catalog_item_id: int, name: str, price_modifier=0) -> Option:
    require_permission(actor, "MANAGE_CATALOG")
    item = get_catalog_item(actor, catalog_item_id)

    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    option = Option(
        catalog_item_id=item.id,
        name=name,
        price_modifier=to_decimal(price_modifier, field="price_modifier"),
    )
    db.session.add(option)
    db.session.commit()
    return option


def update_base_price(actor: ActorContext, catalog_item_id: int, base_price) -> CatalogItem:
    require_permission(actor, "MANAGE_CATALOG")
    item = get_catalog_item(actor, catalog_item_id)

    price = to_decimal(base_price, field="base_price")
    if price < ZERO:
        raise ValidationError("base_price must not be negative")

    item.base_price = price
    db.session.commit()
    return item


def list_catalog_items(actor: ActorContext, business_id: int) -> list[CatalogItem]:
    ensure_business_access(actor, business_id)
    return (
        db.session.query(CatalogItem)
        .filter_by(business_id=business_id)
        .order_by(CatalogItem.name)
        .all()
    )
