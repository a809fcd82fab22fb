# Overview: Structured value for the discount frozen onto an order.

"""
Discount snapshot

Stored as JSON text on orders.discount_snapshot. Writers always go
through DiscountSnapshot.to_json(); readers that only need an amount use
parse_snapshot_lenient(), which treats anything unreadable as "no
discount" instead of failing the read.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal

from flask import current_app

from ..errors import ValidationError
from ..money import ZERO, to_decimal


@dataclass(frozen=True)
class DiscountSnapshot:
    code: str
    discount_type: str
    scope: str
    value: Decimal
    applied_amount: Decimal

    def to_json(self) -> str:
        if self.applied_amount < ZERO:
            raise ValidationError("applied_amount must not be negative")
        return json.dumps({
            "code": self.code,
            "type": self.discount_type,
            "scope": self.scope,
            "value": str(self.value),
            "applied_amount": str(self.applied_amount),
        }, sort_keys=True)

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "type": self.discount_type,
            "scope": self.scope,
            "value": str(self.value),
            "applied_amount": str(self.applied_amount),
        }

    @classmethod
    def from_json(cls, raw: str) -> "DiscountSnapshot":
        """Strict parse; raises ValueError/KeyError/TypeError on bad input."""
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise TypeError("discount snapshot must be a JSON object")
        applied = to_decimal(data["applied_amount"], field="applied_amount")
        if applied < ZERO:
            raise ValueError("applied_amount must not be negative")
        return cls(
            code=str(data["code"]),
            discount_type=str(data["type"]),
            scope=str(data["scope"]),
            value=to_decimal(data["value"], field="value"),
            applied_amount=applied,
        )


def parse_snapshot_lenient(raw: str | None, *, order_id: int | None = None) -> DiscountSnapshot | None:
    """Read-path parse: a missing or corrupted snapshot means no discount."""
    if not raw:
        return None
    try:
        return DiscountSnapshot.from_json(raw)
    except (ValueError, KeyError, TypeError) as exc:
        current_app.logger.warning(
            "Ignoring unreadable discount snapshot on order %s: %s", order_id, exc
        )
        return None
