# Overview: Service-layer operations for tax rules; resolves the rate in force at a point in time.

"""
Tax Rate Resolver

A rule applies at instant `at` when:
    is_active AND valid_from <= at AND (valid_to IS NULL OR valid_to >= at)

If several rules qualify (which only happens with inconsistent data),
the one with the latest valid_from wins; ties fall back to the newest id.

MISSING RATE POLICY:
current_rate() raises NotFoundError when no rule applies, and line
creation lets it propagate. Existing lines carry their own rate snapshot,
so nothing downstream ever needs to re-resolve (or default) a rate.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import TaxRule
from ..money import HUNDRED, ZERO, to_decimal
from ..permissions import ActorContext, require_permission
from ..time_utils import to_utc_naive, utcnow
from .concurrency import lock_for_update, run_with_retry


def _applicable_rules_query(country_code: str, tax_class: str, at: datetime):
    return db.session.query(TaxRule).filter(
        TaxRule.country_code == country_code,
        TaxRule.tax_class == tax_class,
        TaxRule.is_active.is_(True),
        TaxRule.valid_from <= at,
        or_(TaxRule.valid_to.is_(None), TaxRule.valid_to >= at),
    )


def find_current_rule(country_code: str, tax_class: str, at: datetime | None = None) -> TaxRule | None:
    at = to_utc_naive(at) if at is not None else utcnow()
    return (
        _applicable_rules_query(country_code.upper(), tax_class, at)
        .order_by(TaxRule.valid_from.desc(), TaxRule.id.desc())
        .first()
    )


def current_rate(country_code: str, tax_class: str, at: datetime | None = None) -> Decimal:
    """Rate percent in force for (country, class) at `at` (default now)."""
    rule = find_current_rule(country_code, tax_class, at)
    if rule is None:
        raise NotFoundError(
            f"No tax rate for {country_code.upper()}/{tax_class}",
            {"country_code": country_code.upper(), "tax_class": tax_class},
            code="TAX_RATE_NOT_FOUND",
        )
    return to_decimal(rule.rate_percent)


def _windows_overlap(
    start_a: datetime, end_a: datetime | None, start_b: datetime, end_b: datetime | None
) -> bool:
    # Closed intervals; None is open-ended
    a_before_b_ends = end_b is None or start_a <= end_b
    b_before_a_ends = end_a is None or start_b <= end_a
    return a_before_b_ends and b_before_a_ends


def create_tax_rule(
    actor: ActorContext,
    *,
    country_code: str,
    tax_class: str,
    rate_percent,
    valid_from: datetime,
    valid_to: datetime | None = None,
) -> TaxRule:
    """
    Create a tax rule, superseding active rules whose window overlaps.

    The superseded rules are deactivated in the same transaction as the
    insert, so there is never a moment with two competing active rules.
    """
    require_permission(actor, "MANAGE_TAX_RULES")

    country_code = (country_code or "").strip().upper()
    if len(country_code) != 2 or not country_code.isalpha():
        raise ValidationError("country_code must be a two-letter code")
    tax_class = (tax_class or "").strip()
    if not tax_class:
        raise ValidationError("tax_class is required")

    rate = to_decimal(rate_percent, field="rate_percent")
    if rate < ZERO or rate > HUNDRED:
        raise ValidationError("rate_percent must be between 0 and 100")

    valid_from = to_utc_naive(valid_from)
    valid_to = to_utc_naive(valid_to)
    if valid_from is None:
        raise ValidationError("valid_from is required")
    if valid_to is not None and valid_to < valid_from:
        raise ValidationError("valid_to must not be before valid_from")

    def _op():
        candidates = lock_for_update(
            db.session.query(TaxRule).filter_by(
                country_code=country_code, tax_class=tax_class, is_active=True
            )
        ).all()

        superseded = []
        for existing in candidates:
            if _windows_overlap(existing.valid_from, existing.valid_to, valid_from, valid_to):
                existing.is_active = False
                superseded.append(existing.id)

        rule = TaxRule(
            country_code=country_code,
            tax_class=tax_class,
            rate_percent=rate,
            valid_from=valid_from,
            valid_to=valid_to,
            is_active=True,
        )
        db.session.add(rule)
        db.session.commit()

        if superseded:
            current_app.logger.info(
                "Tax rule %s for %s/%s supersedes rules %s",
                rule.id, country_code, tax_class, superseded,
            )
        return rule

    return run_with_retry(_op)


def list_tax_rules(
    country_code: str | None = None,
    tax_class: str | None = None,
    active_only: bool = False,
) -> list[TaxRule]:
    q = db.session.query(TaxRule)
    if country_code:
        q = q.filter(TaxRule.country_code == country_code.upper())
    if tax_class:
        q = q.filter(TaxRule.tax_class == tax_class)
    if active_only:
        q = q.filter(TaxRule.is_active.is_(True))
    return q.order_by(TaxRule.country_code, TaxRule.tax_class, TaxRule.valid_from.desc()).all()


def deactivate_tax_rule(actor: ActorContext, rule_id: int) -> TaxRule:
    """Rules are deactivated, never deleted."""
    require_permission(actor, "MANAGE_TAX_RULES")

    def _op():
        rule = lock_for_update(db.session.query(TaxRule).filter_by(id=rule_id)).first()
        if not rule:
            raise NotFoundError.for_entity("Tax rule", rule_id)
        rule.is_active = False
        db.session.commit()
        return rule

    return run_with_retry(_op)
