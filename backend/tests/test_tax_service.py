from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.errors import ForbiddenError, NotFoundError, ValidationError
from backoffice.models import TaxRule
from backoffice.services import tax_service


JAN = datetime(2024, 1, 1)
JUL = datetime(2024, 7, 1)


def test_current_rate_uses_rule_in_window(db_session, admin):
    tax_service.create_tax_rule(
        admin, country_code="lt", tax_class="Food", rate_percent="9",
        valid_from=JAN, valid_to=datetime(2024, 6, 30, 23, 59),
    )
    tax_service.create_tax_rule(
        admin, country_code="LT", tax_class="Food", rate_percent="21", valid_from=JUL,
    )

    assert tax_service.current_rate("LT", "Food", datetime(2024, 3, 1)) == Decimal("9")
    assert tax_service.current_rate("lt", "Food", datetime(2024, 8, 1)) == Decimal("21")


def test_missing_rate_is_not_found(db_session):
    with pytest.raises(NotFoundError) as exc:
        tax_service.current_rate("LT", "Alcohol", JAN)
    assert exc.value.code == "TAX_RATE_NOT_FOUND"


def test_rate_before_valid_from_is_not_found(db_session, admin):
    tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="20", valid_from=JUL)
    with pytest.raises(NotFoundError):
        tax_service.current_rate("LT", "Food", JAN)


def test_overlapping_rule_supersedes_previous(db_session, admin):
    old = tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="20", valid_from=JAN)
    new = tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="21", valid_from=JUL)

    assert db_session.get(TaxRule, old.id).is_active is False
    assert db_session.get(TaxRule, new.id).is_active is True
    # The superseded rule no longer answers, even inside its own window
    with pytest.raises(NotFoundError):
        tax_service.current_rate("LT", "Food", datetime(2024, 3, 1))


def test_non_overlapping_rules_coexist(db_session, admin):
    tax_service.create_tax_rule(
        admin, country_code="LT", tax_class="Food", rate_percent="9",
        valid_from=JAN, valid_to=datetime(2024, 6, 30),
    )
    tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="21", valid_from=JUL)

    active = tax_service.list_tax_rules(country_code="LT", tax_class="Food", active_only=True)
    assert [r.rate_percent for r in active] == [Decimal("21"), Decimal("9")]


def test_other_class_is_untouched(db_session, admin):
    food = tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="20", valid_from=JAN)
    tax_service.create_tax_rule(admin, country_code="LT", tax_class="Service", rate_percent="21", valid_from=JAN)
    assert db_session.get(TaxRule, food.id).is_active is True


def test_deactivate_rule(db_session, admin):
    rule = tax_service.create_tax_rule(admin, country_code="LT", tax_class="Food", rate_percent="20", valid_from=JAN)
    tax_service.deactivate_tax_rule(admin, rule.id)
    assert tax_service.find_current_rule("LT", "Food", JUL) is None
    assert len(tax_service.list_tax_rules()) == 1


def test_only_super_admin_manages_rules(db_session, owner):
    with pytest.raises(ForbiddenError):
        tax_service.create_tax_rule(owner, country_code="LT", tax_class="Food", rate_percent="20", valid_from=JAN)


@pytest.mark.parametrize("kwargs", [
    {"country_code": "LTU", "rate_percent": "20"},
    {"country_code": "LT", "rate_percent": "101"},
    {"country_code": "LT", "rate_percent": "-1"},
])
def test_validation(db_session, admin, kwargs):
    with pytest.raises(ValidationError):
        tax_service.create_tax_rule(admin, tax_class="Food", valid_from=JAN, **kwargs)


def test_latest_valid_from_wins_when_active_rules_overlap(db_session):
    # Overlapping active rules only arise from data entered outside create_tax_rule
    db_session.add(TaxRule(country_code="LT", tax_class="Food", rate_percent="20", valid_from=JAN, is_active=True))
    db_session.add(TaxRule(country_code="LT", tax_class="Food", rate_percent="21", valid_from=JUL, is_active=True))
    db_session.commit()

    assert tax_service.current_rate("LT", "Food", datetime(2024, 3, 1)) == Decimal("20")
    assert tax_service.current_rate("LT", "Food", datetime(2024, 8, 1)) == Decimal("21")
