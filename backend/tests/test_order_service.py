from datetime import datetime
from decimal import Decimal

import pytest

from backoffice.errors import ForbiddenError, InvalidStateError, NotFoundError, ValidationError
from backoffice.models import Order, TaxRule
from backoffice.services import catalog_service, order_service, tax_service
from backoffice.services.payment_service import cancel_order
from backoffice.services.totals_service import due_total, lines_total, order_summary


def _order_with_two_espressos(employee, business, single):
    order = order_service.create_order(employee, business.id, table_or_area="T1")
    order_service.add_line(employee, order.id, option_id=single.id, qty=2)
    return order_service.get_order(employee, order.id)


class TestCreateOrder:
    def test_new_order_is_open_and_attributed(self, employee, business):
        order = order_service.create_order(employee, business.id)
        assert order.status == order_service.ORDER_STATUS_OPEN
        assert order.employee_id == employee.user_id
        assert due_total(order) == Decimal("0.00")

    def test_other_business_is_forbidden(self, employee, other_business):
        with pytest.raises(ForbiddenError):
            order_service.create_order(employee, other_business.id)

    def test_other_business_order_is_not_found(self, employee, outsider, business):
        order = order_service.create_order(employee, business.id)
        with pytest.raises(NotFoundError):
            order_service.get_order(outsider, order.id)

    def test_list_filters_by_status(self, employee, business):
        first = order_service.create_order(employee, business.id)
        order_service.create_order(employee, business.id)
        cancel_order(employee, first.id)

        open_orders = order_service.list_orders(employee, business.id, status="Open")
        assert len(open_orders) == 1
        assert len(order_service.list_orders(employee, business.id)) == 2


class TestLines:
    def test_line_snapshots_price_and_tax(self, employee, business, single):
        order = _order_with_two_espressos(employee, business, single)
        line = order.lines[0]

        assert line.item_name_snapshot == "Espresso"
        assert line.option_name_snapshot == "Single"
        assert line.unit_price_snapshot == Decimal("3.50")
        assert line.tax_class_snapshot == "Food"
        assert line.tax_rate_snapshot_pct == Decimal("20")
        assert lines_total(order.lines) == Decimal("8.40")

    def test_option_modifier_is_added(self, employee, business, espresso):
        double = espresso.options[1]
        order = order_service.create_order(employee, business.id)
        line = order_service.add_line(employee, order.id, option_id=double.id, qty=1)
        assert line.unit_price_snapshot == Decimal("4.50")

    def test_bare_catalog_item(self, employee, business, croissant):
        order = order_service.create_order(employee, business.id)
        line = order_service.add_line(employee, order.id, catalog_item_id=croissant.id, qty=1)
        assert line.option_id is None
        assert line.option_name_snapshot is None
        assert line.unit_price_snapshot == Decimal("3.00")

    def test_snapshots_survive_price_and_rate_changes(self, employee, owner, admin, business, espresso, single):
        order = _order_with_two_espressos(employee, business, single)

        catalog_service.update_base_price(owner, espresso.id, "5.00")
        tax_service.create_tax_rule(
            admin, country_code="LT", tax_class="Food", rate_percent="25", valid_from=datetime(2001, 1, 1),
        )

        order = order_service.get_order(employee, order.id)
        assert order.lines[0].unit_price_snapshot == Decimal("3.50")
        assert order.lines[0].tax_rate_snapshot_pct == Decimal("20")
        assert lines_total(order.lines) == Decimal("8.40")

        # New lines pick up the new price and rate
        line = order_service.add_line(employee, order.id, option_id=single.id, qty=1)
        assert line.unit_price_snapshot == Decimal("5.00")
        assert line.tax_rate_snapshot_pct == Decimal("25")

    def test_missing_tax_rate_blocks_line(self, employee, business, db_session, food_tax, croissant):
        db_session.get(TaxRule, food_tax.id).is_active = False
        db_session.commit()
        order = order_service.create_order(employee, business.id)
        with pytest.raises(NotFoundError):
            order_service.add_line(employee, order.id, catalog_item_id=croissant.id, qty=1)
        assert order_service.get_order(employee, order.id).lines == []

    def test_update_and_delete_line(self, employee, business, single):
        order = _order_with_two_espressos(employee, business, single)
        line_id = order.lines[0].id

        order_service.update_line_qty(employee, order.id, line_id, 3)
        assert lines_total(order_service.get_order(employee, order.id).lines) == Decimal("12.60")

        order_service.delete_line(employee, order.id, line_id)
        assert order_service.get_order(employee, order.id).lines == []

    @pytest.mark.parametrize("qty", [0, -1, "abc", "0.0004"])
    def test_qty_must_be_positive(self, employee, business, single, qty):
        order = order_service.create_order(employee, business.id)
        with pytest.raises(ValidationError):
            order_service.add_line(employee, order.id, option_id=single.id, qty=qty)

    def test_update_qty_rounding_to_zero_is_rejected(self, employee, business, single):
        order = _order_with_two_espressos(employee, business, single)
        line_id = order.lines[0].id

        with pytest.raises(ValidationError):
            order_service.update_line_qty(employee, order.id, line_id, "0.0004")
        assert order_service.get_order(employee, order.id).lines[0].qty == Decimal("2.000")

    def test_option_from_other_business_is_not_found(self, employee, outsider, other_business, single):
        order = order_service.create_order(outsider, other_business.id)
        with pytest.raises(NotFoundError):
            order_service.add_line(outsider, order.id, option_id=single.id, qty=1)

    def test_line_mutation_bumps_order_version(self, employee, business, single):
        order = order_service.create_order(employee, business.id)
        before = order.version_id
        order_service.add_line(employee, order.id, option_id=single.id, qty=1)
        assert order_service.get_order(employee, order.id).version_id > before

    def test_closed_order_is_not_modifiable(self, employee, business, single, db_session):
        order = _order_with_two_espressos(employee, business, single)
        db_session.get(Order, order.id).status = "Closed"
        db_session.commit()

        with pytest.raises(InvalidStateError) as exc:
            order_service.add_line(employee, order.id, option_id=single.id, qty=1)
        assert exc.value.code == "ORDER_NOT_MODIFIABLE"
        with pytest.raises(InvalidStateError):
            order_service.set_tip(employee, order.id, "1.00")


class TestTip:
    def test_tip_adds_to_due(self, employee, business, single):
        order = _order_with_two_espressos(employee, business, single)
        order = order_service.set_tip(employee, order.id, "1.00")
        assert due_total(order) == Decimal("9.40")

    def test_negative_tip_rejected(self, employee, business):
        order = order_service.create_order(employee, business.id)
        with pytest.raises(ValidationError):
            order_service.set_tip(employee, order.id, "-1")


def test_order_summary_strings(employee, business, single):
    order = _order_with_two_espressos(employee, business, single)
    summary = order_summary(order)
    assert summary["lines_total"] == "8.40"
    assert summary["discount_amount"] == "0.00"
    assert summary["due_total"] == "8.40"
    assert summary["remaining"] == "8.40"
    assert summary["lines"][0]["line_base"] == "7.00"
    assert summary["lines"][0]["line_tax"] == "1.40"
