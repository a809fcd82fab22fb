from datetime import datetime
from decimal import Decimal

import httpx
import pytest

from backoffice.errors import (
    ForbiddenError,
    InsufficientFundsError,
    InvalidStateError,
    ValidationError,
)
from backoffice.models import GiftCard, Payment
from backoffice.services import (
    discount_service,
    exchange_rate_service,
    gift_card_service,
    order_service,
    payment_service,
)
from backoffice.services.totals_service import due_total, order_summary, paid_total


@pytest.fixture
def priced_order(employee, manager, business, single):
    """Two espressos: 8.40 - 10% (0.84) + tip 1.00 = 8.56 due."""
    order = order_service.create_order(employee, business.id)
    order_service.add_line(employee, order.id, option_id=single.id, qty=2)
    discount_service.create_discount(
        manager,
        business_id=business.id,
        code="TEN",
        discount_type="Percent",
        scope="Order",
        value="10",
        starts_at=datetime(2020, 1, 1),
    )
    discount_service.apply_discount(employee, order.id, "TEN")
    order_service.set_tip(employee, order.id, "1.00")
    return order_service.get_order(employee, order.id)


class TestCloseOrder:
    def test_exact_payment_closes(self, employee, priced_order):
        assert due_total(priced_order) == Decimal("8.56")
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")

        order = payment_service.close_order(employee, priced_order.id)
        assert order.status == order_service.ORDER_STATUS_CLOSED
        assert order.closed_at is not None

    def test_underpayment_keeps_order_open(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="5.00", method="Cash")

        with pytest.raises(InsufficientFundsError) as exc:
            payment_service.close_order(employee, priced_order.id)
        assert exc.value.code == "INSUFFICIENT_PAYMENT"
        assert order_service.get_order(employee, priced_order.id).status == "Open"

    def test_one_cent_short_fails(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.55", method="Cash")
        with pytest.raises(InsufficientFundsError):
            payment_service.close_order(employee, priced_order.id)

    def test_split_tenders(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="5.00", method="Cash")
        payment_service.record_payment(
            employee, priced_order.id, amount="3.56", method="CardCredit", external_reference="AUTH-1",
        )
        order = payment_service.close_order(employee, priced_order.id)
        assert paid_total(order) == Decimal("8.56")

    def test_overpayment_reports_change(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="10.00", method="Cash")
        summary = payment_service.payment_summary(employee, priced_order.id)
        assert summary["remaining"] == "0.00"
        assert summary["change_due"] == "1.44"
        payment_service.close_order(employee, priced_order.id)

    def test_cannot_close_twice(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")
        payment_service.close_order(employee, priced_order.id)
        with pytest.raises(InvalidStateError):
            payment_service.close_order(employee, priced_order.id)

    def test_closed_order_rejects_payments(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")
        payment_service.close_order(employee, priced_order.id)
        with pytest.raises(InvalidStateError):
            payment_service.record_payment(employee, priced_order.id, amount="1", method="Cash")


class TestRecordPayment:
    def test_tip_portion_accumulates(self, employee, business, single):
        order = order_service.create_order(employee, business.id)
        order_service.add_line(employee, order.id, option_id=single.id, qty=2)

        payment_service.record_payment(employee, order.id, amount="5.00", method="Cash", tip_portion="0.50")
        payment_service.record_payment(employee, order.id, amount="4.40", method="CardDebit", tip_portion="0.50")

        order = order_service.get_order(employee, order.id)
        assert order.tip_amount == Decimal("1.00")
        assert due_total(order) == Decimal("9.40")
        payment_service.close_order(employee, order.id)

    @pytest.mark.parametrize("amount", ["0", "-1"])
    def test_amount_must_be_positive(self, employee, priced_order, amount):
        with pytest.raises(ValidationError):
            payment_service.record_payment(employee, priced_order.id, amount=amount, method="Cash")

    def test_amount_rounding_to_zero_cents_is_rejected(self, employee, priced_order, db_session):
        with pytest.raises(ValidationError):
            payment_service.record_payment(employee, priced_order.id, amount="0.004", method="Cash")
        assert db_session.query(Payment).count() == 0

        order = payment_service.cancel_order(employee, priced_order.id)
        assert order.status == order_service.ORDER_STATUS_CANCELLED

    def test_unknown_method(self, employee, priced_order):
        with pytest.raises(ValidationError):
            payment_service.record_payment(employee, priced_order.id, amount="1", method="Cheque")

    def test_gift_card_requires_card(self, employee, priced_order):
        with pytest.raises(ValidationError):
            payment_service.record_payment(employee, priced_order.id, amount="1", method="GiftCard")


class TestGiftCardPayments:
    def test_insufficient_balance_leaves_card_untouched(self, employee, manager, business, single, db_session):
        card = gift_card_service.issue_gift_card(manager, business.id, "50.00")
        order = order_service.create_order(employee, business.id)
        order_service.add_line(employee, order.id, option_id=single.id, qty=10)

        with pytest.raises(InsufficientFundsError) as exc:
            payment_service.record_payment(
                employee, order.id, amount="60.00", method="GiftCard", gift_card_id=card.id,
            )
        assert exc.value.message == "Gift card has insufficient balance"
        assert db_session.get(GiftCard, card.id).balance == Decimal("50.00")
        assert db_session.query(Payment).count() == 0

    def test_debit_and_payment_commit_together(self, employee, manager, business, priced_order, db_session):
        card = gift_card_service.issue_gift_card(manager, business.id, "50.00")
        payment = payment_service.record_payment(
            employee, priced_order.id, amount="8.56", method="GiftCard", gift_card_id=card.id,
        )
        assert payment.gift_card_id == card.id
        assert db_session.get(GiftCard, card.id).balance == Decimal("41.44")

    def test_blocked_card(self, employee, manager, business, priced_order):
        card = gift_card_service.issue_gift_card(manager, business.id, "50.00")
        gift_card_service.set_gift_card_status(manager, card.id, "Blocked")
        with pytest.raises(InvalidStateError) as exc:
            payment_service.record_payment(
                employee, priced_order.id, amount="5", method="GiftCard", gift_card_id=card.id,
            )
        assert exc.value.code == "GIFT_CARD_BLOCKED"

    def test_expired_card(self, employee, manager, business, priced_order, db_session):
        card = gift_card_service.issue_gift_card(
            manager, business.id, "50.00", expires_at=datetime(2021, 1, 1),
        )
        with pytest.raises(InvalidStateError) as exc:
            payment_service.record_payment(
                employee, priced_order.id, amount="5", method="GiftCard", gift_card_id=card.id,
            )
        assert exc.value.code == "GIFT_CARD_EXPIRED"
        assert db_session.get(GiftCard, card.id).balance == Decimal("50.00")


class TestForeignCurrency:
    def test_usd_tender_is_converted_to_base(self, app, employee, priced_order, monkeypatch):
        def handler(request):
            return httpx.Response(200, text='{"base_code": "EUR", "rates": {"EUR": 1, "USD": 1.25}}')

        real_fetch = exchange_rate_service._fetch_rates
        monkeypatch.setattr(
            exchange_rate_service,
            "_fetch_rates",
            lambda base, client=None: real_fetch(base, httpx.Client(transport=httpx.MockTransport(handler))),
        )

        payment = payment_service.record_payment(
            employee, priced_order.id, amount="10.70", method="Cash", currency="usd",
        )
        assert payment.amount == Decimal("8.56")
        assert payment.currency == "USD"
        assert payment.tendered_amount == Decimal("10.70")
        assert payment.exchange_rate == Decimal("1.25")
        payment_service.close_order(employee, priced_order.id)

    def test_unknown_currency_is_rejected(self, app, employee, priced_order, monkeypatch):
        monkeypatch.setattr(
            exchange_rate_service, "_fetch_rates", lambda base, client=None: {"EUR": Decimal("1")},
        )
        with pytest.raises(ValidationError) as exc:
            payment_service.record_payment(employee, priced_order.id, amount="10", method="Cash", currency="XYZ")
        assert exc.value.code == "UNSUPPORTED_CURRENCY"


class TestCancelAndRefund:
    def test_cancel_without_payments(self, employee, priced_order):
        order = payment_service.cancel_order(employee, priced_order.id)
        assert order.status == order_service.ORDER_STATUS_CANCELLED

    def test_cancel_blocked_by_payment(self, employee, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="1.00", method="Cash")
        with pytest.raises(InvalidStateError) as exc:
            payment_service.cancel_order(employee, priced_order.id)
        assert exc.value.code == "ORDER_HAS_PAYMENTS"

    def test_refund_closed_order(self, employee, manager, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")
        payment_service.close_order(employee, priced_order.id)

        refund = payment_service.refund_order(manager, priced_order.id, "8.56", reason="Cold coffee")
        assert refund.amount == Decimal("-8.56")
        assert refund.is_refund

        order = order_service.get_order(employee, priced_order.id)
        assert order.status == order_service.ORDER_STATUS_REFUNDED
        assert paid_total(order) == Decimal("0.00")
        assert order_summary(order)["refunded_total"] == "8.56"

    def test_refund_cannot_exceed_paid(self, employee, manager, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")
        payment_service.close_order(employee, priced_order.id)
        with pytest.raises(ValidationError):
            payment_service.refund_order(manager, priced_order.id, "8.57")

    def test_refund_requires_closed_order(self, manager, priced_order):
        with pytest.raises(InvalidStateError):
            payment_service.refund_order(manager, priced_order.id, "1.00")

    def test_employee_cannot_refund(self, employee, priced_order):
        with pytest.raises(ForbiddenError):
            payment_service.refund_order(employee, priced_order.id, "1.00")

    def test_refunded_order_cannot_be_cancelled(self, employee, manager, priced_order):
        payment_service.record_payment(employee, priced_order.id, amount="8.56", method="Cash")
        payment_service.close_order(employee, priced_order.id)
        payment_service.refund_order(manager, priced_order.id, "8.56")
        with pytest.raises(InvalidStateError):
            payment_service.cancel_order(employee, priced_order.id)
